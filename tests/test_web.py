import pytest
from fastapi.testclient import TestClient

from order_timer.settings import Settings
from order_timer.storage import InMemoryKeyValueStore
from order_timer.sync import InMemoryTransport
from order_timer.web.app import create_app


@pytest.fixture
def transport():
    return InMemoryTransport()


@pytest.fixture
def client(clock, transport):
    app = create_app(
        Settings(database_path=":memory:", day_format="%Y-%m-%d"),
        store=InMemoryKeyValueStore(),
        transport=transport,
        clock=clock,
    )
    return TestClient(app)


def test_order_lifecycle(client, clock):
    response = client.post("/orders", json={"number": "X1"})
    assert response.status_code == 201
    order = response.json()
    assert order["isRunning"] is True
    assert order["phase"] == "Working"

    clock.advance(10)
    assert client.post(f"/orders/{order['id']}/pause").json()["phase"] == "Paused"
    clock.advance(30)
    client.post(f"/orders/{order['id']}/pause")
    clock.advance(60)
    finished = client.post(f"/orders/{order['id']}/finish").json()

    assert finished["totalDuration"] == 100
    assert finished["pauseTime"] == 30
    assert finished["setupTime"] == 0
    assert finished["netWorkTime"] == 70
    assert finished["hours"]["net"] == 0.02


def test_blank_number_is_generated(client):
    order = client.post("/orders").json()
    assert order["number"].startswith("NEU-")
    assert client.post("/orders", json={"number": "  "}).json()["number"].startswith("NEU-")


def test_unknown_order_returns_404(client):
    assert client.post("/orders/missing/pause").status_code == 404
    assert client.get("/orders/missing").status_code == 404
    assert client.delete("/orders/missing").status_code == 404


def test_edit_after_unlocking(client, clock):
    order = client.post("/orders", json={"number": "E1"}).json()
    clock.advance(3600)
    client.post(f"/orders/{order['id']}/finish")
    unlocked = client.post(f"/orders/{order['id']}/editable", json={"editable": True})
    assert unlocked.json()["isEditable"] is True

    edited = client.patch(
        f"/orders/{order['id']}", json={"field": "setup_minutes", "value": "15"}
    )
    assert edited.status_code == 200
    assert edited.json()["setupTime"] == 900
    assert edited.json()["netWorkTime"] == 2700

    rejected = client.patch(f"/orders/{order['id']}", json={"field": "id", "value": "x"})
    assert rejected.status_code == 422


@pytest.mark.parametrize("value", ["inf", "1e400", "nan"])
def test_non_finite_edit_is_rejected(client, value):
    order = client.post("/orders", json={"number": "E2"}).json()
    response = client.patch(
        f"/orders/{order['id']}", json={"field": "good_count", "value": value}
    )
    assert response.status_code == 422
    assert client.get(f"/orders/{order['id']}").json()["goodCount"] == 0


def test_setup_toggle_and_delete(client):
    order = client.post("/orders", json={"number": "S1"}).json()
    assert client.post(f"/orders/{order['id']}/setup").json()["phase"] == "Setup"
    assert client.delete(f"/orders/{order['id']}").json()["id"] == order["id"]
    assert client.get("/orders").json() == []


def test_collective_pause_endpoints(client, clock):
    first = client.post("/orders", json={"number": "A"}).json()
    second = client.post("/orders", json={"number": "B"}).json()
    paused = client.post("/orders/pause-all").json()["paused"]
    assert set(paused) == {first["id"], second["id"]}
    clock.advance(120)
    resumed = client.post("/orders/resume-all").json()["resumed"]
    assert set(resumed) == set(paused)
    assert client.get(f"/orders/{first['id']}").json()["pauseAccrued"] == 120


def test_reports(client, clock):
    order = client.post("/orders", json={"number": "R-17"}).json()
    clock.advance(600)
    client.post(f"/orders/{order['id']}/finish")

    days = client.get("/reports/days").json()
    assert list(days) == ["2026-03-02"]
    assert client.get("/reports/finished").json() == {"2026": 1}
    assert client.get("/reports/finished/2026").json() == {"3": 1}
    finished_days = client.get("/reports/finished/2026/3").json()
    assert [o["number"] for o in finished_days["2026-03-02"]] == ["R-17"]
    assert [o["number"] for o in client.get("/reports/search?q=r-1").json()] == ["R-17"]


def test_report_page_renders(client, clock):
    client.post("/orders", json={"number": "HTML-1"})
    done = client.post("/orders", json={"number": "HTML-2"}).json()
    clock.advance(60)
    client.post(f"/orders/{done['id']}/finish")
    response = client.get("/?year=2026&month=3")
    assert response.status_code == 200
    assert "HTML-1" in response.text
    assert "HTML-2" in response.text


def test_form_creates_order_and_redirects(client):
    response = client.post("/orders/new", data={"number": "F-1"}, follow_redirects=False)
    assert response.status_code == 303
    assert [o["number"] for o in client.get("/orders").json()] == ["F-1"]


def test_saved_numbers(client):
    assert client.post("/saved-numbers", json={"number": "A-1"}).json() == ["A-1"]
    assert client.post("/saved-numbers", json={"number": "a-1"}).json() == ["A-1"]
    assert client.delete("/saved-numbers/0").json() == []
    assert client.delete("/saved-numbers/0").status_code == 404


def test_companion_commands(client, transport):
    result = client.post("/sync/command", json={"action": "add", "number": "W-1"}).json()
    assert result["applied"] is True
    snapshot = client.get("/sync/snapshot").json()
    assert [entry["id"] for entry in snapshot] == [result["id"]]
    assert transport.last_snapshot == snapshot

    ignored = client.post("/sync/command", json={"action": "explode"}).json()
    assert ignored == {"applied": False, "id": None}
    ended = client.post("/sync/command", json={"action": "end", "id": result["id"]}).json()
    assert ended["applied"] is True
    assert client.get("/sync/snapshot").json() == []
