import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseModel):
    app_name: str = "Auftragszeiten"
    database_path: str = os.getenv("ORDER_TIMER_DB", "order_timer.sqlite3")
    log_level: str = os.getenv("ORDER_TIMER_LOG_LEVEL", "INFO")
    day_format: str = os.getenv("ORDER_TIMER_DAY_FORMAT", "%d.%m.%Y")
    new_number_prefix: str = os.getenv("ORDER_TIMER_NUMBER_PREFIX", "NEU")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)

