import time
from datetime import datetime
from typing import Optional


def now() -> float:
    return time.time()


def human_time(dt: Optional[datetime]) -> str:
    """
    Convert datetime to human-readable string.
    """
    if not dt:
        return "—"
    return dt.strftime("%d.%m.%Y %H:%M:%S")


def human_timestamp(ts: Optional[float]) -> str:
    if not ts:
        return human_time(None)
    return human_time(datetime.fromtimestamp(ts))
