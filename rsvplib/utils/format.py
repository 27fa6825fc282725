# utils/format.py
from datetime import datetime


def format_percent(current: int, total: int) -> str:
    if total <= 0:
        return "0.0%"
    return f"{min(100.0, max(0.0, current / total * 100)):.1f}%"


def format_date(timestamp_ms: int | None) -> str:
    if not timestamp_ms:
        return "Never"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d")


def format_duration(seconds: float) -> str:
    whole = max(0, round(seconds))
    h, rest = divmod(whole, 3600)
    m, s = divmod(rest, 60)
    if h > 0:
        return f"{h}h {m}m"
    return f"{m}m {s}s"
