"""检查时间工具。"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from ..models.submission import TimeInfo


DEFAULT_TIMEZONE = "America/Chicago"


def inspection_time(
    now: datetime | None = None, tz_name: str = DEFAULT_TIMEZONE
) -> TimeInfo:
    """生成检查时间：本地可读时间、UTC ISO 时间戳和时区标识"""
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)

    local = moment.astimezone(ZoneInfo(tz_name))
    iso = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return TimeInfo(
        human=f"{local:%Y-%m-%d %H:%M:%S} {tz_name}",
        iso=iso.replace("+00:00", "Z"),
        timezone=tz_name,
    )
