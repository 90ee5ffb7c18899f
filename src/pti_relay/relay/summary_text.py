"""摘要消息格式化模块。

把 SubmissionSummary 渲染成一条 Markdown 文字消息。
"""

import re

from ..models.constants import MAX_BATCH_PHOTOS
from ..models.submission import AcquisitionMethod, Location, SubmissionSummary


_MARKDOWN_SPECIAL = re.compile(r"([_*`])")

TITLE = "*🚚 PTI - Pre-Trip Inspection*"
FOOTER = "_Generated by PTI form_"
MAP_URL = "https://maps.google.com/?q={lat},{lon}"


def escape_markdown(text: str) -> str:
    """转义用户输入中的 _ * ` 字符"""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", text)


def album_count(photo_count: int, per_album: int = MAX_BATCH_PHOTOS) -> int:
    return -(-photo_count // per_album)


def _method_suffix(method: AcquisitionMethod) -> str:
    if method is AcquisitionMethod.NONE:
        return ""
    return f" ({method.value})"


def _location_line(location: Location, method: AcquisitionMethod) -> str | None:
    suffix = _method_suffix(method)
    if location.has_coordinates:
        link = MAP_URL.format(lat=location.lat, lon=location.lon)
        accuracy = ""
        if location.accuracy_meters is not None:
            accuracy = f" ±{round(location.accuracy_meters)}m"
        return (
            f"*Location:* [Map]({link}) "
            f"`{location.lat:.5f}, {location.lon:.5f}{accuracy}`{suffix}"
        )
    if location.text:
        return f"*Location:* {escape_markdown(location.text)}{suffix}"
    return None


def build_summary_message(summary: SubmissionSummary) -> str:
    """渲染摘要消息"""
    driver = summary.driver
    unit = summary.unit
    lines = [
        TITLE,
        f"*Driver:* {escape_markdown(driver.first_name)} {escape_markdown(driver.last_name)}",
        f"*Unit:* `{escape_markdown(unit.truck)}` / `{escape_markdown(unit.trailer)}`",
        f"*Time:* {escape_markdown(summary.time.human)} `({summary.time.timezone})`",
    ]

    if summary.location is not None:
        line = _location_line(summary.location, summary.acquisition_method)
        if line:
            lines.append(line)

    if summary.comment:
        lines.append("*Comment:*")
        lines.append(f"> {escape_markdown(summary.comment)}")

    if summary.photo_count is not None:
        lines.append(
            f"*Photos:* {summary.photo_count} files in "
            f"{album_count(summary.photo_count)} album(s) ({MAX_BATCH_PHOTOS} per album)."
        )

    lines.append("----")
    lines.append(FOOTER)
    return "\n".join(lines)
