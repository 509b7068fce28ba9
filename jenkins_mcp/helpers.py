"""Small pure helpers shared by the tool handlers."""

from __future__ import annotations

import os
import re
from datetime import datetime, timedelta
from urllib.parse import quote

from jenkins_mcp.errors import InputValidationError

_QUEUE_ITEM_RE = re.compile(r"queue/item/(\d+)")
_CLOCK_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*(AM|PM)?$", re.IGNORECASE)
_RELATIVE_TIME_RE = re.compile(
    r"^in\s+(\d+)\s*(s|sec|secs|seconds?|m|min|mins|minutes?|h|hr|hrs|hours?)$",
    re.IGNORECASE,
)

_MIME_TYPES = {
    ".json": "application/json",
    ".xml": "application/xml",
    ".html": "text/html",
    ".txt": "text/plain",
    ".log": "text/plain",
    ".csv": "text/csv",
    ".jar": "application/java-archive",
    ".war": "application/java-archive",
    ".zip": "application/zip",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
}


def encode_job_path(job_full_name: str) -> str:
    """Encode a slash-separated job name for use after the first '/job/'.

    Each segment is URL-encoded on its own so spaces, '#', '%', etc. survive.
    'folder/sub job' -> 'folder/job/sub%20job'
    """
    return "/job/".join(quote(seg, safe="") for seg in job_full_name.split("/"))


def job_path(job_full_name: str) -> str:
    """'org/repo/main' -> '/job/org/job/repo/job/main'"""
    return "/job/" + encode_job_path(job_full_name)


def encode_artifact_path(artifact_path: str) -> str:
    return "/".join(quote(seg, safe="") for seg in artifact_path.strip("/").split("/"))


def build_ref(build_number: int | None) -> str:
    """Path segment for a build; omitted numbers mean the most recent build."""
    return str(build_number) if build_number else "lastBuild"


def extract_queue_id(location: str | None) -> str | None:
    """Pull the queue item id out of a Location header, e.g. '.../queue/item/42/'."""
    if not location:
        return None
    match = _QUEUE_ITEM_RE.search(location)
    return match.group(1) if match else None


def get_mime_type(filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    return _MIME_TYPES.get(ext, "application/octet-stream")


def parse_schedule_time(schedule_time: str, now: datetime | None = None) -> datetime:
    """
    Parse a human schedule into a timezone-aware datetime in the future.

    Accepted forms:
      '22:15' / '10:30 PM'  today at that time, or tomorrow if already past
      'in 5 minutes'        relative offsets in seconds, minutes or hours
      '2024-12-20 15:30'    any ISO-8601 date-time (local time if no offset)
    """
    now = now or datetime.now().astimezone()
    if not isinstance(schedule_time, str) or not schedule_time.strip():
        raise InputValidationError(
            "Invalid schedule time format. Use '22:15', '10:30 PM', "
            "'in 5 minutes' or a full date string."
        )
    text = schedule_time.strip()

    clock = _CLOCK_TIME_RE.match(text)
    relative = _RELATIVE_TIME_RE.match(text)
    if clock:
        hours, minutes = int(clock.group(1)), int(clock.group(2))
        period = (clock.group(3) or "").upper()
        if period == "PM" and hours < 12:
            hours += 12
        elif period == "AM" and hours == 12:
            hours = 0
        if hours > 23 or minutes > 59:
            raise InputValidationError(f"Could not parse the schedule time '{text}'")
        scheduled = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
        if scheduled <= now:
            scheduled += timedelta(days=1)
    elif relative:
        amount = int(relative.group(1))
        unit = relative.group(2).lower()[0]
        seconds = {"s": 1, "m": 60, "h": 3600}[unit] * amount
        scheduled = now + timedelta(seconds=seconds)
    else:
        try:
            scheduled = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise InputValidationError(f"Could not parse the schedule time '{text}'") from None
        if scheduled.tzinfo is None:
            scheduled = scheduled.astimezone()

    if scheduled <= now:
        raise InputValidationError("Scheduled time must be in the future")
    return scheduled
