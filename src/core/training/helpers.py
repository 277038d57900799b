"""
Small pure helpers for training data: video links and feedback keys.
"""

import logging
import math
import re
from datetime import datetime
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)

_WATCH_ID = re.compile(r"[?&]v=([^&]+)")
_SHORT_ID = re.compile(r"youtu\.be/([^?]+)")
_EMBED_ID = re.compile(r"/embed/([^?]+)")


def convert_youtube_url(url: Optional[str]) -> str:
    """
    Turn a YouTube watch/short link into its embeddable form.

    Already-embeddable links come back unchanged, as does anything that
    isn't recognizably YouTube.
    """
    if not url or not url.strip():
        return ""
    if "/embed/" in url:
        return url

    video_id = None
    for pattern in (_WATCH_ID, _SHORT_ID, _EMBED_ID):
        found = pattern.search(url)
        if found:
            video_id = found.group(1)

    if video_id:
        video_id = video_id.split("&")[0].split("?")[0]
        return f"https://www.youtube.com/embed/{video_id}"

    logger.warning("Could not convert YouTube URL", extra={"url": url})
    return url


def week_identifier(now: datetime) -> str:
    """
    Year-week label used to key weekly feedback, e.g. ``2024-7``.

    Week 1 is the one holding January 1st; weeks start on Sunday.
    """
    start_of_year = datetime(now.year, 1, 1, tzinfo=now.tzinfo)
    past_days = (now - start_of_year).total_seconds() / 86400
    # isoweekday(): Monday=1 .. Sunday=7; we want Sunday=0
    start_weekday = start_of_year.isoweekday() % 7
    week_number = math.ceil((past_days + start_weekday + 1) / 7)
    return f"{now.year}-{week_number}"


def day_of_week(now: datetime) -> str:
    return now.strftime("%A").lower()


def feedback_key(uid: str, workout_id: str, week: str, day: str) -> str:
    """One feedback per student, workout, week and day."""
    return f"{uid}_{workout_id}_{week}_{day}"


def newest_first(documents: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Sort by createdAt descending; documents without a timestamp go last."""
    documents = list(documents)
    stamped = [d for d in documents if d.get("createdAt") is not None]
    unstamped = [d for d in documents if d.get("createdAt") is None]
    stamped.sort(key=lambda d: d["createdAt"], reverse=True)
    return stamped + unstamped
