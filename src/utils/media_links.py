import re
from typing import Optional

_YOUTUBE_ID = re.compile(r"^.*(youtu\.be/|v/|u/\w/|embed/|watch\?v=|&v=)([^#&?]*).*")


def extract_youtube_id(url: Optional[str]) -> str:
    """Return the 11-character video id of a YouTube link, or '' when there is none"""
    if not url:
        return ""
    match = _YOUTUBE_ID.match(url.strip())
    if match and len(match.group(2)) == 11:
        return match.group(2)
    return ""


def youtube_embed_url(video_id: str) -> str:
    return f"https://www.youtube.com/embed/{video_id}"
