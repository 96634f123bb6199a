"""
Content processing utilities for Social Timeline
"""

import html
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


class ContentProcessor:
    """Turns backend payload fragments into the plain values the models use"""

    # Line breaks and paragraph boundaries survive tag stripping as newlines
    LINE_BREAK_PATTERN = re.compile(r"<br\s*/?>", re.IGNORECASE)
    PARAGRAPH_PATTERN = re.compile(r"</p>\s*<p[^>]*>", re.IGNORECASE)
    TAG_PATTERN = re.compile(r"<[^>]+>")

    BLUESKY_WEB_URL = "https://bsky.app"

    @staticmethod
    def html_to_text(content: Optional[str]) -> str:
        """Convert Mastodon status HTML into plain text

        Tags are stripped before entities are decoded, so an escaped
        `&lt;b&gt;` in the source stays visible as `<b>` in the output.
        """
        if not content:
            return ""

        text = ContentProcessor.LINE_BREAK_PATTERN.sub("\n", content)
        text = ContentProcessor.PARAGRAPH_PATTERN.sub("\n\n", text)
        text = ContentProcessor.TAG_PATTERN.sub("", text)
        return html.unescape(text).strip()

    @staticmethod
    def record_key(uri: str) -> str:
        """Last path segment of an at:// URI (the record key)"""
        return uri.rstrip("/").split("/")[-1] if uri else uri

    @staticmethod
    def bluesky_post_url(author_handle: str, uri: str) -> str:
        """Public web permalink for a Bluesky post"""
        return (
            f"{ContentProcessor.BLUESKY_WEB_URL}/profile/{author_handle}"
            f"/post/{ContentProcessor.record_key(uri)}"
        )

    @staticmethod
    def parse_datetime(value: Any) -> Optional[datetime]:
        """Parse an API timestamp into an aware datetime

        Mastodon.py already hands back datetimes; the AT Protocol SDK hands
        back ISO 8601 strings. Returns None for missing or unparseable values.
        """
        if value is None or value == "":
            return None

        if isinstance(value, datetime):
            parsed = value
        else:
            try:
                parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            except ValueError:
                logger.debug(f"Could not parse timestamp: {value!r}")
                return None

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
