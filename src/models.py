"""
Unified post and account models for Social Timeline
"""

import re
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import PreconditionError


class Network(str, Enum):
    """Supported social networks"""

    MASTODON = "mastodon"
    BLUESKY = "bluesky"

    @classmethod
    def all(cls) -> List["Network"]:
        return [cls.MASTODON, cls.BLUESKY]

    @classmethod
    def from_str(cls, value: str) -> Optional["Network"]:
        """Parse a network name, accepting the short aliases"""
        aliases = {
            "mastodon": cls.MASTODON,
            "masto": cls.MASTODON,
            "bluesky": cls.BLUESKY,
            "bsky": cls.BLUESKY,
        }
        return aliases.get((value or "").strip().lower())

    @property
    def display_name(self) -> str:
        return "Mastodon" if self is Network.MASTODON else "Bluesky"

    @property
    def emoji(self) -> str:
        return "🐘" if self is Network.MASTODON else "🦋"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    GIFV = "gifv"
    AUDIO = "audio"
    UNKNOWN = "unknown"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "MediaType":
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass
class MediaAttachment:
    """A media attachment on a post"""

    url: str
    preview_url: Optional[str] = None
    media_type: MediaType = MediaType.UNKNOWN
    alt_text: Optional[str] = None


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class Post:
    """
    A post from either network, normalized into one shape.

    `cid` and `uri` are only set for Bluesky posts. Both are required to
    like or repost a Bluesky record, and the URI is the key Bluesky replies
    use to point at their parent.
    """

    network_id: str  # Network-native id (status id or record key)
    network: Network
    author_handle: str = ""
    author_name: str = ""
    author_avatar: Optional[str] = None
    content: str = ""  # Plain text, markup stripped
    content_raw: Optional[str] = None  # Original HTML for Mastodon
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    url: Optional[str] = None
    is_repost: bool = False
    repost_author: Optional[str] = None  # Display name of the reposting account
    like_count: int = 0
    repost_count: int = 0
    reply_count: int = 0
    liked: bool = False
    reposted: bool = False
    reply_to_id: Optional[str] = None  # Parent status id or parent at:// URI
    media: List[MediaAttachment] = field(default_factory=list)
    cid: Optional[str] = None
    uri: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        self.created_at = _ensure_aware(self.created_at)

    def require_record_ref(self, action: str) -> None:
        """Fail fast when a Bluesky post cannot be addressed for `action`"""
        if self.network is not Network.BLUESKY:
            return
        if not self.cid:
            raise PreconditionError(f"Post missing CID for {action}")
        if not self.uri:
            raise PreconditionError(f"Post missing URI for {action}")

    def preview(self, max_len: int = 80) -> str:
        """Single-line preview of the content"""
        content = self.content.replace("\n", " ")
        if len(content) <= max_len:
            return content
        return content[: max(max_len - 3, 0)] + "..."

    def relative_time(self, now: Optional[datetime] = None) -> str:
        now = _ensure_aware(now or datetime.now(timezone.utc))
        seconds = int((now - self.created_at).total_seconds())

        if seconds < 60:
            return f"{max(seconds, 0)}s"
        if seconds < 3600:
            return f"{seconds // 60}m"
        if seconds < 86400:
            return f"{seconds // 3600}h"
        if seconds < 7 * 86400:
            return f"{seconds // 86400}d"
        return self.created_at.strftime("%b %d")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["network"] = self.network.value
        data["created_at"] = self.created_at.isoformat()
        for media in data["media"]:
            media["media_type"] = MediaType(media["media_type"]).value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Post":
        values = dict(data)
        values["network"] = Network(values["network"])
        values["created_at"] = _parse_timestamp(values.get("created_at")) or datetime.now(
            timezone.utc
        )
        values["media"] = [
            MediaAttachment(
                url=m["url"],
                preview_url=m.get("preview_url"),
                media_type=MediaType.from_str(m.get("media_type")),
                alt_text=m.get("alt_text"),
            )
            for m in values.get("media") or []
        ]
        return cls(**values)


@dataclass
class Account:
    """A configured account on one network"""

    network: Network
    handle: str
    server: str = ""  # Mastodon instance URL or Bluesky PDS URL
    display_name: str = ""
    is_default: bool = False
    avatar_url: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_used_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def full_handle(self) -> str:
        """Handle including the instance domain for Mastodon"""
        if self.network is Network.MASTODON:
            if "@" in self.handle:
                return self.handle if self.handle.startswith("@") else f"@{self.handle}"
            domain = re.sub(r"^https?://", "", self.server).rstrip("/")
            return f"@{self.handle}@{domain}"
        return f"@{self.handle}"

    def secret_key(self) -> str:
        """Key under which the account's token or app password is stored"""
        handle = re.sub(r"[^A-Za-z0-9]+", "_", self.handle.lstrip("@")).strip("_")
        return f"SOCIAL_TIMELINE_{self.network.value}_{handle}".upper()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["network"] = self.network.value
        data["created_at"] = self.created_at.isoformat()
        data["last_used_at"] = (
            self.last_used_at.isoformat() if self.last_used_at else None
        )
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        values = dict(data)
        values["network"] = Network(values["network"])
        values["created_at"] = _parse_timestamp(values.get("created_at")) or datetime.now(
            timezone.utc
        )
        values["last_used_at"] = _parse_timestamp(values.get("last_used_at"))
        return cls(**values)


class ScheduledPostStatus(str, Enum):
    PENDING = "pending"
    POSTING = "posting"
    POSTED = "posted"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def emoji(self) -> str:
        return {
            ScheduledPostStatus.PENDING: "⏳",
            ScheduledPostStatus.POSTING: "📤",
            ScheduledPostStatus.POSTED: "✅",
            ScheduledPostStatus.FAILED: "❌",
            ScheduledPostStatus.CANCELLED: "🚫",
        }[self]


@dataclass
class ScheduledPost:
    """A post waiting to be published to `networks` at `scheduled_for`"""

    content: str
    networks: List[Network]
    scheduled_for: datetime
    status: ScheduledPostStatus = ScheduledPostStatus.PENDING
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        self.scheduled_for = _ensure_aware(self.scheduled_for)
        self.created_at = _ensure_aware(self.created_at)

    @property
    def short_id(self) -> str:
        return self.id[:8]

    def is_due(self, now: Optional[datetime] = None) -> bool:
        now = _ensure_aware(now or datetime.now(timezone.utc))
        return self.status is ScheduledPostStatus.PENDING and now >= self.scheduled_for

    def time_until(self, now: Optional[datetime] = None) -> str:
        """Human readable time left, e.g. "45s", "2h 5m", "3d 4h" or "now" """
        now = _ensure_aware(now or datetime.now(timezone.utc))
        seconds = int((self.scheduled_for - now).total_seconds())

        if seconds <= 0:
            return "now"
        if seconds < 60:
            return f"{seconds}s"
        if seconds < 3600:
            return f"{seconds // 60}m"
        if seconds < 86400:
            hours, minutes = seconds // 3600, (seconds % 3600) // 60
            return f"{hours}h {minutes}m" if minutes else f"{hours}h"
        days, hours = seconds // 86400, (seconds % 86400) // 3600
        return f"{days}d {hours}h" if hours else f"{days}d"

    def scheduled_time_display(self) -> str:
        return self.scheduled_for.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "networks": [network.value for network in self.networks],
            "scheduled_for": self.scheduled_for.isoformat(),
            "status": self.status.value,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduledPost":
        return cls(
            id=data["id"],
            content=data["content"],
            networks=[Network(value) for value in data.get("networks") or []],
            scheduled_for=_parse_timestamp(data["scheduled_for"]),
            status=ScheduledPostStatus(data.get("status") or "pending"),
            error=data.get("error"),
            created_at=_parse_timestamp(data.get("created_at"))
            or datetime.now(timezone.utc),
        )
