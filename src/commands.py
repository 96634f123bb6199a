"""
Commands consumed by the sync worker and the results it emits

Commands are built by the presentation layer; results are built by the
worker. Each value is consumed exactly once on the other side of a queue.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from .models import Account, Network, Post
from .reply_tree import ReplyItem

# ---------------- Commands ----------------


@dataclass
class RefreshTimeline:
    """Fetch and merge the home timelines of `accounts`"""

    accounts: List[Account]


@dataclass
class FetchContext:
    """Fetch the replies below `post` using `account`"""

    post: Post
    account: Account


@dataclass
class Like:
    post: Post
    account: Account


@dataclass
class Unlike:
    post: Post
    account: Account


@dataclass
class Repost:
    post: Post
    account: Account


@dataclass
class Unrepost:
    post: Post
    account: Account


@dataclass
class SubmitPost:
    """Publish `content` from each of `accounts`

    When `reply_to` is set, accounts on the same network as the target
    publish a reply; the others publish a plain post.
    """

    content: str
    accounts: List[Account]
    reply_to: Optional[Post] = None


@dataclass
class SchedulePost:
    """Store `content` for publishing to `networks` at `scheduled_for`"""

    content: str
    networks: List[Network]
    scheduled_for: datetime


@dataclass
class Shutdown:
    """Stop the worker after the command in progress"""

    pass


PostAction = Union[Like, Unlike, Repost, Unrepost]
Command = Union[
    RefreshTimeline,
    FetchContext,
    Like,
    Unlike,
    Repost,
    Unrepost,
    SubmitPost,
    SchedulePost,
    Shutdown,
]

# ---------------- Results ----------------


@dataclass
class TimelineRefreshed:
    posts: List[Post] = field(default_factory=list)


@dataclass
class ContextFetched:
    post_id: str
    replies: List[ReplyItem] = field(default_factory=list)


@dataclass
class Liked:
    post_id: str


@dataclass
class Unliked:
    post_id: str


@dataclass
class Reposted:
    post_id: str


@dataclass
class Unreposted:
    post_id: str


@dataclass
class Posted:
    posts: List[Post] = field(default_factory=list)


@dataclass
class Scheduled:
    """A post was stored; `scheduled_for` is already formatted for display"""

    id: str
    scheduled_for: str


@dataclass
class ErrorMessage:
    message: str


@dataclass
class StatusMessage:
    message: str


Result = Union[
    TimelineRefreshed,
    ContextFetched,
    Liked,
    Unliked,
    Reposted,
    Unreposted,
    Posted,
    Scheduled,
    ErrorMessage,
    StatusMessage,
]
