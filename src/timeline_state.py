"""
Presentation state for Social Timeline

Holds what the interactive side shows and folds worker results into it.
Nothing here touches the network.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .commands import (
    ContextFetched,
    ErrorMessage,
    Liked,
    Posted,
    Reposted,
    Result,
    Scheduled,
    StatusMessage,
    TimelineRefreshed,
    Unliked,
    Unreposted,
)
from .models import Post
from .reply_tree import ReplyItem

logger = logging.getLogger(__name__)

# result type -> (flag attribute, counter attribute, new value, status)
INTERACTIONS = {
    Liked: ("liked", "like_count", True, "❤️ Liked!"),
    Unliked: ("liked", "like_count", False, "💔 Unliked"),
    Reposted: ("reposted", "repost_count", True, "🔁 Reposted!"),
    Unreposted: ("reposted", "repost_count", False, "↩️ Unreposted"),
}


@dataclass
class TimelineState:
    posts: List[Post] = field(default_factory=list)
    replies: List[ReplyItem] = field(default_factory=list)
    selected_post_id: Optional[str] = None
    status: str = ""
    loading: bool = False

    def selected_post(self) -> Optional[Post]:
        for post in self.posts:
            if post.network_id == self.selected_post_id:
                return post
        return None

    def select(self, post: Optional[Post]):
        """Select a post, dropping the replies of the previous selection"""
        new_id = post.network_id if post is not None else None
        if new_id != self.selected_post_id:
            self.replies = []
        self.selected_post_id = new_id

    def _matching_posts(self, post_id: str) -> List[Post]:
        matches = [post for post in self.posts if post.network_id == post_id]
        matches.extend(
            item.post for item in self.replies if item.post.network_id == post_id
        )
        return matches

    def _set_flag(self, post_id: str, attribute: str, counter: str, value: bool):
        updated = None
        for post in self._matching_posts(post_id):
            if getattr(post, attribute) != value:
                delta = 1 if value else -1
                setattr(post, counter, max(getattr(post, counter) + delta, 0))
            setattr(post, attribute, value)
            updated = updated or post
        return updated

    def apply(self, result: Result) -> Optional[Post]:
        """Fold a worker result into the state

        Returns:
            The updated post for like/repost results, otherwise None
        """
        if isinstance(result, TimelineRefreshed):
            self.posts = list(result.posts)
            self.loading = False
            self.status = f"Loaded {len(self.posts)} posts"
            return None

        if isinstance(result, ContextFetched):
            # A late conversation for a post no longer selected is ignored
            if result.post_id == self.selected_post_id:
                self.replies = list(result.replies)
            else:
                logger.debug(f"Ignoring context for unselected post {result.post_id}")
            return None

        if type(result) in INTERACTIONS:
            attribute, counter, value, status = INTERACTIONS[type(result)]
            updated = self._set_flag(result.post_id, attribute, counter, value)
            self.status = status
            return updated

        if isinstance(result, Posted):
            self.loading = False
            self.status = f"Posted to {len(result.posts)} accounts"
        elif isinstance(result, Scheduled):
            self.loading = False
            self.status = f"📅 Scheduled [{result.id}] for {result.scheduled_for}"
        elif isinstance(result, ErrorMessage):
            self.loading = False
            self.status = f"Error: {result.message}"
        elif isinstance(result, StatusMessage):
            self.status = result.message
        return None
