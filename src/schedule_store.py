"""
Scheduled post storage for Social Timeline
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .models import ScheduledPost, ScheduledPostStatus

logger = logging.getLogger(__name__)


class ScheduleStore:
    """Keeps scheduled posts in a JSON file"""

    def __init__(self, schedule_file: str = "scheduled_posts.json"):
        self.schedule_file = Path(schedule_file)
        self.posts = self._load_posts()

    def _load_posts(self) -> List[ScheduledPost]:
        """Load scheduled posts from file"""
        if not self.schedule_file.exists():
            return []

        try:
            with open(self.schedule_file, "r") as f:
                data = json.load(f)
        except Exception as e:
            logger.error(f"Failed to load schedule file: {e}")
            return []

        if not isinstance(data, dict):
            logger.error(f"Unexpected content in {self.schedule_file}, ignoring it")
            return []

        posts = []
        for record in data.get("scheduled_posts", []):
            try:
                posts.append(ScheduledPost.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid scheduled post record: {e}")
        return posts

    def _save_posts(self):
        """Save scheduled posts to file

        Unlike the account registry, a failed write is raised so a post is
        never reported as scheduled when it was not stored.
        """
        data = {"scheduled_posts": [post.to_dict() for post in self.posts]}
        try:
            with open(self.schedule_file, "w") as f:
                json.dump(data, f, indent=2, default=str)
        except OSError as e:
            logger.error(f"Failed to save schedule file: {e}")
            raise
        logger.debug(f"Scheduled posts saved to {self.schedule_file}")

    def save_scheduled_post(self, post: ScheduledPost):
        """Add a scheduled post, replacing one with the same id"""
        self.posts = [p for p in self.posts if p.id != post.id]
        self.posts.append(post)
        self._save_posts()
        logger.info(f"Scheduled post {post.short_id} for {post.scheduled_time_display()}")

    def get_scheduled_post(self, post_id: str) -> Optional[ScheduledPost]:
        """Find a scheduled post by its full id or an id prefix"""
        matches = [p for p in self.posts if p.id.startswith(post_id)] if post_id else []
        return matches[0] if len(matches) == 1 else None

    def get_scheduled_posts(self) -> List[ScheduledPost]:
        """All scheduled posts, soonest first"""
        return sorted(self.posts, key=lambda post: post.scheduled_for)

    def get_pending_scheduled_posts(self) -> List[ScheduledPost]:
        return [
            post
            for post in self.get_scheduled_posts()
            if post.status is ScheduledPostStatus.PENDING
        ]

    def get_due_scheduled_posts(
        self, now: Optional[datetime] = None
    ) -> List[ScheduledPost]:
        """Pending posts whose time has come, soonest first"""
        now = now or datetime.now(timezone.utc)
        return [post for post in self.get_scheduled_posts() if post.is_due(now)]

    def update_scheduled_post_status(
        self, post_id: str, status: ScheduledPostStatus, error: Optional[str] = None
    ) -> bool:
        post = self.get_scheduled_post(post_id)
        if post is None:
            return False

        post.status = status
        post.error = error
        self._save_posts()
        return True

    def cancel_scheduled_post(self, post_id: str) -> bool:
        return self.update_scheduled_post_status(post_id, ScheduledPostStatus.CANCELLED)

    def delete_scheduled_post(self, post_id: str) -> bool:
        post = self.get_scheduled_post(post_id)
        if post is None:
            return False

        self.posts = [p for p in self.posts if p.id != post.id]
        self._save_posts()
        return True
