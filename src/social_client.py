"""
Common interface implemented by the Mastodon and Bluesky adapters
"""

from abc import ABC, abstractmethod
from typing import List

from .models import Account, Network, Post


class SocialClient(ABC):
    """
    Base class for the network adapters.

    Exactly two implementations exist, `MastodonClient` and `BlueskyClient`.
    Each one is responsible for:
        1. Talking to its backend's wire protocol
        2. Converting responses into unified `Post` / `Account` objects
        3. Translating library failures into `src.errors` types

    Attributes:
        network: The network this adapter services
    """

    network: Network

    @abstractmethod
    def timeline(self, limit: int) -> List[Post]:
        """Fetch the home timeline, newest first as returned by the backend"""

    @abstractmethod
    def get_context(self, post: Post) -> List[Post]:
        """Fetch the replies below `post` as a flat list"""

    @abstractmethod
    def post(self, content: str) -> Post:
        """Publish a new top-level post"""

    @abstractmethod
    def reply(self, content: str, target: Post) -> Post:
        """Publish a reply to `target`"""

    @abstractmethod
    def like(self, post: Post) -> None:
        pass

    @abstractmethod
    def unlike(self, post: Post) -> None:
        pass

    @abstractmethod
    def repost(self, post: Post) -> None:
        pass

    @abstractmethod
    def unrepost(self, post: Post) -> None:
        pass

    @abstractmethod
    def verify_credentials(self) -> Account:
        """Return the authenticated account as the backend describes it"""
