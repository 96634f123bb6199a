"""
Mastodon client wrapper for Social Timeline
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from mastodon import Mastodon, MastodonAPIError, MastodonNetworkError

from .content_processor import ContentProcessor
from .errors import DecodeError, ProtocolError, TransportError
from .models import Account, MediaAttachment, MediaType, Network, Post
from .social_client import SocialClient

logger = logging.getLogger(__name__)


class MastodonClient(SocialClient):
    """Wrapper for the Mastodon API client

    Authentication is a long-lived bearer token, so constructing the client
    does not touch the network.
    """

    network = Network.MASTODON

    def __init__(self, api_base_url: str, access_token: str, request_timeout: int = 30):
        self.api_base_url = api_base_url.rstrip("/")
        self.access_token = access_token
        self.client = Mastodon(
            access_token=access_token,
            api_base_url=self.api_base_url,
            request_timeout=request_timeout,
            version_check_mode="none",
        )

    def _call(self, context: str, method: Callable[..., Any], *args, **kwargs) -> Any:
        """Invoke a Mastodon.py method, translating its failures"""
        try:
            return method(*args, **kwargs)
        except MastodonNetworkError as e:
            raise TransportError(f"{context}: {e}") from e
        except MastodonAPIError as e:
            status_code, error_text = self._describe_api_error(e)
            raise ProtocolError(
                f"{context}: Mastodon error {status_code}: {error_text}",
                status_code=status_code,
                error_text=error_text,
            ) from e

    @staticmethod
    def _describe_api_error(error: MastodonAPIError):
        # Mastodon.py raises with (message, status code, reason, error text)
        args = error.args
        status_code = args[1] if len(args) > 1 and isinstance(args[1], int) else None
        error_text = str(args[3]) if len(args) > 3 and args[3] else str(error)
        return status_code, error_text

    def timeline(self, limit: int = 50) -> List[Post]:
        statuses = self._call(
            "Failed to fetch timeline", self.client.timeline_home, limit=limit
        )
        posts = [self._status_to_post(status) for status in statuses or []]
        logger.info(f"Retrieved {len(posts)} posts from Mastodon home timeline")
        return posts

    def get_context(self, post: Post) -> List[Post]:
        context = self._call(
            "Failed to fetch context", self.client.status_context, post.network_id
        )
        try:
            descendants = context["descendants"]
        except (KeyError, TypeError) as e:
            raise DecodeError(f"Failed to parse context response: {e}") from e

        # Ancestors are dropped, only the conversation below the post is shown
        return [self._status_to_post(status) for status in descendants]

    def post(self, content: str) -> Post:
        return self._publish(content, in_reply_to_id=None)

    def reply(self, content: str, target: Post) -> Post:
        return self._publish(content, in_reply_to_id=target.network_id)

    def _publish(self, content: str, in_reply_to_id: Optional[str]) -> Post:
        action = "reply" if in_reply_to_id else "status"
        status = self._call(
            f"Failed to post {action}",
            self.client.status_post,
            status=content,
            in_reply_to_id=in_reply_to_id,
            visibility="public",
        )
        post = self._status_to_post(status)
        logger.info(f"Successfully posted {action} to Mastodon: {post.network_id}")
        return post

    def like(self, post: Post) -> None:
        self._call("Failed to like post", self.client.status_favourite, post.network_id)

    def unlike(self, post: Post) -> None:
        self._call(
            "Failed to unlike post", self.client.status_unfavourite, post.network_id
        )

    def repost(self, post: Post) -> None:
        self._call("Failed to repost", self.client.status_reblog, post.network_id)

    def unrepost(self, post: Post) -> None:
        self._call("Failed to unrepost", self.client.status_unreblog, post.network_id)

    def verify_credentials(self) -> Account:
        account = self._call(
            "Failed to verify credentials", self.client.account_verify_credentials
        )
        try:
            verified = Account(
                network=Network.MASTODON,
                handle=account["username"],
                server=self.api_base_url,
                display_name=account.get("display_name") or account["username"],
                avatar_url=account.get("avatar"),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise DecodeError(f"Failed to parse account response: {e}") from e

        logger.info(f"Successfully connected to Mastodon as @{verified.handle}")
        return verified

    def _status_to_post(self, status: Dict[str, Any]) -> Post:
        """Convert a Mastodon status into a unified Post

        A boost is unwrapped: the inner status becomes the post and the
        boosting account's display name is kept as `repost_author`.
        """
        try:
            reblog = status.get("reblog")
            if reblog:
                post = self._status_to_post(reblog)
                booster = status["account"]
                post.is_repost = True
                post.repost_author = booster.get("display_name") or booster["username"]
                return post

            account = status["account"]
            raw_content = status.get("content") or ""
            in_reply_to_id = status.get("in_reply_to_id")

            return Post(
                network_id=str(status["id"]),
                network=Network.MASTODON,
                author_handle=account.get("acct") or account["username"],
                author_name=account.get("display_name") or "",
                author_avatar=account.get("avatar"),
                content=ContentProcessor.html_to_text(raw_content),
                content_raw=raw_content,
                created_at=ContentProcessor.parse_datetime(status.get("created_at"))
                or datetime.now(timezone.utc),
                url=status.get("url"),
                like_count=status.get("favourites_count") or 0,
                repost_count=status.get("reblogs_count") or 0,
                reply_count=status.get("replies_count") or 0,
                liked=bool(status.get("favourited")),
                reposted=bool(status.get("reblogged")),
                reply_to_id=str(in_reply_to_id) if in_reply_to_id else None,
                media=[
                    MediaAttachment(
                        url=media["url"],
                        preview_url=media.get("preview_url"),
                        media_type=MediaType.from_str(media.get("type")),
                        alt_text=media.get("description"),
                    )
                    for media in status.get("media_attachments") or []
                ],
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise DecodeError(f"Failed to parse Mastodon status: {e}") from e
