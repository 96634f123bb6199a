"""
Bluesky client wrapper for Social Timeline
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from atproto import Client as AtprotoClient
from atproto_client.exceptions import (
    AtProtocolError,
    InvokeTimeoutError,
    ModelError,
    NetworkError,
    RequestErrorBase,
)

from .content_processor import ContentProcessor
from .errors import DecodeError, PreconditionError, ProtocolError, TransportError
from .models import Account, MediaAttachment, MediaType, Network, Post
from .social_client import SocialClient

logger = logging.getLogger(__name__)

DEFAULT_PDS_URL = "https://bsky.social"


def _field(obj: Any, name: str) -> Any:
    """Read a field from an SDK model or a plain dict record value"""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class BlueskyClient(SocialClient):
    """Wrapper for the Bluesky AT Protocol client

    Writes go through the generic repository record endpoints
    (createRecord / listRecords / deleteRecord) scoped to the session DID.
    """

    network = Network.BLUESKY

    POST_COLLECTION = "app.bsky.feed.post"
    LIKE_COLLECTION = "app.bsky.feed.like"
    REPOST_COLLECTION = "app.bsky.feed.repost"
    REPOST_REASON = "app.bsky.feed.defs#reasonRepost"
    LIST_RECORDS_PAGE_SIZE = 100

    def __init__(self, pds_url: str = DEFAULT_PDS_URL):
        self.pds_url = (pds_url or DEFAULT_PDS_URL).rstrip("/")
        self.client = AtprotoClient(base_url=f"{self.pds_url}/xrpc")
        self.did: Optional[str] = None
        self.handle: Optional[str] = None

    @classmethod
    def login(
        cls, handle: str, app_password: str, pds_url: str = DEFAULT_PDS_URL
    ) -> "BlueskyClient":
        """Create a client with a fresh session for `handle`"""
        bluesky = cls(pds_url)
        bluesky.authenticate(handle, app_password)
        return bluesky

    def authenticate(self, handle: str, app_password: str) -> None:
        """Exchange handle + app password for a session and the account DID"""
        profile = self._call("Bluesky login failed", self.client.login, handle, app_password)
        did = _field(profile, "did")
        if not did:
            raise DecodeError("Bluesky login failed: session carried no DID")

        self.did = str(did)
        self.handle = _field(profile, "handle") or handle
        logger.info(f"Successfully authenticated with Bluesky as @{self.handle}")

    def _require_session(self) -> str:
        if not self.did:
            raise PreconditionError("Client not authenticated. Call authenticate() first.")
        return self.did

    def _call(self, context: str, method: Callable[..., Any], *args, **kwargs) -> Any:
        """Invoke an SDK method, translating its failures"""
        try:
            return method(*args, **kwargs)
        except (NetworkError, InvokeTimeoutError) as e:
            raise TransportError(f"{context}: {str(e) or type(e).__name__}") from e
        except ModelError as e:
            raise DecodeError(f"{context}: {e}") from e
        except RequestErrorBase as e:
            status_code, error_text = self._describe_request_error(e)
            raise ProtocolError(
                f"{context}: {error_text}", status_code=status_code, error_text=error_text
            ) from e
        except AtProtocolError as e:
            raise ProtocolError(f"{context}: {str(e) or type(e).__name__}") from e

    @staticmethod
    def _describe_request_error(error: RequestErrorBase):
        response = getattr(error, "response", None)
        status_code = getattr(response, "status_code", None)
        content = getattr(response, "content", None)

        error_text = None
        if isinstance(content, (str, bytes)):
            error_text = content.decode() if isinstance(content, bytes) else content
        elif content is not None:
            error_text = _field(content, "message") or _field(content, "error")

        if not error_text:
            error_text = str(error) or type(error).__name__
        return status_code, error_text

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    # ---------------- Reads ----------------

    def timeline(self, limit: int = 50) -> List[Post]:
        response = self._call(
            "Failed to fetch timeline", self.client.get_timeline, limit=limit
        )
        feed = _field(response, "feed") or []
        posts = [self._feed_item_to_post(item) for item in feed]
        logger.info(f"Retrieved {len(posts)} posts from Bluesky timeline")
        return posts

    def get_context(self, post: Post) -> List[Post]:
        if not post.uri:
            raise PreconditionError("Post missing URI for context")

        response = self._call(
            "Failed to fetch context", self.client.get_post_thread, uri=post.uri
        )
        replies: List[Post] = []
        self._flatten_replies(_field(response, "thread"), replies)
        logger.debug(f"Flattened {len(replies)} replies for {post.uri}")
        return replies

    def _flatten_replies(self, node: Any, out: List[Post]) -> None:
        """Collect the nested thread replies below `node` in pre-order

        Each reply keeps its parent's at:// URI in `reply_to_id`, which is
        what the reply tree builder matches on. Deleted or blocked entries
        carry no post view and are skipped.
        """
        for child in _field(node, "replies") or []:
            view = _field(child, "post")
            if view is None:
                continue
            out.append(self._post_view_to_post(view))
            self._flatten_replies(child, out)

    def _feed_item_to_post(self, item: Any) -> Post:
        post = self._post_view_to_post(_field(item, "post"))

        reason = _field(item, "reason")
        if reason is not None and _field(reason, "py_type") == self.REPOST_REASON:
            reposter = _field(reason, "by")
            post.is_repost = True
            post.repost_author = _field(reposter, "display_name") or _field(
                reposter, "handle"
            )
        return post

    def _post_view_to_post(self, view: Any) -> Post:
        try:
            uri = view.uri
            author = view.author
            record = view.record

            created_at = (
                ContentProcessor.parse_datetime(_field(record, "created_at"))
                or ContentProcessor.parse_datetime(_field(view, "indexed_at"))
                or datetime.now(timezone.utc)
            )

            reply = _field(record, "reply")
            parent = _field(reply, "parent")
            viewer = _field(view, "viewer")

            return Post(
                network_id=ContentProcessor.record_key(uri),
                network=Network.BLUESKY,
                author_handle=author.handle,
                author_name=_field(author, "display_name") or "",
                author_avatar=_field(author, "avatar"),
                content=_field(record, "text") or "",
                created_at=created_at,
                url=ContentProcessor.bluesky_post_url(author.handle, uri),
                like_count=_field(view, "like_count") or 0,
                repost_count=_field(view, "repost_count") or 0,
                reply_count=_field(view, "reply_count") or 0,
                liked=bool(_field(viewer, "like")),
                reposted=bool(_field(viewer, "repost")),
                reply_to_id=_field(parent, "uri"),
                media=self._extract_media(_field(view, "embed")),
                cid=view.cid,
                uri=uri,
            )
        except AttributeError as e:
            raise DecodeError(f"Failed to parse Bluesky post: {e}") from e

    @staticmethod
    def _extract_media(embed: Any) -> List[MediaAttachment]:
        """Image attachments from an embed view

        Images can be attached directly or nested in recordWithMedia
        (a quoted post with images).
        """
        if embed is None:
            return []

        images = _field(embed, "images") or _field(_field(embed, "media"), "images") or []
        return [
            MediaAttachment(
                url=_field(image, "fullsize"),
                preview_url=_field(image, "thumb"),
                media_type=MediaType.IMAGE,
                alt_text=_field(image, "alt") or None,
            )
            for image in images
            if _field(image, "fullsize")
        ]

    # ---------------- Writes ----------------

    def _create_record(self, context: str, collection: str, record: Dict[str, Any]):
        """Create a repository record and return its (uri, cid)"""
        did = self._require_session()
        response = self._call(
            context,
            self.client.com.atproto.repo.create_record,
            {"repo": did, "collection": collection, "record": record},
        )
        uri, cid = _field(response, "uri"), _field(response, "cid")
        if not uri or not cid:
            raise DecodeError(f"{context}: response carried no record reference")

        logger.debug(f"Created {collection} record {uri} ({cid})")
        return uri, cid

    def post(self, content: str) -> Post:
        return self._publish(content, reply_ref=None)

    def reply(self, content: str, target: Post) -> Post:
        target.require_record_ref("reply")
        reply_ref = {
            "root": self._thread_root(target),
            "parent": {"uri": target.uri, "cid": target.cid},
        }
        return self._publish(content, reply_ref=reply_ref, parent_uri=target.uri)

    def _thread_root(self, target: Post) -> Dict[str, str]:
        """Strong ref to the root of the thread `target` belongs to"""
        response = self._call(
            "Failed to look up reply target", self.client.get_posts, [target.uri]
        )
        views = _field(response, "posts") or []
        root = _field(_field(_field(views[0], "record"), "reply"), "root") if views else None

        if root is not None and _field(root, "uri") and _field(root, "cid"):
            return {"uri": _field(root, "uri"), "cid": _field(root, "cid")}
        return {"uri": target.uri, "cid": target.cid}

    def _publish(
        self,
        content: str,
        reply_ref: Optional[Dict[str, Any]],
        parent_uri: Optional[str] = None,
    ) -> Post:
        record: Dict[str, Any] = {
            "$type": self.POST_COLLECTION,
            "text": content,
            "createdAt": self._now(),
        }
        if reply_ref:
            record["reply"] = reply_ref

        action = "reply" if reply_ref else "post"
        uri, cid = self._create_record(f"Failed to {action}", self.POST_COLLECTION, record)
        logger.info(f"Successfully posted {action} to Bluesky: {uri}")

        return Post(
            network_id=ContentProcessor.record_key(uri),
            network=Network.BLUESKY,
            author_handle=self.handle or self.did or "",
            content=content,
            url=ContentProcessor.bluesky_post_url(self.handle or self.did or "", uri),
            reply_to_id=parent_uri,
            cid=cid,
            uri=uri,
        )

    def like(self, post: Post) -> None:
        self._create_subject_record("like", self.LIKE_COLLECTION, post)

    def repost(self, post: Post) -> None:
        self._create_subject_record("repost", self.REPOST_COLLECTION, post)

    def unlike(self, post: Post) -> None:
        self._delete_subject_record("unlike", self.LIKE_COLLECTION, post)

    def unrepost(self, post: Post) -> None:
        self._delete_subject_record("unrepost", self.REPOST_COLLECTION, post)

    def _create_subject_record(self, action: str, collection: str, post: Post) -> None:
        post.require_record_ref(action)
        record = {
            "$type": collection,
            "subject": {"uri": post.uri, "cid": post.cid},
            "createdAt": self._now(),
        }
        self._create_record(f"Failed to {action} post", collection, record)
        logger.info(f"Bluesky {action} recorded for {post.uri}")

    def _delete_subject_record(self, action: str, collection: str, post: Post) -> None:
        """Delete the viewer's own record in `collection` pointing at `post`

        There is no direct undo endpoint: the viewer's records are listed,
        the one whose subject is the post is located, and it is deleted by
        its record key. No matching record means the action is already undone.
        """
        post.require_record_ref(action)
        did = self._require_session()

        cursor = None
        while True:
            params: Dict[str, Any] = {
                "repo": did,
                "collection": collection,
                "limit": self.LIST_RECORDS_PAGE_SIZE,
            }
            if cursor:
                params["cursor"] = cursor

            response = self._call(
                f"Failed to list {collection} records",
                self.client.com.atproto.repo.list_records,
                params,
            )
            records = _field(response, "records") or []

            for record in records:
                subject = _field(_field(record, "value"), "subject")
                if _field(subject, "uri") != post.uri:
                    continue

                rkey = ContentProcessor.record_key(_field(record, "uri") or "")
                if not rkey:
                    raise DecodeError(f"Failed to {action}: invalid record URI")

                self._call(
                    f"Failed to {action}",
                    self.client.com.atproto.repo.delete_record,
                    {"repo": did, "collection": collection, "rkey": rkey},
                )
                logger.info(f"Bluesky {action} removed record {rkey} for {post.uri}")
                return

            cursor = _field(response, "cursor")
            if not records or not cursor:
                break

        logger.info(f"No {collection} record found for {post.uri}; nothing to {action}")

    def verify_credentials(self) -> Account:
        did = self._require_session()
        profile = self._call("Failed to get profile", self.client.get_profile, did)
        try:
            handle = profile.handle
            return Account(
                network=Network.BLUESKY,
                handle=handle,
                server=self.pds_url,
                display_name=_field(profile, "display_name") or handle,
                avatar_url=_field(profile, "avatar"),
            )
        except AttributeError as e:
            raise DecodeError(f"Failed to parse profile response: {e}") from e
