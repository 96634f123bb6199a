"""
Reply tree reconstruction for Social Timeline

Both backends hand back a conversation as a flat list of replies. This
module turns that list into a depth-annotated display order.
"""

import logging
from typing import List, NamedTuple, Sequence, Set

from .models import Post

logger = logging.getLogger(__name__)


class ReplyItem(NamedTuple):
    """A reply with its nesting depth (0 = direct reply to the root)"""

    post: Post
    depth: int


def _identifiers(post: Post) -> Set[str]:
    # A Bluesky reply points at its parent's at:// URI, a Mastodon reply at
    # the parent's status id, so both count as keys for the same node
    identifiers = {post.network_id}
    if post.uri:
        identifiers.add(post.uri)
    return identifiers


def _children(parent: Post, replies: Sequence[Post], emitted: Set[int]) -> List[int]:
    identifiers = _identifiers(parent)
    return [
        index
        for index, reply in enumerate(replies)
        if index not in emitted and reply.reply_to_id in identifiers
    ]


def build_reply_tree(root: Post, replies: Sequence[Post]) -> List[ReplyItem]:
    """Order `replies` below `root` for indented display

    The walk is pre-order: each reply is followed by its own replies before
    the next sibling, and siblings keep their order from the input list.
    Every reply is emitted at most once, so a malformed conversation that
    references itself still terminates.

    Args:
        root: The post whose conversation is shown
        replies: Flat reply list as returned by the backend

    Returns:
        ReplyItem list; replies not connected to the root are left out
    """
    result: List[ReplyItem] = []
    emitted: Set[int] = set()

    stack = [(index, 0) for index in reversed(_children(root, replies, emitted))]
    while stack:
        index, depth = stack.pop()
        if index in emitted:
            continue

        emitted.add(index)
        reply = replies[index]
        result.append(ReplyItem(reply, depth))

        for child in reversed(_children(reply, replies, emitted)):
            stack.append((child, depth + 1))

    if len(result) < len(replies):
        logger.debug(
            f"{len(replies) - len(result)} replies not connected to {root.network_id}"
        )
    return result
