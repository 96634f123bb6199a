"""
Tests for Mastodon Client
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
from mastodon import MastodonAPIError, MastodonNetworkError

# Add the parent directory to sys.path to import src as a package
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.errors import DecodeError, ProtocolError, TransportError
from src.mastodon_client import MastodonClient
from src.models import MediaType, Network, Post


def make_status(status_id="101", **overrides):
    status = {
        "id": status_id,
        "account": {
            "username": "alice",
            "acct": "alice@mastodon.social",
            "display_name": "Alice",
            "avatar": "https://cdn/alice.png",
        },
        "content": "<p>Hello &amp; welcome</p>",
        "created_at": datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
        "url": f"https://mastodon.social/@alice/{status_id}",
        "favourites_count": 3,
        "reblogs_count": 2,
        "replies_count": 1,
        "favourited": True,
        "reblogged": False,
        "in_reply_to_id": None,
        "media_attachments": [],
        "reblog": None,
    }
    status.update(overrides)
    return status


class TestMastodonClient:
    """Test suite for MastodonClient class"""

    def setup_method(self):
        """Set up test fixtures"""
        self.mastodon_patcher = patch("src.mastodon_client.Mastodon")
        self.mock_mastodon_class = self.mastodon_patcher.start()
        self.mock_api = Mock()
        self.mock_mastodon_class.return_value = self.mock_api
        self.client = MastodonClient("https://mastodon.social/", "test-token")

    def teardown_method(self):
        self.mastodon_patcher.stop()

    def test_init(self):
        """Constructing the client configures Mastodon.py without network calls"""
        self.mock_mastodon_class.assert_called_once_with(
            access_token="test-token",
            api_base_url="https://mastodon.social",
            request_timeout=30,
            version_check_mode="none",
        )
        assert self.client.network is Network.MASTODON
        assert self.mock_api.method_calls == []

    def test_timeline_converts_statuses(self):
        self.mock_api.timeline_home.return_value = [make_status()]

        posts = self.client.timeline(limit=20)

        self.mock_api.timeline_home.assert_called_once_with(limit=20)
        assert len(posts) == 1
        post = posts[0]
        assert post.network_id == "101"
        assert post.network is Network.MASTODON
        assert post.author_handle == "alice@mastodon.social"
        assert post.author_name == "Alice"
        assert post.content == "Hello & welcome"
        assert post.content_raw == "<p>Hello &amp; welcome</p>"
        assert post.like_count == 3
        assert post.repost_count == 2
        assert post.reply_count == 1
        assert post.liked is True
        assert post.reposted is False
        assert post.reply_to_id is None
        assert post.cid is None and post.uri is None

    def test_timeline_handle_falls_back_to_username(self):
        status = make_status()
        status["account"]["acct"] = ""
        self.mock_api.timeline_home.return_value = [status]

        assert self.client.timeline()[0].author_handle == "alice"

    def test_boost_is_unwrapped(self):
        inner = make_status("202")
        outer = make_status(
            "303",
            account={"username": "bob", "display_name": "", "acct": "bob"},
            reblog=inner,
        )
        self.mock_api.timeline_home.return_value = [outer]

        post = self.client.timeline()[0]

        assert post.network_id == "202"
        assert post.author_name == "Alice"
        assert post.is_repost is True
        assert post.repost_author == "bob"

    def test_media_and_reply_mapping(self):
        status = make_status(
            in_reply_to_id=99,
            media_attachments=[
                {
                    "url": "https://cdn/a.mp4",
                    "preview_url": "https://cdn/a.jpg",
                    "type": "gifv",
                    "description": "a cat",
                },
                {"url": "https://cdn/b.bin", "type": "weird"},
            ],
        )
        self.mock_api.timeline_home.return_value = [status]

        post = self.client.timeline()[0]

        assert post.reply_to_id == "99"
        assert post.media[0].media_type is MediaType.GIFV
        assert post.media[0].alt_text == "a cat"
        assert post.media[1].media_type is MediaType.UNKNOWN

    def test_malformed_status_raises_decode_error(self):
        self.mock_api.timeline_home.return_value = [{"id": "1"}]

        with pytest.raises(DecodeError):
            self.client.timeline()

    def test_get_context_returns_descendants_only(self):
        self.mock_api.status_context.return_value = {
            "ancestors": [make_status("1")],
            "descendants": [make_status("3", in_reply_to_id="2")],
        }
        root = Post(network_id="2", network=Network.MASTODON)

        replies = self.client.get_context(root)

        self.mock_api.status_context.assert_called_once_with("2")
        assert [r.network_id for r in replies] == ["3"]
        assert replies[0].reply_to_id == "2"

    def test_post_and_reply(self):
        self.mock_api.status_post.return_value = make_status("500")

        created = self.client.post("hello")
        self.mock_api.status_post.assert_called_with(
            status="hello", in_reply_to_id=None, visibility="public"
        )
        assert created.network_id == "500"

        target = Post(network_id="42", network=Network.MASTODON)
        self.client.reply("hi back", target)
        self.mock_api.status_post.assert_called_with(
            status="hi back", in_reply_to_id="42", visibility="public"
        )

    def test_interactions_use_native_id(self):
        post = Post(network_id="42", network=Network.MASTODON)

        self.client.like(post)
        self.client.unlike(post)
        self.client.repost(post)
        self.client.unrepost(post)

        self.mock_api.status_favourite.assert_called_once_with("42")
        self.mock_api.status_unfavourite.assert_called_once_with("42")
        self.mock_api.status_reblog.assert_called_once_with("42")
        self.mock_api.status_unreblog.assert_called_once_with("42")

    def test_api_error_becomes_protocol_error(self):
        self.mock_api.status_favourite.side_effect = MastodonAPIError(
            "Mastodon API returned error", 404, "Not Found", "Record not found"
        )

        with pytest.raises(ProtocolError) as exc_info:
            self.client.like(Post(network_id="42", network=Network.MASTODON))

        assert exc_info.value.status_code == 404
        assert exc_info.value.error_text == "Record not found"
        assert "Failed to like post" in str(exc_info.value)

    def test_network_error_becomes_transport_error(self):
        self.mock_api.timeline_home.side_effect = MastodonNetworkError("timed out")

        with pytest.raises(TransportError, match="Failed to fetch timeline"):
            self.client.timeline()

    def test_verify_credentials(self):
        self.mock_api.account_verify_credentials.return_value = {
            "username": "alice",
            "display_name": "",
            "avatar": "https://cdn/alice.png",
        }

        account = self.client.verify_credentials()

        assert account.network is Network.MASTODON
        assert account.handle == "alice"
        assert account.server == "https://mastodon.social"
        assert account.display_name == "alice"
        assert account.avatar_url == "https://cdn/alice.png"
        assert account.is_default is False
