"""
Tests for the Sync Orchestrator worker
"""

import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

# Add the parent directory to sys.path to import src as a package
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.commands import (
    ContextFetched,
    ErrorMessage,
    FetchContext,
    Like,
    Liked,
    Posted,
    RefreshTimeline,
    Repost,
    Reposted,
    Scheduled,
    SchedulePost,
    Shutdown,
    StatusMessage,
    SubmitPost,
    TimelineRefreshed,
    Unlike,
    Unliked,
    Unrepost,
    Unreposted,
)
from src.config import Settings
from src.errors import CredentialError, ProtocolError, TransportError
from src.models import Account, Network, Post, ScheduledPostStatus
from src.schedule_store import ScheduleStore
from src.sync_orchestrator import SyncOrchestrator

BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_post(network_id, network=Network.MASTODON, minutes=0, **kwargs):
    return Post(
        network_id=network_id,
        network=network,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        **kwargs,
    )


class FakeSecretStore:
    """Secret store backed by a dict of handle -> secret"""

    def __init__(self, secrets):
        self.secrets = secrets
        self.lookups = []

    def get_credentials(self, account):
        self.lookups.append(account.handle)
        secret = self.secrets.get(account.handle)
        if isinstance(secret, Exception):
            raise secret
        return secret


class TestSyncOrchestrator:
    """Test suite for SyncOrchestrator command handling"""

    def setup_method(self):
        """Set up accounts, secrets and one mock client per account"""
        self.mastodon_account = Account(
            network=Network.MASTODON, handle="alice", server="https://mastodon.social"
        )
        self.bluesky_account = Account(network=Network.BLUESKY, handle="alice.bsky.social")

        self.secret_store = FakeSecretStore(
            {"alice": "token", "alice.bsky.social": "app-password"}
        )
        self.clients = {
            "alice": Mock(name="mastodon_client"),
            "alice.bsky.social": Mock(name="bluesky_client"),
        }
        self.client_factory = Mock(
            side_effect=lambda account, secret, settings: self.clients[account.handle]
        )
        self.settings = Settings(timeline_limit=25)
        self.orchestrator = SyncOrchestrator(
            self.secret_store, settings=self.settings, client_factory=self.client_factory
        )

    def run_command(self, command):
        self.orchestrator.handle(command)
        return self.orchestrator.poll_results()

    # ---------------- refresh ----------------

    def test_refresh_merges_newest_first(self):
        self.clients["alice"].timeline.return_value = [
            make_post("m1", minutes=10),
            make_post("m2", minutes=1),
        ]
        self.clients["alice.bsky.social"].timeline.return_value = [
            make_post("b1", Network.BLUESKY, minutes=5),
        ]

        results = self.run_command(
            RefreshTimeline(accounts=[self.mastodon_account, self.bluesky_account])
        )

        assert results[0] == StatusMessage("Refreshing...")
        assert isinstance(results[1], TimelineRefreshed)
        assert [p.network_id for p in results[1].posts] == ["m1", "b1", "m2"]
        assert len(results) == 2
        self.clients["alice"].timeline.assert_called_once_with(25)

    def test_refresh_ties_keep_fetch_order(self):
        self.clients["alice"].timeline.return_value = [
            make_post("m1"),
            make_post("m2"),
        ]
        self.clients["alice.bsky.social"].timeline.return_value = [
            make_post("b1", Network.BLUESKY),
            make_post("b2", Network.BLUESKY, minutes=-1),
        ]

        results = self.run_command(
            RefreshTimeline(accounts=[self.mastodon_account, self.bluesky_account])
        )

        assert [p.network_id for p in results[1].posts] == ["m1", "m2", "b1", "b2"]

    def test_refresh_partial_failure(self):
        del self.secret_store.secrets["alice.bsky.social"]
        self.clients["alice"].timeline.return_value = [make_post("m1")]

        results = self.run_command(
            RefreshTimeline(accounts=[self.mastodon_account, self.bluesky_account])
        )

        assert isinstance(results[1], TimelineRefreshed)
        assert [p.network_id for p in results[1].posts] == ["m1"]
        assert results[2] == StatusMessage(
            "Partial refresh: No credentials for @alice.bsky.social"
        )

    def test_refresh_all_accounts_failing(self):
        self.secret_store.secrets = {
            "alice": CredentialError("keyring locked"),
            "alice.bsky.social": "app-password",
        }
        self.clients["alice.bsky.social"].timeline.side_effect = TransportError(
            "Failed to fetch timeline: timed out"
        )

        results = self.run_command(
            RefreshTimeline(accounts=[self.mastodon_account, self.bluesky_account])
        )

        assert results == [
            StatusMessage("Refreshing..."),
            ErrorMessage(
                "Auth error for @alice: keyring locked; "
                "@alice.bsky.social: Failed to fetch timeline: timed out"
            ),
        ]

    def test_refresh_client_resolution_failure_is_per_account(self):
        self.client_factory.side_effect = [
            ProtocolError("Bluesky login failed: bad password"),
            self.clients["alice"],
        ]
        self.clients["alice"].timeline.return_value = [make_post("m1")]

        results = self.run_command(
            RefreshTimeline(accounts=[self.bluesky_account, self.mastodon_account])
        )

        assert [p.network_id for p in results[1].posts] == ["m1"]
        assert "@alice.bsky.social: Bluesky login failed" in results[2].message

    def test_refresh_without_accounts(self):
        results = self.run_command(RefreshTimeline(accounts=[]))

        assert results == [
            StatusMessage("Refreshing..."),
            ErrorMessage("No accounts configured"),
        ]

    def test_refresh_with_no_posts_and_no_errors_is_success(self):
        self.clients["alice"].timeline.return_value = []

        results = self.run_command(RefreshTimeline(accounts=[self.mastodon_account]))

        assert results[1] == TimelineRefreshed(posts=[])

    # ---------------- context ----------------

    def test_fetch_context_builds_tree(self):
        root = make_post("1")
        self.clients["alice"].get_context.return_value = [
            make_post("2", reply_to_id="1"),
            make_post("3", reply_to_id="2"),
        ]

        results = self.run_command(FetchContext(post=root, account=self.mastodon_account))

        assert len(results) == 1
        assert isinstance(results[0], ContextFetched)
        assert results[0].post_id == "1"
        assert [(r.post.network_id, r.depth) for r in results[0].replies] == [
            ("2", 0),
            ("3", 1),
        ]

    def test_fetch_context_failure_is_silent(self):
        self.clients["alice"].get_context.side_effect = TransportError("down")

        results = self.run_command(
            FetchContext(post=make_post("1"), account=self.mastodon_account)
        )

        assert results == []

    def test_fetch_context_without_credentials_is_silent(self):
        self.secret_store.secrets = {}

        results = self.run_command(
            FetchContext(post=make_post("1"), account=self.mastodon_account)
        )

        assert results == []
        self.client_factory.assert_not_called()

    # ---------------- interactions ----------------

    def test_interactions_emit_results_keyed_by_native_id(self):
        post = make_post("42")
        client = self.clients["alice"]

        assert self.run_command(Like(post, self.mastodon_account)) == [Liked("42")]
        assert self.run_command(Unlike(post, self.mastodon_account)) == [Unliked("42")]
        assert self.run_command(Repost(post, self.mastodon_account)) == [Reposted("42")]
        assert self.run_command(Unrepost(post, self.mastodon_account)) == [
            Unreposted("42")
        ]

        client.like.assert_called_once_with(post)
        client.unlike.assert_called_once_with(post)
        client.repost.assert_called_once_with(post)
        client.unrepost.assert_called_once_with(post)

    def test_interaction_on_unaddressable_post_makes_no_call(self):
        post = make_post("rkey", Network.BLUESKY, uri="at://did:plc:x/p/rkey")

        results = self.run_command(Like(post, self.bluesky_account))

        assert results == [ErrorMessage("Like failed: Post missing CID for like")]
        assert self.secret_store.lookups == []
        self.client_factory.assert_not_called()

    def test_interaction_failure_reports_error(self):
        self.clients["alice"].repost.side_effect = ProtocolError(
            "Failed to repost: Mastodon error 404: Record not found"
        )

        results = self.run_command(Repost(make_post("42"), self.mastodon_account))

        assert results == [
            ErrorMessage(
                "Repost failed: Failed to repost: Mastodon error 404: Record not found"
            )
        ]

    def test_interaction_without_credentials(self):
        self.secret_store.secrets = {}

        results = self.run_command(Unlike(make_post("42"), self.mastodon_account))

        assert results == [ErrorMessage("Unlike failed: No credentials for @alice")]

    def test_interaction_with_account_from_other_network(self):
        results = self.run_command(Like(make_post("42"), self.bluesky_account))

        assert len(results) == 1
        assert isinstance(results[0], ErrorMessage)
        self.client_factory.assert_not_called()

    # ---------------- posting ----------------

    def test_submit_post_to_all_accounts(self):
        self.clients["alice"].post.return_value = make_post("m-new")
        self.clients["alice.bsky.social"].post.return_value = make_post(
            "b-new", Network.BLUESKY
        )

        results = self.run_command(
            SubmitPost("hello", [self.mastodon_account, self.bluesky_account])
        )

        assert results[0] == StatusMessage("Posting... (to 2 accounts)")
        assert [p.network_id for p in results[1].posts] == ["m-new", "b-new"]
        assert results[2] == StatusMessage("Posted successfully!")
        self.clients["alice"].post.assert_called_once_with("hello")

    def test_submit_post_partial_failure(self):
        self.clients["alice"].post.return_value = make_post("m-new")
        self.clients["alice.bsky.social"].post.side_effect = ProtocolError(
            "Failed to post: rate limited"
        )

        results = self.run_command(
            SubmitPost("hello", [self.mastodon_account, self.bluesky_account])
        )

        assert isinstance(results[1], Posted)
        assert len(results[1].posts) == 1
        assert results[2] == ErrorMessage("Bluesky: Failed to post: rate limited")

    def test_submit_post_all_failing(self):
        self.secret_store.secrets = {"alice.bsky.social": CredentialError("locked")}

        results = self.run_command(
            SubmitPost("hello", [self.mastodon_account, self.bluesky_account])
        )

        assert results == [
            StatusMessage("Posting... (to 2 accounts)"),
            ErrorMessage(
                "No credentials for Mastodon (@alice); Auth error for Bluesky: locked"
            ),
        ]

    def test_submit_reply_only_on_matching_network(self):
        target = make_post("42")
        self.clients["alice"].reply.return_value = make_post("m-reply", reply_to_id="42")
        self.clients["alice.bsky.social"].post.return_value = make_post(
            "b-new", Network.BLUESKY
        )

        results = self.run_command(
            SubmitPost(
                "agreed", [self.mastodon_account, self.bluesky_account], reply_to=target
            )
        )

        assert results[0] == StatusMessage("Replying... (to 2 accounts)")
        self.clients["alice"].reply.assert_called_once_with("agreed", target)
        self.clients["alice.bsky.social"].reply.assert_not_called()
        self.clients["alice.bsky.social"].post.assert_called_once_with("agreed")
        assert results[-1] == StatusMessage("Replied successfully!")

    def test_submit_without_accounts(self):
        results = self.run_command(SubmitPost("hello", []))

        assert results[-1] == ErrorMessage("No accounts selected")

    # ---------------- worker loop ----------------

    def test_credentials_read_on_every_command(self):
        self.clients["alice"].timeline.return_value = []

        self.run_command(RefreshTimeline(accounts=[self.mastodon_account]))
        self.run_command(RefreshTimeline(accounts=[self.mastodon_account]))

        assert self.secret_store.lookups == ["alice", "alice"]

    def test_worker_runs_commands_in_order_and_stops(self):
        post = make_post("42")

        self.orchestrator.start()
        self.orchestrator.submit(Like(post, self.mastodon_account))
        self.orchestrator.submit(Repost(post, self.mastodon_account))
        self.orchestrator.shutdown(timeout=5)

        assert not self.orchestrator.is_running()
        assert self.orchestrator.poll_results() == [Liked("42"), Reposted("42")]

    def test_shutdown_leaves_later_commands_queued(self):
        post = make_post("42")
        self.orchestrator.submit(Shutdown())
        self.orchestrator.submit(Like(post, self.mastodon_account))

        self.orchestrator.run()

        assert self.orchestrator.poll_results() == []
        assert self.orchestrator.commands.qsize() == 1

    def test_failures_do_not_stop_worker(self):
        self.clients["alice"].like.side_effect = RuntimeError("boom")
        self.client_factory.side_effect = None
        self.client_factory.return_value = self.clients["alice"]
        self.secret_store.get_credentials = Mock(side_effect=[RuntimeError("boom"), "t"])

        self.orchestrator.submit(FetchContext(make_post("1"), self.mastodon_account))
        self.orchestrator.submit(Like(make_post("42"), self.mastodon_account))
        self.orchestrator.submit(Shutdown())
        self.orchestrator.run()

        results = self.orchestrator.poll_results()
        assert results == [ErrorMessage("Like failed: boom")]

    def test_unknown_command_reported(self):
        self.orchestrator.submit("not a command")
        self.orchestrator.submit(Shutdown())

        self.orchestrator.run()

        results = self.orchestrator.poll_results()
        assert len(results) == 1
        assert results[0].message.startswith("Unexpected error: Unknown command")


class TestScheduleHandling:
    """Test suite for SchedulePost handling"""

    def setup_method(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.schedule_file = str(Path(self.temp_dir.name) / "scheduled_posts.json")
        self.store = ScheduleStore(self.schedule_file)
        self.orchestrator = SyncOrchestrator(
            FakeSecretStore({}),
            settings=Settings(),
            client_factory=Mock(),
            schedule_store=self.store,
        )
        self.when = datetime.now(timezone.utc) + timedelta(hours=2, seconds=30)

    def teardown_method(self):
        self.temp_dir.cleanup()

    def run_command(self, command):
        self.orchestrator.handle(command)
        return self.orchestrator.poll_results()

    def test_schedule_emits_scheduled_then_status(self):
        results = self.run_command(
            SchedulePost("Later!", [Network.MASTODON, Network.BLUESKY], self.when)
        )

        assert results[0] == StatusMessage("Scheduling post...")
        assert isinstance(results[1], Scheduled)
        assert isinstance(results[2], StatusMessage)
        assert len(results) == 3

        stored = ScheduleStore(self.schedule_file).get_scheduled_posts()
        assert len(stored) == 1
        assert stored[0].content == "Later!"
        assert stored[0].networks == [Network.MASTODON, Network.BLUESKY]
        assert stored[0].status is ScheduledPostStatus.PENDING
        assert stored[0].id.startswith(results[1].id)
        assert results[1].scheduled_for == self.when.strftime("%Y-%m-%d %H:%M UTC")
        assert results[2].message == (
            f"📅 Scheduled for {results[1].scheduled_for} (in 2h)"
        )

    def test_schedule_without_networks(self):
        results = self.run_command(SchedulePost("Later!", [], self.when))

        assert results == [
            StatusMessage("Scheduling post..."),
            ErrorMessage("No networks selected"),
        ]
        assert self.store.get_scheduled_posts() == []

    def test_schedule_save_failure_reports_error(self):
        self.store.save_scheduled_post = Mock(side_effect=OSError("disk full"))

        results = self.run_command(SchedulePost("Later!", [Network.BLUESKY], self.when))

        assert results[-1] == ErrorMessage("Failed to schedule: disk full")
        assert not any(isinstance(result, Scheduled) for result in results)

    def test_store_built_from_settings_when_not_given(self):
        orchestrator = SyncOrchestrator(
            FakeSecretStore({}),
            settings=Settings(schedule_file=self.schedule_file),
            client_factory=Mock(),
        )

        assert orchestrator.schedule_store.schedule_file == Path(self.schedule_file)
