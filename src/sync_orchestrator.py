"""
Background worker for Social Timeline

The interactive loop never talks to the network itself. It enqueues
commands; a single worker thread executes them one at a time and emits
results on a second queue, which the interactive loop polls on its own
cadence.
"""

import logging
import queue
import threading
from datetime import datetime
from typing import Callable, List, Optional

from .client_factory import get_client
from .commands import (
    Command,
    ContextFetched,
    ErrorMessage,
    FetchContext,
    Like,
    Liked,
    Posted,
    PostAction,
    RefreshTimeline,
    Repost,
    Reposted,
    Result,
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
from .config import Settings, get_settings
from .errors import CredentialError, PreconditionError
from .models import Account, Network, Post, ScheduledPost
from .reply_tree import build_reply_tree
from .schedule_store import ScheduleStore
from .secret_store import SecretStore
from .social_client import SocialClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Account, str, Settings], SocialClient]


class SyncOrchestrator:
    """Executes commands on a dedicated worker thread"""

    # command type -> (client method, label for messages, success result)
    POST_ACTIONS = {
        Like: ("like", "Like", Liked),
        Unlike: ("unlike", "Unlike", Unliked),
        Repost: ("repost", "Repost", Reposted),
        Unrepost: ("unrepost", "Unrepost", Unreposted),
    }

    def __init__(
        self,
        secret_store: SecretStore,
        settings: Optional[Settings] = None,
        client_factory: ClientFactory = get_client,
        schedule_store: Optional[ScheduleStore] = None,
    ):
        self.settings = settings or get_settings()
        self.secret_store = secret_store
        self.client_factory = client_factory
        self._schedule_store = schedule_store
        self.commands: "queue.Queue[Command]" = queue.Queue(
            maxsize=self.settings.queue_size
        )
        self.results: "queue.Queue[Result]" = queue.Queue(
            maxsize=self.settings.queue_size
        )
        self._thread: Optional[threading.Thread] = None

    # ---------------- Interactive side ----------------

    def start(self) -> threading.Thread:
        """Start the worker thread (idempotent)"""
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(
                target=self.run, name="sync-worker", daemon=True
            )
            self._thread.start()
            logger.debug("Sync worker started")
        return self._thread

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def submit(self, command: Command, timeout: Optional[float] = None) -> None:
        """Enqueue a command, blocking while the command queue is full"""
        self.commands.put(command, timeout=timeout)

    def poll_results(self) -> List[Result]:
        """Drain every result currently available without blocking"""
        results: List[Result] = []
        while True:
            try:
                results.append(self.results.get_nowait())
            except queue.Empty:
                return results

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Ask the worker to stop after its current command and wait for it"""
        self.submit(Shutdown())
        if self._thread is not None:
            self._thread.join(timeout)

    # ---------------- Worker side ----------------

    def run(self) -> None:
        """Worker loop: one command at a time until a Shutdown arrives"""
        while True:
            command = self.commands.get()
            try:
                if isinstance(command, Shutdown):
                    logger.info("Sync worker shutting down")
                    return
                self.handle(command)
            except Exception as e:
                # A failing command must never take the worker down with it
                logger.exception(f"Unexpected error handling {type(command).__name__}")
                self._emit(ErrorMessage(f"Unexpected error: {e}"))
            finally:
                self.commands.task_done()

    def handle(self, command: Command) -> None:
        """Execute a single command, emitting its results"""
        logger.debug(f"Handling {type(command).__name__}")

        if isinstance(command, RefreshTimeline):
            self._handle_refresh(command.accounts)
        elif isinstance(command, FetchContext):
            self._handle_fetch_context(command.post, command.account)
        elif isinstance(command, (Like, Unlike, Repost, Unrepost)):
            self._handle_post_action(command)
        elif isinstance(command, SubmitPost):
            self._handle_submit(command.content, command.accounts, command.reply_to)
        elif isinstance(command, SchedulePost):
            self._handle_schedule(
                command.content, command.networks, command.scheduled_for
            )
        else:
            raise TypeError(f"Unknown command: {command!r}")

    @property
    def schedule_store(self) -> ScheduleStore:
        if self._schedule_store is None:
            self._schedule_store = ScheduleStore(self.settings.schedule_file)
        return self._schedule_store

    def _emit(self, result: Result) -> None:
        self.results.put(result)

    def _resolve_client(self, account: Account) -> SocialClient:
        """Read the account's secret fresh and build its client"""
        secret = self.secret_store.get_credentials(account)
        if secret is None:
            raise CredentialError(f"No credentials for @{account.handle}")
        return self.client_factory(account, secret, self.settings)

    def _handle_refresh(self, accounts: List[Account]) -> None:
        self._emit(StatusMessage("Refreshing..."))

        if not accounts:
            self._emit(ErrorMessage("No accounts configured"))
            return

        all_posts: List[Post] = []
        errors: List[str] = []

        for account in accounts:
            try:
                secret = self.secret_store.get_credentials(account)
            except CredentialError as e:
                errors.append(f"Auth error for @{account.handle}: {e}")
                continue

            if secret is None:
                errors.append(f"No credentials for @{account.handle}")
                continue

            try:
                client = self.client_factory(account, secret, self.settings)
                posts = client.timeline(self.settings.timeline_limit)
            except Exception as e:
                logger.warning(f"Failed to refresh @{account.handle}: {e}")
                errors.append(f"@{account.handle}: {e}")
                continue

            logger.info(f"Fetched {len(posts)} posts for {account.full_handle()}")
            all_posts.extend(posts)

        # Newest first; the sort is stable so ties keep fetch order
        all_posts.sort(key=lambda post: post.created_at, reverse=True)

        if not all_posts and errors:
            self._emit(ErrorMessage("; ".join(errors)))
            return

        self._emit(TimelineRefreshed(posts=all_posts))
        if errors:
            self._emit(StatusMessage(f"Partial refresh: {'; '.join(errors)}"))

    def _handle_fetch_context(self, post: Post, account: Account) -> None:
        # Conversations are supplementary: any failure ends the command quietly
        try:
            client = self._resolve_client(account)
            flat_replies = client.get_context(post)
        except Exception as e:
            logger.debug(f"Failed to fetch context for {post.network_id}: {e}")
            return

        replies = build_reply_tree(post, flat_replies)
        logger.debug(
            f"Built {len(replies)} reply items from {len(flat_replies)} replies "
            f"for {post.network_id}"
        )
        self._emit(ContextFetched(post_id=post.network_id, replies=replies))

    def _handle_post_action(self, command: PostAction) -> None:
        method, label, result_type = self.POST_ACTIONS[type(command)]
        post, account = command.post, command.account

        try:
            if post.network is not account.network:
                raise PreconditionError(
                    f"@{account.handle} is not a {post.network.display_name} account"
                )
            # Checked before credentials so a malformed post never reaches login
            post.require_record_ref(method)
            client = self._resolve_client(account)
            getattr(client, method)(post)
        except Exception as e:
            logger.error(f"{label} failed for {post.network_id}: {e}")
            self._emit(ErrorMessage(f"{label} failed: {e}"))
            return

        self._emit(result_type(post_id=post.network_id))

    def _handle_submit(
        self, content: str, accounts: List[Account], reply_to: Optional[Post]
    ) -> None:
        action = "Replying..." if reply_to is not None else "Posting..."
        self._emit(StatusMessage(f"{action} (to {len(accounts)} accounts)"))

        if not accounts:
            self._emit(ErrorMessage("No accounts selected"))
            return

        posted: List[Post] = []
        errors: List[str] = []

        for account in accounts:
            network_name = account.network.display_name
            try:
                secret = self.secret_store.get_credentials(account)
            except CredentialError as e:
                errors.append(f"Auth error for {network_name}: {e}")
                continue

            if secret is None:
                errors.append(f"No credentials for {network_name} (@{account.handle})")
                continue

            try:
                client = self.client_factory(account, secret, self.settings)
                # Only accounts on the target's network can reply to it
                if reply_to is not None and reply_to.network is account.network:
                    post = client.reply(content, reply_to)
                else:
                    post = client.post(content)
            except Exception as e:
                logger.warning(f"Failed to post from {account.full_handle()}: {e}")
                errors.append(f"{network_name}: {e}")
                continue

            posted.append(post)

        if posted:
            self._emit(Posted(posts=posted))

        if errors:
            self._emit(ErrorMessage("; ".join(errors)))
        elif reply_to is not None:
            self._emit(StatusMessage("Replied successfully!"))
        else:
            self._emit(StatusMessage("Posted successfully!"))

    def _handle_schedule(
        self, content: str, networks: List[Network], scheduled_for: datetime
    ) -> None:
        self._emit(StatusMessage("Scheduling post..."))

        if not networks:
            self._emit(ErrorMessage("No networks selected"))
            return

        try:
            post = ScheduledPost(
                content=content, networks=list(networks), scheduled_for=scheduled_for
            )
            self.schedule_store.save_scheduled_post(post)
        except Exception as e:
            logger.error(f"Failed to schedule post: {e}")
            self._emit(ErrorMessage(f"Failed to schedule: {e}"))
            return

        display = post.scheduled_time_display()
        self._emit(Scheduled(id=post.short_id, scheduled_for=display))
        self._emit(StatusMessage(f"📅 Scheduled for {display} (in {post.time_until()})"))
