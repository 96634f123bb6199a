#!/usr/bin/env python3
"""
Social Timeline CLI - Command line interface for a unified Mastodon and Bluesky timeline
"""
import logging
import sys
import time
import warnings
from datetime import datetime, timezone
from typing import List, Optional

# Suppress urllib3 OpenSSL warning on macOS (LibreSSL is functionally equivalent)
warnings.filterwarnings("ignore", message="urllib3 v2 only supports OpenSSL 1.1.1+")

import click  # noqa: E402
from dotenv import load_dotenv  # noqa: E402

from src.account_store import AccountStore  # noqa: E402
from src.client_factory import get_client  # noqa: E402
from src.commands import (  # noqa: E402
    Command,
    ErrorMessage,
    FetchContext,
    Like,
    Posted,
    RefreshTimeline,
    Repost,
    Result,
    Scheduled,
    SchedulePost,
    Shutdown,
    StatusMessage,
    SubmitPost,
    Unlike,
    Unrepost,
)
from src.config import (  # noqa: E402
    LOG_LEVELS,
    ConfigurationError,
    Settings,
    get_settings,
)
from src.errors import SocialTimelineError  # noqa: E402
from src.models import Account, Network, Post, ScheduledPostStatus  # noqa: E402
from src.schedule import parse_schedule_time  # noqa: E402
from src.schedule_store import ScheduleStore  # noqa: E402
from src.secret_store import EnvSecretStore  # noqa: E402
from src.social_timeline import __version__  # noqa: E402
from src.sync_orchestrator import SyncOrchestrator  # noqa: E402
from src.timeline_state import TimelineState  # noqa: E402

# Load environment variables
load_dotenv()


def setup_logging(log_level: str, log_file: str = "social_timeline.log"):
    """Setup logging configuration"""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file),
        ],
    )


def parse_network(ctx, param, value) -> Optional[Network]:
    """click callback turning a network name or alias into a Network"""
    if value is None:
        return None
    network = Network.from_str(value)
    if network is None:
        raise click.BadParameter(f"Unknown network '{value}' (use mastodon or bluesky)")
    return network


def parse_networks(ctx, param, value) -> Optional[List[Network]]:
    if value is None:
        return None
    networks: List[Network] = []
    for name in value.split(","):
        network = parse_network(ctx, param, name)
        if network not in networks:
            networks.append(network)
    return networks


def format_post(post: Post) -> str:
    """Render a post as a few lines of terminal text"""
    lines = [
        f"{post.network.emoji} {post.author_name or post.author_handle} "
        f"(@{post.author_handle}) · {post.relative_time()}"
    ]
    if post.is_repost and post.repost_author:
        lines.append(f"   🔁 Reposted by {post.repost_author}")
    lines.append(f"   {post.preview(120)}")
    if post.media:
        lines.append(f"   📎 {len(post.media)} attachment(s)")
    lines.append(
        f"   {'❤️' if post.liked else '♡'} {post.like_count}"
        f"  🔁 {post.repost_count}  💬 {post.reply_count}"
    )
    if post.url:
        lines.append(f"   {post.url}")
    return "\n".join(lines)


def run_worker(
    settings: Settings, command: Command, state: TimelineState
) -> List[Result]:
    """Run one command on the sync worker and fold its results into `state`

    The command is followed by a Shutdown so the worker exits once it is
    done; results are polled every `poll_interval` seconds until then.
    """
    orchestrator = SyncOrchestrator(
        EnvSecretStore(), settings=settings, client_factory=get_client
    )
    orchestrator.start()
    orchestrator.submit(command)
    orchestrator.submit(Shutdown())
    state.loading = True

    collected: List[Result] = []
    while True:
        # Checked before polling so results emitted just before exit are drained
        running = orchestrator.is_running()
        batch = orchestrator.poll_results()
        for result in batch:
            state.apply(result)
            if isinstance(result, ErrorMessage):
                click.echo(f"❌ {result.message}")
            elif isinstance(result, StatusMessage):
                click.echo(f"ℹ️  {result.message}")
        collected.extend(batch)

        if not running and not batch:
            state.loading = False
            return collected
        time.sleep(settings.poll_interval)


def pick_posting_accounts(
    store: AccountStore, networks: List[Network]
) -> List[Account]:
    """One account per network: its default, else the first registered"""
    accounts = []
    for network in networks:
        account = store.get_default_account(network)
        if account is None:
            account = next(
                (a for a in store.get_accounts() if a.network is network), None
            )
        if account is not None:
            accounts.append(account)
    return accounts


@click.group()
@click.version_option(version=__version__, prog_name="Social Timeline")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
)
@click.pass_context
def cli(ctx, log_level):
    """Social Timeline - One timeline for your Mastodon and Bluesky accounts"""
    ctx.ensure_object(dict)
    try:
        settings = get_settings()
    except ConfigurationError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    setup_logging(log_level or settings.log_level, settings.log_file)
    ctx.obj["settings"] = settings
    ctx.obj["store"] = AccountStore(settings.accounts_file)


@cli.command()
@click.pass_context
def accounts(ctx):
    """List configured accounts"""
    store: AccountStore = ctx.obj["store"]
    registered = store.get_accounts()

    if not registered:
        click.echo("No accounts configured. Add one with 'timeline.py add-account'.")
        return

    click.echo("👥 Accounts")
    for account in registered:
        default = " (default)" if account.is_default else ""
        name = f" - {account.display_name}" if account.display_name else ""
        click.echo(
            f"   {account.network.emoji} {account.full_handle()}{name}{default}"
        )


@cli.command("add-account")
@click.argument("network", callback=parse_network)
@click.argument("handle")
@click.option("--server", default="", help="Mastodon instance URL or Bluesky PDS URL")
@click.option("--display-name", default="", help="Name shown for this account")
@click.option("--default", "make_default", is_flag=True, help="Make this the default")
@click.pass_context
def add_account(ctx, network, handle, server, display_name, make_default):
    """Register an account"""
    store: AccountStore = ctx.obj["store"]

    if network is Network.MASTODON and not server:
        click.echo("❌ Mastodon accounts need --server (e.g. https://mastodon.social)")
        sys.exit(1)

    account = store.add_account(
        Account(
            network=network,
            handle=handle.lstrip("@"),
            server=server.rstrip("/"),
            display_name=display_name,
            is_default=make_default,
        )
    )

    click.echo(f"✅ Added {network.display_name} account {account.full_handle()}")
    click.echo(f"   • Store its secret in {account.secret_key()}")


@cli.command("remove-account")
@click.argument("handle")
@click.option("--network", callback=parse_network, help="Network of the account")
@click.pass_context
def remove_account(ctx, handle, network):
    """Remove a registered account"""
    store: AccountStore = ctx.obj["store"]
    account = store.get_account(handle, network)

    if account is None or not store.remove_account(account.id):
        click.echo(f"❌ No account named {handle}")
        sys.exit(1)

    click.echo(f"✅ Removed {account.full_handle()}")


@cli.command("set-default")
@click.argument("handle")
@click.option("--network", callback=parse_network, help="Network of the account")
@click.pass_context
def set_default(ctx, handle, network):
    """Make an account the default"""
    store: AccountStore = ctx.obj["store"]
    account = store.get_account(handle, network)

    if account is None or not store.set_default_account(account.id):
        click.echo(f"❌ No account named {handle}")
        sys.exit(1)

    click.echo(f"✅ {account.full_handle()} is now the default account")


@cli.command()
@click.pass_context
def verify(ctx):
    """Verify the credentials of every account"""
    settings: Settings = ctx.obj["settings"]
    store: AccountStore = ctx.obj["store"]
    secret_store = EnvSecretStore()

    registered = store.get_accounts()
    if not registered:
        click.echo("No accounts configured.")
        return

    click.echo("🔧 Verifying accounts...")
    failures = 0
    for account in registered:
        try:
            secret = secret_store.get_credentials(account)
            if secret is None:
                click.echo(
                    f"❌ {account.full_handle()}: no credentials "
                    f"(set {account.secret_key()})"
                )
                failures += 1
                continue

            verified = get_client(account, secret, settings).verify_credentials()
        except SocialTimelineError as e:
            logging.warning(f"Verification failed for {account.full_handle()}: {e}")
            click.echo(f"❌ {account.full_handle()}: {e}")
            failures += 1
            continue

        account.display_name = verified.display_name or account.display_name
        account.avatar_url = verified.avatar_url or account.avatar_url
        store.add_account(account)
        store.update_account_last_used(account.id)
        click.echo(f"✅ {account.full_handle()} ({account.display_name})")

    if failures:
        sys.exit(1)


@cli.command()
@click.option("--network", callback=parse_network, help="Only show one network")
@click.option(
    "--limit",
    type=click.IntRange(1, 100),
    default=None,
    help="Posts fetched per account",
)
@click.pass_context
def timeline(ctx, network, limit):
    """Show the merged home timeline"""
    settings: Settings = ctx.obj["settings"]
    store: AccountStore = ctx.obj["store"]

    selected = [
        a for a in store.get_accounts() if network is None or a.network is network
    ]
    if limit is not None:
        settings = settings.model_copy(update={"timeline_limit": limit})

    try:
        state = TimelineState()
        results = run_worker(settings, RefreshTimeline(accounts=selected), state)
    except Exception as e:
        logging.exception("Unexpected error refreshing timeline")
        click.echo(f"❌ Unexpected error: {e}")
        sys.exit(1)

    for post in state.posts:
        click.echo(format_post(post))
        click.echo("")

    click.echo(f"📊 {state.status}")
    if any(isinstance(r, ErrorMessage) for r in results):
        sys.exit(1)


@cli.command()
@click.argument("content")
@click.option(
    "--to",
    "networks",
    callback=parse_networks,
    help="Comma separated networks to post to (default: all configured)",
)
@click.pass_context
def post(ctx, content, networks):
    """Publish a post from one account per network"""
    store: AccountStore = ctx.obj["store"]
    settings: Settings = ctx.obj["settings"]

    if not content.strip():
        click.echo("❌ Nothing to post")
        sys.exit(1)

    selected = pick_posting_accounts(store, networks or Network.all())
    if not selected:
        click.echo("❌ No accounts configured for the selected networks")
        sys.exit(1)

    try:
        state = TimelineState()
        results = run_worker(
            settings, SubmitPost(content=content, accounts=selected), state
        )
    except Exception as e:
        logging.exception("Unexpected error while posting")
        click.echo(f"❌ Unexpected error: {e}")
        sys.exit(1)

    echo_posted(store, results, selected)
    if any(isinstance(r, ErrorMessage) for r in results):
        sys.exit(1)


def echo_posted(store: AccountStore, results: List[Result], selected: List[Account]):
    """Print the location of every created post and touch its account"""
    for result in results:
        if isinstance(result, Posted):
            for created in result.posts:
                location = created.url or created.network_id
                click.echo(f"✅ {created.network.display_name}: {location}")
                for account in selected:
                    if account.network is created.network:
                        store.update_account_last_used(account.id)


def load_post(ctx, network_id: str, network: Optional[Network]):
    """Refresh the timeline and find a post in it by its native id

    Returns:
        The refreshed state, the post and the account to act on it with
    """
    settings: Settings = ctx.obj["settings"]
    store: AccountStore = ctx.obj["store"]

    selected = [
        a for a in store.get_accounts() if network is None or a.network is network
    ]
    if not selected:
        click.echo("❌ No accounts configured")
        sys.exit(1)

    state = TimelineState()
    run_worker(settings, RefreshTimeline(accounts=selected), state)

    found = next(
        (
            p
            for p in state.posts
            if p.network_id == network_id and (network is None or p.network is network)
        ),
        None,
    )
    if found is None:
        click.echo(f"❌ Post {network_id} not found in the timeline")
        sys.exit(1)

    accounts = pick_posting_accounts(store, [found.network])
    if not accounts:
        click.echo(f"❌ No {found.network.display_name} account configured")
        sys.exit(1)

    state.select(found)
    return state, found, accounts[0]


@cli.command()
@click.argument("network_id")
@click.option("--network", callback=parse_network, help="Network of the post")
@click.pass_context
def thread(ctx, network_id, network):
    """Show a post and the conversation below it"""
    settings: Settings = ctx.obj["settings"]
    state, target, account = load_post(ctx, network_id, network)

    run_worker(settings, FetchContext(post=target, account=account), state)

    click.echo(format_post(target))
    if not state.replies:
        click.echo("💬 No replies")
        return

    click.echo(f"💬 {len(state.replies)} replies")
    for item in state.replies:
        indent = "    " * (item.depth + 1)
        for line in format_post(item.post).splitlines():
            click.echo(f"{indent}{line}")


def run_interaction(ctx, network_id: str, network: Optional[Network], command_type):
    settings: Settings = ctx.obj["settings"]
    state, target, account = load_post(ctx, network_id, network)

    results = run_worker(settings, command_type(post=target, account=account), state)
    if any(isinstance(r, ErrorMessage) for r in results):
        sys.exit(1)

    click.echo(f"{state.status} ❤️ {target.like_count}  🔁 {target.repost_count}")


@cli.command()
@click.argument("network_id")
@click.option("--network", callback=parse_network, help="Network of the post")
@click.pass_context
def like(ctx, network_id, network):
    """Like a post from the timeline"""
    run_interaction(ctx, network_id, network, Like)


@cli.command()
@click.argument("network_id")
@click.option("--network", callback=parse_network, help="Network of the post")
@click.pass_context
def unlike(ctx, network_id, network):
    """Remove your like from a post"""
    run_interaction(ctx, network_id, network, Unlike)


@cli.command()
@click.argument("network_id")
@click.option("--network", callback=parse_network, help="Network of the post")
@click.pass_context
def repost(ctx, network_id, network):
    """Repost (boost) a post from the timeline"""
    run_interaction(ctx, network_id, network, Repost)


@cli.command()
@click.argument("network_id")
@click.option("--network", callback=parse_network, help="Network of the post")
@click.pass_context
def unrepost(ctx, network_id, network):
    """Undo a repost"""
    run_interaction(ctx, network_id, network, Unrepost)


@cli.command()
@click.argument("network_id")
@click.argument("content")
@click.option("--network", callback=parse_network, help="Network of the post")
@click.pass_context
def reply(ctx, network_id, content, network):
    """Reply to a post from the timeline"""
    settings: Settings = ctx.obj["settings"]
    store: AccountStore = ctx.obj["store"]

    if not content.strip():
        click.echo("❌ Nothing to post")
        sys.exit(1)

    state, target, account = load_post(ctx, network_id, network)
    results = run_worker(
        settings, SubmitPost(content=content, accounts=[account], reply_to=target), state
    )

    echo_posted(store, results, [account])
    if any(isinstance(r, ErrorMessage) for r in results):
        sys.exit(1)


@cli.command()
@click.argument("content")
@click.argument("when")
@click.option(
    "--to",
    "networks",
    callback=parse_networks,
    help="Comma separated networks to post to (default: all configured)",
)
@click.pass_context
def schedule(ctx, content, when, networks):
    """Schedule a post for later

    WHEN accepts 'in 30m', 'in 2 hours', '15:00', '3pm' or '2030-01-15 14:30'.
    """
    settings: Settings = ctx.obj["settings"]
    store: AccountStore = ctx.obj["store"]

    if not content.strip():
        click.echo("❌ Nothing to post")
        sys.exit(1)

    try:
        scheduled_for = parse_schedule_time(when)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="WHEN")

    if scheduled_for <= datetime.now(timezone.utc):
        click.echo("❌ Scheduled time must be in the future")
        sys.exit(1)

    if networks is None:
        networks = [
            n for n in Network.all() if any(a.network is n for a in store.get_accounts())
        ]

    state = TimelineState()
    results = run_worker(
        settings,
        SchedulePost(content=content, networks=networks, scheduled_for=scheduled_for),
        state,
    )
    if any(isinstance(r, ErrorMessage) for r in results):
        sys.exit(1)

    for result in results:
        if isinstance(result, Scheduled):
            click.echo(f"✅ Scheduled [{result.id}] for {result.scheduled_for}")
    click.echo("   • Publish due posts with 'timeline.py publish-due'")


@cli.command()
@click.option("--all", "show_all", is_flag=True, help="Include finished posts")
@click.pass_context
def scheduled(ctx, show_all):
    """List scheduled posts"""
    settings: Settings = ctx.obj["settings"]
    schedule_store = ScheduleStore(settings.schedule_file)

    posts = (
        schedule_store.get_scheduled_posts()
        if show_all
        else schedule_store.get_pending_scheduled_posts()
    )
    if not posts:
        click.echo("No scheduled posts.")
        return

    click.echo("📅 Scheduled posts")
    for item in posts:
        networks = " ".join(n.emoji for n in item.networks)
        click.echo(
            f"   {item.status.emoji} [{item.short_id}] {item.scheduled_time_display()}"
            f" (in {item.time_until()}) {networks}"
        )
        click.echo(f"      {item.content[:80]}")
        if item.error:
            click.echo(f"      ❌ {item.error}")


@cli.command("cancel-scheduled")
@click.argument("post_id")
@click.pass_context
def cancel_scheduled(ctx, post_id):
    """Cancel a pending scheduled post"""
    settings: Settings = ctx.obj["settings"]
    schedule_store = ScheduleStore(settings.schedule_file)

    item = schedule_store.get_scheduled_post(post_id)
    if item is None or item.status is not ScheduledPostStatus.PENDING:
        click.echo(f"❌ No pending scheduled post {post_id}")
        sys.exit(1)

    schedule_store.cancel_scheduled_post(item.id)
    click.echo(f"🚫 Cancelled [{item.short_id}]")


@cli.command("publish-due")
@click.pass_context
def publish_due(ctx):
    """Publish every scheduled post whose time has come"""
    settings: Settings = ctx.obj["settings"]
    store: AccountStore = ctx.obj["store"]
    schedule_store = ScheduleStore(settings.schedule_file)

    due = schedule_store.get_due_scheduled_posts()
    if not due:
        click.echo("No scheduled posts are due.")
        return

    failures = 0
    for item in due:
        click.echo(f"📤 Publishing [{item.short_id}]")
        schedule_store.update_scheduled_post_status(item.id, ScheduledPostStatus.POSTING)
        selected = pick_posting_accounts(store, item.networks)

        try:
            results = run_worker(
                settings,
                SubmitPost(content=item.content, accounts=selected),
                TimelineState(),
            )
        except Exception as e:
            logging.exception(f"Unexpected error publishing {item.short_id}")
            results = [ErrorMessage(f"Unexpected error: {e}")]

        echo_posted(store, results, selected)
        errors = [r.message for r in results if isinstance(r, ErrorMessage)]
        if errors:
            failures += 1
            schedule_store.update_scheduled_post_status(
                item.id, ScheduledPostStatus.FAILED, "; ".join(errors)
            )
        else:
            schedule_store.update_scheduled_post_status(
                item.id, ScheduledPostStatus.POSTED
            )

    click.echo(f"📊 Published {len(due) - failures} of {len(due)} due posts")
    if failures:
        sys.exit(1)


@cli.command()
@click.pass_context
def config(ctx):
    """Show current configuration"""
    settings: Settings = ctx.obj["settings"]

    click.echo("⚙️ Social Timeline Configuration")
    click.echo(f"   • Accounts file: {settings.accounts_file}")
    click.echo(f"   • Schedule file: {settings.schedule_file}")
    click.echo(f"   • Accounts configured: {len(ctx.obj['store'].get_accounts())}")
    click.echo(f"   • Timeline limit: {settings.timeline_limit} posts per account")
    click.echo(f"   • Bluesky PDS: {settings.bluesky_pds_url}")
    click.echo(f"   • Request timeout: {settings.request_timeout}s")
    click.echo(f"   • Queue size: {settings.queue_size}")
    click.echo(f"   • Log level: {settings.log_level}")


if __name__ == "__main__":
    cli()
