"""
Resolves an account to the adapter that services it
"""

import logging
from typing import Optional

from .bluesky_client import BlueskyClient
from .config import Settings, get_settings
from .errors import PreconditionError
from .mastodon_client import MastodonClient
from .models import Account, Network
from .social_client import SocialClient

logger = logging.getLogger(__name__)


def get_client(
    account: Account, secret: str, settings: Optional[Settings] = None
) -> SocialClient:
    """Get the client for `account` authenticated with `secret`

    For Mastodon the secret is a bearer token and the client is ready
    immediately. For Bluesky the secret is an app password and a new
    session is created, so this can fail with transport or protocol errors
    that belong to this account alone.
    """
    settings = settings or get_settings()

    if account.network is Network.MASTODON:
        if not account.server:
            raise PreconditionError(f"No server configured for @{account.handle}")
        logger.debug(f"Using Mastodon client for {account.full_handle()}")
        return MastodonClient(
            api_base_url=account.server,
            access_token=secret,
            request_timeout=settings.request_timeout,
        )

    if account.network is Network.BLUESKY:
        pds_url = account.server or settings.bluesky_pds_url
        logger.debug(f"Creating Bluesky session for @{account.handle} on {pds_url}")
        return BlueskyClient.login(account.handle, secret, pds_url)

    raise PreconditionError(f"Unsupported network: {account.network}")
