"""
Credential lookup for Social Timeline accounts
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Mapping, Optional

from .errors import CredentialError
from .models import Account

logger = logging.getLogger(__name__)


class SecretStore(ABC):
    """Looks up the token (Mastodon) or app password (Bluesky) of an account"""

    @abstractmethod
    def get_credentials(self, account: Account) -> Optional[str]:
        """Return the secret for `account`, or None when none is stored

        Raises:
            CredentialError: when the store exists but cannot be read
        """


class EnvSecretStore(SecretStore):
    """Reads secrets from environment variables named by `Account.secret_key()`

    Variables are usually provided through the `.env` file loaded at
    startup, e.g. SOCIAL_TIMELINE_BLUESKY_ALICE_BSKY_SOCIAL=app-password.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ

    def get_credentials(self, account: Account) -> Optional[str]:
        key = account.secret_key()
        try:
            value = self.environ.get(key)
        except Exception as e:
            raise CredentialError(f"Failed to read {key}: {e}") from e

        if not value or not value.strip():
            logger.debug(f"No secret stored under {key}")
            return None
        return value.strip()
