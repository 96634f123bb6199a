"""
Account registry for Social Timeline
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import Account, Network

logger = logging.getLogger(__name__)


class AccountStore:
    """Keeps the configured accounts in a JSON file"""

    def __init__(self, accounts_file: str = "accounts.json"):
        self.accounts_file = Path(accounts_file)
        self.accounts = self._load_accounts()

    def _load_accounts(self) -> List[Account]:
        """Load accounts from file"""
        if not self.accounts_file.exists():
            return []

        try:
            with open(self.accounts_file, "r") as f:
                data = json.load(f)
        except Exception as e:
            logger.error(f"Failed to load accounts file: {e}")
            return []

        if not isinstance(data, dict):
            logger.error(f"Unexpected content in {self.accounts_file}, ignoring it")
            return []

        accounts = []
        for record in data.get("accounts", []):
            try:
                accounts.append(Account.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid account record: {e}")
        return accounts

    def _save_accounts(self):
        """Save accounts to file"""
        data: Dict[str, Any] = {
            "accounts": [account.to_dict() for account in self.accounts]
        }
        try:
            with open(self.accounts_file, "w") as f:
                json.dump(data, f, indent=2, default=str)
            logger.debug(f"Accounts saved to {self.accounts_file}")
        except Exception as e:
            logger.error(f"Failed to save accounts file: {e}")

    @staticmethod
    def _normalize_handle(handle: str) -> str:
        return handle.strip().lstrip("@").lower()

    def get_accounts(self) -> List[Account]:
        """Get all accounts in registration order"""
        return list(self.accounts)

    def get_account(
        self, handle: str, network: Optional[Network] = None
    ) -> Optional[Account]:
        """Find an account by handle, optionally restricted to one network"""
        wanted = self._normalize_handle(handle)
        for account in self.accounts:
            if network is not None and account.network is not network:
                continue
            if self._normalize_handle(account.handle) == wanted:
                return account
        return None

    def get_account_by_id(self, account_id: str) -> Optional[Account]:
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None

    def add_account(self, account: Account) -> Account:
        """Register an account

        The first account registered becomes the default. Adding an account
        whose network and handle are already registered replaces the
        existing entry, keeping its id.
        """
        existing = self.get_account(account.handle, account.network)
        if existing is not None:
            account.id = existing.id
            account.is_default = account.is_default or existing.is_default
            self.accounts = [
                account if a.id == existing.id else a for a in self.accounts
            ]
            logger.info(f"Updated account {account.full_handle()}")
        else:
            if not self.accounts:
                account.is_default = True
            self.accounts.append(account)
            logger.info(f"Added account {account.full_handle()}")

        if account.is_default:
            self._set_default(account.id)
        self._save_accounts()
        return account

    def remove_account(self, account_id: str) -> bool:
        """Remove an account, returning False when it is not registered"""
        remaining = [a for a in self.accounts if a.id != account_id]
        if len(remaining) == len(self.accounts):
            return False

        self.accounts = remaining
        self._save_accounts()
        logger.info(f"Removed account {account_id}")
        return True

    def get_default_account(self, network: Network) -> Optional[Account]:
        """Get the default account of a network"""
        for account in self.accounts:
            if account.network is network and account.is_default:
                return account
        return None

    def _set_default(self, account_id: str):
        # There is a single default across all networks
        for account in self.accounts:
            account.is_default = account.id == account_id

    def set_default_account(self, account_id: str) -> bool:
        """Make an account the default, clearing every other default"""
        if self.get_account_by_id(account_id) is None:
            return False

        self._set_default(account_id)
        self._save_accounts()
        return True

    def update_account_last_used(self, account_id: str):
        """Record that an account was just used"""
        account = self.get_account_by_id(account_id)
        if account is None:
            return

        account.last_used_at = datetime.now(timezone.utc)
        self._save_accounts()
