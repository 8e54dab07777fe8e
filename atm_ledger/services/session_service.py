"""
Session service — resolves a user id and PIN to an account.

This is the boundary with the login screen, not a security layer.
It only answers "which account is this?"; the account id it yields
is then passed explicitly into every ledger call.
"""

import logging

from atm_ledger.errors import AccountNotFound, InvalidCredentials
from atm_ledger.services.account_store import AccountSnapshot, AccountStore

logger = logging.getLogger(__name__)


class SessionService:

    def __init__(self, accounts: AccountStore):
        self.accounts = accounts

    def login(self, user_id: str, pin: str) -> AccountSnapshot:
        """
        Return the account for this user id if the PIN matches.

        Unknown user ids and wrong PINs fail identically so the
        response does not reveal which user ids exist.
        """
        if not self.accounts.check_pin(user_id, pin):
            logger.info("Login rejected", extra={"operation": "login"})
            raise InvalidCredentials(f"Login rejected for user id '{user_id}'")
        try:
            return self.accounts.get_by_user_id(user_id)
        except AccountNotFound:
            raise InvalidCredentials(f"Login rejected for user id '{user_id}'") from None
