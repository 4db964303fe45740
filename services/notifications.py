"""
services/notifications.py -- Outbound notification seam.

Rendering and sending email is out of scope for the portal. Services call a
Notifier; the default implementation only logs. A deployment that sends mail
replaces the module-level _notifier with its own implementation.

A notification failure is logged and swallowed by notify(): the account or
code it reports on already exists and must not be reported as failed.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.models import AccountCreationCode

logger = logging.getLogger("portal.services.notifications")


class Notifier(Protocol):
    def invitation_issued(self, code: AccountCreationCode) -> None: ...

    def account_created(self, code: AccountCreationCode, username: str) -> None: ...


class LoggingNotifier:
    def invitation_issued(self, code: AccountCreationCode) -> None:
        # The code value itself is a credential: log the id only.
        logger.info("Account creation code %s issued for %s", code.id, code.email)

    def account_created(self, code: AccountCreationCode, username: str) -> None:
        logger.info(
            "Notify user %s: account %r created with code %s",
            code.creator_user_id,
            username,
            code.id,
        )


_notifier: Notifier = LoggingNotifier()


def notify(event: str, *args) -> bool:
    """Call notifier.<event>(*args). Returns False if the notifier raised."""
    try:
        getattr(_notifier, event)(*args)
    except Exception:
        logger.exception("Notification %s failed", event)
        return False
    return True
