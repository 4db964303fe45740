"""
auth/invitations.py -- Account creation code generation and state.

A code is human-enterable (uppercase letters and digits) because it travels by
email and gets typed in by hand. Entropy comes from secrets.choice, never from
random.

Layer rule: no imports from api/, db/, or services/.
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auth.models import AccountCreationCode

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_account_creation_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class InvitationState(str, Enum):
    ISSUED = "issued"
    REDEEMED = "redeemed"
    REVOKED = "revoked"
    EXPIRED = "expired"


def invitation_state(code: AccountCreationCode, now: datetime) -> InvitationState:
    """Derive the lifecycle state of a code.

    REDEEMED and REVOKED are stored transitions; EXPIRED is derived from the
    clock. Revocation is reported first because it is the deliberate act.
    """
    if code.revoked_timestamp is not None:
        return InvitationState.REVOKED
    if code.used_timestamp is not None:
        return InvitationState.REDEEMED
    if now >= code.expiration_timestamp:
        return InvitationState.EXPIRED
    return InvitationState.ISSUED
