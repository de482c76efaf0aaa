"""Caller checks shared by every component."""

from __future__ import annotations

from aria_control.core.errors import AuthorizationError
from aria_control.core.schema import AccountRef


def require_signer(account: AccountRef) -> None:
    """Reject ``account`` unless the host marked it as a signer."""
    if not account.is_signer:
        raise AuthorizationError(f"Required signature missing for {account.key}")


def require_identity(account: AccountRef, expected: str, what: str) -> None:
    """Reject ``account`` unless it signed and is exactly ``expected``."""
    require_signer(account)
    if account.key != expected:
        raise AuthorizationError(f"{account.key} is not the {what}")
