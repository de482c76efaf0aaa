"""
Control-plane errors.

Every failure raised by a component is an ``AriaControlError``. Each concrete
class carries a stable ``code`` so the instruction processor can turn it into
a structured outcome without inspecting messages. The first failing check of
an operation raises; nothing is written before all checks have passed.
"""

from __future__ import annotations


class AriaControlError(Exception):
    """Base class for all control-plane failures."""

    code = "aria_control_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class AuthorizationError(AriaControlError):
    """Missing signature, wrong role, or caller is not the required identity."""

    code = "authorization_error"


class AlreadyInitializedError(AriaControlError):
    """The target address already holds a record."""

    code = "already_initialized"


class InvariantViolation(AriaControlError):
    """The operation would break a structural invariant of a record."""

    code = "invariant_violation"


class ValidationError(AriaControlError):
    """Malformed payload, out-of-range value, or no matching record."""

    code = "validation_error"


class RecordNotFoundError(ValidationError):
    code = "record_not_found"


class ExceedsMaxTransaction(ValidationError):
    code = "exceeds_max_transaction"


class ExceedsMaxWalletHoldings(ValidationError):
    code = "exceeds_max_wallet_holdings"


class StateError(AriaControlError):
    """The operation is not valid for the record's current state."""

    code = "state_error"


class StillLocked(StateError):
    code = "still_locked"


class AlreadyClaimed(StateError):
    code = "already_claimed"


class UpgradeInProgress(StateError):
    code = "upgrade_in_progress"


class NoUpgradeScheduled(StateError):
    code = "no_upgrade_scheduled"


class UpgradeTimeNotReached(StateError):
    code = "upgrade_time_not_reached"


class TradingNotEnabled(StateError):
    code = "trading_not_enabled"


class CollaboratorFailure(AriaControlError):
    """The clock or the custody service reported a failure."""

    code = "collaborator_failure"
