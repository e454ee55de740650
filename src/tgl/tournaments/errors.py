"""Business-rule failures raised by the tournament services.

Every error is raised before any state change becomes visible. The HTTP
layer maps them to JSON responses via ``status_code`` and ``code``.
"""

from __future__ import annotations


class TournamentError(Exception):
    """Base class for tournament business-rule failures."""

    status_code = 400
    code = "tournament_error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message()
        super().__init__(self.message)

    def default_message(self) -> str:
        return self.code.replace("_", " ").capitalize()


# ── Validation ──


class ValidationFailed(TournamentError):
    status_code = 400
    code = "validation_failed"


class InvalidQuantity(ValidationFailed):
    code = "invalid_quantity"


class InvalidRewardTiers(ValidationFailed):
    code = "invalid_reward_tiers"


class InvalidTournamentWindow(ValidationFailed):
    code = "invalid_tournament_window"


# ── Not found ──


class NotFound(TournamentError):
    status_code = 404
    code = "not_found"


class TournamentNotFound(NotFound):
    code = "tournament_not_found"

    def default_message(self) -> str:
        return "Tournament not found"


class UserNotFound(NotFound):
    code = "user_not_found"

    def default_message(self) -> str:
        return "User not found"


# ── State conflicts ──


class StateConflict(TournamentError):
    status_code = 409
    code = "state_conflict"


class TournamentNotActive(StateConflict):
    code = "tournament_not_active"

    def default_message(self) -> str:
        return "Tournament is not active"


class NotAParticipant(StateConflict):
    status_code = 403
    code = "not_a_participant"

    def default_message(self) -> str:
        return "Sender must be a tournament participant"


class RecipientNotParticipant(StateConflict):
    code = "recipient_not_participant"

    def default_message(self) -> str:
        return "Recipient must be a tournament participant"


class GiftUnavailable(StateConflict):
    code = "gift_unavailable"

    def default_message(self) -> str:
        return "Gift is not available"


class BelowMinimumGiftValue(StateConflict):
    code = "below_minimum_gift_value"


class RegistrationClosed(StateConflict):
    code = "registration_closed"

    def default_message(self) -> str:
        return "Tournament is not open for registration"


class TournamentFull(StateConflict):
    code = "tournament_full"

    def default_message(self) -> str:
        return "Tournament is full"


class AlreadyRegistered(StateConflict):
    code = "already_registered"

    def default_message(self) -> str:
        return "You are already participating in this tournament"


class InvalidStatusTransition(StateConflict):
    code = "invalid_status_transition"


class TournamentLocked(StateConflict):
    code = "tournament_locked"

    def default_message(self) -> str:
        return "Active tournaments cannot be deleted"
