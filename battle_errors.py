"""
Battle Errors - Exceptions raised by the battle engine and its stores
"""

from typing import Optional


class BattleError(Exception):
    """Base class for every battle failure surfaced to a request."""

    kind = "BattleError"

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if kind:
            self.kind = kind


class ValidationError(BattleError):
    """The submitted action was rejected. Nothing was changed."""

    NOT_YOUR_TURN = "NotYourTurn"
    ENTITY_NOT_OWNED = "EntityNotOwned"
    MALFORMED_ACTION = "MalformedAction"
    BATTLE_NOT_IN_PROGRESS = "BattleNotInProgress"
    NOT_PARTICIPANT = "NotParticipant"

    kind = MALFORMED_ACTION


class NotFoundError(BattleError):
    """A battle or entity does not exist."""

    kind = "NotFound"


class ConflictError(BattleError):
    """The caller's view of the battle was stale; reload and re-validate."""

    kind = "Conflict"


class SettlementError(BattleError):
    """Post-battle settlement failed and was rolled back as a whole."""

    kind = "SettlementError"
