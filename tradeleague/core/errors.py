"""Error taxonomy of the tournament engine.

Services raise these instead of ``HTTPException`` so that the scheduler can
run the same code paths; ``tradeleague.main`` maps them onto HTTP responses
using ``status_code``.
"""


class EngineError(Exception):
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(EngineError):
    status_code = 400


class NotFoundError(EngineError):
    status_code = 404


class InsufficientFunds(EngineError):
    status_code = 400


class InsufficientShares(EngineError):
    status_code = 400


class AlreadyParticipating(EngineError):
    status_code = 409


class TournamentFull(EngineError):
    status_code = 409


class WrongState(EngineError):
    status_code = 409


class NotCreator(EngineError):
    status_code = 403


class NotAuthorized(EngineError):
    status_code = 403


class ConcurrencyConflict(EngineError):
    """A conditional update matched no row: someone else got there first."""
    status_code = 409


class PersistenceError(EngineError):
    status_code = 500


class QuoteUnavailable(EngineError):
    # Never shown to end users; valuation falls back to the last purchase price.
    status_code = 503
