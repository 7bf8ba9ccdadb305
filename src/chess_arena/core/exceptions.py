"""Custom exceptions, one hierarchy for all layers. The service lets these propagate to the API layer."""


class ArenaError(Exception):
    """Top-level exception of the arena."""


# --- INPUT ERRORS ---
class InvalidRequestError(ArenaError):
    """Request rejected synchronously, nothing was mutated."""


class InvalidSideError(InvalidRequestError):
    pass


class InvalidStakeError(InvalidRequestError):
    pass


class BettingClosedError(InvalidRequestError):
    pass


class DuplicateBetError(InvalidRequestError):
    pass


class InvalidPlaystyleError(InvalidRequestError):
    pass


class DuplicateAgentError(InvalidRequestError):
    pass


class InvalidPairingError(InvalidRequestError):
    pass


class AgentBusyError(InvalidRequestError):
    """Agent is already referenced by a non-completed match."""


# --- LOOKUP ERRORS ---
class NotFoundError(ArenaError):
    pass


class AgentNotFoundError(NotFoundError):
    pass


class MatchNotFoundError(NotFoundError):
    pass


# --- STATE / DECISION ERRORS ---
class MatchStateError(ArenaError):
    """Operation not allowed in the current phase of the match."""


class DecisionError(ArenaError):
    """The brain produced no move for a position the rules engine considers playable."""


# --- COLLABORATOR ERRORS ---
class RepositoryError(ArenaError):
    pass


class ConcurrentUpdateError(RepositoryError):
    """Optimistic version check failed: someone else wrote the match first."""
