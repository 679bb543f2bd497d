"""
Mancala Error Hierarchy

Unified exception hierarchy for the rules layer and the search engine.
All custom exceptions inherit from MancalaError for easy catching and filtering.

Usage:
    from mancala.errors import IllegalMoveError

    try:
        controller.commit_move(hole)
    except IllegalMoveError as e:
        logger.warning(f"Rejected move: {e.message}, legal: {e.legal_moves}")
"""

from typing import Any, Sequence

__all__ = [
    "ConfigurationError",
    "IllegalMoveError",
    "InvalidStateError",
    # Base error
    "MancalaError",
    # Game rules errors
    "RulesViolationError",
    # Search errors
    "SearchError",
    "SearchLifecycleError",
    "SearchWorkerError",
    # Validation errors
    "ValidationError",
]


class MancalaError(Exception):
    """Base exception for all Mancala engine errors.

    Attributes:
        code: Machine-readable error code for categorization
        message: Human-readable error description
        context: Additional context for debugging
    """
    code: str = "MANCALA_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"[{self.code}] {self.message} ({ctx})"
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Game Rules Errors
# =============================================================================


class RulesViolationError(MancalaError):
    """Invalid action per game rules."""
    code: str = "RULES_VIOLATION"


class IllegalMoveError(RulesViolationError):
    """Move that is not in the legal move set of a position.

    Raised synchronously by ``GameEngine.apply_move`` and
    ``SearchController.commit_move``. Never fatal: the rejected call leaves
    every piece of state untouched.

    Attributes:
        move: The rejected hole index
        legal_moves: The legal moves of the position the move was tried on
    """
    code: str = "ILLEGAL_MOVE"

    def __init__(
        self,
        message: str,
        move: Any = None,
        legal_moves: Sequence[int] | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        self.move = move
        self.legal_moves = list(legal_moves) if legal_moves is not None else []
        self.context["move"] = move
        self.context["legal_moves"] = self.legal_moves


class InvalidStateError(MancalaError):
    """Corrupted or unexpected game or tree state.

    Raised when an internal invariant is broken (negative stone counts,
    stone conservation, visit accounting). These are programming errors and
    abort the affected operation.
    """
    code: str = "INVALID_STATE"


# =============================================================================
# Search Errors
# =============================================================================


class SearchError(MancalaError):
    """Base class for search-engine errors."""
    code: str = "SEARCH_ERROR"


class SearchLifecycleError(SearchError):
    """Lifecycle call not allowed in the controller's current status.

    Attributes:
        current_status: Status the controller was in
        requested: The lifecycle operation that was refused
    """
    code: str = "SEARCH_LIFECYCLE"

    def __init__(
        self,
        message: str,
        current_status: str | None = None,
        requested: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        if current_status:
            self.context["current_status"] = current_status
        if requested:
            self.context["requested"] = requested


class SearchWorkerError(SearchError):
    """The background search worker died with an unexpected exception.

    Attributes:
        original_error: The exception raised inside the worker thread
    """
    code: str = "SEARCH_WORKER_FAILED"

    def __init__(
        self,
        message: str,
        original_error: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        self.original_error = original_error
        if original_error is not None:
            self.context["original_error"] = repr(original_error)


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(MancalaError):
    """Base class for validation errors."""
    code: str = "VALIDATION_ERROR"


class ConfigurationError(ValidationError):
    """Invalid configuration."""
    code: str = "CONFIGURATION_ERROR"
