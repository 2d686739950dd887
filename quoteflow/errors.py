"""
Error taxonomy for the quoting core.

Every error carries a stable error_code and a context dict so callers
can render a message (current state, attempted transition, claimant).
"""

from typing import Any, Optional


class QuoteflowError(Exception):
    """Base class for all quoting core errors."""

    error_code = "ERR_QUOTEFLOW"
    retryable = False

    def __init__(self, message: str, error_code: Optional[str] = None, **context: Any):
        self.message = message
        if error_code:
            self.error_code = error_code
        self.context = {k: v for k, v in context.items() if v is not None}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
            "retryable": self.retryable,
        }


class InvalidInput(QuoteflowError):
    """Malformed or out-of-range values, rejected before any calculation."""
    error_code = "ERR_INVALID_INPUT"


class NotFound(QuoteflowError):
    error_code = "ERR_NOT_FOUND"


class AlreadyClaimed(QuoteflowError):
    """Another staff member holds the claim; caller decides whether to override."""
    error_code = "ERR_ALREADY_CLAIMED"


class StaleClaim(QuoteflowError):
    """The claim changed hands between read and write."""
    error_code = "ERR_STALE_CLAIM"


class InsufficientRole(QuoteflowError):
    """Override attempted without a strictly higher role."""
    error_code = "ERR_INSUFFICIENT_ROLE"


class InvalidTransition(QuoteflowError):
    error_code = "ERR_INVALID_TRANSITION"


class TerminalStateViolation(QuoteflowError):
    """Mutation attempted against a rejected or escalated review."""
    error_code = "ERR_TERMINAL_STATE"


class AnalysisTimeout(QuoteflowError):
    """Raised by the watchdog when the poll cap is reached."""
    error_code = "ERR_ANALYSIS_TIMEOUT"


class TransportFailure(QuoteflowError):
    """A network or persistence call failed. Safe to retry."""
    error_code = "ERR_TRANSPORT"
    retryable = True
