"""
Tagged results for calls that cross the persistence or analysis boundary.

Adapters return Ok(value) or Err(kind, detail) instead of raising, so
loosely-typed responses are validated once at the edge. Services call
unwrap() to turn an Err into the matching QuoteflowError.
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

from quoteflow.errors import (
    AlreadyClaimed,
    InvalidInput,
    NotFound,
    QuoteflowError,
    StaleClaim,
    TransportFailure,
)

T = TypeVar("T")

# Err kinds understood by unwrap()
NOT_FOUND = "not_found"
CONFLICT = "conflict"
STALE = "stale"
INVALID = "invalid"
TRANSPORT = "transport"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: str
    detail: str = ""
    data: Optional[dict] = None

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


_ERROR_BY_KIND: dict[str, type[QuoteflowError]] = {
    NOT_FOUND: NotFound,
    CONFLICT: AlreadyClaimed,
    STALE: StaleClaim,
    INVALID: InvalidInput,
    TRANSPORT: TransportFailure,
}


def unwrap(result: "Result[T]", **context: Any) -> T:
    """Return the Ok value or raise the error class matching the Err kind."""
    if isinstance(result, Ok):
        return result.value
    error_cls = _ERROR_BY_KIND.get(result.kind, TransportFailure)
    extra = dict(result.data or {})
    extra.update(context)
    raise error_cls(result.detail or result.kind, **extra)
