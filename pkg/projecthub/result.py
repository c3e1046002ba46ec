"""
Tagged results returned by every synchronizer and view operation.

    Ok(value)           the operation went through; value is the row or cache
    Err(kind, message)  the operation failed; kind is an ErrorKind
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class ErrorKind(Enum):
    """Failure taxonomy shared by the backends and the views."""
    TRANSPORT = "transport"    # Network / connection failure
    QUERY = "query"            # Rejected by the data service (constraint, bad column)
    NOT_FOUND = "not_found"    # Update/delete targeted a missing row
    DISPOSED = "disposed"      # The view owning the operation was closed
    CANCELLED = "cancelled"    # The user declined a confirmation prompt


@dataclass(frozen=True)
class Ok:
    value: Any = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str = ""

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok, Err]
