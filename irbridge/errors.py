"""
Regularization Errors

A regularization run either completes or aborts with a RegularizationError
whose `kind` tells the caller which class of condition stopped it.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    """Discriminates the non-recoverable conditions of a run."""
    # Input does not have a shape the rewrites know how to handle
    PRECONDITION = "precondition"
    # A value was about to be erased while something still referenced it
    DEAD_REFERENCE = "dead-reference"
    # The rewritten program still contains constructs the encoder rejects
    VERIFICATION = "verification"


class RegularizationError(RuntimeError):
    """Raised when regularization cannot produce a correct program."""

    def __init__(self, kind: ErrorKind, message: str, value: Optional[Any] = None):
        super().__init__(f"[{kind.value}] {message}")
        self.kind = kind
        self.message = message
        self.value = value


def precondition(message: str, value: Optional[Any] = None) -> RegularizationError:
    return RegularizationError(ErrorKind.PRECONDITION, message, value)


def dead_reference(message: str, value: Optional[Any] = None) -> RegularizationError:
    return RegularizationError(ErrorKind.DEAD_REFERENCE, message, value)
