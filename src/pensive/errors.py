"""Exception types raised by the engine.

Only call-aborting conditions are exceptions. Scope violations, hierarchy
cycles and malformed rule conditions are reported as structured result
items instead.
"""

from __future__ import annotations

from dataclasses import dataclass


class PensiveError(Exception):
    """Base class for all engine errors."""


@dataclass
class FandomNotFoundError(PensiveError):
    """Raised when a call names a fandom that is missing or inactive.

    Attributes:
        fandom_id: The fandom that was requested.
        inactive: True when the fandom exists but is deactivated.
    """

    fandom_id: str
    inactive: bool = False

    def __post_init__(self) -> None:
        state = "inactive" if self.inactive else "not found"
        super().__init__(f"Fandom '{self.fandom_id}' {state}")


@dataclass
class StoreReadError(PensiveError):
    """Raised when a taxonomy or rule read fails.

    Wraps the underlying failure so callers see a single error type and no
    partially computed result.

    Attributes:
        operation: The read that failed (e.g. ``"list_active_rules"``).
        fandom_id: Fandom the read was scoped to.
        reason: Description of the underlying failure.
    """

    operation: str
    fandom_id: str
    reason: str = ""

    def __post_init__(self) -> None:
        msg = f"Store read '{self.operation}' failed for fandom '{self.fandom_id}'"
        if self.reason:
            msg += f": {self.reason}"
        super().__init__(msg)
