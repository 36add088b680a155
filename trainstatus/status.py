"""
Status values and the immutable records passed between the controller and views.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Status(Enum):
    """Intersection status as shown to the user."""
    UNKNOWN = "unknown"    # No check has finished yet
    CHECKING = "checking"  # A detector call is in flight
    CLEAR = "clear"
    BLOCKED = "blocked"
    ERROR = "error"        # Last check couldn't determine the status


@dataclass(frozen=True)
class Verdict:
    """Outcome of one detection attempt."""
    blocking: bool
    reason: Optional[str] = None

    @property
    def status(self) -> Status:
        return Status.BLOCKED if self.blocking else Status.CLEAR


@dataclass(frozen=True)
class StatusSnapshot:
    """
    The controller's most recent state.

    last_checked_at is the time of the last successful detection and is
    carried forward through Checking and Error snapshots.
    """
    status: Status = Status.UNKNOWN
    last_checked_at: Optional[datetime] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'status': self.status.value,
            'last_checked_at': self.last_checked_at.isoformat() if self.last_checked_at else None,
            'reason': self.reason,
        }
