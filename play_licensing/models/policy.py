"""
Policy domain models - response classification, trust state and expansion files.
"""

from dataclasses import dataclass, field
from enum import Enum


class PolicyResponse(str, Enum):
    """Outcome classification of a verified license check."""

    LICENSED = "LICENSED"
    NOT_LICENSED = "NOT_LICENSED"
    RETRY = "RETRY"


# Outcome names used by callers that think in grant/deny terms
GRANTED = PolicyResponse.LICENSED
DENIED = PolicyResponse.NOT_LICENSED
INDETERMINATE = PolicyResponse.RETRY


@dataclass(frozen=True)
class ExpansionFile:
    """Downloadable expansion file announced by a LICENSED response."""

    url: str
    file_name: str
    file_size: int

    def __post_init__(self) -> None:
        """Validate expansion file fields."""
        if self.file_size < 0:
            raise ValueError(f"Expansion file size cannot be negative: {self.file_size}")


@dataclass
class PolicyState:
    """
    Mutable trust state held by a persisting policy.

    validity_timestamp, retry_until and max_retries are always replaced
    together; all timestamps are epoch milliseconds.
    """

    last_response: PolicyResponse = PolicyResponse.RETRY
    validity_timestamp: int = 0
    retry_until: int = 0
    max_retries: int = 0
    retry_count: int = 0
    last_retry: int = 0
    licensing_url: str | None = None
    expansion_files: list[ExpansionFile] = field(default_factory=list)
