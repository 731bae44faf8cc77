"""
Domain models - response data and policy state.
"""

from play_licensing.models.policy import (
    DENIED,
    GRANTED,
    INDETERMINATE,
    ExpansionFile,
    PolicyResponse,
    PolicyState,
)
from play_licensing.models.response import ResponseData, decode_extras

__all__ = [
    "DENIED",
    "GRANTED",
    "INDETERMINATE",
    "ExpansionFile",
    "PolicyResponse",
    "PolicyState",
    "ResponseData",
    "decode_extras",
]
