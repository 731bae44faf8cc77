"""
Play Licensing - offline-capable license policy engine.

Turns verified license server responses into an access decision and keeps
the resulting trust state in obfuscated, install-bound local storage.
"""

from play_licensing.exceptions import (
    ExpansionIndexError,
    LicensingError,
    MalformedResponseError,
    PreferenceStorageError,
    ValidationException,
)
from play_licensing.models import (
    DENIED,
    GRANTED,
    INDETERMINATE,
    ExpansionFile,
    PolicyResponse,
    ResponseData,
)
from play_licensing.services import (
    AESObfuscator,
    APKExpansionPolicy,
    JsonFilePreferences,
    MemoryPreferences,
    PreferenceObfuscator,
    ServerManagedPolicy,
    StrictPolicy,
)

__all__ = [
    "AESObfuscator",
    "APKExpansionPolicy",
    "DENIED",
    "ExpansionFile",
    "ExpansionIndexError",
    "GRANTED",
    "INDETERMINATE",
    "JsonFilePreferences",
    "LicensingError",
    "MalformedResponseError",
    "MemoryPreferences",
    "PolicyResponse",
    "PreferenceObfuscator",
    "PreferenceStorageError",
    "ResponseData",
    "ServerManagedPolicy",
    "StrictPolicy",
    "ValidationException",
]
