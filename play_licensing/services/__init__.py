"""
Services - obfuscation, obfuscated preference storage and access policies.
"""

from play_licensing.services.obfuscator import AESObfuscator, Obfuscator
from play_licensing.services.policy import (
    APKExpansionPolicy,
    Policy,
    ServerManagedPolicy,
    StrictPolicy,
)
from play_licensing.services.preferences import (
    JsonFilePreferences,
    MemoryPreferences,
    PreferenceBackend,
    PreferenceObfuscator,
)

__all__ = [
    "AESObfuscator",
    "APKExpansionPolicy",
    "JsonFilePreferences",
    "MemoryPreferences",
    "Obfuscator",
    "Policy",
    "PreferenceBackend",
    "PreferenceObfuscator",
    "ServerManagedPolicy",
    "StrictPolicy",
]
