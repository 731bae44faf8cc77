"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fixtures for testing:
- Install identity (salt, app id, device id) and obfuscators
- In-memory preference backends sharing one storage dict
- A controllable clock for timer-driven policies
- Sample license server responses
"""

import pytest

from play_licensing.services.obfuscator import AESObfuscator
from play_licensing.services.preferences import MemoryPreferences, PreferenceObfuscator

SALT = bytes(
    b & 0xFF
    for b in (104, -12, 112, 82, -85, -10, -11, 61, 15, 54, 44, -66, -117, -89, -64, 110, -53, 123, 33)
)
APP_ID = "com.example.android.market.licensing"
DEVICE_ID = "device"

RESPONSE_PREFIX = (
    "0|1579380448|com.example.android.market.licensing|1|"
    "ADf8I4ajjgc1P5ZI1S1DN/YIPIUNPECLrg==|1279578835423:"
)
TIMERS_RESPONSE = RESPONSE_PREFIX + "VT=11&GT=22&GR=33"
SMALL_TIMERS_RESPONSE = RESPONSE_PREFIX + "VT=1&GT=2&GR=3"
LICENSING_URL_RESPONSE = (
    RESPONSE_PREFIX
    + "LU=https%3A%2F%2Fplay.google.com%2Fstore%2Fapps%2Fdetails%3Fid%3Dcom.example.android.market.licensing"
)
LICENSING_URL = "https://play.google.com/store/apps/details?id=com.example.android.market.licensing"
ENCODED_EXTRAS_RESPONSE = RESPONSE_PREFIX + "VT=1&test=hello%20world%20%26%20friends&GT=2&GR=3"

FILE_URL_1 = (
    "http://jmt17.google.com/vending_kila/download/AppDownload?packageName=com.example.android"
    ".market.licensing&versionCode=3&ft=o&token=AOTCm0RwlzqFYylBNSCTLJApGH0cYtm9g8mGMdUhKLSLJW4v9"
    "VM8GLj4GVlGU5oyW6y3FsXrJiQqMunTGw9B"
)
FILE_URL_2 = (
    "http://jmt17.google.com/vending_kila/download/AppDownload?packageName=com.example.android"
    ".market.licensing&versionCode=3&ft=o&token=AOTCm0RwlzqFYylBNSCTLJApGH0cYtm9g8mGMdUhKLSLJW4v9"
    "VM8GLsdSDjefsdfEKdVaseEsfaMeifTek9B"
)
EXPANSION_RESPONSE = (
    RESPONSE_PREFIX
    + "VT=11&GT=22&GR=33"
    + "&FILE_URL1=http://jmt17.google.com/vending_kila/download/AppDownload?packageName%3Dcom"
    ".example.android.market.licensing%26versionCode%3D3%26ft%3Do%26token%3DAOTCm0RwlzqFYylBNSCT"
    "LJApGH0cYtm9g8mGMdUhKLSLJW4v9VM8GLj4GVlGU5oyW6y3FsXrJiQqMunTGw9B"
    + "&FILE_NAME1=main.3.com.example.android.market.licensing.obb&FILE_SIZE1=687801613"
    + "&FILE_URL2=http://jmt17.google.com/vending_kila/download/AppDownload?packageName%3Dcom"
    ".example.android.market.licensing%26versionCode%3D3%26ft%3Do%26token%3DAOTCm0RwlzqFYylBNSCT"
    "LJApGH0cYtm9g8mGMdUhKLSLJW4v9VM8GLsdSDjefsdfEKdVaseEsfaMeifTek9B"
    + "&FILE_NAME2=patch.3.com.example.android.market.licensing.obb&FILE_SIZE2=204233"
)

# Fixed "now" used by policy tests (epoch milliseconds)
NOW = 1_700_000_000_000


class FakeClock:
    """Callable clock returning a settable epoch-millisecond time."""

    def __init__(self, now: int = NOW) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis


@pytest.fixture
def obfuscator() -> AESObfuscator:
    """Obfuscator bound to the test install identity."""
    return AESObfuscator(SALT, APP_ID, DEVICE_ID)


@pytest.fixture
def storage() -> dict[str, str]:
    """Raw committed contents of the unprotected medium."""
    return {}


@pytest.fixture
def backend(storage: dict[str, str]) -> MemoryPreferences:
    """In-memory backend over the shared storage dict."""
    return MemoryPreferences(storage)


@pytest.fixture
def prefs(backend: MemoryPreferences, obfuscator: AESObfuscator) -> PreferenceObfuscator:
    """Obfuscated preference store over the in-memory backend."""
    return PreferenceObfuscator(backend, obfuscator)


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at NOW."""
    return FakeClock()
