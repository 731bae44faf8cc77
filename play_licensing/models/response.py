"""
License response models - Immutable view of one signed server response.

Wire format (pipe-delimited, extras form-encoded after the first ':' of the
last field):

    <responseCode>|<nonce>|<packageName>|<versionCode>|<userId>|<timestamp>:<extras>
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from urllib.parse import unquote_plus

from play_licensing.exceptions import MalformedResponseError

FIELD_COUNT = 6
FIELD_SEPARATOR = "|"
EXTRAS_SEPARATOR = ":"

_INTEGER = re.compile(r"-?[0-9]+")


def decode_extras(blob: str) -> dict[str, str]:
    """
    Decode a form-encoded extras blob into an ordered mapping.

    Best effort: pieces without '=' or with an empty key are skipped,
    invalid percent escapes pass through unchanged and the last occurrence
    of a key wins.
    """
    extras: dict[str, str] = {}
    if not blob:
        return extras

    for piece in blob.split("&"):
        name, sep, value = piece.partition("=")
        if not sep:
            continue
        key = unquote_plus(name)
        if not key:
            continue
        extras[key] = unquote_plus(value)

    return extras


def _parse_int(text: str, field_name: str, raw: str) -> int:
    if not _INTEGER.fullmatch(text):
        raise MalformedResponseError(f"{field_name} is not an integer: {text[:32]!r}", len(raw))
    try:
        return int(text)
    except ValueError:
        # Beyond the interpreter's integer string conversion limit
        raise MalformedResponseError(f"{field_name} has too many digits", len(raw)) from None


@dataclass(frozen=True)
class ResponseData:
    """Parsed license server response."""

    response_code: int = 0
    nonce: int = 0
    package_name: str = ""
    version_code: int = 0
    user_id: str = ""
    timestamp: int = 0
    extras: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    main_data: str = ""

    @classmethod
    def parse(cls, raw: str, *, require_all_fields: bool = False) -> "ResponseData":
        """
        Parse a raw response string.

        Short input (e.g. only a response code) yields a record with defaults
        for the missing fields, unless require_all_fields is set.

        Raises:
            MalformedResponseError: if a present numeric field is not an
                integer, or if require_all_fields is set and fields are missing
        """
        if not raw:
            if require_all_fields:
                raise MalformedResponseError("response is empty", 0)
            return cls()

        fields = raw.split(FIELD_SEPARATOR, FIELD_COUNT - 1)
        if require_all_fields and len(fields) < FIELD_COUNT:
            raise MalformedResponseError(
                f"expected {FIELD_COUNT} fields, got {len(fields)}", len(raw)
            )

        extras_blob = ""
        if len(fields) == FIELD_COUNT:
            timestamp_text, _, extras_blob = fields[-1].partition(EXTRAS_SEPARATOR)
            fields[-1] = timestamp_text

        # Pad missing trailing fields so every slot has a value to inspect
        present = len(fields)
        fields.extend([""] * (FIELD_COUNT - present))

        def numeric(index: int, name: str) -> int:
            if index >= present:
                return 0
            return _parse_int(fields[index], name, raw)

        return cls(
            response_code=numeric(0, "responseCode"),
            nonce=numeric(1, "nonce"),
            package_name=fields[2],
            version_code=numeric(3, "versionCode"),
            user_id=fields[4],
            timestamp=numeric(5, "timestamp"),
            extras=MappingProxyType(decode_extras(extras_blob)),
            main_data=FIELD_SEPARATOR.join(fields[:present]),
        )

    def get_extra(self, key: str, default: str | None = None) -> str | None:
        """Return one decoded extra, or default when the server did not send it."""
        return self.extras.get(key, default)
