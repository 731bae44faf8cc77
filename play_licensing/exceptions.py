"""
Exception Classes - Strongly typed exception hierarchy.

All exceptions carry typed attributes and build their own message.
"""


class LicensingError(Exception):
    """Base exception for all licensing errors."""

    pass


class MalformedResponseError(LicensingError):
    """Raised when a raw server response cannot be parsed into ResponseData."""

    def __init__(self, reason: str, raw_length: int) -> None:
        self.reason = reason
        self.raw_length = raw_length
        super().__init__(f"Malformed license response ({raw_length} chars): {reason}")


class ValidationException(LicensingError):
    """
    Raised when an obfuscated value cannot be recovered.

    Deliberately carries no detail: a bad token, a failed integrity check,
    a key mismatch and a wrong entity key all look identical to the caller.
    """

    MESSAGE = "Obfuscated value failed validation"

    def __init__(self) -> None:
        super().__init__(self.MESSAGE)


class ExpansionIndexError(LicensingError, IndexError):
    """Raised when an expansion file accessor is called with an out-of-range index."""

    def __init__(self, index: int, count: int) -> None:
        self.index = index
        self.count = count
        super().__init__(f"Expansion file index {index} out of range (count: {count})")


class PreferenceStorageError(LicensingError):
    """Raised when the backing preference medium cannot be written."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"Preference storage error at {path}: {message}")
