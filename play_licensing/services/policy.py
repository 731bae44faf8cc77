"""
Access policies - decide whether the application may run.

Three variants share one capability surface (process_server_response,
allow_access):

- StrictPolicy: in-memory, allows access only after a LICENSED response.
- ServerManagedPolicy: persists server-issued validity and retry timers
  through a PreferenceObfuscator so offline checks survive restarts.
- APKExpansionPolicy: a ServerManagedPolicy that also keeps the expansion
  file descriptors carried by LICENSED responses.

Timer and retry rules live in module functions; the persisting variants
share one implementation through subclassing. All timestamps are epoch
milliseconds.
"""

import time
from collections.abc import Callable
from typing import Protocol

from structlog import get_logger

from play_licensing.exceptions import ExpansionIndexError
from play_licensing.models.policy import ExpansionFile, PolicyResponse, PolicyState
from play_licensing.models.response import ResponseData
from play_licensing.services.obfuscator import Obfuscator
from play_licensing.services.preferences import PreferenceBackend, PreferenceObfuscator

logger = get_logger(__name__)

# Extras consumed from server responses
EXTRA_VALIDITY_TIMESTAMP = "VT"
EXTRA_RETRY_UNTIL = "GT"
EXTRA_MAX_RETRIES = "GR"
EXTRA_LICENSING_URL = "LU"
EXTRA_FILE_URL = "FILE_URL"
EXTRA_FILE_NAME = "FILE_NAME"
EXTRA_FILE_SIZE = "FILE_SIZE"

# Persisted preference keys
PREF_LAST_RESPONSE = "lastResponse"
PREF_VALIDITY_TIMESTAMP = "validityTimestamp"
PREF_RETRY_UNTIL = "retryUntil"
PREF_MAX_RETRIES = "maxRetries"
PREF_RETRY_COUNT = "retryCount"
PREF_LAST_RETRY = "lastRetry"
PREF_LICENSING_URL = "licensingUrl"
PREF_EXPANSION_COUNT = "expansionCount"
PREF_EXPANSION_URL = "expansionUrl"
PREF_EXPANSION_NAME = "expansionName"
PREF_EXPANSION_SIZE = "expansionSize"

MAIN_FILE_URL_INDEX = 0
PATCH_FILE_URL_INDEX = 1

Clock = Callable[[], int]


def current_millis() -> int:
    """Wall clock in epoch milliseconds."""
    return time.time_ns() // 1_000_000


class Policy(Protocol):
    """
    Access policy protocol.

    process_server_response() is the only mutator; allow_access() is a pure
    query that must deny before any response has been processed.
    """

    def process_server_response(
        self, response: PolicyResponse, data: ResponseData | None = None
    ) -> None:
        """
        Update policy state from one classified server response.

        Args:
            response: Outcome classification from the verification layer
            data: Parsed response, or None when nothing could be parsed
        """
        ...

    def allow_access(self) -> bool:
        """Return True when the application may currently run."""
        ...


# ============================================================================
# Shared helpers
# ============================================================================


def _parse_int(value: str | None) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except ValueError:
        return 0


def _extra(data: ResponseData | None, name: str) -> str | None:
    if data is None:
        return None
    return data.extras.get(name)


def apply_response(
    state: PolicyState,
    response: PolicyResponse,
    data: ResponseData | None,
    now: int,
) -> None:
    """
    Apply one classified response to the trust state.

    LICENSED replaces validity/retry timers wholesale from VT/GT/GR (missing
    or unparseable values become 0). NOT_LICENSED zeroes them regardless of
    extras. RETRY leaves them untouched and records the attempt.
    """
    if response is PolicyResponse.LICENSED:
        state.validity_timestamp = _parse_int(_extra(data, EXTRA_VALIDITY_TIMESTAMP))
        state.retry_until = _parse_int(_extra(data, EXTRA_RETRY_UNTIL))
        state.max_retries = _parse_int(_extra(data, EXTRA_MAX_RETRIES))
        state.retry_count = 0
        state.licensing_url = None
    elif response is PolicyResponse.NOT_LICENSED:
        clear_trust(state)
        state.retry_count = 0
        state.licensing_url = _extra(data, EXTRA_LICENSING_URL)
    else:
        state.retry_count += 1
        state.last_retry = now
        licensing_url = _extra(data, EXTRA_LICENSING_URL)
        if licensing_url is not None:
            state.licensing_url = licensing_url

    state.last_response = response


def clear_trust(state: PolicyState) -> None:
    """Zero validity and retry timers together."""
    state.validity_timestamp = 0
    state.retry_until = 0
    state.max_retries = 0


def timer_allows_access(state: PolicyState, now: int) -> bool:
    """
    Evaluate the offline access rule.

    A grant is honoured until its validity timestamp. After a RETRY
    outcome, access continues until retry_until while retries remain.
    """
    if now < state.validity_timestamp:
        return True
    return (
        state.last_response is PolicyResponse.RETRY
        and now < state.retry_until
        and state.max_retries > 0
    )


def load_state(prefs: PreferenceObfuscator) -> PolicyState:
    """Restore trust state; unreadable values fall back to the initial deny state."""
    raw_response = prefs.get_string(PREF_LAST_RESPONSE, None)
    try:
        last_response = PolicyResponse(raw_response)
    except ValueError:
        last_response = PolicyResponse.RETRY

    return PolicyState(
        last_response=last_response,
        validity_timestamp=_parse_int(prefs.get_string(PREF_VALIDITY_TIMESTAMP, None)),
        retry_until=_parse_int(prefs.get_string(PREF_RETRY_UNTIL, None)),
        max_retries=_parse_int(prefs.get_string(PREF_MAX_RETRIES, None)),
        retry_count=_parse_int(prefs.get_string(PREF_RETRY_COUNT, None)),
        last_retry=_parse_int(prefs.get_string(PREF_LAST_RETRY, None)),
        licensing_url=prefs.get_string(PREF_LICENSING_URL, None),
    )


def save_state(prefs: PreferenceObfuscator, state: PolicyState) -> None:
    """Stage every trust field; the caller commits."""
    prefs.put_string(PREF_LAST_RESPONSE, state.last_response.value)
    prefs.put_string(PREF_VALIDITY_TIMESTAMP, str(state.validity_timestamp))
    prefs.put_string(PREF_RETRY_UNTIL, str(state.retry_until))
    prefs.put_string(PREF_MAX_RETRIES, str(state.max_retries))
    prefs.put_string(PREF_RETRY_COUNT, str(state.retry_count))
    prefs.put_string(PREF_LAST_RETRY, str(state.last_retry))
    prefs.put_string(PREF_LICENSING_URL, state.licensing_url)


def parse_expansion_files(data: ResponseData | None) -> list[ExpansionFile]:
    """Read FILE_URLn/FILE_NAMEn/FILE_SIZEn triples, stopping at the first missing URL."""
    files: list[ExpansionFile] = []
    index = 1
    while True:
        url = _extra(data, f"{EXTRA_FILE_URL}{index}")
        if url is None:
            return files
        size = _parse_int(_extra(data, f"{EXTRA_FILE_SIZE}{index}"))
        files.append(
            ExpansionFile(
                url=url,
                file_name=_extra(data, f"{EXTRA_FILE_NAME}{index}") or "",
                file_size=max(size, 0),
            )
        )
        index += 1


def load_expansion_files(prefs: PreferenceObfuscator) -> list[ExpansionFile]:
    files: list[ExpansionFile] = []
    for index in range(_parse_int(prefs.get_string(PREF_EXPANSION_COUNT, None))):
        url = prefs.get_string(f"{PREF_EXPANSION_URL}{index}", None)
        if url is None:
            break
        files.append(
            ExpansionFile(
                url=url,
                file_name=prefs.get_string(f"{PREF_EXPANSION_NAME}{index}", "") or "",
                file_size=max(_parse_int(prefs.get_string(f"{PREF_EXPANSION_SIZE}{index}", None)), 0),
            )
        )
    return files


def save_expansion_files(
    prefs: PreferenceObfuscator, files: list[ExpansionFile], previous_count: int
) -> None:
    """Stage the descriptor list, removing slots left over from a longer list."""
    prefs.put_string(PREF_EXPANSION_COUNT, str(len(files)))
    for index, expansion in enumerate(files):
        prefs.put_string(f"{PREF_EXPANSION_URL}{index}", expansion.url)
        prefs.put_string(f"{PREF_EXPANSION_NAME}{index}", expansion.file_name)
        prefs.put_string(f"{PREF_EXPANSION_SIZE}{index}", str(expansion.file_size))
    for index in range(len(files), previous_count):
        prefs.remove(f"{PREF_EXPANSION_URL}{index}")
        prefs.remove(f"{PREF_EXPANSION_NAME}{index}")
        prefs.remove(f"{PREF_EXPANSION_SIZE}{index}")


def _log_processed(policy: object, state: PolicyState) -> None:
    logger.info(
        "policy_response_processed",
        policy=type(policy).__name__,
        response=state.last_response.value,
        validity_timestamp=state.validity_timestamp,
        retry_until=state.retry_until,
        max_retries=state.max_retries,
        retry_count=state.retry_count,
        has_licensing_url=state.licensing_url is not None,
    )


# ============================================================================
# Policies
# ============================================================================


class StrictPolicy:
    """
    Non-caching policy.

    Access is allowed only while the most recent response was LICENSED.
    Nothing is persisted, so every process start needs a fresh check.
    """

    def __init__(self) -> None:
        self._last_response = PolicyResponse.RETRY
        self._licensing_url: str | None = None

    def process_server_response(
        self, response: PolicyResponse, data: ResponseData | None = None
    ) -> None:
        response = PolicyResponse(response)
        self._licensing_url = None
        if response is PolicyResponse.NOT_LICENSED:
            self._licensing_url = _extra(data, EXTRA_LICENSING_URL)
        self._last_response = response

        logger.info(
            "policy_response_processed",
            policy=type(self).__name__,
            response=response.value,
            has_licensing_url=self._licensing_url is not None,
        )

    def allow_access(self) -> bool:
        return self._last_response is PolicyResponse.LICENSED

    @property
    def last_response(self) -> PolicyResponse:
        return self._last_response

    @property
    def licensing_url(self) -> str | None:
        return self._licensing_url


class ServerManagedPolicy:
    """
    Policy driven by server-issued timers.

    LICENSED responses carry VT (validity timestamp), GT (retry-until
    timestamp) and GR (max retries). State is persisted through an
    obfuscated preference store and committed after every response.

    Usage:
        policy = ServerManagedPolicy(JsonFilePreferences(path), obfuscator)
        policy.process_server_response(PolicyResponse.LICENSED, ResponseData.parse(raw))
        if not policy.allow_access():
            show_licensing_url(policy.licensing_url)
    """

    def __init__(
        self,
        backend: PreferenceBackend,
        obfuscator: Obfuscator,
        clock: Clock = current_millis,
    ) -> None:
        self._prefs = PreferenceObfuscator(backend, obfuscator)
        self._clock = clock
        self._state = load_state(self._prefs)

    def process_server_response(
        self, response: PolicyResponse, data: ResponseData | None = None
    ) -> None:
        response = PolicyResponse(response)
        apply_response(self._state, response, data, self._clock())
        save_state(self._prefs, self._state)
        self._stage_extra_state(response, data)
        self._prefs.commit()
        _log_processed(self, self._state)

    def _stage_extra_state(self, response: PolicyResponse, data: ResponseData | None) -> None:
        """Hook for subclasses persisting more than the trust timers."""

    def allow_access(self) -> bool:
        return timer_allows_access(self._state, self._clock())

    def consume_retry(self) -> None:
        """Spend one offline retry; the caller decides when a retry counts."""
        self._state.max_retries = max(self._state.max_retries - 1, 0)
        self._prefs.put_string(PREF_MAX_RETRIES, str(self._state.max_retries))
        self._prefs.commit()

    def reset_policy(self) -> None:
        """Forget all persisted state and return to the initial deny state."""
        self._prefs.clear()
        self._prefs.commit()
        self._state = PolicyState()
        logger.info("policy_reset", policy=type(self).__name__)

    @property
    def last_response(self) -> PolicyResponse:
        return self._state.last_response

    @property
    def validity_timestamp(self) -> int:
        return self._state.validity_timestamp

    @property
    def retry_until(self) -> int:
        return self._state.retry_until

    @property
    def max_retries(self) -> int:
        return self._state.max_retries

    @property
    def retry_count(self) -> int:
        return self._state.retry_count

    @property
    def last_retry(self) -> int:
        return self._state.last_retry

    @property
    def licensing_url(self) -> str | None:
        return self._state.licensing_url


class APKExpansionPolicy(ServerManagedPolicy):
    """
    Server-managed policy that also tracks APK expansion files.

    A LICENSED response replaces the descriptor list; NOT_LICENSED and RETRY
    leave it alone so an interrupted download can resume. reset_policy()
    forgets the descriptors along with the timers.
    """

    def __init__(
        self,
        backend: PreferenceBackend,
        obfuscator: Obfuscator,
        clock: Clock = current_millis,
    ) -> None:
        super().__init__(backend, obfuscator, clock)
        self._state.expansion_files = load_expansion_files(self._prefs)

    def _stage_extra_state(self, response: PolicyResponse, data: ResponseData | None) -> None:
        if response is not PolicyResponse.LICENSED:
            return
        previous_count = len(self._state.expansion_files)
        self._state.expansion_files = parse_expansion_files(data)
        save_expansion_files(self._prefs, self._state.expansion_files, previous_count)

    def _expansion_file(self, index: int) -> ExpansionFile:
        files = self._state.expansion_files
        if not 0 <= index < len(files):
            raise ExpansionIndexError(index, len(files))
        return files[index]

    def get_expansion_url_count(self) -> int:
        return len(self._state.expansion_files)

    def get_expansion_url(self, index: int) -> str:
        """
        Raises:
            ExpansionIndexError: If index is outside the stored descriptors
        """
        return self._expansion_file(index).url

    def get_expansion_file_name(self, index: int) -> str:
        return self._expansion_file(index).file_name

    def get_expansion_file_size(self, index: int) -> int:
        return self._expansion_file(index).file_size

    @property
    def expansion_files(self) -> tuple[ExpansionFile, ...]:
        return tuple(self._state.expansion_files)
