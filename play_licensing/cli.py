"""
play-licensing command line.

Usage:
    # Inspect a raw server response
    play-licensing parse "0|1579380448|com.example|1|ADf8I4aj|1279578835423:VT=11&GT=22&GR=33"

    # Feed one response through a policy and print the decision
    play-licensing evaluate --policy server-managed --response LICENSED \\
        --raw "0|...|1279578835423:VT=1900000000000" \\
        --salt 68f47052abf6f53d0f362cbe8ba7c06ecb7b21 --app-id com.example --device-id abc123

Exit status: 0 access allowed / parse ok, 1 access denied, 2 malformed input.
"""

import argparse
import json
import sys
from dataclasses import asdict

from play_licensing.config import settings
from play_licensing.exceptions import MalformedResponseError
from play_licensing.models.policy import PolicyResponse
from play_licensing.models.response import ResponseData
from play_licensing.observability import get_logger, log_context, setup_logging
from play_licensing.services.obfuscator import AESObfuscator
from play_licensing.services.policy import (
    APKExpansionPolicy,
    Policy,
    ServerManagedPolicy,
    StrictPolicy,
    current_millis,
)
from play_licensing.services.preferences import JsonFilePreferences

logger = get_logger(__name__)

EXIT_ALLOWED = 0
EXIT_DENIED = 1
EXIT_MALFORMED = 2

POLICIES = ("strict", "server-managed", "apk-expansion")


def _hex_bytes(value: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a hex string: {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="play-licensing",
        description="Evaluate license server responses against an access policy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_cmd = subparsers.add_parser("parse", help="Parse a raw response and print it as JSON")
    parse_cmd.add_argument("raw", help="Raw pipe-delimited response text")
    parse_cmd.add_argument(
        "--strict", action="store_true", help="Require all six response fields"
    )

    evaluate_cmd = subparsers.add_parser("evaluate", help="Process one response through a policy")
    evaluate_cmd.add_argument("--policy", choices=POLICIES, default="server-managed")
    evaluate_cmd.add_argument(
        "--response",
        choices=[r.value for r in PolicyResponse],
        required=True,
        help="Outcome classification from the verification layer",
    )
    evaluate_cmd.add_argument("--raw", help="Raw response text (omit when nothing was received)")
    evaluate_cmd.add_argument(
        "--store", default=settings.preferences_path, help="JSON preference file"
    )
    evaluate_cmd.add_argument("--salt", type=_hex_bytes, required=True, help="Salt as hex")
    evaluate_cmd.add_argument("--app-id", required=True, help="Application identifier")
    evaluate_cmd.add_argument("--device-id", required=True, help="Device identifier")
    evaluate_cmd.add_argument(
        "--now", type=int, help="Override current time (epoch milliseconds)"
    )

    return parser


def _build_policy(args: argparse.Namespace) -> Policy:
    if args.policy == "strict":
        return StrictPolicy()

    backend = JsonFilePreferences(args.store)
    obfuscator = AESObfuscator(args.salt, args.app_id, args.device_id)
    clock = (lambda: args.now) if args.now is not None else current_millis
    if args.policy == "apk-expansion":
        return APKExpansionPolicy(backend, obfuscator, clock=clock)
    return ServerManagedPolicy(backend, obfuscator, clock=clock)


def _describe(policy: Policy) -> dict[str, object]:
    summary: dict[str, object] = {
        "policy": type(policy).__name__,
        "allow_access": policy.allow_access(),
    }
    for name in ("last_response", "validity_timestamp", "retry_until", "max_retries",
                 "retry_count", "licensing_url"):
        if hasattr(policy, name):
            value = getattr(policy, name)
            summary[name] = value.value if isinstance(value, PolicyResponse) else value
    if isinstance(policy, APKExpansionPolicy):
        summary["expansion_files"] = [asdict(f) for f in policy.expansion_files]
    return summary


def cmd_parse(args: argparse.Namespace) -> int:
    try:
        data = ResponseData.parse(args.raw, require_all_fields=args.strict)
    except MalformedResponseError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_MALFORMED
    print(json.dumps(dict(vars(data), extras=dict(data.extras)), indent=2))
    return EXIT_ALLOWED


def cmd_evaluate(args: argparse.Namespace) -> int:
    try:
        data = ResponseData.parse(args.raw) if args.raw else None
    except MalformedResponseError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_MALFORMED

    with log_context(policy=args.policy, app_id=args.app_id):
        policy = _build_policy(args)
        policy.process_server_response(PolicyResponse(args.response), data)

    summary = _describe(policy)
    print(json.dumps(summary, indent=2))
    return EXIT_ALLOWED if summary["allow_access"] else EXIT_DENIED


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    logger.debug("cli_command", command=args.command)

    if args.command == "parse":
        return cmd_parse(args)
    return cmd_evaluate(args)


if __name__ == "__main__":
    sys.exit(main())
