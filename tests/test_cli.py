"""
Tests for the play-licensing command line.
"""

import json

import pytest

from play_licensing.cli import EXIT_ALLOWED, EXIT_DENIED, EXIT_MALFORMED, build_parser, main
from tests.conftest import APP_ID, DEVICE_ID, EXPANSION_RESPONSE, NOW, RESPONSE_PREFIX, SALT


def _identity(store) -> list[str]:
    return [
        "--store", str(store),
        "--salt", SALT.hex(),
        "--app-id", APP_ID,
        "--device-id", DEVICE_ID,
        "--now", str(NOW),
    ]


class TestParseCommand:
    """Tests for `play-licensing parse`."""

    def test_prints_fields(self, capsys):
        """A full response is printed as JSON."""
        exit_code = main(["parse", RESPONSE_PREFIX + "VT=11&GT=22&GR=33"])

        assert exit_code == EXIT_ALLOWED
        output = json.loads(capsys.readouterr().out)
        assert output["nonce"] == 1579380448
        assert output["package_name"] == APP_ID
        assert output["extras"] == {"VT": "11", "GT": "22", "GR": "33"}

    def test_malformed_exit_code(self, capsys):
        """A non-numeric nonce is reported on stderr."""
        exit_code = main(["parse", "0|abc|pkg|1|user|1"])

        assert exit_code == EXIT_MALFORMED
        assert "nonce" in capsys.readouterr().err

    def test_strict_requires_all_fields(self, capsys):
        """--strict rejects short input that the default mode accepts."""
        assert main(["parse", "0|5"]) == EXIT_ALLOWED
        capsys.readouterr()
        assert main(["parse", "--strict", "0|5"]) == EXIT_MALFORMED


class TestEvaluateCommand:
    """Tests for `play-licensing evaluate`."""

    def test_strict_policy(self, tmp_path, capsys):
        """Strict policy follows the response alone."""
        exit_code = main(["evaluate", "--policy", "strict", "--response", "LICENSED", *_identity(tmp_path / "p.json")])

        assert exit_code == EXIT_ALLOWED
        output = json.loads(capsys.readouterr().out)
        assert output["policy"] == "StrictPolicy"
        assert output["last_response"] == "LICENSED"
        assert not (tmp_path / "p.json").exists()

    def test_server_managed_persists_between_runs(self, tmp_path, capsys):
        """A grant is committed to the store and read by the next run."""
        store = tmp_path / "prefs.json"
        grant = RESPONSE_PREFIX + f"VT={NOW + 60_000}&GT={NOW + 120_000}&GR=5"

        assert main(["evaluate", "--response", "LICENSED", "--raw", grant, *_identity(store)]) == EXIT_ALLOWED
        assert store.exists()
        # Stored values are tokens, not readable timestamps
        assert str(NOW + 60_000) not in store.read_text()
        capsys.readouterr()

        assert main(["evaluate", "--response", "RETRY", *_identity(store)]) == EXIT_ALLOWED
        output = json.loads(capsys.readouterr().out)
        assert output["validity_timestamp"] == NOW + 60_000
        assert output["max_retries"] == 5
        assert output["retry_count"] == 1

    def test_denial_exit_code(self, tmp_path, capsys):
        """NOT_LICENSED exits with the denied status."""
        exit_code = main(["evaluate", "--response", "NOT_LICENSED", *_identity(tmp_path / "p.json")])

        assert exit_code == EXIT_DENIED
        assert json.loads(capsys.readouterr().out)["allow_access"] is False

    def test_expansion_files_listed(self, tmp_path, capsys):
        """The apk-expansion policy reports file descriptors."""
        main([
            "evaluate", "--policy", "apk-expansion", "--response", "LICENSED",
            "--raw", EXPANSION_RESPONSE, *_identity(tmp_path / "p.json"),
        ])

        files = json.loads(capsys.readouterr().out)["expansion_files"]
        assert [f["file_size"] for f in files] == [687801613, 204233]

    def test_malformed_raw(self, tmp_path, capsys):
        """Malformed --raw input never reaches the policy."""
        store = tmp_path / "p.json"
        exit_code = main(["evaluate", "--response", "LICENSED", "--raw", "x|1", *_identity(store)])

        assert exit_code == EXIT_MALFORMED
        assert not store.exists()

    def test_bad_salt_rejected(self):
        """Non-hex salt is an argument error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(
                ["evaluate", "--response", "LICENSED", "--salt", "zz", "--app-id", "a", "--device-id", "d"]
            )
