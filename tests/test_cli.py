"""
Tests for the sentinel CLI.

Commands run in-process through main(argv) against a store in tmp_path.
"""

import json
import os
import signal
import threading

import pytest

from sentinel import __version__
from sentinel.cli import EXIT_ERROR, EXIT_NOT_FOUND, EXIT_OK, build_spec, build_parser, main
from sentinel.scheduler import (
    ExecAction,
    JobSpec,
    KvPutAction,
    LegacySpec,
    U32,
    open_default,
)
from sentinel.scheduler.persistence import HEARTBEAT_KEY, U64, spec_key


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "kv"


@pytest.fixture
def run_cli(data_dir, capsys):
    """Run main() against data_dir; returns (exit_code, stdout, stderr)."""

    def _run(*argv):
        code = main(["--data-dir", str(data_dir), *argv])
        out, err = capsys.readouterr()
        return code, out, err

    return _run


class TestParser:

    def test_no_command_prints_help(self, capsys):
        assert main([]) == EXIT_ERROR
        assert "usage" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_build_spec_exec(self):
        args = build_parser().parse_args(
            ["jobs", "add", "x", "--period-ms", "10", "--exec", "echo",
             "--arg", "a", "--arg", "b", "--timeout-ms", "500"]
        )

        assert build_spec(args) == JobSpec(
            period_ms=10, action=ExecAction(cmd="echo", args=("a", "b"), timeout_ms=500)
        )

    def test_build_spec_kv_put_parses_integers(self):
        args = build_parser().parse_args(
            ["jobs", "add", "x", "--period-ms", "10", "--kv-put", "k", "--decode", "u32", "--value", "7"]
        )

        assert build_spec(args).action == KvPutAction(key="k", decode="u32", value=7)

    def test_build_spec_legacy(self):
        args = build_parser().parse_args(["jobs", "add", "x", "--period-ms", "5", "--legacy-cmd", "noop"])

        assert build_spec(args) == LegacySpec(cmd="noop", period_ms=5)

    def test_actions_are_mutually_exclusive(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["jobs", "add", "x", "--noop", "--kv-del", "k"])


class TestJobsCommands:

    def test_add_list_rm(self, run_cli):
        code, out, _ = run_cli("jobs", "add", "tick", "--period-ms", "1000")
        assert code == EXIT_OK
        assert out.strip() == "ok tick"

        code, out, _ = run_cli("jobs", "list")
        assert code == EXIT_OK
        jobs = json.loads(out)
        assert [j["id"] for j in jobs] == ["tick"]
        assert jobs[0]["spec"] == {"period_ms": 1000, "action": {"type": "noop"}}

        code, out, _ = run_cli("jobs", "rm", "tick")
        assert (code, out.strip()) == (EXIT_OK, "ok tick")

        code, out, _ = run_cli("jobs", "rm", "tick")
        assert (code, out.strip()) == (EXIT_OK, "absent tick")

    def test_add_from_json(self, run_cli, data_dir):
        spec = {"period_ms": 50, "action": {"type": "kv_del", "key": "old"}}

        code, _, _ = run_cli("jobs", "add", "j", "--json", json.dumps(spec))

        assert code == EXIT_OK
        store = open_default(data_dir)
        assert store.get_t(spec_key("j"), JobSpec) == JobSpec.from_dict(spec)

    def test_invalid_json_spec(self, run_cli):
        code, _, err = run_cli("jobs", "add", "j", "--json", '{"period_ms": 1}')

        assert code == EXIT_ERROR
        assert err.startswith("error:")

    def test_negative_timeout_is_rejected(self, run_cli):
        code, _, err = run_cli(
            "jobs", "add", "x", "--period-ms", "100", "--exec", "true", "--timeout-ms", "-1"
        )

        assert code == EXIT_ERROR
        assert err.startswith("error:")
        _, out, _ = run_cli("jobs", "list")
        assert json.loads(out) == []

    def test_period_beyond_u64_is_rejected(self, run_cli):
        code, _, err = run_cli("jobs", "add", "x", "--period-ms", str(2**64))

        assert code == EXIT_ERROR
        assert err.startswith("error:")

    def test_success_keeps_stderr_quiet(self, run_cli):
        code, _, err = run_cli("jobs", "add", "t", "--period-ms", "5")
        assert (code, err) == (EXIT_OK, "")

        code, _, err = run_cli("kv", "get", "absent")
        assert err == ""

    def test_verbose_logs_to_stderr(self, run_cli):
        code, _, err = run_cli("-v", "jobs", "add", "t", "--period-ms", "5")

        assert code == EXIT_OK
        assert "Upserted job t" in err

    def test_missing_period(self, run_cli):
        code, _, err = run_cli("jobs", "add", "j")

        assert code == EXIT_ERROR
        assert "--period-ms" in err

    def test_legacy_job_lists_as_noop(self, run_cli):
        run_cli("jobs", "add", "old", "--period-ms", "500", "--legacy-cmd", "noop")

        _, out, _ = run_cli("jobs", "list")

        assert json.loads(out)[0]["spec"]["action"] == {"type": "noop"}


class TestKvCommands:

    def test_put_get_del(self, run_cli, data_dir):
        assert run_cli("kv", "put", "n", "70000", "--decode", "u32")[:2] == (EXIT_OK, "ok\n")
        assert open_default(data_dir).get_t(b"n", U32) == 70000

        code, out, _ = run_cli("kv", "get", "n", "--decode", "u32")
        assert (code, out.strip()) == (EXIT_OK, "70000")

        assert run_cli("kv", "del", "n")[1].strip() == "deleted"
        assert run_cli("kv", "del", "n")[1].strip() == "absent"

    def test_get_absent_is_exit_2(self, run_cli):
        code, out, _ = run_cli("kv", "get", "nothing")

        assert code == EXIT_NOT_FOUND
        assert out.strip() == "nil"

    def test_out_of_range(self, run_cli):
        code, _, err = run_cli("kv", "put", "n", "5000000000", "--decode", "u32")

        assert code == EXIT_ERROR
        assert "out of range" in err

    def test_non_numeric_value(self, run_cli):
        code, _, err = run_cli("kv", "put", "n", "many", "--decode", "u64")

        assert code == EXIT_ERROR
        assert err.startswith("error:")

    def test_unknown_decode_rejected_by_parser(self, run_cli):
        with pytest.raises(SystemExit):
            run_cli("kv", "put", "n", "1", "--decode", "hex")

    def test_raw_round_trip(self, run_cli):
        run_cli("kv", "put", "greeting", "hello", "--decode", "raw")

        assert run_cli("kv", "get", "greeting")[1].strip() == "hello"


class TestRunCommand:

    def test_run_until_sigterm(self, run_cli, data_dir, tmp_path, monkeypatch):
        monkeypatch.setenv("SENTINEL_LOG_DIR", str(tmp_path / "logs"))
        monkeypatch.setenv("SENTINEL_TICK_MS", "10")
        monkeypatch.setenv("SENTINEL_HEARTBEAT_MS", "10")
        run_cli("jobs", "add", "tick", "--period-ms", "60000")

        previous = {
            sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)
        }
        timer = threading.Timer(0.5, os.kill, args=(os.getpid(), signal.SIGTERM))
        timer.start()
        try:
            code, _, _ = run_cli("run")
        finally:
            timer.cancel()
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        assert code == EXIT_OK
        store = open_default(data_dir)
        assert store.get_t(HEARTBEAT_KEY, U64) >= 1
        _, out, _ = run_cli("jobs", "list")
        assert json.loads(out)[0]["state"]["runs"] == 1
        assert list((tmp_path / "logs").glob("sentinel_*.log"))
