"""
Sentinel CLI.

Commands:
    sentinel run [--http] [--no-heartbeat]     run the scheduler daemon
    sentinel jobs list                         list jobs with spec and state
    sentinel jobs add ID --period-ms N ...     create or replace a job
    sentinel jobs rm ID                        delete a job
    sentinel kv get KEY [--decode D]           read a raw key
    sentinel kv put KEY VALUE --decode D       write a raw key
    sentinel kv del KEY                        delete a raw key

Exit codes: 0 ok, 1 error, 2 not found.
"""

import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from sentinel import __version__
from sentinel.infra.config import SentinelConfig
from sentinel.infra.logging_config import setup_logging
from sentinel.scheduler import registry
from sentinel.scheduler.entities import (
    DecodeMode,
    ExecAction,
    JobSpec,
    KvDelAction,
    KvPutAction,
    LegacySpec,
    NoopAction,
)
from sentinel.scheduler.errors import DecodeError, SentinelError
from sentinel.scheduler.persistence import KvStore, open_default
from sentinel.scheduler.service import SchedulerService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_FOUND = 2

DECODE_CHOICES = [m.value for m in DecodeMode]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sentinel", description="Local-first periodic job runner")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v: DEBUG)"
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Store directory (default: SENTINEL_DATA_DIR or data/kv)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run the scheduler until SIGINT/SIGTERM")
    run_parser.add_argument("--http", action="store_true", default=False, help="Also serve the HTTP API")
    run_parser.add_argument("--host", type=str, default=None, help="HTTP bind host")
    run_parser.add_argument("--port", type=int, default=None, help="HTTP bind port")
    run_parser.add_argument(
        "--no-heartbeat",
        action="store_true",
        default=False,
        help="Disable the heartbeat counter"
    )

    # jobs commands
    jobs_parser = subparsers.add_parser("jobs", help="Manage jobs")
    jobs_sub = jobs_parser.add_subparsers(dest="jobs_command")

    jobs_sub.add_parser("list", help="List jobs")

    add_parser = jobs_sub.add_parser("add", help="Create or replace a job (resets state)")
    add_parser.add_argument("id", type=str, help="Job id")
    add_parser.add_argument("--period-ms", type=int, default=None, help="Period in milliseconds")
    action_group = add_parser.add_mutually_exclusive_group()
    action_group.add_argument("--noop", action="store_true", default=False, help="Noop action (default)")
    action_group.add_argument("--exec", dest="exec_cmd", type=str, default=None, help="Command to execute")
    action_group.add_argument("--kv-put", dest="kv_put_key", type=str, default=None, help="Key to write")
    action_group.add_argument("--kv-del", dest="kv_del_key", type=str, default=None, help="Key to delete")
    action_group.add_argument("--json", dest="spec_json", type=str, default=None, help="Full spec as JSON")
    action_group.add_argument("--legacy-cmd", type=str, default=None, help="Store a legacy {cmd, period_ms} spec")
    add_parser.add_argument("--arg", dest="exec_args", action="append", default=[], help="Argument for --exec (repeatable)")
    add_parser.add_argument("--timeout-ms", type=int, default=None, help="Timeout for --exec")
    add_parser.add_argument("--decode", type=str, default=DecodeMode.STRING.value, help="Decode mode for --kv-put")
    add_parser.add_argument("--value", type=str, default=None, help="Value for --kv-put")

    rm_parser = jobs_sub.add_parser("rm", help="Delete a job")
    rm_parser.add_argument("id", type=str, help="Job id")

    # kv commands
    kv_parser = subparsers.add_parser("kv", help="Raw key access")
    kv_sub = kv_parser.add_subparsers(dest="kv_command")

    get_parser = kv_sub.add_parser("get", help="Read a key")
    get_parser.add_argument("key", type=str)
    get_parser.add_argument("--decode", type=str, default=DecodeMode.RAW.value, choices=DECODE_CHOICES)

    put_parser = kv_sub.add_parser("put", help="Write a key")
    put_parser.add_argument("key", type=str)
    put_parser.add_argument("value", type=str)
    put_parser.add_argument("--decode", type=str, required=True, choices=DECODE_CHOICES)

    del_parser = kv_sub.add_parser("del", help="Delete a key")
    del_parser.add_argument("key", type=str)

    return parser


def parse_cli_value(decode: str, value: str):
    """Convert a command-line string to the scalar a decode mode expects."""
    if decode in (DecodeMode.U32.value, DecodeMode.U64.value):
        try:
            return int(value)
        except ValueError:
            return value  # rejected downstream with TypeMismatch
    return value


def build_spec(args: argparse.Namespace) -> JobSpec | LegacySpec:
    """
    Build the spec for `jobs add` from parsed arguments.

    Raises:
        DecodeError: If --json is not a valid spec
        ValueError: If required arguments are missing
    """
    if args.spec_json is not None:
        try:
            obj = json.loads(args.spec_json)
        except ValueError as e:
            raise DecodeError(f"--json is not valid JSON: {e}") from e
        return JobSpec.from_dict(obj)

    if args.period_ms is None or args.period_ms < 0:
        raise ValueError("--period-ms is required and must be non-negative")

    if args.legacy_cmd is not None:
        return LegacySpec(cmd=args.legacy_cmd, period_ms=args.period_ms)
    if args.exec_cmd is not None:
        if args.timeout_ms is not None and args.timeout_ms < 0:
            raise ValueError("--timeout-ms must be non-negative")
        action = ExecAction(
            cmd=args.exec_cmd,
            args=tuple(args.exec_args),
            timeout_ms=args.timeout_ms,
        )
    elif args.kv_put_key is not None:
        if args.value is None:
            raise ValueError("--kv-put requires --value")
        action = KvPutAction(
            key=args.kv_put_key,
            decode=args.decode,
            value=parse_cli_value(args.decode, args.value),
        )
    elif args.kv_del_key is not None:
        action = KvDelAction(key=args.kv_del_key)
    else:
        action = NoopAction()
    return JobSpec(period_ms=args.period_ms, action=action)


# =============================================================================
# Command Handlers
# =============================================================================


def cmd_jobs(args: argparse.Namespace, store: KvStore) -> int:
    if args.jobs_command == "list":
        views = registry.list_jobs(store)
        print(json.dumps([v.to_dict() for v in views], indent=2))
        return EXIT_OK

    if args.jobs_command == "add":
        spec = build_spec(args)
        registry.upsert_job(store, args.id, spec)
        print(f"ok {args.id}")
        return EXIT_OK

    if args.jobs_command == "rm":
        existed = registry.delete_job(store, args.id)
        print(f"ok {args.id}" if existed else f"absent {args.id}")
        return EXIT_OK

    print("usage: sentinel jobs {list,add,rm}", file=sys.stderr)
    return EXIT_ERROR


def cmd_kv(args: argparse.Namespace, store: KvStore) -> int:
    if args.kv_command == "get":
        value = registry.kv_get(store, args.key, args.decode)
        if value is None:
            print("nil")
            return EXIT_NOT_FOUND
        print(value)
        return EXIT_OK

    if args.kv_command == "put":
        registry.kv_put(store, args.key, args.decode, parse_cli_value(args.decode, args.value))
        print("ok")
        return EXIT_OK

    if args.kv_command == "del":
        existed = registry.kv_delete(store, args.key)
        print("deleted" if existed else "absent")
        return EXIT_OK

    print("usage: sentinel kv {get,put,del}", file=sys.stderr)
    return EXIT_ERROR


def cmd_run(args: argparse.Namespace, config: SentinelConfig) -> int:
    """Run the scheduler daemon until a shutdown signal arrives."""
    if args.no_heartbeat:
        config.heartbeat_ms = 0

    shutdown = threading.Event()

    def signal_handler(signum, frame):
        signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        logger.info(f"{signal_name} received - stopping after in-flight jobs finish")
        shutdown.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    # Store open failure is fatal here
    service = SchedulerService.create(config, shutdown=shutdown)

    http_thread = None
    if args.http:
        from sentinel.api._state import init_store
        from sentinel.api.main import start_http_server

        init_store(service.store, service)
        if config.api_auth_enabled and not config.api_key:
            logger.warning("API_AUTH_ENABLED=true without API_KEY: /jobs and /kv will reject every request")
        http_thread = start_http_server(
            args.host or config.http_host,
            args.port or config.http_port,
            shutdown,
            log_level=config.log_level,
        )

    logger.info(f"sentinel {__version__} boot, data_dir={config.data_dir}")
    service.start()
    service.wait()
    service.stop(wait=True)

    if http_thread is not None:
        http_thread.join(timeout=10.0)
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_ERROR

    config = SentinelConfig.from_env()
    if args.data_dir is not None:
        config.data_dir = args.data_dir
    if args.verbose:
        config.log_level = "DEBUG"

    # Only the daemon writes log files; one-shot commands keep stderr for
    # warnings and errors unless -v is given
    if args.command == "run":
        setup_logging(config.log_level, config.log_dir)
    else:
        setup_logging(config.log_level if args.verbose else "WARNING", None)

    try:
        if args.command == "run":
            return cmd_run(args, config)

        store = open_default(config.data_dir)
        if args.command == "jobs":
            return cmd_jobs(args, store)
        if args.command == "kv":
            return cmd_kv(args, store)
    except (SentinelError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR

    parser.print_help()
    return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
