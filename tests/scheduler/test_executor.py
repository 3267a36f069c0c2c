"""
Executor Tests.

Each action variant against a real store; exec actions against real
processes (true / false / sleep).
"""

import shutil

import pytest

from sentinel.scheduler import (
    ExecAction,
    Executor,
    HttpAction,
    KvDelAction,
    KvPutAction,
    NoopAction,
    NonZeroExit,
    NotImplementedAction,
    OutOfRange,
    SpawnError,
    Timeout,
    TypeMismatch,
    U32,
    U64,
    UnknownDecode,
    execute,
)
from sentinel.scheduler.errors import ExecutionError


requires_posix_tools = pytest.mark.skipif(
    not (shutil.which("true") and shutil.which("false") and shutil.which("sleep")),
    reason="needs true/false/sleep on PATH",
)


@pytest.fixture
def executor(memory_store):
    return Executor(memory_store)


class TestNoopAndDelete:

    def test_noop_succeeds(self, executor):
        assert executor.execute(NoopAction()) is None

    def test_kv_del_removes_key(self, executor, memory_store):
        memory_store.put(b"gone", b"x")

        executor.execute(KvDelAction(key="gone"))

        assert memory_store.get(b"gone") is None

    def test_kv_del_of_absent_key_succeeds(self, executor):
        executor.execute(KvDelAction(key="never-there"))


class TestKvPut:

    def test_u32_in_range(self, executor, memory_store):
        executor.execute(KvPutAction(key="k", decode="u32", value=70000))

        assert memory_store.get_t(b"k", U32) == 70000

    def test_u32_out_of_range(self, executor, memory_store):
        with pytest.raises(OutOfRange) as exc_info:
            executor.execute(KvPutAction(key="k", decode="u32", value=5_000_000_000))

        assert exc_info.value.kind == "out_of_range"
        assert memory_store.get(b"k") is None

    def test_u64_accepts_large_values(self, executor, memory_store):
        executor.execute(KvPutAction(key="k", decode="u64", value=5_000_000_000))

        assert memory_store.get_t(b"k", U64) == 5_000_000_000

    def test_u64_out_of_range(self, executor):
        with pytest.raises(OutOfRange):
            executor.execute(KvPutAction(key="k", decode="u64", value=2**64))

    def test_integral_float_is_accepted(self, executor, memory_store):
        executor.execute(KvPutAction(key="k", decode="u32", value=12.0))

        assert memory_store.get_t(b"k", U32) == 12

    @pytest.mark.parametrize("value", ["12", -1, 1.5, True, None])
    def test_integer_modes_reject_other_values(self, executor, value):
        with pytest.raises(TypeMismatch):
            executor.execute(KvPutAction(key="k", decode="u64", value=value))

    def test_string_is_typed_encoded(self, executor, memory_store):
        executor.execute(KvPutAction(key="k", decode="string", value="hello"))

        assert memory_store.get(b"k") == b'"hello"'
        assert memory_store.get_t(b"k", str) == "hello"

    @pytest.mark.parametrize("decode", ["raw", "utf8"])
    def test_raw_modes_store_plain_bytes(self, executor, memory_store, decode):
        executor.execute(KvPutAction(key="k", decode=decode, value="héllo"))

        assert memory_store.get(b"k") == "héllo".encode("utf-8")

    def test_string_mode_rejects_numbers(self, executor):
        with pytest.raises(TypeMismatch):
            executor.execute(KvPutAction(key="k", decode="string", value=3))

    def test_unknown_decode(self, executor, memory_store):
        with pytest.raises(UnknownDecode) as exc_info:
            executor.execute(KvPutAction(key="k", decode="base64", value="x"))

        assert "base64" in str(exc_info.value)
        assert memory_store.get(b"k") is None


class TestHttp:

    def test_http_is_not_implemented(self, executor):
        with pytest.raises(NotImplementedAction):
            executor.execute(HttpAction(url="http://localhost:1/"))


@requires_posix_tools
class TestExec:

    def test_zero_exit_succeeds(self, executor):
        executor.execute(ExecAction(cmd="true"))

    def test_non_zero_exit(self, executor):
        with pytest.raises(NonZeroExit) as exc_info:
            executor.execute(ExecAction(cmd="false"))

        assert exc_info.value.code == 1

    def test_args_are_passed_without_shell(self, executor):
        # "sleep" with a single zero argument exits immediately
        executor.execute(ExecAction(cmd="sleep", args=("0",), timeout_ms=5000))

    def test_timeout_kills_process(self, executor):
        with pytest.raises(Timeout) as exc_info:
            executor.execute(ExecAction(cmd="sleep", args=("5",), timeout_ms=100))

        assert exc_info.value.timeout_ms == 100

    def test_missing_binary_is_spawn_error(self, executor):
        with pytest.raises(SpawnError):
            executor.execute(ExecAction(cmd="/nonexistent/definitely-not-here"))


def test_module_level_execute(memory_store):
    execute(KvPutAction(key="k", decode="string", value="v"), memory_store)

    assert memory_store.get_t(b"k", str) == "v"


def test_all_failures_share_one_base():
    for cls in (TypeMismatch, OutOfRange, UnknownDecode, Timeout, NonZeroExit,
                SpawnError, NotImplementedAction):
        assert issubclass(cls, ExecutionError)
