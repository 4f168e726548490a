import os
import threading
import time

import pytest

from embedded_redis.config import ServerConfig, ServerRole
from embedded_redis.exceptions import (
    AlreadyRunningError,
    ExecutableNotFound,
    StartupFailed,
    StartupTimeout,
)
from embedded_redis.process import ProcessState, RedisProcess
from embedded_redis.readiness import SENTINEL_READY_PATTERN
from embedded_redis.server import RedisServer
from tests.conftest import assert_wait, process_exists


def make_server(executable, *settings, port=6379, **kwargs):
    config = ServerConfig(port=port, settings=settings)
    return RedisServer(config=config, executable=executable, **kwargs)


@pytest.mark.unit
def test_start_and_stop(fake_redis_executable):
    server = make_server(fake_redis_executable)
    assert not server.is_active()
    assert server.state == ProcessState.IDLE

    server.start()
    pid = server.pid
    try:
        assert server.is_active()
        assert server.state == ProcessState.RUNNING
        assert any("Ready to accept connections" in line for line in server.output())
    finally:
        server.stop()

    assert not server.is_active()
    assert server.state == ProcessState.IDLE
    assert server.pid is None
    assert not process_exists(pid)


@pytest.mark.unit
def test_second_start_without_stop_fails(fake_redis_executable):
    server = make_server(fake_redis_executable)
    server.start()
    pid = server.pid
    try:
        with pytest.raises(AlreadyRunningError):
            server.start()
        with pytest.raises(RuntimeError):
            server.start()
        assert server.pid == pid
        assert server.is_active()
    finally:
        server.stop()


@pytest.mark.unit
def test_repeated_cycles_do_not_leak_threads(fake_redis_executable):
    server = make_server(fake_redis_executable)
    server.start()
    server.stop()
    baseline = threading.active_count()

    for _ in range(3):
        server.start()
        assert server.is_active()
        server.stop()
        assert not server.is_active()

    assert threading.active_count() == baseline
    assert server.drain_thread is None


@pytest.mark.unit
@pytest.mark.skipif(not os.path.isdir("/proc/self/fd"), reason="needs /proc/self/fd")
def test_repeated_cycles_do_not_leak_file_handles(fake_redis_executable):
    server = make_server(fake_redis_executable)
    server.start()
    server.stop()
    baseline = len(os.listdir("/proc/self/fd"))

    for _ in range(5):
        server.start()
        server.stop()

    assert len(os.listdir("/proc/self/fd")) == baseline


@pytest.mark.unit
def test_stop_is_idempotent_and_works_from_another_thread(fake_redis_executable):
    server = make_server(fake_redis_executable)
    server.stop()

    server.start()
    stopper = threading.Thread(target=server.stop)
    stopper.start()
    stopper.join(timeout=10)

    assert not stopper.is_alive()
    assert not server.is_active()
    server.stop()


@pytest.mark.unit
def test_exit_before_ready_raises_startup_failed(fake_redis_executable):
    server = make_server(fake_redis_executable, "fake-mode crash")
    with pytest.raises(StartupFailed) as exc_info:
        server.start()

    assert exc_info.value.returncode == 1
    assert any("Address already in use" in line for line in exc_info.value.output)
    assert server.state == ProcessState.IDLE
    assert not server.is_active()
    assert server.drain_thread is None


@pytest.mark.unit
def test_timeout_kills_the_process(fake_redis_executable):
    server = make_server(fake_redis_executable, "fake-mode hang", startup_timeout=1.0)

    with pytest.raises(StartupTimeout) as exc_info:
        server.start()

    assert any("Redis is starting" in line for line in exc_info.value.output)
    pid = int(exc_info.value.output[0].split(":")[0])
    assert not process_exists(pid)
    assert server.state == ProcessState.IDLE
    assert server.process is None
    assert server.drain_thread is None


@pytest.mark.unit
def test_stop_escalates_to_kill(fake_redis_executable):
    server = make_server(fake_redis_executable, "fake-mode ignore-term", stop_timeout=0.5)
    server.start()
    pid = server.pid

    started = time.time()
    server.stop()

    assert time.time() - started < 5
    assert not process_exists(pid)
    assert not server.is_active()


@pytest.mark.unit
def test_crash_is_observable_without_stop(fake_redis_executable):
    server = make_server(fake_redis_executable, "fake-mode crash-later")
    server.start()
    try:
        assert_wait(lambda: not server.is_active(), max_wait_time=5)
        assert server.state == ProcessState.RUNNING
    finally:
        server.stop()
    assert server.state == ProcessState.IDLE


@pytest.mark.unit
def test_inline_launch(fake_redis_executable):
    server = make_server(fake_redis_executable, port=6390, inline=True)
    with server:
        assert server.is_active()
        assert any("port=6390" in line for line in server.output())
    assert not server.is_active()


@pytest.mark.unit
def test_wrong_ready_pattern_times_out(fake_redis_executable):
    config = ServerConfig(port=6379)
    process = RedisProcess(
        config, fake_redis_executable, ready_pattern=SENTINEL_READY_PATTERN, startup_timeout=1.0,
    )
    with pytest.raises(StartupTimeout):
        process.start()
    assert not process.is_active()


@pytest.mark.unit
def test_missing_executable(tmp_path):
    server = make_server(str(tmp_path / "nope"))
    with pytest.raises(ExecutableNotFound):
        server.start()
    assert server.state == ProcessState.IDLE


@pytest.mark.unit
def test_environment_and_working_dir(fake_redis_executable, tmp_path):
    server = make_server(
        fake_redis_executable, working_dir=str(tmp_path), env={"FAKE_REDIS_BANNER": "hello from env"},
    )
    with server:
        output = server.output()
        assert any(line.endswith("# hello from env") for line in output)
        assert any(line.endswith(f"Working directory {tmp_path}") for line in output)
    assert server.ports() == [6379]
    assert server.tls_ports() == []


@pytest.mark.unit
@pytest.mark.parametrize("setting", ["requirepass it's", 'masterauth "unterminated'])
def test_unsplittable_inline_setting_fails_cleanly(fake_redis_executable, setting):
    server = make_server(fake_redis_executable, setting, inline=True)

    with pytest.raises(StartupFailed) as exc_info:
        server.start()

    assert isinstance(exc_info.value.__cause__, ValueError)
    assert server._tmp_dir is None
    assert server.process is None
    assert server.state == ProcessState.IDLE


@pytest.mark.unit
def test_inline_sentinel_fails_cleanly(fake_redis_executable, tmp_path, monkeypatch):
    monkeypatch.setattr("tempfile.tempdir", str(tmp_path))
    config = ServerConfig(role=ServerRole.SENTINEL, port=26379)
    sentinel = RedisProcess(config, fake_redis_executable, inline=True)

    with pytest.raises(StartupFailed):
        sentinel.start()

    assert list(tmp_path.iterdir()) == []
