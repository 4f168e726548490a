"""Shared test fixtures and utilities for embedded-redis tests"""

import os
import shutil
import socket
import stat
import sys
import time
from pathlib import Path

import pytest

from embedded_redis.executables import ExecProvider

FIXTURES_DIR = Path(__file__).parent / "fixtures"
CONFIGS_DIR = Path(__file__).parent / "configs"
FAKE_SERVER_SCRIPT = FIXTURES_DIR / "fake_redis_server.py"


@pytest.fixture
def fake_redis_executable(tmp_path_factory):
    """Executable wrapper that runs the fake redis-server with this interpreter"""
    if sys.platform == "win32":
        pytest.skip("fake redis executable needs a POSIX shell")
    wrapper = tmp_path_factory.mktemp("fake-redis-bin") / "redis-server"
    wrapper.write_text(
        "#!/bin/sh\n"
        f'exec "{sys.executable}" "{FAKE_SERVER_SCRIPT}" "$@"\n'
    )
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(wrapper)


@pytest.fixture
def fake_exec_provider(fake_redis_executable):
    return ExecProvider.from_path(fake_redis_executable)


@pytest.fixture
def redis_executable(request):
    """Real redis-server binary for integration tests"""
    executable = request.config.getoption("--redis-executable") or shutil.which("redis-server")
    if not executable:
        pytest.skip("redis-server not found")
    return executable


def read_fixture_lines(name):
    return (FIXTURES_DIR / name).read_text().splitlines()


def process_exists(pid):
    """Check whether a pid still belongs to a live (non-zombie) process"""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def redis_command(port, command, host="127.0.0.1", timeout=2.0):
    """Send an inline command and return the raw RESP reply"""
    with socket.create_connection((host, port), timeout=timeout) as sock:
        sock.sendall(command.encode() + b"\r\n")
        return sock.recv(4096)


def redis_ping(port, host="127.0.0.1", timeout=2.0):
    return redis_command(port, "PING", host=host, timeout=timeout)


def assert_wait(condition, max_wait_time=20.0, retry_interval=0.05):
    """Wait for a condition to be true with timeout"""
    max_time = time.time() + max_wait_time
    while time.time() < max_time:
        if condition():
            return
        time.sleep(retry_interval)
    assert condition()


# Pytest markers
def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "integration: test needs a real redis-server binary")
    config.addinivalue_line("markers", "unit: mark test as unit test")
