# conftest.py
import shutil

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--redis-executable",
        action="store",
        default=None,
        help="redis-server binary used by integration tests (default: redis-server on PATH)",
    )


def pytest_collection_modifyitems(config, items):
    executable = config.getoption("--redis-executable") or shutil.which("redis-server")
    if executable:
        return

    skip_marker = pytest.mark.skip(reason="redis-server not found, use --redis-executable to include")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_marker)
