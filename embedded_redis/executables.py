"""Locating a runnable redis-server binary for the current platform.

An `ExecProvider` is an immutable mapping from `OsArchitecture` to an executable
name or path. Overriding an entry returns a new provider, so tests running side by
side can each use their own binaries without touching shared state.
"""

import atexit
import os
import shutil
import stat
import tempfile
from importlib import resources
from logging import getLogger
from pathlib import Path

from .exceptions import ExecutableNotFound, OsDetectionError
from .osdetect import OS, Architecture, OsArchitecture


logger = getLogger(__name__)


REDIS_VERSION = '7.0.15'
SYSTEM_EXECUTABLE = 'redis-server'

DEFAULT_EXECUTABLES = {
    OsArchitecture(OS.UNIX, Architecture.X86): f'redis-server-{REDIS_VERSION}-linux-386',
    OsArchitecture(OS.UNIX, Architecture.X86_64): f'redis-server-{REDIS_VERSION}-linux-amd64',
    OsArchitecture(OS.UNIX, Architecture.ARM64): f'redis-server-{REDIS_VERSION}-linux-arm64',
    OsArchitecture(OS.MAC_OS_X, Architecture.X86_64): f'redis-server-{REDIS_VERSION}-darwin-amd64',
    OsArchitecture(OS.MAC_OS_X, Architecture.ARM64): f'redis-server-{REDIS_VERSION}-darwin-arm64',
}


def default_bundle_dir():
    return resources.files(__package__) / 'bin'


def extract_executable(source, name):
    """Copy a bundled binary into a fresh temp dir and mark it executable."""
    tmp_dir = tempfile.mkdtemp(prefix='embedded-redis-bin-')
    atexit.register(shutil.rmtree, tmp_dir, True)
    target = Path(tmp_dir) / name
    target.write_bytes(source.read_bytes())
    target.chmod(target.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    logger.debug(f'extracted bundled executable {name} to {target}')
    return str(target)


class ExecProvider:

    def __init__(self, executables=None, fallback=None, bundle_dir=None):
        self._executables = dict(executables or {})
        self.fallback = fallback
        self.bundle_dir = bundle_dir

    @classmethod
    def default(cls):
        return cls(DEFAULT_EXECUTABLES, fallback=SYSTEM_EXECUTABLE)

    @classmethod
    def from_path(cls, executable):
        """Provider that uses `executable` on every platform."""
        return cls().override_all(executable)

    @property
    def executables(self):
        return dict(self._executables)

    def _copy(self, executables):
        return ExecProvider(executables, fallback=self.fallback, bundle_dir=self.bundle_dir)

    def override(self, os_, executable, arch=None):
        if executable is None:
            raise ValueError('executable should not be None')
        archs = [arch] if arch is not None else list(Architecture)
        executables = self.executables
        for a in archs:
            executables[OsArchitecture(os_, a)] = str(executable)
        return self._copy(executables)

    def override_all(self, executable):
        provider = self
        for os_ in OS:
            provider = provider.override(os_, executable)
        return provider

    def without_fallback(self):
        return ExecProvider(self._executables, fallback=None, bundle_dir=self.bundle_dir)

    def _bundled(self, name):
        bundle_dir = self.bundle_dir if self.bundle_dir is not None else default_bundle_dir()
        if isinstance(bundle_dir, (str, os.PathLike)):
            bundle_dir = Path(bundle_dir)
        candidate = bundle_dir / name
        if candidate.is_file():
            return candidate
        return None

    def resolve(self, tag=None) -> str:
        if tag is None:
            try:
                tag = OsArchitecture.detect()
            except OsDetectionError as e:
                raise ExecutableNotFound(str(e)) from e

        name = self._executables.get(tag)
        if name is None:
            raise ExecutableNotFound(f'no redis executable registered for {tag}')

        if os.path.isfile(name):
            return name

        bundled = self._bundled(name)
        if bundled is not None:
            return extract_executable(bundled, os.path.basename(name))

        on_path = shutil.which(name)
        if on_path:
            return on_path

        if self.fallback:
            on_path = shutil.which(self.fallback)
            if on_path:
                logger.debug(f'{name} not found, using {on_path}')
                return on_path

        raise ExecutableNotFound(f'redis executable {name!r} for {tag} not found')
