import os
import queue
import shutil
import signal
import subprocess
import tempfile
import threading
from collections import deque
from enum import Enum
from logging import getLogger

from .config import ServerConfig
from .exceptions import (
    AlreadyRunningError,
    ExecutableNotFound,
    StartupFailed,
    StartupTimeout,
)
from .readiness import ReadinessDetector, SERVER_READY_PATTERN
from .renderer import ConfigRenderer


logger = getLogger(__name__)


class ProcessState(Enum):
    IDLE = 'idle'
    RUNNING = 'running'


class Redis:
    """Anything that can be started, stopped and probed: one process or a cluster."""

    def start(self):
        raise NotImplementedError()

    def stop(self):
        raise NotImplementedError()

    def is_active(self) -> bool:
        raise NotImplementedError()

    def ports(self) -> list:
        raise NotImplementedError()

    def tls_ports(self) -> list:
        return []

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.stop()


_READY = 'ready'
_EXITED = 'exited'


class RedisProcess(Redis):
    """Supervises exactly one redis-server / redis-sentinel OS process."""

    DEFAULT_STARTUP_TIMEOUT = 10.0
    DEFAULT_STOP_TIMEOUT = 5.0
    OUTPUT_TAIL_LINES = 200

    def __init__(
        self,
        config: ServerConfig,
        executable,
        ready_pattern=SERVER_READY_PATTERN,
        startup_timeout=DEFAULT_STARTUP_TIMEOUT,
        stop_timeout=DEFAULT_STOP_TIMEOUT,
        working_dir=None,
        env=None,
        inline=False,
        name=None,
    ):
        self.config = config
        self.executable = str(executable)
        self.startup_timeout = startup_timeout
        self.stop_timeout = stop_timeout
        self.working_dir = working_dir
        self.env = dict(env or {})
        self.inline = inline
        self.name = name or f'{config.role.value}:{config.port or config.tls_port}'
        self.renderer = ConfigRenderer(config)
        self.detector = ReadinessDetector(ready_pattern)

        self.state = ProcessState.IDLE
        self.process = None
        self.drain_thread = None
        self.output_tail = deque(maxlen=self.OUTPUT_TAIL_LINES)
        self.lock = threading.RLock()
        self._tmp_dir = None

    @property
    def pid(self):
        process = self.process
        return process.pid if process is not None else None

    def ports(self):
        return self.config.ports()

    def tls_ports(self):
        return self.config.tls_ports()

    def output(self):
        return list(self.output_tail)

    def _check_executable(self):
        if not os.path.isfile(self.executable) or not os.access(self.executable, os.X_OK):
            raise ExecutableNotFound(f'{self.executable} is not an executable file')

    def _command(self):
        if self.inline:
            return self.renderer.command(self.executable)
        config_file = self.renderer.write(self._tmp_dir)
        return self.renderer.command(self.executable, config_file)

    def _subprocess_env(self):
        subprocess_env = os.environ.copy()
        subprocess_env.update(self.env)
        return subprocess_env

    def _drain_output(self, process, events):
        """Read the combined output until EOF, signalling readiness at most once."""
        signalled = False
        try:
            for line in iter(process.stdout.readline, ''):
                line = line.rstrip()
                if not line:
                    continue
                self.output_tail.append(line)
                logger.debug(f'[{self.name}] {line}')
                if not signalled and self.detector.feed(line):
                    signalled = True
                    events.put_nowait(_READY)
        except (OSError, ValueError) as e:
            logger.debug(f'[{self.name}] output stream closed: {e}')
        if not signalled:
            events.put_nowait(_EXITED)

    def start(self):
        if self.state == ProcessState.RUNNING:
            raise AlreadyRunningError(f'{self.name} is already running, call stop() first')

        self._check_executable()
        self._tmp_dir = tempfile.mkdtemp(prefix='embedded-redis-')
        self.detector.reset()
        self.output_tail.clear()

        try:
            cmd = self._command()
            process = subprocess.Popen(
                cmd,
                env=self._subprocess_env(),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
                bufsize=1,
                start_new_session=True,
                cwd=self.working_dir or self._tmp_dir,
            )
        except (OSError, ValueError) as e:
            # ValueError: settings that cannot be split into inline arguments
            self._remove_tmp_dir()
            raise StartupFailed(f'could not launch {self.name}: {e}') from e

        self.process = process
        logger.debug(f'started process {process.pid}: {" ".join(cmd)}')

        events = queue.Queue(maxsize=1)
        self.drain_thread = threading.Thread(
            target=self._drain_output,
            args=(process, events),
            daemon=True,
            name=f'RedisOutput-{process.pid}',
        )
        self.drain_thread.start()

        try:
            event = events.get(timeout=self.startup_timeout)
        except queue.Empty:
            self._terminate()
            raise StartupTimeout(
                f'{self.name} did not become ready within {self.startup_timeout}s',
                self.output(),
            )

        if event == _EXITED:
            returncode = self._terminate()
            raise StartupFailed(
                f'{self.name} exited before becoming ready (exit code {returncode})',
                self.output(),
                returncode,
            )

        self.state = ProcessState.RUNNING
        logger.info(f'{self.name} ready (pid {process.pid})')

    def _terminate(self):
        """Kill the process if alive, reap it and release everything it held."""
        process = self.process
        returncode = None
        if process is not None:
            if process.poll() is None:
                # graceful shutdown first, SIGKILL if it hangs
                process.send_signal(signal.SIGTERM)
                try:
                    process.wait(timeout=self.stop_timeout)
                except subprocess.TimeoutExpired:
                    logger.warning(
                        f'process {process.pid} did not respond to SIGTERM, using SIGKILL'
                    )
                    process.kill()
            returncode = process.wait()

        thread = self.drain_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.stop_timeout)
            if thread.is_alive():
                logger.warning(f'output reader of {self.name} still alive after stop')
            elif process is not None and process.stdout is not None:
                process.stdout.close()
        self.drain_thread = None
        self.process = None
        self._remove_tmp_dir()
        return returncode

    def _remove_tmp_dir(self):
        if self._tmp_dir is not None:
            shutil.rmtree(self._tmp_dir, ignore_errors=True)
            self._tmp_dir = None

    def stop(self):
        with self.lock:
            if self.state == ProcessState.IDLE and self.process is None:
                return
            logger.debug(f'stopping {self.name}')
            try:
                self._terminate()
            finally:
                self.state = ProcessState.IDLE

    def is_active(self) -> bool:
        process = self.process
        return (
            self.state == ProcessState.RUNNING
            and process is not None
            and process.poll() is None
        )

    def __repr__(self):
        return f'<{type(self).__name__} {self.name} {self.state.value}>'
