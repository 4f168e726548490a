from .config import (
    DEFAULT_BIND,
    DEFAULT_DOWN_AFTER_MILLISECONDS,
    DEFAULT_FAILOVER_TIMEOUT,
    DEFAULT_PARALLEL_SYNCS,
    SentinelMonitor,
    ServerConfig,
    ServerRole,
)
from .exceptions import BuildingError
from .executables import ExecProvider
from .ports import DEFAULT_SENTINEL_PORT, DEFAULT_SERVER_PORT
from .process import RedisProcess
from .readiness import SENTINEL_READY_PATTERN


class RedisSentinel(RedisProcess):
    """A redis-server process running in sentinel mode."""

    def __init__(self, config=None, executable=None, **kwargs):
        if config is None:
            config = RedisSentinelBuilder().build_config()
        if executable is None:
            executable = ExecProvider.default().resolve()
        kwargs.setdefault('ready_pattern', SENTINEL_READY_PATTERN)
        super().__init__(config, executable, **kwargs)

    @staticmethod
    def builder():
        return RedisSentinelBuilder()


class RedisSentinelBuilder:
    """Builds sentinels; also the shared defaults a cluster applies to each sentinel.

    Monitored groups are added with `master_name(...)...add_default_replication_group()`;
    a sentinel built without any group watches "mymaster" on the default port.
    """

    DEFAULT_MASTER_NAME = 'mymaster'

    def __init__(self):
        self._exec_provider = ExecProvider.default()
        self._bind = DEFAULT_BIND
        self._port = DEFAULT_SENTINEL_PORT
        self._master_name = self.DEFAULT_MASTER_NAME
        self._master_host = DEFAULT_BIND
        self._master_port = DEFAULT_SERVER_PORT
        self._quorum = 1
        self._down_after_milliseconds = DEFAULT_DOWN_AFTER_MILLISECONDS
        self._failover_timeout = DEFAULT_FAILOVER_TIMEOUT
        self._parallel_syncs = DEFAULT_PARALLEL_SYNCS
        self._monitors = []
        self._settings = []
        self._process_options = {}

    def exec_provider(self, provider: ExecProvider):
        self._exec_provider = provider
        return self

    def bind(self, bind):
        self._bind = bind
        return self

    def get_bind(self):
        return self._bind

    def port(self, port):
        self._port = port
        return self

    def master_name(self, name):
        self._master_name = name
        return self

    def master_host(self, host):
        self._master_host = host
        return self

    def master_port(self, port):
        self._master_port = port
        return self

    def quorum_size(self, quorum):
        self._quorum = quorum
        return self

    def down_after_milliseconds(self, value):
        self._down_after_milliseconds = value
        return self

    def failover_timeout(self, value):
        self._failover_timeout = value
        return self

    def parallel_syncs(self, value):
        self._parallel_syncs = value
        return self

    def setting(self, line):
        self._settings.append(line)
        return self

    def startup_timeout(self, seconds):
        self._process_options['startup_timeout'] = seconds
        return self

    def stop_timeout(self, seconds):
        self._process_options['stop_timeout'] = seconds
        return self

    def env(self, variables):
        self._process_options['env'] = dict(variables)
        return self

    def monitor(self, group, host, port, quorum) -> SentinelMonitor:
        """SentinelMonitor for a group, carrying this builder's timing defaults."""
        return SentinelMonitor(
            group=group,
            host=host,
            port=port,
            quorum=quorum,
            down_after_milliseconds=self._down_after_milliseconds,
            failover_timeout=self._failover_timeout,
            parallel_syncs=self._parallel_syncs,
        )

    def add_default_replication_group(self):
        self._monitors.append(
            self.monitor(self._master_name, self._master_host, self._master_port, self._quorum)
        )
        return self

    def build_config(self, port=None, monitors=None) -> ServerConfig:
        if monitors is None:
            monitors = self._monitors or [
                self.monitor(self._master_name, self._master_host, self._master_port, self._quorum)
            ]
        try:
            return ServerConfig(
                role=ServerRole.SENTINEL,
                bind=self._bind,
                port=self._port if port is None else port,
                settings=tuple(self._settings),
                monitors=tuple(monitors),
            )
        except ValueError as e:
            raise BuildingError(f'invalid redis sentinel config: {e}') from e

    def resolve_executable(self):
        return self._exec_provider.resolve()

    def build_process(self, config: ServerConfig, executable) -> RedisSentinel:
        return RedisSentinel(config=config, executable=executable, **self._process_options)

    def build(self) -> RedisSentinel:
        config = self.build_config()
        return self.build_process(config, self.resolve_executable())
