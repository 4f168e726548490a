"""
embedded_redis data model and settings file handling

Value types describing what to launch:
    ServerRole: standalone / master / replica / sentinel
    SentinelMonitor: one "sentinel monitor" block for a replication group
    ServerConfig: fully resolved configuration of one redis process
    ReplicationGroupSpec: a named master with N replicas
    TopologySpec: sentinels + replication groups, as accepted by the cluster builder

Settings file classes (YAML, see Settings.load):
    ServerSettings, SentinelSettings, ClusterSettings, Settings
"""

import os
import re
from dataclasses import dataclass, field, fields
from enum import Enum

import yaml

from .exceptions import DuplicateGroupNameError


DEFAULT_BIND = '127.0.0.1'
DEFAULT_DOWN_AFTER_MILLISECONDS = 60000
DEFAULT_FAILOVER_TIMEOUT = 180000
DEFAULT_PARALLEL_SYNCS = 1
DEFAULT_SENTINEL_COUNT = 1

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


def stype(obj):
    return type(obj).__name__


class ServerRole(Enum):
    STANDALONE = 'standalone'
    MASTER = 'master'
    REPLICA = 'replica'
    SENTINEL = 'sentinel'


@dataclass(frozen=True)
class SentinelMonitor:
    group: str
    host: str
    port: int
    quorum: int = 1
    down_after_milliseconds: int = DEFAULT_DOWN_AFTER_MILLISECONDS
    failover_timeout: int = DEFAULT_FAILOVER_TIMEOUT
    parallel_syncs: int = DEFAULT_PARALLEL_SYNCS


@dataclass(frozen=True)
class ServerConfig:
    """Everything needed to render the launch command of one redis process.

    Attributes:
        role: which kind of process this is
        bind: address the process listens on
        port: plain TCP port, 0 disables it
        tls_port: TLS port, None or 0 when TLS is off
        settings: free-form config lines passed through verbatim,
            e.g. "appendonly yes" or "tls-cert-file /tmp/redis.crt"
        master: (host, port) of the upstream master, replicas only
        monitors: one SentinelMonitor per watched group, sentinels only
    """
    role: ServerRole = ServerRole.STANDALONE
    bind: str = DEFAULT_BIND
    port: int = 6379
    tls_port: int = None
    settings: tuple = ()
    master: tuple = None
    monitors: tuple = ()

    def __post_init__(self):
        # accept lists from callers, keep the value hashable and immutable
        object.__setattr__(self, 'settings', tuple(self.settings))
        object.__setattr__(self, 'monitors', tuple(self.monitors))
        if self.master is not None:
            object.__setattr__(self, 'master', tuple(self.master))
        self.validate()

    def validate(self):
        if not isinstance(self.role, ServerRole):
            raise ValueError(f'role should be ServerRole and not {stype(self.role)}')
        if not isinstance(self.port, int) or self.port < 0:
            raise ValueError(f'port should be non-negative int, got {self.port!r}')
        if self.tls_port is not None and (not isinstance(self.tls_port, int) or self.tls_port < 0):
            raise ValueError(f'tls_port should be non-negative int, got {self.tls_port!r}')
        if not self.port and not self.tls_port:
            raise ValueError('at least one of port / tls_port should be set')
        if self.role == ServerRole.REPLICA and self.master is None:
            raise ValueError('replica config needs the master address')
        if self.role != ServerRole.REPLICA and self.master is not None:
            raise ValueError(f'{self.role.value} config should not reference a master')
        if self.monitors and self.role != ServerRole.SENTINEL:
            raise ValueError('only sentinels can monitor replication groups')

    def ports(self):
        return [self.port] if self.port else []

    def tls_ports(self):
        return [self.tls_port] if self.tls_port else []


@dataclass(frozen=True)
class ReplicationGroupSpec:
    name: str
    replicas: int = 0
    quorum: int = None

    def validate(self):
        if not isinstance(self.name, str) or not self.name:
            raise ValueError(f'replication group name should be non-empty string, got {self.name!r}')
        if not isinstance(self.replicas, int) or self.replicas < 0:
            raise ValueError(f'group {self.name} replicas should be non-negative int, got {self.replicas!r}')
        if self.quorum is not None and (not isinstance(self.quorum, int) or self.quorum < 1):
            raise ValueError(f'group {self.name} quorum should be positive int, got {self.quorum!r}')


@dataclass
class TopologySpec:
    sentinel_count: int = None
    sentinel_ports: list = None
    quorum: int = 1
    groups: list = field(default_factory=list)
    ephemeral: bool = False

    def effective_sentinel_count(self):
        if self.sentinel_ports is not None:
            return len(self.sentinel_ports)
        return self.sentinel_count or 0

    def effective_quorum(self, group: ReplicationGroupSpec):
        return group.quorum if group.quorum is not None else self.quorum

    def validate(self):
        if self.sentinel_count is not None and self.sentinel_ports is not None:
            raise ValueError('sentinel_count and sentinel_ports are mutually exclusive')
        if self.sentinel_count is not None and (
            not isinstance(self.sentinel_count, int) or self.sentinel_count < 0
        ):
            raise ValueError(f'sentinel_count should be non-negative int, got {self.sentinel_count!r}')
        if not isinstance(self.quorum, int) or self.quorum < 1:
            raise ValueError(f'quorum should be positive int, got {self.quorum!r}')
        names = set()
        for group in self.groups:
            group.validate()
            if group.name in names:
                raise DuplicateGroupNameError(group.name)
            names.add(group.name)


def interpolate_env_vars(content: str) -> str:
    """Replace ${VAR} or ${VAR:default} with environment variables."""
    def replace_match(match):
        default_value = match.group(2) if match.group(2) is not None else ''
        return os.environ.get(match.group(1), default_value)

    return ENV_VAR_PATTERN.sub(replace_match, content)


def _from_section(cls, section, data):
    """Instantiate a settings dataclass, rejecting keys it does not know."""
    if not isinstance(data, dict):
        raise ValueError(f'{section} should be a mapping and not {stype(data)}')
    known = {f.name for f in fields(cls)}
    unknown = [key for key in data if key not in known]
    if unknown:
        raise ValueError(f'Unsupported config options in {section}: {unknown}')
    return cls(**data)


def _validate_settings_lines(section, lines):
    if not isinstance(lines, list) or not all(isinstance(line, str) for line in lines):
        raise ValueError(f'{section} settings should be a list of strings')


@dataclass
class ServerSettings:
    port: int = 6379
    tls_port: int = None
    settings: list = field(default_factory=list)
    inline: bool = False

    def validate(self):
        if not isinstance(self.port, int):
            raise ValueError(f'server port should be int and not {stype(self.port)}')
        if self.tls_port is not None and not isinstance(self.tls_port, int):
            raise ValueError(f'server tls_port should be int and not {stype(self.tls_port)}')
        if not self.port and not self.tls_port:
            raise ValueError('server needs port or tls_port')
        if not isinstance(self.inline, bool):
            raise ValueError(f'server inline should be bool and not {stype(self.inline)}')
        _validate_settings_lines('server', self.settings)


@dataclass
class SentinelSettings:
    down_after_milliseconds: int = DEFAULT_DOWN_AFTER_MILLISECONDS
    failover_timeout: int = DEFAULT_FAILOVER_TIMEOUT
    parallel_syncs: int = DEFAULT_PARALLEL_SYNCS
    settings: list = field(default_factory=list)

    def validate(self):
        for name in ('down_after_milliseconds', 'failover_timeout', 'parallel_syncs'):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f'sentinel {name} should be positive int, got {value!r}')
        _validate_settings_lines('sentinel', self.settings)


@dataclass
class ClusterSettings:
    sentinel_count: int = None
    sentinel_ports: list = None
    quorum: int = 1
    ephemeral: bool = False
    server_port: int = 6379
    sentinel_port: int = 26379
    replication_groups: list = field(default_factory=list)

    def __post_init__(self):
        groups = []
        for group in self.replication_groups:
            if isinstance(group, dict):
                group = _from_section(ReplicationGroupSpec, 'cluster replication group', group)
            groups.append(group)
        self.replication_groups = groups

    def effective_sentinel_count(self):
        if self.sentinel_count is None and self.sentinel_ports is None:
            return DEFAULT_SENTINEL_COUNT
        return self.sentinel_count

    def to_topology_spec(self) -> TopologySpec:
        return TopologySpec(
            sentinel_count=self.effective_sentinel_count(),
            sentinel_ports=list(self.sentinel_ports) if self.sentinel_ports is not None else None,
            quorum=self.quorum,
            groups=list(self.replication_groups),
            ephemeral=self.ephemeral,
        )

    def validate(self):
        if not isinstance(self.ephemeral, bool):
            raise ValueError(f'cluster ephemeral should be bool and not {stype(self.ephemeral)}')
        if not isinstance(self.server_port, int) or not isinstance(self.sentinel_port, int):
            raise ValueError('cluster server_port / sentinel_port should be int')
        if self.sentinel_ports is not None and not all(isinstance(p, int) for p in self.sentinel_ports):
            raise ValueError('cluster sentinel_ports should be a list of ints')
        if not self.replication_groups:
            raise ValueError('cluster needs at least one replication group')
        self.to_topology_spec().validate()


class Settings:
    DEFAULT_LOG_LEVEL = 'info'
    DEFAULT_STARTUP_TIMEOUT = 10.0
    DEFAULT_STOP_TIMEOUT = 5.0

    def __init__(self):
        self.settings_file = ''
        self.log_level = Settings.DEFAULT_LOG_LEVEL
        self.debug_log_level = False
        self.executable = None
        self.bind = DEFAULT_BIND
        self.startup_timeout = Settings.DEFAULT_STARTUP_TIMEOUT
        self.stop_timeout = Settings.DEFAULT_STOP_TIMEOUT
        self.http_host = ''
        self.http_port = 0
        self.server = ServerSettings()
        self.sentinel = SentinelSettings()
        self.cluster = None

    def load(self, settings_file):
        with open(settings_file, 'r') as f:
            data = yaml.safe_load(interpolate_env_vars(f.read())) or {}

        self.settings_file = settings_file
        self.log_level = data.pop('log_level', Settings.DEFAULT_LOG_LEVEL)
        self.executable = data.pop('executable', None)
        self.bind = data.pop('bind', DEFAULT_BIND)
        self.startup_timeout = data.pop('startup_timeout', Settings.DEFAULT_STARTUP_TIMEOUT)
        self.stop_timeout = data.pop('stop_timeout', Settings.DEFAULT_STOP_TIMEOUT)
        self.http_host = data.pop('http_host', '')
        self.http_port = data.pop('http_port', 0)
        self.server = _from_section(ServerSettings, 'server', data.pop('server', {}))
        self.sentinel = _from_section(SentinelSettings, 'sentinel', data.pop('sentinel', {}))
        cluster = data.pop('cluster', None)
        self.cluster = _from_section(ClusterSettings, 'cluster', cluster) if cluster is not None else None

        if data:
            raise ValueError(f'Unsupported config options: {list(data.keys())}')
        self.validate()

    def validate_log_level(self):
        if self.log_level not in ['critical', 'error', 'warning', 'info', 'debug']:
            raise ValueError(f'wrong log level {self.log_level}')
        if self.log_level == 'debug':
            self.debug_log_level = True

    def validate(self):
        self.validate_log_level()
        if self.executable is not None and not isinstance(self.executable, str):
            raise ValueError(f'executable should be string and not {stype(self.executable)}')
        if not isinstance(self.bind, str):
            raise ValueError(f'bind should be string and not {stype(self.bind)}')
        for name in ('startup_timeout', 'stop_timeout'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f'{name} should be positive number, got {value!r}')
        if not isinstance(self.http_host, str):
            raise ValueError(f'http_host should be string and not {stype(self.http_host)}')
        if not isinstance(self.http_port, int):
            raise ValueError(f'http_port should be int and not {stype(self.http_port)}')
        self.server.validate()
        self.sentinel.validate()
        if self.cluster is not None:
            self.cluster.validate()
