import importlib.metadata

from .cluster import RedisCluster
from .config import (
    ReplicationGroupSpec,
    SentinelMonitor,
    ServerConfig,
    ServerRole,
    TopologySpec,
)
from .exceptions import (
    AlreadyRunningError,
    BuildingError,
    DuplicateGroupNameError,
    EmbeddedRedisError,
    ExecutableNotFound,
    PortsExhausted,
    QuorumExceedsSentinelCount,
    StartupFailed,
    StartupTimeout,
    TeardownError,
)
from .executables import ExecProvider
from .ports import EphemeralPortProvider, PredefinedPortProvider, SequencePortProvider
from .process import ProcessState, Redis, RedisProcess
from .sentinel import RedisSentinel, RedisSentinelBuilder
from .server import RedisServer, RedisServerBuilder
from .topology import RedisClusterBuilder

try:
    __version__ = importlib.metadata.version("embedded-redis")
except importlib.metadata.PackageNotFoundError:
    __version__ = "unknown"  # fallback version
