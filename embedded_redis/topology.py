from dataclasses import replace
from logging import getLogger

from .cluster import RedisCluster
from .config import DEFAULT_SENTINEL_COUNT, ReplicationGroupSpec, ServerRole, TopologySpec
from .exceptions import QuorumExceedsSentinelCount
from .ports import (
    DEFAULT_SENTINEL_PORT,
    DEFAULT_SERVER_PORT,
    EphemeralPortProvider,
    PortProvider,
    SequencePortProvider,
    as_port_provider,
)
from .sentinel import RedisSentinelBuilder
from .server import RedisServerBuilder


logger = getLogger(__name__)


WILDCARD_BINDS = ('0.0.0.0', '*', '::', '-::*')


def connect_host(bind):
    """Address other processes should dial to reach something bound to `bind`."""
    host = bind.split()[0] if bind and bind.split() else '127.0.0.1'
    if host in WILDCARD_BINDS:
        return '127.0.0.1'
    return host.lstrip('-')


class RedisClusterBuilder:
    """Turns a topology description into a wired RedisCluster.

    Example:
        cluster = (
            RedisCluster.builder()
            .sentinel_count(3)
            .quorum_size(2)
            .replication_group('master1', 1)
            .replication_group('master2', 1)
            .ephemeral()
            .build()
        )
    """

    def __init__(self):
        self._server_builder = RedisServerBuilder()
        self._sentinel_builder = RedisSentinelBuilder()
        self._server_ports: PortProvider = SequencePortProvider(DEFAULT_SERVER_PORT)
        self._sentinel_ports: PortProvider = SequencePortProvider(DEFAULT_SENTINEL_PORT)
        self._ephemeral_servers = False
        self._ephemeral_sentinels = False
        self._topology = TopologySpec(sentinel_count=DEFAULT_SENTINEL_COUNT)

    def with_server_builder(self, builder: RedisServerBuilder):
        self._server_builder = builder
        return self

    def with_sentinel_builder(self, builder: RedisSentinelBuilder):
        self._sentinel_builder = builder
        return self

    def server_ports(self, ports):
        """Port provider, predefined port list or base port for masters and replicas."""
        self._server_ports = as_port_provider(ports)
        return self

    def sentinel_port_provider(self, ports):
        self._sentinel_ports = as_port_provider(ports)
        return self

    def sentinel_ports(self, ports):
        self._topology.sentinel_ports = list(ports)
        self._topology.sentinel_count = None
        return self

    def sentinel_count(self, count):
        self._topology.sentinel_count = count
        self._topology.sentinel_ports = None
        return self

    def quorum_size(self, quorum):
        self._topology.quorum = quorum
        return self

    def replication_group(self, name, replicas=0, quorum=None):
        self._topology.groups.append(ReplicationGroupSpec(name=name, replicas=replicas, quorum=quorum))
        return self

    def ephemeral_servers(self):
        self._ephemeral_servers = True
        return self

    def ephemeral_sentinels(self):
        self._ephemeral_sentinels = True
        return self

    def ephemeral(self):
        self._topology.ephemeral = True
        return self

    def from_spec(self, spec: TopologySpec):
        self._topology = replace(
            spec,
            groups=list(spec.groups),
            sentinel_ports=list(spec.sentinel_ports) if spec.sentinel_ports is not None else None,
        )
        return self

    def spec(self) -> TopologySpec:
        return replace(self._topology, groups=list(self._topology.groups))

    def _providers(self, spec: TopologySpec):
        server_provider = self._server_ports
        sentinel_provider = self._sentinel_ports
        if spec.ephemeral or self._ephemeral_servers:
            server_provider = EphemeralPortProvider(connect_host(self._server_builder.get_bind()))
        if spec.ephemeral or self._ephemeral_sentinels:
            sentinel_provider = EphemeralPortProvider(connect_host(self._sentinel_builder.get_bind()))
        return server_provider, sentinel_provider

    def _next_server_ports(self, provider: PortProvider):
        """(port, tls_port) for the next server; every TLS-enabled member gets its own TLS port."""
        if not self._server_builder.get_tls_port():
            return provider.next(), None
        if not self._server_builder.get_port():
            return 0, provider.next()
        return provider.next(), provider.next()

    def _validate(self, spec: TopologySpec):
        spec.validate()
        sentinel_count = spec.effective_sentinel_count()
        if sentinel_count == 0:
            return
        if spec.quorum > sentinel_count:
            raise QuorumExceedsSentinelCount(spec.quorum, sentinel_count)
        for group in spec.groups:
            quorum = spec.effective_quorum(group)
            if quorum > sentinel_count:
                raise QuorumExceedsSentinelCount(quorum, sentinel_count, group.name)

    def build(self) -> RedisCluster:
        spec = self.spec()
        self._validate(spec)
        sentinel_count = spec.effective_sentinel_count()

        server_executable = self._server_builder.resolve_executable()
        sentinel_executable = self._sentinel_builder.resolve_executable() if sentinel_count else None

        server_provider, sentinel_provider = self._providers(spec)
        if spec.sentinel_ports is not None:
            sentinel_ports = list(spec.sentinel_ports)
        else:
            sentinel_ports = [sentinel_provider.next() for _ in range(sentinel_count)]

        server_configs = []
        monitors = []
        for group in spec.groups:
            master_port, master_tls_port = self._next_server_ports(server_provider)
            replica_ports = [self._next_server_ports(server_provider) for _ in range(group.replicas)]

            master = self._server_builder.build_config(
                role=ServerRole.MASTER, port=master_port, tls_port=master_tls_port,
            )
            master_address = (connect_host(master.bind), master.port or master.tls_port)
            server_configs.append(master)
            for port, tls_port in replica_ports:
                server_configs.append(
                    self._server_builder.build_config(
                        role=ServerRole.REPLICA, port=port, master=master_address, tls_port=tls_port,
                    )
                )
            monitors.append(
                self._sentinel_builder.monitor(
                    group.name, master_address[0], master_address[1], spec.effective_quorum(group),
                )
            )
            logger.debug(f'group {group.name}: master {master_port}, replicas {replica_ports}')

        sentinel_configs = [
            self._sentinel_builder.build_config(port=port, monitors=monitors)
            for port in sentinel_ports
        ]

        servers = [
            self._server_builder.build_process(config, server_executable)
            for config in server_configs
        ]
        sentinels = [
            self._sentinel_builder.build_process(config, sentinel_executable)
            for config in sentinel_configs
        ]
        return RedisCluster(sentinels, servers)
