from logging import getLogger

from .exceptions import TeardownError
from .process import Redis


logger = getLogger(__name__)


class RedisCluster(Redis):
    """Sentinels plus replication group servers, driven as one unit.

    Servers start first (in creation order, so each master comes up before its
    replicas) and sentinels last; stop runs the other way round so sentinels never
    see their masters disappear and start a failover.
    """

    def __init__(self, sentinels, servers):
        self._sentinels = list(sentinels)
        self._servers = list(servers)

    @staticmethod
    def builder():
        from .topology import RedisClusterBuilder
        return RedisClusterBuilder()

    def sentinels(self):
        return list(self._sentinels)

    def servers(self):
        return list(self._servers)

    def members(self):
        return self._sentinels + self._servers

    def start(self):
        for member in self._servers + self._sentinels:
            logger.debug(f'starting {member}')
            member.start()
        logger.info(
            f'cluster started: sentinels {self.sentinel_ports()}, servers {self.server_ports()}'
        )

    def stop(self):
        errors = []
        for member in self._sentinels + self._servers[::-1]:
            try:
                member.stop()
            except Exception as e:
                logger.warning(f'failed to stop {member}: {e}')
                errors.append(e)
        if errors:
            raise TeardownError(errors)

    def is_active(self) -> bool:
        return all(member.is_active() for member in self.members())

    def sentinel_ports(self):
        return [port for sentinel in self._sentinels for port in sentinel.ports()]

    def server_ports(self):
        return [port for server in self._servers for port in server.ports()]

    def ports(self):
        return self.sentinel_ports() + self.server_ports()

    def tls_ports(self):
        return [port for member in self.members() for port in member.tls_ports()]
