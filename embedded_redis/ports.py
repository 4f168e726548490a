import socket
import threading
from logging import getLogger

from .exceptions import PortsExhausted


logger = getLogger(__name__)


DEFAULT_SERVER_PORT = 6379
DEFAULT_SENTINEL_PORT = 26379


class PortProvider:
    """Hands out port numbers; one instance never returns the same port twice."""

    def next(self) -> int:
        raise NotImplementedError()


class SequencePortProvider(PortProvider):
    def __init__(self, base=DEFAULT_SERVER_PORT):
        self.current = base
        self.lock = threading.Lock()

    def next(self) -> int:
        with self.lock:
            port = self.current
            self.current += 1
        return port


class PredefinedPortProvider(PortProvider):
    def __init__(self, ports):
        self.ports = list(ports)
        self.position = 0
        self.lock = threading.Lock()

    def next(self) -> int:
        with self.lock:
            if self.position >= len(self.ports):
                raise PortsExhausted(
                    f'run out of predefined ports ({len(self.ports)} available)'
                )
            port = self.ports[self.position]
            self.position += 1
        return port


class EphemeralPortProvider(PortProvider):
    """Asks the OS for a currently unused port.

    The socket is closed before the port is handed out, so another process can
    still grab it in between; good enough for test runs.
    """

    def __init__(self, host='127.0.0.1'):
        self.host = host
        self.family = socket.AF_INET6 if ':' in host else socket.AF_INET
        self.issued = set()
        self.lock = threading.Lock()

    def _bind_free_port(self):
        try:
            with socket.socket(self.family, socket.SOCK_STREAM) as sock:
                sock.bind((self.host, 0))
                return sock.getsockname()[1]
        except OSError as e:
            raise PortsExhausted(f'could not obtain an ephemeral port: {e}') from e

    def next(self) -> int:
        with self.lock:
            for _ in range(100):
                port = self._bind_free_port()
                if port not in self.issued:
                    self.issued.add(port)
                    logger.debug(f'allocated ephemeral port {port}')
                    return port
        raise PortsExhausted('OS kept returning already issued ports')


def as_port_provider(ports) -> PortProvider:
    if isinstance(ports, PortProvider):
        return ports
    if isinstance(ports, int):
        return SequencePortProvider(ports)
    return PredefinedPortProvider(ports)
