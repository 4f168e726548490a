from .config import DEFAULT_BIND, ServerConfig, ServerRole
from .exceptions import BuildingError
from .executables import ExecProvider
from .ports import DEFAULT_SERVER_PORT
from .process import RedisProcess
from .readiness import SERVER_READY_PATTERN


class RedisServer(RedisProcess):
    """A redis-server process.

    `RedisServer(6379)` launches a standalone server with the default
    executable; use `RedisServer.builder()` for anything else.
    """

    def __init__(self, port=DEFAULT_SERVER_PORT, config=None, executable=None, **kwargs):
        if config is None:
            config = ServerConfig(role=ServerRole.STANDALONE, port=port)
        if executable is None:
            executable = ExecProvider.default().resolve()
        kwargs.setdefault('ready_pattern', SERVER_READY_PATTERN)
        super().__init__(config, executable, **kwargs)

    @staticmethod
    def builder():
        return RedisServerBuilder()


class RedisServerBuilder:

    def __init__(self):
        self._exec_provider = ExecProvider.default()
        self._bind = DEFAULT_BIND
        self._port = DEFAULT_SERVER_PORT
        self._tls_port = None
        self._master = None
        self._settings = []
        self._inline = False
        self._process_options = {}

    def exec_provider(self, provider: ExecProvider):
        self._exec_provider = provider
        return self

    def bind(self, bind):
        self._bind = bind
        return self

    def port(self, port):
        self._port = port
        return self

    def tls_port(self, port):
        self._tls_port = port
        return self

    def replica_of(self, host, port):
        self._master = (host, port)
        return self

    slave_of = replica_of

    def setting(self, line):
        self._settings.append(line)
        return self

    def settings(self, lines):
        self._settings.extend(lines)
        return self

    def config_file(self, path):
        """Take settings from an existing redis.conf."""
        with open(path, 'r') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    self._settings.append(line)
        return self

    def inline(self, enabled=True):
        self._inline = enabled
        return self

    def startup_timeout(self, seconds):
        self._process_options['startup_timeout'] = seconds
        return self

    def stop_timeout(self, seconds):
        self._process_options['stop_timeout'] = seconds
        return self

    def working_dir(self, path):
        self._process_options['working_dir'] = path
        return self

    def env(self, variables):
        self._process_options['env'] = dict(variables)
        return self

    def ready_pattern(self, pattern):
        self._process_options['ready_pattern'] = pattern
        return self

    def redis_ready_pattern(self):
        return self._process_options.get('ready_pattern', SERVER_READY_PATTERN)

    def get_bind(self):
        return self._bind

    def get_port(self):
        return self._port

    def get_tls_port(self):
        return self._tls_port

    def build_config(self, role=None, port=None, master=None, tls_port=None) -> ServerConfig:
        """ServerConfig from this builder, with role/ports/master optionally replaced."""
        if role is None:
            master = master if master is not None else self._master
            role = ServerRole.REPLICA if master is not None else ServerRole.STANDALONE
        elif role != ServerRole.REPLICA:
            master = None
        try:
            return ServerConfig(
                role=role,
                bind=self._bind,
                port=self._port if port is None else port,
                tls_port=self._tls_port if tls_port is None else tls_port,
                settings=tuple(self._settings),
                master=master,
            )
        except ValueError as e:
            raise BuildingError(f'invalid redis server config: {e}') from e

    def resolve_executable(self):
        return self._exec_provider.resolve()

    def build_process(self, config: ServerConfig, executable) -> RedisServer:
        return RedisServer(
            config=config,
            executable=executable,
            inline=self._inline,
            **self._process_options,
        )

    def build(self) -> RedisServer:
        config = self.build_config()
        return self.build_process(config, self.resolve_executable())
