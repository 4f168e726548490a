import threading
import time
from logging import getLogger

from fastapi import APIRouter, FastAPI
from uvicorn import Config, Server

from .cluster import RedisCluster
from .config import Settings
from .executables import ExecProvider
from .process import Redis
from .sentinel import RedisSentinel
from .server import RedisServer
from .utils import GracefulKiller


logger = getLogger(__name__)


class Runner:
    """Keeps a server or a whole topology alive until SIGINT/SIGTERM or /shutdown."""

    CHECK_INTERVAL = 1

    def __init__(self, config: Settings, mode: str):
        self.config = config
        self.mode = mode
        self.target: Redis = None
        self.http_server = None
        self.shutdown_requested = False
        self.reported_inactive = False

    def exec_provider(self):
        if self.config.executable:
            return ExecProvider.from_path(self.config.executable)
        return ExecProvider.default()

    def server_builder(self, provider):
        settings = self.config.server
        builder = (
            RedisServer.builder()
            .exec_provider(provider)
            .bind(self.config.bind)
            .port(settings.port)
            .settings(settings.settings)
            .inline(settings.inline)
            .startup_timeout(self.config.startup_timeout)
            .stop_timeout(self.config.stop_timeout)
        )
        if settings.tls_port:
            builder.tls_port(settings.tls_port)
        return builder

    def sentinel_builder(self, provider):
        settings = self.config.sentinel
        builder = (
            RedisSentinel.builder()
            .exec_provider(provider)
            .bind(self.config.bind)
            .down_after_milliseconds(settings.down_after_milliseconds)
            .failover_timeout(settings.failover_timeout)
            .parallel_syncs(settings.parallel_syncs)
            .startup_timeout(self.config.startup_timeout)
            .stop_timeout(self.config.stop_timeout)
        )
        for line in settings.settings:
            builder.setting(line)
        return builder

    def build_target(self) -> Redis:
        provider = self.exec_provider()
        if self.mode == 'server':
            return self.server_builder(provider).build()

        cluster = self.config.cluster
        if cluster is None:
            raise ValueError(f'cluster mode needs a "cluster" section in {self.config.settings_file}')
        return (
            RedisCluster.builder()
            .with_server_builder(self.server_builder(provider))
            .with_sentinel_builder(self.sentinel_builder(provider))
            .server_ports(cluster.server_port)
            .sentinel_port_provider(cluster.sentinel_port)
            .from_spec(cluster.to_topology_spec())
            .build()
        )

    def status(self):
        target = self.target
        if target is None:
            return {'mode': self.mode, 'active': False, 'ports': [], 'tls_ports': []}
        result = {
            'mode': self.mode,
            'active': target.is_active(),
            'ports': target.ports(),
            'tls_ports': target.tls_ports(),
        }
        if isinstance(target, RedisCluster):
            result['sentinel_ports'] = target.sentinel_ports()
            result['server_ports'] = target.server_ports()
        return result

    def shutdown(self):
        logger.info('shutdown requested over http')
        self.shutdown_requested = True
        return {'stopping': True}

    def create_app(self) -> FastAPI:
        app = FastAPI()
        router = APIRouter()
        router.add_api_route('/status', self.status, methods=['GET'])
        router.add_api_route('/shutdown', self.shutdown, methods=['GET'])
        app.include_router(router)
        return app

    def run_server(self):
        if not self.config.http_host or not self.config.http_port:
            logger.info('http server disabled')
            return
        logger.info(f'starting http server on {self.config.http_host}:{self.config.http_port}')
        config = Config(
            app=self.create_app(),
            host=self.config.http_host,
            port=self.config.http_port,
            log_level='warning',
        )
        self.http_server = Server(config)
        self.http_server.run()

    def check_active(self):
        if self.target.is_active():
            self.reported_inactive = False
            return
        if not self.reported_inactive:
            logger.warning(f'{self.mode} is no longer fully active: {self.status()}')
            self.reported_inactive = True

    def run(self):
        killer = GracefulKiller()

        self.target = self.build_target()
        server_thread = None
        try:
            self.target.start()
            logger.info(f'{self.mode} running, ports {self.target.ports()}')

            server_thread = threading.Thread(target=self.run_server, daemon=True)
            server_thread.start()

            while not killer.kill_now and not self.shutdown_requested:
                time.sleep(self.CHECK_INTERVAL)
                self.check_active()
        finally:
            logger.info('stopping runner')
            if self.http_server:
                self.http_server.should_exit = True
            if server_thread is not None:
                server_thread.join()
            self.target.stop()
            logger.info('stopped')
