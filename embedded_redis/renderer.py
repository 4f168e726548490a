import os
import shlex

from .config import ServerConfig, ServerRole


class ConfigRenderer:
    """Turns a ServerConfig into redis.conf lines and a launch command."""

    def __init__(self, config: ServerConfig):
        self.config = config

    def base_lines(self):
        config = self.config
        lines = [f'bind {config.bind}', f'port {config.port}']
        if config.tls_port:
            lines.append(f'tls-port {config.tls_port}')
        return lines

    def replication_lines(self):
        if self.config.role != ServerRole.REPLICA:
            return []
        host, port = self.config.master
        return [f'replicaof {host} {port}']

    def monitor_lines(self):
        lines = []
        for monitor in self.config.monitors:
            group = monitor.group
            lines.append(f'sentinel monitor {group} {monitor.host} {monitor.port} {monitor.quorum}')
            lines.append(f'sentinel down-after-milliseconds {group} {monitor.down_after_milliseconds}')
            lines.append(f'sentinel failover-timeout {group} {monitor.failover_timeout}')
            lines.append(f'sentinel parallel-syncs {group} {monitor.parallel_syncs}')
        return lines

    def lines(self):
        return (
            self.base_lines()
            + self.replication_lines()
            + self.monitor_lines()
            + list(self.config.settings)
        )

    def render(self) -> str:
        return '\n'.join(self.lines()) + '\n'

    def config_file_name(self):
        port = self.config.port or self.config.tls_port
        return f'embedded-redis-{self.config.role.value}-{port}.conf'

    def write(self, directory) -> str:
        path = os.path.join(directory, self.config_file_name())
        with open(path, 'w') as f:
            f.write(self.render())
        return path

    def inline_args(self):
        if self.config.role == ServerRole.SENTINEL:
            raise ValueError('sentinel needs a config file, inline settings are not supported')
        args = []
        for line in self.lines():
            tokens = shlex.split(line, comments=True)
            if not tokens:
                continue
            args.append('--' + tokens[0])
            args.extend(tokens[1:])
        return args

    def command(self, executable, config_file=None):
        """Launch command; inline `--key value` settings when no config file is given."""
        if config_file is None:
            return [executable] + self.inline_args()
        args = [executable, config_file]
        if self.config.role == ServerRole.SENTINEL:
            args.append('--sentinel')
        return args
