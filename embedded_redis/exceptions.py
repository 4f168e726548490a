class EmbeddedRedisError(Exception):
    """Base class for every error raised by embedded_redis."""


class BuildingError(EmbeddedRedisError):
    """Invalid configuration, detected before any process is spawned."""


class ExecutableNotFound(BuildingError):
    pass


class OsDetectionError(BuildingError):
    pass


class PortsExhausted(BuildingError):
    pass


class QuorumExceedsSentinelCount(BuildingError):
    def __init__(self, quorum, sentinel_count, group=None):
        self.quorum = quorum
        self.sentinel_count = sentinel_count
        self.group = group
        where = f' for group {group}' if group else ''
        super().__init__(
            f'quorum {quorum}{where} exceeds sentinel count {sentinel_count}'
        )


class DuplicateGroupNameError(BuildingError):
    def __init__(self, name):
        self.name = name
        super().__init__(f'replication group {name!r} declared more than once')


class StartupError(EmbeddedRedisError):
    """A single process did not reach readiness.

    `output` holds the tail of what the process printed, for diagnosis.
    """

    def __init__(self, message, output=None):
        self.output = list(output or [])
        if self.output:
            message = message + '\n' + '\n'.join(self.output)
        super().__init__(message)


class StartupFailed(StartupError):
    def __init__(self, message, output=None, returncode=None):
        self.returncode = returncode
        super().__init__(message, output)


class StartupTimeout(StartupError):
    pass


class AlreadyRunningError(EmbeddedRedisError, RuntimeError):
    """start() called on a process that is already running."""


class TeardownError(EmbeddedRedisError):
    def __init__(self, errors):
        self.errors = list(errors)
        details = '; '.join(str(e) for e in self.errors)
        super().__init__(f'{len(self.errors)} member(s) failed to stop: {details}')
