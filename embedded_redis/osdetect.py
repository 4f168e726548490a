import platform
from dataclasses import dataclass
from enum import Enum

from .exceptions import OsDetectionError


class OS(Enum):
    WINDOWS = 'windows'
    UNIX = 'unix'
    MAC_OS_X = 'mac_os_x'


class Architecture(Enum):
    X86 = 'x86'
    X86_64 = 'x86_64'
    ARM64 = 'arm64'


_MACHINE_ARCHITECTURES = {
    'x86_64': Architecture.X86_64,
    'amd64': Architecture.X86_64,
    'i386': Architecture.X86,
    'i486': Architecture.X86,
    'i586': Architecture.X86,
    'i686': Architecture.X86,
    'x86': Architecture.X86,
    'aarch64': Architecture.ARM64,
    'arm64': Architecture.ARM64,
}


@dataclass(frozen=True)
class OsArchitecture:
    os: OS
    arch: Architecture

    def __str__(self):
        return f'{self.os.value}/{self.arch.value}'

    @classmethod
    def detect(cls):
        return cls(detect_os(), detect_architecture())


def detect_os(system_name=None) -> OS:
    system_name = (system_name if system_name is not None else platform.system()).lower()
    if system_name.startswith('win'):
        return OS.WINDOWS
    if system_name == 'darwin' or 'mac' in system_name:
        return OS.MAC_OS_X
    if 'nix' in system_name or 'nux' in system_name or 'aix' in system_name or 'bsd' in system_name:
        return OS.UNIX
    raise OsDetectionError(f'unrecognized OS: {system_name}')


def detect_architecture(machine=None) -> Architecture:
    machine = (machine if machine is not None else platform.machine()).lower()
    arch = _MACHINE_ARCHITECTURES.get(machine)
    if arch is None:
        raise OsDetectionError(f'could not detect the CPU architecture from: {machine!r}')
    return arch
