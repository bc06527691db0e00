from .connection import EmulatorConnection, EnvironmentPublisher
from .control import ControlClient
from .errors import CloseError, EmulatorError, LaunchError, RequestError, StartupTimeoutError
from .launcher import GcloudLauncher, LaunchResult, parse_env_init
from .startup import StartupConfirmation, StartupState
from .supervisor import Emulator, start_emulator

__all__ = [
    "Emulator",
    "start_emulator",
    "EmulatorConnection",
    "EnvironmentPublisher",
    "ControlClient",
    "GcloudLauncher",
    "LaunchResult",
    "parse_env_init",
    "StartupConfirmation",
    "StartupState",
    "EmulatorError",
    "LaunchError",
    "RequestError",
    "StartupTimeoutError",
    "CloseError",
]
