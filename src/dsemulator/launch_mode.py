from enum import Enum


class LaunchMode(str, Enum):
    """
    Strategy used to obtain the address and project of a newly launched emulator.

    FIXED passes an explicit --host-port/--project to the emulator.
    ENV_INIT lets gcloud assign them and reads them back through `env-init`.
    """

    FIXED = "fixed"
    ENV_INIT = "env-init"
