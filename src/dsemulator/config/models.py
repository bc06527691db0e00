from __future__ import annotations

from typing import Self

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from dsemulator.launch_mode import LaunchMode
from dsemulator.utils.net import get_free_port


class EmulatorSettings(BaseSettings):
    """
    Configuration of the Datastore emulator supervisor.

    Loads values from the following sources:
    - Environment variables (with prefix DSEMULATOR_)
    - Initialization values (e.g., from YAML)
    - .env file
    - Secret files
    """

    model_config = SettingsConfigDict(env_prefix="DSEMULATOR_", env_nested_delimiter="__")

    gcloud_bin: str = "gcloud"  # Name or path of the gcloud executable
    gcloud_args: list[str] = Field(
        default_factory=lambda: ["beta", "emulators", "datastore"]
    )  # gcloud command group of the Datastore emulator
    launch_mode: LaunchMode = LaunchMode.FIXED  # How host/project of a new emulator are decided
    # Address the emulator binds to in fixed mode. Default: localhost:<free port>
    host_port: str = Field(default_factory=lambda: f"localhost:{get_free_port()}")
    project: str = "test"  # Project id served by the emulator in fixed mode
    consistency: float = Field(default=1.0, ge=0.0, le=1.0)  # 1.0 disables eventual consistency
    data_dir: str | None = None  # Optional --data-dir for the emulator
    reuse_existing: bool = True  # Adopt a healthy emulator advertised by the environment
    startup_timeout: float = Field(default=30.0, gt=0)  # Max time to wait for a healthy emulator
    poll_interval: float = Field(default=0.2, gt=0)  # Interval between startup health checks
    request_timeout: float = Field(default=1.0, gt=0)  # Timeout of a single control request
    stop_timeout: float = Field(default=5.0, ge=0)  # Grace period for the child process to exit
    log_file: str = "artifacts/datastore-emulator.log"  # Emulator stdout/stderr

    @model_validator(mode="after")
    def _check_timing(self) -> Self:
        if self.startup_timeout < self.poll_interval:
            raise ValueError("startup_timeout must not be shorter than poll_interval")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,  # type: type[BaseSettings]
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """
        Configure the order of configuration sources.

        Loading priority:
        1. Environment variables
        2. Initialization values (e.g., from YAML)
        3. .env file
        4. Secret files
        """
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)
