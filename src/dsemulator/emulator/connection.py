from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass

# Variable names read by the google-cloud-datastore client libraries
EMULATOR_HOST_ENV = "DATASTORE_EMULATOR_HOST"
HOST_ENV = "DATASTORE_HOST"
PROJECT_ENV = "DATASTORE_PROJECT_ID"
DATASET_ENV = "DATASTORE_DATASET"

PUBLISHED_KEYS = (EMULATOR_HOST_ENV, HOST_ENV, PROJECT_ENV, DATASET_ENV)


def strip_scheme(address: str) -> str:
    """Return the "host:port" part of an address such as "http://localhost:8081/"."""
    addr = address.strip()
    if "://" in addr:
        addr = addr.split("://", 1)[1]
    return addr.rstrip("/")


@dataclass(frozen=True, slots=True)
class EmulatorConnection:
    """
    Coordinates of a running emulator instance.

    Passed explicitly to code that needs to reach the emulator (e.g. a datastore client).
    `from_env`/`to_env` adapt it to the environment variables the client libraries read.
    """

    host: str  # host:port, no scheme
    project_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "host", strip_scheme(self.host))

    @property
    def base_url(self) -> str:
        return f"http://{self.host}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> EmulatorConnection | None:
        """
        Read the emulator coordinates advertised in `environ`.

        DATASTORE_EMULATOR_HOST takes precedence over DATASTORE_HOST.
        Returns None if the host or the project id is missing.
        """
        host = (environ.get(EMULATOR_HOST_ENV) or environ.get(HOST_ENV) or "").strip()
        project_id = (environ.get(PROJECT_ENV) or "").strip()
        if not host or not project_id or not strip_scheme(host):
            return None
        return cls(host=host, project_id=project_id)

    def to_env(self) -> dict[str, str]:
        return {
            EMULATOR_HOST_ENV: self.host,
            HOST_ENV: self.base_url,
            PROJECT_ENV: self.project_id,
            DATASET_ENV: self.project_id,
        }

    def client_kwargs(self) -> dict[str, str]:
        """
        Keyword arguments for `google.cloud.datastore.Client` bound to this instance's project.

        Only the project is injected. The client library locates the endpoint (and switches
        to anonymous credentials) from DATASTORE_EMULATOR_HOST alone, so the coordinates
        must also be in the client's environment: published by `Emulator.start()` or
        written from `to_env()`.
        """
        return {"project": self.project_id}


class EnvironmentPublisher:
    """
    Writes emulator coordinates into an environment mapping and removes them again.

    Only one emulator can be advertised per mapping; publishing overwrites the previous values.
    """

    def __init__(self, environ: MutableMapping[str, str]) -> None:
        self._environ = environ
        self._published: set[str] = set()

    @property
    def published(self) -> frozenset[str]:
        return frozenset(self._published)

    def publish(self, connection: EmulatorConnection) -> None:
        for key, value in connection.to_env().items():
            self._environ[key] = value
            self._published.add(key)

    def clear(self) -> None:
        """
        Remove the published variables.

        When nothing was published through this instance, the standard keys are removed.
        Safe to call repeatedly.
        """
        keys = self._published or set(PUBLISHED_KEYS)
        for key in keys:
            self._environ.pop(key, None)
        self._published.clear()
