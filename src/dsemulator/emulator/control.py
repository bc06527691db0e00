from __future__ import annotations

from http.client import HTTPException
from urllib.error import HTTPError
from urllib.request import Request, urlopen

from ..utils.logging import get_logger
from .errors import RequestError

HEALTHCHECK_ENDPOINT = "/"
RESET_ENDPOINT = "/reset"
SHUTDOWN_ENDPOINT = "/shutdown"


class ControlClient:
    """
    Issues single HTTP requests against the emulator control endpoints.

    Every request is bounded by `timeout` seconds and is never retried.
    """

    def __init__(self, base_url: str, *, timeout: float = 1.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._log = get_logger(__name__)

    def request(self, path: str, method: str = "GET") -> None:
        """
        Send `method` to `path` and require a 200 response.

        Raises:
            RequestError: On any other status, a transport failure or a timeout.
        """
        url = self.base_url + (path if path.startswith("/") else "/" + path)
        # POST requests need a body for urllib to send Content-Length: 0
        data = b"" if method == "POST" else None
        req = Request(url, data=data, method=method)
        try:
            with urlopen(req, timeout=self.timeout) as resp:  # nosec - controlled URL
                status = resp.status
        except HTTPError as e:
            status = e.code
            e.close()
        except (HTTPException, OSError, ValueError) as e:
            # ValueError covers hosts the idna codec rejects (empty or over-long labels)
            reason = getattr(e, "reason", None) or e
            raise RequestError(
                f"emulator {method} {path} failed: {reason}", path=path, method=method
            ) from e

        if status != 200:
            raise RequestError(
                f"emulator {method} {path} returned status {status}",
                path=path,
                method=method,
                status=status,
            )
        self._log.debug("Emulator control request", method=method, path=path, status=status)

    def is_healthy(self) -> bool:
        try:
            self.request(HEALTHCHECK_ENDPOINT, "GET")
        except RequestError:
            return False
        return True

    def reset(self) -> None:
        self.request(RESET_ENDPOINT, "POST")

    def shutdown(self) -> None:
        self.request(SHUTDOWN_ENDPOINT, "POST")
