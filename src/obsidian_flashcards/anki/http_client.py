"""HTTP transport for the AnkiConnect API."""

from __future__ import annotations

from types import TracebackType
from typing import Any, Literal

import httpx

from ..exceptions import AnkiRejectedError, AnkiTransportError
from ..utils.logging import get_logger

logger = get_logger(__name__)


class AnkiHttpClient:
    """Async HTTP client for AnkiConnect.

    Every failure is classified as either transport (Anki unreachable, bad
    HTTP status, malformed envelope) or rejection (a well-formed reply whose
    ``error`` is not null).
    """

    def __init__(
        self,
        url: str,
        version: int = 6,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.version = version
        self._client = client or httpx.AsyncClient(timeout=timeout)
        logger.debug("anki_http_client_initialized", url=url, timeout=timeout)

    async def invoke(self, action: str, params: dict[str, Any] | None = None) -> Any:
        """Invoke an AnkiConnect action and return its ``result``.

        Raises:
            AnkiTransportError: If Anki cannot be reached or replies with garbage
            AnkiRejectedError: If Anki reports an error for this request
        """
        payload = {"action": action, "version": self.version, "params": params or {}}
        logger.debug("anki_invoke", action=action)

        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            msg = f"Connection error to AnkiConnect: {e}"
            raise AnkiTransportError(
                msg,
                suggestion=(
                    "Ensure Anki is running with the AnkiConnect add-on. "
                    f"Verify URL is correct: {self.url}"
                ),
                context={"action": action, "url": self.url},
            ) from e
        except httpx.HTTPStatusError as e:
            msg = f"HTTP {e.response.status_code} from AnkiConnect"
            raise AnkiTransportError(msg, context={"action": action}) from e
        except httpx.HTTPError as e:
            msg = f"HTTP error calling AnkiConnect: {e}"
            raise AnkiTransportError(msg, context={"action": action}) from e

        try:
            result = response.json()
        except ValueError as e:
            msg = f"Invalid JSON response: {e}"
            raise AnkiTransportError(msg, context={"action": action}) from e

        if not isinstance(result, dict):
            msg = f"Invalid response type: expected dict, got {type(result).__name__}"
            raise AnkiTransportError(msg, context={"action": action})

        if "error" not in result or "result" not in result:
            msg = f"Malformed response: missing error/result fields in {result}"
            raise AnkiTransportError(msg, context={"action": action})

        if result["error"] is not None:
            error_msg = str(result["error"])
            logger.debug("anki_request_rejected", action=action, error=error_msg)
            msg = f"AnkiConnect error: {error_msg}"
            raise AnkiRejectedError(msg, context={"action": action})

        return result["result"]

    async def aclose(self) -> None:
        await self._client.aclose()
        logger.debug("anki_http_client_closed", url=self.url)

    async def __aenter__(self) -> AnkiHttpClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        await self.aclose()
        return False
