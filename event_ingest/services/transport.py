"""
Chat-transport collaborator.

The chat session itself lives in a sidecar process; this module talks to it
over HTTP. Every call is best-effort: failures are logged and surface as
None/False, never as exceptions.
"""

import time
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx

from event_ingest.utils.logger import setup_logger
from event_ingest.utils.retry_utils import RetryPolicy, is_retryable_status

logger = setup_logger("transport")


class TransportInterface(ABC):
    @abstractmethod
    async def send_text(self, chat_id: str, text: str) -> bool:
        """Send a plain-text message to a chat."""

    @abstractmethod
    async def resolve_contact_phone(self, contact_id: str) -> str | None:
        """Resolve an alias-form contact id to a phone-form id."""

    @abstractmethod
    async def lookup_contact_phone(self, contact_id: str) -> str | None:
        """Fallback resolution when `resolve_contact_phone` finds nothing."""

    @abstractmethod
    async def get_group_name(self, group_id: str) -> str | None:
        """Display name of a group, if the transport knows it."""

    async def close(self):
        return


def _is_retryable_http_error(e: BaseException) -> bool:
    if isinstance(e, httpx.HTTPStatusError):
        return is_retryable_status(e.response.status_code)
    return isinstance(e, httpx.TransportError)


def transport_retry_policy(max_attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=max_attempts,
        base_delay=0.5,
        max_delay=4.0,
        is_retryable=_is_retryable_http_error,
    )


class HttpTransportBridge(TransportInterface):
    """
    httpx client for the transport sidecar.

    Endpoints: POST /messages, GET /contacts/{id}, GET /contacts/{id}/lookup,
    GET /groups/{id}.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        retry_policy: RetryPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or transport_retry_policy()
        self._client = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        logger.info(f"Transport bridge initialized. Base URL: {self.base_url}, Timeout: {timeout}s")

    async def _request(
        self, method: str, path: str, json_body: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        async def call() -> dict[str, Any]:
            response = await self._client.request(method, path, json=json_body)
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()

        start_time = time.perf_counter()
        try:
            result = await self.retry_policy.run(call, description=f"transport {method} {path}")
        except httpx.HTTPStatusError as e:
            duration = time.perf_counter() - start_time
            logger.error(
                f"Transport {method} {path} failed after {duration:.4f}s: "
                f"status {e.response.status_code} - {e.response.text[:200]}"
            )
            return None
        except (httpx.RequestError, ValueError) as e:
            duration = time.perf_counter() - start_time
            logger.error(
                f"Transport {method} {path} failed after {duration:.4f}s: {type(e).__name__}: {e}"
            )
            return None

        logger.debug(
            f"Transport {method} {path} completed in {time.perf_counter() - start_time:.4f}s"
        )
        return result if isinstance(result, dict) else {}

    async def send_text(self, chat_id: str, text: str) -> bool:
        result = await self._request("POST", "/messages", {"chatId": chat_id, "text": text})
        return result is not None

    async def resolve_contact_phone(self, contact_id: str) -> str | None:
        result = await self._request("GET", f"/contacts/{quote(contact_id, safe='')}")
        return (result or {}).get("phone") or None

    async def lookup_contact_phone(self, contact_id: str) -> str | None:
        result = await self._request("GET", f"/contacts/{quote(contact_id, safe='')}/lookup")
        return (result or {}).get("phone") or None

    async def get_group_name(self, group_id: str) -> str | None:
        result = await self._request("GET", f"/groups/{quote(group_id, safe='')}")
        return (result or {}).get("name") or None

    async def close(self):
        logger.info("Closing transport bridge client.")
        await self._client.aclose()


class NullTransport(TransportInterface):
    """Used when no transport sidecar is configured: nothing is sent or resolved."""

    async def send_text(self, chat_id: str, text: str) -> bool:
        logger.debug(f"No transport configured; dropping message to {chat_id}")
        return False

    async def resolve_contact_phone(self, contact_id: str) -> str | None:
        return None

    async def lookup_contact_phone(self, contact_id: str) -> str | None:
        return None

    async def get_group_name(self, group_id: str) -> str | None:
        return None
