"""
Abstract interface for Large Language Model (LLM) services.

Defines the contract every provider adapter implements: one structured-output
call that takes a system prompt, the user content and a JSON schema, and
returns the parsed JSON object. Provider failures surface as
`LLMProviderError` with a retry classification; replies that are not a JSON
object surface as `LLMSchemaError`.
"""

from abc import ABC, abstractmethod
from typing import Any


class LLMProviderError(Exception):
    """
    Error raised by a provider adapter.

    `retryable` marks rate limits, request timeouts, server errors and
    connection failures. `retry_after_seconds` carries a provider-suggested
    delay when one was given.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        status_code: int | None = None,
        retry_after_seconds: float | None = None,
    ):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_seconds = retry_after_seconds


class LLMSchemaError(Exception):
    """The model replied, but not with a usable JSON object."""

    def __init__(self, message: str, payload_excerpt: str = ""):
        super().__init__(message)
        self.payload_excerpt = payload_excerpt


class LLMInterface(ABC):
    """
    Abstract Base Class for Large Language Model services.
    Defines a common interface for interacting with different LLM providers.
    """

    provider_name: str = "base"

    @abstractmethod
    async def complete_json(
        self,
        system_prompt: str,
        user_content: str,
        json_schema: dict[str, Any],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        image_url: str | None = None,
        model: str | None = None,
    ) -> dict[str, Any]:
        """
        Run one structured-output completion and return the parsed JSON object.

        When `image_url` is given the image is attached to the user turn.
        Raises LLMProviderError for transport/provider failures and
        LLMSchemaError when the reply cannot be parsed as a JSON object.
        """

    async def close(self):
        """
        Optional method to close any underlying connections or clients.
        Providers that don't need explicit closing can have an empty implementation.
        """
        return
