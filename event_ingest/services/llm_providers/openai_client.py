import time
from typing import Any

from openai import APIConnectionError, APIStatusError, AsyncOpenAI, OpenAIError

from event_ingest.config import settings
from event_ingest.services.llm_interface import (
    LLMInterface,
    LLMProviderError,
    LLMSchemaError,
)
from event_ingest.utils.json_parser import extract_json_object
from event_ingest.utils.logger import setup_logger, truncate_for_log
from event_ingest.utils.retry_utils import is_retryable_status, parse_suggested_delay

logger = setup_logger("openai_client")


def _to_provider_error(e: OpenAIError) -> LLMProviderError:
    if isinstance(e, APIStatusError):
        message = str(getattr(e, "message", "") or e)
        retry_after = parse_suggested_delay(message)
        if retry_after is None and e.status_code == 429:
            retry_after = settings.rate_limit_default_delay_seconds
        return LLMProviderError(
            message,
            retryable=is_retryable_status(e.status_code),
            status_code=e.status_code,
            retry_after_seconds=retry_after,
        )
    if isinstance(e, APIConnectionError):
        # APITimeoutError is a subclass
        return LLMProviderError(str(e), retryable=True)
    return LLMProviderError(str(e), retryable=False)


class OpenAIClient(LLMInterface):
    """
    LLM Client implementation for OpenAI API.
    """

    provider_name = "openai"

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        default_model: str = settings.default_openai_model,
        request_timeout: float = settings.llm_request_timeout,
    ):
        if not api_key:
            logger.error("OpenAI API key is required but not provided")
            raise ValueError("OpenAI API key is required.")

        self.api_key = api_key
        self.base_url = base_url
        self.default_model = default_model

        logger.debug(
            f"Initializing OpenAI client with model: {default_model}, base_url: {base_url or 'Default'}"
        )

        # Retries are owned by the stage retry policy
        client_args = {
            "api_key": self.api_key,
            "timeout": request_timeout,
            "max_retries": 0,
        }
        if self.base_url:
            client_args["base_url"] = self.base_url

        try:
            self._client = AsyncOpenAI(**client_args)
            logger.info(
                f"OpenAI client initialized successfully. Base URL: {'Default' if not self.base_url else self.base_url}, Default Model: {self.default_model}"
            )
        except Exception as e:
            logger.error(f"Failed to initialize OpenAI client: {e}", exc_info=True)
            raise

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
        effective_model = model or self.default_model
        max_tokens = max_tokens or settings.llm_extraction_max_tokens
        temperature = settings.llm_temperature if temperature is None else temperature
        schema_name = json_schema.get("name", "response")

        if image_url:
            user_message: Any = [
                {"type": "text", "text": user_content},
                {"type": "image_url", "image_url": {"url": image_url}},
            ]
        else:
            user_message = user_content

        logger.debug(
            f"complete_json called for schema '{schema_name}', model: {effective_model}, "
            f"max_tokens: {max_tokens}, image: {bool(image_url)}"
        )

        start_time = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(
                model=effective_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message},
                ],
                response_format={"type": "json_schema", "json_schema": json_schema},
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except OpenAIError as e:
            duration = time.perf_counter() - start_time
            error = _to_provider_error(e)
            logger.error(
                f"OpenAI API error for schema '{schema_name}' with model {effective_model} after {duration:.4f}s: "
                f"{type(e).__name__} (status={error.status_code}, retryable={error.retryable}): {e}"
            )
            raise error from e

        duration = time.perf_counter() - start_time
        content = response.choices[0].message.content if response.choices else None

        logger.info(
            f"OpenAI complete_json '{schema_name}' for model {effective_model} completed in {duration:.4f}s, "
            f"output: {len(content) if content else 0} chars"
        )
        if duration > 30:
            logger.warning(f"Slow chat completion response: {duration:.4f}s")

        parsed = extract_json_object(content)
        if parsed is None:
            raise LLMSchemaError(
                f"OpenAI reply for '{schema_name}' is not a JSON object",
                payload_excerpt=truncate_for_log(content),
            )
        return parsed

    async def close(self):
        logger.info("Closing OpenAI client.")
        try:
            await self._client.close()
            logger.info("OpenAI client closed successfully.")
        except Exception as e:
            logger.error(f"Error closing OpenAI client: {e}", exc_info=True)
            raise
