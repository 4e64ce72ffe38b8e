import json
import time
from typing import Any

import httpx
from google import genai
from google.genai import errors, types

from event_ingest.config import settings
from event_ingest.services.llm_interface import (
    LLMInterface,
    LLMProviderError,
    LLMSchemaError,
)
from event_ingest.utils.json_parser import extract_json_object
from event_ingest.utils.logger import setup_logger, truncate_for_log
from event_ingest.utils.retry_utils import is_retryable_status, parse_suggested_delay

logger = setup_logger("gemini_client")


def _to_provider_error(e: errors.APIError) -> LLMProviderError:
    message = str(getattr(e, "message", "") or e)
    status_code = getattr(e, "code", None)
    retry_after = parse_suggested_delay(message)
    if retry_after is None and status_code == 429:
        retry_after = settings.rate_limit_default_delay_seconds
    return LLMProviderError(
        message,
        retryable=is_retryable_status(status_code),
        status_code=status_code,
        retry_after_seconds=retry_after,
    )


def _guess_image_mime_type(image_url: str) -> str:
    lowered = image_url.lower().split("?", 1)[0]
    if lowered.endswith(".png"):
        return "image/png"
    if lowered.endswith(".webp"):
        return "image/webp"
    return "image/jpeg"


class GeminiClient(LLMInterface):
    """
    LLM Client implementation for Google Gemini API.

    Gemini takes the JSON schema as part of the system instruction and is
    asked for an application/json reply; the reply is parsed the same way as
    the OpenAI adapter's.
    """

    provider_name = "gemini"

    def __init__(self, api_key: str, default_model: str = settings.default_gemini_model):
        if not api_key:
            logger.error("Gemini API key is required but not provided")
            raise ValueError("Gemini API key is required.")

        self.api_key = api_key
        self.default_model = default_model

        logger.debug(f"Initializing Gemini client with model: {default_model}")

        try:
            self._client = genai.Client(api_key=self.api_key)
            logger.info(
                f"Gemini client initialized successfully with api_key: {self.api_key[:5]}..., model: {self.default_model}"
            )
        except Exception as e:
            logger.error(f"Failed to configure Gemini SDK: {e}", exc_info=True)
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
        model_name = model or self.default_model
        max_tokens = max_tokens or settings.llm_extraction_max_tokens
        temperature = settings.llm_temperature if temperature is None else temperature
        schema_name = json_schema.get("name", "response")

        system_instruction = (
            f"{system_prompt}\n\nRespond with a single JSON object matching this JSON schema:\n"
            f"{json.dumps(json_schema.get('schema', json_schema), ensure_ascii=False)}"
        )
        contents: list[Any] = [user_content]
        if image_url:
            contents.append(
                types.Part.from_uri(
                    file_uri=image_url, mime_type=_guess_image_mime_type(image_url)
                )
            )

        start_time = time.perf_counter()
        try:
            response = await self._client.aio.models.generate_content(
                model=model_name,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=system_instruction,
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                    response_mime_type="application/json",
                ),
            )
        except errors.APIError as e:
            duration = time.perf_counter() - start_time
            error = _to_provider_error(e)
            logger.error(
                f"Gemini API error for schema '{schema_name}' with model {model_name} after {duration:.4f}s: "
                f"(status={error.status_code}, retryable={error.retryable}): {e}"
            )
            raise error from e
        except httpx.TransportError as e:
            duration = time.perf_counter() - start_time
            logger.error(
                f"Gemini transport error for schema '{schema_name}' after {duration:.4f}s: "
                f"{type(e).__name__}: {e}"
            )
            raise LLMProviderError(str(e), retryable=True) from e

        duration = time.perf_counter() - start_time
        result_text = response.text

        if result_text is None and response.candidates:
            finish_reason = getattr(response.candidates[0], "finish_reason", None)
            logger.warning(
                f"Gemini returned no text for '{schema_name}', finish_reason: {finish_reason}"
            )

        logger.info(
            f"Gemini complete_json '{schema_name}' for model {model_name} completed in {duration:.4f}s, "
            f"output: {len(result_text) if result_text else 0} chars"
        )

        parsed = extract_json_object(result_text)
        if parsed is None:
            raise LLMSchemaError(
                f"Gemini reply for '{schema_name}' is not a JSON object",
                payload_excerpt=truncate_for_log(result_text),
            )
        return parsed
