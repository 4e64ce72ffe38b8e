"""
LLM Service - provider registry and the stage-call boundary.

`create_llm_client` builds the configured provider adapter. `LLMService`
runs one pipeline stage against it: the call goes through the shared retry
policy, the reply is validated once against the stage's pydantic model, and
the outcome comes back as a tagged `StageResult` so no stage ever handles raw
provider payloads.
"""

import json
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from event_ingest.config import Settings
from event_ingest.services.llm_interface import (
    LLMInterface,
    LLMProviderError,
    LLMSchemaError,
)
from event_ingest.services.llm_providers.gemini_client import GeminiClient
from event_ingest.services.llm_providers.openai_client import OpenAIClient
from event_ingest.utils.logger import setup_logger, truncate_for_log
from event_ingest.utils.retry_utils import RetryPolicy

logger = setup_logger("llm_service")

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

# Mapping of provider names to their constructor classes
_client_constructors: dict[str, type[LLMInterface]] = {
    "openai": OpenAIClient,
    "gemini": GeminiClient,
}


# ===========================================
# Tagged stage results
# ===========================================


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class SchemaError:
    message: str
    payload_excerpt: str = ""


@dataclass(frozen=True)
class ProviderError:
    message: str
    status_code: int | None = None
    retryable: bool = False


StageResult = Ok | SchemaError | ProviderError


def stage_value(result: StageResult, stage: str, log_prefix: str = "") -> Any | None:
    """Return the Ok value, or log the failure and return None."""
    if isinstance(result, Ok):
        return result.value
    if isinstance(result, SchemaError):
        logger.error(
            f"{log_prefix}{stage} returned an unusable response: {result.message}. "
            f"Payload: {result.payload_excerpt}"
        )
    else:
        logger.error(
            f"{log_prefix}{stage} provider call failed (status={result.status_code}): {result.message}"
        )
    return None


# ===========================================
# Provider registry
# ===========================================


def _get_client_config(provider_name: str, settings: Settings) -> dict[str, Any]:
    if provider_name == "openai":
        config = {
            "api_key": settings.openai_api_key,
            "base_url": settings.openai_base_url,
            "default_model": settings.default_openai_model,
            "request_timeout": settings.llm_request_timeout,
        }
        logger.debug(
            f"OpenAI config - base_url: {config['base_url']}, model: {config['default_model']}, api_key: {config['api_key'][:5] + '...' if config['api_key'] else 'None'}"
        )
        return config
    elif provider_name == "gemini":
        config = {
            "api_key": settings.gemini_api_key,
            "default_model": settings.default_gemini_model,
        }
        logger.debug(
            f"Gemini config - model: {config['default_model']}, api_key: {config['api_key'][:5] + '...' if config['api_key'] else 'None'}"
        )
        return config
    else:
        logger.warning(f"Unknown provider name: {provider_name}")
        return {}


def create_llm_client(settings: Settings, provider_name: str | None = None) -> LLMInterface | None:
    """
    Build the client for `provider_name` (default: DEFAULT_LLM_PROVIDER).

    Returns None if the provider is unknown or not properly configured.
    """
    provider_name = (provider_name or settings.default_llm_provider).lower()
    if provider_name not in _client_constructors:
        logger.error(
            f"Unknown provider name: {provider_name}. Available providers: {list(_client_constructors.keys())}"
        )
        return None

    config = _get_client_config(provider_name, settings)
    if not config.get("api_key"):
        logger.error(f"Cannot initialize {provider_name} client: API key missing.")
        return None

    constructor_args = {k: v for k, v in config.items() if v is not None}
    try:
        client = _client_constructors[provider_name](**constructor_args)
        logger.info(f"{provider_name.capitalize()} client initialized.")
        return client
    except ValueError as ve:
        logger.error(f"Configuration error initializing {provider_name} client: {ve}")
        return None
    except Exception as e:
        logger.error(f"Failed to initialize {provider_name} client: {e}", exc_info=True)
        return None


def _is_retryable_llm_error(e: BaseException) -> bool:
    return isinstance(e, LLMProviderError) and e.retryable


def _llm_suggested_delay(e: BaseException) -> float | None:
    if isinstance(e, LLMProviderError):
        return e.retry_after_seconds
    return None


def llm_retry_policy(settings: Settings, **overrides) -> RetryPolicy:
    params = {
        "max_attempts": settings.retry_max_attempts,
        "base_delay": settings.retry_base_delay_seconds,
        "max_delay": settings.retry_max_delay_seconds,
        "is_retryable": _is_retryable_llm_error,
        "suggested_delay": _llm_suggested_delay,
    }
    params.update(overrides)
    return RetryPolicy(**params)


# ===========================================
# Stage runner
# ===========================================


class LLMService:
    """Runs pipeline stages against one provider client."""

    def __init__(
        self,
        client: LLMInterface | None,
        retry_policy: RetryPolicy,
        usage_tracker=None,
    ):
        self.client = client
        self.retry_policy = retry_policy
        self.usage_tracker = usage_tracker

    @property
    def available(self) -> bool:
        return self.client is not None

    async def run_stage(
        self,
        stage: str,
        *,
        system_prompt: str,
        user_content: str,
        json_schema: dict[str, Any],
        response_model: type[ModelT],
        max_tokens: int | None = None,
        image_url: str | None = None,
        model: str | None = None,
        usage_kind: str = "llm",
        log_prefix: str = "",
    ) -> StageResult:
        if self.client is None:
            return ProviderError(f"No LLM client configured for stage {stage}")

        async def call() -> dict[str, Any]:
            return await self.client.complete_json(
                system_prompt,
                user_content,
                json_schema,
                max_tokens=max_tokens,
                image_url=image_url,
                model=model,
            )

        try:
            payload = await self.retry_policy.run(
                call, description=f"{stage} call", log_prefix=log_prefix
            )
        except LLMProviderError as e:
            return ProviderError(str(e), status_code=e.status_code, retryable=e.retryable)
        except LLMSchemaError as e:
            return SchemaError(str(e), payload_excerpt=e.payload_excerpt)

        if self.usage_tracker is not None:
            await self.usage_tracker.record_call(usage_kind)

        try:
            value = response_model.model_validate(payload)
        except ValidationError as e:
            excerpt = truncate_for_log(json.dumps(payload, ensure_ascii=False))
            return SchemaError(
                f"{stage} response failed validation: {e.error_count()} error(s): {e.errors()[0].get('msg')}",
                payload_excerpt=excerpt,
            )
        return Ok(value)

    async def close(self):
        if self.client is None:
            return
        try:
            await self.client.close()
        except Exception as e:
            logger.error(f"Error closing LLM client: {e}", exc_info=True)
