import pytest
from conftest import FakeLLMClient, FakeUsageStore, make_settings
from pydantic import BaseModel

from event_ingest.services.llm_interface import LLMProviderError, LLMSchemaError
from event_ingest.services.llm_providers.openai_client import OpenAIClient
from event_ingest.services.llm_service import (
    LLMService,
    Ok,
    ProviderError,
    SchemaError,
    create_llm_client,
    llm_retry_policy,
    stage_value,
)
from event_ingest.services.usage_tracking import UsageTracker, current_month_key

SCHEMA = {"name": "classification", "schema": {"type": "object"}}


class Reply(BaseModel):
    isEvent: bool
    searchKeys: list[str] = []


def service_for(client, usage_store=None) -> LLMService:
    settings = make_settings()
    tracker = UsageTracker(usage_store, settings) if usage_store is not None else None
    return LLMService(client, llm_retry_policy(settings), tracker)


async def run(service: LLMService):
    return await service.run_stage(
        "classification",
        system_prompt="system",
        user_content="user",
        json_schema=SCHEMA,
        response_model=Reply,
    )


@pytest.mark.asyncio
async def test_ok_result_and_usage_recorded():
    usage = FakeUsageStore()
    client = FakeLLMClient({"classification": {"isEvent": True, "searchKeys": ["חיפה"]}})

    result = await run(service_for(client, usage))

    assert isinstance(result, Ok)
    assert result.value.searchKeys == ["חיפה"]
    assert usage.months[current_month_key()] == [1, 0]


@pytest.mark.asyncio
async def test_missing_client_is_a_provider_error():
    service = service_for(None)
    assert service.available is False
    assert isinstance(await run(service), ProviderError)


@pytest.mark.asyncio
async def test_reply_failing_validation_is_a_schema_error():
    usage = FakeUsageStore()
    client = FakeLLMClient({"classification": {"searchKeys": "not-a-list"}})

    result = await run(service_for(client, usage))

    assert isinstance(result, SchemaError)
    assert "searchKeys" in result.payload_excerpt
    assert usage.months[current_month_key()] == [1, 0]


@pytest.mark.asyncio
async def test_unparsable_reply_is_a_schema_error():
    client = FakeLLMClient({"classification": LLMSchemaError("not json", payload_excerpt="<html>")})

    result = await run(service_for(client))

    assert result == SchemaError("not json", payload_excerpt="<html>")


@pytest.mark.asyncio
async def test_provider_failure_records_no_usage():
    usage = FakeUsageStore()
    client = FakeLLMClient({"classification": LLMProviderError("unauthorized", status_code=401)})

    result = await run(service_for(client, usage))

    assert result == ProviderError("unauthorized", status_code=401, retryable=False)
    assert usage.months[current_month_key()] == [0, 0]


@pytest.mark.asyncio
async def test_retryable_provider_error_is_retried_once():
    client = FakeLLMClient(
        {
            "classification": [
                LLMProviderError("rate limited", retryable=True, status_code=429),
                {"isEvent": False},
            ]
        }
    )

    result = await run(service_for(client))

    assert isinstance(result, Ok)
    assert client.stages_called() == ["classification", "classification"]


def test_stage_value():
    assert stage_value(Ok(3), "classification") == 3
    assert stage_value(SchemaError("bad"), "classification") is None
    assert stage_value(ProviderError("down", status_code=503), "classification") is None


def test_create_llm_client():
    assert create_llm_client(make_settings(OPENAI_API_KEY=None)) is None
    assert create_llm_client(make_settings(OPENAI_API_KEY="sk-test"), "mistral") is None

    client = create_llm_client(make_settings(OPENAI_API_KEY="sk-test", DEFAULT_LLM_PROVIDER="openai"))

    assert isinstance(client, OpenAIClient)
    assert client.provider_name == "openai"
