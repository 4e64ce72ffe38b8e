"""
This file contains shared fixtures and configuration for the test suite.

Pytest will automatically discover and use the fixtures defined in this file.

The pipeline is exercised against in-memory collaborators: a dict-backed event
store, a recording transport and media store, and a model client that replies
with scripted payloads keyed by response schema name. No database, sidecar or
provider account is needed.
"""

import copy
import uuid
from collections import defaultdict
from collections.abc import Generator
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from event_ingest.config import Settings
from event_ingest.dependencies.context import AppContext, build_app_context
from event_ingest.schemas import (
    CandidateEvent,
    EventVersion,
    ExtractedEvent,
    MediaRef,
    RawMessage,
    StoredEventRecord,
)
from event_ingest.services.llm_interface import LLMInterface, LLMProviderError
from event_ingest.services.media_store import MediaStoreInterface
from event_ingest.services.store_interface import EventStoreInterface
from event_ingest.services.transport import TransportInterface

GROUP_ID = "120363000000000001@g.us"
CONFIRMATION_GROUP_ID = "120363000000000099@g.us"
SENDER_ID = "972501234567@c.us"


def unix_time(year: int, month: int, day: int, hour: int = 10) -> int:
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp())


def make_settings(tmp_dir=None, **overrides) -> Settings:
    values: dict[str, Any] = {
        "ALLOWED_GROUP_IDS": GROUP_ID,
        "CONFIRMATION_GROUP_IDS": CONFIRMATION_GROUP_ID,
        "EVENT_INGEST_DATABASE_URL": None,
        "TRANSPORT_BASE_URL": None,
        "RETRY_BASE_DELAY_SECONDS": 0,
        "RETRY_MAX_DELAY_SECONDS": 0,
        "EXTRACTION_MODE": "evidence_first",
        "DISCOVERY_MODE": False,
        "OCR_ENABLED": True,
        "MONTHLY_LLM_CALL_LIMIT": 0,
        "MONTHLY_OCR_CALL_LIMIT": 0,
    }
    if tmp_dir is not None:
        values["MEDIA_ROOT"] = str(tmp_dir)
    values.update(overrides)
    return Settings(**values)


# ===========================================
# In-memory collaborators
# ===========================================


class FakeStore(EventStoreInterface):
    def __init__(self):
        self.records: dict[str, StoredEventRecord] = {}
        self.fail_inserts = False
        self.fail_updates = False
        self.reachable = True
        self.search_calls: list[tuple[list[str], str | None, int]] = []

    def seed(
        self,
        text: str,
        event: ExtractedEvent | None,
        message_signature: str | None = None,
        media: MediaRef | None = None,
    ) -> str:
        record_id = uuid.uuid4().hex
        now = datetime.now(timezone.utc)
        self.records[record_id] = StoredEventRecord(
            record_id=record_id,
            created_at=now,
            updated_at=now,
            raw_message=RawMessage(id=f"seed-{record_id[:6]}", groupId=GROUP_ID, text=text),
            media=media,
            event=event,
            message_signature=message_signature,
        )
        return record_id

    async def find_by_signature(self, signature):
        for record in self.records.values():
            if record.is_active and record.message_signature == signature:
                return record
        return None

    async def insert(self, raw_message, media, message_signature):
        if self.fail_inserts:
            return None
        record_id = uuid.uuid4().hex
        now = datetime.now(timezone.utc)
        self.records[record_id] = StoredEventRecord(
            record_id=record_id,
            created_at=now,
            updated_at=now,
            raw_message=raw_message,
            media=media,
            message_signature=message_signature,
        )
        return record_id

    async def update(self, record_id, event):
        record = self.records.get(record_id)
        if record is None or self.fail_updates:
            return False
        record.event = event
        record.updated_at = datetime.now(timezone.utc)
        return True

    async def update_full(self, record_id, event, raw_message, media, message_signature):
        record = self.records.get(record_id)
        if record is None or self.fail_updates:
            return False
        record.event = event
        record.raw_message = raw_message
        record.media = media
        record.message_signature = message_signature
        record.updated_at = datetime.now(timezone.utc)
        return True

    async def update_ocr_text(self, record_id, ocr_text):
        record = self.records.get(record_id)
        if record is None:
            return False
        record.ocr_text = ocr_text
        return True

    async def delete(self, record_id):
        return self.records.pop(record_id, None) is not None

    async def append_version(self, record_id, version: EventVersion):
        record = self.records.get(record_id)
        if record is None or self.fail_updates:
            return False
        record.previous_versions = [*record.previous_versions, version]
        return True

    async def text_search(self, keys, exclude_id, limit):
        self.search_calls.append((list(keys), exclude_id, limit))
        lowered = [k.lower() for k in keys]
        ordered = sorted(self.records.values(), key=lambda r: r.created_at, reverse=True)
        results = []
        for record in ordered:
            if not record.is_active or record.event is None or record.record_id == exclude_id:
                continue
            text = (record.raw_message.text or "").lower()
            if any(key in text for key in lowered):
                results.append(
                    CandidateEvent(
                        record_id=record.record_id,
                        text=record.raw_message.text or "",
                        event=record.event,
                    )
                )
        return results[:limit]

    async def get(self, record_id):
        return self.records.get(record_id)

    async def ping(self):
        return self.reachable


class FakeMediaStore(MediaStoreInterface):
    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.deleted: list[str] = []

    async def upload(self, content, filename, mimetype):
        media_id = f"{uuid.uuid4().hex[:12]}_{filename or 'media.jpg'}"
        self.files[media_id] = content
        return MediaRef(url=f"http://media.test/{media_id}", id=media_id, mimetype=mimetype)

    async def delete(self, media_id):
        self.deleted.append(media_id)
        return self.files.pop(media_id, None) is not None


class FakeTransport(TransportInterface):
    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.resolved: dict[str, str] = {}
        self.looked_up: dict[str, str] = {}
        self.group_names: dict[str, str] = {GROUP_ID: "קהילת חיפה"}
        self.lookup_calls: list[str] = []

    async def send_text(self, chat_id, text):
        self.sent.append((chat_id, text))
        return True

    async def resolve_contact_phone(self, contact_id):
        self.lookup_calls.append(f"resolve:{contact_id}")
        return self.resolved.get(contact_id)

    async def lookup_contact_phone(self, contact_id):
        self.lookup_calls.append(f"lookup:{contact_id}")
        return self.looked_up.get(contact_id)

    async def get_group_name(self, group_id):
        return self.group_names.get(group_id)

    def texts_for(self, chat_id: str = CONFIRMATION_GROUP_ID) -> list[str]:
        return [text for target, text in self.sent if target == chat_id]


class FakeUsageStore:
    def __init__(self):
        self.months: dict[str, list[int]] = defaultdict(lambda: [0, 0])

    async def get_month(self, month):
        llm_calls, ocr_calls = self.months[month]
        return llm_calls, ocr_calls

    async def increment(self, month, llm_calls=0, ocr_calls=0):
        self.months[month][0] += llm_calls
        self.months[month][1] += ocr_calls


class FakeLLMClient(LLMInterface):
    """
    Replies from a script keyed by the response schema name
    ("classification", "evidence_locator", ...).

    A scripted entry is a payload dict or an exception instance; a list of
    entries is consumed in order. An unscripted stage fails as a
    non-retryable provider error.
    """

    provider_name = "openai"

    def __init__(self, script: dict[str, Any] | None = None):
        self.script: dict[str, Any] = dict(script or {})
        self.calls: list[dict[str, Any]] = []

    def stages_called(self) -> list[str]:
        return [call["stage"] for call in self.calls]

    def _next(self, stage: str):
        entry = self.script.get(stage)
        if isinstance(entry, list):
            if not entry:
                return LLMProviderError(f"Script for {stage} exhausted")
            return entry.pop(0)
        if entry is None:
            return LLMProviderError(f"No scripted reply for {stage}")
        return entry

    async def complete_json(
        self,
        system_prompt,
        user_content,
        json_schema,
        *,
        max_tokens=None,
        temperature=None,
        image_url=None,
        model=None,
    ):
        stage = json_schema["name"]
        self.calls.append(
            {
                "stage": stage,
                "system_prompt": system_prompt,
                "user_content": user_content,
                "image_url": image_url,
                "model": model,
            }
        )
        reply = self._next(stage)
        if isinstance(reply, Exception):
            raise reply
        return copy.deepcopy(reply)


# ===========================================
# Fixtures
# ===========================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path / "media")


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def media_store() -> FakeMediaStore:
    return FakeMediaStore()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def usage_store() -> FakeUsageStore:
    return FakeUsageStore()


@pytest.fixture
def llm_client() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def app_context(
    settings: Settings,
    store: FakeStore,
    usage_store: FakeUsageStore,
    media_store: FakeMediaStore,
    transport: FakeTransport,
    llm_client: FakeLLMClient,
) -> AppContext:
    """Fully wired context over the in-memory collaborators."""
    return build_app_context(
        settings,
        store=store,
        usage_store=usage_store,
        media_store=media_store,
        transport=transport,
        llm_client=llm_client,
    )


@pytest.fixture
def app(settings: Settings, app_context: AppContext) -> FastAPI:
    """
    Create a new application instance around the in-memory context.
    """
    # Import the factory function here to ensure it's fresh for each test.
    from main import create_app

    return create_app(settings, context_factory=lambda _: app_context)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """
    Fixture to get a test client for making API requests.
    The TestClient handles the application's lifespan events (startup/shutdown).
    """
    with TestClient(app) as c:
        yield c
