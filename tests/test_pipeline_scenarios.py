"""
End-to-end pipeline runs over the in-memory collaborators: intake, queue,
every stage, persistence and confirmations.
"""

import base64

import pytest
from conftest import (
    GROUP_ID,
    SENDER_ID,
    FakeLLMClient,
    FakeMediaStore,
    FakeStore,
    FakeTransport,
    FakeUsageStore,
    make_settings,
    unix_time,
)

from event_ingest.dependencies.context import AppContext, build_app_context
from event_ingest.schemas import ExtractedEvent, IncomingMedia, IncomingMessageRequest
from event_ingest.services.confirmation import REASON_MESSAGES, ReasonCode
from event_ingest.services.llm_interface import LLMProviderError
from event_ingest.services.usage_tracking import current_month_key
from event_ingest.utils.text_processing import compute_message_signature

REF = unix_time(2026, 2, 20)

SCENARIO_A_TEXT = "ערב מוזיקה בגן העירוני\n25/02 בשעה 20:00\nחיפה, גן הזיכרון\nכניסה 30 ₪"
SCENARIO_C_TEXT = "עדכון: ערב מוזיקה בגן העירוני\n25/02 בשעה 20:00\nחיפה\nכניסה 50 ₪"

CLASSIFIED_EVENT = {
    "isEvent": True,
    "searchKeys": ["ערב מוזיקה", "חיפה"],
    "reason": None,
}

DESCRIPTION = {
    "Title": "ערב מוזיקה בגן העירוני",
    "shortDescription": "ערב מוזיקה פתוח בחיפה",
    "fullDescription": "<p>ערב מוזיקה בגן העירוני</p>",
    "categories": ["music"],
    "mainCategory": "music",
    "urls": [],
}


def located(
    date="25/02", time="20:00", city="חיפה", price="כניסה 30 ₪", source="message_text"
) -> dict:
    def quote(text):
        return [{"quote": text, "source": source}] if text else []

    return {
        "evidenceCandidates": {
            "date": quote(date),
            "timeOfDay": quote(time),
            "location": quote(city),
            "price": quote(price),
        }
    }


def existing_event(price: float) -> ExtractedEvent:
    return ExtractedEvent.model_validate(
        {
            "Title": "ערב מוזיקה בגן העירוני",
            "categories": ["music"],
            "mainCategory": "music",
            "location": {"City": "חיפה", "CityEvidence": "חיפה"},
            "price": price,
            "occurrences": [
                {
                    "date": "2026-02-25",
                    "hasTime": True,
                    "startTime": "2026-02-25T18:00:00.000Z",
                }
            ],
        }
    )


def request_for(text, message_id="m1", sender_id=SENDER_ID, media=None, group_id=GROUP_ID):
    return IncomingMessageRequest(
        id=message_id,
        senderId=sender_id,
        groupId=group_id,
        text=text,
        timestamp=REF,
        media=media,
    )


async def deliver(context: AppContext, request: IncomingMessageRequest):
    """Run intake, then let the worker finish everything queued."""
    response = await context.intake.handle_incoming_message(request)
    context.queue.start()
    await context.queue.stop(drain=True)
    return response


def last_confirmation(transport: FakeTransport) -> str:
    return transport.texts_for()[-1]


# ===========================================
# Core scenarios
# ===========================================


@pytest.mark.asyncio
async def test_new_event_is_persisted(app_context, store, transport, llm_client, usage_store):
    llm_client.script.update(
        classification=CLASSIFIED_EVENT,
        evidence_locator=located(),
        description_builder=DESCRIPTION,
    )

    response = await deliver(app_context, request_for(SCENARIO_A_TEXT))

    assert response.status == "queued"
    record = store.records[response.record_id]
    event = record.event
    assert event.location.city == "חיפה"
    assert event.location.city_evidence == "חיפה"
    assert event.price == 30
    assert event.occurrences[0].date == "2026-02-25"
    assert event.occurrences[0].start_time == "2026-02-25T18:00:00.000Z"
    assert event.publisher_phone == "972501234567"
    assert event.justifications.date.quote == "25/02"
    assert event.categories == ["music"]
    assert record.message_signature is not None

    assert llm_client.stages_called() == ["classification", "evidence_locator", "description_builder"]
    assert usage_store.months[current_month_key()][0] == 3

    confirmations = transport.texts_for()
    assert len(confirmations) == 2
    assert REASON_MESSAGES[ReasonCode.PROCESSING_STARTED] in confirmations[0]
    assert REASON_MESSAGES[ReasonCode.NEW_EVENT] in confirmations[1]
    assert f"eventId: {response.record_id}" in confirmations[1]
    assert "sourceGroupName: קהילת חיפה" in confirmations[1]


@pytest.mark.asyncio
async def test_identical_text_is_a_duplicate(app_context, store, transport, llm_client):
    llm_client.script.update(
        classification=CLASSIFIED_EVENT,
        evidence_locator=located(),
        description_builder=DESCRIPTION,
    )
    first = await deliver(app_context, request_for(SCENARIO_A_TEXT, message_id="m1"))
    calls_after_first = len(llm_client.calls)

    second = await deliver(app_context, request_for(SCENARIO_A_TEXT, message_id="m2"))

    assert second.status == "duplicate"
    assert second.record_id == first.record_id
    assert list(store.records) == [first.record_id]
    assert len(llm_client.calls) == calls_after_first
    assert REASON_MESSAGES[ReasonCode.DUPLICATE_MESSAGE] in last_confirmation(transport)
    assert "ערב מוזיקה בגן העירוני" in last_confirmation(transport)


@pytest.mark.asyncio
async def test_changed_price_updates_existing_record(app_context, store, transport, llm_client):
    existing_id = store.seed(SCENARIO_A_TEXT, existing_event(price=30))
    llm_client.script.update(
        classification=CLASSIFIED_EVENT,
        evidence_locator=located(price="כניסה 50 ₪"),
        description_builder=DESCRIPTION,
        comparison={
            "status": "updated_event",
            "matchedCandidateId": existing_id,
            "reason": "Price changed from 30 to 50",
        },
    )

    response = await deliver(app_context, request_for(SCENARIO_C_TEXT, message_id="m3"))

    assert list(store.records) == [existing_id]
    record = store.records[existing_id]
    assert record.event.price == 50
    assert record.raw_message.text == SCENARIO_C_TEXT
    assert len(record.previous_versions) == 1
    assert record.previous_versions[0].event.price == 30
    assert response.record_id not in store.records
    assert REASON_MESSAGES[ReasonCode.UPDATED_EVENT] in last_confirmation(transport)
    assert f"eventId: {existing_id}" in last_confirmation(transport)


@pytest.mark.asyncio
async def test_updating_text_is_a_duplicate_when_resent(app_context, store, transport, llm_client):
    original_signature = compute_message_signature(SCENARIO_A_TEXT)
    existing_id = store.seed(SCENARIO_A_TEXT, existing_event(price=30), message_signature=original_signature)
    llm_client.script.update(
        classification=CLASSIFIED_EVENT,
        evidence_locator=located(price="כניסה 50 ₪"),
        description_builder=DESCRIPTION,
        comparison={
            "status": "updated_event",
            "matchedCandidateId": existing_id,
            "reason": "Price changed from 30 to 50",
        },
    )
    await deliver(app_context, request_for(SCENARIO_C_TEXT, message_id="m3"))
    calls_after_update = len(llm_client.calls)

    resent = await deliver(app_context, request_for(SCENARIO_C_TEXT, message_id="m4"))

    assert resent.status == "duplicate"
    assert resent.record_id == existing_id
    assert len(llm_client.calls) == calls_after_update
    assert list(store.records) == [existing_id]
    record = store.records[existing_id]
    assert record.message_signature == compute_message_signature(SCENARIO_C_TEXT)
    assert record.previous_versions[0].message_signature == original_signature
    assert REASON_MESSAGES[ReasonCode.DUPLICATE_MESSAGE] in last_confirmation(transport)


@pytest.mark.asyncio
async def test_relative_date_only_is_rejected(app_context, store, transport, llm_client):
    llm_client.script["classification"] = {
        "isEvent": False,
        "searchKeys": [],
        "reason": "relative_date_no_calendar",
    }

    response = await deliver(app_context, request_for("נפגשים מחר בשמונה בערב"))

    assert response.status == "queued"
    assert store.records == {}
    assert llm_client.stages_called() == ["classification"]
    assert REASON_MESSAGES[ReasonCode.NO_DATE] in last_confirmation(transport)


@pytest.mark.asyncio
async def test_unverifiable_city_is_dropped_in_single_pass(tmp_path):
    text = "ערב מוזיקה בגן העירוני\n25/02 בשעה 20:00\nכניסה 30 ₪"
    store, transport = FakeStore(), FakeTransport()
    llm_client = FakeLLMClient(
        {
            "classification": CLASSIFIED_EVENT,
            "event_extraction": {
                "Title": "ערב מוזיקה בגן העירוני",
                "shortDescription": "ערב מוזיקה",
                "fullDescription": "<p>ערב מוזיקה</p>",
                "categories": ["music"],
                "mainCategory": "music",
                "location": {"City": "שדרות", "CityEvidence": "שדרות"},
                "price": 30,
                "occurrences": [
                    {
                        "date": "2026-02-25",
                        "hasTime": True,
                        "startTime": "2026-02-25T18:00:00.000Z",
                        "endTime": None,
                    }
                ],
                "justifications": {
                    "date": {"status": "evidenced", "quote": "25/02", "source": "message_text"},
                    "startTime": {"status": "evidenced", "quote": "20:00", "source": "message_text"},
                    "endTime": {"status": "not_evidenced"},
                    "location": {"status": "evidenced", "quote": "בגן העירוני", "source": "message_text"},
                    "price": {"status": "evidenced", "quote": "כניסה 30 ₪", "source": "message_text"},
                },
            },
        }
    )
    context = build_app_context(
        make_settings(tmp_path, EXTRACTION_MODE="single_pass"),
        store=store,
        usage_store=FakeUsageStore(),
        media_store=FakeMediaStore(),
        transport=transport,
        llm_client=llm_client,
    )

    response = await deliver(context, request_for(text))

    event = store.records[response.record_id].event
    assert event.location.city == ""
    assert event.location.city_evidence is None
    assert event.title == "ערב מוזיקה בגן העירוני"
    assert event.price == 30
    assert event.occurrences[0].start_time == "2026-02-25T18:00:00.000Z"
    assert llm_client.stages_called() == ["classification", "event_extraction"]


# ===========================================
# Intake filtering
# ===========================================


@pytest.mark.asyncio
async def test_other_groups_and_own_messages_are_ignored(app_context, store, llm_client):
    other = await deliver(app_context, request_for(SCENARIO_A_TEXT, group_id="other@g.us"))
    own = await app_context.intake.handle_incoming_message(
        IncomingMessageRequest(id="m9", groupId=GROUP_ID, text=SCENARIO_A_TEXT, fromMe=True)
    )
    assert other.status == "ignored"
    assert own.status == "ignored"
    assert store.records == {}
    assert llm_client.calls == []


@pytest.mark.asyncio
async def test_discovery_mode_only_logs(tmp_path):
    store, transport = FakeStore(), FakeTransport()
    context = build_app_context(
        make_settings(tmp_path, DISCOVERY_MODE=True),
        store=store,
        usage_store=FakeUsageStore(),
        media_store=FakeMediaStore(),
        transport=transport,
        llm_client=FakeLLMClient(),
    )
    response = await deliver(context, request_for(SCENARIO_A_TEXT, group_id="unknown@g.us"))
    assert response.status == "discovery"
    assert store.records == {}
    assert transport.sent == []


@pytest.mark.asyncio
async def test_failed_placeholder_insert_frees_media(app_context, store, media_store, llm_client):
    store.fail_inserts = True
    media = IncomingMedia(dataBase64=base64.b64encode(b"jpeg-bytes").decode(), mimetype="image/jpeg")

    response = await deliver(app_context, request_for(SCENARIO_A_TEXT, media=media))

    assert response.status == "error"
    assert media_store.files == {}
    assert len(media_store.deleted) == 1
    assert llm_client.calls == []


# ===========================================
# Rejections and cleanup
# ===========================================


@pytest.mark.asyncio
async def test_classification_failure_cleans_up(app_context, store, transport, llm_client):
    llm_client.script["classification"] = LLMProviderError("bad request", status_code=400)

    await deliver(app_context, request_for(SCENARIO_A_TEXT))

    assert store.records == {}
    assert REASON_MESSAGES[ReasonCode.AI_CLASSIFICATION_FAILED] in last_confirmation(transport)


@pytest.mark.asyncio
async def test_transient_provider_error_is_retried(app_context, store, llm_client):
    llm_client.script.update(
        classification=[
            LLMProviderError("overloaded", retryable=True, status_code=503),
            CLASSIFIED_EVENT,
        ],
        evidence_locator=located(),
        description_builder=DESCRIPTION,
    )

    response = await deliver(app_context, request_for(SCENARIO_A_TEXT))

    assert store.records[response.record_id].event is not None
    assert llm_client.stages_called().count("classification") == 2


@pytest.mark.asyncio
async def test_schema_violation_fails_the_stage(app_context, store, transport, llm_client):
    llm_client.script["classification"] = {"searchKeys": ["x"]}

    await deliver(app_context, request_for(SCENARIO_A_TEXT))

    assert store.records == {}
    assert llm_client.stages_called() == ["classification"]
    assert REASON_MESSAGES[ReasonCode.AI_CLASSIFICATION_FAILED] in last_confirmation(transport)


@pytest.mark.asyncio
async def test_no_parsable_date_fails_validation(app_context, store, transport, llm_client):
    llm_client.script.update(
        classification=CLASSIFIED_EVENT,
        evidence_locator=located(date="בקרוב"),
    )

    await deliver(app_context, request_for(SCENARIO_A_TEXT))

    assert store.records == {}
    assert llm_client.stages_called() == ["classification", "evidence_locator"]
    confirmation = last_confirmation(transport)
    assert REASON_MESSAGES[ReasonCode.VALIDATION_FAILED] in confirmation
    assert "No verified date" in confirmation


@pytest.mark.asyncio
async def test_evidence_locator_failure(app_context, store, transport, llm_client):
    llm_client.script["classification"] = CLASSIFIED_EVENT

    await deliver(app_context, request_for(SCENARIO_A_TEXT))

    assert store.records == {}
    assert REASON_MESSAGES[ReasonCode.EVIDENCE_LOCATOR_FAILED] in last_confirmation(transport)


@pytest.mark.asyncio
async def test_existing_event_discards_new_message(app_context, store, transport, llm_client):
    existing_id = store.seed(SCENARIO_A_TEXT, existing_event(price=30))
    llm_client.script.update(
        classification=CLASSIFIED_EVENT,
        evidence_locator=located(),
        description_builder=DESCRIPTION,
        comparison={"status": "existing_event", "matchedCandidateId": existing_id, "reason": "Same event"},
    )

    await deliver(app_context, request_for("ערב מוזיקה בגן! 25/02 בשעה 20:00, חיפה, כניסה 30 ₪"))

    assert list(store.records) == [existing_id]
    assert store.records[existing_id].previous_versions == []
    confirmation = last_confirmation(transport)
    assert REASON_MESSAGES[ReasonCode.ALREADY_EXISTING] in confirmation
    assert existing_id in confirmation


@pytest.mark.asyncio
async def test_unknown_matched_candidate_fails_comparison(app_context, store, transport, llm_client):
    existing_id = store.seed(SCENARIO_A_TEXT, existing_event(price=30))
    llm_client.script.update(
        classification=CLASSIFIED_EVENT,
        evidence_locator=located(),
        description_builder=DESCRIPTION,
        comparison={"status": "updated_event", "matchedCandidateId": "not-offered", "reason": "?"},
    )

    await deliver(app_context, request_for("ערב מוזיקה בגן! 25/02 בשעה 20:00, חיפה, כניסה 30 ₪"))

    assert list(store.records) == [existing_id]
    assert REASON_MESSAGES[ReasonCode.AI_COMPARISON_FAILED] in last_confirmation(transport)


@pytest.mark.asyncio
async def test_failed_save_reports_database_error(app_context, store, transport, llm_client):
    llm_client.script.update(
        classification=CLASSIFIED_EVENT,
        evidence_locator=located(),
        description_builder=DESCRIPTION,
    )
    store.fail_updates = True

    await deliver(app_context, request_for(SCENARIO_A_TEXT))

    assert store.records == {}
    assert REASON_MESSAGES[ReasonCode.DATABASE_ERROR] in last_confirmation(transport)


@pytest.mark.asyncio
async def test_unexpected_exception_is_contained(app_context, store, transport, llm_client):
    llm_client.script["classification"] = CLASSIFIED_EVENT

    async def explode(document, log_prefix=""):
        raise RuntimeError("boom")

    app_context.pipeline.extractor.extract = explode

    await deliver(app_context, request_for(SCENARIO_A_TEXT))

    assert store.records == {}
    assert REASON_MESSAGES[ReasonCode.PIPELINE_ERROR] in last_confirmation(transport)
    assert app_context.queue.failed_total == 0


@pytest.mark.asyncio
async def test_monthly_budget_stops_processing(tmp_path):
    store, transport, llm_client = FakeStore(), FakeTransport(), FakeLLMClient()
    usage_store = FakeUsageStore()
    context = build_app_context(
        make_settings(tmp_path, MONTHLY_LLM_CALL_LIMIT=5),
        store=store,
        usage_store=usage_store,
        media_store=FakeMediaStore(),
        transport=transport,
        llm_client=llm_client,
    )

    await deliver(context, request_for(SCENARIO_A_TEXT))

    assert llm_client.calls == []
    assert store.records == {}
    confirmation = last_confirmation(transport)
    assert REASON_MESSAGES[ReasonCode.PIPELINE_ERROR] in confirmation
    assert "Monthly model call limit" in confirmation


# ===========================================
# Media and enrichment
# ===========================================


@pytest.mark.asyncio
async def test_image_only_message_uses_ocr(app_context, store, media_store, llm_client):
    ocr_text = "ערב ג'אז\n27.2 בשעה 21:00\nחיפה"
    llm_client.script.update(
        ocr_transcription={"fullText": ocr_text},
        classification=CLASSIFIED_EVENT,
        evidence_locator=located(date="27.2", time="21:00", price=None, source="ocr_text"),
        description_builder=DESCRIPTION,
    )
    media = IncomingMedia(
        dataBase64=base64.b64encode(b"jpeg-bytes").decode(), mimetype="image/jpeg", filename="poster.jpg"
    )

    response = await deliver(app_context, request_for(None, media=media))

    record = store.records[response.record_id]
    assert record.ocr_text == ocr_text
    assert record.event.occurrences[0].start_time == "2026-02-27T19:00:00.000Z"
    assert record.event.location.city == "חיפה"
    assert record.event.price is None
    assert record.event.media == [record.media.url]
    assert len(media_store.files) == 1

    assert llm_client.stages_called()[:2] == ["ocr_transcription", "classification"]
    classification_call = llm_client.calls[1]
    assert classification_call["image_url"] == record.media.url
    assert "27.2 בשעה 21:00" in classification_call["user_content"]


@pytest.mark.asyncio
async def test_rejected_message_frees_its_media(app_context, store, media_store, llm_client):
    llm_client.script.update(
        ocr_transcription={"fullText": "מבצע בחנות"},
        classification={"isEvent": False, "searchKeys": [], "reason": "advertisement"},
    )
    media = IncomingMedia(dataBase64=base64.b64encode(b"jpeg-bytes").decode())

    await deliver(app_context, request_for("מבצע!", media=media))

    assert store.records == {}
    assert media_store.files == {}
    assert len(media_store.deleted) == 1


@pytest.mark.asyncio
async def test_alias_sender_phone_resolved_through_transport(
    app_context, store, transport, llm_client
):
    alias = "82734072487978@lid"
    transport.looked_up[alias] = "972541112233@c.us"
    llm_client.script.update(
        classification=CLASSIFIED_EVENT,
        evidence_locator=located(),
        description_builder=DESCRIPTION,
    )

    response = await deliver(app_context, request_for(SCENARIO_A_TEXT, sender_id=alias))

    assert store.records[response.record_id].event.publisher_phone == "972541112233"
    assert transport.lookup_calls == [f"resolve:{alias}", f"lookup:{alias}"]
