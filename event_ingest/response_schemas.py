"""
JSON schemas for structured model outputs.

Each stage sends one of these as the `json_schema` response format. Provider
adapters pass them through unchanged; parsing and validation of the reply
happens once, in `LLMService.run_stage`, against the matching pydantic model.
"""

_NULLABLE_STRING = {"type": ["string", "null"]}

_EVIDENCE_SOURCE = {"type": "string", "enum": ["message_text", "ocr_text", "url"]}

_LINK_ITEM = {
    "type": "object",
    "required": ["Title", "Url"],
    "additionalProperties": False,
    "properties": {
        "Title": {"type": "string"},
        "Url": {"type": "string"},
    },
}

_FIELD_EVIDENCE = {
    "type": "object",
    "required": ["status", "quote", "source"],
    "additionalProperties": False,
    "properties": {
        "status": {"type": "string", "enum": ["evidenced", "not_evidenced", "unknown"]},
        "quote": _NULLABLE_STRING,
        "source": {"type": ["string", "null"], "enum": ["message_text", "ocr_text", "url", None]},
    },
}

CLASSIFICATION_SCHEMA = {
    "name": "classification",
    "strict": True,
    "schema": {
        "type": "object",
        "required": ["isEvent", "searchKeys", "reason"],
        "additionalProperties": False,
        "properties": {
            "isEvent": {"type": "boolean"},
            "searchKeys": {"type": "array", "items": {"type": "string"}},
            "reason": _NULLABLE_STRING,
        },
    },
}

EVENT_SCHEMA_PROPERTIES = {
    "Title": {"type": "string"},
    "shortDescription": {"type": "string"},
    "fullDescription": {"type": "string"},
    "categories": {"type": "array", "items": {"type": "string"}},
    "mainCategory": {"type": "string"},
    "location": {
        "type": "object",
        "required": [
            "City",
            "CityEvidence",
            "addressLine1",
            "addressLine2",
            "locationDetails",
            "wazeNavLink",
            "gmapsNavLink",
        ],
        "additionalProperties": False,
        "properties": {
            "City": {"type": "string"},
            "CityEvidence": _NULLABLE_STRING,
            "addressLine1": _NULLABLE_STRING,
            "addressLine2": _NULLABLE_STRING,
            "locationDetails": _NULLABLE_STRING,
            "wazeNavLink": _NULLABLE_STRING,
            "gmapsNavLink": _NULLABLE_STRING,
        },
    },
    "price": {"type": ["number", "null"]},
    "occurrences": {
        "type": "array",
        "minItems": 1,
        "items": {
            "type": "object",
            "required": ["date", "hasTime", "startTime", "endTime"],
            "additionalProperties": False,
            "properties": {
                "date": {"type": "string"},
                "hasTime": {"type": "boolean"},
                "startTime": {"type": "string"},
                "endTime": _NULLABLE_STRING,
            },
        },
    },
    "justifications": {
        "type": "object",
        "required": ["date", "location", "startTime", "endTime", "price"],
        "additionalProperties": False,
        "properties": {
            "date": _FIELD_EVIDENCE,
            "location": _FIELD_EVIDENCE,
            "startTime": _FIELD_EVIDENCE,
            "endTime": _FIELD_EVIDENCE,
            "price": _FIELD_EVIDENCE,
        },
    },
    "media": {"type": "array", "items": {"type": "string"}},
    "urls": {"type": "array", "items": _LINK_ITEM},
}

EXTRACTION_SCHEMA = {
    "name": "event_extraction",
    "strict": True,
    "schema": {
        "type": "object",
        "required": list(EVENT_SCHEMA_PROPERTIES),
        "additionalProperties": False,
        "properties": EVENT_SCHEMA_PROPERTIES,
    },
}

COMPARISON_SCHEMA = {
    "name": "comparison",
    "strict": True,
    "schema": {
        "type": "object",
        "required": ["status", "matchedCandidateId", "reason"],
        "additionalProperties": False,
        "properties": {
            "status": {
                "type": "string",
                "enum": ["new_event", "existing_event", "updated_event"],
            },
            "matchedCandidateId": _NULLABLE_STRING,
            "reason": {"type": "string"},
        },
    },
}

_EVIDENCE_CANDIDATE_ITEM = {
    "type": "object",
    "required": [
        "quote",
        "source",
        "messageTextStartIdx",
        "messageTextEndIdx",
        "ocrBlockId",
        "ocrLineId",
    ],
    "additionalProperties": False,
    "properties": {
        "quote": {"type": "string"},
        "source": _EVIDENCE_SOURCE,
        "messageTextStartIdx": {"type": ["integer", "null"]},
        "messageTextEndIdx": {"type": ["integer", "null"]},
        "ocrBlockId": _NULLABLE_STRING,
        "ocrLineId": _NULLABLE_STRING,
    },
}

EVIDENCE_LOCATOR_SCHEMA = {
    "name": "evidence_locator",
    "strict": True,
    "schema": {
        "type": "object",
        "required": ["evidenceCandidates"],
        "additionalProperties": False,
        "properties": {
            "evidenceCandidates": {
                "type": "object",
                "required": ["date", "timeOfDay", "location", "price"],
                "additionalProperties": False,
                "properties": {
                    "date": {"type": "array", "items": _EVIDENCE_CANDIDATE_ITEM},
                    "timeOfDay": {"type": "array", "items": _EVIDENCE_CANDIDATE_ITEM},
                    "location": {"type": "array", "items": _EVIDENCE_CANDIDATE_ITEM},
                    "price": {"type": "array", "items": _EVIDENCE_CANDIDATE_ITEM},
                },
            },
        },
    },
}

DESCRIPTION_BUILDER_SCHEMA = {
    "name": "description_builder",
    "strict": True,
    "schema": {
        "type": "object",
        "required": [
            "Title",
            "shortDescription",
            "fullDescription",
            "categories",
            "mainCategory",
            "urls",
        ],
        "additionalProperties": False,
        "properties": {
            "Title": {"type": "string"},
            "shortDescription": {"type": "string"},
            "fullDescription": {"type": "string"},
            "categories": {"type": "array", "items": {"type": "string"}},
            "mainCategory": {"type": "string"},
            "urls": {"type": "array", "items": _LINK_ITEM},
        },
    },
}

OCR_SCHEMA = {
    "name": "ocr_transcription",
    "strict": True,
    "schema": {
        "type": "object",
        "required": ["fullText"],
        "additionalProperties": False,
        "properties": {
            "fullText": {"type": "string"},
        },
    },
}
