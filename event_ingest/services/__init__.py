"""
Event Ingest Services Package - message-to-event pipeline stages

Services that turn a community chat message into a stored event record:
intake, dedup, OCR, classification, evidence-first extraction, validation,
duplicate matching and confirmations.

Core Services:
- intake & dedup_gate: webhook intake, identical-message detection, placeholder insert
- message_queue & pipeline: single-consumer queue driving every stage
- classifier, extractor, comparator, ocr_service: model-backed stages
- llm_service & llm_interface: provider registry and tagged stage results
- validator & evidence_parsers: deterministic checks of quoted evidence
- candidate_matcher & enrichment: duplicate candidates, publisher phone and media
- confirmation & transport: status messages through the chat sidecar
"""
