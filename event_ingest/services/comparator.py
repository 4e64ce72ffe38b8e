from event_ingest.config import Settings
from event_ingest.prompts import (
    COMPARISON_CANDIDATE_TEMPLATE,
    COMPARISON_SYSTEM_PROMPT,
    COMPARISON_USER_TEMPLATE,
)
from event_ingest.response_schemas import COMPARISON_SCHEMA
from event_ingest.schemas import (
    CandidateEvent,
    ComparisonResult,
    ComparisonStatus,
    ExtractedEvent,
)
from event_ingest.services.llm_service import LLMService, stage_value
from event_ingest.utils.logger import setup_logger, truncate_for_log

logger = setup_logger("comparator")

CANDIDATE_TEXT_LIMIT = 600
MESSAGE_TEXT_LIMIT = 2000


def _summary_fields(event: ExtractedEvent | None) -> dict[str, str]:
    if event is None:
        return {"title": "", "city": "", "date": "", "start_time": "", "price": "null"}
    first = event.occurrences[0] if event.occurrences else None
    return {
        "title": event.title,
        "city": event.location.city,
        "date": first.date if first else "",
        "start_time": first.start_time if first and first.has_time else "",
        "price": "null" if event.price is None else f"{event.price:g}",
    }


def format_candidates(candidates: list[CandidateEvent]) -> str:
    blocks = []
    for index, candidate in enumerate(candidates, start=1):
        blocks.append(
            COMPARISON_CANDIDATE_TEMPLATE.format(
                index=index,
                candidate_id=candidate.record_id,
                message_text=(candidate.text or "")[:CANDIDATE_TEXT_LIMIT],
                **_summary_fields(candidate.event),
            )
        )
    return "\n\n".join(blocks)


class EventComparator:
    """Three-way new / existing / updated decision against prior candidates."""

    def __init__(self, llm: LLMService, settings: Settings):
        self.llm = llm
        self.settings = settings

    async def compare(
        self,
        event: ExtractedEvent,
        message_text: str,
        candidates: list[CandidateEvent],
        log_prefix: str = "",
    ) -> ComparisonResult | None:
        """
        Only meaningful with at least one candidate. Returns None when the
        model call fails or names a candidate that was not offered.
        """
        if not candidates:
            return ComparisonResult(status=ComparisonStatus.NEW_EVENT, reason="No candidates")

        user_content = COMPARISON_USER_TEMPLATE.format(
            categories=", ".join(event.categories),
            message_text=(message_text or "")[:MESSAGE_TEXT_LIMIT],
            candidates=format_candidates(candidates),
            **_summary_fields(event),
        )
        result = await self.llm.run_stage(
            "Comparison",
            system_prompt=COMPARISON_SYSTEM_PROMPT,
            user_content=user_content,
            json_schema=COMPARISON_SCHEMA,
            response_model=ComparisonResult,
            max_tokens=self.settings.llm_comparison_max_tokens,
            log_prefix=log_prefix,
        )
        comparison = stage_value(result, "Comparison", log_prefix)
        if comparison is None:
            return None

        if comparison.status != ComparisonStatus.NEW_EVENT:
            offered = {c.record_id for c in candidates}
            if comparison.matched_candidate_id not in offered:
                logger.error(
                    f"{log_prefix}Comparison returned unknown matchedCandidateId "
                    f"'{comparison.matched_candidate_id}' (offered: {sorted(offered)}). "
                    f"Reason: {truncate_for_log(comparison.reason, 200)}"
                )
                return None

        logger.info(
            f"{log_prefix}Comparison: status={comparison.status.value}, "
            f"matched={comparison.matched_candidate_id}, reason={comparison.reason}"
        )
        return comparison
