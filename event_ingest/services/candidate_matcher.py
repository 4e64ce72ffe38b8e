from event_ingest.schemas import CandidateEvent
from event_ingest.services.store_interface import EventStoreInterface
from event_ingest.utils.logger import setup_logger

logger = setup_logger("candidate_matcher")

DEFAULT_CANDIDATE_LIMIT = 5


def usable_search_keys(search_keys: list[str] | None) -> list[str]:
    """Trimmed, de-duplicated keys in their original order."""
    keys: list[str] = []
    for key in search_keys or []:
        if not isinstance(key, str):
            continue
        key = key.strip()
        if key and key not in keys:
            keys.append(key)
    return keys


class CandidateMatcher:
    def __init__(self, store: EventStoreInterface, limit: int = DEFAULT_CANDIDATE_LIMIT):
        self.store = store
        self.limit = limit

    async def find_candidates(
        self,
        search_keys: list[str] | None,
        exclude_id: str | None,
        log_prefix: str = "",
    ) -> list[CandidateEvent]:
        """
        Prior active records whose message text matches any of the search keys.

        Never returns the record being processed, and never more than `limit`
        candidates. No keys, or nothing indexed, means no candidates.
        """
        keys = usable_search_keys(search_keys)
        if not keys:
            logger.info(f"{log_prefix}No search keys; skipping candidate search")
            return []

        candidates = await self.store.text_search(keys, exclude_id, self.limit)
        logger.info(
            f"{log_prefix}Found {len(candidates)} candidate(s) for keys {keys}"
        )
        return candidates
