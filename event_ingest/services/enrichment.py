import re

from event_ingest.schemas import ExtractedEvent, MediaRef
from event_ingest.services.transport import TransportInterface
from event_ingest.utils.logger import setup_logger

logger = setup_logger("enrichment")

PHONE_ID_SUFFIX = "@c.us"
ALIAS_ID_SUFFIX = "@lid"
_PHONE_DIGITS = re.compile(r"^\d{7,15}$")
_EMBEDDED_PHONE = re.compile(r"\d{7,15}")


def extract_phone_from_id(contact_id: str | None) -> str | None:
    """
    Phone number carried by a phone-form id.

    >>> extract_phone_from_id("972501234567@c.us")
    '972501234567'
    >>> extract_phone_from_id("82734072487978@lid") is None
    True
    """
    if not contact_id:
        return None
    if contact_id.endswith(ALIAS_ID_SUFFIX):
        return None
    local_part = contact_id.split("@", 1)[0]
    if _PHONE_DIGITS.match(local_part):
        return local_part
    match = _EMBEDDED_PHONE.search(contact_id)
    return match.group(0) if match else None


class Enricher:
    """
    Attaches publisher contact and the uploaded media reference to a validated
    event. Never calls a model and never raises: anything unresolvable is left
    unset.
    """

    def __init__(self, transport: TransportInterface):
        self.transport = transport

    async def resolve_publisher_phone(self, sender_id: str | None, log_prefix: str = "") -> str | None:
        if not sender_id:
            return None
        if not sender_id.endswith(ALIAS_ID_SUFFIX):
            return extract_phone_from_id(sender_id)

        for lookup in (self.transport.resolve_contact_phone, self.transport.lookup_contact_phone):
            try:
                resolved = await lookup(sender_id)
            except Exception as e:
                logger.warning(
                    f"{log_prefix}Alias lookup {lookup.__name__} failed for {sender_id}: {e}"
                )
                continue
            phone = extract_phone_from_id(resolved)
            if phone:
                return phone

        logger.warning(f"{log_prefix}Could not resolve phone for sender {sender_id}")
        return None

    async def enrich(
        self,
        event: ExtractedEvent,
        sender_id: str | None,
        media: MediaRef | None,
        log_prefix: str = "",
    ) -> ExtractedEvent:
        enriched = event.model_copy(deep=True)
        enriched.publisher_phone = await self.resolve_publisher_phone(sender_id, log_prefix)
        enriched.media = [media.url] if media and media.url else []
        logger.debug(
            f"{log_prefix}Enriched event: phone={'set' if enriched.publisher_phone else 'unset'}, "
            f"media={len(enriched.media)}"
        )
        return enriched
