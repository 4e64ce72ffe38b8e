"""
Programmatic validator - the trust boundary between model output and storage.

Pure and deterministic: no network, no clock other than the `now` passed in.
Rules run in a fixed order: categories, structural rejection, verbatim
verification of evidence quotes, evidence gating of dependent fields,
location verbatim checks, time validity and normalization, then final
cleanup. The input event is never mutated; a corrected copy is returned with
a human-readable list of every change made.
"""

import re
from datetime import datetime, timedelta, timezone

from event_ingest.categories import FALLBACK_CATEGORY_ID, allowed_category_ids
from event_ingest.schemas import (
    EventLocation,
    EvidenceSource,
    ExtractedEvent,
    FieldEvidence,
    Justifications,
    Occurrence,
    ValidationResult,
)
from event_ingest.utils.logger import setup_logger
from event_ingest.utils.zone_time import (
    local_date_from_iso,
    local_hhmm_from_iso,
    local_time_to_utc_iso,
    midnight_to_utc_iso,
    parse_calendar_date,
    parse_iso_utc,
)

logger = setup_logger("validator")

TITLE_PRICE_PATTERN = re.compile(r'₪|שקל|ש"ח|חינם|free|NIS', re.IGNORECASE)

_JUSTIFIED_FIELDS = ("date", "location", "start_time", "end_time", "price")
_VERBATIM_LOCATION_FIELDS = ("address_line1", "address_line2", "location_details")
_OPTIONAL_LOCATION_FIELDS = (
    "city_evidence",
    "address_line1",
    "address_line2",
    "location_details",
    "waze_nav_link",
    "gmaps_nav_link",
)


def _collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def quote_in_text(quote: str | None, text: str) -> bool:
    """Exact substring check, tolerant only of differing whitespace runs."""
    if not quote or not quote.strip():
        return False
    if quote.strip() in text:
        return True
    return _collapse_whitespace(quote) in _collapse_whitespace(text)


def _is_blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


class EventValidator:
    def __init__(
        self,
        allowed_categories: list[str] | None = None,
        fallback_category: str = FALLBACK_CATEGORY_ID,
        far_future_years: int = 2,
    ):
        self.allowed_categories = allowed_categories or allowed_category_ids()
        self.fallback_category = fallback_category
        self.far_future_years = far_future_years

    def validate(
        self,
        event: ExtractedEvent,
        combined_text: str,
        now: datetime | None = None,
    ) -> ValidationResult:
        corrections: list[str] = []
        event = event.model_copy(deep=True)
        now = now or datetime.now(timezone.utc)

        self._fix_categories(event, corrections)

        if not event.occurrences:
            return self._reject(corrections, "Missing or empty occurrences")
        for i, occ in enumerate(event.occurrences):
            if parse_calendar_date(occ.date) is None:
                return self._reject(
                    corrections, f"occurrences[{i}].date '{occ.date}' is not a valid calendar date"
                )

        self._verify_justification_quotes(event.justifications, combined_text, corrections)

        if not event.justifications.date.is_evidenced:
            return self._reject(corrections, "No justification for calendar date - event rejected")

        self._gate_times(event, corrections)
        self._gate_location(event, corrections)
        self._gate_price(event, corrections)
        self._verify_location_verbatim(event.location, combined_text, corrections)

        for occ in event.occurrences:
            if occ.start_time and parse_iso_utc(occ.start_time) is None:
                return self._reject(corrections, f"startTime '{occ.start_time}' is not a valid date")
        self._flag_far_future(event.occurrences, now, corrections)
        self._clear_invalid_end_times(event.occurrences, corrections)
        self._align_start_dates(event.occurrences, corrections)
        self._normalize_all_day(event.occurrences, corrections)

        self._final_cleanup(event, corrections)
        return ValidationResult(event=event, corrections=corrections)

    def _reject(self, corrections: list[str], reason: str) -> ValidationResult:
        corrections.append(reason)
        logger.info(f"Validation rejected event: {reason}")
        return ValidationResult(event=None, corrections=corrections)

    # ===== Categories =====

    def _fix_categories(self, event: ExtractedEvent, corrections: list[str]):
        filtered: list[str] = []
        for category in event.categories:
            if category in self.allowed_categories and category not in filtered:
                filtered.append(category)
        dropped = [c for c in event.categories if c not in self.allowed_categories]
        if dropped:
            corrections.append(f"Dropped unknown categories: {', '.join(dropped)}")

        if not filtered:
            event.categories = [self.fallback_category]
            event.main_category = self.fallback_category
            corrections.append(
                f"No valid categories from extraction; assigned {self.fallback_category} as fallback"
            )
            return

        event.categories = filtered
        if event.main_category not in filtered:
            event.main_category = filtered[0]
            corrections.append(f"mainCategory corrected to {event.main_category}")

    # ===== Evidence =====

    def _verify_justification_quotes(
        self, justifications: Justifications, combined_text: str, corrections: list[str]
    ):
        for name in _JUSTIFIED_FIELDS:
            evidence: FieldEvidence = getattr(justifications, name)
            if not evidence.is_evidenced or evidence.source == EvidenceSource.URL:
                continue
            if not quote_in_text(evidence.quote, combined_text):
                corrections.append(
                    f"justifications.{name} quote \"{evidence.quote}\" not found in message/OCR text - treated as not evidenced"
                )
                setattr(justifications, name, FieldEvidence.not_evidenced())

    def _gate_times(self, event: ExtractedEvent, corrections: list[str]):
        start_evidenced = event.justifications.start_time.is_evidenced
        end_evidenced = event.justifications.end_time.is_evidenced
        for occ in event.occurrences:
            if occ.has_time and not occ.start_time:
                occ.has_time = False
                corrections.append("hasTime without startTime - cleared to all-day")
            elif occ.has_time and not start_evidenced:
                occ.has_time = False
                occ.start_time = midnight_to_utc_iso(occ.date) or occ.start_time
                occ.end_time = None
                corrections.append("Time of day had no justification - cleared to all-day")
            if occ.end_time is not None and not end_evidenced:
                occ.end_time = None
                corrections.append("endTime had value but no justification - cleared to null")

    def _gate_location(self, event: ExtractedEvent, corrections: list[str]):
        if event.location.has_content() and not event.justifications.location.is_evidenced:
            event.location.city = ""
            event.location.city_evidence = None
            event.location.address_line1 = None
            event.location.address_line2 = None
            event.location.location_details = None
            event.location.waze_nav_link = None
            event.location.gmaps_nav_link = None
            corrections.append("Location had data but no justification - cleared to empty state")

    def _gate_price(self, event: ExtractedEvent, corrections: list[str]):
        if event.price is not None and not event.justifications.price.is_evidenced:
            event.price = None
            corrections.append("Price had value but no justification - cleared to null")

    def _verify_location_verbatim(
        self, location: EventLocation, combined_text: str, corrections: list[str]
    ):
        if not _is_blank(location.city_evidence):
            if not quote_in_text(location.city_evidence, combined_text):
                corrections.append(
                    f"CityEvidence \"{location.city_evidence}\" not found in message/OCR text - cleared City and CityEvidence"
                )
                location.city = ""
                location.city_evidence = None
        elif not _is_blank(location.city):
            corrections.append("City had no CityEvidence - cleared City")
            location.city = ""

        for name in _VERBATIM_LOCATION_FIELDS:
            value = getattr(location, name)
            if not _is_blank(value) and not quote_in_text(value, combined_text):
                corrections.append(f"location.{name} not found verbatim in message/OCR - cleared")
                setattr(location, name, None)

    # ===== Times =====

    def _flag_far_future(self, occurrences: list[Occurrence], now: datetime, corrections: list[str]):
        horizon = now + timedelta(days=365 * self.far_future_years)
        for occ in occurrences:
            start = parse_iso_utc(occ.start_time)
            if start is not None and start > horizon:
                corrections.append(
                    f"startTime {occ.start_time} is more than {self.far_future_years} years in the future - suspicious"
                )

    def _clear_invalid_end_times(self, occurrences: list[Occurrence], corrections: list[str]):
        for occ in occurrences:
            if occ.end_time and parse_iso_utc(occ.end_time) is None:
                occ.end_time = None
                corrections.append("endTime was invalid - cleared")

    def _align_start_dates(self, occurrences: list[Occurrence], corrections: list[str]):
        for occ in occurrences:
            if not occ.start_time:
                continue
            start_local_date = local_date_from_iso(occ.start_time)
            if start_local_date is None or start_local_date == occ.date:
                continue
            if not occ.has_time:
                occ.start_time = midnight_to_utc_iso(occ.date)
                corrections.append("All-day: startTime normalized to occurrence.date at local midnight UTC")
                continue
            rebuilt = local_time_to_utc_iso(occ.date, local_hhmm_from_iso(occ.start_time))
            if rebuilt:
                occ.start_time = rebuilt
                corrections.append("startTime date normalized to match occurrence.date")

    def _normalize_all_day(self, occurrences: list[Occurrence], corrections: list[str]):
        for occ in occurrences:
            if occ.has_time:
                continue
            normalized = midnight_to_utc_iso(occ.date)
            if normalized != occ.start_time:
                corrections.append("All-day event: startTime set to occurrence.date at local midnight UTC")
            occ.start_time = normalized
            occ.end_time = None

    # ===== Cleanup =====

    def _final_cleanup(self, event: ExtractedEvent, corrections: list[str]):
        if event.media:
            corrections.append("Model-proposed media discarded")
        event.media = []

        for name in _OPTIONAL_LOCATION_FIELDS:
            value = getattr(event.location, name)
            if value is not None and not value.strip():
                setattr(event.location, name, None)

        if event.title and TITLE_PRICE_PATTERN.search(event.title):
            corrections.append("Title contained price info (not removed, flagged)")


def validate_event(
    event: ExtractedEvent,
    combined_text: str,
    allowed_categories: list[str] | None = None,
    now: datetime | None = None,
) -> ValidationResult:
    return EventValidator(allowed_categories).validate(event, combined_text, now=now)
