"""
Deterministic parsers that turn evidence quotes into field values.

The evidence locator only returns verbatim quotes; everything that becomes a
stored value (calendar dates, UTC times, prices, map links, normalized city
names) is derived here, without any model call. Each parser also reports the
quote that produced its value so the caller can build justifications from it.
"""

import re
from dataclasses import dataclass, field
from datetime import date, timedelta

from event_ingest.schemas import (
    EventLocation,
    EvidenceCandidate,
    EvidenceSource,
    FieldEvidence,
    Occurrence,
)
from event_ingest.utils.logger import setup_logger
from event_ingest.utils.zone_time import (
    local_date_from_unix,
    local_time_to_utc_iso,
    local_today,
    midnight_to_utc_iso,
    parse_calendar_date,
)

logger = setup_logger("evidence_parsers")

HEBREW_DAYS = ["ראשון", "שני", "שלישי", "רביעי", "חמישי", "שישי", "שבת"]
ENGLISH_DAYS = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
HEBREW_MONTHS = [
    "ינואר",
    "פברואר",
    "מרץ",
    "אפריל",
    "מאי",
    "יוני",
    "יולי",
    "אוגוסט",
    "ספטמבר",
    "אוקטובר",
    "נובמבר",
    "דצמבר",
]
ENGLISH_MONTHS = [
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
]

# A date without a year that falls this far before the message is read as next year
YEAR_ROLLOVER_DAYS = 60
MAX_RANGE_DAYS = 31

_DD_MM_PATTERN = re.compile(r"(\d{1,2})[./\-](\d{1,2})(?:[./\-](\d{2,4}))?")
_HEBREW_MONTH_PATTERN = re.compile(
    rf"(\d{{1,2}})\s*(?:ב|ל)?({'|'.join(HEBREW_MONTHS)})"
)
_ENGLISH_MONTH_PATTERN = re.compile(
    rf"(\d{{1,2}})\s+(?:of\s+)?({'|'.join(ENGLISH_MONTHS)})", re.IGNORECASE
)

_CROSS_MONTH_RANGE_PATTERN = re.compile(
    r"(\d{1,2})[./](\d{1,2})\s*[-–]\s*(\d{1,2})[./](\d{1,2})(?:[./](\d{2,4}))?"
)
_SAME_MONTH_RANGE_PATTERN = re.compile(
    r"(?<![\d./])(\d{1,2})\s*[-–]\s*(\d{1,2})[./](\d{1,2})(?:[./](\d{2,4}))?"
)
_HEBREW_MONTH_RANGE_PATTERN = re.compile(
    rf"(\d{{1,2}})\s*(?:-|–|עד)\s*(?:ה)?(\d{{1,2}})\s*(?:ב|ל)?({'|'.join(HEBREW_MONTHS)})"
)

_TODAY_PATTERN = re.compile(r"(^|\s)(היום|today)(\s|$)", re.IGNORECASE)
_TOMORROW_PATTERN = re.compile(r"(^|\s)(מחר|tomorrow)(\s|$)", re.IGNORECASE)
_NEXT_WEEKDAY_PATTERN = re.compile(
    rf"(?:בשבוע הבא|next)\s+(?:יום\s+)?({'|'.join(HEBREW_DAYS + ENGLISH_DAYS)})",
    re.IGNORECASE,
)

_HHMM_PATTERN = re.compile(r"(\d{1,2}):(\d{2})(?:\s*-\s*(\d{1,2}):(\d{2}))?")
_EVENING_PATTERN = re.compile(r"(\d{1,2})\s*(?:בערב|evening)", re.IGNORECASE)
_MORNING_PATTERN = re.compile(r"(\d{1,2})\s*(?:בבוקר|morning)", re.IGNORECASE)

_FREE_PATTERN = re.compile(r"(?<!\S)(?:בחינם|חינם|free)(?!\w)", re.IGNORECASE)
_MULTI_TIER_PATTERN = re.compile(r"\d+\s*/\s*\d+|\d+\s*-\s*\d+\s*₪")
_CURRENCY_PRICE_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*(?:₪|שקל|ש\"ח|nis|נ\"ח)", re.IGNORECASE
)
_BARE_NUMBER_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*₪?")
_PRICE_KEYWORD_PATTERN = re.compile(r"₪|שקל|כניסה|מחיר|דמי כניסה", re.IGNORECASE)

WAZE_URL_PATTERN = re.compile(
    r"https?://(?:www\.)?(?:waze\.com|ul\.waze\.com)/[^\s]+", re.IGNORECASE
)
GMAPS_URL_PATTERN = re.compile(
    r"https?://(?:www\.)?(?:google\.com/maps|maps\.google|goo\.gl/maps)[^\s]*",
    re.IGNORECASE,
)

CITY_NORMALIZATION = {
    'ת"א': "תל אביב",
    "תל אביב": "תל אביב",
    "חיפה": "חיפה",
    "ירושלים": "ירושלים",
    "באר שבע": "באר שבע",
    "הרצליה": "הרצליה",
    "נתניה": "נתניה",
    "רמת גן": "רמת גן",
    "גבעתיים": "גבעתיים",
    "ראשון לציון": "ראשון לציון",
    "פתח תקווה": "פתח תקווה",
    "אשדוד": "אשדוד",
    "נהריה": "נהריה",
    "עכו": "עכו",
    "טבריה": "טבריה",
    "אילת": "אילת",
}


@dataclass
class ParsedTime:
    hour: int
    minute: int
    end_hour: int | None = None
    end_minute: int | None = None

    @property
    def start_hhmm(self) -> str:
        return f"{self.hour}:{self.minute:02d}"

    @property
    def end_hhmm(self) -> str | None:
        if self.end_hour is None or self.end_minute is None:
            return None
        return f"{self.end_hour}:{self.end_minute:02d}"


@dataclass
class DateEvidence:
    dates: list[str] = field(default_factory=list)
    evidence: FieldEvidence = field(default_factory=FieldEvidence.not_evidenced)


@dataclass
class TimeEvidence:
    has_time: bool
    time: ParsedTime | None = None
    evidence: FieldEvidence = field(default_factory=FieldEvidence.not_evidenced)


@dataclass
class PriceEvidence:
    price: float | None = None
    evidence: FieldEvidence = field(default_factory=FieldEvidence.not_evidenced)


@dataclass
class LocationEvidence:
    location: EventLocation
    evidence: FieldEvidence = field(default_factory=FieldEvidence.not_evidenced)

    @property
    def verified(self) -> bool:
        return bool(
            self.location.city or self.location.waze_nav_link or self.location.gmaps_nav_link
        )


@dataclass
class OccurrenceEvidence:
    occurrences: list[Occurrence]
    date_evidence: FieldEvidence
    start_time_evidence: FieldEvidence
    end_time_evidence: FieldEvidence


# ===========================================
# Dates
# ===========================================


def _reference_date(ref_unix: int | float | None) -> date:
    ref = local_date_from_unix(ref_unix) if ref_unix is not None else None
    return parse_calendar_date(ref) if ref else local_today()


def _expand_year(year_part: str | None) -> int | None:
    if not year_part:
        return None
    year = int(year_part)
    return 2000 + year if year < 100 else year


def _build_date(day: int, month: int, explicit_year: int | None, ref: date) -> date | None:
    year = explicit_year or ref.year
    try:
        candidate = date(year, month, day)
    except ValueError:
        return None
    if explicit_year is None and candidate < ref - timedelta(days=YEAR_ROLLOVER_DAYS):
        try:
            candidate = date(year + 1, month, day)
        except ValueError:
            return None
    return candidate


def _month_index(name: str, months: list[str]) -> int | None:
    lowered = name.lower()
    for i, month in enumerate(months):
        if lowered.startswith(month):
            return i + 1
    return None


def parse_date_from_quote(quote: str | None, ref_unix: int | float | None = None) -> str | None:
    """
    Parse one explicit calendar date from a quote.

    Accepts DD/MM, DD.MM, DD-MM (optional 2/4-digit year) anywhere in the
    quote, "25 בפברואר" and "25 of February". A missing year is taken from
    the message date.
    """
    if not quote or not quote.strip():
        return None
    text = quote.strip()
    ref = _reference_date(ref_unix)

    match = _DD_MM_PATTERN.search(text)
    if match:
        day, month = int(match.group(1)), int(match.group(2))
        if 1 <= day <= 31 and 1 <= month <= 12:
            parsed = _build_date(day, month, _expand_year(match.group(3)), ref)
            if parsed:
                return parsed.isoformat()

    for pattern, months in (
        (_HEBREW_MONTH_PATTERN, HEBREW_MONTHS),
        (_ENGLISH_MONTH_PATTERN, ENGLISH_MONTHS),
    ):
        match = pattern.search(text)
        if match:
            month = _month_index(match.group(2), months)
            if month is None:
                continue
            parsed = _build_date(int(match.group(1)), month, None, ref)
            if parsed:
                return parsed.isoformat()

    return None


def _date_span(start: date, end: date) -> list[str] | None:
    if end < start or (end - start).days >= MAX_RANGE_DAYS:
        return None
    return [(start + timedelta(days=i)).isoformat() for i in range((end - start).days + 1)]


def parse_date_range_from_quote(
    quote: str | None, ref_unix: int | float | None = None
) -> list[str] | None:
    """
    Expand a stated date range to one calendar date per day.

    Handles "18.2-1.3" (across months), "20-22.2" (within a month) and
    "18 עד ה21 בפברואר". Returns None when the quote is not a range.
    """
    if not quote or not quote.strip():
        return None
    text = quote.strip()
    ref = _reference_date(ref_unix)

    match = _CROSS_MONTH_RANGE_PATTERN.search(text)
    if match:
        year = _expand_year(match.group(5))
        start = _build_date(int(match.group(1)), int(match.group(2)), year, ref)
        end = _build_date(int(match.group(3)), int(match.group(4)), year, ref)
        if start and end and end < start and year is None:
            end = _build_date(int(match.group(3)), int(match.group(4)), start.year + 1, ref)
        if start and end:
            return _date_span(start, end)
        return None

    match = _SAME_MONTH_RANGE_PATTERN.search(text)
    if match:
        month = int(match.group(3))
        year = _expand_year(match.group(4))
        start = _build_date(int(match.group(1)), month, year, ref) if 1 <= month <= 12 else None
        end = _build_date(int(match.group(2)), month, start.year, ref) if start else None
        if start and end:
            return _date_span(start, end)
        return None

    match = _HEBREW_MONTH_RANGE_PATTERN.search(text)
    if match:
        month = _month_index(match.group(3), HEBREW_MONTHS)
        start = _build_date(int(match.group(1)), month, None, ref) if month else None
        end = _build_date(int(match.group(2)), month, start.year, ref) if start else None
        if start and end:
            return _date_span(start, end)

    return None


def parse_relative_date_from_quote(
    quote: str | None, ref_unix: int | float | None = None
) -> str | None:
    """today / tomorrow / next <weekday>, anchored at the message date in the reference zone."""
    if not quote or not quote.strip():
        return None
    text = quote.strip().lower()
    ref = _reference_date(ref_unix)

    if _TODAY_PATTERN.search(text):
        return ref.isoformat()
    if _TOMORROW_PATTERN.search(text):
        return (ref + timedelta(days=1)).isoformat()

    match = _NEXT_WEEKDAY_PATTERN.search(text)
    if match:
        day_name = match.group(1).lower()
        if day_name in HEBREW_DAYS:
            target = HEBREW_DAYS.index(day_name)
        else:
            target = ENGLISH_DAYS.index(day_name)
        # Sunday-first index of the reference date
        ref_dow = (ref.weekday() + 1) % 7
        days_ahead = (target + 7 - ref_dow) % 7 or 7
        return (ref + timedelta(days=days_ahead)).isoformat()

    return None


def parse_date_evidence(
    candidates: list[EvidenceCandidate], ref_unix: int | float | None = None
) -> DateEvidence:
    """First candidate that yields a range, an explicit date or a relative date wins."""
    for candidate in candidates or []:
        quote = (candidate.quote or "").strip()
        if not quote:
            continue
        dates = parse_date_range_from_quote(quote, ref_unix)
        if not dates:
            single = parse_date_from_quote(quote, ref_unix) or parse_relative_date_from_quote(
                quote, ref_unix
            )
            dates = [single] if single else []
        if dates:
            return DateEvidence(
                dates=dates, evidence=FieldEvidence.from_quote(quote, candidate.source)
            )
    return DateEvidence()


# ===========================================
# Times
# ===========================================


def parse_time_from_quote(quote: str | None) -> ParsedTime | None:
    """
    Parse a time of day: "20:00", "17:30-19:00", "8 בערב" (20:00), "9 בבוקר".

    >>> parse_time_from_quote("8 בערב")
    ParsedTime(hour=20, minute=0, end_hour=None, end_minute=None)
    """
    if not quote or not quote.strip():
        return None
    text = quote.strip()

    match = _HHMM_PATTERN.search(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if 0 <= hour <= 23 and 0 <= minute <= 59:
            parsed = ParsedTime(hour=hour, minute=minute)
            if match.group(3) is not None:
                end_hour, end_minute = int(match.group(3)), int(match.group(4))
                if 0 <= end_hour <= 23 and 0 <= end_minute <= 59:
                    parsed.end_hour, parsed.end_minute = end_hour, end_minute
            return parsed

    match = _EVENING_PATTERN.search(text)
    if match and 1 <= int(match.group(1)) <= 12:
        hour = int(match.group(1))
        return ParsedTime(hour=12 if hour == 12 else hour + 12, minute=0)

    match = _MORNING_PATTERN.search(text)
    if match and 1 <= int(match.group(1)) <= 12:
        hour = int(match.group(1))
        return ParsedTime(hour=0 if hour == 12 else hour, minute=0)

    return None


def parse_time_evidence(candidates: list[EvidenceCandidate]) -> TimeEvidence:
    for candidate in candidates or []:
        quote = (candidate.quote or "").strip()
        parsed = parse_time_from_quote(quote)
        if parsed:
            return TimeEvidence(
                has_time=True,
                time=parsed,
                evidence=FieldEvidence.from_quote(quote, candidate.source),
            )
    return TimeEvidence(has_time=False)


def build_occurrences(
    date_candidates: list[EvidenceCandidate],
    time_candidates: list[EvidenceCandidate],
    ref_unix: int | float | None = None,
) -> OccurrenceEvidence:
    """
    One occurrence per parsed calendar day, each with the same time of day.

    A date with no parsable time is all-day: local midnight in UTC and no
    end time. No date evidence yields no occurrences.
    """
    date_evidence = parse_date_evidence(date_candidates, ref_unix)
    if not date_evidence.dates:
        return OccurrenceEvidence(
            occurrences=[],
            date_evidence=FieldEvidence.not_evidenced(),
            start_time_evidence=FieldEvidence.not_evidenced(),
            end_time_evidence=FieldEvidence.not_evidenced(),
        )

    time_evidence = parse_time_evidence(time_candidates)
    occurrences = []
    for day in date_evidence.dates:
        start_time = None
        end_time = None
        if time_evidence.has_time:
            start_time = local_time_to_utc_iso(day, time_evidence.time.start_hhmm)
            if time_evidence.time.end_hhmm:
                end_time = local_time_to_utc_iso(day, time_evidence.time.end_hhmm)
        if start_time:
            occurrences.append(
                Occurrence(date=day, has_time=True, start_time=start_time, end_time=end_time)
            )
        else:
            occurrences.append(
                Occurrence(
                    date=day, has_time=False, start_time=midnight_to_utc_iso(day), end_time=None
                )
            )

    has_end = any(o.end_time for o in occurrences)
    return OccurrenceEvidence(
        occurrences=occurrences,
        date_evidence=date_evidence.evidence,
        start_time_evidence=(
            time_evidence.evidence if time_evidence.has_time else FieldEvidence.not_evidenced()
        ),
        end_time_evidence=(
            time_evidence.evidence if has_end else FieldEvidence.not_evidenced()
        ),
    )


# ===========================================
# Price
# ===========================================


def parse_price_evidence(candidates: list[EvidenceCandidate]) -> PriceEvidence:
    """
    First unambiguous price among the quotes.

    Free → 0. Multi-tier quotes ("30/50", "30-50 ₪") are skipped. Otherwise a
    number followed by a currency marker, or any number in a quote that
    mentions ₪/שקל/כניסה/מחיר, rounded to an integer.
    """
    for candidate in candidates or []:
        quote = (candidate.quote or "").strip()
        if not quote:
            continue

        if _FREE_PATTERN.search(quote):
            return PriceEvidence(0, FieldEvidence.from_quote(quote, candidate.source))

        if _MULTI_TIER_PATTERN.search(quote):
            logger.debug(f"Skipping multi-tier price quote: {quote}")
            continue

        match = _CURRENCY_PRICE_PATTERN.search(quote)
        if not match and _PRICE_KEYWORD_PATTERN.search(quote):
            match = _BARE_NUMBER_PATTERN.search(quote)
        if match:
            value = float(match.group(1))
            if value >= 0:
                return PriceEvidence(
                    float(round(value)), FieldEvidence.from_quote(quote, candidate.source)
                )

    return PriceEvidence()


# ===========================================
# Location
# ===========================================


def extract_map_links(urls: list[str]) -> tuple[str | None, str | None]:
    """(waze, google maps) links among the URLs; the last match of each kind wins."""
    waze, gmaps = None, None
    for url in urls or []:
        if WAZE_URL_PATTERN.search(url):
            waze = url
        if GMAPS_URL_PATTERN.search(url):
            gmaps = url
    return waze, gmaps


def normalize_city_name(quote: str | None) -> str:
    if not quote or not quote.strip():
        return ""
    text = quote.strip()
    for key, value in CITY_NORMALIZATION.items():
        if key in text or text in key:
            return value
    return text


def verify_location(
    candidates: list[EvidenceCandidate], extracted_urls: list[str]
) -> LocationEvidence:
    """
    City from the first location quote, map links from the message URLs.

    The first quote is both the CityEvidence and the location justification;
    venue and street are left to the description stage and never guessed.
    """
    waze, gmaps = extract_map_links(extracted_urls)
    location = EventLocation(waze_nav_link=waze, gmaps_nav_link=gmaps)
    evidence = FieldEvidence.not_evidenced()

    first = next((c for c in candidates or [] if (c.quote or "").strip()), None)
    if first is not None:
        quote = first.quote.strip()
        location.city = normalize_city_name(quote)
        location.city_evidence = quote
        evidence = FieldEvidence.from_quote(quote, first.source or EvidenceSource.MESSAGE_TEXT)

    return LocationEvidence(location=location, evidence=evidence)
