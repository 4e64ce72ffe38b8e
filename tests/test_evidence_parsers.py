from conftest import unix_time

from event_ingest.schemas import EvidenceCandidate, EvidenceSource, EvidenceStatus
from event_ingest.services.evidence_parsers import (
    build_occurrences,
    normalize_city_name,
    parse_date_evidence,
    parse_date_from_quote,
    parse_date_range_from_quote,
    parse_price_evidence,
    parse_relative_date_from_quote,
    parse_time_from_quote,
    verify_location,
)

# Friday 2026-02-20, noon in the reference zone
REF = unix_time(2026, 2, 20)


def quotes(*texts: str) -> list[EvidenceCandidate]:
    return [EvidenceCandidate(quote=text) for text in texts]


# ===== Dates =====


def test_explicit_date_takes_year_from_message():
    assert parse_date_from_quote("25/02", REF) == "2026-02-25"
    assert parse_date_from_quote("ביום רביעי 25.2 בערב", REF) == "2026-02-25"


def test_explicit_year_is_kept():
    assert parse_date_from_quote("25.02.27", REF) == "2027-02-25"
    assert parse_date_from_quote("25/02/2028", REF) == "2028-02-25"


def test_date_well_before_message_rolls_to_next_year():
    december = unix_time(2026, 12, 20)
    assert parse_date_from_quote("05/01", december) == "2027-01-05"


def test_recent_past_date_does_not_roll_over():
    assert parse_date_from_quote("10/02", REF) == "2026-02-10"


def test_month_names():
    assert parse_date_from_quote("25 בפברואר", REF) == "2026-02-25"
    assert parse_date_from_quote("25 of February", REF) == "2026-02-25"


def test_unparsable_dates():
    assert parse_date_from_quote("בקרוב", REF) is None
    assert parse_date_from_quote("31/02", REF) is None
    assert parse_date_from_quote("", REF) is None


def test_cross_month_range():
    dates = parse_date_range_from_quote("18.2-1.3", REF)
    assert dates[0] == "2026-02-18"
    assert dates[-1] == "2026-03-01"
    assert len(dates) == 12


def test_same_month_range():
    assert parse_date_range_from_quote("20-22.2", REF) == [
        "2026-02-20",
        "2026-02-21",
        "2026-02-22",
    ]


def test_hebrew_month_range():
    assert parse_date_range_from_quote("18 עד ה21 בפברואר", REF) == [
        "2026-02-18",
        "2026-02-19",
        "2026-02-20",
        "2026-02-21",
    ]


def test_single_date_is_not_a_range():
    assert parse_date_range_from_quote("25/02", REF) is None


def test_relative_dates():
    assert parse_relative_date_from_quote("היום", REF) == "2026-02-20"
    assert parse_relative_date_from_quote("מחר", REF) == "2026-02-21"
    assert parse_relative_date_from_quote("next monday", REF) == "2026-02-23"
    assert parse_relative_date_from_quote("בקרוב", REF) is None


def test_first_parsable_date_candidate_wins():
    evidence = parse_date_evidence(quotes("בקרוב", "25/02", "26/02"), REF)
    assert evidence.dates == ["2026-02-25"]
    assert evidence.evidence.status == EvidenceStatus.EVIDENCED
    assert evidence.evidence.quote == "25/02"


# ===== Times =====


def test_clock_times():
    parsed = parse_time_from_quote("בשעה 20:00")
    assert parsed.start_hhmm == "20:00"
    assert parsed.end_hhmm is None

    ranged = parse_time_from_quote("17:30-19:00")
    assert ranged.start_hhmm == "17:30"
    assert ranged.end_hhmm == "19:00"


def test_spoken_times():
    assert parse_time_from_quote("8 בערב").start_hhmm == "20:00"
    assert parse_time_from_quote("9 בבוקר").start_hhmm == "9:00"
    assert parse_time_from_quote("בשמונה בערב") is None


def test_occurrence_with_time_range():
    result = build_occurrences(quotes("25/02"), quotes("20:00-22:00"), REF)
    assert len(result.occurrences) == 1
    occurrence = result.occurrences[0]
    assert occurrence.date == "2026-02-25"
    assert occurrence.has_time is True
    assert occurrence.start_time == "2026-02-25T18:00:00.000Z"
    assert occurrence.end_time == "2026-02-25T20:00:00.000Z"
    assert result.start_time_evidence.quote == "20:00-22:00"
    assert result.end_time_evidence.is_evidenced


def test_date_without_time_is_all_day():
    result = build_occurrences(quotes("25/02"), [], REF)
    occurrence = result.occurrences[0]
    assert occurrence.has_time is False
    assert occurrence.start_time == "2026-02-24T22:00:00.000Z"
    assert occurrence.end_time is None
    assert result.start_time_evidence.status == EvidenceStatus.NOT_EVIDENCED
    assert result.end_time_evidence.status == EvidenceStatus.NOT_EVIDENCED


def test_range_gets_one_occurrence_per_day():
    result = build_occurrences(quotes("20-22.2"), quotes("20:00"), REF)
    assert [o.date for o in result.occurrences] == ["2026-02-20", "2026-02-21", "2026-02-22"]
    assert [o.start_time for o in result.occurrences] == [
        "2026-02-20T18:00:00.000Z",
        "2026-02-21T18:00:00.000Z",
        "2026-02-22T18:00:00.000Z",
    ]


def test_no_date_means_no_occurrences():
    result = build_occurrences(quotes("בקרוב"), quotes("20:00"), REF)
    assert result.occurrences == []
    assert result.date_evidence.status == EvidenceStatus.NOT_EVIDENCED
    assert result.start_time_evidence.status == EvidenceStatus.NOT_EVIDENCED


# ===== Price =====


def test_currency_price():
    evidence = parse_price_evidence(quotes("כניסה 30 ₪"))
    assert evidence.price == 30
    assert evidence.evidence.quote == "כניסה 30 ₪"


def test_free_entry_is_zero():
    assert parse_price_evidence(quotes("הכניסה חינם")).price == 0


def test_multi_tier_price_is_skipped():
    evidence = parse_price_evidence(quotes("30/50 ₪", 'מחיר 40 ש"ח'))
    assert evidence.price == 40
    assert evidence.evidence.quote == 'מחיר 40 ש"ח'


def test_price_keyword_with_bare_number_and_rounding():
    assert parse_price_evidence(quotes("מחיר: 25")).price == 25
    assert parse_price_evidence(quotes("29.9 ₪")).price == 30


def test_no_price():
    evidence = parse_price_evidence(quotes("מומלץ להגיע מוקדם"))
    assert evidence.price is None
    assert evidence.evidence.status == EvidenceStatus.NOT_EVIDENCED


# ===== Location =====


def test_city_is_normalized_and_quote_kept_as_evidence():
    evidence = verify_location(quotes('ת"א'), [])
    assert evidence.location.city == "תל אביב"
    assert evidence.location.city_evidence == 'ת"א'
    assert evidence.evidence.source == EvidenceSource.MESSAGE_TEXT
    assert evidence.verified


def test_map_links_verify_location_without_a_city():
    evidence = verify_location(
        [], ["https://example.com", "https://waze.com/ul?ll=32.8,35.0", "https://maps.google.com/?q=x"]
    )
    assert evidence.location.waze_nav_link == "https://waze.com/ul?ll=32.8,35.0"
    assert evidence.location.gmaps_nav_link == "https://maps.google.com/?q=x"
    assert evidence.location.city == ""
    assert evidence.evidence.status == EvidenceStatus.NOT_EVIDENCED
    assert evidence.verified


def test_unknown_city_is_kept_verbatim():
    assert normalize_city_name("  גבעת שמואל ") == "גבעת שמואל"
    assert normalize_city_name("") == ""
