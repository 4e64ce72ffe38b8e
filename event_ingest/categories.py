"""
Event category vocabulary.

Category ids are what the model must emit and what is persisted; labels are
the Hebrew display names shown to the model next to each id.
"""

EVENT_CATEGORIES: list[dict[str, str]] = [
    {"id": "party", "label": "מסיבה / ריקוד"},
    {"id": "show", "label": "הופעה"},
    {"id": "lecture", "label": "הרצאה"},
    {"id": "nature", "label": "טיול / סיור בטבע"},
    {"id": "volunteering", "label": "התנדבות"},
    {"id": "religion", "label": "דת"},
    {"id": "food", "label": "אוכל"},
    {"id": "sport", "label": "ספורט ותנועה"},
    {"id": "fair", "label": "יריד"},
    {"id": "second_hand", "label": "יד שנייה"},
    {"id": "art", "label": "אמנות ויצירה"},
    {"id": "music", "label": "מוזיקה"},
    {"id": "community_meetup", "label": "מפגש קהילתי"},
    {"id": "jam", "label": "ג'אם"},
    {"id": "course", "label": "חוג"},
    {"id": "festival", "label": "פסטיבל"},
    {"id": "workshop", "label": "סדנה"},
    {"id": "health", "label": "בריאות"},
    {"id": "kids", "label": "ילדים"},
]

FALLBACK_CATEGORY_ID = "community_meetup"


def allowed_category_ids(categories: list[dict[str, str]] | None = None) -> list[str]:
    return [c["id"] for c in (categories or EVENT_CATEGORIES)]


def categories_prompt_block(categories: list[dict[str, str]] | None = None) -> str:
    return "\n".join(f"- {c['id']}: {c['label']}" for c in (categories or EVENT_CATEGORIES))
