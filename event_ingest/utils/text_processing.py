"""
Text processing utilities for incoming chat messages.

Covers everything the pipeline does to raw message text before a model sees
it: prompt-injection sanitizing, URL extraction, dedup signatures, short
previews for confirmations and rendering chat formatting to a restricted set
of HTML tags.
"""

import hashlib
import html
import re

from event_ingest.config import settings
from event_ingest.utils.logger import setup_logger

logger = setup_logger("text_processing")

# Only checked at the very start of the message
LEADING_OVERRIDE_PATTERN = re.compile(
    r"^\s*(system\s*:"
    r"|\s*ignore\s+(all\s+)?(previous|above|prior)\s+instructions?"
    r"|\s*disregard\s+(all\s+)?(previous|above)\s*"
    r"|\s*you\s+are\s+now\s+)",
    re.IGNORECASE | re.MULTILINE,
)

URL_PATTERN = re.compile(r"https?://[^\s]+")

ALLOWED_HTML_TAGS = (
    "p",
    "br",
    "strong",
    "em",
    "del",
    "code",
    "pre",
    "blockquote",
    "ul",
    "ol",
    "li",
)

PREVIEW_LENGTH = 20


def sanitize_message_for_prompt(text: str | None, max_length: int | None = None) -> str:
    """
    Trim, strip a leading instruction-override line and cap the length.

    Only an override at the start of the message is removed (through the end
    of its line); the same words later in the text are ordinary content.
    """
    if not text:
        return ""
    max_length = max_length or settings.message_text_max_length

    sanitized = text.strip()
    match = LEADING_OVERRIDE_PATTERN.match(sanitized)
    if match and match.start() == 0:
        line_end = sanitized.find("\n", match.end())
        sanitized = "" if line_end == -1 else sanitized[line_end + 1 :].lstrip()
        logger.info("Stripped leading instruction-override line from message text")

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]
    return sanitized


def extract_urls(text: str | None) -> list[str]:
    """All http(s) URLs in order of first appearance, without duplicates."""
    if not text:
        return []
    seen: dict[str, None] = {}
    for url in URL_PATTERN.findall(text):
        seen.setdefault(url, None)
    return list(seen)


def normalize_message_text(text: str | None) -> str:
    return re.sub(r"\s+", " ", (text or "").strip())


def compute_message_signature(text: str | None) -> str | None:
    """SHA-256 of the whitespace-normalized text; None for empty text."""
    normalized = normalize_message_text(text)
    if not normalized:
        return None
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def message_preview(text: str | None, fallback: str = "(no text)") -> str:
    return (text or "")[:PREVIEW_LENGTH] or fallback


# ===========================================
# Chat formatting -> restricted HTML
# ===========================================

_TRIPLE_CODE_PATTERN = re.compile(r"```([\s\S]+?)```")
_INLINE_CODE_PATTERN = re.compile(r"`([^`\n]+)`")
_INLINE_MARKERS = (
    ("*", "strong"),
    ("_", "em"),
    ("~", "del"),
)
_QUOTE_LINE = re.compile(r"^>\s?(.*)$")
_BULLET_LINE = re.compile(r"^[*\-•]\s+(.*)$")
_NUMBERED_LINE = re.compile(r"^\d+[.)]\s+(.*)$")


def _inline_marker_pattern(marker: str) -> re.Pattern:
    m = re.escape(marker)
    return re.compile(rf"(?<![\w{m}]){m}(?=\S)([^{m}\n]+?)(?<=\S){m}(?![\w{m}])")


_INLINE_PATTERNS = [
    (_inline_marker_pattern(marker), tag) for marker, tag in _INLINE_MARKERS
]


def _render_inline(escaped: str) -> str:
    """Apply inline formatting to already-escaped text, leaving URLs untouched."""
    protected: list[str] = []

    def protect(fragment: str) -> str:
        protected.append(fragment)
        return f"\x00{len(protected) - 1}\x00"

    text = _INLINE_CODE_PATTERN.sub(
        lambda m: protect(f"<code>{m.group(1)}</code>"), escaped
    )
    text = URL_PATTERN.sub(lambda m: protect(m.group(0)), text)

    for pattern, tag in _INLINE_PATTERNS:
        text = pattern.sub(lambda m, tag=tag: f"<{tag}>{m.group(1)}</{tag}>", text)

    return re.sub(r"\x00(\d+)\x00", lambda m: protected[int(m.group(1))], text)


def chat_format_to_html(text: str | None) -> str:
    """
    Render chat-style formatting to HTML using only ALLOWED_HTML_TAGS.

    Blocks: `> ` lines become a blockquote, `*`/`-` lines an unordered list,
    `1.` lines an ordered list, other runs of lines a paragraph joined with
    <br>. Inline: *bold*, _italic_, ~strike~, `code` and ```code blocks```.
    """
    if not text or not text.strip():
        return ""

    code_blocks: list[str] = []

    def stash_code_block(match: re.Match) -> str:
        code_blocks.append(html.escape(match.group(1).strip("\n"), quote=False))
        return f"\x01{len(code_blocks) - 1}\x01"

    source = _TRIPLE_CODE_PATTERN.sub(stash_code_block, text.strip())

    blocks: list[str] = []
    current_kind: str | None = None
    current_lines: list[str] = []

    def flush():
        nonlocal current_kind, current_lines
        if not current_lines:
            current_kind = None
            return
        if current_kind == "quote":
            blocks.append(f"<blockquote>{'<br>'.join(current_lines)}</blockquote>")
        elif current_kind in ("ul", "ol"):
            items = "".join(f"<li>{line}</li>" for line in current_lines)
            blocks.append(f"<{current_kind}>{items}</{current_kind}>")
        else:
            blocks.append(f"<p>{'<br>'.join(current_lines)}</p>")
        current_kind = None
        current_lines = []

    for raw_line in source.split("\n"):
        line = raw_line.strip()
        if not line:
            flush()
            continue

        code_only = re.fullmatch(r"\x01(\d+)\x01", line)
        if code_only:
            flush()
            blocks.append(f"<pre><code>{code_blocks[int(code_only.group(1))]}</code></pre>")
            continue

        for kind, pattern in (
            ("quote", _QUOTE_LINE),
            ("ul", _BULLET_LINE),
            ("ol", _NUMBERED_LINE),
        ):
            match = pattern.match(line)
            if match:
                content = match.group(1)
                break
        else:
            kind, content = "p", line

        if kind != current_kind:
            flush()
            current_kind = kind
        current_lines.append(_render_inline(html.escape(content, quote=False)))

    flush()

    rendered = "".join(blocks)
    return re.sub(
        r"\x01(\d+)\x01",
        lambda m: f"<code>{code_blocks[int(m.group(1))]}</code>",
        rendered,
    )
