"""Plain-text normalization for speech synthesis.

Turns extracted article markup into plain text and splits it into the
paragraphs that are synthesized one at a time.
"""

import re

TAG_PATTERN = re.compile(r"<[^>]+>")
DECIMAL_ENTITY_PATTERN = re.compile(r"&#(\d+);")
HEX_ENTITY_PATTERN = re.compile(r"&#x([0-9a-fA-F]+);")
HORIZONTAL_WHITESPACE_PATTERN = re.compile(r"[ \t]+")
EXCESS_NEWLINES_PATTERN = re.compile(r"\n{3,}")

PARAGRAPH_BREAK = "\n\n"

NAMED_ENTITIES: list[tuple[str, str]] = [
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&apos;", "'"),
    ("&nbsp;", " "),
    ("&ndash;", "-"),
    ("&mdash;", "—"),
    ("&lsquo;", "‘"),
    ("&rsquo;", "’"),
    ("&ldquo;", "“"),
    ("&rdquo;", "”"),
    ("&hellip;", "..."),
    ("&trade;", "™"),
    ("&copy;", "©"),
    ("&reg;", "®"),
]

# Removed by plain substring match, so a phrase inside a longer word or
# sentence is removed too.
BOILERPLATE_PHRASES: list[str] = [
    "Advertisement",
    "[Read more]",
    "[Continue reading]",
    "Share this article",
    "Subscribe to our newsletter",
    "Click here to",
]

MAX_CODE_POINT = 0x10FFFF


def _code_point_to_char(code_point: int) -> str | None:
    if code_point > MAX_CODE_POINT or 0xD800 <= code_point <= 0xDFFF:
        return None
    return chr(code_point)


def _replace_decimal(match: re.Match) -> str:
    char = _code_point_to_char(int(match.group(1)))
    return match.group(0) if char is None else char


def _replace_hex(match: re.Match) -> str:
    char = _code_point_to_char(int(match.group(1), 16))
    return match.group(0) if char is None else char


def decode_entities(text: str) -> str:
    """Decode the named entity table, then decimal and hex numeric entities.

    Numeric entities that do not name a valid Unicode scalar value are left
    as written.

    Examples:
        >>> decode_entities("Fish &amp; Chips &#8212; &#x263A;")
        'Fish & Chips — ☺'
        >>> decode_entities("&#1114112;")
        '&#1114112;'
    """
    for entity, replacement in NAMED_ENTITIES:
        text = text.replace(entity, replacement)

    text = DECIMAL_ENTITY_PATTERN.sub(_replace_decimal, text)
    text = HEX_ENTITY_PATTERN.sub(_replace_hex, text)
    return text


def clean(raw_markup: str) -> str:
    """Clean extracted HTML content into plain text suitable for TTS.

    Steps, in order: strip tags, decode entities, remove boilerplate
    phrases, collapse runs of spaces/tabs, collapse three or more newlines
    to a paragraph break, trim.

    Args:
        raw_markup: HTML or partially marked-up article text

    Returns:
        Plain text with paragraphs separated by blank lines

    Examples:
        >>> clean("<p>Hello   world</p>\\n\\n\\n\\n<p>Advertisement Bye</p>")
        'Hello world\\n\\n Bye'
    """
    if not raw_markup:
        return ""

    text = TAG_PATTERN.sub("", raw_markup)
    text = decode_entities(text)

    for phrase in BOILERPLATE_PHRASES:
        text = text.replace(phrase, "")

    text = HORIZONTAL_WHITESPACE_PATTERN.sub(" ", text)
    text = EXCESS_NEWLINES_PATTERN.sub(PARAGRAPH_BREAK, text)
    return text.strip()


def split_into_paragraphs(text: str) -> list[str]:
    """Split cleaned text into paragraphs for paragraph-by-paragraph TTS.

    Segments are trimmed; empty and single-character segments are dropped.

    Examples:
        >>> split_into_paragraphs("Para one.\\n\\n  \\n\\nx\\n\\nPara two.")
        ['Para one.', 'Para two.']
    """
    paragraphs = []
    for segment in text.split(PARAGRAPH_BREAK):
        segment = segment.strip()
        if len(segment) > 1:
            paragraphs.append(segment)
    return paragraphs
