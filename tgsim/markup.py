"""
Markup-to-entity parser.

Turns Markdown, MarkdownV2 or HTML formatted text into plain text plus a
flat list of message entities, and back. Offsets and lengths are counted in
UTF-16 code units, the way the Bot API counts them.

Usage:
    parsed = parse_formatted_text("*Hello* _world_", "MarkdownV2")
    parsed.text      # "Hello world"
    parsed.entities  # [{"type": "bold", "offset": 0, "length": 5}, ...]

    format_text(parsed.text, parsed.entities, "HTML")  # "<b>Hello</b> <i>world</i>"
"""
import html
import logging
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("tgsim.markup")

MARKDOWN = "Markdown"
MARKDOWN_V2 = "MarkdownV2"
HTML = "HTML"

PARSE_MODES = (MARKDOWN, MARKDOWN_V2, HTML)

# Characters that must be backslash-escaped in MarkdownV2 text.
MARKDOWN_V2_ESCAPE_CHARS = "_*[]()~`>#+-=|{}.!\\"
# Legacy Markdown only knows these.
MARKDOWN_ESCAPE_CHARS = "_*`["
# Inside code and pre only these are escaped.
CODE_ESCAPE_CHARS = "`\\"
# Inside the (...) part of a link.
URL_ESCAPE_CHARS = ")\\"

USER_LINK_PREFIX = "tg://user?id="
EMOJI_LINK_PREFIX = "tg://emoji?id="

_HTML_TAGS: dict[str, str] = {
    "b": "bold",
    "strong": "bold",
    "i": "italic",
    "em": "italic",
    "u": "underline",
    "ins": "underline",
    "s": "strikethrough",
    "strike": "strikethrough",
    "del": "strikethrough",
    "code": "code",
    "tg-spoiler": "spoiler",
    "blockquote": "blockquote",
}

_HREF_RE = re.compile(r"""href\s*=\s*['"]([^'"]*)['"]""", re.IGNORECASE)
_EMOJI_ID_RE = re.compile(r"""emoji-id\s*=\s*['"]([^'"]+)['"]""", re.IGNORECASE)
_CODE_LANGUAGE_RE = re.compile(
    r"""<code\s+class\s*=\s*['"]language-([^'"]+)['"]\s*>""", re.IGNORECASE
)
_CODE_TAG_RE = re.compile(r"</?code[^>]*>", re.IGNORECASE)
_ANY_TAG_RE = re.compile(r"<[^>]*>")
_SPOILER_CLASS_RE = re.compile(r"""class\s*=\s*['"]tg-spoiler['"]""", re.IGNORECASE)


@dataclass
class ParsedText:
    """Plain text with the entities that describe its formatting."""

    text: str
    entities: list[dict[str, Any]] = field(default_factory=list)


def utf16_len(text: str) -> int:
    """Length of text in UTF-16 code units."""
    return len(text.encode("utf-16-le")) // 2


def utf16_slice(text: str, offset: int, length: int) -> str:
    """Slice text by UTF-16 offset and length."""
    raw = text.encode("utf-16-le")
    return raw[offset * 2:(offset + length) * 2].decode("utf-16-le", errors="replace")


def normalize_parse_mode(parse_mode: str | None) -> str | None:
    """Map a case-insensitive parse_mode onto its canonical name."""
    if not parse_mode:
        return None
    for mode in PARSE_MODES:
        if parse_mode.lower() == mode.lower():
            return mode
    raise ValueError(f"unsupported parse_mode: {parse_mode}")


class _TextBuilder:
    """Accumulates stripped output and entities at UTF-16 offsets."""

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._offset = 0
        self.entities: list[dict[str, Any]] = []

    def append(self, text: str) -> None:
        self._parts.append(text)
        self._offset += utf16_len(text)

    def add_entity(self, entity_type: str, content: str, **extra: Any) -> None:
        length = utf16_len(content)
        if length:
            entity: dict[str, Any] = {
                "type": entity_type,
                "offset": self._offset,
                "length": length,
            }
            entity.update({k: v for k, v in extra.items() if v is not None})
            self.entities.append(entity)
        self.append(content)

    def build(self) -> ParsedText:
        return ParsedText(text="".join(self._parts), entities=self.entities)


def _link_entity(builder: _TextBuilder, link_text: str, url: str) -> None:
    """Emit text_mention for tg://user links, text_link otherwise."""
    if url.startswith(USER_LINK_PREFIX):
        try:
            user_id = int(url[len(USER_LINK_PREFIX):])
        except ValueError:
            user_id = None
        if user_id is not None:
            builder.add_entity(
                "text_mention",
                link_text,
                user={"id": user_id, "is_bot": False, "first_name": link_text},
            )
            return
    builder.add_entity("text_link", link_text, url=url)


def _split_pre(content: str) -> tuple[str, str | None]:
    """Split an optional language tag off the first line of a fenced block."""
    newline = content.find("\n")
    if newline == -1:
        return content, None
    first_line = content[:newline].strip()
    if not first_line:
        return content[newline + 1:], None
    if " " in first_line:
        return content, None
    return content[newline + 1:], first_line


# =============================================================================
# Legacy Markdown
# =============================================================================


def _parse_markdown(source: str) -> ParsedText:
    builder = _TextBuilder()
    i = 0
    n = len(source)

    while i < n:
        char = source[i]

        if char == "\\" and i + 1 < n and source[i + 1] in MARKDOWN_ESCAPE_CHARS:
            builder.append(source[i + 1])
            i += 2
            continue

        if source.startswith("```", i):
            end = source.find("```", i + 3)
            if end != -1:
                content, language = _split_pre(source[i + 3:end])
                builder.add_entity("pre", content, language=language)
                i = end + 3
                continue

        if char == "`":
            end = source.find("`", i + 1)
            if end != -1:
                builder.add_entity("code", source[i + 1:end])
                i = end + 1
                continue

        if char == "[":
            close_bracket = source.find("]", i + 1)
            if close_bracket != -1 and source.startswith("(", close_bracket + 1):
                close_paren = source.find(")", close_bracket + 2)
                if close_paren != -1:
                    _link_entity(
                        builder,
                        source[i + 1:close_bracket],
                        source[close_bracket + 2:close_paren],
                    )
                    i = close_paren + 1
                    continue

        if char in "*_":
            end = source.find(char, i + 1)
            if end != -1:
                builder.add_entity("bold" if char == "*" else "italic", source[i + 1:end])
                i = end + 1
                continue

        builder.append(char)
        i += 1

    return builder.build()


# =============================================================================
# MarkdownV2
# =============================================================================


def _find_unescaped(source: str, token: str, start: int) -> int:
    """Find token at or after start, skipping backslash-escaped characters."""
    i = start
    n = len(source)
    while i < n:
        if source[i] == "\\":
            i += 2
            continue
        if source.startswith(token, i):
            return i
        i += 1
    return -1


def _unescape(text: str, chars: str = MARKDOWN_V2_ESCAPE_CHARS) -> str:
    out: list[str] = []
    i = 0
    while i < len(text):
        if text[i] == "\\" and i + 1 < len(text) and text[i + 1] in chars:
            out.append(text[i + 1])
            i += 2
            continue
        out.append(text[i])
        i += 1
    return "".join(out)


def _parse_markdown_v2(source: str) -> ParsedText:
    builder = _TextBuilder()
    i = 0
    n = len(source)

    while i < n:
        char = source[i]

        if char == "\\" and i + 1 < n and source[i + 1] in MARKDOWN_V2_ESCAPE_CHARS:
            builder.append(source[i + 1])
            i += 2
            continue

        # Consecutive ">" lines form one blockquote
        if char == ">" and (i == 0 or source[i - 1] == "\n"):
            lines: list[str] = []
            pos = i
            while pos < n and source[pos] == ">":
                line_end = source.find("\n", pos)
                if line_end == -1:
                    line_end = n
                lines.append(_unescape(source[pos + 1:line_end]))
                if line_end < n and line_end + 1 < n and source[line_end + 1] == ">":
                    pos = line_end + 1
                else:
                    pos = line_end
                    break
            builder.add_entity("blockquote", "\n".join(lines))
            i = pos
            continue

        if source.startswith("```", i):
            end = _find_unescaped(source, "```", i + 3)
            if end != -1:
                content, language = _split_pre(source[i + 3:end])
                builder.add_entity("pre", _unescape(content, CODE_ESCAPE_CHARS), language=language)
                i = end + 3
                continue

        if char == "`":
            end = _find_unescaped(source, "`", i + 1)
            if end != -1:
                builder.add_entity("code", _unescape(source[i + 1:end], CODE_ESCAPE_CHARS))
                i = end + 1
                continue

        if source.startswith("||", i):
            end = _find_unescaped(source, "||", i + 2)
            if end != -1:
                builder.add_entity("spoiler", _unescape(source[i + 2:end]))
                i = end + 2
                continue

        if source.startswith("__", i):
            end = _find_unescaped(source, "__", i + 2)
            if end != -1:
                builder.add_entity("underline", _unescape(source[i + 2:end]))
                i = end + 2
                continue

        if char == "~":
            end = _find_unescaped(source, "~", i + 1)
            if end != -1:
                builder.add_entity("strikethrough", _unescape(source[i + 1:end]))
                i = end + 1
                continue

        if source.startswith("![", i):
            parsed = _match_link(source, i + 1)
            if parsed is not None and parsed[1].startswith(EMOJI_LINK_PREFIX):
                alt, url, end = parsed
                builder.add_entity(
                    "custom_emoji", alt, custom_emoji_id=url[len(EMOJI_LINK_PREFIX):]
                )
                i = end
                continue

        if char == "[":
            parsed = _match_link(source, i)
            if parsed is not None:
                link_text, url, end = parsed
                _link_entity(builder, link_text, url)
                i = end
                continue

        if char in "*_":
            end = _find_unescaped(source, char, i + 1)
            if end != -1:
                builder.add_entity(
                    "bold" if char == "*" else "italic", _unescape(source[i + 1:end])
                )
                i = end + 1
                continue

        builder.append(char)
        i += 1

    return builder.build()


def _match_link(source: str, start: int) -> tuple[str, str, int] | None:
    """Match [text](url) at start. Returns (text, url, end) unescaped."""
    close_bracket = _find_unescaped(source, "]", start + 1)
    if close_bracket == -1 or not source.startswith("(", close_bracket + 1):
        return None
    close_paren = _find_unescaped(source, ")", close_bracket + 2)
    if close_paren == -1:
        return None
    link_text = _unescape(source[start + 1:close_bracket])
    url = _unescape(source[close_bracket + 2:close_paren], URL_ESCAPE_CHARS)
    return link_text, url, close_paren + 1


# =============================================================================
# HTML
# =============================================================================


def _decode_html(text: str) -> str:
    """Strip nested tags and decode character references."""
    return html.unescape(_ANY_TAG_RE.sub("", text))


def _find_close_tag(source: str, tag: str, start: int) -> re.Match[str] | None:
    pattern = re.compile(rf"</{re.escape(tag)}\s*>", re.IGNORECASE)
    return pattern.search(source, start)


def _parse_html(source: str) -> ParsedText:
    builder = _TextBuilder()
    i = 0
    n = len(source)

    while i < n:
        char = source[i]

        if char == "<":
            tag_end = source.find(">", i)
            if tag_end == -1:
                builder.append(char)
                i += 1
                continue

            tag_content = source[i + 1:tag_end].strip()
            if tag_content.startswith("/"):
                # Stray closing tag
                i = tag_end + 1
                continue

            tag_name = tag_content.split(None, 1)[0].lower() if tag_content else ""
            body_start = tag_end + 1

            if tag_name == "a":
                href = _HREF_RE.search(tag_content)
                close = _find_close_tag(source, "a", body_start)
                if href is not None and close is not None:
                    _link_entity(
                        builder,
                        _decode_html(source[body_start:close.start()]),
                        html.unescape(href.group(1)),
                    )
                    i = close.end()
                    continue

            elif tag_name == "span" and _SPOILER_CLASS_RE.search(tag_content):
                close = _find_close_tag(source, "span", body_start)
                if close is not None:
                    builder.add_entity("spoiler", _decode_html(source[body_start:close.start()]))
                    i = close.end()
                    continue

            elif tag_name == "pre":
                close = _find_close_tag(source, "pre", body_start)
                if close is not None:
                    inner = source[body_start:close.start()]
                    language_match = _CODE_LANGUAGE_RE.search(inner)
                    language = language_match.group(1) if language_match else None
                    content = html.unescape(_CODE_TAG_RE.sub("", inner))
                    builder.add_entity("pre", content, language=language)
                    i = close.end()
                    continue

            elif tag_name == "tg-emoji":
                emoji_id = _EMOJI_ID_RE.search(tag_content)
                close = _find_close_tag(source, "tg-emoji", body_start)
                if emoji_id is not None and close is not None:
                    builder.add_entity(
                        "custom_emoji",
                        _decode_html(source[body_start:close.start()]),
                        custom_emoji_id=emoji_id.group(1),
                    )
                    i = close.end()
                    continue

            elif tag_name in _HTML_TAGS:
                close = _find_close_tag(source, tag_name, body_start)
                if close is not None:
                    builder.add_entity(
                        _HTML_TAGS[tag_name], _decode_html(source[body_start:close.start()])
                    )
                    i = close.end()
                    continue

            # Unknown or unclosed tag is dropped
            i = tag_end + 1
            continue

        if char == "&":
            semicolon = source.find(";", i)
            if semicolon != -1 and semicolon - i < 10:
                reference = source[i:semicolon + 1]
                decoded = html.unescape(reference)
                if decoded != reference:
                    builder.append(decoded)
                    i = semicolon + 1
                    continue

        builder.append(char)
        i += 1

    return builder.build()


_PARSERS = {
    MARKDOWN: _parse_markdown,
    MARKDOWN_V2: _parse_markdown_v2,
    HTML: _parse_html,
}


def parse_formatted_text(text: str, parse_mode: str | None) -> ParsedText:
    """
    Parse formatted text into plain text and entities.

    A missing parse_mode returns the text untouched. Unmatched delimiters
    are kept literally. Raises ValueError for an unknown parse_mode.
    """
    mode = normalize_parse_mode(parse_mode)
    if mode is None:
        return ParsedText(text=text, entities=[])
    parsed = _PARSERS[mode](text)
    logger.debug("Parsed %s text into %d entities", mode, len(parsed.entities))
    return parsed


# =============================================================================
# Inverse formatter
# =============================================================================


def escape_markdown_v2(text: str, chars: str = MARKDOWN_V2_ESCAPE_CHARS) -> str:
    """Backslash-escape every MarkdownV2 special character."""
    return "".join(f"\\{c}" if c in chars else c for c in text)


def escape_markdown(text: str) -> str:
    return "".join(f"\\{c}" if c in MARKDOWN_ESCAPE_CHARS else c for c in text)


def escape_html(text: str) -> str:
    return html.escape(text, quote=False)


def _pre_block(content: str, language: str | None) -> str:
    return f"```{language or ''}\n{content}```"


def _format_markdown(entity: dict[str, Any], content: str) -> str:
    kind = entity["type"]
    if kind == "bold":
        return f"*{content}*"
    if kind == "italic":
        return f"_{content}_"
    if kind == "code":
        return f"`{content}`"
    if kind == "pre":
        return _pre_block(content, entity.get("language"))
    if kind == "text_link":
        return f"[{content}]({entity['url']})"
    if kind == "text_mention":
        return f"[{content}]({USER_LINK_PREFIX}{entity['user']['id']})"
    return escape_markdown(content)


def _format_markdown_v2(entity: dict[str, Any], content: str) -> str:
    kind = entity["type"]
    if kind == "code":
        return f"`{escape_markdown_v2(content, CODE_ESCAPE_CHARS)}`"
    if kind == "pre":
        return _pre_block(escape_markdown_v2(content, CODE_ESCAPE_CHARS), entity.get("language"))
    if kind == "blockquote":
        return "\n".join(f">{escape_markdown_v2(line)}" for line in content.split("\n"))

    escaped = escape_markdown_v2(content)
    wrappers = {
        "bold": "*",
        "italic": "_",
        "underline": "__",
        "strikethrough": "~",
        "spoiler": "||",
    }
    if kind in wrappers:
        mark = wrappers[kind]
        return f"{mark}{escaped}{mark}"
    if kind == "text_link":
        return f"[{escaped}]({escape_markdown_v2(entity['url'], URL_ESCAPE_CHARS)})"
    if kind == "text_mention":
        return f"[{escaped}]({USER_LINK_PREFIX}{entity['user']['id']})"
    if kind == "custom_emoji":
        return f"![{escaped}]({EMOJI_LINK_PREFIX}{entity['custom_emoji_id']})"
    return escaped


def _format_html(entity: dict[str, Any], content: str) -> str:
    kind = entity["type"]
    escaped = escape_html(content)
    simple = {
        "bold": "b",
        "italic": "i",
        "underline": "u",
        "strikethrough": "s",
        "spoiler": "tg-spoiler",
        "code": "code",
        "blockquote": "blockquote",
    }
    if kind in simple:
        tag = simple[kind]
        return f"<{tag}>{escaped}</{tag}>"
    if kind == "pre":
        language = entity.get("language")
        if language:
            return f'<pre><code class="language-{language}">{escaped}</code></pre>'
        return f"<pre>{escaped}</pre>"
    if kind == "text_link":
        return f'<a href="{html.escape(entity["url"])}">{escaped}</a>'
    if kind == "text_mention":
        return f'<a href="{USER_LINK_PREFIX}{entity["user"]["id"]}">{escaped}</a>'
    if kind == "custom_emoji":
        return f'<tg-emoji emoji-id="{entity["custom_emoji_id"]}">{escaped}</tg-emoji>'
    return escaped


_FORMATTERS = {
    MARKDOWN: (_format_markdown, escape_markdown),
    MARKDOWN_V2: (_format_markdown_v2, escape_markdown_v2),
    HTML: (_format_html, escape_html),
}


def format_text(text: str, entities: list[dict[str, Any]], parse_mode: str) -> str:
    """
    Serialize plain text and entities back into markup.

    Plain segments are escaped for the target dialect, so the result parses
    back to the same text and entities. Overlapping entities are not
    representable in flat markup; the later one is dropped.
    """
    mode = normalize_parse_mode(parse_mode)
    if mode is None:
        return text
    format_entity, escape_plain = _FORMATTERS[mode]

    pieces: list[str] = []
    cursor = 0
    total = utf16_len(text)
    for entity in sorted(entities, key=lambda e: (e["offset"], -e["length"])):
        offset = entity["offset"]
        if offset < cursor:
            logger.debug("Skipping overlapping %s entity at %d", entity["type"], offset)
            continue
        pieces.append(escape_plain(utf16_slice(text, cursor, offset - cursor)))
        pieces.append(format_entity(entity, utf16_slice(text, offset, entity["length"])))
        cursor = offset + entity["length"]
    pieces.append(escape_plain(utf16_slice(text, cursor, total - cursor)))
    return "".join(pieces)
