"""
Tests for markup parsing and formatting.
"""
import pytest

from tgsim.markup import (
    escape_html,
    escape_markdown_v2,
    format_text,
    parse_formatted_text,
    utf16_len,
    utf16_slice,
)


class TestUtf16:
    """Test UTF-16 length and slicing."""

    def test_ascii_length(self) -> None:
        """ASCII characters are one code unit each."""
        assert utf16_len("hello") == 5

    def test_astral_emoji_counts_twice(self) -> None:
        """Characters outside the BMP take a surrogate pair."""
        assert utf16_len("😀") == 2
        assert utf16_len("a😀b") == 4

    def test_slice_by_code_units(self) -> None:
        """Slicing uses UTF-16 offsets, not Python indices."""
        assert utf16_slice("😀 wow", 3, 3) == "wow"


class TestMarkdownV2:
    """Test MarkdownV2 parsing."""

    def test_bold_and_italic(self) -> None:
        """Bold and italic markers become entities."""
        parsed = parse_formatted_text("*Hello* _world_", "MarkdownV2")

        assert parsed.text == "Hello world"
        assert parsed.entities == [
            {"type": "bold", "offset": 0, "length": 5},
            {"type": "italic", "offset": 6, "length": 5},
        ]

    def test_underline_strikethrough_spoiler(self) -> None:
        """Double underscore, tilde and double pipe are distinct entities."""
        parsed = parse_formatted_text("__u__ ~s~ ||p||", "MarkdownV2")

        assert parsed.text == "u s p"
        assert [e["type"] for e in parsed.entities] == ["underline", "strikethrough", "spoiler"]

    def test_escaped_characters_are_literal(self) -> None:
        """Backslash-escaped specials lose their meaning."""
        parsed = parse_formatted_text("1\\.5 \\*not bold\\*", "MarkdownV2")

        assert parsed.text == "1.5 *not bold*"
        assert parsed.entities == []

    def test_unmatched_delimiter_kept(self) -> None:
        """An unclosed marker stays in the text."""
        parsed = parse_formatted_text("*bold", "MarkdownV2")

        assert parsed.text == "*bold"
        assert parsed.entities == []

    def test_offsets_after_emoji(self) -> None:
        """Offsets are counted in UTF-16 code units."""
        parsed = parse_formatted_text("😀 *bold*", "MarkdownV2")

        assert parsed.text == "😀 bold"
        assert parsed.entities == [{"type": "bold", "offset": 3, "length": 4}]

    def test_text_link(self) -> None:
        """Inline links carry their url."""
        parsed = parse_formatted_text("[site](https://example.com)", "MarkdownV2")

        assert parsed.text == "site"
        assert parsed.entities == [
            {"type": "text_link", "offset": 0, "length": 4, "url": "https://example.com"},
        ]

    def test_user_link_becomes_text_mention(self) -> None:
        """tg://user links mention a user by id."""
        parsed = parse_formatted_text("[Bob](tg://user?id=42)", "MarkdownV2")

        assert parsed.entities[0]["type"] == "text_mention"
        assert parsed.entities[0]["user"]["id"] == 42

    def test_pre_with_language(self) -> None:
        """The first line of a fenced block names its language."""
        parsed = parse_formatted_text("```python\nprint(1)```", "MarkdownV2")

        assert parsed.text == "print(1)"
        assert parsed.entities == [
            {"type": "pre", "offset": 0, "length": 8, "language": "python"},
        ]

    def test_blockquote_spans_lines(self) -> None:
        """Consecutive quoted lines form one blockquote."""
        parsed = parse_formatted_text(">quoted\n>line", "MarkdownV2")

        assert parsed.text == "quoted\nline"
        assert parsed.entities == [{"type": "blockquote", "offset": 0, "length": 11}]


class TestHtml:
    """Test HTML parsing."""

    def test_tags_and_character_references(self) -> None:
        """Tags become entities and references are decoded."""
        parsed = parse_formatted_text("<b>bold</b> &amp; <i>it</i>", "HTML")

        assert parsed.text == "bold & it"
        assert parsed.entities == [
            {"type": "bold", "offset": 0, "length": 4},
            {"type": "italic", "offset": 7, "length": 2},
        ]

    def test_link(self) -> None:
        """<a href> becomes text_link."""
        parsed = parse_formatted_text('see <a href="https://example.com">this</a>', "HTML")

        assert parsed.text == "see this"
        assert parsed.entities == [
            {"type": "text_link", "offset": 4, "length": 4, "url": "https://example.com"},
        ]

    def test_pre_code_language(self) -> None:
        """<pre><code class="language-x"> sets the pre language."""
        parsed = parse_formatted_text('<pre><code class="language-py">x = 1</code></pre>', "HTML")

        assert parsed.text == "x = 1"
        assert parsed.entities[0]["language"] == "py"

    def test_unknown_tag_dropped(self) -> None:
        """Unsupported tags are removed, their content kept."""
        parsed = parse_formatted_text("<foo>x</foo>", "HTML")

        assert parsed.text == "x"
        assert parsed.entities == []

    def test_spoiler_span(self) -> None:
        parsed = parse_formatted_text('<span class="tg-spoiler">secret</span>', "HTML")

        assert parsed.entities == [{"type": "spoiler", "offset": 0, "length": 6}]


class TestLegacyMarkdown:
    """Test legacy Markdown parsing."""

    def test_basic_entities(self) -> None:
        """Bold, italic and code in the old dialect."""
        parsed = parse_formatted_text("*bold* _it_ `code`", "Markdown")

        assert parsed.text == "bold it code"
        assert [e["type"] for e in parsed.entities] == ["bold", "italic", "code"]

    def test_escaped_underscore(self) -> None:
        parsed = parse_formatted_text("snake\\_case", "Markdown")

        assert parsed.text == "snake_case"
        assert parsed.entities == []


class TestParseMode:
    """Test parse_mode handling."""

    def test_none_returns_text_unchanged(self) -> None:
        """Without parse_mode the text is not touched."""
        parsed = parse_formatted_text("*not parsed*", None)

        assert parsed.text == "*not parsed*"
        assert parsed.entities == []

    def test_case_insensitive(self) -> None:
        parsed = parse_formatted_text("<b>x</b>", "html")

        assert parsed.text == "x"

    def test_unknown_mode_raises(self) -> None:
        """An unknown parse_mode is rejected."""
        with pytest.raises(ValueError):
            parse_formatted_text("text", "BBCode")


class TestFormatText:
    """Test serializing entities back into markup."""

    def test_html_output(self) -> None:
        """Entities are wrapped in tags."""
        entities = [
            {"type": "bold", "offset": 0, "length": 5},
            {"type": "italic", "offset": 6, "length": 5},
        ]

        assert format_text("Hello world", entities, "HTML") == "<b>Hello</b> <i>world</i>"

    @pytest.mark.parametrize(
        ("text", "entities", "parse_mode"),
        [
            (
                "Price: 1.5 (approx) *not bold*",
                [{"type": "bold", "offset": 0, "length": 5}],
                "MarkdownV2",
            ),
            (
                "a < b & c",
                [{"type": "bold", "offset": 0, "length": 1}],
                "HTML",
            ),
            (
                "snake_case",
                [],
                "Markdown",
            ),
            (
                "😀 wow",
                [{"type": "italic", "offset": 3, "length": 3}],
                "MarkdownV2",
            ),
        ],
    )
    def test_parses_back_to_same_entities(self, text: str, entities: list, parse_mode: str) -> None:
        """Formatted output parses back to the original text and entities."""
        markup = format_text(text, entities, parse_mode)
        parsed = parse_formatted_text(markup, parse_mode)

        assert parsed.text == text
        assert parsed.entities == entities


class TestEscaping:
    """Test escape helpers."""

    def test_escape_markdown_v2(self) -> None:
        assert escape_markdown_v2("a.b!") == "a\\.b\\!"

    def test_escape_html(self) -> None:
        assert escape_html("<b> & </b>") == "&lt;b&gt; &amp; &lt;/b&gt;"
