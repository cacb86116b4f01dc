"""Test markdown-subset rendering to safe markup."""

import pytest

from audioguide.models import Citation, ConversationMessage, MessageRole
from audioguide.renderer import (
    ListBlock,
    Paragraph,
    parse_blocks,
    render_citations,
    render_markup,
    render_message,
)

ANCHOR_ATTRS = 'target="_blank" rel="noopener noreferrer"'


def test_mixed_markdown_sample():
    text = "**bold** and *italic* and [link](https://a.test)\n- one\n- two"
    assert render_markup(text) == (
        "<strong>bold</strong> and <em>italic</em> and "
        f'<a href="https://a.test" {ANCHOR_ATTRS}>link</a>'
        "<ul><li>one</li><li>two</li></ul>"
    )


@pytest.mark.parametrize(
    "text",
    ["Hello there, audiophile", "Price: 1049 EUR for the Planar 3", "2 * 3 is six"],
)
def test_plain_text_passes_through(text):
    once = render_markup(text)
    assert once == text
    assert render_markup(once) == once


@pytest.mark.parametrize("text", ["   ", "\t", " \n "])
def test_whitespace_only_text_passes_through(text):
    assert render_markup(text) == text


def test_rendering_is_deterministic():
    text = "Try the __Planar 3__ or\n1. Debut\n2. Planar"
    assert render_markup(text) == render_markup(text)


class TestInlineRules:
    def test_underscore_bold_and_italic(self):
        assert render_markup("__big__ and _small_") == "<strong>big</strong> and <em>small</em>"

    def test_triple_markers_are_bold_italic(self):
        assert render_markup("***wow***") == "<strong><em>wow</em></strong>"

    def test_italic_inside_bold(self):
        assert render_markup("**very *warm* sound**") == "<strong>very <em>warm</em> sound</strong>"

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("*a **b** c*", "<em>a <strong>b</strong> c</em>"),
            ("_see __this__ now_", "<em>see <strong>this</strong> now</em>"),
            ("*see **this***", "<em>see <strong>this</strong></em>"),
            ("**very *warm***", "<strong>very <em>warm</em></strong>"),
        ],
    )
    def test_nested_bold_and_italic(self, text, expected):
        assert render_markup(text) == expected

    def test_literal_asterisk_inside_bold(self):
        assert render_markup("**2 * 3**") == "<strong>2 * 3</strong>"

    def test_snake_case_not_italicized(self):
        assert render_markup("set output_gain_db to 3") == "set output_gain_db to 3"

    def test_unmatched_markers_stay_literal(self):
        assert render_markup("**unclosed and *also") == "**unclosed and *also"

    def test_link_url_with_underscores_kept_intact(self):
        assert render_markup("[Guide](https://a.test/setup_guide_v2)") == (
            f'<a href="https://a.test/setup_guide_v2" {ANCHOR_ATTRS}>Guide</a>'
        )

    def test_bold_link_label(self):
        assert render_markup("[**Buy**](https://a.test)") == (
            f'<a href="https://a.test" {ANCHOR_ATTRS}><strong>Buy</strong></a>'
        )

    def test_unsafe_link_rendered_as_text(self):
        assert render_markup("[click](javascript:void)") == "click"


class TestBlocks:
    def test_newlines_become_breaks(self):
        assert render_markup("line one\nline two") == "line one<br />line two"

    def test_blank_lines_collapse(self):
        assert render_markup("para one\n\n\npara two") == "para one<br />para two"

    def test_no_break_around_lists(self):
        text = "Options:\n\n- Rega\n* Pro-Ject\n+ Technics\n\nPick one."
        assert render_markup(text) == (
            "Options:<ul><li>Rega</li><li>Pro-Ject</li><li>Technics</li></ul>Pick one."
        )

    def test_ordered_list(self):
        assert render_markup("Steps:\n1. Level the deck\n2. Set tracking force") == (
            "Steps:<ol><li>Level the deck</li><li>Set tracking force</li></ol>"
        )

    def test_bullet_then_numbered_are_separate_lists(self):
        blocks = parse_blocks("- a\n- b\n1. c")
        assert [type(block) for block in blocks] == [ListBlock, ListBlock]
        assert [block.ordered for block in blocks] == [False, True]

    def test_blank_line_splits_list(self):
        blocks = parse_blocks("- a\n\n- b")
        assert len(blocks) == 2

    def test_paragraph_groups_lines(self):
        blocks = parse_blocks("a\nb")
        assert len(blocks) == 1
        assert isinstance(blocks[0], Paragraph)
        assert len(blocks[0].lines) == 2

    def test_list_items_render_inline_markup(self):
        assert render_markup("- **Rega** Planar 3") == "<ul><li><strong>Rega</strong> Planar 3</li></ul>"


class TestEscaping:
    def test_html_in_text_is_escaped(self):
        assert render_markup("<script>alert('x')</script> & more") == (
            "&lt;script&gt;alert('x')&lt;/script&gt; &amp; more"
        )

    def test_quotes_in_href_are_escaped(self):
        rendered = render_markup('[x](https://a.test/"onmouseover)')
        assert 'href="https://a.test/&quot;onmouseover"' in rendered


class TestProductLinks:
    def test_product_link_with_store(self):
        rendered = render_markup(
            "Try PRODUCT_LINK[planar-3|Rega Planar 3]!", product_base_url="https://hifisti.myshopify.com"
        )
        assert rendered == (
            f'Try <a href="https://hifisti.myshopify.com/products/planar-3" {ANCHOR_ATTRS}>Rega Planar 3</a>!'
        )

    def test_product_link_without_store(self):
        assert render_markup("Try PRODUCT_LINK[planar-3|Rega Planar 3]!") == "Try Rega Planar 3!"


class TestMessageRendering:
    def test_streaming_placeholder(self):
        message = ConversationMessage(role=MessageRole.ASSISTANT, text="", is_streaming=True)
        assert render_message(message) == "..."

    def test_finalized_empty_message(self):
        message = ConversationMessage(role=MessageRole.ASSISTANT, text="")
        assert render_message(message) == ""

    def test_citations(self):
        rendered = render_citations(
            [
                Citation(url="https://x.test/a", title="X & Y"),
                Citation(url="javascript:alert(1)", title="bad"),
            ]
        )
        assert rendered == (
            f'<ul><li><a href="https://x.test/a" {ANCHOR_ATTRS} title="X &amp; Y">X &amp; Y</a></li></ul>'
        )

    def test_no_citations(self):
        assert render_citations(None) == ""
        assert render_citations([]) == ""
