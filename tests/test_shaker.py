"""Tests for the tree shaking engine."""

import pytest

from cssshaker import (
    CssTreeShaker,
    InvalidInputError,
    MalformedStyleError,
    Shaker,
    ShakerConfig,
    normalize_selector,
    shake,
)
from cssshaker.css import parse_stylesheet
from cssshaker.html import parse_html
from cssshaker.selector import matches
from cssshaker.shaker import Pruner, SelectorCache, ShakeStats


def page(*styles, body='<div class="used"></div>'):
    head = "".join(f"<style>{s}</style>" for s in styles)
    return f"<!doctype html><html><head>{head}</head><body>{body}</body></html>"


def shaken_styles(html, **kwargs):
    out = shake(html, force=True, **kwargs)
    return [el.text for el in parse_html(out).find_all("style")]


def prune(css, body):
    doc = parse_html(f"<html><body>{body}</body></html>")
    sheet = parse_stylesheet(css)
    Pruner(SelectorCache(doc)).prune(sheet)
    return sheet.render()


# ---------------------------------------------------------------------------
# Selector normalization
# ---------------------------------------------------------------------------


class TestNormalize:
    @pytest.mark.parametrize("selector,expected", [
        ("a:hover", "a"),
        ("a::before", "a"),
        (".card.card:hover", ".card"),
        (".a.a.a", ".a"),
        ("div.btn.btn > span", "div.btn > span"),
        (".card.cardx", ".card.cardx"),
        (".x .x", ".x .x"),
        (":root", ""),
        ("ul li", "ul li"),
        (".a.a>b", ".a>b"),
        (".a.a#x", ".a#x"),
        (".a.a[href]", ".a[href]"),
        (".a.a-b", ".a.a-b"),
    ])
    def test_normalize(self, selector, expected):
        assert normalize_selector(selector) == expected


# ---------------------------------------------------------------------------
# Pruning
# ---------------------------------------------------------------------------


class TestPrune:
    def test_dead_block_removed(self):
        assert prune(".used{color:red}.unused{color:blue}", '<div class="used"></div>') == ".used{color:red}"

    def test_dead_selectors_removed_from_live_block(self):
        assert prune(".live, .dead, div{a:b}", '<div class="live"></div>') == ".live,div{a:b}"

    def test_block_without_declarations_removed(self):
        assert prune(".live{}.live{a:b}", '<div class="live"></div>') == ".live{a:b}"

    def test_media_block_keeps_live_rules(self):
        css = "@media print{.dead{a:b}.live{c:d}}"
        assert prune(css, '<p class="live"></p>') == "@media print{.live{c:d}}"

    def test_empty_media_block_removed(self):
        css = "@media (max-width:600px){.dead{a:b}}.live{a:b}"
        assert prune(css, '<p class="live"></p>') == ".live{a:b}"

    def test_empty_block_lists_collapse_upwards(self):
        css = "@supports (display:grid){@media screen{.dead{a:b}}}"
        assert prune(css, "<p></p>") == ""

    def test_media_without_rules_removed(self):
        assert prune("@media print{}p{a:b}", "<p></p>") == "p{a:b}"

    def test_empty_named_layer_is_kept(self):
        css = "@layer base{.dead{x:y}}@layer{.dead{x:y}}p{x:y}"
        assert prune(css, "<p></p>") == "@layer base{}p{x:y}"

    def test_pseudo_classes_checked_on_the_element(self):
        css = "a:hover{x:y}a::after{x:y}b:hover{x:y}"
        assert prune(css, "<a></a>") == "a:hover{x:y}a::after{x:y}"

    def test_unsupported_selectors_are_kept(self):
        css = 'a[href^="http:"]{x:y}:root{--c:red}svg|rect{x:y}'
        assert prune(css, "<p></p>") == css

    def test_opaque_at_rules_are_kept(self):
        css = "@import url(a.css);@font-face{font-family:x}@keyframes spin{from{opacity:0}to{opacity:1}}"
        assert prune(css, "<p></p>") == css

    def test_stats(self):
        doc = parse_html('<p class="live"></p>')
        sheet = parse_stylesheet(".live,.dead{a:b}.gone{a:b}.empty{}")
        stats = ShakeStats()
        Pruner(SelectorCache(doc, stats)).prune(sheet)
        assert stats.selectors_removed == 2
        assert stats.blocks_removed == 2
        assert stats.queries == 3


# ---------------------------------------------------------------------------
# Selector cache
# ---------------------------------------------------------------------------


class TestSelectorCache:
    def test_one_query_per_normalized_selector(self, monkeypatch):
        calls = []

        def fake_matches(root, selector):
            calls.append(selector)
            return selector == ".live"

        monkeypatch.setattr("cssshaker.shaker.matches", fake_matches)
        doc = parse_html("<p></p>")
        cache = SelectorCache(doc)
        sheet = parse_stylesheet(".dead{a:b}.dead:hover{a:b}.live,.live:focus{a:b}.dead.dead{a:b}")
        Pruner(cache).prune(sheet)
        assert calls == [".dead", ".live"]
        assert sheet.render() == ".live,.live:focus{a:b}"

    def test_verdicts(self):
        cache = SelectorCache(parse_html('<p class="x"></p>'))
        assert cache.is_alive(".x:hover") is True
        assert ".x" in cache
        assert cache.is_alive(".y") is False
        assert len(cache) == 2

    def test_unsupported_selector_cached_as_alive(self):
        cache = SelectorCache(parse_html("<p></p>"))
        assert cache.is_alive(":root") is True
        assert cache.stats.queries == 1

    def test_cache_spans_all_styles_of_a_run(self):
        html = page(".dead{a:b}.used{a:b}", ".dead:hover{a:b}.used:hover{a:b}")
        shaker = CssTreeShaker(html)
        shaker.shake_it(force=True)
        assert shaker.stats.queries == 2
        assert shaker.stats.selectors_removed == 2


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class TestExtraction:
    def test_boilerplate_and_empty_styles_skipped(self):
        html = (
            "<!doctype html><html><head>"
            "<style amp-boilerplate>body{visibility:hidden}</style>"
            "<style></style>"
            "<style amp-custom>.a{b:c}</style>"
            "</head><body></body></html>"
        )
        styles = CssTreeShaker(html).extract_styles()
        assert [s.text for s in styles] == [".a{b:c}"]

    def test_document_order(self):
        html = page(".one{a:b}", ".two{a:b}", body='<style>.three{a:b}</style>')
        assert [s.text for s in CssTreeShaker(html).styles] == [".one{a:b}", ".two{a:b}", ".three{a:b}"]

    def test_extraction_is_cached(self):
        shaker = CssTreeShaker(page(".a{b:c}"))
        assert shaker.extract_styles() is shaker.extract_styles()

    def test_custom_boilerplate_attribute(self):
        html = page(body='<style data-keep>.x{a:b}</style>')
        shaker = CssTreeShaker(html, boilerplate_attribute="data-keep")
        assert shaker.styles == []


# ---------------------------------------------------------------------------
# Gating
# ---------------------------------------------------------------------------


class TestGating:
    def test_under_limit_returns_input_unchanged(self):
        rule = ".dead{color:blue}"
        style = rule + "/*" + "x" * (20000 - len(rule) - 4) + "*/"
        html = page(style, style)
        shaker = CssTreeShaker(html, 50000)
        assert shaker.styles_size == 40000
        assert shaker.should_shake() is False
        assert shaker.shake_it() == html

    def test_limit_is_inclusive(self):
        html = page(".dead{a:b}")
        size = CssTreeShaker(html).styles_size
        assert CssTreeShaker(html, size).should_shake() is True
        assert CssTreeShaker(html, size + 1).should_shake() is False

    def test_over_limit_shakes(self):
        html = page(".dead{a:b}.used{a:b}")
        assert CssTreeShaker(html, 10).shake_it() == page(".used{a:b}")

    def test_size_counts_bytes(self):
        css = '.a{content:"é"}'
        shaker = CssTreeShaker(page(css))
        assert shaker.styles_size == len(css.encode("utf-8"))
        assert shaker.styles_size == len(css) + 1

    def test_no_styles_passes_through(self):
        html = "<!doctype html><html><body><p>x</p></body></html>"
        assert CssTreeShaker(html).shake_it(force=True) == html

    def test_pass_through_does_not_add_doctype(self):
        html = "<html><head><style>.a{b:c}</style></head><body></body></html>"
        assert shake(html) == html
        assert shake("<p>x</p>", force=True) == "<p>x</p>"

    def test_from_config(self):
        html = page(".dead{a:b}.used{a:b}")
        shaker = CssTreeShaker.from_config(html, ShakerConfig(styles_limit=1))
        assert shaker.styles_limit == 1
        assert shaker.should_shake() is True


# ---------------------------------------------------------------------------
# Shaking
# ---------------------------------------------------------------------------


class TestShakeIt:
    def test_unused_rule_removed(self):
        html = page(".used{color:red}.unused{color:blue}")
        out = CssTreeShaker(html).shake_it(force=True)
        assert out == html.replace(".used{color:red}.unused{color:blue}", ".used{color:red}")

    def test_original_selector_text_is_kept(self):
        html = page(".card.card:hover{color:red}", body='<div class="card"></div>')
        assert shaken_styles(html) == [".card.card:hover{color:red}"]

    def test_boilerplate_never_changes(self):
        boilerplate = "body { visibility : hidden }  .nothing{a:b}"
        html = (
            "<!doctype html><html><head>"
            f"<style amp-boilerplate>{boilerplate}</style>"
            "<style amp-custom>.dead{color:red}.live{color:blue}</style>"
            '</head><body><div class="live"></div></body></html>'
        )
        out = CssTreeShaker(html, 0).shake_it(force=True)
        assert f"<style amp-boilerplate>{boilerplate}</style>" in out
        assert "<style amp-custom>.live{color:blue}</style>" in out

    def test_everything_dead_empties_the_style(self):
        html = page(".dead{a:b}")
        assert CssTreeShaker(html).shake_it(force=True) == page("")

    def test_missing_doctype_is_added(self):
        html = '<html><head><style>.dead{a:b}</style></head><body></body></html>'
        out = shake(html, force=True)
        assert out == "<!doctype html><html><head><style></style></head><body></body></html>"

    def test_rest_of_document_is_untouched(self):
        body = '\n  <!-- note -->\n  <div   class="used"  data-a=\'1\'>Text &amp; more</div>\n'
        html = page(".used{a:b}.x{a:b}", body=body)
        out = shake(html, force=True)
        assert out == page(".used{a:b}", body=body)

    def test_rules_for_omitted_html_and_body_tags_are_kept(self):
        html = "<!doctype html><title>t</title><style>html{color:red}body{margin:0}head title{x:y}p{x:y}.gone{x:y}</style><p>hi"
        assert shaken_styles(html) == ["html{color:red}body{margin:0}head title{x:y}p{x:y}"]

    def test_rules_for_implied_tbody_are_kept(self):
        html = page(
            "tbody td{x:y}table>tbody>tr{x:y}thead th{x:y}",
            body="<table><tr><td>1</td></tr></table>",
        )
        assert shaken_styles(html) == ["tbody td{x:y}table>tbody>tr{x:y}"]

    def test_shake_twice_on_same_instance(self):
        shaker = CssTreeShaker(page(".dead{a:b}.used{a:b}"))
        first = shaker.shake_it(force=True)
        assert shaker.shake_it(force=True) == first


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    def test_malformed_style_passes_through(self):
        html = page(".a{color:red", ".dead{a:b}.used{a:b}")
        shaker = CssTreeShaker(html)
        out = shaker.shake_it(force=True)
        assert out == page(".a{color:red", ".used{a:b}")
        assert shaker.stats.slots_skipped == 1
        assert shaker.stats.slots_shaken == 1

    def test_malformed_style_strict(self):
        html = page(".a{color:red", ".dead{a:b}")
        with pytest.raises(MalformedStyleError):
            CssTreeShaker(html, strict=True).shake_it(force=True)

    def test_strict_from_config(self):
        html = page("}")
        shaker = CssTreeShaker.from_config(html, ShakerConfig(strict=True))
        with pytest.raises(MalformedStyleError):
            shaker.shake_it(force=True)

    def test_invalid_html(self):
        with pytest.raises(InvalidInputError):
            CssTreeShaker("<html><style>.a{b:c}")


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


BODY = """
<header class="site-header"><nav><a class="nav-link active" href="/">Home</a></nav></header>
<main id="content">
  <article class="post"><h1 class="post__title">Title</h1><p>Text</p></article>
  <ul class="tags"><li>a</li><li>b</li></ul>
</main>
"""

STYLES = (
    "html,body{margin:0}"
    ".site-header nav>a.nav-link{color:#333}"
    ".nav-link.active:hover,.nav-link.disabled{color:red}"
    "@media (min-width:40em){#content .post{width:50%}.sidebar{float:right}}"
    ".post__title+p{margin-top:0}.post__title~ul{x:y}"
    "ul.tags li+li::before{content:','}"
    "table td,.footer{padding:0}"
    "@font-face{font-family:x;src:url(x.woff)}"
)


class TestProperties:
    def test_idempotent(self):
        once = shake(page(STYLES, body=BODY), force=True)
        assert shake(once, force=True) == once

    def test_soundness(self):
        html = page(STYLES, body=BODY)
        doc = parse_html(html)
        kept = parse_stylesheet(shaken_styles(html)[0])
        removed_text = STYLES

        def walk(node):
            for child in getattr(node, "children", []):
                for selector in getattr(child, "selectors", []):
                    assert matches(doc, normalize_selector(selector)), selector
                walk(child)

        walk(kept)
        for dead in (".nav-link.disabled", ".sidebar", ".post__title~ul", "table td", ".footer"):
            assert dead in removed_text
            assert not matches(doc, normalize_selector(dead))
            assert dead not in kept.render()

    def test_elements_are_preserved(self):
        html = page(STYLES, body=BODY)
        out = shake(html, force=True)

        def elements(source):
            return [(el.tag, el.attributes) for el in parse_html(source).iter_elements()]

        assert elements(out) == elements(html)

    def test_expected_output(self):
        assert shaken_styles(page(STYLES, body=BODY)) == [
            "html,body{margin:0}"
            ".site-header nav>a.nav-link{color:#333}"
            ".nav-link.active:hover{color:red}"
            "@media (min-width:40em){#content .post{width:50%}}"
            ".post__title+p{margin-top:0}"
            "ul.tags li+li::before{content:','}"
            "@font-face{font-family:x;src:url(x.woff)}"
        ]


def test_implements_shaker_interface():
    assert isinstance(CssTreeShaker(page()), Shaker)
