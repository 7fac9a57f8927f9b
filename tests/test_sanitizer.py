import pytest

from seocheck_agent.sanitizer import MAX_KEYWORD_LENGTH, decode_html_entities, sanitize_keywords


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('<script>alert("xss")</script>test', "test"),
        ('<<script>alert("xss")</script>', ""),
        ('<scr<script>ipt>alert("xss")</script>', ""),
        ("&lt;script&gt;alert&amp;test", ""),
        ("Text with & ampersand, < less than, > greater than", "Text with  ampersand,  less than,  greater than"),
        ("Café résumé naïve", "Café résumé naïve"),
        ("<b>seo</b> tools", "seo tools"),
        ('<iframe src="x">inner', ""),
        ("  best running shoes  ", "best running shoes"),
    ],
)
def test_sanitize_keywords(raw, expected):
    assert sanitize_keywords(raw) == expected


def test_sanitize_keywords_handles_none():
    assert sanitize_keywords(None) == ""


def test_sanitize_keywords_truncates_long_input():
    assert len(sanitize_keywords("a" * 2000)) == MAX_KEYWORD_LENGTH


def test_sanitize_keywords_is_idempotent():
    once = sanitize_keywords("&amp;lt;b&amp;gt;bold&amp;lt;/b&amp;gt; text")
    assert sanitize_keywords(once) == once
    assert "<" not in once and ">" not in once and "&" not in once


def test_locale_never_changes_output():
    assert sanitize_keywords("<em>chaussures</em> de course", "fr") == "chaussures de course"
    assert sanitize_keywords("<em>chaussures</em> de course", "xx") == "chaussures de course"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("&amp;lt;script&amp;gt;", "&lt;script&gt;"),
        ("&amp;amp;", "&amp;"),
        ("&amp without semicolon", "& without semicolon"),
        ("&invalid;entity", "&invalid;entity"),
        ("&amp;&amp;&amp;", "&&&"),
        ("&#x2F;path&#x3D;value", "/path=value"),
        ("&quot;quoted&quot; &#39;single&#x27; &#x60;tick&#x60;", "\"quoted\" 'single' `tick`"),
        ("&amp;quot;", "&quot;"),
        ("&amp;#39;", "&#39;"),
        ("&amp;#x2F;", "&#x2F;"),
        ("&amp;#x3D;", "&#x3D;"),
    ],
)
def test_decode_html_entities(raw, expected):
    assert decode_html_entities(raw) == expected


def test_decode_html_entities_handles_none():
    assert decode_html_entities(None) == ""
