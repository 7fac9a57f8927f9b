import pytest

from seocheck_agent import checks
from seocheck_agent.models import ExtractedDocument, Heading, ImageRef, LinkRef


def _doc(**kwargs):
    kwargs.setdefault("url", "https://example.com/blog/running-shoes")
    return ExtractedDocument(**kwargs)


def _images(*formats):
    return tuple(ImageRef(src=f"/img/{i}", alt="x", format=f) for i, f in enumerate(formats))


def test_battery_has_seventeen_checks_in_fixed_order():
    titles = [title for title, _ in checks.CHECK_BATTERY]
    assert len(titles) == 17
    assert titles[0] == "Keyphrase in Title"
    assert titles[-1] == "Schema Markup"
    assert set(titles) == set(checks.CHECK_PRIORITIES)
    assert set(titles) == set(checks.LEARN_MORE_LINKS)


def test_every_check_tolerates_an_empty_document():
    results = checks.run_checks(ExtractedDocument(), "running shoes")
    assert len(results) == 17
    for result in results:
        assert result.result
        assert result.learn_more_link.startswith(checks.LEARN_MORE_BASE)
        assert result.passed or result.recommendation


def test_title_check_is_case_insensitive():
    result = checks.check_keyphrase_in_title(_doc(title="Best RUNNING Shoes"), "running shoes")
    assert result.passed
    assert result.priority == "high"
    assert result.recommendation is None


def test_title_check_fails_gracefully_without_title():
    result = checks.check_keyphrase_in_title(_doc(), "running shoes")
    assert not result.passed
    assert result.result == "No title found on the page."
    assert result.recommendation == (
        "Consider rewriting your title to include 'running shoes', preferably at the beginning."
    )


def test_url_check_reads_hyphens_underscores_and_encoded_spaces():
    assert checks.check_keyphrase_in_url(_doc(url="https://example.com/running-shoes"), "running shoes").passed
    assert checks.check_keyphrase_in_url(_doc(url="https://example.com/running_shoes"), "running shoes").passed
    assert checks.check_keyphrase_in_url(_doc(url="https://example.com/running%20shoes"), "running shoes").passed
    assert not checks.check_keyphrase_in_url(_doc(url="https://example.com/boots"), "running shoes").passed


def test_url_check_passes_on_homepage():
    result = checks.check_keyphrase_in_url(_doc(url="https://example.com/"), "running shoes")
    assert result.passed


def test_content_length_threshold_depends_on_page_type():
    text = " ".join(["word"] * 400)
    assert checks.check_content_length(_doc(url="https://example.com/", text=text), "x").passed
    assert not checks.check_content_length(_doc(text=text), "x").passed
    assert checks.check_content_length(_doc(text=" ".join(["word"] * 600)), "x").passed


def test_keyphrase_density_bounds():
    filler = ["filler"] * 98
    ok_text = " ".join(["running", "shoes"] + filler)
    density, occurrences, total = checks.keyphrase_density(ok_text, "running shoes")
    assert (occurrences, total) == (1, 100)
    assert density == 2.0
    assert checks.check_keyphrase_density(_doc(text=ok_text), "running shoes").passed

    stuffed = " ".join(["running shoes"] * 10 + ["filler"] * 80)
    assert not checks.check_keyphrase_density(_doc(text=stuffed), "running shoes").passed

    absent = " ".join(["filler"] * 100)
    assert not checks.check_keyphrase_density(_doc(text=absent), "running shoes").passed


def test_density_counts_whole_words_only():
    _, occurrences, _ = checks.keyphrase_density("shoes shoestring shoes.", "shoes")
    assert occurrences == 2


def test_introduction_uses_first_paragraph():
    doc = _doc(paragraphs=("Intro without it.", "Running shoes later."))
    assert not checks.check_keyphrase_in_introduction(doc, "running shoes").passed
    doc = _doc(paragraphs=("All about running shoes.",))
    assert checks.check_keyphrase_in_introduction(doc, "running shoes").passed


def test_h1_requires_exactly_one_matching_heading():
    one = _doc(headings=(Heading(1, "Shoes for running"),))
    assert checks.check_keyphrase_in_h1(one, "running shoes").passed

    two = _doc(headings=(Heading(1, "Running shoes"), Heading(1, "Running shoes again")))
    result = checks.check_keyphrase_in_h1(two, "running shoes")
    assert not result.passed
    assert "2 H1 headings" in result.result

    assert not checks.check_keyphrase_in_h1(_doc(), "running shoes").passed


def test_h1_ignores_short_words():
    doc = _doc(headings=(Heading(1, "Guide: running shoes"),))
    assert checks.check_keyphrase_in_h1(doc, "a guide to running").passed


def test_h2_words_can_be_spread_across_headings():
    doc = _doc(headings=(Heading(1, "x"), Heading(2, "Running tips"), Heading(2, "Choosing shoes")))
    assert checks.check_keyphrase_in_h2(doc, "running shoes").passed
    doc = _doc(headings=(Heading(2, "Running tips"),))
    assert not checks.check_keyphrase_in_h2(doc, "running shoes").passed


def test_heading_hierarchy():
    good = _doc(headings=(Heading(1, "a"), Heading(2, "b"), Heading(3, "c"), Heading(2, "d")))
    assert checks.check_heading_hierarchy(good, "x").passed

    skipped = _doc(headings=(Heading(1, "a"), Heading(2, "b"), Heading(4, "c")))
    result = checks.check_heading_hierarchy(skipped, "x")
    assert not result.passed
    assert "H4 follows H2" in result.result

    no_h2 = _doc(headings=(Heading(1, "a"),))
    assert not checks.check_heading_hierarchy(no_h2, "x").passed


def test_alt_attributes():
    assert checks.check_image_alt_attributes(_doc(), "x").passed
    images = (ImageRef("/a.png", "", "legacy"), ImageRef("/b.png", "b", "legacy"))
    result = checks.check_image_alt_attributes(_doc(images=images), "x")
    assert not result.passed
    assert result.result == "1 of 2 images are missing alt text."


def test_links():
    links = (LinkRef("https://example.com/a", True),)
    assert checks.check_internal_links(_doc(links=links), "x").passed
    assert not checks.check_outbound_links(_doc(links=links), "x").passed
    links = (LinkRef("https://other.org/", False),)
    assert checks.check_outbound_links(_doc(links=links), "x").passed


def test_next_gen_passes_with_no_images():
    result = checks.check_next_gen_images(_doc(), "x")
    assert result.passed
    assert result.result == "No images found on the page"


def test_next_gen_passes_at_exactly_seventy_percent():
    doc = _doc(images=_images(*(["next-gen"] * 7 + ["legacy"] * 3)))
    result = checks.check_next_gen_images(doc, "x")
    assert result.passed
    assert "70%" in result.result
    assert "(7/10)" in result.result


def test_next_gen_passes_at_one_hundred_percent():
    result = checks.check_next_gen_images(_doc(images=_images("next-gen", "next-gen")), "x")
    assert result.passed
    assert "100%" in result.result


def test_next_gen_fails_below_threshold():
    doc = _doc(images=_images("next-gen", "next-gen", "legacy"))
    result = checks.check_next_gen_images(doc, "x")
    assert not result.passed
    assert "67%" in result.result
    assert "(2/3)" in result.result
    assert "Convert more images to WebP or AVIF" in result.result
    assert result.priority == "low"


def test_open_graph_checks():
    assert not checks.check_og_image(_doc(), "x").passed
    assert checks.check_og_image(_doc(open_graph={"og:image": "https://example.com/og.png"}), "x").passed

    assert not checks.check_og_title_and_description(_doc(), "x").passed
    fallback = checks.check_og_title_and_description(_doc(title="T", meta_description="D"), "x")
    assert fallback.passed
    assert "fall back" in fallback.result


def test_code_minification():
    assert checks.check_code_minification(_doc(), "x").passed
    minified = _doc(
        scripts_external=(
            "https://example.com/app.min.js",
            "https://cdnjs.cloudflare.com/ajax/libs/lib.js",
            "https://example.com/dist/main.js",
            "https://example.com/static/main.3f9a1c2b7e.js",
        ),
        stylesheets=("https://example.com/site.css",),
    )
    assert checks.check_code_minification(minified, "x").passed

    plain = _doc(scripts_external=("https://example.com/app.js",), stylesheets=("https://example.com/site.css",))
    result = checks.check_code_minification(plain, "x")
    assert not result.passed
    assert result.result == "JS files: 0/1 minified, CSS files: 0/1 minified."


def test_schema_markup():
    assert not checks.check_schema_markup(_doc(), "x").passed
    assert checks.check_schema_markup(_doc(schema_types=("Product",)), "x").passed


def test_a_raising_check_becomes_a_failed_result():
    def broken(doc, keyphrase, secondary_keywords):
        raise RuntimeError("boom")

    battery = (("Keyphrase in Title", broken), ("Schema Markup", checks.check_schema_markup))
    results = checks.run_checks(_doc(), "x", battery=battery)
    assert [r.title for r in results] == ["Keyphrase in Title", "Schema Markup"]
    assert not results[0].passed
    assert results[0].priority == "high"
    assert "could not be completed" in results[0].result


def test_run_checks_reports_each_result():
    seen = []
    checks.run_checks(_doc(), "x", on_result=lambda result, ms: seen.append(result.title))
    assert seen == [title for title, _ in checks.CHECK_BATTERY]


def test_secondary_keyword_satisfies_title_meta_url_and_h1():
    doc = _doc(
        url="https://example.com/blog/trail-sneakers",
        title="Trail sneakers buyer guide",
        meta_description="Compare trail sneakers for every budget.",
        headings=(Heading(1, "Trail sneakers"),),
    )
    secondary = ("trail sneakers",)
    for check in (
        checks.check_keyphrase_in_title,
        checks.check_keyphrase_in_meta_description,
        checks.check_keyphrase_in_url,
        checks.check_keyphrase_in_h1,
    ):
        assert not check(doc, "running shoes").passed
        result = check(doc, "running shoes", secondary)
        assert result.passed
        assert "'trail sneakers'" in result.result
        assert result.recommendation is None


def test_primary_keyphrase_wins_over_secondary():
    doc = _doc(title="Running shoes and trail sneakers")
    result = checks.check_keyphrase_in_title(doc, "running shoes", ("trail sneakers",))
    assert result.result == "Great job! Your title includes the target keyphrase."


def test_secondary_keywords_do_not_relax_other_checks():
    doc = _doc(paragraphs=("All about trail sneakers.",), headings=(Heading(2, "Trail sneakers"),))
    assert not checks.check_keyphrase_in_introduction(doc, "running shoes", ("trail sneakers",)).passed
    assert not checks.check_keyphrase_in_h2(doc, "running shoes", ("trail sneakers",)).passed


def test_density_adds_up_primary_and_secondary_occurrences():
    text = " ".join(["running", "shoes", "sneakers"] + ["filler"] * 97)
    density, occurrences, total = checks.keyphrase_density(text, "running shoes", ("sneakers",))
    assert (occurrences, total) == (2, 100)
    assert density == pytest.approx(3.0)
    assert checks.check_keyphrase_density(_doc(text=text), "running shoes").passed
    assert not checks.check_keyphrase_density(_doc(text=text), "running shoes", ("sneakers",)).passed


def test_run_checks_passes_secondary_keywords_to_every_check():
    seen = []

    def spy(doc, keyphrase, secondary_keywords):
        seen.append(secondary_keywords)
        return checks.check_schema_markup(doc, keyphrase, secondary_keywords)

    checks.run_checks(_doc(), "x", battery=(("Schema Markup", spy),), secondary_keywords=["a", "b"])
    assert seen == [("a", "b")]
