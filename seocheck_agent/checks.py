from __future__ import annotations

import logging
import re
import time
from fractions import Fraction
from typing import Callable, Sequence
from urllib.parse import urlsplit

from .models import CheckResult, ExtractedDocument, Priority

logger = logging.getLogger(__name__)

CheckFn = Callable[[ExtractedDocument, str, Sequence[str]], CheckResult]

HOMEPAGE_MIN_WORDS = 300
PAGE_MIN_WORDS = 600
DENSITY_MIN_PERCENT = 0.5
DENSITY_MAX_PERCENT = 2.5
NEXT_GEN_PASS_RATIO = Fraction(7, 10)
MINIFIED_PASS_RATIO = Fraction(4, 5)
# Words of two letters or fewer ("of", "to", "a") are ignored in heading matches.
SIGNIFICANT_WORD_MIN_LENGTH = 3

NO_IMAGES_MESSAGE = "No images found on the page"

CHECK_PRIORITIES: dict[str, Priority] = {
    "Keyphrase in Title": "high",
    "Keyphrase in Meta Description": "high",
    "Keyphrase in URL": "medium",
    "Content Length": "high",
    "Keyphrase Density": "medium",
    "Keyphrase in Introduction": "medium",
    "Keyphrase in H1 Heading": "high",
    "Keyphrase in H2 Headings": "medium",
    "Heading Hierarchy": "high",
    "Image Alt Attributes": "low",
    "Internal Links": "medium",
    "Outbound Links": "low",
    "Next-Gen Image Formats": "low",
    "OG Image": "medium",
    "OG Title and Description": "medium",
    "Code Minification": "low",
    "Schema Markup": "medium",
}

CHECK_DESCRIPTIONS = {
    "Keyphrase in Title": "The page title should contain the focus keyphrase.",
    "Keyphrase in Meta Description": "The meta description should contain the focus keyphrase.",
    "Keyphrase in URL": "The URL should contain the focus keyphrase when appropriate.",
    "Content Length": "The page should have enough content to cover its topic.",
    "Keyphrase Density": "The keyphrase should appear often enough without being stuffed.",
    "Keyphrase in Introduction": "The keyphrase should appear in the introduction paragraph.",
    "Keyphrase in H1 Heading": "The page should have a single H1 heading that contains the keyphrase.",
    "Keyphrase in H2 Headings": "At least one H2 heading should contain the keyphrase.",
    "Heading Hierarchy": "Headings should follow a logical order without skipping levels.",
    "Image Alt Attributes": "Images should have descriptive alt text.",
    "Internal Links": "The page should link to other pages on the same site.",
    "Outbound Links": "The page should link to relevant external sources.",
    "Next-Gen Image Formats": "Images should use modern formats like WebP, AVIF or SVG.",
    "OG Image": "The page should define an Open Graph image for social sharing.",
    "OG Title and Description": "Open Graph title and description should be present.",
    "Code Minification": "JavaScript and CSS files should be minified.",
    "Schema Markup": "The page should include structured data (JSON-LD or microdata).",
}

LEARN_MORE_BASE = "https://ai-seo-copilot.gitbook.io/ai-seo-copilot/documentation"
DEFAULT_LEARN_MORE_LINK = f"{LEARN_MORE_BASE}/seo-optimization-guide"
LEARN_MORE_LINKS = {
    "Keyphrase in Title": f"{LEARN_MORE_BASE}/meta-seo/keyphrase-in-title",
    "Keyphrase in Meta Description": f"{LEARN_MORE_BASE}/meta-seo/keyphrase-in-meta-description",
    "Keyphrase in URL": f"{LEARN_MORE_BASE}/meta-seo/keyphrase-in-url",
    "Content Length": f"{LEARN_MORE_BASE}/content-optimization/content-length-on-page",
    "Keyphrase Density": f"{LEARN_MORE_BASE}/content-optimization/keyphrase-density",
    "Keyphrase in Introduction": f"{LEARN_MORE_BASE}/content-optimization/keyphrase-in-introduction",
    "Keyphrase in H1 Heading": f"{LEARN_MORE_BASE}/content-optimization/keyphrase-in-h1-heading",
    "Keyphrase in H2 Headings": f"{LEARN_MORE_BASE}/content-optimization/keyphrase-in-h2-headings",
    "Heading Hierarchy": f"{LEARN_MORE_BASE}/content-optimization/heading-hierarchy",
    "Image Alt Attributes": f"{LEARN_MORE_BASE}/images/image-alt-attributes",
    "Internal Links": f"{LEARN_MORE_BASE}/links/internal-links",
    "Outbound Links": f"{LEARN_MORE_BASE}/links/outbound-links",
    "Next-Gen Image Formats": f"{LEARN_MORE_BASE}/images/next-gen-image-formats",
    "OG Image": f"{LEARN_MORE_BASE}/images/opengraph-image",
    "OG Title and Description": f"{LEARN_MORE_BASE}/meta-seo/open-graph-title-and-description",
    "Code Minification": f"{LEARN_MORE_BASE}/tech-seo/code-minification",
    "Schema Markup": f"{LEARN_MORE_BASE}/tech-seo/schema-markup",
}

RECOMMENDATIONS = {
    "Keyphrase in Title": "Consider rewriting your title to include '{keyphrase}', preferably at the beginning.",
    "Keyphrase in Meta Description": "Add '{keyphrase}' to your meta description naturally to boost click-through rates.",
    "Keyphrase in URL": "Use a short URL slug that contains '{keyphrase}', with words separated by hyphens.",
    "Content Length": "Expand the page with useful content about '{keyphrase}'.",
    "Keyphrase Density": "Adjust how often '{keyphrase}' appears so it reads naturally, roughly once or twice per hundred words.",
    "Keyphrase in Introduction": "Mention '{keyphrase}' in your first paragraph to establish relevance early.",
    "Keyphrase in H1 Heading": "Use a single H1 heading that includes '{keyphrase}'.",
    "Keyphrase in H2 Headings": "Include '{keyphrase}' or its main words in at least one H2 subheading.",
    "Heading Hierarchy": "Use one H1, then H2 sections, and never jump more than one heading level at a time.",
    "Image Alt Attributes": "Add descriptive alt text to every image, mentioning '{keyphrase}' where it fits.",
    "Internal Links": "Add links to other relevant pages on your site to improve navigation and SEO.",
    "Outbound Links": "Link to reputable external sources to increase your content's credibility.",
    "Next-Gen Image Formats": "Convert JPEG, PNG and GIF images to WebP or AVIF to reduce page weight.",
    "OG Image": "Add an og:image meta tag so shared links show a preview image.",
    "OG Title and Description": "Add og:title and og:description meta tags that mention '{keyphrase}'.",
    "Code Minification": "Serve minified JavaScript and CSS files, for example from your build tool's production output.",
    "Schema Markup": "Add JSON-LD structured data describing this page (for example WebPage, Article or Organization).",
}
DEFAULT_RECOMMENDATION = "Consider optimizing your content for '{keyphrase}' in relation to {title}."

_MINIFYING_HOSTS = (
    "cdnjs.cloudflare.com",
    "unpkg.com",
    "jsdelivr.net",
    "googleapis.com",
    "gstatic.com",
    "assets.webflow.com",
    "global-uploads.webflow.com",
)
_BUILD_OUTPUT_RE = re.compile(r"\.(js|css)\?v=|/build/|/dist/|\.bundle\.|\.chunk\.")
_HASHED_NAME_RE = re.compile(r"\.[a-f0-9]{8,}\.(js|css)$")
_WORD_RE = re.compile(r"\w+")


def _make_result(title: str, passed: bool, result: str, keyphrase: str) -> CheckResult:
    recommendation = None
    if not passed:
        template = RECOMMENDATIONS.get(title, DEFAULT_RECOMMENDATION)
        recommendation = template.format(keyphrase=keyphrase, title=title.lower())
    return CheckResult(
        title=title,
        description=CHECK_DESCRIPTIONS.get(title, ""),
        result=result,
        passed=passed,
        priority=CHECK_PRIORITIES.get(title, "medium"),
        learn_more_link=LEARN_MORE_LINKS.get(title, DEFAULT_LEARN_MORE_LINK),
        recommendation=recommendation,
    )


def _norm(text: str | None) -> str:
    return " ".join((text or "").casefold().split())


def _contains(haystack: str | None, keyphrase: str) -> bool:
    needle = _norm(keyphrase)
    return bool(needle) and needle in _norm(haystack)


def _first_match(haystack: str | None, keyphrase: str, secondary_keywords: Sequence[str]) -> str | None:
    """The primary keyphrase if `haystack` contains it, else the first secondary keyword it contains."""
    for candidate in (keyphrase, *secondary_keywords):
        if _contains(haystack, candidate):
            return candidate
    return None


def _matched_message(matched: str, keyphrase: str, primary: str, where: str) -> str:
    if matched == keyphrase:
        return primary
    return f"Your {where} uses the secondary keyword '{matched}'."


def _words(text: str | None) -> set[str]:
    return set(_WORD_RE.findall((text or "").casefold()))


def _significant_words(keyphrase: str) -> list[str]:
    return [w for w in _WORD_RE.findall(keyphrase.casefold()) if len(w) >= SIGNIFICANT_WORD_MIN_LENGTH]


def _is_homepage(url: str) -> bool:
    try:
        path = urlsplit(url).path
    except ValueError:
        return False
    return path in ("", "/")


def _percent(part: int, total: int) -> str:
    if not total:
        return "0%"
    # Half-up, in integers.
    return f"{(200 * part + total) // (2 * total)}%"


def _looks_minified(url: str) -> bool:
    lowered = url.lower()
    if ".min." in lowered:
        return True
    if any(host in lowered for host in _MINIFYING_HOSTS):
        return True
    if _BUILD_OUTPUT_RE.search(lowered):
        return True
    return bool(_HASHED_NAME_RE.search(lowered.split("?", 1)[0]))


def check_keyphrase_in_title(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    title = "Keyphrase in Title"
    if not doc.title:
        return _make_result(title, False, "No title found on the page.", keyphrase)
    matched = _first_match(doc.title, keyphrase, secondary_keywords)
    if matched:
        result = _matched_message(matched, keyphrase, "Great job! Your title includes the target keyphrase.", "title")
        return _make_result(title, True, result, keyphrase)
    return _make_result(title, False, "The page title does not contain the keyphrase.", keyphrase)


def check_keyphrase_in_meta_description(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    title = "Keyphrase in Meta Description"
    if not doc.meta_description:
        return _make_result(title, False, "No meta description found on the page.", keyphrase)
    matched = _first_match(doc.meta_description, keyphrase, secondary_keywords)
    if matched:
        result = _matched_message(
            matched, keyphrase, "Perfect! Your meta description uses the keyphrase.", "meta description"
        )
        return _make_result(title, True, result, keyphrase)
    return _make_result(title, False, "The meta description does not contain the keyphrase.", keyphrase)


def check_keyphrase_in_url(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    title = "Keyphrase in URL"
    if not doc.url:
        return _make_result(title, False, "The page URL is unknown.", keyphrase)
    if _is_homepage(doc.url):
        return _make_result(title, True, "All good here, since it's the homepage.", keyphrase)

    def slugless(value: str) -> str:
        return value.replace("%20", " ").replace("-", " ").replace("_", " ")

    path = slugless(urlsplit(doc.url).path.lower())
    for candidate in (keyphrase, *secondary_keywords):
        if _contains(path, slugless(candidate.lower())):
            result = _matched_message(candidate, keyphrase, "Excellent! Your URL contains the keyphrase.", "URL")
            return _make_result(title, True, result, keyphrase)
    return _make_result(title, False, "The URL path does not contain the keyphrase.", keyphrase)


def check_content_length(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    word_count = len(doc.text.split())
    minimum = HOMEPAGE_MIN_WORDS if _is_homepage(doc.url) else PAGE_MIN_WORDS
    passed = word_count >= minimum
    result = f"The page has {word_count} words (minimum {minimum})."
    return _make_result("Content Length", passed, result, keyphrase)


def keyphrase_density(text: str, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> tuple[float, int, int]:
    """Return (density percent, occurrences, total words) of the keywords in `text`.

    Occurrences of the keyphrase and every secondary keyword are added up, and
    each occurrence counts as many words as its phrase has.
    """
    words = text.split()
    if not words:
        return 0.0, 0, 0
    lowered = text.casefold()
    occurrences = 0
    keyword_words = 0
    for candidate in dict.fromkeys((keyphrase, *secondary_keywords)):
        phrase_words = _norm(candidate).split()
        if not phrase_words:
            continue
        pattern = r"(?<!\w)" + r"\s+".join(re.escape(w) for w in phrase_words) + r"(?!\w)"
        found = len(re.findall(pattern, lowered))
        occurrences += found
        keyword_words += found * len(phrase_words)
    density = keyword_words / len(words) * 100
    return density, occurrences, len(words)


def check_keyphrase_density(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    title = "Keyphrase Density"
    density, occurrences, total = keyphrase_density(doc.text, keyphrase, secondary_keywords)
    if not total:
        return _make_result(title, False, "No text content found on the page.", keyphrase)
    passed = DENSITY_MIN_PERCENT <= density <= DENSITY_MAX_PERCENT
    result = (
        f"Keyphrase density is {density:.1f}% ({occurrences} occurrences in {total} words); "
        f"aim for {DENSITY_MIN_PERCENT}% to {DENSITY_MAX_PERCENT}%."
    )
    return _make_result(title, passed, result, keyphrase)


def check_keyphrase_in_introduction(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    title = "Keyphrase in Introduction"
    if not doc.paragraphs:
        return _make_result(title, False, "No introductory paragraph found on the page.", keyphrase)
    if _contains(doc.paragraphs[0], keyphrase):
        return _make_result(title, True, "Excellent! The keyphrase appears in your introduction.", keyphrase)
    return _make_result(title, False, "The first paragraph does not mention the keyphrase.", keyphrase)


def check_keyphrase_in_h1(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    title = "Keyphrase in H1 Heading"
    h1s = doc.headings_at(1)
    if not h1s:
        return _make_result(title, False, "No H1 heading found on the page.", keyphrase)
    if len(h1s) > 1:
        return _make_result(title, False, f"Found {len(h1s)} H1 headings; use exactly one.", keyphrase)

    text = h1s[0].text
    for candidate in (keyphrase, *secondary_keywords):
        significant = _significant_words(candidate)
        if _contains(text, candidate) or (significant and set(significant) <= _words(text)):
            result = _matched_message(
                candidate, keyphrase, "Excellent! Your H1 heading includes the keyphrase.", "H1 heading"
            )
            return _make_result(title, True, result, keyphrase)
    return _make_result(title, False, "The H1 heading does not contain the keyphrase.", keyphrase)


def check_keyphrase_in_h2(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    title = "Keyphrase in H2 Headings"
    h2s = doc.headings_at(2)
    if not h2s:
        return _make_result(title, False, "No H2 headings found on the page.", keyphrase)
    if any(_contains(h.text, keyphrase) for h in h2s):
        return _make_result(title, True, "Great job! An H2 subheading includes the keyphrase.", keyphrase)

    significant = _significant_words(keyphrase)
    seen: set[str] = set()
    for h in h2s:
        seen |= _words(h.text)
    if significant and set(significant) <= seen:
        return _make_result(title, True, "Your H2 subheadings cover every word of the keyphrase.", keyphrase)
    return _make_result(title, False, f"None of the {len(h2s)} H2 headings contain the keyphrase.", keyphrase)


def check_heading_hierarchy(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    issues = []
    h1_count = len(doc.headings_at(1))
    if h1_count == 0:
        issues.append("no H1 heading")
    elif h1_count > 1:
        issues.append(f"{h1_count} H1 headings")
    if not doc.headings_at(2):
        issues.append("no H2 headings")

    previous = 0
    for heading in doc.headings:
        if heading.level > previous + 1:
            issues.append(f"H{heading.level} follows H{previous}" if previous else f"page starts with H{heading.level}")
            break
        previous = heading.level

    if issues:
        return _make_result("Heading Hierarchy", False, "Heading structure issues: " + ", ".join(issues) + ".", keyphrase)
    return _make_result("Heading Hierarchy", True, "Great job! Your page has a proper heading hierarchy.", keyphrase)


def check_image_alt_attributes(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    title = "Image Alt Attributes"
    if not doc.images:
        return _make_result(title, True, NO_IMAGES_MESSAGE, keyphrase)
    missing = sum(1 for img in doc.images if not img.alt)
    if missing:
        return _make_result(title, False, f"{missing} of {len(doc.images)} images are missing alt text.", keyphrase)
    return _make_result(title, True, f"All {len(doc.images)} images have alt text.", keyphrase)


def check_internal_links(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    count = len(doc.internal_links)
    return _make_result("Internal Links", count > 0, f"Internal links found: {count}", keyphrase)


def check_outbound_links(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    count = len(doc.outbound_links)
    return _make_result("Outbound Links", count > 0, f"Outbound links found: {count}", keyphrase)


def check_next_gen_images(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    title = "Next-Gen Image Formats"
    total = len(doc.images)
    if not total:
        return _make_result(title, True, NO_IMAGES_MESSAGE, keyphrase)

    next_gen = sum(1 for img in doc.images if img.format == "next-gen")
    passed = Fraction(next_gen, total) >= NEXT_GEN_PASS_RATIO
    result = f"{_percent(next_gen, total)} of images use next-gen formats ({next_gen}/{total})."
    if not passed:
        result += " Convert more images to WebP or AVIF."
    return _make_result(title, passed, result, keyphrase)


def check_og_image(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    if doc.open_graph.get("og:image"):
        return _make_result("OG Image", True, "Great job! Your page has an Open Graph image.", keyphrase)
    return _make_result("OG Image", False, "No og:image meta tag found.", keyphrase)


def check_og_title_and_description(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    title = "OG Title and Description"
    og_title = doc.open_graph.get("og:title") or doc.title
    og_description = doc.open_graph.get("og:description") or doc.meta_description
    missing = [name for name, value in (("og:title", og_title), ("og:description", og_description)) if not value]
    if missing:
        return _make_result(title, False, "Missing " + " and ".join(missing) + ".", keyphrase)

    fallbacks = [
        name for name in ("og:title", "og:description") if not doc.open_graph.get(name)
    ]
    if fallbacks:
        result = "Social previews fall back to the page title and meta description for " + " and ".join(fallbacks) + "."
    else:
        result = "Perfect! Open Graph title and description are configured."
    return _make_result(title, True, result, keyphrase)


def check_code_minification(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    title = "Code Minification"
    resources = [*doc.scripts_external, *doc.stylesheets]
    if not resources:
        return _make_result(title, True, "No external JS or CSS files detected.", keyphrase)

    js_min = sum(1 for u in doc.scripts_external if _looks_minified(u))
    css_min = sum(1 for u in doc.stylesheets if _looks_minified(u))
    passed = Fraction(js_min + css_min, len(resources)) >= MINIFIED_PASS_RATIO
    result = (
        f"JS files: {js_min}/{len(doc.scripts_external)} minified, "
        f"CSS files: {css_min}/{len(doc.stylesheets)} minified."
    )
    return _make_result(title, passed, result, keyphrase)


def check_schema_markup(doc: ExtractedDocument, keyphrase: str, secondary_keywords: Sequence[str] = ()) -> CheckResult:
    if doc.schema_types:
        found = ", ".join(doc.schema_types[:5])
        return _make_result("Schema Markup", True, f"Schema markup detected: {found}.", keyphrase)
    return _make_result("Schema Markup", False, "No JSON-LD or microdata found on the page.", keyphrase)


# Evaluated in this order; the report preserves it.
CHECK_BATTERY: tuple[tuple[str, CheckFn], ...] = (
    ("Keyphrase in Title", check_keyphrase_in_title),
    ("Keyphrase in Meta Description", check_keyphrase_in_meta_description),
    ("Keyphrase in URL", check_keyphrase_in_url),
    ("Content Length", check_content_length),
    ("Keyphrase Density", check_keyphrase_density),
    ("Keyphrase in Introduction", check_keyphrase_in_introduction),
    ("Keyphrase in H1 Heading", check_keyphrase_in_h1),
    ("Keyphrase in H2 Headings", check_keyphrase_in_h2),
    ("Heading Hierarchy", check_heading_hierarchy),
    ("Image Alt Attributes", check_image_alt_attributes),
    ("Internal Links", check_internal_links),
    ("Outbound Links", check_outbound_links),
    ("Next-Gen Image Formats", check_next_gen_images),
    ("OG Image", check_og_image),
    ("OG Title and Description", check_og_title_and_description),
    ("Code Minification", check_code_minification),
    ("Schema Markup", check_schema_markup),
)


def run_checks(
    doc: ExtractedDocument,
    keyphrase: str,
    on_result: Callable[[CheckResult, float], None] | None = None,
    battery: tuple[tuple[str, CheckFn], ...] = CHECK_BATTERY,
    secondary_keywords: Sequence[str] = (),
) -> list[CheckResult]:
    """Run every check in order. A check that raises is reported as failed.

    `secondary_keywords` also satisfy the title, meta description, URL and H1
    checks, and count towards keyphrase density.
    """
    secondary_keywords = tuple(secondary_keywords)
    results: list[CheckResult] = []
    for title, check in battery:
        t0 = time.perf_counter()
        try:
            result = check(doc, keyphrase, secondary_keywords)
        except Exception:
            logger.exception("Check %r raised", title)
            result = _make_result(title, False, "This check could not be completed for this page.", keyphrase)
        results.append(result)
        if on_result is not None:
            on_result(result, (time.perf_counter() - t0) * 1000)
    return results
