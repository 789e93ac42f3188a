"""
Static engine tables.

Selectors used to find content sections in raw HTML, the structured sections
expected in each engine's JSON payload, the severity classification sets and the
default monitored targets. These values drive severity classification, so they
are exposed as read-only mappings and frozensets built once at import time.
"""

from types import MappingProxyType
from typing import Mapping, Tuple

from .domain import HtmlSelector, TargetConfig, frozen_params


def _selectors(*entries: Tuple[str, str, str]) -> Tuple[HtmlSelector, ...]:
    return tuple(HtmlSelector(name, selector, description) for name, selector, description in entries)


HTML_SELECTORS: Mapping[str, Tuple[HtmlSelector, ...]] = MappingProxyType(
    {
        "google": _selectors(
            ("organic_results", "div.g, div.MjjYud", "Organic search results"),
            ("local_results", "div.VkpGBb, div[data-attrid*='local']", "Local pack results"),
            (
                "knowledge_graph",
                "div.kp-wholepage, div.knowledge-panel, div.kp-header",
                "Knowledge panel",
            ),
            ("shopping_results", "div.commercial-unit-desktop-top, div.pla-unit", "Shopping ads"),
            ("related_questions", "div.related-question-pair, div[data-sgrd]", "People also ask"),
            ("top_stories", "g-card, div[data-hveid] article", "Top stories"),
            ("inline_images", "div.islrc img, g-img.ivg-i", "Image results"),
            (
                "inline_videos",
                "video-voyager, div[data-ved] a[href*='youtube.com']",
                "Video results",
            ),
        ),
        "google_shopping": _selectors(
            (
                "shopping_results",
                "div.sh-dgr__gr-auto, div.sh-dlr__list-result, div.KZmu8e",
                "Products",
            ),
            ("filters", "div.eFNjkd, div[data-filter]", "Filters"),
        ),
        "google_news": _selectors(
            ("news_results", "article, div[data-n-tid], c-wiz article, div.xrnccd", "News articles"),
        ),
        "ebay": _selectors(
            ("organic_results", "li.s-item, div.s-item__wrapper", "Product listings"),
        ),
        "naver": _selectors(
            ("web_results", "li.bx, div.total_wrap, ul.lst_total > li", "Web results"),
            ("news_results", "div.news_wrap, ul.list_news > li", "News results"),
            ("ads_results", "div.ad_area, li.sp_keyword", "Ads"),
        ),
    }
)

JSON_SECTIONS: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "google": (
            "organic_results",
            "local_results",
            "knowledge_graph",
            "shopping_results",
            "related_questions",
            "top_stories",
            "inline_images",
            "inline_videos",
        ),
        "google_shopping": ("shopping_results", "filters"),
        "google_news": ("news_results",),
        "youtube_video_transcript": ("transcript",),
        "ebay": ("organic_results",),
        "naver": ("web_results", "news_results", "ads_results"),
    }
)

# Main content: missing it in the JSON is a parser failure.
CRITICAL_SECTIONS = frozenset({"organic_results", "shopping_results", "news_results", "web_results"})

# Secondary content.
WARNING_SECTIONS = frozenset({"local_results", "knowledge_graph", "related_questions"})

DEFAULT_TARGETS: Tuple[TargetConfig, ...] = (
    TargetConfig("google", "Google Search", frozen_params({"q": "coffee"})),
    TargetConfig("google_shopping", "Google Shopping", frozen_params({"q": "laptop"})),
    TargetConfig("google_news", "Google News", frozen_params({"q": "technology"})),
    TargetConfig(
        "youtube_video_transcript", "YouTube Transcript", frozen_params({"v": "dQw4w9WgXcQ"})
    ),
    TargetConfig("ebay", "eBay", frozen_params({"_nkw": "vintage camera"})),
    TargetConfig("naver", "Naver", frozen_params({"query": "서울"})),
)


def html_selectors_for(engine: str) -> Tuple[HtmlSelector, ...]:
    """Returns the HTML selector table of an engine, empty for unknown engines."""
    return HTML_SELECTORS.get(engine, ())


def json_sections_for(engine: str) -> Tuple[str, ...]:
    """Returns the expected JSON section names of an engine, empty for unknown engines."""
    return JSON_SECTIONS.get(engine, ())
