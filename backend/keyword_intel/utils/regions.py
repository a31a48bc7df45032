"""Region and language code tables for the keyword and SERP providers.

The ad-planning provider identifies markets by numeric geo-target and
language constants; the SERP scraper wants lowercase ISO country codes
and BCP-47-ish language tags. Callers may pass either codes ("TW") or
localized market names ("台灣").
"""

import re

# Google Ads geo target constants
LOCATION_CODES: dict[str, int] = {
    "TW": 2158,  # Taiwan
    "HK": 2344,  # Hong Kong
    "US": 2840,  # United States
    "JP": 2392,  # Japan
    "UK": 2826,  # United Kingdom
    "CN": 2156,  # China
    "AU": 2036,  # Australia
    "CA": 2124,  # Canada
    "SG": 2702,  # Singapore
    "MY": 2458,  # Malaysia
    "DE": 2276,  # Germany
    "FR": 2250,  # France
    "KR": 2410,  # South Korea
    "IN": 2356,  # India
}

# Google Ads language constants
LANGUAGE_CODES: dict[str, int] = {
    "zh_TW": 1018,  # Traditional Chinese
    "zh_CN": 1000,
    "en": 1000,
    "ja": 1005,
    "ko": 1012,
    "ms": 1102,
    "fr": 1002,
    "de": 1001,
    "es": 1003,
}

# Localized market names -> region codes
REGION_NAMES: dict[str, str] = {
    "台灣": "TW",
    "臺灣": "TW",
    "香港": "HK",
    "馬來西亞": "MY",
    "新加坡": "SG",
    "美國": "US",
    "韓國": "KR",
    "日本": "JP",
    "英國": "UK",
    "中國": "CN",
    "澳洲": "AU",
    "加拿大": "CA",
    "德國": "DE",
    "法國": "FR",
    "印度": "IN",
}

DEFAULT_REGION = "TW"
DEFAULT_LANGUAGE = "en"

# Language tags whose region part must stay upper-case for the SERP provider
_LANGUAGE_TAG_OVERRIDES: dict[str, str] = {
    "zh-tw": "zh-TW",
    "zh-cn": "zh-CN",
    "pt-br": "pt-BR",
    "pt-pt": "pt-PT",
}

_TWO_LETTER_CODE = re.compile(r"^[A-Za-z]{2}$")


def resolve_region(region: str) -> str:
    """Map a region code or localized name to an upper-case region code."""
    cleaned = region.strip()
    return REGION_NAMES.get(cleaned, cleaned.upper())


def resolve_location_code(region: str) -> int:
    """Geo target constant for a region; unknown regions fall back to Taiwan."""
    return LOCATION_CODES.get(resolve_region(region), LOCATION_CODES[DEFAULT_REGION])


def resolve_language_code(language: str) -> int:
    """Language constant for a language tag; unknown tags fall back to English.

    Accepts "zh-TW", "zh_TW" or "zh-tw"; a tag with an unknown region part
    falls back to its base language ("en-US" -> "en").
    """
    tag = language.strip().replace("-", "_")
    base, _, subtag = tag.partition("_")
    candidates = [tag, f"{base.lower()}_{subtag.upper()}" if subtag else base.lower()]
    candidates.append(base.lower())

    for candidate in candidates:
        if candidate in LANGUAGE_CODES:
            return LANGUAGE_CODES[candidate]
    return LANGUAGE_CODES[DEFAULT_LANGUAGE]


def map_region_to_country(region: str) -> str:
    """Lowercase country code for the SERP provider ("" if unrecognised)."""
    cleaned = region.strip()
    if cleaned in REGION_NAMES:
        return REGION_NAMES[cleaned].lower()
    if cleaned.upper() in LOCATION_CODES or _TWO_LETTER_CODE.match(cleaned):
        return cleaned.lower()
    return ""


def normalize_language_code(language: str) -> str:
    """Normalise a language tag for the SERP provider (zh-tw -> zh-TW)."""
    return _LANGUAGE_TAG_OVERRIDES.get(language.strip().lower(), language.strip())
