"""Deterministic cache keys for keyword sets.

A key identifies {sorted keyword set, region, language[, device]}:

    derive_key(["soup recipe"], "TW", "zh-TW") == "soup recipe_TW_zh-TW"

Callers normalize case and whitespace before deriving a key; this module
only orders and joins.
"""

import hashlib

from keyword_intel.core.errors import ValidationError

KEYWORD_DELIMITER = ","
SEGMENT_DELIMITER = "_"

# Longer keyword segments are replaced by their SHA-256 digest
MAX_KEYWORD_SEGMENT_LENGTH = 400


def derive_key(
    keywords: list[str],
    region: str,
    language: str,
    device: str | None = None,
) -> str:
    """Derive an order-independent cache key.

    Args:
        keywords: Keyword set; order does not matter.
        region: Region code, appended as-is.
        language: Language code, appended as-is.
        device: Optional device segment (e.g. "mobile").

    Returns:
        Cache key string.

    Raises:
        ValidationError: If keywords, region or language are empty.
    """
    if not keywords:
        raise ValidationError("keywords", keywords, "Keyword list cannot be empty")
    if not region:
        raise ValidationError("region", region, "Region cannot be empty")
    if not language:
        raise ValidationError("language", language, "Language cannot be empty")

    keyword_segment = KEYWORD_DELIMITER.join(sorted(keywords))
    if len(keyword_segment) > MAX_KEYWORD_SEGMENT_LENGTH:
        keyword_segment = hashlib.sha256(keyword_segment.encode("utf-8")).hexdigest()

    segments = [keyword_segment, region, language]
    if device:
        segments.append(device)
    return SEGMENT_DELIMITER.join(segments)
