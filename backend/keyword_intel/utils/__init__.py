"""Utility modules."""

from keyword_intel.utils.keyspace import derive_key
from keyword_intel.utils.regions import (
    map_region_to_country,
    normalize_language_code,
    resolve_language_code,
    resolve_location_code,
)
from keyword_intel.utils.script_filter import (
    ScriptType,
    classify,
    dedupe_case_insensitive,
    filter_simplified,
)

__all__ = [
    "ScriptType",
    "classify",
    "dedupe_case_insensitive",
    "derive_key",
    "filter_simplified",
    "map_region_to_country",
    "normalize_language_code",
    "resolve_language_code",
    "resolve_location_code",
]
