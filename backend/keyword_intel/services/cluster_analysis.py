"""AI keyword clustering and cluster volume aggregation.

ClusterGenerator asks the LLM for clusters as markdown:

    ## Cluster: <name>
    - keyword
    - keyword

and parses that locally into {name: [keywords]}. Only keywords that were
part of the request survive parsing, each in exactly one cluster.

calculate_clusters_with_volume() then annotates clusters with volumes,
a main keyword and long-tail fragments.
"""

import re
import time

from keyword_intel.core.errors import WorkflowError
from keyword_intel.core.logging import get_logger
from keyword_intel.integrations.claude import ClaudeClient
from keyword_intel.schemas.research import ClusterWithVolume
from keyword_intel.schemas.volume import VolumeItem
from keyword_intel.utils.script_filter import CJK_PATTERN

logger = get_logger(__name__)

CLUSTER_HEADER_PATTERN = re.compile(r"^#{2,}\s*Cluster\s*[:：]\s*(.+?)\s*$", re.IGNORECASE)
BULLET_PATTERN = re.compile(r"^\s*[-*•]\s+(.+?)\s*$")

CLUSTERING_SYSTEM_PROMPT = (
    "You group search keywords into semantic clusters. Respond only with "
    "markdown in the requested format."
)


def normalize_keyword(text: str) -> str:
    """Comparison form of a keyword: casefolded, all whitespace removed."""
    return "".join(text.casefold().split())


def dedupe_volume_items(items: list[VolumeItem]) -> list[VolumeItem]:
    """Collapse keywords that differ only by case or spacing.

    The variant with the higher search volume wins; it takes the position
    of the first occurrence.
    """
    index_by_key: dict[str, int] = {}
    unique: list[VolumeItem] = []
    for item in items:
        key = normalize_keyword(item.text)
        if not key:
            continue
        if key not in index_by_key:
            index_by_key[key] = len(unique)
            unique.append(item)
        elif item.search_volume > unique[index_by_key[key]].search_volume:
            unique[index_by_key[key]] = item
    return unique


def build_clustering_prompt(keywords: list[str]) -> str:
    return (
        "Group the following keywords into semantic clusters. Each keyword "
        "belongs to exactly one cluster.\n\n"
        "Output format:\n"
        "## Cluster: <cluster name>\n"
        "- <keyword>\n"
        "- <keyword>\n\n"
        "Keywords:\n" + "\n".join(keywords)
    )


def parse_cluster_markdown(
    markdown: str,
    allowed_keywords: list[str] | None = None,
) -> dict[str, list[str]]:
    """Parse "## Cluster:" markdown into {cluster name: [keywords]}.

    Args:
        markdown: LLM output
        allowed_keywords: If given, keywords not in this list (compared
            case- and space-insensitively) are dropped and the rest are
            returned in the list's spelling

    Returns:
        Non-empty clusters in document order; a keyword appearing in more
        than one cluster stays in the first.
    """
    allowed = (
        {normalize_keyword(kw): kw for kw in allowed_keywords}
        if allowed_keywords is not None
        else None
    )
    clusters: dict[str, list[str]] = {}
    assigned: set[str] = set()
    current: str | None = None

    for line in markdown.splitlines():
        header = CLUSTER_HEADER_PATTERN.match(line.strip())
        if header:
            current = header.group(1).strip()
            clusters.setdefault(current, [])
            continue

        bullet = BULLET_PATTERN.match(line)
        if bullet is None or current is None:
            continue

        keyword = bullet.group(1).strip()
        key = normalize_keyword(keyword)
        if not key or key in assigned:
            continue
        if allowed is not None:
            if key not in allowed:
                continue
            keyword = allowed[key]
        assigned.add(key)
        clusters[current].append(keyword)

    return {name: keywords for name, keywords in clusters.items() if keywords}


def _long_tail(keyword: str, main_keyword: str) -> str:
    if CJK_PATTERN.search(main_keyword):
        main_chars = set(main_keyword)
        remainder = "".join(char for char in keyword if char not in main_chars)
    else:
        pattern = re.compile(rf"\b{re.escape(main_keyword)}\b", re.IGNORECASE)
        remainder = pattern.sub("", keyword)
    return " ".join(remainder.split())


def calculate_clusters_with_volume(
    clusters: dict[str, list[str]],
    volume_items: list[VolumeItem],
) -> list[ClusterWithVolume]:
    """Annotate clusters with volumes, main keyword and long-tail fragments."""
    volume_by_key = {normalize_keyword(item.text): item for item in volume_items}
    annotated: list[ClusterWithVolume] = []

    for name, keywords in clusters.items():
        items = [
            volume_by_key.get(normalize_keyword(kw)) or VolumeItem(text=kw.strip())
            for kw in keywords
        ]
        if not items:
            continue

        # sorted() is stable: the first keyword wins volume ties
        ranked = sorted(items, key=lambda item: item.search_volume, reverse=True)
        main_keyword = ranked[0].text

        long_tail: list[str] = []
        for item in ranked:
            fragment = _long_tail(item.text, main_keyword)
            if fragment and fragment != item.text and fragment not in long_tail:
                long_tail.append(fragment)

        annotated.append(
            ClusterWithVolume(
                cluster_name=name,
                main_keyword=main_keyword,
                total_volume=sum(item.search_volume for item in items),
                keywords=ranked,
                long_tail_keywords=long_tail,
            )
        )
    return annotated


class ClusterGenerator:
    """Generates keyword clusters with the LLM."""

    def __init__(self, claude: ClaudeClient) -> None:
        self._claude = claude

    async def generate_clusters(self, keywords: list[str]) -> dict[str, list[str]]:
        """Cluster keywords.

        Raises:
            WorkflowError: If the LLM call fails or returns no usable clusters
        """
        start_time = time.monotonic()
        result = await self._claude.complete(
            build_clustering_prompt(keywords),
            system_prompt=CLUSTERING_SYSTEM_PROMPT,
        )
        if not result.success:
            raise WorkflowError(f"AI clustering request failed: {result.error}")

        clusters = parse_cluster_markdown(result.text or "", allowed_keywords=keywords)
        if not clusters:
            logger.warning(
                "AI clustering output contained no clusters",
                extra={
                    "keyword_count": len(keywords),
                    "output_preview": (result.text or "")[:200],
                },
            )
            raise WorkflowError("AI clustering returned no parsable clusters")

        logger.info(
            "AI clustering completed",
            extra={
                "keyword_count": len(keywords),
                "cluster_count": len(clusters),
                "clustered_keyword_count": sum(len(v) for v in clusters.values()),
                "duration_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )
        return clusters
