"""Han script classification and keyword list cleaning.

Keyword research targets Traditional Chinese markets, so terms written in
Simplified-only characters are noise returned by the ad-planning provider.
Classification is a character-table heuristic: a character that only exists
in simplified form marks the text as simplified, a character from the
traditional side of a pair marks it as traditional. CJK text that uses
neither (characters shared by both scripts) is treated as traditional.
"""

import re
from enum import Enum

# Simplified -> traditional pairs for characters that differ between scripts
SIMPLIFIED_TO_TRADITIONAL: dict[str, str] = {
    "个": "個", "东": "東", "丝": "絲", "丢": "丟", "两": "兩", "严": "嚴",
    "丧": "喪", "丰": "豐", "临": "臨", "为": "為", "丽": "麗", "举": "舉",
    "么": "麼", "义": "義", "乌": "烏", "乐": "樂", "乔": "喬", "习": "習",
    "乡": "鄉", "书": "書", "买": "買", "乱": "亂", "争": "爭", "于": "於",
    "亏": "虧", "云": "雲", "亚": "亞", "产": "產", "亩": "畝", "亲": "親",
    "亵": "褻", "亿": "億", "仅": "僅", "从": "從", "仑": "侖", "仓": "倉",
    "仪": "儀", "们": "們", "价": "價", "众": "眾", "优": "優", "伙": "夥",
    "会": "會", "伟": "偉", "传": "傳", "伤": "傷", "伦": "倫", "伪": "偽",
    "体": "體", "佣": "傭", "侠": "俠", "侧": "側", "侨": "僑", "侬": "儂",
    "俣": "俁", "俦": "儔", "俨": "儼", "俩": "倆", "俭": "儉", "债": "債",
    "倾": "傾", "偬": "傯", "偻": "僂", "伥": "倀", "偾": "僨", "偿": "償",
    "杂": "雜", "鸡": "雞", "阳": "陽", "阴": "陰", "阵": "陣", "阶": "階",
    "尔": "爾", "邬": "鄔", "图": "圖", "卢": "盧", "贝": "貝", "达": "達",
    "逻": "邏", "辑": "輯", "电": "電", "脑": "腦", "说": "說", "话": "話",
    "语": "語", "时": "時", "间": "間", "长": "長", "门": "門", "问": "問",
    "车": "車", "马": "馬", "鱼": "魚", "鸟": "鳥", "热": "熱", "汤": "湯",
    "谱": "譜", "网": "網", "线": "線", "济": "濟", "经": "經", "视": "視",
    "觉": "覺", "学": "學", "实": "實", "对": "對", "开": "開", "关": "關",
    "发": "發", "机": "機", "计": "計", "设": "設", "览": "覽", "这": "這",
    "还": "還", "进": "進", "过": "過", "动": "動", "头": "頭", "业": "業",
    "药": "藥", "饭": "飯", "馆": "館", "汉": "漢", "华": "華", "楼": "樓",
    "龙": "龍", "爱": "愛", "钱": "錢", "银": "銀", "费": "費", "卖": "賣",
    "应": "應", "该": "該", "认": "認", "识": "識", "读": "讀", "写": "寫",
    "讲": "講", "医": "醫", "疗": "療", "务": "務", "岁": "歲", "颜": "顏",
    "题": "題", "页": "頁", "风": "風", "飞": "飛", "广": "廣", "厂": "廠",
    "场": "場", "区": "區", "县": "縣", "园": "園", "远": "遠", "运": "運",
    "边": "邊", "选": "選", "级": "級", "纪": "紀", "约": "約", "红": "紅",
    "绿": "綠", "蓝": "藍", "团": "團", "圆": "圓", "国": "國", "护": "護",
    "肤": "膚", "减": "減", "鲜": "鮮", "预": "預", "订": "訂",
}

SIMPLIFIED_CHARS = frozenset(SIMPLIFIED_TO_TRADITIONAL)
TRADITIONAL_CHARS = frozenset(SIMPLIFIED_TO_TRADITIONAL.values())

CJK_PATTERN = re.compile(r"[\u4e00-\u9fa5]")
CJK_ONLY_PATTERN = re.compile(r"^[\u4e00-\u9fa5\u3040-\u30ff\uac00-\ud7af]+$")

# Spaced variants are only generated for short CJK-only keywords
SPACED_VARIANT_MIN_LENGTH = 2
SPACED_VARIANT_MAX_LENGTH = 10


class ScriptType(str, Enum):
    """Han script variant of a piece of text."""

    TRADITIONAL = "traditional"
    SIMPLIFIED = "simplified"
    MIXED = "mixed"
    NONE = "none"


def classify(text: str) -> ScriptType:
    """Classify the Han script variant used in text."""
    if not text or not CJK_PATTERN.search(text):
        return ScriptType.NONE

    has_simplified = False
    has_traditional = False
    for char in text:
        if char in SIMPLIFIED_CHARS:
            has_simplified = True
        elif char in TRADITIONAL_CHARS:
            has_traditional = True

    if has_simplified and has_traditional:
        return ScriptType.MIXED
    if has_simplified:
        return ScriptType.SIMPLIFIED
    return ScriptType.TRADITIONAL


def filter_simplified(keywords: list[str]) -> list[str]:
    """Drop keywords written purely in simplified script.

    Order is preserved and duplicates are kept.
    """
    return [kw for kw in keywords if classify(kw) is not ScriptType.SIMPLIFIED]


def dedupe_case_insensitive(keywords: list[str]) -> list[str]:
    """Remove case-insensitive duplicates, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[str] = []
    for kw in keywords:
        folded = kw.casefold()
        if folded in seen:
            continue
        seen.add(folded)
        unique.append(kw)
    return unique


def to_traditional(text: str) -> str:
    """Convert simplified characters found in the pair table."""
    return "".join(SIMPLIFIED_TO_TRADITIONAL.get(char, char) for char in text)


def spaced_variant(keyword: str) -> str | None:
    """Return the character-spaced form of a short CJK-only keyword.

    The ad-planning provider reports different volumes for "電腦" and
    "電 腦", so short CJK terms are worth querying both ways.
    """
    if " " in keyword or not CJK_ONLY_PATTERN.match(keyword):
        return None
    if not SPACED_VARIANT_MIN_LENGTH <= len(keyword) <= SPACED_VARIANT_MAX_LENGTH:
        return None
    return " ".join(keyword)
