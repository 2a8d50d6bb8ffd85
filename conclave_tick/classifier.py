"""Keyword topic classification and proposal text templates."""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import yaml

from .models import Category

logger = logging.getLogger(__name__)

_TEMPLATE_PATH = Path(__file__).parent / "data" / "topic_templates.yaml"

ELLIPSIS = "..."
DEFAULT_MAX_LENGTH = 1400
DEFAULT_EXCERPT_LENGTH = 180

# Checked in this order; the first category with a matching keyword wins.
KEYWORDS: Tuple[Tuple[Category, Tuple[str, ...]], ...] = (
    (
        Category.ORACLE,
        ("oracle", "price feed", "data feed", "chainlink", "off-chain data", "twap"),
    ),
    (
        Category.IDENTITY,
        (
            "identity",
            "sybil",
            "kyc",
            "attestation",
            "credential",
            "reputation",
            "soulbound",
            "decentralized identifier",
        ),
    ),
    (
        Category.GOVERNANCE,
        ("governance", "dao", "voting", "vote", "quorum", "delegate", "treasury", "council"),
    ),
    (
        Category.MARKETS,
        (
            "market",
            "trading",
            "exchange",
            "liquidity",
            "amm",
            "orderbook",
            "order book",
            "auction",
            "lending",
        ),
    ),
    (
        Category.INTEROPERABILITY,
        ("interoperability", "interop", "bridge", "cross-chain", "crosschain", "rollup", "relayer"),
    ),
    (
        Category.PRIVACY,
        (
            "privacy",
            "private",
            "zero-knowledge",
            "zero knowledge",
            "zk",
            "encryption",
            "anonymity",
            "anonymous",
            "confidential",
            "mixer",
        ),
    ),
)

_PATTERNS: Tuple[Tuple[Category, Tuple[Tuple[str, "re.Pattern[str]"], ...]], ...] = tuple(
    (
        category,
        tuple((keyword, re.compile(r"\b" + re.escape(keyword))) for keyword in keywords),
    )
    for category, keywords in KEYWORDS
)

SECTION_TITLES = (
    ("problem", "Problem"),
    ("mechanism", "Mechanism"),
    ("onchain", "On-chain design"),
    ("incentives", "Incentives"),
    ("attacks", "Attack vectors and mitigations"),
    ("tradeoffs", "Tradeoffs"),
)

MECHANISM_MARKER = "Mechanism:"


class SafeDict(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class TemplateLibrary:
    """Loads the per-category proposal templates."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _TEMPLATE_PATH
        self._templates: Dict[str, Dict[str, str]] = {}
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            logger.warning("Topic template file missing: %s", self._path)
            self._templates = {}
            return
        with self._path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        self._templates = {
            str(category): {
                str(key): " ".join(str(value).split())
                for key, value in (sections or {}).items()
                if value is not None
            }
            for category, sections in (raw.get("categories") or {}).items()
        }

    @property
    def categories(self) -> List[str]:
        return sorted(self._templates)

    def get(self, category: Category) -> Dict[str, str]:
        return self._templates.get(category.value, {})


_LIBRARY: Optional[TemplateLibrary] = None


def get_template_library() -> TemplateLibrary:
    global _LIBRARY
    if _LIBRARY is None:
        _LIBRARY = TemplateLibrary()
    return _LIBRARY


def _normalise(text: Optional[str]) -> str:
    return " ".join(str(text or "").split())


def _matches(text: Optional[str]) -> List[Tuple[Category, str]]:
    lowered = _normalise(text).lower()
    if not lowered:
        return []
    found: List[Tuple[Category, str]] = []
    for category, patterns in _PATTERNS:
        for keyword, pattern in patterns:
            if pattern.search(lowered):
                found.append((category, keyword))
    return found


def classify(text: Optional[str]) -> Category:
    """Return the first category (in priority order) whose keywords appear."""

    found = _matches(text)
    return found[0][0] if found else Category.UNKNOWN


def truncate(text: str, max_length: int, marker: str = ELLIPSIS) -> str:
    """Cut ``text`` to at most ``max_length`` characters, ending in ``marker``."""

    if max_length <= 0:
        return ""
    if len(text) <= max_length:
        return text
    if max_length <= len(marker):
        return marker[:max_length]
    return text[: max_length - len(marker)].rstrip() + marker


def build_content(
    text: Optional[str],
    category: Category,
    *,
    max_length: int = DEFAULT_MAX_LENGTH,
    excerpt_length: int = DEFAULT_EXCERPT_LENGTH,
    library: Optional[TemplateLibrary] = None,
) -> Optional[str]:
    """Assemble the proposal body for ``category``; ``None`` for unknown topics."""

    if category == Category.UNKNOWN:
        return None
    template = (library or get_template_library()).get(category)
    if not template:
        logger.warning("No template for category %s", category.value)
        return None

    excerpt = truncate(_normalise(text), excerpt_length)
    sections: List[str] = []
    for key, title in SECTION_TITLES:
        body = excerpt if key == "problem" and excerpt else template.get(key, "")
        if body:
            sections.append(f"{title}: {body}")
    return truncate("\n\n".join(sections), max_length)


def build_comment(
    text: Optional[str],
    category: Category,
    *,
    label: str,
    max_length: int = 480,
    library: Optional[TemplateLibrary] = None,
) -> Optional[str]:
    """Short critique of another idea, or ``None`` when its topic is unknown."""

    if category == Category.UNKNOWN:
        return None
    template = (library or get_template_library()).get(category)
    comment = template.get("comment") if template else None
    if not comment:
        return None
    return truncate(comment.format_map(SafeDict(label=label or "This idea")), max_length)


def _letters(value: str) -> str:
    return "".join(char for char in value.upper() if "A" <= char <= "Z")


def _hash_letters(seed: str, length: int = 4) -> str:
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    return "".join(chr(ord("A") + byte % 26) for byte in digest[:length])


def derive_ticker(text: Optional[str], seed: Optional[str] = None) -> str:
    """Derive a 3-6 letter uppercase ticker; never fails."""

    for _, keyword in _matches(text):
        letters = _letters(keyword)
        if len(letters) >= 3:
            return letters[:6]

    words = re.findall(r"[A-Za-z]+", _normalise(text))
    initials = _letters("".join(word[0] for word in words))
    if len(initials) >= 3:
        return initials[:6]

    return _hash_letters(str(seed or text or "conclave"))


def describe(text: Optional[str]) -> Dict[str, Optional[str]]:
    """Summarise the classifier's view of ``text`` (used by preview tooling)."""

    category = classify(text)
    keywords: Sequence[str] = [keyword for _, keyword in _matches(text)]
    return {
        "category": category.value,
        "keywords": ", ".join(keywords) or None,
        "ticker": derive_ticker(text),
    }


__all__ = [
    "ELLIPSIS",
    "KEYWORDS",
    "MECHANISM_MARKER",
    "TemplateLibrary",
    "build_comment",
    "build_content",
    "classify",
    "derive_ticker",
    "describe",
    "truncate",
]
