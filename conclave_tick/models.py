"""Core data models for the Conclave tick."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Category(str, Enum):
    ORACLE = "oracle"
    IDENTITY = "identity"
    GOVERNANCE = "governance"
    MARKETS = "markets"
    INTEROPERABILITY = "interoperability"
    PRIVACY = "privacy"
    UNKNOWN = "unknown"


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (list, tuple)):
        return len(value)
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first(payload: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None and value != "":
            return value
    return None


@dataclass
class Debate:
    """A joinable debate as reported by ``GET /debates``."""

    id: Optional[str]
    phase: str = ""
    occupancy: int = 0
    capacity: int = 0
    title: str = ""
    brief: str = ""
    description: str = ""

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Debate":
        identifier = _first(payload, "id", "debateId")
        occupancy = _first(payload, "currentPlayers", "occupancy", "players")
        capacity = _first(payload, "playerCount", "maxPlayers", "capacity")
        return cls(
            id=_as_text(identifier) or None,
            phase=_as_text(payload.get("phase") or payload.get("status")).lower(),
            occupancy=max(0, _as_int(occupancy)),
            capacity=max(0, _as_int(capacity)),
            title=_as_text(_first(payload, "title", "name", "topic")),
            brief=_as_text(payload.get("brief")),
            description=_as_text(payload.get("description")),
        )

    @property
    def text(self) -> str:
        return " ".join(part for part in (self.title, self.brief, self.description) if part)


@dataclass
class Option:
    """An idea competing inside a debate; the unit of allocation."""

    id: Optional[str]
    ticker: str = ""
    name: str = ""
    author: str = ""
    description: str = ""
    comment_count: int = 0
    refine_count: int = 0
    comment_authors: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Option":
        comments = payload.get("comments")
        authors: List[str] = []
        if isinstance(comments, list):
            for comment in comments:
                if isinstance(comment, dict):
                    author = _as_text(_first(comment, "author", "agent", "name"))
                    if author:
                        authors.append(author)
        comment_count = _as_int(
            comments if comments is not None else payload.get("commentCount")
        )
        refinements = _first(payload, "refinements", "refineCount", "refinementCount")
        author = payload.get("author")
        if isinstance(author, dict):
            author = _first(author, "name", "username")
        return cls(
            id=_as_text(_first(payload, "id", "ideaId")) or None,
            ticker=_as_text(payload.get("ticker")).upper(),
            name=_as_text(payload.get("name")),
            author=_as_text(author),
            description=_as_text(payload.get("description")),
            comment_count=comment_count,
            refine_count=_as_int(refinements),
            comment_authors=authors,
        )

    @property
    def activity(self) -> int:
        return self.comment_count + self.refine_count

    @property
    def label(self) -> str:
        return self.ticker or self.name or str(self.id)

    @property
    def text(self) -> str:
        return " ".join(part for part in (self.name, self.description) if part)


@dataclass
class Status:
    """Participation snapshot returned by ``GET /status``."""

    in_debate: bool
    phase: str = ""
    debate_id: Optional[str] = None
    idea_id: Optional[str] = None
    brief: str = ""
    ideas: List[Option] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Status":
        debate = payload.get("debate") if isinstance(payload.get("debate"), dict) else {}
        ideas_raw = payload.get("ideas")
        if ideas_raw is None:
            ideas_raw = debate.get("ideas")
        ideas = [
            Option.from_payload(item)
            for item in (ideas_raw or [])
            if isinstance(item, dict)
        ]
        idea = payload.get("idea") if isinstance(payload.get("idea"), dict) else {}
        return cls(
            in_debate=bool(payload.get("inDebate")),
            phase=_as_text(payload.get("phase") or debate.get("phase")).lower(),
            debate_id=_as_text(_first(payload, "debateId") or debate.get("id")) or None,
            idea_id=_as_text(_first(payload, "ideaId", "myIdeaId") or idea.get("id")) or None,
            brief=_as_text(payload.get("brief") or debate.get("brief")),
            ideas=ideas,
        )


@dataclass
class ApiResponse:
    """Raw outcome of a Conclave HTTP call."""

    status: int
    text: str = ""
    json: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def error_message(self) -> str:
        if isinstance(self.json, dict):
            message = self.json.get("error") or self.json.get("message")
            if message:
                return str(message)
        return self.text or ""

    def snippet(self, limit: int = 220) -> str:
        return snip(self.text, limit)


@dataclass
class JoinOutcome:
    """Result of walking the ranked debate list."""

    status: str  # joined, exhausted, failed
    debate: Optional[Debate] = None
    response: Optional[ApiResponse] = None
    attempts: int = 0
    skipped: List[str] = field(default_factory=list)


@dataclass
class TickOutcome:
    """What a single tick decided and did."""

    action: str
    detail: str = ""
    notified: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


def snip(text: Optional[str], limit: int = 220) -> str:
    if not text:
        return ""
    return text[:limit] + "..." if len(text) > limit else text


__all__ = [
    "ApiResponse",
    "Category",
    "Debate",
    "JoinOutcome",
    "Option",
    "Status",
    "TickOutcome",
    "snip",
]
