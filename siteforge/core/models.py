"""Data models for the site generation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, other: Optional["TokenUsage"]) -> "TokenUsage":
        if other is not None:
            self.input_tokens += other.input_tokens
            self.output_tokens += other.output_tokens
        return self

    def to_dict(self) -> dict:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "TokenUsage":
        if not data:
            return cls()

        def safe_int(val: Any) -> int:
            try:
                return max(0, int(val))
            except (TypeError, ValueError):
                return 0

        return cls(
            input_tokens=safe_int(data.get("input_tokens", data.get("inputTokens"))),
            output_tokens=safe_int(data.get("output_tokens", data.get("outputTokens"))),
        )


@dataclass
class Site:
    """The generated artifact: every file of the site keyed by path."""

    domain: str
    files: Dict[str, str] = field(default_factory=dict)
    history: List[str] = field(default_factory=list)
    types: List[str] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "files": dict(self.files),
            "history": list(self.history),
            "types": list(self.types),
            "usage": self.usage.to_dict(),
            "model": self.model,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Site":
        files = data.get("files", {})
        if not isinstance(files, dict):
            files = {}
        return cls(
            domain=str(data.get("domain", "site")),
            files={str(k): "" if v is None else str(v) for k, v in files.items()},
            history=[str(h) for h in data.get("history", []) or []],
            types=[str(t) for t in data.get("types", []) or []],
            usage=TokenUsage.from_dict(data.get("usage")),
            model=data.get("model"),
        )


@dataclass(slots=True)
class Section:
    type: str
    title: str
    details: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Section":
        return cls(
            type=str(data.get("type") or "section").strip().lower(),
            title=str(data.get("title") or ""),
            details=str(data.get("details") or ""),
        )


@dataclass
class SitePlan:
    creative_brief: str
    primary_color: str
    font: str
    sections: List[Section] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "SitePlan":
        theme = data.get("theme") or {}
        if not isinstance(theme, dict):
            theme = {}
        raw_sections = data.get("sections") or []
        return cls(
            creative_brief=str(data.get("creativeBrief") or ""),
            primary_color=str(theme.get("primaryColor") or "indigo-500"),
            font=str(theme.get("font") or "Inter"),
            sections=[Section.from_dict(s) for s in raw_sections if isinstance(s, dict)],
        )


@dataclass(frozen=True)
class GenerationTask:
    """One unit of work for the content-generation service.

    ``index`` is the position assigned by the planning step; results are
    re-assembled in submission order using it.
    """

    index: int
    kind: str
    params: Dict[str, Any] = field(default_factory=dict)
    model: Optional[str] = None


@dataclass
class GenerationResult:
    index: int
    content: Dict[str, Any]
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: Optional[str] = None
    fallback: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class ElementReference:
    tag_name: Optional[str] = None
    id: Optional[str] = None
    structural_path: Optional[str] = None
    literal_markup: Optional[str] = None


@dataclass(frozen=True)
class DiffStats:
    added: int
    removed: int


@dataclass(frozen=True)
class Revision:
    before: str
    after: str
    timestamp: float
    added_lines: int
    removed_lines: int

    def to_dict(self) -> dict:
        return {
            "before": self.before,
            "after": self.after,
            "ts": self.timestamp,
            "added": self.added_lines,
            "removed": self.removed_lines,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Revision":
        return cls(
            before=str(data.get("before", "")),
            after=str(data.get("after", "")),
            timestamp=float(data.get("ts", 0.0)),
            added_lines=int(data.get("added", 0)),
            removed_lines=int(data.get("removed", 0)),
        )


@dataclass(frozen=True)
class FileUpsert:
    path: str
    content: str
