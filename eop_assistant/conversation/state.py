"""
Proposal state.

In-memory view of one session's progress through the questionnaire. The
driver mutates this; ``conversation.store`` converts it to and from the
``Proposal`` row. JSON keys use the camelCase names the web client reads.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable


@dataclass
class SectionProgress:
    completed: bool = False
    last_rule_index_asked: int = -1  # -1 = nothing asked yet
    generated_text: str | None = None
    responses: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict | None) -> "SectionProgress":
        data = data or {}
        idx = data.get("lastRuleIndexAsked")
        return cls(
            completed=bool(data.get("completed", False)),
            last_rule_index_asked=int(idx) if idx is not None else -1,
            generated_text=data.get("generatedText"),
            responses=[str(r) for r in (data.get("responses") or [])],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed": self.completed,
            "lastRuleIndexAsked": self.last_rule_index_asked,
            "generatedText": self.generated_text,
            "responses": list(self.responses),
        }


@dataclass
class ReviewState:
    completed: bool = False
    final_document: str | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "ReviewState":
        data = data or {}
        return cls(
            completed=bool(data.get("completed", False)),
            final_document=data.get("finalDocument"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"completed": self.completed, "finalDocument": self.final_document}


@dataclass
class ProposalState:
    """Holds one session's questionnaire progress plus its concurrency token."""

    session_id: str
    sections: dict[str, SectionProgress]
    review_state: ReviewState = field(default_factory=ReviewState)
    email: str | None = None
    created_at: datetime | None = None
    last_updated: datetime | None = None
    version: int = 1

    @classmethod
    def new(cls, session_id: str, section_names: Iterable[str], email: str | None = None) -> "ProposalState":
        return cls(
            session_id=session_id,
            sections={name: SectionProgress() for name in section_names},
            email=email,
        )

    def section(self, name: str) -> SectionProgress:
        """Progress for *name*, created empty if this record predates the section."""
        if name not in self.sections:
            self.sections[name] = SectionProgress()
        return self.sections[name]

    def active_section(self, section_names: Iterable[str]) -> str | None:
        """First incomplete section in catalog order, or None when all are done."""
        for name in section_names:
            if not self.section(name).completed:
                return name
        return None

    def sections_to_dict(self) -> dict[str, Any]:
        return {name: progress.to_dict() for name, progress in self.sections.items()}

    def snapshot(self) -> dict[str, Any]:
        """JSON-friendly document returned by the API and pushed to stream subscribers."""
        return {
            "sessionId": self.session_id,
            "email": self.email,
            "sections": self.sections_to_dict(),
            "reviewState": self.review_state.to_dict(),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
            "version": self.version,
        }
