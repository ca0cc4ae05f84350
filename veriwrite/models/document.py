"""Engine-side document and submission records."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class SourceKind(str, Enum):
    """Where the text being compared came from."""

    PEER = "peer"
    ONLINE = "online"


@dataclass(slots=True)
class Document:
    """Normalized text handed to the engine; transient."""

    id: str
    text: str
    word_count: int = 0
    source_kind: SourceKind = SourceKind.PEER


@dataclass(slots=True)
class Submission:
    """One student's submitted document for an assignment.

    ``text`` is the extracted text, or ``None`` once the pipeline has dropped
    it (a cached signature is then the only comparable form). A submission
    with ``extraction_error`` set is never compared.
    """

    submission_id: str
    student_id: str
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    text: Optional[str] = None
    word_count: int = 0
    extraction_error: Optional[str] = None

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())


@dataclass(slots=True)
class SearchCandidate:
    """A web snippet returned by the search collaborator."""

    title: str
    link: str
    snippet: str

    def to_document(self) -> Document:
        return Document(id=self.link, text=self.snippet, source_kind=SourceKind.ONLINE)

