"""
检测数据模型 - 报告输出结构
Field names serialize with the camelCase aliases the report/UI layer reads.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SeverityLevel(str, Enum):
    """Coarse severity band for a similarity score."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class SubmissionStatus(str, Enum):
    CHECKED = "checked"
    NOT_CHECKED = "not_checked"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class MatchedSpan(_CamelModel):
    """A contiguous run of tokens shared by two documents."""
    text: str
    left_start: int = Field(alias="leftStart")
    left_end: int = Field(alias="leftEnd")
    right_start: int = Field(alias="rightStart")
    right_end: int = Field(alias="rightEnd")
    percent: float


class TopMatch(_CamelModel):
    matched_student_id: str = Field(alias="matchedStudentId")
    matched_text: Optional[str] = Field(default=None, alias="matchedText")
    plagiarism_percent: float = Field(alias="plagiarismPercent")


class AllMatch(_CamelModel):
    matched_student_id: str = Field(alias="matchedStudentId")
    plagiarism_percent: float = Field(alias="plagiarismPercent")


class SubmissionReport(_CamelModel):
    """Result of one batch run for one student."""
    student_id: str = Field(alias="studentId")
    submission_id: str = Field(alias="submissionId")
    status: SubmissionStatus = SubmissionStatus.CHECKED
    plagiarism_percent: Optional[float] = Field(default=None, alias="plagiarismPercent")
    top_matches: List[TopMatch] = Field(default_factory=list, alias="topMatches")
    all_matches: List[AllMatch] = Field(default_factory=list, alias="allMatches")
    min_hash_signature: Optional[List[int]] = Field(default=None, alias="minHashSignature")
    word_count: int = Field(default=0, alias="wordCount")
    reason: Optional[str] = None

    @property
    def is_checked(self) -> bool:
        return self.status == SubmissionStatus.CHECKED


class OnlineMatch(_CamelModel):
    link: str
    title: str
    similarity: float
    level: SeverityLevel
    snippet: Optional[str] = Field(default=None, exclude=True)


class OnlineCheckResult(_CamelModel):
    score: float = 0
    matches: List[OnlineMatch] = Field(default_factory=list)
    queries: int = Field(default=0, exclude=True)
    failed_queries: int = Field(default=0, exclude=True)

    def top(self, n: int) -> "OnlineCheckResult":
        return OnlineCheckResult(score=self.score, matches=self.matches[:n],
                                 queries=self.queries, failed_queries=self.failed_queries)


class HighlightedWord(_CamelModel):
    text: str
    highlight: bool


class UploadComparison(_CamelModel):
    """Pairwise result of an ad-hoc multi-upload check."""
    file1: str
    file2: str
    similarity: float
    level: SeverityLevel
    text1: List[HighlightedWord] = Field(default_factory=list)
    text2: List[HighlightedWord] = Field(default_factory=list)
