"""Pairwise similarity between signatures and raw texts."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

import numpy as np

from veriwrite.core.config import Settings, get_settings
from veriwrite.core.errors import ConfigurationMismatchError
from veriwrite.models.detection import MatchedSpan, SeverityLevel
from veriwrite.models.document import SourceKind
from veriwrite.services.minhash_filter import MinHashSigner, Signature
from veriwrite.services.text_alignment import TextAlignmentService
from veriwrite.services.text_processor import tokenize


def round_percent(value: float, decimals: int = 0) -> float:
    """Half-up rounding; whole numbers come back as ints."""
    quantum = Decimal(1).scaleb(-decimals)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if decimals == 0 else float(rounded)


def classify(score: float, medium_threshold: float, high_threshold: float) -> SeverityLevel:
    if score >= high_threshold:
        return SeverityLevel.HIGH
    if score >= medium_threshold:
        return SeverityLevel.MEDIUM
    return SeverityLevel.LOW


@dataclass
class MatchResult:
    """Score between two documents; symmetric in score."""
    left_id: str
    right_id: str
    score: float
    spans: List[MatchedSpan] = field(default_factory=list)

    def other(self, doc_id: str) -> str:
        return self.right_id if doc_id == self.left_id else self.left_id


class PairwiseSimilarityEngine:
    """Scores signature pairs and, on demand, extracts the overlapping text."""

    def __init__(self, settings: Optional[Settings] = None,
                 signer: Optional[MinHashSigner] = None,
                 aligner: Optional[TextAlignmentService] = None):
        self.settings = settings or get_settings()
        self.signer = signer or MinHashSigner(self.settings)
        self.aligner = aligner or TextAlignmentService(self.settings)

    def raw_similarity(self, left: Signature, right: Signature) -> float:
        """Fraction of agreeing positions, in [0, 1]."""
        if len(left) != len(right):
            raise ConfigurationMismatchError(
                "signature lengths differ", left=str(len(left)), right=str(len(right))
            )
        if left.config_id != right.config_id:
            raise ConfigurationMismatchError(
                "signatures computed under different configurations",
                left=left.config_id, right=right.config_id,
            )
        if len(left) == 0:
            return 0.0
        matches = int(np.count_nonzero(left.values == right.values))
        return matches / len(left)

    def similarity(self, left: Signature, right: Signature) -> float:
        """Estimated Jaccard similarity as a percentage at display precision."""
        return round_percent(self.raw_similarity(left, right) * 100, self.settings.score_decimals)

    def signature_for(self, text: str) -> Optional[Signature]:
        """Signature of raw text, or None when it has no shingles."""
        shingles = self.signer.shingler.extract(text)
        if not shingles:
            return None
        return self.signer.sign(shingles)

    def score_against(self, reference: Optional[Signature], text: str) -> float:
        """Score raw text against an already signed reference; an empty side scores 0."""
        if reference is None:
            return 0
        other = self.signature_for(text)
        if other is None:
            return 0
        return self.similarity(reference, other)

    def compare_texts(self, left_text: str, right_text: str) -> float:
        """Shingle, sign and score two raw texts; an empty side scores 0."""
        return self.score_against(self.signature_for(left_text), right_text)

    def matched_spans(self, left_text: str, right_text: str) -> List[MatchedSpan]:
        """Matched spans from the left document's perspective."""
        return self.aligner.find_matching_spans(left_text, right_text)

    def explain(self, left_id: str, right_id: str, left_text: str, right_text: str) -> MatchResult:
        """Score plus matched spans; used when a report is opened."""
        return MatchResult(
            left_id=left_id,
            right_id=right_id,
            score=self.compare_texts(left_text, right_text),
            spans=self.matched_spans(left_text, right_text),
        )

    def exact_overlap(self, left_text: str, right_text: str) -> float:
        """Exact word-set overlap |A∩B| / max(|A|, |B|) as a percentage."""
        left_words = set(tokenize(left_text))
        right_words = set(tokenize(right_text))
        if not left_words and not right_words:
            return 100
        if not left_words or not right_words:
            return 0
        common = len(left_words & right_words)
        return round_percent(common / max(len(left_words), len(right_words)) * 100,
                             self.settings.score_decimals)

    def classify_online(self, score: float) -> SeverityLevel:
        return classify(score, self.settings.online_medium_threshold, self.settings.online_high_threshold)

    def classify_upload(self, score: float) -> SeverityLevel:
        return classify(score, self.settings.upload_medium_threshold, self.settings.upload_high_threshold)

    def classify_source(self, score: float, source_kind: SourceKind) -> SeverityLevel:
        """Band a score with the thresholds of the compared text's origin."""
        if source_kind == SourceKind.ONLINE:
            return self.classify_online(score)
        return self.classify_upload(score)
