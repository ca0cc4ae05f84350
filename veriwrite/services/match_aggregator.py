"""Aggregation of pairwise results into per-student match lists."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Tuple

from veriwrite.models.detection import AllMatch, TopMatch
from veriwrite.services.similarity_engine import MatchResult


class MatchAggregator:
    """Collect pair scores for both participants, then rank per student.

    Runs single-threaded after the workers have returned; results are added
    in scheduling order so ``allMatches`` is reproducible between runs.
    """

    def __init__(self, submitted_at: Mapping[str, datetime], top_k: int = 3) -> None:
        self.submitted_at = submitted_at
        self.top_k = top_k
        self._records: Dict[str, List[Tuple[str, float]]] = {student_id: [] for student_id in submitted_at}

    def add(self, result: MatchResult) -> None:
        self._records.setdefault(result.left_id, []).append((result.right_id, result.score))
        self._records.setdefault(result.right_id, []).append((result.left_id, result.score))

    def extend(self, results: Iterable[MatchResult]) -> None:
        for result in results:
            self.add(result)

    def _rank_key(self, entry: Tuple[str, float]):
        other_id, score = entry
        # Higher score first; ties go to the earlier submission, then student id
        return (-score, self.submitted_at[other_id], other_id)

    def matches_for(self, student_id: str) -> List[Tuple[str, float]]:
        return list(self._records.get(student_id, ()))

    def ranked(self, student_id: str) -> List[Tuple[str, float]]:
        return sorted(self._records.get(student_id, ()), key=self._rank_key)

    def top_matches(self, student_id: str) -> List[TopMatch]:
        return [
            TopMatch(matched_student_id=other_id, plagiarism_percent=score)
            for other_id, score in self.ranked(student_id)[: self.top_k]
        ]

    def all_matches(self, student_id: str) -> List[AllMatch]:
        return [
            AllMatch(matched_student_id=other_id, plagiarism_percent=score)
            for other_id, score in self._records.get(student_id, ())
        ]

    def plagiarism_percent(self, student_id: str) -> float:
        """Highest score against any peer; 0 without peers."""
        records = self._records.get(student_id)
        if not records:
            return 0
        return max(score for _, score in records)
