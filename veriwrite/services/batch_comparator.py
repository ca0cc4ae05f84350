"""
批量比对服务 - 作业内所有提交的两两比对
Every run recomputes all pairs from a snapshot of the current signatures and
replaces the assignment's whole report set; a failed run writes nothing.
"""
import asyncio
import os
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import combinations
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from veriwrite.core.config import Settings
from veriwrite.core.errors import (
    BaseApplicationError,
    BatchRunError,
    BatchTimeoutError,
    ConfigurationMismatchError,
)
from veriwrite.core.logging import LogEvent
from veriwrite.models.detection import (
    SubmissionReport,
    SubmissionStatus,
    UploadComparison,
)
from veriwrite.models.document import Document, Submission
from veriwrite.repositories.base import InMemoryReportStore, ReportStore
from veriwrite.services.base_service import BaseService
from veriwrite.services.match_aggregator import MatchAggregator
from veriwrite.services.minhash_filter import Signature, build_lsh_index
from veriwrite.services.pipeline_metrics import BatchMetrics
from veriwrite.services.signature_service import NotCheckedReason, SignatureService
from veriwrite.services.similarity_engine import MatchResult, PairwiseSimilarityEngine
from veriwrite.services.text_processor import normalize_text, word_count

Pair = Tuple[str, str]


@dataclass
class ChunkResult:
    """What one worker returns; owned by that worker until it is handed back."""
    results: List[MatchResult] = field(default_factory=list)
    flagged: List[Pair] = field(default_factory=list)


@dataclass
class SigningResult:
    """Usable signatures by student, plus reports of students left out."""
    checked: Dict[str, Tuple[Submission, Signature]] = field(default_factory=dict)
    reports: Dict[str, SubmissionReport] = field(default_factory=dict)


@dataclass
class BatchOutcome:
    assignment_id: str
    reports: Dict[str, SubmissionReport]
    not_checked: List[str] = field(default_factory=list)
    flagged_pairs: List[Pair] = field(default_factory=list)
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metrics: Optional[BatchMetrics] = None

    @property
    def checked(self) -> List[str]:
        return [student_id for student_id, report in self.reports.items() if report.is_checked]


class BatchComparator(BaseService):
    """批量比对 - 签名快照、线程池打分、单线程聚合、整体替换报告"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine: Optional[PairwiseSimilarityEngine] = None,
        signature_service: Optional[SignatureService] = None,
        report_store: Optional[ReportStore] = None,
    ):
        super().__init__(settings)
        self.engine = engine or PairwiseSimilarityEngine(self.settings)
        self.signature_service = signature_service or SignatureService(self.settings, signer=self.engine.signer)
        self.report_store = report_store if report_store is not None else InMemoryReportStore()

    @property
    def max_workers(self) -> int:
        return self.settings.batch_max_workers or os.cpu_count() or 1

    @staticmethod
    def latest_per_student(submissions: Sequence[Submission]) -> Dict[str, Submission]:
        """Latest submission of each student; on equal timestamps the later entry wins."""
        latest: Dict[str, Submission] = {}
        for submission in submissions:
            current = latest.get(submission.student_id)
            if current is None or submission.submitted_at >= current.submitted_at:
                latest[submission.student_id] = submission
        return dict(sorted(latest.items()))

    def schedule_pairs(self, signatures: Mapping[str, Signature]) -> List[Pair]:
        """Unordered pairs of distinct students, in a stable order."""
        if self.settings.lsh_enabled:
            index = build_lsh_index(dict(signatures), self.settings.lsh_bands, self.settings.lsh_rows)
            return index.candidate_pairs()
        return list(combinations(sorted(signatures), 2))

    def _score_chunk(
        self,
        pairs: Sequence[Pair],
        signatures: Mapping[str, Signature],
        stop: threading.Event,
    ) -> ChunkResult:
        chunk = ChunkResult()
        for left_id, right_id in pairs:
            if stop.is_set():
                break
            try:
                score = self.engine.similarity(signatures[left_id], signatures[right_id])
            except ConfigurationMismatchError:
                chunk.flagged.append((left_id, right_id))
                continue
            chunk.results.append(MatchResult(left_id=left_id, right_id=right_id, score=score))
        return chunk

    async def _score_pairs(
        self,
        pairs: List[Pair],
        signatures: Mapping[str, Signature],
        stop: threading.Event,
        metrics: BatchMetrics,
    ) -> List[ChunkResult]:
        size = self.settings.batch_pair_chunk_size
        chunks = [pairs[i:i + size] for i in range(0, len(pairs), size)]
        if not chunks:
            return []

        workers = min(self.max_workers, len(chunks))
        metrics.workers = workers
        loop = asyncio.get_running_loop()
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="veriwrite-batch")
        try:
            futures = [
                loop.run_in_executor(executor, self._score_chunk, chunk, signatures, stop)
                for chunk in chunks
            ]
            # gather keeps chunk order, so aggregation sees pairs in scheduling order
            return list(await asyncio.gather(*futures))
        finally:
            stop.set()
            executor.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def superseded(submissions: Sequence[Submission], latest: Mapping[str, Submission]) -> List[str]:
        """Submission ids replaced by a later submission of the same student."""
        current = {submission.submission_id for submission in latest.values()}
        return sorted({s.submission_id for s in submissions} - current)

    async def _sign(self, latest: Mapping[str, Submission], metrics: BatchMetrics, logger) -> SigningResult:
        signing = SigningResult()
        with metrics.stage("signing", len(latest)) as stage:
            # resolves run concurrently; signing itself happens off the event loop
            lookups = await asyncio.gather(
                *(self.signature_service.resolve(submission) for submission in latest.values())
            )
            for student_id, lookup in zip(latest, lookups):
                submission = lookup.submission
                if lookup.cache_hit:
                    stage.cache_hits += 1
                else:
                    stage.cache_misses += 1
                if lookup.usable:
                    signing.checked[student_id] = (submission, lookup.signature)
                    continue
                logger.info(
                    LogEvent.SUBMISSION_NOT_CHECKED,
                    student_id=student_id,
                    submission_id=submission.submission_id,
                    reason=lookup.reason,
                )
                signing.reports[student_id] = self._not_checked_report(submission, lookup.reason)
            stage.items_out = len(signing.checked)
        return signing

    async def _sign_and_compare(
        self,
        latest: Mapping[str, Submission],
        stop: threading.Event,
        metrics: BatchMetrics,
        logger,
    ) -> Tuple[SigningResult, List[ChunkResult]]:
        signing = await self._sign(latest, metrics, logger)
        signatures = {student_id: signature for student_id, (_, signature) in signing.checked.items()}
        pairs = self.schedule_pairs(signatures)
        metrics.pairs_scheduled = len(pairs)
        with metrics.stage("comparing", len(pairs)):
            chunk_results = await self._score_pairs(pairs, signatures, stop, metrics)
        return signing, chunk_results

    async def run_batch(self, assignment_id: str, submissions: Sequence[Submission]) -> BatchOutcome:
        """Compare every pair of current submissions and replace the assignment's reports."""
        metrics = BatchMetrics(run_id=f"{assignment_id}:{uuid.uuid4().hex[:8]}")
        logger = self.logger.bind(assignment_id=assignment_id, run_id=metrics.run_id)
        logger.info(LogEvent.BATCH_STARTED, submissions=len(submissions))

        latest = self.latest_per_student(submissions)
        metrics.documents = len(latest)
        for submission_id in self.superseded(submissions, latest):
            await self.signature_service.discard(submission_id)

        stop = threading.Event()
        timeout = self.settings.batch_timeout_seconds
        try:
            signing, chunk_results = await asyncio.wait_for(
                self._sign_and_compare(latest, stop, metrics, logger), timeout=timeout
            )
        except asyncio.TimeoutError:
            stop.set()
            logger.error(LogEvent.BATCH_TIMEOUT, timeout=timeout, pairs=metrics.pairs_scheduled)
            raise BatchTimeoutError(assignment_id, timeout)
        except BaseApplicationError:
            stop.set()
            raise
        except Exception as e:
            stop.set()
            failed_stage = next(reversed(metrics.stages), "signing")
            logger.error(LogEvent.BATCH_FAILED, stage=failed_stage, error=str(e))
            raise BatchRunError(str(e), assignment_id, stage=failed_stage) from e

        reports = signing.reports
        checked = signing.checked
        flagged_pairs: List[Pair] = []
        with metrics.stage("aggregating", len(checked)) as stage:
            aggregator = MatchAggregator(
                submitted_at={student_id: submission.submitted_at for student_id, (submission, _) in checked.items()},
                top_k=self.settings.top_k_matches,
            )
            for chunk in chunk_results:
                aggregator.extend(chunk.results)
                metrics.pairs_scored += len(chunk.results)
                flagged_pairs.extend(chunk.flagged)

            flagged_students = set()
            for left_id, right_id in flagged_pairs:
                logger.warning(LogEvent.PAIR_FLAGGED, left=left_id, right=right_id)
                flagged_students.update((left_id, right_id))
            metrics.pairs_flagged = len(flagged_pairs)

            for student_id, (submission, signature) in checked.items():
                if student_id in flagged_students and not aggregator.matches_for(student_id):
                    # every comparison of this student was flagged: no score to report
                    logger.info(
                        LogEvent.SUBMISSION_NOT_CHECKED,
                        student_id=student_id,
                        submission_id=submission.submission_id,
                        reason=NotCheckedReason.CONFIGURATION_MISMATCH,
                    )
                    reports[student_id] = self._not_checked_report(
                        submission, NotCheckedReason.CONFIGURATION_MISMATCH
                    )
                    continue
                reports[student_id] = SubmissionReport(
                    student_id=student_id,
                    submission_id=submission.submission_id,
                    status=SubmissionStatus.CHECKED,
                    plagiarism_percent=aggregator.plagiarism_percent(student_id),
                    top_matches=aggregator.top_matches(student_id),
                    all_matches=aggregator.all_matches(student_id),
                    min_hash_signature=signature.to_list(),
                    word_count=self._word_count(submission),
                )
            reports = dict(sorted(reports.items()))
            stage.items_out = len(reports)

        not_checked = [student_id for student_id, report in reports.items() if not report.is_checked]
        with metrics.stage("persisting", len(reports)):
            await self.report_store.replace_reports(assignment_id, reports)
        logger.info(LogEvent.REPORTS_PERSISTED, reports=len(reports))

        metrics.finish()
        logger.info(
            LogEvent.BATCH_COMPLETED,
            checked=len(reports) - len(not_checked),
            not_checked=len(not_checked),
            pairs=metrics.pairs_scored,
            flagged=len(flagged_pairs),
        )
        return BatchOutcome(
            assignment_id=assignment_id,
            reports=reports,
            not_checked=not_checked,
            flagged_pairs=flagged_pairs,
            metrics=metrics,
        )

    def _not_checked_report(self, submission: Submission, reason: Optional[str]) -> SubmissionReport:
        return SubmissionReport(
            student_id=submission.student_id,
            submission_id=submission.submission_id,
            status=SubmissionStatus.NOT_CHECKED,
            word_count=self._word_count(submission),
            reason=reason,
        )

    @staticmethod
    def _word_count(submission: Submission) -> int:
        return submission.word_count or word_count(submission.text)

    def compare_uploads(self, documents: Sequence[Document]) -> List[UploadComparison]:
        """Ad-hoc check of a few uploaded texts: every pair with band and word highlighting."""
        comparisons: List[UploadComparison] = []
        for left, right in combinations(documents, 2):
            left_norm = normalize_text(left.text)
            if left_norm and left_norm == normalize_text(right.text):
                score = 100
            else:
                score = self.engine.compare_texts(left.text, right.text)
            comparisons.append(
                UploadComparison(
                    file1=left.id,
                    file2=right.id,
                    similarity=score,
                    level=self.engine.classify_source(score, left.source_kind),
                    text1=self.engine.aligner.highlight_matches(left.text, right.text),
                    text2=self.engine.aligner.highlight_matches(right.text, left.text),
                )
            )
        return comparisons

    def hydrate_matched_text(
        self,
        report: SubmissionReport,
        texts_by_student: Mapping[str, Optional[str]],
    ) -> SubmissionReport:
        """Fill ``matchedText`` of each top match from raw texts; missing texts stay None."""
        own_text = texts_by_student.get(report.student_id)
        if not own_text:
            return report

        top_matches = []
        for match in report.top_matches:
            other_text = texts_by_student.get(match.matched_student_id)
            matched = self.engine.aligner.matched_text(own_text, other_text) if other_text else None
            top_matches.append(match.model_copy(update={"matched_text": matched or None}))
        return report.model_copy(update={"top_matches": top_matches})
