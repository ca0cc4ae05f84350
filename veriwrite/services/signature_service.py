"""
签名服务 - 文本提取接入、签名计算与缓存
A stored signature is reused only while it matches the current hash
configuration and signature length and the digest of the submission's text.
"""
import asyncio
import inspect
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Tuple

from veriwrite.core.config import Settings
from veriwrite.core.errors import EmptyShingleSetError, ExtractionFailureError
from veriwrite.core.logging import LogEvent
from veriwrite.models.document import Submission
from veriwrite.repositories.base import InMemorySignatureStore, SignatureStore
from veriwrite.services.base_service import BaseService
from veriwrite.services.minhash_filter import MinHashSigner, Signature
from veriwrite.services.text_processor import content_digest, word_count


class NotCheckedReason:
    """Reasons recorded on reports of submissions that were not compared."""
    EXTRACTION_FAILED = "extraction_failed"
    NO_TEXT = "no_text"
    CONFIGURATION_MISMATCH = "configuration_mismatch"


class TextExtractor(Protocol):
    """External extraction collaborator: file -> (text, word_count), or raises."""

    async def extract_text(self, file: Any) -> Tuple[str, int]:
        ...


@dataclass
class SignatureLookup:
    submission: Submission
    signature: Optional[Signature] = None
    reason: Optional[str] = None
    cache_hit: bool = False

    @property
    def usable(self) -> bool:
        return self.signature is not None


class SignatureService(BaseService):
    """签名服务 - 计算、缓存、替换和丢弃提交的签名"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        signer: Optional[MinHashSigner] = None,
        store: Optional[SignatureStore] = None,
    ):
        super().__init__(settings)
        self.signer = signer or MinHashSigner(self.settings)
        self.store = store if store is not None else InMemorySignatureStore()

    async def ingest(
        self,
        extractor: TextExtractor,
        submission_id: str,
        student_id: str,
        file: Any,
        submitted_at: Optional[datetime] = None,
    ) -> Submission:
        """Extract text and sign it; an extraction failure marks the submission instead of raising."""
        submission = Submission(
            submission_id=submission_id,
            student_id=student_id,
            submitted_at=submitted_at or datetime.now(timezone.utc),
        )
        try:
            extracted = extractor.extract_text(file)
            if inspect.isawaitable(extracted):
                extracted = await extracted
            text, count = extracted
        except Exception as e:
            error = e if isinstance(e, ExtractionFailureError) else ExtractionFailureError(
                str(e), submission_id=submission_id, original_error=e
            )
            self.logger.warning(
                LogEvent.EXTRACTION_FAILED,
                submission_id=submission_id,
                student_id=student_id,
                error=error.message,
            )
            submission.extraction_error = error.message
            return submission

        submission.text = text
        submission.word_count = count or word_count(text)
        if submission.has_text:
            try:
                await self.replace(submission)
            except EmptyShingleSetError:
                # Punctuation-only text: nothing to sign, reported later as no_text
                await self.discard(submission_id)
        return submission

    def compute(self, submission: Submission) -> Signature:
        """Sign the submission's text; raises EmptyShingleSetError when it has no tokens."""
        signature = self.signer.sign_text(submission.text or "", document_id=submission.submission_id)
        self.logger.debug(
            LogEvent.SIGNATURE_COMPUTED,
            submission_id=submission.submission_id,
            config_id=signature.config_id,
        )
        return signature

    async def replace(self, submission: Submission) -> Signature:
        """Recompute and store; the previous signature of the submission is overwritten."""
        signature = await asyncio.to_thread(self.compute, submission)
        await self.store.put(submission.submission_id, signature)
        return signature

    async def discard(self, submission_id: str) -> bool:
        removed = await self.store.delete(submission_id)
        if removed:
            self.logger.info(LogEvent.SIGNATURE_DISCARDED, submission_id=submission_id)
        return removed

    def is_current(self, signature: Signature, submission: Submission) -> bool:
        if signature.config_id != self.signer.config_id:
            return False
        if len(signature) != self.signer.num_perm:
            return False
        if submission.has_text:
            return signature.digest == content_digest(submission.text)
        return True

    async def resolve(self, submission: Submission) -> SignatureLookup:
        """Find a usable signature for a submission, recomputing stale ones when text allows."""
        if submission.extraction_error:
            return SignatureLookup(submission, reason=NotCheckedReason.EXTRACTION_FAILED)

        cached = await self.store.get(submission.submission_id)
        if cached is not None and self.is_current(cached, submission):
            self.logger.debug(LogEvent.SIGNATURE_CACHE_HIT, submission_id=submission.submission_id)
            return SignatureLookup(submission, signature=cached, cache_hit=True)

        if cached is not None:
            self.logger.info(
                LogEvent.SIGNATURE_STALE,
                submission_id=submission.submission_id,
                cached_config=cached.config_id,
                current_config=self.signer.config_id,
                cached_length=len(cached),
            )

        if not submission.has_text:
            reason = NotCheckedReason.CONFIGURATION_MISMATCH if cached is not None else NotCheckedReason.NO_TEXT
            return SignatureLookup(submission, reason=reason)

        try:
            signature = await self.replace(submission)
        except EmptyShingleSetError:
            return SignatureLookup(submission, reason=NotCheckedReason.NO_TEXT)
        return SignatureLookup(submission, signature=signature)
