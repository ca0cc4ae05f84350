from unittest.mock import AsyncMock, MagicMock

import pytest

from veriwrite.core.errors import ExtractionFailureError
from veriwrite.repositories.base import InMemorySignatureStore
from veriwrite.services.minhash_filter import Signature
from veriwrite.services.signature_service import NotCheckedReason, SignatureService

from conftest import ESSAY_A, ESSAY_B, make_submission


@pytest.fixture
def store():
    return InMemorySignatureStore()


@pytest.fixture
def service(settings, store):
    return SignatureService(settings, store=store)


class TestIngest:
    @pytest.mark.asyncio
    async def test_signs_extracted_text(self, service, store):
        extractor = AsyncMock()
        extractor.extract_text.return_value = (ESSAY_A, 0)

        submission = await service.ingest(extractor, "sub-1", "alice", b"%PDF")

        assert submission.text == ESSAY_A
        assert submission.word_count == len(ESSAY_A.split())
        assert submission.extraction_error is None
        assert (await store.get("sub-1")) == service.signer.sign_text(ESSAY_A)

    @pytest.mark.asyncio
    async def test_extraction_failure_marks_submission(self, service, store):
        extractor = AsyncMock()
        extractor.extract_text.side_effect = RuntimeError("corrupt file")

        submission = await service.ingest(extractor, "sub-1", "alice", b"??")

        assert submission.extraction_error is not None
        assert "corrupt file" in submission.extraction_error
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_extraction_error_kept_verbatim(self, service):
        extractor = AsyncMock()
        extractor.extract_text.side_effect = ExtractionFailureError("ocr timeout", submission_id="sub-1")

        submission = await service.ingest(extractor, "sub-1", "alice", b"??")
        assert submission.extraction_error == "Text extraction failed: ocr timeout"

    @pytest.mark.asyncio
    async def test_sync_extractor_supported(self, service, store):
        extractor = MagicMock()
        extractor.extract_text.return_value = (ESSAY_B, 42)

        submission = await service.ingest(extractor, "sub-2", "bob", "file.docx")
        assert submission.word_count == 42
        assert "sub-2" in store._storage

    @pytest.mark.asyncio
    async def test_punctuation_only_text_not_signed(self, service, store):
        extractor = AsyncMock()
        extractor.extract_text.return_value = ("?! ...", 0)

        submission = await service.ingest(extractor, "sub-3", "carl", b"")
        assert submission.extraction_error is None
        assert len(store) == 0


class TestResolve:
    @pytest.mark.asyncio
    async def test_computes_then_hits_cache(self, service):
        submission = make_submission("alice", ESSAY_A)

        first = await service.resolve(submission)
        second = await service.resolve(submission)

        assert first.usable and not first.cache_hit
        assert second.cache_hit
        assert second.signature == first.signature

    @pytest.mark.asyncio
    async def test_changed_text_recomputed(self, service, store):
        submission = make_submission("alice", ESSAY_A)
        await service.resolve(submission)

        submission.text = ESSAY_B
        lookup = await service.resolve(submission)

        assert not lookup.cache_hit
        assert lookup.signature == service.signer.sign_text(ESSAY_B)
        assert (await store.get(submission.submission_id)) == lookup.signature

    @pytest.mark.asyncio
    async def test_extraction_error_not_checked(self, service):
        lookup = await service.resolve(make_submission("alice", extraction_error="bad scan"))
        assert not lookup.usable
        assert lookup.reason == NotCheckedReason.EXTRACTION_FAILED

    @pytest.mark.asyncio
    async def test_no_text_no_cache(self, service):
        lookup = await service.resolve(make_submission("alice"))
        assert lookup.reason == NotCheckedReason.NO_TEXT

    @pytest.mark.asyncio
    async def test_cached_signature_used_without_text(self, service, store):
        submission = make_submission("alice", ESSAY_A)
        signature = await service.replace(submission)

        submission.text = None
        lookup = await service.resolve(submission)
        assert lookup.cache_hit
        assert lookup.signature == signature

    @pytest.mark.asyncio
    async def test_foreign_configuration_without_text(self, service, store):
        submission = make_submission("alice")
        await store.put(submission.submission_id, Signature(values=[1] * 128, config_id="v0:k5:L128:s1"))

        lookup = await service.resolve(submission)
        assert lookup.reason == NotCheckedReason.CONFIGURATION_MISMATCH

    @pytest.mark.asyncio
    async def test_foreign_configuration_recomputed_from_text(self, service, store):
        submission = make_submission("alice", ESSAY_A)
        await store.put(submission.submission_id, Signature(values=[1] * 128, config_id="v0:k5:L128:s1"))

        lookup = await service.resolve(submission)
        assert lookup.usable
        assert (await store.get(submission.submission_id)).config_id == service.signer.config_id

    @pytest.mark.asyncio
    async def test_truncated_signature_without_text(self, service, store, settings):
        submission = make_submission("zed")
        await store.put(submission.submission_id, Signature(values=[1, 2, 3], config_id=settings.signature_config_id))

        lookup = await service.resolve(submission)
        assert not lookup.usable
        assert lookup.reason == NotCheckedReason.CONFIGURATION_MISMATCH

    @pytest.mark.asyncio
    async def test_truncated_signature_recomputed_from_text(self, service, store, settings):
        submission = make_submission("zed", ESSAY_A)
        truncated = Signature(values=[1, 2, 3], config_id=settings.signature_config_id)
        await store.put(submission.submission_id, truncated)
        assert not service.is_current(truncated, submission)

        lookup = await service.resolve(submission)
        assert lookup.usable
        assert not lookup.cache_hit
        assert len(lookup.signature) == settings.signature_length
        assert len(await store.get(submission.submission_id)) == settings.signature_length

    @pytest.mark.asyncio
    async def test_discard(self, service, store):
        submission = make_submission("alice", ESSAY_A)
        await service.replace(submission)
        assert await service.discard(submission.submission_id) is True
        assert await service.discard(submission.submission_id) is False
