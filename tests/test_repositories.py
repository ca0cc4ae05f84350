import json

import pytest

from veriwrite.core.config import Settings
from veriwrite.core.errors import RedisError, StorageError
from veriwrite.models.detection import SubmissionReport, SubmissionStatus, TopMatch
from veriwrite.repositories.base import InMemoryReportStore, InMemorySignatureStore
from veriwrite.repositories.redis import RedisReportStore, RedisRepository, RedisSignatureStore
from veriwrite.services.minhash_filter import MinHashSigner

from conftest import ESSAY_A


def report(student_id, percent=10):
    return SubmissionReport(
        student_id=student_id,
        submission_id=f"sub-{student_id}",
        plagiarism_percent=percent,
        top_matches=[TopMatch(matched_student_id="peer", plagiarism_percent=percent)],
    )


@pytest.fixture
def signature(settings):
    return MinHashSigner(settings).sign_text(ESSAY_A)


class TestInMemoryStores:
    @pytest.mark.asyncio
    async def test_signature_store(self, signature):
        store = InMemorySignatureStore()
        await store.put("sub-1", signature)

        assert await store.get("sub-1") == signature
        assert await store.get_many(["sub-1", "missing"]) == {"sub-1": signature}
        assert await store.delete("sub-1") is True
        assert await store.get("sub-1") is None

    @pytest.mark.asyncio
    async def test_report_store_replaces_whole_set(self):
        store = InMemoryReportStore()
        await store.replace_reports("hw", {"a": report("a"), "b": report("b")})
        await store.replace_reports("hw", {"c": report("c")})

        assert set(await store.get_reports("hw")) == {"c"}
        assert (await store.get_report("hw", "c")).submission_id == "sub-c"
        assert await store.get_report("hw", "a") is None

    @pytest.mark.asyncio
    async def test_report_store_isolated_from_callers(self):
        store = InMemoryReportStore()
        reports = {"a": report("a")}
        await store.replace_reports("hw", reports)

        reports["a"].plagiarism_percent = 99
        fetched = await store.get_reports("hw")
        fetched["a"].top_matches.clear()

        stored = await store.get_report("hw", "a")
        assert stored.plagiarism_percent == 10
        assert len(stored.top_matches) == 1


class TestRedisStores:
    @pytest.fixture
    def repo(self, fake_redis, settings):
        return RedisRepository(redis_client=fake_redis, settings=settings)

    @pytest.mark.asyncio
    async def test_signature_round_trip(self, repo, fake_redis, signature):
        store = RedisSignatureStore(repo)
        await store.put("sub-1", signature)

        assert "veriwrite:signature:sub-1" in fake_redis.values
        restored = await store.get("sub-1")
        assert restored == signature
        assert restored.digest == signature.digest
        assert "veriwrite:signature:sub-1" not in fake_redis.expiry

        assert await store.delete("sub-1") is True
        assert await store.get("sub-1") is None

    @pytest.mark.asyncio
    async def test_signature_ttl(self, fake_redis, signature):
        repo = RedisRepository(redis_client=fake_redis, settings=Settings(redis_ttl=60))
        await RedisSignatureStore(repo).put("sub-1", signature)
        assert fake_redis.expiry["veriwrite:signature:sub-1"] == 60

    @pytest.mark.asyncio
    async def test_reports_replaced_atomically(self, repo, fake_redis):
        store = RedisReportStore(repo)
        await store.replace_reports("hw", {"a": report("a"), "b": report("b", 40)})
        await store.replace_reports("hw", {"b": report("b", 55)})

        reports = await store.get_reports("hw")
        assert set(reports) == {"b"}
        assert reports["b"].plagiarism_percent == 55
        assert reports["b"].status == SubmissionStatus.CHECKED
        assert list(fake_redis.hashes) == ["veriwrite:reports:hw"]

        raw = json.loads(fake_redis.hashes["veriwrite:reports:hw"]["b"])
        assert raw["studentId"] == "b"
        assert raw["topMatches"][0]["matchedStudentId"] == "peer"

    @pytest.mark.asyncio
    async def test_empty_replace_clears(self, repo, fake_redis):
        store = RedisReportStore(repo)
        await store.replace_reports("hw", {"a": report("a")})
        await store.replace_reports("hw", {})
        assert await store.get_reports("hw") == {}
        assert fake_redis.hashes == {}

    @pytest.mark.asyncio
    async def test_delete_reports_and_disconnect(self, repo, fake_redis):
        store = RedisReportStore(repo)
        await store.replace_reports("hw", {"a": report("a")})

        assert await store.delete_reports("hw") is True
        assert await store.delete_reports("hw") is False
        assert await repo.connect() is True
        await repo.disconnect()
        assert repo._connected is False

    @pytest.mark.asyncio
    async def test_client_errors_wrapped(self, settings):
        class DownRedis:
            async def get(self, key):
                raise ConnectionError("connection refused")

            async def ping(self):
                raise ConnectionError("connection refused")

        repo = RedisRepository(redis_client=DownRedis(), settings=settings)
        with pytest.raises(RedisError) as exc_info:
            await RedisSignatureStore(repo).get("sub-1")
        assert isinstance(exc_info.value, StorageError)
        assert exc_info.value.details["operation"] == "get"

        assert await repo.connect() is False
        assert (await repo.health_check())["status"] == "unhealthy"
