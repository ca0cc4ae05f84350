"""Shared fixtures: small settings, fixed corpora and an in-process async redis stand-in."""
from datetime import datetime, timedelta, timezone

import pytest

from veriwrite.core.config import Settings
from veriwrite.core.logging import configure_logging
from veriwrite.models.document import Submission

SHARED_PARAGRAPH = (
    "Photosynthesis converts light energy into chemical energy stored in glucose. "
    "Chlorophyll molecules inside the thylakoid membranes absorb red and blue wavelengths "
    "while reflecting green light back toward the observer. The light dependent reactions "
    "split water molecules and release oxygen as a by product, whereas the Calvin cycle "
    "fixes atmospheric carbon dioxide into three carbon sugars that the plant later "
    "assembles into starch and cellulose for storage and structure."
)

ESSAY_A = (
    "My report begins with a short history of botanical experiments performed by "
    "Jan Ingenhousz during the eighteenth century in England. " + SHARED_PARAGRAPH
)

ESSAY_B = (
    SHARED_PARAGRAPH + " In conclusion these mechanisms explain why forests matter "
    "so much for regulating global climate across every continent today."
)

ESSAY_C = (
    "Medieval castles relied on thick stone walls, deep moats and narrow arrow slits. "
    "Garrisons stockpiled grain, salted meat and barrels of ale before any siege began. "
    "Engineers dug tunnels beneath fortifications hoping to collapse towers from below, "
    "while defenders listened for digging with bowls of water placed on cellar floors."
)

ESSAY_D = (
    "Volcanic eruptions eject ash plumes kilometres high into the stratosphere. "
    "Sulphur aerosols reflect sunlight and can cool the planet for several years "
    "after a major event such as Pinatubo in nineteen ninety one."
)

BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def _logging():
    configure_logging(level="WARNING", json_logs=False)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        batch_max_workers=2,
        batch_pair_chunk_size=2,
        search_retry_attempts=3,
        search_retry_max_wait=0,
        online_chunk_chars=500,
    )


def make_submission(student_id: str, text=None, minutes: int = 0, **kwargs) -> Submission:
    return Submission(
        submission_id=kwargs.pop("submission_id", f"sub-{student_id}-{minutes}"),
        student_id=student_id,
        submitted_at=BASE_TIME + timedelta(minutes=minutes),
        text=text,
        **kwargs,
    )


@pytest.fixture
def corpus():
    return [
        make_submission("alice", ESSAY_A, minutes=1),
        make_submission("bob", ESSAY_B, minutes=2),
        make_submission("carol", ESSAY_C, minutes=3),
    ]


class FakePipeline:
    """Buffers commands and applies them together on execute()."""

    def __init__(self, redis):
        self.redis = redis
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def hset(self, key, mapping):
        self.commands.append(("hset", key, dict(mapping)))
        return self

    def rename(self, src, dst):
        self.commands.append(("rename", src, dst))
        return self

    def delete(self, key):
        self.commands.append(("delete", key))
        return self

    async def execute(self):
        results = []
        for command, *args in self.commands:
            if command == "hset":
                key, mapping = args
                self.redis.hashes.setdefault(key, {}).update(mapping)
                results.append(len(mapping))
            elif command == "rename":
                src, dst = args
                self.redis.hashes[dst] = self.redis.hashes.pop(src)
                results.append(True)
            else:
                results.append(await self.redis.delete(args[0]))
        self.commands = []
        return results


class FakeRedis:
    def __init__(self):
        self.values = {}
        self.hashes = {}
        self.expiry = {}

    async def ping(self):
        return True

    async def set(self, key, value, ex=None):
        self.values[key] = value
        if ex:
            self.expiry[key] = ex
        return True

    async def get(self, key):
        return self.values.get(key)

    async def delete(self, key):
        removed = 0
        if self.values.pop(key, None) is not None:
            removed += 1
        if self.hashes.pop(key, None) is not None:
            removed += 1
        return removed

    async def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def aclose(self):
        pass


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
