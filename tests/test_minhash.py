import numpy as np
import pytest

from veriwrite.core.config import Settings
from veriwrite.core.errors import EmptyShingleSetError, InvalidInputError
from veriwrite.services.minhash_filter import LSHIndex, MinHashSigner, Signature, build_lsh_index

from conftest import ESSAY_A, ESSAY_C, SHARED_PARAGRAPH


@pytest.fixture
def signer(settings):
    return MinHashSigner(settings)


class TestMinHashSigner:
    def test_signature_length_and_config(self, signer, settings):
        signature = signer.sign_text(ESSAY_A)
        assert len(signature) == settings.signature_length == 128
        assert signature.config_id == "v1:k3:L128:s42"
        assert signature.values.dtype == np.uint64

    def test_deterministic_across_instances(self, settings):
        first = MinHashSigner(settings).sign_text(ESSAY_A)
        second = MinHashSigner(Settings(**settings.model_dump())).sign_text(ESSAY_A)
        assert first == second
        assert first.to_list() == second.to_list()

    def test_seed_changes_signature(self, settings):
        other = MinHashSigner(Settings(minhash_seed=7))
        assert other.config_id != MinHashSigner(settings).config_id
        assert other.sign_text(ESSAY_A).to_list() != MinHashSigner(settings).sign_text(ESSAY_A).to_list()

    def test_values_below_prime(self, signer, settings):
        values = signer.sign_text(ESSAY_C).to_list()
        assert all(0 <= v < settings.hash_prime for v in values)

    def test_empty_set_rejected(self, signer):
        with pytest.raises(EmptyShingleSetError):
            signer.sign(frozenset(), document_id="doc-1")

    def test_two_words_with_large_k(self):
        signer = MinHashSigner(Settings(shingle_size=4))
        signature = signer.sign_text("hello world")
        assert len(signature) == 128

    def test_digest_recorded(self, signer):
        assert signer.sign_text("Same text").digest == signer.sign_text("same TEXT!").digest

    def test_estimate_tracks_exact_jaccard(self, signer):
        left_words = " ".join(f"w{i}" for i in range(100))
        right_words = " ".join(f"w{i}" for i in range(50, 150))
        left = signer.shingler.extract(left_words)
        right = signer.shingler.extract(right_words)

        exact = MinHashSigner.exact_jaccard(left, right)
        estimate = float(np.mean(signer.sign(left).values == signer.sign(right).values))
        assert abs(exact - estimate) < 0.2

    def test_block_processing_matches_single_pass(self, settings):
        shingles = frozenset(f"s{i}" for i in range(50))
        full = MinHashSigner(settings)
        blocked = MinHashSigner(settings)
        blocked.block_size = 7
        assert full.sign(shingles) == blocked.sign(shingles)


class TestSignature:
    def test_values_are_read_only(self, signer):
        signature = signer.sign_text(ESSAY_A)
        with pytest.raises(ValueError):
            signature.values[0] = 1

    def test_serialized_form_restores_equal_value(self, signer):
        signature = signer.sign_text(ESSAY_A)
        restored = Signature.from_dict(signature.to_dict())
        assert restored == signature
        assert restored.digest == signature.digest
        assert hash(restored) == hash(signature)

    def test_config_id_part_of_equality(self):
        left = Signature(values=[1, 2, 3], config_id="a")
        right = Signature(values=[1, 2, 3], config_id="b")
        assert left != right

    def test_rejects_multi_dimensional_values(self):
        with pytest.raises(InvalidInputError):
            Signature(values=[[1, 2], [3, 4]], config_id="a")


class TestLSHIndex:
    def test_identical_documents_share_a_bucket(self, signer):
        signatures = {
            "a": signer.sign_text(SHARED_PARAGRAPH),
            "b": signer.sign_text(SHARED_PARAGRAPH),
            "c": signer.sign_text(ESSAY_C),
        }
        index = build_lsh_index(signatures, bands=32, rows=4)
        pairs = index.candidate_pairs()
        assert ("a", "b") in pairs
        assert ("a", "c") not in pairs
        assert index.query(signatures["a"], exclude_id="a") == {"b"}

    def test_rejects_short_signature(self, signer):
        index = LSHIndex(bands=64, rows=4)
        with pytest.raises(InvalidInputError):
            index.add("a", signer.sign_text(ESSAY_A))

    def test_probability_curve(self):
        index = LSHIndex.from_settings(Settings())
        assert index.probability_at_similarity(1.0) == 1.0
        assert index.probability_at_similarity(0.0) == 0.0
        assert index.probability_at_similarity(0.8) > index.probability_at_similarity(0.2)
