"""MinHash signatures and LSH banding for Jaccard approximation."""
from __future__ import annotations

import hashlib
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

import numpy as np

from veriwrite.core.config import Settings, get_settings
from veriwrite.core.errors import EmptyShingleSetError, InvalidInputError
from veriwrite.core.logging import get_logger
from veriwrite.services.shingler import ShingleExtractor, ShingleSet
from veriwrite.services.text_processor import content_digest

logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class Signature:
    """Immutable MinHash signature of one document.

    ``config_id`` names the hash configuration the values were computed
    under; ``digest`` identifies the normalized text they came from.
    """
    values: np.ndarray
    config_id: str
    digest: Optional[str] = None

    def __post_init__(self):
        values = np.array(self.values, dtype=np.uint64)
        if values.ndim != 1:
            raise InvalidInputError("signature must be one-dimensional", field="values")
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    def __len__(self) -> int:
        return int(self.values.shape[0])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Signature):
            return NotImplemented
        return self.config_id == other.config_id and np.array_equal(self.values, other.values)

    def __hash__(self) -> int:
        return hash((self.config_id, self.values.tobytes()))

    def to_list(self) -> List[int]:
        return [int(v) for v in self.values]

    def to_dict(self) -> Dict[str, object]:
        return {"config_id": self.config_id, "digest": self.digest, "values": self.to_list()}

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "Signature":
        return cls(
            values=np.asarray(payload["values"], dtype=np.uint64),
            config_id=str(payload["config_id"]),
            digest=payload.get("digest"),  # type: ignore[arg-type]
        )


class MinHashSigner:
    """Computes fixed-length MinHash signatures with a seeded universal hash family."""

    # Shingles hashed per vectorized block; bounds the (L x block) work matrix.
    block_size = 4096

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.num_perm = self.settings.signature_length
        self.config_id = self.settings.signature_config_id
        self.prime = np.uint64(self.settings.hash_prime)
        self.shingler = ShingleExtractor(self.settings)
        self._a, self._b = self._generate_hash_functions()

    def _generate_hash_functions(self) -> Tuple[np.ndarray, np.ndarray]:
        """Generate hash function parameters (a, b) for h(x) = (a*x + b) % prime."""
        rng = np.random.default_rng(self.settings.minhash_seed)
        prime = int(self.prime)
        a_values = rng.integers(1, prime, size=self.num_perm, dtype=np.uint64)
        b_values = rng.integers(0, prime, size=self.num_perm, dtype=np.uint64)
        return a_values, b_values

    def _hash_shingle(self, shingle: str) -> int:
        """First 8 bytes of SHA-256, reduced below the prime so a*x fits in uint64."""
        hash_bytes = hashlib.sha256(shingle.encode("utf-8")).digest()[:8]
        return int.from_bytes(hash_bytes, byteorder="big") % int(self.prime)

    def sign(self, shingles: ShingleSet, digest: Optional[str] = None,
             document_id: Optional[str] = None) -> Signature:
        """Compute the signature of a non-empty shingle set."""
        if not shingles:
            raise EmptyShingleSetError(document_id)

        base = np.fromiter(
            (self._hash_shingle(s) for s in shingles),
            dtype=np.uint64,
            count=len(shingles),
        )
        signature = np.full(self.num_perm, self.prime, dtype=np.uint64)

        for start in range(0, base.shape[0], self.block_size):
            block = base[start:start + self.block_size]
            hashed = (np.multiply.outer(self._a, block) + self._b[:, None]) % self.prime
            np.minimum(signature, hashed.min(axis=1), out=signature)

        return Signature(values=signature, config_id=self.config_id, digest=digest)

    def sign_text(self, text: str, document_id: Optional[str] = None) -> Signature:
        """Shingle and sign raw text."""
        return self.sign(self.shingler.extract(text), digest=content_digest(text),
                         document_id=document_id)

    @staticmethod
    def exact_jaccard(left: ShingleSet, right: ShingleSet) -> float:
        """Exact Jaccard similarity (for testing/validation)."""
        if not left and not right:
            return 1.0
        union = len(left | right)
        return len(left & right) / union if union else 0.0


class LSHIndex:
    """Locality-Sensitive Hashing index for candidate-pair search."""

    def __init__(self, bands: int, rows: int):
        self.bands = bands
        self.rows = rows
        self.buckets: Dict[int, Dict[str, List[str]]] = defaultdict(dict)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LSHIndex":
        settings = settings or get_settings()
        return cls(bands=settings.lsh_bands, rows=settings.lsh_rows)

    def _hash_band(self, signature: Signature, band_idx: int) -> str:
        """Hash a band of the signature."""
        start = band_idx * self.rows
        band = signature.values[start:start + self.rows]
        return hashlib.md5(band.tobytes()).hexdigest()

    def add(self, doc_id: str, signature: Signature) -> None:
        """Add a signature to the LSH index."""
        if len(signature) < self.bands * self.rows:
            raise InvalidInputError(
                "signature shorter than bands * rows", field="signature", value=len(signature)
            )
        for band_idx in range(self.bands):
            band_hash = self._hash_band(signature, band_idx)
            self.buckets[band_idx].setdefault(band_hash, []).append(doc_id)

    def query(self, signature: Signature, exclude_id: Optional[str] = None) -> Set[str]:
        """Find candidate similar items using LSH."""
        candidates: Set[str] = set()
        for band_idx in range(self.bands):
            band_hash = self._hash_band(signature, band_idx)
            for candidate_id in self.buckets[band_idx].get(band_hash, ()):
                if candidate_id != exclude_id:
                    candidates.add(candidate_id)
        return candidates

    def candidate_pairs(self) -> List[Tuple[str, str]]:
        """Unique unordered pairs sharing at least one bucket, as sorted tuples."""
        pairs: Set[Tuple[str, str]] = set()
        for band in self.buckets.values():
            for members in band.values():
                unique = sorted(set(members))
                for i in range(len(unique)):
                    for j in range(i + 1, len(unique)):
                        pairs.add((unique[i], unique[j]))
        return sorted(pairs)

    def probability_at_similarity(self, s: float) -> float:
        """P(candidate) = 1 - (1 - s^r)^b."""
        return 1 - (1 - s ** self.rows) ** self.bands


def build_lsh_index(signatures: Dict[str, Signature], bands: int, rows: int) -> LSHIndex:
    index = LSHIndex(bands=bands, rows=rows)
    for doc_id, signature in signatures.items():
        index.add(doc_id, signature)
    logger.debug("lsh_index_built", documents=len(signatures), bands=bands, rows=rows)
    return index
