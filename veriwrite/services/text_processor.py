"""
文本处理服务 - 文本清理、分词、分块等基础功能
Every caller (peer and online comparison) goes through the same
normalization so their shingles are comparable.
"""
import hashlib
import re
from collections import OrderedDict
from typing import List, Optional, Tuple

from veriwrite.services.base_service import BaseService

_PUNCTUATION_RE = re.compile(r"[^\w\s]|_", re.UNICODE)
_WHITESPACE_RE = re.compile(r"\s+")
_WORD_SPLIT_RE = re.compile(r"(\w+)", re.UNICODE)


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    if not text:
        return ""
    lowered = text.lower()
    stripped = _PUNCTUATION_RE.sub("", lowered)
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def tokenize(text: Optional[str]) -> List[str]:
    """Normalized word tokens."""
    normalized = normalize_text(text)
    return normalized.split(" ") if normalized else []


def word_count(text: Optional[str]) -> int:
    """Whitespace-delimited word count of the raw text."""
    if not text:
        return 0
    return len(text.split())


def content_digest(text: Optional[str]) -> str:
    """Digest of the normalized text, used to detect stale cached signatures."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def split_words(text: str) -> List[Tuple[str, bool]]:
    """Split raw text into (piece, is_word) runs, keeping separators."""
    pieces = _WORD_SPLIT_RE.split(text)
    return [(piece, bool(_WORD_SPLIT_RE.fullmatch(piece))) for piece in pieces if piece]


class TextProcessor(BaseService):
    """文本处理服务 - 带简单 LRU 缓存的分词"""

    def _initialize(self):
        # Linus: "KISS" - 使用 OrderedDict 实现简单的 LRU 缓存
        self._cache: "OrderedDict[str, Tuple[str, ...]]" = OrderedDict()
        self._cache_max_size = 256

    def tokens(self, text: Optional[str]) -> Tuple[str, ...]:
        """Cached tokenization keyed by text digest."""
        self._ensure_initialized()
        if not text:
            return ()

        cache_key = hashlib.md5(text.encode("utf-8")).hexdigest()
        if cache_key in self._cache:
            self._cache.move_to_end(cache_key)
            return self._cache[cache_key]

        result = tuple(tokenize(text))
        if len(self._cache) >= self._cache_max_size:
            self._cache.popitem(last=False)
        self._cache[cache_key] = result
        return result

    def clear_cache(self) -> None:
        """清空缓存"""
        self._ensure_initialized()
        self._cache.clear()

    def chunk_text(self, text: str, max_chars: Optional[int] = None) -> List[str]:
        """
        Split text into query chunks of at most ``max_chars`` characters,
        breaking on whitespace so no word is cut. A single word longer than
        the limit becomes its own chunk.
        """
        max_chars = max_chars or self.settings.online_chunk_chars
        words = text.split()
        chunks: List[str] = []
        current: List[str] = []
        length = 0

        for word in words:
            extra = len(word) + (1 if current else 0)
            if current and length + extra > max_chars:
                chunks.append(" ".join(current))
                current, length = [], 0
                extra = len(word)
            current.append(word)
            length += extra

        if current:
            chunks.append(" ".join(current))
        return chunks
