"""Precise text alignment service for identifying matching text spans."""
from difflib import SequenceMatcher
from typing import List, Optional, Sequence

from veriwrite.core.config import Settings, get_settings
from veriwrite.models.detection import HighlightedWord, MatchedSpan
from veriwrite.services.text_processor import normalize_text, split_words, tokenize


class TextAlignmentService:
    """精确定位匹配文本的具体位置

    Works on raw text re-tokenized on demand; signatures cannot reconstruct
    the overlap, only estimate its size.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def find_matching_spans(
        self,
        left_text: str,
        right_text: str,
        min_run_tokens: Optional[int] = None,
    ) -> List[MatchedSpan]:
        """
        返回匹配的文本片段位置 (token offsets, end exclusive), longest first.
        Each span's percent is its length over the shorter document's token count.
        """
        if min_run_tokens is None:
            min_run_tokens = self.settings.span_min_tokens
        left_tokens = tokenize(left_text)
        right_tokens = tokenize(right_text)
        return self.align_tokens(left_tokens, right_tokens, min_run_tokens)

    def align_tokens(
        self,
        left_tokens: Sequence[str],
        right_tokens: Sequence[str],
        min_run_tokens: int,
    ) -> List[MatchedSpan]:
        shorter = min(len(left_tokens), len(right_tokens))
        if shorter == 0:
            return []

        matcher = SequenceMatcher(None, left_tokens, right_tokens, autojunk=False)
        spans = []
        for match in matcher.get_matching_blocks():
            if match.size == 0 or match.size < min_run_tokens:
                continue
            spans.append(
                MatchedSpan(
                    text=" ".join(left_tokens[match.a:match.a + match.size]),
                    left_start=match.a,
                    left_end=match.a + match.size,
                    right_start=match.b,
                    right_end=match.b + match.size,
                    percent=round(match.size / shorter * 100, 2),
                )
            )

        spans.sort(key=lambda span: (-(span.left_end - span.left_start), span.left_start))
        return spans

    def matched_text(self, left_text: str, right_text: str, separator: str = " ... ") -> str:
        """Matched spans in document order, joined for display."""
        spans = sorted(self.find_matching_spans(left_text, right_text), key=lambda s: s.left_start)
        return separator.join(span.text for span in spans)

    @staticmethod
    def highlight_matches(text: str, reference: str) -> List[HighlightedWord]:
        """Mark every word of ``text`` that also occurs anywhere in ``reference``."""
        reference_words = set(tokenize(reference))
        return [
            HighlightedWord(text=piece, highlight=is_word and normalize_text(piece) in reference_words)
            for piece, is_word in split_words(text)
        ]
