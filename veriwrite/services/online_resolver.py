"""
在线比对服务 - 将文本分块查询外部搜索并对候选片段打分
Snippets are scored exactly like peer documents, so online and peer
percentages are on the same scale.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from veriwrite.core.config import Settings
from veriwrite.core.errors import SearchError
from veriwrite.core.logging import LogEvent
from veriwrite.models.detection import OnlineCheckResult, OnlineMatch
from veriwrite.models.document import SearchCandidate
from veriwrite.services.base_service import BaseService
from veriwrite.services.minhash_filter import Signature
from veriwrite.services.similarity_engine import PairwiseSimilarityEngine
from veriwrite.services.text_processor import TextProcessor


class SearchClient(Protocol):
    """External search collaborator: query -> [{title, url|link, snippet}]."""

    async def search(self, query: str) -> List[Mapping[str, Any]]:
        ...


def parse_candidates(items: Optional[Iterable[Mapping[str, Any]]]) -> List[SearchCandidate]:
    """Normalize raw search hits; hits without a link or snippet are dropped."""
    candidates = []
    for item in items or ():
        link = item.get("link") or item.get("url")
        snippet = item.get("snippet")
        if not link or not snippet:
            continue
        candidates.append(SearchCandidate(title=item.get("title") or link, link=link, snippet=snippet))
    return candidates


class OnlineMatchResolver(BaseService):
    """在线匹配 - 打分、去重、排序、分级"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine: Optional[PairwiseSimilarityEngine] = None,
        text_processor: Optional[TextProcessor] = None,
    ):
        super().__init__(settings)
        self.engine = engine or PairwiseSimilarityEngine(self.settings)
        self.text_processor = text_processor or TextProcessor(self.settings)

    def _match(self, reference: Optional[Signature], candidate: SearchCandidate) -> OnlineMatch:
        document = candidate.to_document()
        score = self.engine.score_against(reference, document.text)
        return OnlineMatch(
            link=candidate.link,
            title=candidate.title,
            similarity=score,
            level=self.engine.classify_source(score, document.source_kind),
            snippet=candidate.snippet,
        )

    @staticmethod
    def _keep_best(best: Dict[str, OnlineMatch], match: OnlineMatch) -> None:
        current = best.get(match.link)
        if current is None or match.similarity > current.similarity:
            best[match.link] = match

    @staticmethod
    def _build_result(best: Dict[str, OnlineMatch], queries: int = 0, failed_queries: int = 0) -> OnlineCheckResult:
        # sorted() is stable: equal scores keep first-seen order
        matches = sorted(best.values(), key=lambda m: -m.similarity)
        return OnlineCheckResult(
            score=matches[0].similarity if matches else 0,
            matches=matches,
            queries=queries,
            failed_queries=failed_queries,
        )

    def summarize(self, result: OnlineCheckResult) -> OnlineCheckResult:
        """Only the best few sources, as shown on the submission summary."""
        return result.top(self.settings.online_top_matches)

    def score_candidates(self, reference_text: str, candidates: Sequence[SearchCandidate]) -> OnlineCheckResult:
        """Score external candidates against one reference text; score is the best match."""
        reference = self.engine.signature_for(reference_text)
        best: Dict[str, OnlineMatch] = {}
        for candidate in candidates:
            self._keep_best(best, self._match(reference, candidate))
        return self._build_result(best)

    async def _search(self, client: SearchClient, query: str) -> List[SearchCandidate]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.search_retry_attempts),
            wait=wait_exponential(multiplier=1, max=self.settings.search_retry_max_wait),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    items = await client.search(query)
        except Exception as e:
            raise SearchError(str(e), query=query, original_error=e)
        return parse_candidates(items)

    async def check(self, text: str, search_client: SearchClient) -> OnlineCheckResult:
        """Query the web chunk by chunk and rank the returned sources."""
        chunks = self.text_processor.chunk_text(text)[: self.settings.online_max_queries]
        self.logger.info(LogEvent.ONLINE_CHECK_STARTED, chunks=len(chunks), text_length=len(text))

        best: Dict[str, OnlineMatch] = {}
        failed = 0
        for chunk in chunks:
            try:
                candidates = await self._search(search_client, chunk)
            except SearchError as e:
                failed += 1
                self.logger.warning(LogEvent.SEARCH_FAILED, query=chunk[:100], error=e.message)
                continue
            reference = self.engine.signature_for(chunk)
            for candidate in candidates:
                self._keep_best(best, self._match(reference, candidate))

        result = self._build_result(best, queries=len(chunks), failed_queries=failed)
        self.logger.info(
            LogEvent.ONLINE_CHECK_COMPLETED,
            score=result.score,
            matches=len(result.matches),
            failed_queries=failed,
        )
        return result
