"""
基础仓库模式 - 签名与报告的存取接口
The engine depends only on get/put semantics plus a whole-set replace for
reports; storage engines plug in behind these interfaces.
"""
import copy
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from veriwrite.core.logging import get_logger
from veriwrite.models.detection import SubmissionReport
from veriwrite.services.minhash_filter import Signature

logger = get_logger(__name__)


class SignatureStore(ABC):
    """submission_id -> Signature"""

    @abstractmethod
    async def get(self, submission_id: str) -> Optional[Signature]:
        pass

    @abstractmethod
    async def put(self, submission_id: str, signature: Signature) -> None:
        """Store or replace the signature of a submission."""
        pass

    @abstractmethod
    async def delete(self, submission_id: str) -> bool:
        pass

    async def get_many(self, submission_ids: Iterable[str]) -> Dict[str, Signature]:
        """批量获取 - 缺失的键不出现在结果中"""
        found: Dict[str, Signature] = {}
        for submission_id in submission_ids:
            signature = await self.get(submission_id)
            if signature is not None:
                found[submission_id] = signature
        return found


class ReportStore(ABC):
    """assignment_id -> {student_id: SubmissionReport}"""

    @abstractmethod
    async def get_reports(self, assignment_id: str) -> Dict[str, SubmissionReport]:
        pass

    @abstractmethod
    async def replace_reports(self, assignment_id: str, reports: Dict[str, SubmissionReport]) -> None:
        """Atomically replace the whole report set of an assignment."""
        pass

    @abstractmethod
    async def delete_reports(self, assignment_id: str) -> bool:
        pass

    async def get_report(self, assignment_id: str, student_id: str) -> Optional[SubmissionReport]:
        reports = await self.get_reports(assignment_id)
        return reports.get(student_id)


class InMemorySignatureStore(SignatureStore):
    """内存仓库实现 - 用于测试和单进程场景"""

    def __init__(self):
        self._storage: Dict[str, Signature] = {}

    async def get(self, submission_id: str) -> Optional[Signature]:
        return self._storage.get(submission_id)

    async def put(self, submission_id: str, signature: Signature) -> None:
        self._storage[submission_id] = signature
        logger.debug("内存仓库写入签名", submission_id=submission_id)

    async def delete(self, submission_id: str) -> bool:
        return self._storage.pop(submission_id, None) is not None

    def __len__(self) -> int:
        return len(self._storage)


class InMemoryReportStore(ReportStore):
    """内存仓库实现 - 整体替换报告集"""

    def __init__(self):
        self._storage: Dict[str, Dict[str, SubmissionReport]] = {}

    async def get_reports(self, assignment_id: str) -> Dict[str, SubmissionReport]:
        return copy.deepcopy(self._storage.get(assignment_id, {}))

    async def replace_reports(self, assignment_id: str, reports: Dict[str, SubmissionReport]) -> None:
        # Single assignment of a fully built mapping
        self._storage[assignment_id] = copy.deepcopy(reports)
        logger.debug("内存仓库替换报告集", assignment_id=assignment_id, count=len(reports))

    async def delete_reports(self, assignment_id: str) -> bool:
        return self._storage.pop(assignment_id, None) is not None
