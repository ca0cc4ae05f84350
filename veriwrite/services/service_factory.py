"""
服务工厂 - 统一的服务创建和管理
Following Linus principle: Simple and practical service management
"""
from typing import TYPE_CHECKING, Optional, Tuple

# 避免循环导入，使用TYPE_CHECKING
if TYPE_CHECKING:
    from veriwrite.core.config import Settings
    from veriwrite.repositories.base import ReportStore, SignatureStore
    from veriwrite.services.batch_comparator import BatchComparator
    from veriwrite.services.online_resolver import OnlineMatchResolver
    from veriwrite.services.signature_service import SignatureService
    from veriwrite.services.similarity_engine import PairwiseSimilarityEngine
    from veriwrite.services.text_processor import TextProcessor


class ServiceFactory:
    """
    服务工厂 - 提供统一的服务访问接口

    批量比对与签名服务共享同一个签名器和签名仓库
    """

    @staticmethod
    def get_text_processor(settings: Optional['Settings'] = None) -> 'TextProcessor':
        """获取文本处理器"""
        from veriwrite.services.text_processor import TextProcessor
        return TextProcessor(settings)

    @staticmethod
    def get_similarity_engine(settings: Optional['Settings'] = None) -> 'PairwiseSimilarityEngine':
        """获取相似度引擎"""
        from veriwrite.services.similarity_engine import PairwiseSimilarityEngine
        return PairwiseSimilarityEngine(settings)

    @staticmethod
    def get_redis_stores() -> Tuple['SignatureStore', 'ReportStore']:
        """Redis实现的签名/报告仓库"""
        from veriwrite.repositories.redis import RedisReportStore, RedisSignatureStore
        return RedisSignatureStore(), RedisReportStore()

    @staticmethod
    def get_signature_service(
        settings: Optional['Settings'] = None,
        store: Optional['SignatureStore'] = None,
        engine: Optional['PairwiseSimilarityEngine'] = None,
    ) -> 'SignatureService':
        """获取签名服务"""
        from veriwrite.services.signature_service import SignatureService
        signer = engine.signer if engine is not None else None
        return SignatureService(settings, signer=signer, store=store)

    @staticmethod
    def get_batch_comparator(
        settings: Optional['Settings'] = None,
        signature_store: Optional['SignatureStore'] = None,
        report_store: Optional['ReportStore'] = None,
    ) -> 'BatchComparator':
        """获取批量比对服务"""
        from veriwrite.services.batch_comparator import BatchComparator
        engine = ServiceFactory.get_similarity_engine(settings)
        signature_service = ServiceFactory.get_signature_service(settings, store=signature_store, engine=engine)
        return BatchComparator(
            settings,
            engine=engine,
            signature_service=signature_service,
            report_store=report_store,
        )

    @staticmethod
    def get_online_resolver(settings: Optional['Settings'] = None) -> 'OnlineMatchResolver':
        """获取在线比对服务"""
        from veriwrite.services.online_resolver import OnlineMatchResolver
        engine = ServiceFactory.get_similarity_engine(settings)
        return OnlineMatchResolver(settings, engine=engine, text_processor=ServiceFactory.get_text_processor(settings))
