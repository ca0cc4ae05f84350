"""
Redis存储 - 异步Redis操作，支持JSON序列化
Signatures live under one key per submission; an assignment's report set is
one hash replaced inside a MULTI/EXEC transaction.
"""
import json
import uuid
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional, Union

import redis.asyncio as redis

from veriwrite.core.config import Settings, get_settings
from veriwrite.core.errors import RedisError
from veriwrite.core.logging import LogEvent, get_logger
from veriwrite.models.detection import SubmissionReport
from veriwrite.repositories.base import ReportStore, SignatureStore
from veriwrite.services.minhash_filter import Signature

logger = get_logger(__name__)


class RedisRepository:
    """Redis仓库 - 异步操作，支持JSON序列化和TTL管理"""

    def __init__(self, redis_client: Optional[redis.Redis] = None, settings: Optional[Settings] = None):
        self._client = redis_client
        self._connected = False
        self.settings = settings or get_settings()

    @property
    def client(self) -> redis.Redis:
        """获取Redis客户端，延迟连接"""
        if self._client is None:
            self._client = redis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                retry_on_timeout=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
        return self._client

    def key(self, *parts: str) -> str:
        return ":".join((self.settings.redis_key_prefix, *parts))

    async def connect(self) -> bool:
        """建立Redis连接"""
        try:
            await self.client.ping()
            self._connected = True
            logger.info("Redis连接成功", url=self.settings.redis_url)
            return True
        except Exception as e:
            logger.error("Redis连接失败", error=str(e))
            self._connected = False
            return False

    async def disconnect(self):
        """关闭Redis连接"""
        if self._client:
            await self._client.aclose()
            self._connected = False
            logger.info("Redis连接已关闭")

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[Union[int, timedelta]] = None,
    ) -> bool:
        """设置JSON值, ttl为None或0时不过期"""
        try:
            ex = None
            if ttl:
                ex = int(ttl.total_seconds()) if isinstance(ttl, timedelta) else ttl

            result = await self.client.set(key, json.dumps(value, ensure_ascii=False), ex=ex)
            logger.debug("缓存设置成功", key=key, ttl=ex)
            return bool(result)
        except Exception as e:
            logger.error(LogEvent.REDIS_ERROR, operation="set", key=key, error=str(e))
            raise RedisError(f"Failed to set value: {e}", "set")

    async def get(self, key: str, default: Any = None) -> Any:
        """获取JSON值"""
        try:
            value = await self.client.get(key)
        except Exception as e:
            logger.error(LogEvent.REDIS_ERROR, operation="get", key=key, error=str(e))
            raise RedisError(f"Failed to get value: {e}", "get")

        if value is None:
            logger.debug("缓存未命中", key=key)
            return default
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise RedisError(f"Corrupt JSON under {key}: {e}", "get")

    async def delete(self, key: str) -> bool:
        """删除键"""
        try:
            result = await self.client.delete(key)
            logger.debug("缓存删除", key=key, deleted=bool(result))
            return bool(result)
        except Exception as e:
            logger.error(LogEvent.REDIS_ERROR, operation="delete", key=key, error=str(e))
            raise RedisError(f"Failed to delete key: {e}", "delete")

    async def hgetall(self, key: str) -> Dict[str, Any]:
        """获取哈希的所有字段"""
        try:
            result = await self.client.hgetall(key)
        except Exception as e:
            logger.error(LogEvent.REDIS_ERROR, operation="hgetall", key=key, error=str(e))
            raise RedisError(f"Failed to get all hash: {e}", "hgetall")

        try:
            return {field: json.loads(value) for field, value in (result or {}).items()}
        except json.JSONDecodeError as e:
            raise RedisError(f"Corrupt JSON under {key}: {e}", "hgetall")

    async def replace_hash(self, key: str, mapping: Mapping[str, Any]) -> None:
        """Replace a whole hash in one transaction; readers never see a mix."""
        payload = {field: json.dumps(value, ensure_ascii=False) for field, value in mapping.items()}
        staging_key = f"{key}:staging:{uuid.uuid4().hex}"
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                if payload:
                    pipe.hset(staging_key, mapping=payload)
                    pipe.rename(staging_key, key)
                else:
                    pipe.delete(key)
                await pipe.execute()
            logger.debug("哈希整体替换", key=key, fields=len(payload))
        except Exception as e:
            logger.error(LogEvent.REDIS_ERROR, operation="replace_hash", key=key, error=str(e))
            raise RedisError(f"Failed to replace hash: {e}", "replace_hash")

    async def health_check(self) -> Dict[str, Any]:
        """健康检查"""
        try:
            await self.client.ping()
            return {"status": "healthy", "connected": True}
        except Exception as e:
            logger.error("Redis健康检查失败", error=str(e))
            return {"status": "unhealthy", "connected": False, "error": str(e)}


class RedisSignatureStore(SignatureStore):
    def __init__(self, repo: Optional[RedisRepository] = None):
        self.repo = repo or get_redis()

    async def get(self, submission_id: str) -> Optional[Signature]:
        payload = await self.repo.get(self.repo.key("signature", submission_id))
        return Signature.from_dict(payload) if payload else None

    async def put(self, submission_id: str, signature: Signature) -> None:
        await self.repo.set(
            self.repo.key("signature", submission_id),
            signature.to_dict(),
            ttl=self.repo.settings.redis_ttl,
        )

    async def delete(self, submission_id: str) -> bool:
        return await self.repo.delete(self.repo.key("signature", submission_id))


class RedisReportStore(ReportStore):
    def __init__(self, repo: Optional[RedisRepository] = None):
        self.repo = repo or get_redis()

    async def get_reports(self, assignment_id: str) -> Dict[str, SubmissionReport]:
        raw = await self.repo.hgetall(self.repo.key("reports", assignment_id))
        return {student_id: SubmissionReport.model_validate(payload) for student_id, payload in raw.items()}

    async def replace_reports(self, assignment_id: str, reports: Dict[str, SubmissionReport]) -> None:
        await self.repo.replace_hash(
            self.repo.key("reports", assignment_id),
            {student_id: report.to_payload() for student_id, report in reports.items()},
        )

    async def delete_reports(self, assignment_id: str) -> bool:
        return await self.repo.delete(self.repo.key("reports", assignment_id))


# 全局Redis实例
_redis_instance: Optional[RedisRepository] = None


def get_redis() -> RedisRepository:
    """获取Redis实例（单例）"""
    global _redis_instance
    if _redis_instance is None:
        _redis_instance = RedisRepository()
    return _redis_instance
