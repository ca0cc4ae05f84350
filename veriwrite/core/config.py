"""
配置管理 - 使用Pydantic Settings实现环境变量管理
Fingerprint parameters form a versioned configuration: changing any of them
invalidates every stored signature.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """应用配置类 - 所有配置项通过环境变量管理"""

    project_name: str = Field(default="VeriWrite Similarity Engine", description="项目名称")
    version: str = Field(default="1.0.0", description="版本号")

    # Fingerprinting
    shingle_size: int = Field(default=3, description="Words per shingle (k)")
    signature_length: int = Field(default=128, description="MinHash signature length (L)")
    minhash_seed: int = Field(default=42, description="Seed for the universal hash family")
    hash_prime: int = Field(default=4294967291, description="Largest prime that fits in uint32")
    signature_version: str = Field(default="v1", description="Bumped whenever hashing changes")

    # Scoring
    score_decimals: int = Field(default=0, description="Displayed precision of percentages")
    top_k_matches: int = Field(default=3, description="Peers kept in topMatches")
    span_min_tokens: int = Field(default=5, description="Shortest token run reported as a matched span")

    # Batch
    batch_max_workers: Optional[int] = Field(default=None, description="Comparison workers (None = CPU count)")
    batch_pair_chunk_size: int = Field(default=256, description="Pairs handed to a worker per task")
    batch_timeout_seconds: Optional[float] = Field(default=300.0, description="Deadline for one batch run")
    lsh_enabled: bool = Field(default=False, description="Only score LSH candidate pairs")
    lsh_bands: int = Field(default=32, description="LSH bands")
    lsh_rows: int = Field(default=4, description="Rows per LSH band")

    # Online check
    online_chunk_chars: int = Field(default=500, description="Characters per search query chunk")
    online_max_queries: int = Field(default=10, description="Search queries per online check")
    online_top_matches: int = Field(default=3, description="Matches shown in the online summary")
    search_retry_attempts: int = Field(default=3, description="Attempts per search query")
    search_retry_max_wait: float = Field(default=10.0, description="Longest backoff between attempts (s)")

    # Severity bands (percent)
    online_medium_threshold: float = Field(default=50.0, description="Online Low/Medium boundary")
    online_high_threshold: float = Field(default=75.0, description="Online Medium/High boundary")
    upload_medium_threshold: float = Field(default=50.0, description="Upload Low/Medium boundary")
    upload_high_threshold: float = Field(default=80.0, description="Upload Medium/High boundary")

    # Redis配置
    redis_url: str = Field(default="redis://localhost:6379", description="Redis连接URL")
    redis_ttl: int = Field(default=0, description="Signature TTL in seconds (0 = keep)")
    redis_key_prefix: str = Field(default="veriwrite", description="Namespace for every key")

    # Logging
    log_level: str = Field(default="INFO", description="日志级别")
    json_logs: bool = Field(default=True, description="JSON格式日志")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # 忽略未定义的环境变量
    )

    @field_validator("shingle_size", "signature_length", "top_k_matches", "span_min_tokens",
                     "batch_pair_chunk_size", "online_chunk_chars", "online_max_queries",
                     "search_retry_attempts")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("batch_max_workers")
    @classmethod
    def validate_workers(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("batch_max_workers must be positive")
        return v

    @field_validator("score_decimals")
    @classmethod
    def validate_decimals(cls, v: int) -> int:
        if not 0 <= v <= 4:
            raise ValueError("score_decimals must be between 0 and 4")
        return v

    @field_validator("online_medium_threshold", "online_high_threshold",
                     "upload_medium_threshold", "upload_high_threshold")
    @classmethod
    def validate_percent(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError("Threshold must be between 0 and 100")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @model_validator(mode="after")
    def validate_consistency(self) -> "Settings":
        if self.online_medium_threshold >= self.online_high_threshold:
            raise ValueError("online_medium_threshold must be below online_high_threshold")
        if self.upload_medium_threshold >= self.upload_high_threshold:
            raise ValueError("upload_medium_threshold must be below upload_high_threshold")
        if self.lsh_enabled and self.lsh_bands * self.lsh_rows != self.signature_length:
            raise ValueError("lsh_bands * lsh_rows must equal signature_length")
        return self

    @property
    def signature_config_id(self) -> str:
        """Identifier stamped on every signature computed under this configuration."""
        return f"{self.signature_version}:k{self.shingle_size}:L{self.signature_length}:s{self.minhash_seed}"


@lru_cache()
def get_settings() -> Settings:
    """
    获取配置单例
    使用lru_cache确保全局只有一个Settings实例
    """
    return Settings()


settings = get_settings()
