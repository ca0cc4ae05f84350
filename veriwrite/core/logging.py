"""
结构化日志配置模块 - 使用structlog实现JSON格式日志
遵循清晰性原则：日志即文档，提供有意义的上下文
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import FilteringBoundLogger, Processor


def configure_logging(
    level: str = "INFO",
    json_logs: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    配置结构化日志系统

    Args:
        level: 日志级别 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: 是否输出JSON格式日志
        log_file: 日志文件路径（可选）
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ]
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.format_exc_info,
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        logging.getLogger().addHandler(file_handler)


def get_logger(
    name: str,
    **initial_context: Any
) -> FilteringBoundLogger:
    """
    获取结构化日志记录器

    Args:
        name: 日志记录器名称（通常使用模块名）
        **initial_context: 初始上下文数据
    """
    logger = structlog.get_logger(name)

    if initial_context:
        logger = logger.bind(**initial_context)

    return logger


class LogEvent:
    """标准化的日志事件类型"""

    # 签名
    SIGNATURE_COMPUTED = "signature_computed"
    SIGNATURE_CACHE_HIT = "signature_cache_hit"
    SIGNATURE_STALE = "signature_stale"
    SIGNATURE_DISCARDED = "signature_discarded"

    # 提取
    EXTRACTION_FAILED = "extraction_failed"

    # 批量检测
    BATCH_STARTED = "batch_started"
    BATCH_COMPLETED = "batch_completed"
    BATCH_FAILED = "batch_failed"
    BATCH_TIMEOUT = "batch_timeout"
    SUBMISSION_NOT_CHECKED = "submission_not_checked"
    PAIR_FLAGGED = "pair_flagged"
    REPORTS_PERSISTED = "reports_persisted"

    # 在线检测
    ONLINE_CHECK_STARTED = "online_check_started"
    ONLINE_CHECK_COMPLETED = "online_check_completed"
    SEARCH_FAILED = "search_failed"

    REDIS_ERROR = "redis_error"

    PERFORMANCE_METRIC = "performance_metric"
