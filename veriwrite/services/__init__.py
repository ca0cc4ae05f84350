"""
服务模块 - 提供统一的服务访问接口
"""

# 导出基础服务类
from veriwrite.services.base_service import BaseService

# 导出服务工厂
from veriwrite.services.service_factory import ServiceFactory

__all__ = [
    # 基础类
    'BaseService',

    # 服务工厂
    'ServiceFactory',
]
