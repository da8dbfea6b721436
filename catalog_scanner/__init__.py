"""
图书/漫画目录扫码助手

监控剪贴板与键盘扫码枪，识别 ISBN / ISSN / EAN-13 条码并自动加入目录。
"""

# 导入版本信息
from .__version__ import (
    __version__,
    __version_info__,
    PROJECT_NAME,
    PROJECT_DESCRIPTION,
    AUTHOR,
    get_version_string,
    get_version_info
)
from .backend import CatalogBackend, CatalogEntry, CatalogResult
from .bridge_client import InvokeBridgeClient
from .config import AppConfig, ConfigManager
from .dispatch import DispatchDecision, ScanAction, decide
from .events import CatalogEvent, EventBus
from .exceptions import (
    BackendCommandError,
    BackendError,
    BackendTransportError,
    CatalogScannerError,
    ConfigError,
)
from .identifiers import (
    IdentifierClassification,
    IdentifierKind,
    IssnPolicy,
    ThirteenDigitAs,
    classify,
)
from .scan_actions import ScanCallbacks
from .scan_monitor import ScanMonitor

__author__ = AUTHOR
__all__ = [
    # 版本信息
    "__version__",
    "__version_info__",
    "PROJECT_NAME",
    "PROJECT_DESCRIPTION",
    "get_version_string",
    "get_version_info",
    # 分类
    "classify",
    "IdentifierKind",
    "IdentifierClassification",
    "ThirteenDigitAs",
    "IssnPolicy",
    "decide",
    "ScanAction",
    "DispatchDecision",
    # 核心类
    "ConfigManager",
    "AppConfig",
    "CatalogBackend",
    "CatalogEntry",
    "CatalogResult",
    "InvokeBridgeClient",
    "CatalogEvent",
    "EventBus",
    "ScanCallbacks",
    "ScanMonitor",
    # 异常类
    "CatalogScannerError",
    "ConfigError",
    "BackendError",
    "BackendCommandError",
    "BackendTransportError",
]
