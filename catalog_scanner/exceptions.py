"""
异常定义

单个扫描事件的失败只影响该事件，不会终止剪贴板轮询或键盘监听循环。
后端异常分为两类：BackendCommandError（后端明确拒绝，可改为手动添加）
与 BackendTransportError（连不上或超时，可以重试）。
"""

from typing import Any, Dict, List, Optional


class CatalogScannerError(Exception):
    """所有项目异常的基类"""

    error_code = "CATALOG_SCANNER_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.details: Dict[str, Any] = {k: v for k, v in details.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        """日志/状态输出用的结构化表示"""
        return {
            "type": type(self).__name__,
            "code": self.error_code,
            "message": str(self),
            "details": dict(self.details),
        }


class ConfigError(CatalogScannerError):
    """配置文件缺失、无法解析或内容非法"""
    error_code = "CONFIG_ERROR"


class ConfigValidationError(ConfigError):
    """pydantic 校验未通过，validation_errors 保留逐项错误"""
    error_code = "CONFIG_VALIDATION_ERROR"

    def __init__(self, message: str, validation_errors: List[Dict[str, Any]]):
        super().__init__(message, errors=len(validation_errors))
        self.validation_errors = validation_errors


class BackendError(CatalogScannerError):
    error_code = "BACKEND_ERROR"

    def __init__(self, message: str, command: Optional[str] = None, **details: Any):
        super().__init__(message, command=command, **details)
        self.command = command


class BackendCommandError(BackendError):
    """后端拒绝或无法解析一个格式正确的标识符（可恢复，可手动添加）"""
    error_code = "BACKEND_COMMAND_ERROR"

    def __init__(self, message: str, command: Optional[str] = None,
                 identifier: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, command, identifier=identifier, status_code=status_code)
        self.identifier = identifier
        self.status_code = status_code


class BackendTransportError(BackendError):
    """与后端通信失败（连接、超时、网关错误）"""
    error_code = "BACKEND_TRANSPORT_ERROR"

    def __init__(self, message: str, command: Optional[str] = None,
                 url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, command, url=url, status_code=status_code)
        self.url = url
        self.status_code = status_code


class ClipboardReadError(CatalogScannerError):
    """读取剪贴板失败，本次轮询跳过"""
    error_code = "CLIPBOARD_READ_ERROR"

    def __init__(self, message: str, reader: Optional[str] = None):
        super().__init__(message, reader=reader)
        self.reader = reader


class KeyboardListenerError(CatalogScannerError):
    """键盘钩子无法加载或启动（例如没有图形环境）"""
    error_code = "KEYBOARD_LISTENER_ERROR"

    def __init__(self, message: str, backend: Optional[str] = None):
        super().__init__(message, backend=backend)
        self.backend = backend


__all__ = [
    "CatalogScannerError",
    "ConfigError",
    "ConfigValidationError",
    "BackendError",
    "BackendCommandError",
    "BackendTransportError",
    "ClipboardReadError",
    "KeyboardListenerError",
]
