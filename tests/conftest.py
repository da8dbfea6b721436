"""
测试配置和共享工具
"""

import json
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from catalog_scanner.backend import CatalogBackend, CatalogEntry, CatalogResult
from catalog_scanner.config import AppConfig


@pytest.fixture
def mock_config_data() -> Dict[str, Any]:
    """模拟配置数据"""
    return {
        "clipboard": {
            "enabled": True,
            "interval": 0.5,
            "thirteen_digit_as": "isbn"
        },
        "scanner": {
            "enabled": False,
            "max_inter_key_delay_ms": 50,
            "max_scan_length": 32,
            "thirteen_digit_as": "ean"
        },
        "classifier": {
            "issn_policy": "permissive"
        },
        "backend": {
            "base_url": "http://127.0.0.1:1420",
            "timeout": 5,
            "max_retries": 2,
            "retry_delay": 0.01
        },
        "notifications": {
            "console": {"enabled": False}
        },
        "hot_reload": False,
        "log_level": "INFO",
        "log_file": None
    }


@pytest.fixture
def config_file(tmp_path, mock_config_data):
    """写入磁盘的JSON配置文件"""
    path = tmp_path / "config.json"
    path.write_text(json.dumps(mock_config_data), encoding="utf-8")
    return path


@pytest.fixture
def app_config(mock_config_data) -> AppConfig:
    return AppConfig(**mock_config_data)


@pytest.fixture
def mock_backend():
    """用 AsyncMock 构造的后端，默认：未收录、抓取成功、条码未找到"""
    backend = AsyncMock(spec=CatalogBackend)
    backend.check_exists.return_value = False
    backend.fetch_and_catalog.return_value = CatalogResult(
        volume_id="vol-1",
        entry=CatalogEntry(volume_id="vol-1", title="Data Structures", identifiers=["9780306406157"]),
    )
    backend.find_by_code.return_value = None
    backend.clone_entry.return_value = "vol-2"
    backend.add_entry.return_value = "vol-3"
    backend.set_entry_number.return_value = None
    return backend


class ClipboardStub:
    """按顺序返回预设内容的剪贴板读取函数"""

    def __init__(self, values: List[Optional[str]]):
        self.values = list(values)
        self.calls = 0

    def __call__(self) -> Optional[str]:
        self.calls += 1
        value = self.values.pop(0) if self.values else None
        if isinstance(value, Exception):
            raise value
        return value


class EventRecorder:
    """记录收到的事件载荷"""

    def __init__(self):
        self.payloads: List[Any] = []

    def __call__(self, payload):
        self.payloads.append(payload)


@pytest.fixture
def clipboard_stub():
    return ClipboardStub


@pytest.fixture
def event_recorder():
    return EventRecorder()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """避免开发环境中的变量影响配置加载"""
    for name in ("CATALOG_BACKEND_URL", "CATALOG_LOG_LEVEL", "CATALOG_SCANNER_CONFIG"):
        monkeypatch.delenv(name, raising=False)
