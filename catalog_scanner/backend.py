"""
目录后端接口

扫码核心只通过这些异步命令访问外部目录后端。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class CatalogEntry:
    volume_id: str
    title: str = ""
    number: Optional[int] = None
    publisher: Optional[str] = None
    authors: List[str] = field(default_factory=list)
    identifiers: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogEntry":
        if not isinstance(data, dict):
            raise ValueError(f"条目数据应为对象，实际为 {type(data).__name__}")
        return cls(
            volume_id=str(data.get('volume_id') or data.get('volumeId') or ""),
            title=data.get('title') or "",
            number=data.get('number'),
            publisher=data.get('publisher'),
            authors=list(data.get('authors') or []),
            identifiers=list(data.get('isbns') or data.get('identifiers') or []),
        )


@dataclass
class CatalogResult:
    volume_id: str
    entry: Optional[CatalogEntry] = None
    # 已有同名条目，可能是按 ISBN 编号的系列漫画，需要手动补充期号
    possible_series: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "CatalogResult":
        if isinstance(payload, str):
            return cls(volume_id=payload)
        if not isinstance(payload, dict):
            raise ValueError(f"无法识别的入库结果: {type(payload).__name__}")
        entry_data = payload.get('book') or payload.get('entry')
        entry = CatalogEntry.from_dict(entry_data) if entry_data else None
        volume_id = payload.get('volume_id') or payload.get('volumeId') or (entry.volume_id if entry else "")
        return cls(
            volume_id=str(volume_id),
            entry=entry,
            possible_series=bool(payload.get('possible_series') or payload.get('possibleSeries')),
        )


class CatalogBackend(ABC):
    """后端命令集合；失败时抛出 BackendError 子类"""

    @abstractmethod
    async def check_exists(self, identifier: str) -> bool:
        """标识符是否已收录"""

    @abstractmethod
    async def fetch_and_catalog(self, identifier: str) -> CatalogResult:
        """按标识符抓取元数据并入库"""

    @abstractmethod
    async def find_by_code(self, code: str) -> Optional[CatalogEntry]:
        """按 EAN 条码查找已有条目"""

    @abstractmethod
    async def clone_entry(self, volume_id: str) -> str:
        """复制条目，返回新条目 ID"""

    @abstractmethod
    async def add_entry(self, title: str, identifier: Optional[str] = None,
                        authors: Optional[List[str]] = None, publisher: Optional[str] = None,
                        year: Optional[str] = None, number: Optional[int] = None) -> str:
        """手动添加条目，返回新条目 ID"""

    @abstractmethod
    async def set_entry_number(self, volume_id: str, number: int) -> None:
        """设置系列条目的期号"""

    async def close(self):
        pass


__all__ = ["CatalogEntry", "CatalogResult", "CatalogBackend"]
