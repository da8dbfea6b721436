"""
扫描处理相关数据模型
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .identifiers import IdentifierKind


@dataclass
class ScanRecord:
    raw_text: str
    identifier: str
    kind: IdentifierKind
    channel: str  # clipboard, keyboard
    timestamp: datetime = field(default_factory=datetime.now)
    status: str = "pending"  # pending, added, exists, found, new_code, failed, unknown, ignored
    volume_id: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self):
        return {
            'raw_text': self.raw_text,
            'identifier': self.identifier,
            'kind': self.kind.value,
            'channel': self.channel,
            'timestamp': self.timestamp.isoformat(),
            'status': self.status,
            'volume_id': self.volume_id,
            'error_message': self.error_message,
        }
