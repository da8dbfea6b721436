"""
键盘扫码聚合器

扫码枪以键盘方式输入，字符间隔通常小于 10ms，人工输入一般大于 100ms。
聚合器利用按键间隔把一阵快速按键还原为一次扫描，遇到回车时交给分类器。
"""

import time
from typing import Callable, Optional, Any

from .identifiers import (
    IdentifierClassification,
    IssnPolicy,
    ThirteenDigitAs,
    classify,
)
from .logging_config import get_logger

ENTER = "enter"
ACCEPTED_CHARS = frozenset("0123456789xX-")

ScanCallback = Callable[[str, IdentifierClassification], None]


class ScanBuffer:
    """有上限的扫描缓冲区，超长时整体丢弃而不是截断"""

    def __init__(self, max_length: int = 32):
        self.max_length = max_length
        self._chars = []
        self.last_key_time: Optional[float] = None

    def append(self, char: str) -> bool:
        """追加字符；缓冲区已满时清空并返回 False"""
        if len(self._chars) < self.max_length:
            self._chars.append(char)
            return True
        self._chars.clear()
        return False

    def clear(self):
        self._chars.clear()

    def text(self) -> str:
        return "".join(self._chars)

    def __len__(self) -> int:
        return len(self._chars)


class KeystrokeAggregator:
    """按键突发聚合状态机

    状态：Idle（缓冲区为空）与 Accumulating（缓冲区非空）。
    以下情况回到 Idle：回车提交、间隔超时（下一个有效按键时清空）、缓冲区溢出。
    """

    def __init__(
        self,
        on_scan: ScanCallback,
        max_inter_key_delay: float = 0.05,
        max_scan_length: int = 32,
        thirteen_digit_as: ThirteenDigitAs = ThirteenDigitAs.EAN,
        issn_policy: IssnPolicy = IssnPolicy.PERMISSIVE,
    ):
        self.on_scan = on_scan
        self.max_inter_key_delay = max_inter_key_delay
        self.thirteen_digit_as = thirteen_digit_as
        self.issn_policy = issn_policy
        self._buffer = ScanBuffer(max_scan_length)
        self.logger = get_logger('KeystrokeAggregator')
        self.scans_emitted = 0
        self.overflows = 0

    @property
    def buffer(self) -> str:
        return self._buffer.text()

    def reset(self):
        self._buffer.clear()
        self._buffer.last_key_time = None

    def handle_key(self, key: Optional[str], timestamp: Optional[float] = None) -> Optional[str]:
        """处理一次按键，回车提交时返回提交的文本"""
        if key is None:
            return None
        is_enter = key.lower() == ENTER
        if not is_enter and key not in ACCEPTED_CHARS:
            # 突发中的修饰键等噪声：既不清空缓冲区，也不更新计时基准
            return None

        now = time.monotonic() if timestamp is None else timestamp
        last = self._buffer.last_key_time
        if last is not None and now - last > self.max_inter_key_delay:
            self._buffer.clear()
        self._buffer.last_key_time = now

        if is_enter:
            return self._flush()

        if not self._buffer.append(key):
            self.overflows += 1
            self.logger.debug(f"扫描缓冲区超过 {self._buffer.max_length} 个字符，已丢弃")
        return None

    def _flush(self) -> Optional[str]:
        text = self._buffer.text().strip()
        self._buffer.clear()
        if not text:
            return None

        classification = classify(text, self.thirteen_digit_as, self.issn_policy)
        self.scans_emitted += 1
        self.logger.debug(f"扫码完成: {text} -> {classification.kind.value}")
        try:
            self.on_scan(text, classification)
        except Exception as exc:
            self.logger.error(f"扫码回调执行失败: {exc}")
        return text


def key_from_pynput(key: Any) -> Optional[str]:
    """把 pynput 的按键对象转换为聚合器使用的按键名"""
    char = getattr(key, 'char', None)
    if char:
        return char
    name = getattr(key, 'name', None)
    if name:
        return name
    return None


__all__ = [
    "ENTER",
    "ScanBuffer",
    "KeystrokeAggregator",
    "key_from_pynput",
]
