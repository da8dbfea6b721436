"""
剪贴板轮询器

按固定间隔读取剪贴板，检测到新的文本时分类并交给回调。
同一文本只处理一次；读取失败只跳过本次轮询。
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Callable

import pyperclip

from .identifiers import (
    IdentifierClassification,
    IssnPolicy,
    ThirteenDigitAs,
    classify,
)
from .exceptions import ClipboardReadError
from .logging_config import get_logger


@dataclass
class PollerConfig:
    interval: float = 0.5
    # 窗口失去焦点时暂停轮询，仅用于节省资源
    pause_when_unfocused: bool = False


class ClipboardPoller:
    """管理剪贴板读取和变化检测"""

    def __init__(
        self,
        config: PollerConfig,
        on_classified: Callable[[str, IdentifierClassification], None],
        reader: Callable[[], Optional[str]] = pyperclip.paste,
        thirteen_digit_as: ThirteenDigitAs = ThirteenDigitAs.ISBN,
        issn_policy: IssnPolicy = IssnPolicy.PERMISSIVE,
    ):
        self.config = config
        self.on_classified = on_classified
        self.reader = reader
        self.thirteen_digit_as = thirteen_digit_as
        self.issn_policy = issn_policy
        self.logger = get_logger('ClipboardPoller')
        self.last_seen = ""
        self._running = False
        self._focused = asyncio.Event()
        self._focused.set()
        self._lock = asyncio.Lock()
        self.clipboard_reads = 0
        self.read_errors = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """开始轮询剪贴板"""
        self._running = True
        self.logger.info(f"剪贴板轮询已启动 (间隔: {self.config.interval}秒)")
        while self._running:
            if self.config.pause_when_unfocused and not self._focused.is_set():
                await self._focused.wait()
                continue
            await self.tick()
            await asyncio.sleep(self.config.interval)

    def stop(self):
        self._running = False
        # 唤醒可能在等待焦点的循环
        self._focused.set()

    def set_focused(self, focused: bool):
        """宿主窗口焦点变化"""
        if focused:
            self._focused.set()
        else:
            self._focused.clear()

    async def tick(self) -> Optional[IdentifierClassification]:
        """执行一次轮询，检测到新内容时返回分类结果"""
        try:
            raw = await self._read_clipboard()
        except ClipboardReadError as exc:
            self.read_errors += 1
            self.logger.warning(f"剪贴板读取失败，跳过本次轮询: {exc}")
            return None

        text = (raw or "").strip()
        if not text or text == self.last_seen:
            return None

        # 在任何异步后端调用之前更新，避免同一内容被重复处理
        self.last_seen = text
        classification = classify(text, self.thirteen_digit_as, self.issn_policy)
        try:
            self.on_classified(text, classification)
        except Exception as exc:
            self.logger.error(f"剪贴板回调执行失败: {exc}")
        return classification

    async def _read_clipboard(self) -> Optional[str]:
        """异步读取剪贴板内容"""
        self.clipboard_reads += 1
        async with self._lock:
            try:
                return await asyncio.to_thread(self.reader)
            except Exception as e:
                raise ClipboardReadError(f"{type(e).__name__}: {str(e)}", reader=getattr(self.reader, "__name__", None)) from e
