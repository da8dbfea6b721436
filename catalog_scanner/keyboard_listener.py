"""
全局键盘监听

pynput 在独立线程中回调按键事件，这里把事件连同时间戳
转交给事件循环中的 KeystrokeAggregator 处理。
"""

import asyncio
import time
from typing import Optional

from .exceptions import KeyboardListenerError
from .keystroke_aggregator import KeystrokeAggregator, key_from_pynput
from .logging_config import get_logger


class KeyboardScanListener:
    """把系统级按键事件送入聚合器"""

    def __init__(self, aggregator: KeystrokeAggregator, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.aggregator = aggregator
        self.loop = loop
        self.logger = get_logger('KeyboardScanListener')
        self._listener = None
        self.key_events = 0

    @property
    def is_running(self) -> bool:
        return self._listener is not None

    def start(self):
        if self._listener is not None:
            return
        if self.loop is None:
            self.loop = asyncio.get_running_loop()

        try:
            # 没有图形会话时 pynput 在导入阶段就会失败
            from pynput import keyboard
        except Exception as e:
            raise KeyboardListenerError(f"无法加载键盘监听后端: {str(e)}", backend="pynput") from e

        try:
            self._listener = keyboard.Listener(on_press=self._on_press)
            self._listener.start()
        except Exception as e:
            self._listener = None
            raise KeyboardListenerError(f"键盘监听启动失败: {str(e)}", backend="pynput") from e
        self.logger.info("⌨️ 键盘扫码监听已启动")

    def stop(self):
        if self._listener is None:
            return
        self._listener.stop()
        self._listener = None
        self.aggregator.reset()
        self.logger.info("键盘扫码监听已停止")

    def _on_press(self, key):
        """在 pynput 线程中调用"""
        name = key_from_pynput(key)
        if name is None:
            return
        self.key_events += 1
        try:
            self.loop.call_soon_threadsafe(self.aggregator.handle_key, name, time.monotonic())
        except RuntimeError:
            # 事件循环已关闭
            pass


__all__ = ["KeyboardScanListener"]
