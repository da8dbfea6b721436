"""
扫码监控核心

支持：
- 剪贴板轮询与键盘扫码枪两路输入
- 分类、分发并异步调用后端
- 历史记录
- 实时统计
"""

import asyncio
import time
from collections import deque
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

import pyperclip
from colorama import Fore, Style

from .__version__ import get_version_info
from .backend import CatalogBackend
from .clipboard_poller import ClipboardPoller, PollerConfig
from .config import AppConfig
from .dispatch import ScanAction, decide
from .events import CatalogEvent, EventBus
from .exceptions import KeyboardListenerError
from .identifiers import IdentifierClassification
from .keyboard_listener import KeyboardScanListener
from .keystroke_aggregator import KeystrokeAggregator
from .logging_config import get_logger
from .notifications import NotificationManager
from .scan_actions import ScanActionExecutor, ScanCallbacks
from .scan_models import ScanRecord

STATS_REPORT_INTERVAL = 300


def _initial_stats() -> Dict[str, Any]:
    return {
        'total_scans': 0,
        'items_added': 0,
        'duplicates_skipped': 0,
        'lookup_failures': 0,
        'unknown_formats': 0,
        'codes_found': 0,
        'new_codes': 0,
        'ignored': 0,
        'clipboard_scans': 0,
        'keyboard_scans': 0,
        'clipboard_reads': 0,
    }


class ScanMonitor:
    """扫码监控器

    每个有效输入都会生成一个分发决策，并作为独立任务执行，
    多个后端调用可以同时进行。
    """

    def __init__(
        self,
        backend: CatalogBackend,
        config: AppConfig,
        callbacks: Optional[ScanCallbacks] = None,
        clipboard_reader: Callable[[], Optional[str]] = pyperclip.paste,
    ):
        self.backend = backend
        self.config = config
        self.logger = get_logger('ScanMonitor')

        self.history: deque = deque(maxlen=config.history_size)
        self.stats = _initial_stats()
        self.is_running = False
        self.started_at: Optional[datetime] = None
        self._tasks: Set[asyncio.Task] = set()
        self._stop_event = asyncio.Event()
        self._is_cleaned_up = False
        self._cleanup_lock = asyncio.Lock()

        self.events = EventBus()
        self.notification_manager = NotificationManager(config.notifications.model_dump())
        self.executor = ScanActionExecutor(
            self.backend,
            self.events,
            callbacks,
            self.notification_manager,
            self.stats,
            self._add_to_history,
            clone_on_existing_code=config.dispatch.clone_on_existing_code,
            logger=get_logger('ScanActionExecutor'),
        )

        issn_policy = config.classifier.issn_policy
        poller_config = PollerConfig(
            interval=config.clipboard.interval,
            pause_when_unfocused=config.clipboard.pause_when_unfocused,
        )
        self.poller = ClipboardPoller(
            poller_config,
            self._on_clipboard_classified,
            reader=clipboard_reader,
            thirteen_digit_as=config.clipboard.thirteen_digit_as,
            issn_policy=issn_policy,
        )
        self.aggregator = KeystrokeAggregator(
            self._on_keyboard_scan,
            max_inter_key_delay=config.scanner.max_inter_key_delay_ms / 1000,
            max_scan_length=config.scanner.max_scan_length,
            thirteen_digit_as=config.scanner.thirteen_digit_as,
            issn_policy=issn_policy,
        )
        self.listener: Optional[KeyboardScanListener] = None

    def subscribe(self, event: CatalogEvent, handler: Callable[[Any], Any]) -> Callable[[], None]:
        return self.events.subscribe(event, handler)

    async def start(self):
        """启动监控，直到 stop() 被调用"""
        self.is_running = True
        self.started_at = datetime.now()
        self._stop_event.clear()
        self.logger.info("开始监控扫码输入...")

        keyboard_active = False
        if self.config.scanner.enabled:
            self.listener = KeyboardScanListener(self.aggregator, asyncio.get_running_loop())
            try:
                self.listener.start()
                keyboard_active = True
            except KeyboardListenerError as e:
                self.logger.warning(f"键盘扫码不可用，仅使用剪贴板: {e}")
                self.listener = None

        poller_task = None
        if self.config.clipboard.enabled:
            poller_task = asyncio.create_task(self.poller.start())

        if poller_task is None and not keyboard_active:
            self.logger.warning("剪贴板与键盘输入均未启用，没有可监控的输入")

        self._show_welcome_message(keyboard_active, poller_task is not None)

        try:
            last_report = time.monotonic()
            while self.is_running:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=STATS_REPORT_INTERVAL)
                except asyncio.TimeoutError:
                    pass
                if time.monotonic() - last_report >= STATS_REPORT_INTERVAL:
                    await self.notification_manager.send_statistics(self.stats)
                    last_report = time.monotonic()
        except asyncio.CancelledError:
            self.logger.info("监控已取消")
            raise
        finally:
            self.is_running = False
            self.poller.stop()
            if poller_task is not None:
                poller_task.cancel()
                try:
                    await poller_task
                except asyncio.CancelledError:
                    pass
            await self.cleanup()
            self.logger.info("扫码监控已停止")
            self._show_farewell_message()

    def stop(self):
        """停止监控"""
        self.is_running = False
        self.poller.stop()
        self._stop_event.set()

    def set_focused(self, focused: bool):
        self.poller.set_focused(focused)

    def _on_clipboard_classified(self, text: str, classification: IdentifierClassification):
        self.stats['clipboard_reads'] = self.poller.clipboard_reads
        self._submit(text, classification, "clipboard")

    def _on_keyboard_scan(self, text: str, classification: IdentifierClassification):
        self._submit(text, classification, "keyboard")

    def _submit(self, text: str, classification: IdentifierClassification, channel: str):
        if self._is_cleaned_up:
            return
        decision = decide(classification)
        if decision.action == ScanAction.IGNORE:
            self.stats['ignored'] += 1
            return

        self.stats[f'{channel}_scans'] += 1
        task = asyncio.get_running_loop().create_task(self._run_decision(decision, text, channel))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_decision(self, decision, text: str, channel: str):
        try:
            await self.executor.execute(decision, text, channel)
        except Exception as e:
            self.logger.error(f"处理扫码输入时发生错误 {decision.identifier}: {str(e)}")

    async def wait_idle(self):
        """等待所有进行中的后端调用结束"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.events.drain()

    async def add_manually(self, identifier: Optional[str], title: str, **kwargs) -> str:
        return await self.executor.add_manually(identifier, title, **kwargs)

    async def assign_number(self, volume_id: str, number: int):
        await self.executor.assign_number(volume_id, number)

    async def cleanup(self):
        """清理资源；进行中的调用继续完成，但结果不再投递"""
        async with self._cleanup_lock:
            if self._is_cleaned_up:
                return
            self._is_cleaned_up = True
            self.logger.info("开始清理ScanMonitor资源...")

            self.poller.stop()
            if self.listener is not None:
                self.listener.stop()
                self.listener = None
            self.aggregator.reset()
            self.executor.close()

            try:
                await self.wait_idle()
                await self.backend.close()
            except Exception as e:
                self.logger.error(f"清理ScanMonitor资源时出错: {str(e)}")
            self.events.clear()
            self.logger.info("✅ ScanMonitor资源清理完成")

    def _add_to_history(self, record: ScanRecord):
        self.history.append(record)

    def _show_welcome_message(self, keyboard_active: bool, clipboard_active: bool):
        if not self.config.notifications.console.enabled:
            return
        welcome_lines = [
            "📚 目录扫码助手已启动!",
            f"剪贴板监控: {'已启用' if clipboard_active else '已禁用'} (间隔: {self.config.clipboard.interval}秒)",
            f"键盘扫码枪: {'已启用' if keyboard_active else '已禁用'}",
            f"目录后端: {self.config.backend.base_url}",
            "支持的条码类型:",
            "   ISBN-10 / ISBN-13 - 查重后抓取元数据入库",
            "   ISSN - 期刊，查重后抓取入库",
            "   EAN-13 - 按条码查找系列漫画",
            "按Ctrl+C停止监控",
        ]
        if self.notification_manager.use_colors:
            print(f"\n{Fore.GREEN}{'=' * 60}")
            for line in welcome_lines:
                print(f"{Fore.GREEN}{line}")
            print(f"{'=' * 60}{Style.RESET_ALL}\n")
        else:
            print(f"\n{'=' * 60}")
            for line in welcome_lines:
                print(line)
            print(f"{'=' * 60}\n")

    def _show_farewell_message(self):
        if not self.config.notifications.console.enabled:
            return
        if self.config.notifications.console.show_statistics:
            lines = [
                "📊 最终统计",
                f"扫描总数: {self.stats['total_scans']}",
                f"成功添加: {self.stats['items_added']}",
                f"已存在跳过: {self.stats['duplicates_skipped']}",
                f"查询失败: {self.stats['lookup_failures']}",
                f"未知格式: {self.stats['unknown_formats']}",
            ]
            if self.notification_manager.use_colors:
                print(f"\n{Fore.BLUE}{lines[0]}")
                print(f"{Fore.BLUE}{'─' * 40}")
                for line in lines[1:]:
                    print(f"{Fore.CYAN}{line}")
                print(f"{Fore.BLUE}{'─' * 40}{Style.RESET_ALL}")
            else:
                print(f"\n{lines[0]}")
                print('─' * 40)
                for line in lines[1:]:
                    print(line)
                print('─' * 40)
        print("\n👋 目录扫码助手已停止，再见!\n")

    def get_status(self) -> Dict:
        """获取监控状态"""
        recent = list(self.history)[-10:]
        return {
            'version': get_version_info(),
            'is_running': self.is_running,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'clipboard_active': self.poller.is_running,
            'keyboard_active': self.listener is not None and self.listener.is_running,
            'in_flight': len(self._tasks),
            'stats': self.stats.copy(),
            'events_emitted': self.events.emitted,
            'history_count': len(self.history),
            'recent_records': [r.to_dict() for r in recent],
        }

    def get_history(self, limit: int = 100) -> List[Dict]:
        """获取扫描历史记录"""
        snapshot = list(self.history)
        records = snapshot[-limit:] if limit > 0 else snapshot
        return [r.to_dict() for r in records]

    def clear_history(self):
        self.history.clear()
        self.logger.info("已清空历史记录")

    def reset_stats(self):
        # 执行器持有同一个字典，原地重置
        self.stats.clear()
        self.stats.update(_initial_stats())


__all__ = ["ScanMonitor"]
