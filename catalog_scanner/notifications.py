"""
通知管理模块
"""

import sys
from datetime import datetime
from typing import Dict, Any, Optional

from colorama import init, Fore, Style

from .logging_config import get_logger
from .utils import truncate

init(autoreset=True)


class NotificationManager:
    """控制台通知管理器"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.logger = get_logger('NotificationManager')
        console = config.get('console', {})
        self.enabled = console.get('enabled', True)
        self.use_colors = console.get('colored', True)
        self.success_sound = config.get('success_sound', True)
        self.error_sound = config.get('error_sound', True)

    def _get_timestamp(self) -> str:
        return datetime.now().strftime('%Y-%m-%d %H:%M:%S')

    def _bell(self):
        sys.stdout.write('\a')
        sys.stdout.flush()

    def _print_block(self, color: str, lines, rule: str = '─', width: int = 60):
        if self.use_colors:
            for index, line in enumerate(lines):
                prefix = color if index == 0 else Fore.CYAN
                print(f"{prefix}{line}")
            print(f"{color}{rule * width}{Style.RESET_ALL}")
        else:
            for line in lines:
                print(line)
            print(rule * width)

    async def send_item_added(self, identifier: str, volume_id: str, title: Optional[str] = None):
        if not self.enabled:
            return
        lines = [
            "\n✅ 已加入目录!",
            f"🔖 标识符: {identifier}",
            f"📚 标题: {truncate(title or '（等待元数据）')}",
            f"🆔 条目: {volume_id}",
            f"⏰ 时间: {self._get_timestamp()}",
        ]
        self._print_block(Fore.GREEN, lines)
        if self.success_sound:
            self._bell()

    async def send_lookup_failure(self, identifier: str, error_message: str):
        if not self.enabled:
            return
        lines = [
            "\n❌ 查询失败!",
            f"🔖 标识符: {identifier}",
            f"❌ 错误: {error_message}",
            "💡 可以使用 add_manually 手动添加该条目",
            f"⏰ 时间: {self._get_timestamp()}",
        ]
        self._print_block(Fore.RED, lines)
        if self.error_sound:
            self._bell()

    async def send_unknown_format(self, raw_text: str):
        if not self.enabled:
            return
        message = f"⚠️ 未知的条码格式: {truncate(raw_text, 40)}"
        if self.use_colors:
            print(f"{Fore.YELLOW}{message}{Style.RESET_ALL}")
        else:
            print(message)

    async def send_duplicate_notification(self, identifier: str):
        if not self.enabled:
            return
        message = f"ℹ️ 已在目录中，跳过: {identifier}"
        if self.use_colors:
            print(f"{Fore.YELLOW}{message}{Style.RESET_ALL}")
        else:
            print(message)

    async def send_series_entry(self, code: str, volume_id: str, title: Optional[str] = None):
        if not self.enabled:
            return
        lines = [
            "\n📖 发现可能的系列新刊，需要手动填写期号",
            f"🔖 条码: {code}",
            f"📚 系列: {truncate(title or '')}",
            f"🆔 条目: {volume_id}",
        ]
        self._print_block(Fore.MAGENTA, lines)

    async def send_statistics(self, stats: Dict[str, int]):
        if not self.enabled or not self.config.get('console', {}).get('show_statistics', True):
            return

        lines = [
            "\n📊 运行统计",
            f"扫描总数: {stats.get('total_scans', 0)}",
            f"成功添加: {stats.get('items_added', 0)}",
            f"已存在跳过: {stats.get('duplicates_skipped', 0)}",
            f"查询失败: {stats.get('lookup_failures', 0)}",
            f"未知格式: {stats.get('unknown_formats', 0)}",
        ]
        total = stats.get('total_scans', 0)
        if total > 0:
            rate = stats.get('items_added', 0) / total * 100
            lines.append(f"入库率: {rate:.1f}%")
        self._print_block(Fore.BLUE, lines, width=40)


__all__ = ["NotificationManager"]
