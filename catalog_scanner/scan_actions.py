"""
扫描执行器

根据分发决策调用后端：查重、抓取入库、按条码查找、复制系列条目，
并把结果通过回调与事件告知调用方。
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .backend import CatalogBackend, CatalogEntry
from .dispatch import DispatchDecision, ScanAction
from .events import CatalogEvent, EventBus
from .exceptions import BackendError, BackendTransportError
from .identifiers import IdentifierKind, isbn10_to_isbn13
from .notifications import NotificationManager
from .scan_models import ScanRecord


@dataclass
class ScanCallbacks:
    """调用方回调，均可为同步函数或协程函数"""
    on_resolved: Optional[Callable[[IdentifierKind, Any], Any]] = None
    on_unknown_format: Optional[Callable[[str], Any]] = None
    on_lookup_failed: Optional[Callable[[str, str], Any]] = None
    on_existing_code: Optional[Callable[[CatalogEntry], Any]] = None
    on_new_code: Optional[Callable[[str], Any]] = None


class ScanActionExecutor:
    """处理具体的后端调用动作"""

    def __init__(
        self,
        backend: CatalogBackend,
        events: EventBus,
        callbacks: Optional[ScanCallbacks] = None,
        notification_manager: Optional[NotificationManager] = None,
        stats: Optional[Dict[str, Any]] = None,
        add_history: Optional[Callable[[ScanRecord], None]] = None,
        clone_on_existing_code: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.backend = backend
        self.events = events
        self.callbacks = callbacks or ScanCallbacks()
        self.notification_manager = notification_manager
        self.stats = stats if stats is not None else {}
        self._add_history = add_history
        self.clone_on_existing_code = clone_on_existing_code
        self.logger = logger or logging.getLogger('CatalogScanner.ScanActionExecutor')
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        """之后完成的操作不再投递回调和事件"""
        self._closed = True

    def _count(self, key: str, value: int = 1):
        self.stats[key] = self.stats.get(key, 0) + value

    async def execute(self, decision: DispatchDecision, raw_text: str, channel: str = "clipboard") -> ScanRecord:
        record = ScanRecord(
            raw_text=raw_text,
            identifier=decision.identifier,
            kind=decision.classification.kind,
            channel=channel,
        )
        if decision.action == ScanAction.IGNORE:
            record.status = "ignored"
            self._count('ignored')
            return record

        self._count('total_scans')
        if self._add_history:
            self._add_history(record)

        process_start = time.time()
        if decision.action == ScanAction.CHECK_THEN_FETCH:
            await self._check_then_fetch(decision, record)
        elif decision.action == ScanAction.LOOKUP_BY_CODE:
            await self._lookup_by_code(decision, record)
        elif decision.action == ScanAction.REPORT_UNKNOWN:
            await self._report_unknown(record)

        self.logger.debug(f"扫描处理完成: {record.identifier} -> {record.status} ({time.time() - process_start:.2f}s)")
        return record

    async def _check_then_fetch(self, decision: DispatchDecision, record: ScanRecord):
        identifier = decision.identifier
        if decision.classification.kind == IdentifierKind.ISBN10:
            self.logger.info(f"🔍 发现ISBN-10: {identifier} (ISBN-13: {isbn10_to_isbn13(identifier)})")
        else:
            self.logger.info(f"🔍 发现{decision.classification.kind.value}: {identifier}")

        try:
            if await self.backend.check_exists(identifier):
                record.status = "exists"
                self._count('duplicates_skipped')
                self.logger.info(f"⚠️ 已在目录中，跳过: {identifier}")
                if not self._closed and self.notification_manager:
                    await self.notification_manager.send_duplicate_notification(identifier)
                return

            result = await self.backend.fetch_and_catalog(identifier)
        except BackendError as exc:
            await self._lookup_failed(record, exc)
            return

        record.status = "added"
        record.volume_id = result.volume_id
        self._count('items_added')
        title = result.entry.title if result.entry else None
        self.logger.info(f"✅ 已加入目录: {identifier} -> {result.volume_id}")

        if self._closed:
            return
        if result.possible_series:
            # 订阅方需要完整条目来提示补填期号
            series_entry = result.entry or CatalogEntry(volume_id=result.volume_id)
            self.events.emit(CatalogEvent.POSSIBLE_SERIES_ENTRY, series_entry)
        else:
            self.events.emit(CatalogEvent.ITEM_ADDED, result.volume_id)
        if self.notification_manager:
            await self.notification_manager.send_item_added(identifier, result.volume_id, title)
        await self._invoke(self.callbacks.on_resolved, decision.classification.kind, result)

    async def _lookup_by_code(self, decision: DispatchDecision, record: ScanRecord):
        code = decision.identifier
        self.logger.info(f"🔍 按条码查找: {code}")
        try:
            entry = await self.backend.find_by_code(code)
            if entry is None:
                record.status = "new_code"
                self._count('new_codes')
                self.logger.info(f"🆕 条码未收录，需要手动录入: {code}")
                await self._invoke(self.callbacks.on_new_code, code)
                return

            record.status = "found"
            record.volume_id = entry.volume_id
            self._count('codes_found')
            await self._invoke(self.callbacks.on_existing_code, entry)

            if not self.clone_on_existing_code:
                return
            new_volume_id = await self.backend.clone_entry(entry.volume_id)
        except BackendError as exc:
            await self._lookup_failed(record, exc)
            return

        record.volume_id = new_volume_id
        self.logger.info(f"📖 已复制系列条目 {entry.volume_id} -> {new_volume_id}，等待填写期号")
        if self._closed:
            return
        series_entry = CatalogEntry(
            volume_id=new_volume_id,
            title=entry.title,
            publisher=entry.publisher,
            authors=list(entry.authors),
            identifiers=list(entry.identifiers),
        )
        self.events.emit(CatalogEvent.POSSIBLE_SERIES_ENTRY, series_entry)
        if self.notification_manager:
            await self.notification_manager.send_series_entry(code, new_volume_id, entry.title)
        await self._invoke(self.callbacks.on_resolved, decision.classification.kind, series_entry)

    async def _report_unknown(self, record: ScanRecord):
        record.status = "unknown"
        self._count('unknown_formats')
        self.logger.info(f"❓ 未知的条码格式: {record.raw_text}")
        if self._closed:
            return
        if self.notification_manager:
            await self.notification_manager.send_unknown_format(record.raw_text)
        await self._invoke(self.callbacks.on_unknown_format, record.raw_text)

    async def _lookup_failed(self, record: ScanRecord, exc: BackendError):
        record.status = "failed"
        record.error_message = str(exc)
        self._count('lookup_failures')
        if isinstance(exc, BackendTransportError):
            self.logger.warning(f"后端通信失败，跳过 {record.identifier}: {exc}")
        else:
            self.logger.error(f"❌ 查询失败 {record.identifier}: {exc}")
        self.logger.debug(f"失败详情: {exc.to_dict()}")
        if self._closed:
            return
        if self.notification_manager:
            await self.notification_manager.send_lookup_failure(record.identifier, str(exc))
        await self._invoke(self.callbacks.on_lookup_failed, record.identifier, str(exc))

    async def add_manually(self, identifier: Optional[str], title: str,
                           authors: Optional[List[str]] = None, publisher: Optional[str] = None,
                           year: Optional[str] = None, number: Optional[int] = None) -> str:
        """查询失败后的手动添加，后端错误直接抛给调用方"""
        volume_id = await self.backend.add_entry(
            title, identifier=identifier, authors=authors,
            publisher=publisher, year=year, number=number,
        )
        self._count('items_added')
        self.logger.info(f"✅ 手动添加条目: {title} -> {volume_id}")
        if not self._closed:
            self.events.emit(CatalogEvent.ITEM_ADDED, volume_id)
        return volume_id

    async def assign_number(self, volume_id: str, number: int):
        """为系列条目填写期号"""
        await self.backend.set_entry_number(volume_id, number)
        self.logger.info(f"🔢 条目 {volume_id} 期号已设置为 {number}")
        if not self._closed:
            self.events.emit(CatalogEvent.ITEM_UPDATED, volume_id)

    async def _invoke(self, callback: Optional[Callable], *args):
        if callback is None or self._closed:
            return
        try:
            if asyncio.iscoroutinefunction(callback):
                await callback(*args)
            else:
                callback(*args)
        except Exception as e:
            self.logger.error(f"回调执行失败: {str(e)}")


__all__ = ["ScanCallbacks", "ScanActionExecutor"]
