"""
扫码监控核心测试
"""

import asyncio
from unittest.mock import Mock

import pytest

from catalog_scanner.backend import CatalogResult
from catalog_scanner.config import AppConfig
from catalog_scanner.events import CatalogEvent
from catalog_scanner.identifiers import classify
from catalog_scanner.keystroke_aggregator import ENTER
from catalog_scanner.scan_actions import ScanCallbacks
from catalog_scanner.scan_monitor import ScanMonitor


def make_monitor(backend, app_config, values=None, callbacks=None):
    reader = Mock(side_effect=list(values or []) + [None] * 100)
    return ScanMonitor(backend, app_config, callbacks=callbacks, clipboard_reader=reader)


@pytest.mark.asyncio
async def test_clipboard_isbn_flows_to_backend(mock_backend, app_config, event_recorder):
    monitor = make_monitor(mock_backend, app_config, ["978-0-306-40615-7"])
    monitor.subscribe(CatalogEvent.ITEM_ADDED, event_recorder)

    await monitor.poller.tick()
    await monitor.wait_idle()

    mock_backend.fetch_and_catalog.assert_awaited_once_with("9780306406157")
    assert event_recorder.payloads == ["vol-1"]
    assert monitor.stats['clipboard_scans'] == 1
    assert monitor.stats['items_added'] == 1
    history = monitor.get_history()
    assert history[0]['kind'] == "ISBN_13"
    assert history[0]['channel'] == "clipboard"
    assert history[0]['status'] == "added"


@pytest.mark.asyncio
async def test_keyboard_burst_uses_ean_pathway(mock_backend, app_config):
    new_code = Mock()
    monitor = make_monitor(mock_backend, app_config, callbacks=ScanCallbacks(on_new_code=new_code))

    t = 10.0
    for char in "4006381333931":
        monitor.aggregator.handle_key(char, t)
        t += 0.004
    monitor.aggregator.handle_key(ENTER, t)
    await monitor.wait_idle()

    mock_backend.find_by_code.assert_awaited_once_with("4006381333931")
    new_code.assert_called_once_with("4006381333931")
    assert monitor.stats['keyboard_scans'] == 1


@pytest.mark.asyncio
async def test_plain_text_never_reaches_backend(mock_backend, app_config):
    monitor = make_monitor(mock_backend, app_config, ["just some copied words"])

    await monitor.poller.tick()
    await monitor.wait_idle()

    mock_backend.check_exists.assert_not_awaited()
    assert monitor.stats['ignored'] == 1
    assert monitor.get_history() == []


@pytest.mark.asyncio
async def test_concurrent_scans_run_independently(mock_backend, app_config):
    release = asyncio.Event()

    async def slow_exists(identifier):
        await release.wait()
        return False

    mock_backend.check_exists.side_effect = slow_exists
    monitor = make_monitor(mock_backend, app_config)

    monitor._on_clipboard_classified("9780306406157", classify("9780306406157"))
    monitor._on_clipboard_classified("03178471", classify("03178471"))
    await asyncio.sleep(0)
    assert monitor.get_status()['in_flight'] == 2

    release.set()
    await monitor.wait_idle()
    assert mock_backend.fetch_and_catalog.await_count == 2


@pytest.mark.asyncio
async def test_cleanup_drops_late_results(mock_backend, app_config, event_recorder):
    release = asyncio.Event()

    async def slow_fetch(identifier):
        await release.wait()
        return CatalogResult(volume_id="vol-late")

    mock_backend.fetch_and_catalog.side_effect = slow_fetch
    monitor = make_monitor(mock_backend, app_config)
    monitor.subscribe(CatalogEvent.ITEM_ADDED, event_recorder)

    monitor._on_clipboard_classified("9780306406157", classify("9780306406157"))
    await asyncio.sleep(0)

    cleanup = asyncio.create_task(monitor.cleanup())
    await asyncio.sleep(0)
    release.set()
    await cleanup

    assert event_recorder.payloads == []
    mock_backend.close.assert_awaited_once()

    # 清理后的输入不再处理
    monitor._on_clipboard_classified("03178471", classify("03178471"))
    assert monitor.get_status()['in_flight'] == 0


@pytest.mark.asyncio
async def test_start_and_stop(mock_backend, app_config):
    monitor = make_monitor(mock_backend, app_config, ["03178471"])

    task = asyncio.create_task(monitor.start())
    await asyncio.sleep(0.05)
    assert monitor.get_status()['is_running']
    monitor.stop()
    await asyncio.wait_for(task, timeout=2.0)

    assert not monitor.is_running
    mock_backend.check_exists.assert_awaited_once_with("03178471")


@pytest.mark.asyncio
async def test_manual_paths(mock_backend, app_config, event_recorder):
    monitor = make_monitor(mock_backend, app_config)
    monitor.subscribe(CatalogEvent.ITEM_UPDATED, event_recorder)

    assert await monitor.add_manually("9780306406157", "Manual") == "vol-3"
    await monitor.assign_number("vol-3", 4)

    assert event_recorder.payloads == ["vol-3"]


def test_reset_stats_keeps_shared_dict(mock_backend, app_config):
    monitor = ScanMonitor(mock_backend, app_config, clipboard_reader=lambda: None)
    monitor.stats['items_added'] = 5

    monitor.reset_stats()

    assert monitor.stats['items_added'] == 0
    assert monitor.executor.stats is monitor.stats


def test_history_is_bounded(mock_backend, mock_config_data):
    mock_config_data["history_size"] = 2
    monitor = ScanMonitor(mock_backend, AppConfig(**mock_config_data), clipboard_reader=lambda: None)
    assert monitor.history.maxlen == 2
