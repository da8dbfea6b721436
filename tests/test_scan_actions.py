"""
扫描执行器测试
"""

from unittest.mock import Mock

import pytest

from catalog_scanner.backend import CatalogEntry, CatalogResult
from catalog_scanner.dispatch import decide
from catalog_scanner.events import CatalogEvent, EventBus
from catalog_scanner.exceptions import BackendCommandError, BackendTransportError
from catalog_scanner.identifiers import IdentifierKind, ThirteenDigitAs, classify
from catalog_scanner.notifications import NotificationManager
from catalog_scanner.scan_actions import ScanActionExecutor, ScanCallbacks

ISBN13 = "9780306406157"
EAN13 = "4006381333931"


def make_executor(backend, callbacks=None, **kwargs):
    events = EventBus()
    history = []
    executor = ScanActionExecutor(
        backend,
        events,
        callbacks or ScanCallbacks(),
        stats={},
        add_history=history.append,
        **kwargs,
    )
    return executor, events, history


@pytest.mark.asyncio
async def test_new_isbn_is_fetched_and_announced(mock_backend, event_recorder):
    resolved = Mock()
    executor, events, history = make_executor(mock_backend, ScanCallbacks(on_resolved=resolved))
    events.subscribe(CatalogEvent.ITEM_ADDED, event_recorder)

    record = await executor.execute(decide(classify("978-0-306-40615-7")), "978-0-306-40615-7")

    mock_backend.check_exists.assert_awaited_once_with(ISBN13)
    mock_backend.fetch_and_catalog.assert_awaited_once_with(ISBN13)
    assert record.status == "added"
    assert record.volume_id == "vol-1"
    assert event_recorder.payloads == ["vol-1"]
    resolved.assert_called_once()
    assert resolved.call_args.args[0] == IdentifierKind.ISBN13
    assert history == [record]
    assert executor.stats['items_added'] == 1


@pytest.mark.asyncio
async def test_existing_isbn_is_skipped(mock_backend, event_recorder):
    mock_backend.check_exists.return_value = True
    executor, events, _ = make_executor(mock_backend)
    events.subscribe(CatalogEvent.ITEM_ADDED, event_recorder)

    record = await executor.execute(decide(classify(ISBN13)), ISBN13)

    assert record.status == "exists"
    mock_backend.fetch_and_catalog.assert_not_awaited()
    assert event_recorder.payloads == []
    assert executor.stats['duplicates_skipped'] == 1


@pytest.mark.asyncio
async def test_possible_series_result_emits_series_event(mock_backend, event_recorder):
    entry = CatalogEntry(volume_id="vol-9", title="Comic 3", identifiers=[ISBN13])
    mock_backend.fetch_and_catalog.return_value = CatalogResult(volume_id="vol-9", entry=entry, possible_series=True)
    executor, events, _ = make_executor(mock_backend)
    events.subscribe(CatalogEvent.POSSIBLE_SERIES_ENTRY, event_recorder)

    await executor.execute(decide(classify(ISBN13)), ISBN13)

    assert event_recorder.payloads == [entry]


@pytest.mark.asyncio
async def test_series_event_without_entry_still_carries_volume_id(mock_backend, event_recorder):
    mock_backend.fetch_and_catalog.return_value = CatalogResult(volume_id="vol-9", possible_series=True)
    executor, events, _ = make_executor(mock_backend)
    events.subscribe(CatalogEvent.POSSIBLE_SERIES_ENTRY, event_recorder)

    await executor.execute(decide(classify(ISBN13)), ISBN13)

    assert event_recorder.payloads == [CatalogEntry(volume_id="vol-9")]


@pytest.mark.asyncio
async def test_lookup_failure_reported(mock_backend):
    mock_backend.fetch_and_catalog.side_effect = BackendCommandError(
        f"No results found for ISBN: {ISBN13}", command="fetch_isbn", identifier=ISBN13,
    )
    failed = Mock()
    executor, _, _ = make_executor(mock_backend, ScanCallbacks(on_lookup_failed=failed))

    record = await executor.execute(decide(classify(ISBN13)), ISBN13)

    assert record.status == "failed"
    failed.assert_called_once_with(ISBN13, f"No results found for ISBN: {ISBN13}")
    assert executor.stats['lookup_failures'] == 1


@pytest.mark.asyncio
async def test_transport_failure_reported_as_lookup_failure(mock_backend):
    mock_backend.check_exists.side_effect = BackendTransportError("connection refused", command="isbn_exists")
    failed = Mock()
    executor, _, _ = make_executor(mock_backend, ScanCallbacks(on_lookup_failed=failed))

    record = await executor.execute(decide(classify("03178471")), "03178471")

    assert record.status == "failed"
    failed.assert_called_once()


@pytest.mark.asyncio
async def test_ean_found_is_cloned(mock_backend, event_recorder):
    entry = CatalogEntry(volume_id="vol-5", title="Comic Vol. 1")
    mock_backend.find_by_code.return_value = entry
    existing = Mock()
    executor, events, _ = make_executor(mock_backend, ScanCallbacks(on_existing_code=existing))
    events.subscribe(CatalogEvent.POSSIBLE_SERIES_ENTRY, event_recorder)

    record = await executor.execute(decide(classify(EAN13, ThirteenDigitAs.EAN)), EAN13, "keyboard")

    mock_backend.find_by_code.assert_awaited_once_with(EAN13)
    mock_backend.clone_entry.assert_awaited_once_with("vol-5")
    existing.assert_called_once_with(entry)
    assert record.status == "found"
    assert record.volume_id == "vol-2"
    assert record.channel == "keyboard"
    series_entry, = event_recorder.payloads
    assert series_entry.volume_id == "vol-2"
    assert series_entry.title == "Comic Vol. 1"
    assert series_entry.number is None


@pytest.mark.asyncio
async def test_ean_found_without_cloning(mock_backend):
    mock_backend.find_by_code.return_value = CatalogEntry(volume_id="vol-5")
    executor, _, _ = make_executor(mock_backend, clone_on_existing_code=False)

    record = await executor.execute(decide(classify(EAN13, ThirteenDigitAs.EAN)), EAN13)

    mock_backend.clone_entry.assert_not_awaited()
    assert record.volume_id == "vol-5"


@pytest.mark.asyncio
async def test_ean_not_found_reports_new_code(mock_backend):
    new_code = Mock()
    executor, _, _ = make_executor(mock_backend, ScanCallbacks(on_new_code=new_code))

    record = await executor.execute(decide(classify(EAN13, ThirteenDigitAs.EAN)), EAN13)

    assert record.status == "new_code"
    new_code.assert_called_once_with(EAN13)


@pytest.mark.asyncio
async def test_unknown_format_reported(mock_backend):
    unknown = Mock()
    executor, _, _ = make_executor(mock_backend, ScanCallbacks(on_unknown_format=unknown))

    record = await executor.execute(decide(classify("12345")), "12345")

    assert record.status == "unknown"
    unknown.assert_called_once_with("12345")
    mock_backend.check_exists.assert_not_awaited()


@pytest.mark.asyncio
async def test_ignored_input_has_no_effects(mock_backend):
    executor, _, history = make_executor(mock_backend)

    record = await executor.execute(decide(classify("hello")), "hello")

    assert record.status == "ignored"
    assert history == []
    assert 'total_scans' not in executor.stats


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited(mock_backend):
    calls = []

    async def on_resolved(kind, payload):
        calls.append((kind, payload.volume_id))

    executor, _, _ = make_executor(mock_backend, ScanCallbacks(on_resolved=on_resolved))
    await executor.execute(decide(classify(ISBN13)), ISBN13)

    assert calls == [(IdentifierKind.ISBN13, "vol-1")]


@pytest.mark.asyncio
async def test_results_dropped_after_close(mock_backend, event_recorder):
    resolved = Mock()
    executor, events, _ = make_executor(mock_backend, ScanCallbacks(on_resolved=resolved))
    events.subscribe(CatalogEvent.ITEM_ADDED, event_recorder)

    async def fetch_then_close(identifier):
        executor.close()
        return CatalogResult(volume_id="vol-1")

    mock_backend.fetch_and_catalog.side_effect = fetch_then_close

    record = await executor.execute(decide(classify(ISBN13)), ISBN13)

    assert record.status == "added"
    assert event_recorder.payloads == []
    resolved.assert_not_called()


@pytest.mark.asyncio
async def test_add_manually_emits_item_added(mock_backend, event_recorder):
    executor, events, _ = make_executor(mock_backend)
    events.subscribe(CatalogEvent.ITEM_ADDED, event_recorder)

    volume_id = await executor.add_manually(ISBN13, "Manual Title", authors=["A. Author"])

    assert volume_id == "vol-3"
    mock_backend.add_entry.assert_awaited_once_with(
        "Manual Title", identifier=ISBN13, authors=["A. Author"],
        publisher=None, year=None, number=None,
    )
    assert event_recorder.payloads == ["vol-3"]


@pytest.mark.asyncio
async def test_assign_number_emits_item_updated(mock_backend, event_recorder):
    executor, events, _ = make_executor(mock_backend)
    events.subscribe(CatalogEvent.ITEM_UPDATED, event_recorder)

    await executor.assign_number("vol-2", 7)

    mock_backend.set_entry_number.assert_awaited_once_with("vol-2", 7)
    assert event_recorder.payloads == ["vol-2"]


@pytest.mark.asyncio
async def test_console_notifications(mock_backend, capsys):
    notifier = NotificationManager({'console': {'enabled': True, 'colored': False}, 'success_sound': False})
    executor = ScanActionExecutor(mock_backend, EventBus(), notification_manager=notifier)

    await executor.execute(decide(classify(ISBN13)), ISBN13)

    out = capsys.readouterr().out
    assert "已加入目录" in out
    assert ISBN13 in out
