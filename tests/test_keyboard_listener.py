"""
键盘监听转发测试（不启动系统级钩子）
"""

import asyncio
from types import SimpleNamespace

import pytest

from catalog_scanner.keyboard_listener import KeyboardScanListener
from catalog_scanner.keystroke_aggregator import KeystrokeAggregator


@pytest.mark.asyncio
async def test_key_events_forwarded_to_event_loop():
    scans = []
    aggregator = KeystrokeAggregator(lambda text, classification: scans.append(text))
    listener = KeyboardScanListener(aggregator, asyncio.get_running_loop())

    for char in "03178471":
        listener._on_press(SimpleNamespace(char=char))
    listener._on_press(SimpleNamespace(char=None, name="enter"))
    await asyncio.sleep(0)

    assert scans == ["03178471"]
    assert listener.key_events == 9


@pytest.mark.asyncio
async def test_unknown_key_objects_ignored():
    aggregator = KeystrokeAggregator(lambda text, classification: None)
    listener = KeyboardScanListener(aggregator, asyncio.get_running_loop())

    listener._on_press(SimpleNamespace(char=None))
    await asyncio.sleep(0)

    assert listener.key_events == 0
    assert not listener.is_running


def test_stop_without_start_is_noop():
    listener = KeyboardScanListener(KeystrokeAggregator(lambda text, classification: None))
    listener.stop()
    assert not listener.is_running
