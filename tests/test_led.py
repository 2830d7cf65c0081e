import threading
import time

import pytest

from happygarden.led import AppLed, LedStatus


class FakeRgb:
    def __init__(self):
        self.calls = []
        self.lock = threading.Lock()

    def set_rgb(self, r, g, b):
        with self.lock:
            self.calls.append((r, g, b))


@pytest.fixture
def led():
    return AppLed(FakeRgb())


def test_loading_first_tick(led):
    led.loading()
    led.tick()
    assert led.rgb_led.calls == [(0, 0xFF, 0)]
    assert led.current_status is LedStatus.LOADING
    assert led.status is LedStatus.NONE


def test_loading_blink_cycle(led):
    led.loading()
    for _ in range(7):
        led.tick()
    assert led.rgb_led.calls == [(0, 0xFF, 0), (0, 0, 0)]
    for _ in range(6):
        led.tick()
    assert led.rgb_led.calls == [(0, 0xFF, 0), (0, 0, 0), (0, 0xFF, 0)]


def test_warning_colour(led):
    led.warning()
    led.tick()
    assert led.rgb_led.calls == [(0xFF, 0x5A, 0x00)]
    assert led.current_status is LedStatus.WARNING


def test_error_colour(led):
    led.error()
    led.tick()
    assert led.rgb_led.calls == [(0xFF, 0, 0)]
    assert led.current_status is LedStatus.ERROR


def test_ready_stays_on(led):
    led.ready()
    for _ in range(50):
        led.tick()
    assert led.rgb_led.calls == [(0, 0xFF, 0)]
    assert led.current_status is LedStatus.READY


def test_same_status_not_requested_again(led):
    led.loading()
    led.tick()
    led.loading()
    assert led.status is LedStatus.NONE
    led.error()
    assert led.status is LedStatus.ERROR


def test_running_irrigation_requests_ready(led):
    led.running_irrigation()
    assert led.status is LedStatus.READY


def test_idle_without_request(led):
    led.tick()
    assert led.rgb_led.calls == []


def test_init_runs_thread_and_single_instance(led):
    led.init()
    try:
        with pytest.raises(RuntimeError):
            AppLed(FakeRgb()).init()
        deadline = time.monotonic() + 2
        while not led.rgb_led.calls and time.monotonic() < deadline:
            time.sleep(0.01)
        assert led.rgb_led.calls[0] == (0, 0xFF, 0)
    finally:
        led.stop()
    other = AppLed(FakeRgb())
    other.init()
    other.stop()
    assert other.current_status in (LedStatus.NONE, LedStatus.LOADING)