"""Status LED that blinks a colour for each application state."""

from __future__ import annotations

import threading
from enum import Enum
from typing import ClassVar, Optional

OFF = (0, 0, 0)
LOADING_COLOR = (0, 0xFF, 0)
WARNING_COLOR = (0xFF, 0x5A, 0x00)
ERROR_COLOR = (0xFF, 0, 0)
READY_COLOR = (0, 0xFF, 0)


class LedStatus(Enum):
    NONE = 0
    LOADING = 1
    WARNING = 2
    ERROR = 3
    READY = 4
    RUNNING_IRRIGATION = 5


_BLINK = {
    LedStatus.LOADING: (LOADING_COLOR, 5),
    LedStatus.RUNNING_IRRIGATION: (LOADING_COLOR, 5),
    LedStatus.WARNING: (WARNING_COLOR, 3),
    LedStatus.ERROR: (ERROR_COLOR, 2),
}


class AppLed:
    """Drives an RGB LED; ``tick`` runs one step of the blink state machine."""

    TICK = 100

    _active: ClassVar[Optional["AppLed"]] = None
    _active_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, rgb_led):
        self.rgb_led = rgb_led
        self.status = LedStatus.NONE
        self.current_status = LedStatus.NONE
        self._timer_on = 0
        self._timer_off = 0
        self._on = True
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def init(self):
        with AppLed._active_lock:
            if AppLed._active is not None:
                raise RuntimeError("Only one instance at a time")
            AppLed._active = self
        self.loading()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stop.wait(0):
            self.tick()
            self._stop.wait(self.TICK / 1000)

    def stop(self):
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None
        with AppLed._active_lock:
            if AppLed._active is self:
                AppLed._active = None

    def tick(self):
        status = self.status
        if status in _BLINK:
            color, length = _BLINK[status]
            if self._on:
                self.rgb_led.set_rgb(*color)
                self._timer_on = length * self.TICK
            else:
                self.rgb_led.set_rgb(*OFF)
                self._timer_off = length * self.TICK
            self.current_status = (
                LedStatus.LOADING if status is LedStatus.RUNNING_IRRIGATION else status
            )
        elif status is LedStatus.READY:
            if self._on:
                self.rgb_led.set_rgb(*READY_COLOR)
                self._timer_on = 1000 * self.TICK
            else:
                self._timer_off = 0
            self.current_status = LedStatus.READY

        if self._timer_on > 0:
            self._timer_on -= self.TICK
            self.status = LedStatus.NONE
        elif self._timer_off > 0:
            self._timer_off -= self.TICK
            self.status = LedStatus.NONE
        elif self._timer_on == 0 and self._timer_off == 0:
            self._on = not self._on
            self.status = self.current_status

    def _request(self, status):
        if self.current_status is not status:
            self.status = status

    def loading(self):
        self._request(LedStatus.LOADING)

    def warning(self):
        self._request(LedStatus.WARNING)

    def error(self):
        self._request(LedStatus.ERROR)

    def ready(self):
        self._request(LedStatus.READY)

    def running_irrigation(self):
        self._request(LedStatus.READY)