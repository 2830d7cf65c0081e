"""On-screen keyboard driven by a rotary encoder and a push button."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Optional

WIDTH_CHAR = 8
ROW_2_Y_OFFSET = 40
KEYBOARD_BUFFER_SIZE = 32
FONT = "F8X8"
LEFT = "LEFT"
CENTER = "CENTER"


class KeyboardType(Enum):
    DEFAULT = 0
    NUMERICS = 1


class ButtonStatus(Enum):
    PRESS = 0
    RELEASE = 1
    LONG_PRESS = 2


class Keyboard:
    """Text or number entry on one display row.

    ``painter`` provides ``paint_clean(x, y, width, height)``,
    ``paint_str(text, y, valign, font, offset_x)`` and ``paint_char(char, x, y, font)``.
    ``on_exit(ok, text, payload)`` is called when the user leaves the keyboard.
    ``menu_idx`` holds the character code (text) or the number being selected.
    """

    def __init__(self, type, painter, font_range, display_width, on_exit=None):
        self.type = KeyboardType(type)
        self.painter = painter
        self.font_range = tuple(font_range)
        self.display_width = display_width
        self.line_max_char = display_width // WIDTH_CHAR
        self.on_exit: Optional[Callable] = on_exit
        self.menu_idx = -1
        self.number_limit = (1, 1)
        self.buffer = ""
        self.overflow = False
        self.add_char = True

    @property
    def keyboard_position(self):
        return len(self.buffer)

    def set_number_limit(self, low, high):
        self.number_limit = (low, high)

    def _clean_row(self):
        self.painter.paint_clean(0, ROW_2_Y_OFFSET, self.display_width, 8)

    def _leave(self, text):
        if self.on_exit is not None:
            self.on_exit(False, text, None)
            self.exit()

    def exit(self):
        """Clear the typed text and the keyboard row."""
        self.add_char = True
        self.buffer = ""
        self.overflow = False
        self._clean_row()

    def set_first_char(self):
        if self.type is KeyboardType.DEFAULT:
            self.menu_idx = ord("a")
        else:
            self.menu_idx = self.number_limit[0]

    def button_click(self, status):
        status = ButtonStatus(status)
        if status is ButtonStatus.RELEASE:
            if self.type is KeyboardType.DEFAULT:
                if self.keyboard_position < KEYBOARD_BUFFER_SIZE - 1:
                    self.buffer += chr(self.menu_idx)
                    self.menu_idx = ord("a")
                    self.add_char = True
            else:
                if self.menu_idx < self.number_limit[0]:
                    self.menu_idx = self.number_limit[0]
                self.add_char = False
        elif status is ButtonStatus.LONG_PRESS:
            self._leave(self.buffer)

    def rotary_encoder_click(self):
        if self.type is KeyboardType.DEFAULT and self.buffer:
            self.buffer = self.buffer[:-1]
            self.menu_idx = ord("a")
            self.add_char = False
        else:
            self._leave(None)

    def rotary_encoder_ccw(self):
        self.menu_idx -= 1
        low, high = self.number_limit
        if self.type is KeyboardType.DEFAULT:
            if self.menu_idx < self.font_range[0]:
                self.menu_idx = self.font_range[1]
        elif self.menu_idx < low or self.menu_idx > low:
            self.menu_idx = high

    def rotary_encoder_cw(self):
        self.menu_idx += 1
        low, high = self.number_limit
        if self.type is KeyboardType.DEFAULT:
            if self.menu_idx > self.font_range[1]:
                self.menu_idx = self.font_range[0]
        elif self.menu_idx > high or self.menu_idx < low:
            self.menu_idx = low

    def paint(self):
        if self.type is KeyboardType.NUMERICS:
            low, high = self.number_limit
            self.menu_idx = min(max(self.menu_idx, low), high)
            self.buffer = str(self.menu_idx)
            self._clean_row()
            self.painter.paint_str(self.buffer, ROW_2_Y_OFFSET, CENTER, FONT, 0)
            return

        position = self.keyboard_position
        char = chr(self.menu_idx)
        if position < self.line_max_char - 1:
            x = 2 + position * WIDTH_CHAR
            if self.overflow:
                self._clean_row()
                self.painter.paint_str(self.buffer, ROW_2_Y_OFFSET, LEFT, FONT, 2)
            elif not self.add_char:
                self.painter.paint_clean(x, ROW_2_Y_OFFSET, 8 + 8, 8)
            self.add_char = True
            self.painter.paint_char(char, x, ROW_2_Y_OFFSET, FONT)
            self.overflow = False
        else:
            self.overflow = True
            delta = position - (self.line_max_char - 1)
            visible = self.buffer[3 + delta : position]
            self._clean_row()
            self.painter.paint_str(visible, ROW_2_Y_OFFSET, LEFT, FONT, 3 * WIDTH_CHAR)
            self.painter.paint_char(
                char, (self.line_max_char - 1) * WIDTH_CHAR, ROW_2_Y_OFFSET, FONT
            )