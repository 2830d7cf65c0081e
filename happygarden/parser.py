"""Command parsing for the serial, Wi-Fi and display channels, with login sessions."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from happygarden.config import StorageError, User

_log = logging.getLogger(__name__)

STARTER_CHAR = "$"
NEW_LINE = "\r\n"
KO = b"KO\r\n"
AUTH_TIMEOUT = 300_000
AUTH_TIMER_PERIOD = 1_000
DEFAULT_DIVISOR = "|"


class IoSource(Enum):
    """Channel a command arrived from."""

    UART = 0
    WIFI = 1
    DISPLAY = 2


class CommandError(Exception):
    """Raised when a command is unknown, refused or fails."""

    def __init__(self, message, reply=None):
        super().__init__(message)
        self.reply = reply


@dataclass
class CommandData:
    """The whitespace separated tokens of one command line."""

    tokens: list


@dataclass
class CommandEntry:
    """One node of the command tree.

    ``func`` receives the tokens that follow the key as positional arguments;
    ``custom_func`` receives the ``CommandData`` and the entry itself.
    ``access`` names the users allowed to run it; empty means everyone.
    """

    key: str
    func: Optional[Callable] = None
    custom_func: Optional[Callable] = None
    next: list = field(default_factory=list)
    description: str = ""
    access: str = ""


def _format(result) -> str:
    if result is None:
        return "OK"
    if isinstance(result, bool):
        return "1" if result else "0"
    return str(result)


class CommandParser:
    """Resolves command lines against a tree of ``CommandEntry`` objects."""

    def __init__(self, commands):
        self.commands = list(commands)
        self._on_auth: Optional[Callable] = None

    def _find(self, tokens):
        entries = self.commands
        for depth, token in enumerate(tokens):
            entry = next((e for e in entries if e.key == token), None)
            if entry is None:
                raise CommandError(f"unknown command: {' '.join(tokens[: depth + 1])}")
            if not entry.next or depth == len(tokens) - 1:
                return entry, tokens[depth + 1 :]
            entries = entry.next
        raise CommandError("empty command")

    def set(self, key, func):
        """Attach ``func`` to the entry addressed by ``key`` (e.g. ``"$CONF 1"``)."""
        tokens = key.split()
        entry, rest = self._find(tokens)
        if rest:
            raise CommandError(f"unknown command: {key}")
        entry.func = func

    def set_on_auth(self, callback):
        self._on_auth = callback

    def execute(self, line):
        """Run one command line and return its reply text."""
        tokens = line.split()
        if not tokens:
            raise CommandError("empty command")
        entry, args = self._find(tokens)
        data = CommandData(tokens)
        if self._on_auth is not None and not self._on_auth(data, entry):
            raise CommandError(f"access denied: {entry.key}")
        try:
            if entry.custom_func is not None:
                result = entry.custom_func(data, entry)
            elif entry.func is not None:
                result = entry.func(*args)
            else:
                raise CommandError(f"no handler for: {' '.join(tokens)}")
        except CommandError:
            raise
        except (ValueError, LookupError, TypeError, StorageError) as exc:
            raise CommandError(str(exc)) from exc
        return _format(result)


class AppParser:
    """Collects bytes from the I/O channels, runs commands and tracks the logged user."""

    def __init__(self, commands, divisor=DEFAULT_DIVISOR):
        self.parser = CommandParser(commands)
        self.parser.set_on_auth(self.on_auth)
        self.divisor = divisor
        self.source = IoSource.UART
        self.source_user_logged: Optional[IoSource] = None
        self.user_logged = User()
        self.user_logged_timeout = AUTH_TIMEOUT
        self._auth_timer_active = False
        self._on_logout: Optional[Callable[[], None]] = None
        self._io: dict = {}
        self._incoming = bytearray()
        self._line = ""
        self._replies: deque = deque()

    def register_io(self, source, io):
        self._io[IoSource(source)] = io

    def on_receive(self, source, data):
        if data is None:
            return
        self.source = IoSource(source)
        self._incoming.extend(data)

    def _transmit(self, payload: bytes):
        io = self._io.get(self.source)
        if io is not None:
            io.transmit(payload)

    def _dispatch(self, command: str):
        try:
            reply = self.parser.execute(command)
        except CommandError as exc:
            _log.error("command %r failed: %s", command, exc)
            if self.source is IoSource.DISPLAY:
                self._replies.append(KO.decode("ascii"))
            else:
                self._transmit(KO)
            return

        if self.is_user_logged() and self._auth_timer_active:
            self.user_logged_timeout = AUTH_TIMEOUT

        reply += NEW_LINE
        if self.source is IoSource.UART:
            self._transmit(reply.encode("utf-8"))
        elif self.source is IoSource.WIFI:
            self._transmit(reply.rstrip().encode("utf-8"))
        else:
            self._replies.append(reply.rstrip())

    def process(self):
        """Consume received bytes, running a command once a full line is present."""
        while self._incoming:
            self._line += chr(self._incoming.pop(0))
            start = self._line.find(STARTER_CHAR)
            end = self._line.find("\r\n")
            if end < 0:
                end = self._line.find("\n")
            if start >= 0 and end >= 0:
                self._incoming.clear()
                command = self._line[start:end]
                self._line = ""
                self._dispatch(command)
            elif start < 0 and end >= 0:
                self._incoming.clear()
                self._line = ""
                self._transmit(KO)

    def send_cmd(self, source, data):
        """Run a command synchronously and return its reply, which must contain OK."""
        if data is None:
            raise CommandError("no data")
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._replies.clear()
        self.on_receive(source, data)
        self.process()
        if not self._replies:
            raise CommandError("no reply")
        reply = self._replies.popleft()
        if "OK" not in reply:
            raise CommandError(f"command failed: {reply}", reply)
        return reply

    def on_auth(self, data, entry):
        """Return True when the logged user may run ``entry``."""
        if not entry.access:
            return True
        if len(data.tokens) < 1:
            return False
        first, found, second = entry.access.partition(self.divisor)
        if not found:
            return self.user_logged.user == entry.access
        return self.user_logged.user in (first, second)

    def set_user_logged(self, user):
        self.user_logged = user
        self.source_user_logged = self.source
        self.user_logged_timeout = AUTH_TIMEOUT
        self._auth_timer_active = True

    def clear_user_logged(self):
        self.user_logged = User()
        self._auth_timer_active = False
        if self._on_logout is not None:
            self._on_logout()

    def is_user_logged(self):
        return bool(self.user_logged.user)

    def set_on_logout(self, callback):
        self._on_logout = callback

    def tick_auth_timer(self):
        """Advance the session timer by one period, logging out when it expires."""
        if not self._auth_timer_active:
            return
        if self.user_logged_timeout <= 0:
            _log.debug("session timeout user:%s", self.user_logged.user)
            self.clear_user_logged()
        else:
            self.user_logged_timeout -= AUTH_TIMER_PERIOD