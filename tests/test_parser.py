import pytest

from happygarden.config import User
from happygarden.parser import (
    AUTH_TIMEOUT,
    AUTH_TIMER_PERIOD,
    KO,
    AppParser,
    CommandData,
    CommandEntry,
    CommandError,
    CommandParser,
    IoSource,
)


class FakeIo:
    def __init__(self):
        self.sent = []

    def transmit(self, payload):
        self.sent.append(bytes(payload))


def make_commands():
    return [
        CommandEntry("$VER", func=lambda: "1.2.3"),
        CommandEntry(
            "$CONF",
            next=[
                CommandEntry("1", func=lambda: "serial-x"),
                CommandEntry("2", func=lambda value: f"set {value}", access="admin|user"),
                CommandEntry("3", func=lambda: None, access="admin"),
                CommandEntry("4", func=lambda: int("bad")),
                CommandEntry("5"),
            ],
        ),
        CommandEntry("$ECHO", custom_func=lambda data, entry: " ".join(data.tokens[1:])),
    ]


@pytest.fixture
def app():
    parser = AppParser(make_commands())
    uart = FakeIo()
    wifi = FakeIo()
    parser.register_io(IoSource.UART, uart)
    parser.register_io(IoSource.WIFI, wifi)
    return parser, uart, wifi


def test_execute_simple_command():
    assert CommandParser(make_commands()).execute("$VER") == "1.2.3"


def test_execute_passes_arguments():
    parser = CommandParser(make_commands())
    assert parser.execute("$CONF 2 garden") == "set garden"


def test_execute_custom_func_receives_tokens():
    parser = CommandParser(make_commands())
    assert parser.execute("$ECHO a b") == "a b"


def test_none_result_is_ok():
    assert CommandParser(make_commands()).execute("$CONF 3") == "OK"


def test_unknown_command_raises():
    with pytest.raises(CommandError):
        CommandParser(make_commands()).execute("$NOPE")


def test_unknown_subcommand_raises():
    with pytest.raises(CommandError):
        CommandParser(make_commands()).execute("$CONF 99")


def test_handler_error_becomes_command_error():
    with pytest.raises(CommandError):
        CommandParser(make_commands()).execute("$CONF 4")


def test_entry_without_handler_raises():
    with pytest.raises(CommandError):
        CommandParser(make_commands()).execute("$CONF 5")


def test_wrong_argument_count_raises():
    with pytest.raises(CommandError):
        CommandParser(make_commands()).execute("$CONF 1 extra")


def test_set_attaches_handler():
    parser = CommandParser(make_commands())
    parser.set("$CONF 5", lambda: "attached")
    assert parser.execute("$CONF 5") == "attached"


def test_set_unknown_key_raises():
    with pytest.raises(CommandError):
        CommandParser(make_commands()).set("$CONF 42", lambda: None)


def test_on_auth_refusal_raises():
    parser = CommandParser(make_commands())
    parser.set_on_auth(lambda data, entry: False)
    with pytest.raises(CommandError):
        parser.execute("$VER")


def test_on_auth_open_entry(app):
    parser, _, _ = app
    assert parser.on_auth(CommandData(["$VER"]), CommandEntry("$VER")) is True


@pytest.mark.parametrize(
    "name, allowed",
    [("admin", True), ("user", True), ("guest", False), ("", False)],
)
def test_on_auth_with_divisor(app, name, allowed):
    parser, _, _ = app
    if name:
        parser.set_user_logged(User(name, "digest"))
    entry = CommandEntry("2", access="admin|user")
    assert parser.on_auth(CommandData(["$CONF", "2"]), entry) is allowed


def test_on_auth_single_user(app):
    parser, _, _ = app
    parser.set_user_logged(User("user", "digest"))
    entry = CommandEntry("3", access="admin")
    assert parser.on_auth(CommandData(["$CONF", "3"]), entry) is False


def test_on_auth_without_tokens_refused(app):
    parser, _, _ = app
    parser.set_user_logged(User("admin", "digest"))
    assert parser.on_auth(CommandData([]), CommandEntry("3", access="admin")) is False


def test_uart_reply_keeps_new_line(app):
    parser, uart, _ = app
    parser.on_receive(IoSource.UART, b"$VER\r\n")
    parser.process()
    assert uart.sent == [b"1.2.3\r\n"]


def test_wifi_reply_is_trimmed(app):
    parser, _, wifi = app
    parser.on_receive(IoSource.WIFI, b"$CONF 1\n")
    parser.process()
    assert wifi.sent == [b"serial-x"]


def test_data_split_across_receives(app):
    parser, uart, _ = app
    parser.on_receive(IoSource.UART, b"$V")
    parser.process()
    assert uart.sent == []
    parser.on_receive(IoSource.UART, b"ER\r\n")
    parser.process()
    assert uart.sent == [b"1.2.3\r\n"]


def test_leading_noise_is_skipped(app):
    parser, uart, _ = app
    parser.on_receive(IoSource.UART, b"xx$VER\n")
    parser.process()
    assert uart.sent == [b"1.2.3\r\n"]


def test_line_without_starter_is_ko(app):
    parser, uart, _ = app
    parser.on_receive(IoSource.UART, b"hello\n")
    parser.process()
    assert uart.sent == [KO]


def test_failed_command_is_ko(app):
    parser, uart, _ = app
    parser.on_receive(IoSource.UART, b"$CONF 2 x\n")
    parser.process()
    assert uart.sent == [KO]


def test_send_cmd_failure_raises(app):
    parser, _, _ = app
    with pytest.raises(CommandError):
        parser.send_cmd(IoSource.DISPLAY, b"$CONF 4\r\n")


def test_send_cmd_reply_without_ok_raises(app):
    parser, _, _ = app
    with pytest.raises(CommandError) as info:
        parser.send_cmd(IoSource.DISPLAY, b"$VER\r\n")
    assert info.value.reply == "1.2.3"


def test_send_cmd_incomplete_line_raises(app):
    parser, _, _ = app
    with pytest.raises(CommandError):
        parser.send_cmd(IoSource.DISPLAY, b"$VER")


def test_send_cmd_none_raises(app):
    parser, _, _ = app
    with pytest.raises(CommandError):
        parser.send_cmd(IoSource.DISPLAY, None)


def test_set_and_clear_user_logged(app):
    parser, _, _ = app
    calls = []
    parser.set_on_logout(lambda: calls.append(True))
    parser.on_receive(IoSource.WIFI, b"")
    parser.set_user_logged(User("admin", "digest"))
    assert parser.is_user_logged()
    assert parser.source_user_logged is IoSource.WIFI
    parser.clear_user_logged()
    assert not parser.is_user_logged()
    assert calls == [True]


def test_session_times_out(app):
    parser, _, _ = app
    calls = []
    parser.set_on_logout(lambda: calls.append(True))
    parser.set_user_logged(User("admin", "digest"))
    for _ in range(AUTH_TIMEOUT // AUTH_TIMER_PERIOD):
        parser.tick_auth_timer()
    assert parser.is_user_logged()
    parser.tick_auth_timer()
    assert not parser.is_user_logged()
    assert calls


def test_command_refreshes_session(app):
    parser, uart, _ = app
    parser.set_user_logged(User("admin", "digest"))
    parser.tick_auth_timer()
    assert parser.user_logged_timeout == AUTH_TIMEOUT - AUTH_TIMER_PERIOD
    parser.on_receive(IoSource.UART, b"$CONF 3\n")
    parser.process()
    assert uart.sent == [b"OK\r\n"]
    assert parser.user_logged_timeout == AUTH_TIMEOUT


def test_timer_idle_without_login(app):
    parser, _, _ = app
    before = parser.user_logged_timeout
    parser.tick_auth_timer()
    assert parser.user_logged_timeout == before