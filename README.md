# happygarden

Application logic for a small garden irrigation controller, as a plain
Python library with no runtime dependencies. Hardware is reached through
small objects you pass in, so everything runs against in-memory fakes as
easily as against real devices.

| Module | What it holds |
| --- | --- |
| `happygarden.config` | Device configuration (serial, description, users, Wi-Fi, MQTT settings, timezone) stored as a CRC-checked binary record. |
| `happygarden.data` | Irrigation schedules and their zones, JSON import and export, and the lookup of the schedule due at a given time. |
| `happygarden.parser` | The line-based `$COMMAND` protocol: a command tree, per-command access control and login sessions. |
| `happygarden.keyboard` | The rotary-encoder on-screen keyboard for text and number entry. |
| `happygarden.led` | The status LED blinker. |

## Configuration

```python
from happygarden.config import AppConfig, MemoryStorage

storage = MemoryStorage()
config = AppConfig(storage)

admin_passwd = "password"
user_passwd = "password"
config.load_default("admin", admin_passwd, "user", user_passwd)

config.set_descr("Back garden")
config.set_wifi_ssid("garden-net")
config.set_mqtt_broker("broker.example.com")
config.set_mqtt_port(1883)
config.store()

print(config.get_config(False))
```

- `load_default` resets the configuration to one admin user (and an optional
  second user), then stores it.
- Passwords are kept as hex MD5 digests. `set_auth(user, passwd)` checks a
  clear-text password and `set_auth_remote(user, passwd)` an already hashed
  one; both return the matching `User` or `None`.
- `set_user(idx, user, passwd)` adds a user in a free slot or changes the
  password of the user already there, and raises `ValueError` otherwise.
- `set_serial` and `set_descr` append to the current value (an empty value
  clears it) and write the record at once, without updating its checksum;
  call `store()` to write a record that `load()` will accept.
- `get_config(unformatted)` returns the configuration as JSON, compact when
  `unformatted` is true and tab-indented otherwise.

`MemoryStorage` keeps each record in memory; any object with the same
`write(data_type, payload)`, `read(data_type)` and `clear(data_type)` methods
can take its place. Reading a missing record raises `StorageError`; loading a
record whose size, checksum or magic number is wrong raises `IntegrityError`.

## Schedules and zones

```python
from happygarden.data import AppData

data = AppData(storage)
data.reset()
data.set_schedule(
    '{"id": 0, "hour": 6, "days": 127, "months": 4095,'
    ' "description": "Morning", "status": 1}'
)
data.set_zone(
    '{"id": 0, "id_schedule": 0, "description": "Lawn", "relay_number": 1,'
    ' "watering_time": 10, "weight": 1, "status": 1}'
)
print(data.get_schedule(0))
data.store()
```

`set_schedule` takes the minute from the `id` field, so the schedule above
runs at 06:00. Missing or mistyped fields raise `ValueError`; out-of-range
indexes raise `IndexError`. `get_schedule` and `get_zone` return compact
JSON, and `get_schedule_data` and `get_zone_data` return the stored objects.

`AppData.find_schedule(timestamp)` returns a copy of the active schedule
that is due at a UNIX timestamp (read as UTC), or `None`.

## Command protocol

Commands are text lines that start with `$` and end with a newline. A
command table is a list of `CommandEntry` objects; sub-commands go in
`next`, and `access` names the users allowed to run an entry, two names
separated by `|` (an empty `access` lets everyone in).

```python
from happygarden.parser import AppParser, CommandEntry, IoSource

commands = [
    CommandEntry("$VER", description="Get version"),
    CommandEntry("$CONF", next=[
        CommandEntry("1", description="Get serial"),
        CommandEntry("4", description="Set description", access="admin|user"),
    ]),
]
app_parser = AppParser(commands)
app_parser.parser.set("$VER", AppConfig.get_version)
app_parser.parser.set("$CONF 1", lambda: config.config.serial)
app_parser.parser.set("$CONF 4", config.set_descr)

app_parser.set_user_logged(config.set_auth("admin", admin_passwd))
print(app_parser.send_cmd(IoSource.DISPLAY, "$CONF 4 Shed\r\n"))  # OK
```

A handler bound with `set` receives the tokens after its key; a handler
that returns `None` answers `OK`. For the UART and Wi-Fi channels, register
an object with a `transmit(bytes)` method through `register_io`, hand it
incoming bytes with `on_receive(source, data)` and call `process()`; the
reply, or `KO`, goes back to that channel. `send_cmd` runs a command
synchronously and raises `CommandError` unless the reply contains `OK`.
`tick_auth_timer()` advances the session timer by one second and logs the
user out when the session expires, calling the `set_on_logout` callback.

## On-screen keyboard

`Keyboard(type, painter, font_range, display_width, on_exit)` handles
button and rotary-encoder events for text (`KeyboardType.DEFAULT`) or number
(`KeyboardType.NUMERICS`) entry. The painter provides
`paint_clean(x, y, width, height)`, `paint_str(text, y, valign, font, offset_x)`
and `paint_char(char, x, y, font)`. A long press or leaving with the encoder
button calls `on_exit(False, text, None)`.

## Status LED

`AppLed(rgb_led)` drives an object with a `set_rgb(r, g, b)` method.
`loading()`, `warning()`, `error()` and `ready()` choose the blink pattern;
`tick()` runs one 100 ms step, and `init()` starts a background thread that
calls it (only one LED may be active at a time) until `stop()`.

## What the package does not do

The package provides the building blocks, not a running device. It has no
ready-made `$VER`/`$CONF`/`$DATA` command table wired to the configuration
and data objects, no start-up state machine that checks users, connects to
Wi-Fi and synchronises the clock, no MQTT client, no display screens or
menus, and no drivers for real storage, LCD, buttons or LEDs. There is no
command-line program.

## Running the tests

Install the package with its `test` extra and run `pytest` from the project
directory.