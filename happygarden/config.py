"""Device configuration: users, Wi-Fi, MQTT and time settings persisted with a CRC."""

from __future__ import annotations

import hashlib
import json
import struct
import zlib
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional

MAGIC = 0x48484743
VERSION = 1
HHG_VERSION = "1.0.0"
VERSION_SIZE = 15

MAX_USERS = 2
ADMIN = 0
ZONES_SIZE = 4

SERIAL_SIZE = 16
DESCR_SIZE = 64
USER_SIZE = 32
PASSWD_SIZE = 32
SSID_SIZE = 32
WIFI_PASSWD_SIZE = 64
BROKER_SIZE = 64
TOPIC_SIZE = 64
DEFAULT_MQTT_PORT = 1883

_LAYOUT = struct.Struct(
    f"<IB{SERIAL_SIZE}s{DESCR_SIZE}sBB"
    + f"{USER_SIZE}s{PASSWD_SIZE}s" * MAX_USERS
    + f"{SSID_SIZE}s{WIFI_PASSWD_SIZE}sBB"
    + f"{BROKER_SIZE}sH{TOPIC_SIZE}s"
    + "hBI"
)


class DataType(Enum):
    """Kind of record kept by a storage backend."""

    CONFIG = 0
    DATA = 1


class StorageError(Exception):
    """Raised when a record cannot be read from or written to storage."""


class IntegrityError(StorageError):
    """Raised when a stored record fails its CRC or magic-number check."""


class MemoryStorage:
    """Storage backend that keeps records in memory."""

    def __init__(self):
        self._records: dict[DataType, bytes] = {}

    def write(self, data_type, payload):
        self._records[data_type] = bytes(payload)

    def read(self, data_type):
        try:
            return self._records[data_type]
        except KeyError:
            raise StorageError(f"no record stored for {data_type.name}") from None

    def clear(self, data_type):
        self._records.pop(data_type, None)


def _clip(text: str, size: int) -> str:
    return text.encode("utf-8")[:size].decode("utf-8", "ignore")


def _decode(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", "replace")


def _md5(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class User:
    """A user name with its hex MD5 password digest."""

    user: str = ""
    passwd: str = ""

    def is_empty(self):
        return not self.user and not self.passwd


@dataclass
class WifiConfig:
    ssid: str = ""
    passwd: str = ""
    auth: int = 0
    enabled: bool = False


@dataclass
class MqttConfig:
    broker: str = ""
    port: int = DEFAULT_MQTT_PORT
    subscription_topic: str = ""


@dataclass
class Config:
    """The persisted configuration record."""

    magic: int = MAGIC
    version: int = VERSION
    serial: str = ""
    descr: str = ""
    zones_size: int = ZONES_SIZE
    users_len: int = 0
    users: list = field(default_factory=lambda: [User() for _ in range(MAX_USERS)])
    wifi: WifiConfig = field(default_factory=WifiConfig)
    mqtt: MqttConfig = field(default_factory=MqttConfig)
    timezone: int = 0
    daylight_saving_time: bool = False
    crc: int = 0

    def to_bytes(self):
        user_fields = []
        for u in self.users:
            user_fields += [u.user.encode("utf-8"), u.passwd.encode("utf-8")]
        return _LAYOUT.pack(
            self.magic,
            self.version,
            self.serial.encode("utf-8"),
            self.descr.encode("utf-8"),
            self.zones_size,
            self.users_len,
            *user_fields,
            self.wifi.ssid.encode("utf-8"),
            self.wifi.passwd.encode("utf-8"),
            self.wifi.auth,
            int(self.wifi.enabled),
            self.mqtt.broker.encode("utf-8"),
            self.mqtt.port,
            self.mqtt.subscription_topic.encode("utf-8"),
            self.timezone,
            int(self.daylight_saving_time),
            self.crc,
        )

    @classmethod
    def from_bytes(cls, raw):
        if len(raw) != _LAYOUT.size:
            raise IntegrityError(
                f"config record has {len(raw)} bytes, expected {_LAYOUT.size}"
            )
        values = list(_LAYOUT.unpack(raw))
        magic, version, serial, descr, zones_size, users_len = values[:6]
        rest = values[6:]
        user_raw, rest = rest[: 2 * MAX_USERS], rest[2 * MAX_USERS :]
        users = [
            User(_decode(name), _decode(digest))
            for name, digest in zip(user_raw[::2], user_raw[1::2])
        ]
        ssid, wifi_passwd, auth, enabled, broker, port, topic, tz, dst, crc = rest
        return cls(
            magic=magic,
            version=version,
            serial=_decode(serial),
            descr=_decode(descr),
            zones_size=zones_size,
            users_len=users_len,
            users=users,
            wifi=WifiConfig(_decode(ssid), _decode(wifi_passwd), auth, bool(enabled)),
            mqtt=MqttConfig(_decode(broker), port, _decode(topic)),
            timezone=tz,
            daylight_saving_time=bool(dst),
            crc=crc,
        )


def _checksum(config: Config) -> int:
    return zlib.crc32(replace(config, crc=MAGIC).to_bytes())


class AppConfig:
    """Holds the configuration and persists it through a storage backend."""

    def __init__(self, storage):
        self.storage = storage
        self.config = Config()

    def init(self):
        self.load()

    def _write_raw(self):
        self.storage.write(DataType.CONFIG, self.config.to_bytes())

    def set_serial(self, serial):
        if serial:
            self.config.serial = _clip(self.config.serial + serial, SERIAL_SIZE)
        else:
            self.config.serial = ""
        self._write_raw()

    def set_descr(self, descr):
        if descr:
            self.config.descr = _clip(self.config.descr + descr, DESCR_SIZE)
        else:
            self.config.descr = ""
        self._write_raw()

    def set_user(self, idx, user, passwd):
        """Add a user at ``idx`` or update the password of the user already there."""
        if (
            idx < 0
            or idx >= MAX_USERS
            or idx > self.config.users_len
            or not user
            or len(user) > USER_SIZE
            or not passwd
            or len(passwd) == PASSWD_SIZE
        ):
            raise ValueError(f"invalid user slot or credentials for index {idx}")
        digest = _md5(passwd)
        current = self.config.users[idx]
        if current.is_empty():
            self.config.users_len += 1
            self.config.users[idx] = User(user, digest)
        elif current.user != user:
            raise ValueError(f"slot {idx} belongs to another user")
        else:
            self.config.users[idx] = User(current.user, digest)

    def get_user(self, idx):
        if not 0 <= idx < MAX_USERS:
            raise IndexError(f"user index {idx} out of range")
        return self.config.users[idx]

    def _active_users(self):
        return self.config.users[: min(self.config.users_len, MAX_USERS)]

    def set_auth(self, user, passwd):
        """Return the matching user for a clear-text password, or None."""
        digest = _md5(passwd)
        for candidate in self._active_users():
            if candidate.user == user and candidate.passwd == digest:
                return candidate
        return None

    def set_auth_remote(self, user, passwd):
        """Return the matching user for an already hashed password, or None."""
        for candidate in self._active_users():
            if candidate.user == user and candidate.passwd == passwd:
                return candidate
        return None

    @staticmethod
    def get_version():
        return HHG_VERSION[:VERSION_SIZE]

    def store(self):
        self.config.crc = _checksum(self.config)
        self.storage.write(DataType.CONFIG, self.config.to_bytes())

    def load(self, on_version_change: Optional[Callable[[int], None]] = None):
        raw = self.storage.read(DataType.CONFIG)
        loaded = Config.from_bytes(raw)
        if _checksum(loaded) != loaded.crc:
            raise IntegrityError("config load: crc error")
        if loaded.magic != MAGIC:
            raise IntegrityError("config load: magic number error")
        if on_version_change:
            on_version_change(loaded.version)
        self.config = loaded

    def load_default(self, admin_user, admin_passwd, user=None, passwd=None):
        default = Config()
        default.users[0] = User(admin_user, _md5(admin_passwd))
        default.users_len = 1
        if user is not None and passwd is not None and MAX_USERS > 1:
            default.users[1] = User(user, _md5(passwd))
            default.users_len += 1
        self.config = default
        self.store()

    def clear(self):
        self.storage.clear(DataType.CONFIG)

    def get_config(self, unformatted=False):
        """Return the configuration as a JSON document."""
        cfg = self.config
        document = {
            "serial": cfg.serial,
            "descr": cfg.descr,
            "zones_size": cfg.zones_size,
            "users_len": cfg.users_len,
            "users": [
                {"user": u.user, "passwd": u.passwd} for u in self._active_users()
            ],
            "wifi": {
                "ssid": cfg.wifi.ssid,
                "passwd": cfg.wifi.passwd,
                "auth": cfg.wifi.auth,
                "enabled": int(cfg.wifi.enabled),
            },
            "mqtt": {
                "broker": cfg.mqtt.broker,
                "port": cfg.mqtt.port,
                "subscription_topic": cfg.mqtt.subscription_topic,
            },
            "timezone": cfg.timezone,
            "daylight_saving_time": int(cfg.daylight_saving_time),
        }
        if unformatted:
            return json.dumps(document, separators=(",", ":"))
        return json.dumps(document, indent="\t", separators=(",", ":\t"))

    def set_wifi_ssid(self, ssid):
        self.config.wifi.ssid = _clip(ssid or "", SSID_SIZE)

    def set_wifi_passwd(self, passwd):
        self.config.wifi.passwd = _clip(passwd or "", WIFI_PASSWD_SIZE)

    def set_wifi_auth(self, auth):
        auth = int(auth)
        if not 0 <= auth <= 0xFF:
            raise ValueError(f"wifi auth {auth} out of range")
        self.config.wifi.auth = auth

    def set_wifi_enabled(self, enabled):
        self.config.wifi.enabled = bool(int(enabled))

    def set_timezone(self, timezone):
        timezone = int(timezone)
        if not -0x8000 <= timezone <= 0x7FFF:
            raise ValueError(f"timezone {timezone} out of range")
        self.config.timezone = timezone

    def set_daylight_saving_time(self, enabled):
        self.config.daylight_saving_time = bool(int(enabled))

    def set_mqtt_broker(self, broker):
        self.config.mqtt.broker = _clip(broker or "", BROKER_SIZE)

    def set_mqtt_port(self, port):
        port = int(port)
        if not 0 <= port <= 0xFFFF:
            raise ValueError(f"mqtt port {port} out of range")
        self.config.mqtt.port = port

    def set_mqtt_subscription_topic(self, topic):
        self.config.mqtt.subscription_topic = _clip(topic or "", TOPIC_SIZE)