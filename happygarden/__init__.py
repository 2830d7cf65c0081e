"""Garden irrigation controller logic: configuration, schedules, command parser, keyboard and LED."""

__version__ = "1.0.0"