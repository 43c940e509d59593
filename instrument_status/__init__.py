"""Instrument status pipeline: watched XML files → RabbitMQ → SQLite latest-state store."""

__version__ = "1.0.0"
