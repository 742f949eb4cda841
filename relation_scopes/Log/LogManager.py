from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union
from pathlib import Path
from datetime import datetime
import json
import sys

from relation_scopes.Support.Config import config


class LogChannel:
    """Laravel-style log channel."""

    def __init__(
        self,
        name: str,
        handler: logging.Handler,
        level: Union[str, int] = logging.INFO,
        logger_name: Optional[str] = None,
        propagate: bool = False,
    ) -> None:
        self.name = name
        self.handler = handler
        self.logger = logging.getLogger(logger_name or name)
        self.logger.setLevel(_level(level))
        self.logger.addHandler(handler)
        self.logger.propagate = propagate

    def debug(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log info message."""
        self._log(logging.INFO, message, context)

    def warning(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log warning message."""
        self._log(logging.WARNING, message, context)

    def error(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log error message."""
        self._log(logging.ERROR, message, context)

    def log(self, level: Union[str, int], message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log message at specified level."""
        self._log(_level(level), message, context)

    def close(self) -> None:
        """Detach this channel's handler from its logger."""
        self.logger.removeHandler(self.handler)
        self.handler.close()

    def _log(self, level: int, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        extra = {'context': context} if context else {}
        self.logger.log(level, message, extra=extra)


class LaravelFormatter(logging.Formatter):
    """Laravel-style log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record."""
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        log_line = f"[{timestamp}] {record.name}.{record.levelname}: {record.getMessage()}"

        context = getattr(record, 'context', {})
        if context:
            log_line += f" {json.dumps(context, default=str)}"

        if record.exc_info:
            log_line += f"\n{self.formatException(record.exc_info)}"

        return log_line


class JsonFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'channel': record.name,
            'message': record.getMessage(),
            'context': getattr(record, 'context', {}),
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class LogManager:
    """
    Laravel-style log manager.

    Channels are described in ``relation_scopes/config/logging.py`` and are
    attached to the logger named by ``scopes.log_channel`` so every module
    logger of the package (``relation_scopes.Scopes.ScopeRegistry.Post`` and
    so on) writes through them.
    """

    def __init__(self, channels: Optional[Dict[str, Dict[str, Any]]] = None, logger_name: Optional[str] = None) -> None:
        self._channels_config = channels if channels is not None else config('logging.channels', {})
        self._logger_name = logger_name or config('scopes.log_channel', 'relation_scopes')
        self._default_channel = config('logging.default', 'stderr')
        self._channels: Dict[str, LogChannel] = {}

    def channel(self, name: Optional[str] = None) -> LogChannel:
        """Get a log channel, creating it on first use."""
        if name is None:
            name = self._default_channel

        if name not in self._channels:
            self._channels[name] = self._create_channel(name)

        return self._channels[name]

    def _create_channel(self, name: str) -> LogChannel:
        channel_config = self._channels_config.get(name, {})
        driver = channel_config.get('driver', 'stderr')
        level = channel_config.get('level', logging.WARNING)

        if driver == 'single':
            path = Path(channel_config.get('path', f'storage/logs/{name}.log'))
            path.parent.mkdir(parents=True, exist_ok=True)
            handler: logging.Handler = logging.FileHandler(path)
        elif driver == 'null':
            handler = logging.NullHandler()
        else:
            handler = logging.StreamHandler(sys.stderr)

        handler.setFormatter(self._get_formatter(channel_config))
        return LogChannel(name, handler, level, logger_name=self._logger_name)

    def _get_formatter(self, channel_config: Dict[str, Any]) -> logging.Formatter:
        if channel_config.get('formatter', 'laravel') == 'json':
            return JsonFormatter()
        return LaravelFormatter()

    def get_default_driver(self) -> str:
        """Get the default log channel name."""
        return self._default_channel

    def set_default_driver(self, name: str) -> None:
        """Set the default log channel name."""
        self._default_channel = name

    def get_channels(self) -> Dict[str, LogChannel]:
        """Get all created channels."""
        return self._channels

    def forget_channel(self, name: str) -> None:
        """Close and remove a channel."""
        channel = self._channels.pop(name, None)
        if channel is not None:
            channel.close()


def _level(level: Union[str, int]) -> int:
    if isinstance(level, str):
        return logging.getLevelName(level.upper())
    return level


# Global log manager instance
log_manager_instance: Optional[LogManager] = None


def get_log_manager() -> LogManager:
    """Get the global log manager instance."""
    global log_manager_instance
    if log_manager_instance is None:
        log_manager_instance = LogManager()
    return log_manager_instance


def configure_logging(channel: Optional[str] = None) -> LogChannel:
    """Route the package loggers through a configured channel."""
    return get_log_manager().channel(channel)
