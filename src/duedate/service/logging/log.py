from __future__ import annotations

import logging
import socket
import threading
from collections.abc import Mapping, Sequence
from typing import Any

from duedate.service.logging.configuration import LoggingConfiguration, LogLevel
from duedate.util.datetime_helpers import from_timestamp
from duedate.util.json import json_serializer

# Loggers of chatty libraries that are set to the verbose log level.
VERBOSE_LOGGERS = (
    "httpx",
    "httpcore",
)


class JSONFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__()
        self.hostname = socket.getfqdn()
        self.main_thread_id = threading.main_thread().ident

    @staticmethod
    def _is_json_serializable(v: Any) -> bool:
        try:
            json_serializer(v)
            return True
        except (TypeError, ValueError):
            return False

    def format(self, record: logging.LogRecord) -> str:
        def ensure_str(s: Any) -> Any:
            """Ensure that unicode strings are used for a record's message.
            We don't want to try to interpolate an incompatible byte type; it
            could lead to a UnicodeDecodeError.
            """
            if isinstance(s, bytes):
                s = s.decode("utf-8")
            return s

        message = ensure_str(record.msg)
        if record.args:
            record_args: tuple[Any, ...] | dict[str, Any] | None = None
            if isinstance(record.args, Mapping):
                record_args = {
                    ensure_str(k): ensure_str(v) for k, v in record.args.items()
                }
            elif isinstance(record.args, Sequence):
                record_args = tuple(ensure_str(arg) for arg in record.args)

            if record_args is not None:
                try:
                    message = message % record_args
                except Exception as e:
                    # There was a problem formatting the log message,
                    # which points to a bug. A problem with the logging
                    # code shouldn't break the code that actually does the
                    # work, but we can't just let this slide -- we need to
                    # report the problem so it can be fixed.
                    message = (
                        "Log message could not be formatted. Exception: %r. Original message: message=%r args=%r"
                        % (e, message, record_args)
                    )
        data = dict(
            host=self.hostname,
            name=record.name,
            level=record.levelname,
            filename=record.filename,
            message=message,
            timestamp=from_timestamp(record.created).isoformat(),
        )
        if record.exc_info:
            data["traceback"] = self.formatException(record.exc_info)
        if record.process:
            data["process"] = record.process
        if record.thread and record.thread != self.main_thread_id:
            data["thread"] = record.thread
        if record.stack_info:
            data["stack"] = self.formatStack(record.stack_info)

        # Include any custom ('duedate_' prefixed) attributes that have been added to
        # the LogRecord in our json output with the 'duedate_' prefix removed.
        for key, value in record.__dict__.items():
            if (
                key != (log_data_key := key.removeprefix("duedate_"))
                and value is not None
                and self._is_json_serializable(value)
                and log_data_key not in data
            ):
                data[log_data_key] = value

        return json_serializer(data)


def create_stream_handler(formatter: logging.Formatter) -> logging.Handler:
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    return stream_handler


def setup_logging(
    level: LogLevel,
    verbose_level: LogLevel,
    stream: logging.Handler,
) -> None:
    # Set up the root logger
    logging.basicConfig(force=True, level=level.value, handlers=[stream])

    # Set the loggers for various verbose libraries to the verbose
    # log level, which is probably higher than the normal log level.
    for logger in VERBOSE_LOGGERS:
        logging.getLogger(logger).setLevel(verbose_level.value)


def setup_logging_from_configuration(
    config: LoggingConfiguration | None = None,
) -> None:
    """Configure logging from the `DUEDATE_LOG_*` environment variables."""
    config = config or LoggingConfiguration()
    formatter = JSONFormatter() if config.json_format else logging.Formatter()
    setup_logging(
        level=config.level,
        verbose_level=config.verbose_level,
        stream=create_stream_handler(formatter),
    )
