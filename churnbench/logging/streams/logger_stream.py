import asyncio
import datetime
import io
import os
import sys
import threading
from collections import defaultdict
from typing import (
    Any,
    Callable,
    Dict,
    TypeVar,
)

import msgspec

from churnbench.logging.config import LoggingConfig, StreamType
from churnbench.logging.models import Entry, Log, LogLevel

T = TypeVar('T', bound=Entry)

DEFAULT_TEMPLATE = "{timestamp} - {level} - {logger} - {message}"


class LoggerStream:
    def __init__(
        self,
        name: str | None = None,
        template: str | None = None,
        filename: str | None = None,
        directory: str | None = None,
        models: dict[
            str,
            tuple[
                type[T],
                dict[str, Any],
            ]
        ] | None = None,
    ) -> None:
        if name is None:
            name = "default"

        self._name = name
        self._default_template = template
        self._default_logfile = filename
        self._default_log_directory = directory

        self._loop: asyncio.AbstractEventLoop | None = None
        self._files: Dict[str, io.BufferedWriter] = {}
        self._file_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._encoder = msgspec.json.Encoder()

        self._config = LoggingConfig()
        self._initialized: bool = False
        self._closed = False

        self._models: Dict[str, tuple[Callable[..., Entry], dict[str, Any]]] = {
            level.value.lower(): (
                Entry,
                {
                    'level': level,
                },
            ) for level in LogLevel
        }

        if models:
            self._models.update(models)

        self._models['default'] = (
            Entry,
            {
                'level': LogLevel.INFO,
            },
        )

    @property
    def name(self):
        return self._name

    async def initialize(self):
        if self._initialized:
            return

        self._loop = asyncio.get_running_loop()
        self._closed = False
        self._initialized = True

    async def close(self):
        for logfile_path in list(self._files):
            await self._close_file(logfile_path)

        self._closed = True
        self._initialized = False

    async def _close_file(self, logfile_path: str):
        async with self._file_locks[logfile_path]:
            logfile = self._files.pop(logfile_path, None)
            if logfile and not logfile.closed:
                await self._loop.run_in_executor(None, logfile.close)

    async def log_prepared(
        self,
        message: str,
        name: str = 'default',
        template: str | None = None,
        filter: Callable[[T], bool] | None = None,
    ):
        await self.log(
            self._to_entry(message, name),
            template=template,
            filter=filter,
        )

    async def log(
        self,
        entry: T,
        template: str | None = None,
        filter: Callable[[T], bool] | None = None,
    ):
        if self._config.enabled(self._name, entry.level) is False:
            return

        if filter and filter(entry) is False:
            return

        if self._initialized is False:
            await self.initialize()

        if template is None:
            template = self._default_template or DEFAULT_TEMPLATE

        self._log(entry, template)

        directory = self._default_log_directory or self._config.directory
        if directory:
            await self._log_to_file(entry, directory)

    def _to_entry(
        self,
        message: str,
        name: str,
    ):
        model, defaults = self._models.get(
            name,
            self._models['default'],
        )

        return model(
            message=message,
            **defaults,
        )

    def _log(
        self,
        entry: Entry,
        template: str,
    ):
        stream = sys.stdout if self._config.output == StreamType.STDOUT else sys.stderr

        try:
            stream.write(
                entry.to_template(
                    template,
                    context={
                        "logger": self._name,
                        "thread_id": threading.get_native_id(),
                        "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
                    },
                )
                + "\n"
            )
            stream.flush()

        except (KeyError, IndexError, ValueError) as err:
            sys.stderr.write(
                f"{datetime.datetime.now(datetime.UTC).isoformat()} - ERROR - {self._name} - "
                f"Could not render log entry with template {template!r}: {err}\n"
            )

    async def _log_to_file(
        self,
        entry: Entry,
        directory: str,
    ):
        filename = self._default_logfile or f"{self._name}.log.json"
        logfile_path = os.path.join(directory, filename)

        async with self._file_locks[logfile_path]:
            logfile = self._files.get(logfile_path)
            if logfile is None or logfile.closed:
                logfile = await self._loop.run_in_executor(
                    None,
                    self._open_file,
                    logfile_path,
                )
                self._files[logfile_path] = logfile

            line = self._encoder.encode(
                Log(
                    entry=entry,
                    logger=self._name,
                )
            )

            await self._loop.run_in_executor(
                None,
                self._write_to_file,
                logfile,
                line,
            )

    def _open_file(self, logfile_path: str):
        os.makedirs(os.path.dirname(logfile_path), exist_ok=True)
        return open(logfile_path, "ab+")

    def _write_to_file(
        self,
        logfile: io.BufferedWriter,
        line: bytes,
    ):
        logfile.write(line + b"\n")
        logfile.flush()
