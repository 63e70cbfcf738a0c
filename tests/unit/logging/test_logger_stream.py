import json

import pytest

from churnbench.logging import Entry, LoggingConfig, LogLevel, Logger, LoggerStream
from churnbench.logging.churnbench_logging_models import WorkerWarning


class TestLoggerStream:
    @pytest.mark.asyncio
    async def test_writes_template_to_stdout(self, capsys) -> None:
        LoggingConfig().update(log_level="info")
        stream = LoggerStream(name="worker_0", template="{level} - {logger} - {message}")

        await stream.log(Entry(message="hello", level=LogLevel.INFO))
        await stream.close()

        assert capsys.readouterr().out == "INFO - worker_0 - hello\n"

    @pytest.mark.asyncio
    async def test_filters_below_level(self, capsys) -> None:
        LoggingConfig().update(log_level="warn")
        stream = LoggerStream(name="worker_0")

        await stream.log(Entry(message="quiet", level=LogLevel.DEBUG))
        await stream.close()

        assert capsys.readouterr().out == ""

    @pytest.mark.asyncio
    async def test_log_prepared_uses_level_models(self, capsys) -> None:
        LoggingConfig().update(log_level="info")
        stream = LoggerStream(name="pool", template="{level} {message}")

        await stream.log_prepared("careful", name="warn")
        await stream.close()

        assert capsys.readouterr().out == "WARN careful\n"

    @pytest.mark.asyncio
    async def test_json_file_output(self, tmp_path, capsys) -> None:
        LoggingConfig().update(log_level="info")
        logger = Logger()

        async with logger.context(name="worker_3", path=str(tmp_path)) as ctx:
            await ctx.log(
                WorkerWarning(
                    message="backing off",
                    worker_id=3,
                )
            )

        lines = (tmp_path / "worker_3.log.json").read_text().splitlines()
        record = json.loads(lines[0])

        assert record["logger"] == "worker_3"
        assert record["entry"]["message"] == "backing off"
        assert record["entry"]["worker_id"] == 3
        assert record["entry"]["level"] == "WARN"
        assert "backing off" in capsys.readouterr().out


class TestLogLevel:
    def test_severity_follows_declaration_order(self) -> None:
        assert LogLevel.TRACE.severity == 0
        assert LogLevel.FATAL.severity == 6
        assert LogLevel.WARN.severity > LogLevel.INFO.severity

    def test_enabled_compares_severity(self) -> None:
        config = LoggingConfig()
        config.update(log_level="warn")

        assert config.enabled("worker_0", LogLevel.ERROR) is True
        assert config.enabled("worker_0", LogLevel.WARN) is True
        assert config.enabled("worker_0", LogLevel.INFO) is False
