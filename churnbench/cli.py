import asyncio
import signal
import sys

import click
from pydantic import ValidationError

from churnbench.env import Env, load_env
from churnbench.errors import SetupFailure
from churnbench.logging import Logger, LoggingConfig
from churnbench.logging.churnbench_logging_models import PoolFatal
from churnbench.workers import WorkerPool


@click.group()
def cli():
    """Sustained create/update load against a ledger node."""
    pass


@cli.command()
@click.option("--rpc-url", help="JSON-RPC endpoint of the ledger node")
@click.option("--faucet-url", help="Faucet endpoint used to fund workers")
@click.option("--package-id", help="Package holding the churn module")
@click.option("--module", help="Module name inside the package")
@click.option("--duration", help="Run length, e.g. 300s or 5m")
@click.option("--workers", type=int, help="Number of concurrent workers")
@click.option("--batch-size", type=int, help="Operations per transaction")
@click.option("--target-tps", type=int, help="Aggregate transaction rate, 0 for unbounded")
@click.option("--max-inflight", type=int, help="Transactions allowed in flight at once")
@click.option("--create-pct", type=int, help="Share of transactions that create objects")
@click.option("--seed-objects", type=int, help="Objects each worker creates before the run")
@click.option("--max-tracked-objects", type=int, help="Per-worker tracked object cap")
@click.option("--memory-threshold", type=float, help="Usage fraction for light throttling")
@click.option("--memory-critical", type=float, help="Usage fraction for heavy throttling")
@click.option("--memory-emergency", type=float, help="Usage fraction for update-only mode")
@click.option("--memory-sample-interval", help="Interval between memory samples")
@click.option("--gas-budget", type=int, help="Gas budget per transaction")
@click.option("--stats-interval", help="Interval between progress reports")
@click.option("--request-timeout", help="HTTP timeout for ledger and faucet calls")
@click.option("--large-payload/--small-payload", default=None, help="Use the blob payload functions")
@click.option("--output", "output_path", help="Write the JSON result summary here")
@click.option("--save", "save_path", help="Save worker keys and objects on completion")
@click.option("--load", "load_path", help="Resume from a saved checkpoint")
@click.option(
    "--log-level",
    type=click.Choice(["trace", "debug", "info", "warn", "error", "critical", "fatal"]),
    help="Minimum level written to the console",
)
@click.option("--logs-directory", help="Also write JSON log files here")
@click.option("--env-file", help="Dotenv file read for CHURNBENCH_* settings")
def run(
    rpc_url: str | None,
    faucet_url: str | None,
    package_id: str | None,
    module: str | None,
    duration: str | None,
    workers: int | None,
    batch_size: int | None,
    target_tps: int | None,
    max_inflight: int | None,
    create_pct: int | None,
    seed_objects: int | None,
    max_tracked_objects: int | None,
    memory_threshold: float | None,
    memory_critical: float | None,
    memory_emergency: float | None,
    memory_sample_interval: str | None,
    gas_budget: int | None,
    stats_interval: str | None,
    request_timeout: str | None,
    large_payload: bool | None,
    output_path: str | None,
    save_path: str | None,
    load_path: str | None,
    log_level: str | None,
    logs_directory: str | None,
    env_file: str | None,
):
    """Run the benchmark until the duration elapses or it is interrupted."""
    overrides = {
        "CHURNBENCH_RPC_URL": rpc_url,
        "CHURNBENCH_FAUCET_URL": faucet_url,
        "CHURNBENCH_PACKAGE_ID": package_id,
        "CHURNBENCH_MODULE": module,
        "CHURNBENCH_DURATION": duration,
        "CHURNBENCH_WORKERS": workers,
        "CHURNBENCH_BATCH_SIZE": batch_size,
        "CHURNBENCH_TARGET_TPS": target_tps,
        "CHURNBENCH_MAX_INFLIGHT": max_inflight,
        "CHURNBENCH_CREATE_PCT": create_pct,
        "CHURNBENCH_SEED_OBJECTS": seed_objects,
        "CHURNBENCH_MAX_TRACKED_OBJECTS": max_tracked_objects,
        "CHURNBENCH_MEMORY_THRESHOLD": memory_threshold,
        "CHURNBENCH_MEMORY_CRITICAL": memory_critical,
        "CHURNBENCH_MEMORY_EMERGENCY": memory_emergency,
        "CHURNBENCH_MEMORY_SAMPLE_INTERVAL": memory_sample_interval,
        "CHURNBENCH_GAS_BUDGET": gas_budget,
        "CHURNBENCH_STATS_INTERVAL": stats_interval,
        "CHURNBENCH_REQUEST_TIMEOUT": request_timeout,
        "CHURNBENCH_USE_LARGE_PAYLOAD": large_payload,
        "CHURNBENCH_OUTPUT_PATH": output_path,
        "CHURNBENCH_SAVE_PATH": save_path,
        "CHURNBENCH_LOAD_PATH": load_path,
        "CHURNBENCH_LOG_LEVEL": log_level,
        "CHURNBENCH_LOGS_DIRECTORY": logs_directory,
    }

    sys.exit(asyncio.run(run_benchmark(overrides, env_file=env_file)))


async def run_benchmark(overrides: dict, env_file: str | None = None) -> int:
    logger = Logger()

    try:
        env = load_env(Env, env_file=env_file, overrides=overrides)

    except (ValidationError, ValueError) as err:
        await _log_fatal(logger, f"Invalid configuration: {err}")
        return 1

    LoggingConfig().update(
        log_directory=env.CHURNBENCH_LOGS_DIRECTORY,
        log_level=env.CHURNBENCH_LOG_LEVEL,
    )

    pool = WorkerPool(env, logger=logger)

    loop = asyncio.get_running_loop()
    for signame in ("SIGINT", "SIGTERM"):
        loop.add_signal_handler(getattr(signal, signame), pool.request_stop)

    try:
        await pool.run()

    except SetupFailure as err:
        await _log_fatal(logger, f"Setup failed: {err}")
        return 1

    finally:
        for signame in ("SIGINT", "SIGTERM"):
            loop.remove_signal_handler(getattr(signal, signame))

        await logger.close()

    return 0


async def _log_fatal(logger: Logger, message: str):
    async with logger.context(name="churnbench") as ctx:
        await ctx.log(
            PoolFatal(
                message=message,
                workers=0,
            )
        )


def main():
    cli()
