# src/kubeusage/cli/start.py
"""
Start command for the kubeusage CLI.

Builds the pipeline once, runs the attribution scheduler until SIGINT or
SIGTERM, then closes every collaborator.
"""

import asyncio
import logging
import signal

import typer
from typing_extensions import Annotated

from ..core.config import config
from ..core.exceptions import KubeUsageError
from ..core.factory import build_pipeline
from ..core.scheduler import AttributionScheduler

logger = logging.getLogger(__name__)

app = typer.Typer(name="start", help="Start the kubeusage export service.")


async def _async_start(once: bool = False) -> None:
    pipeline = build_pipeline(config)
    try:
        await pipeline.setup()
        logger.info("Node cache and usage table are ready.")

        if once:
            written = await pipeline.cycle.run_and_flush()
            logger.info(f"Single export cycle wrote {written} usage records.")
            return

        scheduler = AttributionScheduler(
            pipeline.cycle.run_and_flush, config.export_interval_seconds, name="export_usage"
        )
        shutdown = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, shutdown.set)

        logger.info("Starting scheduler...")
        scheduler.start()
        logger.info("kubeusage is running. Press CTRL+C to exit.")
        try:
            await shutdown.wait()
            logger.info("Received shutdown signal, stopping gracefully...")
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
            await scheduler.stop()
    finally:
        await pipeline.close()
        logger.info("kubeusage stopped.")


@app.callback(invoke_without_command=True)
def start(
    ctx: typer.Context,
    once: Annotated[
        bool,
        typer.Option("--once", help="Run a single export cycle and exit."),
    ] = False,
) -> None:
    """
    Validate the configuration and run the export scheduler.
    """
    if ctx.invoked_subcommand is not None:
        return

    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    logger.info("Initializing kubeusage...")

    try:
        config.validate_instance()
    except KubeUsageError as e:
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(code=1)

    try:
        asyncio.run(_async_start(once=once))
    except KeyboardInterrupt:
        logger.info("Shutting down kubeusage service.")
        raise typer.Exit()
    except KubeUsageError as e:
        logger.error(f"Startup failed: {e}")
        raise typer.Exit(code=1)
