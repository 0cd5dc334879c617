"""Command-line entry point: run refresh tasks or serve the API."""

import argparse
import asyncio
import logging
import sys
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Final

from pydantic import ValidationError

from property_search.config import Settings
from property_search.db import PropertySearchStorage
from property_search.logging import configure_logging, get_logger
from property_search.tasks import update_property, update_schools, update_tube

logger = get_logger(__name__)

TaskFn = Callable[[Settings, PropertySearchStorage], Awaitable[Any]]

TASKS: Final[dict[str, TaskFn]] = {
    "update-tube": update_tube,
    "update-property": update_property,
    "update-schools": update_schools,
}


async def run_tasks(settings: Settings, tasks: Sequence[str]) -> None:
    """Run ``tasks`` in order against one storage connection.

    A failing task stops the run; tasks after it are not started.
    """
    storage = PropertySearchStorage(settings.database_path)
    await storage.initialize()
    try:
        for name in tasks:
            started = time.perf_counter()
            logger.info("task_started", task=name)
            result = await TASKS[name](settings, storage)
            logger.info(
                "task_completed",
                task=name,
                result=str(result),
                elapsed_seconds=round(time.perf_counter() - started, 2),
            )
    finally:
        await storage.close()


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="UK Property Search - property market statistics around tube stations"
    )
    parser.add_argument(
        "--task",
        action="append",
        choices=list(TASKS),
        default=[],
        help="Refresh task to run (repeatable, run in the given order)",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Start the read-only JSON API",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug-level logging for troubleshooting",
    )
    args = parser.parse_args(argv)

    if not args.task and not args.serve:
        parser.error("nothing to do: pass --task and/or --serve")

    configure_logging(json_output=False, level=logging.DEBUG if args.debug else logging.INFO)

    try:
        settings = Settings()
    except ValidationError as e:
        logger.error("failed_to_load_settings", error=str(e))
        print(f"Error: Failed to load settings. {e}")
        sys.exit(1)

    if args.task:
        asyncio.run(run_tasks(settings, args.task))

    if args.serve:
        import uvicorn

        from property_search.web.app import create_app

        app = create_app(settings)
        uvicorn.run(app, host=settings.web_host, port=settings.web_port, log_level="info")


if __name__ == "__main__":
    main()
