from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def boot_logging(level: str = "INFO", *, console: Console | None = None) -> None:
    """Route stdlib logging through Rich; idempotent across CLI invocations."""

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
