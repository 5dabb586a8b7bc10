import functools
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

import typer
from pydantic import BaseModel

from .errors import StartupError

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def _serialize(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        obj = obj.model_dump(exclude_none=True, by_alias=True)
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(i) for i in obj]
    return obj


def dump_json(data: Any) -> str:
    return json.dumps(_serialize(data), indent=2, ensure_ascii=False, default=str)


def timestamp_slug(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC time with ':' and '.' replaced so it is safe in file names."""
    now = now or datetime.now(timezone.utc)
    iso = now.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return iso.replace("+00:00", "Z").replace(":", "-").replace(".", "-")


def configure_logging(level: str = "INFO") -> None:
    # stdout carries the stdio transport, so logs go to stderr.
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    for noisy in ("httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def handle_startup_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except StartupError as e:
            logger.error("Startup failed: %s", e)
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1)

    return wrapper
