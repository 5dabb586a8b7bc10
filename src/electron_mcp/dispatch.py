"""
Tool dispatcher: name lookup, argument validation, serialized handler
execution and result normalization.

Per call: received -> validated -> executed -> responded. Lookup and
validation failures are raised before the handler runs, so they never leave a
side effect behind. A handler failure may happen after side effects; nothing is
rolled back.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from .errors import (
    InvalidArgumentsError,
    ProtocolError,
    ToolExecutionError,
    UnknownToolError,
)
from .models import TextContent, ToolArgs, ToolResult
from .registry import ToolDescriptor, ToolRegistry
from .session import AutomationSession

logger = logging.getLogger(__name__)


def _violations(error: ValidationError) -> list[dict[str, Any]]:
    violations = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        violations.append({"field": loc, "message": item.get("msg", "invalid")})
    return violations


def normalize_result(result: Any) -> ToolResult:
    """Coerce a handler return value into a ToolResult, keeping block order."""
    if isinstance(result, ToolResult):
        return ToolResult(
            content=[TextContent(type=b.type, text=b.text) for b in result.content]
        )
    if isinstance(result, str):
        return ToolResult.text(result)
    return ToolResult.model_validate(result)


class ToolDispatcher:
    def __init__(self, registry: ToolRegistry, session: AutomationSession):
        self.registry = registry
        self.session = session

    def validate(
        self, name: str, arguments: Optional[Dict[str, Any]]
    ) -> Tuple[ToolDescriptor, ToolArgs]:
        descriptor = self.registry.lookup(name)
        if descriptor is None:
            raise UnknownToolError(name)
        try:
            return descriptor, descriptor.schema.model_validate(arguments or {})
        except ValidationError as e:
            raise InvalidArgumentsError(name, _violations(e)) from e

    async def dispatch(
        self, name: str, arguments: Optional[Dict[str, Any]] = None
    ) -> ToolResult:
        descriptor, params = self.validate(name, arguments)

        async with self.session.lock:
            logger.debug("Calling %s", name)
            try:
                result = await descriptor.handler(self.session, params)
            except (ProtocolError, ToolExecutionError):
                raise
            except Exception as e:
                logger.warning("Tool %s failed: %s", name, e)
                raise ToolExecutionError(name, str(e)) from e

        return normalize_result(result)
