"""
Tool registry: the single table binding an operation name to its description,
argument model and handler.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Type,
)

from .errors import DuplicateToolError
from .models import ToolArgs, ToolResult

if TYPE_CHECKING:
    from .session import AutomationSession

logger = logging.getLogger(__name__)

Handler = Callable[["AutomationSession", Any], Awaitable[ToolResult]]


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    schema: Type[ToolArgs]
    handler: Handler

    @property
    def input_schema(self) -> Dict[str, Any]:
        return self.schema.model_json_schema()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: Dict[str, ToolDescriptor] = {}
        self._frozen = False

    def register(
        self,
        name: str,
        description: str,
        schema: Type[ToolArgs],
        handler: Handler,
    ) -> ToolDescriptor:
        if self._frozen:
            raise RuntimeError(f"Registry is frozen; cannot register {name}")
        if name in self._tools:
            raise DuplicateToolError(f"Tool {name} is already registered")
        descriptor = ToolDescriptor(name, description, schema, handler)
        self._tools[name] = descriptor
        return descriptor

    def freeze(self) -> "ToolRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def list(self) -> Iterator[Dict[str, Any]]:
        """Yield ``{name, description, inputSchema}`` for every tool, in registration order."""
        for descriptor in self._tools.values():
            yield descriptor.to_dict()

    def lookup(self, name: str) -> Optional[ToolDescriptor]:
        return self._tools.get(name)

    @property
    def tool_names(self) -> List[str]:
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools


def create_default_registry() -> ToolRegistry:
    """Build the frozen registry of every operation the server exposes."""
    from . import models as m
    from .features import inspection, interaction, navigation

    registry = ToolRegistry()
    table = [
        # Navigation & window management
        ("navigate", "Navigate to a URL, or report the current window when url is empty",
         m.NavigateArgs, navigation.navigate),
        ("navigate_back", "Go back to previous page in history",
         m.NoArgs, navigation.navigate_back),
        # Page interaction
        ("click", "Click on elements using element description and ref ID",
         m.ClickArgs, interaction.click),
        ("type", "Type text into editable elements",
         m.TypeArgs, interaction.type_text),
        ("press_key", "Press keyboard keys",
         m.PressKeyArgs, interaction.press_key),
        ("fill_form", "Fill multiple form fields at once",
         m.FillFormArgs, interaction.fill_form),
        ("select_option", "Select options in dropdown menus",
         m.SelectOptionArgs, interaction.select_option),
        ("hover", "Hover over elements",
         m.HoverArgs, interaction.hover),
        ("drag", "Perform drag and drop operations between elements",
         m.DragArgs, interaction.drag),
        # Page analysis
        ("snapshot", "Capture a structural snapshot of the current page and refresh element refs",
         m.NoArgs, inspection.snapshot),
        ("take_screenshot", "Take screenshots of the viewport or a specific element",
         m.TakeScreenshotArgs, inspection.take_screenshot),
        ("evaluate", "Execute JavaScript on the page or against an element",
         m.EvaluateArgs, inspection.evaluate),
        # Files
        ("file_upload", "Upload files to the first file input on the page",
         m.FileUploadArgs, interaction.file_upload),
        # Windows
        ("tabs", "List, create, close, or select application windows",
         m.TabsArgs, navigation.tabs),
        # Advanced
        ("handle_dialog", "Arm a one-shot handler for the next dialog (alert, confirm, prompt)",
         m.HandleDialogArgs, interaction.handle_dialog),
        ("wait_for", "Wait for text to appear or disappear, or for a number of seconds",
         m.WaitForArgs, interaction.wait_for),
        ("resize", "Resize the viewport",
         m.ResizeArgs, navigation.resize),
        ("close", "Close the application and release the session",
         m.NoArgs, navigation.close),
        # Debugging
        ("network_requests", "Returns all network requests since the session started",
         m.NoArgs, inspection.network_requests),
        ("console_messages", "Returns all console log messages",
         m.NoArgs, inspection.console_messages),
    ]
    for name, description, schema, handler in table:
        registry.register(name, description, schema, handler)
    logger.debug("Registered %d tools", len(registry))
    return registry.freeze()
