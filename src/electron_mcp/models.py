from typing import Dict, List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
)
from pydantic.alias_generators import to_camel


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolResult(BaseModel):
    content: List[TextContent]

    @classmethod
    def text(cls, text: str) -> "ToolResult":
        return cls(content=[TextContent(text=text)])


class WindowInfo(BaseModel):
    index: int
    title: str
    url: str
    current: bool = False


class NetworkRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    method: str
    status: Optional[int] = None
    content_type: Optional[str] = Field(None, alias="contentType")
    timestamp: int


class ConsoleMessage(BaseModel):
    type: str
    text: str
    timestamp: int
    location: Optional[str] = None


class SnapshotElement(BaseModel):
    ref: str
    role: str
    name: str
    tag: str
    depth: int
    clickable: bool
    type: Optional[str] = None
    value: Optional[str] = None
    selector: str = Field(exclude=True)
    attributes: Dict[str, str] = {}


class ToolArgs(BaseModel):
    """Base for operation arguments.

    Wire names are camelCase. Fields use strict types so a number is never
    accepted where a string is declared (and the reverse). Unknown keys are
    dropped.
    """

    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class NoArgs(ToolArgs):
    pass


class NavigateArgs(ToolArgs):
    url: StrictStr = Field(
        description="URL to load, or an empty string to report the current window"
    )


class ElementArgs(ToolArgs):
    element: StrictStr = Field(description="Human-readable element description")
    ref: StrictStr = Field(
        description="Exact target element reference from page snapshot"
    )


class ClickArgs(ElementArgs):
    pass


class HoverArgs(ElementArgs):
    pass


class TypeArgs(ElementArgs):
    text: StrictStr = Field(description="Text to type")
    slowly: Optional[StrictBool] = Field(
        None, description="Type one character at a time"
    )
    submit: Optional[StrictBool] = Field(
        None, description="Press Enter after typing"
    )


class PressKeyArgs(ToolArgs):
    key: StrictStr = Field(description="Key name (e.g., 'ArrowLeft', 'Enter', 'a')")


class FormField(ToolArgs):
    name: StrictStr
    type: StrictStr
    ref: StrictStr
    value: StrictStr


class FillFormArgs(ToolArgs):
    fields: List[FormField] = Field(description="Array of form fields to fill")


class SelectOptionArgs(ElementArgs):
    values: List[StrictStr] = Field(description="Values to select")


class DragArgs(ToolArgs):
    start_element: StrictStr = Field(description="Source element description")
    start_ref: StrictStr = Field(description="Source element reference")
    end_element: StrictStr = Field(description="Target element description")
    end_ref: StrictStr = Field(description="Target element reference")


class TakeScreenshotArgs(ToolArgs):
    filename: Optional[StrictStr] = Field(None, description="Custom filename")
    element: Optional[StrictStr] = Field(
        None, description="Element description for element screenshot"
    )
    ref: Optional[StrictStr] = Field(
        None, description="Element reference for element screenshot"
    )
    full_page: Optional[StrictBool] = Field(None, description="Full page screenshot")
    type: Optional[Literal["png", "jpeg"]] = Field(None, description="Image format")


class EvaluateArgs(ToolArgs):
    function: StrictStr = Field(description="JavaScript function to execute")
    element: Optional[StrictStr] = Field(
        None, description="Element description for element-specific execution"
    )
    ref: Optional[StrictStr] = Field(None, description="Element reference")


class FileUploadArgs(ToolArgs):
    paths: List[StrictStr] = Field(
        description="Array of absolute file paths to upload"
    )


class TabsArgs(ToolArgs):
    action: Literal["list", "new", "close", "select"] = Field(
        description="Operation to perform"
    )
    index: Optional[StrictInt] = Field(
        None, description="Window index for close/select operations"
    )


class HandleDialogArgs(ToolArgs):
    accept: StrictBool = Field(description="Whether to accept the dialog")
    prompt_text: Optional[StrictStr] = Field(
        None, description="Text for prompt dialogs"
    )


class WaitForArgs(ToolArgs):
    text: Optional[StrictStr] = Field(None, description="Text to wait for")
    text_gone: Optional[StrictStr] = Field(
        None, description="Text to wait for to disappear"
    )
    time: Optional[StrictFloat] = Field(None, description="Time to wait in seconds")


class ResizeArgs(ToolArgs):
    width: StrictInt = Field(description="Viewport width")
    height: StrictInt = Field(description="Viewport height")


class ServerConfig(BaseModel):
    app_path: Optional[str] = None
    cdp_url: Optional[str] = None
    cdp_port: Optional[int] = None
    startup_timeout: float = 30.0
    transport: str = "stdio"
    host: str = "127.0.0.1"
    port: int = 8000
    allow_remote: bool = False
    auth_token: Optional[str] = None
