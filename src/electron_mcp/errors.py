from typing import Any, Dict, List


class ProtocolError(Exception):
    """Raised before a handler runs; reported to the caller as a protocol error."""


class UnknownToolError(ProtocolError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class InvalidArgumentsError(ProtocolError):
    def __init__(self, tool: str, violations: List[Dict[str, Any]]):
        self.tool = tool
        self.violations = violations
        super().__init__(
            f"Invalid arguments for {tool}: " + "; ".join(
                f"{v['field']}: {v['message']}" for v in violations
            )
        )

    @property
    def fields(self) -> List[str]:
        return [v["field"] for v in self.violations]


class ToolExecutionError(Exception):
    def __init__(self, tool: str, message: str):
        self.tool = tool
        self.message = message
        super().__init__(f"Tool execution failed: {message}")


class SessionNotInitializedError(RuntimeError):
    def __init__(self) -> None:
        super().__init__("Browser not initialized")


class RefNotFoundError(LookupError):
    def __init__(self, ref: str, label: str = "Element reference", suffix: str = ""):
        self.ref = ref
        super().__init__(
            f"{label} {ref} not found{suffix}. Please take a new snapshot first."
        )


class DuplicateToolError(ValueError):
    pass


class StartupError(RuntimeError):
    pass
