import logging
from typing import Any, List, Optional

from ..errors import SessionNotInitializedError
from ..models import (
    NavigateArgs,
    NoArgs,
    ResizeArgs,
    TabsArgs,
    ToolResult,
    WindowInfo,
)
from ..session import AutomationSession

logger = logging.getLogger(__name__)


async def navigate(session: AutomationSession, args: NavigateArgs) -> ToolResult:
    page = session.require_page()
    if args.url:
        await page.goto(args.url)
    title = await page.title()
    return ToolResult.text(f"Navigated to: {title}\nURL: {page.url}\nStatus: success")


async def navigate_back(session: AutomationSession, args: NoArgs) -> ToolResult:
    page = session.require_page()
    await page.go_back()
    title = await page.title()
    return ToolResult.text(f"Navigated back to: {title}\nURL: {page.url}")


async def list_windows(session: AutomationSession) -> List[WindowInfo]:
    windows = []
    for index, page in enumerate(session.pages):
        try:
            title = await page.title()
        except Exception:
            title = ""
        windows.append(
            WindowInfo(
                index=index,
                title=title,
                url=page.url,
                current=page is session.page,
            )
        )
    return windows


def _page_at(session: AutomationSession, index: Optional[int]) -> Any:
    if index is None:
        raise ValueError("An index is required for this tab action")
    if not 0 <= index < len(session.pages):
        raise ValueError(
            f"No window at index {index} ({len(session.pages)} open)"
        )
    return session.pages[index]


async def tabs(session: AutomationSession, args: TabsArgs) -> ToolResult:
    if session.context is None:
        raise SessionNotInitializedError()

    if args.action == "list":
        windows = await list_windows(session)
        current = next((w.index for w in windows if w.current), -1)
        lines = [f"Open windows: {len(windows)}", f"Current: {current}"]
        for w in windows:
            marker = "*" if w.current else " "
            lines.append(f"{marker} [{w.index}] {w.title} - {w.url}")
        return ToolResult.text("\n".join(lines))

    if args.action == "new":
        page = await session.context.new_page()
        session.watch_page(page)
        index = session.pages.index(page)
        return ToolResult.text(f"New window created at index {index}")

    if args.action == "close":
        page = _page_at(session, args.index)
        await page.close()
        session.forget_page(page)
        return ToolResult.text(f"Closed window at index {args.index}")

    page = _page_at(session, args.index)
    session.page = page
    await page.bring_to_front()
    return ToolResult.text(f"Switched to window at index {args.index}")


async def resize(session: AutomationSession, args: ResizeArgs) -> ToolResult:
    page = session.require_page()
    await page.set_viewport_size({"width": args.width, "height": args.height})
    return ToolResult.text(f"Resized browser to {args.width}x{args.height}")


async def close(session: AutomationSession, args: NoArgs) -> ToolResult:
    if session.initialized or session.browser is not None:
        await session.close()
        logger.info("Session closed on request")
    return ToolResult.text("Browser closed")
