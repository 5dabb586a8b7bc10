import json
import logging
from pathlib import Path

from ..models import EvaluateArgs, NoArgs, TakeScreenshotArgs, ToolResult
from ..session import AutomationSession
from ..snapshot import take_snapshot
from ..utils import dump_json, timestamp_slug

logger = logging.getLogger(__name__)


def _element_scoped(element, ref) -> bool:
    # Both a description and a ref are needed to scope to an element; either
    # one alone falls back to the whole page.
    return bool(element) and bool(ref)


def screenshot_path(session: AutomationSession, args: TakeScreenshotArgs) -> Path:
    extension = args.type or "png"
    if args.filename:
        name = Path(args.filename).name
    else:
        name = f"screenshot-{timestamp_slug()}.{extension}"
    return (session.screenshot_dir / name).resolve()


async def snapshot(session: AutomationSession, args: NoArgs) -> ToolResult:
    _, report = await take_snapshot(session)
    return ToolResult.text(report)


async def take_screenshot(
    session: AutomationSession, args: TakeScreenshotArgs
) -> ToolResult:
    page = session.require_page()
    path = screenshot_path(session, args)
    image_type = "jpeg" if args.type == "jpeg" else "png"

    if _element_scoped(args.element, args.ref):
        selector = session.resolve_ref(args.ref)
        await page.locator(selector).first.screenshot(path=str(path), type=image_type)
    else:
        await page.screenshot(
            path=str(path), full_page=bool(args.full_page), type=image_type
        )
    logger.debug("Screenshot written to %s", path)
    return ToolResult.text(f"Screenshot saved to: {path}")


async def evaluate(session: AutomationSession, args: EvaluateArgs) -> ToolResult:
    page = session.require_page()

    if _element_scoped(args.element, args.ref):
        selector = session.resolve_ref(args.ref)
        target = page.locator(selector).first
    else:
        target = page

    try:
        result = await target.evaluate(args.function)
    except Exception as e:
        raise RuntimeError(f"JavaScript evaluation failed: {e}") from e

    rendered = json.dumps(result, indent=2, ensure_ascii=False, default=str)
    return ToolResult.text(f"JavaScript evaluation result: {rendered}")


async def network_requests(session: AutomationSession, args: NoArgs) -> ToolResult:
    requests = session.network_requests
    return ToolResult.text(f"Network requests ({len(requests)}):\n{dump_json(requests)}")


async def console_messages(session: AutomationSession, args: NoArgs) -> ToolResult:
    messages = session.console_messages
    return ToolResult.text(f"Console messages ({len(messages)}):\n{dump_json(messages)}")
