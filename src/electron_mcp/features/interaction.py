import logging

from ..models import (
    ClickArgs,
    DragArgs,
    FileUploadArgs,
    FillFormArgs,
    HandleDialogArgs,
    HoverArgs,
    PressKeyArgs,
    SelectOptionArgs,
    ToolResult,
    TypeArgs,
    WaitForArgs,
)
from ..session import AutomationSession

logger = logging.getLogger(__name__)

TYPE_DELAY_MS = 100
WAIT_TIMEOUT_MS = 30000


def _locate(page, selector: str):
    # Snapshot selectors are not unique; the first match in document order wins.
    return page.locator(selector).first


async def click(session: AutomationSession, args: ClickArgs) -> ToolResult:
    page = session.require_page()
    selector = session.resolve_ref(args.ref)
    await _locate(page, selector).click()
    return ToolResult.text(f"Clicked on {args.element} (ref: {args.ref})")


async def type_text(session: AutomationSession, args: TypeArgs) -> ToolResult:
    page = session.require_page()
    selector = session.resolve_ref(args.ref)
    target = _locate(page, selector)
    if args.slowly:
        await target.press_sequentially(args.text, delay=TYPE_DELAY_MS)
    else:
        await target.fill(args.text)
    if args.submit:
        await target.press("Enter")
    return ToolResult.text(
        f'Typed "{args.text}" into {args.element} (ref: {args.ref})'
    )


async def press_key(session: AutomationSession, args: PressKeyArgs) -> ToolResult:
    page = session.require_page()
    await page.keyboard.press(args.key)
    return ToolResult.text(f"Pressed key: {args.key}")


async def fill_form(session: AutomationSession, args: FillFormArgs) -> ToolResult:
    """
    Fill every field in order. Checkbox fields are checked when value is "true"
    and unchecked otherwise; everything else is filled with the value.
    """
    page = session.require_page()
    # Resolve up front so an unknown ref fails before any field is touched.
    selectors = [
        session.resolve_ref(field.ref, suffix=f" for field {field.name}")
        for field in args.fields
    ]
    results = []
    for field, selector in zip(args.fields, selectors):
        target = _locate(page, selector)
        if field.type == "checkbox":
            checked = field.value == "true"
            await target.set_checked(checked)
            results.append(f"{field.name}: {'checked' if checked else 'unchecked'}")
        else:
            await target.fill(field.value)
            results.append(f'{field.name}: "{field.value}"')
    return ToolResult.text("Filled form fields:\n" + "\n".join(results))


async def select_option(
    session: AutomationSession, args: SelectOptionArgs
) -> ToolResult:
    page = session.require_page()
    selector = session.resolve_ref(args.ref)
    selected = await _locate(page, selector).select_option(args.values)
    logger.debug("Selected %s in %s", selected, selector)
    return ToolResult.text(
        f"Selected options in {args.element}: {', '.join(args.values)}"
    )


async def hover(session: AutomationSession, args: HoverArgs) -> ToolResult:
    page = session.require_page()
    selector = session.resolve_ref(args.ref)
    await _locate(page, selector).hover()
    return ToolResult.text(f"Hovered over {args.element} (ref: {args.ref})")


async def drag(session: AutomationSession, args: DragArgs) -> ToolResult:
    page = session.require_page()
    start = session.resolve_ref(args.start_ref, label="Start element reference")
    end = session.resolve_ref(args.end_ref, label="End element reference")
    await _locate(page, start).drag_to(_locate(page, end))
    return ToolResult.text(f"Dragged {args.start_element} to {args.end_element}")


async def file_upload(session: AutomationSession, args: FileUploadArgs) -> ToolResult:
    page = session.require_page()
    inputs = await page.locator('input[type="file"]').all()
    if not inputs:
        raise LookupError("No file input elements found on the page")
    await inputs[0].set_input_files(args.paths)
    return ToolResult.text(f"Uploaded files: {', '.join(args.paths)}")


async def handle_dialog(
    session: AutomationSession, args: HandleDialogArgs
) -> ToolResult:
    session.require_page()
    session.arm_dialog(args.accept, args.prompt_text)
    return ToolResult.text(
        f"Dialog handler set: {'accept' if args.accept else 'dismiss'}"
    )


async def wait_for(session: AutomationSession, args: WaitForArgs) -> ToolResult:
    page = session.require_page()

    if args.text:
        await page.wait_for_selector(f"text={args.text}", timeout=WAIT_TIMEOUT_MS)
        return ToolResult.text(f'Waited for text: "{args.text}"')

    if args.text_gone:
        await page.wait_for_selector(
            f"text={args.text_gone}", state="detached", timeout=WAIT_TIMEOUT_MS
        )
        return ToolResult.text(f'Waited for text to disappear: "{args.text_gone}"')

    if args.time is not None:
        await page.wait_for_timeout(args.time * 1000)
        return ToolResult.text(f"Waited for {args.time:g} seconds")

    raise ValueError("No wait condition specified")
