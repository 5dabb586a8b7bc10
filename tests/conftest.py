from pathlib import Path

import pytest

from electron_mcp.session import AutomationSession
from electron_mcp.snapshot import DOM_TREE_SCRIPT


def node(tag, text="", children=None, **attrs):
    """Build a serialized DOM node the way the page script returns it."""
    element_id = attrs.pop("id", "")
    classes = attrs.pop("classes", [])
    control_type = attrs.pop("type_prop", "")
    value = attrs.pop("value", "")
    return {
        "tag": tag,
        "id": element_id,
        "classes": classes,
        "attrs": {k.replace("_", "-"): v for k, v in attrs.items()},
        "text": text,
        "type": control_type,
        "value": value,
        "children": children or [],
    }


class FakeLocator:
    def __init__(self, page, selector):
        self.page = page
        self.selector = selector

    @property
    def first(self):
        return self

    def _record(self, action, *args, **kwargs):
        self.page.calls.append((action, self.selector, args, kwargs))

    async def click(self):
        self._record("click")

    async def fill(self, text):
        self._record("fill", text)

    async def press_sequentially(self, text, delay=0):
        self._record("press_sequentially", text, delay=delay)

    async def press(self, key):
        self._record("press", key)

    async def set_checked(self, checked):
        self._record("set_checked", checked)
        self.page.checked[self.selector] = checked

    async def select_option(self, values):
        self._record("select_option", values)
        return values

    async def hover(self):
        self._record("hover")

    async def drag_to(self, target):
        self._record("drag_to", target.selector)

    async def screenshot(self, path, type="png"):
        self._record("screenshot", path=path, type=type)
        Path(path).write_bytes(b"element")

    async def evaluate(self, function):
        self._record("evaluate", function)
        return self.page.element_eval_result

    async def set_input_files(self, paths):
        self._record("set_input_files", paths)

    async def all(self):
        return [FakeLocator(self.page, f"{self.selector} >> nth={i}") for i in range(self.page.file_inputs)]


class FakeKeyboard:
    def __init__(self, page):
        self.page = page

    async def press(self, key):
        self.page.calls.append(("keyboard.press", None, (key,), {}))


class FakePage:
    def __init__(self, url="app://index.html", title="Main Window", dom=None):
        self.url = url
        self._title = title
        self.dom = dom
        self.calls = []
        self.checked = {}
        self.handlers = {}
        self.eval_result = None
        self.element_eval_result = None
        self.file_inputs = 0
        self.keyboard = FakeKeyboard(self)
        self.closed = False

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    def emit(self, event, payload):
        return [handler(payload) for handler in self.handlers.get(event, [])]

    def locator(self, selector):
        return FakeLocator(self, selector)

    async def title(self):
        return self._title

    async def goto(self, url):
        self.calls.append(("goto", None, (url,), {}))
        self.url = url

    async def go_back(self):
        self.calls.append(("go_back", None, (), {}))

    async def evaluate(self, script):
        if script == DOM_TREE_SCRIPT:
            return self.dom
        self.calls.append(("evaluate", None, (script,), {}))
        if isinstance(self.eval_result, Exception):
            raise self.eval_result
        return self.eval_result

    async def screenshot(self, path, full_page=False, type="png"):
        self.calls.append(("screenshot", None, (), {"path": path, "full_page": full_page, "type": type}))
        Path(path).write_bytes(b"page")

    async def wait_for_selector(self, selector, state="visible", timeout=None):
        self.calls.append(("wait_for_selector", selector, (), {"state": state, "timeout": timeout}))

    async def wait_for_timeout(self, ms):
        self.calls.append(("wait_for_timeout", None, (ms,), {}))

    async def set_viewport_size(self, size):
        self.calls.append(("set_viewport_size", None, (size,), {}))

    async def bring_to_front(self):
        self.calls.append(("bring_to_front", None, (), {}))

    async def close(self):
        self.closed = True
        self.emit("close", self)


class FakeContext:
    def __init__(self, pages=None):
        self.pages = list(pages or [])
        self.handlers = {}

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    async def new_page(self):
        page = FakePage(url="about:blank", title="")
        self.pages.append(page)
        for handler in self.handlers.get("page", []):
            handler(page)
        return page


@pytest.fixture
def page():
    return FakePage(
        dom=node(
            "body",
            "Submit",
            [node("button", "Submit", type_prop="submit")],
        )
    )


@pytest.fixture
def session(tmp_path, page):
    session = AutomationSession(screenshot_dir=tmp_path / "shots")
    session.context = FakeContext([page])
    session.watch_page(page)
    session.page = page
    return session
