import types
from unittest.mock import AsyncMock, MagicMock

import psutil
import pytest

from electron_mcp.errors import RefNotFoundError, StartupError
from electron_mcp.session import AppTarget, AutomationSession, ElectronLauncher
from conftest import FakeContext, FakePage


def test_cdp_ready_true(monkeypatch):
    launcher = ElectronLauncher()

    class Resp:
        status_code = 200

    monkeypatch.setattr("httpx.get", lambda *args, **kwargs: Resp())
    assert launcher._cdp_ready("http://x") is True


def test_cdp_ready_false(monkeypatch):
    launcher = ElectronLauncher()

    def boom(*args, **kwargs):
        raise RuntimeError("fail")

    monkeypatch.setattr("httpx.get", boom)
    assert launcher._cdp_ready("http://x") is False


def test_attach_reachable(monkeypatch):
    launcher = ElectronLauncher()
    monkeypatch.setattr(launcher, "_cdp_ready", lambda url: True)

    target = launcher.attach("http://127.0.0.1:9222")
    assert target == AppTarget(cdp_url="http://127.0.0.1:9222")


def test_attach_unreachable(monkeypatch):
    launcher = ElectronLauncher(startup_timeout=0)
    monkeypatch.setattr(launcher, "_cdp_ready", lambda url: False)

    with pytest.raises(StartupError, match="not reachable"):
        launcher.attach("http://127.0.0.1:9222")


def test_launch_missing_executable(tmp_path):
    launcher = ElectronLauncher()
    with pytest.raises(StartupError, match="Electron app not found at"):
        launcher.launch(str(tmp_path / "missing"))


def test_launch_success(monkeypatch, tmp_path):
    app = tmp_path / "MyApp"
    app.write_text("")
    launcher = ElectronLauncher()
    captured = {}

    def fake_popen(args, **kwargs):
        captured["args"] = args
        captured["kwargs"] = kwargs
        return types.SimpleNamespace(pid=4321)

    monkeypatch.setattr("subprocess.Popen", fake_popen)
    monkeypatch.setattr("platform.system", lambda: "Linux")
    monkeypatch.setattr(launcher, "_cdp_ready", lambda url: True)

    target = launcher.launch(str(app), port=9333, extra_args=["--no-sandbox"])

    assert captured["args"] == [str(app), "--remote-debugging-port=9333", "--no-sandbox"]
    assert captured["kwargs"]["start_new_session"] is True
    assert target.cdp_url == "http://127.0.0.1:9333"
    assert target.pid == 4321
    assert target.executable_path == str(app)


def test_launch_picks_free_port(monkeypatch, tmp_path):
    app = tmp_path / "MyApp"
    app.write_text("")
    launcher = ElectronLauncher()
    monkeypatch.setattr(launcher, "_is_port_free", lambda port: port == 9224)
    monkeypatch.setattr("subprocess.Popen", lambda *a, **k: types.SimpleNamespace(pid=1))
    monkeypatch.setattr(launcher, "_cdp_ready", lambda url: True)

    target = launcher.launch(str(app))
    assert target.cdp_url == "http://127.0.0.1:9224"


def test_launch_timeout_kills_process(monkeypatch, tmp_path):
    app = tmp_path / "MyApp"
    app.write_text("")
    launcher = ElectronLauncher(startup_timeout=0)
    proc = MagicMock(pid=99)
    monkeypatch.setattr("subprocess.Popen", lambda *a, **k: proc)
    monkeypatch.setattr(launcher, "_cdp_ready", lambda url: False)

    with pytest.raises(StartupError, match="CDP never became ready"):
        launcher.launch(str(app), port=9333)
    proc.kill.assert_called_once()


def test_find_free_port_falls_back_to_ephemeral(monkeypatch):
    launcher = ElectronLauncher()
    monkeypatch.setattr(launcher, "_is_port_free", lambda port: False)
    monkeypatch.setattr(launcher, "_find_ephemeral_port", lambda: 55555)
    assert launcher._find_free_port(max_tries=3) == 55555


def test_stop_kills_process_tree(monkeypatch):
    killed = []

    class FakeProc:
        def __init__(self, name, children=()):
            self.name = name
            self._children = children

        def children(self, recursive=False):
            return self._children

        def kill(self):
            killed.append(self.name)

    monkeypatch.setattr(
        "psutil.Process", lambda pid: FakeProc("main", [FakeProc("renderer")])
    )
    ElectronLauncher().stop(AppTarget(cdp_url="http://x", pid=10))
    assert killed == ["renderer", "main"]


def test_stop_process_gone(monkeypatch):
    monkeypatch.setattr(
        "psutil.Process",
        lambda pid: (_ for _ in ()).throw(psutil.NoSuchProcess(pid)),
    )
    ElectronLauncher().stop(AppTarget(cdp_url="http://x", pid=10))


def test_stop_attached_target_is_left_alone(monkeypatch):
    monkeypatch.setattr("psutil.Process", MagicMock(side_effect=AssertionError))
    ElectronLauncher().stop(AppTarget(cdp_url="http://x"))


def test_resolve_ref(session):
    session.refs.replace({"e100": "#go"})
    assert session.resolve_ref("e100") == "#go"
    with pytest.raises(RefNotFoundError, match="Element reference e101 not found"):
        session.resolve_ref("e101")


def test_response_fills_first_pending_request(session, page):
    page.emit("request", types.SimpleNamespace(url="app://a", method="GET"))
    page.emit("request", types.SimpleNamespace(url="app://a", method="GET"))
    before = session.network_requests

    page.emit(
        "response",
        types.SimpleNamespace(url="app://a", status=404, headers={"content-type": "text/html"}),
    )

    assert [r.status for r in session.network_requests] == [404, None]
    # Readers holding the old list see it unchanged.
    assert before[0].status is None


def test_response_without_request_is_ignored(session, page):
    page.emit("response", types.SimpleNamespace(url="app://x", status=200, headers={}))
    assert session.network_requests == []


def test_console_without_location(session, page):
    page.emit("console", types.SimpleNamespace(type="log", text="hi", location=None))
    assert session.console_messages[0].location is None


@pytest.mark.asyncio
async def test_dialog_dismissed_when_not_armed(session, page):
    dialog = MagicMock(type="confirm", message="Sure?")
    dialog.accept = AsyncMock()
    dialog.dismiss = AsyncMock()

    await page.emit("dialog", dialog)[0]

    dialog.dismiss.assert_awaited_once()


@pytest.mark.asyncio
async def test_dialog_accept_without_prompt_text(session, page):
    session.arm_dialog(True)
    dialog = MagicMock(type="confirm", message="Sure?")
    dialog.accept = AsyncMock()

    await page.emit("dialog", dialog)[0]

    dialog.accept.assert_awaited_once_with("")


def test_watch_page_is_idempotent(session, page):
    session.watch_page(page)
    assert session.pages == [page]
    assert len(page.handlers["request"]) == 1


def test_closing_current_page_moves_to_next(session, page):
    other = FakePage(url="app://b")
    session.watch_page(other)

    page.emit("close", page)

    assert session.pages == [other]
    assert session.page is other


def _fake_playwright(monkeypatch, browser):
    pw = MagicMock()
    pw.chromium.connect_over_cdp = AsyncMock(return_value=browser)
    pw.stop = AsyncMock()
    starter = MagicMock()
    starter.start = AsyncMock(return_value=pw)
    monkeypatch.setattr("playwright.async_api.async_playwright", lambda: starter)
    return pw


@pytest.mark.asyncio
async def test_start_attaches_to_first_window(monkeypatch, tmp_path):
    page = FakePage()
    context = FakeContext([page])
    browser = MagicMock(contexts=[context])
    browser.close = AsyncMock()
    pw = _fake_playwright(monkeypatch, browser)
    launcher = MagicMock()

    session = AutomationSession(launcher=launcher, screenshot_dir=tmp_path)
    target = AppTarget(cdp_url="http://127.0.0.1:9222", pid=5)
    await session.start(target)

    pw.chromium.connect_over_cdp.assert_awaited_once_with("http://127.0.0.1:9222")
    assert session.page is page
    assert session.pages == [page]
    assert session.initialized

    new_page = await context.new_page()
    assert new_page in session.pages

    await session.close()
    browser.close.assert_awaited_once()
    pw.stop.assert_awaited_once()
    launcher.stop.assert_called_once_with(target)
    assert not session.initialized


@pytest.mark.asyncio
async def test_start_connection_failure(monkeypatch, tmp_path):
    pw = _fake_playwright(monkeypatch, None)
    pw.chromium.connect_over_cdp.side_effect = RuntimeError("refused")

    session = AutomationSession(screenshot_dir=tmp_path)
    with pytest.raises(StartupError, match="Could not attach to http://127.0.0.1:1"):
        await session.start(AppTarget(cdp_url="http://127.0.0.1:1"))
    pw.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_start_without_window_releases_playwright(monkeypatch, tmp_path):
    from playwright.async_api import TimeoutError as PlaywrightTimeoutError

    context = FakeContext([])
    context.wait_for_event = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout 10ms exceeded."))
    browser = MagicMock(contexts=[context])
    browser.close = AsyncMock()
    pw = _fake_playwright(monkeypatch, browser)

    session = AutomationSession(screenshot_dir=tmp_path)
    with pytest.raises(StartupError, match="Timeout 10ms exceeded"):
        await session.start(AppTarget(cdp_url="http://127.0.0.1:9222"), window_timeout=0.01)

    context.wait_for_event.assert_awaited_once_with("page", timeout=10.0)
    browser.close.assert_awaited_once()
    pw.stop.assert_awaited_once()
    assert session.browser is None
    assert not session.initialized
