import asyncio
import logging
import platform
import socket
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any, List, Optional, Sequence

import httpx
from pydantic import BaseModel

from .errors import RefNotFoundError, SessionNotInitializedError, StartupError
from .models import ConsoleMessage, NetworkRequest
from .refs import RefMap

logger = logging.getLogger(__name__)

DEFAULT_SCREENSHOT_DIR = Path(tempfile.gettempdir()) / "electron-mcp"


def _now_ms() -> int:
    return int(time.time() * 1000)


class AppTarget(BaseModel):
    cdp_url: str
    pid: Optional[int] = None
    executable_path: Optional[str] = None


class DialogResponse(BaseModel):
    accept: bool
    prompt_text: Optional[str] = None


class ElectronLauncher:
    """Starts an Electron app with remote debugging enabled, or attaches to one."""

    def __init__(self, startup_timeout: float = 30.0, poll_interval: float = 0.5):
        self.startup_timeout = startup_timeout
        self.poll_interval = poll_interval
        self._process: Optional[subprocess.Popen] = None

    def _cdp_ready(self, cdp_url: str) -> bool:
        try:
            resp = httpx.get(f"{cdp_url.rstrip('/')}/json/version", timeout=0.5)
            return resp.status_code == 200
        except Exception:
            return False

    def _wait_ready(self, cdp_url: str) -> bool:
        deadline = time.monotonic() + self.startup_timeout
        while True:
            if self._cdp_ready(cdp_url):
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(self.poll_interval)

    def attach(self, cdp_url: str) -> AppTarget:
        if not self._wait_ready(cdp_url):
            raise StartupError(f"CDP endpoint {cdp_url} is not reachable.")
        return AppTarget(cdp_url=cdp_url)

    def launch(
        self,
        executable_path: str,
        port: Optional[int] = None,
        extra_args: Sequence[str] = (),
    ) -> AppTarget:
        if not Path(executable_path).exists():
            raise StartupError(f"Electron app not found at: {executable_path}")
        if port is None:
            port = self._find_free_port()

        args = [
            executable_path,
            f"--remote-debugging-port={port}",
            *extra_args,
        ]

        popen_kwargs: dict[str, object] = {
            "stdout": subprocess.DEVNULL,
            "stderr": subprocess.DEVNULL,
        }
        if platform.system() == "Windows":
            creationflags = 0
            creationflags |= getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
            popen_kwargs["creationflags"] = creationflags
        else:
            popen_kwargs["start_new_session"] = True

        logger.info("Launching %s with CDP port %d", executable_path, port)
        process = subprocess.Popen(args, **popen_kwargs)  # type: ignore[call-overload]
        self._process = process

        cdp_url = f"http://127.0.0.1:{port}"
        if not self._wait_ready(cdp_url):
            try:
                process.kill()
            except Exception:
                logger.debug("Could not kill pid %s", process.pid, exc_info=True)
            self._process = None
            raise StartupError("Electron started but CDP never became ready.")

        return AppTarget(
            cdp_url=cdp_url, pid=process.pid, executable_path=executable_path
        )

    def stop(self, target: Optional[AppTarget]) -> None:
        import psutil

        self._process = None
        if target is None or target.pid is None:
            return
        try:
            proc = psutil.Process(target.pid)
            for child in proc.children(recursive=True):
                child.kill()
            proc.kill()
        except psutil.NoSuchProcess:
            pass

    def _find_free_port(self, start: int = 9222, max_tries: int = 100) -> int:
        port = start
        tries = 0
        while tries < max_tries:
            if self._is_port_free(port):
                return port
            port += 1
            tries += 1
        return self._find_ephemeral_port()

    def _is_port_free(self, port: int) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind(("127.0.0.1", port))
            except OSError:
                return False
            return True

    def _find_ephemeral_port(self) -> int:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            return int(sock.getsockname()[1])


class AutomationSession:
    """State of one automated application: its windows, logs and element refs.

    Every tool handler receives the session explicitly. ``lock`` serializes
    tool calls, since a snapshot taken in the middle of a click would swap the
    refs the click is about to resolve.
    """

    def __init__(
        self,
        launcher: Optional[ElectronLauncher] = None,
        screenshot_dir: Optional[Path] = None,
    ):
        self.launcher = launcher or ElectronLauncher()
        self.screenshot_dir = screenshot_dir or DEFAULT_SCREENSHOT_DIR
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        self.lock = asyncio.Lock()
        self.refs = RefMap()
        self.target: Optional[AppTarget] = None
        self.page: Any = None
        self.pages: List[Any] = []
        self.network_requests: List[NetworkRequest] = []
        self.console_messages: List[ConsoleMessage] = []
        self.dialog_response: Optional[DialogResponse] = None
        self.browser: Any = None
        self.context: Any = None
        self._playwright: Any = None

    @property
    def initialized(self) -> bool:
        return self.page is not None

    async def start(self, target: AppTarget, window_timeout: float = 30.0) -> None:
        from playwright.async_api import async_playwright

        self.target = target
        self._playwright = await async_playwright().start()
        try:
            await self._attach(target, window_timeout)
        except Exception as e:
            await self._release_playwright()
            raise StartupError(f"Could not attach to {target.cdp_url}: {e}") from e
        logger.info("Attached to %s (%d windows)", target.cdp_url, len(self.pages))

    async def _attach(self, target: AppTarget, window_timeout: float) -> None:
        self.browser = await self._playwright.chromium.connect_over_cdp(target.cdp_url)
        if self.browser.contexts:
            self.context = self.browser.contexts[0]
        else:
            self.context = await self.browser.new_context()
        pages = list(self.context.pages)
        if not pages:
            logger.info("Waiting for the first application window")
            pages = [
                await self.context.wait_for_event(
                    "page", timeout=window_timeout * 1000
                )
            ]
        self.context.on("page", self.watch_page)
        for page in pages:
            self.watch_page(page)
        self.page = pages[0]

    async def _release_playwright(self) -> None:
        if self.browser is not None:
            try:
                await self.browser.close()
            except Exception:
                logger.debug("Browser connection already gone", exc_info=True)
        if self._playwright is not None:
            await self._playwright.stop()
        self.browser = None
        self.context = None
        self._playwright = None
        self.page = None
        self.pages = []

    def watch_page(self, page: Any) -> None:
        if page in self.pages:
            return
        page.on("request", self._on_request)
        page.on("response", self._on_response)
        page.on("console", self._on_console)
        page.on("dialog", self._on_dialog)
        page.on("close", self.forget_page)
        self.pages = [*self.pages, page]

    def require_page(self) -> Any:
        if self.page is None:
            raise SessionNotInitializedError()
        return self.page

    def resolve_ref(
        self, ref: str, label: str = "Element reference", suffix: str = ""
    ) -> str:
        selector = self.refs.resolve(ref)
        if selector is None:
            raise RefNotFoundError(ref, label, suffix)
        return selector

    def arm_dialog(self, accept: bool, prompt_text: Optional[str] = None) -> None:
        if self.dialog_response is not None:
            logger.debug("Replacing armed dialog response %s", self.dialog_response)
        self.dialog_response = DialogResponse(accept=accept, prompt_text=prompt_text)

    def _on_request(self, request: Any) -> None:
        entry = NetworkRequest(
            url=request.url, method=request.method, timestamp=_now_ms()
        )
        self.network_requests = [*self.network_requests, entry]

    def _on_response(self, response: Any) -> None:
        for i, entry in enumerate(self.network_requests):
            if entry.url == response.url and entry.status is None:
                updated = entry.model_copy(
                    update={
                        "status": response.status,
                        "content_type": response.headers.get("content-type"),
                    }
                )
                requests = list(self.network_requests)
                requests[i] = updated
                self.network_requests = requests
                return

    def _on_console(self, message: Any) -> None:
        location = message.location or {}
        entry = ConsoleMessage(
            type=message.type,
            text=message.text,
            timestamp=_now_ms(),
            location=location.get("url") or None,
        )
        self.console_messages = [*self.console_messages, entry]

    async def _on_dialog(self, dialog: Any) -> None:
        response, self.dialog_response = self.dialog_response, None
        logger.info("Dialog appeared: %s - %s", dialog.type, dialog.message)
        if response is not None and response.accept:
            await dialog.accept(response.prompt_text or "")
        else:
            await dialog.dismiss()

    def forget_page(self, page: Any) -> None:
        self.pages = [p for p in self.pages if p is not page]
        if self.page is page:
            self.page = self.pages[0] if self.pages else None

    async def close(self) -> None:
        await self._release_playwright()
        self.launcher.stop(self.target)
        self.target = None
        self.refs.reset()
