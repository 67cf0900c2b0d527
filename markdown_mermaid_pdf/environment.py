"""
The rendering environment: a headless browser page that holds the assembled
document and runs Mermaid against it.

The pipeline only talks to ``RenderEnvironment``; ``PlaywrightEnvironment`` is
the Chromium implementation.
"""

from abc import ABC, abstractmethod
from typing import List, Tuple

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .emitter import PageOptions
from .errors import DiagramRenderError
from .logger import ConsoleLogger

LAUNCH_ARGS = [
    '--disable-dev-shm-usage',  # Use /tmp instead of /dev/shm (prevents OOM crashes)
    '--disable-gpu',             # No GPU in headless mode
    '--disable-accelerated-2d-canvas',
    '--no-first-run',
]

PLACEHOLDER_STATES = ('rendered', 'failed', 'pending')

_READ_PLACEHOLDERS_JS = """() => Array.from(document.querySelectorAll('.mermaid-diagram'))
    .map(el => [Number(el.getAttribute('data-index')), el.getAttribute('data-mermaid') || ''])"""

_RENDER_DIAGRAM_JS = """async ({ id, code }) => {
    try {
        const { svg } = await window.mermaid.render(id, code);
        if (!svg) {
            return { ok: false, error: 'Mermaid returned no SVG' };
        }
        return { ok: true, svg };
    } catch (error) {
        // mermaid leaves its scratch elements behind when parsing fails
        for (const stale of [document.getElementById(id), document.getElementById('d' + id)]) {
            if (stale) {
                stale.remove();
            }
        }
        return { ok: false, error: String((error && error.message) || error) };
    }
}"""

_FILL_PLACEHOLDER_JS = """({ index, markup, status }) => {
    const el = document.querySelector('.mermaid-diagram[data-index="' + index + '"]');
    if (!el) {
        return false;
    }
    el.innerHTML = markup;
    el.setAttribute('data-status', status);
    return true;
}"""

_PLACEHOLDER_STATES_JS = """() => Array.from(document.querySelectorAll('.mermaid-diagram')).map(el => {
    if (el.querySelector('.mermaid-error')) {
        return 'failed';
    }
    return el.querySelector('svg') ? 'rendered' : 'pending';
})"""

_DEBUG_OVERLAY_JS = """(message) => {
    let overlay = document.getElementById('mermaid-debug-info');
    if (!overlay) {
        overlay = document.createElement('div');
        overlay.id = 'mermaid-debug-info';
        overlay.style = 'position:fixed;top:0;left:0;right:0;background:#fffbe6;color:#333;padding:8px 12px;'
            + 'font-size:14px;z-index:9999;border-bottom:1px solid #eee;box-shadow:0 2px 4px #0001;';
        document.body.prepend(overlay);
    }
    overlay.innerText = message;
}"""


class RenderEnvironment(ABC):
    """What the pipeline needs from a rendering environment."""

    @abstractmethod
    async def start(self) -> None:
        """Acquire the isolated environment."""

    @abstractmethod
    async def load(self, document_html: str) -> None:
        """Load a complete HTML document and wait until the network is idle."""

    @abstractmethod
    async def await_capability(self, timeout: float) -> None:
        """Wait until Mermaid is initialized; raise ``TimeoutError`` after ``timeout`` seconds."""

    @abstractmethod
    async def placeholder_sources(self) -> List[Tuple[int, str]]:
        """``(index, encoded source)`` for every placeholder, in document order."""

    @abstractmethod
    async def render_diagram(self, element_id: str, source: str) -> str:
        """Render one diagram to SVG markup; raise ``DiagramRenderError`` if Mermaid rejects it."""

    @abstractmethod
    async def fill_placeholder(self, index: int, markup: str, status: str) -> bool:
        """Replace a placeholder's content. Returns False if no such placeholder exists."""

    @abstractmethod
    async def placeholder_states(self) -> List[str]:
        """One of ``PLACEHOLDER_STATES`` per placeholder, in document order."""

    @abstractmethod
    async def show_progress(self, message: str) -> None:
        """Show a diagnostic banner in the page."""

    @abstractmethod
    async def serialize(self, options: PageOptions) -> bytes:
        """Print the current page to PDF bytes."""

    @abstractmethod
    async def close(self) -> None:
        """Release everything acquired by ``start``. Safe to call more than once."""


class PlaywrightEnvironment(RenderEnvironment):
    """Headless Chromium driven through Playwright's async API."""

    def __init__(self, logger: ConsoleLogger, chromium_sandbox: bool = False):
        self.logger = logger
        self.chromium_sandbox = chromium_sandbox
        self._playwright: Playwright = None
        self._browser: Browser = None
        self._page: Page = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Rendering environment has not been started")
        return self._page

    async def start(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=True,
            chromium_sandbox=self.chromium_sandbox,
            args=LAUNCH_ARGS,
        )
        self._page = await self._browser.new_page()
        self.logger.debug("Browser initialized", version=self._browser.version)

    async def load(self, document_html: str) -> None:
        await self.page.set_content(document_html, wait_until='networkidle')

    async def await_capability(self, timeout: float) -> None:
        try:
            await self.page.wait_for_function("() => window.mermaidReady === true", timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise TimeoutError(str(e)) from e

    async def placeholder_sources(self) -> List[Tuple[int, str]]:
        return [(int(index), encoded) for index, encoded in await self.page.evaluate(_READ_PLACEHOLDERS_JS)]

    async def render_diagram(self, element_id: str, source: str) -> str:
        result = await self.page.evaluate(_RENDER_DIAGRAM_JS, {'id': element_id, 'code': source})
        if not result.get('ok'):
            raise DiagramRenderError(result.get('error') or 'Unknown Mermaid error')
        return result['svg']

    async def fill_placeholder(self, index: int, markup: str, status: str) -> bool:
        return await self.page.evaluate(_FILL_PLACEHOLDER_JS, {'index': index, 'markup': markup, 'status': status})

    async def placeholder_states(self) -> List[str]:
        return await self.page.evaluate(_PLACEHOLDER_STATES_JS)

    async def show_progress(self, message: str) -> None:
        await self.page.evaluate(_DEBUG_OVERLAY_JS, message)

    async def serialize(self, options: PageOptions) -> bytes:
        return await self.page.pdf(**options.to_pdf_kwargs())

    async def close(self) -> None:
        # Grab references and null them out first to prevent double-close
        page, browser, pw = self._page, self._browser, self._playwright
        self._page = self._browser = self._playwright = None

        errors = []
        if page is not None and not page.is_closed():
            try:
                await page.close()
                self.logger.debug("Page closed")
            except Exception as e:
                errors.append(f"page: {e}")
        if browser is not None and browser.is_connected():
            try:
                await browser.close()
                self.logger.debug("Browser closed")
            except Exception as e:
                errors.append(f"browser: {e}")
        if pw is not None:
            try:
                await pw.stop()
            except Exception as e:
                errors.append(f"playwright: {e}")

        if errors:
            raise RuntimeError("Failed to close rendering environment: " + "; ".join(errors))
