from playwright.async_api import async_playwright, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError
import logging

from redirect_tracer.config import Settings, settings as default_settings
from redirect_tracer.exceptions import HopFailure, IssuerUnavailable
from redirect_tracer.services.request_issuer import (
    REQUEST_TIMEOUT,
    HopResponse,
    RequestIssuer,
    browser_headers,
    classify_error_message,
    merge_headers,
    status_text_for,
)

logger = logging.getLogger(__name__)


class BrowserRequestIssuer(RequestIssuer):
    """
    Issue hops through Playwright's request context (Chromium's network stack
    and TLS handling, driven headless).

    Redirects are never followed (``max_redirects=0``) so the chain driver
    still sees every hop.
    """

    def __init__(self, settings: Settings = None):
        self.settings = settings or default_settings
        self._playwright = None
        self._context = None

    @property
    def _timeout_ms(self) -> float:
        return self.settings.request_timeout * 1000

    async def open(self):
        if self._context is not None:
            return
        try:
            self._playwright = await async_playwright().start()
            headers = browser_headers(self.settings.user_agent)
            user_agent = headers.pop("User-Agent")
            self._context = await self._playwright.request.new_context(
                user_agent=user_agent,
                extra_http_headers=headers,
                ignore_https_errors=not self.settings.verify_tls,
                timeout=self._timeout_ms,
            )
        except Exception as e:
            logger.error(f"Error initializing Playwright: {str(e)}")
            await self.close()
            raise IssuerUnavailable(f"Playwright is not available: {e}") from e

    async def close(self):
        if self._context is not None:
            await self._context.dispose()
            self._context = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def issue(self, url: str, fetch_body: bool = False) -> HopResponse:
        if self._context is None:
            await self.open()

        method = "GET" if fetch_body else "HEAD"
        try:
            response = await self._context.fetch(
                url,
                method=method,
                max_redirects=0,
                timeout=self._timeout_ms,
            )
            try:
                body = None
                if fetch_body:
                    raw = await response.body()
                    body = raw[: self.settings.max_body_bytes].decode("utf-8", errors="replace")
                return HopResponse(
                    status_code=response.status,
                    status_text=status_text_for(response.status, response.status_text),
                    headers=merge_headers((header["name"], header["value"]) for header in response.headers_array),
                    body=body,
                )
            finally:
                await response.dispose()
        except PlaywrightTimeoutError as e:
            logger.warning(f"Hop to {url} timed out in browser: {str(e)}")
            raise HopFailure(REQUEST_TIMEOUT, url, str(e)) from e
        except PlaywrightError as e:
            label = classify_error_message(e.message)
            logger.warning(f"Hop to {url} failed in browser: {label} ({e.message})")
            raise HopFailure(label, url, e.message) from e
