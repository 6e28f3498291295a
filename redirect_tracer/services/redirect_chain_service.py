import asyncio
import logging
import time
from typing import List, Optional, Set, Tuple

from redirect_tracer.config import Settings, settings as default_settings
from redirect_tracer.exceptions import HopFailure, InvalidInput, InvalidRedirectTarget, InvalidUrl
from redirect_tracer.schemas import RedirectChain, RedirectStep
from redirect_tracer.services.html_redirect_scanner import HtmlRedirectScanner, RedirectHint
from redirect_tracer.services.request_issuer import (
    REQUEST_TIMEOUT,
    HopResponse,
    RequestIssuer,
    build_request_issuer,
)
from redirect_tracer.services.url_resolver import is_absolute_http_url, resolve

logger = logging.getLogger(__name__)


def validate_initial_url(url: Optional[str]) -> str:
    if url is None or not url.strip():
        raise InvalidInput()
    url = url.strip()
    if not is_absolute_http_url(url):
        raise InvalidUrl(url)
    return url


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


class RedirectTracer:
    """
    Follow a URL hop by hop and record every response along the way.

    Each hop is requested without automatic redirect handling. 3xx responses
    continue at their resolved Location; 2xx HTML pages are scanned for meta
    refresh / JavaScript navigation and continue at the hinted target. The
    trace stops at the first terminal response, at a hop failure (recorded
    as a status 0 step), when a URL repeats, or after ``max_redirects`` hops.

    A tracer owns its request issuer; use one instance per trace when traces
    run concurrently.
    """

    def __init__(
        self,
        settings: Settings = None,
        issuer: RequestIssuer = None,
        scanner: HtmlRedirectScanner = None,
    ):
        self.settings = settings or default_settings
        self.issuer = issuer or build_request_issuer(self.settings)
        self.scanner = scanner or HtmlRedirectScanner()

    async def trace(self, initial_url: str) -> RedirectChain:
        current_url = validate_initial_url(initial_url)
        steps: List[RedirectStep] = []
        visited: Set[str] = set()
        deadline = None
        if self.settings.trace_timeout:
            deadline = time.monotonic() + self.settings.trace_timeout

        async with self.issuer:
            for _ in range(self.settings.max_redirects):
                if current_url in visited:
                    logger.info(f"Circular redirect detected at {current_url}, stopping")
                    break
                visited.add(current_url)

                step, next_url = await self._follow(current_url, deadline)
                steps.append(step)
                if next_url is None:
                    break
                current_url = next_url
            else:
                logger.info(
                    f"Redirect limit of {self.settings.max_redirects} reached for {initial_url}, "
                    f"next hop would have been {current_url}"
                )

        chain = RedirectChain.from_steps(steps, current_url)
        logger.info(
            f"Traced {initial_url} -> {chain.final_url}: {len(chain.steps)} steps, "
            f"{chain.total_redirects} redirects, {chain.total_time} ms"
        )
        return chain

    async def _follow(self, url: str, deadline: Optional[float]) -> Tuple[RedirectStep, Optional[str]]:
        """Request one hop; returns its step and the next URL, or None to stop."""
        logger.debug(f"Requesting {url}")
        start = time.perf_counter()
        try:
            response = await self._issue(url, deadline)
        except HopFailure as e:
            return self._failure_step(url, e.label, start), None

        code = response.status_code
        if 300 <= code < 400:
            if not response.location:
                logger.info(f"{code} from {url} without a Location header, stopping")
                return self._step(url, response, start), None
            try:
                next_url = resolve(url, response.location)
            except InvalidRedirectTarget as e:
                logger.info(f"{e}, stopping")
                return self._step(url, response, start), None
            return self._step(url, response, start, redirect_type=f"HTTP {code}"), next_url

        if 200 <= code < 300 and response.is_html and self.settings.detect_html_redirects:
            hint = await self._scan_html(url, response, deadline)
            if hint:
                step = self._step(url, response, start, redirect_type=hint.redirect_type, delay=hint.delay)
                return step, hint.url

        return self._step(url, response, start), None

    async def _scan_html(self, url: str, response: HopResponse, deadline: Optional[float]) -> Optional[RedirectHint]:
        body = response.body
        if body is None:
            try:
                body = (await self._issue(url, deadline, fetch_body=True)).body
            except HopFailure as e:
                logger.warning(f"Could not fetch HTML body of {url} for redirect scan: {e.label}")
                return None
        hint = self.scanner.scan(body or "", url)
        if hint:
            logger.info(f"{hint.redirect_type} found on {url} -> {hint.url}")
        return hint

    async def _issue(self, url: str, deadline: Optional[float], fetch_body: bool = False) -> HopResponse:
        call = self.issuer.issue(url, fetch_body=fetch_body)
        if deadline is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=max(deadline - time.monotonic(), 0))
        except asyncio.TimeoutError as e:
            raise HopFailure(REQUEST_TIMEOUT, url, "trace deadline exceeded") from e

    @staticmethod
    def _step(
        url: str,
        response: HopResponse,
        start: float,
        redirect_type: str = None,
        delay: int = None,
    ) -> RedirectStep:
        return RedirectStep(
            url=url,
            status_code=response.status_code,
            status_text=response.status_text,
            headers=response.headers,
            response_time=_elapsed_ms(start),
            redirect_type=redirect_type,
            redirect_delay=delay,
        )

    @staticmethod
    def _failure_step(url: str, label: str, start: float) -> RedirectStep:
        return RedirectStep(
            url=url,
            status_code=0,
            status_text=label,
            headers={},
            response_time=_elapsed_ms(start),
        )


async def get_redirect_chain(url: str, settings: Settings = None) -> RedirectChain:
    """
    Trace every hop from ``url`` to its final destination.

    Args:
        url (str): absolute http(s) URL to start from
        settings: overrides the module settings for this trace

    Returns:
        RedirectChain: the recorded steps with totals

    Raises:
        InvalidInput: ``url`` is missing or not an absolute http(s) URL
    """
    return await RedirectTracer(settings).trace(url)
