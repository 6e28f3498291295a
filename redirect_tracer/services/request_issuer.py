import logging
import socket
import ssl
from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx

from redirect_tracer.config import Settings, settings as default_settings
from redirect_tracer.exceptions import HopFailure, IssuerUnavailable

logger = logging.getLogger(__name__)

DNS_RESOLUTION_FAILED = "DNS Resolution Failed"
CONNECTION_REFUSED = "Connection Refused"
SSL_CERTIFICATE_EXPIRED = "SSL Certificate Expired"
SSL_CERTIFICATE_INVALID = "SSL Certificate Invalid"
REQUEST_TIMEOUT = "Request Timeout"
CONNECTION_FAILED = "Connection Failed"

# OpenSSL X509_V_ERR_CERT_HAS_EXPIRED
_X509_CERT_HAS_EXPIRED = 10


def browser_headers(user_agent: str) -> Dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
        "Accept-Encoding": "gzip, deflate",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
    }


def status_text_for(status_code: int, reason_phrase: str = "") -> str:
    if reason_phrase:
        return reason_phrase
    return httpx.codes.get_reason_phrase(status_code) or "Unknown Status"


@dataclass
class HopResponse:
    status_code: int
    status_text: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "").lower()

    @property
    def is_html(self) -> bool:
        return "text/html" in self.content_type or "application/xhtml+xml" in self.content_type

    @property
    def location(self) -> Optional[str]:
        return self.headers.get("location")


def merge_headers(pairs) -> Dict[str, str]:
    """Lower-case header names; repeated headers (Set-Cookie, Link, ...) are joined with ", "."""
    headers: Dict[str, str] = {}
    for key, value in pairs:
        key = key.lower()
        headers[key] = f"{headers[key]}, {value}" if key in headers else value
    return headers


def _iter_causes(exc: BaseException):
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__ or exc.__context__


def classify_error(exc: BaseException) -> str:
    """
    Map a transport exception to the user-facing failure label.

    Looks at the exception chain first (socket/ssl errors wrapped by httpx),
    then falls back to the message text, which is all some transports give us.
    """
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return REQUEST_TIMEOUT

    for cause in _iter_causes(exc):
        if isinstance(cause, socket.gaierror):
            return DNS_RESOLUTION_FAILED
        if isinstance(cause, ConnectionRefusedError):
            return CONNECTION_REFUSED
        if isinstance(cause, ssl.SSLCertVerificationError):
            verify_code = getattr(cause, "verify_code", None)
            if verify_code == _X509_CERT_HAS_EXPIRED or "expired" in str(cause).lower():
                return SSL_CERTIFICATE_EXPIRED
            return SSL_CERTIFICATE_INVALID
        if isinstance(cause, (socket.timeout, TimeoutError)):
            return REQUEST_TIMEOUT

    return classify_error_message(" ".join(str(cause) for cause in _iter_causes(exc)))


def classify_error_message(message: str) -> str:
    text = message.lower()
    if "timeout" in text or "timed out" in text or "etimedout" in text:
        return REQUEST_TIMEOUT
    if (
        "enotfound" in text
        or "err_name_not_resolved" in text
        or "name or service not known" in text
        or "nodename nor servname" in text
        or "getaddrinfo" in text
        or "temporary failure in name resolution" in text
        or "no address associated" in text
    ):
        return DNS_RESOLUTION_FAILED
    if "econnrefused" in text or "connection refused" in text or "err_connection_refused" in text:
        return CONNECTION_REFUSED
    if "cert_has_expired" in text or "certificate has expired" in text or "err_cert_date_invalid" in text:
        return SSL_CERTIFICATE_EXPIRED
    if (
        "unable_to_verify_leaf_signature" in text
        or "certificate verify failed" in text
        or "self_signed_cert" in text
        or "self signed certificate" in text
        or "err_cert_" in text
    ):
        return SSL_CERTIFICATE_INVALID
    return CONNECTION_FAILED


class RequestIssuer:
    """One outbound request per hop, never following redirects.

    Subclasses implement ``_fetch``; ``issue`` is the single contract the
    chain driver relies on. ``fetch_body=False`` is the lightweight mode
    (headers only), ``fetch_body=True`` the full mode used for HTML scanning.
    Instances are async context managers and are used for one trace only.
    """

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def open(self):
        pass

    async def close(self):
        pass

    async def issue(self, url: str, fetch_body: bool = False) -> HopResponse:
        raise NotImplementedError


class HttpRequestIssuer(RequestIssuer):
    def __init__(self, settings: Settings = None, client: httpx.AsyncClient = None):
        self.settings = settings or default_settings
        self._client = client
        self._owns_client = client is None

    async def open(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=False,
                timeout=self.settings.request_timeout,
                verify=self.settings.verify_tls,
            )

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def issue(self, url: str, fetch_body: bool = False) -> HopResponse:
        if self._client is None:
            await self.open()
        try:
            if fetch_body:
                response, body = await self._send("GET", url)
            else:
                response, body = await self._send("HEAD", url)
                # Some servers refuse HEAD outright
                if response.status_code in (405, 501):
                    logger.debug(f"HEAD refused by {url} ({response.status_code}), retrying with GET")
                    response, body = await self._send("GET", url, read_body=False)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            label = classify_error(e)
            logger.warning(f"Hop to {url} failed: {label} ({e!r})")
            raise HopFailure(label, url, str(e)) from e

        return HopResponse(
            status_code=response.status_code,
            status_text=status_text_for(response.status_code, response.reason_phrase),
            headers=merge_headers(response.headers.multi_items()),
            body=body,
        )

    async def _send(self, method: str, url: str, read_body: bool = None):
        """Send one request without following redirects; returns (response, decoded body or None)."""
        if read_body is None:
            read_body = method == "GET"
        headers = browser_headers(self.settings.user_agent)
        async with self._client.stream(method, url, headers=headers, follow_redirects=False) as response:
            body = await self._read_text(response) if read_body else None
        return response, body

    async def _read_text(self, response: httpx.Response) -> str:
        limit = self.settings.max_body_bytes
        content = bytearray()
        async for chunk in response.aiter_bytes():
            content.extend(chunk)
            if len(content) >= limit:
                break
        return content[:limit].decode(response.encoding or "utf-8", errors="replace")


class FallbackRequestIssuer(RequestIssuer):
    """Tries ``primary`` first and retries the hop on ``fallback`` when it fails."""

    def __init__(self, primary: RequestIssuer, fallback: RequestIssuer):
        self.primary = primary
        self.fallback = fallback
        self._primary_ready = False

    async def open(self):
        try:
            await self.primary.open()
            self._primary_ready = True
        except Exception as e:
            logger.warning(f"Primary fetch strategy unavailable, using fallback: {e!r}")
        await self.fallback.open()

    async def close(self):
        try:
            if self._primary_ready:
                await self.primary.close()
        finally:
            await self.fallback.close()

    async def issue(self, url: str, fetch_body: bool = False) -> HopResponse:
        if self._primary_ready:
            try:
                return await self.primary.issue(url, fetch_body=fetch_body)
            except Exception as e:
                logger.warning(f"Primary fetch strategy failed for {url}, falling back: {e!r}")
        return await self.fallback.issue(url, fetch_body=fetch_body)


def build_request_issuer(settings: Settings = None) -> RequestIssuer:
    settings = settings or default_settings
    strategy = settings.fetch_strategy.lower()
    if strategy == "http":
        return HttpRequestIssuer(settings)
    if strategy == "browser":
        from redirect_tracer.services.browser_issuer import BrowserRequestIssuer

        return FallbackRequestIssuer(BrowserRequestIssuer(settings), HttpRequestIssuer(settings))
    raise IssuerUnavailable(f"Unknown fetch strategy: {settings.fetch_strategy}")
