"""
HTML Redirect Scanner

Detects client-side redirects in a fetched HTML page: meta refresh tags and
the common JavaScript navigation idioms. Pattern matching on script text is
heuristic by nature, so everything lives behind ``HtmlRedirectScanner.scan``
and the chain driver only ever sees a ``RedirectHint`` or ``None``.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup

from redirect_tracer.exceptions import InvalidRedirectTarget
from redirect_tracer.services.url_resolver import resolve, same_document

logger = logging.getLogger(__name__)

META_REFRESH = "Meta Refresh ({delay}s)"
JAVASCRIPT_REDIRECT = "JavaScript Redirect"
JAVASCRIPT_TIMEOUT_REDIRECT = "JavaScript Timeout Redirect"

# content="5; url='https://example.com/'" and its unquoted / comma variants
META_CONTENT_RE = re.compile(
    r"""^\s*(?P<delay>\d+)?(?:\.\d*)?\s*[;,]?\s*url\s*=\s*(?P<quote>['"]?)(?P<url>[^'"]+)(?P=quote)""",
    re.IGNORECASE,
)

_STRING = r"""(?P<q>['"`])(?P<url>[^'"`]+?)(?P=q)"""
_LOCATION = r"\b(?:(?:window|document|top|self|parent)\s*\.\s*)?location\b"

# Immediate navigation idioms inside <script> blocks
SCRIPT_NAVIGATION_PATTERNS = [
    re.compile(_LOCATION + r"\s*\.\s*href\s*=\s*" + _STRING, re.IGNORECASE),
    re.compile(_LOCATION + r"\s*=\s*" + _STRING, re.IGNORECASE),
    re.compile(_LOCATION + r"\s*\.\s*(?:replace|assign)\s*\(\s*" + _STRING + r"\s*\)", re.IGNORECASE),
    re.compile(
        r"window\s*\.\s*open\s*\(\s*" + _STRING + r"""\s*,\s*['"]_self['"]""",
        re.IGNORECASE,
    ),
]

# setTimeout(function () { ... }, n) and setTimeout(() => { ... }, n)
TIMEOUT_CALLBACK_RE = re.compile(
    r"setTimeout\s*\(\s*(?:function\s*\([^)]*\)|\([^)]*\)\s*=>)\s*\{(?P<body>.*?)\}\s*,\s*[^)]*\)",
    re.IGNORECASE | re.DOTALL,
)

# Loose catch-all for anything in the document (event handlers, JSON blobs, ...)
DOCUMENT_NAVIGATION_PATTERNS = [
    re.compile(r"\blocation(?:\s*\.\s*href)?\s*=\s*" + _STRING, re.IGNORECASE),
    re.compile(r"\blocation\s*\.\s*(?:replace|assign)\s*\(\s*" + _STRING, re.IGNORECASE),
]


@dataclass(frozen=True)
class RedirectHint:
    url: str
    redirect_type: str
    delay: int = 0


class HtmlRedirectScanner:
    """Finds the first client-side redirect in an HTML document.

    Detection order, first match wins:
      1. ``<meta http-equiv="refresh" content="n;url=...">``
      2. immediate location assignment / replace / ``window.open(.., '_self')`` in a script
      3. a location assignment inside a ``setTimeout`` callback
      4. any location assignment anywhere in the document
    """

    def scan(self, html: str, current_url: str) -> Optional[RedirectHint]:
        if not html:
            return None
        try:
            return self._scan(html, current_url)
        except Exception as e:
            # Malformed markup must never abort the chain
            logger.warning(f"HTML redirect scan failed for {current_url}: {e}")
            return None

    def _scan(self, html: str, current_url: str) -> Optional[RedirectHint]:
        soup = BeautifulSoup(html, "html.parser")

        hint = self._scan_meta_refresh(soup, current_url)
        if hint:
            return hint

        scripts = [script.string or "" for script in soup.find_all("script")]

        for text in scripts:
            immediate = TIMEOUT_CALLBACK_RE.sub(" ", text)
            target = self._first_target(SCRIPT_NAVIGATION_PATTERNS, immediate, current_url)
            if target:
                return RedirectHint(url=target, redirect_type=JAVASCRIPT_REDIRECT)

        for text in scripts:
            for match in TIMEOUT_CALLBACK_RE.finditer(text):
                target = self._first_target(SCRIPT_NAVIGATION_PATTERNS, match.group("body"), current_url)
                if target:
                    return RedirectHint(url=target, redirect_type=JAVASCRIPT_TIMEOUT_REDIRECT)

        target = self._first_target(DOCUMENT_NAVIGATION_PATTERNS, html, current_url)
        if target:
            return RedirectHint(url=target, redirect_type=JAVASCRIPT_REDIRECT)

        return None

    def _scan_meta_refresh(self, soup: BeautifulSoup, current_url: str) -> Optional[RedirectHint]:
        for meta in soup.find_all("meta"):
            if (meta.get("http-equiv") or "").strip().lower() != "refresh":
                continue
            delay, raw_target = parse_refresh_content(meta.get("content") or "")
            if raw_target is None:
                continue
            target = self._resolve(current_url, raw_target)
            if target:
                return RedirectHint(
                    url=target,
                    redirect_type=META_REFRESH.format(delay=delay),
                    delay=delay,
                )
        return None

    def _first_target(self, patterns: Iterable[re.Pattern], text: str, current_url: str) -> Optional[str]:
        candidates: List[Tuple[int, str]] = []
        for pattern in patterns:
            for match in pattern.finditer(text):
                candidates.append((match.start(), match.group("url")))
        # Earliest statement in the script wins, regardless of idiom
        for _, raw_target in sorted(candidates):
            target = self._resolve(current_url, raw_target)
            if target:
                return target
        return None

    def _resolve(self, current_url: str, raw_target: str) -> Optional[str]:
        try:
            target = resolve(current_url, raw_target)
        except InvalidRedirectTarget:
            logger.debug(f"Ignoring unresolvable in-page target {raw_target!r} on {current_url}")
            return None
        # "#top" style self references are not navigation
        if same_document(target, current_url):
            return None
        return target


def parse_refresh_content(content: str) -> Tuple[int, Optional[str]]:
    """Split a meta refresh ``content`` value into (delay seconds, raw target)."""
    match = META_CONTENT_RE.match(content)
    if not match:
        return 0, None
    delay = int(match.group("delay")) if match.group("delay") else 0
    return delay, match.group("url").strip()
