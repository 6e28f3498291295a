from urllib.parse import urljoin, urlparse, urldefrag

from redirect_tracer.exceptions import InvalidRedirectTarget

ALLOWED_SCHEMES = ("http", "https")


def is_absolute_http_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
        parsed.port  # raises ValueError on a non-numeric port
    except ValueError:
        return False
    host = parsed.hostname
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not host:
        return False
    return not any(char.isspace() for char in host)


def resolve(base_url: str, target: str) -> str:
    """
    Turn a Location header or in-page redirect target into an absolute URL.

    Absolute targets are used as-is, ``//host/path`` inherits the base scheme,
    ``/path`` inherits scheme and host, anything else resolves against the
    base URL's directory (RFC 3986 reference resolution).

    Raises:
        InvalidRedirectTarget: the result is not an absolute http(s) URL
    """
    if target is None:
        raise InvalidRedirectTarget(base_url, "")
    target = target.strip()
    if not target:
        raise InvalidRedirectTarget(base_url, target)

    try:
        resolved = urljoin(base_url, target)
    except ValueError:
        raise InvalidRedirectTarget(base_url, target)

    if not is_absolute_http_url(resolved):
        raise InvalidRedirectTarget(base_url, target)
    return resolved


def same_document(url_a: str, url_b: str) -> bool:
    """True when the two URLs differ at most by fragment."""
    return urldefrag(url_a)[0] == urldefrag(url_b)[0]
