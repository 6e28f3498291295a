class TracerError(Exception):
    """Base class for every error raised by the redirect tracer."""
    pass


class InvalidInput(TracerError):
    """The caller's request cannot be traced at all (missing or empty URL)."""

    def __init__(self, message: str = "URL is required"):
        super().__init__(message)
        self.message = message


class InvalidUrl(InvalidInput):
    def __init__(self, url: str):
        super().__init__("Invalid URL provided")
        self.url = url


class InvalidRedirectTarget(TracerError):
    """A Location header or in-page target did not resolve to an absolute http(s) URL."""

    def __init__(self, base_url: str, target: str):
        super().__init__(f"Cannot resolve redirect target {target!r} against {base_url!r}")
        self.base_url = base_url
        self.target = target


class HopFailure(TracerError):
    """A single hop failed before a response was obtained.

    ``label`` is the user-facing failure category that ends up in the
    step's ``statusText``.
    """

    def __init__(self, label: str, url: str, reason: str = ""):
        super().__init__(f"{label}: {url} ({reason})" if reason else f"{label}: {url}")
        self.label = label
        self.url = url
        self.reason = reason


class IssuerUnavailable(TracerError):
    """A fetch strategy cannot run in this environment (e.g. no browser installed)."""
    pass
