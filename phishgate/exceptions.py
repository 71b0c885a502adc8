"""Exceptions used between phishgate's internal layers.

None of these escape ``Engine.evaluate``.
"""


class PhishgateError(Exception):
    """Base class for phishgate errors."""


class ConfigSourceError(PhishgateError):
    """Raw configuration could not be read from a source."""


class LookupFailed(PhishgateError):
    """A network lookup exhausted its retries."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
