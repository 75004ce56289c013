"""Errors raised by analysis provider clients."""


class ProviderError(Exception):
    """
    A performance-audit provider answered with an unusable response.

    Raised for non-2xx HTTP responses and for payloads that carry no test data
    at all. Missing individual metrics are not errors; the normalizer defaults
    them instead.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        status_text: str | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.status_text = status_text
