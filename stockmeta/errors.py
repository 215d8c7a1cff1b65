"""
StockMeta - Errors
Exception hierarchy shared by the provider callers, the pipeline and the orchestrator.
"""


class StockMetaError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(StockMetaError):
    """Missing API keys, unknown provider or unusable settings."""


class ProviderError(StockMetaError):
    """Transport or upstream failure while calling a vision model.

    Args:
        message: Human-readable error text (usually includes the response body).
        status: HTTP status code, or None for network failures.
    """

    NON_RETRYABLE_STATUS = frozenset({400, 401, 403})
    RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status

    @property
    def message(self):
        return str(self)

    @property
    def overloaded(self):
        return self.status == 503 or 'overloaded' in self.message.lower()

    @property
    def retryable(self):
        """Transient failures worth another attempt.

        Bad requests and credential problems fail at once. Network errors
        without a status are treated as transient.
        """
        text = self.message.lower()
        if self.status in self.NON_RETRYABLE_STATUS or 'api key' in text or 'invalid' in text:
            return False
        if self.status is None or self.status in self.RETRYABLE_STATUS:
            return True
        return 'overloaded' in text or 'rate limit' in text


class QuotaExhaustedError(ProviderError):
    """A 429 response whose wording says the credential's quota is used up."""


class ResponseParseError(StockMetaError):
    """The model answered, but not with a usable JSON object."""


class ContentIntegrityError(StockMetaError):
    """The model output cannot be trusted for this file.

    Raised when the model returns nothing despite an image, echoes the
    filename, or when there was no preview to analyse in the first place.
    The error row shown to the user carries ``title`` and ``description``.
    """

    def __init__(self, message, title=None, description=None):
        super().__init__(message)
        self.title = title
        self.description = description
