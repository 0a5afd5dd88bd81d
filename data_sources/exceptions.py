"""
Data Source Exceptions - Provider-level failures.

Every provider failure is a ProviderUnavailableError so the
aggregator can record it against that provider and move on.
"""

from typing import Any, Optional

from core.exceptions import ProviderUnavailableError


class FetchError(ProviderUnavailableError):
    """HTTP or transport error while calling a provider API."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        context = dict(context or {})
        if status_code is not None:
            context["status_code"] = status_code
        if request_url:
            context["request_url"] = request_url
        super().__init__(message, provider=source_name, context=context, cause=original_error)
        self.source_name = source_name
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url

    def is_server_error(self) -> bool:
        return self.status_code is not None and 500 <= self.status_code < 600

    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


class RateLimitError(FetchError):
    """Provider answered 429."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        source_name: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, source_name=source_name, status_code=429, **kwargs)
        self.retry_after_seconds = retry_after_seconds


class NormalizationError(ProviderUnavailableError):
    """Provider payload did not have the expected shape."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        raw_data: Optional[Any] = None,
        field_name: Optional[str] = None,
    ) -> None:
        context: dict[str, Any] = {}
        if field_name:
            context["field_name"] = field_name
        if raw_data is not None:
            context["raw_data"] = str(raw_data)[:500]
        super().__init__(message, provider=source_name, context=context)
        self.field_name = field_name


class InvalidQuoteError(ProviderUnavailableError):
    """Provider returned no quote, a non-finite/non-positive price, or zero confidence."""
