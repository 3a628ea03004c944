"""
Error taxonomy for the decomposition pipeline.

Every class here is terminal for one ``analyze`` call except
``TransientRateLimit``, which the retry policy may absorb.
"""

from __future__ import annotations

QUOTA_MARKERS = ("quota", "billing", "insufficient_quota")


def is_quota_message(text: str) -> bool:
    """True when an error text signals upstream quota or billing exhaustion"""
    lowered = (text or "").lower()
    return any(marker in lowered for marker in QUOTA_MARKERS)


class AnalysisError(Exception):
    """Base class for decomposition failures"""


class SchemaError(AnalysisError):
    """Decoded payload has no ``steps`` list"""


class DecodeError(AnalysisError):
    """Response body could not be turned into a decomposition result"""


class ProxyHTTPError(AnalysisError):
    """Non-2xx answer from the completion proxy"""

    def __init__(self, status: int, details: str, retry_after: float | None = None):
        super().__init__(details)
        self.status = status
        self.details = details
        self.retry_after = retry_after


class TransientRateLimit(ProxyHTTPError):
    """429 caused by request-rate limiting; safe to retry"""


class QuotaExceeded(ProxyHTTPError):
    """Upstream account ran out of quota or credit; never retried"""


class AnalysisTimeout(ProxyHTTPError):
    """The proxy gave up waiting for the language model"""


def classify_http_error(
    status: int, details: str, retry_after: float | None = None
) -> ProxyHTTPError:
    """Map a proxy status and error text onto the matching error class"""
    if status == 429:
        if is_quota_message(details):
            return QuotaExceeded(status, details, retry_after)
        return TransientRateLimit(status, details, retry_after)
    if status == 504:
        return AnalysisTimeout(status, details, retry_after)
    return ProxyHTTPError(status, details, retry_after)
