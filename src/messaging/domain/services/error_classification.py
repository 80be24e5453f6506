"""Provider error classification."""

from src.messaging.domain.exceptions import PermanentProviderError, ProviderError, TransientProviderError

# Graph API codes worth retrying: throttling, temporary service errors
RETRYABLE_ERROR_CODES = frozenset({
    "4",       # application request limit
    "80007",   # WABA rate limit
    "130429",  # throughput limit
    "131000",  # generic internal error
    "131016",  # service unavailable
    "131048",  # spam rate limit
    "131056",  # pair rate limit
    "133004",  # server temporarily unavailable
})


class WhatsAppErrorClassifier:
    """
    Default classifier for WhatsApp Cloud API failures.

    Explicit Transient/Permanent errors keep their verdict. Otherwise known
    throttling codes and HTTP 429/5xx are retryable; everything else
    (131047 re-engagement, 131026 undeliverable, 132000 template params,
    190 expired token, ...) is permanent.
    """

    def __init__(self, retryable_codes: frozenset[str] = RETRYABLE_ERROR_CODES) -> None:
        self._retryable_codes = retryable_codes

    def is_retryable(self, error: ProviderError) -> bool:
        if isinstance(error, TransientProviderError):
            return True
        if isinstance(error, PermanentProviderError):
            return False
        if str(error.error_code) in self._retryable_codes:
            return True
        status = error.http_status
        return status is not None and (status == 429 or status >= 500)
