import pytest

from src.messaging.domain.exceptions import PermanentProviderError, ProviderError, TransientProviderError
from src.messaging.domain.services import WhatsAppErrorClassifier

classifier = WhatsAppErrorClassifier()


@pytest.mark.parametrize("code", ["4", "80007", "130429", "131000", "131016", "131048", "131056", "133004"])
def test_throttling_and_service_codes_are_retryable(code):
    assert classifier.is_retryable(ProviderError(code, "busy", 400))


@pytest.mark.parametrize("code,status", [("131047", 400), ("131026", 400), ("132000", 400), ("190", 401)])
def test_permanent_codes(code, status):
    assert not classifier.is_retryable(ProviderError(code, "no", status))


@pytest.mark.parametrize("status", [429, 500, 502])
def test_unknown_code_falls_back_to_http_status(status):
    assert classifier.is_retryable(ProviderError("999999", "?", status))


def test_explicit_verdicts_win():
    assert classifier.is_retryable(TransientProviderError("131026", "client said transient"))
    assert not classifier.is_retryable(PermanentProviderError("131000", "client said permanent", 503))


def test_custom_code_set():
    strict = WhatsAppErrorClassifier(retryable_codes=frozenset({"131026"}))
    assert strict.is_retryable(ProviderError("131026", "x", 400))
    assert not strict.is_retryable(ProviderError("131000", "x", 400))
