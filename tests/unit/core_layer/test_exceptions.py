"""
Unit Tests for Exception Hierarchy

Tests the exception hierarchy, serialization and helper methods.
"""

import pytest

from search_dispatch.core.exceptions import (
    BackendError,
    BackendHTTPError,
    BackendTimeoutError,
    ConfigurationError,
    DispatchBaseError,
    InvalidQueryError,
    NetworkError,
    NoBackendsAvailableError,
    QueueError,
    QueueFullError,
    QueueTimeoutError,
    RateLimitedError,
    ValidationError,
)


@pytest.mark.unit
class TestHierarchy:
    @pytest.mark.parametrize(
        "error_class,parent",
        [
            (NetworkError, BackendError),
            (BackendTimeoutError, BackendError),
            (RateLimitedError, BackendError),
            (QueueFullError, QueueError),
            (QueueTimeoutError, QueueError),
            (InvalidQueryError, ValidationError),
            (NoBackendsAvailableError, DispatchBaseError),
            (ConfigurationError, DispatchBaseError),
            (BackendError, DispatchBaseError),
        ],
    )
    def test_inheritance(self, error_class, parent):
        assert issubclass(error_class, parent)


@pytest.mark.unit
class TestSerialization:
    def test_to_dict(self):
        error = QueueFullError("full", request_id="s-1:wiki", details={"queue_depth": 100})
        assert error.to_dict() == {
            "error_type": "QueueFullError",
            "message": "full",
            "request_id": "s-1:wiki",
            "details": {"queue_depth": 100},
        }

    def test_backend_id_lands_in_details(self):
        error = NetworkError("reset", backend_id="arxiv")
        assert error.backend_id == "arxiv"
        assert error.details["backend_id"] == "arxiv"

    def test_http_error_status_code(self):
        error = BackendHTTPError("bad gateway", status_code=502, backend_id="wiki")
        assert error.status_code == 502
        assert error.details == {"backend_id": "wiki", "status_code": 502}

    def test_rate_limited_retry_after(self):
        error = RateLimitedError("slow down", backend_id="gh", retry_after=12.0)
        assert error.status_code == 429
        assert error.details["retry_after"] == 12.0

    def test_details_are_copied(self):
        details = {"a": 1}
        error = DispatchBaseError("x", details=details)
        error.with_context(b=2)
        assert details == {"a": 1}


@pytest.mark.unit
class TestHelpers:
    def test_with_suggestion_chains(self):
        error = NoBackendsAvailableError("none").with_suggestion("check status")
        assert isinstance(error, NoBackendsAvailableError)
        assert error.details["suggestion"] == "check status"

    def test_from_exception(self):
        original = ConnectionRefusedError("refused")
        error = NetworkError.from_exception(original, message="cannot reach", attempt=2)
        assert error.message == "cannot reach"
        assert error.details["original_error"] == "ConnectionRefusedError"
        assert error.details["attempt"] == 2

    def test_repr(self):
        error = QueueTimeoutError("waited", request_id="r1")
        assert repr(error) == "QueueTimeoutError(message='waited', request_id='r1')"
