"""
Tests for error classification.
"""

import errno
import socket
import ssl

import pytest
import requests
from unittest.mock import Mock

from adaptive_retry.classifier import (
    DefaultClassifier, FunctionClassifier, StatusCodeClassifier,
    as_classifier, classify_error, extract_error_code, extract_status_code,
    get_category_description, is_retryable
)
from adaptive_retry.errors import OperationTimeoutError
from adaptive_retry.types import ErrorCategory


class ApiError(Exception):
    def __init__(self, message="api failure", status=None, code=None):
        super().__init__(message)
        if status is not None:
            self.status = status
        if code is not None:
            self.code = code


class NetworkGlitch(Exception):
    pass


class RequestAborted(Exception):
    pass


@pytest.mark.unit
class TestStatusCodes:
    """Test HTTP status classification."""

    @pytest.mark.parametrize("status,expected", [
        (400, ErrorCategory.PERMANENT),
        (404, ErrorCategory.PERMANENT),
        (418, ErrorCategory.PERMANENT),
        (429, ErrorCategory.OVERLOAD),
        (500, ErrorCategory.TRANSIENT),
        (502, ErrorCategory.OVERLOAD),
        (503, ErrorCategory.OVERLOAD),
        (504, ErrorCategory.TIMEOUT),
        (599, ErrorCategory.TRANSIENT),
    ])
    def test_status_table(self, status, expected):
        assert classify_error(ApiError(status=status)) == expected
        assert classify_error(Exception("boom"), status) == expected

    def test_requests_http_error(self):
        response = requests.Response()
        response.status_code = 503
        error = requests.exceptions.HTTPError("server busy", response=response)

        assert extract_status_code(error) == 503
        assert classify_error(error) == ErrorCategory.OVERLOAD

    def test_response_status_attribute(self):
        error = ApiError()
        error.response = Mock(spec=["status"], status=429)

        assert extract_status_code(error) == 429

    def test_status_wins_over_message(self):
        assert classify_error(ApiError("timeout while reading", status=404)) == ErrorCategory.PERMANENT

    def test_status_overrides(self):
        classifier = DefaultClassifier({404: ErrorCategory.TRANSIENT})

        assert classifier.classify(ApiError(status=404)) == ErrorCategory.TRANSIENT
        assert classifier.classify(ApiError(status=410)) == ErrorCategory.PERMANENT


@pytest.mark.unit
class TestErrorCodes:
    """Test errno and code attribute classification."""

    @pytest.mark.parametrize("code,expected", [
        ("ETIMEDOUT", ErrorCategory.TIMEOUT),
        ("ECONNRESET", ErrorCategory.TRANSIENT),
        ("EPIPE", ErrorCategory.TRANSIENT),
        ("ENOTFOUND", ErrorCategory.PERMANENT),
        ("EAI_AGAIN", ErrorCategory.TRANSIENT),
    ])
    def test_code_attribute(self, code, expected):
        assert classify_error(ApiError("opaque", code=code)) == expected

    def test_errno(self):
        error = OSError(errno.ECONNREFUSED, "refused")

        assert extract_error_code(error) == "ECONNREFUSED"
        assert classify_error(error) == ErrorCategory.TRANSIENT

    def test_cause_chain(self):
        try:
            try:
                raise OSError(errno.ETIMEDOUT, "timed")
            except OSError as inner:
                raise ApiError("wrapped") from inner
        except ApiError as outer:
            error = outer

        assert extract_error_code(error) == "ETIMEDOUT"
        assert classify_error(error) == ErrorCategory.TIMEOUT

    def test_dns_failures(self):
        assert classify_error(socket.gaierror(socket.EAI_NONAME, "unknown host")) == ErrorCategory.PERMANENT
        assert classify_error(socket.gaierror(socket.EAI_AGAIN, "try again")) == ErrorCategory.TRANSIENT


@pytest.mark.unit
class TestTypesAndMessages:
    """Test exception type, message and name heuristics."""

    @pytest.mark.parametrize("error,expected", [
        (TimeoutError(), ErrorCategory.TIMEOUT),
        (OperationTimeoutError(100), ErrorCategory.TIMEOUT),
        (requests.exceptions.ReadTimeout(), ErrorCategory.TIMEOUT),
        (ConnectionError(), ErrorCategory.TRANSIENT),
        (requests.exceptions.ConnectionError(), ErrorCategory.TRANSIENT),
        (requests.exceptions.SSLError(), ErrorCategory.PERMANENT),
        (ssl.SSLError(), ErrorCategory.PERMANENT),
    ])
    def test_exception_types(self, error, expected):
        assert classify_error(error) == expected

    @pytest.mark.parametrize("message,expected", [
        ("Request timed out", ErrorCategory.TIMEOUT),
        ("Connection reset by peer", ErrorCategory.TRANSIENT),
        ("socket hang up", ErrorCategory.TRANSIENT),
        ("getaddrinfo failed for host", ErrorCategory.PERMANENT),
        ("Rate limit exceeded", ErrorCategory.OVERLOAD),
        ("Service Unavailable", ErrorCategory.OVERLOAD),
        ("certificate verify failed", ErrorCategory.PERMANENT),
        ("something odd happened", ErrorCategory.UNKNOWN),
    ])
    def test_message_patterns(self, message, expected):
        assert classify_error(Exception(message)) == expected

    def test_type_name_heuristics(self):
        assert classify_error(NetworkGlitch("odd")) == ErrorCategory.TRANSIENT
        assert classify_error(RequestAborted("odd")) == ErrorCategory.PERMANENT


@pytest.mark.unit
class TestClassifierVariants:
    """Test alternative classifiers and helpers."""

    def test_status_code_classifier(self):
        classifier = StatusCodeClassifier({503: ErrorCategory.TRANSIENT}, fallback=ErrorCategory.TIMEOUT)

        assert classifier.classify(ApiError(status=503)) == ErrorCategory.TRANSIENT
        assert classifier.classify(ApiError(status=404)) == ErrorCategory.PERMANENT
        assert classifier.classify(ConnectionError("reset")) == ErrorCategory.TIMEOUT

    def test_function_classifier(self):
        seen = []

        def classify(error, status_code):
            seen.append(status_code)
            return "OVERLOAD"

        classifier = as_classifier(classify)

        assert isinstance(classifier, FunctionClassifier)
        assert classifier(ApiError(), 429) == ErrorCategory.OVERLOAD
        assert seen == [429]

    def test_as_classifier_passthrough(self):
        classifier = DefaultClassifier()

        assert as_classifier(classifier) is classifier
        assert as_classifier(None) is None

    def test_helpers(self):
        assert is_retryable(ErrorCategory.TRANSIENT)
        assert not is_retryable(ErrorCategory.PERMANENT)
        assert "do not retry" in get_category_description(ErrorCategory.PERMANENT)
