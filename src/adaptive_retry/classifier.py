"""
Error classification for retry decisions.

Maps an arbitrary exception (and optional HTTP status code) to one of the
five error categories. The default classifier checks, in order: status
code, errno/code attribute, known exception types, message patterns and
finally the exception type name.
"""

import asyncio
import errno
import re
import socket
import ssl
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

import requests

from .types import ErrorCategory


STATUS_CATEGORIES: Dict[int, ErrorCategory] = {
    400: ErrorCategory.PERMANENT,
    401: ErrorCategory.PERMANENT,
    403: ErrorCategory.PERMANENT,
    404: ErrorCategory.PERMANENT,
    405: ErrorCategory.PERMANENT,
    410: ErrorCategory.PERMANENT,
    422: ErrorCategory.PERMANENT,
    429: ErrorCategory.OVERLOAD,
    500: ErrorCategory.TRANSIENT,
    502: ErrorCategory.OVERLOAD,
    503: ErrorCategory.OVERLOAD,
    504: ErrorCategory.TIMEOUT,
}

ERROR_CODES: Dict[str, ErrorCategory] = {
    "ETIMEDOUT": ErrorCategory.TIMEOUT,
    "ESOCKETTIMEDOUT": ErrorCategory.TIMEOUT,
    "ECONNRESET": ErrorCategory.TRANSIENT,
    "ECONNREFUSED": ErrorCategory.TRANSIENT,
    "ECONNABORTED": ErrorCategory.TRANSIENT,
    "EPIPE": ErrorCategory.TRANSIENT,
    "ENETUNREACH": ErrorCategory.TRANSIENT,
    "EHOSTUNREACH": ErrorCategory.TRANSIENT,
    "ENOTFOUND": ErrorCategory.PERMANENT,
    "EAI_AGAIN": ErrorCategory.TRANSIENT,
}

MESSAGE_PATTERNS: List[Tuple[re.Pattern, ErrorCategory]] = [
    (re.compile(r"timeout|timedout|timed out|ETIMEDOUT", re.IGNORECASE), ErrorCategory.TIMEOUT),
    (re.compile(
        r"ECONNRESET|ECONNREFUSED|EPIPE|ENETUNREACH|EHOSTUNREACH|connection reset|"
        r"connection refused|connection aborted|broken pipe|socket hang up|network error",
        re.IGNORECASE), ErrorCategory.TRANSIENT),
    (re.compile(r"ENOTFOUND|getaddrinfo|name or service not known|nodename nor servname", re.IGNORECASE),
     ErrorCategory.PERMANENT),
    (re.compile(r"rate limit|too many requests|throttl", re.IGNORECASE), ErrorCategory.OVERLOAD),
    (re.compile(r"service unavailable|temporarily unavailable", re.IGNORECASE), ErrorCategory.OVERLOAD),
    (re.compile(r"certificate|SSL|TLS", re.IGNORECASE), ErrorCategory.PERMANENT),
]

CATEGORY_DESCRIPTIONS: Dict[ErrorCategory, str] = {
    ErrorCategory.TRANSIENT: "Temporary network issue - fast retry",
    ErrorCategory.OVERLOAD: "Service overloaded - back off significantly",
    ErrorCategory.TIMEOUT: "Request timed out - medium backoff",
    ErrorCategory.PERMANENT: "Permanent error - do not retry",
    ErrorCategory.UNKNOWN: "Unknown error - conservative retry",
}

_TIMEOUT_TYPES = (TimeoutError, asyncio.TimeoutError, requests.exceptions.Timeout, socket.timeout)


def extract_status_code(error: BaseException) -> Optional[int]:
    """
    Find an HTTP status code attached to an exception.

    Looks at ``status``, ``status_code`` and the ``response`` object
    (``status_code`` as in requests, ``status`` as in aiohttp).
    """
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    response = getattr(error, "response", None)
    if response is not None:
        for attr in ("status_code", "status"):
            value = getattr(response, attr, None)
            if isinstance(value, int) and not isinstance(value, bool):
                return value

    return None


def _code_of(error: BaseException) -> Optional[str]:
    if isinstance(error, socket.gaierror):
        return "EAI_AGAIN" if error.errno == socket.EAI_AGAIN else "ENOTFOUND"

    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code

    err_no = getattr(error, "errno", None)
    if isinstance(err_no, int):
        return errno.errorcode.get(err_no)

    return None


def extract_error_code(error: BaseException) -> Optional[str]:
    """
    Find a symbolic error code (``ECONNRESET`` style) for an exception.

    Checks the exception itself, then its explicit cause.
    """
    code = _code_of(error)
    if code is None and error.__cause__ is not None:
        code = _code_of(error.__cause__)
    return code


def is_retryable(category: ErrorCategory) -> bool:
    """Whether a category is ever worth retrying."""
    return category != ErrorCategory.PERMANENT


def get_category_description(category: ErrorCategory) -> str:
    """Human readable description of a category."""
    return CATEGORY_DESCRIPTIONS[category]


class ErrorClassifier(ABC):
    """
    Abstract base class for error classifiers.

    A classifier maps a failure to an ErrorCategory. Implementations must
    be pure and cheap; they run once per failed attempt.
    """

    @abstractmethod
    def classify(self, error: BaseException, status_code: Optional[int] = None) -> ErrorCategory:
        """
        Classify a failure.

        Args:
            error: Exception raised by the operation
            status_code: HTTP status code if already known

        Returns:
            Error category
        """
        pass

    def __call__(self, error: BaseException, status_code: Optional[int] = None) -> ErrorCategory:
        return self.classify(error, status_code)


class DefaultClassifier(ErrorClassifier):
    """Status, code, type, message and name heuristics."""

    def __init__(self, status_categories: Optional[Dict[int, ErrorCategory]] = None):
        """
        Initialize default classifier.

        Args:
            status_categories: Extra or replacement entries for the status table
        """
        self.status_categories = dict(STATUS_CATEGORIES)
        if status_categories:
            self.status_categories.update(status_categories)

    def classify(self, error: BaseException, status_code: Optional[int] = None) -> ErrorCategory:
        status = status_code if status_code is not None else extract_status_code(error)
        if status is not None:
            category = self._classify_status(status)
            if category is not None:
                return category

        code = extract_error_code(error)
        if code and code in ERROR_CODES:
            return ERROR_CODES[code]

        category = self._classify_type(error)
        if category is not None:
            return category

        message = str(error)
        for pattern, category in MESSAGE_PATTERNS:
            if pattern.search(message):
                return category

        name = type(error).__name__
        if "Timeout" in name:
            return ErrorCategory.TIMEOUT
        if "Network" in name or "Connection" in name:
            return ErrorCategory.TRANSIENT
        if "Abort" in name:
            return ErrorCategory.PERMANENT

        return ErrorCategory.UNKNOWN

    def _classify_status(self, status: int) -> Optional[ErrorCategory]:
        if status in self.status_categories:
            return self.status_categories[status]
        if 400 <= status < 500:
            return ErrorCategory.PERMANENT
        if status >= 500:
            return ErrorCategory.TRANSIENT
        return None

    def _classify_type(self, error: BaseException) -> Optional[ErrorCategory]:
        # SSLError subclasses ConnectionError in requests, and OSError in ssl
        if isinstance(error, (ssl.SSLError, requests.exceptions.SSLError)):
            return ErrorCategory.PERMANENT
        if isinstance(error, _TIMEOUT_TYPES):
            return ErrorCategory.TIMEOUT
        if isinstance(error, (ConnectionError, requests.exceptions.ConnectionError)):
            return ErrorCategory.TRANSIENT
        return None


class StatusCodeClassifier(ErrorClassifier):
    """
    Classify purely by HTTP status code.

    Failures without a status code fall back to ``fallback``.
    """

    def __init__(
        self,
        overrides: Optional[Dict[int, ErrorCategory]] = None,
        fallback: ErrorCategory = ErrorCategory.UNKNOWN
    ):
        self.table = dict(STATUS_CATEGORIES)
        if overrides:
            self.table.update(overrides)
        self.fallback = fallback

    def classify(self, error: BaseException, status_code: Optional[int] = None) -> ErrorCategory:
        status = status_code if status_code is not None else extract_status_code(error)
        if status is None:
            return self.fallback
        if status in self.table:
            return self.table[status]
        if 400 <= status < 500:
            return ErrorCategory.PERMANENT
        if status >= 500:
            return ErrorCategory.TRANSIENT
        return self.fallback


class FunctionClassifier(ErrorClassifier):
    """Adapter for a plain ``(error, status_code) -> category`` callable."""

    def __init__(self, func: Callable[[BaseException, Optional[int]], ErrorCategory]):
        self.func = func

    def classify(self, error: BaseException, status_code: Optional[int] = None) -> ErrorCategory:
        return ErrorCategory(self.func(error, status_code))


def as_classifier(
    classifier: Optional[Callable[[BaseException, Optional[int]], ErrorCategory]]
) -> Optional[ErrorClassifier]:
    """Wrap a bare callable into an ErrorClassifier; pass classifiers through."""
    if classifier is None or isinstance(classifier, ErrorClassifier):
        return classifier
    return FunctionClassifier(classifier)


def classify_error(error: BaseException, status_code: Optional[int] = None) -> ErrorCategory:
    """Classify with a DefaultClassifier."""
    return _DEFAULT.classify(error, status_code)


_DEFAULT = DefaultClassifier()
