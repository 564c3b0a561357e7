"""
Archetype Backend - Error Taxonomy Unit Tests
===============================================

What we test:
    ✅ Every kind maps to its fixed HTTP status
    ✅ rate_limited cannot be built without retry_after
    ✅ classify() passes classified errors through and wraps the rest
    ✅ Helper constructors produce the expected messages and details
"""

import pytest

from archetype.exceptions import (
    ClassifiedError,
    ErrorKind,
    classify,
    conflict,
    field_error,
    not_found,
    rate_limited,
    unsupported_media_type,
)


class TestStatusMapping:
    @pytest.mark.parametrize(
        "kind,status",
        [
            (ErrorKind.VALIDATION, 400),
            (ErrorKind.UNAUTHORIZED, 401),
            (ErrorKind.FORBIDDEN, 403),
            (ErrorKind.NOT_FOUND, 404),
            (ErrorKind.CONFLICT, 409),
            (ErrorKind.UNSUPPORTED_MEDIA_TYPE, 415),
            (ErrorKind.INTERNAL, 500),
        ],
    )
    def test_kind_status(self, kind, status):
        assert ClassifiedError(kind).status_code == status

    def test_rate_limited_status_and_retry_after(self):
        error = rate_limited(12)
        assert error.status_code == 429
        assert error.retry_after == 12

    def test_rate_limited_requires_retry_after(self):
        with pytest.raises(ValueError):
            ClassifiedError(ErrorKind.RATE_LIMITED, "slow down")

    def test_kind_accepts_string_value(self):
        assert ClassifiedError("conflict").kind is ErrorKind.CONFLICT


class TestClassify:
    def test_classified_error_passes_through(self):
        error = conflict("taken")
        assert classify(error) is error

    def test_unknown_exception_becomes_internal(self):
        original = RuntimeError("db exploded")
        error = classify(original)
        assert error.kind is ErrorKind.INTERNAL
        assert error.status_code == 500
        assert error.cause is original
        assert error.message == "db exploded"

    def test_exception_without_message_uses_type_name(self):
        assert classify(KeyError()).message == "KeyError"


class TestConstructors:
    def test_not_found_with_id(self):
        assert not_found("User", 7).message == "User with ID '7' was not found"

    def test_not_found_without_id(self):
        assert not_found("User").message == "The requested User was not found"

    def test_field_error_details(self):
        error = field_error("email", "Invalid email format", value="x")
        assert error.kind is ErrorKind.VALIDATION
        assert error.details == [{"field": "email", "message": "Invalid email format", "value": "x"}]

    def test_unsupported_media_type_names_received_type(self):
        assert "text/plain" in unsupported_media_type("text/plain").message
        assert "'none'" in unsupported_media_type(None).message
