"""Unit tests for the structured errors of the tracker."""

import pytest

from hubtracker.errors import (
    AUTH_ERROR,
    HTTP_ERROR,
    INVALID_ANNOTATION,
    NOT_FOUND,
    RATE_LIMIT,
    SERVER_ERROR,
    UNSUPPORTED_SCHEME,
    AppError,
    http_error_from_response,
    multi_error,
    unsupported_scheme_error,
)


class TestAppError:
    def test_str_without_context(self) -> None:
        assert str(AppError("CODE", "something failed")) == "CODE: something failed"

    def test_str_filters_credentials(self) -> None:
        err = AppError(
            "CODE",
            "boom",
            context={"url": "https://x", "Authorization": "token abc", "auth_pass": "p"},
        )
        s = str(err)
        assert "https://x" in s
        assert "abc" not in s
        assert "auth_pass" not in s

    def test_is_exception(self) -> None:
        with pytest.raises(AppError):
            raise AppError("CODE", "boom")


class TestHttpErrorFromResponse:
    @pytest.mark.parametrize(
        "status,code",
        [
            (429, RATE_LIMIT),
            (401, AUTH_ERROR),
            (403, AUTH_ERROR),
            (404, NOT_FOUND),
            (503, SERVER_ERROR),
            (302, HTTP_ERROR),
        ],
    )
    def test_codes(self, status: int, code: str) -> None:
        assert http_error_from_response(url="https://x", status=status).code == code

    def test_unexpected_status_message(self) -> None:
        err = http_error_from_response(url="https://x", status=418)
        assert err.message == "unexpected status code received: 418"

    def test_context(self) -> None:
        err = http_error_from_response(
            url="https://x",
            status=500,
            body="a" * 400,
            headers={"x-request-id": "req-1"},
        )
        assert err.context is not None
        assert err.context["url"] == "https://x"
        assert err.context["request_id"] == "req-1"
        assert err.context["body"].endswith("...")
        assert len(err.context["body"]) == 303


class TestMultiError:
    def test_no_errors(self) -> None:
        assert multi_error(INVALID_ANNOTATION, []) is None

    def test_single_error(self) -> None:
        err = multi_error(INVALID_ANNOTATION, ["first"])
        assert err is not None
        assert err.code == INVALID_ANNOTATION
        assert err.message == "first"

    def test_several_errors(self) -> None:
        err = multi_error(INVALID_ANNOTATION, ["first", "second"])
        assert err is not None
        assert err.message == "2 errors occurred:\n\t* first\n\t* second"
        assert err.context == {"errors": ["first", "second"]}


def test_unsupported_scheme_error() -> None:
    err = unsupported_scheme_error("ftp://repo")
    assert err.code == UNSUPPORTED_SCHEME
    assert err.message == "scheme not supported"
