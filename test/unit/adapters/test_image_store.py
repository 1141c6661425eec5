import hashlib
from test.helpers.builders import make_response
from unittest.mock import MagicMock

import pytest

from hubtracker.adapters.image_store import ImageStore
from hubtracker.errors import NOT_FOUND, SCHEMA_ERROR, AppError

LOGO_URL = "https://repo.example.com/logo.png"


def test_save_image_is_content_addressed() -> None:
    store = ImageStore(MagicMock())
    id1 = store.save_image(b"png")
    id2 = store.save_image(b"png")
    assert id1 == id2 == hashlib.sha256(b"png").hexdigest()
    assert store.get_image(id1) == b"png"
    assert store.get_image("missing") is None


def test_download_and_save_image() -> None:
    hc = MagicMock()
    hc.get_ok.return_value = make_response(
        200, content=b"png", headers={"Content-Type": "image/png"}
    )
    store = ImageStore(hc)

    image_id = store.download_and_save_image(LOGO_URL)

    assert store.get_image(image_id) == b"png"
    hc.get_ok.assert_called_once_with(LOGO_URL)


def test_download_not_an_image() -> None:
    hc = MagicMock()
    hc.get_ok.return_value = make_response(
        200, text="<html>", headers={"Content-Type": "text/html"}
    )

    with pytest.raises(AppError) as exc_info:
        ImageStore(hc).download_and_save_image(LOGO_URL)

    assert exc_info.value.code == SCHEMA_ERROR


def test_download_empty_image() -> None:
    hc = MagicMock()
    hc.get_ok.return_value = make_response(200, headers={"Content-Type": "image/png"})

    with pytest.raises(AppError) as exc_info:
        ImageStore(hc).download_and_save_image(LOGO_URL)

    assert exc_info.value.message == "empty image"


def test_download_error_propagated() -> None:
    hc = MagicMock()
    hc.get_ok.side_effect = AppError(NOT_FOUND, "resource not found (404)")

    with pytest.raises(AppError) as exc_info:
        ImageStore(hc).download_and_save_image(LOGO_URL)

    assert exc_info.value.code == NOT_FOUND
