from io import BytesIO
from pathlib import Path
from urllib.parse import urlparse

import pytest
from PIL import Image

from conftest import auth_headers
from mktops.services.storage import StorageError, extension_for, make_thumbnail


def _png(size=(800, 600)) -> bytes:
    output = BytesIO()
    Image.new("RGB", size, color=(188, 210, 0)).save(output, format="PNG")
    return output.getvalue()


def test_thumbnail_fits_avatar_box():
    thumb = Image.open(BytesIO(make_thumbnail(_png())))
    assert thumb.format == "PNG"
    assert max(thumb.size) == 256


def test_thumbnail_rejects_non_images():
    with pytest.raises(StorageError):
        make_thumbnail(b"not an image")


def test_extension_for():
    assert extension_for("image/jpeg") == "jpg"
    assert extension_for(None, "logo.SVG") == "svg"
    with pytest.raises(StorageError):
        extension_for("application/pdf", "manual.pdf")


def test_avatar_upload_stores_locally(client, db_session, seeded):
    designer = seeded["profiles"]["designer"]
    res = client.post(
        "/api/me/avatar",
        files={"file": ("foto.png", _png(), "image/png")},
        headers=auth_headers(designer),
    )
    assert res.status_code == 200
    url = res.json()["avatar_url"]
    assert url.startswith("file://")
    assert Path(urlparse(url).path).exists()
    db_session.refresh(designer)
    assert designer.avatar_url == url


def test_logo_upload_rejects_unknown_format(client, seeded):
    res = client.post(
        "/api/files/logo",
        files={"file": ("manual.pdf", b"%PDF-1.4", "application/pdf")},
        headers=auth_headers(seeded["profiles"]["admin"]),
    )
    assert res.status_code == 400
