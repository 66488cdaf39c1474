from __future__ import annotations

import base64
import re

import pytest

from app.core.errors import UnsupportedMediaType
from app.ingest.keys import StorageKey, derive_storage_key, extension_for, generate_identifier

BASE64URL = re.compile(r"^[A-Za-z0-9_-]+$")


def test_identifier_is_unpadded_base64url_of_32_bytes():
    identifier = generate_identifier()
    assert BASE64URL.match(identifier)
    assert "=" not in identifier
    assert len(identifier) == 43
    assert len(base64.urlsafe_b64decode(identifier + "=")) == 32


def test_identifiers_do_not_repeat():
    seen = {generate_identifier() for _ in range(10_000)}
    assert len(seen) == 10_000


def test_identifier_refuses_short_entropy():
    with pytest.raises(ValueError):
        generate_identifier(16)


@pytest.mark.parametrize(
    "content_type, expected",
    [
        ("video/mp4", "mp4"),
        ("image/png", "png"),
        ("image/jpeg", "jpeg"),
        ("IMAGE/PNG; charset=binary", "png"),
    ],
)
def test_extension_for(content_type, expected):
    assert extension_for(content_type) == expected


def test_extension_for_rejects_garbage():
    with pytest.raises(UnsupportedMediaType):
        extension_for("not a media type")


def test_video_key_is_bucketed_by_orientation():
    key = derive_storage_key("video/mp4", "abc", "portrait")
    assert key == StorageKey(prefix="portrait", identifier="abc", extension="mp4")
    assert key.path == "portrait/abc.mp4"
    assert str(key) == "portrait/abc.mp4"


def test_thumbnail_key_is_flat():
    key = derive_storage_key("image/png", "abc")
    assert key.path == "abc.png"
