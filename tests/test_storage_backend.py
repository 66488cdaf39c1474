from __future__ import annotations

import io

import boto3
import pytest
from botocore.stub import ANY, Stubber

from app.core.config import get_settings
from app.core.storage import (
    LocalStorage,
    S3Storage,
    StorageError,
    get_thumbnail_storage,
    get_video_storage,
)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


def test_local_round_trip(tmp_path):
    storage = LocalStorage(tmp_path / "assets", base_url="http://localhost:8091/assets/")
    uri = storage.put("landscape/abc.mp4", io.BytesIO(b"movie"), content_type="video/mp4")

    assert uri.startswith("file://")
    assert storage.exists("landscape/abc.mp4")
    assert storage.stat("landscape/abc.mp4").size_bytes == 5
    assert storage.read_bytes("landscape/abc.mp4") == b"movie"
    assert storage.public_url("landscape/abc.mp4") == "http://localhost:8091/assets/landscape/abc.mp4"
    assert not list((tmp_path / "assets").rglob("*.part"))

    storage.delete("landscape/abc.mp4")
    assert not storage.exists("landscape/abc.mp4")


@pytest.mark.parametrize("key", ["../escape.png", "/etc/passwd", "a/../../b.png", ""])
def test_local_rejects_keys_outside_root(tmp_path, key):
    storage = LocalStorage(tmp_path / "assets", base_url="http://localhost/assets")
    with pytest.raises(ValueError):
        storage.put(key, io.BytesIO(b"x"), content_type="image/png")


def test_s3_put_sends_content_type(s3_client):
    storage = S3Storage(s3_client, "tubely-videos", distribution_url="https://d111.cloudfront.net/")
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "put_object",
            {"ETag": '"etag"'},
            {"Bucket": "tubely-videos", "Key": "portrait/abc.mp4", "Body": ANY, "ContentType": "video/mp4"},
        )
        uri = storage.put("portrait/abc.mp4", io.BytesIO(b"movie"), content_type="video/mp4")
        stubber.assert_no_pending_responses()

    assert uri == "s3://tubely-videos/portrait/abc.mp4"
    assert storage.public_url("portrait/abc.mp4") == "https://d111.cloudfront.net/portrait/abc.mp4"


def test_s3_put_error_is_storage_error(s3_client):
    storage = S3Storage(s3_client, "tubely-videos")
    with Stubber(s3_client) as stubber:
        stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(StorageError):
            storage.put("landscape/abc.mp4", io.BytesIO(b"movie"), content_type="video/mp4")


def test_s3_exists_maps_missing_object(s3_client):
    storage = S3Storage(s3_client, "tubely-videos")
    with Stubber(s3_client) as stubber:
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
        stubber.add_response(
            "head_object",
            {"ContentLength": 5, "ContentType": "video/mp4", "ETag": '"etag"'},
            {"Bucket": "tubely-videos", "Key": "other/abc.mp4"},
        )
        assert storage.exists("landscape/abc.mp4") is False
        assert storage.stat("other/abc.mp4").size_bytes == 5


def test_s3_public_url_without_distribution(s3_client):
    storage = S3Storage(s3_client, "tubely-videos", region="eu-west-1")
    assert storage.public_url("other/abc.mp4") == "https://tubely-videos.s3.eu-west-1.amazonaws.com/other/abc.mp4"


def test_default_video_backend_is_local():
    settings = get_settings()
    storage = get_video_storage(settings)
    assert isinstance(storage, LocalStorage)
    assert storage.public_url("landscape/abc.mp4") == "http://testserver/assets/landscape/abc.mp4"


def test_thumbnails_always_use_local_assets(monkeypatch):
    monkeypatch.setenv("TUBELY_VIDEO_STORAGE_BACKEND", "s3")
    monkeypatch.setenv("TUBELY_S3_BUCKET", "tubely-videos")
    get_settings.cache_clear()
    settings = get_settings()
    assert isinstance(get_thumbnail_storage(settings), LocalStorage)


def test_s3_backend_selected(monkeypatch):
    monkeypatch.setenv("TUBELY_VIDEO_STORAGE_BACKEND", "s3")
    monkeypatch.setenv("TUBELY_S3_BUCKET", "tubely-videos")
    monkeypatch.setenv("TUBELY_S3_CF_DISTRIBUTION", "https://d111.cloudfront.net")
    monkeypatch.setenv("TUBELY_S3_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("TUBELY_S3_SECRET_ACCESS_KEY", "testing")
    get_settings.cache_clear()
    storage = get_video_storage(get_settings())
    assert isinstance(storage, S3Storage)
    assert storage.bucket == "tubely-videos"
    assert storage.public_url("landscape/abc.mp4") == "https://d111.cloudfront.net/landscape/abc.mp4"


def test_s3_backend_requires_bucket(monkeypatch):
    monkeypatch.setenv("TUBELY_VIDEO_STORAGE_BACKEND", "s3")
    monkeypatch.delenv("TUBELY_S3_BUCKET", raising=False)
    get_settings.cache_clear()
    with pytest.raises(ValueError):
        get_video_storage(get_settings())
