from __future__ import annotations

import json

import pytest

from app.core.errors import ProbeFailed
from app.ingest.ffprobe_parser import ContainerProfile, classify_orientation, parse_ffprobe_json, parse_ffprobe_output


@pytest.mark.parametrize(
    "width, height, expected",
    [
        (1920, 1080, "landscape"),
        (1280, 720, "landscape"),
        (128, 72, "landscape"),
        (1080, 1920, "portrait"),
        (720, 1280, "portrait"),
        (1000, 1000, "other"),
        (1440, 1080, "other"),
        (1921, 1080, "other"),
        (1918, 1080, "other"),
    ],
)
def test_classify_orientation(width, height, expected):
    assert classify_orientation(width, height) == expected


def test_profile_carries_orientation():
    profile = ContainerProfile(width=1080, height=1920)
    assert profile.orientation == "portrait"


def test_first_video_stream_wins():
    raw = {
        "streams": [
            {"codec_type": "audio", "codec_name": "aac"},
            {"codec_type": "video", "width": 1920, "height": 1080},
            {"codec_type": "video", "width": 1080, "height": 1920},
        ]
    }
    profile = parse_ffprobe_json(raw)
    assert (profile.width, profile.height, profile.orientation) == (1920, 1080, "landscape")


def test_untagged_stream_with_geometry_is_accepted():
    profile = parse_ffprobe_json({"streams": [{"width": "720", "height": "1280"}]})
    assert profile.orientation == "portrait"


def test_parse_output_decodes_json_text():
    stdout = json.dumps({"streams": [{"codec_type": "video", "width": 640, "height": 360}]})
    assert parse_ffprobe_output(stdout).orientation == "landscape"


@pytest.mark.parametrize(
    "raw",
    [
        [],
        {},
        {"streams": "nope"},
        {"streams": []},
        {"streams": [{"codec_type": "audio"}]},
        {"streams": [{"codec_type": "video", "width": 0, "height": 1080}]},
        {"streams": [{"codec_type": "video", "width": "N/A", "height": 1080}]},
        {"streams": [{"codec_type": "video", "width": 1920}]},
    ],
)
def test_unusable_documents_fail(raw):
    with pytest.raises(ProbeFailed):
        parse_ffprobe_json(raw)


def test_invalid_json_fails():
    with pytest.raises(ProbeFailed):
        parse_ffprobe_output("{not json")
