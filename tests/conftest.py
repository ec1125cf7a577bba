import sys
import textwrap

import pytest

from reelfetch.config import Settings


@pytest.fixture
def make_tool(tmp_path):
    """Write a small python script standing in for yt-dlp/ffmpeg; returns its command."""
    def _make(name, body):
        path = tmp_path / f"{name}.py"
        path.write_text("import json, os, sys, time\n" + textwrap.dedent(body))
        return (sys.executable, str(path))
    return _make


@pytest.fixture
def settings():
    return Settings(ytdlp_cmd=("yt-dlp",), ffmpeg_cmd=("ffmpeg",), probe_timeout=5, stream_timeout=None)


def fmt(format_id, height=None, ext="mp4", vcodec="h264", acodec="aac", **extra):
    """yt-dlp style format dict."""
    d = {"format_id": format_id, "ext": ext, "vcodec": vcodec, "acodec": acodec, "protocol": "https"}
    if height is not None:
        d["height"] = height
    d.update(extra)
    return d


def info(formats, title="clip", **extra):
    d = {"title": title, "thumbnail": "https://cdn.example/t.jpg", "duration": 12.5,
         "extractor": "TikTok", "formats": formats}
    d.update(extra)
    return d
