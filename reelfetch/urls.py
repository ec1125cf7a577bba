"""Canonical URLs per source platform.

Everything here is a pure string transform; nothing touches the network.
"""

import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

from .errors import NormalizationFailure

TIKTOK, YOUTUBE, FACEBOOK, INSTAGRAM, OTHER = "tiktok", "youtube", "facebook", "instagram", "other"
PLATFORMS = (TIKTOK, YOUTUBE, FACEBOOK, INSTAGRAM, OTHER)

TIKTOK_HOST = re.compile(r"(^|\.)tiktok\.com$", re.I)
YOUTU_BE_HOST = re.compile(r"^(www\.)?youtu\.be$", re.I)
YOUTUBE_HOST = re.compile(r"(^|\.)youtube(-nocookie)?\.com$", re.I)
FB_WATCH_HOST = re.compile(r"(^|\.)fb\.watch$", re.I)
FACEBOOK_HOST = re.compile(r"(^|\.)(facebook\.com|fb\.com)$", re.I)
INSTAGRAM_HOST = re.compile(r"(^|\.)instagram\.com$", re.I)

FACEBOOK_CANONICAL_HOST = "www.facebook.com"
# permalink / comment addressing survives normalization, in this order
FACEBOOK_KEEP_PARAMS = ("comment_id", "story_fbid", "id", "v")


@dataclass(frozen=True)
class MediaQuery:
    url: str
    platform: str


def _split(s):
    try:
        parts = urlsplit(s)
        host = parts.hostname
    except ValueError as e:
        raise NormalizationFailure(str(e)) from e
    if parts.scheme.lower() not in ("http", "https") or not host:
        raise NormalizationFailure(f"not an http(s) URL: {s!r}")
    return parts, host


def detect_platform(url: str) -> str:
    try:
        _, host = _split((url or "").strip())
    except NormalizationFailure:
        return OTHER
    if TIKTOK_HOST.search(host): return TIKTOK
    if YOUTU_BE_HOST.search(host) or YOUTUBE_HOST.search(host): return YOUTUBE
    if FACEBOOK_HOST.search(host) or FB_WATCH_HOST.search(host): return FACEBOOK
    if INSTAGRAM_HOST.search(host): return INSTAGRAM
    return OTHER


def youtube_watch_url(video_id):
    return "https://www.youtube.com/watch?" + urlencode({"v": video_id})


def _facebook(parts, host):
    params = dict(parse_qsl(parts.query)[::-1])  # first occurrence wins
    kept = [(k, params[k]) for k in FACEBOOK_KEEP_PARAMS if params.get(k)]
    netloc = host if FB_WATCH_HOST.search(host) else FACEBOOK_CANONICAL_HOST
    return urlunsplit(("https", netloc, parts.path, urlencode(kept), ""))


def _canonicalize(s):
    parts, host = _split(s)
    scheme, netloc = parts.scheme.lower(), parts.netloc.lower()
    stripped = lambda path: urlunsplit((scheme, netloc, path, "", ""))

    if TIKTOK_HOST.search(host):
        return stripped(parts.path.replace("/_video/", "/video/"))

    if YOUTU_BE_HOST.search(host):
        vid = unquote(parts.path.rstrip("/").rsplit("/", 1)[-1])
        return youtube_watch_url(vid) if vid else stripped(parts.path)

    if YOUTUBE_HOST.search(host):
        vid = dict(parse_qsl(parts.query)[::-1]).get("v")
        return youtube_watch_url(vid) if vid else stripped(parts.path)

    if FACEBOOK_HOST.search(host) or FB_WATCH_HOST.search(host):
        return _facebook(parts, host)

    # instagram and everything else
    return stripped(parts.path)


def normalize(raw) -> str:
    """Best-effort canonical form of ``raw``; unparseable input comes back trimmed."""
    s = str(raw if raw is not None else "").strip()
    try:
        return _canonicalize(s)
    except NormalizationFailure:
        return s


def make_query(raw) -> MediaQuery:
    url = normalize(raw)
    return MediaQuery(url=url, platform=detect_platform(url))


def is_http_url(url) -> bool:
    try:
        _split(url or "")
    except NormalizationFailure:
        return False
    return True
