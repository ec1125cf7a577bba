"""Process-wide settings, read once at startup from the environment."""

import os
import shlex
import sys
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36"


def split_cmd(value: str) -> Tuple[str, ...]:
    return tuple(shlex.split(value, posix=(os.name != "nt")))


def _default_ytdlp(cwd):
    local = os.path.join(cwd, "bin", "yt-dlp")
    if os.path.isfile(local):
        return (local,)
    # the yt-dlp distribution installed alongside this package
    return (sys.executable, "-m", "yt_dlp")


def _default_ffmpeg(cwd):
    local = os.path.join(cwd, "bin", "ffmpeg")
    return (local,) if os.path.isfile(local) else ("ffmpeg",)


def _number(environ, key, default, cast=float):
    raw = (environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    ytdlp_cmd: Tuple[str, ...] = (sys.executable, "-m", "yt_dlp")
    ffmpeg_cmd: Tuple[str, ...] = ("ffmpeg",)
    host: str = "0.0.0.0"
    port: int = 3000
    probe_timeout: Optional[float] = 90.0
    stream_timeout: Optional[float] = 3600.0
    user_agent: str = UA

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, cwd: Optional[str] = None) -> "Settings":
        environ = os.environ if environ is None else environ
        cwd = cwd or os.getcwd()
        ytdlp = environ.get("YTDLP_BIN")
        ffmpeg = environ.get("FFMPEG_BIN")
        probe_timeout = _number(environ, "PROBE_TIMEOUT", 90.0)
        stream_timeout = _number(environ, "STREAM_TIMEOUT", 3600.0)
        return cls(
            ytdlp_cmd=split_cmd(ytdlp) if ytdlp else _default_ytdlp(cwd),
            ffmpeg_cmd=split_cmd(ffmpeg) if ffmpeg else _default_ffmpeg(cwd),
            host=environ.get("HOST") or "0.0.0.0",
            port=_number(environ, "PORT", 3000, cast=int),
            # 0 disables the limit
            probe_timeout=probe_timeout or None,
            stream_timeout=stream_timeout or None,
        )
