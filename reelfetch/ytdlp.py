"""Command lines for the yt-dlp and ffmpeg binaries."""

from urllib.parse import urlsplit

from .urls import FACEBOOK, INSTAGRAM, TIKTOK, YOUTUBE

REFERERS = {
    TIKTOK: "https://www.tiktok.com/",
    YOUTUBE: "https://www.youtube.com/",
    FACEBOOK: "https://www.facebook.com/",
    INSTAGRAM: "https://www.instagram.com/",
}

# best progressive stream with both tracks, never a segmented transport
FALLBACK_VIDEO_FORMAT = (
    "b[ext=mp4][vcodec!=none][acodec!=none][protocol!*=m3u8][protocol!*=dash]"
    "/b[vcodec!=none][acodec!=none][protocol!*=m3u8][protocol!*=dash]"
)
AUDIO_FORMAT = "bestaudio/best"
MP3_BITRATE = "320k"


def referer_for(platform, url):
    if platform in REFERERS:
        return REFERERS[platform]
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}/" if parts.netloc else ""


def common_args(settings, platform, url):
    args = [
        "--no-color",
        "--no-warnings",
        "--no-progress",
        "--no-playlist",
        "--force-ipv4",
        "--user-agent", settings.user_agent,
    ]
    referer = referer_for(platform, url)
    if referer:
        args += ["--referer", referer]
    return args


def metadata_cmd(settings, platform, url, profile=()):
    return [*settings.ytdlp_cmd, *common_args(settings, platform, url), *profile, "-J", "--", url]


def stream_cmd(settings, platform, url, fmt):
    return [*settings.ytdlp_cmd, *common_args(settings, platform, url),
            "--quiet", "-f", fmt, "-o", "-", "--", url]


def mp3_cmd(settings):
    return [*settings.ffmpeg_cmd, "-hide_banner", "-loglevel", "error",
            "-i", "pipe:0", "-vn", "-c:a", "libmp3lame", "-b:a", MP3_BITRATE,
            "-f", "mp3", "pipe:1"]
