"""Turning yt-dlp's raw ``formats`` list into a short, playable choice list."""

import re
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional

TIERS = ("480p", "720p", "1080p")
SHORTLIST_SIZE = 3
DIRECT_EXT = "mp4"
AUTO = "auto"

SEGMENTED_PROTOCOLS = ("m3u8", "dash", "f4m", "ism")
RESOLUTION_RE = re.compile(r"(\d+)p", re.I)


@dataclass(frozen=True)
class MediaMetadata:
    title: str = ""
    thumbnail: Optional[str] = None
    duration: Optional[float] = None
    extractor: str = ""


@dataclass(frozen=True)
class EncodingDescriptor:
    format_id: str
    ext: str = ""
    vcodec: str = "none"
    acodec: str = "none"
    filesize: Optional[int] = None
    resolution: str = AUTO
    protocol: str = ""
    note: str = ""

    @property
    def height(self) -> int:
        m = RESOLUTION_RE.match(self.resolution)
        return int(m.group(1)) if m else 0

    def to_dict(self):
        d = asdict(self)
        d["id"] = d.pop("format_id")
        return d


# ---------- parsing ----------
def resolution_label(fmt) -> str:
    h = fmt.get("height")
    if isinstance(h, (int, float)) and h > 0:
        return f"{int(h)}p"
    m = RESOLUTION_RE.search(fmt.get("format_note") or "")
    return f"{int(m.group(1))}p" if m else AUTO


def _size(fmt):
    size = fmt.get("filesize") or fmt.get("filesize_approx")
    return int(size) if isinstance(size, (int, float)) and size > 0 else None


def parse_encoding(fmt) -> Optional[EncodingDescriptor]:
    if not isinstance(fmt, dict) or not fmt.get("format_id"):
        return None
    return EncodingDescriptor(
        format_id=str(fmt["format_id"]),
        ext=(fmt.get("ext") or "").lower(),
        vcodec=fmt.get("vcodec") or "none",
        acodec=fmt.get("acodec") or "none",
        filesize=_size(fmt),
        resolution=resolution_label(fmt),
        protocol=(fmt.get("protocol") or "").lower(),
        note=fmt.get("format_note") or "",
    )


def parse_encodings(formats) -> List[EncodingDescriptor]:
    parsed = (parse_encoding(f) for f in (formats or []))
    return [e for e in parsed if e is not None]


def parse_metadata(info) -> MediaMetadata:
    duration = info.get("duration")
    if not isinstance(duration, (int, float)) or duration < 0:
        duration = None
    return MediaMetadata(
        title=info.get("title") or "",
        thumbnail=info.get("thumbnail") or None,
        duration=duration,
        extractor=info.get("extractor") or info.get("extractor_key") or "",
    )


# ---------- filtering ----------
def is_progressive(e: EncodingDescriptor) -> bool:
    return e.vcodec not in ("", "none") and e.acodec not in ("", "none")


def is_segmented(e: EncodingDescriptor) -> bool:
    return e.protocol == "mhtml" or any(p in e.protocol for p in SEGMENTED_PROTOCOLS)


def is_watermarked(e: EncodingDescriptor) -> bool:
    return "watermark" in e.note.lower()


def raw_filter(encodings: Iterable[EncodingDescriptor]) -> List[EncodingDescriptor]:
    """Progressive, single-stream and unwatermarked encodings, in input order."""
    return [e for e in encodings
            if is_progressive(e) and not is_segmented(e) and not is_watermarked(e)]


def shortlist(encodings: Iterable[EncodingDescriptor]) -> List[EncodingDescriptor]:
    """Pick at most three downloadable encodings.

    Canonical tiers (480p/720p/1080p) win outright, one per tier, first seen.
    Without any tier match the three highest labelled resolutions are used,
    and failing that the first three candidates whatever their label.
    """
    candidates = [e for e in raw_filter(encodings) if e.ext == DIRECT_EXT]

    by_tier = {}
    for e in candidates:
        if e.resolution in TIERS and e.resolution not in by_tier:
            by_tier[e.resolution] = e
    if by_tier:
        return list(by_tier.values())[:SHORTLIST_SIZE]

    labelled = [e for e in candidates if e.resolution != AUTO]
    if labelled:
        return sorted(labelled, key=lambda e: e.height, reverse=True)[:SHORTLIST_SIZE]

    return candidates[:SHORTLIST_SIZE]


def default_selection(short: List[EncodingDescriptor]) -> Optional[EncodingDescriptor]:
    best = None
    for e in short:
        if best is None or e.height > best.height:
            best = e
    return best
