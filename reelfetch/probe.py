"""Metadata probing with retries across URL variants and yt-dlp argument profiles."""

import json
import logging
import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from .errors import (MalformedOutput, NoUsableEncodings, ProbeFailure, SubprocessExitFailure,
                     SubprocessSpawnFailure, SubprocessTimeout, ToolError)
from .formats import EncodingDescriptor, MediaMetadata, parse_encodings, parse_metadata, raw_filter
from .urls import FACEBOOK, FB_WATCH_HOST, TIKTOK, MediaQuery
from .ytdlp import metadata_cmd

log = logging.getLogger(__name__)

# TikTok often serves watermarked or no direct encodings to one client identity
# and clean ones to another.
TIKTOK_PROFILES = (
    (),
    ("--extractor-args", "tiktok:api_hostname=api16-normal-c-useast1a.tiktokv.com"),
    ("--extractor-args", "tiktok:api_hostname=api22-normal-c-useast2a.tiktokv.com;app_name=trill"),
)
FACEBOOK_HOSTS = ("www.facebook.com", "web.facebook.com", "m.facebook.com")


@dataclass(frozen=True)
class Attempt:
    url: str
    profile: Tuple[str, ...] = ()
    platform: str = "other"


@dataclass(frozen=True)
class RetryPolicy:
    profiles: Tuple[Tuple[str, ...], ...] = ((),)
    hosts: Tuple[str, ...] = ()
    # keep going while the filtered encoding list is empty
    require_usable: bool = False

    def variants(self, url):
        parts = urlsplit(url)
        if not self.hosts or FB_WATCH_HOST.search(parts.hostname or ""):
            return [url]
        return [urlunsplit(parts._replace(netloc=h)) for h in self.hosts]


POLICIES = {
    TIKTOK: RetryPolicy(profiles=TIKTOK_PROFILES, require_usable=True),
    FACEBOOK: RetryPolicy(hosts=FACEBOOK_HOSTS, require_usable=True),
}
DEFAULT_POLICY = RetryPolicy()


@dataclass
class ProbeResult:
    query: MediaQuery
    metadata: MediaMetadata
    encodings: List[EncodingDescriptor] = field(default_factory=list)
    attempt: Optional[Attempt] = None


def run_json(cmd, timeout=None, tool="yt-dlp"):
    """Run ``cmd`` to completion and parse its stdout as one JSON object."""
    try:
        proc = subprocess.run(cmd, stdin=subprocess.DEVNULL, stdout=subprocess.PIPE,
                              stderr=subprocess.PIPE, timeout=timeout)
    except OSError as e:
        raise SubprocessSpawnFailure(tool, f"cannot start {cmd[0]!r}: {e}") from e
    except subprocess.TimeoutExpired as e:
        raise SubprocessTimeout(tool, timeout) from e

    stderr = proc.stderr.decode("utf-8", "replace")
    if proc.returncode != 0:
        raise SubprocessExitFailure(tool, proc.returncode, stderr)
    try:
        info = json.loads(proc.stdout.decode("utf-8", "replace").strip())
    except ValueError as e:
        raise MalformedOutput(tool, f"unparseable output: {e}") from e
    if not isinstance(info, dict):
        raise MalformedOutput(tool, f"expected a JSON object, got {type(info).__name__}")
    return info


class ProbeOrchestrator:
    def __init__(self, settings, executor: Optional[Callable[[Attempt], dict]] = None):
        self.settings = settings
        self.executor = executor or self.run_attempt

    def run_attempt(self, attempt: Attempt) -> dict:
        cmd = metadata_cmd(self.settings, attempt.platform, attempt.url, attempt.profile)
        return run_json(cmd, timeout=self.settings.probe_timeout)

    @staticmethod
    def policy_for(platform) -> RetryPolicy:
        return POLICIES.get(platform, DEFAULT_POLICY)

    def plan(self, query: MediaQuery) -> List[Attempt]:
        policy = self.policy_for(query.platform)
        return [Attempt(url=u, profile=p, platform=query.platform)
                for u in policy.variants(query.url)
                for p in policy.profiles]

    def probe(self, query: MediaQuery) -> ProbeResult:
        policy = self.policy_for(query.platform)
        attempts = self.plan(query)
        last_error = None

        for n, attempt in enumerate(attempts, 1):
            log.debug("probe %d/%d %s %s", n, len(attempts), attempt.url, " ".join(attempt.profile))
            try:
                info = self.executor(attempt)
            except ToolError as e:
                log.warning("probe attempt %d/%d failed for %s: %s", n, len(attempts), attempt.url, e)
                last_error = e
                continue

            encodings = parse_encodings(info.get("formats"))
            if raw_filter(encodings) or not policy.require_usable:
                return ProbeResult(query=query, metadata=parse_metadata(info),
                                   encodings=encodings, attempt=attempt)

            log.info("probe attempt %d/%d for %s returned no usable encodings", n, len(attempts), attempt.url)
            last_error = NoUsableEncodings(attempt.url)

        raise ProbeFailure(last_error, attempts=len(attempts))
