"""Streaming media straight from yt-dlp (and ffmpeg) to the HTTP response.

A :class:`Pipeline` chains processes stdout-to-stdin. Its byte iterator is
meant to be handed to a WSGI response as the body: when every stage exits
cleanly the iterator ends, when any stage fails it raises so the server aborts
the response instead of finishing it, and when the client goes away the
server closes the iterator, which kills whatever is still running.
"""

import collections
import logging
import subprocess
import threading
from typing import List, Optional, Sequence

from .errors import StreamIntegrityFailure, SubprocessExitFailure, SubprocessSpawnFailure, SubprocessTimeout
from .urls import MediaQuery
from .ytdlp import AUDIO_FORMAT, FALLBACK_VIDEO_FORMAT, mp3_cmd, stream_cmd

log = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
STDERR_TAIL = 20


class Stage:
    def __init__(self, name, cmd):
        self.name = name
        self.cmd = list(cmd)
        self.proc: Optional[subprocess.Popen] = None
        self.stderr = collections.deque(maxlen=STDERR_TAIL)
        self._drain: Optional[threading.Thread] = None

    def spawn(self, stdin):
        try:
            self.proc = subprocess.Popen(self.cmd, stdin=stdin, stdout=subprocess.PIPE,
                                         stderr=subprocess.PIPE, bufsize=0)
        except OSError as e:
            raise SubprocessSpawnFailure(self.name, f"cannot start {self.cmd[0]!r}: {e}") from e
        self._drain = threading.Thread(target=self._drain_stderr, name=f"{self.name}-stderr", daemon=True)
        self._drain.start()

    def _drain_stderr(self):
        for line in iter(self.proc.stderr.readline, b""):
            text = line.decode("utf-8", "replace").rstrip()
            if text:
                self.stderr.append(text)
                log.debug("[%s] %s", self.name, text)

    def stderr_text(self):
        if self._drain is not None:
            self._drain.join(timeout=1)
        return "\n".join(self.stderr)

    @property
    def running(self):
        return self.proc is not None and self.proc.poll() is None

    def kill(self, grace=5):
        if not self.running:
            return
        self.proc.terminate()
        try:
            self.proc.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            self.proc.kill()
            self.proc.wait()


class Pipeline:
    def __init__(self, stages: Sequence[Stage], timeout: Optional[float] = None, chunk_size: int = CHUNK_SIZE):
        if not stages:
            raise ValueError("a pipeline needs at least one stage")
        self.stages = list(stages)
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.expired = False
        self._timer: Optional[threading.Timer] = None
        self._closed = False

    def start(self) -> "Pipeline":
        stdin = subprocess.DEVNULL
        try:
            for stage in self.stages:
                stage.spawn(stdin)
                if stdin is not subprocess.DEVNULL:
                    stdin.close()  # the next stage owns it now
                stdin = stage.proc.stdout
        except SubprocessSpawnFailure:
            self.close()
            raise
        if self.timeout:
            self._timer = threading.Timer(self.timeout, self._expire)
            self._timer.daemon = True
            self._timer.start()
        return self

    def _expire(self):
        log.warning("stream exceeded %gs, killing %s", self.timeout, ", ".join(s.name for s in self.stages))
        self.expired = True
        for stage in self.stages:
            stage.kill(grace=1)

    def wait(self) -> List[Exception]:
        """Reap every stage; returns the failures, upstream first."""
        failures = []
        for stage in self.stages:
            code = stage.proc.wait()
            log.info("%s exited with %s", stage.name, code)
            if self.expired:
                failures.append(SubprocessTimeout(stage.name, self.timeout))
            elif code != 0:
                failures.append(SubprocessExitFailure(stage.name, code, stage.stderr_text()))
        return failures

    def iter_bytes(self):
        out = self.stages[-1].proc.stdout
        try:
            while True:
                chunk = out.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
            failures = self.wait()
            if failures:
                raise StreamIntegrityFailure(failures)
        finally:
            self.close()

    __iter__ = iter_bytes

    def close(self):
        if self._closed:
            return
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
        for stage in self.stages:
            if stage.running:
                log.info("terminating %s", stage.name)
            stage.kill()
            if stage.proc is not None and stage.proc.stdout:
                stage.proc.stdout.close()


def video_pipeline(settings, query: MediaQuery, format_id: Optional[str] = None) -> Pipeline:
    fmt = format_id or FALLBACK_VIDEO_FORMAT
    return Pipeline([Stage("yt-dlp", stream_cmd(settings, query.platform, query.url, fmt))],
                    timeout=settings.stream_timeout)


def audio_pipeline(settings, query: MediaQuery) -> Pipeline:
    return Pipeline([
        Stage("yt-dlp", stream_cmd(settings, query.platform, query.url, AUDIO_FORMAT)),
        Stage("ffmpeg", mp3_cmd(settings)),
    ], timeout=settings.stream_timeout)
