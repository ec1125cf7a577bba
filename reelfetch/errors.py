"""Exceptions raised while probing and streaming media."""


class ReelFetchError(Exception):
    pass


class NormalizationFailure(ReelFetchError):
    """Input could not be parsed as an http(s) URL."""


# ---------------- subprocess ----------------
class ToolError(ReelFetchError):
    def __init__(self, tool, message):
        super().__init__(f"{tool}: {message}")
        self.tool = tool


class SubprocessSpawnFailure(ToolError):
    """The binary is missing or cannot be executed."""


class SubprocessExitFailure(ToolError):
    def __init__(self, tool, returncode, stderr=""):
        msg = f"exited with code {returncode}"
        tail = (stderr or "").strip().splitlines()[-1:]
        if tail:
            msg += f" ({tail[0]})"
        super().__init__(tool, msg)
        self.returncode = returncode
        self.stderr = stderr


class SubprocessTimeout(ToolError):
    def __init__(self, tool, timeout):
        super().__init__(tool, f"timed out after {timeout:g}s")
        self.timeout = timeout


class MalformedOutput(ToolError):
    """Metadata mode produced something that is not a JSON object."""


# ---------------- probe / stream ----------------
class NoUsableEncodings(ReelFetchError):
    def __init__(self, url):
        super().__init__(f"no usable encodings for {url}")
        self.url = url


class ProbeFailure(ReelFetchError):
    def __init__(self, last_error, attempts):
        super().__init__(str(last_error) if last_error else "probe failed")
        self.last_error = last_error
        self.attempts = attempts


class StreamIntegrityFailure(ReelFetchError):
    def __init__(self, failures):
        super().__init__("; ".join(str(f) for f in failures) or "stream failed")
        self.failures = list(failures)
