import pytest

from reelfetch.errors import (MalformedOutput, NoUsableEncodings, ProbeFailure, SubprocessExitFailure,
                              SubprocessSpawnFailure, SubprocessTimeout)
from reelfetch.probe import FACEBOOK_HOSTS, TIKTOK_PROFILES, Attempt, ProbeOrchestrator, run_json
from reelfetch.urls import make_query
from reelfetch.ytdlp import metadata_cmd
from tests.conftest import fmt, info


class FakeExecutor:
    """Replays scripted outcomes in order and records every attempt."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def __call__(self, attempt):
        self.calls.append(attempt)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


WATERMARKED_ONLY = info([fmt("dl", 1024, format_note="Download video, watermarked"),
                         fmt("audio", ext="m4a", vcodec="none")], title="first")
CLEAN = info([fmt("h264_540", 540), fmt("h264_720", 720), fmt("h264_1080", 1080)], title="second")


@pytest.mark.unit
class TestPlan:
    def test_tiktok_profiles_in_priority_order(self, settings):
        plan = ProbeOrchestrator(settings).plan(make_query("https://www.tiktok.com/@u/video/1?x=1"))
        assert [a.profile for a in plan] == list(TIKTOK_PROFILES)
        assert {a.url for a in plan} == {"https://www.tiktok.com/@u/video/1"}

    def test_facebook_host_variants(self, settings):
        plan = ProbeOrchestrator(settings).plan(make_query("https://m.facebook.com/watch/?v=5"))
        assert [a.url for a in plan] == [f"https://{h}/watch/?v=5" for h in FACEBOOK_HOSTS]
        assert all(a.profile == () for a in plan)

    def test_fb_watch_has_single_variant(self, settings):
        plan = ProbeOrchestrator(settings).plan(make_query("https://fb.watch/abc/"))
        assert [a.url for a in plan] == ["https://fb.watch/abc/"]

    def test_other_platforms_single_attempt(self, settings):
        plan = ProbeOrchestrator(settings).plan(make_query("https://youtu.be/abc"))
        assert plan == [Attempt(url="https://www.youtube.com/watch?v=abc", profile=(), platform="youtube")]


@pytest.mark.unit
class TestRetry:
    def test_tiktok_moves_on_when_first_profile_has_nothing_usable(self, settings):
        ex = FakeExecutor(WATERMARKED_ONLY, CLEAN)
        result = ProbeOrchestrator(settings, executor=ex).probe(make_query("https://www.tiktok.com/@u/video/1"))
        assert result.metadata.title == "second"
        assert [e.format_id for e in result.encodings] == ["h264_540", "h264_720", "h264_1080"]
        assert result.attempt.profile == TIKTOK_PROFILES[1]
        assert len(ex.calls) == 2

    def test_attempts_are_sequential_and_ordered(self, settings):
        ex = FakeExecutor(SubprocessExitFailure("yt-dlp", 1, "ERROR: blocked"),
                          MalformedOutput("yt-dlp", "unparseable output"), CLEAN)
        result = ProbeOrchestrator(settings, executor=ex).probe(make_query("https://www.tiktok.com/@u/video/1"))
        assert [a.profile for a in ex.calls] == list(TIKTOK_PROFILES)
        assert result.attempt is ex.calls[-1]

    def test_facebook_tries_next_host_after_failure(self, settings):
        ex = FakeExecutor(SubprocessExitFailure("yt-dlp", 1), CLEAN)
        result = ProbeOrchestrator(settings, executor=ex).probe(make_query("https://www.facebook.com/watch?v=9"))
        assert result.attempt.url == "https://web.facebook.com/watch?v=9"

    def test_platform_without_filter_retry_returns_empty_result(self, settings):
        ex = FakeExecutor(WATERMARKED_ONLY)
        result = ProbeOrchestrator(settings, executor=ex).probe(make_query("https://youtu.be/abc"))
        assert len(ex.calls) == 1
        assert len(result.encodings) == 2  # raw list, unfiltered

    def test_exhausted_with_errors_reports_last_one(self, settings):
        last = SubprocessSpawnFailure("yt-dlp", "cannot start")
        ex = FakeExecutor(SubprocessExitFailure("yt-dlp", 1), SubprocessTimeout("yt-dlp", 5), last)
        with pytest.raises(ProbeFailure) as exc:
            ProbeOrchestrator(settings, executor=ex).probe(make_query("https://www.facebook.com/watch?v=9"))
        assert exc.value.last_error is last
        assert exc.value.attempts == 3
        assert "cannot start" in str(exc.value)

    def test_exhausted_without_usable_encodings(self, settings):
        ex = FakeExecutor(*[WATERMARKED_ONLY] * len(TIKTOK_PROFILES))
        with pytest.raises(ProbeFailure) as exc:
            ProbeOrchestrator(settings, executor=ex).probe(make_query("https://www.tiktok.com/@u/video/1"))
        assert isinstance(exc.value.last_error, NoUsableEncodings)

    def test_single_attempt_failure(self, settings):
        ex = FakeExecutor(SubprocessExitFailure("yt-dlp", 2, "ERROR: Unsupported URL"))
        with pytest.raises(ProbeFailure, match="Unsupported URL"):
            ProbeOrchestrator(settings, executor=ex).probe(make_query("https://example.com/v"))


@pytest.mark.unit
def test_metadata_command(settings):
    cmd = metadata_cmd(settings, "tiktok", "https://www.tiktok.com/@u/video/1", TIKTOK_PROFILES[1])
    assert cmd[0] == "yt-dlp"
    assert cmd[-3:] == ["-J", "--", "https://www.tiktok.com/@u/video/1"]
    for flag in ("--force-ipv4", "--no-playlist", "--user-agent", *TIKTOK_PROFILES[1]):
        assert flag in cmd
    assert cmd[cmd.index("--referer") + 1] == "https://www.tiktok.com/"
    assert metadata_cmd(settings, "other", "https://a.example/v")[-5:-3] == ["--referer", "https://a.example/"]


@pytest.mark.unit
def test_url_is_never_read_as_an_option(settings):
    cmd = metadata_cmd(settings, "other", "--version")
    assert cmd[-2:] == ["--", "--version"]
    assert cmd.count("--version") == 1


@pytest.mark.integration
class TestRunJson:
    def test_parses_json(self, make_tool):
        cmd = make_tool("ok", 'print(json.dumps({"title": "hi", "argv": sys.argv[1:]}))')
        assert run_json([*cmd, "-J", "u"]) == {"title": "hi", "argv": ["-J", "u"]}

    def test_nonzero_exit(self, make_tool):
        cmd = make_tool("fail", 'sys.stderr.write("ERROR: nope\\n"); sys.exit(1)')
        with pytest.raises(SubprocessExitFailure) as exc:
            run_json(list(cmd))
        assert exc.value.returncode == 1
        assert "ERROR: nope" in str(exc.value)

    def test_garbage_output(self, make_tool):
        with pytest.raises(MalformedOutput):
            run_json(list(make_tool("junk", 'print("<html>")')))

    def test_non_object_output(self, make_tool):
        with pytest.raises(MalformedOutput):
            run_json(list(make_tool("list", 'print("[1, 2]")')))

    def test_missing_binary(self, tmp_path):
        with pytest.raises(SubprocessSpawnFailure):
            run_json([str(tmp_path / "no-such-yt-dlp")])

    def test_timeout(self, make_tool):
        with pytest.raises(SubprocessTimeout):
            run_json(list(make_tool("slow", "time.sleep(10)")), timeout=0.5)

    def test_orchestrator_uses_configured_binary(self, make_tool, settings):
        from dataclasses import replace
        cmd = make_tool("yt", """
            assert "-J" in sys.argv
            print(json.dumps({"title": "real", "extractor": "generic",
                              "formats": [{"format_id": "0", "ext": "mp4", "vcodec": "h264", "acodec": "aac"}]}))
        """)
        orch = ProbeOrchestrator(replace(settings, ytdlp_cmd=cmd))
        result = orch.probe(make_query("https://example.com/clip.mp4?x=1"))
        assert result.metadata.extractor == "generic"
        assert [e.format_id for e in result.encodings] == ["0"]
