"""Tests for kiln.app — the build and watch entry points."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from kiln.app import build, watch
from kiln.build.scheduler import GenerationResult
from kiln.observability import BuildCollector, GenerationCompleted


class TestBuild:
    def test_build_returns_ok_result(self, tmp_site: Path) -> None:
        result = build(tmp_site, quiet=True, workers=1)
        assert result.ok
        assert result.exit_code == 0
        assert result.full
        assert (tmp_site / "dist" / "about" / "index.html").is_file()

    def test_build_prints_banner_and_summary(self, tmp_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        build(tmp_site)
        err = capsys.readouterr().err
        assert "[build]" in err
        assert "generation 1 (full)" in err

    def test_quiet_build_is_silent(self, tmp_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        build(tmp_site, quiet=True)
        assert capsys.readouterr().err == ""

    def test_failed_build_reports_even_when_quiet(
        self, tmp_site: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        (tmp_site / "content" / "broken.md").write_text("---\ntitle: [\n---\nbody\n")
        result = build(tmp_site, quiet=True)
        assert result.exit_code == 1
        assert "content/broken.md" in capsys.readouterr().err

    def test_collector_receives_events(self, tmp_site: Path) -> None:
        collector = BuildCollector()
        build(tmp_site, quiet=True, collector=collector)
        assert len(collector.log.query(event_type=GenerationCompleted)) == 1

    def test_overrides_applied(self, tmp_site: Path) -> None:
        build(tmp_site, quiet=True, output="public", minify=False)
        assert (tmp_site / "public" / "index.html").is_file()


class TestWatch:
    def test_stops_after_first_generation(self, tmp_site: Path) -> None:
        stop = threading.Event()
        seen: list[GenerationResult] = []

        def on_generation(result: GenerationResult) -> None:
            seen.append(result)
            stop.set()

        last = watch(tmp_site, stop_event=stop, on_generation=on_generation, quiet=True)
        assert len(seen) == 1
        assert last is seen[0]
        assert last.full
        assert (tmp_site / "dist" / "index.html").is_file()
