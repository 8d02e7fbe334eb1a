"""Tests for kiln._cli — argument parsing and command dispatch."""

from __future__ import annotations

from pathlib import Path

import pytest

from kiln._cli import _build_parser, _overrides, main


class TestParser:
    """_build_parser — subcommands and flags."""

    def test_build_defaults(self) -> None:
        args = _build_parser().parse_args(["build"])
        assert args.command == "build"
        assert args.root == "."
        assert _overrides(args) == {
            "output": None,
            "base_url": None,
            "fingerprint": None,
            "minify": None,
            "workers": None,
            "host": None,
            "port": None,
        }

    def test_build_flags(self) -> None:
        args = _build_parser().parse_args([
            "build", "site", "--output", "public", "--base-url", "https://x.dev",
            "--fingerprint", "--no-minify", "--workers", "2", "-q",
        ])
        assert args.root == "site"
        assert args.quiet is True
        overrides = _overrides(args)
        assert overrides["output"] == "public"
        assert overrides["base_url"] == "https://x.dev"
        assert overrides["fingerprint"] is True
        assert overrides["minify"] is False
        assert overrides["workers"] == 2

    def test_serve_host_port(self) -> None:
        args = _build_parser().parse_args(["serve", "--host", "0.0.0.0", "--port", "8080"])
        assert _overrides(args)["host"] == "0.0.0.0"
        assert _overrides(args)["port"] == 8080

    def test_build_has_no_port(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["build", "--port", "1"])

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            _build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "kiln" in capsys.readouterr().out


class TestMain:
    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0
        assert "build" in capsys.readouterr().out

    def test_build_success(self, tmp_site: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["build", str(tmp_site), "-q", "--workers", "1"])
        assert exc_info.value.code == 0
        assert (tmp_site / "dist" / "index.html").is_file()

    def test_build_output_override(self, tmp_site: Path) -> None:
        with pytest.raises(SystemExit):
            main(["build", str(tmp_site), "-q", "--output", "public"])
        assert (tmp_site / "public" / "index.html").is_file()

    def test_build_failure_exit_code(self, tmp_site: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (tmp_site / "kiln.yaml").write_text("port: [\n")
        with pytest.raises(SystemExit) as exc_info:
            main(["build", str(tmp_site), "-q"])
        assert exc_info.value.code == 1
        assert "failed" in capsys.readouterr().err
