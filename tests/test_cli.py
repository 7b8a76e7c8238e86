"""
Tests for the command-line interface.
"""

import csv
import re
import tempfile
from pathlib import Path

import pytest

from sorty import __version__
from sorty.cli import build_config, create_parser, main


def make_tree(tmp: str) -> Path:
    root = Path(tmp) / "inbox"
    root.mkdir()
    (root / "x.jpg").write_bytes(b"jpeg")
    (root / "y.doc").write_bytes(b"word")
    return root


class TestParser:
    """Tests for argument parsing and config building."""

    def test_defaults(self):
        """Plan-only, non-recursive by default."""
        args = create_parser().parse_args([])
        assert args.root == Path(".")
        assert args.execute is False
        assert args.recursive is None

    def test_version(self, capsys):
        """--version prints the version."""
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--version"])
        assert __version__ in capsys.readouterr().out

    def test_flags_override_config_file(self):
        """Command-line flags win over the YAML config."""
        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "sorty.yaml"
            config_path.write_text("max_workers: 2\nexclude_patterns: ['*.part']\n")
            args = create_parser().parse_args([
                tmp, "-c", str(config_path), "--workers", "6",
                "-r", "--exclude-pattern", "~$*",
            ])

            config = build_config(args)

            assert config.max_workers == 6
            assert config.recursive is True
            assert config.exclude_patterns == ("*.part", "~$*")

    def test_rules_file_replaces_rules(self):
        """--rules replaces the rule set."""
        with tempfile.TemporaryDirectory() as tmp:
            rules_path = Path(tmp) / "rules.yaml"
            rules_path.write_text("Pictures: [jpg]\n")
            args = create_parser().parse_args([tmp, "--rules", str(rules_path)])

            config = build_config(args)

            assert [r.target for r in config.rules] == ["Pictures"]


class TestMain:
    """Tests for the main entry point."""

    def test_plan_only(self, capsys):
        """Without --execute nothing moves."""
        with tempfile.TemporaryDirectory() as tmp:
            root = make_tree(tmp)

            assert main([str(root)]) == 0

            out = capsys.readouterr().out
            assert "PLAN ONLY" in out
            assert "Move plan (2 entries, 2 to move)" in out
            assert (root / "x.jpg").exists()

    def test_summary_reports_elapsed_time(self, capsys):
        """The summary ends with the scan and analysis time."""
        with tempfile.TemporaryDirectory() as tmp:
            root = make_tree(tmp)

            assert main([str(root), "-q"]) == 0

            out = capsys.readouterr().out
            assert re.search(r"Elapsed: \d+\.\d{3} s", out)

    def test_execute_with_yes(self):
        """--execute --yes sorts the files."""
        with tempfile.TemporaryDirectory() as tmp:
            root = make_tree(tmp)

            assert main([str(root), "--execute", "--yes", "-q"]) == 0

            assert (root / "Images" / "x.jpg").exists()
            assert (root / "Documents" / "y.doc").exists()

    def test_dry_run(self):
        """--execute --dry-run moves nothing."""
        with tempfile.TemporaryDirectory() as tmp:
            root = make_tree(tmp)

            assert main([str(root), "--execute", "--dry-run", "-q"]) == 0

            assert (root / "x.jpg").exists()
            assert not (root / "Images").exists()

    def test_confirmation_declined(self, monkeypatch):
        """Anything but 'yes' at the prompt cancels."""
        with tempfile.TemporaryDirectory() as tmp:
            root = make_tree(tmp)
            monkeypatch.setattr("builtins.input", lambda prompt: "no")

            assert main([str(root), "--execute", "-q"]) == 0

            assert (root / "x.jpg").exists()

    def test_writes_report(self):
        """--report writes parameters, plan and results."""
        with tempfile.TemporaryDirectory() as tmp:
            root = make_tree(tmp)
            report = Path(tmp) / "report.csv"

            assert main([str(root), "--execute", "--yes", "-q", "--report", str(report)]) == 0

            with open(report, encoding="utf-8") as f:
                rows = list(csv.DictReader(f))
            kinds = {r["kind"] for r in rows}
            assert {"parameter", "plan", "execution"} <= kinds
            executed = [r for r in rows if r["kind"] == "execution"]
            assert [r["status"] for r in executed] == ["EXECUTED", "EXECUTED"]

    def test_missing_root(self):
        """A missing root exits with 1."""
        assert main(["/nonexistent/path/for/sorty"]) == 1

    def test_invalid_rules(self, capsys):
        """Invalid rules exit with 1 and say why."""
        with tempfile.TemporaryDirectory() as tmp:
            root = make_tree(tmp)
            rules_path = Path(tmp) / "rules.yaml"
            rules_path.write_text("- {target: X, extensions: [jpg], pattern: '*.jpg'}\n")

            assert main([str(root), "--rules", str(rules_path)]) == 1

            assert "conflicting syntax" in capsys.readouterr().err
