"""Tests for source discovery and reading."""

import os
from pathlib import Path

import pytest

from typeorg.config import make_config
from typeorg.exceptions import FatalConfigError
from typeorg.models import ParseStatus
from typeorg.scanner import SourceScanner, glob_match


def test_discover_filters_extensions_and_skip_dirs(write_project):
    root = write_project({
        "src/a.ts": "export type A = string;",
        "src/b.tsx": "export type B = string;",
        "src/c.js": "module.exports = {};",
        "README.md": "# docs",
        "node_modules/lib/index.ts": "export type L = string;",
        "dist/out.ts": "export type D = string;",
    })
    scanner = SourceScanner(make_config(root))
    assert scanner.discover() == ["src/a.ts", "src/b.tsx"]


def test_discover_respects_exclude_globs(write_project):
    root = write_project({
        "src/a.ts": "",
        "src/api.generated.ts": "",
        "src/legacy/old.ts": "",
    })
    config = make_config(root, exclude=["**/*.generated.ts", "src/legacy/**"])
    assert SourceScanner(config).discover() == ["src/a.ts"]


def test_discover_respects_include_globs(write_project):
    root = write_project({"src/a.ts": "", "scripts/b.ts": ""})
    config = make_config(root, include=["src/**"])
    assert SourceScanner(config).discover() == ["src/a.ts"]


def test_custom_extension_allowlist(write_project):
    root = write_project({"src/a.ts": "", "src/b.mts": ""})
    config = make_config(root, extensions=["mts"])
    assert SourceScanner(config).discover() == ["src/b.mts"]


def test_glob_match_double_star_matches_top_level():
    assert glob_match("node_modules/x.ts", "**/node_modules/**")
    assert glob_match("a/node_modules/x.ts", "**/node_modules/**")
    assert glob_match("x.ts", "**/*")
    assert not glob_match("src/x.ts", "lib/**")


def test_missing_root_is_fatal(temp_dir: Path):
    with pytest.raises(FatalConfigError):
        SourceScanner(make_config(temp_dir / "nope"))


def test_root_must_be_directory(temp_dir: Path):
    file_root = temp_dir / "file.ts"
    file_root.write_text("")
    with pytest.raises(FatalConfigError):
        SourceScanner(make_config(file_root))


def test_broken_symlink_is_reported_as_failed(write_project):
    root = write_project({"src/ok.ts": "export type Ok = string;"})
    os.symlink(root / "src" / "gone.ts", root / "src" / "broken.ts")

    files = {f.rel_path: f for f in SourceScanner(make_config(root)).scan()}

    assert files["src/ok.ts"].status is ParseStatus.PARSED
    assert "Ok" in files["src/ok.ts"].text
    assert files["src/broken.ts"].failed
    assert files["src/broken.ts"].reason


def test_permission_error_is_reported_as_failed(write_project, monkeypatch):
    root = write_project({"src/secret.ts": "export type S = string;"})
    real_read_text = Path.read_text

    def _read_text(self, *args, **kwargs):
        if self.name == "secret.ts":
            raise PermissionError(13, "Permission denied")
        return real_read_text(self, *args, **kwargs)

    monkeypatch.setattr(Path, "read_text", _read_text)
    source = SourceScanner(make_config(root)).read("src/secret.ts")
    assert source.failed
    assert source.reason == "Permission denied"
