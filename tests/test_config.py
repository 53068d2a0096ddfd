# File: tests/test_config.py
import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from mirrorurl.config import (
    MirrorConfig,
    QueryPolicy,
    ScopePolicy,
    default_concurrency,
    load_config,
    read_skip_file,
)


def write_file(tmp_path: Path, content: str, suffix: str) -> Path:
    path = tmp_path / f"config{suffix}"
    path.write_text(content, encoding="utf-8")
    return path


@pytest.mark.parametrize(
    "content,suffix,expect_exc",
    [
        ("start_url: http://example.com\noutput_dir: out", ".yaml", None),
        (json.dumps({"start_url": "http://example.com", "output_dir": "out"}), ".json", None),
        ("{}", ".json", ValidationError),
        ("- a\n- b", ".yml", TypeError),
        ("start_url: [unclosed", ".yaml", ValueError),
        ("{not json", ".json", ValueError),
        ("start_url = 'x'", ".toml", ValueError),
    ],
)
def test_load_config_variants(tmp_path, content, suffix, expect_exc):
    cfg_path = write_file(tmp_path, content, suffix)
    if expect_exc:
        with pytest.raises(expect_exc):
            load_config(cfg_path)
    else:
        cfg = load_config(cfg_path)
        assert isinstance(cfg, MirrorConfig)
        assert str(cfg.start_url).rstrip("/") == "http://example.com"
        assert cfg.output_dir == Path("out")


def test_defaults(tmp_path):
    cfg = MirrorConfig(start_url="http://example.com/", output_dir=tmp_path)
    assert cfg.max_depth == 5
    assert cfg.max_pages is None
    assert cfg.concurrency == default_concurrency()
    assert 2 <= cfg.concurrency <= 10
    assert cfg.scope is ScopePolicy.HOST
    assert cfg.query_policy is QueryPolicy.PRESERVE
    assert cfg.index_name == "index.html"
    assert cfg.use_etags and cfg.rewrite_links
    assert cfg.user_agent.startswith("mirrorurl/")


def test_overrides_win_over_file(tmp_path):
    cfg_path = write_file(tmp_path, "start_url: http://example.com\noutput_dir: out\nmax_depth: 4", ".yaml")
    cfg = load_config(cfg_path, max_depth=1, concurrency=None, scope="prefix")
    assert cfg.max_depth == 1
    assert cfg.scope is ScopePolicy.PREFIX
    assert cfg.concurrency == default_concurrency()


def test_default_file_is_optional(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = load_config(None, start_url="http://example.com", output_dir="out")
    assert cfg.max_depth == 5

    (tmp_path / "mirrorurl.yaml").write_text("max_depth: 2", encoding="utf-8")
    cfg = load_config(None, start_url="http://example.com", output_dir="out")
    assert cfg.max_depth == 2


def test_explicit_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


@pytest.mark.parametrize(
    "field,value",
    [
        ("start_url", "ftp://example.com/"),
        ("max_depth", -1),
        ("concurrency", 0),
        ("max_pages", 0),
        ("index_name", "a/b.html"),
        ("index_name", ".."),
        ("scope", "planet"),
        ("query_policy", "shuffle"),
        ("unknown_option", True),
    ],
)
def test_invalid_values(tmp_path, field, value):
    data = {"start_url": "http://example.com/", "output_dir": tmp_path / "out", field: value}
    with pytest.raises(ValidationError):
        MirrorConfig(**data)


def test_output_dir_must_not_be_a_file(tmp_path):
    target = tmp_path / "file.txt"
    target.write_text("x", encoding="utf-8")
    with pytest.raises(ValidationError):
        MirrorConfig(start_url="http://example.com/", output_dir=target)


def test_output_dir_expands_user(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = MirrorConfig(start_url="http://example.com/", output_dir="~/mirror")
    assert cfg.output_dir == tmp_path / "mirror"


def test_config_is_frozen(tmp_path):
    cfg = MirrorConfig(start_url="http://example.com/", output_dir=tmp_path)
    with pytest.raises(ValidationError):
        cfg.max_depth = 1
    assert cfg.max_depth == 5


def test_read_skip_file(tmp_path):
    good = tmp_path / "skip.json"
    good.write_text(json.dumps(["/private", "http://example.com/tmp/"]), encoding="utf-8")
    assert read_skip_file(good) == ["/private", "http://example.com/tmp/"]

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"skip": "/private"}), encoding="utf-8")
    with pytest.raises(TypeError):
        read_skip_file(bad)

    with pytest.raises(FileNotFoundError):
        read_skip_file(tmp_path / "absent.json")
