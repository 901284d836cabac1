"""Test configuration loading and token resolution."""

from pathlib import Path

import pytest
import yaml
from pydantic import SecretStr

from ghcr_reaper.config import ReaperConfig, resolve_token
from ghcr_reaper.exceptions import ConfigurationError
from ghcr_reaper.models.owner import Organization, User


def test_config_from_file(config_file: Path) -> None:
    """Test loading a config from a YAML file."""
    cfg = ReaperConfig.from_file(config_file)
    assert cfg.owner_scope == Organization(name="lsst-sqre")
    assert cfg.packages == ["app", "sciplat-lab"]
    assert cfg.dry_run is True
    assert cfg.debug is False
    assert cfg.page_size == 50
    assert cfg.concurrency == 8
    assert cfg.retry.max_attempts == 7
    assert cfg.retry.backoff_base == 0.5
    assert cfg.retry.max_wait == 300.0
    assert str(cfg.api_url) == "https://api.github.com/"


def test_overrides(config_file: Path) -> None:
    cfg = ReaperConfig.load(
        config_file,
        {
            "user": "fbooth",
            "organization": None,
            "packages": ["other"],
            "dry_run": False,
            "concurrency": 2,
            "debug": None,
        },
    )
    assert cfg.owner_scope == User(name="fbooth")
    assert cfg.organization is None
    assert cfg.packages == ["other"]
    assert cfg.dry_run is False
    assert cfg.concurrency == 2
    assert cfg.page_size == 50


def test_no_file() -> None:
    cfg = ReaperConfig.load(
        None, {"organization": "lsst-sqre", "packages": ["a"]}
    )
    assert cfg.owner_scope == Organization(name="lsst-sqre")
    assert cfg.dry_run is False


@pytest.mark.parametrize(
    "data",
    [
        {"packages": ["app"]},
        {"organization": "lsst-sqre", "user": "fbooth", "packages": ["app"]},
        {"organization": "", "user": "", "packages": ["app"]},
        {"organization": "lsst-sqre", "packages": []},
        {"organization": "lsst-sqre"},
        {"organization": "lsst-sqre", "packages": ["app"], "pageSize": 500},
        {"organization": "lsst-sqre", "packages": ["app"], "concurrency": 0},
    ],
)
def test_invalid(tmp_path: Path, data: dict[str, object]) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(data))
    with pytest.raises(ConfigurationError):
        ReaperConfig.from_file(path)


def test_unreadable(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        ReaperConfig.from_file(tmp_path / "missing.yaml")
    path = tmp_path / "list.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError):
        ReaperConfig.from_file(path)


def test_resolve_token(tmp_path: Path) -> None:
    token_file = tmp_path / "token"
    token_file.write_text("  from-file\n")
    env = {"GITHUB_TOKEN": "github", "GHCR_TOKEN": "ghcr"}
    configured = SecretStr("configured")

    token = resolve_token(token_file, configured, env)
    assert token.get_secret_value() == "from-file"
    token = resolve_token(None, configured, env)
    assert token.get_secret_value() == "configured"
    token = resolve_token(None, None, env)
    assert token.get_secret_value() == "github"
    token = resolve_token(None, None, {"GHCR_TOKEN": "ghcr"})
    assert token.get_secret_value() == "ghcr"

    with pytest.raises(ConfigurationError):
        resolve_token(None, None, {})
    with pytest.raises(ConfigurationError):
        resolve_token(tmp_path / "missing", None, env)
    empty = tmp_path / "empty"
    empty.write_text("\n")
    with pytest.raises(ConfigurationError):
        resolve_token(empty, None, env)
