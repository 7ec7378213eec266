from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from lorekeeper.core.config import Settings, get_settings
from lorekeeper.core.errors import ConfigurationError
from lorekeeper.models.dto import mask_config
from lorekeeper.models.source_config import GitHubConfig, NotionConfig, parse_source_config


def test_yaml_sections_and_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "llm:\n  completion_model: anthropic/claude-haiku\n"
        "retrieval:\n  top_k: 3\n  min_similarity: 0.5\n"
        "chunking:\n  max_size: 400\n  overlap: 40\n"
        "logging:\n  level: DEBUG\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("LORE_CONFIG", str(config_path))
    monkeypatch.setenv("LORE_TOP_K", "8")

    settings = get_settings()
    assert settings.completion_model == "anthropic/claude-haiku"
    assert settings.top_k == 8
    assert settings.min_similarity == 0.5
    assert (settings.max_chunk_size, settings.chunk_overlap) == (400, 40)
    assert settings.log_level == "DEBUG"
    assert settings.db_path == tmp_path / "lore.db"


def test_defaults_without_config_file(tmp_path: Path) -> None:
    settings = Settings.from_yaml(tmp_path / "absent.yaml")
    assert settings.top_k == 5
    assert settings.min_similarity == 0.7
    assert settings.embedding_model == "hashed"


def test_overlap_must_be_below_chunk_size() -> None:
    with pytest.raises(ValidationError):
        Settings(max_chunk_size=100, chunk_overlap=100)


def test_source_config_variants() -> None:
    config = parse_source_config("workspace_db", {"api_key": "secret", "database_id": "db1"})
    assert isinstance(config, NotionConfig)
    assert config.page_size == 100
    with pytest.raises(ConfigurationError):
        parse_source_config("workspace_db", {"api_key": "secret", "page_size": 500})
    with pytest.raises(ConfigurationError):
        parse_source_config("mailbox", {})


@pytest.mark.parametrize(
    ("repository", "owner", "expected"),
    [
        ("acme/docs", None, ("acme", "docs")),
        ("docs", "acme", ("acme", "docs")),
        ("acme/docs", "acme", ("acme", "docs")),
    ],
)
def test_owner_and_repo(repository, owner, expected) -> None:
    config = GitHubConfig(access_token="t", repository=repository, owner=owner)
    assert config.owner_and_repo() == expected


def test_owner_and_repo_rejects_bad_values() -> None:
    with pytest.raises(ConfigurationError):
        GitHubConfig(access_token="t", repository="docs").owner_and_repo()
    with pytest.raises(ConfigurationError, match="access_token"):
        GitHubConfig(repository="acme/docs").owner_and_repo()


def test_mask_config_hides_credentials() -> None:
    masked = mask_config({"token": "xoxb", "api_key": "", "channels": ["C1"]})
    assert masked == {"token": "****", "api_key": "", "channels": ["C1"]}
