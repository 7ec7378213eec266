"""Per-source connector configuration, one variant per source type."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from lorekeeper.core.errors import ConfigurationError

SyncFrequency = Literal["hourly", "daily", "weekly"]

DEFAULT_CODE_EXTENSIONS = (
    ".md",
    ".mdx",
    ".txt",
    ".rst",
    ".json",
    ".yaml",
    ".yml",
    ".go",
    ".js",
    ".ts",
    ".jsx",
    ".tsx",
    ".py",
    ".java",
    ".rb",
    ".php",
    ".swift",
    ".kt",
)


class _BaseSourceConfig(BaseModel):
    sync_frequency: SyncFrequency = "daily"
    filters: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}

    def require(self, *fields: str) -> None:
        """Raise ConfigurationError naming the first empty required field."""
        for name in fields:
            value = getattr(self, name, None)
            if value is None or (isinstance(value, (str, list, tuple)) and not value):
                raise ConfigurationError(f"{self.type} config is missing required field '{name}'")


class GitHubConfig(_BaseSourceConfig):
    type: Literal["code_repo"] = "code_repo"
    access_token: str = ""
    repository: str = ""
    owner: str | None = None
    branch: str | None = None
    extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_CODE_EXTENSIONS))

    def owner_and_repo(self) -> tuple[str, str]:
        self.require("access_token", "repository")
        owner = self.owner
        repo = self.repository
        if not owner:
            parts = repo.split("/")
            if len(parts) != 2 or not all(parts):
                raise ConfigurationError(f"invalid repository format: {self.repository!r}")
            owner, repo = parts
        elif repo.startswith(owner + "/"):
            repo = repo[len(owner) + 1 :]
        return owner, repo


class ConfluenceConfig(_BaseSourceConfig):
    type: Literal["wiki_space"] = "wiki_space"
    base_url: str = ""
    username: str = ""
    api_token: str = ""
    space_key: str = ""
    page_size: int = Field(default=25, ge=1, le=100)


class NotionConfig(_BaseSourceConfig):
    type: Literal["workspace_db"] = "workspace_db"
    api_key: str = ""
    database_id: str = ""
    page_size: int = Field(default=100, ge=1, le=100)


class SlackConfig(_BaseSourceConfig):
    type: Literal["chat_channels"] = "chat_channels"
    token: str = ""
    channels: list[str] = Field(default_factory=list)
    page_size: int = Field(default=100, ge=1, le=1000)
    include_threads: bool = True


SourceConfig = Annotated[
    Union[GitHubConfig, ConfluenceConfig, NotionConfig, SlackConfig],
    Field(discriminator="type"),
]

_ADAPTER: TypeAdapter[Any] = TypeAdapter(SourceConfig)


def parse_source_config(source_type: str, raw: dict[str, Any]) -> SourceConfig:
    """Validate a raw mapping as the config variant for ``source_type``."""
    payload = {**raw, "type": source_type}
    try:
        return _ADAPTER.validate_python(payload)
    except PydanticValidationError as exc:
        raise ConfigurationError(f"invalid {source_type} config: {exc}") from exc


__all__ = [
    "GitHubConfig",
    "ConfluenceConfig",
    "NotionConfig",
    "SlackConfig",
    "SourceConfig",
    "DEFAULT_CODE_EXTENSIONS",
    "parse_source_config",
]
