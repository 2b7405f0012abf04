"""Configuration management for the Appwrite agent."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.appwrite-agent/config.yaml").expanduser()
DEFAULT_AUDIT_PATH = Path("~/.appwrite-agent/audit.db").expanduser()
LOCAL_CONFIG_FILENAME = "config.yaml"

TOOL_CATEGORIES = ("database", "storage", "functions", "users", "teams")
DEFAULT_MODELS = ["gemini-2.5-flash", "gemini-2.5-pro", "gemini-2.5-flash-lite"]


class ModelConfig(BaseModel):
    """Model configuration."""

    provider: str = "gemini"
    model: str = "gemini-2.5-flash"
    allowed: list[str] = Field(default_factory=lambda: list(DEFAULT_MODELS))
    api_key: str = ""
    base_url: str = ""
    thinking_enabled: bool = True
    temperature: float | None = None
    timeout: float = 120.0
    streaming: bool = False


class ToolsConfig(BaseModel):
    """Tool category toggles."""

    categories: dict[str, bool] = Field(
        default_factory=lambda: {name: True for name in TOOL_CATEGORIES}
    )
    timeout_seconds: float = 60.0

    def enabled_categories(self) -> set[str]:
        """Return categories switched on, unknown keys default to on."""
        return {
            name
            for name in TOOL_CATEGORIES
            if self.categories.get(name, True)
        }


class ChatConfig(BaseModel):
    """Turn and attachment limits."""

    max_files: int = 5
    max_file_bytes: int = 10 * 1024 * 1024
    max_tool_rounds: int = 10
    replay_history_on_rebuild: bool = True


class ProjectConfig(BaseModel):
    """A backend project the agent can operate on."""

    id: str
    name: str
    endpoint: str
    project_id: str
    api_key: str = ""


class AuditConfig(BaseModel):
    """Audit log configuration."""

    enabled: bool = True
    path: str = str(DEFAULT_AUDIT_PATH)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for the Appwrite agent."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    projects: list[ProjectConfig] = Field(default_factory=list)
    active_project: str = ""
    audit: AuditConfig = Field(default_factory=AuditConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="APPWRITE_AGENT_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration, env vars are applied by pydantic-settings."""
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def get_project(self, project_id: str) -> ProjectConfig | None:
        """Look up a configured project by id."""
        key = str(project_id or "").strip()
        for project in self.projects:
            if project.id == key:
                return project
        return None


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
