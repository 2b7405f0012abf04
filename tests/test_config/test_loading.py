from pathlib import Path

import appwrite_agent.config as config_module
from appwrite_agent.config import Config


def test_load_prefers_local_config_yaml(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("model:\n  model: gemini-2.5-pro\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    local_cfg = tmp_path / "config.yaml"
    local_cfg.write_text(
        (
            "model:\n"
            "  model: gemini-2.5-flash-lite\n"
            "  thinking_enabled: false\n"
            "projects:\n"
            "  - id: shop\n"
            "    name: Shop\n"
            "    endpoint: https://cloud.appwrite.io/v1\n"
            "    project_id: shop-prod\n"
            "    api_key: secret\n"
            "active_project: shop\n"
        ),
        encoding="utf-8",
    )

    cfg = Config.load()

    assert cfg.model.model == "gemini-2.5-flash-lite"
    assert cfg.model.thinking_enabled is False
    assert cfg.active_project == "shop"
    project = cfg.get_project("shop")
    assert project is not None
    assert project.project_id == "shop-prod"


def test_load_falls_back_to_default_path_when_no_local(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("chat:\n  max_tool_rounds: 3\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    cfg = Config.load()

    assert cfg.chat.max_tool_rounds == 3


def test_defaults_enable_every_tool_category():
    cfg = Config()

    assert cfg.tools.enabled_categories() == {"database", "storage", "functions", "users", "teams"}
    assert cfg.chat.max_files == 5
    assert cfg.chat.max_file_bytes == 10 * 1024 * 1024
    assert cfg.chat.replay_history_on_rebuild is True


def test_disabled_category_is_excluded():
    cfg = Config(tools={"categories": {"storage": False}})

    assert "storage" not in cfg.tools.enabled_categories()
    assert "database" in cfg.tools.enabled_categories()


def test_env_overrides_nested_values(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")
    monkeypatch.setenv("APPWRITE_AGENT_MODEL__MODEL", "gemini-2.5-pro")

    cfg = Config.load()

    assert cfg.model.model == "gemini-2.5-pro"


def test_save_round_trips_projects(tmp_path: Path):
    cfg = Config(
        projects=[{
            "id": "blog",
            "name": "Blog",
            "endpoint": "https://example.test/v1",
            "project_id": "blog-1",
        }],
    )
    path = tmp_path / "nested" / "config.yaml"

    cfg.save(path)
    loaded = Config.from_yaml(path)

    assert loaded.get_project("blog").name == "Blog"
    assert loaded.get_project("missing") is None
