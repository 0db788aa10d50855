import json

import pytest

from digestbot.config import (
    CONFIG_PATH_ENV,
    Config,
    NotificationGroupConfig,
    SourceConfig,
    expand_env,
    load_config,
)
from digestbot.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("LLM_API_KEY", "LLM_MODEL", "LLM_BASE_URL", CONFIG_PATH_ENV,
                 "DIGESTBOT_LLM__MAX_TOKENS", "DIGESTBOT_SCHEDULER__ENABLED"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_file() -> None:
    config = Config()

    llm = config.llm()
    assert llm.max_tokens == 5000
    assert llm.temperature == 0.85
    assert llm.top_p == 0.95
    assert llm.model == "Qwen/Qwen3-Coder-480B-A35B-Instruct"
    assert llm.api_key == ""
    assert config.scheduler().cron == "0 6 * * *"
    assert config.scheduler().retention_days == 7
    assert [group.id for group in config.source_groups()] == ["frontend"]


def test_yaml_file_is_merged_over_defaults(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "llm:\n"
        "  model: local-model\n"
        "sources:\n"
        "  groups:\n"
        "    - id: finance\n"
        "      sources:\n"
        "        - name: press\n"
        "          type: RSS\n"
        "          url: https://example.com/rss\n"
        "          tag_rules:\n"
        "            дивиденды: финансы\n",
        encoding="utf-8",
    )

    config = Config(str(path))

    assert config.llm().model == "local-model"
    assert config.llm().max_tokens == 5000
    groups = config.source_groups()
    assert [group.id for group in groups] == ["finance"]
    assert groups[0].sources[0].type == "rss"
    assert groups[0].sources[0].tag_rules == {"дивиденды": "финансы"}


def test_json_file_and_env_overrides(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"store": {"path": "custom.db"}}), encoding="utf-8")
    monkeypatch.setenv("DIGESTBOT_LLM__MAX_TOKENS", "2000")
    monkeypatch.setenv("DIGESTBOT_SCHEDULER__ENABLED", "false")

    config = Config(str(path))

    assert config.get("store.path") == "custom.db"
    assert config.llm().max_tokens == 2000
    assert config.scheduler().enabled is False


def test_env_references_are_expanded(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_API_KEY", "secret-key")
    monkeypatch.setenv("LLM_MODEL", "other-model")

    llm = Config().llm()

    assert llm.api_key == "secret-key"
    assert llm.model == "other-model"


def test_expand_env_recurses(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHAT", "-100")
    monkeypatch.delenv("MISSING", raising=False)

    assert expand_env({"a": ["${CHAT}", "${MISSING:-fallback}", "${MISSING}"], "b": 3}) == {
        "a": ["-100", "fallback", ""],
        "b": 3,
    }


def test_load_config_reads_path_from_env(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.yml"
    path.write_text("sources:\n  default_limit: 3\n", encoding="utf-8")
    monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

    config = load_config()

    assert config.get("sources.default_limit") == 3
    assert config.get("config_path") is None


def test_unreadable_files_raise(tmp_path) -> None:
    bad_yaml = tmp_path / "bad.yaml"
    bad_yaml.write_text("llm: [unclosed\n", encoding="utf-8")
    other = tmp_path / "config.toml"
    other.write_text("a = 1\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        Config(str(bad_yaml))
    with pytest.raises(ConfigurationError):
        Config(str(other))


def test_missing_file_falls_back_to_defaults(tmp_path) -> None:
    config = Config(str(tmp_path / "absent.yaml"))
    assert config.get("sources.default_limit") == 10


def test_notification_group_requires_complete_credentials() -> None:
    group = NotificationGroupConfig.from_dict({
        "id": "team",
        "telegram": {"bot_token": "123:abc", "chat_id": ""},
        "email": {"host": "smtp.example.com", "user": "bot@example.com", "to": ["a@example.com"]},
    })

    assert group.telegram is None
    assert group.email.sender == "bot@example.com"
    assert group.name == "team"


def test_source_config_needs_type() -> None:
    with pytest.raises(ConfigurationError):
        SourceConfig.from_dict({"name": "nameless-type"})
