"""
Configuration management for digestbot.
"""
import copy
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from digestbot.exceptions import ConfigurationError

# Load environment variables from .env file
load_dotenv()

# Configure logging
logger = logging.getLogger(__name__)

ENV_PREFIX = "DIGESTBOT_"
CONFIG_PATH_ENV = "DIGESTBOT_CONFIG_PATH"
_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")

# Default configuration
DEFAULT_CONFIG = {
    "llm": {
        "api_key": "${LLM_API_KEY}",
        "model": "${LLM_MODEL:-Qwen/Qwen3-Coder-480B-A35B-Instruct}",
        "base_url": "${LLM_BASE_URL:-https://foundation-models.api.cloud.ru/v1}",
        "max_tokens": 5000,
        "temperature": 0.85,
        "presence_penalty": 0,
        "top_p": 0.95,
        "timeout_seconds": 120,
        "concurrency": 3
    },
    "http": {
        "timeout_seconds": 30,
        "max_concurrent": 5
    },
    "store": {
        "path": "data/articles.db",
        "retention_days": 7
    },
    "sources": {
        "default_limit": 10,
        "default_group_id": "frontend",
        "groups": [
            {
                "id": "frontend",
                "name": "Frontend News",
                "enabled": True,
                "sources": [
                    {
                        "name": "dvp-frontend",
                        "type": "devto",
                        "tags": ["javascript", "react", "typescript"]
                    },
                    {
                        "name": "telegram-frontend",
                        "type": "telegram",
                        "channels": ["tproger_web", "webstandards_ru"],
                        "lookback_days": 3
                    }
                ]
            }
        ]
    },
    "notifications": {
        "unmatched": "drop",
        "groups": [
            {
                "id": "frontend-notifications",
                "name": "Frontend Notifications",
                "enabled": True,
                "telegram": {
                    "bot_token": "${FRONTEND_TELEGRAM_BOT_TOKEN}",
                    "chat_id": "${FRONTEND_TELEGRAM_CHAT_ID}"
                },
                "source_groups": ["frontend"]
            }
        ]
    },
    "scheduler": {
        "enabled": True,
        "cron": "0 6 * * *"
    }
}


def expand_env(value: Any) -> Any:
    """
    Replace ${VAR} and ${VAR:-default} references with environment values, recursively.

    Undefined variables without a default expand to an empty string.
    """
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.getenv(m.group(1)) or (m.group(2) or ""), value)
    if isinstance(value, dict):
        return {key: expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    return value


@dataclass
class LLMConfig:
    """Connection and sampling settings for the chat-completion backend."""
    api_key: str
    model: str
    base_url: str
    max_tokens: int = 5000
    temperature: float = 0.85
    presence_penalty: float = 0.0
    top_p: float = 0.95
    timeout_seconds: float = 120
    concurrency: int = 3

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LLMConfig":
        return cls(
            api_key=data.get("api_key") or "",
            model=data.get("model") or "",
            base_url=data.get("base_url") or "",
            max_tokens=int(data.get("max_tokens", 5000)),
            temperature=float(data.get("temperature", 0.85)),
            presence_penalty=float(data.get("presence_penalty", 0)),
            top_p=float(data.get("top_p", 0.95)),
            timeout_seconds=float(data.get("timeout_seconds", 120)),
            concurrency=max(1, int(data.get("concurrency", 3))),
        )


@dataclass
class SourceConfig:
    """One source adapter inside a source group."""
    name: str
    type: str
    tags: List[str] = field(default_factory=list)
    channels: List[str] = field(default_factory=list)
    lookback_days: int = 1
    url: Optional[str] = None
    tag_rules: Dict[str, str] = field(default_factory=dict)
    limit: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceConfig":
        if not data.get("name") or not data.get("type"):
            raise ConfigurationError(f"Source config needs a name and a type: {data}")
        limit = data.get("limit")
        return cls(
            name=data["name"],
            type=str(data["type"]).lower(),
            tags=list(data.get("tags") or []),
            channels=list(data.get("channels") or []),
            lookback_days=int(data.get("lookback_days", 1)),
            url=data.get("url"),
            tag_rules=dict(data.get("tag_rules") or {}),
            limit=int(limit) if limit is not None else None,
        )


@dataclass
class SourceGroupConfig:
    """A named, independently enabled collection of sources."""
    id: str
    name: str
    enabled: bool = True
    sources: List[SourceConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceGroupConfig":
        if not data.get("id"):
            raise ConfigurationError(f"Source group config needs an id: {data}")
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            enabled=bool(data.get("enabled", True)),
            sources=[SourceConfig.from_dict(item) for item in data.get("sources") or []],
        )


@dataclass
class TelegramConfig:
    bot_token: str
    chat_id: str


@dataclass
class EmailConfig:
    host: str
    sender: str
    recipients: List[str]
    port: int = 587
    user: str = ""
    password: str = ""
    use_tls: bool = True


@dataclass
class NotificationGroupConfig:
    """Delivery channels of one subscriber group and the source groups it follows."""
    id: str
    name: str
    enabled: bool = True
    telegram: Optional[TelegramConfig] = None
    email: Optional[EmailConfig] = None
    source_groups: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationGroupConfig":
        if not data.get("id"):
            raise ConfigurationError(f"Notification group config needs an id: {data}")

        telegram = None
        tg = data.get("telegram") or {}
        if tg.get("bot_token") and tg.get("chat_id"):
            telegram = TelegramConfig(bot_token=str(tg["bot_token"]), chat_id=str(tg["chat_id"]))

        email = None
        mail = data.get("email") or {}
        if mail.get("host") and mail.get("to"):
            email = EmailConfig(
                host=mail["host"],
                port=int(mail.get("port", 587)),
                user=mail.get("user") or "",
                password=mail.get("password") or "",
                use_tls=bool(mail.get("use_tls", True)),
                sender=mail.get("from") or mail.get("user") or "",
                recipients=list(mail["to"]),
            )

        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            enabled=bool(data.get("enabled", True)),
            telegram=telegram,
            email=email,
            source_groups=list(data.get("source_groups") or []),
        )


@dataclass
class SchedulerConfig:
    enabled: bool = True
    cron: str = "0 6 * * *"
    retention_days: int = 7


class Config:
    """
    Configuration manager for digestbot.
    """
    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the Config.

        Args:
            config_path: Path to a YAML or JSON configuration file
        """
        self.config_path = config_path
        self.config = self._load_config()

    def _load_config(self) -> Dict:
        """
        Load configuration from file or use defaults.

        Returns:
            Configuration dictionary

        Raises:
            ConfigurationError: If the file exists but cannot be parsed
        """
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path:
            path = Path(self.config_path)
            if path.exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        if path.suffix.lower() in ['.yaml', '.yml']:
                            user_config = yaml.safe_load(f) or {}
                        elif path.suffix.lower() == '.json':
                            user_config = json.load(f)
                        else:
                            raise ConfigurationError(f"Unsupported config file format: {path.suffix}")
                except (yaml.YAMLError, json.JSONDecodeError) as e:
                    raise ConfigurationError(f"Error loading config from {self.config_path}: {e}") from e

                # Update config with user settings
                self._update_dict(config, user_config)
                logger.info(f"Loaded configuration from {path}")
            else:
                logger.warning(f"Config file {self.config_path} not found, using default configuration")

        # Override with environment variables
        self._override_from_env(config)

        return expand_env(config)

    def _update_dict(self, target: Dict, source: Dict) -> None:
        """
        Recursively update a dictionary. Lists are replaced, not merged.

        Args:
            target: Target dictionary to update
            source: Source dictionary with new values
        """
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._update_dict(target[key], value)
            else:
                target[key] = value

    def _override_from_env(self, config: Dict, prefix: str = ENV_PREFIX) -> None:
        """
        Override configuration with environment variables.

        Nested keys are separated by a double underscore, e.g.
        DIGESTBOT_LLM__MAX_TOKENS=2000 sets llm.max_tokens.

        Args:
            config: Configuration dictionary to update
            prefix: Prefix for environment variables
        """
        for key, value in os.environ.items():
            if not key.startswith(prefix) or key == CONFIG_PATH_ENV:
                continue
            parts = key[len(prefix):].lower().split('__')

            # Navigate to the right place in the config
            current = config
            for part in parts[:-1]:
                if not isinstance(current.get(part), dict):
                    current[part] = {}
                current = current[part]

            try:
                # Try to parse as JSON
                current[parts[-1]] = json.loads(value)
            except json.JSONDecodeError:
                # If not valid JSON, use as string
                current[parts[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: Dot-separated key path (e.g., 'store.path')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        current = self.config
        for part in key.split('.'):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current

    def llm(self) -> LLMConfig:
        return LLMConfig.from_dict(self.get("llm", {}))

    def source_groups(self) -> List[SourceGroupConfig]:
        return [SourceGroupConfig.from_dict(item) for item in self.get("sources.groups", [])]

    def notification_groups(self) -> List[NotificationGroupConfig]:
        return [NotificationGroupConfig.from_dict(item) for item in self.get("notifications.groups", [])]

    def scheduler(self) -> SchedulerConfig:
        return SchedulerConfig(
            enabled=bool(self.get("scheduler.enabled", True)),
            cron=str(self.get("scheduler.cron", "0 6 * * *")),
            retention_days=int(self.get("store.retention_days", 7)),
        )


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from a file, falling back to DIGESTBOT_CONFIG_PATH.

    Args:
        config_path: Optional path to a YAML or JSON file

    Returns:
        Config instance
    """
    return Config(config_path or os.getenv(CONFIG_PATH_ENV))
