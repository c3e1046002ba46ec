# ProjectHub configuration
# Settings come from config/projecthub.yaml; PROJECTHUB_* env vars override.

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .auth import AuthProvider, AuthSession, LocalAuthProvider, RestAuthProvider
from .client import DataService, RestDataService
from .store import SqliteDataService

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "projecthub.yaml"

BACKENDS = ("sqlite", "rest")

ENV_OVERRIDES = {
    "PROJECTHUB_DB": "db_path",
    "PROJECTHUB_URL": "url",
    "PROJECTHUB_API_KEY": "api_key",
}


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class HubConfig:
    """Runtime configuration shared by the bot and the server."""

    # Data service: "sqlite" (local file) or "rest" (hosted / hub_server.py)
    backend: str = "sqlite"
    db_path: str = "~/.local/share/projecthub/projecthub.db"
    url: str = ""
    api_key: str = ""
    timeout: float = 10.0

    # hub_server.py
    server_host: str = "127.0.0.1"
    server_port: int = 54321

    # Telegram bot section (token_env, allowed_users, audit_log)
    bot: Dict[str, Any] = field(default_factory=dict)

    def resolve_paths(self):
        self.db_path = str(Path(self.db_path).expanduser())

    def validate(self):
        if self.backend not in BACKENDS:
            raise ConfigError(
                f"Unknown backend '{self.backend}'. Available: {', '.join(BACKENDS)}"
            )
        if self.backend == "rest":
            if not self.url:
                raise ConfigError("backend 'rest' needs url (or PROJECTHUB_URL)")
            if not self.api_key:
                raise ConfigError("backend 'rest' needs api_key (or PROJECTHUB_API_KEY)")
        try:
            self.timeout = float(self.timeout)
            self.server_port = int(self.server_port)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid number in config: {e}")

    @property
    def allowed_users(self) -> List[str]:
        return [str(uid) for uid in self.bot.get("allowed_users", [])]

    @classmethod
    def load(cls, path: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> "HubConfig":
        """Load config from YAML, falling back to defaults when the file is absent."""
        cfg_path = Path(path) if path else CONFIG_PATH
        data: Dict[str, Any] = {}
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}")
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
        elif path:
            raise ConfigError(f"Config file not found: {cfg_path}")

        server = data.pop("server", None) or {}
        if "host" in server:
            data["server_host"] = server["host"]
        if "port" in server:
            data["server_port"] = server["port"]

        cfg = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

        env = os.environ if env is None else env
        for var, attr in ENV_OVERRIDES.items():
            if env.get(var):
                setattr(cfg, attr, env[var])

        cfg.resolve_paths()
        cfg.validate()
        logger.debug(f"Loaded config from {cfg_path} (backend={cfg.backend})")
        return cfg


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Factories
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def build_auth_provider(cfg: HubConfig) -> AuthProvider:
    if cfg.backend == "rest":
        return RestAuthProvider(cfg.url, cfg.api_key, timeout=cfg.timeout)
    return LocalAuthProvider(cfg.db_path)


def build_data_service(cfg: HubConfig, auth: AuthSession) -> DataService:
    """
    Data service acting as the session's signed-in user.

    The SQLite backend is scoped to the user's rows; the REST backend sends the
    user's access token and leaves scoping to the server.
    """
    if cfg.backend == "rest":
        return RestDataService(
            cfg.url, cfg.api_key, access_token=auth.access_token, timeout=cfg.timeout
        )
    owner_id = auth.user.id if auth.user else None
    return SqliteDataService(cfg.db_path, owner_id=owner_id)
