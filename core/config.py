"""
core/config.py
Global CLI configuration: production vs development endpoints, home directory.

Resolution order (highest wins):
  1. HAUBA_* environment variables (a .env in cwd is loaded first, setdefault)
  2. <home>/config.yaml
  3. built-in production / development profiles

Users get PRODUCTION by default (hosted services). HAUBA_ENV=local,
NODE_ENV=development or HAUBA_USE_LOCAL=true switch to the local profile.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

import yaml

logger = logging.getLogger(__name__)

DAEMON_PORT = 18790
GATEWAY_PORT = 18789

PRODUCTION = {
    "environment": "production",
    "api_url": "https://api.hauba.tech",
    "api_timeout": 30.0,
    "gateway_url": "https://ws.hauba.tech",
    "gateway_ws_url": "wss://ws.hauba.tech/ws",
    "gateway_timeout": 30.0,
    "daemon_url": "https://hauba-daemon-production.up.railway.app",
}

DEVELOPMENT = {
    "environment": "development",
    "api_url": "http://localhost:3001",
    "api_timeout": 10.0,
    "gateway_url": f"http://localhost:{GATEWAY_PORT}",
    "gateway_ws_url": f"ws://localhost:{GATEWAY_PORT}/ws",
    "gateway_timeout": 10.0,
    "daemon_url": f"http://localhost:{DAEMON_PORT}",
}

_ENV_OVERRIDES = {
    "HAUBA_API_URL": "api_url",
    "HAUBA_GATEWAY_URL": "gateway_url",
    "HAUBA_GATEWAY_WS_URL": "gateway_ws_url",
    "HAUBA_DAEMON_URL": "daemon_url",
}


def hauba_home() -> str:
    """Per-user state directory: $HAUBA_HOME or ~/.hauba."""
    return os.path.abspath(os.path.expanduser(
        os.environ.get("HAUBA_HOME") or os.path.join("~", ".hauba")))


@dataclass(frozen=True)
class Paths:
    """Filesystem layout under the home directory.

    Built once per invocation and handed to the registry and supervisor.
    """
    home: str

    @property
    def pid_dir(self) -> str:
        return self.home

    @property
    def log_dir(self) -> str:
        return self.home

    @property
    def cli_log_dir(self) -> str:
        return os.path.join(self.home, "logs")

    @property
    def config_file(self) -> str:
        return os.path.join(self.home, "config.yaml")

    @property
    def gateway_config(self) -> str:
        return os.path.join(self.home, "gateway.yaml")

    def log_file(self, service: str) -> str:
        return os.path.join(self.log_dir, f"{service}.log")

    def ensure(self):
        os.makedirs(self.home, exist_ok=True)

    @classmethod
    def default(cls) -> "Paths":
        return cls(home=hauba_home())


@dataclass
class HaubaConfig:
    environment: str
    api_url: str
    api_timeout: float
    gateway_url: str
    gateway_ws_url: str
    gateway_timeout: float
    daemon_url: str
    paths: Paths = field(default_factory=Paths.default)

    @property
    def is_local(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def environment_display(self) -> str:
        if self.is_production:
            return "Connected to Hauba Cloud"
        return "Local Development Mode"


def load_dotenv(path: str = ".env") -> int:
    """Load KEY=VALUE pairs from *path* into os.environ without clobbering.

    Accepts an optional ``export`` prefix and single/double quoted values.
    Returns the number of keys that were newly set.
    """
    if not os.path.isfile(path):
        return 0

    added = 0
    with open(path, encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            if line.startswith("export "):
                line = line[len("export "):]
            key, _, value = line.partition("=")
            key, value = key.strip(), value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
                value = value[1:-1]
            if key and key not in os.environ:
                os.environ[key] = value
                added += 1
    return added


def _read_yaml(path: str) -> dict:
    if not os.path.isfile(path):
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def _wants_local(file_env: str = "") -> bool:
    env = os.environ.get("HAUBA_ENV") or os.environ.get("NODE_ENV") or file_env
    return (env in ("local", "development")
            or os.environ.get("HAUBA_USE_LOCAL", "").lower() == "true")


def get_config(paths: Paths | None = None) -> HaubaConfig:
    """Build the active configuration for this invocation."""
    paths = paths or Paths.default()
    overrides = _read_yaml(paths.config_file)

    base = dict(DEVELOPMENT if _wants_local(str(overrides.get("environment", "")))
                else PRODUCTION)
    for key in ("api_url", "api_timeout", "gateway_url", "gateway_ws_url",
                "gateway_timeout", "daemon_url"):
        if key in overrides:
            base[key] = overrides[key]
    for env_var, key in _ENV_OVERRIDES.items():
        if os.environ.get(env_var):
            base[key] = os.environ[env_var]

    base["api_timeout"] = float(base["api_timeout"])
    base["gateway_timeout"] = float(base["gateway_timeout"])
    return HaubaConfig(paths=paths, **base)
