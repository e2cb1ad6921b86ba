"""
Configuration management for jotpad.

The configuration is stored as a TOML file in the app directory. It holds
per-provider parameters (model, base_url) and where account data lives.
Credentials for hosted AI vendors are not kept here; they belong to each
user's account settings.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w


CONFIG_FILENAME = "jotpad.toml"
CONFIG_VERSION = 1
DEFAULT_HOME = Path.home() / ".jotpad"


@dataclass
class ProviderConfig:
    """Configuration for a single AI provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class RemoteConfig:
    """
    Where account data is stored.

    backend "local" keeps accounts in a SQLite file in the app directory;
    "http" uses an account server at ``api_url``.
    """
    backend: str = "local"
    api_url: Optional[str] = None
    api_key: Optional[str] = None


@dataclass
class AppConfig:
    """Complete application configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    remote: RemoteConfig = field(default_factory=RemoteConfig)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def local_storage_path(self) -> Path:
        return self.path / "local.db"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    def provider_params(self) -> dict[str, dict]:
        """Provider id -> constructor kwargs, for the provider factory."""
        params = {name: dict(p.params) for name, p in self.providers.items()}
        ollama_host = os.environ.get("OLLAMA_HOST")
        if ollama_host:
            params.setdefault("ollama", {})["base_url"] = ollama_host
        return params


def get_home() -> Path:
    """App directory: JOTPAD_HOME, or ~/.jotpad."""
    home = os.environ.get("JOTPAD_HOME")
    if home:
        return Path(home).expanduser()
    return DEFAULT_HOME


def create_default_config(path: Path) -> AppConfig:
    """Create a new config with default providers and a local account store."""
    return AppConfig(
        path=path,
        providers={"ollama": ProviderConfig("ollama", {"model": "llama3.2"})},
    )


def _apply_env(config: AppConfig) -> AppConfig:
    """Environment overrides for the account server."""
    api_url = os.environ.get("JOTPAD_API_URL")
    if api_url:
        config.remote.backend = "http"
        config.remote.api_url = api_url
    api_key = os.environ.get("JOTPAD_API_KEY")
    if api_key:
        config.remote.api_key = api_key
    return config


def load_config(path: Path) -> AppConfig:
    """
    Load configuration from an app directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    version = data.get("jotpad", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    providers = {
        name: ProviderConfig(name=name, params=dict(section))
        for name, section in data.get("providers", {}).items()
        if isinstance(section, dict)
    }

    remote_section = data.get("remote", {})
    backend = remote_section.get("backend", "local")
    if backend not in ("local", "http"):
        raise ValueError(f"Invalid remote.backend '{backend}' in {config_path}")

    config = AppConfig(
        path=path,
        version=version,
        created=data.get("jotpad", {}).get("created", ""),
        providers=providers,
        remote=RemoteConfig(
            backend=backend,
            api_url=remote_section.get("api_url"),
            api_key=remote_section.get("api_key"),
        ),
    )
    return _apply_env(config)


def save_config(config: AppConfig) -> None:
    """
    Save configuration to the app directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    remote: dict[str, Any] = {"backend": config.remote.backend}
    if config.remote.api_url:
        remote["api_url"] = config.remote.api_url
    if config.remote.api_key:
        remote["api_key"] = config.remote.api_key

    data = {
        "jotpad": {
            "version": config.version,
            "created": config.created,
        },
        "providers": {name: dict(p.params) for name, p in config.providers.items()},
        "remote": remote,
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(path: Optional[Path] = None) -> AppConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    path = path or get_home()
    if (path / CONFIG_FILENAME).exists():
        return load_config(path)
    config = create_default_config(path)
    save_config(config)
    return _apply_env(config)
