"""
Configuration.

Settings come from a YAML file (STAGEBOT_CONFIG, default ``config.yaml``;
optional) overlaid by environment variables, and are validated with pydantic.
Any problem is a StartupConfigurationError: the process does not start.

Example::

    debug: false
    telegram:
      token: "123:abc"
    production_control:
      url: http://127.0.0.1:8080
      timeout: 5
    github:
      token: ghp_xxx
      owner: my-org
    release:
      targets:
        - name: website
          base_branch: main
        - name: infra
          owner: other-org
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import StartupConfigurationError

DEFAULT_CONFIG_PATH = "config.yaml"

# environment variable -> (section, key)
ENV_OVERRIDES = {
    "TELEGRAM_BOT_TOKEN": ("telegram", "token"),
    "PRODUCTION_CONTROL_URL": ("production_control", "url"),
    "STAGEBOT_REMOTE_TIMEOUT": ("production_control", "timeout"),
    "GITHUB_TOKEN": ("github", "token"),
    "GITHUB_OWNER": ("github", "owner"),
}


class TelegramConfig(BaseModel):
    token: str = Field(..., min_length=1)


class ProductionControlConfig(BaseModel):
    url: str = Field(..., min_length=1)
    timeout: float = Field(5.0, gt=0, le=60)
    max_retries: int = Field(3, ge=1, le=10)


class GitHubConfig(BaseModel):
    token: Optional[str] = None
    owner: Optional[str] = None
    api_url: str = "https://api.github.com"


class ReleaseTarget(BaseModel):
    """A repository operators may release from the chat."""
    name: str = Field(..., min_length=1)
    owner: Optional[str] = None
    base_branch: str = "main"


class ReleaseConfig(BaseModel):
    targets: List[ReleaseTarget] = Field(default_factory=list)
    url: Optional[str] = None

    @field_validator("targets")
    @classmethod
    def unique_names(cls, targets: List[ReleaseTarget]) -> List[ReleaseTarget]:
        seen = set()
        for target in targets:
            if target.name in seen:
                raise ValueError(f"duplicate release target: {target.name}")
            seen.add(target.name)
        return targets


class Config(BaseModel):
    """Validated process configuration."""
    debug: bool = False
    telegram: TelegramConfig
    production_control: ProductionControlConfig
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    release: ReleaseConfig = Field(default_factory=ReleaseConfig)

    @model_validator(mode="after")
    def release_needs_github(self) -> "Config":
        if self.release.targets:
            if not self.github.token:
                raise ValueError("release targets are configured but github.token is missing")
            for target in self.release.targets:
                if not self.target_owner(target):
                    raise ValueError(
                        f"release target '{target.name}' has no owner and github.owner is not set"
                    )
        return self

    def target_owner(self, target: ReleaseTarget) -> str:
        """Repository owner for a target, falling back to github.owner."""
        return target.owner or self.github.owner or ""


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise StartupConfigurationError(f"cannot parse {path}: {e}") from e
    except OSError as e:
        raise StartupConfigurationError(f"cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise StartupConfigurationError(f"{path}: top level must be a mapping")
    return data


def apply_env_overrides(data: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """Overlay environment variables onto the raw config mapping."""
    for env_key, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_key)
        if value:
            section_data = data.setdefault(section, {})
            if not isinstance(section_data, dict):
                raise StartupConfigurationError(f"config section '{section}' must be a mapping")
            section_data[key] = value

    debug = environ.get("STAGEBOT_DEBUG")
    if debug:
        data["debug"] = debug.strip().lower() in ("1", "true", "yes", "on")
    return data


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """
    Load and validate configuration.

    Args:
        path: YAML file; defaults to $STAGEBOT_CONFIG or ``config.yaml``.
              An explicitly given path must exist, the default may be absent.
        environ: environment mapping (os.environ by default)

    Raises:
        StartupConfigurationError: unreadable file or invalid settings
    """
    environ = os.environ if environ is None else environ
    explicit = path or environ.get("STAGEBOT_CONFIG")
    config_path = Path(explicit or DEFAULT_CONFIG_PATH)

    if config_path.exists():
        data = _read_yaml(config_path)
    elif explicit:
        raise StartupConfigurationError(f"config file not found: {config_path}")
    else:
        data = {}

    data = apply_env_overrides(data, environ)

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise StartupConfigurationError(f"invalid configuration:\n{e}") from e
