"""Configuration loader for esc-secrets-sync."""
import json
import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple
import yaml

from .models import SecretMode

logger = logging.getLogger(__name__)

DEFAULT_CLOUD_URL = "https://api.pulumi.com"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_PROJECT = "default"
DEFAULT_ENV_PROJECT = "github-secrets"

_TRUE_VALUES = {"true", "yes", "1", "on"}
_FALSE_VALUES = {"false", "no", "0", "off", ""}


class ConfigError(Exception):
    """Configuration error exception."""
    pass


@dataclass(frozen=True)
class SyncConfig:
    """Resolved settings for one sync run."""
    organization: str
    owner: str
    repo: str
    org_project: str
    org_environment: str
    repo_project: str
    repo_environment: str
    github_token: Optional[str] = None
    github_secrets: Dict[str, str] = field(default_factory=dict)
    exclude_secrets: FrozenSet[str] = frozenset()
    secret_mode: SecretMode = SecretMode.STRUCTURED
    export_organization_secrets: bool = False
    cloud_url: str = DEFAULT_CLOUD_URL
    github_api_url: str = DEFAULT_GITHUB_API_URL
    oidc_auth: bool = False
    oidc_requested_token_type: Optional[str] = None
    oidc_scope: Optional[str] = None
    oidc_token_expiration: Optional[int] = None

    @property
    def org_qualified_name(self) -> str:
        return f"{self.org_project}/{self.org_environment}"

    @property
    def repo_qualified_name(self) -> str:
        return f"{self.repo_project}/{self.repo_environment}"


def parse_env_name(qualified_name: str) -> Tuple[str, str]:
    """
    Split a qualified environment name into project and environment.

    Args:
        qualified_name: 'project/environment' or bare 'environment'

    Returns:
        (project, environment); a bare name lands in the 'default' project
    """
    project, slash, name = qualified_name.partition("/")
    if not slash:
        return DEFAULT_PROJECT, qualified_name
    return project, name


def parse_bool(value: Any, name: str) -> bool:
    """Interpret an action-style boolean input."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"Invalid boolean for '{name}': {value!r} (expected true or false)")


def parse_secret_names(value: Any) -> FrozenSet[str]:
    """Parse a comma/newline separated list (or YAML list) of secret names."""
    if value is None:
        return frozenset()
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [str(v) for v in value]
    else:
        items = str(value).replace("\n", ",").split(",")
    return frozenset(item.strip() for item in items if item.strip())


def parse_github_secrets(text: str) -> Dict[str, str]:
    """
    Parse the JSON object of secret values (``toJSON(secrets)``).

    Raises:
        ConfigError: If the text is not a JSON object of strings
    """
    try:
        secrets = json.loads(text)
    except json.JSONDecodeError as e:
        # Position only; never echo the payload
        raise ConfigError(f"Failed to parse github-secrets as JSON (line {e.lineno}, column {e.colno})")

    if not isinstance(secrets, dict):
        raise ConfigError("github-secrets must be a JSON object mapping secret names to values")

    for key, value in secrets.items():
        if not isinstance(value, str):
            raise ConfigError(f"Value of secret '{key}' must be a string")
    return secrets


def _read_config_file(config_path: str) -> Dict[str, Any]:
    """Load optional YAML settings file."""
    if not os.path.exists(config_path):
        raise ConfigError(f"Configuration file not found at: {config_path}")

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        # The file may hold github-secrets; report the position, not the text
        mark = getattr(e, "problem_mark", None)
        if mark is None:
            raise ConfigError(f"Failed to parse YAML config at {config_path}")
        raise ConfigError(
            f"Failed to parse YAML config at {config_path} (line {mark.line + 1}, column {mark.column + 1})"
        )
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigError(f"Config file at {config_path} must contain a mapping")

    logger.info(f"Loaded settings from {config_path}")
    return config


def _action_inputs(environ: Mapping[str, str]) -> Dict[str, str]:
    """
    Collect GitHub Action inputs from the environment.

    The runner exposes input 'org-environment' as INPUT_ORG-ENVIRONMENT.
    """
    inputs = {}
    for key, value in environ.items():
        if key.startswith("INPUT_") and value != "":
            inputs[key[len("INPUT_"):].lower()] = value
    return inputs


def load_config(
    overrides: Optional[Mapping[str, Any]] = None,
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SyncConfig:
    """
    Resolve the sync configuration.

    Precedence, highest first: overrides (CLI arguments), action inputs
    (INPUT_* environment variables), the YAML config file, defaults.
    Keys use the action input spelling, e.g. 'org-environment'.

    Args:
        overrides: Explicit settings; None values are ignored
        config_path: Optional YAML settings file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        SyncConfig

    Raises:
        ConfigError: If a required setting is missing or malformed
    """
    environ = os.environ if environ is None else environ

    settings: Dict[str, Any] = {}
    if config_path:
        settings.update(_read_config_file(config_path))
    settings.update(_action_inputs(environ))
    settings.update({k: v for k, v in (overrides or {}).items() if v is not None})

    def require(key: str) -> Any:
        value = settings.get(key)
        if value in (None, ""):
            raise ConfigError(f"Missing required setting '{key}'")
        return value

    repository = settings.get("repository") or environ.get("GITHUB_REPOSITORY")
    if not repository or "/" not in repository:
        raise ConfigError(
            "Repository not set. Pass --repository owner/repo or set GITHUB_REPOSITORY"
        )
    owner, repo = repository.split("/", 1)

    org_project, org_environment = parse_env_name(
        settings.get("org-environment") or f"{DEFAULT_ENV_PROJECT}/{owner}"
    )
    repo_project, repo_environment = parse_env_name(
        settings.get("repo-environment") or f"{DEFAULT_ENV_PROJECT}/{owner}-{repo}"
    )

    # A secrets file wins over inline secrets
    if settings.get("github-secrets-file"):
        path = Path(settings["github-secrets-file"])
        try:
            github_secrets = parse_github_secrets(path.read_text())
        except OSError as e:
            raise ConfigError(f"Failed to read secrets file {path}: {e}")
    elif "github-secrets" in settings:
        github_secrets = settings["github-secrets"]
        if not isinstance(github_secrets, str):
            github_secrets = json.dumps(github_secrets, default=str)
        github_secrets = parse_github_secrets(github_secrets)
    else:
        raise ConfigError("Missing required setting 'github-secrets'")

    mode_name = str(settings.get("secret-mode") or SecretMode.STRUCTURED.value).lower()
    try:
        secret_mode = SecretMode(mode_name)
    except ValueError:
        raise ConfigError(
            f"Unsupported secret-mode: {mode_name}\n"
            f"Choose one of: {', '.join(m.value for m in SecretMode)}"
        )

    oidc_auth = parse_bool(settings.get("oidc-auth", False), "oidc-auth")
    expiration = settings.get("oidc-token-expiration")
    if expiration not in (None, ""):
        try:
            expiration = int(expiration)
        except (TypeError, ValueError):
            raise ConfigError(f"oidc-token-expiration must be an integer, got {expiration!r}")
    else:
        expiration = None

    config = SyncConfig(
        organization=require("organization"),
        owner=owner,
        repo=repo,
        org_project=org_project,
        org_environment=org_environment,
        repo_project=repo_project,
        repo_environment=repo_environment,
        github_token=settings.get("github-token") or environ.get("GITHUB_TOKEN") or None,
        github_secrets=github_secrets,
        exclude_secrets=parse_secret_names(settings.get("exclude-secrets")),
        secret_mode=secret_mode,
        export_organization_secrets=parse_bool(
            settings.get("export-organization-secrets", False), "export-organization-secrets"
        ),
        cloud_url=settings.get("cloud-url") or DEFAULT_CLOUD_URL,
        github_api_url=settings.get("github-api-url") or environ.get("GITHUB_API_URL") or DEFAULT_GITHUB_API_URL,
        oidc_auth=oidc_auth,
        oidc_requested_token_type=settings.get("oidc-requested-token-type") or None,
        oidc_scope=settings.get("oidc-scope") or None,
        oidc_token_expiration=expiration,
    )

    if config.oidc_auth and not config.oidc_requested_token_type:
        raise ConfigError("Missing required setting 'oidc-requested-token-type' (needed when oidc-auth is on)")

    logger.info(f"Organization environment: {config.org_qualified_name}")
    logger.info(f"Repository environment: {config.repo_qualified_name}")
    logger.debug(f"Excluded secrets: {', '.join(sorted(config.exclude_secrets)) or '(none)'}")
    return config
