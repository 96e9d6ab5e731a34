"""Pulumi access token resolution: static token or GitHub OIDC exchange."""
import logging
import sys
from dataclasses import dataclass
from typing import Mapping, Optional

import httpx

from .config_loader import ConfigError, SyncConfig

logger = logging.getLogger(__name__)

TOKEN_EXCHANGE_GRANT = "urn:ietf:params:oauth:grant-type:token-exchange"
ID_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id_token"
SUPPORTED_TOKEN_TYPES = (
    "urn:pulumi:token-type:access_token:organization",
    "urn:pulumi:token-type:access_token:team",
    "urn:pulumi:token-type:access_token:personal",
)


class AuthError(Exception):
    """Could not obtain a Pulumi access token."""
    pass


@dataclass(frozen=True)
class OidcLoginConfig:
    """Parameters for exchanging a GitHub ID token for a Pulumi token."""
    organization: str
    requested_token_type: str
    scope: Optional[str] = None
    expiration: Optional[int] = None
    cloud_url: str = "https://api.pulumi.com"

    def __post_init__(self):
        if not self.organization:
            raise ConfigError("OIDC login requires an organization")
        if self.requested_token_type not in SUPPORTED_TOKEN_TYPES:
            raise ConfigError(
                f"Invalid OIDC configuration: unsupported requested token type '{self.requested_token_type}'\n"
                f"Supported types: {', '.join(SUPPORTED_TOKEN_TYPES)}"
            )
        if self.expiration is not None and self.expiration <= 0:
            raise ConfigError("Invalid OIDC configuration: token expiration must be a positive number of seconds")

    @property
    def audience(self) -> str:
        return f"urn:pulumi:org:{self.organization}"


def _fetch_github_id_token(audience: str, environ: Mapping[str, str], client: httpx.Client) -> str:
    """Request an ID token from the Actions runner."""
    request_url = environ.get("ACTIONS_ID_TOKEN_REQUEST_URL")
    request_token = environ.get("ACTIONS_ID_TOKEN_REQUEST_TOKEN")
    if not request_url or not request_token:
        raise AuthError(
            "GitHub OIDC token is unavailable. Grant the workflow 'id-token: write' permission "
            "to use OIDC authentication"
        )

    try:
        response = client.get(
            request_url,
            params={"audience": audience},
            headers={"Authorization": f"Bearer {request_token}"},
        )
    except httpx.HTTPError as e:
        raise AuthError(f"Failed to request GitHub OIDC token: {e}") from e
    if response.status_code != 200:
        raise AuthError(f"Failed to request GitHub OIDC token: {response.status_code} {response.reason_phrase}")

    value = response.json().get("value")
    if not value:
        raise AuthError("GitHub OIDC token response did not contain a token")
    return value


def exchange_oidc_token(
    config: OidcLoginConfig,
    environ: Mapping[str, str],
    client: Optional[httpx.Client] = None,
) -> str:
    """
    Exchange a GitHub Actions ID token for a Pulumi access token.

    Args:
        config: OIDC login parameters
        environ: Environment holding the ACTIONS_ID_TOKEN_REQUEST_* variables
        client: HTTP client (a new one is created and closed if omitted)

    Returns:
        Pulumi access token

    Raises:
        AuthError: If either token request fails
    """
    owns_client = client is None
    client = client or httpx.Client(timeout=30.0)
    try:
        id_token = _fetch_github_id_token(config.audience, environ, client)

        form = {
            "audience": config.audience,
            "grant_type": TOKEN_EXCHANGE_GRANT,
            "subject_token_type": ID_TOKEN_TYPE,
            "requested_token_type": config.requested_token_type,
            "subject_token": id_token,
        }
        if config.scope:
            form["scope"] = config.scope
        if config.expiration:
            form["expiration"] = str(config.expiration)

        url = f"{config.cloud_url.rstrip('/')}/api/oauth/token"
        try:
            response = client.post(url, data=form)
        except httpx.HTTPError as e:
            raise AuthError(f"Pulumi OIDC token exchange failed: {e}") from e
        if response.status_code != 200:
            raise AuthError(f"Pulumi OIDC token exchange failed: {response.status_code} {response.reason_phrase}")

        access_token = response.json().get("access_token")
        if not access_token:
            raise AuthError("Pulumi OIDC token exchange returned no access token")
        logger.info(f"Exchanged GitHub OIDC token for a Pulumi token ({config.requested_token_type})")
        return access_token
    finally:
        if owns_client:
            client.close()


def mask_value(value: str, environ: Mapping[str, str]) -> None:
    """Ask the Actions runner to redact value from job logs."""
    if environ.get("GITHUB_ACTIONS") == "true":
        print(f"::add-mask::{value}", file=sys.stdout)


def resolve_access_token(
    config: SyncConfig,
    environ: Mapping[str, str],
    client: Optional[httpx.Client] = None,
) -> str:
    """
    Pick the Pulumi access token for this run.

    Priority order:
    1. OIDC exchange, when oidc-auth is on
    2. PULUMI_ACCESS_TOKEN environment variable

    Raises:
        AuthError: If no token can be obtained
        ConfigError: If the OIDC settings are invalid
    """
    access_token = environ.get("PULUMI_ACCESS_TOKEN")
    if config.oidc_auth:
        oidc_config = OidcLoginConfig(
            organization=config.organization,
            requested_token_type=config.oidc_requested_token_type or "",
            scope=config.oidc_scope,
            expiration=config.oidc_token_expiration,
            cloud_url=config.cloud_url,
        )
        access_token = exchange_oidc_token(oidc_config, environ, client=client)

    if not access_token:
        raise AuthError(
            "A Pulumi Access Token is required. Please set the PULUMI_ACCESS_TOKEN environment "
            "variable or configure OIDC authentication"
        )

    mask_value(access_token, environ)
    return access_token
