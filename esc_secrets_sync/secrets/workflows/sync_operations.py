"""Workflow for syncing GitHub secrets into ESC environments."""
import logging
from dataclasses import dataclass
from typing import FrozenSet, Optional

from ..domains.config_loader import SyncConfig
from ..domains.esc_client import EscClient
from ..domains.github_client import GitHubSecretsClient
from ..domains.models import ReconcileRequest
from ..domains.reconciler import make_environments
from ..domains.serializer import serialize_definition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeSets:
    """Secret names observed at each GitHub scope."""
    org_secret_names: FrozenSet[str]
    repo_secret_names: FrozenSet[str]
    repo_visible_org_secret_names: FrozenSet[str]


@dataclass
class SyncResult:
    """What a sync run produced and whether it was uploaded."""
    org_yaml: Optional[str] = None
    repo_yaml: Optional[str] = None
    org_updated: bool = False
    repo_updated: bool = False


def collect_scope_sets(config: SyncConfig, github: GitHubSecretsClient) -> ScopeSets:
    """
    Fetch all three secret name sets, fully paginated.

    The repository owner is the GitHub organization.
    """
    return ScopeSets(
        org_secret_names=frozenset(github.list_org_secret_names(config.owner)),
        repo_secret_names=frozenset(github.list_repo_secret_names(config.owner, config.repo)),
        repo_visible_org_secret_names=frozenset(
            github.list_repo_org_secret_names(config.owner, config.repo)
        ),
    )


def build_request(config: SyncConfig, scopes: ScopeSets) -> ReconcileRequest:
    """Combine config and observed scopes into reconciler input."""
    return ReconcileRequest(
        secrets=dict(config.github_secrets),
        org_secret_names=scopes.org_secret_names,
        repo_secret_names=scopes.repo_secret_names,
        repo_visible_org_secret_names=scopes.repo_visible_org_secret_names,
        org_import_name=config.org_qualified_name,
        export_organization_secrets=config.export_organization_secrets,
        excluded_secret_names=config.exclude_secrets,
        secret_mode=config.secret_mode,
    )


def render_environments(config: SyncConfig, scopes: ScopeSets) -> SyncResult:
    """
    Reconcile and serialize without touching ESC.

    Raises:
        ReconcileError: In export mode when a visibility or override check fails
    """
    result = make_environments(build_request(config, scopes))
    return SyncResult(
        org_yaml=serialize_definition(result.org_definition) if result.org_definition else None,
        repo_yaml=serialize_definition(result.repo_definition) if result.repo_definition else None,
    )


def run_sync(
    config: SyncConfig,
    github: GitHubSecretsClient,
    esc: Optional[EscClient] = None,
    dry_run: bool = False,
) -> SyncResult:
    """
    Sync secrets from GitHub into the organization and repository environments.

    Args:
        config: Resolved settings
        github: Client used to enumerate secret names
        esc: Client used to write environments (unused when dry_run)
        dry_run: Only compute the YAML documents

    Returns:
        SyncResult describing the documents and which ones were uploaded

    Raises:
        ReconcileError: Export mode policy violation; nothing is written
        GitHubAPIError: Secret enumeration failed
        EscAPIError: Environment creation or upload failed
    """
    scopes = collect_scope_sets(config, github)
    logger.info(
        f"Found {len(scopes.org_secret_names)} organization secrets, "
        f"{len(scopes.repo_secret_names)} repository secrets, "
        f"{len(scopes.repo_visible_org_secret_names)} organization secrets visible to {config.owner}/{config.repo}"
    )

    result = render_environments(config, scopes)
    if dry_run:
        logger.info("Dry run: no environments were written")
        return result
    if esc is None:
        raise ValueError("An ESC client is required unless dry_run is set")

    if result.org_yaml is not None:
        esc.upsert_environment(
            config.organization, config.org_project, config.org_environment, result.org_yaml
        )
        result.org_updated = True
    elif result.repo_yaml is not None:
        # The repository environment imports the organization one, so it must exist
        esc.ensure_environment(config.organization, config.org_project, config.org_environment)

    if result.repo_yaml is not None:
        esc.upsert_environment(
            config.organization, config.repo_project, config.repo_environment, result.repo_yaml
        )
        result.repo_updated = True

    return result
