"""Decide which ESC environments to update and what they should contain."""
import logging
from typing import Dict, Mapping, Optional, Sequence, Set

from .models import (
    EnvironmentDefinition,
    OverrideViolation,
    ReconcileRequest,
    ReconcileResult,
    SecretMode,
    VisibilityViolation,
)

logger = logging.getLogger(__name__)


def _select(secrets: Mapping[str, str], names: Set[str]) -> Dict[str, str]:
    """Pick the secrets whose name is in names, ordered by name."""
    return {name: secrets[name] for name in sorted(secrets) if name in names}


def make_definition(
    secrets: Mapping[str, str],
    mode: SecretMode,
    imports: Optional[Sequence[str]] = None,
) -> EnvironmentDefinition:
    """
    Build an environment definition from already-selected secrets.

    Args:
        secrets: Secret name to value mapping
        mode: How each value is rendered
        imports: Qualified environment names to import, if any

    Returns:
        EnvironmentDefinition with names in ascending order
    """
    variables = {name: mode.wrap(secrets[name]) for name in sorted(secrets)}
    return EnvironmentDefinition(
        environment_variables=variables,
        imports=list(imports) if imports else [],
    )


def make_environments(request: ReconcileRequest) -> ReconcileResult:
    """
    Compute the organization and repository environment definitions.

    Args:
        request: Secret values, the three observed name sets and policy flags

    Returns:
        ReconcileResult; a None definition means that environment is not updated

    Raises:
        VisibilityViolation: Export mode and the repository cannot see every org secret
        OverrideViolation: Export mode and a repository secret shadows an org secret
    """
    excluded = set(request.excluded_secret_names)
    secrets = {k: v for k, v in request.secrets.items() if k not in excluded}

    org_names = set(request.org_secret_names)
    repo_names = set(request.repo_secret_names)
    visible_names = set(request.repo_visible_org_secret_names)

    # Org secrets this repository cannot read
    missing = org_names - visible_names
    has_full_visibility = not missing
    if not has_full_visibility:
        names = "\n".join(sorted(missing))
        if request.export_organization_secrets:
            logger.error(f"This repository does not have access to the following organization secrets:\n\n{names}")
            logger.error(
                "As a result, organization secrets will not be exported. Run from a repository "
                "that has access to all organization secrets in order to export them"
            )
            raise VisibilityViolation(
                f"access check failed: repository cannot see organization secrets:\n{names}",
                missing,
            )
        logger.warning(f"This repository does not have access to the following organization secrets:\n\n{names}")
        logger.warning(
            "As a result, the organization environment will not be updated. Run from a repository "
            "that has access to all organization secrets in order to update it"
        )

    overridden = org_names & repo_names
    overrides_org = bool(overridden)
    if overrides_org:
        names = "\n".join(sorted(overridden))
        if request.export_organization_secrets:
            logger.error(f"This repository overrides the following organization secrets:\n\n{names}")
            logger.error(
                "As a result, organization secrets will not be exported. Run from a repository "
                "that does not override organization secrets in order to export them"
            )
            raise OverrideViolation(
                f"override check failed: repository overrides organization secrets:\n{names}",
                overridden,
            )
        logger.warning(f"This repository overrides the following organization secrets:\n\n{names}")
        logger.warning(
            "As a result, the organization environment will not be updated. Run from a repository "
            "that does not override organization secrets in order to update it"
        )

    org_definition = None
    if has_full_visibility and not overrides_org:
        org_definition = make_definition(_select(secrets, org_names), request.secret_mode)

    repo_definition = None
    repo_secrets = _select(secrets, repo_names)
    if repo_secrets:
        # Imported even when the org environment was skipped this run
        repo_definition = make_definition(
            repo_secrets,
            request.secret_mode,
            imports=[request.org_import_name],
        )

    logger.info(
        f"Reconciled environments: organization={'update' if org_definition else 'skip'}, "
        f"repository={'update' if repo_definition else 'skip'}"
    )
    return ReconcileResult(org_definition=org_definition, repo_definition=repo_definition)
