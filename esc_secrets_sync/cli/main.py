"""CLI entrypoint for esc-secrets-sync."""
import os
import sys
import argparse
import logging

from .validators import validate_environment_name, validate_secret_names

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    """Log to stderr; stdout is reserved for YAML output and runner commands."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        stream=sys.stderr,
    )


def _split_names(value):
    if value is None:
        return None
    return {name.strip() for name in value.split(",") if name.strip()}


def _overrides_from_args(args) -> dict:
    """Map parsed arguments onto config keys (action input spelling)."""
    return {
        "organization": args.organization,
        "repository": args.repository,
        "org-environment": args.org_environment,
        "repo-environment": args.repo_environment,
        "github-token": args.github_token,
        "github-secrets": args.github_secrets,
        "github-secrets-file": args.github_secrets_file,
        "exclude-secrets": args.exclude_secrets,
        "secret-mode": args.secret_mode,
        "export-organization-secrets": args.export_organization_secrets,
        "cloud-url": args.cloud_url,
        "oidc-auth": args.oidc_auth,
        "oidc-requested-token-type": args.oidc_requested_token_type,
        "oidc-scope": args.oidc_scope,
        "oidc-token-expiration": args.oidc_token_expiration,
    }


def _load(args):
    from esc_secrets_sync.secrets.domains.config_loader import load_config

    for name in (args.org_environment, args.repo_environment):
        if name:
            validate_environment_name(name)
    if args.exclude_secrets:
        validate_secret_names(_split_names(args.exclude_secrets))

    return load_config(_overrides_from_args(args), config_path=args.config)


def _github_client(config):
    from esc_secrets_sync.secrets.domains.config_loader import ConfigError
    from esc_secrets_sync.secrets.domains.github_client import GitHubSecretsClient

    if not config.github_token:
        raise ConfigError("Missing required setting 'github-token'")
    return GitHubSecretsClient(config.github_token, api_url=config.github_api_url)


def cmd_version(args):
    """Show version information."""
    print(f"esc-secrets-sync {VERSION}")


def cmd_sync(args):
    """Sync GitHub secrets into the organization and repository ESC environments."""
    from esc_secrets_sync.secrets.domains.auth import resolve_access_token
    from esc_secrets_sync.secrets.domains.esc_client import EscClient
    from esc_secrets_sync.secrets.workflows.sync_operations import run_sync

    config = _load(args)

    with _github_client(config) as github:
        if args.dry_run:
            result = run_sync(config, github, dry_run=True)
        else:
            access_token = resolve_access_token(config, os.environ)
            with EscClient(access_token, cloud_url=config.cloud_url) as esc:
                result = run_sync(config, github, esc)

    if args.dry_run:
        _print_documents(config, result)
        return

    if result.org_updated:
        print(f"Updated {config.org_qualified_name}")
    if result.repo_updated:
        print(f"Updated {config.repo_qualified_name}")
    if not (result.org_updated or result.repo_updated):
        print("Nothing to update")


def cmd_render(args):
    """Print the environment definitions without writing them."""
    from esc_secrets_sync.secrets.workflows.sync_operations import (
        ScopeSets,
        collect_scope_sets,
        render_environments,
    )

    config = _load(args)

    given = [_split_names(args.org_secrets), _split_names(args.repo_secrets), _split_names(args.repo_org_secrets)]
    if all(names is not None for names in given):
        scopes = ScopeSets(*(frozenset(names) for names in given))
    elif any(names is not None for names in given):
        print("Error: --org-secrets, --repo-secrets and --repo-org-secrets must be given together", file=sys.stderr)
        sys.exit(2)
    else:
        with _github_client(config) as github:
            scopes = collect_scope_sets(config, github)

    _print_documents(config, render_environments(config, scopes))


def _print_documents(config, result):
    # Names only go to stderr so stdout stays valid YAML
    if result.org_yaml is None and result.repo_yaml is None:
        print("Nothing to update", file=sys.stderr)
        return
    documents = []
    if result.org_yaml is not None:
        print(f"# {config.org_qualified_name}", file=sys.stderr)
        documents.append(result.org_yaml)
    if result.repo_yaml is not None:
        print(f"# {config.repo_qualified_name}", file=sys.stderr)
        documents.append(result.repo_yaml)
    print("---\n".join(documents), end="")


def _add_config_arguments(parser):
    parser.add_argument(
        "--config",
        help="YAML settings file (keys use action input names, e.g. org-environment)"
    )
    parser.add_argument(
        "--organization",
        help="Pulumi organization that owns the ESC environments"
    )
    parser.add_argument(
        "--repository",
        help="GitHub repository as owner/repo (default: GITHUB_REPOSITORY)"
    )
    parser.add_argument(
        "--org-environment",
        help="Organization environment as project/name (default: github-secrets/<owner>)"
    )
    parser.add_argument(
        "--repo-environment",
        help="Repository environment as project/name (default: github-secrets/<owner>-<repo>)"
    )
    parser.add_argument(
        "--github-token",
        help="Token used to list secrets (default: INPUT_GITHUB-TOKEN or GITHUB_TOKEN)"
    )
    parser.add_argument(
        "--github-secrets",
        help="JSON object of secret values (toJSON(secrets)); prefer --github-secrets-file to keep values out of the process list"
    )
    parser.add_argument(
        "--github-secrets-file",
        help="File holding the JSON object of secret values (toJSON(secrets))"
    )
    parser.add_argument(
        "--exclude-secrets",
        help="Comma separated secret names never copied into ESC"
    )
    parser.add_argument(
        "--secret-mode",
        choices=["structured", "plain"],
        help="Write values as fn::secret objects (structured, default) or plain strings"
    )
    parser.add_argument(
        "--export-organization-secrets",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Fail instead of skipping the organization environment when checks do not pass"
    )
    parser.add_argument(
        "--cloud-url",
        help="Pulumi Cloud URL (default: https://api.pulumi.com)"
    )
    parser.add_argument(
        "--oidc-auth",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Exchange the GitHub OIDC token for a Pulumi token"
    )
    parser.add_argument(
        "--oidc-requested-token-type",
        help="Pulumi token type requested during OIDC exchange"
    )
    parser.add_argument(
        "--oidc-scope",
        help="Scope requested during OIDC exchange"
    )
    parser.add_argument(
        "--oidc-token-expiration",
        type=int,
        help="Lifetime of the exchanged token in seconds"
    )


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (policy check failed, authentication, network, upload diagnostics)
        2 - Usage errors (invalid arguments, invalid secret or environment names)
    """
    parser = argparse.ArgumentParser(
        prog="esc-secrets-sync",
        description="Sync GitHub Actions secrets into Pulumi ESC environments",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (policy check failed, authentication, network, upload diagnostics)
  2 - Usage error (invalid arguments, invalid secret or environment names)

Environment variables:
  GITHUB_REPOSITORY   - owner/repo of the source repository
  PULUMI_ACCESS_TOKEN - Pulumi token (unless --oidc-auth is used)
  INPUT_<NAME>        - GitHub Action inputs, e.g. INPUT_ORG-ENVIRONMENT
        """
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log progress to stderr"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # version command
    _version_parser = subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of esc-secrets-sync"
    )

    # sync command
    sync_parser = subparsers.add_parser(
        "sync",
        help="Sync secrets into ESC environments",
        description="""
List organization and repository secrets on GitHub, decide which ESC
environments to update and upload their definitions.

The organization environment is updated only when this repository can see
every organization secret and overrides none of them. With
--export-organization-secrets either problem fails the run instead.
        """
    )
    _add_config_arguments(sync_parser)
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the YAML documents instead of uploading them"
    )

    # render command
    render_parser = subparsers.add_parser(
        "render",
        help="Print environment definitions",
        description="""
Compute the environment definitions and print them as YAML. ESC is never
contacted. Secret names are fetched from GitHub unless all of
--org-secrets, --repo-secrets and --repo-org-secrets are given.
        """
    )
    _add_config_arguments(render_parser)
    render_parser.add_argument("--org-secrets", help="Comma separated organization secret names")
    render_parser.add_argument("--repo-secrets", help="Comma separated repository secret names")
    render_parser.add_argument(
        "--repo-org-secrets",
        help="Comma separated organization secret names visible to the repository"
    )

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    # If no command provided, show help and exit with usage error code
    if not args.command:
        parser.print_help()
        sys.exit(2)

    # Route to command handlers
    try:
        if args.command == "version":
            cmd_version(args)
        elif args.command == "sync":
            cmd_sync(args)
        elif args.command == "render":
            cmd_render(args)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
