"""Test suite for the end-to-end sync workflow."""
import json
from dataclasses import replace
from unittest import mock

import httpx
import pytest
import yaml

from esc_secrets_sync.secrets.domains.config_loader import SyncConfig
from esc_secrets_sync.secrets.domains.esc_client import EscAPIError, EscClient
from esc_secrets_sync.secrets.domains.github_client import GitHubSecretsClient
from esc_secrets_sync.secrets.domains.models import OverrideViolation, SecretMode, VisibilityViolation
from esc_secrets_sync.secrets.workflows import sync_operations


@pytest.fixture
def config():
    return SyncConfig(
        organization="acme-pulumi",
        owner="acme",
        repo="widgets",
        org_project="github-secrets",
        org_environment="acme",
        repo_project="github-secrets",
        repo_environment="acme-widgets",
        github_token="ghs_example",
        github_secrets={"FOO": "f", "BAR": "b", "GITHUB_TOKEN": "t"},
        exclude_secrets=frozenset({"GITHUB_TOKEN"}),
    )


def make_github(org, repo, visible):
    github = mock.create_autospec(GitHubSecretsClient, instance=True)
    github.list_org_secret_names.return_value = set(org)
    github.list_repo_secret_names.return_value = set(repo)
    github.list_repo_org_secret_names.return_value = set(visible)
    return github


@pytest.fixture
def esc():
    return mock.create_autospec(EscClient, instance=True)


class TestCollectScopeSets:
    """Test suite for collect_scope_sets."""

    def test_queries_owner_and_repo(self, config):
        github = make_github({"FOO"}, {"BAR", "GITHUB_TOKEN"}, {"FOO"})
        scopes = sync_operations.collect_scope_sets(config, github)

        github.list_org_secret_names.assert_called_once_with("acme")
        github.list_repo_secret_names.assert_called_once_with("acme", "widgets")
        github.list_repo_org_secret_names.assert_called_once_with("acme", "widgets")
        assert scopes.org_secret_names == frozenset({"FOO"})
        assert scopes.repo_secret_names == frozenset({"BAR", "GITHUB_TOKEN"})


class TestRunSync:
    """Test suite for run_sync."""

    def test_updates_both_environments(self, config, esc):
        """Test that org is upserted before repo."""
        github = make_github({"FOO"}, {"BAR", "GITHUB_TOKEN"}, {"FOO"})
        result = sync_operations.run_sync(config, github, esc)

        assert result.org_updated and result.repo_updated
        assert esc.method_calls == [
            mock.call.upsert_environment("acme-pulumi", "github-secrets", "acme", result.org_yaml),
            mock.call.upsert_environment("acme-pulumi", "github-secrets", "acme-widgets", result.repo_yaml),
        ]
        assert yaml.safe_load(result.repo_yaml) == {
            "imports": ["github-secrets/acme"],
            "values": {"environmentVariables": {"BAR": {"fn::secret": "b"}}},
        }

    def test_import_mode_violation_updates_repo_only(self, config, esc):
        """Test that a hidden org secret skips only the org environment."""
        github = make_github({"FOO", "HIDDEN"}, {"BAR"}, {"FOO"})
        result = sync_operations.run_sync(config, github, esc)

        assert result.org_yaml is None
        assert not result.org_updated
        assert result.repo_updated
        # Org environment still ensured because the repo imports it
        assert esc.method_calls == [
            mock.call.ensure_environment("acme-pulumi", "github-secrets", "acme"),
            mock.call.upsert_environment("acme-pulumi", "github-secrets", "acme-widgets", result.repo_yaml),
        ]

    def test_each_environment_created_once(self, config):
        """Test that a full run sends one create request per environment."""
        calls = []

        def handler(request):
            calls.append((request.method, request.url.path, request.content))
            return httpx.Response(409 if request.method == "POST" else 200)

        esc = EscClient(
            "pul-example",
            client=httpx.Client(transport=httpx.MockTransport(handler), base_url="https://api.pulumi.com"),
        )
        sync_operations.run_sync(config, make_github({"FOO"}, {"BAR"}, {"FOO"}), esc)

        creates = [json.loads(content) for method, _, content in calls if method == "POST"]
        assert creates == [
            {"project": "github-secrets", "name": "acme"},
            {"project": "github-secrets", "name": "acme-widgets"},
        ]
        assert [path for method, path, _ in calls if method == "PATCH"] == [
            "/api/esc/environments/acme-pulumi/github-secrets/acme",
            "/api/esc/environments/acme-pulumi/github-secrets/acme-widgets",
        ]

    @pytest.mark.parametrize("org,repo,visible,error", [
        ({"FOO"}, {"BAR"}, set(), VisibilityViolation),
        ({"FOO"}, {"FOO", "BAR"}, {"FOO"}, OverrideViolation),
    ])
    def test_export_mode_violation_touches_nothing(self, config, esc, org, repo, visible, error):
        """Test that export mode failures abort before any write."""
        config = replace(config, export_organization_secrets=True)

        with pytest.raises(error):
            sync_operations.run_sync(config, make_github(org, repo, visible), esc)

        assert esc.method_calls == []

    def test_nothing_to_write_when_org_skipped_and_repo_empty(self, config, esc):
        github = make_github({"FOO"}, {"FOO"}, {"FOO"})
        config = replace(config, github_secrets={})
        result = sync_operations.run_sync(config, github, esc)

        assert result.org_yaml is None and result.repo_yaml is None
        assert esc.method_calls == []

    def test_upload_failure_propagates(self, config, esc):
        esc.upsert_environment.side_effect = EscAPIError("updating github-secrets/acme:\n\nbad")
        github = make_github({"FOO"}, {"BAR"}, {"FOO"})

        with pytest.raises(EscAPIError):
            sync_operations.run_sync(config, github, esc)

        assert esc.upsert_environment.call_count == 1

    def test_dry_run_writes_nothing(self, config, esc):
        github = make_github({"FOO"}, {"BAR"}, {"FOO"})
        result = sync_operations.run_sync(config, github, esc, dry_run=True)

        assert result.org_yaml is not None and result.repo_yaml is not None
        assert not result.org_updated and not result.repo_updated
        assert esc.method_calls == []

    def test_requires_esc_client(self, config):
        with pytest.raises(ValueError):
            sync_operations.run_sync(config, make_github({"FOO"}, {"BAR"}, {"FOO"}))

    def test_plain_mode(self, config, esc):
        config = replace(config, secret_mode=SecretMode.PLAIN)
        result = sync_operations.run_sync(config, make_github({"FOO"}, {"BAR"}, {"FOO"}), esc)

        assert yaml.safe_load(result.org_yaml) == {"values": {"environmentVariables": {"FOO": "f"}}}
