"""GitHub Actions secrets API client."""
import logging
from typing import Optional, Set

import httpx

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class GitHubAPIError(Exception):
    """GitHub API request failed."""
    pass


class GitHubSecretsClient:
    """Lists secret names visible at organization and repository scope."""

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        self._client = client or httpx.Client(base_url=api_url, timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def __enter__(self) -> "GitHubSecretsClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _collect_secret_names(self, path: str) -> Set[str]:
        """
        Page through a secrets listing until an empty page comes back.

        Args:
            path: API path of the listing endpoint

        Returns:
            Every secret name across all pages

        Raises:
            GitHubAPIError: On transport failure, a non-2xx response or a malformed body
        """
        names: Set[str] = set()
        page = 1
        while True:
            try:
                response = self._client.get(
                    path,
                    headers=self._headers,
                    params={"page": page, "per_page": PAGE_SIZE},
                )
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"Request to {path} failed: {e}") from e

            if response.status_code != 200:
                raise GitHubAPIError(
                    f"Listing secrets at {path} failed: {response.status_code} {response.reason_phrase}"
                )

            try:
                body = response.json()
            except ValueError as e:
                raise GitHubAPIError(f"Listing secrets at {path} returned a non-JSON body") from e
            if not isinstance(body, dict):
                raise GitHubAPIError(f"Listing secrets at {path} returned an unexpected {type(body).__name__} body")

            secrets = body.get("secrets") or []
            if not secrets:
                break
            names.update(secret["name"] for secret in secrets)
            page += 1

        logger.debug(f"Found {len(names)} secrets at {path}")
        return names

    def list_org_secret_names(self, org: str) -> Set[str]:
        """Names of all secrets defined at organization scope."""
        return self._collect_secret_names(f"/orgs/{org}/actions/secrets")

    def list_repo_secret_names(self, owner: str, repo: str) -> Set[str]:
        """Names of all secrets defined at repository scope."""
        return self._collect_secret_names(f"/repos/{owner}/{repo}/actions/secrets")

    def list_repo_org_secret_names(self, owner: str, repo: str) -> Set[str]:
        """Names of organization secrets shared with this repository."""
        return self._collect_secret_names(f"/repos/{owner}/{repo}/actions/organization-secrets")
