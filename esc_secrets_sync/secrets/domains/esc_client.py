"""Pulumi ESC environments API client."""
import logging
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)


class EscAPIError(Exception):
    """ESC API request failed or rejected an environment definition."""
    pass


class EscClient:
    """Creates ESC environments and uploads their YAML definitions."""

    def __init__(
        self,
        access_token: str,
        cloud_url: str = "https://api.pulumi.com",
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        self._client = client or httpx.Client(base_url=cloud_url, timeout=timeout)
        self._headers = {
            "Authorization": f"token {access_token}",
            "Accept": "application/json",
        }

    def __enter__(self) -> "EscClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = dict(self._headers)
        headers.update(kwargs.pop("headers", {}))
        try:
            return self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise EscAPIError(f"Request to {path} failed: {e}") from e

    def ensure_environment(self, org: str, project: str, name: str) -> None:
        """
        Create an environment, treating 'already exists' as success.

        Raises:
            EscAPIError: If creation fails for any other reason
        """
        response = self._request(
            "POST",
            f"/api/esc/environments/{org}",
            json={"project": project, "name": name},
        )
        if response.status_code == 409:
            logger.debug(f"Environment {project}/{name} already exists")
            return
        if response.status_code not in (200, 201):
            raise EscAPIError(
                f"Failed to create environment {project}/{name}: "
                f"{response.status_code} {response.reason_phrase}"
            )
        logger.info(f"Created environment {project}/{name}")

    def update_environment_yaml(self, org: str, project: str, name: str, yaml_text: str) -> List[str]:
        """
        Replace an environment's definition.

        Args:
            org: Pulumi organization
            project: ESC project
            name: Environment name
            yaml_text: Serialized environment definition

        Returns:
            Diagnostic summaries; empty when the definition was accepted

        Raises:
            EscAPIError: On a non-2xx response that carries no diagnostics
        """
        response = self._request(
            "PATCH",
            f"/api/esc/environments/{org}/{project}/{name}",
            content=yaml_text.encode("utf-8"),
            headers={"Content-Type": "application/x-yaml"},
        )
        if response.is_success:
            return []

        if response.status_code == 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            diagnostics = body.get("diagnostics") if isinstance(body, dict) else None
            if diagnostics:
                return [
                    d.get("summary", str(d)) if isinstance(d, dict) else str(d)
                    for d in diagnostics
                ]

        raise EscAPIError(
            f"Failed to update environment {project}/{name}: "
            f"{response.status_code} {response.reason_phrase}"
        )

    def upsert_environment(self, org: str, project: str, name: str, yaml_text: str) -> None:
        """
        Ensure an environment exists, then upload its definition.

        Raises:
            EscAPIError: If creation or upload fails, or the definition has diagnostics
        """
        self.ensure_environment(org, project, name)
        diagnostics = self.update_environment_yaml(org, project, name, yaml_text)
        if diagnostics:
            raise EscAPIError(f"updating {project}/{name}:\n\n" + "\n".join(diagnostics))
        logger.info(f"Updated environment {project}/{name}")
