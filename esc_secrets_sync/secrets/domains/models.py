"""Domain models for secret reconciliation."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

# Marker key ESC uses to flag a value as sensitive
SECRET_MARKER = "fn::secret"


class SecretMode(Enum):
    """How secret values are written into an environment definition."""

    STRUCTURED = "structured"
    PLAIN = "plain"

    def wrap(self, value: str) -> Any:
        """Render a single secret value for the environmentVariables map."""
        if self is SecretMode.STRUCTURED:
            return {SECRET_MARKER: value}
        return value


class ReconcileError(Exception):
    """Base class for reconciliation policy violations."""

    def __init__(self, message: str, names: Iterable[str]):
        super().__init__(message)
        self.names: Tuple[str, ...] = tuple(sorted(names))


class VisibilityViolation(ReconcileError):
    """Repository cannot see every organization secret."""
    pass


class OverrideViolation(ReconcileError):
    """Repository secrets shadow organization secrets of the same name."""
    pass


@dataclass
class EnvironmentDefinition:
    """Declarative content for one ESC environment."""
    environment_variables: Dict[str, Any]
    imports: List[str] = field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        """
        Build the plain document that gets serialized.

        Returns:
            Dict with an optional 'imports' key followed by
            'values.environmentVariables'
        """
        document: Dict[str, Any] = {}
        if self.imports:
            document["imports"] = list(self.imports)
        document["values"] = {"environmentVariables": dict(self.environment_variables)}
        return document


@dataclass(frozen=True)
class ReconcileRequest:
    """Everything the reconciler needs for one run."""
    secrets: Mapping[str, str]
    org_secret_names: FrozenSet[str]
    repo_secret_names: FrozenSet[str]
    repo_visible_org_secret_names: FrozenSet[str]
    org_import_name: str
    export_organization_secrets: bool = False
    excluded_secret_names: FrozenSet[str] = frozenset()
    secret_mode: SecretMode = SecretMode.STRUCTURED


@dataclass
class ReconcileResult:
    """Environment definitions to write; None means leave that environment alone."""
    org_definition: Optional[EnvironmentDefinition] = None
    repo_definition: Optional[EnvironmentDefinition] = None
