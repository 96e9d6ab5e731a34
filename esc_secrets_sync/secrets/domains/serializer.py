"""YAML serialization for ESC environment definitions."""
import yaml

from .models import EnvironmentDefinition


def serialize_definition(definition: EnvironmentDefinition) -> str:
    """
    Render a definition as an ESC environment YAML document.

    Key order follows the definition (imports, then values), so the same
    definition always yields the same bytes.

    Args:
        definition: Environment definition to render

    Returns:
        YAML text
    """
    return yaml.safe_dump(
        definition.to_document(),
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=float("inf"),
    )
