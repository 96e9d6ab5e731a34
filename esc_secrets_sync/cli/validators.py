"""Input validation for CLI arguments."""
import re
import sys
from typing import Iterable

# GitHub secret names: letters, digits, underscores; no leading digit
SECRET_NAME_PATTERN = r'^[A-Za-z_][A-Za-z0-9_]*$'
ENV_PART_PATTERN = r'^[A-Za-z0-9._-]+$'


def validate_secret_names(names: Iterable[str]) -> None:
    """
    Validate secret names against GitHub's naming rules.

    Args:
        names: Secret names to validate

    Raises:
        SystemExit with code 2 if any name is invalid
    """
    invalid = sorted(name for name in names if not re.match(SECRET_NAME_PATTERN, name))
    if invalid:
        print(f"Error: Invalid secret name(s): {', '.join(invalid)}", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_)", file=sys.stderr)
        print("Names must not start with a number.", file=sys.stderr)
        sys.exit(2)


def validate_environment_name(qualified_name: str) -> None:
    """
    Validate an ESC environment name ('project/environment' or 'environment').

    Raises:
        SystemExit with code 2 if validation fails
    """
    parts = qualified_name.split("/")
    if len(parts) > 2 or not all(re.match(ENV_PART_PATTERN, part) for part in parts):
        print(f"Error: Invalid environment name '{qualified_name}'", file=sys.stderr)
        print("\nExpected 'project/environment' or 'environment'.", file=sys.stderr)
        print("Allowed characters: letters, numbers, dots (.), underscores (_), hyphens (-)", file=sys.stderr)
        sys.exit(2)
