"""Deferred secret interpolation for generated scripts.

Scripts are generated with ``${VAR}`` / ``${VAR:-}`` placeholders for values that
are not embedded at generation time; a second pass substitutes concrete values.
"""

import re
from typing import Iterable, List, Mapping

from clawup.constants import RUNTIME_VARIABLES

PLACEHOLDER_PATTERN = re.compile(r"\$\{([A-Z][A-Z0-9_]*)(?::-[^}]*)?\}")


def interpolate_script(script: str, values: Mapping[str, str]) -> str:
    """Replace placeholders for every variable in values.

    Values are inserted literally: "$1" or "\\g<0>" inside a secret is never
    treated as a back-reference.
    """
    result = script
    for name, value in values.items():
        if value is None:
            continue
        pattern = re.compile(r"\$\{" + re.escape(name) + r"(?::-)?\}")
        result = pattern.sub(lambda _match, v=value: v, result)
    return result


def find_unresolved_placeholders(
    script: str,
    allowed: Iterable[str] = RUNTIME_VARIABLES,
) -> List[str]:
    """SCREAMING_SNAKE placeholders still present, excluding runtime-resolved ones."""
    allowed_set = set(allowed)
    found = []
    for match in PLACEHOLDER_PATTERN.finditer(script):
        name = match.group(1)
        if name not in allowed_set and name not in found:
            found.append(name)
    return found
