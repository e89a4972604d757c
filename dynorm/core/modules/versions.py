from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from dynorm.core.errors import ValidationError


# Longest prefixes first so ">=" is not read as ">".
COMPARATOR_PREFIXES: Tuple[str, ...] = ("==", ">=", "<=", "!=", ">", "<", "=")

_VERSION_PART = re.compile(r"^[0-9]+$")

VersionTuple = Tuple[int, ...]


@dataclass(frozen=True)
class DependencySpec:
    """
    One parsed `dependsOn` entry: "name", "name@1.2.0" or "name@>=1.2.0".

    `comparator` and `version` are empty when the entry carries no constraint.
    """

    name: str
    comparator: str = ""
    version: str = ""

    @property
    def has_constraint(self) -> bool:
        return bool(self.version)

    def satisfied_by(self, actual_version: str) -> bool:
        return version_satisfies(actual_version, self.comparator, self.version)

    def render(self) -> str:
        if not self.has_constraint:
            return self.name
        return f"{self.name}@{self.comparator}{self.version}"


def parse_dependency(raw: str) -> DependencySpec:
    if raw is None or not str(raw).strip():
        raise ValidationError("Invalid dependency string: empty", dependency=str(raw or ""))
    parts = str(raw).split("@", 1)
    name = parts[0].strip()
    if not name:
        raise ValidationError(f"Invalid dependency string: {raw}", dependency=str(raw))
    if len(parts) == 1:
        return DependencySpec(name=name)

    ver = parts[1].strip()
    comparator = "="
    for prefix in COMPARATOR_PREFIXES:
        if ver.startswith(prefix):
            comparator = "=" if prefix == "==" else prefix
            ver = ver[len(prefix):].strip()
            break
    return DependencySpec(name=name, comparator=comparator, version=ver)


def parse_version(text: Optional[str]) -> Optional[VersionTuple]:
    """
    Dotted numeric version with 2 to 4 components ("1.2", "1.2.3", "1.2.3.4").
    Returns None for anything else, including pre-release or build suffixes.
    """
    if text is None:
        return None
    parts = str(text).strip().split(".")
    if not 2 <= len(parts) <= 4:
        return None
    if not all(_VERSION_PART.match(p) for p in parts):
        return None
    return tuple(int(p) for p in parts)


def version_satisfies(actual: str, comparator: str, required: str) -> bool:
    if not required:
        return True
    comparator = comparator or "="
    req = parse_version(required)
    if req is None:
        # Unparseable requirement: only exact string equality can satisfy it.
        comparator = "="
    act = parse_version(actual)
    if act is None or req is None:
        return comparator == "=" and str(actual) == str(required)

    if comparator == "=":
        return act == req
    if comparator == "!=":
        return act != req
    if comparator == ">":
        return act > req
    if comparator == "<":
        return act < req
    if comparator == ">=":
        return act >= req
    if comparator == "<=":
        return act <= req
    return False
