from __future__ import annotations

"""
Identifier safety for model and field names.

Names end up in SQL (table, index and JSON path fragments), so anything outside
[A-Za-z0-9_.] is refused before it reaches a provider.
"""

import re

from dynorm.core.errors import InvalidIdentifierError


_SAFE_IDENTIFIER = re.compile(r"^[A-Za-z0-9_.]+$")


def is_safe_identifier(value: object) -> bool:
    return isinstance(value, str) and bool(_SAFE_IDENTIFIER.fullmatch(value))


def validate_identifier(value: object, kind: str = "identifier") -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidIdentifierError(str(value or ""), kind)
    if not _SAFE_IDENTIFIER.fullmatch(value):
        raise InvalidIdentifierError(value, kind)
    return value


def validate_model_name(name: object) -> str:
    return validate_identifier(name, "model name")


def validate_field_name(name: object) -> str:
    return validate_identifier(name, "field name")


def validate_module_name(name: object) -> str:
    return validate_identifier(name, "module name")


def sanitize_index_name(model_name: str, field_name: str) -> str:
    mn = model_name.replace(".", "_").replace("-", "_")
    fn = field_name.replace(".", "_").replace("-", "_")
    return f"idx_{mn}_{fn}"
