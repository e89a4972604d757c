from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dynorm.core.errors import ValidationError
from dynorm.core.modules.models import FieldDefinition, FieldType, ModelDefinition


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    return uuid.uuid4().hex


@dataclass
class DynamicRecord:
    id: str
    model: str
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    # Populated only by include queries: alias -> related records.
    included: Dict[str, List["DynamicRecord"]] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        if name in self.data:
            return self.data[name]
        if name == "id":
            return self.id
        return default

    def has(self, name: str) -> bool:
        return name in self.data or name == "id"

    def copy(self) -> "DynamicRecord":
        return DynamicRecord(
            id=self.id,
            model=self.model,
            data=copy.deepcopy(self.data),
            created_at=self.created_at,
            updated_at=self.updated_at,
            included={k: [r.copy() for r in v] for k, v in self.included.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "model": self.model,
            "data": copy.deepcopy(self.data),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        if self.included:
            out["included"] = {k: [r.to_dict() for r in v] for k, v in self.included.items()}
        return out


def _coerce_default(fd: FieldDefinition) -> Any:
    value = fd.default_value
    if fd.type == FieldType.number:
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return value
        try:
            num = float(str(value).strip())
        except ValueError:
            return str(value)
        return int(num) if num.is_integer() else num
    if fd.type == FieldType.boolean:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in {"true", "1", "yes", "on"}
    if fd.type == FieldType.json or isinstance(value, (dict, list)):
        return copy.deepcopy(value)
    return value if isinstance(value, str) else str(value)


def apply_required_defaults(model: ModelDefinition, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check the model's required fields against `data`.

    A missing required field with a default value gets the default (coerced to
    the field type); any other missing required field is a ValidationError.
    Returns a new dict; `data` is not modified.
    """
    if not isinstance(data, dict):
        raise ValidationError("Record data must be an object", model=model.name)
    out = dict(data)
    missing: List[str] = []
    for fd in model.required_fields():
        if fd.name in out:
            continue
        if fd.default_value is not None:
            out[fd.name] = _coerce_default(fd)
            continue
        missing.append(fd.name)
    if missing:
        raise ValidationError(f"Missing required fields: {','.join(missing)}", model=model.name, missing=missing)
    return out


def make_record(model_name: str, data: Dict[str, Any], *, record_id: Optional[str] = None) -> DynamicRecord:
    now = utc_now()
    return DynamicRecord(id=record_id or new_record_id(), model=model_name, data=copy.deepcopy(data), created_at=now, updated_at=now)
