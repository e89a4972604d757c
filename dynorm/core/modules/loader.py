from __future__ import annotations

"""
Manifest loading and structural validation.

Everything here runs before any storage call: a manifest that fails here never
reaches a provider.
"""

import json
import os
from typing import Any, Dict, Iterable, List, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from dynorm.core.errors import ValidationError
from dynorm.core.modules.identifiers import validate_field_name, validate_model_name, validate_module_name
from dynorm.core.modules.models import (
    AddFieldImpact,
    AddIndexImpact,
    AddRelationImpact,
    CreateModelTableImpact,
    ExtendEnumImpact,
    IMPACT_ACTIONS,
    ModuleManifest,
)


ManifestLike = Union[ModuleManifest, Dict[str, Any]]


def _describe_pydantic_error(e: PydanticValidationError) -> str:
    errs = e.errors()
    if not errs:
        return "invalid manifest"
    first = errs[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    msg = str(first.get("msg") or "invalid")
    return f"{loc}: {msg}" if loc else msg


def _precheck_impacts(raw: Dict[str, Any], module_name: str) -> None:
    # Give unknown actions a clearer message than the discriminator error.
    impacts = raw.get("impacts")
    if impacts is None:
        return
    if not isinstance(impacts, list):
        raise ValidationError(f"Manifest {module_name}: impacts must be a list", module=module_name)
    for idx, imp in enumerate(impacts):
        if not isinstance(imp, dict):
            raise ValidationError(f"Manifest {module_name}: impact #{idx} must be an object", module=module_name, index=idx)
        action = imp.get("action")
        if action not in IMPACT_ACTIONS:
            raise ValidationError(
                f"Manifest {module_name}: impact #{idx} has unknown action {action!r}",
                module=module_name,
                index=idx,
                action=str(action),
            )


def load_manifest_dict(raw: Dict[str, Any]) -> ModuleManifest:
    if not isinstance(raw, dict):
        raise ValidationError("Manifest must be a JSON object")
    module = raw.get("module")
    module_name = str(module.get("name") or "") if isinstance(module, dict) else ""
    if not module_name:
        raise ValidationError("Manifest missing module name")
    _precheck_impacts(raw, module_name)
    try:
        manifest = ModuleManifest.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"Manifest {module_name}: {_describe_pydantic_error(e)}", module=module_name) from e
    validate_manifest(manifest)
    return manifest


def load_manifest_json(text: str) -> ModuleManifest:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid manifest json: {e.msg}", line=e.lineno) from e
    return load_manifest_dict(raw)


def load_manifest_file(path: str) -> ModuleManifest:
    if not os.path.isfile(path):
        raise ValidationError(f"Manifest file not found: {path}", path=path)
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    return load_manifest_json(text)


def load_manifest_dir(root: str, *, filename: str = "module.json") -> List[ModuleManifest]:
    """
    Load <root>/<module>/module.json for every sub-directory (sorted by name).
    Directories without a manifest are skipped.
    """
    out: List[ModuleManifest] = []
    if not os.path.isdir(root):
        return out
    for name in sorted(os.listdir(root)):
        if name.startswith(".") or name.startswith("_"):
            continue
        path = os.path.join(root, name, filename)
        if os.path.isfile(path):
            out.append(load_manifest_file(path))
    return out


def coerce_manifest(obj: ManifestLike) -> ModuleManifest:
    if isinstance(obj, ModuleManifest):
        validate_manifest(obj)
        return obj
    if isinstance(obj, dict):
        return load_manifest_dict(obj)
    raise ValidationError(f"Unsupported manifest type: {type(obj).__name__}")


def validate_manifest(manifest: ModuleManifest) -> None:
    """
    Structural checks that must hold before installation:
    - module descriptor present with a safe name
    - model and field names (and relation targets) are safe identifiers
    - every impact is one of the recognized actions with a well-formed payload
    """
    if manifest is None or manifest.module is None or not manifest.module.name:
        raise ValidationError("Manifest missing module name")
    module_name = validate_module_name(manifest.module.name)

    for model in manifest.models or []:
        if not model.name or not model.name.strip():
            raise ValidationError(f"Manifest {module_name}: model must have a name", module=module_name)
        validate_model_name(model.name)
        for f in model.fields or []:
            if not f.name or not f.name.strip():
                raise ValidationError(f"Model {model.name} has a field without a name", module=module_name, model=model.name)
            validate_field_name(f.name)
            if f.relation is not None:
                validate_model_name(f.relation.model)

    for dep in manifest.depends_on or []:
        if not str(dep or "").strip():
            raise ValidationError(f"Manifest {module_name}: empty dependency entry", module=module_name)

    for idx, impact in enumerate(manifest.impacts or []):
        _validate_impact(module_name, idx, impact)


def _validate_impact(module_name: str, idx: int, impact: Any) -> None:
    if isinstance(impact, (AddFieldImpact, AddRelationImpact)):
        validate_model_name(impact.target_model)
        validate_field_name(impact.field.name)
        if impact.field.relation is not None:
            validate_model_name(impact.field.relation.model)
        return
    if isinstance(impact, ExtendEnumImpact):
        validate_model_name(impact.target_model)
        validate_field_name(impact.field)
        if not isinstance(impact.values, list) or not all(isinstance(v, str) for v in impact.values):
            raise ValidationError(f"Manifest {module_name}: impact #{idx} (extendEnum) values must be strings", module=module_name, index=idx)
        return
    if isinstance(impact, AddIndexImpact):
        validate_model_name(impact.target_model)
        validate_field_name(impact.field)
        return
    if isinstance(impact, CreateModelTableImpact):
        validate_model_name(impact.target_model)
        return
    raise ValidationError(
        f"Manifest {module_name}: impact #{idx} has unknown action {getattr(impact, 'action', None)!r}",
        module=module_name,
        index=idx,
    )


def validate_batch(manifests: Iterable[ManifestLike]) -> Tuple[List[ModuleManifest], List[str]]:
    """
    Decode + validate a batch. Returns (manifests, names) or raises ValidationError.
    A module name may appear only once per batch.
    """
    out: List[ModuleManifest] = []
    seen: List[str] = []
    for obj in manifests:
        m = coerce_manifest(obj)
        if m.module.name in seen:
            raise ValidationError(f"Module {m.module.name} appears more than once in the batch", module=m.module.name)
        seen.append(m.module.name)
        out.append(m)
    return out, seen
