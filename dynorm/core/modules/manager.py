from __future__ import annotations

"""
ModuleManager: validation + ordering + per-module transactional install.

WHY THIS FILE EXISTS:
This is the single public API for installing module manifests. It ensures:
- nothing touches storage until every manifest in the batch is valid and the
  dependency order is resolved
- each module's models and impacts are applied inside one provider transaction
- an impact failure rolls that module back and stops the batch
- best-effort provider calls (transactions, managed schema, change log) never
  mask a real impact failure
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from dynorm.core.config.models import InstallerConfig
from dynorm.core.errors import DynormError, ImpactApplicationError, InstallationError, ValidationError
from dynorm.core.events import EventLogger
from dynorm.core.modules.loader import ManifestLike, coerce_manifest, validate_batch
from dynorm.core.modules.models import ModuleDescriptor, ModuleManifest, impact_field_name
from dynorm.core.modules.resolver import resolve_order
from dynorm.core.storage.base import OpResult, StoreProvider, call_best_effort


class ModuleInstallResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    module: str
    version: str
    models: List[str] = Field(default_factory=list)
    impacts_applied: int = 0
    # Best-effort calls that did not succeed, e.g. "begin_transaction: unsupported".
    notes: List[str] = Field(default_factory=list)


class InstallReport(BaseModel):
    """
    Outcome of a successful install call. Safe to render in CLI output and logs.
    """

    model_config = ConfigDict(extra="forbid")

    trace_id: str = "install"
    order: List[str] = Field(default_factory=list)
    modules: List[ModuleInstallResult] = Field(default_factory=list)

    def result_for(self, module_name: str) -> Optional[ModuleInstallResult]:
        for r in self.modules:
            if r.module == module_name:
                return r
        return None


class ModuleManager:
    def __init__(
        self,
        *,
        config: Optional[InstallerConfig] = None,
        logger: Any = None,
        event_logger: Optional[EventLogger] = None,
    ):
        self.config = config or InstallerConfig()
        self.logger = logger
        self.event_logger = event_logger
        self._manifests: Dict[str, List[ModuleManifest]] = {}

    # ---- helpers ----
    def _emit(self, trace_id: str, event_type: str, details: Dict[str, Any]) -> None:
        if self.event_logger is None:
            return
        try:
            self.event_logger.log(trace_id, event_type, details)
        except OSError as e:
            if self.logger:
                self.logger.warning(f"install event not written ({event_type}): {e}")

    def _best_effort(self, operation: str, fn: Callable[[], Any], *, module: str, notes: List[str]) -> OpResult:
        res = call_best_effort(operation, fn)
        if res.ok:
            return res
        notes.append(f"{operation}: {res.status.value}" + (f" ({res.detail})" if res.detail else ""))
        if res.is_unsupported:
            if self.logger:
                self.logger.debug(f"module {module}: {operation} not supported by provider")
            return res
        if self.logger:
            self.logger.warning(f"module {module}: {operation} failed: {res.detail}")
        if self.config.strict_best_effort:
            raise InstallationError(f"{operation} failed for module {module}: {res.detail}", module=module, operation=operation)
        return res

    # ---- registry ----
    def add_manifest(self, manifest: ManifestLike) -> ModuleManifest:
        m = coerce_manifest(manifest)
        self._manifests.setdefault(m.module.name, []).append(m)
        return m

    def list_manifests(self) -> Dict[str, List[ModuleManifest]]:
        return {k: list(v) for k, v in self._manifests.items()}

    def latest_manifests(self) -> List[ModuleManifest]:
        return [versions[-1] for versions in self._manifests.values() if versions]

    def clear(self) -> None:
        self._manifests.clear()

    # ---- planning ----
    def resolve_order(self, manifests: Iterable[ManifestLike]) -> List[ModuleManifest]:
        batch, _ = validate_batch(manifests)
        return resolve_order(batch)

    def plan(self, manifests: Iterable[ManifestLike]) -> List[str]:
        """Installation order by module name; touches no storage."""
        return [m.module.name for m in self.resolve_order(manifests)]

    # ---- install ----
    def install(self, manifests: Iterable[ManifestLike], provider: StoreProvider, *, trace_id: str = "install") -> InstallReport:
        if provider is None:
            raise ValidationError("A storage provider is required.")
        if manifests is None:
            raise ValidationError("Manifests are required.")

        # Pre-flight: any failure here leaves storage untouched.
        ordered = self.resolve_order(manifests)
        order = [m.module.name for m in ordered]
        self._emit(trace_id, "module.install_started", {"order": order})
        if self.logger:
            self.logger.info(f"Installing modules: {' -> '.join(order) if order else '(none)'}")

        provider.init()

        report = InstallReport(trace_id=trace_id, order=order)
        for manifest in ordered:
            report.modules.append(self._install_one(manifest, provider, trace_id=trace_id))
        return report

    def install_registered(self, provider: StoreProvider, *, trace_id: str = "install") -> InstallReport:
        """Install the most recently added manifest of every registered module."""
        return self.install(self.latest_manifests(), provider, trace_id=trace_id)

    def _install_one(self, manifest: ModuleManifest, provider: StoreProvider, *, trace_id: str) -> ModuleInstallResult:
        module: ModuleDescriptor = manifest.module
        result = ModuleInstallResult(module=module.name, version=module.version)
        notes = result.notes

        try:
            self._best_effort("begin_transaction", provider.begin_transaction, module=module.name, notes=notes)

            for declared in manifest.models:
                model = declared.model_copy(deep=True)
                model.module = module.name
                try:
                    provider.register_model(model)
                except Exception as e:  # noqa: BLE001
                    raise InstallationError(
                        f"Failed to register model {model.name} for module {module.name}: {e}",
                        module=module.name,
                        model=model.name,
                    ) from e
                self._best_effort(
                    "upsert_managed_schema",
                    lambda model=model: provider.upsert_managed_schema(model, module),
                    module=module.name,
                    notes=notes,
                )
                result.models.append(model.name)

            for idx, impact in enumerate(manifest.impacts):
                try:
                    provider.apply_impact(module, impact)
                except Exception as e:  # noqa: BLE001
                    reason = e.user_message if isinstance(e, DynormError) else str(e)
                    raise ImpactApplicationError(
                        module=module.name,
                        index=idx,
                        action=impact.action,
                        reason=reason,
                        target_model=impact.target_model,
                    ) from e
                result.impacts_applied += 1
                if self.config.log_schema_changes:
                    self._best_effort(
                        "log_schema_change",
                        lambda impact=impact: provider.log_schema_change(impact.target_model, impact, module, "applyImpact"),
                        module=module.name,
                        notes=notes,
                    )
                self._emit(
                    trace_id,
                    "impact.applied",
                    {"module": module.name, "index": idx, "action": impact.action, "target_model": impact.target_model, "field": impact_field_name(impact)},
                )

            self._best_effort("commit", provider.commit, module=module.name, notes=notes)
        except Exception as e:
            rb = call_best_effort("rollback", provider.rollback)
            if rb.failed and self.logger:
                self.logger.warning(f"module {module.name}: rollback failed: {rb.detail}")
            if self.logger:
                self.logger.error(f"module {module.name} install failed: {e}")
            self._emit(
                trace_id,
                "module.install_failed",
                {"module": module.name, "version": module.version, "error": str(e)[:300], "rollback": rb.status.value},
            )
            raise

        if self.logger:
            self.logger.info(f"Installed module {module.name} {module.version} ({len(result.models)} models, {result.impacts_applied} impacts)")
        self._emit(
            trace_id,
            "module.installed",
            {"module": module.name, "version": module.version, "models": list(result.models), "impacts": result.impacts_applied},
        )
        return result
