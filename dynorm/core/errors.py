from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from dynorm.core.events import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass(eq=False)
class DynormError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.user_message)

    def __str__(self) -> str:
        return self.user_message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


# ---- validation ----
class ValidationError(DynormError):
    def __init__(self, user_message: str = "Invalid manifest.", **ctx: Any):
        super().__init__("validation_error", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class InvalidIdentifierError(ValidationError):
    def __init__(self, value: str, kind: str = "identifier"):
        super().__init__(f"{kind} contains invalid characters: {value}", value=value, kind=kind)
        self.code = "invalid_identifier"
        self.value = value
        self.kind = kind


class ConfigError(DynormError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


# ---- dependency resolution ----
class DependencyError(DynormError):
    pass


class MissingDependencyError(DependencyError):
    def __init__(self, dependency: str, dependent: str):
        super().__init__(
            "missing_dependency",
            f"Missing dependency: {dependency} required by {dependent}",
            severity=Severity.ERROR,
            recoverable=False,
            context={"dependency": dependency, "dependent": dependent},
        )
        self.dependency = dependency
        self.dependent = dependent


class VersionMismatchError(DependencyError):
    def __init__(self, dependency: str, constraint: str, actual: str, dependent: str):
        super().__init__(
            "version_mismatch",
            f"Dependency version mismatch: {constraint} required by {dependent} (found {dependency} {actual})",
            severity=Severity.ERROR,
            recoverable=False,
            context={"dependency": dependency, "constraint": constraint, "actual": actual, "dependent": dependent},
        )
        self.dependency = dependency
        self.constraint = constraint
        self.actual = actual
        self.dependent = dependent


class CyclicDependencyError(DependencyError):
    def __init__(self, modules: List[str]):
        names = sorted(modules)
        super().__init__(
            "dependency_cycle",
            "Dependency cycle detected among: " + ", ".join(names),
            severity=Severity.ERROR,
            recoverable=False,
            context={"modules": names},
        )
        self.modules = names


# ---- installation ----
class InstallationError(DynormError):
    def __init__(self, user_message: str = "Module installation failed.", **ctx: Any):
        super().__init__("installation_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class ImpactApplicationError(InstallationError):
    def __init__(self, *, module: str, index: int, action: str, reason: str, target_model: Optional[str] = None):
        super().__init__(
            f"Failed to apply impact #{index} ({action}) for module {module}: {reason}",
            module=module,
            index=index,
            action=action,
            target_model=target_model,
        )
        self.code = "impact_failed"
        self.module = module
        self.index = index
        self.action = action
        self.target_model = target_model


# ---- records ----
class NotFoundError(DynormError):
    def __init__(self, user_message: str = "Not found.", **ctx: Any):
        super().__init__("not_found", user_message, severity=Severity.WARN, recoverable=True, context=ctx)
