"""Build report schema, i.e. what the instrumented ``zig build`` sends back."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel


class SystemLibrary(BaseModel):
    name: str
    used_by: list[str]


class UserOption(BaseModel):
    name: str
    description: str
    type: str
    values: list[str] | None = None


class BuildReport(BaseModel):
    system_libraries: list[SystemLibrary]
    system_integrations: list[str]
    user_options: list[UserOption]

    @property
    def has_system_dependencies(self) -> bool:
        return bool(self.system_libraries or self.system_integrations)


class OptimizeMode(str, Enum):
    ALL = "all"  # standard "optimize" enum option
    EXPLICIT = "explicit"  # "release" boolean option
    NONE = "none"


# Options consumed by the eclass rather than by the recipe author
CRITICAL_OPTIONS: tuple[str, ...] = ("target", "dynamic-linker", "cpu")


@dataclass
class ProcessedReport:
    """Report after critical and optimize options were split out."""

    report: BuildReport
    missing_options: list[str] = field(default_factory=list)
    optimize: OptimizeMode = OptimizeMode.NONE
