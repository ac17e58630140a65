"""
Core Domain Models Module

Responsibility:
- Define the shared value types used across the engine
- OfferingIdentity: name/version/flavor identity of a catalog entry
- UnitConfig: user-authored (tree-shaped) deployment configuration
- Catalog shapes: Offering, OfferingVersion, DependencyDeclaration, CatalogInput
- Project shapes: ConfigDetails, DeployedAddons
- Result shapes: DependencyGraphResult, ValidationResult, RunResult, AggregateReport

All results are created fresh per call. Callers own UnitConfig trees;
nothing in the engine mutates them.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


def composite_key(name: str, version: str, flavor: str) -> str:
    """
    Legacy "name:version:flavor" string key.

    Only used for display and log lines. Splitting it back is ambiguous when
    any field contains ":" (see split_composite_key); maps inside the engine
    are keyed by OfferingIdentity instead.
    """
    return f"{name}:{version}:{flavor}"


def split_composite_key(key: str) -> list[str]:
    """Split a composite key on ":". Yields more than 3 parts if a field held a colon."""
    return key.split(":")


@dataclass(frozen=True)
class OfferingIdentity:
    """
    Identity of one deployable catalog entry.

    Equality and hashing are structural over all three fields (case-sensitive),
    so instances are used directly as dict keys.
    """
    name: str
    version: str
    flavor: str

    @property
    def key(self) -> str:
        return composite_key(self.name, self.version, self.flavor)

    def describe(self) -> str:
        return f"{self.name} ({self.version}, {self.flavor})"


@dataclass(frozen=True)
class DependencyDeclaration:
    """A dependency declared by a catalog version. Read-only to the engine."""
    name: str
    catalog_id: str
    offering_id: str
    version_constraint: str
    on_by_default: bool = False
    default_flavor: str = ""
    allowed_flavors: tuple[str, ...] = ()


@dataclass(frozen=True)
class CatalogInput:
    """An input declared by a catalog version (used for required-input checks)."""
    key: str
    required: bool = False
    default: Any = None


@dataclass
class OfferingVersion:
    """One published version of an offering."""
    version: str
    version_locator: str
    flavor: str
    catalog_id: str
    # Packed reference "<sha>:o:<offering id>" as returned by the catalog
    offering_id: str
    install_kind: str = "terraform"
    dependencies: list[DependencyDeclaration] = field(default_factory=list)
    inputs: list[CatalogInput] = field(default_factory=list)


@dataclass
class Offering:
    """Catalog offering metadata with all of its published versions."""
    id: str
    catalog_id: str
    name: str
    label: str = ""
    versions: list[OfferingVersion] = field(default_factory=list)


@dataclass
class UnitConfig:
    """
    User-declared configuration of one deployable unit.

    `enabled` is tri-state: None means "no override", True/False are explicit.
    """
    offering_name: str
    offering_flavor: str = ""
    catalog_id: str = ""
    offering_id: str = ""
    version_locator: str = ""
    resolved_version: str = ""
    enabled: Optional[bool] = None
    config_name: str = ""
    inputs: dict = field(default_factory=dict)
    offering_inputs: list[CatalogInput] = field(default_factory=list)
    dependencies: list["UnitConfig"] = field(default_factory=list)

    def disabled_dependency_names(self) -> list[str]:
        """Names of the direct dependencies explicitly disabled on this node."""
        return [d.offering_name for d in self.dependencies if d.enabled is False]


@dataclass
class ConfigDetails:
    """A project configuration as returned by the project service."""
    config_id: str
    name: str
    # Version locator embedded in the config definition; None when unset
    locator_id: Optional[str] = None
    inputs: dict = field(default_factory=dict)
    state: str = ""


@dataclass
class DeployedConfig:
    name: str
    config_id: str


@dataclass
class DeployedAddons:
    """Configurations the deployment service reports as created in a project."""
    project_id: str
    configs: list[DeployedConfig] = field(default_factory=list)


@dataclass
class ProjectConfig:
    """The project a run deploys into."""
    project_id: str
    name: str = ""
    prefix: str = ""


@dataclass
class ResolvedNode:
    """A unit the graph builder expanded, kept in the build's arena."""
    identity: OfferingIdentity
    version_locator: str
    catalog_id: str
    offering_id: str
    depth: int = 0


@dataclass
class DependencyGraphResult:
    """
    Output of one graph build.

    edges: parent identity -> resolved dependency identities (declaration order)
    expected_list: every resolved unit, in expansion order
    visited: version locators already expanded
    nodes: arena of expanded units keyed by identity (first expansion wins)
    """
    edges: dict[OfferingIdentity, list[OfferingIdentity]] = field(default_factory=dict)
    expected_list: list[OfferingIdentity] = field(default_factory=list)
    visited: set[str] = field(default_factory=set)
    nodes: dict[OfferingIdentity, ResolvedNode] = field(default_factory=dict)


@dataclass
class ProjectionResult:
    """Output of projecting deployed configs back onto offering identities."""
    actually_deployed: list[OfferingIdentity] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class DependencyError:
    """
    A graph edge whose dependency was not deployed.

    available_alternatives lists deployed entries sharing the dependency's
    name (other version or flavor). Diagnostic only.
    """
    unit: OfferingIdentity
    missing_dependency: OfferingIdentity
    available_alternatives: list[OfferingIdentity] = field(default_factory=list)


@dataclass
class ValidationResult:
    """All findings from one validation pass. Never short-circuits."""
    is_valid: bool = True
    dependency_errors: list[DependencyError] = field(default_factory=list)
    unexpected_configs: list[OfferingIdentity] = field(default_factory=list)
    missing_configs: list[OfferingIdentity] = field(default_factory=list)
    missing_inputs: list[str] = field(default_factory=list)
    configuration_errors: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)

    def has_errors(self) -> bool:
        return bool(
            self.dependency_errors
            or self.unexpected_configs
            or self.missing_configs
            or self.missing_inputs
            or self.configuration_errors
        )

    def merge(self, other: "ValidationResult") -> None:
        """Fold another result's findings into this one."""
        self.dependency_errors.extend(other.dependency_errors)
        self.unexpected_configs.extend(other.unexpected_configs)
        self.missing_configs.extend(other.missing_configs)
        self.missing_inputs.extend(other.missing_inputs)
        self.configuration_errors.extend(other.configuration_errors)
        self.messages.extend(other.messages)
        if not other.is_valid:
            self.is_valid = False


@dataclass
class AddonTestCase:
    """One permutation run: which direct dependencies are enabled/disabled."""
    name: str
    prefix: str
    dependencies: list[UnitConfig] = field(default_factory=list)
    inputs: dict = field(default_factory=dict)
    skip_teardown: bool = False


@dataclass
class RunResult:
    """Outcome of one test case within a permutation batch."""
    name: str
    prefix: str
    unit_config: UnitConfig
    passed: bool
    validation_result: Optional[ValidationResult] = None
    transient_errors: list[str] = field(default_factory=list)
    runtime_errors: list[str] = field(default_factory=list)

    def disabled_dependencies(self) -> list[str]:
        return self.unit_config.disabled_dependency_names()


@dataclass
class AggregateReport:
    """Totals plus the raw run results. Pattern analyses are derived on demand."""
    total_runs: int = 0
    passed_runs: int = 0
    failed_runs: int = 0
    results: list[RunResult] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: list[RunResult]) -> "AggregateReport":
        passed = sum(1 for r in results if r.passed)
        return cls(
            total_runs=len(results),
            passed_runs=passed,
            failed_runs=len(results) - passed,
            results=list(results),
        )
