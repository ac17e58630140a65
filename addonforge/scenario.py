"""
Scenario Loader Module

Responsibility:
- Parse a YAML scenario file (catalog snapshot, root config, runner options)
- Validate its shape with pydantic
- Build an InMemoryCatalog and the root UnitConfig from it

Catalog references inside a scenario are by offering NAME; IDs and version
locators are derived unless given explicitly.
"""

from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from addonforge.catalog_db import InMemoryCatalog, pack_offering_id
from addonforge.config import settings
from addonforge.errors import ScenarioError
from addonforge.logging import get_logger
from addonforge.models import (
    CatalogInput,
    DependencyDeclaration,
    Offering,
    OfferingVersion,
    UnitConfig,
)

logger = get_logger(__name__)

DEFAULT_CATALOG_ID = "addonforge-catalog"


class InputSpec(BaseModel):
    key: str
    required: bool = False
    default: Optional[Any] = None


class DependencySpec(BaseModel):
    name: str
    version: str = Field(..., description="Version constraint, e.g. ^v1.0.0")
    catalog_id: Optional[str] = None
    offering_id: Optional[str] = None
    on_by_default: bool = False
    default_flavor: str = ""
    flavors: list[str] = Field(default_factory=list)


class VersionSpec(BaseModel):
    version: str
    flavor: str = Field(default_factory=lambda: settings.FALLBACK_FLAVOR)
    locator: Optional[str] = None
    install_kind: str = "terraform"
    inputs: list[InputSpec] = Field(default_factory=list)
    dependencies: list[DependencySpec] = Field(default_factory=list)


class OfferingSpec(BaseModel):
    name: str
    id: Optional[str] = None
    catalog_id: Optional[str] = None
    label: str = ""
    versions: list[VersionSpec] = Field(default_factory=list)


class UnitSpec(BaseModel):
    """A user config entry: the root itself or one of its dependencies."""
    name: str
    flavor: str = ""
    version: Optional[str] = None
    version_locator: Optional[str] = None
    enabled: Optional[bool] = None
    config_name: str = ""
    inputs: dict[str, Any] = Field(default_factory=dict)
    dependencies: list["UnitSpec"] = Field(default_factory=list)


UnitSpec.model_rebuild()


class SkipEntry(BaseModel):
    name: str
    flavor: str = ""


class RunnerSpec(BaseModel):
    prefix: str = "afg"
    permutations: bool = False
    stagger_delay: Optional[float] = None
    batch_size: Optional[int] = None
    within_batch_delay: Optional[float] = None
    skip_permutations: list[list[SkipEntry]] = Field(default_factory=list)


class ScenarioSpec(BaseModel):
    catalog_id: str = DEFAULT_CATALOG_ID
    offerings: list[OfferingSpec]
    root: UnitSpec
    runner: RunnerSpec = Field(default_factory=RunnerSpec)


class Scenario:
    """A loaded scenario: collaborator, root config and runner options."""

    def __init__(self, catalog: InMemoryCatalog, root: UnitConfig, runner: RunnerSpec):
        self.catalog = catalog
        self.root = root
        self.runner = runner

    @property
    def skip_sets(self) -> list[list[UnitConfig]]:
        return [
            [UnitConfig(offering_name=e.name, offering_flavor=e.flavor) for e in skip_set]
            for skip_set in self.runner.skip_permutations
        ]

    def direct_dependencies(self) -> list[UnitConfig]:
        """
        Templates for the root's catalog-declared dependencies.

        User entries on the root win; otherwise the flavor is left empty so
        the catalog default decides.
        """
        version = self.catalog.versions_by_locator[self.root.version_locator]
        overrides = {d.offering_name: d for d in self.root.dependencies}
        templates = []
        for declaration in version.dependencies:
            override = overrides.get(declaration.name)
            templates.append(override or UnitConfig(
                offering_name=declaration.name,
                catalog_id=declaration.catalog_id,
                offering_id=declaration.offering_id,
            ))
        return templates


def default_locator(catalog_id: str, offering_id: str, flavor: str, version: str) -> str:
    return f"{catalog_id}.{offering_id}-{flavor}-{version}"


def load_scenario(path: Union[str, Path]) -> Scenario:
    """Read and build a scenario file. Raises ScenarioError on any problem."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ScenarioError(f"could not read scenario {path}: {e}") from e

    return build_scenario(raw or {})


def build_scenario(raw: dict) -> Scenario:
    try:
        spec = ScenarioSpec.model_validate(raw)
    except ValidationError as e:
        raise ScenarioError(f"invalid scenario: {e}") from e

    offering_ids = {o.name: o.id or o.name for o in spec.offerings}
    offering_catalogs = {o.name: o.catalog_id or spec.catalog_id for o in spec.offerings}
    catalog = InMemoryCatalog()

    for offering_spec in spec.offerings:
        catalog_id = offering_spec.catalog_id or spec.catalog_id
        offering_id = offering_ids[offering_spec.name]
        versions = []
        for v in offering_spec.versions:
            dependencies = []
            for d in v.dependencies:
                if d.offering_id is None and d.name not in offering_ids:
                    raise ScenarioError(
                        f"offering {offering_spec.name} {v.version} depends on unknown offering '{d.name}'"
                    )
                dependencies.append(DependencyDeclaration(
                    name=d.name,
                    catalog_id=d.catalog_id or offering_catalogs.get(d.name, spec.catalog_id),
                    offering_id=d.offering_id or offering_ids[d.name],
                    version_constraint=d.version,
                    on_by_default=d.on_by_default,
                    default_flavor=d.default_flavor,
                    allowed_flavors=tuple(d.flavors),
                ))
            versions.append(OfferingVersion(
                version=v.version,
                version_locator=v.locator or default_locator(catalog_id, offering_id, v.flavor, v.version),
                flavor=v.flavor,
                catalog_id=catalog_id,
                offering_id=pack_offering_id(offering_id),
                install_kind=v.install_kind,
                dependencies=dependencies,
                inputs=[CatalogInput(key=i.key, required=i.required, default=i.default) for i in v.inputs],
            ))
        catalog.add_offering(Offering(
            id=offering_id,
            catalog_id=catalog_id,
            name=offering_spec.name,
            label=offering_spec.label,
            versions=versions,
        ))

    root = _unit_config(spec.root, catalog, is_root=True)
    logger.info(
        "Loaded scenario",
        offerings=len(spec.offerings),
        root=root.offering_name,
        version=root.resolved_version,
        flavor=root.offering_flavor,
    )
    return Scenario(catalog=catalog, root=root, runner=spec.runner)


def _unit_config(unit: UnitSpec, catalog: InMemoryCatalog, is_root: bool = False) -> UnitConfig:
    offering = catalog.find_offering_by_name(unit.name)
    if offering is None:
        raise ScenarioError(f"config refers to unknown offering '{unit.name}'")

    version = _pick_version(offering, unit, required=is_root)
    flavor = unit.flavor or (version.flavor if version is not None else "")
    if is_root and not flavor:
        flavor = settings.FALLBACK_FLAVOR

    return UnitConfig(
        offering_name=offering.name,
        offering_flavor=flavor,
        catalog_id=offering.catalog_id,
        offering_id=offering.id,
        version_locator=version.version_locator if version is not None else "",
        resolved_version=version.version if version is not None else "",
        enabled=True if is_root else unit.enabled,
        config_name=unit.config_name,
        inputs=dict(unit.inputs),
        offering_inputs=list(version.inputs) if version is not None else [],
        dependencies=[_unit_config(d, catalog) for d in unit.dependencies],
    )


def _pick_version(offering: Offering, unit: UnitSpec, required: bool) -> Optional[OfferingVersion]:
    """
    Version for a config entry: by explicit locator, else by version (and
    flavor when given). Dependencies may leave both unset.
    """
    if unit.version_locator:
        for v in offering.versions:
            if v.version_locator == unit.version_locator:
                return v
        raise ScenarioError(f"unknown version locator '{unit.version_locator}' for {unit.name}")

    if unit.version is None:
        if required:
            raise ScenarioError(f"root config {unit.name} needs a version or version_locator")
        return None

    for v in offering.versions:
        if v.version == unit.version and (not unit.flavor or v.flavor == unit.flavor):
            return v
    raise ScenarioError(f"no version {unit.version} (flavor '{unit.flavor}') for {unit.name}")
