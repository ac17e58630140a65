"""
Catalog Database Module

Responsibility:
- Define the collaborator contract the engine consumes (CatalogService)
- In-memory storage of catalog offerings, versions and project configs
- Version-constraint matching for dependency declarations
- Simulated deployment of a unit config into a project

The engine only ever talks to CatalogService. InMemoryCatalog backs tests,
scenario files and the CLI; a real cloud client would implement the same
five coroutines (plus its own retry discipline).
"""

import re
import uuid
from typing import Optional, Protocol

from addonforge.config import settings
from addonforge.errors import CatalogLookupError
from addonforge.logging import get_logger
from addonforge.models import (
    ConfigDetails,
    DeployedAddons,
    DeployedConfig,
    Offering,
    OfferingVersion,
    ProjectConfig,
    UnitConfig,
)

logger = get_logger(__name__)

TERRAFORM_INSTALL_KIND = "terraform"

_SEMVER_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)$")
_COMPARATOR_RE = re.compile(r"^(>=|<=|>|<|=)?\s*(v?\d+\.\d+\.\d+)$")


class CatalogService(Protocol):
    """Collaborator operations consumed by the builder, projector and runner."""

    async def get_offering(self, catalog_id: str, offering_id: str) -> Offering:
        ...

    async def get_offering_version_locator_by_constraint(
        self, catalog_id: str, offering_id: str, version_constraint: str, flavor: str
    ) -> tuple[str, str]:
        ...

    async def get_config(self, project_id: str, config_id: str) -> ConfigDetails:
        ...

    async def get_catalog_version_by_locator(self, locator: str) -> OfferingVersion:
        ...

    async def deploy_addon_to_project(
        self, unit_config: UnitConfig, project_config: ProjectConfig
    ) -> DeployedAddons:
        ...


def parse_semver(version: str) -> Optional[tuple[int, int, int]]:
    """Parse "v1.2.3" or "1.2.3" into a tuple. Returns None for anything else."""
    match = _SEMVER_RE.match(version.strip())
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def match_version(versions: list[str], constraint: str) -> str:
    """
    Pick the highest version satisfying a constraint.

    Supported forms:
    - "^v3.0.1"  same major
    - "~v4.1.4"  same major and minor
    - ">=v1.0.0", "<=", ">", "<" plain comparisons (comma separated terms are ANDed)
    - "v1.2.3"   exact

    Returns "" when nothing matches.
    """
    constraint = constraint.strip()
    candidates = []

    if constraint.startswith(("^", "~")):
        operator, target = constraint[0], parse_semver(constraint[1:])
        if target is None:
            return ""
        for v in versions:
            parsed = parse_semver(v)
            if parsed is None:
                continue
            if operator == "^" and parsed[0] == target[0] and parsed >= target:
                candidates.append((parsed, v))
            elif operator == "~" and parsed[:2] == target[:2] and parsed >= target:
                candidates.append((parsed, v))
    else:
        terms = []
        for raw_term in constraint.split(","):
            match = _COMPARATOR_RE.match(raw_term.strip())
            if not match:
                return ""
            terms.append((match.group(1) or "=", parse_semver(match.group(2))))

        for v in versions:
            parsed = parse_semver(v)
            if parsed is None:
                continue
            if all(_compare(parsed, op, target) for op, target in terms):
                candidates.append((parsed, v))

    if not candidates:
        return ""

    candidates.sort(key=lambda c: c[0], reverse=True)
    return candidates[0][1]


def _compare(version: tuple, operator: str, target: tuple) -> bool:
    if operator == ">=":
        return version >= target
    if operator == "<=":
        return version <= target
    if operator == ">":
        return version > target
    if operator == "<":
        return version < target
    return version == target


def pack_offering_id(offering_id: str, sha: str = "0f3e9a") -> str:
    """Build the "<sha>:o:<offering id>" reference the catalog stores on versions."""
    return f"{sha}:o:{offering_id}"


class InMemoryCatalog:
    """
    In-memory CatalogService.

    Offerings are registered up front; deployments create one ConfigDetails
    per deployed version inside a per-project store.
    """

    def __init__(self, offerings: Optional[list[Offering]] = None):
        self.offerings: dict[tuple[str, str], Offering] = {}
        self.versions_by_locator: dict[str, OfferingVersion] = {}
        self.projects: dict[str, dict[str, ConfigDetails]] = {}
        for offering in offerings or []:
            self.add_offering(offering)

    def add_offering(self, offering: Offering) -> None:
        self.offerings[(offering.catalog_id, offering.id)] = offering
        for version in offering.versions:
            self.versions_by_locator[version.version_locator] = version

    def find_offering_by_name(self, name: str) -> Optional[Offering]:
        for offering in self.offerings.values():
            if offering.name == name:
                return offering
        return None

    async def get_offering(self, catalog_id: str, offering_id: str) -> Offering:
        offering = self.offerings.get((catalog_id, offering_id))
        if offering is None:
            raise CatalogLookupError(
                f"offering not found: catalogID='{catalog_id}', offeringID='{offering_id}'"
            )
        return offering

    async def get_offering_version_locator_by_constraint(
        self, catalog_id: str, offering_id: str, version_constraint: str, flavor: str
    ) -> tuple[str, str]:
        if not catalog_id:
            raise CatalogLookupError("catalogID cannot be empty when getting offering version locator")
        if not offering_id:
            raise CatalogLookupError("offeringID cannot be empty when getting offering version locator")

        offering = await self.get_offering(catalog_id, offering_id)

        locator_by_version = {}
        for v in offering.versions:
            if v.install_kind == TERRAFORM_INSTALL_KIND and v.flavor == flavor:
                locator_by_version[v.version] = v.version_locator

        best = match_version(list(locator_by_version), version_constraint)
        if not best:
            raise CatalogLookupError(
                f"could not find a matching version for dependency {offering.name} "
                f"(constraint='{version_constraint}', flavor='{flavor}')"
            )
        return best, locator_by_version[best]

    async def get_config(self, project_id: str, config_id: str) -> ConfigDetails:
        config = self.projects.get(project_id, {}).get(config_id)
        if config is None:
            raise CatalogLookupError(f"config '{config_id}' not found in project '{project_id}'")
        return config

    async def get_catalog_version_by_locator(self, locator: str) -> OfferingVersion:
        version = self.versions_by_locator.get(locator)
        if version is None:
            raise CatalogLookupError(f"no catalog version for locator '{locator}'")
        return version

    async def deploy_addon_to_project(
        self, unit_config: UnitConfig, project_config: ProjectConfig
    ) -> DeployedAddons:
        """
        Simulate the deployment service.

        Deploys the root version plus every on-by-default or explicitly enabled
        dependency, recursively, skipping names disabled on the root config.
        """
        disabled = set(unit_config.disabled_dependency_names())
        store = self.projects.setdefault(project_config.project_id, {})
        deployed = DeployedAddons(project_id=project_config.project_id)
        seen: set[str] = set()

        pending = [(unit_config.version_locator, unit_config)]
        while pending:
            locator, config = pending.pop(0)
            if locator in seen:
                continue
            seen.add(locator)

            version = await self.get_catalog_version_by_locator(locator)
            offering_id = version.offering_id.split(":o:")[-1]
            offering = await self.get_offering(version.catalog_id, offering_id)

            config_id = uuid.uuid4().hex[:12]
            name = config.config_name or _config_name(project_config.prefix, offering.name)
            store[config_id] = ConfigDetails(
                config_id=config_id,
                name=name,
                locator_id=locator,
                inputs=dict(config.inputs),
                state="deployed",
            )
            deployed.configs.append(DeployedConfig(name=name, config_id=config_id))

            overrides = {d.offering_name: d for d in config.dependencies}
            for dep in version.dependencies:
                override = overrides.get(dep.name)
                if dep.name in disabled:
                    continue
                explicit = override.enabled if override is not None else None
                if not ((dep.on_by_default and explicit is not False) or explicit is True):
                    continue
                flavor = (
                    (override.offering_flavor if override is not None else "")
                    or dep.default_flavor
                    or (dep.allowed_flavors[0] if dep.allowed_flavors else settings.FALLBACK_FLAVOR)
                )
                _, child_locator = await self.get_offering_version_locator_by_constraint(
                    dep.catalog_id, dep.offering_id, dep.version_constraint, flavor
                )
                child = override or UnitConfig(offering_name=dep.name, offering_flavor=flavor)
                pending.append((child_locator, child))

            # Explicitly enabled entries the catalog does not declare
            declared = {dep.name for dep in version.dependencies}
            for dep in config.dependencies:
                if dep.enabled is True and dep.offering_name not in declared | disabled and dep.version_locator:
                    pending.append((dep.version_locator, dep))

        logger.debug(
            "Simulated deployment",
            project_id=project_config.project_id,
            configs=[c.name for c in deployed.configs],
        )
        return deployed

    async def delete_project(self, project_config: ProjectConfig) -> None:
        """Teardown: drop every config deployed into the project."""
        removed = self.projects.pop(project_config.project_id, {})
        logger.debug("Deleted project", project_id=project_config.project_id, configs=len(removed))


def _config_name(prefix: str, offering_name: str) -> str:
    return f"{prefix}-{offering_name}" if prefix else offering_name
