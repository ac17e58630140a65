"""
Dependency Graph Builder Module

Responsibility:
- Expand a root unit's catalog metadata into the expected deployment set
- Record parent -> dependency edges for every included dependency
- Apply selection rules (on-by-default, per-node enable/disable overrides)
- Apply flavor precedence (user -> catalog default -> first allowed -> fallback)
- Guard against cycles with an explicit visited set of version locators

Expansion is depth-first over an explicit stack of frames rather than the
call stack. Each frame walks its node's dependency candidates lazily, so a
later sibling sees everything an earlier sibling's subtree already expanded.

Disabled offerings are collected once from the ROOT config's direct
dependencies and applied by name at every depth. Enable overrides are looked
up on the current node only. Deeper-level disables are not promoted to the
global set.
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional

from addonforge.catalog_db import TERRAFORM_INSTALL_KIND, CatalogService
from addonforge.config import settings
from addonforge.errors import ResolutionError
from addonforge.logging import get_logger
from addonforge.models import (
    DependencyDeclaration,
    DependencyGraphResult,
    OfferingIdentity,
    OfferingVersion,
    ResolvedNode,
    UnitConfig,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class BuildScope:
    """Build-wide settings passed unchanged to every node."""
    disabled_offerings: frozenset[str]
    fallback_flavor: str


@dataclass
class _PendingUnit:
    catalog_id: str
    offering_id: str
    version_locator: str
    flavor: str
    unit_config: UnitConfig


@dataclass
class _Frame:
    node: ResolvedNode
    version: OfferingVersion
    unit_config: UnitConfig
    steps: Iterator
    # (name, flavor) pairs included from catalog declarations at this node
    processed: set[tuple[str, str]] = field(default_factory=set)


def collect_disabled_offerings(unit_config: UnitConfig) -> frozenset[str]:
    """Names disabled on the root's direct dependency list."""
    return frozenset(unit_config.disabled_dependency_names())


def find_override(unit_config: UnitConfig, name: str) -> Optional[UnitConfig]:
    """First dependency entry on this node matching `name`."""
    for dep in unit_config.dependencies:
        if dep.offering_name == name:
            return dep
    return None


def is_included(declaration: DependencyDeclaration, override: Optional[UnitConfig]) -> bool:
    """
    Selection rule for one catalog-declared dependency at one node.

    include = (on_by_default and not explicitly disabled) or explicitly enabled
    """
    explicit = override.enabled if override is not None else None
    return (declaration.on_by_default and explicit is not False) or explicit is True


def resolve_flavor(
    declaration: DependencyDeclaration,
    override: Optional[UnitConfig],
    fallback: str = "",
) -> str:
    """User flavor, then catalog default, then first allowed, then the fallback."""
    if override is not None and override.offering_flavor:
        return override.offering_flavor
    if declaration.default_flavor:
        return declaration.default_flavor
    if declaration.allowed_flavors:
        return declaration.allowed_flavors[0]
    return fallback or settings.FALLBACK_FLAVOR


def find_child_config(unit_config: UnitConfig, name: str, flavor: str) -> Optional[UnitConfig]:
    """Child config by name and flavor. Entries without a flavor match any flavor."""
    for dep in unit_config.dependencies:
        if dep.offering_name == name and dep.offering_flavor in (flavor, ""):
            return dep
    return None


def find_circular_chains(
    edges: dict[OfferingIdentity, list[OfferingIdentity]],
    root: OfferingIdentity,
) -> list[list[str]]:
    """
    Name chains of every cycle reachable from `root`, e.g. ["a", "b", "a"].

    Each distinct chain is reported once, in discovery order.
    """
    chains: list[list[str]] = []
    seen: set[tuple[str, ...]] = set()

    def walk(node: OfferingIdentity, path: list[OfferingIdentity]) -> None:
        for child in edges.get(node, []):
            if child in path:
                start = path.index(child)
                chain = [n.name for n in path[start:]] + [child.name]
                if tuple(chain) not in seen:
                    seen.add(tuple(chain))
                    chains.append(chain)
                continue
            walk(child, path + [child])

    walk(root, [root])
    return chains


class DependencyGraphBuilder:
    """
    Builds the expected dependency graph for one run.

    Holds no state between build() calls; safe to share across runs.
    """

    def __init__(self, catalog: CatalogService, fallback_flavor: Optional[str] = None):
        self.catalog = catalog
        self.fallback_flavor = fallback_flavor or settings.FALLBACK_FLAVOR

    async def build(
        self,
        catalog_id: str,
        offering_id: str,
        version_locator: str,
        flavor: str,
        unit_config: UnitConfig,
        disabled_offerings: Optional[frozenset[str]] = None,
        visited: Optional[set[str]] = None,
    ) -> DependencyGraphResult:
        """
        Expand the root unit into edges and an expected deployment list.

        Raises ResolutionError / CatalogLookupError on the first unresolvable
        offering or version; nothing partial is returned in that case.
        """
        if disabled_offerings is None:
            disabled_offerings = collect_disabled_offerings(unit_config)
        scope = BuildScope(
            disabled_offerings=frozenset(disabled_offerings),
            fallback_flavor=self.fallback_flavor,
        )

        result = DependencyGraphResult(visited=set(visited or ()))
        if version_locator in result.visited:
            return result

        root = _PendingUnit(catalog_id, offering_id, version_locator, flavor, unit_config)
        stack = [await self._expand(root, result, depth=0)]

        while stack:
            frame = stack[-1]
            step = next(frame.steps, None)
            if step is None:
                stack.pop()
                continue

            kind, item = step
            if kind == "catalog":
                child = await self._catalog_child(frame, item, scope, result)
            else:
                child = await self._manual_child(frame, item, scope, result)

            if child is None:
                continue

            if child.version_locator in result.visited:
                logger.debug(
                    "Dependency already expanded",
                    parent=frame.node.identity.key,
                    dependency=child.unit_config.offering_name,
                    version_locator=child.version_locator,
                )
                continue

            stack.append(await self._expand(child, result, depth=frame.node.depth + 1))

        logger.debug(
            "Dependency graph built",
            root=result.expected_list[0].key if result.expected_list else None,
            expected=len(result.expected_list),
            parents=len(result.edges),
        )
        return result

    async def _expand(self, pending: _PendingUnit, result: DependencyGraphResult, depth: int) -> _Frame:
        """Resolve one unit, add it to the expected list and open its frame."""
        result.visited.add(pending.version_locator)

        offering = await self.catalog.get_offering(pending.catalog_id, pending.offering_id)

        version = None
        for v in offering.versions:
            if v.install_kind == TERRAFORM_INSTALL_KIND and v.version_locator == pending.version_locator:
                version = v
                break
        if version is None:
            raise ResolutionError(f"version not found for version locator: {pending.version_locator}")

        identity = OfferingIdentity(offering.name, version.version, pending.flavor)
        result.expected_list.append(identity)

        node = ResolvedNode(
            identity=identity,
            version_locator=pending.version_locator,
            catalog_id=pending.catalog_id,
            offering_id=pending.offering_id,
            depth=depth,
        )
        result.nodes.setdefault(identity, node)

        steps = [("catalog", d) for d in version.dependencies]
        steps += [("manual", d) for d in pending.unit_config.dependencies if d.enabled is True]

        return _Frame(node=node, version=version, unit_config=pending.unit_config, steps=iter(steps))

    async def _catalog_child(
        self,
        frame: _Frame,
        declaration: DependencyDeclaration,
        scope: BuildScope,
        result: DependencyGraphResult,
    ) -> Optional[_PendingUnit]:
        parent = frame.node.identity

        if declaration.name in scope.disabled_offerings:
            logger.debug(
                "Skipping catalog dependency disabled at root level",
                dependency=declaration.name,
                parent=parent.key,
            )
            return None

        override = find_override(frame.unit_config, declaration.name)
        if not is_included(declaration, override):
            return None

        flavor = resolve_flavor(declaration, override, scope.fallback_flavor)
        version, locator = await self.catalog.get_offering_version_locator_by_constraint(
            declaration.catalog_id,
            declaration.offering_id,
            declaration.version_constraint,
            flavor,
        )

        child = OfferingIdentity(declaration.name, version, flavor)
        result.edges.setdefault(parent, []).append(child)
        frame.processed.add((declaration.name, flavor))

        child_config = find_child_config(frame.unit_config, declaration.name, flavor)
        if child_config is None:
            child_config = UnitConfig(
                offering_name=declaration.name,
                offering_flavor=flavor,
                catalog_id=declaration.catalog_id,
                offering_id=declaration.offering_id,
                version_locator=locator,
            )

        return _PendingUnit(declaration.catalog_id, declaration.offering_id, locator, flavor, child_config)

    async def _manual_child(
        self,
        frame: _Frame,
        dep: UnitConfig,
        scope: BuildScope,
        result: DependencyGraphResult,
    ) -> Optional[_PendingUnit]:
        """Explicitly enabled entries the catalog did not declare at this node."""
        parent = frame.node.identity

        if dep.offering_name in scope.disabled_offerings:
            logger.debug(
                "Skipping manually enabled dependency disabled at root level",
                dependency=dep.offering_name,
                parent=parent.key,
            )
            return None

        declared = any(d.name == dep.offering_name for d in frame.version.dependencies)
        if declared and (not dep.offering_flavor or (dep.offering_name, dep.offering_flavor) in frame.processed):
            return None
        if dep.version_locator in result.visited:
            return None
        if not dep.version_locator:
            raise ResolutionError(
                f"manually enabled dependency {dep.offering_name} of {parent.name} has no version locator"
            )

        version = dep.resolved_version
        if not version:
            version = (await self.catalog.get_catalog_version_by_locator(dep.version_locator)).version

        logger.info(
            "Processing manually enabled dependency",
            dependency=dep.offering_name,
            parent=parent.name,
        )
        child = OfferingIdentity(dep.offering_name, version, dep.offering_flavor)
        result.edges.setdefault(parent, []).append(child)

        return _PendingUnit(dep.catalog_id, dep.offering_id, dep.version_locator, dep.offering_flavor, dep)
