"""Unit tests for the dependency graph builder."""

import copy

import pytest

from addonforge.dependency_graph import (
    DependencyGraphBuilder,
    find_circular_chains,
    find_child_config,
    is_included,
    resolve_flavor,
)
from addonforge.errors import CatalogLookupError, ResolutionError
from addonforge.models import DependencyDeclaration, OfferingIdentity, UnitConfig

FC = "fully-configurable"


def ident(name: str, version: str = "v1.0.0", flavor: str = FC) -> OfferingIdentity:
    return OfferingIdentity(name, version, flavor)


async def build(catalog, unit: UnitConfig, **kwargs):
    builder = DependencyGraphBuilder(catalog)
    return await builder.build(
        unit.catalog_id, unit.offering_id, unit.version_locator, unit.offering_flavor, unit, **kwargs
    )


def declaration(**kwargs) -> DependencyDeclaration:
    defaults = dict(name="dep", catalog_id="cat", offering_id="dep-id", version_constraint="^v1.0.0")
    defaults.update(kwargs)
    return DependencyDeclaration(**defaults)


@pytest.mark.asyncio
async def test_unit_without_dependencies(catalog, unit_for) -> None:
    """A leaf unit yields one expected entry and no edges."""
    result = await build(catalog, unit_for("solo"))

    assert result.expected_list == [ident("solo")]
    assert result.edges == {}


@pytest.mark.asyncio
async def test_two_node_cycle_terminates(catalog, unit_for) -> None:
    """alpha <-> beta is expanded once each, with both edges recorded once."""
    result = await build(catalog, unit_for("alpha"))

    assert result.expected_list == [ident("alpha"), ident("beta")]
    assert result.edges == {ident("alpha"): [ident("beta")], ident("beta"): [ident("alpha")]}
    assert max(node.depth for node in result.nodes.values()) == 1


@pytest.mark.asyncio
async def test_diamond_expands_shared_child_once(catalog, unit_for) -> None:
    """The second parent of a shared child keeps its edge but does not re-expand it."""
    result = await build(catalog, unit_for("top"))

    assert result.expected_list == [ident("top"), ident("left"), ident("bottom"), ident("right")]
    assert result.edges[ident("top")] == [ident("left"), ident("right")]
    assert result.edges[ident("left")] == [ident("bottom")]
    assert result.edges[ident("right")] == [ident("bottom")]


@pytest.mark.asyncio
async def test_default_selection_and_constraint_resolution(catalog, unit_for) -> None:
    """On-by-default deps are included, off-by-default ones are not, constraints pick the highest match."""
    result = await build(catalog, unit_for("app"))

    app = ident("app", "v2.0.0")
    assert result.edges[app] == [ident("cos", "v1.1.0"), ident("cloud-logs")]
    assert result.expected_list == [app, ident("cos", "v1.1.0"), ident("cloud-logs")]
    assert result.edges[ident("cloud-logs")] == [ident("cos", "v1.1.0")]


@pytest.mark.asyncio
async def test_explicit_enable_includes_optional_dependency(catalog, unit_for) -> None:
    """An off-by-default dependency is included when enabled on the node."""
    unit = unit_for("app", dependencies=[UnitConfig(offering_name="kms", enabled=True)])

    result = await build(catalog, unit)

    assert ident("kms") in result.edges[ident("app", "v2.0.0")]
    assert result.expected_list.count(ident("kms")) == 1


@pytest.mark.asyncio
async def test_root_disable_applies_at_every_depth(catalog, unit_for) -> None:
    """Disabling cos on the root removes it below cloud-logs as well."""
    unit = unit_for("app", dependencies=[UnitConfig(offering_name="cos", enabled=False)])

    result = await build(catalog, unit)

    assert result.expected_list == [ident("app", "v2.0.0"), ident("cloud-logs")]
    assert ident("cloud-logs") not in result.edges


@pytest.mark.asyncio
async def test_nested_disable_stays_local(catalog, unit_for) -> None:
    """A disable below the root only affects that node."""
    logs = UnitConfig(
        offering_name="cloud-logs",
        dependencies=[UnitConfig(offering_name="cos", enabled=False)],
    )
    unit = unit_for("app", dependencies=[logs])

    result = await build(catalog, unit)

    assert ident("cos", "v1.1.0") in result.expected_list
    assert ident("cloud-logs") not in result.edges


@pytest.mark.asyncio
async def test_manually_enabled_undeclared_dependency(catalog, unit_for) -> None:
    """An enabled entry the catalog does not declare is expanded from its own locator."""
    unit = unit_for("solo", dependencies=[unit_for("kms", enabled=True)])

    result = await build(catalog, unit)

    assert result.edges == {ident("solo"): [ident("kms")]}
    assert result.expected_list == [ident("solo"), ident("kms")]


@pytest.mark.asyncio
async def test_manual_dependency_without_locator_fails(catalog, unit_for) -> None:
    """An undeclared enabled entry needs a version locator."""
    unit = unit_for("solo", dependencies=[UnitConfig(offering_name="kms", enabled=True)])

    with pytest.raises(ResolutionError):
        await build(catalog, unit)


@pytest.mark.asyncio
async def test_unknown_version_locator_fails(catalog, unit_for) -> None:
    """A locator that matches no published version aborts the build."""
    unit = unit_for("solo", version_locator="cat.solo.bogus")

    with pytest.raises(ResolutionError, match="version not found for version locator: cat.solo.bogus"):
        await build(catalog, unit)


@pytest.mark.asyncio
async def test_unsatisfiable_flavor_fails(catalog, unit_for) -> None:
    """A dependency flavor the catalog never published cannot be resolved."""
    unit = unit_for("app", dependencies=[UnitConfig(offering_name="cos", offering_flavor="missing")])

    with pytest.raises(CatalogLookupError):
        await build(catalog, unit)


@pytest.mark.asyncio
async def test_input_tree_is_not_mutated(catalog, unit_for) -> None:
    """The caller's UnitConfig tree is left exactly as it was."""
    unit = unit_for("app", dependencies=[UnitConfig(offering_name="kms", enabled=True)])
    snapshot = copy.deepcopy(unit)

    await build(catalog, unit)

    assert unit == snapshot


@pytest.mark.asyncio
async def test_previsited_root_returns_empty_result(catalog, unit_for) -> None:
    """A root whose locator is already visited adds nothing."""
    unit = unit_for("solo")

    result = await build(catalog, unit, visited={unit.version_locator})

    assert result.expected_list == []
    assert result.edges == {}


def test_selection_rules() -> None:
    """Inclusion follows the on-by-default flag unless explicitly overridden."""
    on = declaration(on_by_default=True)
    off = declaration(on_by_default=False)

    assert is_included(on, None)
    assert is_included(off, UnitConfig(offering_name="dep", enabled=True))
    assert not is_included(on, UnitConfig(offering_name="dep", enabled=False))
    assert not is_included(off, None)
    assert is_included(on, UnitConfig(offering_name="dep"))


def test_flavor_precedence() -> None:
    """User flavor beats catalog default beats first allowed beats the fallback."""
    with_default = declaration(default_flavor="y", allowed_flavors=("y", "z"))
    allowed_only = declaration(allowed_flavors=("y", "z"))

    assert resolve_flavor(with_default, UnitConfig(offering_name="dep", offering_flavor="x")) == "x"
    assert resolve_flavor(with_default, None) == "y"
    assert resolve_flavor(allowed_only, UnitConfig(offering_name="dep")) == "y"
    assert resolve_flavor(declaration(), None) == FC


def test_find_child_config_matches_flavorless_entries() -> None:
    """Entries without a flavor match any flavor; flavored ones must match exactly."""
    parent = UnitConfig(
        offering_name="root",
        dependencies=[
            UnitConfig(offering_name="a", offering_flavor="x"),
            UnitConfig(offering_name="b"),
        ],
    )

    assert find_child_config(parent, "a", "x") is parent.dependencies[0]
    assert find_child_config(parent, "a", "y") is None
    assert find_child_config(parent, "b", "anything") is parent.dependencies[1]


@pytest.mark.asyncio
async def test_find_circular_chains(catalog, unit_for) -> None:
    """The alpha/beta cycle is reported as a single name chain."""
    result = await build(catalog, unit_for("alpha"))

    assert find_circular_chains(result.edges, result.expected_list[0]) == [["alpha", "beta", "alpha"]]


def test_find_circular_chains_none_in_diamond() -> None:
    """Shared children are not cycles."""
    top, left, right, bottom = ident("top"), ident("left"), ident("right"), ident("bottom")
    edges = {top: [left, right], left: [bottom], right: [bottom]}

    assert find_circular_chains(edges, top) == []
