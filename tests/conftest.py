"""Shared fixtures: a small in-memory catalog with cyclic, diamond and flavored offerings."""

from typing import Optional

import pytest

from addonforge.catalog_db import InMemoryCatalog, pack_offering_id
from addonforge.models import (
    CatalogInput,
    DependencyDeclaration,
    Offering,
    OfferingVersion,
    UnitConfig,
)

CATALOG_ID = "cat"
FC = "fully-configurable"


def locator_for(name: str, version: str, flavor: str = FC) -> str:
    return f"{CATALOG_ID}.{name}.{flavor}.{version}"


def declare(
    name: str,
    on_by_default: bool = True,
    constraint: str = "^v1.0.0",
    default_flavor: str = "",
    flavors: tuple = (),
) -> DependencyDeclaration:
    return DependencyDeclaration(
        name=name,
        catalog_id=CATALOG_ID,
        offering_id=f"{name}-id",
        version_constraint=constraint,
        on_by_default=on_by_default,
        default_flavor=default_flavor,
        allowed_flavors=flavors,
    )


def version_of(
    name: str,
    version: str = "v1.0.0",
    flavor: str = FC,
    dependencies: Optional[list] = None,
    inputs: Optional[list] = None,
) -> OfferingVersion:
    return OfferingVersion(
        version=version,
        version_locator=locator_for(name, version, flavor),
        flavor=flavor,
        catalog_id=CATALOG_ID,
        offering_id=pack_offering_id(f"{name}-id"),
        dependencies=dependencies or [],
        inputs=inputs or [],
    )


def offering(name: str, *versions: OfferingVersion) -> Offering:
    return Offering(id=f"{name}-id", catalog_id=CATALOG_ID, name=name, versions=list(versions))


def build_catalog() -> InMemoryCatalog:
    return InMemoryCatalog([
        offering("solo", version_of("solo")),
        # alpha <-> beta
        offering("alpha", version_of("alpha", dependencies=[declare("beta")])),
        offering("beta", version_of("beta", dependencies=[declare("alpha")])),
        # top -> left, right -> bottom
        offering("top", version_of("top", dependencies=[declare("left"), declare("right")])),
        offering("left", version_of("left", dependencies=[declare("bottom")])),
        offering("right", version_of("right", dependencies=[declare("bottom")])),
        offering("bottom", version_of("bottom")),
        # app with optional and default-on dependencies
        offering("app", version_of(
            "app",
            version="v2.0.0",
            dependencies=[declare("cos"), declare("kms", on_by_default=False), declare("cloud-logs")],
            inputs=[CatalogInput(key="prefix", required=True), CatalogInput(key="ibmcloud_api_key", required=True)],
        )),
        offering("cos", version_of("cos", "v1.0.0"), version_of("cos", "v1.1.0"), version_of("cos", "v2.0.0")),
        offering("kms", version_of("kms")),
        offering("cloud-logs", version_of(
            "cloud-logs",
            dependencies=[declare("cos")],
            inputs=[CatalogInput(key="cos_crn", required=True, default="__NOT_SET__")],
        )),
        # same offering published under several flavors
        offering(
            "flavored",
            version_of("flavored", flavor="x"),
            version_of("flavored", flavor="y"),
            version_of("flavored", flavor="z"),
            version_of("flavored", flavor=FC),
        ),
    ])


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return build_catalog()


@pytest.fixture
def unit_for(catalog):
    """Factory: UnitConfig pointing at an offering's first published version."""
    def make(name: str, dependencies: Optional[list] = None, **kwargs) -> UnitConfig:
        found = catalog.find_offering_by_name(name)
        version = found.versions[0]
        fields = dict(
            offering_name=name,
            offering_flavor=version.flavor,
            catalog_id=found.catalog_id,
            offering_id=found.id,
            version_locator=version.version_locator,
            resolved_version=version.version,
            offering_inputs=list(version.inputs),
            dependencies=dependencies or [],
        )
        fields.update(kwargs)
        return UnitConfig(**fields)
    return make
