"""
Deployed-State Projector Module

Responsibility:
- Map configurations the deployment service reports back onto OfferingIdentity
- Chase config -> version locator -> catalog version -> offering name
- Never abort early: every config is attempted, problems are collected

An entry whose identity cannot be recovered lands in `errors`. An auxiliary
problem that still lets the identity be recovered lands in `warnings`.
"""

from typing import Optional

from addonforge.catalog_db import CatalogService
from addonforge.logging import get_logger
from addonforge.models import DeployedAddons, OfferingIdentity, ProjectionResult

logger = get_logger(__name__)

PACKED_OFFERING_SEPARATOR = ":o:"


def parse_offering_id(raw_offering_id: str) -> Optional[str]:
    """
    Recover a bare offering ID from the catalog's packed "<sha>:o:<id>" form.

    A value without any colon is already bare. Anything else that does not
    split into exactly two non-empty halves around ":o:" is malformed (None).
    """
    if PACKED_OFFERING_SEPARATOR in raw_offering_id:
        parts = raw_offering_id.split(PACKED_OFFERING_SEPARATOR)
        if len(parts) == 2 and parts[0] and parts[1]:
            return parts[1]
        return None
    if ":" in raw_offering_id or not raw_offering_id:
        return None
    return raw_offering_id


class DeployedStateProjector:
    """Projects a deployment response onto the identities the builder produces."""

    def __init__(self, catalog: CatalogService):
        self.catalog = catalog

    async def project(self, deployed: Optional[DeployedAddons]) -> ProjectionResult:
        result = ProjectionResult()

        if deployed is None:
            result.errors.append("deployed configs is nil")
            return result

        for config in deployed.configs:
            identity = await self._project_one(deployed.project_id, config.name, config.config_id, result)
            if identity is not None:
                result.actually_deployed.append(identity)

        for warning in result.warnings:
            logger.warning("Deployed config projection warning", detail=warning)
        for error in result.errors:
            logger.warning("Deployed config projection error", detail=error)

        return result

    async def _project_one(
        self, project_id: str, name: str, config_id: str, result: ProjectionResult
    ) -> Optional[OfferingIdentity]:
        try:
            details = await self.catalog.get_config(project_id, config_id)
        except Exception as e:
            result.errors.append(f"Could not get config details for {name} ({config_id}): {e}")
            return None

        if not details.locator_id:
            result.errors.append(f"Could not get locator ID for config {name}")
            return None
        locator = details.locator_id

        try:
            version = await self.catalog.get_catalog_version_by_locator(locator)
        except Exception as e:
            result.errors.append(f"Could not get catalog version for config {name} (locator: {locator}): {e}")
            return None

        if not version.version:
            result.errors.append(f"Invalid catalog version for config {name} (locator: {locator})")
            return None

        flavor = version.flavor or ""
        if not flavor:
            result.warnings.append(f"No flavor recorded for config {name} (locator: {locator})")

        if not version.catalog_id:
            result.errors.append(f"CatalogID is nil for config {name} (locator: {locator})")
            return None
        if not version.offering_id:
            result.errors.append(f"OfferingID is nil for config {name} (locator: {locator})")
            return None

        offering_id = parse_offering_id(version.offering_id)
        if offering_id is None:
            result.errors.append(
                f"Invalid offering ID format for config {name}: {version.offering_id} "
                f"(expected format: <sha>:o:<offering_id>)"
            )
            return None

        try:
            offering = await self.catalog.get_offering(version.catalog_id, offering_id)
        except Exception as e:
            result.errors.append(
                f"Could not get offering details for config {name} "
                f"(catalog: {version.catalog_id}, offering: {offering_id}): {e}"
            )
            return None

        if not offering.name:
            result.errors.append(
                f"Offering name is nil for config {name} (catalog: {version.catalog_id}, offering: {offering_id})"
            )
            return None

        if details.state and details.state != "deployed":
            result.warnings.append(f"Config {name} is in state '{details.state}'")

        return OfferingIdentity(offering.name, version.version, flavor)
