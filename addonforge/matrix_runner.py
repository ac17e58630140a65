"""
Matrix Runner Module

Responsibility:
- Run a batch of test cases concurrently with staggered start times
- Provision the shared catalog/offering once (first writer) and reuse it
- Per run: build expected graph -> deploy -> project -> validate -> check inputs
- Bucket raised errors through the error classifier
- Contain crashes at the run boundary and always tear down

Runs share nothing but the first-writer resource and the results list.
Neither lock is held across a collaborator call made on behalf of a run.
"""

import asyncio
import traceback
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from addonforge.catalog_db import CatalogService
from addonforge.config import settings
from addonforge.dependency_graph import DependencyGraphBuilder, find_circular_chains
from addonforge.deployed_state import DeployedStateProjector
from addonforge.error_classifier import CIRCULAR_DEPENDENCY_TEMPLATE, ErrorType, classify_error, error_type_of
from addonforge.errors import AddonForgeError, CatalogLookupError, SharedResourceError
from addonforge.logging import get_logger
from addonforge.models import (
    AddonTestCase,
    ProjectConfig,
    RunResult,
    UnitConfig,
    ValidationResult,
)
from addonforge.report_renderer import render_validation_summary
from addonforge.validator import missing_inputs_message, validate_dependencies, validate_required_inputs

logger = get_logger(__name__)

TRACEBACK_TAIL_LINES = 6


@dataclass(frozen=True)
class SharedOffering:
    """The catalog/offering pair every run in a batch deploys from."""
    catalog_id: str
    offering_id: str
    version_locator: str


def stagger_wait(index: int, delay: float, batch_size: int, within_batch_delay: float) -> float:
    """
    Seconds run `index` waits before starting.

    Batched: batch_number * delay + position_in_batch * within_batch_delay.
    batch_size <= 0 falls back to linear staggering: index * delay.
    """
    if batch_size <= 0:
        return index * delay
    batch, position = divmod(index, batch_size)
    return batch * delay + position * within_batch_delay


class FirstWriterResource:
    """
    Created by whichever run gets here first, reused read-only by the rest.

    If creation fails, every run asking afterwards gets the same failure
    instead of carrying on without the resource.
    """

    def __init__(self, factory: Callable[[], Awaitable[Any]]):
        self._factory = factory
        self._lock = asyncio.Lock()
        self._created = False
        self._value: Any = None
        self._error: Optional[BaseException] = None

    async def get(self, requester: str = "") -> Any:
        async with self._lock:
            if self._error is not None:
                raise SharedResourceError(f"shared catalog/offering setup failed: {self._error}")
            if self._created:
                logger.info("Reusing shared catalog and offering", run=requester)
                return self._value
            try:
                self._value = await self._factory()
            except Exception as e:
                self._error = e
                logger.error("Shared catalog and offering setup failed", run=requester, error=str(e))
                raise SharedResourceError(f"shared catalog/offering setup failed: {e}") from e
            self._created = True
            logger.info("Created shared catalog and offering", run=requester)
            return self._value


class MatrixRunner:
    """Runs test cases for one root unit against a catalog service."""

    def __init__(
        self,
        catalog: CatalogService,
        root: UnitConfig,
        stagger_delay: Optional[float] = None,
        batch_size: Optional[int] = None,
        within_batch_delay: Optional[float] = None,
        shared_setup: Optional[Callable[[], Awaitable[SharedOffering]]] = None,
        teardown: Optional[Callable[[ProjectConfig], Awaitable[None]]] = None,
        ignored_inputs: Optional[list[str]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.catalog = catalog
        self.root = root
        self.stagger_delay = settings.STAGGER_DELAY_SECONDS if stagger_delay is None else stagger_delay
        self.batch_size = settings.STAGGER_BATCH_SIZE if batch_size is None else batch_size
        self.within_batch_delay = (
            settings.WITHIN_BATCH_DELAY_SECONDS if within_batch_delay is None else within_batch_delay
        )
        self.shared_setup = shared_setup or self._root_offering
        self.teardown = teardown
        self.ignored_inputs = settings.ignored_required_inputs if ignored_inputs is None else ignored_inputs
        self.sleep = sleep

        self.builder = DependencyGraphBuilder(catalog)
        self.projector = DeployedStateProjector(catalog)

    async def _root_offering(self) -> SharedOffering:
        return SharedOffering(self.root.catalog_id, self.root.offering_id, self.root.version_locator)

    async def run(self, cases: list[AddonTestCase]) -> list[RunResult]:
        """Run every case concurrently. Results come back in case order."""
        results: list[RunResult] = []
        results_lock = asyncio.Lock()
        shared = FirstWriterResource(self.shared_setup)

        async def run_one(index: int, case: AddonTestCase) -> None:
            wait = stagger_wait(index, self.stagger_delay, self.batch_size, self.within_batch_delay)
            if wait > 0:
                logger.info("Staggering run start", run=case.name, index=index, wait_seconds=wait)
                await self.sleep(wait)

            result = await self.run_case(case, shared)
            async with results_lock:
                results.append(result)

        logger.info(
            "Starting test matrix",
            root=self.root.offering_name,
            cases=len(cases),
            batch_size=self.batch_size,
        )
        await asyncio.gather(*(run_one(i, case) for i, case in enumerate(cases)))

        order = {case.name: i for i, case in enumerate(cases)}
        results.sort(key=lambda r: order.get(r.name, len(order)))
        return results

    async def run_single(self, prefix: str) -> RunResult:
        """Run the root config as-is (no permutation)."""
        case = AddonTestCase(
            name=self.root.offering_name,
            prefix=prefix,
            dependencies=list(self.root.dependencies),
        )
        results = await self.run([case])
        return results[0]

    def unit_config_for(self, case: AddonTestCase) -> UnitConfig:
        """Root config with the case's dependency overrides and inputs applied."""
        return UnitConfig(
            offering_name=self.root.offering_name,
            offering_flavor=self.root.offering_flavor,
            catalog_id=self.root.catalog_id,
            offering_id=self.root.offering_id,
            version_locator=self.root.version_locator,
            resolved_version=self.root.resolved_version,
            enabled=True,
            config_name=self.root.config_name,
            inputs={**self.root.inputs, **case.inputs},
            offering_inputs=list(self.root.offering_inputs),
            dependencies=list(case.dependencies),
        )

    async def run_case(self, case: AddonTestCase, shared: FirstWriterResource) -> RunResult:
        unit_config = self.unit_config_for(case)
        result = RunResult(name=case.name, prefix=case.prefix, unit_config=unit_config, passed=False)
        project = ProjectConfig(project_id=f"{case.prefix}-project", name=case.name, prefix=case.prefix)

        try:
            await self._execute(unit_config, project, result, shared)
        except AddonForgeError as e:
            categorize_error(str(e), result)
        except Exception as e:
            tail = traceback.format_exc().strip().splitlines()[-TRACEBACK_TAIL_LINES:]
            result.runtime_errors.append(
                f"runtime error in {case.name}: {type(e).__name__}: {e}\n" + "\n".join(tail)
            )
            logger.error("Run crashed", run=case.name, error=str(e), exc_info=True)
        finally:
            if not case.skip_teardown and self.teardown is not None:
                try:
                    await self.teardown(project)
                except Exception as e:
                    result.runtime_errors.append(f"undeploy and wait failed for {project.project_id}: {e}")

        result.passed = (
            result.validation_result is not None
            and result.validation_result.is_valid
            and not result.transient_errors
            and not result.runtime_errors
        )
        logger.info(
            "Run finished",
            run=case.name,
            passed=result.passed,
            transient_errors=len(result.transient_errors),
            runtime_errors=len(result.runtime_errors),
        )
        return result

    async def _execute(
        self,
        unit_config: UnitConfig,
        project: ProjectConfig,
        result: RunResult,
        shared: FirstWriterResource,
    ) -> None:
        offering = await shared.get(requester=result.name)

        graph = await self.builder.build(
            offering.catalog_id,
            offering.offering_id,
            offering.version_locator,
            unit_config.offering_flavor,
            unit_config,
        )

        deployed = await self.catalog.deploy_addon_to_project(unit_config, project)
        projection = await self.projector.project(deployed)

        validation = validate_dependencies(graph.edges, graph.expected_list, projection.actually_deployed)
        if projection.errors:
            validation.configuration_errors.extend(projection.errors)
            validation.is_valid = False

        missing = await self._check_required_inputs(project, deployed)
        if missing:
            validation.missing_inputs.extend(missing)
            validation.messages.append(missing_inputs_message(missing))
            validation.is_valid = False

        if not validation.is_valid and graph.expected_list:
            for chain in find_circular_chains(graph.edges, graph.expected_list[0]):
                validation.messages.append(CIRCULAR_DEPENDENCY_TEMPLATE.format(chain=" → ".join(chain)))
            logger.warning(
                "Dependency validation failed",
                run=result.name,
                summary=render_validation_summary(validation, projection.warnings),
            )

        result.validation_result = validation

    async def _check_required_inputs(self, project: ProjectConfig, deployed) -> list[str]:
        missing = []
        for config in deployed.configs:
            try:
                details = await self.catalog.get_config(project.project_id, config.config_id)
                if not details.locator_id:
                    continue
                version = await self.catalog.get_catalog_version_by_locator(details.locator_id)
            except CatalogLookupError:
                # Already reported by the projector
                continue

            declared = UnitConfig(offering_name=config.name, offering_inputs=list(version.inputs))
            _, config_missing = validate_required_inputs(details, declared, self.ignored_inputs)
            missing.extend(config_missing)
        return missing


def categorize_error(message: str, result: RunResult) -> None:
    """File a raised error under the bucket the classifier assigns it."""
    error_type = error_type_of(message)

    if error_type == ErrorType.RUNTIME:
        result.runtime_errors.append(message)
    elif error_type == ErrorType.VALIDATION:
        if result.validation_result is None:
            result.validation_result = ValidationResult(is_valid=False)
        validation = result.validation_result
        validation.is_valid = False
        subtype = classify_error(message).subtype
        if subtype == "missing_inputs":
            validation.missing_inputs.append(message)
        elif subtype == "configuration":
            validation.configuration_errors.append(message)
        else:
            validation.messages.append(message)
    else:
        result.transient_errors.append(message)
