"""
Validation Engine Module

Responsibility:
- Diff the expected dependency graph against what was actually deployed
- Report unmet edges (with same-name alternatives), unexpected and missing configs
- Check required offering inputs on a deployed config

Pure functions: every check runs, every finding is collected, nothing raises.
"""

from typing import Iterable, Optional

from addonforge.error_classifier import (
    DEPENDENCY_ERRORS_TEMPLATE,
    LENGTH_MISMATCH_TEMPLATE,
    MISSING_CONFIGS_TEMPLATE,
    MISSING_INPUTS_PREFIX,
    SUCCESS_MESSAGE,
    UNEXPECTED_CONFIGS_TEMPLATE,
)
from addonforge.models import (
    ConfigDetails,
    DependencyError,
    OfferingIdentity,
    UnitConfig,
    ValidationResult,
)

NOT_SET_SENTINEL = "__NOT_SET__"


def validate_dependencies(
    edges: dict[OfferingIdentity, list[OfferingIdentity]],
    expected_list: list[OfferingIdentity],
    actual_list: list[OfferingIdentity],
) -> ValidationResult:
    """
    Compare the expected graph/list with the actually deployed list.

    Returns a ValidationResult with all findings; is_valid is False if any
    finding exists or the two lists differ in length.
    """
    result = ValidationResult()

    # Step 1: every edge's dependency must be deployed
    result.dependency_errors.extend(_validate_edges(edges, actual_list))

    # Step 2: deployed but not expected
    result.unexpected_configs.extend(_missing_from(actual_list, expected_list))

    # Step 3: expected but not deployed
    result.missing_configs.extend(_missing_from(expected_list, actual_list))

    length_mismatch = len(expected_list) != len(actual_list)

    result.is_valid = not (
        result.dependency_errors
        or result.unexpected_configs
        or result.missing_configs
        or length_mismatch
    )

    if result.is_valid:
        result.messages.append(SUCCESS_MESSAGE)
    else:
        if result.dependency_errors:
            result.messages.append(DEPENDENCY_ERRORS_TEMPLATE.format(count=len(result.dependency_errors)))
        if result.unexpected_configs:
            result.messages.append(UNEXPECTED_CONFIGS_TEMPLATE.format(count=len(result.unexpected_configs)))
        if result.missing_configs:
            result.messages.append(MISSING_CONFIGS_TEMPLATE.format(count=len(result.missing_configs)))
        if length_mismatch:
            result.messages.append(
                LENGTH_MISMATCH_TEMPLATE.format(expected=len(expected_list), actual=len(actual_list))
            )

    return result


def _validate_edges(
    edges: dict[OfferingIdentity, list[OfferingIdentity]],
    actual_list: list[OfferingIdentity],
) -> list[DependencyError]:
    errors = []
    deployed = set(actual_list)

    for unit, dependencies in edges.items():
        for dependency in dependencies:
            if dependency in deployed:
                continue
            alternatives = [a for a in actual_list if a.name == dependency.name]
            errors.append(DependencyError(
                unit=unit,
                missing_dependency=dependency,
                available_alternatives=alternatives,
            ))

    return errors


def _missing_from(
    source: Iterable[OfferingIdentity], reference: Iterable[OfferingIdentity]
) -> list[OfferingIdentity]:
    """Entries of `source` with no exact match in `reference` (duplicates kept)."""
    present = set(reference)
    return [entry for entry in source if entry not in present]


def validate_required_inputs(
    config_details: ConfigDetails,
    unit_config: UnitConfig,
    ignored_inputs: Optional[Iterable[str]] = None,
) -> tuple[bool, list[str]]:
    """
    Check that every required offering input has a value or usable default.

    Returns (ok, missing) where each missing entry reads
    "<config name> (missing: <input key>)".
    """
    ignored = set(ignored_inputs or ())
    missing = []

    for catalog_input in unit_config.offering_inputs:
        if not catalog_input.required or catalog_input.key in ignored:
            continue

        value = config_details.inputs.get(catalog_input.key)
        if not _is_blank(value):
            continue

        default = catalog_input.default
        if _is_blank(default) or str(default) == NOT_SET_SENTINEL:
            missing.append(f"{config_details.name} (missing: {catalog_input.key})")

    return len(missing) == 0, missing


def missing_inputs_message(missing: list[str]) -> str:
    """Single error line in the "missing required inputs: a (missing: x); ..." form."""
    return f"{MISSING_INPUTS_PREFIX}: " + "; ".join(missing)


def _is_blank(value) -> bool:
    return value is None or str(value) == ""
