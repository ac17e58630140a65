"""Unit tests for message and error classification."""

import pytest

from addonforge.error_classifier import (
    SUCCESS_MESSAGE,
    ErrorType,
    MessageCategory,
    classify,
    classify_error,
    error_type_of,
    parse_circular_chain,
    parse_missing_inputs,
    should_filter,
)


def test_success_is_filtered() -> None:
    """The canonical success message classifies as success and is filtered."""
    assert classify(SUCCESS_MESSAGE) == MessageCategory.SUCCESS
    assert should_filter(SUCCESS_MESSAGE)


def test_missing_inputs_is_input_validation() -> None:
    """Missing-input messages are input validation and are kept."""
    assert classify("missing required inputs: x") == MessageCategory.INPUT_VALIDATION
    assert not should_filter("missing required inputs: x")


@pytest.mark.parametrize(
    "message, category",
    [
        ("found 2 unexpected configs", MessageCategory.UNEXPECTED_CONFIG),
        ("cos - should not be deployed", MessageCategory.UNEXPECTED_CONFIG),
        ("found 1 missing expected configs", MessageCategory.MISSING_CONFIG),
        ("🔍 CIRCULAR DEPENDENCY DETECTED: a → b → a", MessageCategory.CIRCULAR_DEPENDENCY),
        ("found 3 dependency errors", MessageCategory.DEPENDENCY_ERROR),
        ("app addon requires 'cos' dependency but it's disabled", MessageCategory.DEPENDENCY_ERROR),
        ("something odd happened", MessageCategory.GENERAL),
    ],
)
def test_message_categories(message: str, category: MessageCategory) -> None:
    """Each rule maps its keywords onto one category."""
    assert classify(message) == category


def test_first_rule_wins() -> None:
    """A message matching two rules takes the earlier one."""
    assert classify("unexpected config found during dependency error scan") == MessageCategory.UNEXPECTED_CONFIG


def test_classification_is_case_insensitive() -> None:
    """Keyword matching ignores case."""
    assert classify("Missing Required Inputs: prefix") == MessageCategory.INPUT_VALIDATION


def test_highest_confidence_pattern_wins() -> None:
    """A message matching several patterns takes the most confident."""
    pattern = classify_error("deployment timeout: network unreachable")

    assert pattern.error_type == ErrorType.TRANSIENT
    assert pattern.subtype == "deployment_timeout"


@pytest.mark.parametrize(
    "message, error_type",
    [
        ("missing required inputs: cfg (missing: x)", ErrorType.VALIDATION),
        ("received status: 429 from catalog", ErrorType.TRANSIENT),
        ("502 Bad Gateway error", ErrorType.TRANSIENT),
        ("runtime error in run-1: KeyError", ErrorType.RUNTIME),
        ("'NoneType' object has no attribute 'name'", ErrorType.RUNTIME),
    ],
)
def test_error_types(message: str, error_type: ErrorType) -> None:
    """Raw errors map onto the validation/transient/runtime taxonomy."""
    assert error_type_of(message) == error_type


def test_unknown_errors_default_to_transient() -> None:
    """Unrecognised errors are treated as infrastructure noise."""
    assert classify_error("version not found for version locator: x") is None
    assert error_type_of("version not found for version locator: x") == ErrorType.TRANSIENT


def test_parse_circular_chain() -> None:
    """Chains are normalised to arrow-separated names."""
    assert parse_circular_chain("🔍 CIRCULAR DEPENDENCY DETECTED: a -> b -> a") == "a → b → a"
    assert parse_circular_chain("circular reference: x → y → x\nmore detail") == "x → y → x"
    assert parse_circular_chain("found 2 dependency errors") is None


def test_parse_missing_inputs_groups_by_config() -> None:
    """Joined and single-entry forms both group inputs by config name."""
    joined = "missing required inputs: t1-logs (missing: cos_crn); t1-app (missing: prefix, region)"

    assert parse_missing_inputs(joined) == {"t1-logs": ["cos_crn"], "t1-app": ["prefix", "region"]}
    assert parse_missing_inputs("t1-logs (missing: cos_crn)") == {"t1-logs": ["cos_crn"]}
    assert parse_missing_inputs("nothing to see") == {}
