"""Unit tests for dependency and required-input validation."""

from addonforge.error_classifier import SUCCESS_MESSAGE
from addonforge.models import CatalogInput, ConfigDetails, OfferingIdentity, UnitConfig
from addonforge.validator import (
    missing_inputs_message,
    validate_dependencies,
    validate_required_inputs,
)

A = OfferingIdentity("a", "v1.0.0", "fully-configurable")
B = OfferingIdentity("b", "v1.0.0", "fully-configurable")
B_OTHER = OfferingIdentity("b", "v2.0.0", "fully-configurable")
C = OfferingIdentity("c", "v1.0.0", "fully-configurable")


def test_missing_config() -> None:
    """An expected entry that was not deployed is reported as missing."""
    result = validate_dependencies({A: [B]}, [A, B], [A])

    assert result.missing_configs == [B]
    assert not result.is_valid


def test_unexpected_config() -> None:
    """A deployed entry that was not expected is reported as unexpected."""
    result = validate_dependencies({}, [A], [A, C])

    assert result.unexpected_configs == [C]
    assert not result.is_valid


def test_success_has_exactly_one_message() -> None:
    """A clean match carries only the canonical success message."""
    result = validate_dependencies({A: [B]}, [A, B], [A, B])

    assert result.is_valid
    assert result.messages == [SUCCESS_MESSAGE]
    assert not result.has_errors()


def test_dependency_error_lists_alternatives() -> None:
    """An unmet edge names same-name entries deployed at another version."""
    result = validate_dependencies({A: [B]}, [A, B], [A, B_OTHER])

    assert len(result.dependency_errors) == 1
    error = result.dependency_errors[0]
    assert error.unit == A
    assert error.missing_dependency == B
    assert error.available_alternatives == [B_OTHER]


def test_all_findings_are_collected() -> None:
    """Every category is filled in one pass with one count message each."""
    result = validate_dependencies({A: [B]}, [A, B], [A, C])

    assert len(result.dependency_errors) == 1
    assert result.unexpected_configs == [C]
    assert result.missing_configs == [B]
    assert result.messages == [
        "found 1 dependency errors",
        "found 1 unexpected configs",
        "found 1 missing expected configs",
    ]


def test_length_mismatch_alone_fails() -> None:
    """Duplicate expected entries fail validation through the length check."""
    result = validate_dependencies({}, [A, A], [A])

    assert not result.is_valid
    assert not result.has_errors()
    assert result.messages == ["expected 2 deployed configs but found 1"]


def test_required_inputs_missing_and_not_set() -> None:
    """Absent values fall back to defaults; empty and sentinel defaults count as missing."""
    unit = UnitConfig(
        offering_name="cloud-logs",
        offering_inputs=[
            CatalogInput(key="cos_crn", required=True, default="__NOT_SET__"),
            CatalogInput(key="region", required=True, default="us-south"),
            CatalogInput(key="plan", required=True),
            CatalogInput(key="tags", required=False),
            CatalogInput(key="ibmcloud_api_key", required=True),
        ],
    )
    details = ConfigDetails(config_id="c1", name="t1-cloud-logs", inputs={"plan": ""})

    ok, missing = validate_required_inputs(details, unit, ignored_inputs=["ibmcloud_api_key"])

    assert not ok
    assert missing == ["t1-cloud-logs (missing: cos_crn)", "t1-cloud-logs (missing: plan)"]


def test_required_inputs_satisfied() -> None:
    """Provided values satisfy required inputs."""
    unit = UnitConfig(offering_name="cos", offering_inputs=[CatalogInput(key="plan", required=True)])
    details = ConfigDetails(config_id="c1", name="t1-cos", inputs={"plan": "standard"})

    assert validate_required_inputs(details, unit) == (True, [])


def test_missing_inputs_message() -> None:
    """Entries are joined under the canonical prefix."""
    message = missing_inputs_message(["a (missing: x)", "b (missing: y)"])

    assert message == "missing required inputs: a (missing: x); b (missing: y)"
