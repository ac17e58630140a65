"""
Permutation Aggregator Module

Responsibility:
- Summarise a batch of run results (totals, pass rate, error distribution)
- Render one detailed report per failed run
- Mine root causes for missing-input failures across runs
- Count recurring validation patterns (dependency, unexpected, missing, circular)
- Flag batches the mined patterns do not fully explain
- Produce one action item per root cause and per circular dependency

Never raises on partial analysis; unexplained failures become a notice.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from addonforge.error_classifier import (
    MessageCategory,
    classify,
    parse_circular_chain,
    parse_missing_inputs,
)
from addonforge.logging import get_logger
from addonforge.models import AggregateReport, RunResult
from addonforge.report_renderer import parse_json_error_message, render_failed_run

logger = get_logger(__name__)

# Service keywords shared between input names and dependency names
ROOT_CAUSE_KEYWORDS = (
    "cos",
    "kms",
    "key-protect",
    "logs",
    "monitoring",
    "event-notifications",
    "secrets-manager",
    "scc",
    "atracker",
    "vpc",
)

CONFIGURATION_ERROR = "configuration_error"


class Confidence(str, Enum):
    HIGH = "HIGH"


@dataclass
class BatchSummary:
    total_runs: int
    passed_runs: int
    failed_runs: int
    pass_rate: float
    # "Runtime" / "Configuration" / "Transient" / "Validation" -> failed runs showing it
    error_distribution: dict[str, int] = field(default_factory=dict)


@dataclass
class RootCausePattern:
    """Runs where one offering was missing the same input."""
    offering_name: str
    input_name: str
    count: int
    runs: list[str] = field(default_factory=list)
    # Dependencies disabled in every contributing run
    common_disabled: list[str] = field(default_factory=list)
    suspected_dependency: str = ""
    suspected_root_cause: str = ""
    confidence: Optional[Confidence] = None


@dataclass
class ValidationPattern:
    error_type: str
    pattern: str
    count: int
    runs: list[str] = field(default_factory=list)


@dataclass
class PermutationAnalysis:
    report: AggregateReport
    summary: BatchSummary
    failure_reports: list[str] = field(default_factory=list)
    root_cause_patterns: list[RootCausePattern] = field(default_factory=list)
    validation_patterns: list[ValidationPattern] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    incomplete_notice: Optional[str] = None


def aggregate(results: list[RunResult]) -> PermutationAnalysis:
    """Analyse a finished batch."""
    report = AggregateReport.from_results(results)
    failed = [r for r in report.results if not r.passed]

    analysis = PermutationAnalysis(report=report, summary=summarise(report))
    analysis.failure_reports = [
        render_failed_run(result, index, len(failed)) for index, result in enumerate(failed, start=1)
    ]
    analysis.root_cause_patterns = mine_root_causes(failed)
    analysis.validation_patterns = mine_validation_patterns(failed)
    analysis.incomplete_notice = check_completeness(
        failed, analysis.root_cause_patterns, analysis.validation_patterns
    )
    analysis.action_items = build_action_items(analysis.root_cause_patterns, analysis.validation_patterns)

    if analysis.incomplete_notice:
        logger.warning("Permutation analysis incomplete", notice=analysis.incomplete_notice)
    logger.info(
        "Permutation batch analysed",
        total=report.total_runs,
        failed=report.failed_runs,
        root_causes=len(analysis.root_cause_patterns),
        validation_patterns=len(analysis.validation_patterns),
    )
    return analysis


def summarise(report: AggregateReport) -> BatchSummary:
    pass_rate = report.passed_runs / report.total_runs * 100.0 if report.total_runs else 0.0
    return BatchSummary(
        total_runs=report.total_runs,
        passed_runs=report.passed_runs,
        failed_runs=report.failed_runs,
        pass_rate=pass_rate,
        error_distribution=error_distribution(report.results),
    )


def error_distribution(results: list[RunResult]) -> dict[str, int]:
    """Failed runs per error family. One run may count in several families."""
    counts = {"Runtime": 0, "Configuration": 0, "Transient": 0, "Validation": 0}
    for result in results:
        if result.passed:
            continue
        validation = result.validation_result
        if result.runtime_errors:
            counts["Runtime"] += 1
        if validation is not None and (validation.configuration_errors or validation.missing_inputs):
            counts["Configuration"] += 1
        if result.transient_errors:
            counts["Transient"] += 1
        if validation is not None and not validation.is_valid:
            counts["Validation"] += 1
    return counts


def offering_name_for_config(config_name: str, prefix: str) -> str:
    """Deployed config names are "<run prefix>-<offering name>"."""
    if prefix and config_name.startswith(f"{prefix}-"):
        return config_name[len(prefix) + 1:]
    return config_name


def _missing_input_pairs(result: RunResult) -> list[tuple[str, str]]:
    validation = result.validation_result
    if validation is None:
        return []

    pairs = []
    for entry in validation.missing_inputs + validation.configuration_errors:
        grouped = parse_missing_inputs(parse_json_error_message(entry))
        for config_name, inputs in grouped.items():
            offering = offering_name_for_config(config_name, result.prefix)
            for input_name in inputs:
                if (offering, input_name) not in pairs:
                    pairs.append((offering, input_name))
    return pairs


def mine_root_causes(failed: list[RunResult]) -> list[RootCausePattern]:
    """
    Group (offering, missing input) pairs across runs and correlate them with
    the dependencies disabled in every contributing run.
    """
    groups: dict[tuple[str, str], list[RunResult]] = defaultdict(list)
    for result in failed:
        for pair in _missing_input_pairs(result):
            groups[pair].append(result)

    patterns = []
    for (offering, input_name), runs in groups.items():
        common = _common_disabled(runs)
        pattern = RootCausePattern(
            offering_name=offering,
            input_name=input_name,
            count=len(runs),
            runs=[r.name for r in runs],
            common_disabled=common,
        )

        suspect = None
        if len(common) == 1:
            suspect = common[0]
        elif len(common) > 1:
            correlated = [c for c in common if correlates(input_name, c)]
            if len(correlated) == 1:
                suspect = correlated[0]

        if suspect is not None:
            pattern.suspected_dependency = suspect
            pattern.suspected_root_cause = (
                f"Disabling '{suspect}' leaves {offering} without required input '{input_name}'"
            )
            pattern.confidence = Confidence.HIGH

        patterns.append(pattern)

    patterns.sort(key=lambda p: (-p.count, p.offering_name, p.input_name))
    return patterns


def _common_disabled(runs: list[RunResult]) -> list[str]:
    """Intersection of disabled dependency names, in first-run order."""
    common = list(dict.fromkeys(runs[0].disabled_dependencies()))
    for result in runs[1:]:
        disabled = set(result.disabled_dependencies())
        common = [name for name in common if name in disabled]
    return common


def correlates(input_name: str, dependency_name: str) -> bool:
    """True when the input and the dependency name mention the same service."""
    input_text = input_name.lower().replace("_", "-")
    dependency_text = dependency_name.lower().replace("_", "-")
    return any(k in input_text and k in dependency_text for k in ROOT_CAUSE_KEYWORDS)


def _validation_signals(result: RunResult) -> list[tuple[str, str]]:
    signals = []
    validation = result.validation_result

    messages = list(result.transient_errors) + list(result.runtime_errors)
    if validation is not None:
        for error in validation.dependency_errors:
            missing = error.missing_dependency
            signals.append((
                MessageCategory.DEPENDENCY_ERROR.value,
                f"{error.unit.name} requires '{missing.name}' ({missing.version}, {missing.flavor})",
            ))
        for identity in validation.unexpected_configs:
            signals.append((MessageCategory.UNEXPECTED_CONFIG.value, identity.describe()))
        for identity in validation.missing_configs:
            signals.append((MessageCategory.MISSING_CONFIG.value, identity.describe()))
        for error in validation.configuration_errors:
            cleaned = parse_json_error_message(error)
            if not parse_missing_inputs(cleaned):
                signals.append((CONFIGURATION_ERROR, cleaned))
        messages = list(validation.messages) + messages

    for message in messages:
        if classify(message) != MessageCategory.CIRCULAR_DEPENDENCY:
            continue
        chain = parse_circular_chain(message) or message.strip().splitlines()[0]
        signals.append((MessageCategory.CIRCULAR_DEPENDENCY.value, chain))

    return signals


def mine_validation_patterns(failed: list[RunResult]) -> list[ValidationPattern]:
    """Count each distinct (error type, pattern text) once per run, most common first."""
    runs_by_signal: dict[tuple[str, str], list[str]] = defaultdict(list)
    for result in failed:
        for signal in dict.fromkeys(_validation_signals(result)):
            runs_by_signal[signal].append(result.name)

    patterns = [
        ValidationPattern(error_type=error_type, pattern=text, count=len(runs), runs=runs)
        for (error_type, text), runs in runs_by_signal.items()
    ]
    patterns.sort(key=lambda p: (-p.count, p.error_type, p.pattern))
    return patterns


def check_completeness(
    failed: list[RunResult],
    root_causes: list[RootCausePattern],
    validation_patterns: list[ValidationPattern],
) -> Optional[str]:
    """Notice text when some failed runs are not explained by any pattern."""
    accounted = set()
    for pattern in root_causes:
        accounted.update(pattern.runs)
    for pattern in validation_patterns:
        accounted.update(pattern.runs)
    for result in failed:
        if result.name in accounted or not (result.transient_errors or result.runtime_errors):
            continue
        # Infrastructure errors only explain a run with no validation findings of its own
        validation = result.validation_result
        if validation is None or (validation.is_valid and not validation.has_errors()):
            accounted.add(result.name)

    unexplained = [r.name for r in failed if r.name not in accounted]
    if not unexplained:
        return None

    return (
        f"⚠️ Analysis incomplete: {len(failed) - len(unexplained)} of {len(failed)} failed runs "
        f"explained by detected patterns. Unexplained: {', '.join(unexplained)}"
    )


def build_action_items(
    root_causes: list[RootCausePattern],
    validation_patterns: list[ValidationPattern],
) -> list[str]:
    items = []
    for pattern in root_causes:
        if pattern.suspected_dependency:
            items.append(
                f"Enable '{pattern.suspected_dependency}' or supply '{pattern.input_name}' for {pattern.offering_name} "
                f"({pattern.count} affected runs)"
            )
        else:
            items.append(
                f"Provide a default for '{pattern.input_name}' on {pattern.offering_name} "
                f"({pattern.count} affected runs, no single disabled dependency correlates)"
            )

    for pattern in validation_patterns:
        if pattern.error_type == MessageCategory.CIRCULAR_DEPENDENCY.value:
            items.append(f"Break circular dependency {pattern.pattern} ({pattern.count} affected runs)")

    return items
