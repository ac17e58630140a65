"""
Report Renderer Module

Responsibility:
- Render one failed run as a fixed-width bordered block
- Render the batch report in a fixed section order:
  summary -> passed count -> failed details -> error distribution -> aggregated analysis
- Render the consolidated validation summary and the dependency tree
- Export an analysis as YAML

This is PURE rendering logic. Nothing here decides pass/fail.
"""

import json
from typing import TYPE_CHECKING, Optional

import yaml

from addonforge.config import settings
from addonforge.error_classifier import (
    MISSING_INPUTS_PREFIX,
    MessageCategory,
    classify,
    parse_missing_inputs,
)
from addonforge.models import DependencyError, OfferingIdentity, RunResult, UnitConfig, ValidationResult

if TYPE_CHECKING:
    from addonforge.permutation_report import PermutationAnalysis

RULE = "=" * 80
DOUBLE_RULE = "═" * 63

# Messages whose content is already listed in full by a detailed field
_DETAILED_FIELDS = {
    MessageCategory.DEPENDENCY_ERROR: "dependency_errors",
    MessageCategory.UNEXPECTED_CONFIG: "unexpected_configs",
    MessageCategory.MISSING_CONFIG: "missing_configs",
    MessageCategory.INPUT_VALIDATION: "missing_inputs",
}


def wrap_text(text: str, width: int) -> list[str]:
    """Wrap text to width. " | " separated sections each start a new line."""
    if len(text) <= width:
        return [text]

    lines = []
    for i, section in enumerate(text.split(" | ")):
        if i > 0:
            section = section.strip()
        lines.extend(_wrap_section(section, width))
    return lines


def _wrap_section(text: str, width: int) -> list[str]:
    if len(text) <= width:
        return [text]

    lines = []
    current = ""
    for word in text.split():
        if len(current) + len(word) + 1 <= width:
            current = f"{current} {word}" if current else word
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def parse_json_error_message(error_message: str) -> str:
    """
    Pull a readable message out of an error embedding a JSON body.

    Looks for the first balanced {...} object and returns its "message"
    (unwrapping one nested JSON level) or "description". Falls back to the
    original text whenever anything does not parse.
    """
    if '"message":' not in error_message and '"description":' not in error_message:
        return error_message

    start = error_message.find("{")
    if start == -1:
        return error_message

    depth = 0
    end = -1
    for i, char in enumerate(error_message[start:]):
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                end = start + i + 1
                break
    if end == -1:
        return error_message

    try:
        data = json.loads(error_message[start:end])
    except json.JSONDecodeError:
        return error_message
    if not isinstance(data, dict):
        return error_message

    message = data.get("message")
    if isinstance(message, str):
        if message.strip().startswith("{"):
            try:
                nested = json.loads(message)
            except json.JSONDecodeError:
                nested = None
            if isinstance(nested, dict):
                for key in ("message", "description"):
                    if isinstance(nested.get(key), str) and nested[key]:
                        return nested[key]
        return message

    description = data.get("description")
    if isinstance(description, str):
        return description

    return error_message


def parse_configuration_error(error_message: str) -> str:
    """
    Regroup a missing-inputs error by config name, sorted.

    "missing required inputs: b (missing: y); a (missing: x)" becomes
    "a missing required inputs: x; b missing required inputs: y".
    """
    if f"{MISSING_INPUTS_PREFIX}:" not in error_message:
        return error_message

    grouped = parse_missing_inputs(error_message)
    if not grouped:
        return error_message

    return "; ".join(
        f"{config_name} {MISSING_INPUTS_PREFIX}: {', '.join(grouped[config_name])}"
        for config_name in sorted(grouped)
    )


def format_addon_configuration(unit_config: Optional[UnitConfig]) -> str:
    """One-line summary of the root addon and which direct dependencies are on."""
    if unit_config is None:
        return "No addons configured"

    summary = f"Main: {unit_config.offering_name} (enabled)"
    if not unit_config.dependencies:
        return summary + " | No dependencies"

    enabled = [d.offering_name for d in unit_config.dependencies if d.enabled is True]
    disabled = [d.offering_name for d in unit_config.dependencies if d.enabled is not True]

    summary += f" | Dependencies: {len(enabled)} enabled, {len(disabled)} disabled"
    if enabled:
        summary += f" | ✅ Enabled: {', '.join(enabled)}"
    if disabled:
        summary += f" | ❌ Disabled: {', '.join(disabled)}"
    return summary


def residual_messages(validation: ValidationResult) -> list[str]:
    """Messages not already covered by a detailed listing (success noise dropped)."""
    residual = []
    for message in validation.messages:
        category = classify(message)
        if category == MessageCategory.SUCCESS:
            continue
        covered_by = _DETAILED_FIELDS.get(category)
        if covered_by and getattr(validation, covered_by):
            continue
        residual.append(message)
    return residual


def _dependency_error_line(error: DependencyError) -> str:
    """A disabled dependency, or one deployed at a version or flavor the edge does not accept."""
    required = error.missing_dependency
    if not error.available_alternatives:
        return f"• {error.unit.name} addon requires '{required.name}' dependency but it's disabled"
    deployed = "; ".join(a.describe() for a in error.available_alternatives)
    return f"• {error.unit.name} addon requires {required.describe()} but only {deployed} is deployed"


def _failure_sections(result: RunResult) -> list[tuple[str, list[str]]]:
    sections = []
    validation = result.validation_result

    if validation is not None:
        items = []
        for error in validation.dependency_errors:
            items.append(_dependency_error_line(error))
        for identity in validation.unexpected_configs:
            items.append(f"• Unexpected: {identity.describe()}")
        for identity in validation.missing_configs:
            items.append(f"• Missing: {identity.describe()}")
        for message in residual_messages(validation):
            items.append(f"• {message}")
        if items:
            sections.append(("VALIDATION ERRORS", items))

        if validation.configuration_errors:
            sections.append(("CONFIGURATION ERRORS", [
                "• " + parse_configuration_error(parse_json_error_message(e))
                for e in validation.configuration_errors
            ]))

        if validation.missing_inputs:
            items = []
            grouped: dict[str, list[str]] = {}
            for entry in validation.missing_inputs:
                parsed = parse_missing_inputs(entry)
                if not parsed:
                    items.append(f"• {entry}")
                for config_name, inputs in parsed.items():
                    grouped.setdefault(config_name, []).extend(inputs)
            for config_name in sorted(grouped):
                items.append(f"• {config_name}: {', '.join(grouped[config_name])}")
            sections.append(("MISSING INPUTS", items))

    if result.transient_errors:
        sections.append(("TRANSIENT ERRORS", [
            "• " + parse_json_error_message(e) for e in result.transient_errors
        ]))

    if result.runtime_errors:
        items = []
        for error in result.runtime_errors:
            lines = parse_json_error_message(error).splitlines() or [""]
            items.append("• " + lines[0])
            items.extend(f"  {line}" for line in lines[1:])
        sections.append(("RUNTIME ERRORS", items))

    return sections


def _box_line(text: str, inner: int) -> str:
    return f"│ {text:<{inner}} │"


def render_failed_run(result: RunResult, index: int, total: int, width: Optional[int] = None) -> str:
    """Bordered block for one failed run: header, addon summary, error sections."""
    width = width or settings.REPORT_WIDTH
    inner = width - 4
    body = inner - 4

    lines = ["┌" + "─" * (width - 2) + "┐"]
    lines.append(_box_line(f"{index}/{total} ❌ {result.name}", inner))
    lines.append(_box_line(f"    📁 Prefix: {result.prefix}", inner))

    summary_lines = wrap_text(format_addon_configuration(result.unit_config), body - 12)
    for i, line in enumerate(summary_lines):
        label = "    🔧 Addons: " if i == 0 else "               "
        lines.append(_box_line(label + line, inner))
    lines.append(_box_line("", inner))

    for title, items in _failure_sections(result):
        lines.append(_box_line(f"    🔴 {title}:", inner))
        for item in items:
            for wrapped in wrap_text(item, body):
                lines.append(_box_line("    " + wrapped, inner))
        lines.append(_box_line("", inner))

    lines.append("└" + "─" * (width - 2) + "┘")
    return "\n".join(lines) + "\n"


def render_error_distribution(distribution: dict[str, int]) -> str:
    """"🔍 Error Distribution: 2 Runtime errors, ..." or "" when nothing failed."""
    parts = [f"{count} {label} errors" for label, count in distribution.items() if count > 0]
    if not parts:
        return ""
    return "🔍 Error Distribution: " + ", ".join(parts)


def render_aggregated_analysis(analysis: "PermutationAnalysis") -> str:
    lines = ["🧠 AGGREGATED ANALYSIS"]

    if analysis.root_cause_patterns:
        lines.append("")
        lines.append("Root-cause patterns (missing inputs):")
        for pattern in analysis.root_cause_patterns:
            lines.append(
                f"  • {pattern.offering_name} missing '{pattern.input_name}' in {pattern.count} run(s)"
            )
            if pattern.suspected_root_cause:
                lines.append(f"    └── [{pattern.confidence.value}] {pattern.suspected_root_cause}")
            else:
                lines.append("    └── no single disabled dependency correlates")

    if analysis.validation_patterns:
        lines.append("")
        lines.append("Validation patterns:")
        for pattern in analysis.validation_patterns:
            lines.append(f"  • [{pattern.error_type}] {pattern.pattern} ({pattern.count} run(s))")

    if analysis.action_items:
        lines.append("")
        lines.append("Action items:")
        for i, item in enumerate(analysis.action_items, start=1):
            lines.append(f"  {i}. {item}")

    if analysis.incomplete_notice:
        lines.append("")
        lines.append(analysis.incomplete_notice)

    if len(lines) == 1:
        lines.append("No recurring failure patterns found")

    return "\n".join(lines)


def render_report(analysis: "PermutationAnalysis") -> str:
    """Full batch report as a single block of text."""
    summary = analysis.summary
    out = [RULE, "🧪 PERMUTATION TEST REPORT - Complete", RULE]

    if summary.total_runs == 0:
        out.append(
            f"📊 Summary: {summary.total_runs} total tests | ✅ {summary.passed_runs} passed | "
            f"❌ {summary.failed_runs} failed"
        )
    else:
        failure_rate = 100.0 - summary.pass_rate
        out.append(
            f"📊 Summary: {summary.total_runs} total tests | ✅ {summary.passed_runs} passed "
            f"({summary.pass_rate:.1f}%) | ❌ {summary.failed_runs} failed ({failure_rate:.1f}%)"
        )
    out.append("")

    if summary.passed_runs > 0:
        out.append(f"✅ PASSED: {summary.passed_runs} tests completed successfully")
        out.append("")

    if summary.failed_runs > 0:
        out.append(f"❌ FAILED TESTS ({summary.failed_runs}) - Complete Error Details")
        out.extend(analysis.failure_reports)

        distribution = render_error_distribution(summary.error_distribution)
        if distribution:
            out.append(distribution)
            out.append("")

        out.append(render_aggregated_analysis(analysis))
        out.append("")

    out.append("📁 Full test logs available if additional context needed")
    out.append(RULE)
    return "\n".join(out)


def render_validation_summary(validation: ValidationResult, warnings: Optional[list[str]] = None) -> str:
    """Consolidated DEPENDENCY VALIDATION FAILED block with alternatives."""
    warnings = warnings or []
    dependency_count = len(validation.dependency_errors)
    unexpected_count = len(validation.unexpected_configs)
    missing_count = len(validation.missing_configs)

    out = [DOUBLE_RULE, "                  DEPENDENCY VALIDATION FAILED", DOUBLE_RULE]
    summary = (
        f"Summary: {dependency_count} dependency errors, {unexpected_count} unexpected configs, "
        f"{missing_count} missing configs"
    )
    if warnings:
        summary += f", {len(warnings)} warnings"
    out.append(summary)
    out.append("")

    if dependency_count:
        out.append("🔗 DEPENDENCY ERRORS:")
        for i, error in enumerate(validation.dependency_errors, start=1):
            out.append(f"  {i}. {error.unit.describe()}")
            out.append(f"     └── requires: {error.missing_dependency.describe()} - ❌ NOT AVAILABLE")
            if error.available_alternatives:
                out.append("     └── Available alternatives:")
                last = len(error.available_alternatives) - 1
                for j, alternative in enumerate(error.available_alternatives):
                    symbol = "└──" if j == last else "├──"
                    out.append(f"         {symbol} {alternative.describe()}")
            else:
                out.append("     └── ❌ No alternatives available")
        out.append("")

    if unexpected_count:
        out.append("❌ UNEXPECTED CONFIGS ADDED TO PROJECT:")
        for i, identity in enumerate(validation.unexpected_configs, start=1):
            out.append(f"  {i}. {identity.describe()} - should not be added to project")
        out.append("")

    if missing_count:
        out.append("📋 MISSING EXPECTED CONFIGS:")
        for i, identity in enumerate(validation.missing_configs, start=1):
            out.append(f"  {i}. {identity.describe()} - expected but not deployed")
        out.append("")

    if warnings:
        out.append("⚠️ WARNINGS:")
        for i, warning in enumerate(warnings, start=1):
            out.append(f"  {i}. {warning}")
        out.append("")

    out.append(DOUBLE_RULE)
    if warnings and not (dependency_count or unexpected_count or missing_count):
        out.append("Review the warnings above but test will continue.")
    else:
        out.append("Fix the above issues and retry the deployment.")
    out.append(DOUBLE_RULE)
    return "\n".join(out)


def render_dependency_tree(
    edges: dict[OfferingIdentity, list[OfferingIdentity]],
    expected_list: list[OfferingIdentity],
) -> str:
    """
    Indented tree of the expected graph.

    The root is the first expected entry that no edge points at (else the
    first entry). A node already on the current path is marked circular
    instead of being expanded again.
    """
    if not expected_list:
        return "  No dependencies found"

    targets = {child for children in edges.values() for child in children}
    root = next((e for e in expected_list if e not in targets), expected_list[0])

    lines: list[str] = []

    def walk(node: OfferingIdentity, indent: str, is_last: bool, path: set) -> None:
        symbol = "└──" if is_last else "├──"
        lines.append(f"{indent}{symbol} {node.describe()}")
        next_indent = indent + ("    " if is_last else "│   ")
        if node in path:
            lines.append(f"{next_indent}└── [circular reference] (already shown above)")
            return
        children = edges.get(node, [])
        for i, child in enumerate(children):
            walk(child, next_indent, i == len(children) - 1, path | {node})

    walk(root, "", True, set())
    return "\n".join(lines)


def render_analysis_yaml(analysis: "PermutationAnalysis") -> str:
    """YAML export of the summary, mined patterns and action items."""
    summary = analysis.summary
    document = {
        "summary": {
            "total_runs": summary.total_runs,
            "passed_runs": summary.passed_runs,
            "failed_runs": summary.failed_runs,
            "pass_rate": round(summary.pass_rate, 1),
            "error_distribution": dict(summary.error_distribution),
        },
        "root_cause_patterns": [
            {
                "offering": p.offering_name,
                "input": p.input_name,
                "count": p.count,
                "runs": list(p.runs),
                "common_disabled": list(p.common_disabled),
                "suspected_root_cause": p.suspected_root_cause or None,
                "confidence": p.confidence.value if p.confidence else None,
            }
            for p in analysis.root_cause_patterns
        ],
        "validation_patterns": [
            {"type": p.error_type, "pattern": p.pattern, "count": p.count, "runs": list(p.runs)}
            for p in analysis.validation_patterns
        ],
        "action_items": list(analysis.action_items),
    }
    if analysis.incomplete_notice:
        document["incomplete_notice"] = analysis.incomplete_notice

    return yaml.dump(document, sort_keys=False, default_flow_style=False, allow_unicode=True)
