"""
Error Classification Module

Responsibility:
- Map free-text validation messages onto a closed MessageCategory enum
- Map raw run errors onto the ErrorType taxonomy (validation/transient/runtime)
- Extract circular-dependency chains from messages

This is the single place that interprets message text. Other modules ask
this one instead of matching substrings themselves.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


SUCCESS_MESSAGE = "actually deployed configs are same as expected deployed configs"
LENGTH_MISMATCH_TEMPLATE = "expected {expected} deployed configs but found {actual}"
DEPENDENCY_ERRORS_TEMPLATE = "found {count} dependency errors"
UNEXPECTED_CONFIGS_TEMPLATE = "found {count} unexpected configs"
MISSING_CONFIGS_TEMPLATE = "found {count} missing expected configs"
MISSING_INPUTS_PREFIX = "missing required inputs"
CIRCULAR_DEPENDENCY_TEMPLATE = "🔍 CIRCULAR DEPENDENCY DETECTED: {chain}"


class MessageCategory(str, Enum):
    SUCCESS = "success"
    UNEXPECTED_CONFIG = "unexpected_config"
    MISSING_CONFIG = "missing_config"
    CIRCULAR_DEPENDENCY = "circular_dependency"
    DEPENDENCY_ERROR = "dependency_error"
    INPUT_VALIDATION = "input_validation"
    GENERAL = "general"


# Checked in order, first match wins. Matching is case-insensitive.
MESSAGE_RULES: list[tuple[MessageCategory, tuple[str, ...]]] = [
    (MessageCategory.SUCCESS, (SUCCESS_MESSAGE,)),
    (MessageCategory.UNEXPECTED_CONFIG, ("unexpected config", "should not be deployed", "should not be added")),
    (MessageCategory.MISSING_CONFIG, ("missing expected config", "expected but not deployed")),
    (MessageCategory.CIRCULAR_DEPENDENCY, ("circular dependency", "circular reference")),
    (MessageCategory.DEPENDENCY_ERROR, ("dependency error", "dependency validation failed", "requires '")),
    (MessageCategory.INPUT_VALIDATION, (MISSING_INPUTS_PREFIX, "(missing:", "input validation failed")),
]


def classify(message: str) -> MessageCategory:
    """Classify one validation/log message."""
    lowered = message.lower()
    for category, needles in MESSAGE_RULES:
        if any(needle in lowered for needle in needles):
            return category
    return MessageCategory.GENERAL


def should_filter(message: str) -> bool:
    """True for messages that carry no failure information."""
    return classify(message) == MessageCategory.SUCCESS


class ErrorType(str, Enum):
    VALIDATION = "ValidationError"
    TRANSIENT = "TransientError"
    RUNTIME = "RuntimeError"


@dataclass(frozen=True)
class ErrorPattern:
    pattern: re.Pattern
    error_type: ErrorType
    subtype: str
    confidence: float


ERROR_PATTERNS = [
    # Validation: deterministic given expected/actual state
    ErrorPattern(re.compile(r"missing required inputs", re.I), ErrorType.VALIDATION, "missing_inputs", 0.95),
    ErrorPattern(re.compile(r"dependency validation failed", re.I), ErrorType.VALIDATION, "dependency_validation", 0.90),
    ErrorPattern(re.compile(r"unexpected configs", re.I), ErrorType.VALIDATION, "unexpected_configs", 0.90),
    ErrorPattern(re.compile(r"should not be deployed", re.I), ErrorType.VALIDATION, "unexpected_deployment", 0.85),
    ErrorPattern(re.compile(r"configuration validation", re.I), ErrorType.VALIDATION, "configuration", 0.80),
    # Transient: collaborator-side infrastructure issues
    ErrorPattern(re.compile(r"deployment timeout|deploy and wait", re.I), ErrorType.TRANSIENT, "deployment_timeout", 0.95),
    ErrorPattern(re.compile(r"undeploy and wait|undeploy timeout", re.I), ErrorType.TRANSIENT, "undeploy_timeout", 0.95),
    ErrorPattern(re.compile(r"5\d{2}.*error", re.I), ErrorType.TRANSIENT, "server_error", 0.90),
    ErrorPattern(re.compile(r"rate limit|status: 429", re.I), ErrorType.TRANSIENT, "rate_limit", 0.90),
    ErrorPattern(re.compile(r"network|connection", re.I), ErrorType.TRANSIENT, "network_error", 0.85),
    ErrorPattern(re.compile(r"timeout|timed out", re.I), ErrorType.TRANSIENT, "general_timeout", 0.80),
    # Runtime: defects inside the run
    ErrorPattern(re.compile(r"panic:|runtime error|traceback", re.I), ErrorType.RUNTIME, "panic", 0.95),
    ErrorPattern(re.compile(r"nil pointer|'NoneType' object", re.I), ErrorType.RUNTIME, "nil_pointer", 0.95),
]


def classify_error(message: str) -> Optional[ErrorPattern]:
    """Highest-confidence matching pattern, or None."""
    best = None
    for pattern in ERROR_PATTERNS:
        if pattern.pattern.search(message) and (best is None or pattern.confidence > best.confidence):
            best = pattern
    return best


def error_type_of(message: str) -> ErrorType:
    """Error type for a raw error message. Unknown errors count as transient."""
    pattern = classify_error(message)
    return pattern.error_type if pattern else ErrorType.TRANSIENT


_MISSING_ENTRY_RE = re.compile(r"^(?P<config>.+?) \(missing: (?P<inputs>[^)]*)\)$")


def parse_missing_inputs(message: str) -> dict[str, list[str]]:
    """
    Group a missing-inputs message by config name.

    Accepts a single "cfg (missing: a, b)" entry or the joined
    "missing required inputs: cfg (missing: a); other (missing: b)" form.
    Config order follows first appearance. Unparseable text yields {}.
    """
    content = message.strip()
    prefix = f"{MISSING_INPUTS_PREFIX}:"
    if content.lower().startswith(prefix):
        content = content[len(prefix):]

    grouped: dict[str, list[str]] = {}
    for entry in content.split(";"):
        match = _MISSING_ENTRY_RE.match(entry.strip())
        if not match:
            continue
        config_name = match.group("config").strip()
        for input_name in match.group("inputs").split(","):
            input_name = input_name.strip()
            if input_name:
                grouped.setdefault(config_name, []).append(input_name)
    return grouped


_CHAIN_RE = re.compile(r"circular (?:dependency|reference)[^:]*:\s*(.+)", re.I)
_CHAIN_SPLIT_RE = re.compile(r"\s*(?:→|->)\s*")


def parse_circular_chain(message: str) -> Optional[str]:
    """
    Normalised "a → b → a" chain from a circular-dependency message.

    Only the first line after the colon is used; None when there is no chain.
    """
    if classify(message) != MessageCategory.CIRCULAR_DEPENDENCY:
        return None
    match = _CHAIN_RE.search(message)
    if not match:
        return None
    first_line = match.group(1).strip().splitlines()[0]
    links = [link.strip() for link in _CHAIN_SPLIT_RE.split(first_line) if link.strip()]
    if len(links) < 2:
        return None
    return " → ".join(links)
