"""
Permutation Generator Module

Responsibility:
- Enumerate enable/disable combinations of a root unit's direct dependencies
- Name each case with short, collision-free abbreviations
- Drop the all-enabled (default) case and any configured skip sets

Deterministic except for the random batch id, which callers may pin.
"""

import random
import string
from typing import Optional, Sequence, Union

from addonforge.logging import get_logger
from addonforge.models import AddonTestCase, UnitConfig

logger = get_logger(__name__)

ABBREVIATION_KEYWORDS = ("disable", "enable", "test", "basic", "advanced", "dai", "da")
MAX_PREFIX_LENGTH = 8


def unique_id(length: int = 6) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def _is_numeric_or_keyword(part: str) -> bool:
    return any(c.isdigit() for c in part) or part in ABBREVIATION_KEYWORDS


def create_initial_abbreviation(name: str) -> str:
    """
    First character of each dash-separated part.

    "deploy-arch-ibm-" and "deploy-arch-" collapse to "dai-" / "da-"; parts
    holding digits and a few keywords are kept whole.
    """
    if not name:
        return ""

    short = name
    if short.startswith("deploy-arch-ibm-"):
        short = "dai-" + short[len("deploy-arch-ibm-"):]
    elif short.startswith("deploy-arch-"):
        short = "da-" + short[len("deploy-arch-"):]

    parts = []
    for part in short.split("-"):
        if not part:
            continue
        parts.append(part if _is_numeric_or_keyword(part) else part[0])
    return "-".join(parts)


def extend_abbreviation(original_name: str, current: str) -> str:
    """Lengthen the last extendable part by one character (or append "x")."""
    original_parts = original_name.split("-")
    abbrev_parts = current.split("-")

    for i in range(len(abbrev_parts) - 1, -1, -1):
        if i >= len(original_parts):
            continue
        original_part = original_parts[i]
        abbrev_part = abbrev_parts[i]
        if _is_numeric_or_keyword(original_part) or abbrev_part == original_part:
            continue
        if len(abbrev_part) < len(original_part):
            abbrev_parts[i] = original_part[:len(abbrev_part) + 1]
            return "-".join(abbrev_parts)

    return current + "x"


def abbreviate_with_collision_resolution(names: list[str]) -> list[str]:
    """Abbreviate every name; later names in a collision group are extended until unique."""
    result = [create_initial_abbreviation(n) for n in names]

    while True:
        groups: dict[str, list[int]] = {}
        for i, abbreviation in enumerate(result):
            groups.setdefault(abbreviation, []).append(i)
        collisions = [indices for indices in groups.values() if len(indices) > 1]
        if not collisions:
            return result
        for indices in collisions:
            for idx in indices[1:]:
                result[idx] = extend_abbreviation(names[idx], result[idx])


def shorten_prefix(prefix: str) -> str:
    """Trim a prefix so "<prefix><index>" stays within the 8-character limit."""
    max_base = MAX_PREFIX_LENGTH - 2
    return prefix[:max_base]


def should_skip(enabled: list[UnitConfig], skip_sets: Sequence[Sequence[UnitConfig]]) -> bool:
    """
    True when the enabled set exactly matches a skip set by name.

    A skip entry with a flavor must also match the chosen flavor; an empty
    flavor matches any.
    """
    chosen = {e.offering_name: e.offering_flavor for e in enabled}
    for skip_set in skip_sets:
        if len(skip_set) != len(enabled):
            continue
        if all(
            s.offering_name in chosen and (not s.offering_flavor or s.offering_flavor == chosen[s.offering_name])
            for s in skip_set
        ):
            return True
    return False


def _as_unit_config(dependency: Union[str, UnitConfig]) -> UnitConfig:
    if isinstance(dependency, UnitConfig):
        return dependency
    return UnitConfig(offering_name=dependency)


def generate_permutations(
    root_name: str,
    dependencies: Sequence[Union[str, UnitConfig]],
    prefix: str,
    skip: Optional[Sequence[Sequence[UnitConfig]]] = None,
    random_id: Optional[str] = None,
) -> list[AddonTestCase]:
    """
    Build one test case per enable/disable combination of `dependencies`.

    Yields 2^n - 1 cases minus skipped ones; the all-enabled case is the
    default configuration and is never generated.
    """
    templates = [_as_unit_config(d) for d in dependencies]
    batch_id = random_id or unique_id(6)
    base_prefix = shorten_prefix(prefix)
    root_abbreviation = create_initial_abbreviation(root_name)
    skip = skip or []

    cases = []
    index = 0
    for mask in range(1 << len(templates)):
        enabled, disabled = [], []
        for bit, template in enumerate(templates):
            (enabled if mask & (1 << bit) else disabled).append(template)

        if not disabled:
            continue

        case_dependencies = [_with_enabled(t, True) for t in enabled]
        case_dependencies += [_with_enabled(t, False) for t in disabled]

        disabled_abbreviations = abbreviate_with_collision_resolution([d.offering_name for d in disabled])
        name = f"{batch_id}-{root_abbreviation}-{index}-disable-{'-'.join(disabled_abbreviations)}"

        if should_skip([d for d in case_dependencies if d.enabled], skip):
            logger.info("Skipping permutation", name=name)
            continue

        cases.append(AddonTestCase(
            name=name,
            prefix=f"{batch_id}-{base_prefix}{index}",
            dependencies=case_dependencies,
        ))
        index += 1

    logger.info("Generated permutations", root=root_name, dependencies=len(templates), cases=len(cases))
    return cases


def _with_enabled(template: UnitConfig, enabled: bool) -> UnitConfig:
    return UnitConfig(
        offering_name=template.offering_name,
        offering_flavor=template.offering_flavor,
        catalog_id=template.catalog_id,
        offering_id=template.offering_id,
        version_locator=template.version_locator,
        resolved_version=template.resolved_version,
        enabled=enabled,
        inputs=dict(template.inputs),
        offering_inputs=list(template.offering_inputs),
        dependencies=list(template.dependencies),
    )
