"""Unit tests for scenario loading."""

import pytest
import yaml

from addonforge.errors import ScenarioError
from addonforge.scenario import build_scenario, load_scenario

SCENARIO = """
catalog_id: demo
offerings:
  - name: app
    versions:
      - version: v1.0.0
        inputs:
          - key: prefix
            required: true
        dependencies:
          - name: cos
            version: ^v1.0.0
            on_by_default: true
          - name: kms
            version: ^v1.0.0
  - name: cos
    versions:
      - version: v1.0.0
      - version: v1.2.0
        flavor: instance
  - name: kms
    versions:
      - version: v1.0.0
root:
  name: app
  version: v1.0.0
  inputs:
    prefix: demo
  dependencies:
    - name: kms
      enabled: true
runner:
  prefix: demo-run
  skip_permutations:
    - - name: cos
"""


def test_build_scenario_catalog_and_root() -> None:
    """Offerings get derived IDs and locators; the root resolves to its version."""
    scenario = build_scenario(yaml.safe_load(SCENARIO))

    root = scenario.root
    assert root.offering_name == "app"
    assert root.version_locator == "demo.app-fully-configurable-v1.0.0"
    assert root.offering_flavor == "fully-configurable"
    assert root.enabled is True
    assert root.inputs == {"prefix": "demo"}
    assert root.dependencies[0].offering_name == "kms"
    assert root.dependencies[0].enabled is True

    version = scenario.catalog.versions_by_locator[root.version_locator]
    assert version.offering_id.endswith(":o:app")
    assert [d.name for d in version.dependencies] == ["cos", "kms"]
    assert version.dependencies[0].on_by_default is True
    assert version.dependencies[1].on_by_default is False


def test_direct_dependencies_prefer_user_entries() -> None:
    """Templates come from the catalog, replaced by the root's own entries."""
    scenario = build_scenario(yaml.safe_load(SCENARIO))

    templates = scenario.direct_dependencies()

    assert [t.offering_name for t in templates] == ["cos", "kms"]
    assert templates[0].offering_flavor == ""
    assert templates[0].offering_id == "cos"
    assert templates[1] is scenario.root.dependencies[0]


def test_runner_options_and_skip_sets() -> None:
    """Runner options pass through and skip entries become configs."""
    scenario = build_scenario(yaml.safe_load(SCENARIO))

    assert scenario.runner.prefix == "demo-run"
    assert scenario.runner.permutations is False
    assert [[s.offering_name for s in skip] for skip in scenario.skip_sets] == [["cos"]]


def test_unknown_dependency_offering() -> None:
    """A declared dependency must name an offering in the scenario."""
    raw = yaml.safe_load(SCENARIO)
    raw["offerings"][0]["versions"][0]["dependencies"].append({"name": "ghost", "version": "^v1.0.0"})

    with pytest.raises(ScenarioError, match="unknown offering 'ghost'"):
        build_scenario(raw)


def test_root_needs_a_version() -> None:
    """The root config must pin a version or locator."""
    raw = yaml.safe_load(SCENARIO)
    del raw["root"]["version"]

    with pytest.raises(ScenarioError, match="needs a version"):
        build_scenario(raw)


def test_invalid_shape_is_a_scenario_error() -> None:
    """Schema violations surface as ScenarioError."""
    with pytest.raises(ScenarioError, match="invalid scenario"):
        build_scenario({"offerings": "not-a-list", "root": {"name": "app"}})


def test_load_scenario_from_file(tmp_path) -> None:
    """Files are read as YAML; unreadable paths raise ScenarioError."""
    path = tmp_path / "scenario.yaml"
    path.write_text(SCENARIO, encoding="utf-8")

    assert load_scenario(path).root.offering_name == "app"
    with pytest.raises(ScenarioError, match="could not read scenario"):
        load_scenario(tmp_path / "missing.yaml")
