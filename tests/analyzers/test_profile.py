"""Tests for devpilot.analyzers.profile."""

from __future__ import annotations

from devpilot.analyzers import CodebaseProfiler, TagRule
from devpilot.models import InventoryEntry
from tests._fixtures.repo_builder import RepoBuilder


def test_profile_counts_and_flags(repo_builder: RepoBuilder) -> None:
    repo_builder.write(
        {
            "README.md": "# Demo\n",
            "package.json": "{}",
            "src/app.js": "module.exports = {};\n",
            "src/__tests__/app.test.js": "test('ok', () => {});\n",
            ".github/workflows/ci.yml": "on: push\n",
            "tsconfig.json": "{}",
        }
    )
    inventory = repo_builder.scan()

    analysis = CodebaseProfiler().profile(inventory)

    assert analysis.file_count == 6
    assert analysis.directories == 4  # src, src/__tests__, .github, .github/workflows
    assert analysis.total_size == sum(entry.size or 0 for entry in inventory.values())
    assert analysis.has_tests
    assert analysis.has_documentation
    assert analysis.has_cicd
    assert analysis.key_files == (".github/workflows", "README.md", "package.json")
    assert analysis.config_files == ("tsconfig.json",)
    assert analysis.recommendations == (
        "Add Dockerfile for containerization",
        "Add .env.example for environment configuration",
    )


def test_empty_inventory_profile() -> None:
    analysis = CodebaseProfiler().profile({})

    assert analysis.file_count == 0
    assert analysis.directories == 0
    assert not analysis.has_tests
    assert not analysis.has_documentation
    assert not analysis.has_cicd
    assert analysis.to_dict()["fileCount"] == 0
    assert analysis.to_dict()["hasCICD"] is False
    assert len(analysis.recommendations) == 3


def test_documentation_match_is_case_insensitive_but_tests_are_not() -> None:
    inventory = {
        "ReadMe.rst": InventoryEntry("file", 10, ".rst"),
        "TESTING.md": InventoryEntry("file", 10, ".md"),
    }

    analysis = CodebaseProfiler().profile(inventory)

    assert analysis.has_documentation
    assert not analysis.has_tests


def test_tag_rule_substring_matching_is_coarse() -> None:
    inventory = {"contest.py": InventoryEntry("file", 1, ".py")}
    assert CodebaseProfiler().profile(inventory).has_tests


def test_custom_rules_drive_tags() -> None:
    profiler = CodebaseProfiler(rules=(TagRule("cicd", ("azure-pipelines",)),))
    inventory = {"azure-pipelines.yml": InventoryEntry("file", 5, ".yml")}

    tagged = profiler.tag(inventory)
    analysis = profiler.profile(inventory)

    assert tagged == {"cicd": ["azure-pipelines.yml"]}
    assert analysis.has_cicd
    assert not analysis.has_tests
