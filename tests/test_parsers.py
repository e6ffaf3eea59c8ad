"""Tests for manifest parsers."""

from __future__ import annotations

import textwrap

import pytest

from orgdeps.errors import ManifestParseError
from orgdeps.parsers import parse_dependencies, parse_package_json, supported_manifests


def test_package_json_collects_every_dependency_section() -> None:
    content = """
    {
      "name": "web",
      "dependencies": {"@org/ui": "^1.0.0", "react": "^18.0.0"},
      "devDependencies": {"@org/lint-config": "1.0.0"},
      "peerDependencies": {"react-dom": "*"}
    }
    """

    deps = parse_dependencies("packages/web/package.json", content)

    assert deps == ["@org/ui", "react", "@org/lint-config", "react-dom"]


def test_package_json_without_dependencies_is_empty() -> None:
    assert parse_dependencies("package.json", '{"name": "tooling"}') == []


def test_malformed_package_json_yields_empty_list() -> None:
    assert parse_dependencies("package.json", "{ broken") == []
    with pytest.raises(ManifestParseError):
        parse_package_json("{ broken")


def test_requirements_skip_comments_options_and_urls() -> None:
    content = textwrap.dedent(
        """
        # runtime
        flask>=2.0
        requests[security]==2.31.0  # pinned
        -r base.txt
        --index-url https://example.invalid/simple
        git+https://example.invalid/repo.git
        org-common @ git+https://example.invalid/org-common.git
        """
    )

    assert parse_dependencies("requirements.txt", content) == ["flask", "requests", "org-common"]


def test_gemfile_extracts_gem_names() -> None:
    content = textwrap.dedent(
        """
        source "https://rubygems.org"
        gem "rails", "~> 7.0"
        gem 'org-auth'
          gem "puma"
        # gem "commented"
        """
    )

    assert parse_dependencies("Gemfile", content) == ["rails", "org-auth", "puma"]


def test_pom_reads_group_and_artifact_with_namespace() -> None:
    content = textwrap.dedent(
        """\
        <project xmlns="http://maven.apache.org/POM/4.0.0">
          <dependencies>
            <dependency>
              <groupId>com.acme</groupId>
              <artifactId>shared-core</artifactId>
            </dependency>
            <dependency>
              <artifactId>orphan</artifactId>
            </dependency>
          </dependencies>
        </project>
        """
    )

    assert parse_dependencies("pom.xml", content) == ["com.acme:shared-core"]


def test_malformed_pom_yields_empty_list() -> None:
    assert parse_dependencies("pom.xml", "<project>") == []


def test_pyproject_reads_project_and_poetry_dependencies() -> None:
    content = textwrap.dedent(
        """
        [project]
        dependencies = ["httpx>=0.27", "org-utils"]

        [project.optional-dependencies]
        test = ["pytest"]

        [tool.poetry.dependencies]
        python = "^3.11"
        rich = "*"
        """
    )

    assert parse_dependencies("pyproject.toml", content) == ["httpx", "org-utils", "pytest", "rich"]


def test_gradle_reads_coordinates() -> None:
    content = textwrap.dedent(
        """
        dependencies {
            implementation 'com.acme:shared-core:1.2.0'
            // implementation 'com.acme:ignored:1.0'
            testImplementation "junit:junit:4.13"
        }
        """
    )

    assert parse_dependencies("build.gradle", content) == ["com.acme:shared-core", "junit:junit"]


def test_unknown_manifest_names_are_ignored() -> None:
    assert parse_dependencies("Cargo.toml", "[dependencies]\nserde = '1'") == []


def test_supported_manifests_cover_defaults() -> None:
    supported = supported_manifests()

    for name in ("package.json", "requirements.txt", "Gemfile", "pom.xml"):
        assert name in supported
