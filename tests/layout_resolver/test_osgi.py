"""Tests for OSGi version ordering, range matching and header parsing."""

from __future__ import annotations

import pytest

from P2Layout.LayoutResolver.osgi import Version, VersionRange, max_version, parse_header


def test_numeric_segments_compare_numerically():
    assert Version.parse("1.9.0") < Version.parse("1.10.0")
    assert Version.parse("2") == Version.parse("2.0.0")
    assert Version.parse("2.0.0") < Version.parse("2.0.0.v2024")
    assert Version.parse("2.0.0.a") < Version.parse("2.0.0.b")


def test_maven_style_qualifier_separator_is_accepted():
    version = Version.parse("3.1.4-SNAPSHOT")
    assert version.qualifier == "SNAPSHOT"
    assert str(version) == "3.1.4.SNAPSHOT"


@pytest.mark.parametrize("text", ["", "abc", "1.x", "1.2.3.bad qualifier", "1..2"])
def test_invalid_versions_raise(text):
    with pytest.raises(ValueError):
        Version.parse(text)


def test_max_version_uses_osgi_ordering_and_keeps_original_text():
    assert max_version(["1.0.0", "1.2.0", "1.10.0", "2.0.0.qualifier"]) == "2.0.0.qualifier"
    assert max_version(["1.9", "1.10"]) == "1.10"
    assert max_version(["not-a-version", "0.0.1"]) == "0.0.1"
    assert max_version([]) is None


@pytest.mark.parametrize(
    "text, inside, outside",
    [
        ("[1.0,2.0)", ["1.0.0", "1.5.0", "1.99.0.z"], ["0.9.0", "2.0.0"]),
        ("[1.0,2.0]", ["2.0.0"], ["2.0.0.v1"]),
        ("(1.0,2.0)", ["1.0.0.a"], ["1.0.0"]),
        ("1.5", ["1.5.0", "9.0.0"], ["1.4.9"]),
    ],
)
def test_range_inclusion(text, inside, outside):
    version_range = VersionRange.parse(text)
    for value in inside:
        assert version_range.includes(Version.parse(value)), value
    for value in outside:
        assert not version_range.includes(Version.parse(value)), value


@pytest.mark.parametrize("text", ["", "[1.0", "[1.0,2.0,3.0)", "[a,b)"])
def test_invalid_ranges_raise(text):
    with pytest.raises(ValueError):
        VersionRange.parse(text)


def test_range_string_form():
    assert str(VersionRange.parse("[1,2)")) == "[1.0.0,2.0.0)"
    assert str(VersionRange.parse("1.2")) == "1.2.0"


def test_parse_header_splits_clauses_attributes_and_directives():
    clauses = parse_header(
        'org.example.util;bundle-version="[2.0.0,3.0.0)",'
        "org.missing.bundle;resolution:=optional;visibility:=reexport,"
        "org.plain"
    )
    assert [clause.value for clause in clauses] == ["org.example.util", "org.missing.bundle", "org.plain"]
    assert clauses[0].attribute("bundle-version") == "[2.0.0,3.0.0)"
    assert clauses[1].directive("resolution") == "optional"
    assert clauses[1].directive("visibility") == "reexport"
    assert clauses[2].attributes == {} and clauses[2].directives == {}


def test_parse_header_ignores_empty_input():
    assert parse_header(None) == []
    assert parse_header("") == []
    assert [clause.value for clause in parse_header(".,lib/a.jar,,")] == [".", "lib/a.jar"]
