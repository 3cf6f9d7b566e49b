"""Tests for type-text normalization and structural signatures."""

from typeorg.models import DeclarationKind, Member
from typeorg.signature import (
    compute_signature,
    generic_mapping,
    merge_members,
    normalize_type_text,
    split_top_level,
    substitute_placeholders,
)


def test_normalize_strips_whitespace():
    assert normalize_type_text(" Array< string >  ") == "Array<string>"


def test_normalize_sorts_union_members():
    assert normalize_type_text("'b' | 'a' | null") == normalize_type_text("null | 'a' | 'b'")
    assert normalize_type_text("| 'x' | 'y'") == "'x'|'y'"


def test_union_inside_generic_is_not_split():
    assert split_top_level("Map<string,A|B>|null", "|") == ["Map<string,A|B>", "null"]


def test_arrow_does_not_close_generic():
    parts = split_top_level("(a:string)=>void|undefined", "|")
    assert parts == ["(a:string)=>void", "undefined"]


def test_pipe_inside_string_literal_is_kept():
    assert split_top_level("'a|b'|'c'", "|") == ["'a|b'", "'c'"]


def test_generic_names_become_placeholders():
    mapping = generic_mapping(["T", "U"])
    assert normalize_type_text("Record<T, U[]>", mapping) == "Record<%1,%2[]>"
    # property access and longer identifiers are untouched
    assert normalize_type_text("Tree.T | TValue", mapping) == "TValue|Tree.T"


def test_substitute_placeholders():
    assert substitute_placeholders("%1[]|%2", ["string"]) == "string[]|%2"
    assert substitute_placeholders("%10", ["a"]) == "%10"


def test_signature_ignores_member_order():
    a = [Member("id", "string"), Member("name", "string")]
    b = [Member("name", "string"), Member("id", "string")]
    assert compute_signature(DeclarationKind.INTERFACE, a) == compute_signature(
        DeclarationKind.INTERFACE, b
    )


def test_signature_distinguishes_optional_members():
    required = [Member("id", "string")]
    optional = [Member("id", "string", optional=True)]
    assert compute_signature(DeclarationKind.INTERFACE, required) != compute_signature(
        DeclarationKind.INTERFACE, optional
    )


def test_interface_and_object_alias_share_signatures():
    members = [Member("id", "string")]
    assert compute_signature(DeclarationKind.INTERFACE, members) == compute_signature(
        DeclarationKind.TYPE_ALIAS, members
    )


def test_enum_signature_differs_from_shape():
    members = [Member("A", "#0")]
    assert compute_signature(DeclarationKind.ENUM, members) != compute_signature(
        DeclarationKind.INTERFACE, members
    )


def test_unexpanded_references_are_part_of_signature():
    members = [Member("id", "string")]
    plain = compute_signature(DeclarationKind.INTERFACE, members)
    composed = compute_signature(DeclarationKind.INTERFACE, members, references=["Base"])
    assert plain != composed


def test_merge_members_own_overrides_inherited():
    inherited = [Member("id", "number"), Member("name", "string")]
    own = [Member("id", "string")]
    merged = {m.name: m.type_text for m in merge_members([inherited], own)}
    assert merged == {"id": "string", "name": "string"}
