"""TypeScript declaration extraction built on Tree-sitter.

Tree-sitter gives an error-tolerant concrete syntax tree for ``.ts`` and
``.tsx`` sources.  :class:`DeclarationParser` walks only the top level of
that tree and turns ``interface``, ``type`` and ``enum`` declarations into
:class:`~typeorg.models.TypeDeclaration` values with normalized members,
positional generic placeholders and a provisional structural signature.
Composition through ``extends`` / ``&`` is recorded as :class:`BaseRef`
and expanded later by the graph builder, which can see other files.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import Any, Dict, List, Optional, Set, Tuple

import tree_sitter_typescript
from tree_sitter import Language, Parser as TSParser, Tree

from .models import (
    BaseRef,
    DeclarationKind,
    ErrorKind,
    Member,
    RecoveredError,
    SourceFile,
    TypeDeclaration,
)
from .signature import compute_signature, generic_mapping, normalize_type_text

logger = logging.getLogger(__name__)

DECLARATION_TYPES: Set[str] = {
    "interface_declaration",
    "type_alias_declaration",
    "enum_declaration",
}

REFERENCE_TYPES: Set[str] = {
    "type_identifier",
    "identifier",
    "nested_type_identifier",
    "generic_type",
}

_ANNOTATION_PREFIX = re.compile(r"^[\s+\-?]*:")


def node_text(node: Any) -> str:
    return node.text.decode("utf-8", errors="replace")


def strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"`":
        return text[1:-1]
    return text


def first_child_of_type(node: Any, *types: str) -> Optional[Any]:
    for child in node.children:
        if child.type in types:
            return child
    return None


# ===================================================================
# Grammar loading
# ===================================================================

class TypeScriptParser:
    """Owns one Tree-sitter parser per grammar.

    Tree-sitter parsers are not safe to share between threads; create one
    instance per worker.
    """

    # extension -> function of ``tree_sitter_typescript`` returning the grammar
    _GRAMMARS: Dict[str, str] = {
        ".ts": "language_typescript",
        ".mts": "language_typescript",
        ".cts": "language_typescript",
        ".tsx": "language_tsx",
        ".jsx": "language_tsx",
        ".js": "language_tsx",
    }

    def __init__(self) -> None:
        self._parsers: Dict[str, TSParser] = {}
        for grammar in sorted(set(self._GRAMMARS.values())):
            ts_lang = Language(getattr(tree_sitter_typescript, grammar)())
            self._parsers[grammar] = TSParser(ts_lang)
            logger.debug("Loaded tree-sitter grammar %s", grammar)

    def grammar_for(self, rel_path: str) -> str:
        for ext, grammar in self._GRAMMARS.items():
            if rel_path.lower().endswith(ext):
                return grammar
        return "language_typescript"

    def parse(self, source: SourceFile) -> Tree:
        parser = self._parsers[self.grammar_for(source.rel_path)]
        return parser.parse(source.text.encode("utf-8"))


def first_error_node(node: Any) -> Optional[Any]:
    """Depth-first search for the first ERROR or MISSING node."""
    if node.type == "ERROR" or node.is_missing:
        return node
    for child in node.children:
        if child.has_error or child.type == "ERROR" or child.is_missing:
            found = first_error_node(child)
            if found is not None:
                return found
    return None


def parse_error_for(tree: Tree, rel_path: str) -> Optional[RecoveredError]:
    """A PARSE_ERROR describing *tree*'s first syntax error, if it has one."""
    root = tree.root_node
    if not root.has_error:
        return None
    bad = first_error_node(root) or root
    line = bad.start_point[0] + 1
    column = bad.start_point[1] + 1
    what = "missing token" if bad.is_missing else "unexpected syntax"
    return RecoveredError(
        kind=ErrorKind.PARSE_ERROR,
        file_path=rel_path,
        line=line,
        message=f"{what} at {line}:{column}; declarations in this file were skipped",
    )


# ===================================================================
# Declaration extraction
# ===================================================================

class DeclarationParser:
    """Extract top-level type declarations from one parsed file."""

    def extract(
        self,
        root: Any,
        rel_path: str,
    ) -> Tuple[List[TypeDeclaration], List[TypeDeclaration]]:
        """Return ``(exported, local)`` top-level declarations in source order.

        Local (non-exported) declarations cannot be imported elsewhere; they
        are returned only so that bases declared in the same file can be
        expanded.
        """
        exported: Dict[str, TypeDeclaration] = {}
        local: Dict[str, TypeDeclaration] = {}
        late_exports: Dict[str, str] = {}

        for child in root.named_children:
            if child.type == "export_statement":
                decl_node = child.child_by_field_name("declaration")
                value = child.child_by_field_name("value")
                if decl_node is not None:
                    decl = self._declaration(decl_node, child, rel_path, exported=True)
                    if decl is not None:
                        self._add(exported, decl)
                elif value is not None and value.type == "identifier":
                    # export default Props;
                    late_exports[node_text(value)] = node_text(value)
                elif (
                    child.child_by_field_name("source") is None
                    and first_child_of_type(child, "from") is None
                ):
                    clause = first_child_of_type(child, "export_clause")
                    if clause is not None:
                        for spec in clause.named_children:
                            if spec.type != "export_specifier":
                                continue
                            name_node = spec.child_by_field_name("name")
                            alias_node = spec.child_by_field_name("alias")
                            if name_node is None:
                                continue
                            name = node_text(name_node)
                            late_exports[name] = node_text(alias_node) if alias_node else name
            else:
                decl = self._declaration(child, child, rel_path, exported=False)
                if decl is not None:
                    self._add(local, decl)

        for name, exported_as in late_exports.items():
            decl = local.pop(name, None)
            if decl is None:
                continue
            self._add(exported, dataclasses.replace(decl, name=exported_as, exported=True))

        by_position = lambda d: (d.line, d.column, d.name)  # noqa: E731
        return sorted(exported.values(), key=by_position), sorted(local.values(), key=by_position)

    @staticmethod
    def _add(table: Dict[str, TypeDeclaration], decl: TypeDeclaration) -> None:
        existing = table.get(decl.name)
        if existing is None:
            table[decl.name] = decl
            return
        if existing.kind is DeclarationKind.INTERFACE and decl.kind is DeclarationKind.INTERFACE:
            # interface declaration merging
            members = existing.members + tuple(
                m for m in decl.members if m not in existing.members
            )
            bases = existing.bases + tuple(b for b in decl.bases if b not in existing.bases)
            table[decl.name] = _signed(dataclasses.replace(
                existing,
                members=members,
                bases=bases,
                end_line=max(existing.end_line, decl.end_line),
            ))
            return
        logger.debug(
            "Ignoring second declaration of %s in %s (line %d)",
            decl.name, decl.file_path, decl.line,
        )

    def _declaration(
        self,
        node: Any,
        outer: Any,
        rel_path: str,
        exported: bool,
    ) -> Optional[TypeDeclaration]:
        if node.type == "ambient_declaration":
            inner = next((c for c in node.named_children if c.type in DECLARATION_TYPES), None)
            if inner is None:
                return None
            node = inner
        if node.type not in DECLARATION_TYPES:
            return None

        name_node = node.child_by_field_name("name")
        if name_node is None:
            return None
        name = node_text(name_node)

        params, mapping = self._type_parameters(node.child_by_field_name("type_parameters"))
        members: List[Member] = []
        bases: List[BaseRef] = []
        body_text = ""

        if node.type == "interface_declaration":
            kind = DeclarationKind.INTERFACE
            for child in node.named_children:
                if child.type in ("extends_type_clause", "extends_clause"):
                    for base_node in child.named_children:
                        ref = self._reference(base_node, mapping)
                        if ref is not None:
                            bases.append(ref)
            body = node.child_by_field_name("body") or first_child_of_type(
                node, "interface_body", "object_type"
            )
            if body is not None:
                members = self._members(body, mapping)
        elif node.type == "type_alias_declaration":
            kind = DeclarationKind.TYPE_ALIAS
            members, bases, body_text = self._alias_value(node.child_by_field_name("value"), mapping)
        else:
            kind = DeclarationKind.ENUM
            params = ()
            body = node.child_by_field_name("body") or first_child_of_type(node, "enum_body")
            if body is not None:
                members = self._enum_members(body)

        return _signed(TypeDeclaration(
            file_path=rel_path,
            name=name,
            kind=kind,
            exported=exported,
            line=outer.start_point[0] + 1,
            column=outer.start_point[1] + 1,
            end_line=outer.end_point[0] + 1,
            end_column=outer.end_point[1] + 1,
            members=tuple(members),
            type_parameters=tuple(params),
            bases=tuple(bases),
            body_text=body_text,
        ))

    # ------------------------------------------------------------------
    # Generics
    # ------------------------------------------------------------------

    @staticmethod
    def _type_parameters(node: Optional[Any]) -> Tuple[Tuple[str, ...], Dict[str, str]]:
        if node is None:
            return (), {}
        params = [c for c in node.named_children if c.type == "type_parameter"]
        names: List[str] = []
        for param in params:
            name_node = param.child_by_field_name("name") or first_child_of_type(
                param, "type_identifier"
            )
            names.append(node_text(name_node) if name_node is not None else node_text(param))
        mapping = generic_mapping(names)
        normalized = tuple(normalize_type_text(node_text(p), mapping) for p in params)
        return normalized, mapping

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def _members(self, body: Any, mapping: Dict[str, str]) -> List[Member]:
        members: List[Member] = []
        for child in body.named_children:
            member = self._member(child, mapping)
            if member is not None:
                members.append(member)
        return members

    def _member(self, node: Any, mapping: Dict[str, str]) -> Optional[Member]:
        kind = node.type
        if kind == "property_signature":
            name_node = node.child_by_field_name("name")
            if name_node is None:
                return None
            type_node = node.child_by_field_name("type") or first_child_of_type(
                node, "type_annotation"
            )
            type_text = annotation_text(type_node) if type_node is not None else "any"
            return Member(
                name=strip_quotes(node_text(name_node)),
                type_text=normalize_type_text(type_text, mapping),
                optional=first_child_of_type(node, "?") is not None,
                readonly=first_child_of_type(node, "readonly") is not None,
            )
        if kind == "method_signature":
            name_node = node.child_by_field_name("name")
            if name_node is None:
                return None
            offset = name_node.end_byte - node.start_byte
            rest = node.text[offset:].decode("utf-8", errors="replace").lstrip()
            optional = rest.startswith("?")
            if optional:
                rest = rest[1:]
            return Member(
                name=strip_quotes(node_text(name_node)),
                type_text=normalize_type_text(rest, mapping),
                optional=optional,
            )
        synthetic = {
            "call_signature": "<call>",
            "construct_signature": "<new>",
            "index_signature": "<index>",
        }.get(kind)
        if synthetic is not None:
            return Member(name=synthetic, type_text=normalize_type_text(node_text(node), mapping))
        return None

    def _enum_members(self, body: Any) -> List[Member]:
        members: List[Member] = []
        position = 0
        for child in body.named_children:
            if child.type == "enum_assignment":
                name_node = child.child_by_field_name("name") or child.named_children[0]
                value_node = child.child_by_field_name("value")
                value = normalize_type_text(node_text(value_node)) if value_node else f"#{position}"
                members.append(Member(name=strip_quotes(node_text(name_node)), type_text=value))
            elif child.type in ("property_identifier", "string", "identifier"):
                members.append(Member(name=strip_quotes(node_text(child)), type_text=f"#{position}"))
            else:
                continue
            position += 1
        return members

    # ------------------------------------------------------------------
    # Aliases and references
    # ------------------------------------------------------------------

    def _alias_value(
        self,
        value: Optional[Any],
        mapping: Dict[str, str],
    ) -> Tuple[List[Member], List[BaseRef], str]:
        if value is None:
            return [], [], ""
        value = _unwrap_parens(value)
        if value.type == "object_type":
            return self._members(value, mapping), [], ""
        if value.type in REFERENCE_TYPES:
            ref = self._reference(value, mapping)
            if ref is not None:
                return [], [ref], ""
        if value.type == "intersection_type":
            members: List[Member] = []
            bases: List[BaseRef] = []
            for operand in _intersection_operands(value):
                if operand.type == "object_type":
                    members.extend(self._members(operand, mapping))
                    continue
                ref = self._reference(operand, mapping) if operand.type in REFERENCE_TYPES else None
                if ref is None:
                    # unexpandable operand, kept as an opaque reference
                    ref = BaseRef(name=normalize_type_text(node_text(operand), mapping))
                bases.append(ref)
            return members, bases, ""
        return [], [], normalize_type_text(node_text(value), mapping)

    @staticmethod
    def _reference(node: Any, mapping: Dict[str, str]) -> Optional[BaseRef]:
        if node.type in ("type_identifier", "identifier", "nested_type_identifier"):
            name = "".join(node_text(node).split())
            if name in mapping:
                return BaseRef(name=mapping[name])
            return BaseRef(name=name)
        if node.type == "generic_type":
            name_node = node.child_by_field_name("name") or node.named_children[0]
            args_node = node.child_by_field_name("type_arguments") or first_child_of_type(
                node, "type_arguments"
            )
            args: Tuple[str, ...] = ()
            if args_node is not None:
                args = tuple(
                    normalize_type_text(node_text(a), mapping)
                    for a in args_node.named_children
                    if a.type != "comment"
                )
            return BaseRef(name="".join(node_text(name_node).split()), type_arguments=args)
        return None


def annotation_text(node: Any) -> str:
    """``: string`` -> ``string``."""
    return _ANNOTATION_PREFIX.sub("", node_text(node), count=1)


def _unwrap_parens(node: Any) -> Any:
    while node.type == "parenthesized_type" and node.named_children:
        node = node.named_children[0]
    return node


def _intersection_operands(node: Any) -> List[Any]:
    operands: List[Any] = []
    for child in node.named_children:
        child = _unwrap_parens(child)
        if child.type == "intersection_type":
            operands.extend(_intersection_operands(child))
        elif child.type != "comment":
            operands.append(child)
    return operands


def _signed(decl: TypeDeclaration) -> TypeDeclaration:
    """Attach the provisional signature (bases unexpanded)."""
    signature = compute_signature(
        decl.kind,
        decl.members,
        decl.type_parameters,
        decl.body_text,
        [str(b) for b in decl.bases],
    )
    return dataclasses.replace(decl, signature=signature)
