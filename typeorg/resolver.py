"""Import / re-export extraction and module specifier resolution."""

from __future__ import annotations

import dataclasses
import logging
import posixpath
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Set, Tuple

from .config import AnalysisConfig
from .models import ErrorKind, ImportEdge, ImportKind, RecoveredError, ReExport
from .parser import first_child_of_type, node_text, strip_quotes

logger = logging.getLogger(__name__)

# Specifiers written with a JS extension that point at TS sources (ESM style).
_JS_TO_TS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (".js", (".ts", ".tsx")),
    (".jsx", (".tsx",)),
    (".mjs", (".mts",)),
    (".cjs", (".cts",)),
)


@dataclass(frozen=True)
class _Target:
    specifier: str
    resolved: Optional[str]
    external: bool
    line: int


def is_relative(specifier: str) -> bool:
    return specifier in (".", "..") or specifier.startswith(("./", "../"))


class ImportResolver:
    """Turn one file's import and export statements into graph edges.

    Args:
        config: Supplies the extension allowlist and the path alias map.
        known_files: Every project-relative path the scanner discovered.
            Resolution probes this set instead of touching the file system.
    """

    def __init__(self, config: AnalysisConfig, known_files: FrozenSet[str]) -> None:
        self.known_files = known_files
        self.extensions = list(config.extensions)
        self.aliases = sorted(config.path_aliases.items(), key=lambda kv: len(kv[0]), reverse=True)

    # ------------------------------------------------------------------
    # Specifier resolution
    # ------------------------------------------------------------------

    def resolve_specifier(self, importing_file: str, specifier: str) -> Tuple[Optional[str], bool]:
        """Return ``(resolved_path, external)`` for *specifier*.

        External (bare package) specifiers resolve to ``(None, True)``;
        project specifiers that match no file resolve to ``(None, False)``.
        """
        base = self._alias_target(specifier)
        if base is None:
            if not is_relative(specifier):
                return None, True
            base = posixpath.normpath(
                posixpath.join(posixpath.dirname(importing_file), specifier)
            )
        if base == "..":
            return None, False
        if base.startswith("../"):
            return None, False
        if base == ".":
            base = ""
        return self._probe(base), False

    def _alias_target(self, specifier: str) -> Optional[str]:
        for prefix, target in self.aliases:
            if prefix.endswith("/"):
                if not specifier.startswith(prefix):
                    continue
                rest = specifier[len(prefix):]
            elif specifier == prefix:
                rest = ""
            elif specifier.startswith(prefix + "/"):
                rest = specifier[len(prefix) + 1:]
            else:
                continue
            return posixpath.normpath(posixpath.join(target, rest)) if (target or rest) else "."
        return None

    def _probe(self, base: str) -> Optional[str]:
        for candidate in self._candidates(base):
            if candidate in self.known_files:
                return candidate
        return None

    def _candidates(self, base: str) -> Iterator[str]:
        if base and base.endswith(tuple(self.extensions)):
            yield base
        for js_ext, ts_exts in _JS_TO_TS:
            if base.endswith(js_ext):
                stem = base[: -len(js_ext)]
                for ext in ts_exts:
                    yield stem + ext
        if base:
            for ext in self.extensions:
                yield base + ext
            yield base + ".d.ts"
        prefix = f"{base}/index" if base else "index"
        for ext in self.extensions:
            yield prefix + ext

    # ------------------------------------------------------------------
    # Statement extraction
    # ------------------------------------------------------------------

    def extract(
        self,
        root: Any,
        rel_path: str,
    ) -> Tuple[List[ImportEdge], List[ReExport], List[RecoveredError]]:
        imports: List[ImportEdge] = []
        reexports: List[ReExport] = []
        errors: List[RecoveredError] = []
        # local name -> (imported symbol, target) for "import X; export { X }"
        imported_locals: Dict[str, Tuple[str, _Target]] = {}
        # namespace local -> (target, type-only)
        namespaces: Dict[str, Tuple[_Target, bool]] = {}
        forwarded: Set[str] = set()

        for child in root.named_children:
            if child.type == "import_statement":
                self._import_statement(child, rel_path, imports, errors, imported_locals, namespaces)

        for child in root.named_children:
            if child.type != "export_statement":
                continue
            if first_child_of_type(child, "default") is not None:
                default = self._default_export(child, rel_path)
                if default is not None:
                    reexports.append(default)
                continue
            if child.child_by_field_name("declaration") is not None:
                continue
            source = child.child_by_field_name("source")
            if source is None and first_child_of_type(child, "from") is not None:
                source = first_child_of_type(child, "string")
            if source is not None:
                target = self._target(child, source, rel_path, errors)
                reexports.extend(self._reexports_from(child, rel_path, target))
            else:
                reexports.extend(self._local_reexports(child, rel_path, imported_locals, forwarded))

        if forwarded:
            used = _local_uses(root)
            imports = [
                dataclasses.replace(edge, reexport_only=True)
                if edge.local_name in forwarded and edge.local_name not in used
                else edge
                for edge in imports
            ]
        if namespaces:
            imports.extend(self._namespace_edges(root, rel_path, namespaces))

        return imports, reexports, errors

    def _target(
        self,
        statement: Any,
        source: Any,
        rel_path: str,
        errors: List[RecoveredError],
    ) -> _Target:
        specifier = strip_quotes(node_text(source))
        line = statement.start_point[0] + 1
        resolved, external = self.resolve_specifier(rel_path, specifier)
        if resolved is None and not external:
            logger.debug("Unresolved import '%s' in %s:%d", specifier, rel_path, line)
            errors.append(RecoveredError(
                kind=ErrorKind.RESOLUTION_ERROR,
                file_path=rel_path,
                line=line,
                message=f"Cannot resolve module '{specifier}'",
            ))
        return _Target(specifier=specifier, resolved=resolved, external=external, line=line)

    def _import_statement(
        self,
        node: Any,
        rel_path: str,
        imports: List[ImportEdge],
        errors: List[RecoveredError],
        imported_locals: Dict[str, Tuple[str, _Target]],
        namespaces: Dict[str, Tuple[_Target, bool]],
    ) -> None:
        source = node.child_by_field_name("source") or first_child_of_type(node, "string")
        clause = first_child_of_type(node, "import_clause")
        if source is None or clause is None:
            # side-effect import or `import x = require(...)`
            return
        target = self._target(node, source, rel_path, errors)
        statement_type_only = first_child_of_type(node, "type") is not None

        def _edge(symbol: str, local: str, kind: ImportKind) -> None:
            imports.append(ImportEdge(
                importing_file=rel_path,
                symbol=symbol,
                local_name=local,
                specifier=target.specifier,
                resolved_path=target.resolved,
                kind=kind,
                line=target.line,
                external=target.external,
            ))
            imported_locals[local] = (symbol, target)

        for part in clause.named_children:
            if part.type == "identifier":
                kind = ImportKind.TYPE_ONLY if statement_type_only else ImportKind.NAMED
                _edge("default", node_text(part), kind)
            elif part.type == "namespace_import":
                ident = first_child_of_type(part, "identifier")
                if ident is not None:
                    namespaces[node_text(ident)] = (target, statement_type_only)
            elif part.type == "named_imports":
                for spec in part.named_children:
                    if spec.type != "import_specifier":
                        continue
                    name_node = spec.child_by_field_name("name")
                    if name_node is None:
                        continue
                    alias_node = spec.child_by_field_name("alias")
                    symbol = strip_quotes(node_text(name_node))
                    local = node_text(alias_node) if alias_node is not None else symbol
                    type_only = statement_type_only or first_child_of_type(spec, "type") is not None
                    _edge(symbol, local, ImportKind.TYPE_ONLY if type_only else ImportKind.NAMED)

    @staticmethod
    def _reexports_from(node: Any, rel_path: str, target: _Target) -> List[ReExport]:
        namespace_export = first_child_of_type(node, "namespace_export")
        if namespace_export is not None:
            names = [c for c in namespace_export.named_children if c.type != "comment"]
            if not names:
                return []
            return [ReExport(
                aggregator_file=rel_path,
                exported_name=strip_quotes(node_text(names[-1])),
                source_name="*",
                specifier=target.specifier,
                resolved_path=target.resolved,
                line=target.line,
            )]
        clause = first_child_of_type(node, "export_clause")
        if clause is None:
            if first_child_of_type(node, "*") is None:
                return []
            return [ReExport(
                aggregator_file=rel_path,
                exported_name=None,
                source_name=None,
                specifier=target.specifier,
                resolved_path=target.resolved,
                line=target.line,
                star=True,
            )]
        result: List[ReExport] = []
        for spec in clause.named_children:
            if spec.type != "export_specifier":
                continue
            name_node = spec.child_by_field_name("name")
            if name_node is None:
                continue
            alias_node = spec.child_by_field_name("alias")
            name = strip_quotes(node_text(name_node))
            result.append(ReExport(
                aggregator_file=rel_path,
                exported_name=strip_quotes(node_text(alias_node)) if alias_node else name,
                source_name=name,
                specifier=target.specifier,
                resolved_path=target.resolved,
                line=target.line,
            ))
        return result

    @staticmethod
    def _default_export(node: Any, rel_path: str) -> Optional[ReExport]:
        """``export default interface X`` / ``export default X`` as a self re-export.

        This lets ``import X from './file'`` locate the declaration named X.
        """
        target = node.child_by_field_name("declaration") or node.child_by_field_name("value")
        if target is None:
            return None
        if target.type != "identifier":
            target = target.child_by_field_name("name")
            if target is None:
                return None
        return ReExport(
            aggregator_file=rel_path,
            exported_name="default",
            source_name=node_text(target),
            specifier=f"./{posixpath.basename(rel_path)}",
            resolved_path=rel_path,
            line=node.start_point[0] + 1,
        )

    @staticmethod
    def _local_reexports(
        node: Any,
        rel_path: str,
        imported_locals: Dict[str, Tuple[str, _Target]],
        forwarded: Set[str],
    ) -> List[ReExport]:
        clause = first_child_of_type(node, "export_clause")
        if clause is None:
            return []
        result: List[ReExport] = []
        for spec in clause.named_children:
            if spec.type != "export_specifier":
                continue
            name_node = spec.child_by_field_name("name")
            if name_node is None:
                continue
            local = node_text(name_node)
            if local not in imported_locals:
                continue
            symbol, target = imported_locals[local]
            forwarded.add(local)
            alias_node = spec.child_by_field_name("alias")
            result.append(ReExport(
                aggregator_file=rel_path,
                exported_name=strip_quotes(node_text(alias_node)) if alias_node else local,
                source_name=symbol,
                specifier=target.specifier,
                resolved_path=target.resolved,
                line=node.start_point[0] + 1,
            ))
        return result

    # ------------------------------------------------------------------
    # Namespace imports
    # ------------------------------------------------------------------

    def _namespace_edges(
        self,
        root: Any,
        rel_path: str,
        namespaces: Dict[str, Tuple[_Target, bool]],
    ) -> List[ImportEdge]:
        used: Dict[str, Set[str]] = {ns: set() for ns in namespaces}
        for ns, member in _qualified_references(root, set(namespaces)):
            used[ns].add(member)

        edges: List[ImportEdge] = []
        for ns in sorted(namespaces):
            target, type_only = namespaces[ns]
            kind = ImportKind.TYPE_ONLY if type_only else ImportKind.NAMESPACE
            for member in sorted(used[ns]) or ["*"]:
                edges.append(ImportEdge(
                    importing_file=rel_path,
                    symbol=member,
                    local_name=ns if member == "*" else f"{ns}.{member}",
                    specifier=target.specifier,
                    resolved_path=target.resolved,
                    kind=kind,
                    line=target.line,
                    external=target.external,
                ))
        return edges


def _qualified_references(root: Any, namespaces: Set[str]) -> Iterator[Tuple[str, str]]:
    """Yield ``(namespace, member)`` for every ``ns.Member`` use in the tree."""
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type in ("nested_type_identifier", "nested_identifier"):
            parts = "".join(node_text(node).split()).split(".")
            if len(parts) >= 2 and parts[0] in namespaces:
                yield parts[0], parts[1]
                continue
        elif node.type == "member_expression":
            obj = node.child_by_field_name("object")
            prop = node.child_by_field_name("property")
            if obj is not None and prop is not None and obj.type == "identifier":
                if node_text(obj) in namespaces:
                    yield node_text(obj), node_text(prop)
                    continue
        if node.type in ("import_statement", "comment", "string", "template_string"):
            continue
        stack.extend(node.children)


def _local_uses(root: Any) -> Set[str]:
    """Names referenced by the file's own code, outside imports and ``export { ... }``."""
    names: Set[str] = set()
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type in ("import_statement", "comment"):
            continue
        if node.type == "export_statement" and first_child_of_type(node, "export_clause") is not None:
            continue
        if node.type in ("identifier", "type_identifier", "shorthand_property_identifier"):
            names.add(node_text(node))
            continue
        stack.extend(node.children)
    return names
