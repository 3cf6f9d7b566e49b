"""Whole-project symbol model and the reduction that builds it.

:class:`SymbolGraphBuilder` is the only place where per-file results meet.
It needs every file's declarations, imports and re-exports before it can
expand composed types or attribute an import to the file that actually
declares the symbol (imports usually go through barrel files).
"""

from __future__ import annotations

import dataclasses
import logging
from collections import defaultdict
from dataclasses import dataclass
from types import MappingProxyType
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from .models import (
    ErrorKind,
    ImportEdge,
    ImportKind,
    Member,
    ParsedFile,
    RecoveredError,
    ReExport,
    TypeDeclaration,
)
from .signature import compute_signature, merge_members, substitute_placeholders

logger = logging.getLogger(__name__)

DeclKey = Tuple[str, str]


@dataclass(frozen=True)
class SymbolGraph:
    """Read-only snapshot of one analysis run."""

    declarations: Mapping[DeclKey, TypeDeclaration]
    importers: Mapping[DeclKey, FrozenSet[str]]
    edges: Tuple[ImportEdge, ...]
    reexports: Mapping[str, Tuple[ReExport, ...]]
    files: FrozenSet[str]
    failed_files: FrozenSet[str]

    def sorted_declarations(self) -> List[TypeDeclaration]:
        return sorted(self.declarations.values(), key=lambda d: (d.file_path, d.line, d.name))

    def declarations_in(self, file_path: str) -> List[TypeDeclaration]:
        return sorted(
            (d for d in self.declarations.values() if d.file_path == file_path),
            key=lambda d: (d.line, d.name),
        )

    def importers_of(self, decl: TypeDeclaration) -> FrozenSet[str]:
        return self.importers.get(decl.key, frozenset())

    def reexports_of(self, file_path: str) -> Tuple[ReExport, ...]:
        return self.reexports.get(file_path, ())

    def provided_names(self, file_path: str) -> Set[str]:
        """Names *file_path* declares or re-exports by name (stars not followed)."""
        names = {d.name for d in self.declarations_in(file_path)}
        for rx in self.reexports_of(file_path):
            if rx.exported_name is not None:
                names.add(rx.exported_name)
        return names


# ===================================================================
# Builder
# ===================================================================

class SymbolGraphBuilder:
    """Reduce per-file results into one :class:`SymbolGraph`."""

    # Guards against pathological barrel chains.
    MAX_REEXPORT_DEPTH = 16

    def __init__(self) -> None:
        self._declarations: Dict[DeclKey, TypeDeclaration] = {}
        self._locals: Dict[DeclKey, TypeDeclaration] = {}
        self._imports_by_local: Dict[str, Dict[str, ImportEdge]] = {}
        self._reexports: Dict[str, List[ReExport]] = defaultdict(list)

    def build(self, parsed_files: Iterable[ParsedFile]) -> Tuple[SymbolGraph, List[RecoveredError]]:
        """Return the graph plus build-time (non-fatal) errors."""
        files = sorted(parsed_files, key=lambda pf: pf.rel_path)
        failed = frozenset(pf.rel_path for pf in files if pf.failed)
        edges: List[ImportEdge] = []

        for pf in files:
            for decl in pf.declarations:
                self._declarations[decl.key] = decl
            for decl in pf.local_declarations:
                self._locals[decl.key] = decl
            by_local: Dict[str, ImportEdge] = {}
            for edge in pf.imports:
                by_local.setdefault(edge.local_name, edge)
            self._imports_by_local[pf.rel_path] = by_local
            self._reexports[pf.rel_path].extend(sorted(pf.reexports, key=lambda r: r.line))
            edges.extend(pf.imports)

        declarations = {
            key: self._expand(decl) for key, decl in sorted(self._declarations.items())
        }
        importers, errors = self._usage(edges, failed)

        graph = SymbolGraph(
            declarations=MappingProxyType(declarations),
            importers=MappingProxyType({k: frozenset(v) for k, v in importers.items()}),
            edges=tuple(edges),
            reexports=MappingProxyType({k: tuple(v) for k, v in self._reexports.items() if v}),
            files=frozenset(pf.rel_path for pf in files),
            failed_files=failed,
        )
        logger.debug(
            "Built symbol graph: %d declarations, %d import edges, %d files",
            len(declarations), len(edges), len(graph.files),
        )
        return graph, errors

    # ------------------------------------------------------------------
    # Symbol location
    # ------------------------------------------------------------------

    def locate(self, file_path: str, symbol: str) -> Optional[DeclKey]:
        """Find the declaration *symbol* refers to when imported from *file_path*.

        Named re-exports are followed before ``export *`` targets.
        """
        return self._locate(file_path, symbol, set(), 0)

    def _locate(
        self,
        file_path: str,
        symbol: str,
        visited: Set[DeclKey],
        depth: int,
    ) -> Optional[DeclKey]:
        key = (file_path, symbol)
        if key in self._declarations:
            return key
        if key in visited or depth > self.MAX_REEXPORT_DEPTH:
            return None
        visited.add(key)
        reexports = self._reexports.get(file_path, [])
        for rx in reexports:
            if rx.star or rx.exported_name != symbol or rx.resolved_path is None:
                continue
            if rx.source_name in (None, "*"):
                continue
            found = self._locate(rx.resolved_path, rx.source_name, visited, depth + 1)
            if found is not None:
                return found
        for rx in reexports:
            if rx.star and rx.resolved_path is not None:
                found = self._locate(rx.resolved_path, symbol, visited, depth + 1)
                if found is not None:
                    return found
        return None

    # ------------------------------------------------------------------
    # One-level composition expansion
    # ------------------------------------------------------------------

    def _resolve_base(self, file_path: str, name: str) -> Optional[TypeDeclaration]:
        key = (file_path, name)
        if key in self._declarations:
            return self._declarations[key]
        if key in self._locals:
            return self._locals[key]
        edge = self._imports_by_local.get(file_path, {}).get(name)
        if edge is None or edge.resolved_path is None:
            return None
        found = self.locate(edge.resolved_path, edge.symbol)
        return self._declarations[found] if found is not None else None

    def _expand(self, decl: TypeDeclaration) -> TypeDeclaration:
        if not decl.bases:
            return decl
        inherited: List[Sequence[Member]] = []
        references: List[str] = []
        unexpanded: List[str] = []
        alias_of: Optional[DeclKey] = None
        for base in decl.bases:
            target = self._resolve_base(decl.file_path, base.name)
            if (
                decl.is_reference_alias
                and target is not None
                and target.name == decl.name
                and target.key != decl.key
            ):
                # `type User = Models.User` forwards User under its own name
                alias_of = target.key
            if target is None or not target.is_shape or target.key == decl.key:
                references.append(str(base))
                continue
            members: Sequence[Member] = target.members
            if base.type_arguments:
                members = [
                    dataclasses.replace(
                        m, type_text=substitute_placeholders(m.type_text, base.type_arguments)
                    )
                    for m in members
                ]
            inherited.append(members)
            for deeper in target.bases:
                # deeper chains stay as references
                unexpanded.append(str(deeper))
                references.append(str(deeper))

        resolved = merge_members(inherited, decl.members)
        signature = compute_signature(
            decl.kind, resolved, decl.type_parameters, decl.body_text, references
        )
        return dataclasses.replace(
            decl,
            resolved_members=resolved,
            signature=signature,
            unexpanded=tuple(sorted(set(unexpanded))),
            alias_of=alias_of,
        )

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    def _usage(
        self,
        edges: Sequence[ImportEdge],
        failed: FrozenSet[str],
    ) -> Tuple[Dict[DeclKey, Set[str]], List[RecoveredError]]:
        importers: Dict[DeclKey, Set[str]] = defaultdict(set)
        errors: List[RecoveredError] = []
        for edge in edges:
            if edge.external or edge.resolved_path is None or edge.symbol == "*":
                continue
            if edge.reexport_only:
                # `import { X } ...; export { X }` only forwards the symbol
                continue
            found = self.locate(edge.resolved_path, edge.symbol)
            if found is None:
                if edge.kind is ImportKind.TYPE_ONLY and edge.resolved_path not in failed:
                    errors.append(RecoveredError(
                        kind=ErrorKind.UNKNOWN_SYMBOL,
                        file_path=edge.importing_file,
                        line=edge.line,
                        message=(
                            f"'{edge.symbol}' is not a type declared or re-exported by "
                            f"{edge.resolved_path}"
                        ),
                    ))
                continue
            if found[0] != edge.importing_file:
                importers[found].add(edge.importing_file)
        return importers, errors
