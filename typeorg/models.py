"""Core data models shared by scanning, parsing, graph building and rules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Optional, Tuple

if TYPE_CHECKING:
    from .graph import SymbolGraph


class ParseStatus(str, Enum):
    PARSED = "parsed"
    FAILED = "failed"


class DeclarationKind(str, Enum):
    INTERFACE = "interface"
    TYPE_ALIAS = "type_alias"
    ENUM = "enum"


class ImportKind(str, Enum):
    NAMED = "named"
    NAMESPACE = "namespace"
    TYPE_ONLY = "type-only"


class Category(str, Enum):
    NAVIGATION = "navigation"
    API = "api"
    ENTITY = "entity"
    SCREEN = "screen"
    UI = "ui"
    STORE = "store"
    UNCATEGORIZED = "uncategorized"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class DiagnosticKind(str, Enum):
    DUPLICATE = "duplicate"
    CANDIDATE_DUPLICATE = "candidate_duplicate"
    SHOULD_CENTRALIZE = "should_centralize"
    MISPLACED = "misplaced"
    MISSING_BARREL_EXPORT = "missing_barrel_export"


# Tie-break order when two diagnostics share a file and line.
DIAGNOSTIC_KIND_ORDER: Dict[DiagnosticKind, int] = {
    kind: index for index, kind in enumerate(DiagnosticKind)
}


class ErrorKind(str, Enum):
    IO_ERROR = "io_error"
    PARSE_ERROR = "parse_error"
    RESOLUTION_ERROR = "resolution_error"
    UNKNOWN_SYMBOL = "unknown_symbol"


class RunStatus(str, Enum):
    COMPLETED = "completed"


# ===================================================================
# Source files
# ===================================================================

@dataclass(frozen=True)
class SourceFile:
    """One scanned file. ``text`` is empty when reading failed."""
    path: Path
    rel_path: str
    text: str = ""
    status: ParseStatus = ParseStatus.PARSED
    reason: str = ""

    @property
    def failed(self) -> bool:
        return self.status is ParseStatus.FAILED


@dataclass(frozen=True)
class Location:
    """Represents a location in source code."""
    file_path: str
    line: int
    column: int = 1

    def __str__(self) -> str:
        return f"{self.file_path}:{self.line}:{self.column}"


# ===================================================================
# Declarations
# ===================================================================

@dataclass(frozen=True)
class Member:
    name: str
    type_text: str
    optional: bool = False
    readonly: bool = False

    def token(self) -> str:
        prefix = "readonly " if self.readonly else ""
        marker = "?" if self.optional else ""
        return f"{prefix}{self.name}{marker}:{self.type_text}"


@dataclass(frozen=True)
class BaseRef:
    """A named type composed into a declaration via ``extends`` or ``&``."""
    name: str
    type_arguments: Tuple[str, ...] = ()

    def __str__(self) -> str:
        if self.type_arguments:
            return f"{self.name}<{','.join(self.type_arguments)}>"
        return self.name


@dataclass(frozen=True)
class TypeDeclaration:
    file_path: str
    name: str
    kind: DeclarationKind
    exported: bool
    line: int
    column: int
    end_line: int
    end_column: int
    members: Tuple[Member, ...] = ()
    type_parameters: Tuple[str, ...] = ()
    bases: Tuple[BaseRef, ...] = ()
    body_text: str = ""
    signature: str = ""
    unexpanded: Tuple[str, ...] = ()
    resolved_members: Tuple[Member, ...] = ()
    # declaration a same-name `type X = Y` alias forwards to
    alias_of: Optional[Tuple[str, str]] = None

    @property
    def shape_members(self) -> Tuple[Member, ...]:
        """Own members plus members inherited through one level of composition."""
        return self.resolved_members or self.members

    @property
    def key(self) -> Tuple[str, str]:
        return (self.file_path, self.name)

    @property
    def location(self) -> Location:
        return Location(self.file_path, self.line, self.column)

    @property
    def is_shape(self) -> bool:
        """True for interfaces and object-literal / intersection aliases."""
        return self.kind is not DeclarationKind.ENUM and not self.body_text

    @property
    def is_reference_alias(self) -> bool:
        """``type User = Models.User``: an alias that only names another type.

        Generic references such as ``Record<string, User>`` are not included.
        """
        return (
            self.kind is DeclarationKind.TYPE_ALIAS
            and not self.members
            and not self.body_text
            and len(self.bases) == 1
            and not self.bases[0].type_arguments
        )


# ===================================================================
# Imports / re-exports
# ===================================================================

@dataclass(frozen=True)
class ImportEdge:
    importing_file: str
    symbol: str
    local_name: str
    specifier: str
    resolved_path: Optional[str]
    kind: ImportKind = ImportKind.NAMED
    line: int = 1
    external: bool = False
    # imported only to be re-exported by `export { X }`
    reexport_only: bool = False


@dataclass(frozen=True)
class ReExport:
    """``export ... from`` statements, and ``export { X }`` of an imported name.

    ``exported_name`` is None for a plain ``export * from`` statement.
    """
    aggregator_file: str
    exported_name: Optional[str]
    source_name: Optional[str]
    specifier: str
    resolved_path: Optional[str]
    line: int = 1
    star: bool = False


# ===================================================================
# Per-file results
# ===================================================================

@dataclass(frozen=True)
class RecoveredError:
    kind: ErrorKind
    file_path: str
    message: str
    line: int = 0

    def sort_key(self) -> Tuple[str, int, str, str]:
        return (self.file_path, self.line, self.kind.value, self.message)


@dataclass
class ParsedFile:
    """Everything the per-file workers learned about one source file."""
    rel_path: str
    declarations: List[TypeDeclaration] = field(default_factory=list)
    local_declarations: List[TypeDeclaration] = field(default_factory=list)
    imports: List[ImportEdge] = field(default_factory=list)
    reexports: List[ReExport] = field(default_factory=list)
    errors: List[RecoveredError] = field(default_factory=list)
    failed: bool = False


# ===================================================================
# Diagnostics / results
# ===================================================================

@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    severity: Severity
    location: Location
    message: str
    suggestion: str = ""
    symbol: str = ""
    category: Optional[Category] = None
    related: Tuple[Location, ...] = ()

    def sort_key(self) -> Tuple[str, int, int, int, str, str]:
        return (
            self.location.file_path,
            self.location.line,
            DIAGNOSTIC_KIND_ORDER[self.kind],
            self.location.column,
            self.symbol,
            self.message,
        )


@dataclass
class AnalysisResult:
    diagnostics: List[Diagnostic]
    errors: List[RecoveredError]
    graph: "SymbolGraph"
    files_scanned: int = 0
    status: RunStatus = RunStatus.COMPLETED

    def by_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.kind is kind]

    @property
    def failed_files(self) -> FrozenSet[str]:
        return frozenset(
            e.file_path for e in self.errors
            if e.kind in (ErrorKind.IO_ERROR, ErrorKind.PARSE_ERROR)
        )
