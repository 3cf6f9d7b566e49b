"""Analysis rules run against the finished symbol graph.

Every rule is independent: it reads the immutable :class:`SymbolGraph` and
the classifier output and returns diagnostics.  Rules never see each
other's results; in particular Misplacement and Reusability may both fire
for one declaration.
"""

from __future__ import annotations

import logging
import posixpath
from abc import ABC, abstractmethod
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence

from .classifier import CategoryClassifier, is_under
from .config import AnalysisConfig
from .graph import DeclKey, SymbolGraph
from .models import (
    Category,
    DeclarationKind,
    Diagnostic,
    DiagnosticKind,
    Location,
    Severity,
    TypeDeclaration,
)
from .signature import split_top_level

logger = logging.getLogger(__name__)


def _dir_label(directory: str) -> str:
    return f"{directory}/" if directory else "the project root"


def member_count(decl: TypeDeclaration) -> int:
    """Size of what a signature compares: members, enum values or union arms."""
    if decl.kind is DeclarationKind.ENUM:
        return len(decl.members)
    if decl.body_text:
        return len(split_top_level(decl.body_text, "|"))
    return len(decl.shape_members) or len(decl.bases)


@dataclass(frozen=True)
class RuleContext:
    graph: SymbolGraph
    config: AnalysisConfig
    categories: Mapping[DeclKey, Category]

    def category_of(self, decl: TypeDeclaration) -> Category:
        return self.categories.get(decl.key, Category.UNCATEGORIZED)


class Rule(ABC):
    """Base class for analysis rules."""

    kind: DiagnosticKind
    name: str = "rule"

    @abstractmethod
    def check(self, context: RuleContext) -> List[Diagnostic]:
        """Return this rule's diagnostics (any order)."""


# ===================================================================
# Duplicate detection
# ===================================================================

class DuplicateRule(Rule):
    """Group declarations by structural signature.

    Same name and same shape is a DUPLICATE.  Different names sharing a
    shape are a lower-confidence CANDIDATE_DUPLICATE, reported when the
    shared shape has at least ``candidate_min_members`` members.  An alias
    that forwards a declaration under the same name is skipped.
    """

    kind = DiagnosticKind.DUPLICATE
    name = "duplicates"

    def check(self, context: RuleContext) -> List[Diagnostic]:
        groups: Dict[str, List[TypeDeclaration]] = defaultdict(list)
        for decl in context.graph.sorted_declarations():
            if decl.alias_of is not None:
                continue
            groups[decl.signature].append(decl)

        diagnostics: List[Diagnostic] = []
        for signature in sorted(groups):
            decls = groups[signature]
            if len(decls) < 2:
                continue
            by_name: Dict[str, List[TypeDeclaration]] = defaultdict(list)
            for decl in decls:
                by_name[decl.name].append(decl)

            for name in sorted(by_name):
                same = by_name[name]
                if len(same) >= 2:
                    diagnostics.append(self._duplicate(context, same))

            if len(by_name) >= 2 and member_count(decls[0]) >= context.config.candidate_min_members:
                diagnostics.append(self._candidate(context, decls, sorted(by_name)))
        return diagnostics

    @staticmethod
    def _duplicate(context: RuleContext, same: Sequence[TypeDeclaration]) -> Diagnostic:
        primary, others = same[0], same[1:]
        expected = context.config.expected_dir(context.category_of(primary))
        paths = ", ".join(d.file_path for d in same)
        return Diagnostic(
            kind=DiagnosticKind.DUPLICATE,
            severity=Severity.ERROR,
            location=primary.location,
            related=tuple(d.location for d in others),
            symbol=primary.name,
            category=context.category_of(primary),
            message=f"'{primary.name}' is declared {len(same)} times with an identical shape: {paths}",
            suggestion=(
                f"Keep a single '{primary.name}' under {_dir_label(expected)} "
                f"and import it everywhere else"
            ),
        )

    @staticmethod
    def _candidate(
        context: RuleContext,
        decls: Sequence[TypeDeclaration],
        names: Sequence[str],
    ) -> Diagnostic:
        primary = decls[0]
        return Diagnostic(
            kind=DiagnosticKind.CANDIDATE_DUPLICATE,
            severity=Severity.INFO,
            location=primary.location,
            related=tuple(d.location for d in decls[1:]),
            symbol=primary.name,
            category=context.category_of(primary),
            message=f"{', '.join(names)} have an identical structure",
            suggestion="Check whether these describe the same thing; if so, merge them into one type",
        )


# ===================================================================
# Reusability
# ===================================================================

class ReusabilityRule(Rule):
    """Types imported by several files belong in the shared hierarchy."""

    kind = DiagnosticKind.SHOULD_CENTRALIZE
    name = "reusability"

    def check(self, context: RuleContext) -> List[Diagnostic]:
        threshold = context.config.reuse_threshold
        diagnostics: List[Diagnostic] = []
        for decl in context.graph.sorted_declarations():
            importers = context.graph.importers_of(decl)
            if len(importers) < threshold:
                continue
            category = context.category_of(decl)
            expected = context.config.expected_dir(category)
            if is_under(decl.file_path, expected):
                continue
            diagnostics.append(Diagnostic(
                kind=DiagnosticKind.SHOULD_CENTRALIZE,
                severity=Severity.WARNING,
                location=decl.location,
                symbol=decl.name,
                category=category,
                message=(
                    f"'{decl.name}' is imported by {len(importers)} files "
                    f"but is declared outside {_dir_label(expected)}"
                ),
                suggestion=f"Move '{decl.name}' to {_dir_label(expected)} and import it from there",
            ))
        return diagnostics


# ===================================================================
# Misplacement
# ===================================================================

class MisplacementRule(Rule):
    """Categorized types should live under their category's directory."""

    kind = DiagnosticKind.MISPLACED
    name = "misplacement"

    def check(self, context: RuleContext) -> List[Diagnostic]:
        diagnostics: List[Diagnostic] = []
        for decl in context.graph.sorted_declarations():
            category = context.category_of(decl)
            if category is Category.UNCATEGORIZED:
                continue
            expected = context.config.expected_dir(category)
            if is_under(decl.file_path, expected):
                continue
            diagnostics.append(Diagnostic(
                kind=DiagnosticKind.MISPLACED,
                severity=Severity.WARNING,
                location=decl.location,
                symbol=decl.name,
                category=category,
                message=(
                    f"'{decl.name}' is a {category.value} type but is declared in "
                    f"{posixpath.dirname(decl.file_path) or '.'}/"
                ),
                suggestion=f"Move '{decl.name}' under {_dir_label(expected)}",
            ))
        return diagnostics


# ===================================================================
# Barrel completeness
# ===================================================================

class BarrelCompletenessRule(Rule):
    """Every exported type beside an ``index`` file should be re-exported by it."""

    kind = DiagnosticKind.MISSING_BARREL_EXPORT
    name = "barrels"

    def check(self, context: RuleContext) -> List[Diagnostic]:
        graph = context.graph
        names = set(context.config.aggregator_names)
        barrels: Dict[str, str] = {}
        for file_path in sorted(graph.files):
            if posixpath.basename(file_path) in names:
                barrels.setdefault(posixpath.dirname(file_path), file_path)

        roots = context.config.barrel_roots
        diagnostics: List[Diagnostic] = []
        for directory in sorted(barrels):
            aggregator = barrels[directory]
            if aggregator in graph.failed_files:
                continue
            if roots and not any(is_under(directory, r) for r in roots):
                continue
            diagnostics.extend(self._check_barrel(context, directory, aggregator, barrels))
        return diagnostics

    def _check_barrel(
        self,
        context: RuleContext,
        directory: str,
        aggregator: str,
        barrels: Mapping[str, str],
    ) -> List[Diagnostic]:
        graph = context.graph
        expected: Dict[str, List[TypeDeclaration]] = defaultdict(list)
        for decl in graph.sorted_declarations():
            if decl.file_path == aggregator:
                continue
            file_dir = posixpath.dirname(decl.file_path)
            if not is_under(file_dir, directory):
                continue
            if self._covered_by_nested_barrel(file_dir, directory, barrels):
                continue
            expected[decl.name].append(decl)

        actual = graph.provided_names(aggregator)
        for rx in graph.reexports_of(aggregator):
            if rx.star and rx.resolved_path is not None:
                actual |= graph.provided_names(rx.resolved_path)

        diagnostics: List[Diagnostic] = []
        for name in sorted(set(expected) - actual):
            decls = expected[name]
            primary = decls[0]
            diagnostics.append(Diagnostic(
                kind=DiagnosticKind.MISSING_BARREL_EXPORT,
                severity=Severity.WARNING,
                location=primary.location,
                related=(Location(aggregator, 1),) + tuple(d.location for d in decls[1:]),
                symbol=name,
                category=context.category_of(primary),
                message=f"'{name}' from {primary.file_path} is not re-exported by {aggregator}",
                suggestion=f"Add `{_export_line(primary, directory)}` to {aggregator}",
            ))
        return diagnostics

    @staticmethod
    def _covered_by_nested_barrel(
        file_dir: str,
        directory: str,
        barrels: Mapping[str, str],
    ) -> bool:
        current = file_dir
        while current != directory:
            if current in barrels:
                return True
            parent = posixpath.dirname(current)
            if parent == current:
                break
            current = parent
        return False


def _export_line(decl: TypeDeclaration, directory: str) -> str:
    module = posixpath.splitext(decl.file_path)[0]
    if module.endswith(".d"):
        module = module[:-2]
    relative = posixpath.relpath(module, directory or ".")
    if not relative.startswith("."):
        relative = f"./{relative}"
    keyword = "export" if decl.kind is DeclarationKind.ENUM else "export type"
    return f"{keyword} {{ {decl.name} }} from '{relative}';"


# ===================================================================
# Engine
# ===================================================================

DEFAULT_RULES = (DuplicateRule, ReusabilityRule, MisplacementRule, BarrelCompletenessRule)


class RuleEngine:
    """Classify every declaration, run all rules, return sorted diagnostics."""

    def __init__(
        self,
        config: AnalysisConfig,
        rules: Optional[Sequence[Rule]] = None,
        classifier: Optional[CategoryClassifier] = None,
    ) -> None:
        self.config = config
        self.rules: List[Rule] = list(rules) if rules is not None else [r() for r in DEFAULT_RULES]
        self.classifier = classifier or CategoryClassifier(config)

    def context_for(self, graph: SymbolGraph) -> RuleContext:
        categories = {key: self.classifier.classify(decl) for key, decl in graph.declarations.items()}
        return RuleContext(graph=graph, config=self.config, categories=MappingProxyType(categories))

    def run(self, graph: SymbolGraph) -> List[Diagnostic]:
        context = self.context_for(graph)
        if not self.rules:
            return []
        workers = min(len(self.rules), self.config.worker_count)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="typeorg-rule") as pool:
            results = list(pool.map(lambda rule: rule.check(context), self.rules))
        diagnostics: List[Diagnostic] = []
        for rule, found in zip(self.rules, results):
            logger.debug("Rule %s produced %d diagnostics", rule.name, len(found))
            diagnostics.extend(found)
        return sorted(diagnostics, key=Diagnostic.sort_key)
