"""Pipeline entry point: scan, parse in parallel, build the graph, run rules.

    >>> from typeorg.config import load_config
    >>> from typeorg.engine import analyze
    >>> result = analyze(load_config("path/to/app"))
    >>> for diagnostic in result.diagnostics:
    ...     print(diagnostic.kind, diagnostic.location, diagnostic.message)

Per-file work (read, parse, extract declarations, resolve imports) fans out
over a thread pool; the graph builder is the single join point.  Output
order does not depend on scheduling.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

from .config import AnalysisConfig
from .exceptions import AnalysisCancelled
from .graph import SymbolGraphBuilder
from .models import AnalysisResult, ErrorKind, ParsedFile, RecoveredError
from .parser import DeclarationParser, TypeScriptParser, parse_error_for
from .resolver import ImportResolver
from .rules import RuleEngine
from .scanner import SourceScanner

logger = logging.getLogger(__name__)

_thread_state = threading.local()


class CancellationToken:
    """Cooperative cancellation shared between a caller and a running analysis."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise AnalysisCancelled("Analysis cancelled; partial results discarded")


def _thread_parsers() -> Tuple[TypeScriptParser, DeclarationParser]:
    # Tree-sitter parsers must not be shared across threads.
    parsers = getattr(_thread_state, "parsers", None)
    if parsers is None:
        parsers = (TypeScriptParser(), DeclarationParser())
        _thread_state.parsers = parsers
    return parsers


class AnalysisEngine:
    """One batch analysis over a project described by an :class:`AnalysisConfig`."""

    def __init__(self, config: AnalysisConfig) -> None:
        self.config = config

    def run(self, cancel: Optional[CancellationToken] = None) -> AnalysisResult:
        cancel = cancel or CancellationToken()
        scanner = SourceScanner(self.config)
        paths = scanner.discover()
        resolver = ImportResolver(self.config, frozenset(paths))
        cancel.raise_if_cancelled()

        with ThreadPoolExecutor(
            max_workers=self.config.worker_count,
            thread_name_prefix="typeorg-parse",
        ) as pool:
            futures = [
                pool.submit(self._process_file, scanner, resolver, rel_path, cancel)
                for rel_path in paths
            ]
            results = [future.result() for future in futures]

        cancel.raise_if_cancelled()
        parsed: List[ParsedFile] = [r for r in results if r is not None]

        graph, build_errors = SymbolGraphBuilder().build(parsed)
        cancel.raise_if_cancelled()
        diagnostics = RuleEngine(self.config).run(graph)
        cancel.raise_if_cancelled()

        errors = [e for pf in parsed for e in pf.errors] + build_errors
        errors.sort(key=RecoveredError.sort_key)
        logger.info(
            "Analyzed %d files: %d declarations, %d diagnostics, %d recovered errors",
            len(paths), len(graph.declarations), len(diagnostics), len(errors),
        )
        return AnalysisResult(
            diagnostics=diagnostics,
            errors=errors,
            graph=graph,
            files_scanned=len(paths),
        )

    @staticmethod
    def _process_file(
        scanner: SourceScanner,
        resolver: ImportResolver,
        rel_path: str,
        cancel: CancellationToken,
    ) -> Optional[ParsedFile]:
        if cancel.cancelled:
            return None

        source = scanner.read(rel_path)
        if source.failed:
            return ParsedFile(
                rel_path=rel_path,
                failed=True,
                errors=[RecoveredError(
                    kind=ErrorKind.IO_ERROR,
                    file_path=rel_path,
                    message=f"Cannot read file: {source.reason}",
                )],
            )

        parsed = ParsedFile(rel_path=rel_path)
        try:
            ts_parser, declarations = _thread_parsers()
            tree = ts_parser.parse(source)
            error = parse_error_for(tree, rel_path)
            if error is not None:
                logger.warning("Syntax error in %s (line %d); skipping its declarations", rel_path, error.line)
                parsed.errors.append(error)
                parsed.failed = True
            else:
                parsed.declarations, parsed.local_declarations = declarations.extract(
                    tree.root_node, rel_path
                )
            parsed.imports, parsed.reexports, resolve_errors = resolver.extract(tree.root_node, rel_path)
            parsed.errors.extend(resolve_errors)
        except Exception as exc:
            logger.warning("Failed to analyze %s: %s", rel_path, exc)
            return ParsedFile(
                rel_path=rel_path,
                failed=True,
                errors=[RecoveredError(
                    kind=ErrorKind.PARSE_ERROR,
                    file_path=rel_path,
                    message=f"Cannot analyze file: {exc}",
                )],
            )
        logger.debug(
            "Parsed %s: %d declarations, %d imports",
            rel_path, len(parsed.declarations), len(parsed.imports),
        )
        return parsed


def analyze(
    config: AnalysisConfig,
    cancel: Optional[CancellationToken] = None,
) -> AnalysisResult:
    """Run a complete analysis.

    Invalid option values are rejected earlier, when *config* is built;
    :class:`AnalysisConfig` raises FatalConfigError for those too.

    Raises:
        FatalConfigError: The project root is missing or not a directory.
        AnalysisCancelled: *cancel* was triggered before the run finished.
    """
    return AnalysisEngine(config).run(cancel)
