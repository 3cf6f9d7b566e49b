"""Pytest configuration and fixtures for typeorg tests."""

import shutil
import tempfile
from pathlib import Path
from textwrap import dedent
from typing import Callable, Dict, Generator

import pytest

from typeorg.config import AnalysisConfig, make_config
from typeorg.graph import SymbolGraphBuilder
from typeorg.models import ParsedFile, SourceFile
from typeorg.parser import DeclarationParser, TypeScriptParser
from typeorg.resolver import ImportResolver


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to the sample React Native project."""
    return Path(__file__).parent / "fixtures" / "sample_app"


@pytest.fixture
def write_project(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write ``{relative path: source}`` into the temp dir and return the root."""

    def _write(files: Dict[str, str]) -> Path:
        for rel_path, text in files.items():
            path = temp_dir / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(dedent(text).lstrip("\n"), encoding="utf-8")
        return temp_dir

    return _write


@pytest.fixture
def ts_parser() -> TypeScriptParser:
    return TypeScriptParser()


@pytest.fixture
def parse_source(ts_parser: TypeScriptParser):
    """Parse TypeScript text and return ``(exported, local)`` declarations."""

    def _parse(text: str, rel_path: str = "src/types/sample.ts"):
        source = SourceFile(path=Path(rel_path), rel_path=rel_path, text=dedent(text))
        tree = ts_parser.parse(source)
        return DeclarationParser().extract(tree.root_node, rel_path)

    return _parse


@pytest.fixture
def build_graph(ts_parser: TypeScriptParser):
    """Parse in-memory files and build a :class:`SymbolGraph` from them."""

    def _build(files: Dict[str, str], config: AnalysisConfig = None):
        config = config or make_config(Path("."))
        resolver = ImportResolver(config, frozenset(files))
        parsed = []
        for rel_path, text in sorted(files.items()):
            source = SourceFile(path=Path(rel_path), rel_path=rel_path, text=dedent(text))
            root = ts_parser.parse(source).root_node
            exported, local = DeclarationParser().extract(root, rel_path)
            imports, reexports, errors = resolver.extract(root, rel_path)
            parsed.append(ParsedFile(
                rel_path=rel_path,
                declarations=exported,
                local_declarations=local,
                imports=imports,
                reexports=reexports,
                errors=errors,
            ))
        return SymbolGraphBuilder().build(parsed)

    return _build
