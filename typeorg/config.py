"""Analysis configuration: defaults, validation and ``.typeorg.toml`` loading.

The defaults describe the conventional React Native layout where shared
types live under ``src/types/<category>`` and are reached through barrel
files.  Every value can be overridden from the project's config file or by
passing keyword overrides to :func:`load_config`.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Literal, Optional

import toml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .exceptions import FatalConfigError
from .models import Category

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".typeorg.toml"

DEFAULT_EXTENSIONS: List[str] = [".ts", ".tsx"]

DEFAULT_INCLUDE: List[str] = ["**/*"]

DEFAULT_EXCLUDE: List[str] = [
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/coverage/**",
    "**/__generated__/**",
    "**/*.generated.ts",
]

DEFAULT_PATH_ALIASES: Dict[str, str] = {
    "~/": "src/",
    "@/": "src/",
}

DEFAULT_TYPES_ROOT = "src/types"

DEFAULT_CATEGORY_DIRS: Dict[str, str] = {
    "navigation": "src/types/navigation",
    "api": "src/types/api",
    "entity": "src/types/entities",
    "screen": "src/types/screens",
    "ui": "src/types/ui",
    "store": "src/types/store",
}

# Order matters: the first matching pattern wins.
DEFAULT_SUFFIX_RULES: List[Dict[str, str]] = [
    {"pattern": "*ParamList", "category": "navigation"},
    {"pattern": "*ScreenProps", "category": "navigation"},
    {"pattern": "*NavigationProp", "category": "navigation"},
    {"pattern": "*RouteProp", "category": "navigation"},
    {"pattern": "*Params", "category": "navigation"},
    {"pattern": "*Request", "category": "api"},
    {"pattern": "*Response", "category": "api"},
    {"pattern": "*Payload", "category": "api"},
    {"pattern": "*Dto", "category": "api"},
    {"pattern": "*DTO", "category": "api"},
    {"pattern": "*ApiError", "category": "api"},
    {"pattern": "*State", "category": "store"},
    {"pattern": "*Actions", "category": "store"},
    {"pattern": "*Action", "category": "store"},
    {"pattern": "*Store", "category": "store"},
    {"pattern": "*Slice", "category": "store"},
    {"pattern": "*Props", "category": "ui"},
    {"pattern": "*Theme", "category": "ui"},
    {"pattern": "*Styles", "category": "ui"},
    {"pattern": "*Variant", "category": "ui"},
]

DEFAULT_PATH_RULES: List[Dict[str, str]] = [
    {"prefix": "src/navigation", "category": "navigation"},
    {"prefix": "src/api", "category": "api"},
    {"prefix": "src/services", "category": "api"},
    {"prefix": "src/models", "category": "entity"},
    {"prefix": "src/entities", "category": "entity"},
    {"prefix": "src/screens", "category": "screen"},
    {"prefix": "src/components", "category": "ui"},
    {"prefix": "src/store", "category": "store"},
]

DEFAULT_AGGREGATOR_NAMES: List[str] = ["index.ts", "index.tsx"]


def normalize_dir(value: str) -> str:
    """Project-relative POSIX directory without ``./`` or trailing slash."""
    text = value.strip().replace("\\", "/")
    while text.startswith("./"):
        text = text[2:]
    text = text.rstrip("/")
    if not text or text == ".":
        return ""
    return str(PurePosixPath(text))


# ===================================================================
# Rule table entries
# ===================================================================

class SuffixRule(BaseModel):
    """Classify by declaration name (``fnmatch`` pattern, e.g. ``*ParamList``)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["suffix"] = "suffix"
    pattern: str
    category: Category

    @field_validator("pattern")
    @classmethod
    def _pattern_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("suffix rule pattern must not be empty")
        return value.strip()


class PathRule(BaseModel):
    """Classify by the directory the declaring file lives under."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["path"] = "path"
    prefix: str
    category: Category

    @field_validator("prefix")
    @classmethod
    def _prefix_not_empty(cls, value: str) -> str:
        normalized = normalize_dir(value)
        if not normalized:
            raise ValueError("path rule prefix must name a directory")
        return normalized


# ===================================================================
# AnalysisConfig
# ===================================================================

class AnalysisConfig(BaseModel):
    """Everything one :func:`~typeorg.engine.analyze` run needs.

    Invalid values raise :class:`FatalConfigError` whether the config is built
    directly, through :func:`make_config` or through :func:`load_config`.
    """

    model_config = ConfigDict(frozen=True, validate_default=True)

    root: Path
    include: List[str] = Field(default_factory=lambda: list(DEFAULT_INCLUDE))
    exclude: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    path_aliases: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_PATH_ALIASES))
    types_root: str = DEFAULT_TYPES_ROOT
    category_dirs: Dict[Category, str] = Field(
        default_factory=lambda: {Category(k): v for k, v in DEFAULT_CATEGORY_DIRS.items()}
    )
    suffix_rules: List[SuffixRule] = Field(
        default_factory=lambda: [SuffixRule(**r) for r in DEFAULT_SUFFIX_RULES]
    )
    path_rules: List[PathRule] = Field(
        default_factory=lambda: [PathRule(**r) for r in DEFAULT_PATH_RULES]
    )
    aggregator_names: List[str] = Field(default_factory=lambda: list(DEFAULT_AGGREGATOR_NAMES))
    barrel_roots: List[str] = Field(default_factory=list)
    reuse_threshold: int = Field(2, ge=1)
    candidate_min_members: int = Field(0, ge=0)
    workers: Optional[int] = Field(None, ge=1)

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise FatalConfigError(f"Invalid analysis configuration: {exc}") from exc

    @field_validator("extensions")
    @classmethod
    def _dotted_extensions(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("at least one file extension is required")
        return [ext if ext.startswith(".") else f".{ext}" for ext in value]

    @field_validator("types_root")
    @classmethod
    def _normalize_types_root(cls, value: str) -> str:
        return normalize_dir(value)

    @field_validator("category_dirs")
    @classmethod
    def _normalize_category_dirs(cls, value: Dict[Category, str]) -> Dict[Category, str]:
        if Category.UNCATEGORIZED in value:
            raise ValueError("'uncategorized' has no expected directory")
        normalized: Dict[Category, str] = {}
        for category, directory in value.items():
            directory = normalize_dir(directory)
            if not directory:
                raise ValueError(f"category '{category.value}' needs a directory")
            normalized[category] = directory
        return normalized

    @field_validator("path_aliases")
    @classmethod
    def _normalize_aliases(cls, value: Dict[str, str]) -> Dict[str, str]:
        aliases: Dict[str, str] = {}
        for prefix, target in value.items():
            if not prefix:
                raise ValueError("path alias prefix must not be empty")
            # tsconfig style "@/*" -> "@/"
            if prefix.endswith("*"):
                prefix = prefix[:-1]
            if target.endswith("*"):
                target = target[:-1]
            aliases[prefix] = normalize_dir(target)
        return aliases

    @field_validator("barrel_roots")
    @classmethod
    def _normalize_barrel_roots(cls, value: List[str]) -> List[str]:
        return [normalize_dir(v) for v in value]

    @model_validator(mode="after")
    def _rule_categories_known(self) -> "AnalysisConfig":
        for rule in self.path_rules:
            if rule.category is Category.UNCATEGORIZED:
                raise ValueError(f"path rule '{rule.prefix}' cannot target 'uncategorized'")
        return self

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def resolved_root(self) -> Path:
        return Path(os.path.abspath(self.root))

    @property
    def worker_count(self) -> int:
        return self.workers or os.cpu_count() or 1

    def expected_dir(self, category: Category) -> str:
        """Subtree a declaration of *category* is expected to live under."""
        if category is Category.UNCATEGORIZED:
            return self.types_root
        return self.category_dirs.get(category, self.types_root)

    def validate_root(self) -> Path:
        root = self.resolved_root
        if not root.exists():
            raise FatalConfigError(f"Project root does not exist: {root}")
        if not root.is_dir():
            raise FatalConfigError(f"Project root is not a directory: {root}")
        return root


# ===================================================================
# Construction helpers
# ===================================================================

def make_config(root: Path | str, **values: Any) -> AnalysisConfig:
    """Build a validated config rooted at *root*."""
    return AnalysisConfig(root=Path(root), **values)


def _values_from_toml(data: Dict[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = dict(data.get("analysis", {}))
    if "aliases" in data:
        values["path_aliases"] = data["aliases"]
    if "categories" in data:
        values["category_dirs"] = data["categories"]
    rules = data.get("rules", {})
    if "suffix" in rules:
        values["suffix_rules"] = rules["suffix"]
    if "path" in rules:
        values["path_rules"] = rules["path"]
    return values


def load_config(
    root: Path | str,
    config_file: Optional[Path] = None,
    **overrides: Any,
) -> AnalysisConfig:
    """Load ``.typeorg.toml`` from *root* (if present) and apply *overrides*.

    Args:
        root: Project root directory.
        config_file: Explicit config file; defaults to ``<root>/.typeorg.toml``.
        **overrides: Field values taking precedence over the file.

    Raises:
        FatalConfigError: The file cannot be parsed or its values are invalid.
    """
    path = config_file or Path(root) / CONFIG_FILE_NAME
    values: Dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = toml.load(f)
        except (OSError, toml.TomlDecodeError) as exc:
            raise FatalConfigError(f"Cannot read config file {path}: {exc}") from exc
        values = _values_from_toml(data)
        logger.debug("Loaded configuration from %s", path)
    elif config_file is not None:
        raise FatalConfigError(f"Config file not found: {config_file}")
    values.update(overrides)
    return make_config(root, **values)
