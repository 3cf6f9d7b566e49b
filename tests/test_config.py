"""Tests for configuration defaults, validation and TOML loading."""

from pathlib import Path
from textwrap import dedent

import pytest
from pydantic import ValidationError

from typeorg.config import CONFIG_FILE_NAME, AnalysisConfig, load_config, make_config
from typeorg.exceptions import FatalConfigError
from typeorg.models import Category


def test_defaults(temp_dir: Path):
    config = make_config(temp_dir)
    assert config.extensions == [".ts", ".tsx"]
    assert config.reuse_threshold == 2
    assert config.types_root == "src/types"
    assert config.expected_dir(Category.ENTITY) == "src/types/entities"
    assert config.expected_dir(Category.UNCATEGORIZED) == "src/types"
    assert config.path_aliases["~/"] == "src"
    assert config.barrel_roots == []
    assert config.candidate_min_members == 0


def test_values_are_normalized(temp_dir: Path):
    config = make_config(
        temp_dir,
        extensions=["ts"],
        types_root="./app/types/",
        path_aliases={"@app/*": "app/*"},
        barrel_roots=["./app/types/"],
    )
    assert config.extensions == [".ts"]
    assert config.types_root == "app/types"
    assert config.path_aliases == {"@app/": "app"}
    assert config.barrel_roots == ["app/types"]


def test_default_aliases_are_normalized(temp_dir: Path):
    """Test defaults go through the same normalization as configured values."""
    config = make_config(temp_dir)
    assert config.path_aliases == {"~/": "src", "@/": "src"}
    assert all(not d.endswith("/") for d in config.category_dirs.values())


def test_worker_count(temp_dir: Path):
    assert make_config(temp_dir, workers=3).worker_count == 3
    assert make_config(temp_dir).worker_count >= 1


@pytest.mark.parametrize("values", [
    {"reuse_threshold": 0},
    {"extensions": []},
    {"workers": 0},
    {"suffix_rules": [{"pattern": "*Props", "category": "widgets"}]},
    {"suffix_rules": [{"pattern": "  ", "category": "ui"}]},
    {"path_rules": [{"prefix": "./", "category": "ui"}]},
    {"path_rules": [{"prefix": "src/misc", "category": "uncategorized"}]},
    {"category_dirs": {"uncategorized": "src/types/misc"}},
])
def test_invalid_values_are_fatal(temp_dir: Path, values):
    with pytest.raises(FatalConfigError):
        make_config(temp_dir, **values)


def test_load_config_without_file_uses_defaults(temp_dir: Path):
    config = load_config(temp_dir)
    assert config.root == temp_dir
    assert config.reuse_threshold == 2


def test_load_config_from_toml(temp_dir: Path):
    (temp_dir / CONFIG_FILE_NAME).write_text(dedent("""
        [analysis]
        reuse_threshold = 3
        types_root = "app/types"
        barrel_roots = ["app/types"]

        [aliases]
        "@app/*" = "app/*"

        [categories]
        entity = "app/types/models"

        [[rules.suffix]]
        pattern = "*Model"
        category = "entity"

        [[rules.path]]
        prefix = "app/features"
        category = "screen"
    """))
    config = load_config(temp_dir)
    assert config.reuse_threshold == 3
    assert config.types_root == "app/types"
    assert config.path_aliases == {"@app/": "app"}
    assert config.category_dirs == {Category.ENTITY: "app/types/models"}
    assert [r.pattern for r in config.suffix_rules] == ["*Model"]
    assert [(r.prefix, r.category) for r in config.path_rules] == [("app/features", Category.SCREEN)]
    # categories without a configured directory fall back to the types root
    assert config.expected_dir(Category.API) == "app/types"


def test_overrides_take_precedence(temp_dir: Path):
    (temp_dir / CONFIG_FILE_NAME).write_text("[analysis]\nreuse_threshold = 3\n")
    assert load_config(temp_dir, reuse_threshold=5).reuse_threshold == 5


def test_malformed_toml_is_fatal(temp_dir: Path):
    (temp_dir / CONFIG_FILE_NAME).write_text("[analysis\nreuse_threshold = \n")
    with pytest.raises(FatalConfigError):
        load_config(temp_dir)


def test_invalid_toml_values_are_fatal(temp_dir: Path):
    (temp_dir / CONFIG_FILE_NAME).write_text("[analysis]\nreuse_threshold = -1\n")
    with pytest.raises(FatalConfigError):
        load_config(temp_dir)


def test_explicit_missing_config_file_is_fatal(temp_dir: Path):
    with pytest.raises(FatalConfigError):
        load_config(temp_dir, config_file=temp_dir / "custom.toml")


def test_config_is_immutable(temp_dir: Path):
    config = make_config(temp_dir)
    with pytest.raises(ValidationError):
        config.reuse_threshold = 10


def test_direct_construction_errors_are_fatal(temp_dir: Path):
    with pytest.raises(FatalConfigError):
        AnalysisConfig(root=temp_dir, reuse_threshold=0)
    with pytest.raises(FatalConfigError):
        AnalysisConfig(root=temp_dir, path_aliases={"": "src"})
