"""Category classification from an ordered, data-driven rule table."""

from __future__ import annotations

import fnmatch
from typing import List, Tuple, Union

from .config import AnalysisConfig, PathRule, SuffixRule
from .models import Category, TypeDeclaration

Rule = Union[SuffixRule, PathRule]


def is_under(file_path: str, directory: str) -> bool:
    """True when *file_path* lives inside *directory* (any depth)."""
    if not directory:
        return True
    return file_path == directory or file_path.startswith(directory + "/")


def rule_matches(rule: Rule, name: str, file_path: str) -> bool:
    if isinstance(rule, SuffixRule):
        return fnmatch.fnmatchcase(name, rule.pattern)
    return is_under(file_path, rule.prefix)


class CategoryClassifier:
    """Assign exactly one :class:`Category` per declaration.

    Precedence: suffix rules in configured order, then path rules (longest
    prefix first; the configured category directories count as path rules),
    then ``UNCATEGORIZED``.  The result depends only on the declaration's
    name and path and on the configuration.
    """

    def __init__(self, config: AnalysisConfig) -> None:
        path_rules: List[PathRule] = list(config.path_rules)
        for category, directory in sorted(config.category_dirs.items(), key=lambda kv: kv[1]):
            path_rules.append(PathRule(prefix=directory, category=category))
        # stable sort keeps configured order among equal-length prefixes
        path_rules.sort(key=lambda r: -len(r.prefix))
        self.rules: Tuple[Rule, ...] = tuple(config.suffix_rules) + tuple(path_rules)

    def classify_name(self, name: str, file_path: str) -> Category:
        for rule in self.rules:
            if rule_matches(rule, name, file_path):
                return rule.category
        return Category.UNCATEGORIZED

    def classify(self, decl: TypeDeclaration) -> Category:
        return self.classify_name(decl.name, decl.file_path)
