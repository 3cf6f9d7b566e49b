"""Type-text normalization and structural signatures.

A structural signature is a SHA-1 over a canonical rendering of a
declaration's shape.  Two declarations with the same signature have the same
members (names, optionality, readonly-ness and normalized type text) and the
same generic parameter list, regardless of their own names, the files they
live in, or member order in source.
"""

from __future__ import annotations

import hashlib
import re
from typing import Dict, Iterable, List, Sequence, Tuple

from .models import DeclarationKind, Member

_OPENERS = "([{<"
_CLOSERS = ")]}>"
_QUOTES = "'\"`"
_PLACEHOLDER_RE = re.compile(r"%(\d+)(?!\d)")


def placeholder(index: int) -> str:
    """Positional stand-in for the *index*-th (0-based) generic parameter."""
    return f"%{index + 1}"


def split_top_level(text: str, separator: str) -> List[str]:
    """Split *text* on *separator* outside brackets, generics and string literals.

    The ``>`` of an arrow (``=>``) never closes a generic.
    """
    parts: List[str] = []
    depth = 0
    quote = ""
    start = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = ""
        elif ch in _QUOTES:
            quote = ch
        elif ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            if not (ch == ">" and i > 0 and text[i - 1] == "="):
                depth = max(depth - 1, 0)
        elif ch == separator and depth == 0:
            parts.append(text[start:i])
            start = i + 1
        i += 1
    parts.append(text[start:])
    return parts


def substitute_names(text: str, mapping: Dict[str, str]) -> str:
    """Replace whole-word identifiers in *text* according to *mapping*.

    Property accesses (``foo.T``) are left alone.
    """
    if not mapping:
        return text
    names = sorted(mapping, key=len, reverse=True)
    pattern = re.compile(
        r"(?<![\w$.])(" + "|".join(re.escape(n) for n in names) + r")(?![\w$])"
    )
    return pattern.sub(lambda m: mapping[m.group(1)], text)


def substitute_placeholders(text: str, arguments: Sequence[str]) -> str:
    """Replace ``%1, %2, ...`` with the given type arguments where provided."""
    if not arguments:
        return text

    def _replace(match: re.Match) -> str:
        index = int(match.group(1)) - 1
        if 0 <= index < len(arguments):
            return arguments[index]
        return match.group(0)

    return _PLACEHOLDER_RE.sub(_replace, text)


def normalize_type_text(text: str, generics: Dict[str, str] | None = None) -> str:
    """Strip whitespace and sort top-level union members alphabetically."""
    if generics:
        text = substitute_names(text, generics)
    compact = "".join(text.split()).strip(";,")
    parts = [p for p in split_top_level(compact, "|") if p]
    if len(parts) > 1:
        return "|".join(sorted(parts))
    return parts[0] if parts else ""


def generic_mapping(parameter_names: Iterable[str]) -> Dict[str, str]:
    return {name: placeholder(i) for i, name in enumerate(parameter_names)}


# ===================================================================
# Member merging and signatures
# ===================================================================

def _is_signature_member(member: Member) -> bool:
    # call / construct / index signatures have synthetic names like "<call>"
    return member.name.startswith("<")


def merge_members(
    inherited: Iterable[Sequence[Member]],
    own: Sequence[Member],
) -> Tuple[Member, ...]:
    """Combine base member lists with the declaration's own members.

    Own named members override inherited members of the same name.
    """
    merged: Dict[str, Member] = {}
    signatures: List[Member] = []
    for members in list(inherited) + [own]:
        for member in members:
            if _is_signature_member(member):
                if member not in signatures:
                    signatures.append(member)
            else:
                merged[member.name] = member
    return tuple(list(merged.values()) + signatures)


def canonical_form(
    kind: DeclarationKind,
    members: Sequence[Member],
    type_parameters: Sequence[str] = (),
    body_text: str = "",
    references: Sequence[str] = (),
) -> str:
    tokens = [m.token() for m in sorted(members, key=lambda m: (m.name, m.token()))]
    params = ",".join(type_parameters)
    if kind is DeclarationKind.ENUM:
        return "enum|" + ";".join(tokens)
    if body_text:
        return f"alias|<{params}>|{body_text}"
    refs = ",".join(sorted(references))
    return f"shape|<{params}>|{';'.join(tokens)}|&{refs}"


def compute_signature(
    kind: DeclarationKind,
    members: Sequence[Member],
    type_parameters: Sequence[str] = (),
    body_text: str = "",
    references: Sequence[str] = (),
) -> str:
    canonical = canonical_form(kind, members, type_parameters, body_text, references)
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()
