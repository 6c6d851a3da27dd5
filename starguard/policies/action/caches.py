"""Memoizing compilers for glob patterns and semver constraints."""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version


class PatternError(ValueError):
    """A glob or version constraint that cannot be compiled."""


def _check_brackets(pattern: str) -> None:
    """Reject character classes that are never closed (fnmatch would match them literally)."""
    pos = pattern.find("[")
    while pos != -1:
        close = pattern.find("]", pos + 2)
        if close == -1:
            raise PatternError(f"invalid glob {pattern!r}: unclosed character class")
        pos = pattern.find("[", close + 1)


def _expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternation, nested groups included, into plain globs."""
    start = pattern.find("{")
    if start == -1:
        return [pattern]
    depth = 0
    options: list[str] = []
    last = start + 1
    for pos in range(start, len(pattern)):
        char = pattern[pos]
        if char == "{":
            depth += 1
        elif char == "," and depth == 1:
            options.append(pattern[last:pos])
            last = pos + 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                options.append(pattern[last:pos])
                head, tail = pattern[:start], pattern[pos + 1 :]
                return [glob for option in options for glob in _expand_braces(head + option + tail)]
    raise PatternError(f"invalid glob {pattern!r}: unclosed alternation")


class GlobCache:
    """Compiled shell-style globs keyed by the pattern text.

    ``*`` matches any character including ``/``. ``{a,b}`` matches either
    alternative. Matching is case-sensitive.
    """

    def __init__(self) -> None:
        self._compiled: dict[str, re.Pattern[str]] = {}

    def compile(self, pattern: str) -> re.Pattern[str]:
        compiled = self._compiled.get(pattern)
        if compiled is not None:
            return compiled
        _check_brackets(pattern)
        globs = _expand_braces(pattern)
        try:
            compiled = re.compile("|".join(f"(?:{fnmatch.translate(glob)})" for glob in globs))
        except re.error as e:
            raise PatternError(f"invalid glob {pattern!r}: {e}") from e
        self._compiled[pattern] = compiled
        return compiled

    def match(self, pattern: str, name: str) -> bool:
        return self.compile(pattern).match(name) is not None

    def __len__(self) -> int:
        return len(self._compiled)


@dataclass(frozen=True, slots=True)
class Constraint:
    """A compiled constraint: any alternative (``||``) may satisfy it.

    An alternative of ``None`` accepts every version.
    """

    text: str
    alternatives: tuple[SpecifierSet | None, ...]

    def check(self, version: Version) -> bool:
        return any(spec is None or spec.contains(version) for spec in self.alternatives)


_TERM = re.compile(
    r"\s*(?P<op>>=|=>|<=|=<|!=|==|~>|=|>|<|~|\^)?\s*(?P<version>[vV]?[0-9xX*][0-9A-Za-z.*+\-]*)\s*,?"
)
_OP_ALIASES = {"=>": ">=", "=<": "<=", "~>": "~", "=": "==", "": "=="}
_WILDCARDS = frozenset({"x", "X", "*"})


def _release(text: str) -> tuple[int, ...]:
    try:
        return Version(text).release
    except InvalidVersion as e:
        raise PatternError(f"invalid version {text!r} in constraint") from e


def _format(parts: list[int] | tuple[int, ...]) -> str:
    return ".".join(str(p) for p in parts)


def _bump(parts: list[int], index: int) -> str:
    bumped = list(parts[: index + 1])
    bumped[index] += 1
    return _format(bumped)


def _translate_term(op: str, raw: str) -> list[str]:
    """Translate one comparator term into PEP 440 specifier strings."""
    op = _OP_ALIASES.get(op, op)
    text = raw[1:] if raw[:1] in "vV" else raw
    core = text.split("+", 1)[0]
    components = core.split("-", 1)[0].split(".")
    wild_at = next((i for i, c in enumerate(components) if c in _WILDCARDS), None)

    if wild_at is not None:
        prefix = [int(c) for c in components[:wild_at] if c.isdigit()]
        if len(prefix) != wild_at:
            raise PatternError(f"invalid wildcard version {raw!r}")
        if not prefix:
            # "*" alone; ordering against "everything" is meaningless.
            if op in ("==", "~", "^", ">="):
                return []
            raise PatternError(f"cannot apply {op!r} to wildcard {raw!r}")
        if op in ("==", "!="):
            return [f"{op}{_format(prefix)}.*"]
        if op in (">=", "<"):
            return [f"{op}{_format(prefix)}"]
        if op == ">":
            return [f">={_bump(prefix, len(prefix) - 1)}"]
        if op == "<=":
            return [f"<{_bump(prefix, len(prefix) - 1)}"]
        # ~1.x and ^1.x reduce to the same range as their prefix.
        text = _format(prefix)
        components = [str(p) for p in prefix]

    if op == "~":
        release = list(_release(text))
        upper = _bump(release, 1) if len(components) >= 2 else _bump(release, 0)
        return [f">={text}", f"<{upper}"]
    if op == "^":
        release = list(_release(text)) + [0, 0]
        explicit = len(components)
        if release[0] != 0:
            upper = _bump(release, 0)
        elif release[1] != 0 or explicit < 3:
            upper = _bump(release, 1) if explicit >= 2 else _bump(release, 0)
        else:
            upper = _bump(release, 2)
        return [f">={text}", f"<{upper}"]
    return [f"{op}{text}"]


def _compile_alternative(text: str, alternative: str) -> SpecifierSet | None:
    specs: list[str] = []
    pos = 0
    stripped = alternative.strip()
    if not stripped:
        raise PatternError(f"empty alternative in constraint {text!r}")
    while pos < len(stripped):
        term = _TERM.match(stripped, pos)
        if term is None or term.end() == pos:
            raise PatternError(f"invalid version constraint {text!r}")
        specs.extend(_translate_term(term.group("op") or "", term.group("version")))
        pos = term.end()
    if not specs:
        return None
    try:
        return SpecifierSet(",".join(specs))
    except InvalidSpecifier as e:
        raise PatternError(f"invalid version constraint {text!r}: {e}") from e


class SemverCache:
    """Compiled semver constraints and parsed versions keyed by their text.

    Constraints use the familiar range syntax: ``>= 1.2``, ``~1.4``,
    ``^2``, ``1.x``, comma or space separated terms (all must hold) and
    ``||`` between alternatives (any may hold). A leading ``v`` is accepted.
    """

    def __init__(self) -> None:
        self._constraints: dict[str, Constraint] = {}
        self._versions: dict[str, Version] = {}

    def compile(self, text: str) -> Constraint:
        compiled = self._constraints.get(text)
        if compiled is not None:
            return compiled
        alternatives = tuple(_compile_alternative(text, alt) for alt in text.split("||"))
        compiled = Constraint(text=text, alternatives=alternatives)
        self._constraints[text] = compiled
        return compiled

    def version(self, text: str) -> Version:
        parsed = self._versions.get(text)
        if parsed is not None:
            return parsed
        try:
            parsed = Version(text)
        except InvalidVersion as e:
            raise PatternError(f"invalid version {text!r}") from e
        self._versions[text] = parsed
        return parsed

    def __len__(self) -> int:
        return len(self._constraints) + len(self._versions)
