"""Key matching and target key rendering.

A source pattern is either a glob (``logs/*.gz``) or a regular expression
with capture groups (``logs/(\\d{4})/(\\d{2})/*.gz``). Both are matched
against the whole object key. Captured groups are substituted into a
target template with ``$1``, ``${1}`` or ``${name}``; ``$0`` is the whole
key and ``$$`` is a literal dollar sign.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from ..exceptions import ConfigurationError
from .storage import ObjectRef

REGEX_ONLY_CHARS = frozenset("(){}\\^$+|")

_TEMPLATE_REFERENCE = re.compile(r"\$(?:(\$)|(\d+)|\{(\w+)\})")


@dataclass(frozen=True)
class MatchedObject:
    """An enumerated object that matched the source pattern."""

    ref: ObjectRef
    captures: Tuple[str, ...]

    @property
    def key(self) -> str:
        return self.ref.key

    @property
    def size(self) -> int:
        return self.ref.size


def detect_syntax(pattern: str) -> str:
    """Return ``"regex"`` if the pattern uses regex-only syntax, else ``"glob"``."""
    if any(char in REGEX_ONLY_CHARS for char in pattern):
        return "regex"
    return "glob"


def glob_to_regex(pattern: str) -> str:
    """Translate a key glob into an equivalent regular expression body."""
    parts: List[str] = []
    index = 0
    length = len(pattern)
    while index < length:
        char = pattern[index]
        if char == "*":
            if pattern[index + 1:index + 2] == "*":
                parts.append(".*")
                index += 2
                continue
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "[":
            start = index + 1
            if start < length and pattern[start] == "!":
                start += 1
            if start < length and pattern[start] == "]":
                start += 1
            end = pattern.find("]", start)
            if end == -1:
                parts.append(re.escape(char))
            else:
                body = pattern[index + 1:end].replace("\\", "\\\\")
                if body.startswith("!"):
                    body = "^" + body[1:]
                parts.append(f"[{body}]")
                index = end + 1
                continue
        else:
            parts.append(re.escape(char))
        index += 1
    return "".join(parts)


def relax_separator_stars(pattern: str) -> str:
    """Read a ``*`` that opens the pattern or follows ``/`` as a path segment wildcard.

    Quantifying a path separator is never the intent in a key pattern, so
    ``a/(\\d+)/*.gz`` is treated as ``a/(\\d+)/[^/]*.gz``.
    """
    parts: List[str] = []
    escaped = False
    in_class = False
    after_separator = True
    for char in pattern:
        if escaped:
            parts.append(char)
            escaped = False
            after_separator = False
            continue
        if char == "\\":
            parts.append(char)
            escaped = True
            continue
        if in_class:
            if char == "]":
                in_class = False
            parts.append(char)
            continue
        if char == "[":
            in_class = True
            parts.append(char)
            after_separator = False
            continue
        if char == "*" and after_separator:
            parts.append("[^/]*")
            after_separator = False
            continue
        parts.append(char)
        after_separator = char == "/"
    return "".join(parts)


class PatternMatcher:
    """Matches object keys against a glob or capturing regular expression."""

    def __init__(self, pattern: str, syntax: str = "auto") -> None:
        if not pattern:
            raise ConfigurationError("Source pattern must not be empty.")
        if syntax == "auto":
            syntax = detect_syntax(pattern)
        if syntax not in ("glob", "regex"):
            raise ConfigurationError(f"Unknown pattern syntax '{syntax}'.")

        self.pattern = pattern
        self.syntax = syntax
        expression = glob_to_regex(pattern) if syntax == "glob" else relax_separator_stars(pattern)
        try:
            self.regex = re.compile(expression)
        except re.error as exc:
            raise ConfigurationError(f"Invalid source pattern '{pattern}': {exc}") from exc

    @property
    def group_count(self) -> int:
        return self.regex.groups

    def match(self, key: str) -> Optional[Tuple[str, ...]]:
        """Return the captured groups if the whole key matches, else None."""
        found = self.regex.fullmatch(key)
        if found is None:
            return None
        return tuple(group if group is not None else "" for group in found.groups())

    def match_object(self, ref: ObjectRef) -> Optional[MatchedObject]:
        captures = self.match(ref.key)
        if captures is None:
            return None
        return MatchedObject(ref=ref, captures=captures)


TemplateToken = Union[str, int]


class KeyMapper:
    """Renders target keys by substituting captures into a target template."""

    def __init__(self, template: str, matcher: PatternMatcher) -> None:
        if not template:
            raise ConfigurationError("Target pattern must not be empty.")
        self.template = template
        self.matcher = matcher
        self._tokens = self._parse(template, matcher)

    @staticmethod
    def _parse(template: str, matcher: PatternMatcher) -> List[TemplateToken]:
        tokens: List[TemplateToken] = []
        position = 0
        for found in _TEMPLATE_REFERENCE.finditer(template):
            if found.start() > position:
                tokens.append(template[position:found.start()])
            position = found.end()

            literal, number, name = found.groups()
            if literal:
                tokens.append("$")
                continue

            reference = number if number is not None else name
            if reference.isdigit():
                index = int(reference)
                if index > matcher.group_count:
                    raise ConfigurationError(
                        f"Target pattern '{template}' references ${index}, but source pattern "
                        f"'{matcher.pattern}' defines {matcher.group_count} capture group(s)."
                    )
            else:
                if reference not in matcher.regex.groupindex:
                    raise ConfigurationError(
                        f"Target pattern '{template}' references unknown group '{reference}'."
                    )
                index = matcher.regex.groupindex[reference]
            tokens.append(index)

        if position < len(template):
            tokens.append(template[position:])
        return tokens

    def render(self, matched: MatchedObject) -> str:
        """Return the target key for a matched object."""
        parts: List[str] = []
        for token in self._tokens:
            if isinstance(token, int):
                parts.append(matched.key if token == 0 else matched.captures[token - 1])
            else:
                parts.append(token)
        return "".join(parts)
