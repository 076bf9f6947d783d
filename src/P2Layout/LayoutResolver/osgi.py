"""OSGi version, version range, and manifest header parsing.

Bundle versions follow ``major[.minor[.micro[.qualifier]]]``: numeric
segments compare numerically (missing ones default to ``0``) and the
qualifier compares lexically, so ``1.10.0`` sorts after ``1.9.0`` and
``2.0.0.v2024`` after ``2.0.0``. A ``-`` is also accepted in front of the
qualifier because some repositories publish Maven-flavoured versions.

Version ranges use interval notation (``[1.0,2.0)``); a bare version means
"this version or greater".
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Dict, Iterable, List, Optional, Tuple

__all__ = [
    "HeaderClause",
    "Version",
    "VersionRange",
    "max_version",
    "parse_header",
]

_VERSION_PATTERN = re.compile(
    r"^(?P<major>\d+)(?:\.(?P<minor>\d+)(?:\.(?P<micro>\d+)(?:[.-](?P<qualifier>[A-Za-z0-9_-]+))?)?)?$"
)


@total_ordering
@dataclass(frozen=True)
class Version:
    """An OSGi version with numeric-aware ordering."""

    major: int = 0
    minor: int = 0
    micro: int = 0
    qualifier: str = ""

    @classmethod
    def parse(cls, text: str) -> "Version":
        """Parse ``text``; raise :class:`ValueError` if it is not a valid version."""

        match = _VERSION_PATTERN.match((text or "").strip())
        if not match:
            raise ValueError(f"invalid version {text!r}")
        return cls(
            int(match.group("major")),
            int(match.group("minor") or 0),
            int(match.group("micro") or 0),
            match.group("qualifier") or "",
        )

    def _key(self) -> Tuple[int, int, int, str]:
        return (self.major, self.minor, self.micro, self.qualifier)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.micro}"
        if self.qualifier:
            text += f".{self.qualifier}"
        return text


@dataclass(frozen=True)
class VersionRange:
    """An interval of versions; ``right=None`` means unbounded above."""

    left: Version
    left_closed: bool = True
    right: Optional[Version] = None
    right_closed: bool = False

    @classmethod
    def parse(cls, text: str) -> "VersionRange":
        """Parse ``[a,b]``, ``[a,b)``, ``(a,b]``, ``(a,b)`` or a bare floor version."""

        value = (text or "").strip()
        if not value:
            raise ValueError("empty version range")
        if value[0] not in "[(":
            return cls(Version.parse(value))
        if value[-1] not in "])":
            raise ValueError(f"invalid version range {text!r}")
        body = value[1:-1]
        if body.count(",") != 1:
            raise ValueError(f"invalid version range {text!r}")
        low, high = (part.strip() for part in body.split(","))
        return cls(
            left=Version.parse(low),
            left_closed=value[0] == "[",
            right=Version.parse(high),
            right_closed=value[-1] == "]",
        )

    def includes(self, version: Version) -> bool:
        """Return ``True`` when ``version`` lies inside this range."""

        if self.left_closed:
            if version < self.left:
                return False
        elif version <= self.left:
            return False
        if self.right is None:
            return True
        if self.right_closed:
            return version <= self.right
        return version < self.right

    def __str__(self) -> str:
        if self.right is None:
            return str(self.left)
        return "{}{},{}{}".format(
            "[" if self.left_closed else "(",
            self.left,
            self.right,
            "]" if self.right_closed else ")",
        )


def max_version(versions: Iterable[str]) -> Optional[str]:
    """Return the greatest of ``versions`` by OSGi ordering, as given.

    Strings that do not parse rank below every valid version and among
    themselves by plain string order.
    """

    best: Optional[str] = None
    best_key: Optional[Tuple[int, object]] = None
    for text in versions:
        try:
            key: Tuple[int, object] = (1, Version.parse(text))
        except ValueError:
            key = (0, text)
        if best_key is None or key > best_key:
            best, best_key = text, key
    return best


@dataclass
class HeaderClause:
    """One comma-separated clause of a manifest header."""

    paths: List[str]
    attributes: Dict[str, str] = field(default_factory=dict)
    directives: Dict[str, str] = field(default_factory=dict)

    @property
    def value(self) -> str:
        """The clause's paths joined by ``;`` (a single path in practice)."""

        return ";".join(self.paths)

    def attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def directive(self, name: str) -> Optional[str]:
        return self.directives.get(name)


def _split_unquoted(text: str, separator: str) -> List[str]:
    pieces: List[str] = []
    current: List[str] = []
    quoted = False
    for char in text:
        if char == '"':
            quoted = not quoted
        if char == separator and not quoted:
            pieces.append("".join(current))
            current = []
        else:
            current.append(char)
    pieces.append("".join(current))
    return pieces


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def parse_header(value: Optional[str]) -> List[HeaderClause]:
    """Split a manifest header such as ``Require-Bundle`` into clauses.

    Examples:
        >>> clause = parse_header('org.eclipse.core;bundle-version="[3.0,4.0)";resolution:=optional')[0]
        >>> clause.value, clause.attribute("bundle-version"), clause.directive("resolution")
        ('org.eclipse.core', '[3.0,4.0)', 'optional')
    """

    clauses: List[HeaderClause] = []
    if not value:
        return clauses
    for raw_clause in _split_unquoted(value, ","):
        if not raw_clause.strip():
            continue
        clause = HeaderClause(paths=[])
        for part in _split_unquoted(raw_clause, ";"):
            part = part.strip()
            if not part:
                continue
            if ":=" in part:
                name, _, directive = part.partition(":=")
                clause.directives[name.strip()] = _unquote(directive)
            elif "=" in part and not part.startswith('"'):
                name, _, attribute = part.partition("=")
                clause.attributes[name.strip()] = _unquote(attribute)
            else:
                clause.paths.append(_unquote(part))
        if clause.paths:
            clauses.append(clause)
    return clauses
