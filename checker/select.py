"""
checker/select.py — Label selectors.

A selector is a conjunction of terms evaluated against a check's labels:

    role:web                 exact value
    hostname:web1,web2       any of the listed values
    hostname:/^rack203-/     regex search

String form (from --on): terms separated by commas. A comma-separated piece
without ':' adds another accepted value to the preceding term, so
``role:web,db,rack:23`` means role in {web, db} AND rack == 23.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from checker.definitions import ConfigError

# RFC1123 hostname label: alphanumeric runs joined by hyphens.
_LABEL_NAME_RE = re.compile(r"[A-Za-z0-9]+(?:-+[A-Za-z0-9]+)*")


@dataclass(frozen=True)
class Term:
    name: str
    values: tuple[str, ...] = ()
    pattern: re.Pattern | None = None

    def matches(self, labels: Mapping[str, str]) -> bool:
        value = labels.get(self.name)
        if value is None:
            return False
        if self.pattern is not None:
            return self.pattern.search(value) is not None
        return value in self.values

    def __str__(self) -> str:
        if self.pattern is not None:
            return f"{self.name}:/{self.pattern.pattern}/"
        return f"{self.name}:{','.join(self.values)}"


@dataclass(frozen=True)
class Selector:
    """Conjunction of terms. No terms selects everything."""

    terms: tuple[Term, ...] = field(default_factory=tuple)

    def matches(self, labels: Mapping[str, str]) -> bool:
        return all(term.matches(labels) for term in self.terms)

    def __bool__(self) -> bool:
        return bool(self.terms)

    def __str__(self) -> str:
        return ",".join(str(t) for t in self.terms) or "<all>"


def select(labels: Mapping[str, str], selector: Selector | None) -> bool:
    if selector is None:
        return True
    return selector.matches(labels)


def _skip_space(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def _parse_name(text: str, pos: int, source: str) -> tuple[str, int]:
    match = _LABEL_NAME_RE.match(text, pos)
    if match is None or match.end() >= len(text) or text[match.end()] != ":":
        raise ConfigError(f"invalid selector term at {text[pos:]!r} in {source!r}: expected 'label:value'")
    return match.group(0), match.end() + 1


def _parse_regex(text: str, pos: int, source: str) -> tuple[re.Pattern, int]:
    end = text.find("/", pos + 1)
    if end == -1 or end == pos + 1:
        raise ConfigError(f"unterminated or empty regex in selector {source!r}")
    try:
        return re.compile(text[pos + 1 : end]), end + 1
    except re.error as exc:
        raise ConfigError(f"invalid regex in selector {source!r}: {exc}") from exc


def parse_selector(text: str) -> Selector:
    """Parse the comma-separated selector string form."""
    source = text
    text = text.strip()
    terms: list[Term] = []
    pos = 0
    while pos < len(text):
        pos = _skip_space(text, pos)
        name, pos = _parse_name(text, pos, source)
        if text.startswith("/", pos):
            pattern, pos = _parse_regex(text, pos, source)
            terms.append(Term(name=name, pattern=pattern))
            if pos < len(text):
                if text[pos] != ",":
                    raise ConfigError(f"unexpected {text[pos:]!r} after regex in selector {source!r}")
                pos += 1
            continue

        values: list[str] = []
        while pos <= len(text):
            end = text.find(",", pos)
            end = len(text) if end == -1 else end
            item = text[pos:end].strip()
            if not item:
                raise ConfigError(f"empty value in selector {source!r}")
            if any(c.isspace() for c in item):
                raise ConfigError(f"whitespace inside selector value {item!r} in {source!r}")
            values.append(item)
            pos = end + 1
            if pos >= len(text):
                break
            # The next piece starts a new term when it has its own "label:" prefix.
            match = _LABEL_NAME_RE.match(text, _skip_space(text, pos))
            if match is not None and text.startswith(":", match.end()):
                break
        terms.append(Term(name=name, values=tuple(values)))
    return Selector(terms=tuple(terms))


def parse_selectors(texts: Iterable[str] | None) -> Selector:
    """Combine repeated --on arguments into one conjunction."""
    terms: list[Term] = []
    for text in texts or ():
        terms.extend(parse_selector(text).terms)
    return Selector(terms=tuple(terms))
