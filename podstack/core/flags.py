"""
Flag engine — declarative command-line contract for every entry point.

Each entry point declares its flags as specification strings::

    "--user|-u:value:Target user (default: podman_user)"
    "--yes|-y:boolean:Skip confirmation prompts"
    "--help|-h:help:Show this help message"

``names:kind:description`` — the first alias is canonical and gives the
variable name (``--socket-timeout`` → ``socket_timeout``).

Parsing yields ``ParsedFlags`` (canonical name → string value).  Entry
points then validate into a typed ``FlagRecord`` subclass whose fields
are the names they actually read; ``FlagSet.bind()`` cross-checks those
fields against the declared specs once, at import time, so a typo in
either place fails the test suite instead of silently reading nothing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Iterable, TypeVar

from pydantic import BaseModel, ConfigDict

from podstack.core.errors import FlagSpecError, FlagUsageError, InvalidArgument

# Sentinel stored for boolean flags
TRUE = "true"

_CIDR_RE = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})/(\d{1,2})$")
_INT_RE = re.compile(r"^[0-9]+$")


class FlagKind(StrEnum):
    """How many tokens a flag consumes and how they are validated."""

    HELP = "help"
    BOOLEAN = "boolean"
    VALUE = "value"
    CIDR = "cidr-value"
    INTEGER = "integer-value"

    @property
    def takes_value(self) -> bool:
        return self in (FlagKind.VALUE, FlagKind.CIDR, FlagKind.INTEGER)


# Short kind names accepted in spec strings
_KIND_ALIASES = {
    "bool": FlagKind.BOOLEAN,
    "int": FlagKind.INTEGER,
    "cidr": FlagKind.CIDR,
}


def canonical_name(alias: str) -> str:
    """``--socket-timeout`` → ``socket_timeout``."""
    return alias.lstrip("-").replace("-", "_")


@dataclass(frozen=True)
class FlagSpec:
    """One declared flag: its aliases, kind and help text."""

    names: tuple[str, ...]
    kind: FlagKind
    description: str = ""

    @property
    def canonical(self) -> str:
        return canonical_name(self.names[0])

    @classmethod
    def parse(cls, spec: str) -> FlagSpec:
        """Parse a ``names:kind:description`` specification string.

        Raises:
            FlagSpecError: If names or kind are missing or the kind is unknown.
        """
        parts = spec.split(":", 2)
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise FlagSpecError(f"Invalid flag spec: {spec!r}")

        names = tuple(n.strip() for n in parts[0].split("|") if n.strip())
        if not names or not all(n.startswith("-") for n in names):
            raise FlagSpecError(f"Invalid flag names in spec: {spec!r}")

        raw_kind = parts[1].strip()
        try:
            kind = _KIND_ALIASES.get(raw_kind) or FlagKind(raw_kind)
        except ValueError:
            raise FlagSpecError(f"Unknown flag kind {raw_kind!r} in spec: {spec!r}") from None

        description = parts[2].strip() if len(parts) == 3 else ""
        return cls(names=names, kind=kind, description=description)


@dataclass
class ParsedFlags:
    """Result of parsing: canonical name → value, plus populated names in order."""

    values: dict[str, str] = field(default_factory=dict)
    populated: list[str] = field(default_factory=list)

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.values.get(name, default)

    def __contains__(self, name: object) -> bool:
        return name in self.values


class FlagRecord(BaseModel):
    """Typed view over ``ParsedFlags`` — subclass per entry point.

    Fields are canonical flag names.  Unknown keys are rejected, and
    instances are immutable once validated.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)


R = TypeVar("R", bound=FlagRecord)


def cross_check(declared: Iterable[str], referenced: Iterable[str], *, where: str = "") -> None:
    """Confirm every referenced flag name was declared.

    Raises:
        FlagUsageError: Listing each undeclared name and the valid ones.
    """
    declared_set = set(declared)
    missing = sorted(set(referenced) - declared_set)
    if missing:
        location = f" in {where}" if where else ""
        raise FlagUsageError(
            f"Flag variable(s) {', '.join(missing)} used{location} but not declared; "
            f"valid: {', '.join(sorted(declared_set))}"
        )


class FlagSet:
    """An ordered list of flag specs for one entry point."""

    def __init__(self, program: str, description: str, specs: Iterable[str]) -> None:
        self.program = program
        self.description = description
        self.specs: list[FlagSpec] = [FlagSpec.parse(s) for s in specs]
        if not self.specs:
            raise FlagSpecError(f"No flag specifications provided for {program}")

        self._by_alias: dict[str, FlagSpec] = {}
        canonicals: set[str] = set()
        for spec in self.specs:
            if spec.canonical in canonicals:
                raise FlagSpecError(f"Duplicate flag '{spec.canonical}' in {program}")
            canonicals.add(spec.canonical)
            for alias in spec.names:
                if alias in self._by_alias:
                    raise FlagSpecError(f"Alias '{alias}' declared twice in {program}")
                self._by_alias[alias] = spec

    @property
    def declared(self) -> list[str]:
        """Canonical names in declaration order."""
        return [s.canonical for s in self.specs]

    def usage(self) -> str:
        lines = [f"Usage: {self.program} [OPTIONS]", "", self.description, "", "Options:"]
        for spec in self.specs:
            display = "|".join(spec.names)
            if spec.kind.takes_value:
                display += " <value>"
            lines.append(f"    {display:<30} {spec.description}")
        return "\n".join(lines)

    def parse(self, argv: Iterable[str]) -> ParsedFlags:
        """Parse arguments left to right.

        Raises:
            UsageRequested: A ``help`` flag was seen (not an error).
            InvalidArgument: Unknown flag, missing or malformed value.
        """
        args = list(argv)
        parsed = ParsedFlags()
        i = 0
        while i < len(args):
            arg = args[i]
            spec = self._by_alias.get(arg)
            if spec is None:
                raise InvalidArgument(f"Unknown flag: {arg}", usage=self.usage())

            if spec.kind is FlagKind.HELP:
                raise UsageRequested(self.usage())

            if spec.kind is FlagKind.BOOLEAN:
                value = TRUE
                i += 1
            else:
                value = args[i + 1] if i + 1 < len(args) else ""
                self._check_value(arg, spec.kind, value)
                i += 2

            if spec.canonical not in parsed.values:
                parsed.populated.append(spec.canonical)
            parsed.values[spec.canonical] = value

        return parsed

    def bind(self, record_cls: type[R]) -> type[R]:
        """Cross-check a record's fields against the declared flags.

        Returns the record class unchanged so it can be used inline::

            INSTALL_FLAGS.bind(InstallFlags)
        """
        cross_check(self.declared, record_cls.model_fields, where=f"{record_cls.__name__} ({self.program})")
        return record_cls

    def parse_into(self, argv: Iterable[str], record_cls: type[R]) -> R:
        """Parse, cross-check and validate into a typed record."""
        self.bind(record_cls)
        parsed = self.parse(argv)
        data = {
            name: (value == TRUE if self._by_canonical(name).kind is FlagKind.BOOLEAN else value)
            for name, value in parsed.values.items()
            if name in record_cls.model_fields
        }
        return record_cls.model_validate(data)

    def _by_canonical(self, name: str) -> FlagSpec:
        return next(s for s in self.specs if s.canonical == name)

    def _check_value(self, arg: str, kind: FlagKind, value: str) -> None:
        if kind is FlagKind.VALUE:
            if not value:
                raise InvalidArgument(f"Flag {arg} requires a value", usage=self.usage())
        elif kind is FlagKind.CIDR:
            if not value:
                raise InvalidArgument(f"Flag {arg} requires a CIDR value", usage=self.usage())
            if not _valid_cidr(value):
                raise InvalidArgument(f"Invalid CIDR format: {value}", usage=self.usage())
        elif kind is FlagKind.INTEGER:
            if not value:
                raise InvalidArgument(f"Flag {arg} requires an integer value", usage=self.usage())
            if not _INT_RE.match(value):
                raise InvalidArgument(f"Invalid integer: {value}", usage=self.usage())


class UsageRequested(Exception):
    """Help was requested — the caller prints ``usage`` and exits 0.

    Deliberately not a ``PodstackError``: showing help is not a failure.
    ``exit_code`` is the internal status (2) that callers normalize.
    """

    exit_code = 2

    def __init__(self, usage: str) -> None:
        super().__init__("usage displayed")
        self.usage = usage


def _valid_cidr(value: str) -> bool:
    m = _CIDR_RE.match(value)
    if not m:
        return False
    *octets, prefix = (int(g) for g in m.groups())
    return all(o <= 255 for o in octets) and prefix <= 32
