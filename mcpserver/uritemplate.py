"""Matching of URIs against RFC 6570 URI templates."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import cached_property
from urllib.parse import unquote

_UNRESERVED = r"[A-Za-z0-9\-._~]|%[0-9A-Fa-f]{2}"
_RESERVED = r"[A-Za-z0-9\-._~:/?#\[\]@!$&'()*+,;=]|%[0-9A-Fa-f]{2}"
_VARNAME = r"(?:[A-Za-z0-9_]|%[0-9A-Fa-f]{2})+(?:\.(?:[A-Za-z0-9_]|%[0-9A-Fa-f]{2})+)*"
_VARSPEC = re.compile(rf"^({_VARNAME})(?:(\*)|:([1-9][0-9]{{0,3}}))?$")
_EXPRESSION = re.compile(r"\{([^{}]*)\}")


@dataclass(frozen=True)
class _Operator:
    first: str
    sep: str
    named: bool
    unit: str
    empty_eq: bool = False


_OPERATORS = {
    "": _Operator("", ",", False, _UNRESERVED),
    "+": _Operator("", ",", False, _RESERVED),
    "#": _Operator("#", ",", False, _RESERVED),
    ".": _Operator(".", ".", False, _UNRESERVED),
    "/": _Operator("/", "/", False, _UNRESERVED),
    ";": _Operator(";", ";", True, _UNRESERVED, empty_eq=True),
    "?": _Operator("?", "&", True, _UNRESERVED),
    "&": _Operator("&", "&", True, _UNRESERVED),
}


@dataclass(frozen=True)
class _VarSpec:
    name: str
    explode: bool
    prefix: int | None
    op: _Operator
    group: str


class URITemplate:
    """A parsed URI template that can test and extract variables from URIs."""

    def __init__(self, raw: str) -> None:
        self.raw = raw
        self._vars: list[_VarSpec] = []
        self._pattern = self._parse(raw)

    def _parse(self, raw: str) -> str:
        parts: list[str] = []
        pos = 0
        for m in _EXPRESSION.finditer(raw):
            parts.append(self._literal(raw[pos : m.start()]))
            parts.append(self._expression(m.group(1)))
            pos = m.end()
        parts.append(self._literal(raw[pos:]))
        return "".join(parts)

    @staticmethod
    def _literal(text: str) -> str:
        if "{" in text or "}" in text:
            raise ValueError(f"unbalanced brace in URI template literal {text!r}")
        return re.escape(text)

    def _expression(self, body: str) -> str:
        if not body:
            raise ValueError("empty expression in URI template")
        op_char = body[0] if body[0] in "+#./;?&" else ""
        if body[0] in "=,!@|":
            raise ValueError(f"reserved operator {body[0]!r} in URI template")
        op = _OPERATORS[op_char]
        segments = []
        for index, spec_text in enumerate(body[len(op_char) :].split(",")):
            m = _VARSPEC.match(spec_text)
            if m is None:
                raise ValueError(f"invalid variable specification {spec_text!r}")
            spec = _VarSpec(
                name=m.group(1),
                explode=m.group(2) is not None,
                prefix=int(m.group(3)) if m.group(3) else None,
                op=op,
                group=f"g{len(self._vars)}",
            )
            self._vars.append(spec)
            lead = re.escape(op.first if index == 0 else op.sep)
            segments.append(f"(?:{lead}{self._value_pattern(spec)})?")
        return "".join(segments)

    @staticmethod
    def _value_pattern(spec: _VarSpec) -> str:
        op = spec.op
        unit = f"(?:{op.unit})"
        sep = re.escape(op.sep)
        if spec.prefix is not None:
            values = f"{unit}{{0,{spec.prefix}}}"
        elif spec.explode and not op.named:
            values = f"{unit}*(?:{sep}{unit}*)*"
        else:
            values = f"{unit}*(?:,{unit}*)*"
        if not op.named:
            return f"(?P<{spec.group}>{values})"
        name = re.escape(spec.name)
        if spec.explode and spec.prefix is None:
            item_value = f"(?:={unit}*)?" if op.empty_eq else f"={unit}*"
            item = f"{name}{item_value}"
            return f"(?P<{spec.group}>{item}(?:{sep}{item})*)"
        value = f"(?:={values})?" if op.empty_eq else f"={values}"
        return f"{name}(?P<{spec.group}>{value})"

    @cached_property
    def regex(self) -> re.Pattern[str]:
        return re.compile(f"^{self._pattern}$")

    @property
    def variables(self) -> list[str]:
        return [spec.name for spec in self._vars]

    def matches(self, uri: str) -> bool:
        """Return True if the URI fits the template."""
        return self.regex.match(uri) is not None

    def match(self, uri: str) -> dict[str, list[str]] | None:
        """Return the decoded values of each variable, or None if the URI does not fit."""
        m = self.regex.match(uri)
        if m is None:
            return None
        result: dict[str, list[str]] = {}
        for spec in self._vars:
            captured = m.group(spec.group)
            if captured is None:
                continue
            result[spec.name] = [unquote(v) for v in self._split(spec, captured)]
        return result

    @staticmethod
    def _split(spec: _VarSpec, captured: str) -> list[str]:
        op = spec.op
        if op.named and spec.explode and spec.prefix is None:
            items = captured.split(op.sep)
            return [item[len(spec.name) :].removeprefix("=") for item in items]
        if op.named:
            captured = captured.removeprefix("=")
        if spec.prefix is not None:
            return [captured]
        if spec.explode:
            return captured.split(op.sep)
        return captured.split(",")

    def __str__(self) -> str:
        return self.raw

    def __repr__(self) -> str:
        return f"URITemplate({self.raw!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, URITemplate):
            return NotImplemented
        return self.raw == other.raw

    def __hash__(self) -> int:
        return hash(self.raw)