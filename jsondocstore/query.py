"""
Mongo-style filter objects compiled into document predicates.

    compile_query({"prio": {"$gt": 3}, "tags": "urgent"})(doc) -> bool

Field paths are dotted ("meta.version", "items.0.name"). A field holding an array matches
when the array itself or any of its elements matches, as in MongoDB. Ordering operators
($gt and friends) are False for values that cannot be ordered against each other.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Callable

from .errors import QueryError
from .frozen import freeze
from .interfaces import Document, Predicate

_MISSING = object()

Matcher = Callable[[Any], bool]


def compile_query(query: Mapping[str, Any] | Predicate | None) -> Predicate:
    if query is None:
        return _always
    if callable(query) and not isinstance(query, Mapping):
        return query
    if not isinstance(query, Mapping):
        raise QueryError(f"filter must be a mapping or a callable, got {type(query).__name__}")
    return _compile_document(query)


def _always(doc: Document) -> bool:
    return True


def _compile_document(query: Mapping[str, Any]) -> Predicate:
    clauses: list[Predicate] = []
    for key, expected in query.items():
        if key in ("$and", "$or", "$nor"):
            clauses.append(_compile_logical(key, expected))
        elif isinstance(key, str) and key.startswith("$"):
            raise QueryError(f"unknown top-level operator {key!r}")
        else:
            clauses.append(_compile_field(key, expected))

    def predicate(doc: Document) -> bool:
        return all(clause(doc) for clause in clauses)

    return predicate


def _compile_logical(op: str, operand: Any) -> Predicate:
    if not isinstance(operand, (list, tuple)) or not operand:
        raise QueryError(f"{op} expects a non-empty list of filters")
    subs = [compile_query(_require_mapping(op, q)) for q in operand]
    if op == "$and":
        return lambda doc: all(s(doc) for s in subs)
    if op == "$or":
        return lambda doc: any(s(doc) for s in subs)
    return lambda doc: not any(s(doc) for s in subs)


def _compile_field(path: str, expected: Any) -> Predicate:
    parts = path.split(".")
    if _is_operator_mapping(expected):
        matcher = _compile_operators(expected)
    else:
        matcher = _equals_matcher(expected)

    def predicate(doc: Document) -> bool:
        return matcher(_resolve(doc, parts))

    return predicate


def _is_operator_mapping(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(
        isinstance(k, str) and k.startswith("$") for k in value
    )


def _compile_operators(ops: Mapping[str, Any]) -> Matcher:
    options = ops.get("$options", "")
    matchers: list[Matcher] = []
    for op, operand in ops.items():
        if op == "$options":
            if "$regex" not in ops:
                raise QueryError("$options without $regex")
            continue
        factory = _OPERATORS.get(op)
        if factory is None:
            raise QueryError(f"unknown operator {op!r}")
        if op == "$regex":
            matchers.append(_regex_matcher(operand, options))
        else:
            matchers.append(factory(operand))
    return lambda value: all(m(value) for m in matchers)


# --- value helpers ---------------------------------------------------------


def _resolve(doc: Any, parts: list[str]) -> Any:
    current = doc
    for part in parts:
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else _MISSING
        else:
            return _MISSING
        if current is _MISSING:
            return _MISSING
    return current


def _candidates(value: Any) -> list[Any]:
    # The array itself, then each element.
    if isinstance(value, (list, tuple)):
        return [value, *value]
    return [value]


def _same(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(_same(x, y) for x, y in zip(a, b))
    return a == b


def _equals_matcher(expected: Any) -> Matcher:
    if isinstance(expected, re.Pattern):
        return _regex_matcher(expected, "")
    try:
        expected = freeze(expected)
    except TypeError as e:
        raise QueryError(str(e)) from e

    def match(value: Any) -> bool:
        if value is _MISSING:
            return expected is None
        return any(_same(c, expected) for c in _candidates(value))

    return match


def _ordered(check: Callable[[Any, Any], bool]) -> Callable[[Any], Matcher]:
    def factory(operand: Any) -> Matcher:
        def match(value: Any) -> bool:
            if value is _MISSING:
                return False
            for c in _candidates(value):
                if isinstance(c, bool) != isinstance(operand, bool):
                    continue
                try:
                    if check(c, operand):
                        return True
                except TypeError:
                    continue
            return False

        return match

    return factory


def _op_eq(operand: Any) -> Matcher:
    return _equals_matcher(operand)


def _op_ne(operand: Any) -> Matcher:
    eq = _equals_matcher(operand)
    return lambda value: not eq(value)


def _op_in(operand: Any) -> Matcher:
    options = [_equals_matcher(o) for o in _require_list("$in", operand)]
    return lambda value: any(m(value) for m in options)


def _op_nin(operand: Any) -> Matcher:
    inside = _op_in(operand)
    return lambda value: not inside(value)


def _op_exists(operand: Any) -> Matcher:
    want = bool(operand)
    return lambda value: (value is not _MISSING) == want


def _op_size(operand: Any) -> Matcher:
    if not isinstance(operand, int) or isinstance(operand, bool):
        raise QueryError("$size expects an integer")
    return lambda value: isinstance(value, (list, tuple)) and len(value) == operand


def _op_all(operand: Any) -> Matcher:
    required = [_equals_matcher(o) for o in _require_list("$all", operand)]
    return lambda value: value is not _MISSING and all(m(value) for m in required)


def _op_elem_match(operand: Any) -> Matcher:
    mapping = _require_mapping("$elemMatch", operand)
    if _is_operator_mapping(mapping):
        element = _compile_operators(mapping)
    else:
        sub = _compile_document(mapping)

        def element(item: Any) -> bool:
            return isinstance(item, Mapping) and sub(item)

    return lambda value: isinstance(value, (list, tuple)) and any(element(item) for item in value)


def _op_not(operand: Any) -> Matcher:
    if isinstance(operand, re.Pattern):
        inner = _regex_matcher(operand, "")
    elif _is_operator_mapping(operand):
        inner = _compile_operators(operand)
    else:
        raise QueryError("$not expects an operator object or a regular expression")
    return lambda value: not inner(value)


def _regex_matcher(pattern: Any, options: str) -> Matcher:
    if isinstance(pattern, re.Pattern):
        compiled = pattern
    elif isinstance(pattern, str):
        flags = 0
        for flag in options:
            if flag == "i":
                flags |= re.IGNORECASE
            elif flag == "m":
                flags |= re.MULTILINE
            elif flag == "s":
                flags |= re.DOTALL
            elif flag == "x":
                flags |= re.VERBOSE
            else:
                raise QueryError(f"unsupported regex option {flag!r}")
        try:
            compiled = re.compile(pattern, flags)
        except re.error as e:
            raise QueryError(f"invalid regular expression {pattern!r}: {e}") from e
    else:
        raise QueryError("$regex expects a string or compiled pattern")

    def match(value: Any) -> bool:
        if value is _MISSING:
            return False
        return any(isinstance(c, str) and compiled.search(c) is not None for c in _candidates(value))

    return match


def _require_list(op: str, operand: Any) -> list[Any] | tuple[Any, ...]:
    if not isinstance(operand, (list, tuple)):
        raise QueryError(f"{op} expects a list")
    return operand


def _require_mapping(op: str, operand: Any) -> Mapping[str, Any]:
    if not isinstance(operand, Mapping):
        raise QueryError(f"{op} expects an object")
    return operand


_OPERATORS: dict[str, Callable[[Any], Matcher]] = {
    "$eq": _op_eq,
    "$ne": _op_ne,
    "$gt": _ordered(lambda a, b: a > b),
    "$gte": _ordered(lambda a, b: a >= b),
    "$lt": _ordered(lambda a, b: a < b),
    "$lte": _ordered(lambda a, b: a <= b),
    "$in": _op_in,
    "$nin": _op_nin,
    "$exists": _op_exists,
    "$regex": _regex_matcher,
    "$size": _op_size,
    "$all": _op_all,
    "$elemMatch": _op_elem_match,
    "$not": _op_not,
}
