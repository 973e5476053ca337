"""Static analysis helpers: which binding paths an expression reads."""

from __future__ import annotations

from collections.abc import Iterator

from formflow.core.ir.expressions import Expr, FieldRef


def iter_field_refs(expr: Expr) -> Iterator[FieldRef]:
    """Yield every FieldRef in the tree, depth first, left to right."""
    stack: list[Expr] = [expr]
    while stack:
        node = stack.pop()
        if isinstance(node, FieldRef):
            yield node
        else:
            stack.extend(reversed(node.children()))


def referenced_roots(expr: Expr) -> set[str]:
    """First path segment of every reference, e.g. ``{"start", "end"}``."""
    return {ref.root for ref in iter_field_refs(expr)}


def referenced_elements(expr: Expr, known_ids: set[str] | frozenset[str]) -> set[str]:
    """
    Element ids an expression reads.

    A reference ``personal.first_name`` names the component ``first_name``
    inside section ``personal``; both ids are reported when known.
    """
    return {
        segment
        for ref in iter_field_refs(expr)
        for segment in ref.path[:2]
        if segment in known_ids
    }
