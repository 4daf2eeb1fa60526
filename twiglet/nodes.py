"""
AST nodes.

Immutable node classes produced by the parser and consumed by the
renderer and the inheritance merge in the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Optional, Tuple, Union


# ---- Expressions ----

@dataclass(frozen=True)
class Literal:
    """Constant value: str, int, float, bool or None."""
    value: Any


@dataclass(frozen=True)
class VariablePath:
    """Dot-separated variable access, e.g. 'user.address.city'."""
    path: str


@dataclass(frozen=True)
class FunctionCall:
    """Call of a macro or a registered function."""
    name: str
    args: Tuple[Expression, ...] = ()


@dataclass(frozen=True)
class Filtered:
    """
    Single filter applied to an expression.

    filter_spec is either 'name' or 'name:arg'.
    """
    expr: Expression
    filter_spec: str


Expression = Union[Literal, VariablePath, FunctionCall, Filtered]


@dataclass(frozen=True)
class Condition:
    """
    Condition of if/elif.

    Without an operator this is a truthiness test of var_path.
    """
    var_path: str
    op: Optional[str] = None
    literal: Any = None


# ---- Nodes ----

@dataclass(frozen=True)
class TemplateNode:
    """Base class for all template AST nodes."""
    pass


@dataclass(frozen=True)
class TextNode(TemplateNode):
    """Static text, emitted as is."""
    text: str


@dataclass(frozen=True)
class VariableNode(TemplateNode):
    """Output of {{ expr }}."""
    expr: Expression


@dataclass(frozen=True)
class ForNode(TemplateNode):
    """
    {% for item in iterable %} ... {% endfor %}

    iterable_filter is an optional single filter spec applied to the whole
    collection before iteration.
    """
    item_var: str
    iterable: Expression
    body: Tuple[TemplateNode, ...]
    iterable_filter: Optional[str] = None


@dataclass(frozen=True)
class IfNode(TemplateNode):
    """{% if %} / {% elif %} / {% else %} chain."""
    condition: Condition
    body: Tuple[TemplateNode, ...]
    elif_branches: Tuple[Tuple[Condition, Tuple[TemplateNode, ...]], ...] = ()
    else_body: Tuple[TemplateNode, ...] = ()


@dataclass(frozen=True)
class SetNode(TemplateNode):
    """{% set name = expr %}"""
    var_name: str
    value: Expression


@dataclass(frozen=True)
class ExtendsNode(TemplateNode):
    template_name: str


@dataclass(frozen=True)
class BlockNode(TemplateNode):
    """Named overridable region."""
    name: str
    body: Tuple[TemplateNode, ...]


@dataclass(frozen=True)
class IncludeNode(TemplateNode):
    template_name: str


@dataclass(frozen=True)
class MacroNode(TemplateNode):
    name: str
    params: Tuple[str, ...]
    body: Tuple[TemplateNode, ...]


@dataclass(frozen=True)
class ImportNode(TemplateNode):
    """{% from "name" import a, b %}"""
    template_name: str
    macro_names: Tuple[str, ...]


@dataclass(frozen=True)
class ParentNode(TemplateNode):
    """Marker: ancestor's version of the enclosing block goes here."""
    pass


@dataclass(frozen=True)
class Macro:
    """
    Macro table entry.

    scope is the macro table of the defining template for imported
    macros; calls in the body resolve against it. None means the
    table of the render.
    """
    params: Tuple[str, ...]
    body: Tuple[TemplateNode, ...]
    scope: Optional[Mapping[str, Macro]] = field(default=None, compare=False, repr=False)


Node = Union[
    TextNode, VariableNode, ForNode, IfNode, SetNode, ExtendsNode,
    BlockNode, IncludeNode, MacroNode, ImportNode, ParentNode,
]

# Alias for a node sequence (AST)
TemplateAST = Tuple[TemplateNode, ...]


def iter_child_bodies(node: TemplateNode) -> Iterator[Tuple[TemplateNode, ...]]:
    """Yields every nested node sequence of a node (one level deep)."""
    if isinstance(node, (ForNode, BlockNode, MacroNode)):
        yield node.body
    elif isinstance(node, IfNode):
        yield node.body
        for _, body in node.elif_branches:
            yield body
        yield node.else_body


__all__ = [
    "Literal", "VariablePath", "FunctionCall", "Filtered", "Expression",
    "Condition",
    "TemplateNode", "TextNode", "VariableNode", "ForNode", "IfNode", "SetNode",
    "ExtendsNode", "BlockNode", "IncludeNode", "MacroNode", "ImportNode", "ParentNode",
    "Macro", "Node", "TemplateAST", "iter_child_bodies",
]
