"""
Tree-walking renderer.

Evaluates a (merged) template AST against a context value and produces
the output text. Inheritance and includes are resolved by the engine
beforehand; the renderer only sees a flat node list plus a macro table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .errors import ErrorCode, MaxDepthExceededError, RenderError
from .filters import FILTERS, FilterFn, apply_filter, split_filter_spec
from .functions import FunctionRegistry
from .nodes import (
    BlockNode, Condition, Expression, ExtendsNode, Filtered, ForNode, FunctionCall,
    IfNode, ImportNode, IncludeNode, Literal, Macro, MacroNode, ParentNode, SetNode,
    TemplateNode, TextNode, VariableNode, VariablePath,
)
from .values import compare, is_sequence, is_truthy, to_string

logger = logging.getLogger(__name__)

DEFAULT_MACRO_DEPTH = 64


@dataclass
class RenderFrame:
    """
    Evaluation scope.

    Attributes:
        context: Context object the template renders against
        locals: Variables assigned with {% set %}; fallback for names the context lacks
        macros: Macro table of the render
        depth: Current macro nesting level
    """
    context: Any
    locals: Dict[str, Any] = field(default_factory=dict)
    macros: Mapping[str, Macro] = field(default_factory=dict)
    depth: int = 0


class Renderer:
    """
    AST evaluator.

    Functions come from a FunctionRegistry; filters from a name -> FilterFn
    table (the built-in FILTERS by default).
    """

    def __init__(
        self,
        functions: Optional[FunctionRegistry] = None,
        filters: Optional[Mapping[str, FilterFn]] = None,
        max_depth: int = DEFAULT_MACRO_DEPTH,
    ):
        self.functions = functions
        self.filters = FILTERS if filters is None else filters
        self.max_depth = max_depth

        self._handlers: Dict[type, Callable[[Any, RenderFrame, List[str]], None]] = {
            TextNode: self._render_text,
            VariableNode: self._render_variable,
            ForNode: self._render_for,
            IfNode: self._render_if,
            SetNode: self._render_set,
            BlockNode: self._render_block,
            IncludeNode: self._render_include,
            ExtendsNode: self._render_nothing,
            MacroNode: self._render_nothing,
            ImportNode: self._render_nothing,
            ParentNode: self._render_nothing,
        }

    def render(
        self,
        nodes: Sequence[TemplateNode],
        context: Any,
        macros: Optional[Mapping[str, Macro]] = None,
        locals_: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Renders nodes to text.

        Args:
            nodes: Node list to evaluate
            context: Context value (normally a dict)
            macros: Macro table available to FunctionCall expressions
            locals_: Local variable table; updated in place by {% set %}

        Returns:
            Rendered text

        Raises:
            TemplateRuntimeError: On any evaluation error; no partial output is returned
        """
        frame = RenderFrame(
            context=context,
            locals=locals_ if locals_ is not None else {},
            macros=macros or {},
        )
        out: List[str] = []
        self._render_nodes(nodes, frame, out)
        return "".join(out)

    def _render_nodes(self, nodes: Sequence[TemplateNode], frame: RenderFrame, out: List[str]) -> None:
        for node in nodes:
            handler = self._handlers.get(type(node))
            if handler is None:
                raise TypeError(f"No renderer for node type: {type(node).__name__}")
            handler(node, frame, out)

    # ---- node handlers ----

    def _render_text(self, node: TextNode, frame: RenderFrame, out: List[str]) -> None:
        out.append(node.text)

    def _render_variable(self, node: VariableNode, frame: RenderFrame, out: List[str]) -> None:
        out.append(to_string(self.evaluate(node.expr, frame)))

    def _render_for(self, node: ForNode, frame: RenderFrame, out: List[str]) -> None:
        iterable = self.evaluate(node.iterable, frame)
        if node.iterable_filter:
            iterable = apply_filter(iterable, node.iterable_filter, self.filters)
        if not is_sequence(iterable):
            raise RenderError(
                ErrorCode.ITERABLE_NOT_ARRAY,
                f"cannot iterate over {type(iterable).__name__}",
            )

        base = dict(frame.context) if isinstance(frame.context, dict) else {}
        base.update(frame.locals)

        length = len(iterable)
        for index0, item in enumerate(iterable):
            child_context = dict(base)
            child_context[node.item_var] = item
            child_context["loop"] = _loop_object(index0, length)
            child = RenderFrame(child_context, {}, frame.macros, frame.depth)
            self._render_nodes(node.body, child, out)

    def _render_if(self, node: IfNode, frame: RenderFrame, out: List[str]) -> None:
        if self.test(node.condition, frame):
            self._render_nodes(node.body, frame, out)
            return
        for condition, body in node.elif_branches:
            if self.test(condition, frame):
                self._render_nodes(body, frame, out)
                return
        if node.else_body:
            self._render_nodes(node.else_body, frame, out)

    def _render_set(self, node: SetNode, frame: RenderFrame, out: List[str]) -> None:
        frame.locals[node.var_name] = self.evaluate(node.value, frame)

    def _render_block(self, node: BlockNode, frame: RenderFrame, out: List[str]) -> None:
        self._render_nodes(node.body, frame, out)

    def _render_include(self, node: IncludeNode, frame: RenderFrame, out: List[str]) -> None:
        raise RenderError(
            ErrorCode.UNSUPPORTED_OP,
            f"include of '{node.template_name}' must be resolved by the engine",
        )

    def _render_nothing(self, node: TemplateNode, frame: RenderFrame, out: List[str]) -> None:
        pass

    # ---- expressions ----

    def evaluate(self, expr: Expression, frame: RenderFrame) -> Any:
        """Evaluates an expression to a value."""
        if isinstance(expr, Literal):
            return expr.value
        if isinstance(expr, VariablePath):
            return self.lookup(expr.path, frame)
        if isinstance(expr, FunctionCall):
            return self._call(expr, frame)
        if isinstance(expr, Filtered):
            return self._evaluate_filtered(expr, frame)
        raise TypeError(f"Unknown expression type: {type(expr).__name__}")

    def _evaluate_filtered(self, expr: Filtered, frame: RenderFrame) -> Any:
        name, _ = split_filter_spec(expr.filter_spec)
        try:
            value = self.evaluate(expr.expr, frame)
        except RenderError as e:
            # default also covers undefined variables
            if name != "default" or e.code != ErrorCode.VARIABLE_NOT_FOUND:
                raise
            value = None
        return apply_filter(value, expr.filter_spec, self.filters)

    def lookup(self, path: str, frame: RenderFrame) -> Any:
        """
        Resolves a dotted variable path.

        The first segment is looked up in the context object; when the
        context lacks it, the locals table is the fallback. Locals are flat,
        only the first segment is matched against them. Further segments
        walk objects, and arrays for numeric segments.

        Raises:
            RenderError: VariableNotFound for a missing segment,
                InvalidPath when walking through a scalar
        """
        head, *rest = path.split(".")

        if isinstance(frame.context, dict) and head in frame.context:
            current = frame.context[head]
        elif head in frame.locals:
            current = frame.locals[head]
        elif isinstance(frame.context, dict):
            raise RenderError(ErrorCode.VARIABLE_NOT_FOUND, f"'{path}'")
        else:
            raise RenderError(ErrorCode.INVALID_PATH, f"'{path}': context is not an object")

        for segment in rest:
            if isinstance(current, dict):
                if segment not in current:
                    raise RenderError(ErrorCode.VARIABLE_NOT_FOUND, f"'{path}'")
                current = current[segment]
            elif is_sequence(current):
                if not segment.isdigit() or int(segment) >= len(current):
                    raise RenderError(ErrorCode.VARIABLE_NOT_FOUND, f"'{path}'")
                current = current[int(segment)]
            else:
                raise RenderError(
                    ErrorCode.INVALID_PATH,
                    f"'{path}': cannot access '{segment}' on {type(current).__name__}",
                )
        return current

    def test(self, condition: Condition, frame: RenderFrame) -> bool:
        """Evaluates an if/elif condition."""
        value = self.lookup(condition.var_path, frame)
        if condition.op is None:
            return is_truthy(value)
        return compare(value, condition.op, condition.literal)

    def _call(self, call: FunctionCall, frame: RenderFrame) -> Any:
        macro = frame.macros.get(call.name)
        if macro is not None:
            return self._call_macro(call, macro, frame)

        if self.functions is None or call.name not in self.functions:
            raise RenderError(ErrorCode.UNKNOWN_FUNCTION, f"'{call.name}'")
        args = [self.evaluate(arg, frame) for arg in call.args]
        return self.functions.call(call.name, args)

    def _call_macro(self, call: FunctionCall, macro: Macro, frame: RenderFrame) -> str:
        if len(call.args) != len(macro.params):
            raise RenderError(
                ErrorCode.INVALID_MACRO_ARGS,
                f"macro '{call.name}' expects {len(macro.params)} argument(s), got {len(call.args)}",
            )
        if frame.depth >= self.max_depth:
            raise MaxDepthExceededError(f"macro '{call.name}' nested deeper than {self.max_depth}")

        scope = {param: self.evaluate(arg, frame) for param, arg in zip(macro.params, call.args)}
        logger.debug(f"Calling macro '{call.name}' at depth {frame.depth + 1}")

        # imported macros call into the table of their own template
        macros = macro.scope if macro.scope is not None else frame.macros
        out: List[str] = []
        self._render_nodes(macro.body, RenderFrame(scope, {}, macros, frame.depth + 1), out)
        return "".join(out)


def _loop_object(index0: int, length: int) -> Dict[str, Any]:
    # even/odd follow index0: the first item is even
    return {
        "index": index0 + 1,
        "index0": index0,
        "first": index0 == 0,
        "last": index0 == length - 1,
        "length": length,
        "revindex": length - index0,
        "revindex0": length - index0 - 1,
        "even": index0 % 2 == 0,
        "odd": index0 % 2 == 1,
    }


def render_nodes(nodes: Sequence[TemplateNode], context: Any, **kwargs) -> str:
    """Renders nodes with a one-off Renderer (builtin functions, builtin filters)."""
    return Renderer(functions=FunctionRegistry()).render(nodes, context, **kwargs)


__all__ = ["Renderer", "RenderFrame", "render_nodes", "DEFAULT_MACRO_DEPTH"]
