"""
Template engine.

Coordinates the loader, the parser and the renderer:
- keeps a per-name cache of parsed templates
- resolves inheritance (extends / block / parent) into one flat node list
- inlines includes and resolves macro imports
- aggregates macros across the extends chain
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set, Tuple

from .config import EngineConfig
from .errors import (
    CircularInheritanceError, ErrorCode, MaxDepthExceededError, RenderError, TemplateError,
)
from .filters import FILTERS, FilterFn
from .functions import FunctionFn, FunctionRegistry
from .loader import Loader
from .nodes import (
    BlockNode, ExtendsNode, ForNode, IfNode, ImportNode, IncludeNode, Macro, MacroNode,
    ParentNode, SetNode, TemplateAST, TemplateNode, TextNode, iter_child_bodies,
)
from .parser import parse_template
from .renderer import Renderer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Template:
    """
    Parsed template as stored in the cache.

    Attributes:
        name: Template name
        ast: Top-level nodes without macro definitions; block nodes stay
            in place as position markers
        blocks: Body of every block defined in the template (at any depth)
        macros: Macros defined in the template
        extends: Name of the parent template, if any
    """
    name: str
    ast: TemplateAST
    blocks: Mapping[str, TemplateAST]
    macros: Mapping[str, Macro]
    extends: Optional[str] = None


@dataclass(frozen=True)
class MergedTemplate:
    """Render-ready result of inheritance resolution."""
    nodes: TemplateAST
    macros: Mapping[str, Macro]


@dataclass
class _MergeState:
    """Scratch state of one extends-chain merge."""
    # block name -> bodies from root to leaf; the last entry is the leaf-most override
    versions: Dict[str, List[TemplateAST]]
    macros: Dict[str, Macro]
    # templates currently being merged (extends chains and include stack)
    active: List[str]
    resolved: Dict[Tuple[str, int], TemplateAST] = field(default_factory=dict)
    resolving: Set[Tuple[str, int]] = field(default_factory=set)
    # macros defined in the extends chain itself; imports do not replace them
    defined: Set[str] = field(default_factory=set)


class Engine:
    """
    Template engine.

    Thread-safe for concurrent renders: the template cache is the only
    shared mutable state and is guarded by a lock.
    """

    def __init__(
        self,
        loader: Loader,
        functions: Optional[FunctionRegistry] = None,
        config: Optional[EngineConfig] = None,
    ):
        """
        Args:
            loader: Source of template text
            functions: Function registry; a registry with the builtins when omitted
            config: Engine limits; defaults when omitted
        """
        self.loader = loader
        self.config = config or EngineConfig()
        self.functions = functions if functions is not None else FunctionRegistry()
        self._filters: Dict[str, FilterFn] = dict(FILTERS)
        self.renderer = Renderer(self.functions, self._filters, self.config.macro_depth)

        self._cache: Dict[str, Template] = {}
        self._lock = threading.Lock()

    # ---- public API ----

    def render(self, name: str, context: Any = None) -> str:
        """
        Renders a template by name.

        Raises:
            TemplateError: Any load, syntax or runtime error; no partial output
        """
        template = self.load_template(name)
        return self._render_template(template, context)

    def render_string(self, source: str, context: Any = None, name: str = "<string>") -> str:
        """Renders template source directly; the parsed result is not cached."""
        template = self._compile(name, source)
        return self._render_template(template, context)

    def register_function(
        self,
        name: str,
        min_args: int,
        max_args: int,
        fn: FunctionFn,
        description: str = "",
    ) -> None:
        self.functions.register(name, min_args, max_args, fn, description)

    def register_filter(self, name: str, fn: FilterFn) -> None:
        """Adds or overrides a filter for this engine only."""
        self._filters[name] = fn

    def load_template(self, name: str) -> Template:
        """
        Returns the parsed template, loading it on first request.

        The loader is called at most once per name. Failed loads are not
        cached, the next request tries again.
        """
        with self._lock:
            cached = self._cache.get(name)
            if cached is not None:
                logger.debug(f"Template cache hit: '{name}'")
                return cached

            logger.debug(f"Template cache miss: '{name}'")
            try:
                source = self.loader.load(name)
            except TemplateError as e:
                raise e.with_template(name)
            template = self._compile(name, source)
            self._cache[name] = template
            return template

    def merge(self, name: str) -> MergedTemplate:
        """Resolves inheritance, includes and imports of a template."""
        return self._merge_template(self.load_template(name), [])

    # ---- compilation ----

    def _compile(self, name: str, source: str) -> Template:
        try:
            ast = parse_template(source)
        except TemplateError as e:
            raise e.with_template(name)

        blocks: Dict[str, TemplateAST] = {}
        macros: Dict[str, Macro] = {}
        for node in _walk(ast):
            if isinstance(node, BlockNode):
                blocks.setdefault(node.name, node.body)
            elif isinstance(node, MacroNode):
                macros[node.name] = Macro(node.params, node.body)

        extends = next((n.template_name for n in ast if isinstance(n, ExtendsNode)), None)
        filtered = tuple(n for n in ast if not isinstance(n, MacroNode))
        logger.debug(
            f"Parsed template '{name}' -> {len(ast)} nodes, "
            f"{len(blocks)} block(s), {len(macros)} macro(s)"
        )
        return Template(name, filtered, blocks, macros, extends)

    # ---- rendering ----

    def _render_template(self, template: Template, context: Any) -> str:
        try:
            merged = self._merge_template(template, [])
            return self.renderer.render(merged.nodes, {} if context is None else context, merged.macros)
        except TemplateError as e:
            raise e.with_template(template.name)

    # ---- inheritance merge ----

    def _load_chain(self, leaf: Template, active: List[str]) -> List[Template]:
        """Extends chain ordered root first; guards against cycles and depth."""
        chain: List[Template] = []
        current = leaf
        while True:
            names = active + [t.name for t in chain]
            if current.name in names:
                raise CircularInheritanceError(names + [current.name])
            chain.append(current)
            if len(names) + 1 > self.config.max_depth:
                raise MaxDepthExceededError(
                    f"template nesting deeper than {self.config.max_depth}",
                    template_name=leaf.name,
                )
            if current.extends is None:
                break
            current = self.load_template(current.extends)
        chain.reverse()
        return chain

    def _merge_template(self, leaf: Template, active: List[str]) -> MergedTemplate:
        chain = self._load_chain(leaf, active)
        if len(chain) > 1:
            logger.debug(f"Merging extends chain: {' <- '.join(t.name for t in chain)}")

        versions: Dict[str, List[TemplateAST]] = {}
        macros: Dict[str, Macro] = {}
        for template in chain:
            for block_name, body in template.blocks.items():
                versions.setdefault(block_name, []).append(body)
            macros.update(template.macros)

        state = _MergeState(versions, {}, active + [t.name for t in chain], defined=set(macros))

        for macro_name, macro in macros.items():
            state.macros[macro_name] = Macro(macro.params, self._expand(macro.body, state))

        root = chain[0]
        prelude: List[TemplateNode] = []
        trailing: List[TemplateNode] = []
        ancestor_blocks: Set[str] = set(root.blocks)
        for template in chain[1:]:
            self._collect_out_of_layout(template, ancestor_blocks, prelude, trailing)
            ancestor_blocks.update(template.blocks)

        nodes = self._expand(prelude, state) + self._expand(root.ast, state) + self._expand(trailing, state)
        return MergedTemplate(tuple(nodes), dict(state.macros))

    @staticmethod
    def _collect_out_of_layout(
        template: Template,
        ancestor_blocks: Set[str],
        prelude: List[TemplateNode],
        trailing: List[TemplateNode],
    ) -> None:
        """
        Sorts top-level nodes of an extending template.

        set/import run before the inherited layout; blocks no ancestor
        places and other content go after it; blank text is dropped.
        """
        for node in template.ast:
            if isinstance(node, ExtendsNode):
                continue
            if isinstance(node, (SetNode, ImportNode)):
                prelude.append(node)
            elif isinstance(node, BlockNode):
                if node.name not in ancestor_blocks:
                    trailing.append(node)
            elif isinstance(node, TextNode) and not node.text.strip():
                continue
            else:
                trailing.append(node)

    def _expand(
        self,
        nodes: TemplateAST,
        state: _MergeState,
        parent_of: Optional[Tuple[str, int]] = None,
    ) -> List[TemplateNode]:
        """
        Rewrites a node list for rendering.

        Blocks get their leaf-most body, parent markers the ancestor's body,
        includes the included template's nodes; imports register macros.

        Args:
            nodes: Nodes to rewrite
            state: Merge state
            parent_of: (block name, version index) when rewriting a block body
        """
        out: List[TemplateNode] = []
        for node in nodes:
            if isinstance(node, BlockNode):
                out.append(BlockNode(node.name, self._resolve_block(node.name, state)))
            elif isinstance(node, ParentNode):
                if parent_of is not None and parent_of[1] > 0:
                    out.extend(self._resolve_block(parent_of[0], state, parent_of[1] - 1))
            elif isinstance(node, IncludeNode):
                out.extend(self._include(node.template_name, state))
            elif isinstance(node, ImportNode):
                self._import(node, state)
            elif isinstance(node, (ExtendsNode, MacroNode)):
                continue
            elif isinstance(node, ForNode):
                out.append(replace(node, body=tuple(self._expand(node.body, state, parent_of))))
            elif isinstance(node, IfNode):
                out.append(replace(
                    node,
                    body=tuple(self._expand(node.body, state, parent_of)),
                    elif_branches=tuple(
                        (condition, tuple(self._expand(body, state, parent_of)))
                        for condition, body in node.elif_branches
                    ),
                    else_body=tuple(self._expand(node.else_body, state, parent_of)),
                ))
            else:
                out.append(node)
        return out

    def _resolve_block(self, name: str, state: _MergeState, level: Optional[int] = None) -> TemplateAST:
        """Body of a block version (the leaf-most by default) with everything inside resolved."""
        versions = state.versions[name]
        if level is None:
            level = len(versions) - 1

        key = (name, level)
        if key in state.resolved:
            return state.resolved[key]
        if key in state.resolving:
            raise MaxDepthExceededError(f"block '{name}' contains itself")

        state.resolving.add(key)
        try:
            body = tuple(self._expand(versions[level], state, key))
        finally:
            state.resolving.discard(key)
        state.resolved[key] = body
        return body

    def _include(self, name: str, state: _MergeState) -> List[TemplateNode]:
        logger.debug(f"Including template '{name}'")
        included = self._merge_template(self.load_template(name), state.active)
        for macro_name, macro in included.macros.items():
            state.macros.setdefault(macro_name, macro)
        return list(included.nodes)

    def _import(self, node: ImportNode, state: _MergeState) -> None:
        source = self._merge_template(self.load_template(node.template_name), state.active)
        for macro_name in node.macro_names:
            macro = source.macros.get(macro_name)
            if macro is None:
                raise RenderError(
                    ErrorCode.UNKNOWN_FUNCTION,
                    f"macro '{macro_name}' is not defined in '{node.template_name}'",
                )
            if macro_name in state.defined:
                logger.debug(f"Import of '{macro_name}' from '{node.template_name}' skipped: defined locally")
                continue
            state.macros[macro_name] = macro if macro.scope is not None else replace(macro, scope=source.macros)


def _walk(nodes: TemplateAST) -> Iterator[TemplateNode]:
    """Depth-first walk over nodes and every nested body."""
    for node in nodes:
        yield node
        for body in iter_child_bodies(node):
            yield from _walk(body)


__all__ = ["Engine", "Template", "MergedTemplate"]
