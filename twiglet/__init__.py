"""
Twig-style template engine.

Lexer -> Parser -> AST -> Renderer, with an Engine on top that caches
parsed templates and resolves extends/block/parent/include/import.
"""

from __future__ import annotations

from .config import ConfigError, EngineConfig, create_engine, load_config
from .engine import Engine, MergedTemplate, Template
from .errors import (
    CircularInheritanceError, ErrorCode, FunctionCallError, LexerError, MaxDepthExceededError,
    ParserError, RenderError, TemplateError, TemplateLoadError, TemplateNotFoundError,
    TemplateRuntimeError, TemplateSyntaxError,
)
from .functions import FunctionRegistry
from .loader import DictLoader, FileSystemLoader, FunctionLoader, Loader
from .parser import parse_template
from .renderer import Renderer

__all__ = [
    "Engine", "Template", "MergedTemplate",
    "EngineConfig", "ConfigError", "load_config", "create_engine",
    "FunctionRegistry", "Renderer", "parse_template",
    "Loader", "DictLoader", "FunctionLoader", "FileSystemLoader",
    "ErrorCode", "TemplateError", "TemplateSyntaxError", "LexerError", "ParserError",
    "TemplateRuntimeError", "RenderError", "FunctionCallError", "MaxDepthExceededError",
    "TemplateLoadError", "TemplateNotFoundError", "CircularInheritanceError",
]
