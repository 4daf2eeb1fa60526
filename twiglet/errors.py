"""
Error taxonomy of the template engine.

All expected errors that should be shown to the template author
as clean messages (without stack traces) inherit from TemplateError.
Each error carries a machine-readable ErrorCode plus optional
diagnostics (template name and source line).

Programming errors and bugs should NOT inherit from TemplateError;
they propagate with full tracebacks.
"""

from __future__ import annotations

import enum
from typing import Optional


class ErrorCode(enum.Enum):
    """Machine-readable error kinds."""

    # Lexical
    UNTERMINATED_STRING = "UnterminatedString"

    # Syntax
    UNEXPECTED_EOF = "UnexpectedEof"
    UNEXPECTED_TOKEN = "UnexpectedToken"
    EXPECTED_IDENTIFIER = "ExpectedIdentifier"
    EXPECTED_STRING = "ExpectedString"
    EXPECTED_OPERATOR = "ExpectedOperator"
    EXPECTED_EQUALS = "ExpectedEquals"
    EXPECTED_COMMA = "ExpectedComma"
    EXPECTED_VARIABLE_END = "ExpectedVariableEnd"
    EXPECTED_TAG_END = "ExpectedTagEnd"
    EXPECTED_IN = "ExpectedIn"
    EXPECTED_IMPORT = "ExpectedImport"
    INVALID_LITERAL = "InvalidLiteral"
    INVALID_PRIMARY = "InvalidPrimary"

    # Semantic / runtime
    VARIABLE_NOT_FOUND = "VariableNotFound"
    ITERABLE_NOT_ARRAY = "IterableNotArray"
    INVALID_PATH = "InvalidPath"
    UNSUPPORTED_OP = "UnsupportedOp"
    UNKNOWN_FUNCTION = "UnknownFunction"
    FUNCTION_NOT_FOUND = "FunctionNotFound"
    TOO_FEW_ARGUMENTS = "TooFewArguments"
    TOO_MANY_ARGUMENTS = "TooManyArguments"
    INVALID_ARGUMENTS = "InvalidArguments"
    INVALID_MACRO_ARGS = "InvalidMacroArgs"
    INVALID_TYPE = "InvalidType"
    EMPTY_ARRAY = "EmptyArray"
    CONSTANT_NOT_FOUND = "ConstantNotFound"
    MAX_DEPTH_EXCEEDED = "MaxDepthExceeded"

    # Loading
    TEMPLATE_NOT_FOUND = "TemplateNotFound"
    TEMPLATE_LOAD_FAILED = "TemplateLoadFailed"
    CIRCULAR_INHERITANCE = "CircularInheritance"


class TemplateError(Exception):
    """
    Base class for all user-facing template errors.

    Attributes:
        code: Error kind
        detail: Human-readable description without location
        line: Source line (1-based) if known
        template_name: Name of the template being processed if known
    """

    def __init__(
        self,
        code: ErrorCode,
        detail: str = "",
        *,
        line: Optional[int] = None,
        template_name: Optional[str] = None,
    ):
        self.code = code
        self.detail = detail
        self.line = line
        self.template_name = template_name
        super().__init__(self._format())

    def _format(self) -> str:
        message = self.code.value
        if self.detail:
            message += f": {self.detail}"
        where = []
        if self.template_name:
            where.append(f"template '{self.template_name}'")
        if self.line is not None:
            where.append(f"line {self.line}")
        if where:
            message += f" ({', '.join(where)})"
        return message

    def with_template(self, template_name: str) -> TemplateError:
        """Attaches the template name unless one is already set."""
        if self.template_name is None:
            self.template_name = template_name
            self.args = (self._format(),)
        return self


class TemplateSyntaxError(TemplateError):
    """Template source could not be tokenized or parsed."""
    pass


class LexerError(TemplateSyntaxError):
    """Lexical analysis error."""
    pass


class ParserError(TemplateSyntaxError):
    """Syntax analysis error."""
    pass


class TemplateRuntimeError(TemplateError):
    """Error raised while evaluating a parsed template."""
    pass


class RenderError(TemplateRuntimeError):
    """Evaluation error inside the renderer."""
    pass


class FunctionCallError(TemplateRuntimeError):
    """Registered function lookup or invocation failed."""
    pass


class MaxDepthExceededError(TemplateRuntimeError):
    """Recursion guard tripped (nested includes, extends or macro calls)."""

    def __init__(self, detail: str = "", **kwargs):
        super().__init__(ErrorCode.MAX_DEPTH_EXCEEDED, detail, **kwargs)


class TemplateLoadError(TemplateError):
    """Template source could not be obtained."""
    pass


class TemplateNotFoundError(TemplateLoadError):
    """The loader does not know the requested template."""

    def __init__(self, name: str):
        super().__init__(ErrorCode.TEMPLATE_NOT_FOUND, f"'{name}'")
        self.name = name


class CircularInheritanceError(TemplateLoadError):
    """A template extends or includes itself through its own chain."""

    def __init__(self, chain):
        self.chain = tuple(chain)
        super().__init__(ErrorCode.CIRCULAR_INHERITANCE, " -> ".join(self.chain))


__all__ = [
    "ErrorCode",
    "TemplateError",
    "TemplateSyntaxError",
    "LexerError",
    "ParserError",
    "TemplateRuntimeError",
    "RenderError",
    "FunctionCallError",
    "MaxDepthExceededError",
    "TemplateLoadError",
    "TemplateNotFoundError",
    "CircularInheritanceError",
]
