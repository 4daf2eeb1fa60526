"""
Template parser.

Recursive-descent consumer of the lexer's token stream. Every nested body
(for, if/elif/else, block, macro) is parsed by a recursive call to parse()
with the set of terminator keywords that may close it.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from .errors import ErrorCode, ParserError
from .lexer import TemplateLexer, Token, TokenType
from .nodes import (
    BlockNode, Condition, Expression, ExtendsNode, Filtered, ForNode, FunctionCall,
    IfNode, ImportNode, IncludeNode, Literal, MacroNode, ParentNode, SetNode,
    TemplateAST, TemplateNode, TextNode, VariableNode, VariablePath,
)

COMPARISON_OPERATORS = ("==", "!=", "<", ">", "<=", ">=")

_CONSTANTS = {"true": True, "false": False, "null": None}


class TemplateParser:
    """
    Recursive parser for templates.

    Pulls tokens from the lexer on demand; one-token lookahead goes
    through TemplateLexer.peek().
    """

    def __init__(self, lexer: TemplateLexer):
        self.lexer = lexer
        self._statements = {
            TokenType.FOR: self._parse_for,
            TokenType.IF: self._parse_if,
            TokenType.SET: self._parse_set,
            TokenType.EXTENDS: self._parse_extends,
            TokenType.BLOCK: self._parse_block,
            TokenType.INCLUDE: self._parse_include,
            TokenType.MACRO: self._parse_macro,
            TokenType.FROM: self._parse_from_import,
            TokenType.PARENT: self._parse_parent,
        }

    def parse(
        self, stop_on: Optional[Sequence[TokenType]] = None
    ) -> Tuple[TemplateAST, Optional[Token]]:
        """
        Parses nodes until EOF or one of the stop_on keywords.

        The terminating tag is consumed. For 'elif' only '{% elif' is
        consumed, the caller reads the condition that follows.

        Args:
            stop_on: Terminator keywords accepted at this level; None at top level

        Returns:
            (nodes, terminator keyword token or None at EOF)

        Raises:
            ParserError: On a syntax error
            LexerError: On a lexical error
        """
        nodes: List[TemplateNode] = []

        while True:
            token = self.lexer.next_token()

            if token.type == TokenType.EOF:
                if stop_on:
                    expected = ", ".join(t.value.lower() for t in stop_on)
                    raise ParserError(
                        ErrorCode.UNEXPECTED_EOF, f"expected {expected}", line=token.line
                    )
                return tuple(nodes), None

            if token.type == TokenType.TEXT:
                nodes.append(TextNode(token.value))
            elif token.type == TokenType.VARIABLE_START:
                nodes.append(self._parse_variable())
            elif token.type == TokenType.TAG_START:
                keyword = self._next()
                if stop_on and keyword.type in stop_on:
                    if keyword.type != TokenType.ELIF:
                        self._expect_tag_end()
                    return tuple(nodes), keyword
                handler = self._statements.get(keyword.type)
                if handler is None:
                    raise self._unexpected(keyword)
                nodes.append(handler())
            else:
                raise self._unexpected(token)

    # ---- token helpers ----

    def _next(self) -> Token:
        token = self.lexer.next_token()
        if token.type == TokenType.EOF:
            raise ParserError(ErrorCode.UNEXPECTED_EOF, "unclosed tag or expression", line=token.line)
        return token

    def _expect(self, token_type: TokenType, code: ErrorCode) -> Token:
        token = self._next()
        if token.type != token_type:
            raise ParserError(code, self._describe(token), line=token.line)
        return token

    def _expect_operator(self, value: str, code: ErrorCode) -> Token:
        token = self._next()
        if token.type != TokenType.OPERATOR or token.value != value:
            raise ParserError(code, f"expected '{value}', {self._describe(token)}", line=token.line)
        return token

    def _expect_tag_end(self) -> None:
        self._expect(TokenType.TAG_END, ErrorCode.EXPECTED_TAG_END)

    def _peek_is(self, token_type: TokenType, value: Optional[str] = None) -> bool:
        token = self.lexer.peek()
        return token.type == token_type and (value is None or token.value == value)

    @staticmethod
    def _describe(token: Token) -> str:
        return f"got {token.type.name} {token.value!r}"

    def _unexpected(self, token: Token) -> ParserError:
        if token.type == TokenType.EOF:
            return ParserError(ErrorCode.UNEXPECTED_EOF, line=token.line)
        return ParserError(ErrorCode.UNEXPECTED_TOKEN, self._describe(token), line=token.line)

    # ---- expressions ----

    def _parse_variable(self) -> VariableNode:
        """{{ EXPR }}"""
        expr = self._parse_expression()
        self._expect(TokenType.VARIABLE_END, ErrorCode.EXPECTED_VARIABLE_END)
        return VariableNode(expr)

    def _parse_expression(self) -> Expression:
        """EXPR := PRIMARY ( '|' FILTER )?"""
        expr = self._parse_primary()
        if self._peek_is(TokenType.PIPE):
            self._next()
            expr = Filtered(expr, self._parse_filter_spec())
        return expr

    def _parse_filter_spec(self) -> str:
        """FILTER := NAME ( ':' ARG )?  ->  'name' or 'name:arg'"""
        name = self._expect(TokenType.IDENTIFIER, ErrorCode.EXPECTED_IDENTIFIER).value
        if not self._peek_is(TokenType.OPERATOR, ":"):
            return name
        self._next()
        arg = self._next()
        if arg.type == TokenType.OPERATOR and arg.value == "-" and self._peek_is(TokenType.NUMBER):
            return f"{name}:-{self._next().value}"
        if arg.type not in (TokenType.STRING, TokenType.NUMBER, TokenType.IDENTIFIER):
            raise ParserError(ErrorCode.INVALID_LITERAL, self._describe(arg), line=arg.line)
        return f"{name}:{arg.value}"

    def _parse_primary(self) -> Expression:
        """
        PRIMARY := STRING | NUMBER | true | false | null | PATH | NAME '(' ARGS ')'
        """
        token = self._next()

        if token.type == TokenType.STRING:
            return Literal(token.value)
        if token.type == TokenType.NUMBER:
            return Literal(_parse_number(token.value))
        if token.type == TokenType.OPERATOR and token.value == "-" and self._peek_is(TokenType.NUMBER):
            return Literal(-_parse_number(self._next().value))
        if token.type == TokenType.IDENTIFIER:
            if token.value in _CONSTANTS:
                return Literal(_CONSTANTS[token.value])
            if self._peek_is(TokenType.OPERATOR, "("):
                self._next()
                return FunctionCall(token.value, self._parse_call_args())
            return VariablePath(token.value)

        raise ParserError(ErrorCode.INVALID_PRIMARY, self._describe(token), line=token.line)

    def _parse_call_args(self) -> Tuple[Expression, ...]:
        """ARGS := ( EXPR ( ',' EXPR )* )? ')' ; the '(' is already consumed."""
        args: List[Expression] = []
        if self._peek_is(TokenType.OPERATOR, ")"):
            self._next()
            return ()
        while True:
            args.append(self._parse_expression())
            token = self._next()
            if token.type == TokenType.OPERATOR and token.value == ")":
                return tuple(args)
            if token.type != TokenType.OPERATOR or token.value != ",":
                raise ParserError(ErrorCode.EXPECTED_COMMA, self._describe(token), line=token.line)

    def _parse_condition(self) -> Condition:
        """COND := PATH ( OP LITERAL )?"""
        path = self._expect(TokenType.IDENTIFIER, ErrorCode.EXPECTED_IDENTIFIER)
        if self._peek_is(TokenType.TAG_END):
            return Condition(path.value)

        op = self._next()
        if op.type != TokenType.OPERATOR or op.value not in COMPARISON_OPERATORS:
            raise ParserError(ErrorCode.EXPECTED_OPERATOR, self._describe(op), line=op.line)
        return Condition(path.value, op.value, self._parse_literal())

    def _parse_literal(self):
        token = self._next()
        if token.type == TokenType.STRING:
            return token.value
        if token.type == TokenType.NUMBER:
            return _parse_number(token.value)
        if token.type == TokenType.OPERATOR and token.value == "-" and self._peek_is(TokenType.NUMBER):
            return -_parse_number(self._next().value)
        if token.type == TokenType.IDENTIFIER and token.value in _CONSTANTS:
            return _CONSTANTS[token.value]
        raise ParserError(ErrorCode.INVALID_LITERAL, self._describe(token), line=token.line)

    # ---- statements ----

    def _parse_for(self) -> ForNode:
        """{% for ITEM in ITERABLE (| FILTER)? %} ... {% endfor %}"""
        item = self._expect(TokenType.IDENTIFIER, ErrorCode.EXPECTED_IDENTIFIER)
        self._expect(TokenType.IN, ErrorCode.EXPECTED_IN)
        iterable = self._parse_primary()

        iterable_filter = None
        if self._peek_is(TokenType.PIPE):
            self._next()
            iterable_filter = self._parse_filter_spec()
        self._expect_tag_end()

        body, _ = self.parse((TokenType.ENDFOR,))
        return ForNode(item.value, iterable, body, iterable_filter)

    def _parse_if(self) -> IfNode:
        """{% if %} ... ({% elif %} ...)* ({% else %} ...)? {% endif %}"""
        condition = self._parse_condition()
        self._expect_tag_end()

        branch_end = (TokenType.ELIF, TokenType.ELSE, TokenType.ENDIF)
        body, terminator = self.parse(branch_end)

        elif_branches = []
        while terminator.type == TokenType.ELIF:
            elif_condition = self._parse_condition()
            self._expect_tag_end()
            elif_body, terminator = self.parse(branch_end)
            elif_branches.append((elif_condition, elif_body))

        else_body: TemplateAST = ()
        if terminator.type == TokenType.ELSE:
            else_body, _ = self.parse((TokenType.ENDIF,))

        return IfNode(condition, body, tuple(elif_branches), else_body)

    def _parse_set(self) -> SetNode:
        name = self._expect(TokenType.IDENTIFIER, ErrorCode.EXPECTED_IDENTIFIER)
        self._expect_operator("=", ErrorCode.EXPECTED_EQUALS)
        value = self._parse_expression()
        self._expect_tag_end()
        return SetNode(name.value, value)

    def _parse_extends(self) -> ExtendsNode:
        name = self._expect(TokenType.STRING, ErrorCode.EXPECTED_STRING)
        self._expect_tag_end()
        return ExtendsNode(name.value)

    def _parse_block(self) -> BlockNode:
        name = self._expect(TokenType.IDENTIFIER, ErrorCode.EXPECTED_IDENTIFIER)
        self._expect_tag_end()
        body, _ = self.parse((TokenType.ENDBLOCK,))
        return BlockNode(name.value, body)

    def _parse_include(self) -> IncludeNode:
        name = self._expect(TokenType.STRING, ErrorCode.EXPECTED_STRING)
        self._expect_tag_end()
        return IncludeNode(name.value)

    def _parse_macro(self) -> MacroNode:
        """{% macro NAME(P, ...) %} ... {% endmacro %}"""
        name = self._expect(TokenType.IDENTIFIER, ErrorCode.EXPECTED_IDENTIFIER)
        self._expect_operator("(", ErrorCode.UNEXPECTED_TOKEN)

        params: List[str] = []
        if self._peek_is(TokenType.OPERATOR, ")"):
            self._next()
        else:
            while True:
                params.append(self._expect(TokenType.IDENTIFIER, ErrorCode.EXPECTED_IDENTIFIER).value)
                token = self._next()
                if token.type == TokenType.OPERATOR and token.value == ")":
                    break
                if token.type != TokenType.OPERATOR or token.value != ",":
                    raise ParserError(ErrorCode.EXPECTED_COMMA, self._describe(token), line=token.line)
        self._expect_tag_end()

        body, _ = self.parse((TokenType.ENDMACRO,))
        return MacroNode(name.value, tuple(params), body)

    def _parse_from_import(self) -> ImportNode:
        """{% from "NAME" import A, B %}"""
        template = self._expect(TokenType.STRING, ErrorCode.EXPECTED_STRING)
        self._expect(TokenType.IMPORT, ErrorCode.EXPECTED_IMPORT)

        names = [self._expect(TokenType.IDENTIFIER, ErrorCode.EXPECTED_IDENTIFIER).value]
        while not self._peek_is(TokenType.TAG_END):
            self._expect_operator(",", ErrorCode.EXPECTED_COMMA)
            names.append(self._expect(TokenType.IDENTIFIER, ErrorCode.EXPECTED_IDENTIFIER).value)
        self._expect_tag_end()
        return ImportNode(template.value, tuple(names))

    def _parse_parent(self) -> ParentNode:
        self._expect_tag_end()
        return ParentNode()


def _parse_number(text: str):
    """Float if the literal has a fraction, int otherwise."""
    return float(text) if "." in text else int(text)


def parse_template(source: str) -> TemplateAST:
    """
    Convenience function to parse template source into an AST.

    Raises:
        LexerError: On a lexical error
        ParserError: On a syntax error
    """
    nodes, _ = TemplateParser(TemplateLexer(source)).parse()
    return nodes


__all__ = ["TemplateParser", "parse_template", "COMPARISON_OPERATORS"]
