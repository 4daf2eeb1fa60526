"""
Lexical analyzer for the template engine.

Splits template source into a token stream. The lexer has two scanning
modes: plain text outside delimiters and expression scanning inside
{{ ... }} / {% ... %}. Comments {# ... #} are dropped while scanning text.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import List

from .errors import ErrorCode, LexerError


class TokenType(enum.Enum):
    """Token kinds."""

    TEXT = "TEXT"

    # Delimiters
    VARIABLE_START = "VARIABLE_START"    # {{
    VARIABLE_END = "VARIABLE_END"        # }}
    TAG_START = "TAG_START"              # {%
    TAG_END = "TAG_END"                  # %}

    # Expression atoms
    IDENTIFIER = "IDENTIFIER"
    STRING = "STRING"
    NUMBER = "NUMBER"
    OPERATOR = "OPERATOR"
    PIPE = "PIPE"                        # |

    # Keywords
    FOR = "FOR"
    IN = "IN"
    IF = "IF"
    ELIF = "ELIF"
    ELSE = "ELSE"
    SET = "SET"
    ENDFOR = "ENDFOR"
    ENDIF = "ENDIF"
    EXTENDS = "EXTENDS"
    BLOCK = "BLOCK"
    ENDBLOCK = "ENDBLOCK"
    INCLUDE = "INCLUDE"
    MACRO = "MACRO"
    ENDMACRO = "ENDMACRO"
    FROM = "FROM"
    IMPORT = "IMPORT"
    PARENT = "PARENT"

    EOF = "EOF"


class LexerMode(enum.Enum):
    TEXT = "text"
    EXPRESSION = "expression"


@dataclass(frozen=True)
class Token:
    """Token with the source line it was found on."""
    type: TokenType
    value: str
    line: int

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, line={self.line})"


KEYWORDS = {
    "for": TokenType.FOR,
    "in": TokenType.IN,
    "if": TokenType.IF,
    "elif": TokenType.ELIF,
    "else": TokenType.ELSE,
    "set": TokenType.SET,
    "endfor": TokenType.ENDFOR,
    "endif": TokenType.ENDIF,
    "extends": TokenType.EXTENDS,
    "block": TokenType.BLOCK,
    "endblock": TokenType.ENDBLOCK,
    "include": TokenType.INCLUDE,
    "macro": TokenType.MACRO,
    "endmacro": TokenType.ENDMACRO,
    "from": TokenType.FROM,
    "import": TokenType.IMPORT,
    "parent": TokenType.PARENT,
}


class TemplateLexer:
    """
    Pull-style template lexer.

    The parser calls next_token() for every token it needs and peek()
    for one-token lookahead.
    """

    _IDENTIFIER = re.compile(r'[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*')
    _NUMBER = re.compile(r'[0-9]+(?:\.[0-9]+)?')
    _WHITESPACE = re.compile(r'\s+')
    _TWO_CHAR_OPERATORS = ("==", "!=", "<=", ">=")

    def __init__(self, source: str):
        self.source = source
        self.position = 0
        self.line = 1
        self.mode = LexerMode.TEXT
        self.length = len(source)

    def tokenize(self) -> List[Token]:
        """Tokenizes the whole source; the last token is always EOF."""
        tokens: List[Token] = []
        while True:
            token = self.next_token()
            tokens.append(token)
            if token.type == TokenType.EOF:
                return tokens

    def peek(self) -> Token:
        """Returns the next token without consuming it."""
        saved = (self.position, self.line, self.mode)
        try:
            return self.next_token()
        finally:
            self.position, self.line, self.mode = saved

    def next_token(self) -> Token:
        """Extracts the next token from the input."""
        if self.mode == LexerMode.TEXT:
            return self._next_text_token()
        return self._next_expression_token()

    # ---- text mode ----

    def _next_text_token(self) -> Token:
        parts: List[str] = []
        start_line = self.line

        while self.position < self.length:
            if self.source.startswith("{#", self.position):
                self._skip_comment()
                continue

            if self.source.startswith("{{", self.position) or self.source.startswith("{%", self.position):
                if parts:
                    break
                token_type = (
                    TokenType.VARIABLE_START
                    if self.source[self.position + 1] == "{"
                    else TokenType.TAG_START
                )
                value = self.source[self.position:self.position + 2]
                self.position += 2
                self.mode = LexerMode.EXPRESSION
                return Token(token_type, value, self.line)

            end = self._find_text_end()
            chunk = self.source[self.position:end]
            self.line += chunk.count("\n")
            self.position = end
            parts.append(chunk)

        if parts:
            return Token(TokenType.TEXT, "".join(parts), start_line)
        return Token(TokenType.EOF, "", self.line)

    def _find_text_end(self) -> int:
        """Position of the next '{{', '{%' or '{#' or end of input."""
        pos = self.source.find("{", self.position)
        while pos != -1 and pos + 1 < self.length:
            if self.source[pos + 1] in "{%#":
                return pos
            pos = self.source.find("{", pos + 1)
        return self.length

    def _skip_comment(self) -> None:
        end = self.source.find("#}", self.position + 2)
        if end == -1:
            raise LexerError(ErrorCode.UNEXPECTED_EOF, "unterminated comment", line=self.line)
        self.line += self.source.count("\n", self.position, end)
        self.position = end + 2

    # ---- expression mode ----

    def _next_expression_token(self) -> Token:
        whitespace = self._WHITESPACE.match(self.source, self.position)
        if whitespace:
            self.line += whitespace.group(0).count("\n")
            self.position = whitespace.end()

        if self.position >= self.length:
            return Token(TokenType.EOF, "", self.line)

        if self.source.startswith("}}", self.position):
            self.position += 2
            self.mode = LexerMode.TEXT
            return Token(TokenType.VARIABLE_END, "}}", self.line)
        if self.source.startswith("%}", self.position):
            self.position += 2
            self.mode = LexerMode.TEXT
            return Token(TokenType.TAG_END, "%}", self.line)

        char = self.source[self.position]

        if char.isalpha() or char == "_":
            match = self._IDENTIFIER.match(self.source, self.position)
            value = match.group(0)
            self.position = match.end()
            return Token(KEYWORDS.get(value, TokenType.IDENTIFIER), value, self.line)

        if char.isdigit():
            match = self._NUMBER.match(self.source, self.position)
            self.position = match.end()
            return Token(TokenType.NUMBER, match.group(0), self.line)

        if char in "\"'":
            return self._read_string(char)

        if char == "|":
            self.position += 1
            return Token(TokenType.PIPE, "|", self.line)

        two = self.source[self.position:self.position + 2]
        if two in self._TWO_CHAR_OPERATORS:
            self.position += 2
            return Token(TokenType.OPERATOR, two, self.line)

        self.position += 1
        return Token(TokenType.OPERATOR, char, self.line)

    def _read_string(self, quote: str) -> Token:
        start_line = self.line
        end = self.source.find(quote, self.position + 1)
        if end == -1:
            raise LexerError(ErrorCode.UNTERMINATED_STRING, "missing closing quote", line=start_line)
        value = self.source[self.position + 1:end]
        self.line += value.count("\n")
        self.position = end + 1
        return Token(TokenType.STRING, value, start_line)


def tokenize_template(text: str) -> List[Token]:
    """
    Convenience function to tokenize a template.

    Raises:
        LexerError: On a lexical error
    """
    return TemplateLexer(text).tokenize()


__all__ = ["TokenType", "Token", "LexerMode", "TemplateLexer", "KEYWORDS", "tokenize_template"]
