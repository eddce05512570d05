"""
HCL Lexer (Tokenizer)

Converts raw .tf files into a stream of tokens.
Handles: identifiers, operators, braces, strings with templates, heredocs,
numbers, and the three HCL comment styles.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, List, Optional


class TokenType(Enum):
    """Types of tokens in HCL."""
    IDENTIFIER = auto()      # resource, aws_instance, k8s-control-plane
    STRING = auto()          # "quoted ${template}"
    HEREDOC = auto()         # <<EOF ... EOF
    NUMBER = auto()          # 123, 0.5, 1e3
    EQUALS = auto()          # =
    LBRACE = auto()          # {
    RBRACE = auto()          # }
    LBRACKET = auto()        # [
    RBRACKET = auto()        # ]
    LPAREN = auto()          # (
    RPAREN = auto()          # )
    COMMA = auto()           # ,
    DOT = auto()             # .
    ELLIPSIS = auto()        # ...
    COLON = auto()           # :
    QUESTION = auto()        # ?
    ARROW = auto()           # =>
    OPERATOR = auto()        # == != < > <= >= && || ! + - * / %
    COMMENT = auto()         # # ..., // ..., /* ... */
    NEWLINE = auto()         # \n
    EOF = auto()             # End of file


@dataclass
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: str
    line: int
    column: int

    def __repr__(self):
        if self.type == TokenType.NEWLINE:
            return f"Token({self.type.name}, '\\n', L{self.line}:{self.column})"
        return f"Token({self.type.name}, {self.value!r}, L{self.line}:{self.column})"


class LexerError(Exception):
    """Error during lexical analysis."""
    def __init__(self, message: str, line: int, column: int):
        self.line = line
        self.column = column
        self.message = message
        super().__init__(f"Lexer error at line {line}, column {column}: {message}")


SINGLE_CHAR_TOKENS = {
    '{': TokenType.LBRACE,
    '}': TokenType.RBRACE,
    '[': TokenType.LBRACKET,
    ']': TokenType.RBRACKET,
    '(': TokenType.LPAREN,
    ')': TokenType.RPAREN,
    ',': TokenType.COMMA,
    ':': TokenType.COLON,
    '?': TokenType.QUESTION,
}

TWO_CHAR_OPERATORS = {'==', '!=', '<=', '>=', '&&', '||'}
ONE_CHAR_OPERATORS = set('<>!+-*/%')


class Lexer:
    """
    Tokenizer for HCL (Terraform) files.

    Usage:
        lexer = Lexer(source_text)
        tokens = list(lexer.tokenize())

    String tokens keep template sequences (``${...}`` and ``%{...}``) verbatim
    so references inside them can be extracted later; simple escapes outside
    templates are decoded.
    """

    @staticmethod
    def _is_ident_start(ch: str) -> bool:
        return ch == '_' or ch.isalpha()

    @staticmethod
    def _is_ident_cont(ch: str) -> bool:
        # HCL identifiers may contain dashes
        return ch.isalnum() or ch in '_-'

    def __init__(self, source: str, filename: str = "<unknown>"):
        self.source = source
        self.filename = filename
        self.pos = 0
        self.line = 1
        self.column = 1
        self.length = len(source)

    def _current(self) -> Optional[str]:
        """Get current character or None if at end."""
        if self.pos >= self.length:
            return None
        return self.source[self.pos]

    def _peek(self, offset: int = 1) -> Optional[str]:
        """Peek ahead by offset characters."""
        pos = self.pos + offset
        if pos >= self.length:
            return None
        return self.source[pos]

    def _advance(self) -> Optional[str]:
        """Advance one character and return it."""
        ch = self._current()
        if ch is not None:
            self.pos += 1
            if ch == '\n':
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        return ch

    def _skip_whitespace(self) -> None:
        """Skip spaces and tabs (but not newlines)."""
        while self._current() in (' ', '\t', '\r'):
            self._advance()

    def _read_template(self, result: List[str], start_line: int, start_col: int) -> None:
        """Copy a ${...} or %{...} sequence verbatim, including nested strings."""
        result.append(self._advance())  # $ or %
        result.append(self._advance())  # {
        depth = 1
        while depth:
            ch = self._current()
            if ch is None:
                raise LexerError("Unterminated template sequence", start_line, start_col)
            if ch == '"':
                result.append('"')
                result.append(self._read_string_body(self.line, self.column, raw=True))
                result.append('"')
                continue
            if ch == '{':
                depth += 1
            elif ch == '}':
                depth -= 1
            result.append(self._advance())

    def _read_string_body(self, start_line: int, start_col: int, raw: bool = False) -> str:
        """Read a quoted string starting at the opening quote."""
        self._advance()  # opening quote
        result = []
        while True:
            ch = self._current()
            if ch is None or ch == '\n':
                raise LexerError("Unterminated string", start_line, start_col)
            if ch == '"':
                self._advance()
                break
            if ch in ('$', '%') and self._peek() == '{':
                self._read_template(result, start_line, start_col)
                continue
            if ch in ('$', '%') and self._peek() == ch and self._peek(2) == '{':
                # $${ and %%{ escape a literal template opener; kept doubled
                result.append(self._advance())
                result.append(self._advance())
                result.append(self._advance())
                continue
            if ch == '\\':
                self._advance()
                esc = self._current()
                if esc is None:
                    raise LexerError("Unterminated string", start_line, start_col)
                if raw:
                    result.append('\\')
                    result.append(esc)
                elif esc == 'n':
                    result.append('\n')
                elif esc == 't':
                    result.append('\t')
                elif esc == 'r':
                    result.append('\r')
                elif esc in ('"', '\\'):
                    result.append(esc)
                else:
                    result.append('\\')
                    result.append(esc)
                self._advance()
                continue
            result.append(ch)
            self._advance()
        return ''.join(result)

    def _read_heredoc(self, start_line: int, start_col: int) -> str:
        """Read <<MARKER or <<-MARKER up to the closing marker line."""
        self._advance()
        self._advance()
        if self._current() == '-':
            self._advance()
        marker = []
        while self._current() is not None and self._is_ident_cont(self._current()):
            marker.append(self._advance())
        if not marker:
            raise LexerError("Expected heredoc marker after '<<'", start_line, start_col)
        marker_str = ''.join(marker)
        self._skip_whitespace()
        if self._current() != '\n':
            raise LexerError("Heredoc marker must end the line", start_line, start_col)
        self._advance()

        body_lines = []
        while True:
            if self._current() is None:
                raise LexerError(f"Unterminated heredoc '{marker_str}'", start_line, start_col)
            line_chars = []
            while self._current() is not None and self._current() != '\n':
                line_chars.append(self._advance())
            line_text = ''.join(line_chars)
            if line_text.strip() == marker_str:
                break
            body_lines.append(line_text)
            if self._current() == '\n':
                self._advance()
        return '\n'.join(body_lines)

    def _read_identifier(self) -> str:
        result = []
        while True:
            ch = self._current()
            if ch is None or not self._is_ident_cont(ch):
                break
            result.append(ch)
            self._advance()
        return ''.join(result)

    def _read_number(self) -> str:
        """Read a number (integer, decimal, or exponent form)."""
        result = []
        while self._current() is not None and self._current().isdigit():
            result.append(self._advance())
        if self._current() == '.' and self._peek() is not None and self._peek().isdigit():
            result.append(self._advance())
            while self._current() is not None and self._current().isdigit():
                result.append(self._advance())
        if self._current() in ('e', 'E'):
            nxt = self._peek()
            if nxt is not None and (nxt.isdigit() or (nxt in '+-' and (self._peek(2) or '').isdigit())):
                result.append(self._advance())
                if self._current() in ('+', '-'):
                    result.append(self._advance())
                while self._current() is not None and self._current().isdigit():
                    result.append(self._advance())
        return ''.join(result)

    def _read_line_comment(self) -> str:
        result = []
        while True:
            ch = self._current()
            if ch is None or ch == '\n':
                break
            result.append(ch)
            self._advance()
        return ''.join(result)

    def _read_block_comment(self, start_line: int, start_col: int) -> str:
        self._advance()
        self._advance()
        result = []
        while True:
            ch = self._current()
            if ch is None:
                raise LexerError("Unterminated block comment", start_line, start_col)
            if ch == '*' and self._peek() == '/':
                self._advance()
                self._advance()
                break
            result.append(ch)
            self._advance()
        return ''.join(result)

    def tokenize(self, include_comments: bool = False, include_newlines: bool = True) -> Iterator[Token]:
        """
        Generate tokens from the source.

        Newlines are significant in HCL (they terminate attributes), so they
        are emitted by default.

        Args:
            include_comments: If True, emit COMMENT tokens. Otherwise skip them.
            include_newlines: If True, emit NEWLINE tokens. Otherwise skip them.
        """
        while True:
            self._skip_whitespace()

            ch = self._current()
            start_line = self.line
            start_col = self.column

            if ch is None:
                yield Token(TokenType.EOF, '', start_line, start_col)
                break

            if ch == '\n':
                self._advance()
                if include_newlines:
                    yield Token(TokenType.NEWLINE, '\n', start_line, start_col)
                continue

            # Comments: #, //, /* */
            if ch == '#' or (ch == '/' and self._peek() == '/'):
                comment = self._read_line_comment()
                if include_comments:
                    yield Token(TokenType.COMMENT, comment, start_line, start_col)
                continue

            if ch == '/' and self._peek() == '*':
                comment = self._read_block_comment(start_line, start_col)
                if include_comments:
                    yield Token(TokenType.COMMENT, comment, start_line, start_col)
                # A multi-line block comment still ends the current line
                if include_newlines and self.line > start_line:
                    yield Token(TokenType.NEWLINE, '\n', start_line, start_col)
                continue

            if ch == '"':
                value = self._read_string_body(start_line, start_col)
                yield Token(TokenType.STRING, value, start_line, start_col)
                continue

            if ch == '<' and self._peek() == '<':
                value = self._read_heredoc(start_line, start_col)
                yield Token(TokenType.HEREDOC, value, start_line, start_col)
                continue

            if ch == '=' and self._peek() == '>':
                self._advance()
                self._advance()
                yield Token(TokenType.ARROW, '=>', start_line, start_col)
                continue

            two = ch + (self._peek() or '')
            if two in TWO_CHAR_OPERATORS:
                self._advance()
                self._advance()
                yield Token(TokenType.OPERATOR, two, start_line, start_col)
                continue

            if ch == '=':
                self._advance()
                yield Token(TokenType.EQUALS, '=', start_line, start_col)
                continue

            if ch == '.':
                if self._peek() == '.' and self._peek(2) == '.':
                    self._advance()
                    self._advance()
                    self._advance()
                    yield Token(TokenType.ELLIPSIS, '...', start_line, start_col)
                else:
                    self._advance()
                    yield Token(TokenType.DOT, '.', start_line, start_col)
                continue

            if ch in SINGLE_CHAR_TOKENS:
                self._advance()
                yield Token(SINGLE_CHAR_TOKENS[ch], ch, start_line, start_col)
                continue

            if ch in ONE_CHAR_OPERATORS:
                self._advance()
                yield Token(TokenType.OPERATOR, ch, start_line, start_col)
                continue

            if ch.isdigit():
                value = self._read_number()
                yield Token(TokenType.NUMBER, value, start_line, start_col)
                continue

            if self._is_ident_start(ch):
                value = self._read_identifier()
                yield Token(TokenType.IDENTIFIER, value, start_line, start_col)
                continue

            raise LexerError(f"Unexpected character {ch!r}", start_line, start_col)

    def tokenize_all(self, include_comments: bool = False, include_newlines: bool = True) -> List[Token]:
        """Convenience method to get all tokens as a list."""
        return list(self.tokenize(include_comments, include_newlines))


def read_source(filepath: str) -> str:
    """Read a file with encoding fallback (utf-8-sig, utf-8, latin-1)."""
    for encoding in ['utf-8-sig', 'utf-8']:
        try:
            with open(filepath, 'r', encoding=encoding) as f:
                return f.read()
        except UnicodeDecodeError:
            continue
    with open(filepath, 'r', encoding='latin-1') as f:
        return f.read()
