"""
HCL Parser

Converts a token stream from the lexer into an Abstract Syntax Tree (AST).
Handles nested blocks with labels and attributes. Attribute values are kept
as token runs (ExpressionNode); only the parts the project scanner needs are
interpreted: string literals, simple object literals, and references.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union, Dict, Any
from enum import Enum, auto

from tflayer.parser.lexer import Lexer, Token, TokenType, LexerError, read_source


class NodeType(Enum):
    """Types of AST nodes."""
    ROOT = auto()           # Top-level container (one file)
    BLOCK = auto()          # type "label" "label" { ... }
    ATTRIBUTE = auto()      # key = expression
    EXPRESSION = auto()     # Token run of an attribute value


OPENERS = {TokenType.LBRACE, TokenType.LBRACKET, TokenType.LPAREN}
CLOSERS = {TokenType.RBRACE, TokenType.RBRACKET, TokenType.RPAREN}


@dataclass
class ASTNode:
    """Base class for AST nodes."""
    node_type: NodeType = None  # Set by subclasses in __post_init__
    line: int = 0
    column: int = 0


@dataclass
class ExpressionNode(ASTNode):
    """The value side of an attribute, as the raw token run."""
    tokens: List[Token] = field(default_factory=list)

    def __post_init__(self):
        self.node_type = NodeType.EXPRESSION

    def __repr__(self):
        return f"Expression({self.text})"

    @property
    def text(self) -> str:
        """Compact source-like rendering of the expression."""
        parts = []
        for tok in self.tokens:
            if tok.type == TokenType.STRING:
                parts.append(f'"{tok.value}"')
            elif tok.type == TokenType.HEREDOC:
                parts.append("<<EOT ... EOT")
            else:
                parts.append(tok.value)
        text = " ".join(parts)
        for glued in (" . ", " [ ", " ]", "( ", " )", " ,"):
            text = text.replace(glued, glued.strip())
        return text

    def as_string(self) -> Optional[str]:
        """Return the literal value if this is a plain string without templates."""
        if len(self.tokens) != 1:
            return None
        tok = self.tokens[0]
        if tok.type not in (TokenType.STRING, TokenType.HEREDOC):
            return None
        if "${" in tok.value.replace("$${", "") or "%{" in tok.value.replace("%%{", ""):
            return None
        return tok.value.replace("$${", "${").replace("%%{", "%{")

    def object_items(self) -> Dict[str, str]:
        """
        Read a simple object literal ``{ key = "value", ... }``.

        Only top-level items whose value is a plain string, number or bare
        identifier are returned; nested values are skipped.
        """
        toks = self.tokens
        if len(toks) < 2 or toks[0].type != TokenType.LBRACE or toks[-1].type != TokenType.RBRACE:
            return {}

        items: Dict[str, str] = {}
        i = 1
        end = len(toks) - 1
        while i < end:
            key_tok = toks[i]
            if (
                key_tok.type in (TokenType.IDENTIFIER, TokenType.STRING)
                and i + 2 < end
                and toks[i + 1].type in (TokenType.EQUALS, TokenType.COLON)
            ):
                value_start = i + 2
                j = value_start
                depth = 0
                while j < end:
                    t = toks[j]
                    if t.type in OPENERS:
                        depth += 1
                    elif t.type in CLOSERS:
                        depth -= 1
                    elif depth == 0 and t.type == TokenType.COMMA:
                        break
                    elif depth == 0 and j > value_start and t.line > toks[j - 1].line:
                        break
                    j += 1
                value_toks = toks[value_start:j]
                if len(value_toks) == 1 and value_toks[0].type in (
                    TokenType.STRING, TokenType.NUMBER, TokenType.IDENTIFIER
                ):
                    items[key_tok.value] = value_toks[0].value
                i = j + 1 if j < end and toks[j].type == TokenType.COMMA else j
                continue
            i += 1
        return items

    def to_dict(self) -> Dict[str, Any]:
        return {
            '_type': 'expression',
            'text': self.text,
            'line': self.line,
            'column': self.column,
        }


@dataclass
class AttributeNode(ASTNode):
    """A key = expression attribute."""
    key: str = ""
    value: ExpressionNode = None

    def __post_init__(self):
        self.node_type = NodeType.ATTRIBUTE

    def __repr__(self):
        return f"Attribute({self.key} = {self.value})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            '_type': 'attribute',
            'key': self.key,
            'value': self.value.to_dict() if self.value else None,
            'line': self.line,
            'column': self.column,
        }


@dataclass
class BlockNode(ASTNode):
    """A block: type "label1" "label2" { body }"""
    type: str = ""
    labels: List[str] = field(default_factory=list)
    children: List[Union[AttributeNode, 'BlockNode']] = field(default_factory=list)

    def __post_init__(self):
        self.node_type = NodeType.BLOCK

    def __repr__(self):
        labels = " ".join(f'"{label}"' for label in self.labels)
        return f"Block({self.type} {labels}, {len(self.children)} children)".replace("  ", " ")

    @property
    def attributes(self) -> Dict[str, AttributeNode]:
        """Attributes by key (last one wins, as Terraform rejects duplicates anyway)."""
        return {c.key: c for c in self.children if isinstance(c, AttributeNode)}

    def get_attribute(self, key: str) -> Optional[ExpressionNode]:
        attr = self.attributes.get(key)
        return attr.value if attr else None

    def get_blocks(self, block_type: str) -> List['BlockNode']:
        return [c for c in self.children if isinstance(c, BlockNode) and c.type == block_type]

    def iter_attributes(self):
        """Yield every attribute in this block and all nested blocks."""
        for child in self.children:
            if isinstance(child, AttributeNode):
                yield child
            elif isinstance(child, BlockNode):
                yield from child.iter_attributes()

    def to_dict(self) -> Dict[str, Any]:
        return {
            '_type': 'block',
            'type': self.type,
            'labels': list(self.labels),
            'line': self.line,
            'column': self.column,
            'children': [c.to_dict() for c in self.children],
        }


@dataclass
class RootNode(ASTNode):
    """Root of the AST for one file."""
    children: List[Union[BlockNode, AttributeNode]] = field(default_factory=list)
    filename: str = "<unknown>"

    def __post_init__(self):
        self.node_type = NodeType.ROOT

    def __repr__(self):
        return f"Root({self.filename}, {len(self.children)} children)"

    def get_blocks(self, block_type: str = None, *labels: str) -> List[BlockNode]:
        """Get top-level blocks, optionally filtered by type and leading labels."""
        blocks = [c for c in self.children if isinstance(c, BlockNode)]
        if block_type:
            blocks = [b for b in blocks if b.type == block_type]
        if labels:
            blocks = [b for b in blocks if tuple(b.labels[:len(labels)]) == labels]
        return blocks

    def to_dict(self) -> Dict[str, Any]:
        return {
            '_type': 'root',
            'filename': self.filename,
            'children': [c.to_dict() for c in self.children],
            'line': self.line,
            'column': self.column,
        }


class ParseError(Exception):
    """Error during parsing."""
    def __init__(self, message: str, token: Token = None, line: int = None, column: int = None):
        self.token = token
        self.line = line or (token.line if token else 0)
        self.column = column or (token.column if token else 0)
        self.message = message
        if token:
            super().__init__(f"Parse error at line {token.line}, column {token.column}: {message}")
        elif line:
            super().__init__(f"Parse error at line {line}, column {column or 0}: {message}")
        else:
            super().__init__(f"Parse error: {message}")


@dataclass
class ParseDiagnostic:
    """A diagnostic message from parsing (error or warning)."""
    line: int
    column: int
    severity: str  # "error", "warning"
    code: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line,
            "column": self.column,
            "severity": self.severity,
            "code": self.code,
            "message": self.message,
        }


@dataclass
class ParseResult:
    """Result of parsing with error recovery."""
    ast: Optional[RootNode]
    diagnostics: List[ParseDiagnostic]
    success: bool

    @property
    def errors(self) -> List[ParseDiagnostic]:
        return [d for d in self.diagnostics if d.severity == "error"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "ast": self.ast.to_dict() if self.ast else None,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


class Parser:
    """
    Parser for HCL files.

    Usage:
        parser = Parser(tokens)
        ast = parser.parse()
    """

    def __init__(self, tokens: List[Token], filename: str = "<unknown>"):
        self.tokens = tokens
        self.filename = filename
        self.pos = 0
        self.length = len(tokens)

    def _current(self) -> Optional[Token]:
        if self.pos >= self.length:
            return None
        return self.tokens[self.pos]

    def _peek(self, offset: int = 1) -> Optional[Token]:
        pos = self.pos + offset
        if pos >= self.length:
            return None
        return self.tokens[pos]

    def _advance(self) -> Optional[Token]:
        token = self._current()
        if token is not None:
            self.pos += 1
        return token

    def _expect(self, token_type: TokenType, message: str = None) -> Token:
        token = self._current()
        if token is None:
            raise ParseError(message or f"Expected {token_type.name}, got end of file")
        if token.type != token_type:
            raise ParseError(message or f"Expected {token_type.name}, got {token.type.name}", token)
        return self._advance()

    def _at_end(self) -> bool:
        token = self._current()
        return token is None or token.type == TokenType.EOF

    def _skip_newlines(self) -> None:
        while self._current() is not None and self._current().type in (TokenType.NEWLINE, TokenType.COMMENT):
            self._advance()

    def parse(self) -> RootNode:
        """Parse the token stream into an AST."""
        root = RootNode(filename=self.filename, line=1, column=1)

        while True:
            self._skip_newlines()
            if self._at_end():
                break
            root.children.append(self._parse_body_item())

        return root

    def _parse_body_item(self) -> Union[AttributeNode, BlockNode]:
        """Parse one attribute or block."""
        token = self._current()
        if token.type == TokenType.RBRACE:
            self._advance()
            raise ParseError("Unexpected closing brace '}' (unbalanced braces?)", token)
        if token.type != TokenType.IDENTIFIER:
            raise ParseError(f"Expected attribute or block name, got {token.type.name}", token)

        next_token = self._peek()
        if next_token is not None and next_token.type == TokenType.EQUALS:
            return self._parse_attribute()
        if next_token is not None and next_token.type in (TokenType.STRING, TokenType.IDENTIFIER, TokenType.LBRACE):
            return self._parse_block()
        raise ParseError(f"Expected '=' or block after '{token.value}'", next_token or token)

    def _parse_attribute(self) -> AttributeNode:
        key_token = self._advance()
        self._expect(TokenType.EQUALS)
        value = self._parse_expression()
        return AttributeNode(key=key_token.value, value=value, line=key_token.line, column=key_token.column)

    def _parse_expression(self) -> ExpressionNode:
        """Collect tokens up to the end of the attribute (newline or '}' at depth 0)."""
        start = self._current()
        collected: List[Token] = []
        stack: List[Token] = []

        while True:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                if stack:
                    raise ParseError(f"Unclosed '{stack[-1].value}' in expression", stack[-1])
                break
            if not stack and token.type in (TokenType.NEWLINE, TokenType.RBRACE):
                break
            if token.type in (TokenType.NEWLINE, TokenType.COMMENT):
                self._advance()
                continue
            if token.type in OPENERS:
                stack.append(token)
            elif token.type in CLOSERS:
                if not stack:
                    raise ParseError(f"Unexpected '{token.value}' in expression", token)
                stack.pop()
            collected.append(self._advance())

        if not collected:
            raise ParseError("Expected expression after '='", start)
        return ExpressionNode(tokens=collected, line=collected[0].line, column=collected[0].column)

    def _parse_block(self) -> BlockNode:
        type_token = self._advance()
        labels = []
        while True:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                raise ParseError(f"Unexpected end of file in '{type_token.value}' block header", type_token)
            if token.type in (TokenType.STRING, TokenType.IDENTIFIER):
                labels.append(self._advance().value)
                continue
            if token.type == TokenType.LBRACE:
                break
            raise ParseError(f"Expected block label or '{{', got {token.type.name}", token)

        block = BlockNode(type=type_token.value, labels=labels, line=type_token.line, column=type_token.column)
        block.children = self._parse_block_body()
        return block

    def _parse_block_body(self) -> List[Union[AttributeNode, BlockNode]]:
        """Parse the contents of a block (inside braces)."""
        self._expect(TokenType.LBRACE, "Expected '{'")
        items = []

        while True:
            self._skip_newlines()
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                raise ParseError("Unexpected end of file in block (missing closing '}')", token)
            if token.type == TokenType.RBRACE:
                self._advance()
                break
            items.append(self._parse_body_item())

        return items


class RecoveringParser(Parser):
    """
    Parser with error recovery that collects multiple errors.

    Instead of stopping at the first error, this parser skips to the next
    line at block depth zero and continues. All errors are collected and
    returned with the (partial) AST.
    """

    MAX_ERRORS = 100

    def __init__(self, tokens: List[Token], filename: str = "<unknown>"):
        super().__init__(tokens, filename)
        self.diagnostics: List[ParseDiagnostic] = []
        self.error_count = 0

    def _add_error(self, message: str, line: int = 0, column: int = 0, code: str = "PARSE_ERROR"):
        self.error_count += 1
        self.diagnostics.append(ParseDiagnostic(
            line=line,
            column=column,
            severity="error",
            code=code,
            message=message,
        ))

    def _skip_to_recovery_point(self, start_depth: int) -> None:
        """Skip tokens until a newline at the depth where the error started."""
        depth = start_depth
        while True:
            token = self._current()
            if token is None or token.type == TokenType.EOF:
                break
            if token.type in OPENERS:
                depth += 1
            elif token.type in CLOSERS:
                depth -= 1
                if depth < 0:
                    # Belongs to an enclosing scope; leave it for the caller
                    break
            elif token.type == TokenType.NEWLINE and depth <= 0:
                self._advance()
                break
            self._advance()

    def parse(self) -> RootNode:
        """Parse with error recovery, collecting all errors."""
        root = RootNode(filename=self.filename, line=1, column=1)

        while self.error_count < self.MAX_ERRORS:
            self._skip_newlines()
            if self._at_end():
                break
            start_pos = self.pos
            try:
                root.children.append(self._parse_body_item())
            except ParseError as e:
                self._add_error(e.message, e.line, e.column)
                self.pos = start_pos
                self._skip_to_recovery_point(0)
                if self.pos == start_pos:
                    self._advance()

        if self.error_count >= self.MAX_ERRORS:
            self._add_error(f"Too many errors ({self.MAX_ERRORS}+), stopping", code="TOO_MANY_ERRORS")

        return root


def parse_source(source: str, filename: str = "<unknown>") -> RootNode:
    """Parse source code string into AST. Raises LexerError or ParseError."""
    lexer = Lexer(source, filename)
    tokens = lexer.tokenize_all()
    parser = Parser(tokens, filename)
    return parser.parse()


def parse_source_recovering(source: str, filename: str = "<unknown>") -> ParseResult:
    """
    Parse source with error recovery, collecting all errors.

    Unlike parse_source(), this continues parsing after errors and
    returns a ParseResult with both the (partial) AST and all diagnostics.
    """
    try:
        lexer = Lexer(source, filename)
        tokens = lexer.tokenize_all()
    except LexerError as e:
        return ParseResult(
            ast=None,
            diagnostics=[ParseDiagnostic(
                line=e.line,
                column=e.column,
                severity="error",
                code="LEXER_ERROR",
                message=e.message,
            )],
            success=False,
        )

    parser = RecoveringParser(tokens, filename)
    ast = parser.parse()

    return ParseResult(
        ast=ast,
        diagnostics=parser.diagnostics,
        success=len(parser.diagnostics) == 0,
    )


def parse_file(filepath: str) -> RootNode:
    """Parse a file into AST. Handles encoding fallback."""
    return parse_source(read_source(filepath), filepath)
