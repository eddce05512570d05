"""
Reference extraction from HCL expressions.

A reference is a traversal such as ``module.network.vpc_id`` or
``data.terraform_remote_state.cluster.outputs.cluster_id``. A plain string
index is a step like any other (``outputs["id"]`` is ``outputs.id``); other
index steps and splats are dropped so ``module.pool[0].id`` becomes
``module.pool.id``.
References inside string templates (``"${module.x.y}"``) are found by
re-lexing the template sequence.
"""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from tflayer.parser.lexer import Lexer, Token, TokenType


# Template keywords and literals that look like identifiers but never reference anything
NON_REFERENCES = {"true", "false", "null", "for", "in", "if", "else", "endif", "endfor"}


@dataclass(frozen=True)
class Reference:
    """A traversal found in an expression."""
    parts: Tuple[str, ...]
    file: str = ""
    line: int = 0
    column: int = 0

    @property
    def text(self) -> str:
        return ".".join(self.parts)

    def __str__(self):
        return self.text


def template_segments(text: str) -> Iterator[str]:
    """Yield the inner text of every ${...} and %{...} sequence in a string value."""
    i = 0
    n = len(text)
    while i < n - 1:
        ch = text[i]
        if ch in "$%" and text[i + 1] == ch and i + 2 < n and text[i + 2] == "{":
            i += 3
            continue
        if ch in "$%" and text[i + 1] == "{":
            depth = 1
            j = i + 2
            in_string = False
            while j < n and depth:
                c = text[j]
                if in_string:
                    if c == "\\":
                        j += 1
                    elif c == '"':
                        in_string = False
                elif c == '"':
                    in_string = True
                elif c == "{":
                    depth += 1
                elif c == "}":
                    depth -= 1
                j += 1
            inner = text[i + 2:j - 1] if depth == 0 else text[i + 2:]
            # Strip ~ whitespace markers
            yield inner.strip().strip("~").strip()
            i = j
            continue
        i += 1


def _string_index(tokens: List[Token], j: int) -> Optional[str]:
    """The key of a literal ``["name"]`` index at tokens[j], else None."""
    if j + 2 < len(tokens) and tokens[j].type == TokenType.LBRACKET and tokens[j + 2].type == TokenType.RBRACKET:
        inner = tokens[j + 1]
        if inner.type == TokenType.STRING and "${" not in inner.value and "%{" not in inner.value:
            return inner.value
    return None


def _skip_index(tokens: List[Token], j: int) -> int:
    """
    If tokens[j] opens a simple index (``[0]``, ``[k]``, ``[*]``) return the
    position after it, otherwise return j unchanged.
    """
    if j + 2 < len(tokens) and tokens[j].type == TokenType.LBRACKET and tokens[j + 2].type == TokenType.RBRACKET:
        inner = tokens[j + 1]
        if inner.type in (TokenType.NUMBER, TokenType.STRING, TokenType.IDENTIFIER) or inner.value == "*":
            return j + 3
    return j


def extract_references(tokens: List[Token], filename: str = "") -> List[Reference]:
    """Extract all references from an expression's token run, in source order."""
    refs: List[Reference] = []
    i = 0
    n = len(tokens)

    while i < n:
        tok = tokens[i]

        if tok.type in (TokenType.STRING, TokenType.HEREDOC):
            for segment in template_segments(tok.value):
                inner = Lexer(segment, filename).tokenize_all(include_newlines=False)
                for ref in extract_references(inner, filename):
                    refs.append(Reference(ref.parts, filename, tok.line, tok.column))
            i += 1
            continue

        if tok.type != TokenType.IDENTIFIER or tok.value in NON_REFERENCES:
            i += 1
            continue
        if i > 0 and tokens[i - 1].type == TokenType.DOT:
            i += 1
            continue
        if i + 1 < n and tokens[i + 1].type == TokenType.LPAREN:
            # Function call
            i += 1
            continue

        parts = [tok.value]
        j = i + 1
        while j < n:
            step = tokens[j]
            if step.type == TokenType.DOT and j + 1 < n:
                nxt = tokens[j + 1]
                if nxt.type == TokenType.IDENTIFIER:
                    parts.append(nxt.value)
                    j += 2
                    continue
                if nxt.type == TokenType.NUMBER or nxt.value == "*":
                    j += 2
                    continue
                break
            if step.type == TokenType.LBRACKET:
                key = _string_index(tokens, j)
                if key is not None:
                    parts.append(key)
                    j += 3
                    continue
                after = _skip_index(tokens, j)
                if after != j:
                    j = after
                    continue
            break

        refs.append(Reference(tuple(parts), filename, tok.line, tok.column))
        i = j

    return refs
