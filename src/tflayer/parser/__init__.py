"""
tflayer.parser - HCL Parser

Lexer and parser for the subset of HCL (Terraform configuration syntax)
the project scanner needs: blocks, labels, attributes, string templates
and references.
"""

from tflayer.parser.lexer import Lexer, Token, TokenType, LexerError
from tflayer.parser.parser import (
    Parser,
    RecoveringParser,
    ParseError,
    ParseDiagnostic,
    ParseResult,
    parse_file,
    parse_source,
    parse_source_recovering,
    # AST Node types
    ASTNode,
    NodeType,
    RootNode,
    BlockNode,
    AttributeNode,
    ExpressionNode,
)
from tflayer.parser.expressions import Reference, extract_references

__all__ = [
    # Lexer
    "Lexer",
    "Token",
    "TokenType",
    "LexerError",
    # Parser
    "Parser",
    "RecoveringParser",
    "ParseError",
    "ParseDiagnostic",
    "ParseResult",
    "parse_file",
    "parse_source",
    "parse_source_recovering",
    # AST Nodes
    "ASTNode",
    "NodeType",
    "RootNode",
    "BlockNode",
    "AttributeNode",
    "ExpressionNode",
    # References
    "Reference",
    "extract_references",
]
