from enum import Enum, auto
from typing import List, NamedTuple
import re

class TokenType(Enum):
    COMMENT = auto()
    IDENTIFIER = auto()
    STRING = auto()
    NUMBER = auto()
    DOT = auto()
    COLON = auto()
    EQUALS = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    COMMA = auto()
    WHITESPACE = auto()
    UNKNOWN = auto()

class Token(NamedTuple):
    type: TokenType
    value: str
    start: int
    end: int

class ManifestTokenizer:
    """
    a lossless tokenizer for the declarative subset of Package.swift.
    preserves whitespace and comments so positions map back to the source.
    """

    # order matters!
    PATTERNS = [
        (TokenType.COMMENT, r'//[^\n]*|/\*.*?\*/'),
        (TokenType.STRING, r'"(?:\\.|[^"\\\n])*"'),
        (TokenType.NUMBER, r'\d+(?:\.\d+)*'),
        (TokenType.IDENTIFIER, r'[A-Za-z_][A-Za-z0-9_]*'),
        (TokenType.DOT, r'\.'),
        (TokenType.COLON, r':'),
        (TokenType.EQUALS, r'='),
        (TokenType.LPAREN, r'\('),
        (TokenType.RPAREN, r'\)'),
        (TokenType.LBRACKET, r'\['),
        (TokenType.RBRACKET, r'\]'),
        (TokenType.COMMA, r','),
        (TokenType.WHITESPACE, r'\s+'),
    ]
    COMPILED = [(token_type, re.compile(pattern, re.DOTALL)) for token_type, pattern in PATTERNS]

    def tokenize(self, source: str) -> List[Token]:
        tokens = []
        pos = 0
        length = len(source)

        while pos < length:
            match = None
            for token_type, regex in self.COMPILED:
                match = regex.match(source, pos)
                if match:
                    value = match.group(0)
                    tokens.append(Token(token_type, value, pos, pos + len(value)))
                    pos += len(value)
                    break

            if not match:
                # unknown character
                tokens.append(Token(TokenType.UNKNOWN, source[pos], pos, pos + 1))
                pos += 1

        return tokens

    def reconstruct(self, tokens: List[Token]) -> str:
        return "".join(t.value for t in tokens)

    def significant(self, tokens: List[Token]) -> List[Token]:
        """drop whitespace and comments."""
        return [t for t in tokens if t.type not in (TokenType.WHITESPACE, TokenType.COMMENT)]
