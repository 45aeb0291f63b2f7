import re
from typing import List, Optional
from .tokenizer import Token, TokenType

class ParseError(Exception):
    def __init__(self, message: str, position: int):
        self.position = position
        super().__init__(message)

class Node:
    pass

class StringNode(Node):
    def __init__(self, token: Token):
        self.token = token
        # drop the quotes, resolve simple escapes
        self.value = re.sub(r'\\(.)', r'\1', token.value[1:-1])

    def __repr__(self):
        return f"StringNode({self.value!r})"

class NumberNode(Node):
    def __init__(self, token: Token):
        self.token = token
        self.value = token.value

    def __repr__(self):
        return f"NumberNode({self.value})"

class IdentifierNode(Node):
    def __init__(self, token: Token):
        self.token = token
        self.name = token.value

    def __repr__(self):
        return f"IdentifierNode({self.name})"

class MemberNode(Node):
    """`.name` (implicit member, base is None) or `base.name`."""
    def __init__(self, name: str, base: Optional[Node] = None):
        self.name = name
        self.base = base

    def __repr__(self):
        return f"MemberNode({self.base!r}.{self.name})"

class Argument:
    def __init__(self, label: Optional[str], value: Node):
        self.label = label
        self.value = value

    def __repr__(self):
        return f"Argument({self.label}: {self.value!r})"

class CallNode(Node):
    def __init__(self, callee: Node, args: List[Argument]):
        self.callee = callee
        self.args = args

    @property
    def callee_name(self) -> Optional[str]:
        if isinstance(self.callee, IdentifierNode):
            return self.callee.name
        if isinstance(self.callee, MemberNode):
            return self.callee.name
        return None

    def argument(self, label: Optional[str]) -> Optional[Node]:
        for arg in self.args:
            if arg.label == label:
                return arg.value
        return None

    def __repr__(self):
        return f"CallNode({self.callee_name}, args={len(self.args)})"

class ArrayNode(Node):
    def __init__(self, items: List[Node]):
        self.items = items

    def __repr__(self):
        return f"ArrayNode({len(self.items)})"

class ManifestParser:
    """
    recursive descent over significant tokens (no whitespace, no comments).

    only expressions are understood: literals, identifiers, member access,
    calls with optionally labelled arguments, and array literals.
    """
    MAX_DEPTH = 64

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def parse_expression(self) -> Node:
        self.depth += 1
        try:
            if self.depth > self.MAX_DEPTH:
                token = self._peek()
                raise ParseError(
                    f"expressions nested deeper than {self.MAX_DEPTH} levels",
                    token.start if token else self._end_position(),
                )
            return self._parse_postfix()
        finally:
            self.depth -= 1

    def _parse_postfix(self) -> Node:
        node = self._parse_primary()
        while True:
            token = self._peek()
            if token is None:
                return node
            if token.type == TokenType.LPAREN:
                self._consume()
                node = CallNode(node, self._parse_arguments())
            elif token.type == TokenType.DOT:
                self._consume()
                name = self._expect(TokenType.IDENTIFIER)
                node = MemberNode(name.value, node)
            else:
                return node

    def find_binding(self, name: str) -> Optional[Node]:
        """locate `let <name> = <expr>` and parse its expression."""
        for i in range(len(self.tokens) - 2):
            window = self.tokens[i:i + 3]
            if (
                window[0].type == TokenType.IDENTIFIER and window[0].value in ("let", "var")
                and window[1].type == TokenType.IDENTIFIER and window[1].value == name
                and window[2].type == TokenType.EQUALS
            ):
                self.pos = i + 3
                return self.parse_expression()
        return None

    def _peek(self) -> Optional[Token]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def _consume(self) -> Token:
        token = self._peek()
        if token is None:
            raise ParseError("unexpected end of manifest", self._end_position())
        self.pos += 1
        return token

    def _expect(self, token_type: TokenType) -> Token:
        token = self._consume()
        if token.type != token_type:
            raise ParseError(f"expected {token_type.name.lower()}, found '{token.value}'", token.start)
        return token

    def _end_position(self) -> int:
        return self.tokens[-1].end if self.tokens else 0

    def _parse_primary(self) -> Node:
        token = self._consume()
        if token.type == TokenType.STRING:
            return StringNode(token)
        if token.type == TokenType.NUMBER:
            return NumberNode(token)
        if token.type == TokenType.IDENTIFIER:
            return IdentifierNode(token)
        if token.type == TokenType.DOT:
            name = self._expect(TokenType.IDENTIFIER)
            return MemberNode(name.value)
        if token.type == TokenType.LBRACKET:
            return ArrayNode(self._parse_list(TokenType.RBRACKET, self.parse_expression))
        raise ParseError(f"unexpected '{token.value}'", token.start)

    def _parse_arguments(self) -> List[Argument]:
        return self._parse_list(TokenType.RPAREN, self._parse_argument)

    def _parse_argument(self) -> Argument:
        token = self._peek()
        following = self.tokens[self.pos + 1] if self.pos + 1 < len(self.tokens) else None
        label = None
        if token and token.type == TokenType.IDENTIFIER and following and following.type == TokenType.COLON:
            label = self._consume().value
            self._consume()
        return Argument(label, self.parse_expression())

    def _parse_list(self, closing: TokenType, parse_item):
        # items separated by commas, trailing comma allowed
        items = []
        while True:
            token = self._peek()
            if token is None:
                raise ParseError("unexpected end of manifest", self._end_position())
            if token.type == closing:
                self._consume()
                return items
            items.append(parse_item())
            token = self._peek()
            if token is not None and token.type == TokenType.COMMA:
                self._consume()
            elif token is None or token.type != closing:
                found = token.value if token else "end of manifest"
                raise ParseError(f"expected ',' or closing bracket, found '{found}'", token.start if token else self._end_position())
