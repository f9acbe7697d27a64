"""
Sandboxed evaluator for computed template expressions such as
{{= budget / duration }}.

Grammar:
    expr   := term (('+' | '-') term)*
    term   := factor (('*' | '/') factor)*
    factor := ('+' | '-') factor | '(' expr ')' | NUMBER | IDENT

Identifiers resolve only against the supplied binding table. Nothing from the
expression text is ever compiled or executed.
"""

import math
import re
from typing import Dict, List, Tuple, Union

from enhancemd.core import config
from enhancemd.core.errors import EvalError

Value = Union[float, bool, str]

TOKEN_RE = re.compile(r'\s*(?:(\d+(?:\.\d*)?|\.\d+)|([A-Za-z_][A-Za-z0-9_]*)|(.))')
OPERATORS = set('+-*/()')


def tokenize(expr: str) -> List[Tuple[str, str]]:
    tokens = []
    pos = 0
    expr = expr.rstrip()
    while pos < len(expr):
        match = TOKEN_RE.match(expr, pos)
        if not match:
            break
        number, ident, op = match.groups()
        if number is not None:
            tokens.append(('num', number))
        elif ident is not None:
            tokens.append(('ident', ident))
        elif op in OPERATORS:
            tokens.append(('op', op))
        else:
            raise EvalError(f"Unexpected character {op!r} in expression")
        pos = match.end()
    return tokens


def format_value(value: Value) -> str:
    """Stringify a result the way it is shown in the document."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            raise EvalError("Expression produced a non-finite number")
        if float(value).is_integer():
            return str(int(value))
        return repr(float(value))
    return str(value)


def _is_number(value: Value) -> bool:
    return isinstance(value, (int, float))


class _Parser:
    def __init__(self, tokens: List[Tuple[str, str]], bindings: Dict[str, Value]):
        self.tokens = tokens
        self.bindings = bindings
        self.pos = 0
        self.depth = 0

    def peek(self):
        return self.tokens[self.pos] if self.pos < len(self.tokens) else (None, None)

    def take(self):
        token = self.peek()
        self.pos += 1
        return token

    def parse(self) -> Value:
        if not self.tokens:
            raise EvalError("Empty expression")
        value = self.expr()
        if self.pos != len(self.tokens):
            raise EvalError(f"Unexpected token {self.peek()[1]!r}")
        return value

    def expr(self) -> Value:
        left = self.term()
        while self.peek() in (('op', '+'), ('op', '-')):
            op = self.take()[1]
            right = self.term()
            left = self.apply(op, left, right)
        return left

    def term(self) -> Value:
        left = self.factor()
        while self.peek() in (('op', '*'), ('op', '/')):
            op = self.take()[1]
            right = self.factor()
            left = self.apply(op, left, right)
        return left

    def factor(self) -> Value:
        kind, text = self.take()
        if kind == 'op' and text in '+-':
            operand = self.factor()
            if not _is_number(operand):
                raise EvalError(f"Unary {text} needs a number")
            return operand if text == '+' else -operand
        if kind == 'op' and text == '(':
            self.depth += 1
            if self.depth > config.MAX_EXPRESSION_DEPTH:
                raise EvalError(f"Parentheses nested deeper than {config.MAX_EXPRESSION_DEPTH} levels")
            value = self.expr()
            self.depth -= 1
            if self.take() != ('op', ')'):
                raise EvalError("Missing closing parenthesis")
            return value
        if kind == 'num':
            return float(text)
        if kind == 'ident':
            if text not in self.bindings:
                raise EvalError(f"Unknown variable '{text}'")
            return self.bindings[text]
        raise EvalError("Unexpected end of expression" if kind is None else f"Unexpected token {text!r}")

    @staticmethod
    def apply(op: str, left: Value, right: Value) -> Value:
        if op == '+' and (isinstance(left, str) or isinstance(right, str)):
            return format_value(left) + format_value(right)
        if not (_is_number(left) and _is_number(right)):
            raise EvalError(f"Cannot apply '{op}' to text")
        if op == '+':
            return left + right
        if op == '-':
            return left - right
        if op == '*':
            return left * right
        if right == 0:
            raise EvalError("Division by zero")
        return left / right


def evaluate(expr: str, bindings: Dict[str, Value]) -> str:
    """
    Evaluate a sanitized expression against the binding table.
    Raises EvalError on any parse or evaluation problem.
    """
    try:
        value = _Parser(tokenize(expr), bindings).parse()
    except RecursionError:
        raise EvalError("Expression is nested too deeply")
    return format_value(value)
