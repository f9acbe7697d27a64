"""
Variable template engine.

Template bodies use mustache-like tags:

    {{name}}                       plain substitution
    {{#items}}...{{/items}}        one copy per record of a list variable
    {{#if name}}...{{/if}}         kept when the variable is truthy
    {{#unless name}}...{{/unless}} kept when the variable is falsy
    {{= price * quantity }}        computed expression

The body is tokenized once into a node tree and interpreted in a single walk.
Evaluation follows a fixed order of precedence: declared variables are
substituted first (so they shadow record fields inside list iterations), list
sections are expanded next, then conditionals, then expressions, which only
ever see the declared variables.
"""

import json
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field, asdict
from typing import Dict, Iterator, List, Optional, Union

from enhancemd.core import config
from enhancemd.core.errors import (
    DiagnosticKind, Diagnostic, EvalError, ListParseFailed, record,
)
from enhancemd.features.expressions import evaluate, Value

logger = logging.getLogger(__name__)

VARIABLE_TYPES = ('text', 'number', 'date', 'boolean', 'list')
FALSY_VALUES = ('', 'false', '0')

TAG_RE = re.compile(r'\{\{(.*?)\}\}', re.DOTALL)
EXPR_SAFE_RE = re.compile(r'[^A-Za-z0-9_+\-*/(). \t]')
NUMBER_PREFIX_RE = re.compile(r'^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?')


@dataclass
class Variable:
    name: str
    value: str = ''
    type: str = 'text'
    description: Optional[str] = None

    def __post_init__(self):
        if self.type not in VARIABLE_TYPES:
            raise ValueError(f"Unknown variable type '{self.type}' for '{self.name}'")
        if not isinstance(self.value, str):
            # List defaults are often written as Python lists in code
            self.value = json.dumps(self.value) if self.type == 'list' else str(self.value)

    @property
    def is_truthy(self) -> bool:
        return self.value not in FALSY_VALUES

    def typed_value(self) -> Value:
        """Value bound into computed expressions."""
        if self.type == 'number':
            return parse_number(self.value)
        if self.type == 'boolean':
            return self.value == 'true'
        return self.value

    def records(self) -> List[Dict[str, object]]:
        """Parse a list variable's raw value. Raises ListParseFailed."""
        try:
            data = json.loads(self.value)
        except (TypeError, ValueError) as e:
            raise ListParseFailed(f"'{self.name}' is not valid JSON: {e}")
        if not isinstance(data, list):
            raise ListParseFailed(f"'{self.name}' must be a JSON array")
        for item in data:
            if not isinstance(item, dict):
                raise ListParseFailed(f"'{self.name}' must contain only objects")
        return data

    def to_dict(self) -> Dict[str, Optional[str]]:
        data = asdict(self)
        if data['description'] is None:
            del data['description']
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Variable':
        return cls(
            name=data['name'],
            value=data.get('value', ''),
            type=data.get('type', 'text'),
            description=data.get('description'),
        )


def parse_number(raw: str) -> float:
    """Leading numeric prefix of a raw value, NaN when there is none."""
    match = NUMBER_PREFIX_RE.match(raw or '')
    return float(match.group(0)) if match else float('nan')


class VariableSet:
    """
    Ordered set of variables keyed by name.
    Mutated in place by the editing session between pipeline runs.
    """

    def __init__(self, variables: Optional[List[Variable]] = None):
        self._variables: 'OrderedDict[str, Variable]' = OrderedDict()
        for variable in variables or []:
            self.add(variable)

    def add(self, variable: Variable) -> None:
        if variable.name in self._variables:
            logger.debug(f"Variables: Replacing existing variable '{variable.name}'")
        self._variables[variable.name] = variable

    def update(self, name: str, value: str) -> Variable:
        variable = self._variables.get(name)
        if variable is None:
            raise KeyError(name)
        variable.value = value
        return variable

    def remove(self, name: str) -> bool:
        return self._variables.pop(name, None) is not None

    def replace_all(self, variables: List[Variable]) -> None:
        self._variables.clear()
        for variable in variables:
            self.add(variable)

    def get(self, name: str) -> Optional[Variable]:
        return self._variables.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._variables

    def __iter__(self) -> Iterator[Variable]:
        return iter(list(self._variables.values()))

    def __len__(self) -> int:
        return len(self._variables)

    def to_list(self) -> List[Dict]:
        return [v.to_dict() for v in self._variables.values()]

    @classmethod
    def from_list(cls, items: List[Dict]) -> 'VariableSet':
        return cls([Variable.from_dict(item) for item in items])


# --- Node tree -------------------------------------------------------------

@dataclass
class Literal:
    text: str


@dataclass
class VarRef:
    name: str
    raw: str


@dataclass
class Expr:
    expression: str
    raw: str


@dataclass
class Section:
    name: str
    open_raw: str
    close_raw: str
    children: List['Node'] = field(default_factory=list)


@dataclass
class Conditional:
    name: str
    inverse: bool
    open_raw: str
    close_raw: str
    children: List['Node'] = field(default_factory=list)


Node = Union[Literal, VarRef, Expr, Section, Conditional]

_IF_OPEN_RE = re.compile(r'^#(if|unless) (.+)$', re.DOTALL)


def _classify(tag: str):
    """Return (kind, argument) for the inside of a {{...}} tag."""
    if tag.startswith('='):
        return 'expr', tag[1:].strip()
    match = _IF_OPEN_RE.match(tag)
    if match:
        return match.group(1), match.group(2)
    if tag in ('/if', '/unless'):
        return 'close_' + tag[1:], None
    if tag.startswith('#') and len(tag) > 1:
        return 'section', tag[1:]
    if tag.startswith('/') and len(tag) > 1:
        return 'close_section', tag[1:]
    return 'ref', tag


def parse(body: str) -> List[Node]:
    """
    Tokenize a template body into a node tree in one pass.
    Openers without a matching closer and stray closers stay literal text.
    """
    root: List[Node] = []
    # Open blocks, innermost last: (key, kind, name, open_raw, children)
    stack = []
    open_counts: Dict[tuple, int] = {}

    def children():
        return stack[-1][4] if stack else root

    def collapse():
        # An opener that never closed becomes text; its contents move up a level
        key, _, _, open_raw, inner = stack.pop()
        open_counts[key] -= 1
        parent = children()
        parent.append(Literal(open_raw))
        parent.extend(inner)

    for kind, raw, arg in _tokens(body):
        if kind == 'text':
            children().append(Literal(raw))
        elif kind == 'ref':
            children().append(VarRef(arg, raw))
        elif kind == 'expr':
            children().append(Expr(arg, raw))
        elif kind in ('section', 'if', 'unless'):
            key = _block_key(kind, arg)
            open_counts[key] = open_counts.get(key, 0) + 1
            stack.append((key, kind, arg, raw, []))
        elif kind.startswith('close_'):
            key = _block_key(kind[len('close_'):], arg)
            if not open_counts.get(key):
                children().append(Literal(raw))
                continue
            while stack[-1][0] != key:
                collapse()
            key, open_kind, name, open_raw, inner = stack.pop()
            open_counts[key] -= 1
            if open_kind == 'section':
                children().append(Section(name, open_raw, raw, inner))
            else:
                children().append(Conditional(name, open_kind == 'unless', open_raw, raw, inner))
        else:
            children().append(Literal(raw))

    while stack:
        collapse()
    return root


def _tokens(body: str) -> Iterator[tuple]:
    pos = 0
    for match in TAG_RE.finditer(body):
        if match.start() > pos:
            yield 'text', body[pos:match.start()], None
        kind, arg = _classify(match.group(1))
        yield kind, match.group(0), arg
        pos = match.end()
    if pos < len(body):
        yield 'text', body[pos:], None


def _block_key(kind: str, arg: Optional[str]) -> tuple:
    # Sections close by name, conditionals close on the innermost open one
    return (kind, arg) if kind == 'section' else (kind, None)


def source(node: Node) -> str:
    """Reassemble the original template text of a node."""
    parts = []
    pending = [node]
    while pending:
        item = pending.pop()
        if isinstance(item, str):
            parts.append(item)
        elif isinstance(item, Literal):
            parts.append(item.text)
        elif isinstance(item, (VarRef, Expr)):
            parts.append(item.raw)
        else:
            pending.append(item.close_raw)
            pending.extend(reversed(item.children))
            pending.append(item.open_raw)
    return ''.join(parts)


# --- Interpretation ---------------------------------------------------------

class _Expander:
    def __init__(self, variables: VariableSet, diagnostics: Optional[List[Diagnostic]]):
        self.variables = variables
        self.diagnostics = diagnostics
        self._bindings: Optional[Dict[str, Value]] = None
        self._records_cache: Dict[str, Optional[List[Dict]]] = {}
        self._warned_conditionals = set()

    @property
    def bindings(self) -> Dict[str, Value]:
        if self._bindings is None:
            self._bindings = {v.name: v.typed_value() for v in self.variables}
        return self._bindings

    def render(self, nodes: List[Node], fields: Optional[Dict[str, object]] = None, depth: int = 0) -> str:
        return ''.join(self.render_node(node, fields, depth) for node in nodes)

    def render_node(self, node: Node, fields: Optional[Dict[str, object]], depth: int = 0) -> str:
        if isinstance(node, Literal):
            return node.text
        if isinstance(node, VarRef):
            return self.render_ref(node, fields)
        if isinstance(node, Expr):
            return self.render_expr(node)
        if depth >= config.MAX_BLOCK_DEPTH:
            record(self.diagnostics, DiagnosticKind.NESTING_TOO_DEEP,
                   f"Blocks nested deeper than {config.MAX_BLOCK_DEPTH} levels left as text", node.name)
            return source(node)
        if isinstance(node, Section):
            return self.render_section(node, fields, depth + 1)
        return self.render_conditional(node, fields, depth + 1)

    def render_ref(self, node: VarRef, fields) -> str:
        variable = self.variables.get(node.name)
        if variable is not None:
            return variable.value
        if fields is not None and node.name in fields:
            return _field_text(fields[node.name])
        return node.raw

    def records_for(self, variable: Variable) -> Optional[List[Dict]]:
        if variable.name not in self._records_cache:
            try:
                self._records_cache[variable.name] = variable.records()
            except ListParseFailed as e:
                record(self.diagnostics, DiagnosticKind.LIST_PARSE_FAILED, str(e), variable.name)
                self._records_cache[variable.name] = None
        return self._records_cache[variable.name]

    def render_section(self, node: Section, fields, depth: int) -> str:
        variable = self.variables.get(node.name)
        items = None
        if variable is not None and variable.type == 'list':
            items = self.records_for(variable)
        if items is None:
            return node.open_raw + self.render(node.children, fields, depth) + node.close_raw
        # Record fields are single level: outer record fields do not leak in
        return ''.join(self.render(node.children, item, depth) for item in items)

    def render_conditional(self, node: Conditional, fields, depth: int) -> str:
        variable = self.variables.get(node.name)
        if variable is None:
            if node.name not in self._warned_conditionals:
                self._warned_conditionals.add(node.name)
                record(self.diagnostics, DiagnosticKind.UNDECLARED_CONDITIONAL,
                       f"Conditional references undeclared variable '{node.name}', treated as false",
                       node.name)
            truthy = False
        else:
            truthy = variable.is_truthy
        if truthy != node.inverse:
            return self.render(node.children, fields, depth)
        return ''

    def render_expr(self, node: Expr) -> str:
        expression = EXPR_SAFE_RE.sub('', node.expression)
        try:
            return evaluate(expression, self.bindings)
        except EvalError as e:
            record(self.diagnostics, DiagnosticKind.EXPRESSION_EVAL_FAILED,
                   f"Could not evaluate '{node.expression}': {e}", node.expression)
            return node.raw


def _field_text(value: object) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def expand(body: str, variables: Union[VariableSet, List[Variable]],
           diagnostics: Optional[List[Diagnostic]] = None) -> str:
    """
    Expand all template tags in body against the variable set.
    Never raises for template problems; they are recorded as diagnostics.
    """
    if not isinstance(variables, VariableSet):
        variables = VariableSet(list(variables))
    if '{{' not in body:
        return body
    nodes = parse(body)
    output = _Expander(variables, diagnostics).render(nodes)
    logger.debug(f"Variables: Expanded {len(body)} chars into {len(output)} chars with {len(variables)} variables")
    return output
