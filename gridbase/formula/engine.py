import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set

from gridbase.constants import ColumnType
from gridbase.errors import FormulaError
from gridbase.formula import functions as fx
from gridbase.formula.parser import (
    BinaryExpression,
    ConditionalExpression,
    FormulaParser,
    FunctionCall,
    Literal,
    Node,
    PropertyReference,
    UnaryExpression,
)
from gridbase.schemas import CellValue, Column, Row
from gridbase.utils.clock import to_iso

logger = logging.getLogger(__name__)

_DATE_TYPES = {ColumnType.DATE, ColumnType.CREATED_TIME, ColumnType.LAST_EDITED_TIME}
_COMPUTED_TYPES = {ColumnType.FORMULA, ColumnType.ROLLUP}


@dataclass
class FormulaResult:
    value: CellValue = None
    error: Optional[str] = None


@dataclass
class FormulaValidation:
    is_valid: bool
    error: Optional[str] = None


class _Context:
    def __init__(self, row: Row, columns: Iterable[Column]):
        self.row = row
        self.columns_by_name = {column.name.lower(): column for column in columns}


def walk(node: Node) -> Iterator[Node]:
    """Every node of an AST, parents before children."""
    stack: List[Node] = [node]
    while stack:
        current = stack.pop()
        yield current
        if isinstance(current, UnaryExpression):
            stack.append(current.operand)
        elif isinstance(current, BinaryExpression):
            stack.extend([current.left, current.right])
        elif isinstance(current, FunctionCall):
            stack.extend(current.arguments)
        elif isinstance(current, ConditionalExpression):
            stack.extend([current.condition, current.consequent, current.alternate])


def references(node: Node) -> Set[str]:
    """Property names referenced anywhere in an AST."""
    return {current.name for current in walk(node) if isinstance(current, PropertyReference)}


class FormulaEngine:
    """
    Evaluates formula expressions against a row.

    Parsed ASTs are cached per expression. The PLY parser is not re-entrant, so
    parsing is serialised; evaluation itself is pure and runs unlocked.
    """

    def __init__(self) -> None:
        self._parser = FormulaParser()
        self._cache: Dict[str, Node] = {}
        self._lock = threading.Lock()
        self._custom: Dict[str, fx.FunctionDefinition] = {}

    def parse(self, formula: str) -> Node:
        with self._lock:
            ast = self._cache.get(formula)
            if ast is None:
                ast = self._parser.parse(formula)
                self._cache[formula] = ast
            return ast

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def add_function(
        self,
        name: str,
        fn: Callable[..., Any],
        min_args: int = 0,
        max_args: Optional[int] = None,
    ) -> None:
        self._custom[name.lower()] = fx.FunctionDefinition(fn=fn, min_args=min_args, max_args=max_args)

    def _lookup(self, name: str) -> Optional[fx.FunctionDefinition]:
        return self._custom.get(name) or fx.get_function(name)

    def validate(self, formula: str, columns: Optional[Iterable[Column]] = None) -> FormulaValidation:
        try:
            ast = self.parse(formula)
        except FormulaError as exc:
            return FormulaValidation(is_valid=False, error=str(exc))
        unknown = sorted(
            current.name
            for current in walk(ast)
            if isinstance(current, FunctionCall) and self._lookup(current.name) is None
        )
        if unknown:
            return FormulaValidation(is_valid=False, error=f"Unknown function: {unknown[0]}")
        if columns is not None:
            known = {column.name.lower() for column in columns}
            missing = sorted(name for name in references(ast) if name.lower() not in known)
            if missing:
                return FormulaValidation(is_valid=False, error=f'Property not found: "{missing[0]}"')
        return FormulaValidation(is_valid=True)

    def evaluate(self, formula: str, row: Row, columns: Iterable[Column]) -> CellValue:
        return self.evaluate_with_result(formula, row, columns).value

    def evaluate_with_result(self, formula: str, row: Row, columns: Iterable[Column]) -> FormulaResult:
        try:
            ast = self.parse(formula)
            value = self._evaluate(ast, _Context(row, columns))
        except (FormulaError, ArithmeticError, ValueError, TypeError) as exc:
            logger.debug("Formula %r failed on row %s: %s", formula, row.id, exc)
            return FormulaResult(value=None, error=str(exc))
        return FormulaResult(value=self._to_cell_value(value))

    # --- AST evaluation ---

    def _evaluate(self, node: Node, context: _Context) -> fx.FormulaValue:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, PropertyReference):
            return self._property(node.name, context)
        if isinstance(node, UnaryExpression):
            return self._unary(node, context)
        if isinstance(node, BinaryExpression):
            return self._binary(node, context)
        if isinstance(node, ConditionalExpression):
            if fx.to_boolean(self._evaluate(node.condition, context)):
                return self._evaluate(node.consequent, context)
            return self._evaluate(node.alternate, context)
        if isinstance(node, FunctionCall):
            return self._call(node, context)
        raise FormulaError(f"Unknown node: {node!r}")

    def _property(self, name: str, context: _Context) -> fx.FormulaValue:
        column = context.columns_by_name.get(name.lower())
        if column is None:
            raise FormulaError(f'Property not found: "{name}"')
        if column.type in _COMPUTED_TYPES:
            value = context.row.computed.get(column.id)
        else:
            value = context.row.cells.get(column.id)
        if value is None:
            return None
        if column.type in _DATE_TYPES and isinstance(value, str):
            return fx.to_date(value)
        if isinstance(value, list):
            return ", ".join(fx.to_string(item) for item in value)
        if isinstance(value, dict):
            return fx.to_string(value)
        return value

    def _unary(self, node: UnaryExpression, context: _Context) -> fx.FormulaValue:
        value = self._evaluate(node.operand, context)
        if node.operator == "not":
            return not fx.to_boolean(value)
        number = fx.to_number(value)
        if number is None:
            return None
        return -number if node.operator == "-" else number

    def _binary(self, node: BinaryExpression, context: _Context) -> fx.FormulaValue:
        operator = node.operator
        left = self._evaluate(node.left, context)
        if operator == "and":
            return fx.to_boolean(left) and fx.to_boolean(self._evaluate(node.right, context))
        if operator == "or":
            return fx.to_boolean(left) or fx.to_boolean(self._evaluate(node.right, context))
        right = self._evaluate(node.right, context)

        if operator == "+" and (isinstance(left, str) or isinstance(right, str)):
            return fx.to_string(left) + fx.to_string(right)
        if operator == "==":
            return fx.values_equal(left, right)
        if operator == "!=":
            return not fx.values_equal(left, right)
        if operator in ("<", "<=", ">", ">="):
            tests = {
                "<": lambda a, b: a < b,
                "<=": lambda a, b: a <= b,
                ">": lambda a, b: a > b,
                ">=": lambda a, b: a >= b,
            }
            return fx.compare(left, right, tests[operator])

        left_number, right_number = fx.to_number(left), fx.to_number(right)
        if left_number is None or right_number is None:
            return None
        if operator == "+":
            return left_number + right_number
        if operator == "-":
            return left_number - right_number
        if operator == "*":
            return left_number * right_number
        if right_number == 0:
            return None
        if operator == "/":
            return left_number / right_number
        if operator == "%":
            return fx.clean_number(math.fmod(left_number, right_number))
        raise FormulaError(f"Unknown operator: {operator}")

    def _call(self, node: FunctionCall, context: _Context) -> fx.FormulaValue:
        definition = self._lookup(node.name)
        if definition is None:
            raise FormulaError(f"Unknown function: {node.name}")
        count = len(node.arguments)
        if count < definition.min_args:
            raise FormulaError(
                f"Function {node.name} requires at least {definition.min_args} argument(s), got {count}"
            )
        if definition.max_args is not None and count > definition.max_args:
            raise FormulaError(
                f"Function {node.name} accepts at most {definition.max_args} argument(s), got {count}"
            )
        if node.name == "if":
            condition = self._evaluate(node.arguments[0], context)
            branch = node.arguments[1] if fx.to_boolean(condition) else node.arguments[2]
            return self._evaluate(branch, context)
        arguments = [self._evaluate(argument, context) for argument in node.arguments]
        return definition.fn(*arguments)

    @staticmethod
    def _to_cell_value(value: fx.FormulaValue) -> CellValue:
        if isinstance(value, datetime):
            return to_iso(value)
        if isinstance(value, float):
            if math.isnan(value) or math.isinf(value):
                return None
            return fx.clean_number(value)
        return value


formula_engine = FormulaEngine()
