# tracemath/core/expression.py
"""
Expression evaluator used by formula traces and the "Expression" transform.

Expressions use Python arithmetic syntax over complex numbers (``^`` is
accepted as power), a fixed set of numpy functions and constants, and free
variable names that are bound at evaluation time. Bound values may be
scalars or numpy arrays; arrays are evaluated element-wise.
"""
from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import Any, Mapping

import numpy as np

from .exceptions import EvalError, ParseError


def _db(v):
    return 20.0 * np.log10(np.abs(v))


FUNCTIONS: dict[str, Any] = {
    "sin": np.sin,
    "cos": np.cos,
    "tan": np.tan,
    "asin": np.arcsin,
    "acos": np.arccos,
    "atan": np.arctan,
    "sinh": np.sinh,
    "cosh": np.cosh,
    "tanh": np.tanh,
    "exp": np.exp,
    "log": np.log,
    "log10": np.log10,
    "log2": np.log2,
    "sqrt": np.sqrt,
    "abs": np.abs,
    "real": np.real,
    "imag": np.imag,
    "conj": np.conj,
    "arg": np.angle,
    "db": _db,
}

CONSTANTS: dict[str, Any] = {
    "pi": np.pi,
    "e": np.e,
}

_NAMESPACE = {**FUNCTIONS, **CONSTANTS}

_ALLOWED_NODES = (
    ast.Expression,
    ast.BinOp,
    ast.UnaryOp,
    ast.Call,
    ast.Name,
    ast.Constant,
    ast.Load,
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.Pow,
    ast.Mod,
    ast.BitXor,
    ast.USub,
    ast.UAdd,
)


class _Normalize(ast.NodeTransformer):
    """Rewrite ``^`` as power and integer literals as floats."""

    def visit_BinOp(self, node: ast.BinOp) -> ast.AST:
        self.generic_visit(node)
        if isinstance(node.op, ast.BitXor):
            node.op = ast.Pow()
        return node

    def visit_Constant(self, node: ast.Constant) -> ast.AST:
        # float powers overflow instead of growing unbounded integers
        if type(node.value) is int:
            try:
                return ast.copy_location(ast.Constant(float(node.value)), node)
            except OverflowError as e:
                raise ParseError(f"Numeric literal out of range: {node.value}") from e
        return node


def _check_tree(tree: ast.AST, text: str) -> frozenset[str]:
    names: set[str] = set()
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise ParseError(f"Unsupported syntax '{type(node).__name__}' in {text!r}")
        if isinstance(node, ast.Constant) and not isinstance(node.value, (int, float, complex)):
            raise ParseError(f"Only numeric literals are allowed in {text!r}")
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
                raise ParseError(f"Unknown function in {text!r}")
            if node.keywords:
                raise ParseError(f"Keyword arguments are not allowed in {text!r}")
        if isinstance(node, ast.Name):
            if "__" in node.id:
                raise ParseError(f"Forbidden name '{node.id}'")
            names.add(node.id)
    return frozenset(n for n in names if n not in _NAMESPACE)


@dataclass(frozen=True)
class Expression:
    """A compiled expression; `variables` are its free names."""

    text: str
    variables: frozenset[str]
    _code: Any = field(repr=False, compare=False)

    def eval(self, bindings: Mapping[str, Any]):
        missing = self.variables - set(bindings)
        if missing:
            raise EvalError(f"Unbound variable(s): {', '.join(sorted(missing))}")
        scope = {**_NAMESPACE, **bindings}
        try:
            with np.errstate(all="ignore"):
                result = eval(self._code, {"__builtins__": {}}, scope)
            out = np.asarray(result, dtype=np.complex128)
        except (ArithmeticError, TypeError, ValueError) as e:
            raise EvalError(f"Evaluation error in {self.text!r}: {e}") from e
        if out.ndim == 0:
            return complex(out)
        return out


def parse(text: str) -> Expression:
    if text is None or not text.strip():
        raise ParseError("Expression is empty")
    try:
        tree = ast.parse(text.strip(), mode="eval")
    except SyntaxError as e:
        raise ParseError(f"Invalid expression syntax: {e.msg}") from e
    tree = ast.fix_missing_locations(_Normalize().visit(tree))
    variables = _check_tree(tree, text)
    return Expression(
        text=text,
        variables=variables,
        _code=compile(tree, "<expression>", "eval"),
    )
