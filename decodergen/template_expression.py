"""
Lazy integer expressions used for template arguments, latencies, resource windows and
attribute values in ISA descriptions.

Expressions are immutable tuples::

    Constant(value)
    Param(formal)
    Negate(expr)
    BinOp(op, lhs, rhs)        op is one of '+', '-', '*', '/'
    Func(name, evaluator, args)

and are interpreted by the functions in this module. Since nodes are never mutated, a
subtree may be shared between owners; ``deep_copy`` still produces a structurally
independent tree.
"""

from collections import namedtuple
from ctypes import c_int32

from .diagnostics import ExpressionError

__all__ = ['TemplateFormal', 'Constant', 'Param', 'Negate', 'BinOp', 'Func',
           'FunctionEvaluator', 'default_function_table', 'make_function',
           'negate', 'add', 'subtract', 'multiply', 'divide',
           'is_constant', 'get_value', 'get_int_value', 'evaluate', 'deep_copy',
           'to_string']


TemplateFormal = namedtuple('TemplateFormal', ('name', 'position'))

Constant = namedtuple('Constant', ('value',))
Param = namedtuple('Param', ('formal',))
Negate = namedtuple('Negate', ('expr',))
BinOp = namedtuple('BinOp', ('op', 'lhs', 'rhs'))
Func = namedtuple('Func', ('name', 'evaluator', 'args'))

FunctionEvaluator = namedtuple('FunctionEvaluator', ('function', 'arity'))


def _wrap_int(value):
    return c_int32(value).value


def _check_int(value):
    if type(value) is not int:
        raise ExpressionError('int type expected')
    return value


def _c_divide(lhs, rhs):
    if rhs == 0:
        raise ExpressionError('Divide by zero')
    quotient = abs(lhs) // abs(rhs)
    if (lhs < 0) != (rhs < 0):
        quotient = -quotient
    return quotient


_operators = {
    '+': lambda lhs, rhs: lhs + rhs,
    '-': lambda lhs, rhs: lhs - rhs,
    '*': lambda lhs, rhs: lhs * rhs,
    '/': _c_divide,
}


def _abs(args):
    return _wrap_int(abs(_check_int(args[0])))


def default_function_table():
    return {'abs': FunctionEvaluator(_abs, 1)}


def make_function(table, name, args):
    if name not in table:
        raise ExpressionError(f"No function '{name}' supported")
    evaluator = table[name]
    if len(args) != evaluator.arity:
        raise ExpressionError(f"Function '{name}' takes {evaluator.arity} parameters, "
                              f"but {len(args)} were given")
    return Func(name, evaluator, tuple(args))


def negate(expr):
    return Negate(expr)


def add(lhs, rhs):
    return BinOp('+', lhs, rhs)


def subtract(lhs, rhs):
    return BinOp('-', lhs, rhs)


def multiply(lhs, rhs):
    return BinOp('*', lhs, rhs)


def divide(lhs, rhs):
    return BinOp('/', lhs, rhs)


def is_constant(expr):
    if isinstance(expr, Constant):
        return True
    if isinstance(expr, Param):
        return False
    if isinstance(expr, Negate):
        return is_constant(expr.expr)
    if isinstance(expr, BinOp):
        return is_constant(expr.lhs) and is_constant(expr.rhs)
    if isinstance(expr, Func):
        return all(is_constant(arg) for arg in expr.args)
    raise ExpressionError(f'Unknown expression node {expr!r}')


def get_value(expr):
    """Return the value of a constant expression, raising ``ExpressionError`` otherwise."""
    if isinstance(expr, Constant):
        return expr.value
    if isinstance(expr, Param):
        raise ExpressionError('Cannot return value of template parameter')
    if isinstance(expr, Negate):
        return _wrap_int(-_check_int(get_value(expr.expr)))
    if isinstance(expr, BinOp):
        lhs = _check_int(get_value(expr.lhs))
        rhs = _check_int(get_value(expr.rhs))
        return _wrap_int(_operators[expr.op](lhs, rhs))
    if isinstance(expr, Func):
        if not is_constant(expr):
            raise ExpressionError('Cannot evaluate function with unbound arguments')
        return expr.evaluator.function([get_value(arg) for arg in expr.args])
    raise ExpressionError(f'Unknown expression node {expr!r}')


def get_int_value(expr):
    return _check_int(get_value(expr))


def evaluate(expr, args=None):
    """
    Instantiate ``expr`` against the template arguments ``args`` (a sequence of expressions
    indexed by formal position). Constant subtrees are folded. Without arguments, template
    parameters are kept as they are.
    """
    if isinstance(expr, Constant):
        return Constant(expr.value)
    if isinstance(expr, Param):
        if args is None:
            return Param(expr.formal)
        if expr.formal.position >= len(args):
            raise ExpressionError('Template parameter position out of range')
        arg = args[expr.formal.position]
        if is_constant(arg):
            return Constant(get_value(arg))
        # The argument belongs to a different instantiation context.
        return evaluate(arg, None)
    if isinstance(expr, Negate):
        inner = evaluate(expr.expr, args)
        if is_constant(inner):
            return Constant(get_value(Negate(inner)))
        return Negate(inner)
    if isinstance(expr, BinOp):
        lhs = evaluate(expr.lhs, args)
        rhs = evaluate(expr.rhs, args)
        node = BinOp(expr.op, lhs, rhs)
        if is_constant(node):
            return Constant(get_value(node))
        return node
    if isinstance(expr, Func):
        return Func(expr.name, expr.evaluator, tuple(evaluate(arg, args) for arg in expr.args))
    raise ExpressionError(f'Unknown expression node {expr!r}')


def deep_copy(expr):
    if expr is None:
        return None
    if isinstance(expr, Constant):
        return Constant(expr.value)
    if isinstance(expr, Param):
        return Param(expr.formal)
    if isinstance(expr, Negate):
        return Negate(deep_copy(expr.expr))
    if isinstance(expr, BinOp):
        return BinOp(expr.op, deep_copy(expr.lhs), deep_copy(expr.rhs))
    if isinstance(expr, Func):
        return Func(expr.name, expr.evaluator, tuple(deep_copy(arg) for arg in expr.args))
    raise ExpressionError(f'Unknown expression node {expr!r}')


def to_string(expr):
    if isinstance(expr, Constant):
        return str(expr.value)
    if isinstance(expr, Param):
        return expr.formal.name
    if isinstance(expr, Negate):
        return f'-{to_string(expr.expr)}'
    if isinstance(expr, BinOp):
        return f'({to_string(expr.lhs)} {expr.op} {to_string(expr.rhs)})'
    if isinstance(expr, Func):
        return f"{expr.name}({', '.join(to_string(arg) for arg in expr.args)})"
    raise ExpressionError(f'Unknown expression node {expr!r}')
