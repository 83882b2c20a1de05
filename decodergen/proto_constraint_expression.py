"""
Expressions on the right hand side of ``.proto_fmt`` field constraints.

Expressions are immutable; ``clone`` returns an equal expression.
"""

import enum
from collections import namedtuple

from .proto_value import ProtoValue, ValueKind, negate_value

__all__ = ['ConstraintType', 'ValueExpression', 'EnumExpression', 'NegateExpression',
           'min_value_expression', 'max_value_expression']


class ConstraintType(enum.Enum):
    EQ = '=='
    NE = '!='
    LT = '<'
    LE = '<='
    GT = '>'
    GE = '>='
    HAS = 'HAS'


def _cpp_literal(proto_value):
    kind, value = proto_value
    if kind is ValueKind.BOOL:
        return 'true' if value else 'false'
    if kind is ValueKind.STRING:
        return '"' + value + '"'
    if kind is ValueKind.FLOAT:
        return f'{value!r}f'
    if kind is ValueKind.DOUBLE:
        return repr(value)
    if kind is ValueKind.UINT32:
        return f'{value}u'
    if kind is ValueKind.UINT64:
        return f'{value}ull'
    if kind is ValueKind.INT64:
        return f'{value}ll'
    return str(value)


class ValueExpression(namedtuple('ValueExpression', ('value',))):
    __slots__ = ()

    @property
    def kind(self):
        return self.value.kind

    def get_value(self):
        return self.value

    def cpp_text(self):
        return _cpp_literal(self.value)

    def clone(self):
        return ValueExpression(self.value)


class EnumExpression(namedtuple('EnumExpression', ('enum_value',))):
    """An enumerator of a protobuf enum; compares as its number."""
    __slots__ = ()

    @property
    def kind(self):
        return ValueKind.INT32

    def get_value(self):
        return ProtoValue(ValueKind.INT32, self.enum_value.number)

    def cpp_text(self):
        # enumerators are scoped by the package or message enclosing their enum
        scope = self.enum_value.type.full_name.rpartition('.')[0]
        if not scope:
            return self.enum_value.name
        return f'{scope}.{self.enum_value.name}'.replace('.', '::')

    def clone(self):
        return EnumExpression(self.enum_value)


class NegateExpression(namedtuple('NegateExpression', ('expr',))):
    __slots__ = ()

    @property
    def kind(self):
        return self.expr.kind

    def get_value(self):
        return negate_value(self.expr.get_value())

    def cpp_text(self):
        return f'-{self.expr.cpp_text()}'

    def clone(self):
        return NegateExpression(self.expr.clone())


def min_value_expression(kind):
    """Smallest value of ``kind`` or ``None`` where the kind has no bound."""
    if kind.min_value is None:
        return None
    return ValueExpression(ProtoValue(kind, kind.min_value))


def max_value_expression(kind):
    if kind.max_value is None:
        return None
    return ValueExpression(ProtoValue(kind, kind.max_value))
