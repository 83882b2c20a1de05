"""
Sets of values a field may take under a set of constraints, used to detect encodings that
cannot be told apart.
"""

from collections import namedtuple

from .diagnostics import ExpressionError
from .proto_constraint_expression import (ConstraintType, max_value_expression,
                                          min_value_expression)

__all__ = ['SubRange', 'ValueSet']


# min and max are constraint expressions, None stands for the extremum of the type
SubRange = namedtuple('SubRange', ('min', 'min_included', 'max', 'max_included'))


def _value(expr):
    return expr.get_value().value


def _subrange_kind(subrange):
    expr = subrange.min if subrange.min is not None else subrange.max
    return expr.kind if expr is not None else None


def _lower_bound(lhs, rhs):
    if lhs.min is None:
        return rhs.min, rhs.min_included
    if rhs.min is None:
        return lhs.min, lhs.min_included
    lhs_value, rhs_value = _value(lhs.min), _value(rhs.min)
    if lhs_value > rhs_value:
        return lhs.min, lhs.min_included
    if rhs_value > lhs_value:
        return rhs.min, rhs.min_included
    return lhs.min, lhs.min_included and rhs.min_included


def _upper_bound(lhs, rhs):
    if lhs.max is None:
        return rhs.max, rhs.max_included
    if rhs.max is None:
        return lhs.max, lhs.max_included
    lhs_value, rhs_value = _value(lhs.max), _value(rhs.max)
    if lhs_value < rhs_value:
        return lhs.max, lhs.max_included
    if rhs_value < lhs_value:
        return rhs.max, rhs.max_included
    return lhs.max, lhs.max_included and rhs.max_included


def _intersect_subranges(lhs, rhs):
    low, low_included = _lower_bound(lhs, rhs)
    high, high_included = _upper_bound(lhs, rhs)
    if low is not None and high is not None:
        low_value, high_value = _value(low), _value(high)
        if low_value > high_value:
            return None
        if low_value == high_value and not (low_included and high_included):
            return None
    return SubRange(low, low_included, high, high_included)


class ValueSet:
    """A union of subranges; the subranges of one set all hold values of the same kind."""

    def __init__(self, subranges=()):
        self.subranges = list(subranges)

    def __repr__(self):
        return f'ValueSet({self.subranges!r})'

    @classmethod
    def from_constraint(cls, constraint):
        """
        Values satisfying ``constraint``. A ``HAS`` constraint on a oneof member is the
        single field number the oneof case takes.
        """
        expr = constraint.expr
        kind = expr.kind
        low = min_value_expression(kind)
        high = max_value_expression(kind)
        op = constraint.op
        if op in (ConstraintType.EQ, ConstraintType.HAS):
            return cls([SubRange(expr, True, expr, True)])
        if op is ConstraintType.NE:
            return cls([SubRange(low, True, expr, False), SubRange(expr, False, high, True)])
        if op is ConstraintType.LT:
            return cls([SubRange(low, True, expr, False)])
        if op is ConstraintType.LE:
            return cls([SubRange(low, True, expr, True)])
        if op is ConstraintType.GT:
            return cls([SubRange(expr, False, high, True)])
        return cls([SubRange(expr, True, high, True)])

    @property
    def kind(self):
        for subrange in self.subranges:
            kind = _subrange_kind(subrange)
            if kind is not None:
                return kind
        return None

    def copy(self):
        return ValueSet(self.subranges)

    def is_empty(self):
        return not self.subranges

    def intersect_with(self, rhs):
        """Replace this set by its intersection with ``rhs``."""
        if self.is_empty() or rhs.is_empty():
            self.subranges = []
            return self
        if self.kind != rhs.kind:
            raise ExpressionError('Value set intersection: type error')
        result = []
        for lhs_range in self.subranges:
            for rhs_range in rhs.subranges:
                subrange = _intersect_subranges(lhs_range, rhs_range)
                if subrange is not None:
                    result.append(subrange)
        self.subranges = result
        return self

    def union_with(self, rhs):
        self.subranges.extend(rhs.subranges)
        return self
