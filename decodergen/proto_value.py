"""
Typed scalar values for constraints on protobuf fields.

``CppType`` mirrors the C++ kinds protobuf assigns to fields. ``ValueKind`` lists the kinds
a constraint value can hold; both mappings between the two are derived from ``ValueKind``.
"""

import enum
import math
from collections import namedtuple

from google.protobuf.descriptor import FieldDescriptor

from .diagnostics import ExpressionError

__all__ = ['CppType', 'ValueKind', 'ProtoValue', 'kind_for_cpp_type', 'cpp_type_for_kind',
           'cpp_type_name', 'is_int_kind', 'make_value', 'negate_value',
           'parse_number_literal', 'join_setter_types']


class CppType(enum.Enum):
    INT32 = FieldDescriptor.CPPTYPE_INT32
    INT64 = FieldDescriptor.CPPTYPE_INT64
    UINT32 = FieldDescriptor.CPPTYPE_UINT32
    UINT64 = FieldDescriptor.CPPTYPE_UINT64
    DOUBLE = FieldDescriptor.CPPTYPE_DOUBLE
    FLOAT = FieldDescriptor.CPPTYPE_FLOAT
    BOOL = FieldDescriptor.CPPTYPE_BOOL
    ENUM = FieldDescriptor.CPPTYPE_ENUM
    STRING = FieldDescriptor.CPPTYPE_STRING
    MESSAGE = FieldDescriptor.CPPTYPE_MESSAGE


class ValueKind(enum.Enum):
    INT32 = (CppType.INT32, 'int32_t', -2**31, 2**31 - 1)
    INT64 = (CppType.INT64, 'int64_t', -2**63, 2**63 - 1)
    UINT32 = (CppType.UINT32, 'uint32_t', 0, 2**32 - 1)
    UINT64 = (CppType.UINT64, 'uint64_t', 0, 2**64 - 1)
    DOUBLE = (CppType.DOUBLE, 'double', -math.inf, math.inf)
    FLOAT = (CppType.FLOAT, 'float', -math.inf, math.inf)
    BOOL = (CppType.BOOL, 'bool', False, True)
    STRING = (CppType.STRING, 'std::string', None, None)

    def __init__(self, cpp_type, c_name, min_value, max_value):
        self.cpp_type = cpp_type
        self.c_name = c_name
        self.min_value = min_value
        self.max_value = max_value


ProtoValue = namedtuple('ProtoValue', ('kind', 'value'))

_cpp_to_kind = {kind.cpp_type: kind for kind in ValueKind}
# enumerators compare as their int32 numbers
_cpp_to_kind[CppType.ENUM] = ValueKind.INT32

_int_kinds = frozenset((ValueKind.INT32, ValueKind.INT64, ValueKind.UINT32, ValueKind.UINT64))


def kind_for_cpp_type(cpp_type):
    """
    Value kind of a field of ``cpp_type``, ``None`` for messages. ``cpp_type`` may also be
    the plain ``FieldDescriptor.cpp_type`` number.
    """
    return _cpp_to_kind.get(CppType(cpp_type))


def cpp_type_for_kind(kind):
    return kind.cpp_type


def cpp_type_name(cpp_type):
    kind = kind_for_cpp_type(cpp_type)
    if kind is None:
        return 'void'
    return kind.c_name


def is_int_kind(kind):
    return kind in _int_kinds


def make_value(kind, value):
    """Build a ``ProtoValue`` of ``kind``, wrapping integers to the width of the kind."""
    if kind in _int_kinds:
        bits = 32 if kind in (ValueKind.INT32, ValueKind.UINT32) else 64
        value = int(value) & ((1 << bits) - 1)
        if kind.min_value < 0 and value > kind.max_value:
            value -= 1 << bits
    elif kind is ValueKind.BOOL:
        value = bool(value)
    elif kind in (ValueKind.FLOAT, ValueKind.DOUBLE):
        value = float(value)
    else:
        value = str(value)
    return ProtoValue(kind, value)


def negate_value(proto_value):
    kind = proto_value.kind
    if kind in (ValueKind.BOOL, ValueKind.STRING):
        raise ExpressionError(f'Cannot negate a value of type {kind.c_name}')
    return make_value(kind, -proto_value.value)


def parse_number_literal(text):
    """
    Value of a number literal. A ``u`` suffix makes it unsigned, ``l`` or ``ll`` 64 bit;
    otherwise the narrowest of 32 and 64 bits that holds the value is used. Decimal
    literals with a fraction or an ``f`` suffix are floating point.
    """
    text = text.lower()
    if not text.startswith('0x') and ('.' in text or text.endswith('f')):
        try:
            if text.endswith('f'):
                return ProtoValue(ValueKind.FLOAT, float(text[:-1]))
            return ProtoValue(ValueKind.DOUBLE, float(text))
        except ValueError:
            raise ExpressionError('Invalid number literal')
    digits = text.rstrip('ul')
    suffix = text[len(digits):]
    try:
        if digits.startswith('0x'):
            value = int(digits[2:], 16)
        elif digits.startswith('0b'):
            value = int(digits[2:], 2)
        else:
            value = int(digits, 10)
    except ValueError:
        raise ExpressionError('Invalid number literal')
    if 'u' in suffix:
        candidates = (ValueKind.UINT64,) if 'l' in suffix else (ValueKind.UINT32,
                                                                ValueKind.UINT64)
    else:
        candidates = (ValueKind.INT64,) if 'l' in suffix else (ValueKind.INT32,
                                                               ValueKind.INT64)
    for kind in candidates:
        if kind.min_value <= value <= kind.max_value:
            return ProtoValue(kind, value)
    raise ExpressionError('Invalid number literal')


# Direct promotions between setter types; a setter read from fields of different types
# gets the least type both promote to.
_promotions = {
    CppType.BOOL: (CppType.INT32, CppType.UINT32),
    CppType.INT32: (CppType.INT64,),
    CppType.UINT32: (CppType.INT64, CppType.UINT64),
    CppType.FLOAT: (CppType.DOUBLE,),
}


def _up_set(cpp_type):
    types = {cpp_type}
    pending = [cpp_type]
    while pending:
        for promoted in _promotions.get(pending.pop(), ()):
            if promoted not in types:
                types.add(promoted)
                pending.append(promoted)
    return types


def join_setter_types(lhs, rhs):
    """
    Least common type of two setter types or ``None`` if there is none. Enums join as
    int32, bools promote to any integer type. The result does not depend on the order of
    the arguments.
    """
    lhs = CppType(lhs)
    rhs = CppType(rhs)
    if lhs is CppType.ENUM:
        lhs = CppType.INT32
    if rhs is CppType.ENUM:
        rhs = CppType.INT32
    common = _up_set(lhs) & _up_set(rhs)
    least = [cpp_type for cpp_type in common if common <= _up_set(cpp_type)]
    if len(least) != 1:
        return None
    return least[0]
