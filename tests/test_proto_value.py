import unittest

from google.protobuf.descriptor import FieldDescriptor

from decodergen.diagnostics import ExpressionError
from decodergen.proto_value import (CppType, ProtoValue, ValueKind, cpp_type_name,
                                    join_setter_types, kind_for_cpp_type, make_value,
                                    negate_value, parse_number_literal)


class NumberLiteralTestCase(unittest.TestCase):
    def assertParses(self, text, kind, value):
        self.assertEqual(parse_number_literal(text), ProtoValue(kind, value))

    def test_int(self):
        self.assertParses('5', ValueKind.INT32, 5)
        self.assertParses('0x1F', ValueKind.INT32, 31)
        self.assertParses('0b101', ValueKind.INT32, 5)
        self.assertParses('0x80000000', ValueKind.INT64, 2**31)

    def test_suffix(self):
        self.assertParses('5u', ValueKind.UINT32, 5)
        self.assertParses('5UL', ValueKind.UINT64, 5)
        self.assertParses('5ll', ValueKind.INT64, 5)
        self.assertParses('0x100000000u', ValueKind.UINT64, 2**32)

    def test_float(self):
        self.assertParses('1.5', ValueKind.DOUBLE, 1.5)
        self.assertParses('1.5f', ValueKind.FLOAT, 1.5)

    def test_invalid(self):
        with self.assertRaisesRegex(ExpressionError, 'Invalid number literal'):
            parse_number_literal('0b12')
        with self.assertRaisesRegex(ExpressionError, 'Invalid number literal'):
            parse_number_literal(str(2**64))


class ProtoValueTestCase(unittest.TestCase):
    def test_make_value_wraps(self):
        self.assertEqual(make_value(ValueKind.INT32, 2**31).value, -2**31)
        self.assertEqual(make_value(ValueKind.UINT32, -1).value, 2**32 - 1)
        self.assertEqual(make_value(ValueKind.INT64, 5).value, 5)

    def test_negate(self):
        self.assertEqual(negate_value(ProtoValue(ValueKind.INT32, 5)),
                         ProtoValue(ValueKind.INT32, -5))
        self.assertEqual(negate_value(ProtoValue(ValueKind.UINT32, 1)).value, 2**32 - 1)
        self.assertEqual(negate_value(ProtoValue(ValueKind.DOUBLE, 1.5)).value, -1.5)
        with self.assertRaises(ExpressionError):
            negate_value(ProtoValue(ValueKind.BOOL, True))

    def test_kinds(self):
        self.assertIs(kind_for_cpp_type(CppType.ENUM), ValueKind.INT32)
        self.assertIsNone(kind_for_cpp_type(CppType.MESSAGE))
        self.assertEqual(cpp_type_name(CppType.UINT64), 'uint64_t')
        self.assertEqual(cpp_type_name(CppType.STRING), 'std::string')


class SetterTypeJoinTestCase(unittest.TestCase):
    def assertJoins(self, lhs, rhs, result):
        self.assertIs(join_setter_types(lhs, rhs), result)
        self.assertIs(join_setter_types(rhs, lhs), result)

    def test_same(self):
        for cpp_type in (CppType.INT32, CppType.UINT64, CppType.BOOL, CppType.STRING):
            self.assertJoins(cpp_type, cpp_type, cpp_type)

    def test_promotion(self):
        self.assertJoins(CppType.INT32, CppType.INT64, CppType.INT64)
        self.assertJoins(CppType.INT32, CppType.UINT32, CppType.INT64)
        self.assertJoins(CppType.UINT32, CppType.UINT64, CppType.UINT64)
        self.assertJoins(CppType.FLOAT, CppType.DOUBLE, CppType.DOUBLE)

    def test_enum(self):
        self.assertJoins(CppType.ENUM, CppType.INT32, CppType.INT32)
        self.assertJoins(CppType.ENUM, CppType.INT64, CppType.INT64)

    def test_bool(self):
        self.assertJoins(CppType.BOOL, CppType.INT32, CppType.INT32)
        self.assertJoins(CppType.BOOL, CppType.UINT32, CppType.UINT32)
        self.assertJoins(CppType.BOOL, CppType.INT64, CppType.INT64)
        self.assertJoins(CppType.BOOL, CppType.UINT64, CppType.UINT64)
        self.assertJoins(CppType.BOOL, CppType.ENUM, CppType.INT32)
        self.assertJoins(CppType.BOOL, CppType.DOUBLE, None)
        self.assertJoins(CppType.BOOL, CppType.STRING, None)

    def test_associative(self):
        types = list(CppType)
        types.remove(CppType.MESSAGE)
        for a in types:
            for b in types:
                for c in types:
                    ab = join_setter_types(a, b)
                    bc = join_setter_types(b, c)
                    lhs = None if ab is None else join_setter_types(ab, c)
                    rhs = None if bc is None else join_setter_types(a, bc)
                    if lhs is not None and rhs is not None:
                        self.assertIs(lhs, rhs, (a, b, c))

    def test_descriptor_numbers(self):
        self.assertIs(join_setter_types(FieldDescriptor.CPPTYPE_INT32,
                                        FieldDescriptor.CPPTYPE_INT64), CppType.INT64)
        self.assertIs(kind_for_cpp_type(FieldDescriptor.CPPTYPE_ENUM), ValueKind.INT32)

    def test_incompatible(self):
        self.assertJoins(CppType.INT32, CppType.UINT64, None)
        self.assertJoins(CppType.INT64, CppType.UINT64, None)
        self.assertJoins(CppType.STRING, CppType.DOUBLE, None)
        self.assertJoins(CppType.INT32, CppType.DOUBLE, None)
