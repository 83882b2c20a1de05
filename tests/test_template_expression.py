import unittest

from decodergen import template_expression as tex
from decodergen.diagnostics import ExpressionError


class TemplateExpressionTestCase(unittest.TestCase):
    def setUp(self):
        self.formal = tex.TemplateFormal('n', 0)

    def test_arithmetic(self):
        expr = tex.add(tex.Constant(2), tex.multiply(tex.Constant(3), tex.Constant(4)))
        self.assertTrue(tex.is_constant(expr))
        self.assertEqual(tex.get_value(expr), 14)
        self.assertEqual(tex.get_value(tex.subtract(tex.Constant(2), tex.Constant(5))), -3)
        self.assertEqual(tex.get_value(tex.negate(tex.Constant(7))), -7)

    def test_division_truncates(self):
        self.assertEqual(tex.get_value(tex.divide(tex.Constant(-7), tex.Constant(2))), -3)
        self.assertEqual(tex.get_value(tex.divide(tex.Constant(7), tex.Constant(-2))), -3)
        self.assertEqual(tex.get_value(tex.divide(tex.Constant(7), tex.Constant(2))), 3)

    def test_divide_by_zero(self):
        with self.assertRaisesRegex(ExpressionError, 'Divide by zero'):
            tex.get_value(tex.divide(tex.Constant(1), tex.Constant(0)))

    def test_int32_wrap(self):
        self.assertEqual(tex.get_value(tex.add(tex.Constant(0x7fffffff), tex.Constant(1))),
                         -2**31)
        self.assertEqual(tex.get_value(tex.multiply(tex.Constant(0x10000),
                                                    tex.Constant(0x10000))), 0)

    def test_param(self):
        expr = tex.add(tex.Param(self.formal), tex.Constant(1))
        self.assertFalse(tex.is_constant(expr))
        with self.assertRaisesRegex(ExpressionError, 'template parameter'):
            tex.get_value(expr)
        self.assertEqual(tex.evaluate(expr, [tex.Constant(5)]), tex.Constant(6))
        self.assertEqual(tex.evaluate(expr), expr)

    def test_param_out_of_range(self):
        with self.assertRaisesRegex(ExpressionError, 'out of range'):
            tex.evaluate(tex.Param(tex.TemplateFormal('m', 1)), [tex.Constant(5)])

    def test_function(self):
        table = tex.default_function_table()
        expr = tex.make_function(table, 'abs', [tex.Constant(-3)])
        self.assertEqual(tex.get_value(expr), 3)
        with self.assertRaisesRegex(ExpressionError, "No function 'max' supported"):
            tex.make_function(table, 'max', [tex.Constant(1)])
        with self.assertRaisesRegex(ExpressionError,
                                    "Function 'abs' takes 1 parameters, but 2 were given"):
            tex.make_function(table, 'abs', [tex.Constant(1), tex.Constant(2)])

    def test_abs_int32_wrap(self):
        table = tex.default_function_table()
        expr = tex.make_function(table, 'abs', [tex.Constant(-2**31)])
        self.assertEqual(tex.get_value(expr), -2**31)
        expr = tex.make_function(table, 'abs', [tex.Constant(-2**31 + 1)])
        self.assertEqual(tex.get_value(expr), 2**31 - 1)

    def test_function_of_param(self):
        table = tex.default_function_table()
        expr = tex.make_function(table, 'abs', [tex.Param(self.formal)])
        self.assertEqual(tex.get_value(tex.evaluate(expr, [tex.Constant(-4)])), 4)

    def test_deep_copy(self):
        expr = tex.divide(tex.negate(tex.Param(self.formal)), tex.Constant(2))
        self.assertEqual(tex.deep_copy(expr), expr)
        self.assertIsNone(tex.deep_copy(None))

    def test_to_string(self):
        expr = tex.add(tex.Param(self.formal), tex.negate(tex.Constant(1)))
        self.assertEqual(tex.to_string(expr), '(n + -1)')
