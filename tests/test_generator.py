import unittest

from decodergen.diagnostics import ErrorListener, GeneratorError
from decodergen.generator import generate_text, parse_generate, process_range_assignments
from decodergen.lexer import Parser


def expand(source):
    parser = Parser(source)
    _, assignments, body, body_token = parse_generate(parser)
    range_infos = process_range_assignments(assignments, body, ErrorListener(), 'test',
                                            body_token)
    return generate_text(range_infos, body)


class GenerateTestCase(unittest.TestCase):
    def test_single(self):
        self.assertEqual(expand('GENERATE(a = [x, y]) {$(a);};'), 'x;y;')

    def test_product(self):
        self.assertEqual(expand('GENERATE(a = [x, y], [b, c] = [{1, 2}, {3, 4}]) '
                                '{$(a)$(b)$(c);};'),
                         'x12;x34;y12;y34;')

    def test_string_values(self):
        self.assertEqual(expand('GENERATE(s = ["", ".w"]) {add$(s);};'), 'add;add.w;')

    def test_body(self):
        parser = Parser('GENERATE(a = [x]) { op$(a){: rs1 : rd}; }; next')
        token, assignments, body, _ = parse_generate(parser)
        self.assertEqual(token.text, 'GENERATE')
        self.assertEqual(body, ' op$(a){: rs1 : rd}; ')
        self.assertEqual([name.text for name in assignments[0].names], ['a'])
        self.assertTrue(parser.at('next'))

    def test_tuple_mismatch(self):
        with self.assertRaisesRegex(GeneratorError, 'Number of values differs'):
            expand('GENERATE([a, b] = [{1}]) {$(a)$(b);};')

    def test_undefined_variable(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            with self.assertRaisesRegex(GeneratorError, 'undefined binding variable'):
                expand('GENERATE(a = [x]) {$(a)$(z);};')
        self.assertIn("Undefined binding variable 'z'", cm.output[0])

    def test_duplicate_variable(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            expand('GENERATE(a = [x], a = [y]) {$(a);};')
        self.assertIn("Duplicate binding variable name 'a'", cm.output[0])

    def test_unreferenced_variable(self):
        with self.assertLogs('decodergen.diagnostics', level='WARNING') as cm:
            self.assertEqual(expand('GENERATE(a = [x, y]) {nop;};'), 'nop;')
        self.assertIn("Unreferenced binding variable 'a'", cm.output[0])
