import unittest
from collections import namedtuple

from decodergen.diagnostics import ErrorListener


Token = namedtuple('Token', ('line', 'column'))


class ErrorListenerTestCase(unittest.TestCase):
    def setUp(self):
        self.listener = ErrorListener('top.isa')

    def test_semantic_error(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.listener.semantic_error(Token(3, 5), 'bad thing')
        self.assertEqual(cm.output, ['ERROR:decodergen.diagnostics:top.isa:3:5  Error: bad thing'])
        self.assertEqual(self.listener.semantic_error_count, 1)
        self.assertTrue(self.listener.has_error())

    def test_explicit_file_name(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.listener.semantic_error(Token(1, 1), 'bad thing', 'other.isa')
        self.assertIn('other.isa:1:1  Error: bad thing', cm.output[0])

    def test_no_token(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.listener.semantic_error(None, 'bad thing')
        self.assertEqual(cm.output, ['ERROR:decodergen.diagnostics:top.isa  Error: bad thing'])

    def test_syntax_error(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.listener.syntax_error(2, 7, "expected ';'")
        self.assertIn('top.isa:2:7', cm.output[0])
        self.assertEqual(self.listener.syntax_error_count, 1)
        self.assertTrue(self.listener.has_error())

    def test_warning(self):
        with self.assertLogs('decodergen.diagnostics', level='WARNING') as cm:
            self.listener.semantic_warning(Token(4, 1), 'odd thing')
        self.assertIn('top.isa:4:1  Warning: odd thing', cm.output[0])
        self.assertEqual(self.listener.semantic_warning_count, 1)
        self.assertFalse(self.listener.has_error())

    def test_internal_error(self):
        with self.assertLogs('decodergen.diagnostics', level='CRITICAL'):
            self.listener.internal_error('broken')
        self.assertTrue(self.listener.has_error())
