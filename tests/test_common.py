import logging
import os
import tempfile
import unittest

from decodergen.common import load_options, setup_logging, split_list
from decodergen.proto_encoding_group import DEFAULT_DENSITY_THRESHOLD


class SplitListTestCase(unittest.TestCase):
    def test_split(self):
        self.assertEqual(split_list(''), [])
        self.assertEqual(split_list(None), [])
        self.assertEqual(split_list('a'), ['a'])
        self.assertEqual(split_list('a,,b,'), ['a', 'b'])


class LoadOptionsTestCase(unittest.TestCase):
    def setUp(self):
        self._directory = tempfile.TemporaryDirectory()
        self.directory = self._directory.name

    def tearDown(self):
        self._directory.cleanup()

    def config(self, text):
        path = os.path.join(self.directory, 'config.yaml')
        with open(path, 'w') as f:
            f.write(text)
        return path

    def test_defaults(self):
        options = load_options()
        self.assertEqual(options.density_threshold, DEFAULT_DENSITY_THRESHOLD)
        self.assertEqual(options.include, [])
        self.assertEqual(options.proto_include, [])
        self.assertEqual(options.output_dir, '.')

    def test_yaml(self):
        path = self.config('density_threshold: 0.5\n'
                           'include:\n'
                           '  - isa/common\n'
                           'proto_include: protos,more_protos\n'
                           'output_dir: generated\n')
        options = load_options(path, include=['cli'])
        self.assertEqual(options.density_threshold, 0.5)
        self.assertEqual(options.include, ['cli', 'isa/common'])
        self.assertEqual(options.proto_include, ['protos', 'more_protos'])
        self.assertEqual(options.output_dir, 'generated')

    def test_command_line_output_dir(self):
        path = self.config('output_dir: generated\n')
        self.assertEqual(load_options(path, output_dir='out').output_dir, 'out')

    def test_empty_file(self):
        options = load_options(self.config(''))
        self.assertEqual(options.density_threshold, DEFAULT_DENSITY_THRESHOLD)

    def test_bad_yaml(self):
        with self.assertRaises(SystemExit):
            load_options(self.config('include: [a\n'))

    def test_not_a_mapping(self):
        with self.assertRaises(SystemExit):
            load_options(self.config('- a\n- b\n'))

    def test_bad_density(self):
        with self.assertRaises(SystemExit):
            load_options(self.config('density_threshold: dense\n'))


class SetupLoggingTestCase(unittest.TestCase):
    def setUp(self):
        root_logger = logging.getLogger()
        self.saved = list(root_logger.handlers), root_logger.level

    def tearDown(self):
        root_logger = logging.getLogger()
        handlers, level = self.saved
        root_logger.handlers[:] = handlers
        root_logger.setLevel(level)

    def test_levels(self):
        root_logger = logging.getLogger()
        setup_logging()
        self.assertEqual(root_logger.level, logging.INFO)
        self.assertEqual(len(root_logger.handlers), 1)
        setup_logging(verbose=1)
        self.assertEqual(root_logger.level, logging.DEBUG)
        self.assertEqual(len(root_logger.handlers), 1)
        setup_logging(quiet=2)
        self.assertEqual(root_logger.level, logging.ERROR)

    def test_format(self):
        setup_logging()
        formatter = logging.getLogger().handlers[0].formatter
        record = logging.LogRecord('decodergen.cli', logging.WARNING, __file__, 1,
                                   'writing %s', ('a.h',), None)
        self.assertEqual(formatter.format(record), 'W: decodergen.cli: writing a.h')
