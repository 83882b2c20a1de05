import unittest

from decodergen import template_expression as tex
from decodergen.diagnostics import GeneratorError
from decodergen.disasm_format import (parse_disasm_format, parse_format_expression,
                                      parse_number_format)
from decodergen.instruction import Instruction
from decodergen.opcode import OpcodeFactory, OperandLocator


class DisasmFormatTestCase(unittest.TestCase):
    def setUp(self):
        opcode = OpcodeFactory().create_opcode('add')
        opcode.op_locator_map['rs1'] = OperandLocator(0, 's', False, 0)
        opcode.op_locator_map['rs2'] = OperandLocator(0, 's', False, 1)
        opcode.op_locator_map['rd'] = OperandLocator(0, 'd', False, 0)
        self.inst = Instruction(opcode, None)

    def test_plain_and_formatted(self):
        disasm_fmt = parse_disasm_format('add %rd, %rs1, %(rs2<<2:x04)', self.inst)
        self.assertEqual(disasm_fmt.format_fragment_vec, ['add ', ', ', ', '])
        infos = disasm_fmt.format_info_vec
        self.assertEqual([info.op_name for info in infos], ['rd', 'rs1', 'rs2'])
        self.assertFalse(infos[0].is_formatted)
        self.assertFalse(infos[1].is_formatted)
        self.assertTrue(infos[2].is_formatted)
        self.assertEqual(infos[2].number_format, '%04x')
        self.assertTrue(infos[2].do_left_shift)
        self.assertEqual(infos[2].shift_amount, 2)
        self.assertEqual(self.inst.disasm_format_vec, [disasm_fmt])

    def test_address(self):
        disasm_fmt = parse_disasm_format('%(@+rs2:08x)', self.inst)
        info = disasm_fmt.format_info_vec[0]
        self.assertTrue(info.use_address)
        self.assertEqual(info.operation, '+')
        self.assertEqual(info.number_format, '%08x')

    def test_default_number_format(self):
        disasm_fmt = parse_disasm_format('%(rs1)', self.inst)
        self.assertEqual(disasm_fmt.format_info_vec[0].number_format, '%d')

    def test_optional(self):
        disasm_fmt = parse_disasm_format('%rd?', self.inst)
        self.assertTrue(disasm_fmt.format_info_vec[0].is_optional)
        self.assertEqual(disasm_fmt.num_optional, 1)

    def test_literal_only(self):
        disasm_fmt = parse_disasm_format('nop', self.inst)
        self.assertEqual(disasm_fmt.format_fragment_vec, ['nop'])
        self.assertEqual(disasm_fmt.format_info_vec, [])

    def test_width(self):
        widths = [tex.Constant(-18), tex.Constant(12)]
        first = parse_disasm_format('add', self.inst, widths)
        second = parse_disasm_format('%rd', self.inst, widths)
        third = parse_disasm_format('%rs1', self.inst, widths)
        self.assertEqual((first.width, second.width, third.width), (-18, 12, 0))

    def test_invalid_operand(self):
        with self.assertRaisesRegex(GeneratorError, "Invalid operand 'foo' used in format"):
            parse_disasm_format('%foo', self.inst)

    def test_unterminated(self):
        with self.assertRaisesRegex(GeneratorError, 'Unexpected end of format string'):
            parse_disasm_format('%(rd', self.inst)
        with self.assertRaisesRegex(GeneratorError, 'Unexpected end of format string'):
            parse_disasm_format('add %', self.inst)

    def test_format_expression(self):
        info = parse_format_expression('(rs1 >> 3)', self.inst.opcode)
        self.assertEqual(info.op_name, 'rs1')
        self.assertFalse(info.do_left_shift)
        self.assertEqual(info.shift_amount, 3)
        with self.assertRaisesRegex(GeneratorError, 'Missing shift'):
            parse_format_expression('(rs1 + 3)', self.inst.opcode)
        with self.assertRaisesRegex(GeneratorError, "@ must be followed by a"):
            parse_format_expression('@ rs1', self.inst.opcode)

    def test_number_format(self):
        self.assertEqual(parse_number_format('08x'), '%08x')
        self.assertEqual(parse_number_format('x04'), '%04x')
        self.assertEqual(parse_number_format('d'), '%d')
        self.assertEqual(parse_number_format('3o'), '%3o')
        with self.assertRaisesRegex(GeneratorError, 'Format width required'):
            parse_number_format('0x')
        with self.assertRaisesRegex(GeneratorError, "Illegal format specifier 'q'"):
            parse_number_format('q')
        with self.assertRaisesRegex(GeneratorError, 'Format width > than 3 digits'):
            parse_number_format('123x')
