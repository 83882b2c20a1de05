import os
import tempfile
import unittest

from decodergen.diagnostics import ErrorListener
from decodergen.proto_fmt_visitor import ProtoFormatVisitor


TESTFILES = os.path.join(os.path.dirname(__file__), 'testfiles')
RISCV32I_PROTO_FMT = os.path.join(TESTFILES, 'riscv32i.proto_fmt')

FORMAT_CASE = 'inst_proto.format_case() == decodergen::test::RiscVInstruction::FormatCase'


class RiscV32IGenerationTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        with tempfile.TemporaryDirectory() as directory:
            visitor = ProtoFormatVisitor()
            cls.success = visitor.process([RISCV32I_PROTO_FMT], 'RiscV32I', 'riscv32i',
                                          proto_dirs=[TESTFILES],
                                          proto_files=['riscv32i.proto'],
                                          directory=directory)
            cls.files = sorted(os.listdir(directory))
            with open(os.path.join(directory, 'riscv32i_proto_decoder.h')) as f:
                cls.h = f.read()
            with open(os.path.join(directory, 'riscv32i_proto_decoder.cc')) as f:
                cls.cc = f.read()

    def test_success(self):
        self.assertTrue(self.success)
        self.assertEqual(self.files, ['riscv32i_proto_decoder.cc', 'riscv32i_proto_decoder.h'])

    def test_header(self):
        self.assertTrue(self.h.startswith('#ifndef RISCV32I_PROTO_DECODER_H\n'
                                          '#define RISCV32I_PROTO_DECODER_H\n'))
        self.assertIn('#include "riscv32i.pb.h"\n', self.h)
        self.assertIn('#include "riscv32i_enums.h"\n', self.h)
        self.assertIn('namespace decodergen {\nnamespace test {\nnamespace riscv32i {\n', self.h)
        self.assertIn('using RiscVGInst32MessageType = ::decodergen::test::RiscVInstruction;\n',
                      self.h)
        self.assertIn('class RiscV32IDecoder {\n public:\n', self.h)
        self.assertIn('  OpcodeEnum DecodeRiscVGInst32(RiscVGInst32MessageType inst_proto);\n',
                      self.h)
        self.assertTrue(self.h.endswith('#endif  // RISCV32I_PROTO_DECODER_H\n'))

    def test_setter_types(self):
        self.assertIn('  void SetImm(int64_t value);\n', self.h)
        self.assertIn('  int64_t GetImm() const { return imm_value_; }\n', self.h)
        for name in ('rd', 'rs1', 'rs2'):
            self.assertIn(f'  int32_t {name}_value_ = {{}};\n', self.h)
        self.assertIn('void RiscV32IDecoder::SetRs2(int32_t value) {\n'
                      '  rs2_value_ = value;\n'
                      '}\n', self.cc)

    def test_dispatch_table(self):
        self.assertIn('#include "riscv32i_proto_decoder.h"\n', self.cc)
        self.assertIn('static constexpr DecodeFcn kDecodeTable[7] = {', self.cc)
        self.assertIn('int64_t index = static_cast<int64_t>(inst_proto.opcode()) - (1);',
                      self.cc)
        self.assertNotIn('DecodeRiscVGInst32_None', self.cc)
        for value in range(1, 8):
            self.assertIn(f'OpcodeEnum DecodeRiscVGInst32_{value}(RiscVGInst32MessageType '
                          f'inst_proto, RiscV32IDecoder *decoder) {{', self.cc)

    def test_leaves(self):
        self.assertIn(f'  if ({FORMAT_CASE}::kRtype) {{\n'
                      '    decoder->SetRd(inst_proto.rtype().rd());\n'
                      '    decoder->SetRs1(inst_proto.rtype().rs1());\n'
                      '    decoder->SetRs2(inst_proto.rtype().rs2());\n'
                      '  }\n'
                      '  return OpcodeEnum::kAdd;\n', self.cc)
        self.assertIn('  return OpcodeEnum::kBne;\n', self.cc)
        self.assertIn(f'  if (({FORMAT_CASE}::kUtype)) {{\n'
                      '    decoder->SetImm(inst_proto.utype().immediate());\n'
                      '    decoder->SetRd(inst_proto.utype().rd());\n'
                      '    return OpcodeEnum::kLui;\n'
                      '  }\n', self.cc)

    def test_class_methods(self):
        self.assertIn('OpcodeEnum RiscV32IDecoder::DecodeRiscVGInst32('
                      'RiscVGInst32MessageType inst_proto) {\n'
                      '  return ::decodergen::test::riscv32i::DecodeRiscVGInst32(inst_proto, '
                      'this);\n'
                      '}\n', self.cc)


_using = 'using decodergen.test.RiscVInstruction;\n'


def _group(body, name='g', message='RiscVInstruction'):
    return f'instruction group {name} : {message} {{\n{body}\n}}\n'


def _decoder(*groups, name='Test'):
    lines = ''.join(f'  {group};\n' for group in groups)
    return f'decoder {name} {{\n  namespace test;\n{lines}}}\n'


class ProtoFormatVisitorTestCase(unittest.TestCase):
    def setUp(self):
        self._directory = tempfile.TemporaryDirectory()
        self.directory = self._directory.name
        self.error_listener = ErrorListener()
        self.visitor = ProtoFormatVisitor(self.error_listener)

    def tearDown(self):
        self._directory.cleanup()

    def write(self, file_name, text):
        path = os.path.join(self.directory, file_name)
        with open(path, 'w') as f:
            f.write(text)
        return path

    def generate(self, text, decoder_name='Test', file_name='test.proto_fmt'):
        path = self.write(file_name, text)
        return self.visitor.process([path], decoder_name, 'test', proto_dirs=[TESTFILES],
                                    proto_files=['riscv32i.proto'], directory=self.directory)

    def read_output(self, extension='cc'):
        with open(os.path.join(self.directory, f'test_proto_decoder.{extension}')) as f:
            return f.read()

    def assertGenerates(self, text):
        self.assertTrue(self.generate(text))
        return self.read_output()

    def assertError(self, text, message, decoder_name='Test'):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.assertFalse(self.generate(text, decoder_name))
        self.assertIn(message, '\n'.join(cm.output))
        self.assertNotIn('test_proto_decoder.h', os.listdir(self.directory))

    def test_minimal(self):
        cc = self.assertGenerates(_using + _group('a : size == 1;\nb : size == 2;') +
                                  _decoder('g'))
        self.assertIn('OpcodeEnum DecodeG_1(GMessageType inst_proto, TestDecoder *decoder)',
                      cc)
        self.assertIn('static constexpr DecodeFcn kDecodeTable[2] = {', cc)

    def test_alias(self):
        cc = self.assertGenerates('using decodergen.test.RiscVInstruction as Inst;\n' +
                                  _group('a : opcode == OPCODE_ADD;', message='Inst') +
                                  _decoder('g'))
        self.assertIn('return OpcodeEnum::kA;', cc)
        h = self.read_output('h')
        self.assertIn('using GMessageType = ::decodergen::test::RiscVInstruction;', h)

    def test_fully_qualified_message(self):
        self.assertGenerates(_group('a : ;', message='decodergen.test.RiscVInstruction') +
                             _decoder('g'))

    def test_has_field(self):
        cc = self.assertGenerates(_using + _group('a : HAS(size) : v = size;') +
                                  _decoder('g'))
        self.assertIn('  if ((inst_proto.has_size())) {\n'
                      '    decoder->SetV(inst_proto.size());\n', cc)

    def test_setter_default(self):
        cc = self.assertGenerates(_using + _group('a : : v = size if_not(4);') +
                                  _decoder('g'))
        self.assertIn('decoder->SetV(inst_proto.has_size() ? inst_proto.size() : 4);', cc)

    def test_setter_type_join(self):
        self.assertGenerates(_using + _group('a : size == 1 : v = size;\n'
                                             'b : size == 2 : v = utype.immediate;') +
                             _decoder('g'))
        self.assertIn('  void SetV(int64_t value);\n', self.read_output('h'))

    def test_negative_value(self):
        cc = self.assertGenerates(_using + _group('a : size == -1;\nb : size == 1000;') +
                                  _decoder('g'))
        self.assertIn('{-1, &DecodeG_m1},', cc)
        self.assertIn('inst_proto.size()', cc)

    def test_opcode_enum(self):
        self.assertGenerates(_using + _group('a : ;') +
                             'decoder Test {\n  opcode_enum = "isa::Opcode";\n  g;\n}\n')
        self.assertIn('  return isa::Opcode::kA;\n', self.read_output())

    def test_undefined_message(self):
        self.assertError(_group('a : size == 1;', message='Missing') + _decoder('g'),
                         "Undefined proto message type: 'Missing'")

    def test_field_not_found(self):
        self.assertError(_using + _group('a : bogus == 1;') + _decoder('g'),
                         "Field 'bogus' not found in message 'RiscVInstruction'")

    def test_field_not_message(self):
        self.assertError(_using + _group('a : size.x == 1;') + _decoder('g'),
                         "Field 'size' is not a message")

    def test_enum_value_not_found(self):
        self.assertError(_using + _group('a : opcode == OPCODE_FOO;') + _decoder('g'),
                         "Enum value not found: 'OPCODE_FOO'")

    def test_not_enum_type(self):
        self.assertError(_using + _group('a : size == OPCODE_ADD;') + _decoder('g'),
                         "Field 'size' is not enum type")

    def test_overflow(self):
        self.assertError(_using + _group('a : size == 3000000000;') + _decoder('g'),
                         "Expression value for field 'size' overflows int32_t.")

    def test_illegal_type(self):
        self.assertError(_using + _group('a : size == "four";') + _decoder('g'),
                         "Illegal type in expression in constraint for field 'size'.")

    def test_setter_type_inconsistency(self):
        self.assertError(_using + _group('a : size == 1 : v = size;\n'
                                         'b : size == 2 : v = note;') + _decoder('g'),
                         "Type inconsistency in setter 'v'")

    def test_bool_setter_promoted(self):
        cc = self.assertGenerates(_using + _group('a : size == 1 : v = compressed;\n'
                                                  'b : size == 2 : v = address;') +
                                  _decoder('g'))
        self.assertIn('void TestDecoder::SetV(uint64_t value) {', cc)

    def test_uint64_equality_overflow(self):
        self.assertError(_using + _group('a : address == 18446744073709551615u;\nb : ;') +
                         _decoder('g'),
                         "Expression value for field 'address' overflows int64_t.")

    def test_uint64_range(self):
        self.assertGenerates(_using + _group('a : address > 18446744073709551614u;\n'
                                             'b : address < 16;') + _decoder('g'))

    def test_message_setter(self):
        self.assertError(_using + _group('a : : v = utype;') + _decoder('g'),
                         "Setter type for 'v' cannot be a message.")

    def test_undefined_setter_group(self):
        self.assertError(_using + _group('a : : setter regs;') + _decoder('g'),
                         "No setter group 'regs'.")

    def test_decoder_not_declared(self):
        self.assertError(_using + _group('a : ;') + _decoder('g'),
                         "Decoder 'Other' not declared", decoder_name='Other')

    def test_no_such_group(self):
        self.assertError(_using + _group('a : ;') + _decoder('h'),
                         "No such instruction group: 'h'")

    def test_encoding_ambiguity(self):
        self.assertError(_using + _group('a : size == 1;\nb : size == 1;') + _decoder('g'),
                         "Encoding group 'g': encoding ambiguity between 'a' and 'b'")

    def test_decoding_ambiguity(self):
        self.assertError(_using + _group('a : ;\nb : ;') + _decoder('g'),
                         "Decoding ambiguity between 'a' and 'b'")

    def test_unconstrained_beside_constrained(self):
        self.assertError(_using + _group('a : size == 1;\nb : ;') + _decoder('g'),
                         "Decoding ambiguity between 'b' and 'a'")

    def test_group_listed_twice(self):
        self.assertError(_using + _group('a : ;') + _decoder('g', 'g'),
                         "Instruction group 'g' listed twice")

    def test_multiple_definitions(self):
        self.assertError(_using + _group('a : ;') + _group('b : ;') + _decoder('g'),
                         "Multiple definitions of instruction group 'g' first defined at "
                         "line: 2")

    def test_parent_group(self):
        text = (_using + _group('a : size == 1;\nb : size == 2;', name='g1') +
                _group('a : size == 3;', name='g2') + _decoder('all = {g1, g2}'))
        with self.assertLogs('decodergen.diagnostics', level='WARNING') as cm:
            self.assertTrue(self.generate(text))
        self.assertIn("Duplicate instruction opcode name 'a' in group 'all'.", cm.output[0])
        cc = self.read_output()
        self.assertIn('OpcodeEnum DecodeAll_3(AllMessageType inst_proto', cc)
        self.assertIn('static constexpr DecodeFcn kDecodeTable[3] = {', cc)
        self.assertNotIn('DecodeG1', cc)

    def test_parent_group_format_mismatch(self):
        text = ('using decodergen.test.RiscVInstruction;\nusing decodergen.test.UType;\n' +
                _group('a : size == 1;', name='g1') +
                _group('b : rd == 1;', name='g2', message='UType') +
                _decoder('all = {g1, g2}'))
        self.assertError(text, "Instruction group 'g2' must use format "
                               "'decodergen.test.RiscVInstruction', to be merged into group "
                               "'all'")

    def test_generate(self):
        cc = self.assertGenerates(
            _using + _group('GENERATE([name, value] = [{one, 1}, {two, 2}]) {\n'
                            '  $(name) : size == $(value);\n'
                            '};') + _decoder('g'))
        self.assertIn('return OpcodeEnum::kOne;', cc)
        self.assertIn('return OpcodeEnum::kTwo;', cc)

    def test_syntax_error(self):
        self.assertFalse(self.generate(_using + 'instruction group g RiscVInstruction {}\n'))
        self.assertEqual(self.error_listener.syntax_error_count, 1)

    def test_missing_proto_file(self):
        path = self.write('test.proto_fmt', _using + _group('a : ;') + _decoder('g'))
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.assertFalse(self.visitor.process([path], 'Test', 'test',
                                                  proto_dirs=[self.directory],
                                                  proto_files=['missing.proto'],
                                                  directory=self.directory))
        self.assertIn("Failed to import 'missing.proto'", cm.output[0])

    def test_include(self):
        self.write('groups.proto_fmt', _using + _group('a : size == 1;\nb : size == 2;'))
        cc = self.assertGenerates('include "groups.proto_fmt";\n' + _decoder('g'))
        self.assertIn('return OpcodeEnum::kB;', cc)

    def test_additional_input_file(self):
        groups = self.write('groups.proto_fmt', _using + _group('a : ;'))
        path = self.write('test.proto_fmt', _decoder('g'))
        self.assertTrue(self.visitor.process([path, groups], 'Test', 'test',
                                             proto_dirs=[TESTFILES],
                                             proto_files=['riscv32i.proto'],
                                             directory=self.directory))

    def test_missing_include(self):
        self.assertError('include "missing.proto_fmt";\n' + _decoder('g'),
                         "Failed to open 'missing.proto_fmt'")

    def test_recursive_include(self):
        self.write('other.proto_fmt', 'include "test.proto_fmt";\n')
        self.assertError('include "other.proto_fmt";\n' + _using + _group('a : ;') +
                         _decoder('g'), "Recursive include of 'test.proto_fmt'")
