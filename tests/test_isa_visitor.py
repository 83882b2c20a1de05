import os
import tempfile
import unittest

from decodergen import template_expression as tex
from decodergen.instruction import Instruction
from decodergen.instruction_set import InstructionSet
from decodergen.isa_parser import IsaParser, OverrideSpec, SlotDecl
from decodergen.isa_visitor import InstructionSetVisitor
from decodergen.slot import Slot


TESTFILES = os.path.join(os.path.dirname(__file__), 'testfiles')
EXAMPLE_ISA = os.path.join(TESTFILES, 'example.isa')


_inheritance_isa = """
isa Test {
  namespace test;
  slots { derived; }
}

slot base {
  default size = 4;
  opcodes {
    A{}, semfunc: "&A";
    B{}, semfunc: "&B";
    C{}, semfunc: "&C";
  }
}

slot derived : base {
  default opcode = semfunc: "&Nop";
  opcodes {
    delete %s;
  }
}
"""

_override_isa = """
isa Test {
  namespace test;
  slots { derived; }
}

slot base {
  default size = 4;
  opcodes {
    A{}, semfunc: "&A";
    B{}, semfunc: "&B";
  }
}

slot derived : base {
  default opcode = semfunc: "&Nop";
  opcodes {
    %s
  }
}
"""

_template_isa = """
isa Test {
  namespace test;
  slots { leaf; }
}

template <int a>
slot top {
  default size = 4;
  opcodes {
    add{: rs : rd(a + 1)}, semfunc: "&Add", attributes: {cycles = a + 3};
  }
}

template <int b>
slot middle : top<b * 2> {}

%s
"""

_resource_isa = """
isa Test {
  namespace test;
  slots { s; }
}

slot s {
  default size = 4;
  default opcode = semfunc: "&Nop";
  opcodes {
    a{: rs : rd(3)}, semfunc: "&A",
      resources: { rs, flag : rd[1..rd], [vregs][2..3] : hold_res[..4] };
  }
}
"""

_resource_error_isa = """
isa Test {
  namespace test;
  slots { s; }
}

slot s {
  default size = 4;
  opcodes {
    a%s, semfunc: "&A", resources: { : %s };
  }
}
"""

_child_isa = """
isa Test {
  namespace test;
  slots { s; }
}

slot s {
  default size = 4;
  opcodes {
    a{(: rs1 : rd), (: rs2 : re)}, semfunc: %s;
  }
}
"""


class InstructionSetVisitorTestCase(unittest.TestCase):
    def setUp(self):
        self.visitor = InstructionSetVisitor()

    def visit(self, text, isa_name='Test', file_name='test.isa'):
        declarations = IsaParser(text, file_name).parse_top_level()
        self.visitor.visit_top_level(declarations)
        return self.visitor.process_top_level(isa_name)

    def visit_file(self, path, isa_name):
        with open(path, 'r') as f:
            return self.visit(f.read(), isa_name, path)

    def test_generate_files(self):
        with tempfile.TemporaryDirectory() as directory:
            self.assertTrue(self.visitor.process([EXAMPLE_ISA], 'example', 'Example',
                                                 directory=directory))
            for name in ('example_decoder.h', 'example_decoder.cc', 'example_enums.h',
                         'example_enums.cc'):
                self.assertTrue(os.path.isfile(os.path.join(directory, name)), name)
            with open(os.path.join(directory, 'example_enums.h')) as f:
                enums_h = f.read()
            with open(os.path.join(directory, 'example_decoder.cc')) as f:
                decoder_cc = f.read()
        self.assertIn('#ifndef EXAMPLE_ENUMS_H', enums_h)
        self.assertIn('namespace example {', enums_h)
        self.assertIn('enum class OpcodeEnum {', enums_h)
        for name in ('kAdd', 'kAddi', 'kBeq', 'kBne'):
            self.assertIn(f'    {name} = ', enums_h)
        self.assertIn('kExampleSlot', enums_h)
        self.assertIn('#include "example_semfuncs.h"', decoder_cc)
        self.assertEqual(self.visitor.error_listener.semantic_error_count, 0)

    def test_slot_inheritance(self):
        instruction_set = self.visit_file(EXAMPLE_ISA, 'Example')
        self.assertEqual(instruction_set.namespaces, ['decodergen', 'test', 'example'])
        slot = instruction_set.get_slot('example_slot')
        self.assertEqual(set(slot.instruction_map), {'add', 'addi', 'beq', 'bne'})
        base = instruction_set.get_slot('base_slot')
        self.assertEqual(set(base.instruction_map), {'add', 'sub', 'addi'})
        self.assertEqual(slot.default_instruction.semfunc_code_string, '&Unimplemented')

    def test_latencies(self):
        instruction_set = self.visit_file(EXAMPLE_ISA, 'Example')
        slot = instruction_set.get_slot('example_slot')
        add = slot.instruction_map['add']
        addi = slot.instruction_map['addi']
        self.assertEqual(add.opcode.get_dest_op('rd').get_latency(), 1)
        self.assertEqual(addi.opcode.get_dest_op('rd').get_latency(), 2)
        self.assertEqual(add.opcode.instruction_size, 4)

    def test_generated_opcodes(self):
        instruction_set = self.visit_file(EXAMPLE_ISA, 'Example')
        slot = instruction_set.get_slot('example_slot')
        beq = slot.instruction_map['beq']
        self.assertEqual(beq.semfunc_code_string, '&Beq')
        self.assertEqual([op.name for op in beq.opcode.source_op_vec], ['rs1', 'rs2', 'bimm'])
        self.assertEqual(len(beq.disasm_format_vec), 2)
        self.assertEqual(beq.disasm_format_vec[0].width, -18)
        target = beq.disasm_format_vec[1].format_info_vec[2]
        self.assertEqual(target.op_name, 'bimm')
        self.assertTrue(target.use_address)
        self.assertEqual(target.number_format, '%08x')

    def test_delete_opcode(self):
        instruction_set = self.visit(_inheritance_isa % 'B')
        slot = instruction_set.get_slot('derived')
        self.assertEqual(set(slot.instruction_map), {'A', 'C'})
        self.assertFalse(self.visitor.error_listener.has_error())

    def test_delete_missing_opcode(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visit(_inheritance_isa % 'D')
        self.assertIn("Base slot does not define or inherit opcode 'D'", cm.output[0])
        self.assertEqual(self.visitor.error_listener.semantic_error_count, 1)

    def test_recursive_include(self):
        with tempfile.TemporaryDirectory() as directory:
            a_isa = os.path.join(directory, 'a.isa')
            with open(a_isa, 'w') as f:
                f.write('#include "b.isa"\n')
            with open(os.path.join(directory, 'b.isa'), 'w') as f:
                f.write('#include "a.isa"\n')
            with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
                self.assertFalse(self.visitor.process([a_isa], 'a', 'A', directory=directory))
            self.assertEqual(sorted(os.listdir(directory)), ['a.isa', 'b.isa'])
        self.assertTrue(any("Recursive include of 'a.isa'" in line for line in cm.output))

    def test_missing_isa(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.assertIsNone(self.visit('int x = 1;', 'Missing'))
        self.assertIn("No isa 'Missing' declared", cm.output[0])

    def test_constant_redefinition(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visit('int x = 2;\nint x = 3;\n', 'Missing')
        self.assertIn("Constant redefinition of 'x'", cm.output[0])

    def test_constant_expression(self):
        self.visit('int a = 6;\nint b = a / 4 + abs(-2);\n', 'Missing')
        self.assertEqual(tex.get_value(self.visitor.get_const_expression('b')), 3)

    def test_undefined_slot(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visit('isa Test { slots { nowhere; } }')
        self.assertIn("Reference to undefined slot: 'nowhere'", cm.output[0])

    def test_syntax_error(self):
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, 'bad.isa')
            with open(path, 'w') as f:
                f.write('isa Test {\n  namespace ;\n}\n')
            with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
                self.assertFalse(self.visitor.process([path], 'bad', 'Test',
                                                      directory=directory))
        self.assertIn('bad.isa:2:13', cm.output[0])
        self.assertEqual(self.visitor.error_listener.syntax_error_count, 1)

    # Overrides

    def test_override(self):
        instruction_set = self.visit(_override_isa % 'override A, semfunc: "&NewA";')
        self.assertEqual(instruction_set.get_slot('derived').instruction_map['A']
                         .semfunc_code_string, '&NewA')
        self.assertEqual(instruction_set.get_slot('base').instruction_map['A']
                         .semfunc_code_string, '&A')
        self.assertFalse(self.visitor.error_listener.has_error())

    def test_override_without_base(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visit('isa Test { slots { lone; } }\n'
                       'slot lone {\n'
                       '  opcodes { override A, semfunc: "&A"; }\n'
                       '}\n')
        self.assertIn("Base slot does not define or inherit opcode 'A'", cm.output[0])

    def test_override_missing_opcode(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visit(_override_isa % 'override D, semfunc: "&D";')
        self.assertIn("Base slot does not define or inherit opcode 'D'", cm.output[0])

    def test_override_from_two_bases(self):
        instruction_set = InstructionSet('Test')
        inst = Instruction(instruction_set.opcode_factory.create_opcode('A'), None)
        bases = []
        for name in ('b1', 'b2'):
            base = Slot(name, instruction_set)
            base.instruction_map['A'] = inst
            bases.append(base)
        slot = Slot('d', instruction_set, decl=SlotDecl(None, 'd', 'test.isa', [], None, [], []))
        for base in bases:
            slot.add_base(base)
        overridden_ops = []
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visitor.process_opcode_spec(OverrideSpec(None, 'A', []), slot, [], set(),
                                             overridden_ops)
        self.assertIn('Multiple inheritance of opcodes is not supported: A', cm.output[0])
        self.assertEqual(overridden_ops, [])

    # Templates

    def test_template_chain(self):
        instruction_set = self.visit(_template_isa % 'slot leaf : middle<3> {}')
        add = instruction_set.get_slot('leaf').instruction_map['add']
        self.assertEqual(add.opcode.get_dest_op('rd').get_latency(), 7)
        self.assertEqual(tex.get_value(add.attribute_map['cycles']), 9)
        self.assertFalse(self.visitor.error_listener.has_error())

    def test_template_stays_symbolic(self):
        instruction_set = self.visit(_template_isa % 'slot leaf : middle<3> {}')
        add = instruction_set.get_slot('middle').instruction_map['add']
        self.assertFalse(tex.is_constant(add.opcode.get_dest_op('rd').expression))
        self.assertEqual(tex.get_value(tex.evaluate(add.opcode.get_dest_op('rd').expression,
                                                    [tex.Constant(1)])), 3)

    def test_template_arity(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visit(_template_isa % 'slot leaf : top<1, 2> {}')
        self.assertIn('Wrong number of arguments: 1 were expected, 2 were provided',
                      cm.output[0])

    def test_not_templated(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visit(_template_isa % 'slot plain { default size = 4; }\n'
                                       'slot leaf : plain<1> {}')
        self.assertIn("'plain' is not a templated slot", cm.output[0])

    def test_missing_template_arguments(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visit(_template_isa % 'slot leaf : top {}')
        self.assertIn("Missing template arguments for slot 'top'", cm.output[0])

    # Resources

    def test_resource_windows(self):
        instruction_set = self.visit(_resource_isa)
        inst = instruction_set.get_slot('s').instruction_map['a']
        self.assertEqual([ref.resource.name for ref in inst.resource_use_vec],
                         ['rs', 'flag', 'rd', 'vregs'])
        self.assertEqual([ref.resource.name for ref in inst.resource_acquire_vec],
                         ['rd', 'vregs', 'hold_res'])
        rd, vregs, hold = inst.resource_acquire_vec
        self.assertIs(rd.dest_op, inst.get_dest_op('rd'))
        self.assertEqual((tex.get_value(rd.begin_expression),
                          tex.get_value(rd.end_expression)), (1, 3))
        self.assertTrue(vregs.is_array)
        self.assertEqual((tex.get_value(hold.begin_expression),
                          tex.get_value(hold.end_expression)), (0, 4))
        self.assertFalse(self.visitor.error_listener.has_error())

    def test_resource_enums(self):
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, 'res.isa')
            with open(path, 'w') as f:
                f.write(_resource_isa)
            self.assertTrue(self.visitor.process([path], 'res', 'Test', directory=directory))
            with open(os.path.join(directory, 'res_enums.h')) as f:
                enums_h = f.read()
        self.assertIn('  enum class SimpleResourceEnum {\n'
                      '    kNone = 0,\n'
                      '    kFlag = 1,\n'
                      '    kHoldRes = 2,\n'
                      '    kRs = 3,\n'
                      '    kPastMaxValue = 4,\n', enums_h)
        self.assertIn('  enum class ComplexResourceEnum {\n'
                      '    kNone = 0,\n'
                      '    kRd = 1,\n'
                      '    kPastMaxValue = 2,\n', enums_h)
        self.assertIn('  enum class ListComplexResourceEnum {\n'
                      '    kNone = 0,\n'
                      '    kVregs = 1,\n'
                      '    kPastMaxValue = 2,\n', enums_h)

    def test_resource_two_destinations(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visit(_resource_error_isa % ('{: : rd, re}', 'res[rd..re]'))
        self.assertIn('Resource reference can only reference a single destination operand',
                      cm.output[0])

    def test_resource_two_destinations_in_expression(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visit(_resource_error_isa % ('{: : rd, re}', 'res[0..rd + re]'))
        self.assertIn('Resource reference can only reference a single destination operand',
                      cm.output[0])

    def test_resource_decode_time_latency(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visit(_resource_error_isa % ('{: : rd(*)}', 'res[0..rd]'))
        self.assertIn('Decode time evaluation of latency expression not supported for '
                      'resources', cm.output[0])

    # Multi part opcodes

    def test_child_semfuncs(self):
        instruction_set = self.visit(_child_isa % '"&A", "&B"')
        inst = instruction_set.get_slot('s').instruction_map['a']
        self.assertEqual([child.semfunc_code_string for child in inst], ['&A', '&B'])
        self.assertFalse(self.visitor.error_listener.has_error())

    def test_too_few_child_semfuncs(self):
        with self.assertLogs('decodergen.diagnostics', level='ERROR') as cm:
            self.visit(_child_isa % '"&A"')
        self.assertIn("Fewer semfunc specifiers than expected for opcode 'a'", cm.output[0])

    def test_extra_child_semfuncs(self):
        with self.assertLogs('decodergen.diagnostics', level='WARNING') as cm:
            instruction_set = self.visit(_child_isa % '"&A", "&B", "&C"')
        self.assertIn('Ignoring extra semfunc spec', cm.output[0])
        self.assertEqual(self.visitor.error_listener.semantic_warning_count, 1)
        self.assertFalse(self.visitor.error_listener.has_error())
        inst = instruction_set.get_slot('s').instruction_map['a']
        self.assertEqual(inst.child.semfunc_code_string, '&B')
