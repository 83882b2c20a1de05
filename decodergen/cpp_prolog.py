"""
Fixed text surrounding the generated declarations: include guards, include lists, namespace
nesting and the encoding base class the generated decoder is written against.
"""

__all__ = ['generate_hdr_file_prolog', 'generate_hdr_file_epilog', 'generate_cc_file_prolog',
           'generate_simple_hdr_prolog', 'generate_namespace_prolog',
           'generate_namespace_epilog', 'generate_encoding_base']


def generate_namespace_prolog(namespaces):
    return ''.join(f'namespace {name} {{\n' for name in namespaces) + '\n'


def generate_namespace_epilog(namespaces):
    return '\n' + ''.join(f'}}  // namespace {name}\n' for name in reversed(namespaces))


def generate_encoding_base(encoding_base_name):
    return (
        f'class {encoding_base_name} {{\n'
        ' public:\n'
        f'  virtual ~{encoding_base_name}() = default;\n'
        '\n'
        '  virtual OpcodeEnum GetOpcode(SlotEnum slot, int entry) = 0;\n'
        '  virtual ResourceOperandInterface *GetSimpleResourceOperand(SlotEnum slot, int entry, '
        'OpcodeEnum opcode, SimpleResourceVector &resource_vec, int end) { return nullptr; }\n'
        '  virtual ResourceOperandInterface *GetComplexResourceOperand(SlotEnum slot, int entry, '
        'OpcodeEnum opcode, ComplexResourceEnum resource_op, int begin, int end) '
        '{ return nullptr; }\n'
        '  virtual std::vector<ResourceOperandInterface *> GetComplexResourceOperands('
        'SlotEnum slot, int entry, OpcodeEnum opcode, ListComplexResourceEnum resource_op, '
        'int begin, int end) { return {}; }\n'
        '  virtual PredicateOperandInterface *GetPredicate(SlotEnum slot, int entry, '
        'OpcodeEnum opcode, PredOpEnum pred_op) { return nullptr; }\n'
        '  virtual SourceOperandInterface *GetSource(SlotEnum slot, int entry, '
        'OpcodeEnum opcode, SourceOpEnum source_op, int source_no) { return nullptr; }\n'
        '  virtual std::vector<SourceOperandInterface *> GetSources(SlotEnum slot, int entry, '
        'OpcodeEnum opcode, ListSourceOpEnum list_source_op, int source_no) { return {}; }\n'
        '  virtual DestinationOperandInterface *GetDestination(SlotEnum slot, int entry, '
        'OpcodeEnum opcode, DestOpEnum dest_op, int dest_no, int latency) { return nullptr; }\n'
        '  virtual std::vector<DestinationOperandInterface *> GetDestinations(SlotEnum slot, '
        'int entry, OpcodeEnum opcode, ListDestOpEnum list_dest_op, int dest_no, '
        'const std::vector<int> &latency) { return {}; }\n'
        '  virtual int GetLatency(SlotEnum slot, int entry, OpcodeEnum opcode, '
        'DestOpEnum dest_op, int dest_no) { return 0; }\n'
        '  virtual std::vector<int> GetLatency(SlotEnum slot, int entry, OpcodeEnum opcode, '
        'ListDestOpEnum dest_op, int dest_no) { return {0}; }\n'
        '};\n'
        '\n'
        f'using OperandSetter = std::vector<void (*)(Instruction *, {encoding_base_name} *, '
        'OpcodeEnum, SlotEnum, int)>;\n'
        'using DisassemblySetter = void (*)(Instruction *);\n'
        f'using ResourceSetter = void (*)(Instruction *, {encoding_base_name} *, SlotEnum, int);\n'
        'using SemFuncSetter = std::vector<SemFunc>;\n'
        'using AttributeSetter = void (*)(Instruction *);\n'
        'struct InstructionInfo {\n'
        '  OperandSetter operand_setter;\n'
        '  DisassemblySetter disassembly_setter;\n'
        '  ResourceSetter resource_setter;\n'
        '  AttributeSetter attribute_setter;\n'
        '  SemFuncSetter semfunc;\n'
        '  int instruction_size;\n'
        '};\n'
        '\n')


def generate_hdr_file_prolog(enum_file_name, guard_name, encoding_base_name, namespaces):
    return (
        f'#ifndef {guard_name}\n'
        f'#define {guard_name}\n'
        '\n'
        '#include <cstdint>\n'
        '#include <functional>\n'
        '#include <map>\n'
        '#include <memory>\n'
        '#include <vector>\n'
        '\n'
        '#include "absl/container/flat_hash_map.h"\n'
        '#include "mpact/sim/generic/arch_state.h"\n'
        '#include "mpact/sim/generic/instruction.h"\n'
        f'#include "{enum_file_name}"\n'
        '\n'
        f'{generate_namespace_prolog(namespaces)}'
        'using ::mpact::sim::generic::Instruction;\n'
        'using SemFunc = ::mpact::sim::generic::Instruction::SemanticFunction;\n'
        'using ::mpact::sim::generic::ArchState;\n'
        'using ::mpact::sim::generic::PredicateOperandInterface;\n'
        'using ::mpact::sim::generic::SourceOperandInterface;\n'
        'using ::mpact::sim::generic::DestinationOperandInterface;\n'
        'using ::mpact::sim::generic::ResourceOperandInterface;\n'
        'using SimpleResourceVector = std::vector<SimpleResourceEnum>;\n'
        '\n'
        f'{generate_encoding_base(encoding_base_name)}')


def generate_hdr_file_epilog(guard_name, namespaces):
    return f'{generate_namespace_epilog(namespaces)}\n#endif  // {guard_name}\n'


def generate_cc_file_prolog(hdr_file_name, namespaces, include_files=()):
    """``include_files`` are written as given, quotes or angle brackets included."""
    output = [f'#include "{hdr_file_name}"\n'
              '\n'
              '#include <array>\n'
              '\n'
              '#include "absl/strings/str_cat.h"\n'
              '#include "absl/strings/str_format.h"\n'
              '#include "absl/types/span.h"\n'
              '\n']
    output.extend(f'#include {include_file}\n' for include_file in include_files)
    output.append('\n')
    output.append(generate_namespace_prolog(namespaces))
    return ''.join(output)


def generate_simple_hdr_prolog(guard_name, namespaces):
    return f'#ifndef {guard_name}\n#define {guard_name}\n\n{generate_namespace_prolog(namespaces)}'
