import logging

from . import template_expression as tex
from .bundle import Bundle
from .names import indent, to_pascal_case, to_snake_case
from .opcode import OpcodeFactory
from .resource import ResourceFactory

__all__ = ['InstructionSet']

logger = logging.getLogger(__name__)


def _emit_enum(name, values, first_value=0):
    """Emit ``enum class`` with ``kNone`` followed by ``values`` and ``kPastMaxValue``."""
    lines = [f'  enum class {name} {{\n', f'    kNone = {first_value},\n']
    count = first_value + 1
    for value in values:
        lines.append(f'    k{value} = {count},\n')
        count += 1
    lines.append(f'    kPastMaxValue = {count},\n  }};\n\n')
    return ''.join(lines)


def _emit_enum_names(names, namespace_name, op_name):
    cc_output = [f'const char *k{op_name}Names[static_cast<int>({op_name}Enum::kPastMaxValue)] = {{\n'
                 f'  {namespace_name}::kNoneName,\n']
    h_output = [f'namespace {namespace_name} {{\n'
                '  constexpr char kNoneName[] = "none";\n']
    for name in names:
        h_output.append(f'  constexpr char k{name}Name[] = "{name}";\n')
        cc_output.append(f'  {namespace_name}::k{name}Name,\n')
    cc_output.append('};\n\n')
    h_output.append(f'}}  // namespace {namespace_name}\n\n'
                    f'  extern const char *k{op_name}Names[static_cast<int>('
                    f'{op_name}Enum::kPastMaxValue)];\n\n')
    return ''.join(h_output), ''.join(cc_output)


class InstructionSet:
    """
    Root of the instruction set model. The instruction set is itself the top level
    bundle; it owns the slots, bundles, opcodes and resources reachable from it, and the
    caches used to share setter functions between the emitted slot classes.
    """

    def __init__(self, name):
        self.name = name
        self.pascal_name = to_pascal_case(name)
        self.namespaces = []
        self.bundle = Bundle(name, self)
        self.bundle_map = {}
        self.slot_map = {}
        self.opcode_factory = OpcodeFactory()
        self.resource_factory = ResourceFactory()
        self.attribute_names = set()
        self.slot_order = []
        self.bundle_order = []
        self.operand_setter_names = {}
        self.disasm_setter_names = {}
        self.resource_setter_names = {}
        self.attribute_setter_names = {}

    def add_bundle(self, bundle):
        self.bundle_map[bundle.name] = bundle

    def add_slot(self, slot):
        self.slot_map[slot.name] = slot

    def get_bundle(self, name):
        return self.bundle_map.get(name)

    def get_slot(self, name):
        return self.slot_map.get(name)

    def add_attribute_name(self, name):
        self.attribute_names.add(name)

    def analyze_resource_use(self):
        """
        Mark every resource acquired with a non-zero begin cycle as complex. Raises
        ``ExpressionError`` for a window that does not evaluate to a constant.
        """
        for slot in self.slot_order:
            for inst in slot.instruction_map.values():
                for ref in inst.resource_acquire_vec:
                    if ref.begin_expression is not None:
                        if tex.get_int_value(ref.begin_expression) != 0:
                            ref.resource.is_simple = False
                    if ref.end_expression is not None:
                        tex.get_int_value(ref.end_expression)
        for name, resource in self.resource_factory.resource_map.items():
            logger.debug('resource %s is %s', name, 'simple' if resource.is_simple else 'complex')

    def compute_slot_and_bundle_orders(self):
        for slot in self.slot_map.values():
            self._add_to_slot_order(slot)
        for bundle in self.bundle_map.values():
            self._add_to_bundle_order(bundle)

    def _add_to_bundle_order(self, bundle):
        if bundle.is_marked:
            return
        for bundle_name in bundle.bundle_names:
            self._add_to_bundle_order(self.bundle_map[bundle_name])
        self.bundle_order.append(bundle)
        bundle.is_marked = True

    def _add_to_slot_order(self, slot):
        if slot.is_marked:
            return
        for base_slot in slot.base_slots:
            self._add_to_slot_order(self.slot_map[base_slot.base.name])
        slot.is_marked = True
        self.slot_order.append(slot)

    def generate_class_declarations(self, encoding_type):
        factory_class_name = f'{self.pascal_name}InstructionSetFactory'
        class_name = f'{self.pascal_name}InstructionSet'
        output = [f'class {factory_class_name};\n']
        for slot in self.slot_order:
            output.append(slot.generate_class_declaration(encoding_type))
        for bundle in self.bundle_order:
            output.append(bundle.generate_class_declaration(encoding_type))
        output.append(f'class {factory_class_name} {{\n'
                      ' public:\n'
                      f'  {factory_class_name}() = default;\n'
                      f'  virtual ~{factory_class_name}() = default;\n')
        for bundle in self.bundle_order:
            bundle_class = f'{bundle.pascal_name}Decoder'
            output.append(f'  virtual std::unique_ptr<{bundle_class}> '
                          f'Create{bundle_class}(ArchState *) = 0;\n')
        for slot in self.slot_order:
            if slot.is_referenced:
                slot_class = f'{slot.pascal_name}Slot'
                output.append(f'  virtual std::unique_ptr<{slot_class}> '
                              f'Create{slot_class}(ArchState *) = 0;\n')
        output.append('};\n\n')
        output.append(f'class {class_name} {{\n'
                      ' public:\n'
                      f'  {class_name}(ArchState *arch_state,\n'
                      f'{indent(f"  {class_name}(")}{factory_class_name} *factory);\n'
                      f'  virtual ~{class_name}();\n'
                      f'  Instruction *Decode(uint64_t address, {encoding_type} *encoding);\n'
                      '\n'
                      ' private:\n')
        for bundle_name in self.bundle.bundle_names:
            output.append(f'  std::unique_ptr<{to_pascal_case(bundle_name)}Decoder> '
                          f'{bundle_name}_decoder_;\n')
        for slot_use in self.bundle.slot_uses:
            output.append(f'  std::unique_ptr<{to_pascal_case(slot_use.name)}Slot> '
                          f'{slot_use.name}_decoder_;\n')
        output.append('  ArchState *arch_state_;\n'
                      '};\n\n')
        return ''.join(output)

    def generate_class_definitions(self, encoding_type):
        class_name = f'{self.pascal_name}InstructionSet'
        factory_class_name = f'{class_name}Factory'
        output = []
        for slot in self.slot_order:
            output.append(slot.generate_class_definition(encoding_type))
        for bundle in self.bundle_order:
            output.append(bundle.generate_class_definition(encoding_type))
        output.append(f'{class_name}::{class_name}(ArchState *arch_state, '
                      f'{factory_class_name} *factory) :\n'
                      '  arch_state_(arch_state) {\n')
        for bundle_name in self.bundle.bundle_names:
            output.append(f'  {bundle_name}_decoder_ = factory->Create'
                          f'{to_pascal_case(bundle_name)}Decoder(arch_state_);\n')
        for slot_use in self.bundle.slot_uses:
            output.append(f'  {slot_use.name}_decoder_ = factory->Create'
                          f'{to_pascal_case(slot_use.name)}Slot(arch_state_);\n')
        output.append('}\n\n'
                      f'{class_name}::~{class_name}() {{}}\n\n')
        output.append(f'Instruction *{class_name}::Decode(uint64_t address, '
                      f'{encoding_type} *encoding) {{\n'
                      '  Instruction *inst = nullptr;\n'
                      '  Instruction *tmp_inst;\n'
                      '  bool success = false;\n'
                      '  int size = 0;\n')
        if self.bundle.bundle_names:
            # Bundles hang off a parent instruction that controls their issue.
            output.append('  inst = new Instruction(address, arch_state_);\n')
            for bundle_name in self.bundle.bundle_names:
                output.append(f'  tmp_inst = {bundle_name}_decoder_->Decode(address, encoding);\n'
                              '  success |= (nullptr != tmp_inst);\n'
                              '  if (tmp_inst != nullptr) {\n'
                              '    size += tmp_inst->size();\n'
                              '    inst->AppendChild(tmp_inst);\n'
                              '    tmp_inst->DecRef();\n'
                              '  }\n')
        for slot_use in self.bundle.slot_uses:
            slot_enum = f'SlotEnum::k{to_pascal_case(slot_use.name)}'
            for index in slot_use.instances or [0]:
                output.append(f'  tmp_inst = {slot_use.name}_decoder_->Decode(address, encoding, '
                              f'{slot_enum}, {index});\n'
                              '  if (tmp_inst != nullptr) size += tmp_inst->size();\n'
                              '  if (inst == nullptr) {\n'
                              '    inst = tmp_inst;\n'
                              '  } else if (tmp_inst != nullptr) {\n'
                              '    inst->Append(tmp_inst);\n'
                              '    tmp_inst->DecRef();\n'
                              '  }\n'
                              '  success |= (nullptr != tmp_inst);\n')
        output.append('  if (inst == nullptr) return nullptr;\n'
                      '  inst->set_size(size);\n'
                      '  if (!success) {\n'
                      '    inst->DecRef();\n'
                      '    inst = nullptr;\n'
                      '  }\n'
                      '  return inst;\n'
                      '}\n')
        return ''.join(output)

    def generate_enums(self):
        """Return the ``(header, source)`` text of the enumeration files."""
        h_output = []
        cc_output = []
        slots_by_name = dict(sorted((slot.pascal_name, slot) for slot in self.slot_order
                                    if slot.is_referenced))
        h_output.append('  enum class SlotEnum {\n'
                        '    kNone = 0,\n')
        h_output.extend(f'    k{name},\n' for name in slots_by_name)
        h_output.append('  };\n\n')

        predicate_operands = set()
        source_operands = set()
        list_source_operands = set()
        dest_operands = set()
        list_dest_operands = set()
        for slot_name, slot in slots_by_name.items():
            slot_predicate_operands = set()
            slot_source_operands = set()
            slot_list_source_operands = set()
            slot_dest_operands = set()
            slot_list_dest_operands = set()
            for instruction in slot.instruction_map.values():
                for inst in instruction:
                    opcode = inst.opcode
                    if opcode.predicate_op_name:
                        slot_predicate_operands.add(to_pascal_case(opcode.predicate_op_name))
                    for source_op in opcode.source_op_vec:
                        if source_op.is_array:
                            slot_list_source_operands.add(to_pascal_case(source_op.name))
                        else:
                            slot_source_operands.add(to_pascal_case(source_op.name))
                    for dest_op in opcode.dest_op_vec:
                        if dest_op.is_array:
                            slot_list_dest_operands.add(dest_op.pascal_case_name)
                        else:
                            slot_dest_operands.add(dest_op.pascal_case_name)
            predicate_operands |= slot_predicate_operands
            source_operands |= slot_source_operands
            list_source_operands |= slot_list_source_operands
            dest_operands |= slot_dest_operands
            list_dest_operands |= slot_list_dest_operands
            h_output.append(f'  // Enums for slot: {slot_name}.\n')
            h_output.append(_emit_enum(f'{slot_name}PredOpEnum', sorted(slot_predicate_operands)))
            h_output.append(_emit_enum(f'{slot_name}SourceOpEnum', sorted(slot_source_operands)))
            h_output.append(_emit_enum(f'{slot_name}ListSourceOpEnum',
                                       sorted(slot_list_source_operands)))
            h_output.append(_emit_enum(f'{slot_name}DestOpEnum', sorted(slot_dest_operands)))
            h_output.append(_emit_enum(f'{slot_name}ListDestOpEnum',
                                       sorted(slot_list_dest_operands)))

        h_output.append('  // Enums for the global view.\n')
        h_output.append(_emit_enum('PredOpEnum', sorted(predicate_operands)))
        h_output.append(_emit_enum('SourceOpEnum', sorted(source_operands)))
        h_output.append(_emit_enum('ListSourceOpEnum', sorted(list_source_operands)))
        h_output.append(_emit_enum('DestOpEnum', sorted(dest_operands)))
        h_output.append(_emit_enum('ListDestOpEnum', sorted(list_dest_operands)))

        opcode_names = sorted({opcode.pascal_name for opcode in self.opcode_factory.opcode_vec})
        h_output.append(_emit_enum('OpcodeEnum', opcode_names))

        for names, namespace_name, op_name in (
                (predicate_operands, 'pred_op_names', 'PredOp'),
                (source_operands, 'source_op_names', 'SourceOp'),
                (list_source_operands, 'list_source_op_names', 'ListSourceOp'),
                (dest_operands, 'dest_op_names', 'DestOp'),
                (list_dest_operands, 'list_dest_op_names', 'ListDestOp')):
            h_names, cc_names = _emit_enum_names(sorted(names), namespace_name, op_name)
            h_output.append(h_names)
            cc_output.append(cc_names)

        cc_output.append('const char *kOpcodeNames[static_cast<int>(OpcodeEnum::kPastMaxValue)] = {\n'
                         '  kNoneName,\n')
        h_output.append('  constexpr char kNoneName[] = "none";\n')
        for name in opcode_names:
            h_output.append(f'  constexpr char k{name}Name[] = "{name}";\n')
            cc_output.append(f'  k{name}Name,\n')
        cc_output.append('};\n\n')
        h_output.append('  extern const char *kOpcodeNames[static_cast<int>(\n'
                        '      OpcodeEnum::kPastMaxValue)];\n\n')

        resources = self.resource_factory.resource_map.values()
        for enum_name, namespace_name, predicate in (
                ('SimpleResource', 'simple_resource_names',
                 lambda resource: resource.is_simple),
                ('ComplexResource', 'complex_resource_names',
                 lambda resource: not resource.is_simple and not resource.is_array),
                ('ListComplexResource', 'list_complex_resource_names',
                 lambda resource: not resource.is_simple and resource.is_array)):
            names = sorted({resource.pascal_name for resource in resources if predicate(resource)})
            h_output.append(_emit_enum(f'{enum_name}Enum', names))
            h_names, cc_names = _emit_enum_names(names, namespace_name, enum_name)
            h_output.append(h_names)
            cc_output.append(cc_names)

        for slot_name, slot in slots_by_name.items():
            attribute_names = slot.attribute_names
            if not attribute_names:
                continue
            snake_name = to_snake_case(slot_name)
            h_output.append(f'namespace {snake_name} {{\n\n'
                            '  enum class AttributeEnum {\n')
            for count, attribute_name in enumerate(attribute_names):
                h_output.append(f'    k{to_pascal_case(attribute_name)} = {count},\n')
            h_output.append(f'    kPastMaxValue = {len(attribute_names)}\n  }};\n\n'
                            f'}}  // namespace {snake_name}\n\n')
        return ''.join(h_output), ''.join(cc_output)
