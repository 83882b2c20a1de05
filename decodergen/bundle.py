from collections import namedtuple

from .names import to_pascal_case

__all__ = ['SlotUse', 'Bundle']


SlotUse = namedtuple('SlotUse', ('name', 'instances'))


class Bundle:
    """A group of slots and sub-bundles issued together."""

    def __init__(self, name, instruction_set, decl=None):
        self.name = name
        self.pascal_name = to_pascal_case(name)
        self.instruction_set = instruction_set
        self.decl = decl
        self.bundle_names = []
        self.slot_uses = []
        self.semfunc_code_string = ''
        self.is_marked = False

    def __repr__(self):
        return f'Bundle({self.name!r})'

    def append_bundle_name(self, name):
        self.bundle_names.append(name)

    def append_slot(self, name, instances):
        self.slot_uses.append(SlotUse(name, list(instances)))

    def _slot_decode_calls(self, append):
        output = []
        for slot_use in self.slot_uses:
            slot_enum = f'SlotEnum::k{to_pascal_case(slot_use.name)}'
            for index in slot_use.instances or [0]:
                output.append(f'  tmp_inst = {slot_use.name}_decoder_->Decode(address, encoding, '
                              f'{slot_enum}, {index});\n'
                              f'  {append}')
        return ''.join(output)

    def generate_class_declaration(self, encoding_type):
        class_name = f'{self.pascal_name}Decoder'
        output = [f'class {class_name} {{\n'
                  ' public:\n'
                  f'  explicit {class_name}(ArchState *arch_state);\n'
                  f'  virtual ~{class_name}() = default;\n'
                  f'  virtual Instruction *Decode(uint64_t address, {encoding_type} *encoding);\n'
                  '  virtual SemFunc GetSemanticFunction() = 0;\n'
                  '\n']
        for bundle_name in self.bundle_names:
            output.append(f'  {to_pascal_case(bundle_name)}Decoder *{bundle_name}_decoder() '
                          f'{{ return {bundle_name}_decoder_.get(); }}\n')
        for slot_use in self.slot_uses:
            output.append(f'  {to_pascal_case(slot_use.name)}Slot *{slot_use.name}_decoder() '
                          f'{{ return {slot_use.name}_decoder_.get(); }}\n')
        output.append('\n private:\n')
        for bundle_name in self.bundle_names:
            output.append(f'  std::unique_ptr<{to_pascal_case(bundle_name)}Decoder> '
                          f'{bundle_name}_decoder_;\n')
        for slot_use in self.slot_uses:
            output.append(f'  std::unique_ptr<{to_pascal_case(slot_use.name)}Slot> '
                          f'{slot_use.name}_decoder_;\n')
        output.append('  ArchState *arch_state_;\n'
                      '};\n'
                      '\n')
        return ''.join(output)

    def generate_class_definition(self, encoding_type):
        class_name = f'{self.pascal_name}Decoder'
        output = [f'{class_name}::{class_name}(ArchState *arch_state) :\n'
                  '  arch_state_(arch_state) {\n']
        for bundle_name in self.bundle_names:
            output.append(f'  {bundle_name}_decoder_ = std::make_unique<'
                          f'{to_pascal_case(bundle_name)}Decoder>(arch_state_);\n')
        for slot_use in self.slot_uses:
            output.append(f'  {slot_use.name}_decoder_ = std::make_unique<'
                          f'{to_pascal_case(slot_use.name)}Slot>(arch_state_);\n')
        output.append('}\n\n')
        output.append(f'Instruction *{class_name}::Decode(uint64_t address, {encoding_type} '
                      '*encoding) {\n'
                      '  Instruction *inst = new Instruction(address, arch_state_);\n'
                      '  Instruction *tmp_inst;\n')
        # Sub-bundles become children, slots are chained through next.
        for bundle_name in self.bundle_names:
            output.append(f'  tmp_inst = {bundle_name}_decoder_->Decode(address, encoding);\n'
                          '  inst->AppendChild(tmp_inst);\n'
                          '  tmp_inst->DecRef();\n')
        output.append(self._slot_decode_calls('inst->Append(tmp_inst);\n'
                                              '  tmp_inst->DecRef();\n'))
        output.append('  inst->set_semantic_function(this->GetSemanticFunction());\n'
                      '  return inst;\n'
                      '}\n\n')
        return ''.join(output)
