import logging
import re
from collections import namedtuple

from . import template_expression as tex
from .diagnostics import ExpressionError, GeneratorError, InternalError
from .names import indent, to_pascal_case

__all__ = ['BaseSlot', 'Slot', 'translate_locator', 'get_extractor', 'expand_expression']

logger = logging.getLogger(__name__)


BaseSlot = namedtuple('BaseSlot', ('base', 'arguments'))

MAX_INSTRUCTION_SIZE = 2**31 - 1


def translate_locator(locator):
    """Return the C++ expression that reaches the operand ``locator`` from ``inst``."""
    code = 'inst->'
    if locator.op_spec_number > 0:
        code += 'child()->'
    code += 'next()->' * max(0, locator.op_spec_number - 1)
    if locator.kind == 'p':
        code += 'Predicate()'
    elif locator.kind in ('s', 't'):
        code += f'Source({locator.instance})'
    elif locator.kind in ('d', 'e'):
        code += f'Destination({locator.instance})'
    else:
        raise InternalError(f"Unknown locator type '{locator.kind}'")
    return code


def get_extractor(number_format):
    match = re.search(r'[0-9]+', number_format)
    size = int(match[0]) if match else 0
    if size == 0:
        return '->AsInt64(0)'
    if size <= 2:
        return '->AsInt8(0)'
    if size <= 4:
        return '->AsInt16(0)'
    if size <= 8:
        return '->AsInt32(0)'
    return '->AsInt64(0)'


def expand_expression(format_info, locator):
    if format_info.use_address and not format_info.operation:
        return '(inst->address())'
    if not locator:
        return '#error missing field locator'
    extractor = get_extractor(format_info.number_format)
    shift = ' << ' if format_info.do_left_shift else ' >> '
    if not format_info.operation:
        if format_info.shift_amount == 0:
            return f'{locator}{extractor}'
        return f'({locator}{extractor}{shift}{format_info.shift_amount})'
    base = 'inst->address() ' if format_info.use_address else '0 '
    if format_info.shift_amount != 0:
        tail = f'{shift}{format_info.shift_amount}))'
    else:
        tail = '))'
    return f'({base}{format_info.operation}({locator}{extractor}{tail}'


def _constant_int(expr):
    """Integer value of a constant expression, or None."""
    if expr is None:
        return None
    try:
        return tex.get_int_value(expr)
    except ExpressionError:
        return None


class Slot:
    """
    A named container of instructions. Slots may be templated and may derive from base
    slots, in which case the inherited instructions are instantiated against the
    template arguments given at the point of derivation.
    """

    def __init__(self, name, instruction_set, is_templated=False, decl=None):
        self.name = name
        self.pascal_name = to_pascal_case(name)
        self.instruction_set = instruction_set
        self.is_templated = is_templated
        self.decl = decl
        self.default_instruction_size = 1
        self.min_instruction_size = MAX_INSTRUCTION_SIZE
        self.default_latency = None
        self.default_instruction = None
        self.size = 1
        self.is_marked = False
        self.is_referenced = False
        self.base_slots = []
        self._predecessor_set = set()
        self.instruction_map = {}
        self.template_parameters = []
        self.template_parameter_map = {}
        self._constant_map = {}
        self.resource_spec_map = {}
        self.attribute_map = {}
        self._setter_functions = []

    def __repr__(self):
        return f'Slot({self.name!r})'

    # Model

    def _check_latencies(self, inst):
        if self.is_templated:
            return
        for child in inst:
            if not child.opcode.validate_dest_latencies(lambda latency: latency >= 0):
                raise GeneratorError(f"Invalid latency for opcode '{inst.opcode.name}'")

    def append_instruction(self, inst):
        self._check_latencies(inst)
        name = inst.opcode.name
        if name in self.instruction_map:
            raise GeneratorError(f"Opcode '{name}' already added to slot '{self.name}'")
        self.instruction_map[name] = inst

    def append_inherited_instruction(self, inst, args):
        name = inst.opcode.name
        if name in self.instruction_map:
            raise GeneratorError(f"Opcode '{name}' already added to slot '{self.name}'")
        derived = inst.create_derived_instruction(args, self)
        self._check_latencies(derived)
        self.instruction_map[name] = derived

    def has_instruction(self, opcode_name):
        return opcode_name in self.instruction_map

    def check_predecessors(self, base):
        if base in self._predecessor_set:
            raise GeneratorError(
                f"'{base.name}' is already in the predecessor set of '{self.name}'")
        for pred in self._predecessor_set:
            pred.check_predecessors(base)
        for base_pred in base._predecessor_set:
            self.check_predecessors(base_pred)

    def add_base(self, base, arguments=None):
        self.check_predecessors(base)
        self._predecessor_set.add(base)
        self.base_slots.append(BaseSlot(base, arguments))

    def add_constant(self, ident, expression):
        if ident in self.template_parameter_map:
            raise GeneratorError(
                f"Slot constant '{ident}' conflicts with template formal with same name")
        if ident in self._constant_map:
            raise GeneratorError(f"Redefinition of slot constant '{ident}'")
        self._constant_map[ident] = expression

    def get_const_expression(self, ident):
        return self._constant_map.get(ident)

    def add_template_formal(self, name):
        # duplicates still take a position
        if name in self.template_parameter_map:
            position = self.template_parameter_map[name]
            self.template_parameters.append(tex.TemplateFormal(name, position))
            raise GeneratorError(f"Duplicate parameter name '{name}'")
        formal = tex.TemplateFormal(name, len(self.template_parameters))
        self.template_parameters.append(formal)
        self.template_parameter_map[name] = formal.position

    def get_template_formal(self, name):
        position = self.template_parameter_map.get(name)
        if position is None:
            return None
        return self.template_parameters[position]

    def add_instruction_attribute(self, name, expr):
        self.attribute_map.setdefault(name, expr)

    @property
    def attribute_names(self):
        names = set(self.attribute_map)
        for inst in self.instruction_map.values():
            for child in inst:
                names.update(child.attribute_map)
        if self.default_instruction is not None:
            names.update(self.default_instruction.attribute_map)
        return sorted(names)

    # Code emission

    def create_operand_lookup_key(self, opcode):
        key = ''
        if opcode.predicate_op_name:
            key += f'{opcode.predicate_op_name}:'
        key += '/'.join(f'[{op.name}]' if op.is_array else op.name
                        for op in opcode.source_op_vec)
        key += ':'
        parts = []
        for dest_op in opcode.dest_op_vec:
            if dest_op.expression is None:
                latency = '(*)'
            else:
                try:
                    value = dest_op.get_latency()
                except ExpressionError:
                    value = -1
                latency = f'({{{value}}})' if dest_op.is_array else f'({value})'
            name = f'[{dest_op.name}]' if dest_op.is_array else dest_op.name
            parts.append(f'{name}{latency}')
        key += '/'.join(parts)
        return key

    def generate_operand_setter_fcn(self, setter_name, encoding_type, opcode):
        output = [f'void {setter_name}(Instruction *inst, {encoding_type} *enc, '
                  f'OpcodeEnum opcode, SlotEnum slot, int entry) {{\n']
        if opcode.predicate_op_name:
            pred_op_enum = f'PredOpEnum::k{to_pascal_case(opcode.predicate_op_name)}'
            output.append(f'  inst->SetPredicate(enc->GetPredicate(slot, entry, opcode, '
                          f'{pred_op_enum}));\n')
        for source_no, src_op in enumerate(opcode.source_op_vec):
            if src_op.is_array:
                src_op_enum = f'ListSourceOpEnum::k{to_pascal_case(src_op.name)}'
                output.append('  {\n'
                              f'    auto vec = enc->GetSources(slot, entry, opcode, '
                              f'{src_op_enum}, {source_no});\n'
                              '    for (auto *op : vec) inst->AppendSource(op);\n'
                              '  }\n')
            else:
                src_op_enum = f'SourceOpEnum::k{to_pascal_case(src_op.name)}'
                output.append(f'  inst->AppendSource(enc->GetSource(slot, entry, opcode, '
                              f'{src_op_enum}, {source_no}));\n')
        for dest_no, dest_op in enumerate(opcode.dest_op_vec):
            if dest_op.is_array:
                dest_op_enum = f'ListDestOpEnum::k{dest_op.pascal_case_name}'
            else:
                dest_op_enum = f'DestOpEnum::k{dest_op.pascal_case_name}'
            if dest_op.expression is None:
                latency = f'enc->GetLatency(slot, entry, opcode, {dest_op_enum}, {dest_no})'
            else:
                try:
                    latency = str(dest_op.get_latency())
                except ExpressionError:
                    output.append(f"#error \"Failed to get latency for operand "
                                  f"'{dest_op.name}'\"\n")
                    continue
                if dest_op.is_array:
                    latency = f'{{{latency}}}'
            if dest_op.is_array:
                output.append('  {\n'
                              f'    auto vec = enc->GetDestinations(slot, entry, opcode, '
                              f'{dest_op_enum}, {dest_no}, {latency});\n'
                              '    for (auto *op : vec) inst->AppendDestination(op);\n'
                              '  }\n')
            else:
                output.append(f'  inst->AppendDestination(enc->GetDestination(slot, entry, '
                              f'opcode, {dest_op_enum}, {dest_no}, {latency}));\n')
        output.append('}\n\n')
        return ''.join(output)

    def _format_info_code(self, inst, format_info, next_sep):
        prefix = '0x' if format_info.number_format.endswith('x') else ''
        if not format_info.op_name:
            if not format_info.is_formatted:
                return '\n#error Missing locator information'
            return (f'{next_sep}absl::StrFormat("{prefix}{format_info.number_format}", '
                    f'{expand_expression(format_info, "")})')
        locator = inst.opcode.op_locator_map.get(format_info.op_name)
        if locator is None:
            return f'\n#error {format_info.op_name} not found in instruction opcodes\n'
        try:
            code = translate_locator(locator)
        except InternalError as e:
            return f'\n#error {e}\n'
        if not format_info.is_formatted:
            return f'{next_sep}{code}->AsString()'
        return (f'{next_sep}absl::StrFormat("{prefix}{format_info.number_format}", '
                f'{expand_expression(format_info, code)})')

    def generate_disasm_setter_fcn(self, name, inst):
        output = [f'void {name}(Instruction *inst) {{\n',
                  '  inst->SetDisassemblyString(absl::StrCat(\n']
        level = 2
        in_strcat = [True]
        outer_sep = ''
        for disasm_fmt in inst.disasm_format_vec:
            inner_paren = 0
            inner_sep = ''
            if disasm_fmt.width != 0:
                output.append(f'{outer_sep}{indent(level)}absl::StrFormat("%{disasm_fmt.width}s",\n')
                level += 2
                inner_paren += 1
                in_strcat.append(False)
            elif outer_sep:
                output.append(', ')
            single = len(disasm_fmt.format_fragment_vec) == 1 and not disasm_fmt.format_info_vec
            if not single and not in_strcat[-1]:
                output.append(f'{indent(level)}absl::StrCat(\n')
                level += 2
                inner_paren += 1
                in_strcat.append(True)
            next_sep = ''
            for index, frag in enumerate(disasm_fmt.format_fragment_vec):
                if frag:
                    output.append(f'{inner_sep}{indent(level)}"{frag}"')
                    next_sep = ', '
                if index < len(disasm_fmt.format_info_vec):
                    output.append(self._format_info_code(
                        inst, disasm_fmt.format_info_vec[index], next_sep))
                next_sep = ', '
                if not inner_sep:
                    inner_sep = ',\n'
            for _ in range(inner_paren):
                output.append(')')
                level -= 2
                if not in_strcat[-1]:
                    output.append(f'\n{indent(level)}')
                in_strcat.pop()
            if not outer_sep:
                outer_sep = ',\n'
        output.append('));\n}\n\n')
        return ''.join(output)

    def generate_disassembly_setter(self, inst):
        key = ''.join(frag for fmt in inst.disasm_format_vec for frag in fmt.format_fragment_vec)
        key += ':' + self.create_operand_lookup_key(inst.opcode)
        names = self.instruction_set.disasm_setter_names
        if key not in names:
            func_name = f'{self.pascal_name}Slot{inst.opcode.pascal_name}SetDisasm'
            names[key] = func_name
            self._setter_functions.append(self.generate_disasm_setter_fcn(func_name, inst))
        return names[key]

    def create_resource_key(self, refs):
        simple_names = set()
        complex_names = set()
        for ref in refs:
            name = f'[{ref.resource.pascal_name}]' if ref.is_array else ref.resource.pascal_name
            if ref.resource.is_simple:
                simple_names.add(f'S${name}')
                continue
            begin = _constant_int(ref.begin_expression)
            end = _constant_int(ref.end_expression)
            begin = '(?)' if begin is None else str(begin)
            end = '(?)' if end is None else str(end)
            complex_names.add(f'C${name}{begin}{end}')
        return '/'.join(sorted(simple_names)) + ':' + '/'.join(sorted(complex_names))

    def _complex_resource_code(self, ref, opcode_enum, append):
        begin = _constant_int(ref.begin_expression)
        end = _constant_int(ref.end_expression)
        if begin is None or end is None:
            return '#error Unable to evaluate begin or end expression\n'
        if ref.is_array:
            return ('  {\n'
                    f'    auto res_op_vec = enc->GetComplexResourceOperands(slot, entry, '
                    f'{opcode_enum}, ListComplexResourceEnum::k{ref.resource.pascal_name}, '
                    f'{begin}, {end});\n'
                    f'    for (auto res_op : res_op_vec) inst->{append}(res_op);\n'
                    '  }\n')
        return (f'  res_op = enc->GetComplexResourceOperand(slot, entry, {opcode_enum}, '
                f'ComplexResourceEnum::k{ref.resource.pascal_name}, {begin}, {end});\n'
                '  if (res_op != nullptr) {\n'
                f'    inst->{append}(res_op);\n'
                '  }\n')

    def generate_resource_setter_fcn(self, name, inst, encoding_type):
        output = [f'void {name}(Instruction *inst, {encoding_type} *enc, '
                  f'SlotEnum slot, int entry) {{\n']
        opcode_enum = f'OpcodeEnum::k{inst.opcode.pascal_name}'
        if inst.resource_use_vec or inst.resource_acquire_vec:
            output.append('  ResourceOperandInterface *res_op;\n')
        # Resources that must be free for the instruction to issue.
        simple_refs = [ref for ref in inst.resource_use_vec if ref.resource.is_simple]
        complex_refs = [ref for ref in inst.resource_use_vec if not ref.resource.is_simple]
        if simple_refs:
            output.append('  std::vector<SimpleResourceEnum> hold_vec = {')
            for ref in simple_refs:
                output.append(f'\n      SimpleResourceEnum::k{ref.resource.pascal_name},')
            output.append('};\n'
                          f'  res_op = enc->GetSimpleResourceOperand(slot, entry, {opcode_enum}, '
                          'hold_vec, -1);\n'
                          '  if (res_op != nullptr) {\n'
                          '    inst->AppendResourceHold(res_op);\n'
                          '  }\n')
        for ref in complex_refs:
            output.append(self._complex_resource_code(ref, opcode_enum, 'AppendResourceHold'))
        # Resources reserved when the instruction issues.
        simple_refs = [ref for ref in inst.resource_acquire_vec if ref.resource.is_simple]
        complex_refs = [ref for ref in inst.resource_acquire_vec if not ref.resource.is_simple]
        latency_map = {}
        for ref in simple_refs:
            if ref.end_expression is None:
                continue
            latency = _constant_int(ref.end_expression)
            if latency is None:
                output.append('#error Unable to evaluate end expression\n')
                continue
            latency_map.setdefault(latency, []).append(ref)
        for latency, refs in sorted(latency_map.items()):
            output.append(f'  std::vector<SimpleResourceEnum> acquire_vec{latency} = {{')
            for ref in refs:
                output.append(f'\n      SimpleResourceEnum::k{ref.resource.pascal_name},')
            output.append('};\n'
                          f'  res_op = enc->GetSimpleResourceOperand(slot, entry, {opcode_enum}, '
                          f'acquire_vec{latency}, {latency});\n'
                          '  if (res_op != nullptr) {\n'
                          '    inst->AppendResourceAcquire(res_op);\n'
                          '  }\n')
        for ref in complex_refs:
            if ref.begin_expression is None or ref.end_expression is None:
                continue
            output.append(self._complex_resource_code(ref, opcode_enum, 'AppendResourceAcquire'))
        output.append('}\n\n')
        return ''.join(output)

    def generate_resource_setter(self, inst, encoding_type):
        key = (self.create_resource_key(inst.resource_use_vec) + ':' +
               self.create_resource_key(inst.resource_acquire_vec))
        names = self.instruction_set.resource_setter_names
        if key not in names:
            func_name = f'{self.pascal_name}SlotSetResources{len(names)}'
            names[key] = func_name
            self._setter_functions.append(
                self.generate_resource_setter_fcn(func_name, inst, encoding_type))
        return names[key]

    def _attribute_values(self, inst):
        values = []
        for name in self.attribute_names:
            expr = inst.attribute_map.get(name)
            if expr is None:
                values.append((name, 0))
                continue
            try:
                values.append((name, tex.get_int_value(expr)))
            except ExpressionError:
                values.append((name, None))
        return values

    def create_attribute_lookup_key(self, inst):
        return ''.join(f'{name}[e]:' if value is None else f'{name}[{value}]:'
                       for name, value in self._attribute_values(inst))

    def generate_attribute_setter_fcn(self, name, inst):
        output = [f'void {name}(Instruction *inst) {{\n']
        values = self._attribute_values(inst)
        if values:
            for attr_name, value in values:
                if value is None:
                    output.append(f"#error Expression for '{attr_name}' has no constant value\n")
            initializer = ', '.join('0' if value is None else str(value) for _, value in values)
            output.append(f'  static int attrs[{len(values)}] = {{{initializer}}};\n'
                          f'  inst->SetAttributes(absl::Span<int>(attrs, {len(values)}));\n')
        output.append('}\n\n')
        return ''.join(output)

    def generate_attribute_setter(self, inst):
        key = self.create_attribute_lookup_key(inst)
        names = self.instruction_set.attribute_setter_names
        if key not in names:
            func_name = f'{self.pascal_name}SlotSetAttributes{len(names)}'
            names[key] = func_name
            self._setter_functions.append(self.generate_attribute_setter_fcn(func_name, inst))
        return names[key]

    def list_func_getter_initializations(self, encoding_type):
        if not self.instruction_map:
            return ''
        class_name = f'{self.pascal_name}Slot'
        default = self.default_instruction
        if default is None:
            raise InternalError(f"Slot '{self.name}' has no default instruction")
        null_setter = f'{self.pascal_name}SlotSetOperandsNull'
        self._setter_functions.append(
            self.generate_operand_setter_fcn(null_setter, encoding_type, default.opcode))
        output = [
            f'    {{static_cast<int>(OpcodeEnum::kNone), {{OperandSetter{{{null_setter}}},\n'
            f'    {self.generate_disassembly_setter(default)},\n'
            f'    {self.generate_resource_setter(default, encoding_type)},\n'
            f'    {self.generate_attribute_setter(default)},\n'
            f'    SemFuncSetter{{{default.semfunc_code_string}}}, '
            f'{default.opcode.instruction_size}}}}},\n']
        operand_setter_names = self.instruction_set.operand_setter_names
        for instruction in self.instruction_map.values():
            opcode_name = instruction.opcode.pascal_name
            output.append(f'\n  // ***   k{opcode_name}   ***\n')
            operand_setters = []
            semfuncs = []
            for inst in instruction:
                key = self.create_operand_lookup_key(inst.opcode)
                if key not in operand_setter_names:
                    setter_name = f'{class_name}SetOperands{len(operand_setter_names)}'
                    self._setter_functions.append(
                        self.generate_operand_setter_fcn(setter_name, encoding_type, inst.opcode))
                    operand_setter_names[key] = setter_name
                operand_setters.append(operand_setter_names[key])
                semfuncs.append(inst.semfunc_code_string or default.semfunc_code_string)
            output.append(
                f'    {{static_cast<int>(OpcodeEnum::k{opcode_name}), '
                f'{{OperandSetter{{{", ".join(operand_setters)}}},\n'
                f'    {self.generate_disassembly_setter(instruction)},\n'
                f'    {self.generate_resource_setter(instruction, encoding_type)},\n'
                f'    {self.generate_attribute_setter(instruction)},\n'
                f'    SemFuncSetter{{{", ".join(semfuncs)}}}, '
                f'{instruction.opcode.instruction_size}}}}},\n')
        return ''.join(output)

    def generate_class_declaration(self, encoding_type):
        if not self.is_referenced:
            return ''
        class_name = f'{self.pascal_name}Slot'
        return (f'class {class_name} {{\n'
                ' public:\n'
                f'  explicit {class_name}(ArchState *arch_state);\n'
                f'  Instruction *Decode(uint64_t address, {encoding_type} *isa_encoding, '
                'SlotEnum slot, int entry);\n'
                '\n'
                ' private:\n'
                '  ArchState *arch_state_;\n'
                '  absl::flat_hash_map<int, InstructionInfo> instruction_info_;\n'
                f'  static constexpr SlotEnum slot_ = SlotEnum::k{self.pascal_name};\n'
                '};\n'
                '\n')

    def generate_class_definition(self, encoding_type):
        if not self.is_referenced:
            return ''
        logger.debug('emitting class for slot %s', self.name)
        class_name = f'{self.pascal_name}Slot'
        self._setter_functions = []
        initializers = self.list_func_getter_initializations(encoding_type)
        output = (
            f'{class_name}::{class_name}(ArchState *arch_state) :\n'
            '  arch_state_(arch_state),\n'
            f'  instruction_info_{{{{\n{initializers}}}}} {{}}\n'
            '\n'
            f'Instruction *{class_name}::Decode(uint64_t address, {encoding_type} *isa_encoding, '
            'SlotEnum slot, int entry) {\n'
            '  OpcodeEnum opcode = isa_encoding->GetOpcode(slot, entry);\n'
            '  int indx = static_cast<int>(opcode);\n'
            '  auto &inst_info = instruction_info_[indx];\n'
            '  Instruction *inst = new Instruction(address, arch_state_);\n'
            '  inst->set_size(inst_info.instruction_size);\n'
            '  inst->set_opcode(static_cast<int>(opcode));\n'
            '  inst->set_semantic_function(inst_info.semfunc[0]);\n'
            '  inst_info.operand_setter[0](inst, isa_encoding, opcode, slot, entry);\n'
            '  Instruction *parent = inst;\n'
            '  for (size_t i = 1; i < inst_info.operand_setter.size(); i++) {\n'
            '    Instruction *child = new Instruction(address, arch_state_);\n'
            '    child->set_semantic_function(inst_info.semfunc[i]);\n'
            '    inst_info.operand_setter[i](child, isa_encoding, opcode, slot, entry);\n'
            '    parent->AppendChild(child);\n'
            '    child->DecRef();\n'
            '    parent = child;\n'
            '  }\n'
            '  inst_info.resource_setter(inst, isa_encoding, slot, entry);\n'
            '  inst_info.disassembly_setter(inst);\n'
            '  inst_info.attribute_setter(inst);\n'
            '  return inst;\n'
            '}\n')
        return f'namespace {{\n\n{"".join(self._setter_functions)}}}  // namespace\n\n{output}'
