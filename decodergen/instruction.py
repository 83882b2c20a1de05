from . import template_expression as tex
from .diagnostics import ExpressionError, GeneratorError

__all__ = ['Instruction']


class Instruction:
    """
    One opcode placed in one slot. Multi part opcodes form a chain through ``child``.
    """

    def __init__(self, opcode, slot, child=None):
        self.opcode = opcode
        self.slot = slot
        self.child = child
        self.semfunc_code_string = ''
        self.disasm_format_vec = []
        self.resource_use_vec = []
        self.resource_acquire_vec = []
        self.attribute_map = {}

    def append_child(self, child):
        if self.child is None:
            self.child = child
            return
        self.child.append_child(child)

    def append_resource_use(self, resource_ref):
        self.resource_use_vec.append(resource_ref)

    def append_resource_acquire(self, resource_ref):
        self.resource_acquire_vec.append(resource_ref)

    def add_instruction_attribute(self, attr_name, expression=None):
        if expression is None:
            expression = tex.Constant(1)
        self.attribute_map[attr_name] = expression

    def append_disasm_format(self, disasm_format):
        self.disasm_format_vec.append(disasm_format)

    def get_dest_op(self, op_name):
        dest_op = self.opcode.get_dest_op(op_name)
        if dest_op is not None:
            return dest_op
        if self.child is not None:
            return self.child.get_dest_op(op_name)
        return None

    def clear_disasm_format(self):
        self.disasm_format_vec = []

    def clear_semfunc_code_string(self):
        self.semfunc_code_string = ''

    def clear_resource_specs(self):
        self.resource_use_vec = []
        self.resource_acquire_vec = []

    def clear_attribute_specs(self):
        self.attribute_map = {}

    def create_derived_instruction(self, args, slot=None):
        """
        Copy this instruction (and its children) into ``slot`` with all expressions
        instantiated against the template arguments ``args``.
        """
        if slot is None:
            slot = self.slot
        factory = self.slot.instruction_set.opcode_factory
        new_inst = Instruction(factory.create_derived_opcode(self.opcode, args), slot)
        for disasm_fmt in self.disasm_format_vec:
            new_inst.append_disasm_format(disasm_fmt.copy())
        new_inst.semfunc_code_string = self.semfunc_code_string
        for ref in self.resource_use_vec:
            new_inst.append_resource_use(self._create_derived_resource_ref(ref, args))
        for ref in self.resource_acquire_vec:
            new_inst.append_resource_acquire(self._create_derived_resource_ref(ref, args))
        for attr_name, expr in self.attribute_map.items():
            try:
                new_inst.add_instruction_attribute(attr_name, tex.evaluate(expr, args))
            except ExpressionError as e:
                raise GeneratorError(
                    f"Failed to create derived instruction for '{self.opcode.name}'") from e
        if self.child is not None:
            new_inst.append_child(self.child.create_derived_instruction(args, slot))
        return new_inst

    def _create_derived_resource_ref(self, ref, args):
        begin_expr = None
        end_expr = None
        try:
            if ref.begin_expression is not None:
                begin_expr = tex.evaluate(ref.begin_expression, args)
        except ExpressionError as e:
            raise GeneratorError(f"Failed to create derived instruction for "
                                 f"'{self.opcode.name}': error evaluating begin expression") from e
        try:
            if ref.end_expression is not None:
                end_expr = tex.evaluate(ref.end_expression, args)
        except ExpressionError as e:
            raise GeneratorError(f"Failed to create derived instruction for "
                                 f"'{self.opcode.name}': error evaluating end expression") from e
        return type(ref)(ref.resource, ref.is_array, ref.dest_op, begin_expr, end_expr)

    def __iter__(self):
        inst = self
        while inst is not None:
            yield inst
            inst = inst.child
