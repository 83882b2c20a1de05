import copy
from collections import namedtuple

from . import template_expression as tex
from .diagnostics import ExpressionError, GeneratorError
from .names import to_pascal_case

__all__ = ['DestinationOperand', 'SourceOperand', 'OperandLocator', 'FormatInfo',
           'DisasmFormat', 'ResourceReference', 'Opcode', 'OpcodeFactory']


SourceOperand = namedtuple('SourceOperand', ('name', 'is_array', 'is_reloc'))

# kind is one of 'p' (predicate), 's'/'t' (source, array source), 'd'/'e' (destination,
# array destination)
OperandLocator = namedtuple('OperandLocator', ('op_spec_number', 'kind', 'is_reloc', 'instance'))


class DestinationOperand:
    """
    A destination operand with its latency expression. An operand without an expression
    has a wildcard (``*``) latency that is resolved at decode time.
    """

    def __init__(self, name, is_array=False, is_reloc=False, expression=None):
        self.name = name
        self.pascal_case_name = to_pascal_case(name)
        self.is_array = is_array
        self.is_reloc = is_reloc
        self.expression = expression

    def has_latency(self):
        return self.expression is not None

    def get_latency(self):
        if self.expression is None:
            return -1
        try:
            return tex.get_int_value(self.expression)
        except ExpressionError as e:
            raise ExpressionError(f'Template expression evaluation error: {e}') from e


class FormatInfo:
    def __init__(self):
        self.op_name = ''
        self.is_formatted = True
        self.is_optional = False
        self.number_format = ''
        self.use_address = False
        self.operation = ''
        self.do_left_shift = False
        self.shift_amount = 0

    def __repr__(self):
        return (f'FormatInfo(op_name={self.op_name!r}, number_format={self.number_format!r}, '
                f'use_address={self.use_address}, operation={self.operation!r}, '
                f'do_left_shift={self.do_left_shift}, shift_amount={self.shift_amount})')


class DisasmFormat:
    def __init__(self):
        self.width = 0
        self.num_optional = 0
        self.format_fragment_vec = []
        self.format_info_vec = []

    def copy(self):
        return copy.deepcopy(self)


class ResourceReference:
    def __init__(self, resource, is_array, dest_op, begin_expression, end_expression):
        self.resource = resource
        self.is_array = is_array
        self.dest_op = dest_op
        self.begin_expression = begin_expression
        self.end_expression = end_expression

    def copy(self):
        return ResourceReference(self.resource, self.is_array, self.dest_op,
                                 tex.deep_copy(self.begin_expression),
                                 tex.deep_copy(self.end_expression))


class Opcode:
    """
    Identity and operand shape of an instruction. Child opcodes (for multi part
    instructions) share the name of the parent and have value -1.
    """

    def __init__(self, name, value):
        self.name = name
        self.pascal_name = to_pascal_case(name)
        self.value = value
        self.instruction_size = 0
        self.child = None
        self.parent = None
        self.predicate_op_name = ''
        self.source_op_vec = []
        self.dest_op_vec = []
        self._dest_op_map = {}
        self.op_locator_map = {}

    def append_source_op(self, op_name, is_array=False, is_reloc=False):
        self.source_op_vec.append(SourceOperand(op_name, is_array, is_reloc))

    def append_dest_op(self, op_name, is_array=False, is_reloc=False, expression=None):
        op = DestinationOperand(op_name, is_array, is_reloc, expression)
        self.dest_op_vec.append(op)
        self._dest_op_map[op_name] = op
        return op

    def get_dest_op(self, op_name):
        return self._dest_op_map.get(op_name)

    def append_child(self, op):
        self.child = op
        op.parent = self

    def validate_dest_latencies(self, validator):
        for dest_op in self.dest_op_vec:
            if dest_op.expression is None:
                continue
            try:
                latency = dest_op.get_latency()
            except ExpressionError:
                return False
            if not validator(latency):
                return False
        return True

    def __repr__(self):
        return f'Opcode({self.name!r}, {self.value})'


class OpcodeFactory:
    def __init__(self):
        self._opcode_names = set()
        self.opcode_vec = []
        self._opcode_value = 1

    def create_opcode(self, name):
        if name in self._opcode_names:
            raise GeneratorError(f"Opcode '{name}' already declared")
        self._opcode_names.add(name)
        opcode = Opcode(name, self._opcode_value)
        self._opcode_value += 1
        self.opcode_vec.append(opcode)
        return opcode

    def create_default_opcode(self):
        return Opcode('', -1)

    def create_child_opcode(self, opcode):
        if opcode is None:
            return None
        return Opcode(opcode.name, -1)

    def create_derived_opcode(self, opcode, args):
        """Copy ``opcode`` with its latency expressions instantiated against ``args``."""
        new_opcode = Opcode(opcode.name, opcode.value)
        new_opcode.instruction_size = opcode.instruction_size
        new_opcode.predicate_op_name = opcode.predicate_op_name
        new_opcode.op_locator_map = dict(opcode.op_locator_map)
        for src_op in opcode.source_op_vec:
            new_opcode.append_source_op(src_op.name, src_op.is_array, src_op.is_reloc)
        for dest_op in opcode.dest_op_vec:
            if dest_op.expression is None:
                new_opcode.append_dest_op(dest_op.name, dest_op.is_array, dest_op.is_reloc)
                continue
            try:
                expression = tex.evaluate(dest_op.expression, args)
            except ExpressionError as e:
                raise GeneratorError(
                    f"Failed to create derived opcode for '{opcode.name}'") from e
            new_opcode.append_dest_op(dest_op.name, dest_op.is_array, dest_op.is_reloc,
                                      expression)
        return new_opcode
