"""
Decoder tree of an instruction group.

Each node partitions its encodings on the equality constraint key (a field or a oneof)
with the most distinct values, skipping keys that any encoding also tests with another
kind of constraint. Every value gets a child node that sees copies of the matching
encodings with that constraint removed, followed by copies of the encodings that do not
constrain the key at all. Leaves test the remaining constraints in order. Interior nodes
dispatch on the value through a table indexed by ``value - min`` when the values are
dense enough, otherwise through a hash map.
"""

import logging

from .cprinter import CPrinter
from .diagnostics import ExpressionError
from .proto_value_set import ValueSet

__all__ = ['FieldInfo', 'ProtoEncodingGroup', 'DEFAULT_DENSITY_THRESHOLD']

logger = logging.getLogger(__name__)


DEFAULT_DENSITY_THRESHOLD = 0.75


def _value_suffix(value):
    return f'm{-value}' if value < 0 else str(value)


class FieldInfo:
    """Values an equality constraint key takes across the encodings of a group."""

    def __init__(self, constraint):
        self.key = constraint.key
        self.constraint = constraint
        self.min_value = None
        self.max_value = None
        # value -> encodings, in order of first appearance
        self.value_map = {}

    def __repr__(self):
        return f'<FieldInfo {self.key} {sorted(self.value_map)}>'

    @property
    def unique_values(self):
        return len(self.value_map)

    @property
    def density(self):
        return self.unique_values / (self.max_value - self.min_value + 1)

    def add(self, value, encoding):
        encodings = self.value_map.setdefault(value, [])
        if encoding not in encodings:
            encodings.append(encoding)
        if self.min_value is None or value < self.min_value:
            self.min_value = value
        if self.max_value is None or value > self.max_value:
            self.max_value = value


class ProtoEncodingGroup:
    def __init__(self, inst_group, level, error_listener, parent=None, value=None):
        self.inst_group = inst_group
        self.level = level
        self.error_listener = error_listener
        self.parent = parent
        self.value = value
        self.encodings = []
        self.field_map = {}
        # keys of the other constraints, never used to partition
        self.other_keys = set()
        self.differentiator = None
        # (value, child group), ordered by value
        self.encoding_group_vec = []

    def __repr__(self):
        return f'<ProtoEncodingGroup {self.inst_group.name} level {self.level}>'

    def add_encoding(self, encoding):
        self.encodings.append(encoding)
        for constraint in encoding.equal_constraints:
            info = self.field_map.get(constraint.key)
            if info is None:
                info = self.field_map[constraint.key] = FieldInfo(constraint)
            info.add(constraint.value, encoding)
        for constraint in encoding.other_constraints:
            self.other_keys.add(constraint.key)

    def add_sub_groups(self):
        """
        Split the group on its differentiator, recursively. Encodings without a constraint
        on the differentiator go to every child. Leaves are checked for ambiguity.
        """
        if len(self.encodings) == 1:
            return
        best = None
        for info in self.field_map.values():
            # keys tested by other constraints are not looked up by value
            if info.key in self.other_keys:
                continue
            if best is None or info.unique_values > best.unique_values:
                best = info
        if best is None or best.unique_values < 2:
            self.check_encodings()
            return
        self.differentiator = best
        logger.debug('group %s level %d: splitting %d encodings on %s',
                     self.inst_group.name, self.level, len(self.encodings), best.key)
        selected = set()
        for value in sorted(best.value_map):
            child = ProtoEncodingGroup(self.inst_group, self.level + 1, self.error_listener,
                                       self, value)
            for encoding in best.value_map[value]:
                selected.add(id(encoding))
                encoding = encoding.copy()
                for constraint in encoding.equal_constraints:
                    if constraint.key == best.key and constraint.value == value:
                        encoding.equal_constraints.remove(constraint)
                        break
                child.add_encoding(encoding)
            self.encoding_group_vec.append((value, child))
        for encoding in self.encodings:
            if id(encoding) in selected:
                continue
            for _, child in self.encoding_group_vec:
                child.add_encoding(encoding.copy())
        for _, child in self.encoding_group_vec:
            child.add_sub_groups()

    # Ambiguity checks

    def _value_sets(self, encoding):
        value_sets = {}
        for constraint in encoding.constraints:
            if constraint.expr is None:
                continue
            value_set = ValueSet.from_constraint(constraint)
            if constraint.key in value_sets:
                value_sets[constraint.key].intersect_with(value_set)
            else:
                value_sets[constraint.key] = value_set
        return value_sets

    def constraints_overlap(self, lhs, rhs):
        """
        Whether two encodings, given as maps from constraint key to value set, can match the
        same message. Encodings constraining different fields are told apart by the order
        of the tests in the leaf.
        """
        if set(lhs) != set(rhs):
            return False
        for key, value_set in lhs.items():
            if value_set.copy().intersect_with(rhs[key]).is_empty():
                return False
        return True

    def check_encodings(self):
        if len(self.encodings) < 2:
            return
        for encoding in self.encodings:
            if not encoding.constraints:
                others = ', '.join(f"'{other.name}'" for other in self.encodings
                                   if other is not encoding)
                self.error_listener.semantic_error(
                    encoding.token, f"Decoding ambiguity between '{encoding.name}' and "
                                    f"{others}")
                return
        try:
            value_sets = [self._value_sets(encoding) for encoding in self.encodings]
            for i, lhs in enumerate(self.encodings):
                for j in range(i + 1, len(self.encodings)):
                    rhs = self.encodings[j]
                    if self.constraints_overlap(value_sets[i], value_sets[j]):
                        self.error_listener.semantic_error(
                            rhs.token, f"Encoding group '{self.inst_group.name}': encoding "
                                       f"ambiguity between '{lhs.name}' and '{rhs.name}'")
        except ExpressionError as e:
            self.error_listener.semantic_error(None, str(e))

    # Code emission

    def _signature(self, fcn_name):
        group = self.inst_group
        return (f'{group.opcode_enum} {fcn_name}({group.message_type_name} inst_proto, '
                f'{group.decoder_class_name} *decoder)')

    def emit_leaf_decoder(self, printer, fcn_name):
        opcode_enum = self.inst_group.opcode_enum
        printer.line(f'{self._signature(fcn_name)} {{')
        printer.push()
        if len(self.encodings) == 1 and not self.encodings[0].constraints:
            encoding = self.encodings[0]
            printer.raw(encoding.get_setter_code('inst_proto', printer.indent))
            printer.line(f'return {opcode_enum}::k{encoding.pascal_name};')
        else:
            for encoding in self.encodings:
                conditions = [f'({constraint.condition("inst_proto")})'
                              for constraint in encoding.constraints]
                printer.line(f'if ({" && ".join(conditions) or "true"}) {{')
                printer.push()
                printer.raw(encoding.get_setter_code('inst_proto', printer.indent))
                printer.line(f'return {opcode_enum}::k{encoding.pascal_name};')
                printer.pop()
                printer.line('}')
            printer.line(f'return {opcode_enum}::kNone;')
        printer.pop()
        printer.line('}')
        printer.line()

    def emit_complex_decoder(self, printer, fcn_name, none_fcn_name, density_threshold):
        """Emit the dispatch on the differentiator. Returns whether ``none_fcn_name`` is used."""
        group = self.inst_group
        info = self.differentiator
        fcn_type = f'{group.opcode_enum} (*)({group.message_type_name}, ' \
                   f'{group.decoder_class_name} *)'
        selector = f'static_cast<int64_t>({info.constraint.selector("inst_proto")})'
        children = dict(self.encoding_group_vec)
        printer.line(f'{self._signature(fcn_name)} {{')
        printer.push()
        printer.line(f'using DecodeFcn = {fcn_type};')
        uses_none = False
        if info.density >= density_threshold:
            size = info.max_value - info.min_value + 1
            printer.line(f'static constexpr DecodeFcn kDecodeTable[{size}] = {{')
            printer.push(4)
            for value in range(info.min_value, info.max_value + 1):
                if value in children:
                    printer.line(f'&{fcn_name}_{_value_suffix(value)},')
                else:
                    printer.line(f'&{none_fcn_name},')
                    uses_none = True
            printer.pop(4)
            printer.line('};')
            printer.line(f'int64_t index = {selector} - ({info.min_value});')
            printer.line(f'if ((index < 0) || (index >= {size})) return '
                         f'{group.opcode_enum}::kNone;')
            printer.line('return kDecodeTable[index](inst_proto, decoder);')
        else:
            printer.line('using DecodeMap = absl::flat_hash_map<int64_t, DecodeFcn>;')
            printer.line('static const absl::NoDestructor<DecodeMap> kDecodeMap(DecodeMap{')
            printer.push(4)
            for value, _ in self.encoding_group_vec:
                printer.line(f'{{{value}, &{fcn_name}_{_value_suffix(value)}}},')
            printer.pop(4)
            printer.line('});')
            printer.line(f'auto iter = kDecodeMap->find({selector});')
            printer.line(f'if (iter == kDecodeMap->end()) return {group.opcode_enum}::kNone;')
            printer.line('return iter->second(inst_proto, decoder);')
        printer.pop()
        printer.line('}')
        printer.line()
        return uses_none

    def emit_decoders(self, printer, fcn_name, none_fcn_name,
                      density_threshold=DEFAULT_DENSITY_THRESHOLD):
        """
        Emit the functions of this subtree, children before their parent. Returns whether
        any table refers to ``none_fcn_name``.
        """
        if self.differentiator is None:
            self.emit_leaf_decoder(printer, fcn_name)
            return False
        uses_none = False
        for value, child in self.encoding_group_vec:
            uses_none |= child.emit_decoders(printer, f'{fcn_name}_{_value_suffix(value)}',
                                             none_fcn_name, density_threshold)
        uses_none |= self.emit_complex_decoder(printer, fcn_name, none_fcn_name,
                                               density_threshold)
        return uses_none

    def generate_decoder(self, fcn_name, density_threshold=DEFAULT_DENSITY_THRESHOLD):
        """Source text of the decoder functions of the tree rooted at this group."""
        none_fcn_name = f'{fcn_name}_None'
        printer = CPrinter()
        uses_none = self.emit_decoders(printer, fcn_name, none_fcn_name, density_threshold)
        if not uses_none:
            return printer.getvalue()
        none_printer = CPrinter()
        none_printer.line(f'{self._signature(none_fcn_name)} {{')
        none_printer.push()
        none_printer.line(f'return {self.inst_group.opcode_enum}::kNone;')
        none_printer.pop()
        none_printer.line('}')
        none_printer.line()
        return none_printer.getvalue() + printer.getvalue()
