"""
Constraints and setters of a single instruction encoding in a ``.proto_fmt`` group.

Fields are addressed by their dotted path from the group's message, e.g. ``itype.rs1``.
A field inside a oneof (at any depth of the path) can only be read when every enclosing
oneof holds the member on the path; these members are passed in as ``one_of_fields``, a
list of ``(field, path)`` pairs.
"""

import logging
from collections import namedtuple

from .diagnostics import GeneratorError
from .names import to_pascal_case
from .proto_constraint_expression import ConstraintType, ValueExpression
from .proto_value import ProtoValue, ValueKind, is_int_kind, kind_for_cpp_type

__all__ = ['ProtoConstraint', 'ProtoSetter', 'ProtoInstructionEncoding', 'accessor',
           'accessor_prefix']

logger = logging.getLogger(__name__)


def accessor(path):
    """C++ accessor chain of a dotted field path: ``a.b`` becomes ``a().b()``."""
    return '.'.join(f'{name}()' for name in path.split('.'))


def accessor_prefix(path):
    """Accessor chain of the message holding the last field of ``path``, with a trailing dot."""
    return ''.join(f'{name}().' for name in path.split('.')[:-1])


def _oneof_case_name(field):
    oneof = field.containing_oneof
    message_name = oneof.containing_type.full_name.replace('.', '::')
    return f'{message_name}::{to_pascal_case(oneof.name)}Case::k{to_pascal_case(field.name)}'


class ProtoConstraint:
    """
    ``field op expr``, or ``HAS(field)``. ``depends_on`` is the ``HAS`` constraint on the
    innermost oneof member that must hold for ``field`` to be present.
    """

    def __init__(self, token, field, path, op, expr=None, depends_on=None):
        self.token = token
        self.field = field
        self.path = path
        self.op = op
        if op is ConstraintType.HAS and field.containing_oneof is not None:
            # the oneof case accessor returns the field number of the member set
            expr = ValueExpression(ProtoValue(ValueKind.INT32, field.number))
        self.expr = expr
        self.value = expr.get_value().value if expr is not None else None
        self.depends_on = depends_on

    def __repr__(self):
        return f'<ProtoConstraint {self.path} {self.op.value} {self.value!r}>'

    @property
    def oneof(self):
        if self.op is ConstraintType.HAS:
            return self.field.containing_oneof
        return None

    @property
    def key(self):
        """What the constraint restricts: the oneof for a ``HAS`` on a member, else the field."""
        oneof = self.oneof
        if oneof is not None:
            return accessor_prefix(self.path) + oneof.full_name
        return self.path

    def selector(self, message_name):
        """C++ expression the constraint compares against a value."""
        oneof = self.oneof
        if oneof is not None:
            return f'{message_name}.{accessor_prefix(self.path)}{oneof.name}_case()'
        return f'{message_name}.{accessor(self.path)}'

    def condition(self, message_name):
        if self.op is ConstraintType.HAS:
            if self.field.containing_oneof is not None:
                return f'{self.selector(message_name)} == {_oneof_case_name(self.field)}'
            return f'{message_name}.{accessor_prefix(self.path)}has_{self.field.name}()'
        return f'{self.selector(message_name)} {self.op.value} {self.expr.cpp_text()}'


ProtoSetter = namedtuple('ProtoSetter', ('token', 'name', 'field', 'path', 'if_not',
                                         'depends_on'))


class ProtoInstructionEncoding:
    """
    One way of encoding the opcode ``name``. Integer equality constraints and the first
    oneof member constraint of each path go to ``equal_constraints``, the material the
    decoder tree is partitioned on; the rest go to ``other_constraints`` and are tested
    in the leaves.
    """

    def __init__(self, name, instruction_group, token=None):
        self.name = name
        self.instruction_group = instruction_group
        self.token = token
        self.equal_constraints = []
        self.other_constraints = []
        # oneof key -> HAS constraint on its member
        self.has_constraints = {}
        self.setter_map = {}
        self._setter_code = None

    def __repr__(self):
        return f'<ProtoInstructionEncoding {self.name}>'

    @property
    def pascal_name(self):
        return to_pascal_case(self.name)

    def copy(self):
        encoding = ProtoInstructionEncoding(self.name, self.instruction_group, self.token)
        encoding.equal_constraints = list(self.equal_constraints)
        encoding.other_constraints = list(self.other_constraints)
        encoding.has_constraints = dict(self.has_constraints)
        encoding.setter_map = dict(self.setter_map)
        return encoding

    @property
    def constraints(self):
        return self.equal_constraints + self.other_constraints

    def _add_has_constraint(self, token, field, path, depends_on, what):
        constraint = ProtoConstraint(token, field, path, ConstraintType.HAS,
                                     depends_on=depends_on)
        previous = self.has_constraints.get(constraint.key)
        if previous is not None:
            if previous.field.full_name != field.full_name:
                raise GeneratorError(f"One_of constraint on '{field.name}' contradicts "
                                     f"{what} constraint on '{previous.field.name}'")
            return previous, False
        self.has_constraints[constraint.key] = constraint
        return constraint, True

    def add_constraint(self, token, op, field, path, one_of_fields, expr=None):
        """
        Add ``field op expr`` (``expr`` is ignored for ``HAS``). ``one_of_fields`` are the
        oneof members on the path to ``field``, outermost first, not including ``field``
        itself for a ``HAS`` constraint.
        """
        depends_on = None
        for one_of_field, one_of_path in one_of_fields:
            constraint, added = self._add_has_constraint(token, one_of_field, one_of_path,
                                                         depends_on, 'previous')
            if added:
                if depends_on is None:
                    self.equal_constraints.append(constraint)
                else:
                    self.other_constraints.append(constraint)
            depends_on = constraint

        if op is ConstraintType.HAS and field.containing_oneof is not None:
            constraint, added = self._add_has_constraint(token, field, path, depends_on,
                                                         'encoding')
            if not added:
                return
            if depends_on is None:
                self.equal_constraints.append(constraint)
            else:
                self.other_constraints.append(constraint)
            return

        constraint = ProtoConstraint(token, field, path, op, expr, depends_on)
        kind = kind_for_cpp_type(field.cpp_type)
        if (op is ConstraintType.EQ and depends_on is None and kind is not None and
                is_int_kind(kind)):
            # dispatch tables are indexed by int64_t
            if constraint.value > ValueKind.INT64.max_value:
                raise GeneratorError(f"Expression value for field '{field.name}' overflows "
                                     "int64_t.")
            self.equal_constraints.append(constraint)
        else:
            self.other_constraints.append(constraint)

    def add_setter(self, token, name, field, path, one_of_fields, if_not=None):
        if name in self.setter_map:
            raise GeneratorError(f"Setter '{name}' already defined.")
        depends_on = None
        for one_of_field, one_of_path in one_of_fields:
            depends_on = ProtoConstraint(token, one_of_field, one_of_path,
                                         ConstraintType.HAS, depends_on=depends_on)
        self.setter_map[name] = ProtoSetter(token, name, field, path, if_not, depends_on)
        self._setter_code = None

    def _guards(self, setter):
        """Oneof checks needed before reading the field of ``setter``, outermost first."""
        chain = []
        constraint = setter.depends_on
        while constraint is not None:
            entailed = self.has_constraints.get(constraint.key)
            if entailed is None or entailed.field.full_name != constraint.field.full_name:
                chain.append(constraint)
            constraint = constraint.depends_on
        chain.reverse()
        return chain

    def generate_setter_code(self):
        """
        Setter calls for this encoding with ``$`` standing for the message. Setters reading
        from oneof members are nested in the checks of the members that are not already
        implied by the encoding's constraints; setters with a default value are not.
        """
        root = ({}, [])
        for name in sorted(self.setter_map):
            setter = self.setter_map[name]
            set_call = f'decoder->Set{to_pascal_case(name)}('
            if setter.if_not is not None:
                prefix = accessor_prefix(setter.path)
                root[1].append(f'{set_call}$.{prefix}has_{setter.field.name}() ? '
                               f'$.{accessor(setter.path)} : {setter.if_not.cpp_text()});')
                continue
            node = root
            for guard in self._guards(setter):
                node = node[0].setdefault(guard.condition('$'), ({}, []))
            node[1].append(f'{set_call}$.{accessor(setter.path)});')

        lines = []

        def emit(node, depth):
            children, calls = node
            lines.extend('  ' * depth + call for call in calls)
            for condition, child in children.items():
                lines.append('  ' * depth + f'if ({condition}) {{')
                emit(child, depth + 1)
                lines.append('  ' * depth + '}')

        emit(root, 0)
        self._setter_code = ''.join(line + '\n' for line in lines)
        return self._setter_code

    def get_setter_code(self, message_name, indent):
        if self._setter_code is None:
            self.generate_setter_code()
        prefix = ' ' * indent
        return ''.join(prefix + line.replace('$', message_name) + '\n'
                       for line in self._setter_code.splitlines())
