"""
Driver for the ``.proto_fmt`` front end.

``ProtoFormatVisitor.process`` imports the ``.proto`` files describing the instruction
messages, parses the ``.proto_fmt`` input (following includes), builds the instruction
groups of the requested decoder and writes ``<prefix>_proto_decoder.{h,cc}``. As with the
``.isa`` driver, errors are reported to the ``ErrorListener`` and nothing is written if
any error was found.
"""

import logging
import os

from . import proto_fmt_parser as ast
from .diagnostics import ErrorListener, ExpressionError, GeneratorError
from .generator import generate_text, process_range_assignments
from .lexer import ParseError
from .proto_constraint_expression import (ConstraintType, EnumExpression, NegateExpression,
                                          ValueExpression)
from .proto_encoding_group import DEFAULT_DENSITY_THRESHOLD
from .proto_encoding_info import ProtoEncodingInfo
from .proto_instruction_group import SetterInfo
from .proto_pool import ProtoImporter
from .proto_value import (CppType, ProtoValue, ValueKind, is_int_kind, kind_for_cpp_type,
                          parse_number_literal)

__all__ = ['ProtoFormatVisitor']

logger = logging.getLogger(__name__)


class ProtoFormatVisitor:
    def __init__(self, error_listener=None):
        if error_listener is None:
            error_listener = ErrorListener()
        self.error_listener = error_listener
        self.include_dir_vec = []
        self._include_file_stack = []
        self.group_decl_map = {}
        self.decoder_decl_map = {}
        self.using_map = {}
        self.importer = None
        self.encoding_info = None
        self._groups_in_decoder = set()

    def _error(self, token, msg, file_name=None):
        self.error_listener.semantic_error(token, msg, file_name)

    def _add_include_dir(self, directory):
        if not directory:
            directory = '.'
        if directory not in self.include_dir_vec:
            self.include_dir_vec.append(directory)

    def process(self, file_names, decoder_name, prefix, include_roots=(), proto_dirs=(),
                proto_files=(), directory='.', density_threshold=DEFAULT_DENSITY_THRESHOLD):
        """
        Generate ``<prefix>_proto_decoder.{h,cc}`` in ``directory`` for the decoder
        ``decoder_name``. ``proto_files`` are imported from ``.`` and ``proto_dirs``.
        Files after the first are treated as included files. Returns ``True`` on success.
        """
        if not file_names:
            self._error(None, 'No input file specified')
            return False
        if not decoder_name:
            self._error(None, 'Decoder name cannot be empty')
            return False
        if not prefix:
            self._error(None, 'No prefix specified')
            return False

        self.importer = ProtoImporter(['.', *proto_dirs])
        for proto_file in proto_files:
            try:
                self.importer.import_file(proto_file)
            except GeneratorError as e:
                self._error(None, str(e))
        if self.error_listener.has_error():
            return False

        for include_root in include_roots:
            self._add_include_dir(include_root)
        self._add_include_dir(os.path.dirname(file_names[0]))

        self.error_listener.file_name = file_names[0]
        declarations = self._parse_file(file_names[0], file_names[0], None)
        if declarations is None or self.error_listener.has_error():
            return False
        self._include_file_stack.append(os.path.abspath(file_names[0]))
        self.pre_process_declarations(declarations)
        for file_name in file_names[1:]:
            self._add_include_dir(os.path.dirname(file_name))
            self.parse_include_file(None, file_name)
        if self.error_listener.has_error():
            return False

        decl = self.decoder_decl_map.get(decoder_name)
        if decl is None:
            self._error(None, f"Decoder '{decoder_name}' not declared")
            return False
        self.process_decoder(decl)
        if self.error_listener.has_error():
            return False
        return self.write_files(prefix, directory, density_threshold)

    def write_files(self, prefix, directory, density_threshold=DEFAULT_DENSITY_THRESHOLD):
        hdr_name = f'{prefix}_proto_decoder.h'
        cc_name = f'{prefix}_proto_decoder.cc'
        texts = self.encoding_info.generate_decoder_class(hdr_name, density_threshold)
        if texts is None or self.error_listener.has_error():
            return False
        os.makedirs(directory, exist_ok=True)
        for file_name, text in zip((hdr_name, cc_name), texts):
            logger.info('writing %s', os.path.join(directory, file_name))
            with open(os.path.join(directory, file_name), 'w') as out:
                out.write(text)
        return True

    # Files and includes

    def _parse_file(self, path, file_name, token):
        try:
            with open(path, 'r') as f:
                buffer = f.read()
        except OSError:
            self._error(token, f"Failed to open '{file_name}'")
            return None
        try:
            return ast.ProtoFmtParser(buffer, file_name).parse_top_level()
        except ParseError as e:
            self.error_listener.syntax_error(e.line, e.column, e.message, file_name)
            return None

    def _find_include_file(self, file_name):
        if os.path.isfile(file_name):
            return file_name
        for directory in self.include_dir_vec:
            path = os.path.join(directory, file_name)
            if os.path.isfile(path):
                return path
        return None

    def parse_include_file(self, token, file_name):
        path = self._find_include_file(file_name)
        if path is None:
            self._error(token, f"Failed to open '{file_name}'")
            return
        if os.path.abspath(path) in self._include_file_stack:
            self._error(token, f"Recursive include of '{file_name}'")
            return
        self._add_include_dir(os.path.dirname(path))
        previous_file_name = self.error_listener.file_name
        self.error_listener.file_name = file_name
        try:
            declarations = self._parse_file(path, file_name, token)
            if declarations is None:
                return
            logger.debug('including %s', path)
            self._include_file_stack.append(os.path.abspath(path))
            self.pre_process_declarations(declarations)
            self._include_file_stack.pop()
        finally:
            self.error_listener.file_name = previous_file_name

    # Declarations

    def pre_process_declarations(self, declarations):
        include_decls = []
        for decl in declarations:
            if isinstance(decl, ast.InstructionGroupDecl):
                self._catalogue(self.group_decl_map, 'instruction group', decl)
            elif isinstance(decl, ast.DecoderDecl):
                self._catalogue(self.decoder_decl_map, 'decoder', decl)
            elif isinstance(decl, ast.UsingDecl):
                self.visit_using_decl(decl)
            elif isinstance(decl, ast.IncludeFile):
                include_decls.append(decl)
        for decl in include_decls:
            self.parse_include_file(decl.token, decl.file_name)

    def _catalogue(self, decl_map, kind, decl):
        previous = decl_map.get(decl.name)
        if previous is not None:
            self._error(decl.token, f"Multiple definitions of {kind} '{decl.name}' first "
                                    f'defined at line: {previous.token.line}', decl.file_name)
            return
        decl_map[decl.name] = decl

    def visit_using_decl(self, decl):
        name = decl.name.text
        alias = decl.alias if decl.alias is not None else name.rpartition('.')[2]
        if alias in self.using_map:
            self._error(decl.token, f"Redefinition of '{alias}'")
            return
        self.using_map[alias] = name

    def expand_name(self, name):
        """Replace the first component of ``name`` by what it is an alias of, if anything."""
        first, dot, rest = name.partition('.')
        expanded = self.using_map.get(first)
        if expanded is None:
            return name
        return expanded + dot + rest

    # Decoder

    def process_decoder(self, decl):
        file_name = decl.file_name
        namespace_decl = None
        opcode_enum = None
        include_files = []
        group_names = []
        for attribute in decl.attributes:
            if isinstance(attribute, ast.NamespaceDecl):
                if namespace_decl is not None:
                    self._error(attribute.token, 'More than one namespace declaration',
                                file_name)
                    continue
                namespace_decl = attribute
            elif isinstance(attribute, ast.OpcodeEnumDecl):
                if opcode_enum is not None:
                    self._error(attribute.token, 'More than one opcode enum declaration',
                                file_name)
                    continue
                if not attribute.name:
                    self._error(attribute.token, 'Empty opcode enum string', file_name)
                    continue
                opcode_enum = attribute.name
            elif isinstance(attribute, ast.IncludeFilesDecl):
                include_files.extend(attribute.files)
            elif isinstance(attribute, ast.GroupNameDecl):
                group_names.append(attribute)

        self.encoding_info = ProtoEncodingInfo(opcode_enum or 'OpcodeEnum', self.error_listener)
        decoder = self.encoding_info.set_proto_decoder(decl.name, decl.token)
        if namespace_decl is not None:
            decoder.namespaces.extend(namespace_decl.names)
        for include_file in include_files:
            self.encoding_info.add_include_file(include_file)

        if not group_names:
            self._error(decl.token, 'No instruction groups found', file_name)
            return
        for group_name in group_names:
            if group_name.children is None:
                group = self.process_group_name(group_name, group_name.name, file_name)
            else:
                group = self.process_parent_group(group_name, file_name)
            if group is not None:
                decoder.add_instruction_group(group)

    def _claim_group(self, token, name, file_name):
        if name in self._groups_in_decoder:
            self._error(token, f"Instruction group '{name}' listed twice", file_name)
            return False
        self._groups_in_decoder.add(name)
        return True

    def process_group_name(self, token, name, file_name):
        if not self._claim_group(token, name, file_name):
            return None
        group_decl = self.group_decl_map.get(name)
        if group_decl is None:
            self._error(token, f"No such instruction group: '{name}'", file_name)
            return None
        return self.visit_instruction_group(group_decl)

    def process_parent_group(self, decl, file_name):
        if not decl.children:
            self._error(decl.token, 'No child groups', file_name)
            return None
        children = []
        for child_name in decl.children:
            child = self.process_group_name(decl.token, child_name, file_name)
            if child is not None:
                children.append(child)
        if len(children) != len(decl.children):
            return None
        message_type = children[0].message_type
        for child in children[1:]:
            if child.message_type.full_name != message_type.full_name:
                self._error(decl.token, f"Instruction group '{child.name}' must use format "
                                        f"'{message_type.full_name}', to be merged into group "
                                        f"'{decl.name}'", file_name)
                return None
        try:
            parent = self.encoding_info.add_instruction_group(decl.name, message_type,
                                                              decl.token)
        except GeneratorError as e:
            self._error(decl.token, str(e), file_name)
            return None
        for child in children:
            parent.copy_instruction_encodings(child)
        return parent

    # Instruction groups

    def _add_message_include(self, token, message_type, file_name):
        proto_file = message_type.file.name
        stem, extension = os.path.splitext(proto_file)
        if extension != '.proto':
            self._error(token, f"Not a .proto file: '{proto_file}'", file_name)
            return
        self.encoding_info.add_include_file(f'{stem}.pb.h')

    def visit_instruction_group(self, decl):
        file_name = decl.file_name
        logger.debug('processing instruction group %s', decl.name)
        message_name = self.expand_name(decl.message_name.text)
        message_type = self.importer.find_message_type(message_name)
        if message_type is None:
            self._error(decl.message_name.token,
                        f"Undefined proto message type: '{message_name}'", file_name)
            return None
        try:
            group = self.encoding_info.add_instruction_group(decl.name, message_type,
                                                             decl.token)
        except GeneratorError as e:
            self._error(decl.token, str(e), file_name)
            return None
        self._add_message_include(decl.message_name.token, message_type, file_name)

        for setter_group in decl.setter_groups:
            for setter_def in setter_group.setter_defs:
                setter = self.visit_setter_def(setter_def, message_type, file_name)
                if setter is None:
                    continue
                try:
                    group.add_setter(setter_group.name, setter)
                except GeneratorError as e:
                    self._error(setter_def.token, str(e), file_name)

        for inst_def in decl.instruction_defs:
            self.visit_instruction_def(inst_def, group, file_name)
        return group

    def visit_instruction_def(self, inst_def, group, file_name):
        if isinstance(inst_def, ast.GeneratorDef):
            self.process_instruction_def_generator(inst_def, group, file_name)
            return
        encoding = group.add_instruction_encoding(inst_def.name, inst_def.token)
        for constraint in inst_def.constraints:
            try:
                self.visit_field_constraint(constraint, group.message_type, encoding)
            except GeneratorError as e:
                self._error(constraint.token, str(e), file_name)
        for item in inst_def.setters:
            try:
                if isinstance(item, ast.SetterRef):
                    for setter in group.get_setter_group(item.name).values():
                        encoding.add_setter(setter.token, setter.name, setter.field,
                                            setter.path, setter.one_of_fields, setter.if_not)
                    continue
                setter = self.visit_setter_def(item, group.message_type, file_name)
                if setter is not None:
                    encoding.add_setter(setter.token, setter.name, setter.field, setter.path,
                                        setter.one_of_fields, setter.if_not)
            except GeneratorError as e:
                self._error(item.token, str(e), file_name)

    def process_instruction_def_generator(self, gen_def, group, file_name):
        try:
            range_infos = process_range_assignments(gen_def.assignments, gen_def.body,
                                                    self.error_listener, file_name,
                                                    gen_def.body_token)
        except GeneratorError as e:
            self._error(gen_def.token, str(e), file_name)
            return
        generated = generate_text(range_infos, gen_def.body)
        try:
            inst_defs = ast.ProtoFmtParser(generated, file_name).parse_instruction_def_list()
        except ParseError as e:
            self.error_listener.syntax_error(
                e.line, e.column, f'{e.message} (in generated instruction definitions)',
                file_name)
            return
        for inst_def in inst_defs:
            self.visit_instruction_def(inst_def, group, file_name)

    # Fields, constraints and setters

    def get_field(self, path, message_type):
        """
        Resolve the dotted ``path`` in ``message_type``. Returns the field and the
        ``(field, path)`` pairs of the oneof members along the way, outermost first.
        """
        names = path.split('.')
        one_of_fields = []
        message = message_type
        field = None
        for i, name in enumerate(names):
            if message is None:
                raise GeneratorError(f"Field '{names[i - 1]}' is not a message")
            field = message.fields_by_name.get(name)
            if field is None:
                raise GeneratorError(f"Field '{name}' not found in message '{message.name}'")
            if field.containing_oneof is not None:
                one_of_fields.append((field, '.'.join(names[:i + 1])))
            message = field.message_type
        return field, one_of_fields

    def visit_field_constraint(self, constraint, message_type, encoding):
        path = constraint.field.text
        field, one_of_fields = self.get_field(path, message_type)
        if constraint.op == 'HAS':
            if one_of_fields and one_of_fields[-1][0].full_name == field.full_name:
                one_of_fields.pop()
            encoding.add_constraint(constraint.token, ConstraintType.HAS, field, path,
                                    one_of_fields)
            return
        expr = self.visit_constraint_value(constraint.value, field)
        encoding.add_constraint(constraint.token, ConstraintType(constraint.op), field, path,
                                one_of_fields, expr)

    def visit_constraint_value(self, value, field):
        """Expression for ``value`` compared to or stored in ``field``, of the field's kind."""
        if isinstance(value, ast.IdentValue):
            if CppType(field.cpp_type) is not CppType.ENUM:
                raise GeneratorError(f"Field '{field.name}' is not enum type")
            enum_value = field.enum_type.values_by_name.get(value.text.rpartition('.')[2])
            if enum_value is None:
                raise GeneratorError(f"Enum value not found: '{value.text}'")
            return EnumExpression(enum_value)
        if isinstance(value, ast.NumberValue):
            expr = ValueExpression(parse_number_literal(value.text))
            if value.negative:
                expr = NegateExpression(expr)
        elif isinstance(value, ast.BoolValue):
            expr = ValueExpression(ProtoValue(ValueKind.BOOL, value.value))
        else:
            expr = ValueExpression(ProtoValue(ValueKind.STRING, value.text))
        return self._convert_expression(expr, field)

    def _convert_expression(self, expr, field):
        kind = kind_for_cpp_type(field.cpp_type)
        try:
            proto_value = expr.get_value()
        except ExpressionError:
            raise GeneratorError(f"Illegal type in expression in constraint for field "
                                 f"'{field.name}'.")
        source_kind = proto_value.kind
        if kind is None:
            raise GeneratorError(f"Illegal type in expression in constraint for field "
                                 f"'{field.name}'.")
        if is_int_kind(kind) and is_int_kind(source_kind):
            if not kind.min_value <= proto_value.value <= kind.max_value:
                raise GeneratorError(f"Expression value for field '{field.name}' overflows "
                                     f"{kind.c_name}.")
            return ValueExpression(ProtoValue(kind, proto_value.value))
        if kind in (ValueKind.FLOAT, ValueKind.DOUBLE) and source_kind not in (
                ValueKind.BOOL, ValueKind.STRING):
            return ValueExpression(ProtoValue(kind, float(proto_value.value)))
        if kind is source_kind:
            return ValueExpression(proto_value)
        raise GeneratorError(f"Illegal type in expression in constraint for field "
                             f"'{field.name}'.")

    def visit_setter_def(self, setter_def, message_type, file_name):
        """Resolve a setter definition into a ``SetterInfo``; errors are reported."""
        try:
            path = setter_def.field.text
            field, one_of_fields = self.get_field(path, message_type)
            self.encoding_info.check_setter_type(setter_def.name, field)
            if_not = None
            if setter_def.if_not is not None:
                if_not = self.visit_constraint_value(setter_def.if_not, field)
        except GeneratorError as e:
            self._error(setter_def.token, str(e), file_name)
            return None
        return SetterInfo(setter_def.token, setter_def.name, field, path, one_of_fields, if_not)
