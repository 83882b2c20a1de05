"""
Everything known about a ``.proto_fmt`` decoder: its instruction groups, the setter types
collected across all encodings and the include files, and the emission of the decoder
class header and source.
"""

import logging

from .cpp_prolog import generate_namespace_epilog, generate_namespace_prolog
from .cprinter import CPrinter
from .diagnostics import GeneratorError
from .names import to_header_guard, to_pascal_case, to_snake_case
from .proto_encoding_group import DEFAULT_DENSITY_THRESHOLD
from .proto_instruction_group import ProtoInstructionGroup
from .proto_value import CppType, cpp_type_name, join_setter_types

__all__ = ['ProtoInstructionDecoder', 'ProtoEncodingInfo']

logger = logging.getLogger(__name__)


class ProtoInstructionDecoder:
    def __init__(self, name, token=None):
        self.name = name
        self.token = token
        self.namespaces = []
        self.instruction_groups = []

    def __repr__(self):
        return f'<ProtoInstructionDecoder {self.name}>'

    def add_instruction_group(self, group):
        self.instruction_groups.append(group)


class ProtoEncodingInfo:
    def __init__(self, opcode_enum, error_listener):
        self.opcode_enum = opcode_enum
        self.error_listener = error_listener
        self.include_files = set()
        self.instruction_group_map = {}
        self.setter_types = {}
        self.decoder = None

    @property
    def decoder_class_name(self):
        return f'{to_pascal_case(self.decoder.name)}Decoder'

    def add_include_file(self, include_file):
        """``include_file`` is written as given if it starts with a quote or ``<``."""
        if not include_file.startswith(('"', '<')):
            include_file = f'"{include_file}"'
        self.include_files.add(include_file)

    def set_proto_decoder(self, name, token=None):
        self.decoder = ProtoInstructionDecoder(name, token)
        return self.decoder

    def add_instruction_group(self, name, message_type, token=None):
        if name in self.instruction_group_map:
            raise GeneratorError(f"Instruction group '{name}' already defined")
        group = ProtoInstructionGroup(name, message_type, self, token)
        self.instruction_group_map[name] = group
        return group

    def check_setter_type(self, name, field):
        """Record the type of setter ``name`` read from ``field``, joined with earlier uses."""
        cpp_type = CppType(field.cpp_type)
        if cpp_type is CppType.MESSAGE:
            raise GeneratorError(f"Setter type for '{name}' cannot be a message.")
        if cpp_type is CppType.ENUM:
            cpp_type = CppType.INT32
        previous = self.setter_types.get(name)
        if previous is None:
            self.setter_types[name] = cpp_type
            return
        joined = join_setter_types(previous, cpp_type)
        if joined is None:
            raise GeneratorError(f"Type inconsistency in setter '{name}'")
        self.setter_types[name] = joined

    def _generate_class_declaration(self, printer):
        class_name = self.decoder_class_name
        printer.line(f'class {class_name} {{')
        printer.line(' public:')
        printer.push()
        printer.line(f'{class_name}() = default;')
        printer.line()
        for group in self.decoder.instruction_groups:
            printer.line(f'{self.opcode_enum} Decode{group.pascal_name}('
                         f'{group.message_type_name} inst_proto);')
        if self.setter_types:
            printer.line()
        for name, cpp_type in sorted(self.setter_types.items()):
            type_name = cpp_type_name(cpp_type)
            printer.line(f'void Set{to_pascal_case(name)}({type_name} value);')
            printer.line(f'{type_name} Get{to_pascal_case(name)}() const {{ '
                         f'return {to_snake_case(name)}_value_; }}')
        printer.pop()
        if self.setter_types:
            printer.line()
            printer.line(' private:')
            printer.push()
            for name, cpp_type in sorted(self.setter_types.items()):
                printer.line(f'{cpp_type_name(cpp_type)} {to_snake_case(name)}_value_ = {{}};')
            printer.pop()
        printer.line('};')

    def generate_decoder_class(self, hdr_file_name, density_threshold=DEFAULT_DENSITY_THRESHOLD):
        """
        Return the ``(header, source)`` texts of the decoder class, or ``None`` if the
        decoder trees could not be built.
        """
        decoder = self.decoder
        namespaces = decoder.namespaces
        guard_name = to_header_guard(hdr_file_name)
        qualifier = ''.join(f'::{name}' for name in namespaces)

        trees = []
        for group in decoder.instruction_groups:
            tree = group.generate_decoder(density_threshold)
            if tree is None:
                return None
            trees.append((group, tree))

        h = CPrinter()
        h.line(f'#ifndef {guard_name}')
        h.line(f'#define {guard_name}')
        h.line()
        h.line('#include <cstdint>')
        h.line('#include <string>')
        h.line()
        for include_file in sorted(self.include_files):
            h.line(f'#include {include_file}')
        h.line()
        h.raw(generate_namespace_prolog(namespaces))
        for group in decoder.instruction_groups:
            message_name = group.message_type.full_name.replace('.', '::')
            h.line(f'using {group.message_type_name} = ::{message_name};')
        h.line()
        h.line(f'class {self.decoder_class_name};')
        h.line()
        self._generate_class_declaration(h)
        h.raw(generate_namespace_epilog(namespaces))
        h.line()
        h.line(f'#endif  // {guard_name}')

        cc = CPrinter()
        cc.line(f'#include "{hdr_file_name}"')
        cc.line()
        cc.line('#include <cstdint>')
        cc.line('#include <functional>')
        cc.line()
        cc.line('#include "absl/base/no_destructor.h"')
        cc.line('#include "absl/container/flat_hash_map.h"')
        cc.line()
        cc.raw(generate_namespace_prolog(namespaces))
        for group, tree in trees:
            cc.line('namespace {')
            cc.line()
            cc.raw(tree)
            cc.line('}  // namespace')
            cc.line()
        class_name = self.decoder_class_name
        for group in decoder.instruction_groups:
            cc.line(f'{self.opcode_enum} {class_name}::Decode{group.pascal_name}('
                    f'{group.message_type_name} inst_proto) {{')
            cc.push()
            cc.line(f'return {qualifier}::Decode{group.pascal_name}(inst_proto, this);')
            cc.pop()
            cc.line('}')
            cc.line()
        for name, cpp_type in sorted(self.setter_types.items()):
            cc.line(f'void {class_name}::Set{to_pascal_case(name)}('
                    f'{cpp_type_name(cpp_type)} value) {{')
            cc.push()
            cc.line(f'{to_snake_case(name)}_value_ = value;')
            cc.pop()
            cc.line('}')
            cc.line()
        cc.raw(generate_namespace_epilog(namespaces))
        return h.getvalue(), cc.getvalue()
