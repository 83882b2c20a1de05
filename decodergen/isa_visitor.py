"""
Driver for the ``.isa`` front end.

``InstructionSetVisitor.process`` parses the input files, catalogues the slot, bundle and
isa declarations (following ``#include`` directives), materializes the requested isa as
an ``InstructionSet`` and writes the decoder and enum sources. Errors are reported to the
``ErrorListener`` and processing continues where possible so that one run reports as
many problems as it can; no file is written if any error was found.
"""

import logging
import os

from . import isa_parser as ast
from . import template_expression as tex
from .bundle import Bundle
from .cpp_prolog import (generate_cc_file_prolog, generate_hdr_file_epilog,
                         generate_hdr_file_prolog, generate_namespace_epilog,
                         generate_simple_hdr_prolog)
from .diagnostics import ErrorListener, ExpressionError, GeneratorError
from .disasm_format import parse_disasm_format
from .generator import generate_text, process_range_assignments
from .instruction import Instruction
from .instruction_set import InstructionSet
from .lexer import ParseError
from .names import to_header_guard, to_pascal_case, to_snake_case
from .opcode import OperandLocator, ResourceReference
from .slot import Slot

__all__ = ['InstructionSetVisitor']

logger = logging.getLogger(__name__)


_binary_ops = {
    '+': tex.add,
    '-': tex.subtract,
    '*': tex.multiply,
    '/': tex.divide,
}


class InstructionSetVisitor:
    def __init__(self, error_listener=None):
        if error_listener is None:
            error_listener = ErrorListener()
        self.error_listener = error_listener
        self.function_table = tex.default_function_table()
        self.include_dir_vec = []
        self._include_file_stack = []
        self.include_files = set()
        self.slot_decl_map = {}
        self.bundle_decl_map = {}
        self.isa_decl_map = {}
        self.constant_map = {}
        self.disasm_widths = []
        self._slots_in_progress = set()

    def _error(self, token, msg, file_name=None):
        self.error_listener.semantic_error(token, msg, file_name)

    def _add_include_dir(self, directory):
        if not directory:
            directory = '.'
        if directory not in self.include_dir_vec:
            self.include_dir_vec.append(directory)

    def process(self, file_names, prefix, isa_name, include_roots=(), directory='.'):
        """
        Generate ``<prefix>_decoder.{h,cc}`` and ``<prefix>_enums.{h,cc}`` in ``directory``
        for the isa ``isa_name``. Files after the first are treated as included files.
        Returns ``True`` on success.
        """
        if not isa_name:
            self._error(None, 'Isa name cannot be empty')
            return False
        if not file_names:
            self._error(None, 'No prefix or file name specified')
            return False
        for include_root in include_roots:
            self._add_include_dir(include_root)
        self._add_include_dir(os.path.dirname(file_names[0]))

        self.error_listener.file_name = file_names[0]
        declarations = self._parse_file(file_names[0], file_names[0], None)
        if declarations is None or self.error_listener.has_error():
            return False

        self._include_file_stack.append(os.path.abspath(file_names[0]))
        self.visit_top_level(declarations)
        for file_name in file_names[1:]:
            self._add_include_dir(os.path.dirname(file_name))
            self.parse_include_file(None, file_name)

        instruction_set = self.process_top_level(isa_name)
        if instruction_set is None:
            return False
        self.perform_bundle_reference_checks(instruction_set)
        if self.error_listener.has_error():
            return False
        try:
            instruction_set.analyze_resource_use()
        except GeneratorError as e:
            self._error(None, str(e))

        if not prefix:
            prefix = to_snake_case(os.path.splitext(os.path.basename(file_names[0]))[0])
        if self.error_listener.has_error():
            return False
        return self.write_files(instruction_set, prefix, directory)

    def write_files(self, instruction_set, prefix, directory):
        namespaces = instruction_set.namespaces
        encoding_type = f'{to_pascal_case(instruction_set.name)}EncodingBase'
        dec_h_name = f'{prefix}_decoder.h'
        dec_cc_name = f'{prefix}_decoder.cc'
        enum_h_name = f'{prefix}_enums.h'
        enum_cc_name = f'{prefix}_enums.cc'
        guard_name = to_header_guard(dec_h_name)
        enum_guard_name = to_header_guard(enum_h_name)
        try:
            enum_h, enum_cc = instruction_set.generate_enums()
            outputs = {
                dec_h_name: (generate_hdr_file_prolog(enum_h_name, guard_name, encoding_type,
                                                      namespaces) +
                             instruction_set.generate_class_declarations(encoding_type) +
                             generate_hdr_file_epilog(guard_name, namespaces)),
                dec_cc_name: (generate_cc_file_prolog(dec_h_name, namespaces,
                                                      sorted(self.include_files)) +
                              instruction_set.generate_class_definitions(encoding_type) +
                              generate_namespace_epilog(namespaces)),
                enum_h_name: (generate_simple_hdr_prolog(enum_guard_name, namespaces) +
                              enum_h +
                              generate_hdr_file_epilog(enum_guard_name, namespaces)),
                enum_cc_name: (generate_cc_file_prolog(enum_h_name, namespaces) +
                               enum_cc +
                               generate_namespace_epilog(namespaces)),
            }
        except GeneratorError as e:
            self.error_listener.internal_error(str(e))
            return False
        os.makedirs(directory, exist_ok=True)
        for file_name, text in outputs.items():
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
            return ast.IsaParser(buffer, file_name).parse_top_level()
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

    def visit_top_level(self, declarations):
        widths_decl = None
        for decl in declarations:
            if not isinstance(decl, ast.DisasmWidthsDecl):
                continue
            if widths_decl is not None:
                self._error(decl.token, 'Only one `disasm width` declaration allowed - '
                                        f'previous declaration on line: {widths_decl.token.line}')
                continue
            widths_decl = decl
            self.visit_disasm_widths_decl(decl)
        self.pre_process_declarations(declarations)

    def visit_disasm_widths_decl(self, decl):
        for expr in decl.exprs:
            width = self.visit_expression(expr, None, None)
            if width is None or not tex.is_constant(width):
                self._error(expr.token, 'Expression must be constant')
                continue
            self.disasm_widths.append(width)

    def _catalogue(self, decl_map, kind, decl):
        previous = decl_map.get(decl.name)
        if previous is not None:
            self._error(decl.token, f"{kind} '{decl.name}' already declared - "
                                    f'previous declaration on line: {previous.token.line}',
                        decl.file_name)
            return
        decl_map[decl.name] = decl

    def pre_process_declarations(self, declarations):
        include_decls = []
        for decl in declarations:
            if isinstance(decl, ast.SlotDecl):
                self._catalogue(self.slot_decl_map, 'Slot', decl)
            elif isinstance(decl, ast.BundleDecl):
                self._catalogue(self.bundle_decl_map, 'Bundle', decl)
            elif isinstance(decl, ast.IsaDecl):
                self._catalogue(self.isa_decl_map, 'Isa', decl)
            elif isinstance(decl, ast.IncludeFileList):
                self.include_files.update(decl.files)
            elif isinstance(decl, ast.ConstantDecl):
                self.visit_constant_def(decl)
            elif isinstance(decl, ast.IncludeDirective):
                include_decls.append(decl)
        for decl in include_decls:
            self.parse_include_file(decl.token, decl.file_name)

    def visit_constant_def(self, decl):
        expr = self.visit_expression(decl.expr, None, None)
        if expr is None:
            return
        try:
            self.add_constant(decl.name, expr)
        except GeneratorError as e:
            self._error(decl.token, str(e))

    def add_constant(self, name, expr):
        if name in self.constant_map:
            raise GeneratorError(f"Constant redefinition of '{name}'")
        self.constant_map[name] = expr

    def get_const_expression(self, name):
        return self.constant_map.get(name)

    def process_top_level(self, isa_name):
        decl = self.isa_decl_map.get(isa_name)
        if decl is None:
            self._error(None, f"No isa '{isa_name}' declared")
            return None
        return self.visit_isa_declaration(decl)

    def visit_isa_declaration(self, decl):
        logger.debug('instantiating isa %s', decl.name)
        instruction_set = InstructionSet(decl.name)
        instruction_set.namespaces.extend(decl.namespaces)
        for specs in decl.bundle_lists:
            self.visit_bundle_list(specs, instruction_set.bundle, decl.file_name)
        for specs in decl.slot_lists:
            self.visit_slot_list(specs, instruction_set.bundle, decl.file_name)
        return instruction_set

    def visit_bundle_list(self, specs, bundle, file_name):
        instruction_set = bundle.instruction_set
        for spec in specs:
            decl = self.bundle_decl_map.get(spec.name)
            if decl is None:
                self._error(spec.token, f"Reference to undefined bundle: '{spec.name}'",
                            file_name)
                continue
            if instruction_set.get_bundle(spec.name) is None:
                self.visit_bundle_declaration(decl, instruction_set)
            bundle.append_bundle_name(spec.name)

    def visit_slot_list(self, specs, bundle, file_name):
        instruction_set = bundle.instruction_set
        for spec in specs:
            decl = self.slot_decl_map.get(spec.name)
            if decl is None:
                self._error(spec.token, f"Reference to undefined slot: '{spec.name}'",
                            file_name)
                continue
            if instruction_set.get_slot(spec.name) is None:
                self.visit_slot_declaration(decl, instruction_set)
            instances = [instance for first, last in spec.ranges
                         for instance in range(first, last + 1)]
            bundle.append_slot(spec.name, instances)

    def visit_bundle_declaration(self, decl, instruction_set):
        bundle = Bundle(decl.name, instruction_set, decl)
        instruction_set.add_bundle(bundle)
        for parts, what in ((decl.slot_lists, 'slot lists'),
                            (decl.bundle_lists, 'bundle lists'),
                            (decl.include_lists, 'include file lists'),
                            (decl.semfunc_specs, 'semfunc specs')):
            if len(parts) > 1:
                self._error(decl.token, f'Multiple {what} in bundle', decl.file_name)
                return
        for specs in decl.slot_lists:
            self.visit_slot_list(specs, bundle, decl.file_name)
        for specs in decl.bundle_lists:
            self.visit_bundle_list(specs, bundle, decl.file_name)
        for include_list in decl.include_lists:
            self.include_files.update(include_list.files)
        for semfunc_spec in decl.semfunc_specs:
            bundle.semfunc_code_string = semfunc_spec[0]

    # Slots

    def visit_slot_declaration(self, decl, instruction_set):
        logger.debug('materializing slot %s', decl.name)
        file_name = decl.file_name
        slot = Slot(decl.name, instruction_set, bool(decl.template_formals), decl)
        self._slots_in_progress.add(decl.name)
        for formal in decl.template_formals:
            try:
                slot.add_template_formal(formal.text)
            except GeneratorError as e:
                self._error(formal, str(e), file_name)
        for base_spec in decl.bases:
            self._visit_base(base_spec, slot, instruction_set)
        if decl.size is not None:
            slot.size = decl.size
        instruction_set.add_slot(slot)
        self._slots_in_progress.discard(decl.name)

        opcode_specs = []
        opcode_token = decl.token
        for part in decl.parts:
            if isinstance(part, ast.OpcodeList):
                opcode_specs.extend(part.specs)
                opcode_token = part.token
                continue
            self.visit_const_and_default_decl(part, slot)
        self.visit_opcode_list(opcode_specs, slot, opcode_token)

    def _visit_base(self, base_spec, slot, instruction_set):
        file_name = slot.decl.file_name
        name = base_spec.name
        base_decl = self.slot_decl_map.get(name)
        if base_decl is None:
            self._error(base_spec.token, f'Undefined base slot: {name}', file_name)
            return
        if name in self._slots_in_progress:
            self._error(base_spec.token,
                        f"'{name}' is already in the predecessor set of '{slot.name}'", file_name)
            return
        base = instruction_set.get_slot(name)
        if base is None:
            self.visit_slot_declaration(base_decl, instruction_set)
            base = instruction_set.get_slot(name)
        if base_spec.arguments is not None and not base.is_templated:
            self._error(base_spec.token, f"'{name}' is not a templated slot", file_name)
            return
        if base_spec.arguments is None and base.is_templated:
            self._error(base_spec.token, f"Missing template arguments for slot '{name}'",
                        file_name)
            return
        arguments = None
        if base_spec.arguments is not None:
            if len(base_spec.arguments) != len(base.template_parameters):
                self._error(base_spec.token,
                            f'Wrong number of arguments: {len(base.template_parameters)} were '
                            f'expected, {len(base_spec.arguments)} were provided', file_name)
                return
            arguments = []
            for argument in base_spec.arguments:
                expr = self.visit_expression(argument, slot, None, file_name)
                if expr is None:
                    self._error(argument.token, 'Error in template expression', file_name)
                    return
                arguments.append(expr)
        try:
            slot.add_base(base, arguments)
        except GeneratorError as e:
            self._error(base_spec.token, str(e), file_name)

    def visit_const_and_default_decl(self, part, slot):
        file_name = slot.decl.file_name
        if isinstance(part, ast.ConstantDecl):
            expr = self.visit_expression(part.expr, slot, None, file_name)
            if expr is None:
                self._error(part.expr.token, 'Error in expression', file_name)
                return
            try:
                slot.add_constant(part.name, expr)
            except GeneratorError as e:
                self._error(part.token, str(e), file_name)
        elif isinstance(part, ast.DefaultSize):
            slot.default_instruction_size = part.value
        elif isinstance(part, ast.DefaultLatency):
            expr = self.visit_expression(part.expr, slot, None, file_name)
            if expr is None:
                self._error(part.expr.token, 'Error in expression', file_name)
                return
            slot.default_latency = expr
        elif isinstance(part, ast.DefaultAttributes):
            self.visit_instruction_attribute_list(part.attributes, slot, None)
        elif isinstance(part, ast.IncludeFileList):
            self.include_files.update(part.files)
        elif isinstance(part, ast.DefaultOpcode):
            self._visit_default_opcode(part, slot)
        elif isinstance(part, ast.ResourcesDecl):
            if part.name in slot.resource_spec_map:
                self._error(part.token, f"Resources '{part.name}': duplicate definition",
                            file_name)
                return
            # Visited again at each point of use.
            slot.resource_spec_map[part.name] = part.details

    def _visit_default_opcode(self, part, slot):
        file_name = slot.decl.file_name
        if slot.default_instruction is not None:
            self._error(part.token, "Multiple definitions of 'default' opcode", file_name)
            return
        default_instruction = Instruction(
            slot.instruction_set.opcode_factory.create_default_opcode(), slot)
        has_disasm = False
        has_semfunc = False
        for attr in part.attrs:
            if isinstance(attr, ast.DisasmAttr):
                if has_disasm:
                    self._error(attr.token, 'Duplicate disasm declaration', file_name)
                    continue
                has_disasm = True
                for fmt in attr.formats:
                    try:
                        parse_disasm_format(fmt, default_instruction, self.disasm_widths)
                    except GeneratorError as e:
                        self._error(attr.token, str(e), file_name)
            elif isinstance(attr, ast.SemfuncAttr):
                if has_semfunc:
                    self._error(attr.token, 'Duplicate semfunc declaration', file_name)
                    continue
                has_semfunc = True
                if len(attr.specs) > 1:
                    self._error(part.token, 'Only one semfunc specification per default opcode',
                                file_name)
                    continue
                default_instruction.semfunc_code_string = attr.specs[0]
            else:
                self._error(attr.token, 'Unknown attribute type', file_name)
        if not has_semfunc:
            self._error(part.token, 'Default opcode lacks mandatory semfunc specification',
                        file_name)
            return
        slot.default_instruction = default_instruction

    # Expressions

    def visit_expression(self, expr, slot, inst, file_name=None):
        """
        Build a template expression from the parsed ``expr``. Identifiers resolve to a
        template formal or constant of ``slot``, to the latency of a destination operand of
        ``inst``, or to a global constant, in that order. Returns ``None`` after reporting
        an error.
        """
        if isinstance(expr, ast.NegateExpr):
            inner = self.visit_expression(expr.expr, slot, inst, file_name)
            if inner is None:
                return None
            return tex.negate(inner)
        if isinstance(expr, ast.BinaryExpr):
            lhs = self.visit_expression(expr.lhs, slot, inst, file_name)
            if lhs is None:
                return None
            rhs = self.visit_expression(expr.rhs, slot, inst, file_name)
            if rhs is None:
                return None
            return _binary_ops[expr.op](lhs, rhs)
        if isinstance(expr, ast.CallExpr):
            args = []
            for arg in expr.args:
                value = self.visit_expression(arg, slot, inst, file_name)
                if value is None:
                    return None
                args.append(value)
            try:
                return tex.make_function(self.function_table, expr.name, args)
            except ExpressionError as e:
                self._error(expr.token, str(e), file_name)
                return None
        if isinstance(expr, ast.NumberExpr):
            return tex.Constant(expr.value)

        name = expr.name
        if slot is not None:
            formal = slot.get_template_formal(name)
            if formal is not None:
                return tex.Param(formal)
            const_expr = slot.get_const_expression(name)
            if const_expr is not None:
                return tex.deep_copy(const_expr)
        dest_op = inst.get_dest_op(name) if inst is not None else None
        if dest_op is not None:
            if dest_op.expression is not None:
                return tex.deep_copy(dest_op.expression)
            self._error(expr.token, 'Decode time evaluation of latency expression not '
                                    'supported for resources', file_name)
            return None
        const_expr = self.get_const_expression(name)
        if const_expr is not None:
            return tex.deep_copy(const_expr)
        if inst is not None:
            self._error(expr.token, f"'{name}' is not a valid destination operand for "
                                    f"opcode '{inst.opcode.name}'", file_name)
            return None
        self._error(expr.token, f"Unable to evaluate expression: '{name}'", file_name)
        return None

    def find_destination_op(self, expr, slot, inst):
        """The single destination operand of ``inst`` that ``expr`` refers to, if any."""
        if isinstance(expr, ast.NegateExpr):
            return self.find_destination_op(expr.expr, slot, inst)
        if isinstance(expr, (ast.BinaryExpr, ast.CallExpr)):
            operands = expr.args if isinstance(expr, ast.CallExpr) else (expr.lhs, expr.rhs)
            dest_op = None
            for operand in operands:
                op = self.find_destination_op(operand, slot, inst)
                if op is None:
                    continue
                if dest_op is not None and op is not dest_op:
                    self._error(expr.token, 'Resource reference can only reference a single '
                                            'destination operand', slot.decl.file_name)
                    return None
                dest_op = op
            return dest_op
        if isinstance(expr, ast.NumberExpr):
            return None
        if slot.get_template_formal(expr.name) is not None:
            return None
        if slot.get_const_expression(expr.name) is not None:
            return None
        return inst.get_dest_op(expr.name)

    # Opcodes

    def visit_opcode_list(self, specs, slot, token):
        file_name = slot.decl.file_name
        deleted_ops = set()
        overridden_ops = []
        instructions = []
        for spec in specs:
            self.process_opcode_spec(spec, slot, instructions, deleted_ops, overridden_ops)
        for base_slot in slot.base_slots:
            base = base_slot.base
            slot.min_instruction_size = min(slot.min_instruction_size,
                                            base.min_instruction_size)
            for inst in list(base.instruction_map.values()):
                if inst.opcode.name in deleted_ops:
                    continue
                try:
                    slot.append_inherited_instruction(inst, base_slot.arguments)
                except GeneratorError as e:
                    self._error(token, str(e), file_name)
        self.perform_opcode_overrides(overridden_ops, slot)
        for inst in instructions:
            try:
                slot.append_instruction(inst)
            except GeneratorError as e:
                self._error(token, str(e), file_name)

    def perform_opcode_overrides(self, overridden_ops, slot):
        for spec in overridden_ops:
            inst = slot.instruction_map.get(spec.name)
            if inst is not None:
                self.visit_opcode_attributes(spec.attrs, inst, slot)

    def process_opcode_spec(self, spec, slot, instructions, deleted_ops, overridden_ops):
        file_name = slot.decl.file_name
        if isinstance(spec, ast.GenerateSpec):
            try:
                self.process_opcode_generator(spec, slot, instructions, deleted_ops,
                                              overridden_ops)
            except GeneratorError as e:
                self._error(spec.token, str(e), file_name)
            return
        name = spec.name
        if isinstance(spec, ast.DeleteSpec):
            if not slot.base_slots:
                self._error(spec.token, f"Invalid deleted opcode '{name}', slot '{slot.name}' "
                                        'does not inherit from a base slot', file_name)
                return
            if not any(base_slot.base.has_instruction(name) for base_slot in slot.base_slots):
                self._error(spec.token,
                            f"Base slot does not define or inherit opcode '{name}'", file_name)
                return
            deleted_ops.add(name)
            return
        if isinstance(spec, ast.OverrideSpec):
            found = sum(1 for base_slot in slot.base_slots
                        if base_slot.base.has_instruction(name))
            if found == 0:
                self._error(spec.token,
                            f"Base slot does not define or inherit opcode '{name}'", file_name)
                return
            if found > 1:
                self._error(spec.token,
                            f'Multiple inheritance of opcodes is not supported: {name}', file_name)
                return
            overridden_ops.append(spec)
            return

        factory = slot.instruction_set.opcode_factory
        try:
            opcode = factory.create_opcode(name)
        except GeneratorError as e:
            self._error(spec.token, str(e), file_name)
            return
        inst = Instruction(opcode, slot)
        if spec.size is not None:
            opcode.instruction_size = spec.size
        else:
            opcode.instruction_size = slot.default_instruction_size
        slot.min_instruction_size = min(slot.min_instruction_size, opcode.instruction_size)
        for attr_name, expr in slot.attribute_map.items():
            inst.add_instruction_attribute(attr_name, tex.deep_copy(expr))

        self.visit_opcode_operands(spec.operands[0], 0, inst, inst, slot)
        for op_spec_number, operands in enumerate(spec.operands[1:], 1):
            child = Instruction(factory.create_child_opcode(opcode), slot)
            inst.append_child(child)
            for attr_name, expr in slot.attribute_map.items():
                child.add_instruction_attribute(attr_name, tex.deep_copy(expr))
            self.visit_opcode_operands(operands, op_spec_number, inst, child, slot)
        instructions.append(inst)
        self.visit_opcode_attributes(spec.attrs, inst, slot)

    def visit_opcode_operands(self, operands, op_spec_number, parent, child, slot):
        """
        Add the operands of one operand block to ``child`` and record where each operand can
        be found in the top level opcode's locator map.
        """
        locator_map = parent.opcode.op_locator_map
        if operands.predicate is not None:
            name = operands.predicate.text
            child.opcode.predicate_op_name = name
            locator_map.setdefault(name, OperandLocator(op_spec_number, 'p', False, 0))
        for instance, source in enumerate(operands.sources):
            is_reloc = False
            if source.attribute is not None:
                if source.attribute.text == 'reloc':
                    is_reloc = True
                else:
                    self._error(source.attribute,
                                f"Invalid operand attribute '%{source.attribute.text}'",
                                slot.decl.file_name)
            child.opcode.append_source_op(source.name, source.is_array, is_reloc)
            locator_map.setdefault(source.name, OperandLocator(
                op_spec_number, 't' if source.is_array else 's', is_reloc, instance))
        for instance, dest in enumerate(operands.dests):
            if dest.latency == '*':
                expression = None
            elif dest.latency is not None:
                expression = self.visit_expression(dest.latency, slot, None,
                                                   slot.decl.file_name)
            elif slot.default_latency is not None:
                expression = tex.deep_copy(slot.default_latency)
            else:
                expression = tex.Constant(1)
            child.opcode.append_dest_op(dest.name, dest.is_array, False, expression)
            locator_map.setdefault(dest.name, OperandLocator(
                op_spec_number, 'e' if dest.is_array else 'd', False, instance))

    def visit_opcode_attributes(self, attrs, inst, slot):
        file_name = slot.decl.file_name
        seen = set()
        for attr in attrs:
            kind = type(attr)
            if kind in seen:
                what = {ast.DisasmAttr: 'disasm', ast.SemfuncAttr: 'semfunc',
                        ast.ResourceAttr: 'resource',
                        ast.AttributesAttr: 'attribute'}.get(kind)
                self._error(attr.token, f'Multiple {what} specifications', file_name)
                continue
            seen.add(kind)
            # An override replaces whatever the base slot defined.
            if isinstance(attr, ast.DisasmAttr):
                inst.clear_disasm_format()
                for fmt in attr.formats:
                    try:
                        parse_disasm_format(fmt, inst, self.disasm_widths)
                    except GeneratorError as e:
                        self._error(attr.token, str(e), file_name)
                        seen.discard(kind)
                        break
            elif isinstance(attr, ast.SemfuncAttr):
                inst.clear_semfunc_code_string()
                self.visit_semfunc_spec(attr, inst)
            elif isinstance(attr, ast.ResourceAttr):
                inst.clear_resource_specs()
                self.visit_resource_details(attr, inst, slot)
            elif isinstance(attr, ast.AttributesAttr):
                inst.clear_attribute_specs()
                self.visit_instruction_attribute_list(attr.attributes, slot, inst)
            else:
                self._error(attr.token, 'Unknown attribute type', file_name)

    def visit_instruction_attribute_list(self, attributes, slot, inst):
        """Attributes apply to ``inst`` and its children, or are slot defaults without one."""
        values = {}
        for attribute in attributes:
            name = attribute.name
            if name in values:
                self._error(attribute.token, f"Duplicate attribute name '{name}' in list",
                            slot.decl.file_name)
                continue
            slot.instruction_set.add_attribute_name(name)
            if attribute.expr is None:
                values[name] = tex.Constant(1)
                continue
            expr = self.visit_expression(attribute.expr, slot, inst, slot.decl.file_name)
            if expr is not None:
                values[name] = expr
        if inst is not None:
            for child in inst:
                for name, expr in values.items():
                    child.add_instruction_attribute(name, expr)
            return
        for name, expr in values.items():
            slot.add_instruction_attribute(name, expr)

    def visit_semfunc_spec(self, attr, inst):
        file_name = inst.slot.decl.file_name
        child = inst
        for spec in attr.specs:
            if child is None:
                self.error_listener.semantic_warning(attr.token, 'Ignoring extra semfunc spec',
                                                     file_name)
                break
            child.semfunc_code_string = spec
            child = child.child
        if child is not None:
            self._error(attr.token, 'Fewer semfunc specifiers than expected for opcode '
                                    f"'{inst.opcode.name}'", file_name)

    # Resources

    def visit_resource_details(self, attr, inst, slot):
        details = attr.details
        if attr.name is not None:
            details = slot.resource_spec_map.get(attr.name)
            if details is None:
                self._error(attr.token, 'Internal error: Undefined resources name: '
                                        f"'{attr.name}'", slot.decl.file_name)
                return
        use_refs, acquire_refs = self.visit_resource_details_lists(details, slot, inst)
        for ref in use_refs:
            inst.append_resource_use(ref)
        for ref in acquire_refs:
            inst.append_resource_acquire(ref)

    def visit_resource_details_lists(self, details, slot, inst):
        """
        Resolve the use, acquire and hold lists. Acquired resources must also be free at
        issue, so they are added to the use list unless already there.
        """
        use_refs = []
        acquire_refs = []
        for item in details.use:
            ref = self.process_resource_reference(slot, inst, item)
            if ref is not None:
                use_refs.append(ref)
        for item in details.acquire:
            ref = self.process_resource_reference(slot, inst, item)
            if ref is None:
                continue
            if all(use.resource.name != ref.resource.name for use in use_refs):
                use_refs.append(ref.copy())
            acquire_refs.append(ref)
        for item in details.hold:
            ref = self.process_resource_reference(slot, inst, item)
            if ref is not None:
                acquire_refs.append(ref)
        return use_refs, acquire_refs

    def process_resource_reference(self, slot, inst, item):
        file_name = slot.decl.file_name
        resource = slot.instruction_set.resource_factory.get_or_insert_resource(item.name)
        resource.is_array = item.is_array
        dest_op = inst.get_dest_op(item.name)

        def window_expression(expr, default):
            nonlocal dest_op
            if expr is None:
                return default(), True
            op = self.find_destination_op(expr, slot, inst)
            if op is not None:
                if dest_op is None:
                    dest_op = op
                elif op is not dest_op:
                    self._error(item.token, 'Resource reference can only reference a single '
                                            'destination operand', file_name)
                    return None, False
            return self.visit_expression(expr, slot, inst, file_name), True

        begin_expr, ok = window_expression(item.begin, lambda: tex.Constant(0))
        if not ok:
            return None

        def default_end():
            if dest_op is not None and dest_op.expression is not None:
                return tex.deep_copy(dest_op.expression)
            return tex.Constant(0)

        end_expr, ok = window_expression(item.end, default_end)
        if not ok:
            return None
        return ResourceReference(resource, item.is_array, dest_op, begin_expr, end_expr)

    # Generators

    def process_opcode_generator(self, spec, slot, instructions, deleted_ops, overridden_ops):
        file_name = slot.decl.file_name
        range_infos = process_range_assignments(spec.assignments, spec.body,
                                                self.error_listener, file_name,
                                                spec.body_token)
        generated = generate_text(range_infos, spec.body)
        try:
            specs = ast.IsaParser(generated, file_name).parse_opcode_spec_list()
        except ParseError as e:
            self.error_listener.syntax_error(e.line, e.column,
                                             f'{e.message} (in generated opcodes)', file_name)
            return
        for generated_spec in specs:
            self.process_opcode_spec(generated_spec, slot, instructions, deleted_ops,
                                     overridden_ops)

    # Checks

    def _check_bundle_references(self, instruction_set, bundle):
        for bundle_name in bundle.bundle_names:
            self._check_bundle_references(instruction_set, instruction_set.get_bundle(bundle_name))
        for slot_use in bundle.slot_uses:
            slot = instruction_set.get_slot(slot_use.name)
            token = bundle.decl.token if bundle.decl is not None else None
            for instance in slot_use.instances:
                if instance >= slot.size:
                    self._error(token, f"Index {instance} out of range for slot "
                                       f"'{slot_use.name}' referenced in bundle '{bundle.name}'")
            if slot.is_referenced:
                continue
            default = slot.default_instruction
            if default is None or not default.semfunc_code_string:
                self._error(slot.decl.token, f"Slot '{slot.name}' lacks a default semantic "
                                             'action', slot.decl.file_name)
            slot.is_referenced = True

    def perform_bundle_reference_checks(self, instruction_set):
        self._check_bundle_references(instruction_set, instruction_set.bundle)
        instruction_set.compute_slot_and_bundle_orders()
