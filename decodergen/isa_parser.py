"""
Recursive descent parser for ``.isa`` instruction set descriptions.

The parser only builds a tree of plain tuples; all checking of names, inheritance and
expressions is done by ``decodergen.isa_visitor``. Every node carries the token it starts
at, which diagnostics report.
"""

from collections import namedtuple

from .generator import RangeAssignment, parse_generate
from .lexer import ParseError, Parser, unquote

__all__ = ['IsaParser', 'parse_isa', 'parse_int',
           'DisasmWidthsDecl', 'ConstantDecl', 'IncludeDirective', 'IncludeFileList',
           'IsaDecl', 'BundleDecl', 'BundleSpec', 'SlotSpec', 'SlotDecl', 'BaseSpec',
           'DefaultSize', 'DefaultLatency', 'DefaultAttributes', 'DefaultOpcode',
           'ResourcesDecl', 'OpcodeList', 'OpcodeSpec', 'DeleteSpec', 'OverrideSpec',
           'GenerateSpec', 'RangeAssignment', 'Operands', 'SourceSpec', 'DestSpec',
           'DisasmAttr', 'SemfuncAttr', 'ResourceAttr', 'AttributesAttr', 'Attribute',
           'ResourceDetails', 'ResourceItem',
           'NumberExpr', 'IdentExpr', 'NegateExpr', 'BinaryExpr', 'CallExpr']


# Top level
DisasmWidthsDecl = namedtuple('DisasmWidthsDecl', ('token', 'exprs'))
ConstantDecl = namedtuple('ConstantDecl', ('token', 'name', 'expr'))
IncludeDirective = namedtuple('IncludeDirective', ('token', 'file_name'))
IncludeFileList = namedtuple('IncludeFileList', ('token', 'files'))
IsaDecl = namedtuple('IsaDecl', ('token', 'name', 'file_name', 'namespaces', 'bundle_lists',
                                 'slot_lists'))
BundleDecl = namedtuple('BundleDecl', ('token', 'name', 'file_name', 'bundle_lists',
                                       'slot_lists', 'include_lists', 'semfunc_specs'))
BundleSpec = namedtuple('BundleSpec', ('token', 'name'))
# ranges is a list of (first, last) tuples; a single index has first == last
SlotSpec = namedtuple('SlotSpec', ('token', 'name', 'ranges'))
SlotDecl = namedtuple('SlotDecl', ('token', 'name', 'file_name', 'template_formals', 'size',
                                   'bases', 'parts'))
BaseSpec = namedtuple('BaseSpec', ('token', 'name', 'arguments'))

# Slot parts; ConstantDecl and IncludeFileList are shared with the top level
DefaultSize = namedtuple('DefaultSize', ('token', 'value'))
DefaultLatency = namedtuple('DefaultLatency', ('token', 'expr'))
DefaultAttributes = namedtuple('DefaultAttributes', ('token', 'attributes'))
DefaultOpcode = namedtuple('DefaultOpcode', ('token', 'attrs'))
ResourcesDecl = namedtuple('ResourcesDecl', ('token', 'name', 'details'))
OpcodeList = namedtuple('OpcodeList', ('token', 'specs'))

# Opcodes
OpcodeSpec = namedtuple('OpcodeSpec', ('token', 'name', 'size', 'operands', 'attrs'))
DeleteSpec = namedtuple('DeleteSpec', ('token', 'name'))
OverrideSpec = namedtuple('OverrideSpec', ('token', 'name', 'attrs'))
GenerateSpec = namedtuple('GenerateSpec', ('token', 'assignments', 'body', 'body_token'))
Operands = namedtuple('Operands', ('token', 'predicate', 'sources', 'dests'))
SourceSpec = namedtuple('SourceSpec', ('token', 'name', 'is_array', 'attribute'))
# latency is an expression, '*' or None
DestSpec = namedtuple('DestSpec', ('token', 'name', 'is_array', 'latency'))

# Opcode attributes
DisasmAttr = namedtuple('DisasmAttr', ('token', 'formats'))
SemfuncAttr = namedtuple('SemfuncAttr', ('token', 'specs'))
# exactly one of name and details is set
ResourceAttr = namedtuple('ResourceAttr', ('token', 'name', 'details'))
AttributesAttr = namedtuple('AttributesAttr', ('token', 'attributes'))
Attribute = namedtuple('Attribute', ('token', 'name', 'expr'))
ResourceDetails = namedtuple('ResourceDetails', ('token', 'use', 'acquire', 'hold'))
ResourceItem = namedtuple('ResourceItem', ('token', 'name', 'is_array', 'begin', 'end'))

# Expressions
NumberExpr = namedtuple('NumberExpr', ('token', 'value'))
IdentExpr = namedtuple('IdentExpr', ('token', 'name'))
NegateExpr = namedtuple('NegateExpr', ('token', 'expr'))
BinaryExpr = namedtuple('BinaryExpr', ('token', 'op', 'lhs', 'rhs'))
CallExpr = namedtuple('CallExpr', ('token', 'name', 'args'))


def parse_int(text):
    """Value of a decimal, ``0x`` or ``0b`` literal, ignoring integer suffixes."""
    digits = text.rstrip('uUlL')
    if digits[:2] in ('0x', '0X'):
        return int(digits[2:], 16)
    if digits[:2] in ('0b', '0B'):
        return int(digits[2:], 2)
    return int(digits, 10)


class IsaParser(Parser):
    def __init__(self, buffer, file_name=''):
        super().__init__(buffer)
        self.file_name = file_name

    # Helpers

    def expect_ident(self, what='identifier'):
        return self.expect_kind('ident', what)

    def expect_string(self):
        return self.expect_kind('string', 'string literal')

    def expect_number(self):
        token = self.expect_kind('number', 'number')
        try:
            return token, parse_int(token.text)
        except ValueError:
            raise ParseError(f"invalid number '{token.text}'", token.line, token.column)

    def _string_list(self):
        strings = [unquote(self.expect_string().text)]
        while self.at(',') and self.at_kind('string', 1):
            self.next()
            strings.append(unquote(self.next().text))
        return strings

    # Expressions

    def parse_expression(self):
        lhs = self._parse_term()
        while self.at('+') or self.at('-'):
            op = self.next()
            lhs = BinaryExpr(op, op.text, lhs, self._parse_term())
        return lhs

    def _parse_term(self):
        lhs = self._parse_unary()
        while self.at('*') or self.at('/'):
            op = self.next()
            lhs = BinaryExpr(op, op.text, lhs, self._parse_unary())
        return lhs

    def _parse_unary(self):
        if self.at('-'):
            token = self.next()
            return NegateExpr(token, self._parse_unary())
        return self._parse_primary()

    def _parse_primary(self):
        token = self.peek()
        if self.accept('('):
            expr = self.parse_expression()
            self.expect(')')
            return expr
        if token.kind == 'number':
            _, value = self.expect_number()
            return NumberExpr(token, value)
        if token.kind == 'ident':
            self.next()
            if self.accept('('):
                args = self.comma_list(self.parse_expression, ')')
                self.expect(')')
                return CallExpr(token, token.text, args)
            return IdentExpr(token, token.text)
        self.error('expected expression')

    # Top level

    def parse_top_level(self):
        declarations = []
        while not self.at_eof():
            declarations.append(self.parse_declaration())
        return declarations

    def parse_declaration(self):
        token = self.peek()
        if self.at('disasm'):
            self.next()
            self.expect('widths')
            self.expect('=')
            self.expect('{')
            exprs = self.comma_list(self.parse_expression, '}')
            self.expect('}')
            self.expect(';')
            return DisasmWidthsDecl(token, exprs)
        if self.at('int'):
            return self.parse_constant()
        if self.at('#include'):
            self.next()
            return IncludeDirective(token, unquote(self.expect_string().text))
        if self.at('includes'):
            return self.parse_include_file_list()
        if self.at('isa'):
            return self.parse_isa()
        if self.at('bundle'):
            return self.parse_bundle()
        if self.at('template') or self.at('slot'):
            return self.parse_slot()
        self.error('expected declaration')

    def parse_constant(self):
        token = self.expect('int')
        name = self.expect_ident().text
        self.expect('=')
        expr = self.parse_expression()
        self.expect(';')
        return ConstantDecl(token, name, expr)

    def parse_include_file_list(self):
        token = self.expect('includes')
        self.expect('{')
        files = []
        while not self.accept('}'):
            self.expect('#include')
            files.append(self.expect_string().text)
        self.accept(';')
        return IncludeFileList(token, files)

    def _parse_bundle_list(self):
        self.expect('bundles')
        self.expect('{')
        specs = []
        while not self.accept('}'):
            name = self.expect_ident('bundle name')
            self.expect(';')
            specs.append(BundleSpec(name, name.text))
        self.accept(';')
        return specs

    def _parse_slot_list(self):
        self.expect('slots')
        self.expect('{')
        specs = []
        while not self.accept('}'):
            name = self.expect_ident('slot name')
            ranges = []
            if self.accept('['):
                ranges = self.comma_list(self._parse_range, ']')
                self.expect(']')
            self.expect(';')
            specs.append(SlotSpec(name, name.text, ranges))
        self.accept(';')
        return specs

    def _parse_range(self):
        _, first = self.expect_number()
        last = first
        if self.accept('..'):
            _, last = self.expect_number()
        return first, last

    def parse_isa(self):
        token = self.expect('isa')
        name = self.expect_ident('isa name').text
        namespaces = []
        bundle_lists = []
        slot_lists = []
        self.expect('{')
        while not self.accept('}'):
            if self.accept('namespace'):
                namespaces.append(self.expect_ident().text)
                while self.accept('::'):
                    namespaces.append(self.expect_ident().text)
                self.expect(';')
            elif self.at('bundles'):
                bundle_lists.append(self._parse_bundle_list())
            elif self.at('slots'):
                slot_lists.append(self._parse_slot_list())
            else:
                self.error("expected 'namespace', 'bundles' or 'slots'")
        self.accept(';')
        return IsaDecl(token, name, self.file_name, namespaces, bundle_lists, slot_lists)

    def parse_bundle(self):
        token = self.expect('bundle')
        name = self.expect_ident('bundle name').text
        decl = BundleDecl(token, name, self.file_name, [], [], [], [])
        self.expect('{')
        while not self.accept('}'):
            if self.at('bundles'):
                decl.bundle_lists.append(self._parse_bundle_list())
            elif self.at('slots'):
                decl.slot_lists.append(self._parse_slot_list())
            elif self.at('includes'):
                decl.include_lists.append(self.parse_include_file_list())
            elif self.at('semfunc'):
                self.next()
                self.expect(':')
                decl.semfunc_specs.append(self._string_list())
                self.expect(';')
            else:
                self.error("expected 'bundles', 'slots', 'includes' or 'semfunc'")
        self.accept(';')
        return decl

    # Slots

    def parse_slot(self):
        template_formals = []
        token = self.peek()
        if self.accept('template'):
            self.expect('<')
            while True:
                self.expect('int')
                template_formals.append(self.expect_ident('template parameter name'))
                if not self.accept(','):
                    break
            self.expect('>')
        self.expect('slot')
        name = self.expect_ident('slot name').text
        size = None
        if self.accept('['):
            _, size = self.expect_number()
            self.expect(']')
        bases = []
        if self.accept(':'):
            bases.append(self._parse_base())
            while self.accept(','):
                bases.append(self._parse_base())
        parts = []
        self.expect('{')
        while not self.accept('}'):
            parts.append(self.parse_slot_part())
        self.accept(';')
        return SlotDecl(token, name, self.file_name, template_formals, size, bases, parts)

    def _parse_base(self):
        token = self.expect_ident('base slot name')
        arguments = None
        if self.accept('<'):
            arguments = self.comma_list(self.parse_expression, '>')
            self.expect('>')
        return BaseSpec(token, token.text, arguments)

    def parse_slot_part(self):
        token = self.peek()
        if self.at('int'):
            return self.parse_constant()
        if self.at('includes'):
            return self.parse_include_file_list()
        if self.accept('default'):
            if self.accept('size'):
                self.expect('=')
                _, value = self.expect_number()
                self.expect(';')
                return DefaultSize(token, value)
            if self.accept('latency'):
                self.expect('=')
                expr = self.parse_expression()
                self.expect(';')
                return DefaultLatency(token, expr)
            if self.accept('attributes'):
                self.expect('=')
                attributes = self._parse_attribute_block()
                self.expect(';')
                return DefaultAttributes(token, attributes)
            if self.accept('opcode'):
                self.expect('=')
                attrs = self.parse_opcode_attributes()
                self.expect(';')
                return DefaultOpcode(token, attrs)
            self.error("expected 'size', 'latency', 'attributes' or 'opcode'")
        if self.accept('attributes'):
            attributes = self._parse_attribute_block()
            self.accept(';')
            return DefaultAttributes(token, attributes)
        if self.accept('resources'):
            name = self.expect_ident('resource specification name').text
            self.expect('=')
            details = self.parse_resource_details()
            self.expect(';')
            return ResourcesDecl(token, name, details)
        if self.accept('opcodes'):
            self.expect('{')
            specs = self.parse_opcode_spec_list('}')
            self.expect('}')
            self.accept(';')
            return OpcodeList(token, specs)
        self.error('expected slot declaration')

    def _parse_attribute_block(self):
        self.expect('{')
        attributes = self.comma_list(self._parse_attribute, '}')
        self.expect('}')
        return attributes

    def _parse_attribute(self):
        token = self.expect_ident('attribute name')
        expr = None
        if self.accept('='):
            expr = self.parse_expression()
        return Attribute(token, token.text, expr)

    # Opcodes

    def parse_opcode_spec_list(self, close=None):
        """Parse opcode specifications up to ``close`` (or the end of input)."""
        specs = []
        while not self.at_eof() and not (close and self.at(close)):
            specs.append(self.parse_opcode_spec())
        return specs

    def parse_opcode_spec(self):
        token = self.peek()
        if self.accept('delete'):
            name = self.expect_ident('opcode name').text
            self.expect(';')
            return DeleteSpec(token, name)
        if self.accept('override'):
            name = self.expect_ident('opcode name').text
            attrs = []
            if self.accept(','):
                attrs = self.parse_opcode_attributes()
            self.expect(';')
            return OverrideSpec(token, name, attrs)
        if self.at('GENERATE'):
            return self._parse_generate()
        name = self.expect_ident('opcode name').text
        size = None
        if self.accept('['):
            _, size = self.expect_number()
            self.expect(']')
        operands = self._parse_operand_spec()
        attrs = []
        if self.accept(','):
            attrs = self.parse_opcode_attributes()
        self.expect(';')
        return OpcodeSpec(token, name, size, operands, attrs)

    def _parse_generate(self):
        return GenerateSpec(*parse_generate(self))

    def _parse_operand_spec(self):
        self.expect('{')
        if self.accept('}'):
            return [Operands(self.peek(), None, [], [])]
        if not self.at('('):
            operands = [self._parse_operands()]
        else:
            operands = []
            while True:
                self.expect('(')
                operands.append(self._parse_operands(')'))
                self.expect(')')
                if not self.accept(','):
                    break
        self.expect('}')
        return operands

    def _parse_operands(self, close='}'):
        token = self.peek()
        predicate = None
        if self.at_kind('ident'):
            predicate = self.next()
        if self.at(close):
            return Operands(token, predicate, [], [])
        sources = []
        dests = []
        if self.accept('::'):
            if not self.at(close):
                dests = self.comma_list(self._parse_dest, close)
            return Operands(token, predicate, sources, dests)
        self.expect(':')
        if not self.at(':') and not self.at(close):
            sources = [self._parse_source()]
            while self.accept(','):
                sources.append(self._parse_source())
        if self.accept(':') and not self.at(close):
            dests = [self._parse_dest()]
            while self.accept(','):
                dests.append(self._parse_dest())
        return Operands(token, predicate, sources, dests)

    def _parse_source(self):
        token = self.peek()
        if self.accept('['):
            name = self.expect_ident('operand name').text
            self.expect(']')
            return SourceSpec(token, name, True, None)
        name = self.expect_ident('operand name').text
        attribute = None
        if self.accept('%'):
            attribute = self.expect_ident('operand attribute')
        return SourceSpec(token, name, False, attribute)

    def _parse_dest(self):
        token = self.peek()
        is_array = bool(self.accept('['))
        name = self.expect_ident('operand name').text
        if is_array:
            self.expect(']')
        latency = None
        if self.accept('('):
            if self.accept('*'):
                latency = '*'
            else:
                latency = self.parse_expression()
            self.expect(')')
        return DestSpec(token, name, is_array, latency)

    def parse_opcode_attributes(self):
        attrs = [self._parse_opcode_attribute()]
        while self.accept(','):
            attrs.append(self._parse_opcode_attribute())
        return attrs

    def _parse_opcode_attribute(self):
        token = self.peek()
        if self.accept('disasm'):
            self.expect(':')
            return DisasmAttr(token, self._string_list())
        if self.accept('semfunc'):
            self.expect(':')
            return SemfuncAttr(token, self._string_list())
        if self.accept('resources'):
            self.expect(':')
            if self.at_kind('ident'):
                return ResourceAttr(token, self.next().text, None)
            return ResourceAttr(token, None, self.parse_resource_details())
        if self.accept('attributes'):
            self.expect(':')
            return AttributesAttr(token, self._parse_attribute_block())
        self.error("expected 'disasm', 'semfunc', 'resources' or 'attributes'")

    # Resources

    def parse_resource_details(self):
        token = self.expect('{')
        lists = [[], [], []]
        index = 0
        while True:
            if not self.at(':') and not self.at('}'):
                lists[index] = self.comma_list(self._parse_resource_item, '}')
            if self.accept('}'):
                break
            if index == 2:
                self.error("expected '}'")
            self.expect(':')
            index += 1
        return ResourceDetails(token, *lists)

    def _parse_resource_item(self):
        token = self.peek()
        is_array = bool(self.accept('['))
        name = self.expect_ident('resource name').text
        if is_array:
            self.expect(']')
        begin = None
        end = None
        if self.accept('['):
            if not self.at('..'):
                begin = self.parse_expression()
            self.expect('..')
            if not self.at(']'):
                end = self.parse_expression()
            self.expect(']')
        return ResourceItem(token, name, is_array, begin, end)


def parse_isa(buffer, file_name=''):
    """Parse a complete ``.isa`` buffer into a list of declarations."""
    return IsaParser(buffer, file_name).parse_top_level()
