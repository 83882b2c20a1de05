"""
Recursive descent parser for ``.proto_fmt`` decoder descriptions.

As for ``.isa`` files the parser only builds tuples; message types, fields and values are
resolved by ``decodergen.proto_fmt_visitor``.
"""

from collections import namedtuple

from .generator import RangeAssignment, parse_generate
from .lexer import Parser, unquote

__all__ = ['ProtoFmtParser', 'parse_proto_fmt',
           'IncludeFile', 'UsingDecl', 'InstructionGroupDecl', 'DecoderDecl',
           'SetterGroupDef', 'InstructionDef', 'GeneratorDef', 'RangeAssignment',
           'QualifiedIdent', 'FieldConstraint', 'SetterRef', 'SetterDef',
           'NumberValue', 'BoolValue', 'StringValue', 'IdentValue',
           'NamespaceDecl', 'OpcodeEnumDecl', 'IncludeFilesDecl', 'GroupNameDecl']


# Top level
IncludeFile = namedtuple('IncludeFile', ('token', 'file_name'))
UsingDecl = namedtuple('UsingDecl', ('token', 'name', 'alias'))
InstructionGroupDecl = namedtuple('InstructionGroupDecl', ('token', 'name', 'file_name',
                                                           'message_name', 'setter_groups',
                                                           'instruction_defs'))
DecoderDecl = namedtuple('DecoderDecl', ('token', 'name', 'file_name', 'attributes'))

# Instruction groups
SetterGroupDef = namedtuple('SetterGroupDef', ('token', 'name', 'setter_defs'))
InstructionDef = namedtuple('InstructionDef', ('token', 'name', 'constraints', 'setters'))
GeneratorDef = namedtuple('GeneratorDef', ('token', 'assignments', 'body', 'body_token'))
QualifiedIdent = namedtuple('QualifiedIdent', ('token', 'text'))
# op is one of == != > >= < <= or HAS, value is None for HAS
FieldConstraint = namedtuple('FieldConstraint', ('token', 'field', 'op', 'value'))
SetterRef = namedtuple('SetterRef', ('token', 'name'))
SetterDef = namedtuple('SetterDef', ('token', 'name', 'field', 'if_not'))

# Values
NumberValue = namedtuple('NumberValue', ('token', 'text', 'negative'))
BoolValue = namedtuple('BoolValue', ('token', 'value'))
StringValue = namedtuple('StringValue', ('token', 'text'))
IdentValue = namedtuple('IdentValue', ('token', 'text'))

# Decoder attributes
NamespaceDecl = namedtuple('NamespaceDecl', ('token', 'names'))
OpcodeEnumDecl = namedtuple('OpcodeEnumDecl', ('token', 'name'))
IncludeFilesDecl = namedtuple('IncludeFilesDecl', ('token', 'files'))
# children is None for a plain group reference
GroupNameDecl = namedtuple('GroupNameDecl', ('token', 'name', 'children'))


_compare_ops = ('==', '!=', '>=', '<=', '>', '<')


class ProtoFmtParser(Parser):
    def __init__(self, buffer, file_name=''):
        super().__init__(buffer)
        self.file_name = file_name

    def expect_ident(self, what='identifier'):
        return self.expect_kind('ident', what)

    def parse_top_level(self):
        declarations = []
        while not self.at_eof():
            if self.accept(';'):
                continue
            declarations.append(self.parse_declaration())
        return declarations

    def parse_declaration(self):
        token = self.peek()
        if self.accept('include') or self.accept('#include'):
            file_name = unquote(self.expect_kind('string', 'file name').text)
            self.accept(';')
            return IncludeFile(token, file_name)
        if self.accept('using'):
            name = self.parse_qualified_ident()
            alias = None
            if self.accept('as'):
                alias = self.expect_ident('alias name').text
            self.expect(';')
            return UsingDecl(token, name, alias)
        if self.at('instruction'):
            return self.parse_instruction_group()
        if self.at('decoder'):
            return self.parse_decoder()
        self.error('expected include, using, instruction group or decoder')

    def parse_qualified_ident(self):
        token = self.expect_ident()
        text = token.text
        while self.at('.') and self.at_kind('ident', 1):
            self.next()
            text += '.' + self.next().text
        return QualifiedIdent(token, text)

    # Instruction groups

    def parse_instruction_group(self):
        token = self.expect('instruction')
        self.expect('group')
        name = self.expect_ident('instruction group name').text
        self.expect(':')
        message_name = self.parse_qualified_ident()
        self.expect('{')
        setter_groups = []
        instruction_defs = []
        while not self.accept('}'):
            if self.at_eof():
                self.error("missing '}'")
            if self.at('setter'):
                setter_groups.append(self.parse_setter_group())
            else:
                instruction_defs.append(self.parse_instruction_def())
        self.accept(';')
        return InstructionGroupDecl(token, name, self.file_name, message_name, setter_groups,
                                    instruction_defs)

    def parse_setter_group(self):
        token = self.expect('setter')
        name = self.expect_ident('setter group name').text
        self.expect(':')
        setter_defs = [self.parse_setter_def()]
        while self.accept(','):
            setter_defs.append(self.parse_setter_def())
        self.expect(';')
        return SetterGroupDef(token, name, setter_defs)

    def parse_instruction_def_list(self):
        """Instruction definitions up to the end of input, as produced by ``GENERATE``."""
        defs = []
        while not self.at_eof():
            defs.append(self.parse_instruction_def())
        return defs

    def parse_instruction_def(self):
        if self.at('GENERATE'):
            return GeneratorDef(*parse_generate(self))
        token = self.expect_ident('instruction name')
        self.expect(':')
        constraints = []
        if not self.at(':') and not self.at(';'):
            constraints.append(self.parse_field_constraint())
            while self.accept(','):
                constraints.append(self.parse_field_constraint())
        setters = []
        if self.accept(':'):
            setters.append(self.parse_setter_item())
            while self.accept(','):
                setters.append(self.parse_setter_item())
        self.expect(';')
        return InstructionDef(token, token.text, constraints, setters)

    def parse_field_constraint(self):
        token = self.peek()
        if self.accept('HAS'):
            self.expect('(')
            field = self.parse_qualified_ident()
            self.expect(')')
            return FieldConstraint(token, field, 'HAS', None)
        field = self.parse_qualified_ident()
        for op in _compare_ops:
            if self.accept(op):
                return FieldConstraint(token, field, op, self.parse_value())
        self.error('expected comparison operator')

    def parse_value(self):
        token = self.peek()
        if self.accept('-'):
            number = self.expect_kind('number', 'number')
            return NumberValue(token, number.text, True)
        if token.kind == 'number':
            return NumberValue(self.next(), token.text, False)
        if token.kind == 'string':
            return StringValue(self.next(), unquote(token.text))
        if self.accept('true'):
            return BoolValue(token, True)
        if self.accept('false'):
            return BoolValue(token, False)
        if token.kind == 'ident':
            return IdentValue(token, self.parse_qualified_ident().text)
        self.error('expected value')

    def parse_setter_item(self):
        token = self.peek()
        if self.accept('setter'):
            return SetterRef(token, self.expect_ident('setter group name').text)
        return self.parse_setter_def()

    def parse_setter_def(self):
        token = self.expect_ident('setter name')
        self.expect('=')
        field = self.parse_qualified_ident()
        if_not = None
        if self.accept('if_not'):
            self.expect('(')
            if_not = self.parse_value()
            self.expect(')')
        return SetterDef(token, token.text, field, if_not)

    # Decoders

    def parse_decoder(self):
        token = self.expect('decoder')
        name = self.expect_ident('decoder name').text
        self.expect('{')
        attributes = []
        while not self.accept('}'):
            if self.at_eof():
                self.error("missing '}'")
            if self.accept(';'):
                continue
            attributes.append(self.parse_decoder_attribute())
        self.accept(';')
        return DecoderDecl(token, name, self.file_name, attributes)

    def parse_decoder_attribute(self):
        token = self.peek()
        if self.accept('namespace'):
            names = [self.expect_ident('namespace name').text]
            while self.accept('::'):
                names.append(self.expect_ident('namespace name').text)
            self.expect(';')
            return NamespaceDecl(token, names)
        if self.accept('opcode_enum'):
            self.expect('=')
            name = unquote(self.expect_kind('string', 'string literal').text)
            self.expect(';')
            return OpcodeEnumDecl(token, name)
        if self.accept('includes'):
            self.expect('{')
            files = []
            while not self.accept('}'):
                files.append(unquote(self.expect_kind('string', 'file name').text))
                self.accept(',')
            self.accept(';')
            return IncludeFilesDecl(token, files)
        name_token = self.expect_ident('instruction group name')
        children = None
        if self.accept('='):
            self.expect('{')
            children = [child.text for child in
                        self.comma_list(lambda: self.expect_ident('instruction group name'),
                                        '}')]
            self.expect('}')
        self.expect(';')
        return GroupNameDecl(name_token, name_token.text, children)


def parse_proto_fmt(buffer, file_name=''):
    """Parse the text of a ``.proto_fmt`` file into a list of declarations."""
    return ProtoFmtParser(buffer, file_name).parse_top_level()
