"""
Parser for disassembly format strings.

A format string is literal text interleaved with operand specifiers::

    %name            operand value as text, '?' suffix makes it optional
    %(expr[:fmt])    operand value formatted as a number

where ``expr`` is ``[@ (+|-)] (name | name <<|>> N | (name <<|>> N))``, ``@`` standing
for the instruction address, and ``fmt`` is ``[0]W[W](o|d|x|X)``. The base letter may
also lead (``x04``).
"""

import re

from . import template_expression as tex
from .diagnostics import ExpressionError, GeneratorError
from .opcode import DisasmFormat, FormatInfo

__all__ = ['parse_disasm_format', 'parse_format_expression', 'parse_number_format']


_ident_re = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')


def _get_ident(text, pos):
    match = _ident_re.match(text, pos)
    if not match:
        raise GeneratorError(f"Invalid character in operand name at position {pos} in '{text}'")
    return match[0], match.end()


def _skip_space(text, pos):
    while pos < len(text) and text[pos] in ' \t':
        pos += 1
    return pos


def _unescape(text):
    return text.replace('\\', '')


def _parse_shift(format_info, expr, pos):
    pos = _skip_space(expr, pos)
    if expr.startswith('<<', pos):
        format_info.do_left_shift = True
    elif not expr.startswith('>>', pos):
        raise GeneratorError(f"Missing shift in expression '{expr}'")
    pos = _skip_space(expr, pos + 2)
    match = re.compile(r'[0-9]+').match(expr, pos)
    if not match:
        raise GeneratorError(f"Malformed expression - no shift amount '{expr}'")
    format_info.shift_amount = int(match[0])
    return _skip_space(expr, match.end())


def parse_format_expression(expr, opcode):
    """Parse the ``expr`` part of a ``%(expr:fmt)`` specifier into a ``FormatInfo``."""
    format_info = FormatInfo()
    pos = _skip_space(expr, 0)
    if pos >= len(expr):
        raise GeneratorError('Empty format expression')

    if expr[pos] == '@':
        format_info.use_address = True
        pos = _skip_space(expr, pos + 1)
        if pos >= len(expr):
            return format_info
        if expr[pos] not in '+-':
            raise GeneratorError(f"@ must be followed by a '+' or a '-' in '{expr}'")
        format_info.operation = expr[pos]
        pos = _skip_space(expr, pos + 1)
        if pos >= len(expr):
            raise GeneratorError(f"Malformed expression '{expr}'")

    parenthesized = expr[pos] == '('
    if parenthesized:
        pos = _skip_space(expr, pos + 1)
    ident, pos = _get_ident(expr, pos)
    if ident not in opcode.op_locator_map:
        raise GeneratorError(
            f"Invalid operand '{ident}' used in format for opcode'{opcode.name}'")
    format_info.op_name = ident
    pos = _skip_space(expr, pos)

    if parenthesized:
        pos = _parse_shift(format_info, expr, pos)
        if pos >= len(expr) or expr[pos] != ')':
            raise GeneratorError(f"Malformed expression - expected ')' '{expr}'")
        pos = _skip_space(expr, pos + 1)
        if pos < len(expr):
            raise GeneratorError(
                f"Malformed expression - extra characters after ')' '{expr}'")
    elif pos < len(expr):
        if not expr.startswith(('<<', '>>'), pos):
            raise GeneratorError(f"Malformed expression '{expr}'")
        pos = _parse_shift(format_info, expr, pos)
        if pos < len(expr):
            raise GeneratorError(f"Malformed expression '{expr}'")
    return format_info


def parse_number_format(fmt):
    """Translate a ``[0]W[W](o|d|x|X)`` specifier into a printf conversion, e.g. ``%04x``."""
    base = ''
    pos = 0
    if fmt[:1] in ('o', 'd', 'x', 'X') and len(fmt) > 1:
        base = fmt[0]
        pos = 1
    format_string = '%'
    leading_zero = fmt[pos:pos + 1] == '0'
    if leading_zero:
        format_string += '0'
        pos += 1
        if not fmt[pos:pos + 1].isdigit():
            raise GeneratorError(
                f"Format width required when a leading 0 is specified - '{fmt[:pos + 1]}'")
    match = re.compile(r'[0-9]*').match(fmt, pos)
    width = match[0]
    if len(width) > 2:
        raise GeneratorError(f"Format width > than 3 digits not allowed '{fmt[:pos + 3]}'")
    format_string += width
    pos += len(width)
    if not base:
        base = fmt[pos:pos + 1]
        if base not in ('o', 'd', 'x', 'X'):
            raise GeneratorError(f"Illegal format specifier '{base}' in '{fmt[:pos + 1]}'")
        pos += 1
    if pos < len(fmt):
        raise GeneratorError(f"Too many characters in format specifier '{fmt}'")
    return format_string + base


def _find_expression_end(fmt, pos):
    depth = 0
    while pos < len(fmt):
        c = fmt[pos]
        if c == ':':
            break
        if c == '(':
            depth += 1
        elif c == ')':
            if depth == 0:
                break
            depth -= 1
        pos += 1
    return pos


def _parse_formatted(fmt, pos, opcode):
    end_pos = _find_expression_end(fmt, pos)
    if end_pos >= len(fmt):
        return None, None
    format_info = parse_format_expression(fmt[pos:end_pos], opcode)
    format_info.number_format = '%d'
    pos = end_pos
    if fmt[pos] == ':':
        end_pos = fmt.find(')', pos + 1)
        if end_pos < 0:
            return None, None
        format_info.number_format = parse_number_format(fmt[pos + 1:end_pos])
        pos = end_pos
    pos += 1
    if fmt.startswith('?', pos):
        format_info.is_optional = True
        pos += 1
    format_info.is_formatted = True
    return format_info, pos


def parse_disasm_format(fmt, inst, disasm_widths=()):
    """
    Parse ``fmt`` and append the resulting ``DisasmFormat`` to ``inst``. The width of the
    n-th format of an instruction comes from the n-th ``disasm widths`` expression.
    """
    opcode = inst.opcode
    disasm_fmt = DisasmFormat()
    pos = 0
    prev = 0
    while True:
        pos = fmt.find('%', pos)
        if pos < 0:
            break
        disasm_fmt.format_fragment_vec.append(_unescape(fmt[prev:pos]))
        pos += 1
        if pos >= len(fmt):
            raise GeneratorError(f"Unexpected end of format string in '{fmt}'")
        if fmt[pos] == '(':
            format_info, pos = _parse_formatted(fmt, pos + 1, opcode)
            if format_info is None:
                raise GeneratorError(f"Unexpected end of format string in '{fmt}'")
        else:
            op_name, pos = _get_ident(fmt, pos)
            if op_name not in opcode.op_locator_map:
                raise GeneratorError(f"Invalid operand '{op_name}' used in format '{fmt}'")
            format_info = FormatInfo()
            format_info.op_name = op_name
            format_info.is_formatted = False
            if fmt.startswith('?', pos):
                format_info.is_optional = True
                disasm_fmt.num_optional += 1
                pos += 1
        disasm_fmt.format_info_vec.append(format_info)
        prev = pos
    if prev < len(fmt) or not disasm_fmt.format_info_vec:
        disasm_fmt.format_fragment_vec.append(_unescape(fmt[prev:]))

    count = len(inst.disasm_format_vec)
    if count < len(disasm_widths):
        try:
            disasm_fmt.width = tex.get_int_value(disasm_widths[count])
        except ExpressionError:
            disasm_fmt.width = 0
    inst.append_disasm_format(disasm_fmt)
    return disasm_fmt
