"""
Expansion of ``GENERATE(...) { ... }`` blocks shared by the ``.isa`` and ``.proto_fmt``
front ends.

A block binds one or more variables to lists of values::

    GENERATE(btype = [eq, ne], [w, fcn_w] = [{"", ""}, {".w", _w}]) { ... }

and its body is repeated for every combination of values with each ``$(name)`` replaced
by the bound value. The expanded text is handed back to the caller for reparsing.
"""

import logging
import re
from collections import namedtuple

from .diagnostics import GeneratorError
from .lexer import unquote

__all__ = ['RangeAssignment', 'RangeInfo', 'parse_generate', 'process_range_assignments',
           'generate_text']

logger = logging.getLogger(__name__)


# names are tokens, values is a list of rows with one value per name
RangeAssignment = namedtuple('RangeAssignment', ('token', 'names', 'values', 'is_tuple'))

RangeInfo = namedtuple('RangeInfo', ('names', 'values', 'regexes'))

_reference_re = re.compile(r'\$\(([^)]*)\)')


def process_range_assignments(assignments, template, error_listener, file_name=None,
                              template_token=None):
    """
    Check the binding variables of a generator against its ``template`` text and return
    the list of ``RangeInfo`` to expand. Duplicate and undefined names are reported to
    ``error_listener``; an inconsistent tuple raises ``GeneratorError``.
    """
    variable_names = set()
    range_infos = []
    for assignment in assignments:
        info = RangeInfo([], [], [])
        range_infos.append(info)
        for name_token in assignment.names:
            name = name_token.text
            if name in variable_names:
                error_listener.semantic_error(
                    assignment.token, f"Duplicate binding variable name '{name}'", file_name)
                continue
            variable_names.add(name)
            info.names.append(name)
            info.values.append([])
            info.regexes.append(re.compile(rf'\$\({re.escape(name)}\)'))
            if not info.regexes[-1].search(template):
                error_listener.semantic_warning(
                    assignment.token, f"Unreferenced binding variable '{name}'", file_name)
        for row in assignment.values:
            if assignment.is_tuple and len(row) != len(info.names):
                raise GeneratorError('Number of values differs from number of identifiers')
            for values, value in zip(info.values, row):
                values.append(value)

    has_undefined = False
    for match in _reference_re.finditer(template):
        if match[1] not in variable_names:
            error_listener.semantic_error(
                template_token, f"Undefined binding variable '{match[1]}'", file_name)
            has_undefined = True
    if has_undefined:
        raise GeneratorError('Found undefined binding variable name(s)')
    return range_infos


def generate_text(range_infos, template, index=0):
    """Substitute the cartesian product of all bindings into ``template``."""
    info = range_infos[index]
    generated = []
    count = len(info.values[0]) if info.values else 0
    for i in range(count):
        text = template
        replace_count = 0
        for regex, values in zip(info.regexes, info.values):
            text, n = regex.subn(lambda _, value=values[i]: value, text)
            replace_count += n
        if index + 1 < len(range_infos):
            generated.append(generate_text(range_infos, text, index + 1))
        else:
            generated.append(text)
        # Nothing to substitute, further values would repeat the same text.
        if replace_count == 0:
            break
    logger.debug('generated %d opcode specification blocks', len(generated))
    return ''.join(generated)


def _parse_gen_value(parser):
    token = parser.peek()
    if token.kind in ('ident', 'number'):
        return parser.next().text
    if token.kind == 'string':
        return unquote(parser.next().text)
    parser.error('expected identifier, number or string')


def _parse_range_assignment(parser):
    token = parser.peek()
    if parser.accept('['):
        names = [parser.expect_kind('ident', 'binding variable name')]
        while parser.accept(','):
            names.append(parser.expect_kind('ident', 'binding variable name'))
        parser.expect(']')
        parser.expect('=')
        parser.expect('[')
        rows = []
        while True:
            parser.expect('{')
            rows.append(parser.comma_list(lambda: _parse_gen_value(parser), '}'))
            parser.expect('}')
            if not parser.accept(','):
                break
        parser.expect(']')
        return RangeAssignment(token, names, rows, True)
    names = [parser.expect_kind('ident', 'binding variable name')]
    parser.expect('=')
    parser.expect('[')
    values = parser.comma_list(lambda: _parse_gen_value(parser), ']')
    parser.expect(']')
    return RangeAssignment(token, names, [[value] for value in values], False)


def parse_generate(parser):
    """
    Parse ``GENERATE(assignments) { body };`` with ``parser`` positioned at ``GENERATE``.

    Returns ``(token, assignments, body, body_token)`` where ``body`` is the raw source
    text between the braces.
    """
    token = parser.expect('GENERATE')
    parser.expect('(')
    assignments = [_parse_range_assignment(parser)]
    while parser.accept(','):
        assignments.append(_parse_range_assignment(parser))
    parser.expect(')')
    open_token = parser.peek()
    inner = parser.skip_balanced('{', '}')
    close_token = parser.tokens[parser.index - 1]
    body = parser.buffer[open_token.offset + 1:close_token.offset]
    body_token = inner[0] if inner else close_token
    parser.expect(';')
    return token, assignments, body, body_token
