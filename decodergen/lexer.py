import re
from collections import namedtuple

__all__ = ['ParseError', 'Token', 'Lexer', 'Parser', 'unquote']


class ParseError(Exception):
    def __init__(self, message, line=0, column=0):
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column


Token = namedtuple('Token', ('kind', 'text', 'line', 'column', 'offset'))


def unquote(literal):
    """Strip the surrounding quotes of a string literal, keeping escapes as written."""
    if len(literal) >= 2 and literal[0] == '"' and literal[-1] == '"':
        return literal[1:-1]
    return literal


class Lexer:
    """
    Regex table driven lexer shared by the ``.isa``, ``.proto_fmt`` and ``.proto`` readers.

    Comments (``// comment``, ``/* comment */``) are ignored.

    The following token kinds are produced:
        * ``ident`` (``foo``, ``_bar1``);
        * ``number`` (``12``, ``0x1f``, ``0b101``, ``12ull``);
        * ``string`` (``"text"``, quotes kept);
        * ``directive`` (``#include``);
        * ``punct`` (any of the configured punctuation strings);
        * ``eof``.
    """

    default_punctuation = (
        '<<', '>>', '==', '!=', '<=', '>=', '::', '..',
        '{', '}', '(', ')', '[', ']', '<', '>', ',', ';', ':', '=', '+', '-', '*', '/',
        '%', '$', '.', '@', '?', '!', '&', '|',
    )

    def __init__(self, buffer, punctuation=None):
        self.buffer = buffer
        self.position = 0
        if punctuation is None:
            punctuation = self.default_punctuation
        punctuation = sorted(punctuation, key=len, reverse=True)
        self._scanner = tuple((re.compile(src, re.A | re.S), kind) for src, kind in (
            (r'\s+', None),
            (r'//[^\n]*', None),
            (r'/\*.*?\*/', None),
            (r'#[A-Za-z_]+', 'directive'),
            (r'0[xX][0-9a-fA-F]+[uUlL]*|0[bB][01]+[uUlL]*|[0-9]+(?:\.[0-9]+)?[uUlLfF]*', 'number'),
            (r'[A-Za-z_][A-Za-z0-9_]*', 'ident'),
            (r'"(?:[^"\\\n]|\\.)*"', 'string'),
            ('|'.join(re.escape(p) for p in punctuation), 'punct'),
        ))

    def line_column(self, position=None):
        """
        Return a ``(line, column)`` tuple for the given or, if not specified, current position.

        Both the line and the column start at 1.
        """
        if position is None:
            position = self.position
        line = self.buffer.count('\n', 0, position)
        column = position - (self.buffer.rfind('\n', 0, position) + 1)
        return line + 1, column + 1

    def _lex(self):
        while True:
            if self.position >= len(self.buffer):
                line, column = self.line_column()
                return Token('eof', '', line, column, self.position), self.position
            for token_re, kind in self._scanner:
                match = token_re.match(self.buffer, self.position)
                if match and match.end() > self.position:
                    if kind is None:
                        self.position = match.end()
                        break
                    line, column = self.line_column()
                    return Token(kind, match[0], line, column, self.position), match.end()
            else:
                line, column = self.line_column()
                raise ParseError(f"unrecognized input '{self.buffer[self.position:self.position + 16]}'",
                                 line, column)

    def peek(self):
        """Return the next token without advancing the position."""
        token, _ = self._lex()
        return token

    def next(self):
        """Return the next token and advance the position."""
        token, next_pos = self._lex()
        self.position = next_pos
        return token

    def __iter__(self):
        while True:
            token = self.next()
            yield token
            if token.kind == 'eof':
                break


class Parser:
    """Recursive descent helpers over a fully tokenized buffer."""

    def __init__(self, buffer, punctuation=None):
        self.buffer = buffer
        self.tokens = list(Lexer(buffer, punctuation))
        self.index = 0

    def peek(self, n=0):
        index = min(self.index + n, len(self.tokens) - 1)
        return self.tokens[index]

    def next(self):
        token = self.peek()
        if self.index < len(self.tokens) - 1:
            self.index += 1
        return token

    def at(self, text, n=0):
        token = self.peek(n)
        return token.kind in ('punct', 'ident', 'directive') and token.text == text

    def at_kind(self, kind, n=0):
        return self.peek(n).kind == kind

    def at_eof(self):
        return self.peek().kind == 'eof'

    def accept(self, text):
        if self.at(text):
            return self.next()
        return None

    def expect(self, text):
        if not self.at(text):
            self.error(f"expected '{text}'")
        return self.next()

    def expect_kind(self, kind, what=None):
        if not self.at_kind(kind):
            self.error(f'expected {what or kind}')
        return self.next()

    def error(self, msg, token=None):
        if token is None:
            token = self.peek()
        found = token.text if token.kind != 'eof' else 'end of input'
        raise ParseError(f"{msg}, found '{found}'", token.line, token.column)

    def comma_list(self, parse_item, close):
        """Items separated by commas, possibly none when the next token is ``close``."""
        items = []
        if self.at(close):
            return items
        items.append(parse_item())
        while self.accept(','):
            items.append(parse_item())
        return items

    def skip_balanced(self, open_text, close_text):
        """Consume a balanced ``open ... close`` group and return the tokens strictly inside it."""
        self.expect(open_text)
        start = self.index
        depth = 1
        while depth:
            token = self.peek()
            if token.kind == 'eof':
                self.error(f"missing '{close_text}'")
            if self.at(open_text):
                depth += 1
            elif self.at(close_text):
                depth -= 1
            self.next()
        return self.tokens[start:self.index - 1]

    def source_between(self, first, last):
        """Raw source text from the start of ``first`` up to the end of ``last``."""
        return self.buffer[first.offset:last.offset + len(last.text)]
