import re

__all__ = ['to_pascal_case', 'to_snake_case', 'to_header_guard', 'to_lower_case',
           'indent']


def to_pascal_case(name):
    # foo_bar.baz -> FooBar.baz, leading character upper cased, '_' dropped
    out = ''
    upper = True
    for c in name:
        if c == '_':
            upper = True
            continue
        out += c.upper() if upper else c
        upper = False
    return out


def to_snake_case(name):
    out = ''
    for i, c in enumerate(name):
        if c.isupper():
            if i != 0:
                out += '_'
            out += c.lower()
        else:
            out += c
    return out


def to_header_guard(name):
    return re.sub(r'[/.]', '_', name).upper()


def to_lower_case(name):
    return name.lower()


def indent(n):
    if isinstance(n, str):
        n = len(n)
    return ' ' * n
