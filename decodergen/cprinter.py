import io

__all__ = ['CPrinter']


class CPrinter:
    """Line oriented C++ text writer with a current indentation."""

    def __init__(self, out=None):
        if out is None:
            out = io.StringIO()
        self.out = out
        self.indent = 0

    def set_indent(self, n):
        self.indent = n

    def push(self, n=2):
        self.indent += n

    def pop(self, n=2):
        self.indent = max(0, self.indent - n)

    def line(self, str=''):
        if str:
            self.out.write(' ' * self.indent + str + '\n')
        else:
            self.out.write('\n')

    def raw(self, text):
        self.out.write(text)

    def getvalue(self):
        return self.out.getvalue()
