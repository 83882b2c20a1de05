import logging

__all__ = ['GeneratorError', 'ExpressionError', 'InternalError', 'ErrorListener']

logger = logging.getLogger(__name__)


class GeneratorError(Exception):
    pass


class ExpressionError(GeneratorError):
    pass


class InternalError(GeneratorError):
    pass


class ErrorListener:
    """
    Shared sink for syntax errors, semantic errors and warnings.

    Tokens are anything with ``line`` and ``column`` attributes; the current file name is
    used unless one is given explicitly.
    """

    def __init__(self, file_name=''):
        self.file_name = file_name
        self.syntax_error_count = 0
        self.semantic_error_count = 0
        self.semantic_warning_count = 0
        self.internal_error_count = 0

    def _location(self, file_name, token):
        if file_name is None:
            file_name = self.file_name
        if token is None:
            return file_name
        return f'{file_name}:{token.line}:{token.column}'

    def syntax_error(self, line, column, msg, file_name=None):
        self.syntax_error_count += 1
        if file_name is None:
            file_name = self.file_name
        logger.error('%s:%d:%d\n  %s', file_name, line, column, msg)

    def semantic_error(self, token, msg, file_name=None):
        self.semantic_error_count += 1
        location = self._location(file_name, token)
        if location:
            logger.error('%s  Error: %s', location, msg)
        else:
            logger.error('Error: %s', msg)

    def semantic_warning(self, token, msg, file_name=None):
        self.semantic_warning_count += 1
        location = self._location(file_name, token)
        if location:
            logger.warning('%s  Warning: %s', location, msg)
        else:
            logger.warning('Warning: %s', msg)

    def internal_error(self, msg):
        self.internal_error_count += 1
        logger.critical('Internal error: %s', msg)

    def has_error(self):
        return (self.syntax_error_count + self.semantic_error_count +
                self.internal_error_count) > 0
