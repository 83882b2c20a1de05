import logging
import sys
from collections import namedtuple

import yaml

from .proto_encoding_group import DEFAULT_DENSITY_THRESHOLD

__all__ = ['GeneratorOptions', 'load_yaml_or_exit', 'load_options', 'split_list',
           'setup_logging']


GeneratorOptions = namedtuple('GeneratorOptions', ('density_threshold', 'include',
                                                   'proto_include', 'output_dir'))


def load_yaml_or_exit(path):
    with open(path, 'r') as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            print(f'Failed to load yaml file {path}: {e}', file=sys.stderr)
            sys.exit(1)


def split_list(text):
    """Items of a comma separated command line value, empty items dropped."""
    if not text:
        return []
    return [item for item in text.split(',') if item]


def _as_list(value):
    if value is None:
        return []
    if isinstance(value, str):
        return split_list(value)
    return [str(item) for item in value]


def load_options(path=None, include=(), proto_include=(), output_dir=None):
    """
    Merge the options given on the command line with those of the yaml file at ``path``.
    Search directories from the command line come first; an output directory given on the
    command line wins.
    """
    y = {}
    if path is not None:
        y = load_yaml_or_exit(path) or {}
        if not isinstance(y, dict):
            print(f'Failed to load yaml file {path}: expected a mapping', file=sys.stderr)
            sys.exit(1)
    try:
        density_threshold = float(y.get('density_threshold', DEFAULT_DENSITY_THRESHOLD))
    except (TypeError, ValueError):
        print(f'Invalid density_threshold in {path}: {y["density_threshold"]!r}',
              file=sys.stderr)
        sys.exit(1)
    if output_dir is None:
        output_dir = y.get('output_dir', '.')
    return GeneratorOptions(
        density_threshold=density_threshold,
        include=[*include, *_as_list(y.get('include'))],
        proto_include=[*proto_include, *_as_list(y.get('proto_include'))],
        output_dir=str(output_dir),
    )


def setup_logging(verbose=0, quiet=0):
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(style='{',
                                           fmt='{levelname[0]:s}: {name:s}: {message:s}'))
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO + quiet * 10 - verbose * 10)
