import argparse
import logging
import sys

from .common import load_options, setup_logging, split_list
from .isa_visitor import InstructionSetVisitor
from .proto_fmt_visitor import ProtoFormatVisitor

__all__ = ['decoder_gen_main', 'proto_fmt_gen_main']

logger = logging.getLogger(__name__)


def _add_common_arguments(parser):
    parser.add_argument('input_files', nargs='+', metavar='FILE')
    parser.add_argument('--output_dir', default=None)
    parser.add_argument('--prefix', required=True)
    parser.add_argument('--include', default='',
                        help='comma separated list of include file directories')
    parser.add_argument('--config', default=None,
                        help='yaml file with generator options')
    parser.add_argument('-v', '--verbose', default=0, action='count',
                        help='increase logging verbosity')
    parser.add_argument('-q', '--quiet', default=0, action='count',
                        help='decrease logging verbosity')


def decoder_gen_main(argv=None):
    parser = argparse.ArgumentParser(
        prog='decoder-gen',
        description='Generate C++ instruction decoder sources from .isa files'
    )
    _add_common_arguments(parser)
    parser.add_argument('--isa_name', required=True)
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.quiet)

    options = load_options(args.config, include=split_list(args.include),
                           output_dir=args.output_dir)
    visitor = InstructionSetVisitor()
    if not visitor.process(args.input_files, args.prefix, args.isa_name,
                           options.include, options.output_dir):
        logger.error('decoder generation failed')
        return 1
    return 0


def proto_fmt_gen_main(argv=None):
    parser = argparse.ArgumentParser(
        prog='proto-fmt-gen',
        description='Generate a C++ decoder for protobuf encoded instructions from '
                    '.proto_fmt files'
    )
    _add_common_arguments(parser)
    parser.add_argument('--decoder_name', required=True)
    parser.add_argument('--proto_include', default='',
                        help='comma separated list of .proto search directories')
    parser.add_argument('--proto_files', default='',
                        help='comma separated list of .proto files to import')
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.quiet)

    options = load_options(args.config, include=split_list(args.include),
                           proto_include=split_list(args.proto_include),
                           output_dir=args.output_dir)
    visitor = ProtoFormatVisitor()
    if not visitor.process(args.input_files, args.decoder_name, args.prefix,
                           options.include, options.proto_include,
                           split_list(args.proto_files), options.output_dir,
                           options.density_threshold):
        logger.error('decoder generation failed')
        return 1
    return 0


def decoder_gen():
    sys.exit(decoder_gen_main())


def proto_fmt_gen():
    sys.exit(proto_fmt_gen_main())
