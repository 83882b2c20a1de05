"""Decoder generator for instruction set simulators.

Reads ISA descriptions (``.isa``) or protobuf instruction formats
(``.proto_fmt``) and emits C++ decoder sources.
"""

__version__ = '0.1.0'
