#!/usr/bin/env python3

#
# Decoder generation for protobuf encoded instructions from .proto_fmt files.
#
# Copyright (c) 2025 rev.ng Labs Srl.
#
# This work is licensed under the terms of the GNU GPL, version 2 or
# (at your option) any later version.
#
# See the LICENSE file in the top-level directory for details.
#

from decodergen.cli import proto_fmt_gen

if __name__ == '__main__':
    proto_fmt_gen()
