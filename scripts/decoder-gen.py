#!/usr/bin/env python3

#
# Instruction decoder generation from .isa descriptions.
#
# Copyright (c) 2025 rev.ng Labs Srl.
#
# This work is licensed under the terms of the GNU GPL, version 2 or
# (at your option) any later version.
#
# See the LICENSE file in the top-level directory for details.
#

from decodergen.cli import decoder_gen

if __name__ == '__main__':
    decoder_gen()
