"""
Descriptor pool for the ``.proto`` files describing instruction messages.

Each file is compiled with ``grpc_tools.protoc`` into a ``FileDescriptorSet`` holding the
file and everything it imports, and the set is loaded into a ``google.protobuf``
``DescriptorPool``. Files already in the pool are not added again.
"""

import logging
import os
import tempfile

import grpc_tools
from google.protobuf import descriptor_pb2, descriptor_pool
from grpc_tools import protoc

from .diagnostics import GeneratorError

__all__ = ['ProtoImporter']

logger = logging.getLogger(__name__)


# google/protobuf/*.proto shipped with grpcio-tools
_well_known_protos = os.path.join(os.path.dirname(grpc_tools.__file__), '_proto')


class ProtoImporter:
    def __init__(self, proto_dirs=('.',)):
        self.proto_dirs = list(proto_dirs)
        self.pool = descriptor_pool.DescriptorPool()
        self._file_names = set()

    def _compile(self, name):
        with tempfile.TemporaryDirectory() as directory:
            descriptor_set_out = os.path.join(directory, 'descriptor_set.pb')
            args = ['grpc_tools.protoc',
                    *(f'--proto_path={proto_dir}' for proto_dir in self.proto_dirs),
                    f'--proto_path={_well_known_protos}',
                    '--include_imports',
                    f'--descriptor_set_out={descriptor_set_out}',
                    name]
            logger.debug('running %s', ' '.join(args))
            if protoc.main(args) != 0:
                raise GeneratorError(f"Failed to import '{name}'")
            with open(descriptor_set_out, 'rb') as f:
                return descriptor_pb2.FileDescriptorSet.FromString(f.read())

    def import_file(self, name):
        """
        Add ``name`` and its imports to ``pool`` and return its ``FileDescriptor``.
        Raises ``GeneratorError`` if the file cannot be compiled.
        """
        file_set = self._compile(name)
        # dependencies come before the files importing them
        for file_proto in file_set.file:
            if file_proto.name in self._file_names:
                continue
            logger.debug('adding %s to the descriptor pool', file_proto.name)
            self.pool.Add(file_proto)
            self._file_names.add(file_proto.name)
        return self.pool.FindFileByName(file_set.file[-1].name)

    def find_message_type(self, full_name):
        """The message ``Descriptor`` named ``full_name``, or ``None``."""
        try:
            return self.pool.FindMessageTypeByName(full_name)
        except KeyError:
            return None
