import logging
from collections import namedtuple

from .diagnostics import GeneratorError
from .names import to_pascal_case
from .proto_encoding_group import DEFAULT_DENSITY_THRESHOLD, ProtoEncodingGroup
from .proto_instruction_encoding import ProtoInstructionEncoding

__all__ = ['SetterInfo', 'ProtoInstructionGroup']

logger = logging.getLogger(__name__)


# A setter declared in a setter group, added to each encoding that references the group.
SetterInfo = namedtuple('SetterInfo', ('token', 'name', 'field', 'path', 'one_of_fields',
                                       'if_not'))


class ProtoInstructionGroup:
    """The encodings decoded from one protobuf message type by one ``Decode<Group>`` method."""

    def __init__(self, name, message_type, encoding_info, token=None):
        self.name = name
        self.message_type = message_type
        self.encoding_info = encoding_info
        self.token = token
        self.encodings = []
        self.setter_groups = {}

    def __repr__(self):
        return f'<ProtoInstructionGroup {self.name}>'

    @property
    def pascal_name(self):
        return to_pascal_case(self.name)

    @property
    def opcode_enum(self):
        return self.encoding_info.opcode_enum

    @property
    def message_type_name(self):
        return f'{self.pascal_name}MessageType'

    @property
    def decoder_class_name(self):
        return self.encoding_info.decoder_class_name

    def add_setter(self, group_name, setter):
        setters = self.setter_groups.setdefault(group_name, {})
        if setter.name in setters:
            raise GeneratorError(f"Duplicate setter name '{setter.name}' in setter group "
                                 f"'{group_name}'.")
        setters[setter.name] = setter

    def get_setter_group(self, group_name):
        setters = self.setter_groups.get(group_name)
        if setters is None:
            raise GeneratorError(f"No setter group '{group_name}'.")
        return setters

    def add_instruction_encoding(self, name, token=None):
        encoding = ProtoInstructionEncoding(name, self, token)
        self.encodings.append(encoding)
        return encoding

    def copy_instruction_encodings(self, other):
        """Add copies of the encodings of ``other``, warning about opcodes already present."""
        names = {encoding.name for encoding in self.encodings}
        for encoding in other.encodings:
            if encoding.name in names:
                self.encoding_info.error_listener.semantic_warning(
                    encoding.token, f"Duplicate instruction opcode name '{encoding.name}' in "
                                    f"group '{self.name}'.")
            names.add(encoding.name)
            encoding = encoding.copy()
            encoding.instruction_group = self
            self.encodings.append(encoding)

    def process_encodings(self):
        """Build the decoder tree; ambiguities are reported to the error listener."""
        root = ProtoEncodingGroup(self, 0, self.encoding_info.error_listener)
        for encoding in self.encodings:
            root.add_encoding(encoding)
        root.add_sub_groups()
        return root

    def generate_decoder(self, density_threshold=DEFAULT_DENSITY_THRESHOLD):
        """Source of the ``Decode<Group>`` function tree, or ``None`` after errors."""
        logger.debug('generating decoder for instruction group %s', self.name)
        error_listener = self.encoding_info.error_listener
        errors_before = error_listener.semantic_error_count
        root = self.process_encodings()
        if error_listener.semantic_error_count > errors_before:
            return None
        return root.generate_decoder(f'Decode{self.pascal_name}', density_threshold)
