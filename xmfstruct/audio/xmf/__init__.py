'''
# eXtensible Music Format

Container format defined by the MIDI Manufacturers Association to bundle
together standard MIDI files, DLS instruments and audio clips; Mobile XMF
(MXMF) is the profile used by mobile phones for ringtones.

The file is composed of a header followed by a tree of nodes

  .---------------------------------.
  | "XMF_" + version                |
  | (2.00 only) file type, revision |
  | file length                     |
  | metadata types table            |
  | tree start, tree end            |
  |---------------------------------|
  | root node                       |
  |   node                          |
  |   node                          |
  |     ...                         |
  '---------------------------------'

A node with items is a folder, otherwise is a resource; in both cases its
contents can be inline (i.e. right after the node header), somewhere else in the
file (pointed by absolute offset) or even in another file.

Every size, count and pointer is a variable length quantity (see vlq).

References:

 - XMF Specification v1.01 and v2.00 (RP-030, RP-043)
 - Mobile XMF Content Format Specification (RP-042)
 - ID3 Metadata for XMF Files (RP-047)
'''
import logging

# must come first: loading the submodule rebinds the name "fields"
from .fields import VLQField, VLQPointerField, XMFString
from ... import fields
from ...core import Chunk
from ...properties import Dependency, PropertyDescriptor, get_instance_from_class_name
from ...streams import Stream
from ...enum import Compliant
from ...exceptions import (
    BoundsException,
    FormatException,
    SizeMismatchException,
    UnpackException,
    RecursionException,
)
from ..id3 import ID3Tag
from .enum import (
    XMFVersion,
    XMFFileType,
    ReferenceTypeID,
    FieldID,
    StringFormatTypeID,
    IDType,
    StandardResourceFormatID,
    StandardUnpackerID,
)
from .resolver import OffsetResolver, DEFAULT_MAX_DEPTH
from .unpackers import apply_unpackers


logger = logging.getLogger(__name__)


'''
File header
'''


class XMFTypeInfo(Chunk):
    '''Present only from version 2.00'''
    file_type_id = fields.StructField('I')
    revision_id  = fields.StructField('I')


class MetadataTypeEntry(Chunk):
    '''Describes how the values tagged with type_id in the metadata are encoded
    and in which language.'''
    type_id       = VLQField()
    string_format = VLQField(enum=StringFormatTypeID)
    language      = XMFString()


class MetadataTypeEntries(Chunk):
    count   = VLQField()
    entries = fields.ArrayField(MetadataTypeEntry, n=Dependency('.count'))


class MetadataTypesTable(Chunk):
    '''The length doesn't include the length field itself, an empty table is a single zero.'''
    table_length = VLQField()
    table        = fields.SelectField(lambda table: table.table_length.value > 0, {
        True: MetadataTypeEntries,
        False: fields.NullField(),
    })
    padding      = fields.PaddingField(Dependency('.remaining'))

    def remaining(self):
        return self.table_length.value - self.table.size

    def __iter__(self):
        return iter(self.table.value.entries if self.table_length.value else [])

    def __len__(self):
        return len(self.table.value.entries) if self.table_length.value else 0

    def get(self, type_id):
        for entry in self:
            if entry.type_id.value == type_id:
                return entry

        return None


class XMFFileHeader(Chunk):
    magic          = fields.StringField(4, default=b'XMF_', is_magic=True)
    version        = fields.StructField('4s', enum=XMFVersion, default=XMFVersion.V2_00)
    type_info      = fields.SelectField('version', {
        XMFVersion.V2_00: XMFTypeInfo,
        fields.SelectField.Type.DEFAULT: fields.NullField(),
    })
    file_size      = VLQField()
    metadata_types = MetadataTypesTable()
    tree_start     = VLQField()
    tree_end       = VLQField()

    @property
    def file_type_id(self):
        return self.type_info.value.file_type_id.value if self.version.value.has_type_info else None

    @property
    def revision_id(self):
        return self.type_info.value.revision_id.value if self.version.value.has_type_info else None

    @property
    def file_type(self):
        try:
            return XMFFileType(self.file_type_id)
        except ValueError:
            return self.file_type_id

    def validate(self):
        if self.tree_start.value >= self.tree_end.value:
            raise FormatException(chain=['tree_end'], offset=self.tree_end.offset,
                                  expected=f'a value greater than the tree start 0x{self.tree_start.value:x}',
                                  message='the tree is empty')


'''
Metadata
'''


class FieldSpecifier(Chunk):
    '''A zero followed by one of the standard field ids or the length of
    a custom name followed by the name itself.'''
    kind       = VLQField()
    identifier = fields.SelectField('kind', {
        0: VLQField(enum=FieldID, compliant=Compliant.NONE),
        fields.SelectField.Type.DEFAULT: fields.StringField(Dependency('.kind')),
    })

    def __str__(self):
        return self.identifier.value.name if isinstance(self.identifier.value, FieldID) else str(self.key)

    @property
    def is_standard(self):
        return self.kind.value == 0

    def field_id(self):
        '''The standard field id (an int if unknown), None for custom fields'''
        return self.identifier.value if self.is_standard else None

    @property
    def key(self):
        '''What identifies this field in the metadata of a node'''
        return self.identifier.value if self.is_standard else self.identifier.value.decode('latin1')


class XMFFileTypeValue(Chunk):
    file_type_id = VLQField()
    revision_id  = VLQField()


class ResourceFormat(Chunk):
    format_type = VLQField(enum=IDType)
    format_id   = fields.SelectField('format_type', {
        IDType.STANDARD: VLQField(enum=StandardResourceFormatID),
        fields.SelectField.Type.DEFAULT: VLQField(),
    })

    def __str__(self):
        return str(self.format_id.value)

    @property
    def is_standard(self):
        return self.format_type.value == IDType.STANDARD


class UsageRow(Chunk):
    counters = fields.ArrayField(VLQField(), n=Dependency('@ContentDescription.resource_count'))


class ContentDescription(Chunk):
    '''Mobile XMF description of what is needed to play the file: for each playback
    resource its identity (PRL) and group (PRGL) and, for each MIDI channel, how many
    times each resource is used.'''
    mip_index      = VLQField()
    channel_count  = VLQField()
    resource_count = VLQField()
    prl            = fields.ArrayField(VLQField(), n=Dependency('.resource_count'))
    prgl           = fields.ArrayField(VLQField(), n=Dependency('.resource_count'))
    usage          = fields.ArrayField(UsageRow, n=Dependency('.channel_count'))

    @property
    def table(self):
        return [[_.value for _ in row.counters] for row in self.usage]


class UniversalContents(Chunk):
    '''A single value, valid for every language.'''
    string_format = VLQField(enum=StringFormatTypeID)
    payload       = fields.SelectField(Dependency('@FieldContents.field_id'), lambda: UNIVERSAL_PAYLOADS)

    def remaining(self):
        return self.father.end - (self.string_format.offset + self.string_format.size)

    @property
    def text(self):
        value = self.payload.value
        if isinstance(value, bytes) and isinstance(self.string_format.value, StringFormatTypeID):
            return self.string_format.value.decode(value)

        return value


UNIVERSAL_PAYLOADS = {
    FieldID.XMF_FILE_TYPE: XMFFileTypeValue,
    FieldID.NODE_ID: VLQField(),
    FieldID.RESOURCE_FORMAT: ResourceFormat,
    FieldID.CONTENT_DESCRIPTION: ContentDescription,
    FieldID.ID3_METADATA: ID3Tag,
    fields.SelectField.Type.DEFAULT: fields.StringField(Dependency('.remaining')),
}


class ContentVersion(Chunk):
    '''One of the versions (usually one for each language) of a value: how to
    decode it is indicated in the metadata types table of the file.'''
    metadata_type = VLQField()
    length        = VLQField()
    data          = fields.StringField(Dependency('.length'))

    @property
    def type_entry(self):
        types = getattr(getattr(self.root, 'header', None), 'metadata_types', None)
        if types is None:
            return None

        return types.get(self.metadata_type.value)

    @property
    def text(self):
        entry = self.type_entry
        if entry is None or not isinstance(entry.string_format.value, StringFormatTypeID):
            return self.data.value

        return entry.string_format.value.decode(self.data.value)

    @property
    def language(self):
        entry = self.type_entry
        return entry.language.text if entry else None


class FieldContents(Chunk):
    '''The value of a metadata item: how to interpret it depends on the field id
    of the specifier that precedes it, passed as "field_id".

    A value that cannot be decoded doesn't stop the parsing: the data is kept
    raw and the reason saved in "error".'''
    number_of_versions = VLQField()
    length_of_data     = VLQField()

    field_id = PropertyDescriptor('field_id', object)

    def __init__(self, *args, field_id=None, **kwargs):
        self.field_id = field_id
        self.data = b''
        self.contents = None
        self.versions = []
        self.error = None
        super().__init__(*args, **kwargs)

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.value!r})>'

    @property
    def end(self):
        return self.length_of_data.offset + self.length_of_data.size + self.length_of_data.value

    @property
    def is_empty(self):
        return self.length_of_data.value == 0

    def _get_size(self):
        return super()._get_size() + len(self.data)

    def _get_raw(self):
        return super()._get_raw() + self.data

    def _get_value(self):
        if self.is_empty:
            return None
        if self.contents is not None:
            return self.contents.payload.value
        if self.versions:
            return self.versions

        return self.data or None

    @property
    def text(self):
        if self.contents is not None:
            return self.contents.text
        if self.versions:
            return self.versions[0].text

        return None

    @property
    def is_hidden(self):
        '''Hidden values are not meant to be shown to the user.'''
        if self.contents is None or not isinstance(self.contents.string_format.value, StringFormatTypeID):
            return False

        return self.contents.string_format.value.hidden

    def unpack(self, stream):
        super().unpack(stream)

        length = self.length_of_data.value

        if length == 0:
            # the field is there but without a value, a placeholder follows
            self.data = stream.read(1)
            return

        offset = stream.tell()
        self.data = stream.read(length)
        data = Stream(self.data, base=offset)

        try:
            if self.number_of_versions.value == 0:
                self._unpack_universal(data)
            else:
                self._unpack_versions(data)
        except UnpackException as e:
            logger.warning(f'cannot decode field {self.field_id!r} at 0x{offset:x}, keeping the raw data: {e}')
            self.error = e
            self.contents = None
            self.versions = []

    def _unpack_universal(self, data):
        contents = UniversalContents(father=self)
        contents.unpack(data)

        if data.tell() != data.end:
            raise SizeMismatchException(chain=['contents'], offset=data.tell(),
                                        expected=f'{data.end - data.tell()} bytes more to be consumed',
                                        message='field value shorter than its declared length')

        self.contents = contents

    def _unpack_versions(self, data):
        for index in range(self.number_of_versions.value):
            if data.tell() >= data.end:
                logger.warning(f'only {index} versions of {self.number_of_versions.value} fit the declared length')
                break

            version = ContentVersion(father=self)
            version.unpack(data)
            self.versions.append(version)

        if data.tell() != data.end:
            logger.debug(f'skipping {data.end - data.tell()} bytes after the versions')


class MetaDataItem(Chunk):
    specifier = FieldSpecifier()
    contents  = FieldContents(field_id=Dependency('.specifier.field_id'))

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.specifier}={self.contents.value!r})>'


class NodeMetaData(Chunk):
    '''The items follow until the declared length (that doesn't include the
    length field itself) is reached.'''
    length = VLQField()
    items  = fields.ArrayField(MetaDataItem, length=Dependency('.length'))

    def __iter__(self):
        return iter(self.items)

    def __len__(self):
        return len(self.items)

    def get(self, key):
        '''Return the contents of the field identified by key, a FieldID or
        the name of a custom field.'''
        for item in self.items:
            if item.specifier.key == key:
                return item.contents

        return None

    def as_dict(self):
        return {item.specifier.key: item.contents.value for item in self.items}


'''
Unpackers
'''


class Unpacker(Chunk):
    id_type        = VLQField(enum=IDType)
    unpacker_id    = fields.SelectField('id_type', {
        IDType.STANDARD: VLQField(enum=StandardUnpackerID),
        fields.SelectField.Type.DEFAULT: VLQField(),
    })
    decoded_length = VLQField()

    @property
    def is_standard(self):
        return self.id_type.value == IDType.STANDARD


class NodeUnpackers(Chunk):
    length    = VLQField()
    unpackers = fields.ArrayField(Unpacker, length=Dependency('.length'))

    def __iter__(self):
        return iter(self.unpackers)

    def __len__(self):
        return len(self.unpackers)


'''
Nodes
'''


class NodeHeader(Chunk):
    node_size   = VLQField()
    item_count  = VLQField()
    header_size = VLQField()
    metadata    = NodeMetaData()
    unpackers   = NodeUnpackers()
    padding     = fields.PaddingField(Dependency('.header_padding'))

    def header_padding(self):
        return self.header_size.value - (self.unpackers.offset + self.unpackers.size - self.offset)


class Node(Chunk):
    '''The unit of the tree: the number of items tells if it's a folder or a resource.

    The node size is authoritative, what is not used by header and contents is padding.'''
    header   = NodeHeader()
    contents = fields.SelectField(lambda node: node.header.item_count.value > 0, lambda: NODE_CONTENTS)
    padding  = fields.PaddingField(Dependency('.trailing_padding'))

    def __repr__(self):
        offset = self.offset if self.offset is not None else 0
        return f'<{self.__class__.__name__}(0x{offset:x}, {"folder" if self.is_folder else "resource"}, {self.reference_type})>'

    def unpack(self, stream):
        '''Inline folders nest nodes one into the other: the nesting is bounded by
        the "max_depth" of the file, then the node joins the nodes shared by offset.'''
        nesting = self.nesting
        max_depth = getattr(self.root, 'max_depth', DEFAULT_MAX_DEPTH)

        if nesting > max_depth:
            raise RecursionException(chain=[], offset=stream.tell(),
                                     expected=f'at most {max_depth} levels',
                                     message='nodes nested too deep')

        try:
            super().unpack(stream)
        except RecursionError:
            # only the outermost node reports it, when the stack is available again
            if nesting:
                raise

            raise RecursionException(chain=[], offset=self.offset,
                                     expected=f'at most {max_depth} levels',
                                     message='nodes nested too deep for the interpreter stack') from None

        root = self.root
        if isinstance(root, XMFFile) and root.resolver is not None:
            root.resolver.register(self)

    @property
    def nesting(self):
        '''How many nodes contain this one inline.'''
        count = 0
        instance = self.father
        while instance is not None:
            if isinstance(instance, Node):
                count += 1
            instance = instance.father

        return count

    @property
    def end(self):
        return self.offset + self.header.node_size.value

    def trailing_padding(self):
        return self.end - (self.contents.offset + self.contents.size)

    @property
    def is_folder(self):
        return self.header.item_count.value > 0

    @property
    def reference_type(self):
        return self.contents.value.reference_type.value if self.contents.field is not None else None

    @property
    def metadata(self):
        return self.header.metadata

    @property
    def unpackers(self):
        return self.header.unpackers

    @property
    def node_name(self):
        '''The NodeName metadata, "name" is the name of the field in the father.'''
        field = self.metadata.get(FieldID.NODE_NAME)
        return field.text if field else None

    @property
    def node_id(self):
        field = self.metadata.get(FieldID.NODE_ID)
        return field.value if field else None

    @property
    def resource_format(self):
        field = self.metadata.get(FieldID.RESOURCE_FORMAT)
        return field.value.format_id.value if field and isinstance(field.value, ResourceFormat) else None

    @property
    def resolver(self):
        root = self.root
        if not isinstance(root, XMFFile) or root.resolver is None:
            raise AttributeError('references can be followed only inside an XMFFile')

        return root.resolver

    @property
    def target(self):
        '''The pointer of a node referring to something else in the file.'''
        if self.reference_type == ReferenceTypeID.IN_FILE_NODE or \
                (not self.is_folder and self.reference_type == ReferenceTypeID.IN_FILE_RESOURCE):
            return self.contents.value.data.field if not self.is_folder else self.contents.value.items.field

        return None

    @property
    def pointers(self):
        '''The offsets of the children of an InFileResource folder.'''
        if self.is_folder and self.reference_type == ReferenceTypeID.IN_FILE_RESOURCE:
            return [_.value for _ in self.contents.value.items.field]

        return []

    @property
    def children(self):
        if not self.is_folder:
            return []

        reference_type = self.reference_type

        if reference_type == ReferenceTypeID.INLINE_RESOURCE:
            return list(self.contents.value.items.field)
        if reference_type == ReferenceTypeID.IN_FILE_RESOURCE:
            children, _ = self._resolve_pointers()
            return children

        # InFileNode: the folder pointed supplies the children
        node = self.resolver.follow(self)
        if not node.is_folder:
            raise FormatException(chain=[], offset=self.target.offset,
                                  expected='a folder', message='InFileNode of a folder points to a resource')

        return node.children

    @property
    def broken_children(self):
        '''The pointers of an InFileResource folder that lead to nodes that
        cannot be decoded, with the exception raised.'''
        _, failures = self._resolve_pointers()
        return failures

    def _resolve_pointers(self):
        '''Each pointed child is decoded on its own: a broken one doesn't hide its siblings.'''
        children, failures = [], {}

        for offset in self.pointers:
            try:
                children.append(self.resolver.node_at(offset))
            except UnpackException as e:
                logger.warning(f'cannot decode the node at 0x{offset:x} pointed by the folder at 0x{self.offset:x}: {e}')
                failures[offset] = e

        return children, failures

    @property
    def raw(self):
        '''The data of a resource as stored, i.e. before the unpackers.'''
        if self.is_folder:
            return None

        reference_type = self.reference_type

        if reference_type == ReferenceTypeID.INLINE_RESOURCE:
            return self.contents.value.data.value
        if reference_type == ReferenceTypeID.IN_FILE_RESOURCE:
            return self.resolver.read_resource(self.target.value)
        if reference_type == ReferenceTypeID.IN_FILE_NODE:
            return self.resolver.follow(self).raw

        return None

    @property
    def content(self):
        '''The data of a resource after applying the unpackers; None for folders
        and for resources in other files.

        If the data cannot be unpacked an UnpackerException is raised.'''
        if self.is_folder:
            return None

        if self.reference_type == ReferenceTypeID.IN_FILE_NODE:
            return self.resolver.follow(self).content

        raw = self.raw
        if raw is None:
            return None

        return apply_unpackers(raw, self.unpackers, offset=self.offset)

    @property
    def location(self):
        '''Where the resource is when is stored outside of this file'''
        reference_type = self.reference_type
        data = self.contents.value.data.value if not self.is_folder else None

        if reference_type in (ReferenceTypeID.EXTERNAL_RESOURCE_FILE, ReferenceTypeID.XMF_URI):
            return data.text
        if reference_type == ReferenceTypeID.XMF_URI_AND_NODE_ID:
            return data.uri.text, data.node_id.value

        return None


class URIAndNodeID(Chunk):
    '''An empty uri means this same file.'''
    uri     = XMFString()
    node_id = VLQField()


class FolderContents(Chunk):
    reference_type = VLQField(enum=ReferenceTypeID)
    items          = fields.SelectField('reference_type', {
        ReferenceTypeID.INLINE_RESOURCE: fields.ArrayField(Node, n=Dependency('@Node.header.item_count')),
        ReferenceTypeID.IN_FILE_RESOURCE: fields.ArrayField(VLQPointerField(), n=Dependency('@Node.header.item_count')),
        ReferenceTypeID.IN_FILE_NODE: VLQPointerField(),
    })


class ResourceContents(Chunk):
    reference_type = VLQField(enum=ReferenceTypeID)
    data           = fields.SelectField('reference_type', {
        ReferenceTypeID.INLINE_RESOURCE: fields.StringField(Dependency('.payload_length')),
        ReferenceTypeID.IN_FILE_RESOURCE: VLQPointerField(),
        ReferenceTypeID.IN_FILE_NODE: VLQPointerField(),
        ReferenceTypeID.EXTERNAL_RESOURCE_FILE: XMFString(),
        ReferenceTypeID.XMF_URI: XMFString(),
        ReferenceTypeID.XMF_URI_AND_NODE_ID: URIAndNodeID(),
    })

    def payload_length(self):
        '''Inline data takes everything up to the end of the node.'''
        node = get_instance_from_class_name(self, 'Node')
        length = node.end - (self.reference_type.offset + self.reference_type.size)

        if length < 0:
            raise SizeMismatchException(chain=[], offset=self.reference_type.offset,
                                        expected=f'node to end at 0x{node.end:x}',
                                        message='node header overflows the node size')

        return length


NODE_CONTENTS = {
    True: FolderContents,
    False: ResourceContents,
}


'''
The file
'''


class XMFFile(Chunk):
    '''Pass a path or the bytes of the file to the constructor to decode it: the header
    and the root node are unpacked immediately, the nodes pointed by offset the first
    time they are requested.

    "max_depth" limits how deep the tree and the chains of references can go.'''
    header = XMFFileHeader()

    def __init__(self, *args, max_depth=DEFAULT_MAX_DEPTH, **kwargs):
        self.max_depth = max_depth
        self.resolver = None
        super().__init__(*args, **kwargs)

    def __repr__(self):
        tree = self.tree if self.resolver is not None else None
        return f'<{self.__class__.__name__}(version={self.header.version.value}, tree={tree!r})>'

    def unpack(self, stream):
        super().unpack(stream)

        header = self.header

        if header.file_size.value != stream.length:
            logger.warning(f'declared file size is {header.file_size.value} but the data is {stream.length} bytes')

        if header.tree_end.value > stream.end:
            raise BoundsException(chain=['tree_end', 'header'], offset=header.tree_end.offset,
                                  expected=f'a value not greater than the data size 0x{stream.end:x}',
                                  message='the tree ends outside of the data')

        self.resolver = OffsetResolver(self, stream, Node, max_depth=self.max_depth)

        root = self.tree
        if root.end > header.tree_end.value:
            raise SizeMismatchException(chain=['tree'], offset=root.offset,
                                        expected=f'root node to end before 0x{header.tree_end.value:x}',
                                        message='root node overflows the tree')

    @property
    def tree(self):
        return self.resolver.node_at(self.header.tree_start.value)

    def node_at(self, offset):
        return self.resolver.node_at(offset)

    def walk(self, node=None, depth=0):
        '''Depth-first iteration over (depth, node) starting from the root.'''
        node = node if node is not None else self.tree

        if depth > self.max_depth:
            raise RecursionException(chain=[], offset=node.offset,
                                     expected=f'at most {self.max_depth} levels',
                                     message='the tree is too deep')

        yield depth, node

        for child in node.children:
            yield from self.walk(child, depth + 1)

    @property
    def depth(self):
        return max(depth for depth, _ in self.walk()) + 1
