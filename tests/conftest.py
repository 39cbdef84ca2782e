import struct

import pytest

from xmfstruct.audio.xmf.vlq import encode_vlq


def specifier(field):
    '''A standard field id (int) or the name of a custom field (bytes).'''
    if isinstance(field, bytes):
        return encode_vlq(len(field)) + field

    return b'\x00' + encode_vlq(field)


def item(field, data, versions=0):
    '''The bytes of a MetaDataItem; no data means the value is missing.'''
    if not data:
        return specifier(field) + encode_vlq(versions) + b'\x00' + b'\x00'

    return specifier(field) + encode_vlq(versions) + encode_vlq(len(data)) + data


def node(contents, item_count=0, metadata=b'', unpackers=b''):
    '''Assemble a node around its contents (reference type included): the
    sizes are adjusted until their own width is stable.'''
    tail = encode_vlq(len(metadata)) + metadata + encode_vlq(len(unpackers)) + unpackers

    node_size, header_size = 0, 0
    while True:
        header = encode_vlq(node_size) + encode_vlq(item_count) + encode_vlq(header_size) + tail
        if (len(header), len(header) + len(contents)) == (header_size, node_size):
            return header + contents

        header_size, node_size = len(header), len(header) + len(contents)


def xmf(tree, version=b'2.00', types_table=b'\x00', data=b'', file_type=(2, 0)):
    '''A whole file: "data" sits between the header and the tree, "tree" are
    the bytes of the tree or a callable building them from the tree start.

    Sizes and offsets of the header are always two bytes wide so that the
    position of the tree is known in advance.'''
    type_info = struct.pack('>II', *file_type) if version == b'2.00' else b''
    header_size = 4 + 4 + len(type_info) + 2 + len(types_table) + 2 + 2

    tree_start = header_size + len(data)
    tree = tree(tree_start) if callable(tree) else tree
    tree_end = tree_start + len(tree)

    header = b'XMF_' + version + type_info + encode_vlq(tree_end, 2) + types_table \
        + encode_vlq(tree_start, 2) + encode_vlq(tree_end, 2)

    return header + data + tree


@pytest.fixture
def build_item():
    return item


@pytest.fixture
def build_node():
    return node


@pytest.fixture
def build_xmf():
    return xmf
