import logging
import struct
import zlib

import pytest

from xmfstruct.exceptions import (
    FormatException,
    RecursionException,
    SizeMismatchException,
    UnpackerException,
)
from xmfstruct.audio.xmf import XMFFile, Node
from xmfstruct.audio.xmf.enum import FieldID, ReferenceTypeID, StandardResourceFormatID
from xmfstruct.audio.xmf.resolver import infer_resource_length
from xmfstruct.audio.xmf.vlq import encode_vlq


def pointer(offset):
    return encode_vlq(offset, 2)


def pointed(build_node, start, children):
    '''A root folder referring to its children by offset: each child is a callable
    receiving the offsets of all the children (pointers are always two bytes wide).'''
    root_size = len(build_node(b'\x02' + pointer(0) * len(children), item_count=len(children)))
    sizes = [len(child([0] * len(children))) for child in children]
    offsets = [start + root_size + sum(sizes[:index]) for index in range(len(children))]

    root = build_node(b'\x02' + b''.join(pointer(_) for _ in offsets), item_count=len(children))

    return root + b''.join(child(offsets) for child in children)


def test_two_nodes(build_xmf, build_node, build_item):
    '''A folder with a single inline SMF resource.'''
    metadata = build_item(FieldID.RESOURCE_FORMAT.value, b'\x06\x00\x00') \
        + build_item(FieldID.NODE_NAME.value, b'\x00song')
    leaf = build_node(b'\x01SMF0', metadata=metadata)
    root = build_node(b'\x01' + leaf, item_count=1)

    xmf = XMFFile(build_xmf(root))

    assert xmf.depth == 2

    tree = xmf.tree

    assert tree.is_folder
    assert tree.reference_type == ReferenceTypeID.INLINE_RESOURCE
    assert tree.content is None
    assert tree.offset == xmf.header.tree_start.value
    assert tree.size == len(root)

    children = tree.children

    assert len(children) == 1

    leaf = children[0]

    assert not leaf.is_folder
    assert leaf.reference_type == ReferenceTypeID.INLINE_RESOURCE
    assert leaf.node_name == 'song'
    assert leaf.resource_format == StandardResourceFormatID.SMF_TYPE_0
    assert len(leaf.unpackers) == 0
    assert leaf.raw == b'SMF0'
    assert leaf.content == b'SMF0'
    assert leaf.children == []
    assert leaf.size == leaf.header.node_size.value
    assert [(depth, node) for depth, node in xmf.walk()] == [(0, tree), (1, leaf)]


def test_node_from_path(build_xmf, build_node, tmp_path):
    path = tmp_path / 'ringtone.mxmf'
    path.write_bytes(build_xmf(build_node(b'\x01SMF0')))

    xmf = XMFFile(str(path))

    assert xmf.tree.content == b'SMF0'


def test_header_padding():
    node = Node(b'\x0c\x00\x07\x00\x00\xaa\xbb\x01SMF0')

    assert node.header.padding.value == b'\xaa\xbb'
    assert node.raw == b'SMF0'
    assert node.padding.size == 0


def test_trailing_padding():
    node = Node(b'\x0c\x00\x05\x00\x00\x04\x03abc\x00\x00')

    assert node.reference_type == ReferenceTypeID.EXTERNAL_RESOURCE_FILE
    assert node.location == 'abc'
    assert node.padding.value == b'\x00\x00'
    assert node.size == 12


def test_node_header_overflow():
    '''The header cannot be bigger than the node.'''
    with pytest.raises(SizeMismatchException):
        Node(b'\x04\x00\x05\x00\x00\x01SMF0')


def test_folder_overflow(build_xmf, build_node):
    '''The children cannot go past the end of the folder.'''
    leaf = build_node(b'\x01SMF0')
    folder = b'\x0c\x01\x05\x00\x00\x01' + leaf

    with pytest.raises(SizeMismatchException) as e:
        XMFFile(build_xmf(folder))

    assert 'padding' in e.value.path


def test_zlib_resource(build_xmf, build_node):
    leaf = build_node(b'\x01' + zlib.compress(b'HELLO'), unpackers=b'\x00\x01\x05')
    xmf = XMFFile(build_xmf(leaf))

    assert xmf.tree.raw == zlib.compress(b'HELLO')
    assert xmf.tree.content == b'HELLO'


def test_zlib_resource_isolation(build_xmf, build_node):
    '''A corrupted resource doesn't compromise its siblings.'''
    good = build_node(b'\x01' + zlib.compress(b'HELLO'), unpackers=b'\x00\x01\x05')
    bad = build_node(b'\x01\x78\x9c\xff\xff\xff', unpackers=b'\x00\x01\x05')
    root = build_node(b'\x01' + bad + good, item_count=2)

    xmf = XMFFile(build_xmf(root))
    bad, good = xmf.tree.children

    with pytest.raises(UnpackerException):
        bad.content

    assert good.content == b'HELLO'
    assert bad.raw == b'\x78\x9c\xff\xff\xff'


def test_in_file_resource_folder(build_xmf, build_node):
    tree = lambda start: pointed(build_node, start, [
        lambda offsets: build_node(b'\x01AAAA'),
        lambda offsets: build_node(b'\x01BB'),
    ])
    xmf = XMFFile(build_xmf(tree))

    root = xmf.tree
    first, second = root.children

    assert root.reference_type == ReferenceTypeID.IN_FILE_RESOURCE
    assert root.pointers == [first.offset, second.offset]
    assert first.content == b'AAAA'
    assert second.content == b'BB'

    # the nodes are shared
    assert xmf.node_at(first.offset) is first
    assert root.children[0] is first
    assert root.contents.value.items.field[1].resolve_node() is second
    assert xmf.depth == 2


def test_same_node_pointed_twice(build_xmf, build_node):
    def tree(start):
        root = build_node(b'\x02' + pointer(0) * 2, item_count=2)
        leaf_offset = start + len(root)
        return build_node(b'\x02' + pointer(leaf_offset) * 2, item_count=2) + build_node(b'\x01X')

    xmf = XMFFile(build_xmf(tree))
    first, second = xmf.tree.children

    assert first is second


def test_in_file_resource_leaf(build_xmf, build_node):
    '''The resource lives between the header and the tree, its length is
    taken from the MIDI file itself.'''
    smf = b'MThd' + struct.pack('>IHHH', 6, 0, 1, 96) + b'MTrk' + struct.pack('>I', 4) + b'\x00\xff\x2f\x00'
    # right after the header
    offset = 23

    xmf = XMFFile(build_xmf(build_node(b'\x02' + pointer(offset)), data=smf + b'\xee\xee'))

    assert xmf.tree.reference_type == ReferenceTypeID.IN_FILE_RESOURCE
    assert xmf.tree.target.value == offset
    assert xmf.tree.raw == smf
    assert xmf.tree.content == smf


def test_infer_resource_length():
    riff = b'RIFF' + struct.pack('<I', 5) + b'DLS '
    assert infer_resource_length(riff + b'x\x00' + b'garbage', 100) == 14
    assert infer_resource_length(riff, 10) == 10
    assert infer_resource_length(b'\x00\x01\x02', 3) == 3


def test_in_file_node_leaf(build_xmf, build_node):
    '''A resource can adopt the content of another node.'''
    tree = lambda start: pointed(build_node, start, [
        lambda offsets: build_node(b'\x03' + pointer(offsets[1])),
        lambda offsets: build_node(b'\x01' + zlib.compress(b'SMF0'), unpackers=b'\x00\x01\x04'),
    ])
    xmf = XMFFile(build_xmf(tree))
    alias, target = xmf.tree.children

    assert not alias.is_folder
    assert alias.reference_type == ReferenceTypeID.IN_FILE_NODE
    assert alias.children == []
    assert alias.target.value == target.offset
    assert xmf.resolver.follow(alias) is target
    assert alias.content == b'SMF0'
    assert alias.raw == target.raw


def test_in_file_node_folder(build_xmf, build_node):
    '''A folder can adopt the children of another folder.'''
    tree = lambda start: pointed(build_node, start, [
        lambda offsets: build_node(b'\x03' + pointer(offsets[1]), item_count=2),
        lambda offsets: build_node(b'\x01' + build_node(b'\x01A') + build_node(b'\x01B'), item_count=2),
    ])
    xmf = XMFFile(build_xmf(tree))
    alias, folder = xmf.tree.children

    assert alias.is_folder
    assert alias.children == folder.children
    assert [_.content for _ in alias.children] == [b'A', b'B']
    assert [depth for depth, _ in xmf.walk()] == [0, 1, 2, 2, 1, 2, 2]


def test_in_file_node_folder_to_resource(build_xmf, build_node):
    tree = lambda start: pointed(build_node, start, [
        lambda offsets: build_node(b'\x03' + pointer(offsets[1]), item_count=1),
        lambda offsets: build_node(b'\x01A'),
    ])
    xmf = XMFFile(build_xmf(tree))
    alias, _ = xmf.tree.children

    with pytest.raises(FormatException):
        alias.children


def test_in_file_node_cycle(build_xmf, build_node):
    '''Two nodes referring to each other.'''
    tree = lambda start: pointed(build_node, start, [
        lambda offsets: build_node(b'\x03' + pointer(offsets[1])),
        lambda offsets: build_node(b'\x03' + pointer(offsets[0])),
    ])
    xmf = XMFFile(build_xmf(tree), max_depth=8)
    first, second = xmf.tree.children

    with pytest.raises(RecursionException) as e:
        first.content

    assert 'redirections' in str(e.value)

    with pytest.raises(RecursionException):
        second.raw


def test_in_file_node_self_reference(build_xmf, build_node):
    def tree(start):
        return build_node(b'\x03' + pointer(start), item_count=1)

    xmf = XMFFile(build_xmf(tree))

    with pytest.raises(RecursionException):
        xmf.tree.children

    with pytest.raises(RecursionException):
        list(xmf.walk())


def test_walk_too_deep(build_xmf, build_node):
    '''Pointed nodes are unpacked one at a time, the walk checks the depth.'''
    tree = lambda start: pointed(build_node, start, [
        lambda offsets: build_node(b'\x02' + pointer(offsets[1]), item_count=1),
        lambda offsets: build_node(b'\x01x'),
    ])

    assert XMFFile(build_xmf(tree)).depth == 3

    xmf = XMFFile(build_xmf(tree), max_depth=1)

    with pytest.raises(RecursionException) as e:
        list(xmf.walk())

    assert 'too deep' in str(e.value)


def nested(build_node, levels):
    '''A chain of inline folders with a single resource at the bottom.'''
    node = build_node(b'\x01x')
    for _ in range(levels):
        node = build_node(b'\x01' + node, item_count=1)

    return node


def test_inline_nesting_limit(build_xmf, build_node):
    assert XMFFile(build_xmf(nested(build_node, 8)), max_depth=8).depth == 9

    with pytest.raises(RecursionException) as e:
        XMFFile(build_xmf(nested(build_node, 9)), max_depth=8)

    assert 'nested too deep' in str(e.value)
    assert e.value.path.startswith('Node@0x')


@pytest.mark.parametrize('levels', [80, 300])
def test_inline_nesting_default_limit(build_xmf, build_node, levels):
    '''Too many levels are an error of the format, not of the interpreter.'''
    with pytest.raises(RecursionException):
        XMFFile(build_xmf(nested(build_node, levels)))

    with pytest.raises(RecursionException):
        Node(nested(build_node, levels))


def test_inline_nodes_are_shared(build_xmf, build_node):
    '''A redirect to a node already unpacked inline doesn't unpack it again.'''
    leaf = build_node(b'\x01SMF0')

    def contents(offset):
        return b'\x01' + leaf + build_node(b'\x03' + pointer(offset))

    def tree(start):
        header_length = len(build_node(contents(0), item_count=2)) - len(contents(0))
        return build_node(contents(start + header_length + 1), item_count=2)

    xmf = XMFFile(build_xmf(tree))
    leaf, redirect = xmf.tree.children

    assert redirect.target.value == leaf.offset
    assert xmf.node_at(leaf.offset) is leaf
    assert xmf.resolver.follow(redirect) is leaf
    assert redirect.content == b'SMF0'


def test_in_file_resource_folder_isolation(build_xmf, build_node, caplog):
    '''A pointer to a broken node doesn't hide the other children.'''
    # unknown reference type, right after the header
    broken = b'\x06\x00\x05\x00\x00\x07'

    def tree(start):
        root_size = len(build_node(b'\x02' + pointer(0) * 2, item_count=2))
        return build_node(b'\x02' + pointer(23) + pointer(start + root_size), item_count=2) + build_node(b'\x01OK')

    xmf = XMFFile(build_xmf(tree, data=broken))

    with caplog.at_level(logging.WARNING):
        child, = xmf.tree.children

    assert child.content == b'OK'
    assert 'cannot decode the node at 0x17' in caplog.text

    failures = xmf.tree.broken_children

    assert list(failures) == [23]
    assert isinstance(failures[23], FormatException)
    assert [node for _, node in xmf.walk()] == [xmf.tree, child]


def test_external_references():
    assert Node(b'\x0a\x00\x05\x00\x00\x05\x03a.b').location == 'a.b'
    assert Node(b'\x0a\x00\x05\x00\x00\x06\x02ab\x07').location == ('ab', 7)

    node = Node(b'\x08\x00\x05\x00\x00\x06\x00\x07')

    assert node.location == ('', 7)
    assert node.content is None
    assert node.raw is None


def test_unknown_reference_type():
    with pytest.raises(FormatException) as e:
        Node(b'\x06\x00\x05\x00\x00\x07')

    assert e.value.path == 'contents.reference_type'

    # a folder cannot be stored in another file
    with pytest.raises(FormatException):
        Node(b'\x08\x01\x05\x00\x00\x04\x01a')


def test_pointers_need_a_file():
    node = Node(b'\x07\x00\x05\x00\x00\x02\x10')

    with pytest.raises(AttributeError):
        node.raw


def test_node_outside_tree(build_xmf, build_node, caplog):
    '''A pointer can lead outside of the tree: it's suspicious but not wrong.'''
    data = build_node(b'\x01X')

    def tree(start):
        return build_node(b'\x02' + pointer(start - len(data)), item_count=1)

    xmf = XMFFile(build_xmf(tree, data=data))

    with caplog.at_level(logging.WARNING):
        child, = xmf.tree.children

    assert child.content == b'X'
    assert 'outside of the tree' in caplog.text
