'''
The nodes of an XMF file are not only nested one into the other: a node can
refer to other nodes (or to raw data) by their absolute offset in the file.

The OffsetResolver is the component that reads the structures pointed:
each node is unpacked the first time is requested and then shared, so that
two pointers to the same offset give back the same node.
'''
import logging
import struct

from ...exceptions import XMFStructException, RecursionException
from .enum import ReferenceTypeID


logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64


def infer_resource_length(head: bytes, available: int) -> int:
    '''Resources pointed with InFileResource don't have a length: we use the
    one written by the resource itself when it's a RIFF (DLS) or a standard MIDI
    file, otherwise all the data available.'''
    if head[:4] == b'RIFF' and len(head) >= 8:
        length = 8 + struct.unpack('<I', head[4:8])[0]
        return min(length + (length & 1), available)

    if head[:4] == b'MThd':
        length = 0
        while length + 8 <= min(len(head), available) and head[length:length + 4] in (b'MThd', b'MTrk'):
            length += 8 + struct.unpack('>I', head[length + 4:length + 8])[0]

        return min(length, available)

    return available


class OffsetResolver(object):

    def __init__(self, xmf, stream, node_cls, max_depth=DEFAULT_MAX_DEPTH):
        self.xmf = xmf
        self.stream = stream
        self.node_cls = node_cls
        self.max_depth = max_depth
        self._nodes = {}

    def __repr__(self):
        return f'<{self.__class__.__name__}(nodes={sorted(self._nodes)})>'

    def parse_at(self, offset, chunk_cls):
        '''Unpack an instance of chunk_cls starting at the absolute offset indicated,
        the position of the stream is preserved.'''
        logger.debug(f'parsing {chunk_cls.__name__} at offset 0x{offset:x}')
        chunk = chunk_cls(father=self.xmf)

        with self.stream.at(offset):
            try:
                chunk.unpack(self.stream)
            except XMFStructException as e:
                e.chain.append(f'{chunk_cls.__name__}@0x{offset:x}')
                raise

        return chunk

    def register(self, node):
        '''Nodes unpacked inline are shared too; the first one at an offset wins.'''
        self._nodes.setdefault(node.offset, node)

    def node_at(self, offset):
        if offset not in self._nodes:
            tree_start, tree_end = self.xmf.header.tree_start.value, self.xmf.header.tree_end.value
            if not tree_start <= offset < tree_end:
                logger.warning(f'node at offset 0x{offset:x} is outside of the tree [0x{tree_start:x}, 0x{tree_end:x})')

            self._nodes.setdefault(offset, self.parse_at(offset, self.node_cls))

        return self._nodes[offset]

    def follow(self, node):
        '''Return the node at the end of a chain of InFileNode references.'''
        hops = 0
        while node.reference_type == ReferenceTypeID.IN_FILE_NODE:
            hops += 1
            if hops > self.max_depth:
                raise RecursionException(chain=[], offset=node.offset,
                                         expected=f'at most {self.max_depth} redirections',
                                         message='too many InFileNode references')

            node = self.node_at(node.target.value)

        return node

    def read_resource(self, offset):
        '''Read the data of a resource stored somewhere in the file.'''
        header = self.xmf.header
        # data can live between the header and the tree or after the tree
        limit = header.tree_start.value if offset < header.tree_start.value else self.stream.end
        available = limit - offset

        with self.stream.at(offset):
            data = self.stream.read(available)

        length = infer_resource_length(data, available)
        logger.debug(f'resource at 0x{offset:x} is {length} bytes long ({available} available)')

        return data[:length]
