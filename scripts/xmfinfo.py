#!/usr/bin/env python3
'''
Print the header and the tree of nodes of an XMF/Mobile XMF file

 $ xmfinfo.py ringtone.mxmf
'''
import sys
import os
import logging

from xmfstruct.exceptions import XMFStructException
from xmfstruct.audio.xmf import XMFFile


logging.basicConfig(level=logging.DEBUG if 'DEBUG' in os.environ else logging.WARNING)
logger = logging.getLogger(__name__)


def usage(progname):
    print(f'usage: {progname} <xmf file>')
    sys.exit(1)


def dump_header(hdr):
    print(f'''XMF Header:
  Version:                  {hdr.version.value}
  File type:                {hdr.file_type}
  Revision:                 {hdr.revision_id}
  File size:                {hdr.file_size.value} (bytes)
  Tree:                     0x{hdr.tree_start.value:x}-0x{hdr.tree_end.value:x}''')

    if len(hdr.metadata_types):
        print('Metadata types:')
    for entry in hdr.metadata_types:
        print(f'  {entry.type_id.value:<4} {entry.string_format.value} {entry.language.text!r}')


def describe(node):
    if node.is_folder:
        return f'folder with {node.header.item_count.value} items'

    location = node.location
    if location is not None:
        return f'reference to {location!r}'

    try:
        content = node.content
    except XMFStructException as e:
        return f'resource not available: {e}'

    return f'resource {node.resource_format} of {len(content)} bytes'


def dump_tree(xmf):
    print('Nodes:')
    for depth, node in xmf.walk():
        indent = '  ' * (depth + 1)
        print(f'{indent}[0x{node.offset:06x}] {node.node_name or "<no name>"}: {node.reference_type}, {describe(node)}')

        for item in node.metadata:
            print(f'{indent}    {item.specifier}: {item.contents.value!r}{" (hidden)" if item.contents.is_hidden else ""}')


if __name__ == '__main__':
    if len(sys.argv) < 2:
        usage(sys.argv[0])

    path = sys.argv[1]

    try:
        xmf = XMFFile(path)
    except XMFStructException as e:
        logger.error(f'cannot decode \'{path}\': {e}')
        sys.exit(1)

    dump_header(xmf.header)
    dump_tree(xmf)
