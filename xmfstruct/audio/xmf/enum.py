from enum import Enum


class XMFVersion(Enum):
    '''The version tag that follows the magic: it decides the shape of the header.'''
    V1_00 = b'1.00'
    V1_01 = b'1.01'
    V2_00 = b'2.00'

    @property
    def has_type_info(self):
        return self is XMFVersion.V2_00


class XMFFileType(Enum):
    '''Values for the file type id of an XMF 2.0 header (and of the XMFFileType metadata)'''
    XMF_TYPE_0 = 0
    XMF_TYPE_1 = 1
    MOBILE_XMF = 2


class ReferenceTypeID(Enum):
    '''How the contents of a node are physically located.'''
    INLINE_RESOURCE        = 1
    IN_FILE_RESOURCE       = 2
    IN_FILE_NODE           = 3
    EXTERNAL_RESOURCE_FILE = 4
    XMF_URI                = 5
    XMF_URI_AND_NODE_ID    = 6


class FieldID(Enum):
    XMF_FILE_TYPE                 = 0
    NODE_NAME                     = 1
    NODE_ID                       = 2
    RESOURCE_FORMAT               = 3
    FILENAME_ON_DISK              = 4
    FILENAME_EXTENSION_ON_DISK    = 5
    MACOS_FILE_TYPE_AND_CREATOR   = 6
    MIME_TYPE                     = 7
    TITLE                         = 8
    COPYRIGHT_NOTICE              = 9
    COMMENT                       = 10
    AUTOSTART                     = 11
    PRELOAD                       = 12
    CONTENT_DESCRIPTION           = 13
    ID3_METADATA                  = 14


class StringFormatTypeID(Enum):
    '''The encoding of a metadata value: the lowest bit tells if it is meant to
    be shown to the user.'''
    EXTENDED_ASCII_VISIBLE     = 0
    EXTENDED_ASCII_HIDDEN      = 1
    UTF16_VISIBLE              = 2
    UTF16_HIDDEN               = 3
    SCSU_VISIBLE               = 4
    SCSU_HIDDEN                = 5
    BINARY_VISIBLE             = 6
    BINARY_HIDDEN              = 7

    @property
    def hidden(self):
        return bool(self.value & 1)

    def decode(self, data: bytes):
        '''SCSU and binary data are returned untouched.'''
        if self in (StringFormatTypeID.EXTENDED_ASCII_VISIBLE, StringFormatTypeID.EXTENDED_ASCII_HIDDEN):
            return data.decode('latin1')
        if self in (StringFormatTypeID.UTF16_VISIBLE, StringFormatTypeID.UTF16_HIDDEN):
            return data.decode('utf-16-be')

        return data


class IDType(Enum):
    '''Who defined the id that follows: used by resource formats and unpackers'''
    STANDARD         = 0
    MMA_MANUFACTURER = 1
    REGISTERED       = 2
    NON_REGISTERED   = 3


class StandardResourceFormatID(Enum):
    SMF_TYPE_0 = 0
    SMF_TYPE_1 = 1
    DLS_1      = 2
    DLS_2      = 3
    DLS_2_1    = 4
    MOBILE_DLS = 5


class StandardUnpackerID(Enum):
    NONE = 0
    ZLIB = 1
