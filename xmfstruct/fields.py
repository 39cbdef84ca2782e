"""
A Field is "fundamental" datatype from the format point of view, something directly
unpackable without the need of sub-components.
"""
import logging
import struct
from enum import Flag, auto

from .enum import Compliant
from .meta import FieldBase, Endianess
from .properties import ChunkPhase, PropertyDescriptor, Dependency
from .exceptions import (
    FormatException,
    MagicException,
    SizeMismatchException,
    XMFStructException,
)


class Field(FieldBase):
    """Base class to subclass from"""
    logger = logging.getLogger(__name__)

    def __init__(self, *args, name=None, father=None, default=None, offset=None,
                 endianess=Endianess.BIG_ENDIAN, compliant=Compliant.INHERIT, is_magic=False):
        super().__init__()
        self._phase = ChunkPhase.INIT
        self.name = name
        self.father = father
        self.default = default
        self.offset = offset
        self.endianess = endianess
        self.compliant = compliant
        self.is_magic = is_magic

        self.init()

    def init(self):
        self.value = self.value_from_default()

    def value_from_default(self):
        return self.default

    def __str__(self):
        return str(self.value)

    def __repr__(self):
        return '<%s(%r)>' % (self.__class__.__name__, self.value)

    @property
    def root(self):
        '''Obtain the final father of this field'''
        instance = self
        while instance.father is not None:
            instance = instance.father

        return instance

    def is_compliant(self, level):
        '''Walk up the hierarchy until a field without INHERIT is found: if
        nobody says otherwise the format is strict.'''
        instance = self
        while instance is not None:
            if instance.compliant & level:
                return True
            if not instance.compliant & Compliant.INHERIT:
                return False

            instance = instance.father

        return bool(Compliant.STRICT & level)

    def _get_value(self):
        return self._value

    def _set_value(self, value):
        self._value = value

    value = property(
        fget=lambda self: self._get_value(),
        fset=lambda self, value: self._set_value(value))

    def _get_size(self):
        raise NotImplementedError(f"method {self.__class__.__name__}._get_size() not implemented")

    size = property(
        fget=lambda self: self._get_size(),
    )

    def _get_raw(self) -> bytes:
        return getattr(self, '_raw', b'')

    raw = property(
        fget=lambda self: self._get_raw(),
    )

    def unpack(self, stream):
        raise NotImplementedError('you need to implement this in the subclass')

    def _check_magic(self, value):
        if self.is_magic and value != self.default:
            self.logger.warning(f'the magic doesn\'t correspond: {value!r} instead of {self.default!r}')
            if self.is_compliant(Compliant.MAGIC):
                raise MagicException(chain=[], offset=self.offset, expected=repr(self.default),
                                     message='wrong magic')

    def _to_enum(self, enum, value):
        '''Convert value to a member of enum: unknown values are an error for
        compliant fields, otherwise they are kept as they are.'''
        try:
            return enum(value)
        except ValueError:
            if self.is_compliant(Compliant.ENUM):
                raise FormatException(chain=[], offset=self.offset,
                                      expected=f'one of {[_.value for _ in enum]}',
                                      message=f'unknown {enum.__name__} value {value!r}')

            self.logger.warning(f'enum {enum!r} doesn\'t have element with value {value!r} in it')

            return value


class StructField(Field):
    """
    Simplest of the fields: mimic the behaviour of the struct module unpacking
    integers from bytes.

    The main advantage is the possibility to indicate via the "enum" argument some subclass
    of enum.Enum so to have directly a representation of the integer value of the field itself.
    """

    def __init__(self, format, default=0, enum=None, **kw):
        self.format = format
        self.enum = enum
        super().__init__(default=default, **kw)

    def __repr__(self):
        if not self.enum and isinstance(self.value, int):
            return '<%s(%s)>' % (self.__class__.__name__, hex(self.value))

        return f'<{self.__class__.__name__}({self.value!r})>'

    def value_from_default(self):
        if not self.enum or isinstance(self.default, self.enum):
            return super().value_from_default()

        try:
            return self.enum(self.default)
        except ValueError:
            return self.default

    def get_format(self):
        return '%s%s' % ('<' if self.endianess == Endianess.LITTLE_ENDIAN else '>', self.format)

    def _get_size(self):
        return struct.calcsize(self.get_format())

    def unpack(self, stream):
        self.offset = stream.tell()
        self._raw = stream.read(self.size)
        self.value = self._unpack(self._raw)

    def _unpack(self, raw):
        value = struct.unpack(self.get_format(), raw)[0]

        if self.enum:
            value = self._to_enum(self.enum, value)

        self._check_magic(value)

        return value


class StringField(Field):
    """Represent a contiguous chunk of bytes."""

    length = PropertyDescriptor('length', int)

    def __init__(self, n=None, **kw):
        if n is None and 'default' not in kw:
            raise ValueError("StringField must have 'n' or 'default' indicated!")

        self.length = n if n is not None else len(kw['default'])

        super().__init__(**kw)

    def __len__(self):
        return len(self.value)

    def value_from_default(self):
        return self.default or b''

    def _get_size(self):
        return len(self.value)

    def unpack(self, stream):
        self.offset = stream.tell()
        self._raw = stream.read(self.length)
        self.value = self._raw
        self._check_magic(self.value)


class ArrayField(Field):
    '''Unpack an array of Chunks.

    You can indicate an explicit number of elements via the parameter named "n",
    with a callable returning True which element is the terminator
    for the list via the parameter named "canary" or the number of bytes the
    elements must occupy via the parameter named "length".

    This class must behave like a list in python.
    '''

    n = PropertyDescriptor('n', int)
    length = PropertyDescriptor('length', int)

    def __init__(self, field_cls, n=None, canary=None, length=None, **kw):
        if [n, canary, length].count(None) != 2:
            raise ValueError('ArrayField needs exactly one between "n", "canary" and "length"')

        self.field_cls = field_cls
        self.n = n
        self.length = length
        self._canary = canary

        kw.setdefault('default', [])
        super().__init__(**kw)

    def value_from_default(self):
        return list(self.default)

    def __getitem__(self, item):
        return self.value[item]

    def __iter__(self):
        return iter(self.value)

    def __len__(self):
        return len(self.value)

    def _get_raw(self):
        return b''.join(_.raw for _ in self.value)

    def _get_size(self):
        return sum(_.size for _ in self.value)

    def instance_element(self):
        # pass the father so that we don't lose the hierarchy
        if isinstance(self.field_cls, type):
            return self.field_cls(father=self)

        return self.field_cls.create(father=self)

    def unpack_element(self, index, stream):
        element = self.instance_element()
        element.name = str(index)

        try:
            element.unpack(stream)
        except XMFStructException as e:
            e.chain.append(str(index))
            raise

        self.value.append(element)

        return element

    def unpack(self, stream):
        self.offset = stream.tell()
        self.value = []

        if self._canary is not None:
            self._unpack_until_canary(stream)
        elif 'length' in self.__dict__ and self.__dict__['length'] is not None:
            self._unpack_length(stream)
        else:
            for index in range(self.n):
                self.unpack_element(index, stream)

    def _unpack_until_canary(self, stream):
        index = 0
        while True:
            element = self.unpack_element(index, stream)
            if self._canary(element):
                break
            index += 1

    def _unpack_length(self, stream):
        '''The terminator is address based: we continue until the bytes
        consumed reach the declared length.'''
        end = self.offset + self.length
        index = 0

        while stream.tell() < end:
            before = stream.tell()
            self.unpack_element(index, stream)

            if stream.tell() <= before:
                raise FormatException(chain=[], offset=before, message='no progress unpacking array element')
            index += 1

        if stream.tell() != end:
            raise SizeMismatchException(chain=[], offset=stream.tell(),
                                        expected=f'array to end at offset 0x{end:x}',
                                        message='array elements overflow the declared length')


class SelectField(Field):
    """Allow to select the kind of final field based on condition in the parent chunk.
    You need to pass the key, i.e. the name of the field in the father, a Dependency or a
    callable receiving the father, and a dictionary with the mapping between values and fields
    (an instance used as prototype or a class). You can use Type.DEFAULT as a default;
    without it an unknown key is an error.

    The mapping can be also a callable returning the dictionary, useful for recursive formats
    where a field is defined before the chunks it maps to.

    Like in the following example we have a format the use the first 4 bytes to indicate what
    follows: for value zero you have another 4 bytes, otherwise you have a ten bytes string

        class DummyType(Enum):
            FIRST = 0
            SECOND = 1

        type2field = {
            DummyType.FIRST: fields.StructField('I'),
            DummyType.SECOND: fields.StringField(0x10),
        }

        class DummyChunk(Chunk):
            type = fields.StructField('I', enum=DummyType)
            data = fields.SelectField('type', type2field)
    """
    class Type(Flag):
        DEFAULT = auto()

    def __init__(self, key, mapping, **kwargs):
        self._key = key
        self._mapping = mapping
        self._field = None

        super().__init__(**kwargs)

    def __repr__(self):
        return f'<{self.__class__.__name__}{self._field!r}>'

    @property
    def field(self):
        return self._field

    @property
    def mapping(self):
        return self._mapping() if callable(self._mapping) else self._mapping

    def init(self):
        pass

    def _get_value(self):
        return self._field.value if self._field is not None else None

    def _set_value(self, value):
        self._field.value = value

    def _get_raw(self) -> bytes:
        return self._field.raw if self._field is not None else b''

    def _get_size(self) -> int:
        return self._field.size if self._field is not None else 0

    def resolve_key(self):
        if isinstance(self._key, Dependency):
            return self._key.resolve(self)
        if callable(self._key):
            return self._key(self.father)

        return getattr(self.father, self._key).value

    def select(self):
        field_key = self.resolve_key()
        mapping = self.mapping

        self.logger.debug('using key \'%s\' for \'%s\'' % (field_key, self.name))

        if field_key in mapping:
            prototype = mapping[field_key]
        elif SelectField.Type.DEFAULT in mapping:
            prototype = mapping[SelectField.Type.DEFAULT]
        else:
            raise FormatException(chain=[], offset=self.offset,
                                  expected=f'one of {[_ for _ in mapping]}',
                                  message=f'no field available for {field_key!r}')

        # the chosen field lives at the same level of the selector
        field = prototype(father=self.father) if isinstance(prototype, type) else prototype.create(father=self.father)
        field.name = self.name

        return field

    def unpack(self, stream):
        self.offset = stream.tell()
        self._field = self.select()
        self._field.unpack(stream)
        self.logger.debug(f'unpacked {self._field!r}')


class PaddingField(Field):
    '''Skip "n" bytes.
    A negative amount means the data before has overflowed the space reserved for it.'''

    n = PropertyDescriptor('n', int)

    def __init__(self, n, **kw):
        self.n = n
        kw.setdefault('default', b'')
        super().__init__(**kw)

    def _get_size(self):
        return len(self.value)

    def unpack(self, stream):
        self.offset = stream.tell()
        n = self.n

        if n < 0:
            raise SizeMismatchException(chain=[], offset=self.offset,
                                        expected=f'{-n} bytes less',
                                        message='data overflows the declared size')

        self._raw = stream.read(n)
        self.value = self._raw


class NullField(Field):
    '''Placeholder for something that is not there.'''

    def _get_size(self):
        return 0

    def unpack(self, stream):
        self.offset = stream.tell()
