import logging
import inspect
from enum import Enum, auto
from typing import List, Tuple

from .meta import FieldBase


logger = logging.getLogger(__name__)


class ChunkPhase(Enum):
    '''Enum to state the actual phase of a chunk'''
    INIT      = 0
    UNPACKING = auto()
    DONE      = auto()


def get_root_from_chunk(instance):
    return get_instance_from_chunk(instance, condition=lambda x: x.father is None)


def get_instance_from_class_name(instance, name):
    return get_instance_from_chunk(instance, condition=lambda x: x.__class__.__name__ == name)


def get_instance_from_chunk(instance, condition):
    while not condition(instance):
        instance = instance.father

        if instance is None:
            raise AttributeError('no instance in the hierarchy satisfies the condition')

    return instance


class Dependency:
    '''This makes the relation between fields possible.

    We want that accessing this field the resolution is automagical.

    In practice this class allows to write something like

        class Simple(Chunk):
            length = VLQField()
            data = fields.StringField(n=Dependency('.length'))

    and have the (internal) length of the string contained in the field named 'data'
    strictly connected to the field named 'length'.

    The syntax for defining the expression is inspired from module resolution
    with an extra element via the first char of the expression: we have the following

     - '.' indicates we refer to a field at the same level
     - '@' indicates the the first component is the name of a class, the nearest
       ancestor with that name is used
     - nothing indicates the resolution starts from the root

    The last component can be a field (its value is used), a method (it's called)
    or a plain attribute (used as it is).
    '''
    def __init__(self, expression):
        self.expression = expression

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.expression})>'

    def _resolve_wrt_class(self, instance, fields_path: List[str]) -> Tuple[object, List[str]]:
        class_name = fields_path[0][1:]
        logger.debug('resolve from class name: \'%s\'' % class_name)
        field = get_instance_from_class_name(instance, class_name)

        return field, fields_path[1:]  # skip the first one that is already resolved

    def resolve_field(self, instance):
        logger.debug('trying to resolve \'%s\' for \'%s\'' % (
            self.expression,
            instance.__class__.__name__,
        ))

        # '.miao'.split(".") -> ['', 'miao']
        # 'miao'.split(".") -> ['miao']
        fields_path = self.expression.split('.')

        # find the root the resolution starts
        if fields_path[0] == '':  # we have a relative dependency
            field = instance.father
            fields_path = fields_path[1:]
        elif fields_path[0].startswith('@'):
            field, fields_path = self._resolve_wrt_class(instance, fields_path)
        else:
            field = get_root_from_chunk(instance)

        for component_name in fields_path:
            field = getattr(field, component_name)

        logger.debug(' resolved as %s' % field.__class__.__name__)

        return field

    def resolve(self, instance):
        '''With this method we resolve the attribute with respect to the instance
        passed as argument.'''
        field = self.resolve_field(instance)

        if inspect.ismethod(field) or inspect.isfunction(field):
            value = field()
        elif isinstance(field, FieldBase):
            value = field.value
        else:
            value = field

        logger.debug(' resolved with value %r' % (value,))

        return value


class PropertyDescriptor(object):
    """This the glue for dependency management: the attribute can be set to a plain
    value or to a Dependency that is resolved each time is accessed."""

    def __init__(self, name: str, _type: type):
        self.name = name
        self.type = _type

    def __get__(self, instance, owner):
        if instance is None:
            return self

        data = instance.__dict__
        if self.name not in data:
            raise AttributeError(f"no '{self.name}' here!")

        value = data[self.name]

        if isinstance(value, Dependency):
            if instance.father is None:
                raise AttributeError(f"'{self.name}' depends on {value!r} but the field is orphan")

            return value.resolve(instance)

        return value

    def __set__(self, instance, value):
        if not isinstance(value, (self.type, Dependency)) and value is not None:
            raise ValueError(f"A property must be of type {self.type} or a Dependency")

        instance.__dict__[self.name] = value
