from .diagnostics import GeneratorError
from .names import to_pascal_case

__all__ = ['Resource', 'ResourceFactory']


class Resource:
    def __init__(self, name):
        self.name = name
        self.pascal_name = to_pascal_case(name)
        self.is_simple = True
        self.is_array = False
        self.is_multi_valued = False

    def __repr__(self):
        return f'Resource({self.name!r})'


class ResourceFactory:
    """Owns the named resources of one instruction set, keyed and iterated by name."""

    def __init__(self):
        self._resources = {}

    def create_resource(self, name):
        if name in self._resources:
            raise GeneratorError(f"Resource '{name}' already exists")
        resource = Resource(name)
        self._resources[name] = resource
        return resource

    def get_or_insert_resource(self, name):
        resource = self._resources.get(name)
        if resource is None:
            resource = self.create_resource(name)
        return resource

    @property
    def resource_map(self):
        return dict(sorted(self._resources.items()))
