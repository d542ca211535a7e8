import typing
from collections import ChainMap
from dataclasses import dataclass

from graphql import (
    FieldNode,
    FragmentDefinitionNode,
    GraphQLSyntaxError,
    NameNode,
    SelectionSetNode,
    parse,
    print_ast,
)

from .errors import ExtensionSyntaxError, FieldNameConflictError, TemplateNotFoundError

FieldPathTree = typing.Union[str, typing.Mapping[str, typing.Any]]


@dataclass(frozen=True)
class DataFetchTemplate:
    """A named selection that is fetched along with every parent it is bound to."""

    name: str
    type_name: str
    selection_set: SelectionSetNode

    @property
    def fields(self) -> typing.List[FieldNode]:
        return [node for node in self.selection_set.selections if isinstance(node, FieldNode)]

    @property
    def response_keys(self) -> typing.List[str]:
        return [(node.alias or node.name).value for node in self.fields]

    def to_fragment(self) -> str:
        return f'fragment {self.name} on {self.type_name} {print_ast(self.selection_set)}'

    def key_alias(self, key: str) -> str:
        """The alias a top-level key is fetched under, kept apart from the client's own aliases."""
        return f'_stitch_{self.name}_{key}'

    def aliased_selection_set(self) -> SelectionSetNode:
        selections: typing.List[typing.Any] = []
        for node in self.selection_set.selections:
            if isinstance(node, FieldNode):
                node = FieldNode(
                    alias=NameNode(value=self.key_alias((node.alias or node.name).value)),
                    name=node.name,
                    arguments=list(node.arguments or []),
                    directives=list(node.directives or []),
                    selection_set=node.selection_set,
                )
            selections.append(node)
        return SelectionSetNode(selections=selections)

    def unalias(self, parent: typing.Any) -> typing.Any:
        """View ``parent`` with the template's keys in place of the aliases they were fetched under."""
        if not isinstance(parent, typing.Mapping):
            return parent
        fetched = {}
        for key in self.response_keys:
            alias = self.key_alias(key)
            if alias in parent:
                fetched[key] = parent[alias]
        return ChainMap(fetched, parent)


def tree_to_selection(tree: typing.Mapping[str, typing.Any]) -> str:
    """Render ``{'repos: repositories(first: 20)': {'nodes': {'id': None}}}`` as a selection set."""
    parts = []
    for key, child in tree.items():
        if child is None or child is True:
            parts.append(key)
        elif isinstance(child, typing.Mapping):
            parts.append(f'{key} {tree_to_selection(child)}')
        else:
            raise ExtensionSyntaxError(f'Invalid template node {key!r}: {child!r}')
    return '{ ' + ' '.join(parts) + ' }'


def build_template(type_name: str, template_name: str, field_path_tree: FieldPathTree) -> DataFetchTemplate:
    if isinstance(field_path_tree, typing.Mapping):
        source = f'fragment {template_name} on {type_name} {tree_to_selection(field_path_tree)}'
    elif field_path_tree.lstrip().startswith('fragment'):
        source = field_path_tree
    else:
        source = f'fragment {template_name} on {type_name} {field_path_tree}'

    try:
        document = parse(source, no_location=True)
    except GraphQLSyntaxError as exc:
        raise ExtensionSyntaxError(f'Invalid template {template_name!r}: {exc.message}') from exc

    if len(document.definitions) != 1 or not isinstance(document.definitions[0], FragmentDefinitionNode):
        raise ExtensionSyntaxError(f'Template {template_name!r} must be a single fragment.')
    fragment = document.definitions[0]
    if fragment.type_condition.name.value != type_name:
        raise ExtensionSyntaxError(
            f'Template {template_name!r} is defined on {fragment.type_condition.name.value}, '
            f'expected {type_name}.'
        )
    return DataFetchTemplate(name=template_name, type_name=type_name, selection_set=fragment.selection_set)


class TemplateRegistry:
    _templates: typing.Dict[typing.Tuple[str, str], DataFetchTemplate]
    _bound: typing.Dict[typing.Tuple[str, str], str]

    def __init__(self) -> None:
        self._templates = {}
        self._bound = {}

    def __iter__(self) -> typing.Iterator[DataFetchTemplate]:
        return iter(self._templates.values())

    def __len__(self) -> int:
        return len(self._templates)

    def register(self, type_name: str, template_name: str, field_path_tree: FieldPathTree) -> DataFetchTemplate:
        key = (type_name, template_name)
        if key in self._templates:
            raise FieldNameConflictError(f'Template {template_name!r} is already registered on {type_name}.')
        template = self._templates[key] = build_template(type_name, template_name, field_path_tree)
        return template

    def get(self, type_name: str, template_name: str) -> DataFetchTemplate:
        try:
            return self._templates[(type_name, template_name)]
        except KeyError:
            raise TemplateNotFoundError(f'No template {template_name!r} registered on {type_name}.') from None

    def bind(self, type_name: str, field_name: str, template_name: str) -> DataFetchTemplate:
        template = self.get(type_name, template_name)
        self._bound[(type_name, field_name)] = template_name
        return template

    def lookup(self, type_name: str, field_name: str) -> DataFetchTemplate:
        try:
            template_name = self._bound[(type_name, field_name)]
        except KeyError:
            raise TemplateNotFoundError(f'Derived field {type_name}.{field_name} has no fetch template.') from None
        return self._templates[(type_name, template_name)]
