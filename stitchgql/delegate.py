"""Delegation of root fields to the upstream API.

Every root field of an incoming operation is sent upstream on its own. Before
that, its selection is rewritten: derived fields are dropped (the upstream API
does not know them) and the fetch templates they are bound to are spliced in
as inline fragments under aliases of their own, so the parent objects come
back with everything the compute functions read.
"""
import logging
import typing

from graphql import (
    DocumentNode,
    FieldNode,
    FragmentDefinitionNode,
    FragmentSpreadNode,
    GraphQLNamedType,
    GraphQLResolveInfo,
    GraphQLSchema,
    InlineFragmentNode,
    NamedTypeNode,
    NameNode,
    OperationDefinitionNode,
    SelectionSetNode,
    Visitor,
    get_named_type,
    is_abstract_type,
    print_ast,
    visit,
)

from .compute import ComputeBinding
from .errors import UpstreamExecutionError
from .templates import DataFetchTemplate

logger = logging.getLogger(__name__)

Templates = typing.Mapping[str, typing.Mapping[str, DataFetchTemplate]]


class UpstreamObject(dict):
    """An object of an upstream result, with the upstream errors reported on its keys."""

    errors: typing.Dict[str, typing.List[dict]]

    def __init__(self, *args: typing.Any, **kwargs: typing.Any) -> None:
        super().__init__(*args, **kwargs)
        self.errors = {}

    def raise_for(self, key: str) -> None:
        errors = self.errors.get(key)
        if errors:
            raise UpstreamExecutionError('; '.join(error.get('message', '') for error in errors), errors)


def wrap_result(value: typing.Any) -> typing.Any:
    if isinstance(value, dict):
        return UpstreamObject((key, wrap_result(item)) for key, item in value.items())
    if isinstance(value, list):
        return [wrap_result(item) for item in value]
    return value


def attach_errors(data: UpstreamObject, errors: typing.Iterable[dict]) -> typing.List[dict]:
    """Hang every error on the deepest object its path reaches, returns the errors without a place."""
    unplaced = []
    for error in errors:
        path = error.get('path') or []
        target: typing.Any = data
        placed = False
        for index, key in enumerate(path):
            if isinstance(target, UpstreamObject) and (index == len(path) - 1 or target.get(key) is None):
                target.errors.setdefault(key, []).append(error)
                placed = True
                break
            try:
                target = target[key]
            except (KeyError, IndexError, TypeError):
                break
        if not placed:
            unplaced.append(error)
    return unplaced


class VariableCollector(Visitor):
    def __init__(self) -> None:
        super().__init__()
        self.names: typing.Set[str] = set()

    def enter_variable(self, node, *_args):
        self.names.add(node.name.value)


class QueryRewriter:
    schema: GraphQLSchema
    templates: Templates

    def __init__(self, schema: GraphQLSchema, templates: Templates) -> None:
        self.schema = schema
        self.templates = templates

    def rewrite_selection_set(
        self,
        selection_set: SelectionSetNode,
        parent_type: GraphQLNamedType,
        spreads: typing.Set[str],
    ) -> SelectionSetNode:
        derived = self.templates.get(parent_type.name, {})
        selections: typing.List[typing.Any] = []
        required: typing.Dict[str, DataFetchTemplate] = {}
        has_typename = False

        for selection in selection_set.selections:
            if isinstance(selection, FieldNode):
                name = selection.name.value
                if name in derived:
                    template = derived[name]
                    required.setdefault(template.name, template)
                    continue
                if name == '__typename':
                    has_typename = True
                if selection.selection_set:
                    field_type = get_named_type(parent_type.fields[name].type)
                    selection = FieldNode(
                        alias=selection.alias,
                        name=selection.name,
                        arguments=list(selection.arguments or []),
                        directives=list(selection.directives or []),
                        selection_set=self.rewrite_selection_set(selection.selection_set, field_type, spreads),
                    )
            elif isinstance(selection, InlineFragmentNode):
                fragment_type = (
                    self.schema.get_type(selection.type_condition.name.value)
                    if selection.type_condition
                    else parent_type
                )
                selection = InlineFragmentNode(
                    type_condition=selection.type_condition,
                    directives=list(selection.directives or []),
                    selection_set=self.rewrite_selection_set(selection.selection_set, fragment_type, spreads),
                )
            elif isinstance(selection, FragmentSpreadNode):
                spreads.add(selection.name.value)
            selections.append(selection)

        for template in required.values():
            selections.append(
                InlineFragmentNode(
                    type_condition=NamedTypeNode(name=NameNode(value=template.type_name)),
                    directives=[],
                    selection_set=template.aliased_selection_set(),
                )
            )
        if is_abstract_type(parent_type) and not has_typename:
            selections.append(FieldNode(name=NameNode(value='__typename'), arguments=[], directives=[]))
        return SelectionSetNode(selections=selections)

    def rewrite_fragments(
        self, fragments: typing.Mapping[str, FragmentDefinitionNode], spreads: typing.Set[str]
    ) -> typing.List[FragmentDefinitionNode]:
        rewritten: typing.Dict[str, FragmentDefinitionNode] = {}
        pending = list(spreads)
        while pending:
            name = pending.pop()
            if name in rewritten:
                continue
            fragment = fragments[name]
            nested: typing.Set[str] = set()
            rewritten[name] = FragmentDefinitionNode(
                name=fragment.name,
                type_condition=fragment.type_condition,
                directives=list(fragment.directives or []),
                selection_set=self.rewrite_selection_set(
                    fragment.selection_set, self.schema.get_type(fragment.type_condition.name.value), nested
                ),
            )
            pending.extend(nested - set(rewritten))
        return [rewritten[name] for name in sorted(rewritten)]

    def build_document(self, info: GraphQLResolveInfo) -> DocumentNode:
        spreads: typing.Set[str] = set()
        root_fields = []
        for field_node in info.field_nodes:
            if field_node.selection_set:
                field_type = get_named_type(info.parent_type.fields[field_node.name.value].type)
                field_node = FieldNode(
                    alias=field_node.alias,
                    name=field_node.name,
                    arguments=list(field_node.arguments or []),
                    directives=list(field_node.directives or []),
                    selection_set=self.rewrite_selection_set(field_node.selection_set, field_type, spreads),
                )
            root_fields.append(field_node)
        fragments = self.rewrite_fragments(info.fragments, spreads)

        selection_set = SelectionSetNode(selections=root_fields)
        collector = VariableCollector()
        for node in (selection_set, *fragments):
            visit(node, collector)
        variable_definitions = [
            definition
            for definition in info.operation.variable_definitions or ()
            if definition.variable.name.value in collector.names
        ]
        operation = OperationDefinitionNode(
            operation=info.operation.operation,
            name=info.operation.name,
            variable_definitions=variable_definitions,
            directives=[],
            selection_set=selection_set,
        )
        return DocumentNode(definitions=[operation, *fragments])


def upstream_variables(info: GraphQLResolveInfo, document: DocumentNode) -> typing.Dict[str, typing.Any]:
    context = info.context if isinstance(info.context, dict) else {}
    raw = context.get('upstream_variables')
    if raw is None:
        raw = info.variable_values
    used = {
        definition.variable.name.value
        for definition in document.definitions[0].variable_definitions
    }
    return {name: value for name, value in raw.items() if name in used}


def make_root_resolver(rewriter: QueryRewriter) -> typing.Callable:
    async def delegate_root_field(root: typing.Any, info: GraphQLResolveInfo, **_args: typing.Any) -> typing.Any:
        context = info.context if isinstance(info.context, dict) else {}
        upstream = context.get('upstream')
        if upstream is None:
            raise UpstreamExecutionError('No upstream API in the execution context.')

        document = rewriter.build_document(info)
        query = print_ast(document)
        variables = upstream_variables(info, document)
        logger.debug('Delegating %s.%s upstream:\n%s', info.parent_type.name, info.field_name, query)
        result = await upstream.execute(query, variables, context.get('upstream_headers'))

        key = info.path.key
        data = wrap_result(result.get('data') or {})
        unplaced = attach_errors(data, result.get('errors') or [])
        if unplaced:
            if data.get(key) is None:
                raise UpstreamExecutionError(
                    '; '.join(error.get('message', '') for error in unplaced), unplaced
                )
            logger.warning('Upstream errors without a path for %s: %s', key, unplaced)
        value = data.get(key)
        if value is None:
            data.raise_for(key)
        return value

    return delegate_root_field


def resolve_upstream_field(parent: typing.Any, info: GraphQLResolveInfo, **_args: typing.Any) -> typing.Any:
    """Read a field of a delegated result by its response key, so aliases keep working."""
    key = info.path.key
    if isinstance(parent, typing.Mapping):
        value = parent.get(key)
    else:
        value = getattr(parent, key, None)
    if value is None and isinstance(parent, UpstreamObject):
        parent.raise_for(key)
    return value


def make_compute_resolver(binding: ComputeBinding) -> typing.Callable:
    def resolve_derived_field(parent: typing.Any, info: GraphQLResolveInfo, **_args: typing.Any) -> typing.Any:
        return binding(binding.template.unalias(parent))

    resolve_derived_field.binding = binding
    return resolve_derived_field
