import logging
import typing
from dataclasses import dataclass, field

from graphql import (
    GraphQLObjectType,
    GraphQLSchema,
    GraphQLSyntaxError,
    NoUnusedFragmentsRule,
    build_client_schema,
    extend_schema,
    introspection_from_schema,
    is_introspection_type,
    is_output_type,
    parse,
    parse_type,
    print_ast,
    specified_rules,
    type_from_ast,
    validate,
)

from .compute import ComputeBinding
from .delegate import QueryRewriter, make_compute_resolver, make_root_resolver, resolve_upstream_field
from .errors import ExtensionSyntaxError, FieldNameConflictError, TemplateNotFoundError, UnknownTypeError
from .extensions import TypeExtension, print_extensions
from .templates import DataFetchTemplate

logger = logging.getLogger(__name__)

TEMPLATE_RULES = tuple(rule for rule in specified_rules if rule is not NoUnusedFragmentsRule)


@dataclass(frozen=True)
class ComposedSchema:
    schema: GraphQLSchema
    upstream_schema: GraphQLSchema
    extensions: typing.Tuple[TypeExtension, ...]
    bindings: typing.Mapping[typing.Tuple[str, str], ComputeBinding] = field(default_factory=dict)

    def binding(self, type_name: str, field_name: str) -> ComputeBinding:
        try:
            return self.bindings[(type_name, field_name)]
        except KeyError:
            raise TemplateNotFoundError(f'{type_name}.{field_name} is not a derived field.') from None

    def field_names(self, type_name: str) -> typing.Set[str]:
        type_ = self.schema.get_type(type_name)
        return set(type_.fields) if isinstance(type_, GraphQLObjectType) else set()


def root_types(schema: GraphQLSchema) -> typing.List[GraphQLObjectType]:
    return [type_ for type_ in (schema.query_type, schema.mutation_type, schema.subscription_type) if type_]


def check_extension(upstream_schema: GraphQLSchema, extension: TypeExtension) -> GraphQLObjectType:
    type_ = upstream_schema.get_type(extension.type_name)
    if type_ is None:
        raise UnknownTypeError(f'Can not extend unknown type {extension.type_name}.', type=extension.type_name)
    if not isinstance(type_, GraphQLObjectType):
        raise UnknownTypeError(f'{extension.type_name} is not an object type.', type=extension.type_name)
    if type_ in root_types(upstream_schema):
        raise ExtensionSyntaxError(f'Root type {extension.type_name} can not have derived fields.')
    if extension.field_name in type_.fields:
        raise FieldNameConflictError(
            f'Field {extension.coordinate} already exists upstream, choose another name.',
            field=extension.coordinate,
        )
    try:
        output_type = type_from_ast(upstream_schema, parse_type(extension.type))
    except GraphQLSyntaxError as exc:
        raise ExtensionSyntaxError(f'Invalid type {extension.type!r} of {extension.coordinate}: {exc.message}') from exc
    if output_type is None or not is_output_type(output_type):
        raise UnknownTypeError(
            f'Derived field {extension.coordinate} has unknown output type {extension.type}.', type=extension.type
        )
    return type_


def check_template(
    upstream_schema: GraphQLSchema,
    type_: GraphQLObjectType,
    template: DataFetchTemplate,
    extension_names: typing.Set[str],
) -> None:
    if template.name in type_.fields or template.name in extension_names:
        raise FieldNameConflictError(
            f'Template name {template.name!r} collides with field {type_.name}.{template.name}.'
        )
    for node in template.fields:
        key = (node.alias or node.name).value
        plain = node.alias is None and not node.arguments
        if (key in type_.fields and not plain) or key in extension_names:
            raise FieldNameConflictError(
                f'Template {template.name!r} selects {key!r}, which collides with field {type_.name}.{key}; '
                'alias it to a free name.'
            )

    errors = validate(upstream_schema, parse(template.to_fragment()), TEMPLATE_RULES)
    if errors:
        raise ExtensionSyntaxError(
            f'Template {template.name!r} is invalid: ' + '; '.join(error.message for error in errors)
        )


def check_template_keys(templates: typing.Iterable[DataFetchTemplate]) -> None:
    """Templates spliced into the same selection must agree on their shared response keys."""
    seen: typing.Dict[typing.Tuple[str, str], typing.Tuple[str, str]] = {}
    for template in templates:
        for node in template.fields:
            key = (template.type_name, (node.alias or node.name).value)
            printed = print_ast(node)
            other = seen.setdefault(key, (template.name, printed))
            if other[1] != printed:
                raise FieldNameConflictError(
                    f'Templates {other[0]!r} and {template.name!r} select {key[0]}.{key[1]} differently.'
                )


def merge(
    upstream_schema: GraphQLSchema,
    extensions: typing.Sequence[TypeExtension],
    bindings: typing.Sequence[ComputeBinding],
) -> ComposedSchema:
    by_field = {(binding.type_name, binding.field_name): binding for binding in bindings}
    declared = {(extension.type_name, extension.field_name) for extension in extensions}

    extension_names: typing.Dict[str, typing.Set[str]] = {}
    for extension in extensions:
        extension_names.setdefault(extension.type_name, set()).add(extension.field_name)

    templates: typing.Dict[str, typing.Dict[str, DataFetchTemplate]] = {}
    checked: typing.Set[typing.Tuple[str, str]] = set()
    for extension in extensions:
        type_ = check_extension(upstream_schema, extension)
        binding = by_field.get((extension.type_name, extension.field_name))
        if binding is None:
            raise TemplateNotFoundError(f'Derived field {extension.coordinate} has no compute binding.')
        template = binding.template
        if (template.type_name, template.name) not in checked:
            check_template(upstream_schema, type_, template, extension_names[extension.type_name])
            checked.add((template.type_name, template.name))
        templates.setdefault(extension.type_name, {})[extension.field_name] = template

    undeclared = sorted(f'{type_name}.{field_name}' for type_name, field_name in set(by_field) - declared)
    if undeclared:
        raise ExtensionSyntaxError(f'Compute bindings for undeclared fields: {", ".join(undeclared)}.')
    unique = {(t.type_name, t.name): t for fields in templates.values() for t in fields.values()}
    check_template_keys(unique.values())

    if extensions:
        schema = extend_schema(upstream_schema, parse(print_extensions(extensions)))
    else:
        # extend_schema hands back the very same schema for an empty document
        schema = build_client_schema(introspection_from_schema(upstream_schema))

    rewriter = QueryRewriter(schema, templates)
    resolve_root = make_root_resolver(rewriter)
    roots = root_types(schema)
    for type_ in schema.type_map.values():
        if not isinstance(type_, GraphQLObjectType) or is_introspection_type(type_):
            continue
        for field_name, field_ in type_.fields.items():
            if (type_.name, field_name) in declared:
                field_.resolve = make_compute_resolver(by_field[(type_.name, field_name)])
            elif type_ in roots:
                field_.resolve = resolve_root
            else:
                field_.resolve = resolve_upstream_field

    logger.info(
        'Composed schema with %d derived field(s): %s',
        len(extensions),
        ', '.join(extension.coordinate for extension in extensions) or '-',
    )
    return ComposedSchema(
        schema=schema,
        upstream_schema=upstream_schema,
        extensions=tuple(extensions),
        bindings={key: by_field[key] for key in declared},
    )
