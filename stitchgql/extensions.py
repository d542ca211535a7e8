"""Loading of declarative ``extend type`` blocks.

A declaration file only ever adds fields to types the upstream API already
has::

    extend type Organization {
        "Sum of stargazers over the first repositories"
        countSum: Int
    }
"""
import typing
from dataclasses import dataclass

from graphql import (
    DocumentNode,
    GraphQLSyntaxError,
    ObjectTypeExtensionNode,
    parse,
    print_ast,
)

from .errors import ExtensionSyntaxError, FieldNameConflictError

TypeDefs = typing.Union[str, DocumentNode]


@dataclass(frozen=True)
class TypeExtension:
    type_name: str
    field_name: str
    type: str
    description: typing.Optional[str] = None

    @property
    def coordinate(self) -> str:
        return f'{self.type_name}.{self.field_name}'


def parse_type_defs(type_defs: TypeDefs) -> DocumentNode:
    if isinstance(type_defs, DocumentNode):
        return type_defs
    try:
        return parse(type_defs)
    except GraphQLSyntaxError as exc:
        raise ExtensionSyntaxError(exc.message) from exc


def load_extensions(type_defs: TypeDefs) -> typing.List[TypeExtension]:
    document = parse_type_defs(type_defs)
    extensions: typing.List[TypeExtension] = []
    seen = set()
    for definition in document.definitions:
        if not isinstance(definition, ObjectTypeExtensionNode):
            raise ExtensionSyntaxError(
                f'Only "extend type" definitions are allowed, got {definition.kind}.'
            )
        type_name = definition.name.value
        for field in definition.fields or ():
            if field.arguments:
                raise ExtensionSyntaxError(
                    f'Derived field {type_name}.{field.name.value} can not declare arguments.'
                )
            extension = TypeExtension(
                type_name=type_name,
                field_name=field.name.value,
                type=print_ast(field.type),
                description=field.description.value if field.description else None,
            )
            if extension.coordinate in seen:
                raise FieldNameConflictError(f'Field {extension.coordinate} is declared twice.')
            seen.add(extension.coordinate)
            extensions.append(extension)
    return extensions


def _print_description(description: str) -> str:
    escaped = description.replace('\\', '\\\\').replace('"', '\\"').replace('\n', '\\n')
    return f'"{escaped}"'


def print_extensions(extensions: typing.Iterable[TypeExtension]) -> str:
    by_type: typing.Dict[str, typing.List[TypeExtension]] = {}
    for extension in extensions:
        by_type.setdefault(extension.type_name, []).append(extension)

    blocks = []
    for type_name, fields in by_type.items():
        lines = [f'extend type {type_name} {{']
        for field in fields:
            if field.description:
                lines.append(f'  {_print_description(field.description)}')
            lines.append(f'  {field.field_name}: {field.type}')
        lines.append('}')
        blocks.append('\n'.join(lines))
    return '\n\n'.join(blocks)
