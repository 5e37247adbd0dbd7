"""
Schema registry: the explicit table binding each root field to its resolver.

The registry is built once at import time and is read-only afterwards, so it
can be shared by every request without synchronization. It also knows how to
coerce client-supplied argument values into the Python values resolvers
expect, and can render itself as a graphql-core schema for introspection.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from graphql import (
    GraphQLArgument,
    GraphQLBoolean,
    GraphQLError,
    GraphQLField,
    GraphQLFloat,
    GraphQLID,
    GraphQLInputField,
    GraphQLInputObjectType,
    GraphQLInt,
    GraphQLList,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLScalarType,
    GraphQLSchema,
    GraphQLString,
    get_introspection_query,
    graphql_sync,
    print_schema,
)
from graphql import validate_schema as gql_validate_schema
from graphql.language import ListTypeNode, NamedTypeNode, NonNullTypeNode, TypeNode, parse_type
from graphql.pyutils import Undefined

from ..errors import ArgumentTypeMismatch, MissingArgument, UnknownArgument, UnknownOperation
from ..logging import get_logger
from .resolvers.user import create_user, resolve_user_by_id, resolve_users
from .types.user import UserInput

logger = get_logger(__name__)


class Root(str, Enum):
    QUERY = "Query"
    MUTATION = "Mutation"


Resolver = Callable[..., Awaitable[Any]]


def type_ref(sdl: str) -> TypeNode:
    """Parse an SDL type reference such as ``[User!]!``."""
    return parse_type(sdl)


def named_type(node: TypeNode) -> str:
    while not isinstance(node, NamedTypeNode):
        node = node.type
    return node.name.value


def type_str(node: TypeNode) -> str:
    if isinstance(node, NonNullTypeNode):
        return f"{type_str(node.type)}!"
    if isinstance(node, ListTypeNode):
        return f"[{type_str(node.type)}]"
    return node.name.value


@dataclass(frozen=True)
class FieldSpec:
    """A field exposed on an object type."""

    name: str
    type: TypeNode
    attr: str
    description: str | None = None


@dataclass(frozen=True)
class ObjectShape:
    name: str
    fields: Mapping[str, FieldSpec]
    description: str | None = None


@dataclass(frozen=True)
class InputFieldSpec:
    name: str
    type: TypeNode
    python_name: str
    allow_empty: bool = True
    description: str | None = None


@dataclass(frozen=True)
class InputShape:
    name: str
    fields: Mapping[str, InputFieldSpec]
    factory: Callable[..., Any]
    description: str | None = None


@dataclass(frozen=True)
class ArgumentSpec:
    name: str
    type: TypeNode
    python_name: str
    default: Any = Undefined
    description: str | None = None


@dataclass(frozen=True)
class OperationSpec:
    """One root field: its arguments, result shape and bound resolver."""

    root: Root
    name: str
    result: TypeNode
    resolver: Resolver
    arguments: Mapping[str, ArgumentSpec] = field(default_factory=dict)
    description: str | None = None


# Built-in scalars; graphql-core owns their input coercion rules
SCALARS: Mapping[str, GraphQLScalarType] = MappingProxyType(
    {
        "Int": GraphQLInt,
        "Float": GraphQLFloat,
        "String": GraphQLString,
        "Boolean": GraphQLBoolean,
        "ID": GraphQLID,
    }
)


class SchemaRegistry:
    """Read-only mapping from ``(root, field name)`` to an operation descriptor."""

    def __init__(
        self,
        operations: Iterable[OperationSpec],
        objects: Iterable[ObjectShape] = (),
        inputs: Iterable[InputShape] = (),
    ) -> None:
        self._operations = MappingProxyType({(op.root, op.name): op for op in operations})
        self._objects = MappingProxyType({obj.name: obj for obj in objects})
        self._inputs = MappingProxyType({shape.name: shape for shape in inputs})
        self._graphql_schema: GraphQLSchema | None = None

    def lookup(self, root: Root, name: str) -> OperationSpec:
        try:
            return self._operations[(root, name)]
        except KeyError:
            raise UnknownOperation(f'Cannot query field "{name}" on type "{root.value}".') from None

    def root_fields(self, root: Root) -> list[OperationSpec]:
        return [op for (r, _), op in self._operations.items() if r is root]

    def object_type(self, name: str) -> ObjectShape | None:
        return self._objects.get(name)

    def input_type(self, name: str) -> InputShape | None:
        return self._inputs.get(name)

    def is_known_type(self, name: str) -> bool:
        return name in SCALARS or name in self._objects or name in self._inputs

    def graphql_field(self, root: Root, name: str) -> GraphQLField:
        """The graphql-core definition of a root field, used to coerce its arguments."""
        root_type = self.graphql_schema.get_type(root.value)
        if not isinstance(root_type, GraphQLObjectType) or name not in root_type.fields:
            raise UnknownOperation(f'Cannot query field "{name}" on type "{root.value}".')
        return root_type.fields[name]

    # Argument coercion

    def coerce_arguments(self, op: OperationSpec, supplied: Mapping[str, Any]) -> dict[str, Any]:
        """Validate supplied argument values against ``op`` and return resolver kwargs.

        ``supplied`` maps argument names to raw values; a value of ``Undefined``
        means the argument was referenced through a variable that was not given.
        """
        for name in supplied:
            if name not in op.arguments:
                raise UnknownArgument(
                    f'Unknown argument "{name}" on field "{op.root.value}.{op.name}".',
                    argument=name,
                )

        kwargs: dict[str, Any] = {}
        for arg in op.arguments.values():
            value = supplied.get(arg.name, Undefined)
            if value is Undefined and arg.default is not Undefined:
                value = arg.default
            if value is Undefined and isinstance(arg.type, NonNullTypeNode):
                raise MissingArgument(
                    f'Field "{op.name}" argument "{arg.name}" of type "{type_str(arg.type)}" '
                    "is required, but it was not provided.",
                    argument=arg.name,
                )
            if value is Undefined:
                continue
            kwargs[arg.python_name] = self.coerce_value(arg.type, value, arg.name)
        return kwargs

    def coerce_value(self, type_node: TypeNode, value: Any, path: str) -> Any:
        if isinstance(type_node, NonNullTypeNode):
            if value is None or value is Undefined:
                raise MissingArgument(
                    f'Argument "{path}" of non-null type "{type_str(type_node)}" must not be null.',
                    argument=path,
                )
            return self.coerce_value(type_node.type, value, path)

        if value is None or value is Undefined:
            return None

        if isinstance(type_node, ListTypeNode):
            items = value if isinstance(value, (list, tuple)) else [value]
            return [
                self.coerce_value(type_node.type, item, f"{path}[{i}]")
                for i, item in enumerate(items)
            ]

        name = type_node.name.value
        if name in SCALARS:
            try:
                return SCALARS[name].coerce_input_value(value)
            except GraphQLError as e:
                raise ArgumentTypeMismatch(
                    f'Argument "{path}" has invalid value {value!r}: {e.message}', argument=path
                ) from e

        shape = self._inputs.get(name)
        if shape is None:
            raise ArgumentTypeMismatch(f'Unknown input type "{name}".', argument=path)
        return self._coerce_input_object(shape, value, path)

    def _coerce_input_object(self, shape: InputShape, value: Any, path: str) -> Any:
        if not isinstance(value, Mapping):
            raise ArgumentTypeMismatch(
                f'Argument "{path}" has invalid value {value!r}: '
                f'expected an object of type "{shape.name}".',
                argument=path,
            )
        for key in value:
            if key not in shape.fields:
                raise ArgumentTypeMismatch(
                    f'Field "{key}" is not defined by type "{shape.name}".',
                    argument=f"{path}.{key}",
                )

        kwargs = {}
        for spec in shape.fields.values():
            field_path = f"{path}.{spec.name}"
            raw = value.get(spec.name, Undefined)
            if raw is Undefined and isinstance(spec.type, NonNullTypeNode):
                raise MissingArgument(
                    f'Field "{shape.name}.{spec.name}" of required type '
                    f'"{type_str(spec.type)}" was not provided.',
                    argument=field_path,
                )
            coerced = self.coerce_value(spec.type, raw, field_path)
            if not spec.allow_empty and coerced == "":
                raise MissingArgument(
                    f'Argument "{field_path}" must not be empty.', argument=field_path
                )
            if raw is not Undefined:
                kwargs[spec.python_name] = coerced
        return shape.factory(**kwargs)

    # graphql-core rendering (introspection, SDL, startup validation)

    @property
    def graphql_schema(self) -> GraphQLSchema:
        if self._graphql_schema is None:
            self._graphql_schema = self._build_graphql_schema()
        return self._graphql_schema

    def _build_graphql_schema(self) -> GraphQLSchema:
        named: dict[str, Any] = dict(SCALARS)

        def to_gql(node: TypeNode) -> Any:
            if isinstance(node, NonNullTypeNode):
                return GraphQLNonNull(to_gql(node.type))
            if isinstance(node, ListTypeNode):
                return GraphQLList(to_gql(node.type))
            return named[node.name.value]

        for obj in self._objects.values():
            named[obj.name] = GraphQLObjectType(
                obj.name,
                lambda obj=obj: {
                    f.name: GraphQLField(to_gql(f.type), description=f.description)
                    for f in obj.fields.values()
                },
                description=obj.description,
            )
        for shape in self._inputs.values():
            named[shape.name] = GraphQLInputObjectType(
                shape.name,
                lambda shape=shape: {
                    f.name: GraphQLInputField(to_gql(f.type), description=f.description)
                    for f in shape.fields.values()
                },
                description=shape.description,
            )

        def root_type(root: Root) -> GraphQLObjectType | None:
            ops = self.root_fields(root)
            if not ops:
                return None
            return GraphQLObjectType(
                root.value,
                {
                    op.name: GraphQLField(
                        to_gql(op.result),
                        args={
                            a.name: GraphQLArgument(to_gql(a.type), description=a.description)
                            for a in op.arguments.values()
                        },
                        description=op.description,
                    )
                    for op in ops
                },
            )

        return GraphQLSchema(query=root_type(Root.QUERY), mutation=root_type(Root.MUTATION))

    def print_schema(self) -> str:
        return print_schema(self.graphql_schema)


def build_registry() -> SchemaRegistry:
    """Declare the entity shapes and bind every root field to its resolver."""
    user = ObjectShape(
        name="User",
        description="A registered user.",
        fields=MappingProxyType(
            {
                "id": FieldSpec("id", type_ref("Int!"), attr="id"),
                "name": FieldSpec("name", type_ref("String!"), attr="name"),
            }
        ),
    )
    user_input = InputShape(
        name="UserInput",
        description="Input for creating a new user.",
        factory=UserInput,
        fields=MappingProxyType(
            {
                "name": InputFieldSpec(
                    "name", type_ref("String!"), python_name="name", allow_empty=False
                ),
            }
        ),
    )

    operations = [
        OperationSpec(
            root=Root.QUERY,
            name="users",
            result=type_ref("[User!]!"),
            resolver=resolve_users,
            description="List all users.",
        ),
        OperationSpec(
            root=Root.QUERY,
            name="user",
            result=type_ref("User"),
            resolver=resolve_user_by_id,
            arguments=MappingProxyType(
                {"id": ArgumentSpec("id", type_ref("Int!"), python_name="id")}
            ),
            description="Get a user by ID.",
        ),
        OperationSpec(
            root=Root.MUTATION,
            name="createUser",
            result=type_ref("User"),
            resolver=create_user,
            arguments=MappingProxyType(
                {"input": ArgumentSpec("input", type_ref("UserInput!"), python_name="input")}
            ),
            description="Create a new user.",
        ),
    ]
    return SchemaRegistry(operations, objects=[user], inputs=[user_input])


# Process-wide registry, shared by reference across requests
registry = build_registry()


def validate_schema(schema_registry: SchemaRegistry | None = None) -> None:
    """Validate the schema at startup so a broken registry fails fast.

    Raises:
        Exception: If the schema is invalid or introspection fails
    """
    schema_registry = schema_registry or registry
    try:
        graphql_schema = schema_registry.graphql_schema

        errors = gql_validate_schema(graphql_schema)
        if errors:
            error_messages = [str(e) for e in errors]
            raise Exception(f"GraphQL schema validation failed: {'; '.join(error_messages)}")

        result = graphql_sync(graphql_schema, get_introspection_query())
        if result.errors:
            error_messages = [str(e) for e in result.errors]
            raise Exception(f"GraphQL introspection failed: {'; '.join(error_messages)}")

        logger.info("GraphQL schema validation successful")

    except Exception as e:
        logger.error("GraphQL schema validation failed", error=str(e))
        raise
