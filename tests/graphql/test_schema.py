"""
Tests for the schema registry
"""

import dataclasses

import pytest

from usergraph.errors import (
    ArgumentTypeMismatch,
    MissingArgument,
    UnknownArgument,
    UnknownOperation,
)
from usergraph.graphql.schema import Root, SchemaRegistry, registry, validate_schema
from usergraph.graphql.types import UserInput


class TestLookup:
    def test_known_operations(self):
        assert registry.lookup(Root.QUERY, "users").name == "users"
        assert registry.lookup(Root.QUERY, "user").name == "user"
        assert registry.lookup(Root.MUTATION, "createUser").name == "createUser"

    def test_unknown_operation(self):
        with pytest.raises(UnknownOperation) as exc_info:
            registry.lookup(Root.QUERY, "accounts")

        assert exc_info.value.message == 'Cannot query field "accounts" on type "Query".'

    def test_lookup_is_scoped_to_root(self):
        with pytest.raises(UnknownOperation):
            registry.lookup(Root.QUERY, "createUser")
        with pytest.raises(UnknownOperation):
            registry.lookup(Root.MUTATION, "users")

    def test_root_fields(self):
        assert [op.name for op in registry.root_fields(Root.QUERY)] == ["users", "user"]
        assert [op.name for op in registry.root_fields(Root.MUTATION)] == ["createUser"]

    def test_object_and_input_types(self):
        assert list(registry.object_type("User").fields) == ["id", "name"]
        assert registry.object_type("Int") is None
        assert registry.input_type("UserInput").factory is UserInput
        assert registry.is_known_type("UserInput")
        assert not registry.is_known_type("Account")


class TestImmutability:
    def test_operation_table_cannot_be_modified(self):
        with pytest.raises(TypeError):
            registry._operations[(Root.QUERY, "extra")] = registry.lookup(Root.QUERY, "users")

    def test_descriptors_are_frozen(self):
        operation = registry.lookup(Root.QUERY, "users")

        with pytest.raises(dataclasses.FrozenInstanceError):
            operation.name = "everyone"  # type: ignore[misc]

    def test_argument_table_cannot_be_modified(self):
        operation = registry.lookup(Root.QUERY, "user")

        with pytest.raises(TypeError):
            operation.arguments["limit"] = operation.arguments["id"]  # type: ignore[index]


class TestCoerceArguments:
    def test_int_argument(self):
        operation = registry.lookup(Root.QUERY, "user")

        assert registry.coerce_arguments(operation, {"id": 3}) == {"id": 3}

    def test_integral_float_is_accepted_as_int(self):
        operation = registry.lookup(Root.QUERY, "user")

        assert registry.coerce_arguments(operation, {"id": 3.0}) == {"id": 3}

    @pytest.mark.parametrize("value", ["3", True, 1.5, 2**31])
    def test_invalid_int(self, value):
        operation = registry.lookup(Root.QUERY, "user")

        with pytest.raises(ArgumentTypeMismatch) as exc_info:
            registry.coerce_arguments(operation, {"id": value})
        assert exc_info.value.argument == "id"

    def test_missing_required_argument(self):
        operation = registry.lookup(Root.QUERY, "user")

        with pytest.raises(MissingArgument) as exc_info:
            registry.coerce_arguments(operation, {})

        assert exc_info.value.message == (
            'Field "user" argument "id" of type "Int!" is required, but it was not provided.'
        )

    def test_null_for_non_null_argument(self):
        operation = registry.lookup(Root.QUERY, "user")

        with pytest.raises(MissingArgument):
            registry.coerce_arguments(operation, {"id": None})

    def test_unknown_argument(self):
        operation = registry.lookup(Root.QUERY, "users")

        with pytest.raises(UnknownArgument) as exc_info:
            registry.coerce_arguments(operation, {"first": 10})
        assert exc_info.value.argument == "first"

    def test_input_object_is_built(self):
        operation = registry.lookup(Root.MUTATION, "createUser")

        kwargs = registry.coerce_arguments(operation, {"input": {"name": "Ada"}})

        assert kwargs == {"input": UserInput(name="Ada")}

    def test_empty_name_is_missing(self):
        operation = registry.lookup(Root.MUTATION, "createUser")

        with pytest.raises(MissingArgument) as exc_info:
            registry.coerce_arguments(operation, {"input": {"name": ""}})
        assert exc_info.value.argument == "input.name"

    def test_input_must_be_an_object(self):
        operation = registry.lookup(Root.MUTATION, "createUser")

        with pytest.raises(ArgumentTypeMismatch):
            registry.coerce_arguments(operation, {"input": "Ada"})

    def test_non_string_name(self):
        operation = registry.lookup(Root.MUTATION, "createUser")

        with pytest.raises(ArgumentTypeMismatch) as exc_info:
            registry.coerce_arguments(operation, {"input": {"name": 42}})
        assert exc_info.value.argument == "input.name"


class TestRendering:
    def test_print_schema(self):
        sdl = registry.print_schema()

        assert "type User {" in sdl
        assert "users: [User!]!" in sdl
        assert "user(id: Int!): User" in sdl
        assert "createUser(input: UserInput!): User" in sdl
        assert "input UserInput {" in sdl

    def test_graphql_schema_is_built_once(self):
        assert registry.graphql_schema is registry.graphql_schema

    def test_validate_schema(self):
        validate_schema(registry)

    def test_validate_schema_rejects_empty_registry(self):
        with pytest.raises(Exception):
            validate_schema(SchemaRegistry([]))
