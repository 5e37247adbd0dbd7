"""
Execution engine: turns one query document into one response envelope.

Every request walks ``RECEIVED -> PARSED -> VALIDATED -> RESOLVING ->
ASSEMBLED -> DONE``. Parse and validation failures jump straight to ``DONE``
with a document-level error and ``data: null``; resolver failures are
recorded as field-level errors next to a null value at the failing path.

Document validation is graphql-core's full rule set; the engine only maps the
first failure onto the gateway's error codes.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from graphql import (
    ASTValidationRule,
    FieldsOnCorrectTypeRule,
    GraphQLError,
    GraphQLIncludeDirective,
    GraphQLSkipDirective,
    KnownArgumentNamesRule,
    KnownFragmentNamesRule,
    KnownOperationTypesRule,
    ProvidedRequiredArgumentsRule,
    ValuesOfCorrectTypeRule,
    VariablesAreInputTypesRule,
    VariablesInAllowedPositionRule,
    VariableValues,
    Visitor,
    execute_sync,
    get_argument_values,
    get_directive_values,
    get_variable_values,
    parse,
    validate,
    visit,
)
from graphql.language import (
    ArgumentNode,
    DocumentNode,
    FieldNode,
    FragmentDefinitionNode,
    FragmentSpreadNode,
    InlineFragmentNode,
    ListTypeNode,
    ListValueNode,
    Node,
    NonNullTypeNode,
    ObjectValueNode,
    OperationDefinitionNode,
    OperationType,
    SelectionSetNode,
    TypeNode,
    VariableDefinitionNode,
)

from ..errors import (
    ArgumentTypeMismatch,
    DocumentError,
    MalformedDocument,
    MissingArgument,
    UnknownArgument,
    UnknownOperation,
    UserGraphError,
)
from ..logging import get_logger
from .context import RequestContext
from .schema import OperationSpec, Root, SchemaRegistry, registry

logger = get_logger(__name__)

TYPENAME = "__typename"
INTROSPECTION_FIELDS = frozenset({"__schema", "__type"})

_ROOTS = {OperationType.QUERY: Root.QUERY, OperationType.MUTATION: Root.MUTATION}

# Validation rules whose failures carry a specific error code; anything else
# is reported as GRAPHQL_VALIDATION_FAILED.
_RULE_CODES: tuple[tuple[type[DocumentError], tuple[type[ASTValidationRule], ...]], ...] = (
    (UnknownOperation, (FieldsOnCorrectTypeRule, KnownOperationTypesRule, KnownFragmentNamesRule)),
    (UnknownArgument, (KnownArgumentNamesRule,)),
    (MissingArgument, (ProvidedRequiredArgumentsRule,)),
    (
        ArgumentTypeMismatch,
        (ValuesOfCorrectTypeRule, VariablesInAllowedPositionRule, VariablesAreInputTypesRule),
    ),
)

# graphql-core reports absent or null required values as type errors
_MISSING_VALUE = ("to be provided", "not to be None", "to include required field")

_NAMED_ARGUMENT = re.compile(r"Unknown argument '(\w+)'|\((\w+):\)'")
_REQUIRED_FIELD = re.compile(r"required field '(\w+)'")


class ExecutionState(str, Enum):
    RECEIVED = "received"
    PARSED = "parsed"
    VALIDATED = "validated"
    RESOLVING = "resolving"
    ASSEMBLED = "assembled"
    DONE = "done"


@dataclass
class GraphQLRequest:
    """Decoded request body: document text, variables and operation name."""

    query: str
    variables: dict[str, Any] | None = None
    operation_name: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> GraphQLRequest:
        query = payload.get("query")
        variables = payload.get("variables")
        operation_name = payload.get("operationName")
        if not isinstance(query, str) or not query.strip():
            raise MalformedDocument("Must provide query string.")
        if variables is not None and not isinstance(variables, dict):
            raise MalformedDocument("Variables are invalid JSON.")
        if operation_name is not None and not isinstance(operation_name, str):
            raise MalformedDocument("Operation name must be a string.")
        return cls(query=query, variables=variables, operation_name=operation_name or None)


@dataclass
class ExecutionResult:
    """Response envelope: an optional data tree and the errors raised producing it."""

    data: dict[str, Any] | None = None
    errors: list[GraphQLError] = field(default_factory=list)

    @property
    def formatted(self) -> dict[str, Any]:
        response: dict[str, Any] = {"data": self.data}
        if self.errors:
            response["errors"] = [error.formatted for error in self.errors]
        return response


def to_graphql_error(
    error: UserGraphError, nodes: Sequence[Any] | None = None, path: list[Any] | None = None
) -> GraphQLError:
    return GraphQLError(
        error.message,
        nodes=nodes,
        path=path,
        original_error=error,
        extensions=error.extensions,
    )


@dataclass
class _PlannedField:
    response_key: str
    nodes: list[FieldNode]
    operation: OperationSpec | None = None
    arguments: dict[str, Any] = field(default_factory=dict)


class _ArgumentCollector(Visitor):
    def __init__(self) -> None:
        super().__init__()
        self.arguments: list[ArgumentNode] = []

    def enter_argument(self, node: ArgumentNode, *_args: Any) -> None:
        self.arguments.append(node)


def _value_path(value: Node, target: Node, path: str) -> str | None:
    if value is target:
        return path
    children: Iterable[tuple[Node, str]] = ()
    if isinstance(value, ObjectValueNode):
        children = ((f.value, f"{path}.{f.name.value}") for f in value.fields)
    elif isinstance(value, ListValueNode):
        children = ((item, f"{path}[{i}]") for i, item in enumerate(value.values))
    for child, child_path in children:
        found = _value_path(child, target, child_path)
        if found:
            return found
    return None


def _argument_path(document: DocumentNode, nodes: Sequence[Node]) -> str | None:
    """Dotted path (``input.name``) of the first error node found inside an argument."""
    collector = _ArgumentCollector()
    visit(document, collector)
    for node in nodes:
        for argument in collector.arguments:
            found = _value_path(argument.value, node, argument.name.value)
            if found:
                return found
    return None


def _is_missing_value(message: str) -> bool:
    return any(marker in message for marker in _MISSING_VALUE)


class _Execution:
    """State for a single request; never shared between requests."""

    def __init__(
        self,
        schema: SchemaRegistry,
        request: GraphQLRequest,
        context: RequestContext,
        allow_mutations: bool,
    ) -> None:
        self.schema = schema
        self.request = request
        self.context = context
        self.allow_mutations = allow_mutations
        self.state = ExecutionState.RECEIVED
        self.operation: OperationDefinitionNode | None = None
        self.fragments: dict[str, FragmentDefinitionNode] = {}
        self.variable_values: VariableValues | None = None
        self.errors: list[GraphQLError] = []

    def _transition(self, state: ExecutionState) -> None:
        self.state = state

    def _fail_document(self, error: GraphQLError) -> ExecutionResult:
        self._transition(ExecutionState.DONE)
        logger.info("Document rejected", error=error.message)
        return ExecutionResult(data=None, errors=[error])

    async def run(self) -> ExecutionResult:
        try:
            document = parse(self.request.query)
        except GraphQLError as e:
            return self._fail_document(e)
        self._transition(ExecutionState.PARSED)

        errors = validate(self.schema.graphql_schema, document)
        if errors:
            return self._fail_document(self._validation_error(document, errors[0]))

        try:
            self.operation = self._select_operation(document)
            root = self._root_for(self.operation)
            self.variable_values = self._coerce_variables(self.operation)
            fields = self._collect_fields(self.operation.selection_set, root.value)
            plan = [self._plan_field(root, key, nodes) for key, nodes in fields.items()]
        except DocumentError as e:
            return self._fail_document(to_graphql_error(e, nodes=e.nodes))
        self._transition(ExecutionState.VALIDATED)

        self._transition(ExecutionState.RESOLVING)
        data: dict[str, Any] | None = {}
        for planned in plan:
            value, failed = await self._resolve_root_field(root, planned)
            data[planned.response_key] = value
            operation = planned.operation
            if failed and operation and isinstance(operation.result, NonNullTypeNode):
                # A null for a non-null root field nulls the whole data tree
                data = None
                break
        self._transition(ExecutionState.ASSEMBLED)

        self._transition(ExecutionState.DONE)
        return ExecutionResult(data=data, errors=self.errors)

    # Parsing and validation

    def _validation_error(self, document: DocumentNode, error: GraphQLError) -> GraphQLError:
        """Re-label a graphql-core validation error with the gateway's error code."""
        error_class: type[DocumentError] = DocumentError
        for candidate, rules in _RULE_CODES:
            reported = validate(self.schema.graphql_schema, document, rules)
            if any(e.message == error.message for e in reported):
                error_class = candidate
                break
        if error_class is ArgumentTypeMismatch and _is_missing_value(error.message):
            error_class = MissingArgument

        argument = None
        if error_class in (UnknownArgument, MissingArgument, ArgumentTypeMismatch):
            named = _NAMED_ARGUMENT.search(error.message)
            if named:
                argument = named.group(1) or named.group(2)
            else:
                argument = _argument_path(document, error.nodes or ())
                required = _REQUIRED_FIELD.search(error.message)
                if argument and required:
                    argument = f"{argument}.{required.group(1)}"
        return to_graphql_error(error_class(error.message, argument=argument), nodes=error.nodes)

    def _select_operation(self, document: DocumentNode) -> OperationDefinitionNode:
        operations: list[OperationDefinitionNode] = []
        for definition in document.definitions:
            if isinstance(definition, OperationDefinitionNode):
                operations.append(definition)
            elif isinstance(definition, FragmentDefinitionNode):
                self.fragments[definition.name.value] = definition

        name = self.request.operation_name
        if name:
            for operation in operations:
                if operation.name and operation.name.value == name:
                    return operation
            raise UnknownOperation(f'Unknown operation named "{name}".')
        if not operations:
            raise UnknownOperation("Must provide an operation.")
        if len(operations) > 1:
            raise UnknownOperation(
                "Must provide operation name if query contains multiple operations."
            )
        return operations[0]

    def _root_for(self, operation: OperationDefinitionNode) -> Root:
        root = _ROOTS[operation.operation]
        if root is Root.MUTATION and not self.allow_mutations:
            raise UnknownOperation("Can only perform a mutation operation from a POST request.")
        return root

    def _coerce_variables(self, operation: OperationDefinitionNode) -> VariableValues:
        coerced = get_variable_values(
            self.schema.graphql_schema,
            operation.variable_definitions or (),
            self.request.variables or {},
        )
        if isinstance(coerced, VariableValues):
            return coerced

        error = coerced[0]
        definition = error.nodes[0] if error.nodes else None
        name = (
            definition.variable.name.value
            if isinstance(definition, VariableDefinitionNode)
            else None
        )
        error_class = MissingArgument if _is_missing_value(error.message) else ArgumentTypeMismatch
        document_error = error_class(error.message, argument=name)
        document_error.nodes = error.nodes
        raise document_error

    def _collect_fields(
        self,
        selection_set: SelectionSetNode | None,
        type_name: str,
        fields: dict[str, list[FieldNode]] | None = None,
        visited: set[str] | None = None,
    ) -> dict[str, list[FieldNode]]:
        """Group selected fields by response key, expanding fragments in document order."""
        fields = {} if fields is None else fields
        visited = set() if visited is None else visited
        for selection in selection_set.selections if selection_set else ():
            if not self._should_include(selection):
                continue
            if isinstance(selection, FieldNode):
                key = selection.alias.value if selection.alias else selection.name.value
                fields.setdefault(key, []).append(selection)
            elif isinstance(selection, InlineFragmentNode):
                condition = selection.type_condition
                if condition is None or condition.name.value == type_name:
                    self._collect_fields(selection.selection_set, type_name, fields, visited)
            elif isinstance(selection, FragmentSpreadNode):
                name = selection.name.value
                if name in visited:
                    continue
                visited.add(name)
                fragment = self.fragments[name]
                if fragment.type_condition.name.value == type_name:
                    self._collect_fields(fragment.selection_set, type_name, fields, visited)
        return fields

    def _should_include(self, node: Any) -> bool:
        skip = get_directive_values(GraphQLSkipDirective, node, self.variable_values)
        if skip and skip["if"]:
            return False
        include = get_directive_values(GraphQLIncludeDirective, node, self.variable_values)
        return not (include and not include["if"])

    def _plan_field(self, root: Root, key: str, nodes: list[FieldNode]) -> _PlannedField:
        node = nodes[0]
        name = node.name.value
        if name == TYPENAME or name in INTROSPECTION_FIELDS:
            return _PlannedField(response_key=key, nodes=nodes)

        try:
            operation = self.schema.lookup(root, name)
            try:
                supplied = get_argument_values(
                    self.schema.graphql_field(root, name), node, self.variable_values
                )
            except GraphQLError as e:
                raise ArgumentTypeMismatch(e.message) from e
            arguments = self.schema.coerce_arguments(operation, supplied)
        except DocumentError as e:
            if e.nodes is None:
                e.nodes = nodes
            raise
        return _PlannedField(
            response_key=key, nodes=nodes, operation=operation, arguments=arguments
        )

    def _merged_subfields(
        self, nodes: list[FieldNode], type_name: str
    ) -> dict[str, list[FieldNode]]:
        fields: dict[str, list[FieldNode]] = {}
        for node in nodes:
            self._collect_fields(node.selection_set, type_name, fields)
        return fields

    # Resolution and projection

    def _introspect(self, planned: _PlannedField) -> Any:
        """Answer a ``__schema`` or ``__type`` root field with graphql-core's executor."""
        operation = replace(
            self.operation, selection_set=SelectionSetNode(selections=tuple(planned.nodes))
        )
        document = DocumentNode(definitions=(operation, *self.fragments.values()))
        result = execute_sync(
            self.schema.graphql_schema, document, variable_values=self.request.variables
        )
        self.errors.extend(result.errors or ())
        return (result.data or {}).get(planned.response_key)

    async def _resolve_root_field(self, root: Root, planned: _PlannedField) -> tuple[Any, bool]:
        path: list[Any] = [planned.response_key]
        if planned.operation is None:
            if planned.nodes[0].name.value == TYPENAME:
                return root.value, False
            return self._introspect(planned), False

        operation = planned.operation
        try:
            value = await operation.resolver(self.context, **planned.arguments)
            return self._complete(operation.result, value, planned.nodes, path), False
        except UserGraphError as e:
            logger.warning(
                "Resolver failed",
                field=operation.name,
                code=e.code,
                error=e.message,
            )
            self.errors.append(to_graphql_error(e, nodes=planned.nodes, path=path))
        except Exception as e:
            logger.exception("Unexpected resolver error", field=operation.name)
            self.errors.append(
                GraphQLError(
                    "Internal server error",
                    nodes=planned.nodes,
                    path=path,
                    original_error=e,
                    extensions={"code": UserGraphError.code},
                )
            )
        return None, True

    def _complete(
        self, type_node: TypeNode, value: Any, nodes: list[FieldNode], path: list[Any]
    ) -> Any:
        """Project a resolved value onto the client's selection."""
        if isinstance(type_node, NonNullTypeNode):
            completed = self._complete(type_node.type, value, nodes, path)
            if completed is None:
                raise TypeError(f"Cannot return null for non-nullable field at {path}")
            return completed
        if value is None:
            return None
        if isinstance(type_node, ListTypeNode):
            return [
                self._complete(type_node.type, item, nodes, [*path, index])
                for index, item in enumerate(value)
            ]

        shape = self.schema.object_type(type_node.name.value)
        if shape is None:
            return value

        projected: dict[str, Any] = {}
        for key, sub_nodes in self._merged_subfields(nodes, shape.name).items():
            name = sub_nodes[0].name.value
            if name == TYPENAME:
                projected[key] = shape.name
                continue
            spec = shape.fields[name]
            projected[key] = self._complete(
                spec.type, getattr(value, spec.attr), sub_nodes, [*path, key]
            )
        return projected




class ExecutionEngine:
    """Validates documents against a schema registry and runs their resolvers."""

    def __init__(self, schema: SchemaRegistry | None = None) -> None:
        self.schema = schema or registry

    async def execute(
        self,
        request: GraphQLRequest,
        context: RequestContext,
        *,
        allow_mutations: bool = True,
    ) -> ExecutionResult:
        execution = _Execution(self.schema, request, context, allow_mutations)
        logger.debug("Executing GraphQL request", operation_name=request.operation_name)
        result = await execution.run()
        logger.debug(
            "GraphQL request finished",
            state=execution.state.value,
            error_count=len(result.errors),
        )
        return result
