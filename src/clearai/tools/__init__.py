"""
Tool registry for ClearAI.

Tools are registered explicitly at startup with ``registry.register(definition, handler)``.  The
registry validates and coerces the model's raw parameters against each tool's declared
:class:`~clearai.core.schema.Parameter` list before the handler ever sees them, so handlers
receive native Python values in declared order.

After startup the registry is only read, so a single instance is shared by every session.
"""

import logging
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Tuple,
)

from clearai.core.errors import (
    DuplicateToolError,
    MissingParameterError,
    ParameterTypeError,
    ToolExecutionError,
    UnknownToolError,
)
from clearai.core.schema import (
    Parameter,
    ParameterType,
    ToolCategory,
    ToolDefinition,
)

if TYPE_CHECKING:
    from clearai.tools.whitelist import Whitelist

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Any]
"""A plain function taking coerced positional arguments and returning text."""

NO_OUTPUT_RESULT = "Tool completed with no output."

_TRUE_STRINGS = {"true", "yes", "1"}
_FALSE_STRINGS = {"false", "no", "0"}


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------
def _coerce_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("booleans are not integers")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise TypeError("fractional value")
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise TypeError(f"unsupported type {type(value).__name__}")


def _coerce_float(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("booleans are not numbers")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise TypeError(f"unsupported type {type(value).__name__}")


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise TypeError(f"cannot interpret {value!r} as a boolean")


def _coerce_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    raise TypeError(f"unsupported type {type(value).__name__}")


_COERCERS: Dict[ParameterType, Callable[[Any], Any]] = {
    ParameterType.STRING: _coerce_str,
    ParameterType.INT: _coerce_int,
    ParameterType.LONG: _coerce_int,
    ParameterType.DOUBLE: _coerce_float,
    ParameterType.BOOL: _coerce_bool,
}


def coerce_value(tool_name: str, param: Parameter, value: Any) -> Any:
    """
    Convert *value* to the Python type declared by *param*.

    Raises
    ------
    ParameterTypeError
        If the value cannot be represented as the declared type.
    """
    try:
        return _COERCERS[param.type](value)
    except (TypeError, ValueError) as exc:
        raise ParameterTypeError(tool_name, param.name, param.type.value, value) from exc


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
class ToolRegistry:
    """Owns the mapping tool name -> (definition, handler) and dispatches calls."""

    def __init__(self) -> None:
        self._tools: Dict[str, Tuple[ToolDefinition, ToolHandler]] = {}

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def register(self, definition: ToolDefinition, handler: ToolHandler) -> None:
        """
        Register *handler* under ``definition.name``.

        Raises
        ------
        DuplicateToolError
            If a tool with the same name is already registered.
        """
        if definition.name in self._tools:
            raise DuplicateToolError(
                f"Tool '{definition.name}' is already registered.", definition.name
            )
        logger.debug("Registering tool '%s' (%s)", definition.name, definition.category.value)
        self._tools[definition.name] = (definition, handler)

    def has(self, name: str) -> bool:
        """Return True if *name* is registered."""
        return name in self._tools

    def get(self, name: str) -> ToolDefinition:
        """Return the definition registered under *name*."""
        try:
            return self._tools[name][0]
        except KeyError:
            raise UnknownToolError(f"Tool '{name}' is not registered.", name) from None

    def names(self) -> List[str]:
        """Registered tool names, in registration order."""
        return list(self._tools)

    def describe(self) -> List[ToolDefinition]:
        """All tool definitions, in registration order (used to render the prompt catalog)."""
        return [definition for definition, _ in self._tools.values()]

    def requires_confirmation(self, name: str) -> bool:
        """True if *name* belongs to the confirmation category (the loop suspends after it)."""
        return name in self._tools and self._tools[name][0].category is ToolCategory.CONFIRMATION

    def is_communication(self, name: str) -> bool:
        """True if the result of *name* is meant to be shown to the user immediately."""
        return name in self._tools and self._tools[name][0].category is ToolCategory.COMMUNICATION

    def bind_arguments(self, definition: ToolDefinition, raw: Mapping[str, Any]) -> List[Any]:
        """
        Validate *raw* against the definition and return positional arguments.

        A JSON ``null`` counts as absent.  Undeclared keys are ignored.
        """
        declared = {p.name for p in definition.parameters}
        extra = set(raw) - declared
        if extra:
            logger.debug("Ignoring undeclared parameters for '%s': %s", definition.name, extra)

        args: List[Any] = []
        for param in definition.parameters:
            value = raw.get(param.name)
            if value is not None:
                args.append(coerce_value(definition.name, param, value))
            elif param.required:
                raise MissingParameterError(definition.name, param.name)
            elif param.default is not None:
                args.append(coerce_value(definition.name, param, param.default))
            else:
                args.append(None)
        return args

    def invoke(self, name: str, raw_parameters: Mapping[str, Any] | None = None) -> str:
        """
        Look up *name*, coerce *raw_parameters* and run the handler.

        Parameters
        ----------
        name:
            The registered tool name.
        raw_parameters:
            Parameter bag exactly as the model produced it.  If *None*, an empty dict is assumed.

        Returns
        -------
        str
            The handler's result rendered as text.

        Raises
        ------
        UnknownToolError, MissingParameterError, ParameterTypeError
            Validation failures; the handler is never called.
        ToolExecutionError
            If the handler itself raises.
        """
        if raw_parameters is None:
            raw_parameters = {}

        entry = self._tools.get(name)
        if entry is None:
            raise UnknownToolError(f"Tool '{name}' is not registered.", name)
        definition, handler = entry

        args = self.bind_arguments(definition, raw_parameters)

        try:
            logger.debug("Executing tool '%s' with args=%s", name, args)
            result = handler(*args)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unhandled error in tool '%s'", name)
            raise ToolExecutionError(f"Tool '{name}' raised an error: {exc}", name) from exc

        if result is None:
            return NO_OUTPUT_RESULT
        return str(result)


def build_default_registry(protected: "Whitelist | None" = None) -> ToolRegistry:
    """
    Create a registry with every builtin tool wired in.

    *protected* is the whitelist that the scanning and whitelist tools share; by default an
    in-memory one holding only the built-in system rules.
    """
    # pylint: disable=import-outside-toplevel
    from clearai.tools import (
        cleaning,
        communication,
        filesystem,
        system,
        whitelist,
    )

    if protected is None:
        protected = whitelist.Whitelist()

    registry = ToolRegistry()
    communication.register_tools(registry)
    filesystem.register_tools(registry, protected)
    cleaning.register_tools(registry, protected)
    system.register_tools(registry)
    whitelist.register_tools(registry, protected)
    logger.info("Tool registry ready with %d tools", len(registry))
    return registry
