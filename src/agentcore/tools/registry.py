"""
Tool catalog: turns plain callables into described, schema'd tools.

Signatures are inspected once, at registration, so binding later never has
to reflect on the function again.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Iterable, Iterator, Optional, TypeVar, get_type_hints

from agentcore._exceptions import ToolDefinitionError
from agentcore.schema import (
    describe_annotation,
    is_nullable,
    schema_for_type,
    strip_annotated,
)
from agentcore.types.tool import Tool, ToolParameter

__all__ = ["ToolRegistry", "tool", "build_tool"]

F = TypeVar("F", bound=Callable[..., Any])

_TOOL_MARKER = "__agentcore_tool__"


def tool(
    func: F | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
) -> Any:
    """Mark a function or method for discovery by ``ToolRegistry.register_all``.

    Usable bare (``@tool``) or with arguments (``@tool(name="x")``).
    """

    def mark(fn: F) -> F:
        setattr(fn, _TOOL_MARKER, {"name": name, "description": description})
        return fn

    return mark(func) if func is not None else mark


def _first_paragraph(doc: str | None) -> str:
    if not doc:
        return ""
    return inspect.cleandoc(doc).split("\n\n")[0].replace("\n", " ").strip()


def build_tool(
    func: Callable[..., Any],
    *,
    name: str | None = None,
    description: str | None = None,
    schema: dict[str, Any] | None = None,
    tags: Iterable[str] = (),
    owner: Any = None,
) -> Tool:
    """Derive a Tool from *func*'s signature; *schema* overrides the derived one."""
    marker = getattr(func, _TOOL_MARKER, None) or {}
    tool_name = name or marker.get("name") or getattr(func, "__name__", None)
    if not tool_name:
        raise ToolDefinitionError(f"Cannot determine a name for {func!r}")

    try:
        signature = inspect.signature(func)
        hints = get_type_hints(func, include_extras=True)
    except (TypeError, ValueError, NameError) as exc:
        raise ToolDefinitionError(f"Cannot inspect tool '{tool_name}': {exc}") from exc

    parameters: list[ToolParameter] = []
    properties: dict[str, Any] = {}
    required: list[str] = []

    for param in signature.parameters.values():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            raise ToolDefinitionError(
                f"Tool '{tool_name}' uses *args/**kwargs which cannot be described"
            )
        annotation = hints.get(param.name, Any)
        _, metadata = strip_annotated(annotation)
        nullable = is_nullable(annotation)
        param_description = describe_annotation(metadata)
        entry = ToolParameter(
            name=param.name,
            annotation=annotation,
            kind=param.kind,
            default=param.default,
            nullable=nullable,
            description=param_description,
        )
        parameters.append(entry)
        properties[param.name] = schema_for_type(annotation)
        if entry.required:
            required.append(param.name)

    derived: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        derived["required"] = required

    return Tool(
        name=tool_name,
        description=description or marker.get("description") or _first_paragraph(func.__doc__),
        parameters_schema=schema if schema is not None else derived,
        function=func,
        parameters=tuple(parameters),
        tags=frozenset(tags),
        owner=owner,
    )


class ToolRegistry:
    """Case-insensitive catalog of tools, read-only once an agent is running."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._tools: dict[str, Tool] = {}

    # --- registration -----------------------------------------------------
    def add(self, item: Tool) -> Tool:
        key = item.name.casefold()
        if key in self._tools:
            raise ValueError(f"Tool '{item.name}' is already registered")
        self._tools[key] = item
        self.logger.debug("Registered tool %s", item.name)
        return item

    def register(
        self,
        func: Callable[..., Any],
        *tags: str,
        name: str | None = None,
        description: str | None = None,
        schema: dict[str, Any] | None = None,
    ) -> Tool:
        owner = getattr(func, "__self__", None)
        return self.add(
            build_tool(
                func,
                name=name,
                description=description,
                schema=schema,
                tags=tags,
                owner=owner,
            )
        )

    def register_many(self, funcs: Iterable[Callable[..., Any]], *tags: str) -> list[Tool]:
        return [self.register(func, *tags) for func in funcs]

    def register_all(self, owner: Any, *tags: str) -> list[Tool]:
        """Register every ``@tool``-marked member of a class, instance or module.

        Members whose signature cannot be adapted are skipped.
        """
        registered: list[Tool] = []
        for attr in dir(owner):
            if attr.startswith("__"):
                continue
            member = getattr(owner, attr, None)
            if not callable(member) or getattr(member, _TOOL_MARKER, None) is None:
                continue
            if inspect.isclass(owner) and inspect.isfunction(
                inspect.getattr_static(owner, attr, None)
            ):
                self.logger.debug("Skipping %s: instance method needs an instance", attr)
                continue
            try:
                item = build_tool(member, tags=tags, owner=owner)
            except ToolDefinitionError as exc:
                self.logger.debug("Skipping %s: %s", attr, exc)
                continue
            registered.append(self.add(item))
        return registered

    # --- lookup -----------------------------------------------------------
    def get(self, name: str) -> Tool | None:
        return self._tools.get((name or "").casefold())

    def contains(self, name: str) -> bool:
        return (name or "").casefold() in self._tools

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.contains(name)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def tools(self) -> tuple[Tool, ...]:
        return tuple(self._tools.values())

    @property
    def names(self) -> list[str]:
        return [t.name for t in self._tools.values()]

    def get_by_tags(self, *tags: str, include: bool = True) -> list[Tool]:
        """Tools carrying any of *tags*, or lacking all of them when ``include`` is False."""
        wanted = {t.casefold() for t in tags}
        out = []
        for item in self._tools.values():
            has = any(tag.casefold() in wanted for tag in item.tags)
            if has == include:
                out.append(item)
        return out

    def get_by_owner(self, *owners: Any) -> list[Tool]:
        return [t for t in self._tools.values() if any(t.owner is o for o in owners)]

    def subset(self, names: Iterable[str]) -> list[Tool]:
        found = (self.get(n) for n in names)
        return [t for t in found if t is not None]
