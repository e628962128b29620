"""
Graph — small computation graphs over nodnod.

    from onlypremiums import graph as G

    @G.node
    class SubtotalNode:
        def __init__(self, value: int) -> None:
            self.value = value

        @classmethod
        def __compose__(cls, checkout: CheckoutInput) -> "SubtotalNode":
            return cls(sum(item.line_total for item in checkout.items))

    subtotal = await G.compose(SubtotalNode, checkout_input)

Dependencies are discovered from the target's `__compose__` signature; each
input is injected under its runtime type.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any, cast

from nodnod import EventLoopAgent, Node, Scope, Value
from nodnod import scalar_node as node


class TypedScope:
    """Type-safe wrapper around nodnod.Scope."""

    __slots__ = ("_scope",)

    def __init__(self, scope: Scope | None = None, detail: str = "scope") -> None:
        self._scope = scope if scope is not None else Scope(detail=detail)

    @property
    def inner(self) -> Scope:
        return self._scope

    def inject[T](self, typ: type[T], value: T) -> TypedScope:
        self._scope.push(Value(typ, value))
        return self

    def get[T](self, typ: type[T]) -> T:
        found = self._scope.get(typ)
        if found is None:
            raise KeyError(f"{typ.__name__} not found in scope")
        return cast(T, found.value)

    async def __aenter__(self) -> TypedScope:
        await self._scope.__aenter__()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self._scope.__aexit__(*args)


async def compose[T](target: type[T], *inputs: object) -> T:
    """Build the graph rooted at `target`, inject `inputs`, return the target node."""
    agent = EventLoopAgent.build({cast(type[Node[Any, Any]], target)})
    async with TypedScope(detail=target.__name__) as scope:
        for value in inputs:
            scope.inject(cast(type[Any], type(value)), value)
        run = cast(
            Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
            getattr(agent, "run"),
        )
        await run(scope.inner, {})
        return scope.get(target)


__all__ = ("node", "TypedScope", "compose")
