"""
Comm Middleware.

A middleware is ``fn(client_id, args) -> (should_continue, args)``. Chains run
in order, each step receiving the args produced by the previous one. The first
step that returns a false ``should_continue`` stops the chain.

A middleware may also return a bare ``bool``, which keeps the args unchanged.

::: This is-in-layer Service-Layer.
::: This is-in-component Comm-Adapter.
"""

from typing import Any, Callable, Iterable, Optional, Sequence, Tuple

Middleware = Callable[[Optional[str], Tuple[Any, ...]], Any]
MiddlewareChain = Sequence[Middleware]


def normalize_chain(chain: Optional[Iterable[Middleware]]) -> Tuple[Middleware, ...]:
    """Turn None, a single callable or an iterable of callables into a tuple."""
    if chain is None:
        return ()
    if callable(chain):
        return (chain,)
    middleware = tuple(chain)
    for fn in middleware:
        if not callable(fn):
            raise TypeError(f"Middleware must be callable; got {type(fn).__name__}")
    return middleware


def run_middleware(
    chain: MiddlewareChain,
    client_id: Optional[str],
    args: Tuple[Any, ...],
) -> Tuple[bool, Tuple[Any, ...]]:
    """Run a middleware chain over a set of arguments.

    Args:
        chain: Middleware callables, applied in order
        client_id: Client the traffic belongs to (None for broadcasts)
        args: Positional arguments travelling through the chain

    Returns:
        (should_continue, args) after the last step that ran
    """
    for fn in chain:
        outcome = fn(client_id, args)
        if isinstance(outcome, bool):
            should_continue = outcome
        elif isinstance(outcome, tuple) and len(outcome) == 2:
            should_continue, new_args = outcome
            args = tuple(new_args)
        else:
            raise TypeError(
                "Middleware must return a bool or a (should_continue, args) tuple; "
                f"got {outcome!r}"
            )
        if not should_continue:
            return False, args
    return True, args


__all__ = [
    "Middleware",
    "MiddlewareChain",
    "normalize_chain",
    "run_middleware",
]
