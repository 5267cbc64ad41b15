"""Evaluation of ``WorkflowStep.execution_condition`` predicates.

The default evaluator understands ``exists:<key>``, which is true when the
context holds ``key``. Syntax no handler claims raises
:class:`UnsupportedConditionError`, so a step is never run on a predicate
nobody evaluated. The validator rejects such conditions up front.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Protocol

from ..exceptions import UnsupportedConditionError

ConditionHandler = Callable[[str, Mapping[str, Any]], bool]


class ConditionEvaluator(Protocol):
    def supports(self, condition: str) -> bool:
        """Return ``True`` if ``condition`` is understood."""

    def evaluate(self, condition: str, context: Mapping[str, Any]) -> bool:
        """Evaluate ``condition`` against the execution context."""


def _exists(argument: str, context: Mapping[str, Any]) -> bool:
    return argument in context


class PrefixConditionEvaluator:
    """Dispatches ``<prefix>:<argument>`` conditions to registered handlers."""

    def __init__(self, handlers: Dict[str, ConditionHandler] | None = None) -> None:
        self._handlers: Dict[str, ConditionHandler] = dict(handlers or {})

    def register(self, prefix: str, handler: ConditionHandler) -> None:
        self._handlers[prefix] = handler

    def _split(self, condition: str) -> tuple[str, str] | None:
        prefix, sep, argument = condition.partition(":")
        if not sep or prefix not in self._handlers:
            return None
        return prefix, argument

    def supports(self, condition: str) -> bool:
        return self._split(condition) is not None

    def evaluate(self, condition: str, context: Mapping[str, Any]) -> bool:
        parsed = self._split(condition)
        if parsed is None:
            raise UnsupportedConditionError(
                f"Unsupported execution condition: {condition}"
            )
        prefix, argument = parsed
        return self._handlers[prefix](argument, context)


def default_evaluator() -> PrefixConditionEvaluator:
    return PrefixConditionEvaluator({"exists": _exists})
