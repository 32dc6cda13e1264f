"""Topological scheduling of workflow steps.

Produces a sequential execution order in which every step comes after
all of its dependencies. The order is deterministic: steps are visited
in declaration order and dependencies in the order they were listed.
"""

from collections.abc import Sequence
from enum import Enum

from relayplane.exceptions import CircularDependencyError, UnknownDependencyError
from relayplane.models import StepDefinition


class _Mark(Enum):
    VISITING = 1
    DONE = 2


def topological_order(steps: Sequence[StepDefinition]) -> list[StepDefinition]:
    """Order steps so that dependencies run first.

    Depth-first search with in-progress marking. Re-entering a step that
    is still being visited means the graph has a cycle.

    Raises:
        CircularDependencyError: With the cycle path, e.g. ["a", "b", "a"]
        UnknownDependencyError: If a step depends on a name not in the graph
    """
    by_name = {step.name: step for step in steps}
    marks: dict[str, _Mark] = {}
    path: list[str] = []
    ordered: list[StepDefinition] = []

    def visit(step: StepDefinition) -> None:
        mark = marks.get(step.name)
        if mark is _Mark.DONE:
            return
        if mark is _Mark.VISITING:
            start = path.index(step.name)
            raise CircularDependencyError([*path[start:], step.name])

        marks[step.name] = _Mark.VISITING
        path.append(step.name)
        for dependency in step.depends_on:
            if dependency not in by_name:
                raise UnknownDependencyError(step.name, dependency, list(by_name))
            visit(by_name[dependency])
        path.pop()
        marks[step.name] = _Mark.DONE
        ordered.append(step)

    for step in steps:
        visit(step)

    return ordered
