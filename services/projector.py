"""Project normalized steps onto time/temperature plot points."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Sequence, Set, Union

from models.records import GraphPoint, NormalizedSchedule, NormalizedStep

Normalized = Union[NormalizedSchedule, Sequence[NormalizedStep]]


class ProjectedPoints(Iterable[GraphPoint]):
    """Lazy view over the plot points of a normalized timeline.

    Iterating twice walks the steps twice and yields the same points.
    """

    def __init__(self, steps: Sequence[NormalizedStep]) -> None:
        self._steps = steps

    def __iter__(self) -> Iterator[GraphPoint]:
        seen: Set[float] = set()
        last_index = len(self._steps) - 1
        for index, step in enumerate(self._steps):
            if step.start_time not in seen:
                seen.add(step.start_time)
                yield GraphPoint(x=step.start_time, y=step.start_temperature)
            if index == last_index and step.end_time not in seen:
                seen.add(step.end_time)
                yield GraphPoint(x=step.end_time, y=step.end_temperature)


class GraphProjector:
    """Maps normalized steps to points regardless of where they were normalized."""

    def project(self, normalized: Normalized) -> ProjectedPoints:
        if isinstance(normalized, NormalizedSchedule):
            return ProjectedPoints(normalized.steps)
        return ProjectedPoints(tuple(normalized))

    def points(self, normalized: Normalized) -> List[GraphPoint]:
        return list(self.project(normalized))


def project(normalized: Normalized) -> ProjectedPoints:
    return GraphProjector().project(normalized)
