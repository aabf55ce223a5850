"""Driver for the external route-optimization executable.

The executable takes four positional arguments:

* the distance matrix, cells joined by ``,`` and rows by ``#``
  (``-1`` marks an unknown cell);
* the node weights joined by ``,`` (index 0 is the depot);
* the vehicle capacities joined by ``,``;
* the strategy as an integer (see ``RoutingStrategy``).

It prints one route per line, nodes joined by ``,``. Route ``i`` belongs to
vehicle ``i``; an unused vehicle prints ``0,0`` and an infeasible problem
prints ``-1`` for every vehicle.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence

from ...config import settings
from ...models.domain import RoutingStrategy

logger = logging.getLogger(__name__)

MATRIX_ROW_DELIMITER = "#"
MATRIX_CELL_DELIMITER = ","
LIST_DELIMITER = ","
ROUTE_NODE_DELIMITER = ","

Route = list[int]
RouteSet = list[Route]


class SolverLaunchError(RuntimeError):
    """Raised when the solver executable cannot be started at all."""


@dataclass(slots=True)
class StrategyOutcome:
    """A distinct route set and every strategy that produced it."""

    route_set: RouteSet
    strategies: list[RoutingStrategy] = field(default_factory=list)


def serialize_matrix(matrix: Sequence[Sequence[int]]) -> str:
    return MATRIX_ROW_DELIMITER.join(
        MATRIX_CELL_DELIMITER.join(str(int(cell)) for cell in row) for row in matrix
    )


def serialize_values(values: Iterable[int]) -> str:
    return LIST_DELIMITER.join(str(int(value)) for value in values)


def parse_route_line(line: str) -> Route:
    """Parse one output line into graph indices; raises ValueError when malformed."""
    return [int(node) for node in line.strip().split(ROUTE_NODE_DELIMITER)]


def _route_set_key(route_set: Sequence[Sequence[int]]) -> tuple[tuple[int, ...], ...]:
    return tuple(tuple(route) for route in route_set)


def deduplicate_route_sets(route_sets: Iterable[RouteSet]) -> list[RouteSet]:
    """Drop structurally equal route sets, keeping first occurrences in order."""
    seen: set[tuple[tuple[int, ...], ...]] = set()
    unique: list[RouteSet] = []
    for route_set in route_sets:
        key = _route_set_key(route_set)
        if key in seen:
            continue
        seen.add(key)
        unique.append(route_set)
    return unique


def resolve_strategies(names: Iterable[str]) -> list[RoutingStrategy]:
    strategies = []
    for name in names:
        try:
            strategies.append(RoutingStrategy[name.strip().upper()])
        except KeyError as exc:
            raise ValueError(f"Unknown routing strategy: {name}") from exc
    return sorted(dict.fromkeys(strategies))


class RoutingSolverAdapter:
    """Runs the solver executable, owning at most one live process at a time.

    Starting a new invocation supersedes the previous one: a process that is
    still running is killed and reaped first. Callers are expected to
    serialize their calls.
    """

    def __init__(
        self,
        executable: Optional[Path] = None,
        strategies: Optional[Sequence[RoutingStrategy]] = None,
    ) -> None:
        self.executable = Path(executable) if executable is not None else settings.routing_solver_path
        self.strategies = (
            sorted(dict.fromkeys(strategies))
            if strategies is not None
            else resolve_strategies(settings.routing_strategies)
        )
        self._process: Optional[asyncio.subprocess.Process] = None

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def supersede(self) -> None:
        """Kill and reap the currently owned process, if any."""
        process, self._process = self._process, None
        if process is None or process.returncode is not None:
            return
        logger.info(f"Killing superseded routing solver process {process.pid}")
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()

    async def execute(
        self,
        matrix: Sequence[Sequence[int]],
        weights: Sequence[int],
        capacities: Sequence[int],
        strategy: RoutingStrategy = RoutingStrategy.AUTOMATIC,
    ) -> RouteSet:
        """Solve one instance with one strategy.

        Returns the parsed routes on a clean exit, ``[]`` when the process
        fails, is killed or prints something unparsable. Raises
        ``SolverLaunchError`` when the executable cannot be spawned.
        """
        await self.supersede()

        arguments = [
            serialize_matrix(matrix),
            serialize_values(weights),
            serialize_values(capacities),
            str(int(strategy)),
        ]
        start_time = time.perf_counter()
        try:
            process = await asyncio.create_subprocess_exec(
                str(self.executable),
                *arguments,
                stdout=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SolverLaunchError(f"Failed to start routing solver {self.executable}: {exc}") from exc
        self._process = process

        routes: RouteSet = []
        malformed_line: Optional[str] = None
        try:
            async for raw_line in process.stdout:
                line = raw_line.decode(errors="replace").strip()
                if not line or malformed_line is not None:
                    continue
                try:
                    routes.append(parse_route_line(line))
                except ValueError:
                    malformed_line = line
            returncode = await process.wait()
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            if self._process is process:
                self._process = None

        elapsed = time.perf_counter() - start_time
        size = f"{len(matrix)}x{len(matrix[0]) if matrix else 0}"
        logger.info(f"Routing solver using {strategy.name} took {elapsed:.2f}s on a {size} matrix")

        if returncode != 0:
            logger.error(f"Routing solver using {strategy.name} exited with code {returncode}")
            return []
        if malformed_line is not None:
            logger.error(f"Routing solver using {strategy.name} printed unparsable output: {malformed_line!r}")
            return []
        logger.debug(f"Routing solver using {strategy.name} produced routes {routes}")
        return routes

    async def collect_strategy_outcomes(
        self,
        matrix: Sequence[Sequence[int]],
        weights: Sequence[int],
        capacities: Sequence[int],
    ) -> list[StrategyOutcome]:
        """Run every configured strategy in order and group identical results."""
        outcomes: dict[tuple[tuple[int, ...], ...], StrategyOutcome] = {}
        for strategy in self.strategies:
            route_set = await self.execute(matrix, weights, capacities, strategy)
            key = _route_set_key(route_set)
            if key in outcomes:
                outcomes[key].strategies.append(strategy)
            else:
                outcomes[key] = StrategyOutcome(route_set=route_set, strategies=[strategy])
        return list(outcomes.values())

    async def execute_all_strategies(
        self,
        matrix: Sequence[Sequence[int]],
        weights: Sequence[int],
        capacities: Sequence[int],
    ) -> list[RouteSet]:
        """Run every configured strategy in order; structurally distinct results only."""
        outcomes = await self.collect_strategy_outcomes(matrix, weights, capacities)
        return deduplicate_route_sets(outcome.route_set for outcome in outcomes)
