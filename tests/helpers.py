from typing import List, Optional, Sequence

from game2048 import GridState, Tile


def grid_from_values(rows: Sequence[Sequence[Optional[int]]]) -> GridState:
    """Build a square grid from row values; 0 and None mark empty cells."""
    grid = GridState.create_empty(len(rows))
    for r, row in enumerate(rows):
        assert len(row) == grid.size, "rows must form a square"
        for c, value in enumerate(row):
            if value:
                grid.put(r, c, Tile(value))
    return grid


def values(grid: GridState) -> List[List[int]]:
    """Grid values with empty cells as 0, easier to compare in asserts."""
    return [[value or 0 for value in row] for row in grid.snapshot()]


class ScriptedRandom:
    """Stand-in for random.Random that replays fixed picks and rolls.

    ``picks`` are indexes used by choice()/sample(), ``rolls`` are the
    floats returned by random(). Once exhausted it falls back to index 0
    and a roll of 0.5.
    """

    def __init__(self, picks: Sequence[int] = (), rolls: Sequence[float] = ()):
        self.picks = list(picks)
        self.rolls = list(rolls)

    def _next_pick(self) -> int:
        return self.picks.pop(0) if self.picks else 0

    def choice(self, seq):
        return seq[self._next_pick()]

    def sample(self, population, k):
        pool = list(population)
        return [pool.pop(self._next_pick()) for _ in range(k)]

    def random(self) -> float:
        return self.rolls.pop(0) if self.rolls else 0.5
