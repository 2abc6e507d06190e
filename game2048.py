import logging
import random
from typing import Iterator, List, NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)

SIZE = 4  # 经典棋盘大小：4x4
WIN_TILE = 2048
START_TILE_VALUE = 2  # 开局两个格子固定为 2
FOUR_PROBABILITY = 0.1  # 新生成数字为 4 的概率
DIRECTIONS = ("up", "down", "left", "right")

Coord = Tuple[int, int]
GridView = List[List[Optional[int]]]


class BoardConfigError(ValueError):
    """棋盘配置错误（例如尺寸不是正整数）。"""


class InvalidDirectionError(ValueError):
    """无法识别的移动方向。"""


class MoveResult(NamedTuple):
    moved: bool
    score_delta: int


class Tile:
    """
    棋盘上的一个数字块。
    merged_this_move 记录本回合是否已经合并过，每回合开始时清零。
    """

    __slots__ = ("value", "merged_this_move")

    def __init__(self, value: int = START_TILE_VALUE) -> None:
        if value < 2 or value & (value - 1):
            raise ValueError(f"tile value must be a power of two >= 2, got {value!r}")
        self.value = value
        self.merged_this_move = False

    def can_merge_with(self, other: Optional["Tile"]) -> bool:
        return (
            other is not None
            and self.value == other.value
            and not self.merged_this_move
            and not other.merged_this_move
        )

    def merge(self, other: "Tile") -> int:
        """吸收 other，数值翻倍，返回新数值（即本次得分）。"""
        if not self.can_merge_with(other):
            raise ValueError(f"cannot merge {self!r} with {other!r}")
        self.value *= 2
        self.merged_this_move = True
        return self.value

    def __repr__(self) -> str:
        flag = "*" if self.merged_this_move else ""
        return f"Tile({self.value}{flag})"


class GridState:
    """size x size 的格子矩阵，每格为 Tile 或 None。"""

    def __init__(self, size: int = SIZE) -> None:
        if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
            raise BoardConfigError(f"board size must be a positive integer, got {size!r}")
        self.size = size
        self.cells: List[List[Optional[Tile]]] = [[None] * size for _ in range(size)]

    @classmethod
    def create_empty(cls, size: int = SIZE) -> "GridState":
        return cls(size)

    def get(self, r: int, c: int) -> Optional[Tile]:
        return self.cells[r][c]

    def put(self, r: int, c: int, tile: Optional[Tile]) -> None:
        self.cells[r][c] = tile

    def clear(self) -> None:
        for row in self.cells:
            for c in range(self.size):
                row[c] = None

    def empty_cells(self) -> List[Coord]:
        """按行扫描，返回所有空格坐标。"""
        return [
            (r, c)
            for r in range(self.size)
            for c in range(self.size)
            if self.cells[r][c] is None
        ]

    def tiles(self) -> Iterator[Tile]:
        for row in self.cells:
            for tile in row:
                if tile is not None:
                    yield tile

    def reset(self, rng: random.Random) -> None:
        """清空棋盘，并在两个不同的随机空格放置数字 2。"""
        self.clear()
        empty = self.empty_cells()
        for r, c in rng.sample(empty, min(2, len(empty))):
            self.cells[r][c] = Tile(START_TILE_VALUE)

    def snapshot(self) -> GridView:
        """每格的 (是否有数字, 数值) 快照，空格记为 None。"""
        return [[tile.value if tile else None for tile in row] for row in self.cells]

    # ---- 按方向取出 / 写回一行 -------------------------------------------------
    def line(self, index: int, direction: str) -> List[Optional[Tile]]:
        """
        取出第 index 条线：left/right 取行，up/down 取列。
        right/down 会反转，保证下标 0 总是朝向移动的目标边。
        """
        if direction in ("left", "right"):
            line = list(self.cells[index])
        else:
            line = [self.cells[r][index] for r in range(self.size)]
        if direction in ("right", "down"):
            line.reverse()
        return line

    def set_line(self, index: int, direction: str, line: List[Optional[Tile]]) -> None:
        """line() 的逆操作。"""
        if direction in ("right", "down"):
            line = line[::-1]
        if direction in ("left", "right"):
            self.cells[index] = list(line)
        else:
            for r in range(self.size):
                self.cells[r][index] = line[r]


class TileSpawner:
    """在随机空格生成新数字：90% 为 2，10% 为 4。"""

    def __init__(self, rng: Optional[random.Random] = None, four_probability: float = FOUR_PROBABILITY) -> None:
        self.rng = rng if rng is not None else random.Random()
        self.four_probability = four_probability

    def spawn_one(self, grid: GridState) -> Optional[Coord]:
        """
        在空格随机生成一个 2 或 4
        返回生成的位置 (r, c)，如果棋盘已满返回 None（不修改棋盘）
        """
        empty_cells = grid.empty_cells()
        if not empty_cells:
            return None

        r, c = self.rng.choice(empty_cells)
        value = 4 if self.rng.random() < self.four_probability else 2
        grid.put(r, c, Tile(value))
        logger.debug("spawned %d at (%d, %d)", value, r, c)
        return r, c


def slide_and_merge(line: List[Optional[Tile]]) -> Tuple[List[Optional[Tile]], int]:
    """
    向下标 0 挤压并合并一条线，同时返回本线增加的分数。
    例如: [2, 2, 2, 2] -> [4, 4, _, _], score_gain = 8
    """
    arr = [tile for tile in line if tile is not None]
    score_gain = 0
    i = 0
    while i < len(arr) - 1:
        if arr[i].can_merge_with(arr[i + 1]):
            score_gain += arr[i].merge(arr[i + 1])
            del arr[i + 1]
        i += 1

    padded: List[Optional[Tile]] = list(arr)
    padded += [None] * (len(line) - len(arr))
    return padded, score_gain


def resolve_move(grid: GridState, direction: str) -> MoveResult:
    """整盘向 direction 移动（原地修改 grid）。"""
    if direction not in DIRECTIONS:
        raise InvalidDirectionError(f"unknown direction {direction!r}, expected one of {DIRECTIONS}")

    for tile in grid.tiles():
        tile.merged_this_move = False

    before = grid.snapshot()
    total_gain = 0
    for index in range(grid.size):
        new_line, gain = slide_and_merge(grid.line(index, direction))
        grid.set_line(index, direction, new_line)
        total_gain += gain

    moved = grid.snapshot() != before
    return MoveResult(moved, total_gain)


def has_moves(grid: GridState) -> bool:
    """判断是否还能继续游戏：有空格，或上下左右相邻有相同数字。"""
    size = grid.size
    cells = grid.cells
    for r in range(size):
        for c in range(size):
            if cells[r][c] is None:
                return True

    for r in range(size):
        for c in range(size - 1):
            if cells[r][c].value == cells[r][c + 1].value:
                return True

    for c in range(size):
        for r in range(size - 1):
            if cells[r][c].value == cells[r + 1][c].value:
                return True

    return False


def get_max_tile(view: GridView) -> int:
    """取得当前最大的数字，空棋盘为 0。"""
    return max((value or 0 for row in view for value in row), default=0)


class BoardEngine:
    """
    对外的棋盘引擎：组合 GridState / TileSpawner / resolve_move / has_moves。
    分数由调用方累计，引擎只返回每一步的 score_delta。
    """

    def __init__(self, size: int = SIZE, rng: Optional[random.Random] = None) -> None:
        self.rng = rng if rng is not None else random.Random()
        self.grid = GridState.create_empty(size)
        self.spawner = TileSpawner(self.rng)

    @property
    def size(self) -> int:
        return self.grid.size

    def reset(self) -> None:
        self.grid.reset(self.rng)
        logger.debug("board reset: %s", self.view())

    def move(self, direction: str) -> MoveResult:
        result = resolve_move(self.grid, direction)
        logger.debug("move %s -> moved=%s delta=%d", direction, result.moved, result.score_delta)
        return result

    def add_random_tile(self) -> bool:
        return self.spawner.spawn_one(self.grid) is not None

    def has_moves(self) -> bool:
        return has_moves(self.grid)

    def view(self) -> GridView:
        """只读视图：view[r][c] 为数值或 None。"""
        return self.grid.snapshot()

    def value_at(self, r: int, c: int) -> Optional[int]:
        tile = self.grid.get(r, c)
        return tile.value if tile else None
