import logging
import threading
import uuid
from collections import OrderedDict
from typing import Any, Dict, Optional

from flask import Flask, abort, jsonify, redirect, render_template, request, session, url_for

from game2048 import (
    DIRECTIONS,
    SIZE,
    WIN_TILE,
    BoardEngine,
    GridView,
    InvalidDirectionError,
    MoveResult,
    get_max_tile,
)

app = Flask(__name__)
app.config.from_mapping(
    SECRET_KEY="change_this_to_a_random_secret_key",
    BOARD_SIZE=SIZE,
    WIN_TILE=WIN_TILE,
    MAX_GAMES=1000,  # 进程内最多保留的游戏数，超出后淘汰最久未访问的
)
# FLASK_SECRET_KEY / FLASK_BOARD_SIZE / FLASK_WIN_TILE / FLASK_MAX_GAMES 环境变量覆盖默认值
app.config.from_prefixed_env()

# 键盘按键 -> 移动方向
KEY_DIRECTIONS = {
    "ArrowUp": "up",
    "ArrowDown": "down",
    "ArrowLeft": "left",
    "ArrowRight": "right",
    "w": "up",
    "s": "down",
    "a": "left",
    "d": "right",
}


def direction_for_key(key: str) -> Optional[str]:
    """把按键映射为方向，WASD 不区分大小写；无法识别时返回 None。"""
    if key in KEY_DIRECTIONS:
        return KEY_DIRECTIONS[key]
    return KEY_DIRECTIONS.get(key.lower()) if len(key) == 1 else None


class GameSession:
    """
    一局游戏：引擎 + 分数 + 胜负状态。
    同一局可能被多个请求线程同时访问，play / new_game / to_dict 都在 lock 内执行。
    """

    def __init__(self, size: int = SIZE, win_tile: int = WIN_TILE, engine: Optional[BoardEngine] = None) -> None:
        self.engine = engine if engine is not None else BoardEngine(size)
        self.win_tile = win_tile
        self.lock = threading.Lock()
        self.score = 0
        self.moves = 0
        self.won = False
        self.game_over = False

    def new_game(self) -> None:
        """初始化一局新游戏。"""
        with self.lock:
            self.engine.reset()
            self.score = 0
            self.moves = 0
            self.won = False
            self.game_over = False

    def play(self, direction: str) -> MoveResult:
        """执行一步；只有棋盘确实变化时才加分、生成新数字。"""
        # 游戏结束后也要拒绝非法方向
        if direction not in DIRECTIONS:
            raise InvalidDirectionError(f"unknown direction {direction!r}, expected one of {DIRECTIONS}")

        with self.lock:
            if self.game_over:
                return MoveResult(False, 0)

            result = self.engine.move(direction)
            if result.moved:
                self.score += result.score_delta
                self.moves += 1
                self.engine.add_random_tile()
                if get_max_tile(self.engine.view()) >= self.win_tile:
                    self.won = True
                self.game_over = not self.engine.has_moves()
            return result

    @property
    def grid(self) -> GridView:
        return self.engine.view()

    def to_dict(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "size": self.engine.size,
                "grid": self.engine.view(),
                "score": self.score,
                "moves": self.moves,
                "won": self.won,
                "game_over": self.game_over,
            }


# 进行中的游戏保存在进程内，session 里只存 game_id。
# 按最近访问排序，超过 MAX_GAMES 时从最久未访问的一端淘汰。
GAMES: "OrderedDict[str, GameSession]" = OrderedDict()
_games_lock = threading.Lock()


def register_game(game_id: str, game: GameSession, replaces: Optional[str] = None) -> None:
    """登记一局游戏，必要时淘汰最久未访问的游戏。"""
    with _games_lock:
        if replaces is not None:
            GAMES.pop(replaces, None)
        GAMES[game_id] = game
        while len(GAMES) > app.config["MAX_GAMES"]:
            evicted_id, _ = GAMES.popitem(last=False)
            app.logger.info("evicted idle game %s", evicted_id)


def lookup_game(game_id: Optional[str]) -> Optional[GameSession]:
    with _games_lock:
        game = GAMES.get(game_id) if game_id else None
        if game is not None:
            GAMES.move_to_end(game_id)
        return game


def start_new_game() -> GameSession:
    """新建一局并登记到当前 session。"""
    game = GameSession(app.config["BOARD_SIZE"], app.config["WIN_TILE"])
    game.new_game()
    game_id = uuid.uuid4().hex
    register_game(game_id, game, replaces=session.get("game_id"))
    session["game_id"] = game_id
    app.logger.info("new game %s (size %d)", game_id, game.engine.size)
    return game


def get_game() -> GameSession:
    """获取当前 session 的游戏，没有（或已被淘汰）则新建。"""
    game = lookup_game(session.get("game_id"))
    if game is None:
        game = start_new_game()
    return game


@app.route("/")
def index():
    """游戏主页面。"""
    game = get_game()
    state = game.to_dict()
    return render_template(
        "index.html",
        board=state["grid"],
        size=state["size"],
        score=state["score"],
        moves=state["moves"],
        max_tile=get_max_tile(state["grid"]),
        won=state["won"],
        game_over=state["game_over"],
        high_score=session.get("high_score", 0),
        win_tile=game.win_tile,
    )


@app.route("/state")
def state():
    """当前游戏状态（JSON）。"""
    payload = get_game().to_dict()
    payload["high_score"] = session.get("high_score", 0)
    return jsonify(payload)


@app.route("/move", methods=["POST"])
def move():
    """处理移动操作。"""
    direction = request.form.get("direction")
    if direction is None and "key" in request.form:
        direction = direction_for_key(request.form["key"])
    if direction is None:
        app.logger.warning("move rejected: no direction in %s", dict(request.form))
        abort(400, description=f"direction must be one of {', '.join(DIRECTIONS)}")

    game = get_game()
    try:
        result = game.play(direction)
    except InvalidDirectionError as exc:
        app.logger.warning("move rejected: %s", exc)
        abort(400, description=str(exc))

    state = game.to_dict()
    # 更新最高分
    session["high_score"] = max(state["score"], session.get("high_score", 0))
    if result.moved and state["game_over"]:
        app.logger.info("game %s over: score %d in %d moves", session["game_id"], state["score"], state["moves"])

    return redirect(url_for("index"))


@app.route("/reset", methods=["POST"])
def reset():
    """重新开始一局游戏（保留最高分）。"""
    start_new_game()
    return redirect(url_for("index"))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    app.run(debug=True)
