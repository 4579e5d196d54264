"""FastAPI-powered web host for playing the cooperative Bingo simulator in the browser."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .ai import STRATEGIES, SuggestionAPI
from .game import (
    BOARD_SIZE,
    EVENT_NAMES,
    EngineConfig,
    GameEngine,
    GameError,
    Phase,
)

logger = logging.getLogger("bingosim.ui")

EVENT_LOG_LIMIT = 50


@dataclass
class GameSession:
    """Container for one engine, its suggestion selector, and recent events."""

    engine: GameEngine
    suggestions: SuggestionAPI
    events: List[Dict[str, object]] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, name: str, payload: Dict[str, object]) -> None:
        self.events.append({"event": name, **payload})
        del self.events[:-EVENT_LOG_LIMIT]


SESSIONS: Dict[str, GameSession] = {}
app = FastAPI(
    title="Bingo Simulator",
    description="Cooperative 5x5 Bingo with move suggestions",
)


def _validate_strategy(value: str) -> str:
    if value not in STRATEGIES:
        raise ValueError(
            f"Unsupported strategy {value!r}. Choose one of {', '.join(STRATEGIES)}."
        )
    return value


class NewGameRequest(BaseModel):
    """Request payload for starting a new game."""

    model_config = ConfigDict(populate_by_name=True)

    strategy: str = Field(default="standard", description="Suggestion engine")
    auto_computer_move: bool = Field(default=False, alias="autoComputerMove")

    @field_validator("strategy")
    @classmethod
    def ensure_supported_strategy(cls, value: str) -> str:
        return _validate_strategy(value)


class MoveRequest(BaseModel):
    """Request payload for a player mark."""

    row: int = Field(ge=0, le=BOARD_SIZE - 1)
    col: int = Field(ge=0, le=BOARD_SIZE - 1)


class ComputerMoveRequest(BaseModel):
    """Computer mark; leave both coordinates out for a random cell."""

    row: Optional[int] = Field(default=None, ge=0, le=BOARD_SIZE - 1)
    col: Optional[int] = Field(default=None, ge=0, le=BOARD_SIZE - 1)

    @model_validator(mode="after")
    def ensure_both_or_neither(self) -> "ComputerMoveRequest":
        if (self.row is None) != (self.col is None):
            raise ValueError("Provide both row and col, or neither for a random move")
        return self


class StrategyRequest(BaseModel):
    strategy: str

    @field_validator("strategy")
    @classmethod
    def ensure_supported_strategy(cls, value: str) -> str:
        return _validate_strategy(value)


class SuggestRequest(BaseModel):
    """Stateless suggestion for an arbitrary board."""

    board: List[List[int]]
    strategy: str = "standard"

    @field_validator("strategy")
    @classmethod
    def ensure_supported_strategy(cls, value: str) -> str:
        return _validate_strategy(value)


def _create_session(strategy: str, auto_computer_move: bool) -> Tuple[str, GameSession]:
    """Create and start a new game session and register it for later access."""

    engine = GameEngine(EngineConfig(auto_computer_move=auto_computer_move))
    session = GameSession(engine=engine, suggestions=SuggestionAPI(strategy=strategy))
    for name in EVENT_NAMES:
        engine.subscribe(name, lambda payload, name=name: session.record(name, payload))
    engine.start_game()
    session_id = uuid.uuid4().hex
    SESSIONS[session_id] = session
    logger.info("Created session %s (strategy=%s)", session_id, strategy)
    return session_id, session


def _get_session(game_id: str) -> GameSession:
    try:
        return SESSIONS[game_id]
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Game not found") from exc


def _game_error(exc: GameError) -> HTTPException:
    return HTTPException(status_code=400, detail={"kind": exc.kind, "message": str(exc)})


def _serialize_session(game_id: str, session: GameSession) -> Dict[str, object]:
    with session.lock:
        engine = session.engine
        snapshot = engine.snapshot()
        state: Dict[str, object] = {
            "id": game_id,
            **snapshot.to_dict(),
            "strategy": session.suggestions.strategy,
            "progress": engine.get_game_progress(),
            "totalLines": len(snapshot.completed_lines),
            "events": list(session.events),
            "suggestion": None,
        }
        if snapshot.phase is Phase.PLAYER_TURN:
            suggestion = session.suggestions.best_move(snapshot.board)
            state["suggestion"] = suggestion.to_dict()
        return state


@app.post("/api/game")
def create_game(request: NewGameRequest) -> Dict[str, object]:
    game_id, session = _create_session(request.strategy, request.auto_computer_move)
    return _serialize_session(game_id, session)


@app.get("/api/game/{game_id}")
def get_game(game_id: str) -> Dict[str, object]:
    session = _get_session(game_id)
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/move")
def make_move(game_id: str, request: MoveRequest) -> Dict[str, object]:
    session = _get_session(game_id)
    with session.lock:
        try:
            session.engine.apply_player_move(request.row, request.col)
        except GameError as exc:
            raise _game_error(exc) from exc
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/computer")
def computer_move(
    game_id: str, request: Optional[ComputerMoveRequest] = None
) -> Dict[str, object]:
    session = _get_session(game_id)
    with session.lock:
        try:
            if request is None or request.row is None:
                session.engine.random_computer_move()
            else:
                session.engine.apply_computer_move(request.row, request.col)
        except GameError as exc:
            raise _game_error(exc) from exc
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/strategy")
def set_strategy(game_id: str, request: StrategyRequest) -> Dict[str, object]:
    session = _get_session(game_id)
    with session.lock:
        session.suggestions.set_strategy(request.strategy)
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/reset")
def reset_game(game_id: str) -> Dict[str, object]:
    session = _get_session(game_id)
    with session.lock:
        session.engine.reset()
        session.engine.start_game()
    return _serialize_session(game_id, session)


@app.post("/api/suggest")
def suggest(request: SuggestRequest) -> Dict[str, object]:
    api = SuggestionAPI(strategy=request.strategy)
    try:
        return api.best_move(request.board).to_dict()
    except GameError as exc:
        raise _game_error(exc) from exc


@app.get("/", response_class=HTMLResponse)
def index() -> str:
    return HTML_PAGE


HTML_PAGE = """<!DOCTYPE html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\" />
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
    <title>Bingo Simulator</title>
    <style>
      body {
        margin: 0;
        min-height: 100vh;
        display: flex;
        justify-content: center;
        padding: 2rem 1rem;
        font-family: system-ui, -apple-system, \"Segoe UI\", sans-serif;
        background: #eef2ff;
        color: #13203a;
      }
      main {
        background: white;
        border-radius: 16px;
        box-shadow: 0 16px 32px rgba(34, 47, 79, 0.14);
        padding: 2rem;
        width: min(520px, 100%);
      }
      h1 {
        margin: 0 0 1rem;
        text-align: center;
      }
      .toolbar {
        display: flex;
        gap: 0.5rem;
        flex-wrap: wrap;
        justify-content: center;
        margin-bottom: 1rem;
      }
      .board {
        display: grid;
        grid-template-columns: repeat(5, 1fr);
        gap: 6px;
        margin: 1rem 0;
      }
      .cell {
        aspect-ratio: 1;
        border-radius: 10px;
        border: 1px solid #c7cfe8;
        background: #f8f9ff;
        font-size: 1.4rem;
        cursor: pointer;
      }
      .cell.player { background: #3a66ff; color: white; }
      .cell.computer { background: #ff7a45; color: white; }
      .cell.suggested { outline: 3px dashed #2bb673; }
      .status { text-align: center; min-height: 1.5rem; }
    </style>
  </head>
  <body>
    <main>
      <h1>Bingo Simulator</h1>
      <div class=\"toolbar\">
        <select id=\"strategy\">
          <option value=\"standard\">Standard</option>
          <option value=\"enhanced\">Enhanced</option>
        </select>
        <button id=\"new-game\">New game</button>
        <button id=\"random-computer\">Random computer move</button>
      </div>
      <p class=\"status\" id=\"status\">Start a new game.</p>
      <div class=\"board\" id=\"board\"></div>
      <p class=\"status\" id=\"lines\"></p>
    </main>
    <script>
      let gameId = null;
      let state = null;
      const boardEl = document.getElementById('board');
      const statusEl = document.getElementById('status');
      const linesEl = document.getElementById('lines');

      async function call(url, body) {
        const response = await fetch(url, {
          method: 'POST',
          headers: { 'Content-Type': 'application/json' },
          body: body === undefined ? undefined : JSON.stringify(body),
        });
        const payload = await response.json();
        if (!response.ok) {
          const detail = payload.detail;
          statusEl.textContent = detail && detail.message ? detail.message : 'Request failed';
          return null;
        }
        return payload;
      }

      function render() {
        boardEl.innerHTML = '';
        const suggestion = state.suggestion;
        state.board.forEach((row, r) => {
          row.forEach((cell, c) => {
            const button = document.createElement('button');
            button.className = 'cell';
            if (cell === 1) { button.classList.add('player'); button.textContent = 'P'; }
            if (cell === 2) { button.classList.add('computer'); button.textContent = 'C'; }
            if (suggestion && suggestion.row === r && suggestion.col === c) {
              button.classList.add('suggested');
            }
            button.addEventListener('click', () => onCell(r, c));
            boardEl.appendChild(button);
          });
        });
        const phase = state.phase;
        if (phase === 'player-turn') {
          statusEl.textContent = `Round ${state.currentRound}: your move` +
            (suggestion ? ` (suggested ${suggestion.row},${suggestion.col}, ${suggestion.confidence})` : '');
        } else if (phase === 'computer-input') {
          statusEl.textContent = `Round ${state.currentRound}: pick the computer's cell`;
        } else if (phase === 'game-over') {
          statusEl.textContent = 'Game over';
        }
        linesEl.textContent = `Completed lines: ${state.totalLines}`;
      }

      async function onCell(row, col) {
        if (!state) return;
        let next = null;
        if (state.phase === 'player-turn') {
          next = await call(`/api/game/${gameId}/move`, { row, col });
        } else if (state.phase === 'computer-input') {
          next = await call(`/api/game/${gameId}/computer`, { row, col });
        }
        if (next) { state = next; render(); }
      }

      document.getElementById('new-game').addEventListener('click', async () => {
        const strategy = document.getElementById('strategy').value;
        const next = await call('/api/game', { strategy });
        if (next) { gameId = next.id; state = next; render(); }
      });

      document.getElementById('random-computer').addEventListener('click', async () => {
        if (!gameId) return;
        const next = await call(`/api/game/${gameId}/computer`);
        if (next) { state = next; render(); }
      });

      document.getElementById('strategy').addEventListener('change', async (event) => {
        if (!gameId) return;
        const next = await call(`/api/game/${gameId}/strategy`, { strategy: event.target.value });
        if (next) { state = next; render(); }
      });
    </script>
  </body>
</html>
"""
