"""Bingo simulator package exposing the game engine, suggestion engine, and the web application."""

from .ai import EnhancedProbabilityCalculator, ProbabilityCalculator, SuggestionAPI
from .game import GameEngine, GameState, LineDetector
from .ui import app

__all__ = [
    "EnhancedProbabilityCalculator",
    "GameEngine",
    "GameState",
    "LineDetector",
    "ProbabilityCalculator",
    "SuggestionAPI",
    "app",
]
