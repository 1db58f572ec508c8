from .base import AppliedMove, BaseStrategy, GameStrategy
from .hangman import Hangman, RandomWord
from .quiz import Quiz
from .tictactoe import TicTacToe
from .wordchain import WordChain


def default_strategies() -> dict[str, GameStrategy]:
    strategies = [TicTacToe(), WordChain(), Hangman(), RandomWord(), Quiz()]
    return {strategy.name: strategy for strategy in strategies}


__all__ = [
    "AppliedMove",
    "BaseStrategy",
    "GameStrategy",
    "Hangman",
    "Quiz",
    "RandomWord",
    "TicTacToe",
    "WordChain",
    "default_strategies",
]
