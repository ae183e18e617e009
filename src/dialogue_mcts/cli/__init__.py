"""Command-line interface for dialogue MCTS."""
