#!/usr/bin/env python3
"""
Quick Start Examples for Dialogue MCTS

This script shows the most common usage patterns to help you get started quickly.
Run this file directly or copy the examples into your own code.

Requires GEMINI_API_KEY in the environment or in a .env file.

Usage: python examples/quick_start.py
"""


def example_1_simple_usage():
    """Example 1: Simplest possible usage - one function call"""
    print("=" * 60)
    print("EXAMPLE 1: Simple Usage")
    print("=" * 60)

    from dialogue_mcts import mcts
    from dialogue_mcts.oracle.gemini import GeminiOracle

    reply, tokens = mcts(GeminiOracle(), "How do I get better at chess?", num_simulations=6)

    print("Query: How do I get better at chess?")
    print(f"Reply: {reply}")
    print(f"Completion tokens: {tokens}")
    print()


def example_2_inspect_the_tree():
    """Example 2: Run the engine directly and look at the root statistics"""
    print("=" * 60)
    print("EXAMPLE 2: Inspect the Tree")
    print("=" * 60)

    import random

    from dialogue_mcts import DialogueState, SearchConfig, SearchEngine
    from dialogue_mcts.oracle.gemini import GeminiOracle

    engine = SearchEngine(
        GeminiOracle(),
        SearchConfig(max_depth=3, max_children=3, exploration_constant=1.0),
        rng=random.Random(0),
    )
    state = DialogueState.create("You are a concise tutor.", "What is a monad?")
    result = engine.run(state, num_simulations=8, rollout_depth=2)

    for stats in result.child_stats():
        print(f"visits={stats['visits']:2d} value={stats['value']:.3f} prior={stats['prior']:.2f}")
        print(f"   {stats['action'][:70]!r}")
    print(f"Chosen: {result.action[:200]}")
    print()


def example_3_offline_oracle():
    """Example 3: Plug in your own oracle (no network needed)"""
    print("=" * 60)
    print("EXAMPLE 3: Custom Oracle")
    print("=" * 60)

    from dialogue_mcts import SearchConfig, mcts
    from dialogue_mcts.oracle import GenerationOracle

    class CannedOracle(GenerationOracle):
        replies = ["Practice tactics daily.", "Memorize openings.", "Play blitz all day."]
        scores = {"Practice tactics daily.": 0.9, "Memorize openings.": 0.5}

        async def propose_actions(self, state, count):
            return self.replies[:count]

        async def score_priors(self, state, actions):
            return [1.0 / len(actions)] * len(actions)

        async def evaluate(self, state):
            return self.scores.get(state.last_response, 0.1)

    reply, _ = mcts(
        CannedOracle(),
        "How do I get better at chess?",
        num_simulations=20,
        config=SearchConfig(max_depth=1),
        seed=0,
    )
    print(f"Reply: {reply}")
    print()


if __name__ == "__main__":
    print("Dialogue MCTS - Quick Start Examples")
    print("=" * 60)
    print()

    example_3_offline_oracle()

    try:
        example_1_simple_usage()
        example_2_inspect_the_tree()
        print("=" * 60)
        print("All examples completed!")
    except ValueError as e:
        print(f"Skipping Gemini examples: {e}")
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
