"""
Dialogue Monte Carlo Tree Search

Finds a strong reply to a user query by building a search tree over
candidate replies proposed by a text-generation model, rolling out short
continuations, and keeping the reply the search visits most.

## Simple Interface
```python
from dialogue_mcts import mcts
from dialogue_mcts.oracle.gemini import GeminiOracle

reply, tokens = mcts(GeminiOracle(), "How do I get better at chess?", num_simulations=20)
```

## Advanced Interface
```python
import random
from dialogue_mcts import DialogueState, SearchConfig, SearchEngine

engine = SearchEngine(oracle, SearchConfig(max_children=4, use_rave=False), rng=random.Random(7))
result = engine.run(DialogueState.create("Be brief.", "Explain TCP slow start"), 30, 3)
print(result.action)
print(result.child_stats())
```

## CLI Usage
```bash
dialogue-mcts run "How do I get better at chess?" --simulations 20 --rollout-depth 3
```
"""

from dialogue_mcts.config import (
    Config,
    OracleConfig,
    OutputConfig,
    RunConfig,
    SearchConfig,
)
from dialogue_mcts.errors import (
    DialogueMCTSError,
    OracleError,
    OracleParseError,
    OracleTransportError,
)
from dialogue_mcts.state import DialogueState, EvaluationMetrics, Turn
from dialogue_mcts.search import SearchEngine, SearchResult
from dialogue_mcts.optimize import mcts

__version__ = "0.1.0"

__all__ = [
    # Main interfaces
    "mcts",
    "SearchEngine",
    "SearchResult",

    # State
    "DialogueState",
    "EvaluationMetrics",
    "Turn",

    # Configuration
    "Config",
    "SearchConfig",
    "RunConfig",
    "OracleConfig",
    "OutputConfig",

    # Errors
    "DialogueMCTSError",
    "OracleError",
    "OracleParseError",
    "OracleTransportError",
]
