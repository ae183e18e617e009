"""
Configuration schema for the dialogue MCTS engine.

All configuration classes use Pydantic for validation. The main Config
class combines every section and can be loaded from / saved to YAML.

Configuration areas:
- SearchConfig: Tree search parameters (depth cutoff, branching, PUCT/RAVE)
- RunConfig: Simulation budget and seeding for one search call
- OracleConfig: Which model backs the generation oracle and how it is sampled
- OutputConfig: Verbosity and result formatting
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field


class SearchConfig(BaseModel):
    """
    Parameters of the tree search itself.

    Key Parameters:

    **Tree shape**:
    - max_depth: States at or beyond this depth are terminal. Governs both
      the tree and rollouts.
    - max_children: Candidate replies requested when a node is expanded.

    **Selection**:
    - exploration_constant: C in the PUCT exploration term. Higher values
      spread visits across more siblings.
    - use_rave: Blend RAVE statistics into the selection score.

    **Sampling**:
    - temperature: Base temperature for candidate replies; each further
      candidate in one expansion is sampled 0.1 hotter. Sampling belongs to
      the oracle: SearchEngine and mcts() do not read this field. It is
      passed to the oracle when one is built from a Config (the CLI does
      this); an oracle constructed directly takes its own ``temperature``.

    **Scheduling**:
    - max_concurrency: Simulations allowed in flight at once. 1 runs the
      simulations strictly one after another.
    """

    max_depth: int = Field(default=10, ge=1)
    max_children: int = Field(default=3, ge=1)
    exploration_constant: float = Field(default=1.5, ge=0)
    use_rave: bool = True
    temperature: float = Field(default=0.8, ge=0, le=2)
    max_concurrency: int = Field(default=8, ge=1)

    class Config:
        extra = "forbid"


class RunConfig(BaseModel):
    """Simulation budget for one search call."""

    num_simulations: int = Field(default=10, ge=0)
    rollout_depth: int = Field(default=5, ge=0)
    seed: int | None = None  # None = nondeterministic rollouts

    class Config:
        extra = "forbid"


class OracleConfig(BaseModel):
    """Configuration for the model that backs the generation oracle."""

    provider: Literal["gemini"] = "gemini"
    model: str = "gemini-2.5-flash"
    max_tokens: int = Field(default=4096, ge=1, le=32768)
    judge_temperature: float = Field(default=0.1, ge=0, le=2)
    judge_max_tokens: int = Field(default=256, ge=1, le=32768)

    class Config:
        extra = "forbid"


class OutputConfig(BaseModel):
    """Configuration for output settings."""

    verbosity: Literal["silent", "minimal", "normal", "verbose", "debug"] = "normal"
    format: Literal["text", "json"] = "text"

    class Config:
        extra = "forbid"


class Config(BaseModel):
    """
    Main configuration for the dialogue MCTS engine.

    Usage Patterns:

    **Default Configuration**:
    >>> config = Config()

    **Programmatic Customization**:
    >>> config = Config()
    >>> config.search.max_children = 5
    >>> config.run.num_simulations = 40

    **YAML Configuration**:
    >>> config = Config.from_yaml("search.yaml")
    >>> config.to_yaml("search_copy.yaml")
    """

    search: SearchConfig = Field(default_factory=SearchConfig)
    run: RunConfig = Field(default_factory=RunConfig)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    class Config:
        extra = "forbid"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Load configuration from a dictionary."""
        return cls(**data)

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False)

    def to_dict(self) -> dict:
        """Convert configuration to a dictionary."""
        return self.model_dump()


def get_default_config() -> Config:
    """Configuration with the defaults used by mcts() and the CLI."""
    return Config(
        search=SearchConfig(
            max_depth=10,
            max_children=3,
            exploration_constant=1.5,
            use_rave=True,
            temperature=0.8,
        ),
        run=RunConfig(num_simulations=10, rollout_depth=5),
    )
