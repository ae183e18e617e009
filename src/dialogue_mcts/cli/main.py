"""
Main CLI application for dialogue MCTS.

Commands:
- run: Search for the best reply to a prompt
- config: Print or save the default configuration
- version: Show version information
"""

from __future__ import annotations

import json
import random
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

app = typer.Typer(
    name="dialogue-mcts",
    help="""
Dialogue Monte Carlo Tree Search

Finds a strong reply to a prompt by searching over candidate replies
proposed by a language model.

Quick start:
  dialogue-mcts run "How do I get better at chess?"
  dialogue-mcts run "Explain TCP slow start" --simulations 30 --max-children 4

For help with any command: dialogue-mcts COMMAND --help
""",
    add_completion=False,
    no_args_is_help=True,
)

console = Console(force_terminal=True, legacy_windows=True)


def _build_oracle(cfg):
    """Construct the oracle named by the configuration."""
    from dialogue_mcts.oracle.gemini import GeminiOracle

    return GeminiOracle(
        model=cfg.oracle.model,
        temperature=cfg.search.temperature,
        max_tokens=cfg.oracle.max_tokens,
        judge_temperature=cfg.oracle.judge_temperature,
        judge_max_tokens=cfg.oracle.judge_max_tokens,
    )


@app.command()
def run(
    prompt: str = typer.Argument(..., help="The user query to answer"),
    system: str = typer.Option(
        "",
        "--system",
        help="System prompt sent with every model call",
    ),
    simulations: Optional[int] = typer.Option(
        None,
        "--simulations", "-n",
        help="Number of MCTS simulations (default 10)",
        min=0,
    ),
    rollout_depth: Optional[int] = typer.Option(
        None,
        "--rollout-depth", "-r",
        help="Maximum rollout length per simulation (default 5)",
        min=0,
    ),
    max_depth: Optional[int] = typer.Option(
        None,
        "--max-depth",
        help="Depth at which dialogue states become terminal (default 10)",
        min=1,
    ),
    max_children: Optional[int] = typer.Option(
        None,
        "--max-children", "-k",
        help="Candidate replies requested per expansion (default 3)",
        min=1,
    ),
    exploration: Optional[float] = typer.Option(
        None,
        "--exploration", "-c",
        help="PUCT exploration constant (default 1.5)",
        min=0.0,
    ),
    no_rave: bool = typer.Option(
        False,
        "--no-rave",
        help="Disable RAVE statistics in selection",
    ),
    temperature: Optional[float] = typer.Option(
        None,
        "--temperature",
        help="Base sampling temperature for candidate replies (0.0-2.0)",
        min=0.0,
        max=2.0,
    ),
    concurrency: Optional[int] = typer.Option(
        None,
        "--concurrency",
        help="Simulations allowed in flight at once",
        min=1,
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model", "-m",
        help="Gemini model backing the oracle",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Seed for rollout sampling",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        help="YAML config file. Command-line options override its values",
        exists=True,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Save the reply and search statistics to a JSON file",
    ),
    format: str = typer.Option(
        "text",
        "--format", "-f",
        help="Output format: text or json",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
    silent: bool = typer.Option(False, "--silent", help="Suppress all output except the reply"),
):
    """
    Search for the best reply to PROMPT.

    Examples:
        dialogue-mcts run "How do I get better at chess?"

        dialogue-mcts run "Plan a week of meals" --simulations 40 --max-children 4 --seed 1

        dialogue-mcts run "Explain monads" --config search.yaml --output result.json
    """
    from dialogue_mcts.config import Config
    from dialogue_mcts.search.engine import SearchEngine
    from dialogue_mcts.state import DialogueState
    from dialogue_mcts.utils.logging import (
        print_candidates,
        print_header,
        print_result,
        set_verbosity,
    )

    verbosity = "normal"
    if silent:
        verbosity = "silent"
    elif debug:
        verbosity = "debug"
    elif verbose:
        verbosity = "verbose"

    cfg = Config.from_yaml(config) if config else Config()

    if simulations is not None:
        cfg.run.num_simulations = simulations
    if rollout_depth is not None:
        cfg.run.rollout_depth = rollout_depth
    if seed is not None:
        cfg.run.seed = seed
    if max_depth is not None:
        cfg.search.max_depth = max_depth
    if max_children is not None:
        cfg.search.max_children = max_children
    if exploration is not None:
        cfg.search.exploration_constant = exploration
    if no_rave:
        cfg.search.use_rave = False
    if temperature is not None:
        cfg.search.temperature = temperature
    if concurrency is not None:
        cfg.search.max_concurrency = concurrency
    if model is not None:
        cfg.oracle.model = model
    cfg.output.verbosity = verbosity
    if format not in ("text", "json"):
        console.print(f"[red]Error: unknown format '{format}' (use text or json)[/red]")
        raise typer.Exit(1)
    cfg.output.format = format

    set_verbosity(verbosity)

    try:
        oracle = _build_oracle(cfg)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("[dim]Set GEMINI_API_KEY in the environment or a .env file[/dim]")
        raise typer.Exit(1)

    engine = SearchEngine(oracle, cfg.search, rng=random.Random(cfg.run.seed))
    state = DialogueState.create(system, prompt)

    try:
        if not silent and cfg.output.format == "text":
            print_header("Dialogue MCTS")
            console.print(
                f"[dim]   Simulations: {cfg.run.num_simulations}, "
                f"rollout depth: {cfg.run.rollout_depth}, model: {cfg.oracle.model}[/dim]"
            )
        result = engine.run(state, cfg.run.num_simulations, cfg.run.rollout_depth)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        raise typer.Exit(130)

    output_data = {
        "prompt": prompt,
        "response": result.action,
        "simulations": result.simulations,
        "failed_simulations": result.failed_simulations,
        "completion_tokens": result.completion_tokens,
        "tree_size": len(result.tree),
        "children": result.child_stats(),
    }

    if cfg.output.format == "json":
        print(json.dumps(output_data, indent=2, ensure_ascii=False))
    elif silent:
        print(result.action)
    else:
        print_result(
            result.action or "(no response found)",
            visits=result.root.visits,
            nodes=len(result.tree),
            tokens=result.completion_tokens,
        )
        print_candidates(output_data["children"])

    if output:
        with open(output, "w", encoding="utf-8") as f:
            json.dump(output_data, f, indent=2, ensure_ascii=False)
        if not silent and cfg.output.format == "text":
            console.print(f"\n[dim]Results saved to {output}[/dim]")


@app.command("config")
def show_config(
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Write the default configuration to this YAML file",
    ),
):
    """Print or save the default configuration."""
    import yaml

    from dialogue_mcts.config import get_default_config

    cfg = get_default_config()
    if output:
        cfg.to_yaml(output)
        console.print(f"[dim]Default configuration written to {output}[/dim]")
    else:
        console.print(yaml.dump(cfg.to_dict(), default_flow_style=False), markup=False)


@app.command()
def version():
    """Show version and dependency information."""
    from dialogue_mcts import __version__

    console.print(f"\n[bold]dialogue-mcts[/bold] v{__version__}\n")

    try:
        import pydantic
        console.print(f"  pydantic: {pydantic.__version__}")
    except ImportError:
        console.print("  pydantic: [red]not installed[/red]")

    try:
        import google.generativeai as genai
        console.print(f"  google-generativeai: {genai.__version__}")
    except ImportError:
        console.print("  google-generativeai: [red]not installed[/red]")


def main():
    app()


if __name__ == "__main__":
    main()
