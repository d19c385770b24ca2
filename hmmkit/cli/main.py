"""
Main CLI application for hmmkit.

Provides commands to create, train, decode with and evaluate models kept
in a key-value store.
"""

import json
import sys
from pathlib import Path
from typing import Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..config import get_config, load_config_file
from ..hmm import HiddenMarkovModel, evaluate, viterbi
from ..io import load_corpus, open_store
from ..logger import set_log_level, use_console_handler
from ..train import BaumWelchTrainer, ModelPersistence, SupervisedTrainer
from .errors import handle_cli_error

console = Console()

app = typer.Typer(
    name="hmmkit",
    help="Hidden Markov Model inference and training engine",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True
)

STORE_HELP = "Model store file (defaults to the 'storage.path' setting)"
N_HELP = "Number of hidden states (defaults to 'model.n_states')"
M0_HELP = "First emission alphabet size (defaults to 'model.n_symbols_0')"
M1_HELP = "Second emission alphabet size (defaults to 'model.n_symbols_1')"


def _open_persistence(store_path: Optional[Path]) -> ModelPersistence:
    return ModelPersistence(open_store(path=str(store_path) if store_path else None))


def _dimensions(n_states: Optional[int],
                n_symbols_0: Optional[int],
                n_symbols_1: Optional[int]) -> Tuple[int, int, int]:
    """Fill unset model dimensions from the 'model' configuration section."""
    return (
        n_states if n_states is not None else get_config('model', 'n_states'),
        n_symbols_0 if n_symbols_0 is not None else get_config('model', 'n_symbols_0'),
        n_symbols_1 if n_symbols_1 is not None else get_config('model', 'n_symbols_1')
    )


def _is_debug(ctx: typer.Context) -> bool:
    return bool(ctx.obj and ctx.obj.get("debug"))


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
    debug: bool = typer.Option(False, "--debug", help="Show tracebacks on errors"),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to JSON configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False
    )
):
    """
    hmmkit: Hidden Markov Model inference and training engine

    \b
    Quick Start:
    1. Create a model:      hmmkit init 8 4 4 --store model.joblib
    2. Label-count it:      hmmkit learn labelled.json 8 4 4 --store model.joblib
    3. Refine with EM:      hmmkit train corpus.json 8 4 4 --store model.joblib
    4. Decode sequences:    hmmkit decode corpus.json 8 4 4 --store model.joblib

    N M0 M1 may be left out; they then come from the "model" config section.
    """
    ctx.obj = {"debug": debug}

    use_console_handler(RichHandler(console=Console(stderr=True), show_path=False))

    if config_file:
        try:
            load_config_file(str(config_file))
        except Exception as e:
            handle_cli_error(e, "configuration loading", debug)

    if quiet:
        set_log_level('ERROR')
    elif verbose or debug:
        set_log_level('DEBUG')
    else:
        set_log_level(get_config('logging', 'level') or 'INFO')


@app.command("init")
def init_model(
    ctx: typer.Context,
    n_states: Optional[int] = typer.Argument(None, help=N_HELP),
    n_symbols_0: Optional[int] = typer.Argument(None, help=M0_HELP),
    n_symbols_1: Optional[int] = typer.Argument(None, help=M1_HELP),
    store: Optional[Path] = typer.Option(None, "--store", "-s", help=STORE_HELP),
    uniform_pi: bool = typer.Option(False, "--uniform-pi", help="Start with a uniform initial distribution")
):
    """Create a fresh model and write it to the store."""
    try:
        n_states, n_symbols_0, n_symbols_1 = _dimensions(n_states, n_symbols_0, n_symbols_1)
        model = HiddenMarkovModel(n_states, n_symbols_0, n_symbols_1)
        if uniform_pi:
            model.pi[:] = 1.0 / n_states

        _open_persistence(store).store(model)
        console.print(f"[green]Created {model!r}[/green]")
    except Exception as e:
        handle_cli_error(e, "model creation", _is_debug(ctx))


@app.command("learn")
def learn_model(
    ctx: typer.Context,
    corpus: Path = typer.Argument(..., help="Labelled corpus (JSON)", exists=True, dir_okay=False),
    n_states: Optional[int] = typer.Argument(None, help=N_HELP),
    n_symbols_0: Optional[int] = typer.Argument(None, help=M0_HELP),
    n_symbols_1: Optional[int] = typer.Argument(None, help=M1_HELP),
    store: Optional[Path] = typer.Option(None, "--store", "-s", help=STORE_HELP),
    fresh: bool = typer.Option(False, "--fresh", help="Count onto a new model instead of the stored one")
):
    """Update a model by counting over sequences with known states."""
    try:
        n_states, n_symbols_0, n_symbols_1 = _dimensions(n_states, n_symbols_0, n_symbols_1)
        persistence = _open_persistence(store)
        sequences = load_corpus(corpus)

        if fresh or not persistence.exists(n_states, n_symbols_0):
            model = HiddenMarkovModel(n_states, n_symbols_0, n_symbols_1)
        else:
            model = persistence.load(n_states, n_symbols_0, n_symbols_1)

        trainer = SupervisedTrainer()
        trainer.learn(model, sequences)
        persistence.store(model)

        visited = int((trainer.visit_counts > 0).sum())
        console.print(f"[green]Counted {len(sequences)} sequences; "
                      f"{visited}/{n_states} states visited[/green]")
    except Exception as e:
        handle_cli_error(e, "supervised learning", _is_debug(ctx))


@app.command("train")
def train_model(
    ctx: typer.Context,
    corpus: Path = typer.Argument(..., help="Observation corpus (JSON)", exists=True, dir_okay=False),
    n_states: Optional[int] = typer.Argument(None, help=N_HELP),
    n_symbols_0: Optional[int] = typer.Argument(None, help=M0_HELP),
    n_symbols_1: Optional[int] = typer.Argument(None, help=M1_HELP),
    store: Optional[Path] = typer.Option(None, "--store", "-s", help=STORE_HELP),
    max_iterations: Optional[int] = typer.Option(None, "--max-iter", "-i", help="Maximum EM iterations"),
    tolerance: Optional[float] = typer.Option(None, "--tolerance", "-t", help="Convergence tolerance"),
    n_jobs: Optional[int] = typer.Option(None, "--jobs", "-j", help="Worker threads for the E-step")
):
    """Re-estimate a stored model with Baum-Welch."""
    try:
        n_states, n_symbols_0, n_symbols_1 = _dimensions(n_states, n_symbols_0, n_symbols_1)
        persistence = _open_persistence(store)
        sequences = load_corpus(corpus)
        model = persistence.load(n_states, n_symbols_0, n_symbols_1)

        trainer = BaumWelchTrainer(
            max_iterations=max_iterations,
            convergence_tolerance=tolerance,
            n_jobs=n_jobs
        )
        trainer.fit(model, sequences)
        persistence.store(model)

        stats = trainer.get_training_summary()
        table = Table(title="Baum-Welch Training")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="magenta")
        table.add_row("Sequences", str(len(sequences)))
        table.add_row("Iterations", str(stats['iterations']))
        table.add_row("Stopped by", str(stats['converged_by']))
        table.add_row("Avg log-likelihood", f"{stats['final_log_likelihood']:.6f}")
        table.add_row("Time", f"{stats['training_time']:.2f}s")
        console.print(table)
    except Exception as e:
        handle_cli_error(e, "training", _is_debug(ctx))


@app.command("decode")
def decode_sequences(
    ctx: typer.Context,
    corpus: Path = typer.Argument(..., help="Observation corpus (JSON)", exists=True, dir_okay=False),
    n_states: Optional[int] = typer.Argument(None, help=N_HELP),
    n_symbols_0: Optional[int] = typer.Argument(None, help=M0_HELP),
    n_symbols_1: Optional[int] = typer.Argument(None, help=M1_HELP),
    store: Optional[Path] = typer.Option(None, "--store", "-s", help=STORE_HELP),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write paths as JSON")
):
    """Print the Viterbi path of every sequence."""
    try:
        n_states, n_symbols_0, n_symbols_1 = _dimensions(n_states, n_symbols_0, n_symbols_1)
        sequences = load_corpus(corpus)
        model = _open_persistence(store).load(n_states, n_symbols_0, n_symbols_1)

        results = []
        table = Table(title="Viterbi Decoding")
        table.add_column("#", style="cyan")
        table.add_column("Path", style="green")
        table.add_column("Probability", style="magenta")

        for idx, sequence in enumerate(sequences):
            path, probability = viterbi(model, sequence)
            results.append({"path": path.tolist(), "probability": probability})
            table.add_row(str(idx), " ".join(str(s) for s in path), f"{probability:.6g}")

        console.print(table)

        if output:
            output.parent.mkdir(parents=True, exist_ok=True)
            with open(output, 'w', encoding='utf-8') as f:
                json.dump({"results": results}, f, indent=2)
            console.print(f"Results written to {output}")
    except Exception as e:
        handle_cli_error(e, "decoding", _is_debug(ctx))


@app.command("evaluate")
def evaluate_sequences(
    ctx: typer.Context,
    corpus: Path = typer.Argument(..., help="Observation corpus (JSON)", exists=True, dir_okay=False),
    n_states: Optional[int] = typer.Argument(None, help=N_HELP),
    n_symbols_0: Optional[int] = typer.Argument(None, help=M0_HELP),
    n_symbols_1: Optional[int] = typer.Argument(None, help=M1_HELP),
    store: Optional[Path] = typer.Option(None, "--store", "-s", help=STORE_HELP),
    linear: bool = typer.Option(False, "--linear", help="Report probabilities instead of log-likelihoods")
):
    """Print the likelihood of every sequence."""
    try:
        n_states, n_symbols_0, n_symbols_1 = _dimensions(n_states, n_symbols_0, n_symbols_1)
        sequences = load_corpus(corpus)
        model = _open_persistence(store).load(n_states, n_symbols_0, n_symbols_1)

        table = Table(title="Sequence Likelihood")
        table.add_column("#", style="cyan")
        table.add_column("Length", style="green")
        table.add_column("Probability" if linear else "Log-likelihood", style="magenta")

        for idx, sequence in enumerate(sequences):
            value = evaluate(model, sequence, logarithm=not linear)
            table.add_row(str(idx), str(len(sequence)), f"{value:.6g}")

        console.print(table)
    except Exception as e:
        handle_cli_error(e, "evaluation", _is_debug(ctx))


@app.command("version")
def show_version():
    """Show hmmkit version information."""
    console.print(Panel.fit(
        f"[bold]hmmkit {__version__}[/bold]\n"
        f"Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        border_style="blue"
    ))


def cli_main():
    """Console script entry point."""
    app()


if __name__ == "__main__":
    cli_main()
