"""
Error handling for CLI commands.

Maps library exceptions to exit codes and rich-formatted messages.
"""

import traceback
import logging

import typer
from rich.console import Console

from ..exceptions import (
    ConfigurationError,
    InvalidDimensionsError,
    ModelTrainingError,
    ObservationError,
    PersistenceError
)

console = Console(stderr=True)
logger = logging.getLogger(__name__)


EXIT_CODES = {
    "success": 0,
    "general_error": 1,
    "invalid_input": 2,
    "persistence_error": 3,
    "training_error": 4,
    "configuration_error": 5
}

SUGGESTIONS = {
    InvalidDimensionsError: ["N, M0 and M1 must all be positive integers"],
    ObservationError: ["Corpus files hold {\"sequences\": [[[p, q], ...], ...]} with p < M0 and q < M1"],
    PersistenceError: ["Check the --store path, or run 'hmmkit init' to create a model first",
                       "N, M0 and M1 must match the stored model"],
    ConfigurationError: ["Config files must be JSON objects keyed by section"]
}


def exit_code_for(error: Exception) -> int:
    """Exit code for an exception raised by a command."""
    if isinstance(error, (InvalidDimensionsError, ObservationError)):
        return EXIT_CODES["invalid_input"]
    if isinstance(error, PersistenceError):
        return EXIT_CODES["persistence_error"]
    if isinstance(error, ModelTrainingError):
        return EXIT_CODES["training_error"]
    if isinstance(error, ConfigurationError):
        return EXIT_CODES["configuration_error"]
    return EXIT_CODES["general_error"]


def format_error_message(error: Exception, operation: str, debug: bool = False) -> str:
    """Format error message with context and suggestions."""
    message_parts = [
        f"[red]Error during {operation}:[/red]",
        f"[red]{type(error).__name__}: {error}[/red]"
    ]

    for error_type, suggestions in SUGGESTIONS.items():
        if isinstance(error, error_type):
            message_parts.append("")
            message_parts.append("[yellow]Suggestions:[/yellow]")
            for suggestion in suggestions:
                message_parts.append(f"  • {suggestion}")
            break

    if debug:
        message_parts.append("")
        message_parts.append("[dim]Debug information:[/dim]")
        message_parts.append(f"[dim]{traceback.format_exc()}[/dim]")

    return "\n".join(message_parts)


def handle_cli_error(error: Exception, operation: str, debug: bool = False) -> None:
    """Report an error and exit with the matching code."""
    console.print(format_error_message(error, operation, debug))
    logger.error(f"CLI error in {operation}: {error}", exc_info=debug)
    raise typer.Exit(exit_code_for(error))
