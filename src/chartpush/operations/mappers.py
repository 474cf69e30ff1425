"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import logging

import typer
from typing import Callable, TypeVar

T = TypeVar('T')

logger = logging.getLogger(__name__)

EXIT_CODES = {
    "ValidationError": 2,
    "ValueError": 2,
    "FileNotFoundError": 2,
    "AuthenticationDenied": 4,
    "ContentRejected": 5,
    "ProtocolViolation": 6,
    "TransportError": 7,
}


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns exit codes:
    - 0: Success
    - 2: Bad input (ValueError, ValidationError, FileNotFoundError)
    - 3: Unknown error
    - 4: Registry refused authentication (AuthenticationDenied)
    - 5: Registry rejected content (ContentRejected)
    - 6: Registry broke protocol expectations (ProtocolViolation)
    - 7: Registry unreachable (TransportError)

    Args:
        exc: Exception to map

    Returns:
        Exit code (2-7, with 3 as fallback for unknown exceptions)
    """
    return EXIT_CODES.get(type(exc).__name__, 3)


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit. This centralizes error handling so
    CLI commands don't need individual try/except blocks.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except typer.Exit:
        raise
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        step = getattr(e, "step", None)
        prefix = f"Error ({step})" if step else "Error"
        typer.echo(f"{prefix}: {e}", err=True)
        raise typer.Exit(code=exit_code_for(e)) from e
