"""Output format utilities for giti commands that print listings."""

from enum import Enum
from typing import Callable
import click
from click.core import ParameterSource


class OutputFormat(str, Enum):
    """Supported output formats for CLI commands."""

    TEXT = "text"
    JSON = "json"


def format_option(default: OutputFormat = OutputFormat.TEXT) -> Callable:
    """Create a Click option decorator for output format selection.

    Provides --format with choices text and json, plus a --json alias.

    Example:
        @click.command()
        @format_option()
        def my_command(format: str):
            ...
    """

    def decorator(func: Callable) -> Callable:
        def keep_alias(ctx, param, value):
            # --json is eager and has already set the format; only an
            # explicit --format overrides it.
            if ctx.get_parameter_source(param.name) == ParameterSource.DEFAULT:
                return ctx.params.get("format", value)
            return value

        func = click.option(
            "--format",
            "format",
            type=click.Choice([f.value for f in OutputFormat]),
            default=default.value,
            callback=keep_alias,
            help=f"Output format (default: {default.value}).",
            show_default=False,
        )(func)

        def set_json(ctx, param, value):
            if value:
                ctx.params["format"] = OutputFormat.JSON.value
            return value

        func = click.option(
            "--json",
            "json_flag",
            is_flag=True,
            is_eager=True,
            expose_value=False,
            callback=set_json,
            help="Output in JSON format (alias for --format json).",
        )(func)

        return func

    return decorator
