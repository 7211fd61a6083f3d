"""Command-line interface: ``envsense info`` and ``envsense check``."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import click
import typer
from rich.text import Text
from typer.core import TyperGroup

from envsense import __version__
from envsense.check import Mode, evaluate_all, list_lines, parse_predicate, warnings_for
from envsense.config import EnvsenseConfig
from envsense.engine import detect
from envsense.errors import EnvsenseError, FieldSelectionError, PredicateError, Suggestion, UsageError
from envsense.exit_codes import ExitCode
from envsense.output import json_is_pretty, resolve_no_color, stderr_console, stdout_console
from envsense.render import Layout, ReportRenderer
from envsense.schema import TOP_LEVEL_FIELDS, dumps_json

logger = logging.getLogger(__name__)

LOG_ENV_VAR = "ENVSENSE_LOG"


class EnvsenseGroup(TyperGroup):
    """Command group whose parser errors exit with the usage-error code."""

    def main(  # type: ignore[override]
        self,
        args: list[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        windows_expand_args: bool = True,
        **extra: Any,
    ) -> Any:
        try:
            rv = super().main(
                args=args,
                prog_name=prog_name,
                complete_var=complete_var,
                standalone_mode=False,
                windows_expand_args=windows_expand_args,
                **extra,
            )
        except click.UsageError as exc:
            if not standalone_mode:
                raise
            exc.show()
            raise SystemExit(int(ExitCode.USAGE_ERROR)) from exc
        except click.ClickException as exc:
            if not standalone_mode:
                raise
            exc.show()
            raise SystemExit(exc.exit_code) from exc
        except click.exceptions.Abort as exc:
            if not standalone_mode:
                raise
            click.echo("Aborted!", err=True)
            raise SystemExit(int(ExitCode.FAILURE)) from exc
        if not standalone_mode:
            return rv
        raise SystemExit(rv if isinstance(rv, int) else int(ExitCode.SUCCESS))


app = typer.Typer(
    cls=EnvsenseGroup,
    name="envsense",
    no_args_is_help=True,
    add_completion=False,
    help="Detect the execution context: agent, IDE, CI and terminal capabilities.",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"envsense {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    if verbose or os.getenv(LOG_ENV_VAR, "").strip().lower() == "debug":
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log detection details to stderr."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Detect the execution context: agent, IDE, CI and terminal capabilities."""
    configure_logging(verbose)


# ---------------------------------------------------------------------------
# Error reporting
# ---------------------------------------------------------------------------

def _print_error(exc: EnvsenseError, *, show_usage: bool = True) -> None:
    console = stderr_console(resolve_no_color())
    if isinstance(exc, PredicateError):
        headline = exc.render()
    else:
        headline = f"Error: {exc.message}"
    console.print(Text(headline, style="bold red"))
    suggestion = exc.suggestion
    if suggestion is None:
        return
    if isinstance(exc, UsageError) and not show_usage:
        return
    if isinstance(exc, UsageError):
        console.print()
    console.print(Text(suggestion.fix))
    if suggestion.examples:
        console.print()
        console.print(Text(exc.details.get("heading", "Usage examples:")))
        for example in suggestion.examples:
            console.print(Text(f"  {example}"))


def _warn(message: str) -> None:
    stderr_console(resolve_no_color()).print(Text(message, style="yellow"))


def _usage_error(message: str, explanation: str, examples: list[str], heading: str = "Usage examples:") -> UsageError:
    return UsageError(
        message,
        code="E1001",
        suggestion=Suggestion(fix=explanation, examples=examples),
        details={"heading": heading},
    )


def _fail(exc: EnvsenseError, config: EnvsenseConfig | None = None) -> typer.Exit:
    show_usage = config.error_handling.show_usage_on_error if config is not None else True
    _print_error(exc, show_usage=show_usage)
    return typer.Exit(exc.exit_code)


# ---------------------------------------------------------------------------
# info
# ---------------------------------------------------------------------------

def parse_fields(raw: str | None) -> list[str] | None:
    if raw is None:
        return None
    names = [part.strip() for part in raw.split(",") if part.strip()]
    for name in names:
        if name not in TOP_LEVEL_FIELDS:
            raise FieldSelectionError(name, list(TOP_LEVEL_FIELDS))
    return names


@app.command()
def info(
    json_output: bool = typer.Option(False, "--json", help="Emit the report as JSON."),
    fields: str | None = typer.Option(
        None,
        "--fields",
        help="Comma-separated top-level fields to keep: contexts,traits,evidence,version.",
    ),
    tree: bool = typer.Option(False, "--tree", help="Render traits as a tree."),
    compact: bool = typer.Option(False, "--compact", help="One dotted path per trait line."),
    raw: bool = typer.Option(False, "--raw", help="Values only, no headings or colour."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colour output."),
) -> None:
    """Show the detected contexts, traits and evidence."""
    config = EnvsenseConfig.load()
    try:
        if tree and compact:
            raise _usage_error(
                "invalid flag combination: --tree and --compact cannot be used together",
                "Pick one layout for the human-readable report",
                ["envsense info --tree", "envsense info --compact"],
            )
        selected = parse_fields(fields)
    except EnvsenseError as exc:
        raise _fail(exc, config) from exc

    report = detect()

    if json_output:
        typer.echo(report.to_json(pretty=json_is_pretty(), fields=selected))
        return

    layout = Layout.NESTED if config.output_formatting.nested_display else Layout.COMPACT
    if raw:
        layout = Layout.RAW
    elif tree:
        layout = Layout.TREE
    elif compact:
        layout = Layout.COMPACT

    colorless = resolve_no_color(no_color) or raw
    renderer = ReportRenderer(
        stdout_console(colorless),
        color=not colorless,
        rainbow=config.output_formatting.rainbow_colors,
    )
    renderer.render(report, layout, selected)


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------

def validate_check_flags(
    predicates: list[str],
    *,
    any_: bool,
    all_: bool,
    quiet: bool,
    list_: bool,
    descriptions: bool,
) -> None:
    """Raise :class:`UsageError` for missing predicates or conflicting flags."""
    if list_ and (any_ or all_):
        raise _usage_error(
            "invalid flag combination: --list cannot be used with --any or --all",
            "The --list flag shows available predicates, while --any/--all control evaluation logic",
            ["envsense check --list", "envsense check --any agent ide"],
        )
    if any_ and all_:
        raise _usage_error(
            "invalid flag combination: --any and --all cannot be used together",
            "These flags control different evaluation modes and are mutually exclusive",
            [
                "--any: succeeds if ANY predicate matches",
                "--all: succeeds if ALL predicates match (default behavior)",
            ],
            heading="Modes:",
        )
    if list_ and predicates:
        raise _usage_error(
            "invalid flag combination: --list cannot be used with predicates",
            "The --list flag shows all available predicates, so providing specific predicates is redundant",
            ["envsense check --list", "envsense check agent"],
        )
    if list_ and quiet:
        raise _usage_error(
            "invalid flag combination: --list cannot be used with --quiet",
            "The --list flag is designed to show information, while --quiet suppresses output",
            ["envsense check --list", "envsense check agent --quiet"],
        )
    if descriptions and not list_:
        raise _usage_error(
            "invalid flag combination: --descriptions requires --list",
            "Descriptions annotate the --list output only",
            ["envsense check --list --descriptions"],
        )
    if not list_ and not predicates:
        raise _usage_error(
            "no predicates specified",
            "Usage: envsense check <predicate> [<predicate>...]",
            [
                "envsense check agent              # Check if running in an agent",
                "envsense check ide.id=cursor      # Check if Cursor is the IDE",
                "envsense check ci.is_pr           # Check for a pull-request build",
                "envsense check --list             # List all available predicates",
            ],
            heading="Examples:",
        )


@app.command()
def check(
    predicates: list[str] | None = typer.Argument(None, help="Predicates such as agent, ci.id=gitlab_ci or !ide."),
    any_: bool = typer.Option(False, "--any", help="Succeed if any predicate is true."),
    all_: bool = typer.Option(False, "--all", help="Succeed only if every predicate is true (default)."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Print nothing; only set the exit code."),
    explain: bool = typer.Option(False, "--explain", help="Append the reason for each result."),
    json_output: bool = typer.Option(False, "--json", help="Emit results as JSON."),
    list_: bool = typer.Option(False, "--list", help="List available contexts and fields."),
    lenient: bool = typer.Option(False, "--lenient", help="Treat unknown fields as false instead of failing."),
    descriptions: bool = typer.Option(False, "--descriptions", help="Annotate --list output with descriptions."),
) -> None:
    """Evaluate predicates against the detected environment.

    Exits 0 when the combined result is true, 1 when it is false, and 2 when
    a predicate cannot be parsed or names an unknown field.
    """
    config = EnvsenseConfig.load()
    predicates = list(predicates or [])
    try:
        validate_check_flags(
            predicates,
            any_=any_,
            all_=all_,
            quiet=quiet,
            list_=list_,
            descriptions=descriptions,
        )
    except UsageError as exc:
        raise _fail(exc, config) from exc

    if list_:
        show = descriptions or config.output_formatting.context_descriptions
        for line in list_lines(descriptions=show):
            typer.echo(line)
        return

    try:
        parsed = [parse_predicate(p) for p in predicates]
    except PredicateError as exc:
        raise _fail(exc, config) from exc

    for warning in warnings_for(parsed):
        _warn(warning)

    report = detect()
    mode = Mode.ANY if any_ else Mode.ALL
    try:
        outcome = evaluate_all(
            report,
            parsed,
            mode,
            lenient=lenient or not config.error_handling.strict_mode,
        )
    except PredicateError as exc:
        raise _fail(exc, config) from exc

    logger.debug("check mode=%s overall=%s", mode.value, outcome.overall)

    if not quiet:
        if json_output:
            typer.echo(dumps_json(outcome.to_dict(explain), pretty=explain))
        elif len(outcome.results) == 1:
            result = outcome.results[0]
            typer.echo(_with_reason(result.display_value(), result.reason, explain))
        else:
            typer.echo(f"overall={'true' if outcome.overall else 'false'}")
            for result in outcome.results:
                typer.echo(_with_reason(f"{result.predicate}={result.display_value()}", result.reason, explain))

    raise typer.Exit(int(ExitCode.SUCCESS if outcome.overall else ExitCode.FAILURE))


def _with_reason(line: str, reason: str, explain: bool) -> str:
    if explain:
        return f"{line}  # reason: {reason}"
    return line


def main() -> None:
    app()


if __name__ == "__main__":
    main()
