from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer
from dotenv import load_dotenv

from .config import AppConfig, run_log_file
from .container import Container
from .cli_formatter import format_evaluation_output, format_evaluator_list, format_progress_event
from .main import apply_overrides
from ..core.domain.events import ProgressEvent
from ..core.domain.exceptions import EvaluationError, UnknownEvaluatorError
from ..core.domain.models import EvaluationOptions

load_dotenv()

app = typer.Typer(add_completion=False, no_args_is_help=True)


def _echo_progress(event: ProgressEvent) -> None:
    line = format_progress_event(event)
    if line is not None:
        typer.echo(line, err=True)


@app.command()
def evaluate(
    path: Path = typer.Argument(Path("."), help="Repository directory to evaluate"),
    mode: str | None = typer.Option(None, "--mode", case_sensitive=False, help="Evaluation mode: unified or independent (auto when omitted)"),
    issue_filter: str | None = typer.Option(None, "--filter", case_sensitive=False, help="Run only 'error' or 'suggestion' evaluators"),
    evaluator: list[str] | None = typer.Option(None, "--evaluator", "-e", help="Evaluator id to run (repeatable)"),
    provider: str | None = typer.Option(None, "--provider", case_sensitive=False, help="LLM provider (optional)"),
    model: str | None = typer.Option(None, "--model", help="Model name (optional)"),
    log_level: str = typer.Option("INFO", "--log-level", help="Log level", case_sensitive=False),
    json_output: bool = typer.Option(False, "--json", help="Output result as JSON"),
):
    """Evaluate the AI agent context files (AGENTS.md, CLAUDE.md, ...) of a repository."""
    # Configure basic logging for internal debugging
    level = logging._nameToLevel.get(log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(levelname)s: %(message)s', force=True)

    if mode is not None and mode.lower() not in ("unified", "independent"):
        typer.echo(f"Error: Invalid mode '{mode}'. Must be 'unified' or 'independent'.", err=True)
        raise typer.Exit(code=2)
    if issue_filter is not None and issue_filter.lower() not in ("all", "error", "suggestion"):
        typer.echo(f"Error: Invalid filter '{issue_filter}'. Must be 'all', 'error' or 'suggestion'.", err=True)
        raise typer.Exit(code=2)

    # Load config from environment variables, then apply CLI overrides
    config = apply_overrides(AppConfig(), provider=provider, model=model)
    config = config.model_copy(
        update={"logging": config.logging.model_copy(update={"level": log_level.upper()})}
    )

    # Validate required secrets
    if not config.llm.api_key:
        typer.echo("Error: API key required via CONTEXT_EVALUATOR_LLM__API_KEY", err=True)
        raise typer.Exit(code=2)

    log_file = run_log_file(config.directories.logs_dir, config.runtime.run_id)
    typer.echo(f"Evaluating: {path.resolve()}", err=True)
    typer.echo(f"Provider: {config.llm.provider_name}, Model: {config.llm.model_name}", err=True)
    typer.echo(f"Log file: {log_file}", err=True)

    # Create container and execute
    container = Container()
    container.config.from_pydantic(config)
    container.init_resources()

    options = EvaluationOptions(
        mode=mode.lower() if mode else None,
        evaluators=tuple(evaluator) if evaluator else None,
        evaluator_filter=issue_filter.lower() if issue_filter else None,
    )

    uc = container.evaluate_uc()
    try:
        output = asyncio.run(uc.execute(repo_path=path, options=options, on_progress=_echo_progress))

        # Output in requested format
        if json_output:
            typer.echo(json.dumps(output.to_dict(), ensure_ascii=False, indent=2))
        else:
            typer.echo(format_evaluation_output(output))

    except UnknownEvaluatorError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)
    except EvaluationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    finally:
        # Always shutdown resources to close file handles
        container.shutdown_resources()


@app.command(name="evaluators")
def evaluators_command(
    issue_type: str = typer.Option("all", "--type", "-t", case_sensitive=False, help="all, error or suggestion"),
    json_output: bool = typer.Option(False, "--json", help="Output result as JSON"),
):
    """List the available evaluators."""
    if issue_type.lower() not in ("all", "error", "suggestion"):
        typer.echo(f"Error: Invalid type '{issue_type}'. Must be 'all', 'error' or 'suggestion'.", err=True)
        raise typer.Exit(code=2)

    container = Container()
    uc = container.list_evaluators_uc()
    specs = uc.execute(evaluator_filter=issue_type.lower())

    if json_output:
        items = [
            {
                "id": s.id,
                "name": s.name,
                "issue_type": s.issue_type,
                "execute_if_no_file": s.execute_if_no_file,
            }
            for s in specs
        ]
        typer.echo(json.dumps({"count": len(items), "evaluators": items}, ensure_ascii=False, indent=2))
    else:
        typer.echo(format_evaluator_list(specs))


if __name__ == "__main__":
    app()
