"""CLI entrypoint for agent-router."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import rich_click as click

from agent_router import __version__
from agent_router.router.controllers import (
    AgentsCommand,
    ClassifyCommand,
    PlanCommand,
    RouterCliController,
    RunCommand,
    StatsCommand,
    TaskOptions,
)
from agent_router.router.errors import RouterError

click.rich_click.USE_MARKDOWN = True
ROUTER_CONTROLLER = RouterCliController()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="agent-router")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="warning",
    show_default=True,
    help="Log level for routing and execution diagnostics (written to stderr).",
)
def agent_router(log_level: str) -> None:
    """Route tasks to the cheapest capable agent within the daily budget."""

    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)


def _catalog_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--catalog",
        "catalog_path",
        type=click.Path(path_type=Path, dir_okay=False),
        default=None,
        help="Agent catalog JSON. Defaults to AGENT_ROUTER_CATALOG_PATH or agents.json.",
    )(func)


def _metrics_db_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--metrics-db",
        "metrics_db_path",
        type=click.Path(path_type=Path, dir_okay=False),
        default=None,
        help="SQLite metrics DB path. Defaults to AGENT_ROUTER_METRICS_DB_PATH.",
    )(func)


def _task_options(func: Callable[..., Any]) -> Callable[..., Any]:
    options = [
        click.option(
            "--hint",
            "domain_hints",
            multiple=True,
            help="Domain hint, for example security. Can be repeated.",
        ),
        click.option(
            "--max-cost",
            "max_cost_usd",
            type=click.FloatRange(min=0),
            default=None,
            help="Per-task cost ceiling in USD. Defaults to the per-task limit.",
        ),
        click.option(
            "--complexity",
            "complexity_hint",
            type=click.IntRange(min=1, max=10),
            default=None,
            help="Override the computed complexity score.",
        ),
        click.option(
            "--file-count",
            type=click.IntRange(min=0),
            default=1,
            show_default=True,
            help="Number of files the task touches.",
        ),
        click.option(
            "--compliance-review/--no-compliance-review",
            default=False,
            show_default=True,
            help="Task output needs compliance review.",
        ),
        click.option(
            "--multi-service/--no-multi-service",
            default=False,
            show_default=True,
            help="Task affects more than one service.",
        ),
        click.option(
            "--security/--no-security",
            default=False,
            show_default=True,
            help="Task has security implications.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@agent_router.command("classify")
@_catalog_option
@_task_options
@click.argument("description")
def classify_task(  # noqa: PLR0913
    catalog_path: Path | None,
    domain_hints: tuple[str, ...],
    max_cost_usd: float | None,
    complexity_hint: int | None,
    file_count: int,
    compliance_review: bool,
    multi_service: bool,
    security: bool,
    description: str,
) -> None:
    """Show complexity score, domain tags, and recommended tier for a task."""

    with _router_errors():
        _emit_lines(
            ROUTER_CONTROLLER.classify(
                ClassifyCommand(
                    catalog_path=catalog_path,
                    task=TaskOptions(
                        description=description,
                        domain_hints=domain_hints,
                        max_cost_usd=max_cost_usd,
                        complexity_hint=complexity_hint,
                        file_count=file_count,
                        requires_compliance_review=compliance_review,
                        affects_multiple_services=multi_service,
                        has_security_implications=security,
                    ),
                ),
            ),
        )


@agent_router.command("plan")
@_catalog_option
@_metrics_db_option
@_task_options
@click.argument("description")
def plan_task(  # noqa: PLR0913
    catalog_path: Path | None,
    metrics_db_path: Path | None,
    domain_hints: tuple[str, ...],
    max_cost_usd: float | None,
    complexity_hint: int | None,
    file_count: int,
    compliance_review: bool,
    multi_service: bool,
    security: bool,
    description: str,
) -> None:
    """Preview the primary and fallback agents without running them."""

    with _router_errors():
        _emit_lines(
            ROUTER_CONTROLLER.plan(
                PlanCommand(
                    catalog_path=catalog_path,
                    metrics_db_path=metrics_db_path,
                    task=TaskOptions(
                        description=description,
                        domain_hints=domain_hints,
                        max_cost_usd=max_cost_usd,
                        complexity_hint=complexity_hint,
                        file_count=file_count,
                        requires_compliance_review=compliance_review,
                        affects_multiple_services=multi_service,
                        has_security_implications=security,
                    ),
                ),
            ),
        )


@agent_router.command("run")
@_catalog_option
@_metrics_db_option
@_task_options
@click.option(
    "--deadline",
    "deadline_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Overall deadline per task in seconds, across all attempts.",
)
@click.argument("descriptions", nargs=-1, required=True)
def run_tasks(  # noqa: PLR0913
    catalog_path: Path | None,
    metrics_db_path: Path | None,
    domain_hints: tuple[str, ...],
    max_cost_usd: float | None,
    complexity_hint: int | None,
    file_count: int,
    compliance_review: bool,
    multi_service: bool,
    security: bool,
    deadline_seconds: float | None,
    descriptions: tuple[str, ...],
) -> None:
    """Route and execute tasks. Several descriptions run in parallel with shared options."""

    with _router_errors():
        result = ROUTER_CONTROLLER.run(
            RunCommand(
                catalog_path=catalog_path,
                metrics_db_path=metrics_db_path,
                tasks=tuple(
                    TaskOptions(
                        description=description,
                        domain_hints=domain_hints,
                        max_cost_usd=max_cost_usd,
                        complexity_hint=complexity_hint,
                        file_count=file_count,
                        requires_compliance_review=compliance_review,
                        affects_multiple_services=multi_service,
                        has_security_implications=security,
                        deadline_seconds=deadline_seconds,
                    )
                    for description in descriptions
                ),
            ),
        )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("One or more tasks failed.")


@agent_router.command("agents")
@_catalog_option
def list_agents(catalog_path: Path | None) -> None:
    """List catalog agents by tier."""

    with _router_errors():
        _emit_lines(ROUTER_CONTROLLER.agents(AgentsCommand(catalog_path=catalog_path)))


@agent_router.command("stats")
@_catalog_option
@_metrics_db_option
@click.option(
    "--hours",
    type=click.IntRange(min=1),
    default=24,
    show_default=True,
    help="Time window for aggregation.",
)
def show_stats(catalog_path: Path | None, metrics_db_path: Path | None, hours: int) -> None:
    """Show per-agent usage, cost shares, and tuning recommendations."""

    with _router_errors():
        _emit_lines(
            ROUTER_CONTROLLER.stats(
                StatsCommand(
                    catalog_path=catalog_path,
                    metrics_db_path=metrics_db_path,
                    hours=hours,
                ),
            ),
        )


@contextmanager
def _router_errors() -> Iterator[None]:
    try:
        yield
    except (RouterError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_router()
