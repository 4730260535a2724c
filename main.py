import signal
from typing import List, Optional

import click
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from quibit.factory import create_orchestrator, create_repository
from quibit.models.constraints import ProjectConstraints
from quibit.models.generation import RetryContext, RetryReason
from quibit.models.idea import ProjectEvolution, ProjectIdea
from quibit.models.snapshot import Snapshot
from quibit.pipeline import GenerationState
from quibit.services.prompt_contract import (
    ContractError,
    EvolutionInput,
    decode_project_evolution,
    decode_stored_idea,
    idea_to_json,
)
from quibit.services.provider_manager import AllProvidersFailedError
from quibit.utils.cancellation import CancellationToken, GenerationCancelledError
from quibit.utils.logger import configure_logging
from quibit.utils.repository import DuplicateFingerprintError, Provenance

app = typer.Typer(help="Generate portfolio-ready project ideas that are not copies of each other.")
console = Console()

NEXT_ACTIONS = ["k", "r", "h", "e"]
EVOLUTION_ACTIONS = ["a", "r", "b"]


def _install_sigint(token: CancellationToken):
    def handler(signum, frame):
        console.print("[yellow]Cancelling after the current request...[/yellow]")
        token.cancel()
    signal.signal(signal.SIGINT, handler)


def _bullets(items: List[str]) -> str:
    return "\n".join(f"• {item}" for item in items)


def print_idea(idea: ProjectIdea):
    p = idea.project
    console.print(Panel(
        f"[italic]{p.tagline}[/italic]\n\n{p.description.summary}\n\n{p.description.detailed_explanation}",
        title=f"[bold]{p.name}[/bold]",
    ))

    table = Table(show_header=False, box=None)
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Problem", p.problem_statement.problem)
    table.add_row("Why it matters", p.problem_statement.why_it_matters)
    table.add_row("Target users", ", ".join(p.target_users.primary))
    table.add_row("Why interesting", p.value_proposition.why_this_project_is_interesting)
    table.add_row("MVP goal", p.mvp.goal)
    table.add_row("Must have", _bullets(p.mvp.must_have_features))
    table.add_row("Out of scope", _bullets(p.mvp.out_of_scope))
    table.add_row("Stack", ", ".join(p.recommended_tech_stack.components()))
    table.add_row("Complexity", p.complexity)
    table.add_row("Duration", p.estimated_duration.range)
    table.add_row("Learning", _bullets(p.learning_outcomes))
    console.print(table)


def print_evolution(evolution: ProjectEvolution):
    console.print(Panel(evolution.evolution_overview, title="[bold]Next phase[/bold]"))
    table = Table(show_header=False, box=None)
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Product rationale", evolution.product_rationale)
    table.add_row("Technical rationale", evolution.technical_rationale)
    table.add_row("Enhancements", _bullets(evolution.proposed_enhancements))
    if evolution.risk_considerations:
        table.add_row("Risks", _bullets(evolution.risk_considerations))
    console.print(table)


@app.command()
def generate(
    app_type: str = typer.Option(..., help="Kind of application, e.g. backend-api or cli-tool"),
    complexity: str = typer.Option("intermediate", help="beginner, intermediate or advanced"),
    tech: List[str] = typer.Option([], "--tech", help="Technology to use (repeatable)"),
    database: List[str] = typer.Option([], "--db", help="Preferred database (repeatable), or none"),
    goal: str = typer.Option("portfolio project", help="Why you want to build it"),
    timeframe: str = typer.Option("2-4 weeks", help="Expected duration"),
    category: Optional[str] = typer.Option(None, help="Software category; inferred when omitted"),
    idea: Optional[str] = typer.Option(None, help="Free-text hint for the idea"),
    store: Optional[str] = typer.Option(None, help="sqlite or mongo"),
    as_json: bool = typer.Option(False, "--json", help="Print the accepted idea as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """
    Generate a new project idea, keep it if it passes the quality and novelty
    checks, and offer to generate another.
    """
    if verbose:
        configure_logging("DEBUG")

    try:
        constraints = ProjectConstraints(
            app_type=app_type,
            project_category=category,
            complexity=complexity,
            tech_stack=tech,
            database_preferences=database,
            goal=goal,
            timeframe=timeframe,
            idea_description=idea,
        )
    except ValueError as e:
        console.print(f"[red]Invalid input:[/red] {e}")
        raise typer.Exit(code=2)

    token = CancellationToken()
    _install_sigint(token)

    retry = None
    reference = None
    with create_repository(store) as repository:
        orchestrator = create_orchestrator(repository)
        while True:
            try:
                with console.status("Generating..."):
                    outcome = orchestrator.run(
                        constraints, token, retry=retry, reference=reference, persist=False
                    )
            except GenerationCancelledError:
                console.print("[yellow]Generation cancelled.[/yellow]")
                raise typer.Exit(code=130)
            except AllProvidersFailedError as e:
                console.print(f"[red]{e}[/red]")
                raise typer.Exit(code=1)

            if outcome.state == GenerationState.BLOCKED:
                console.print(
                    f"[yellow]The generated idea is too similar to project {outcome.matched_id} "
                    f"(score {outcome.score:.2f}). Try different constraints.[/yellow]"
                )
                raise typer.Exit(code=1)
            if outcome.state == GenerationState.FAILED:
                console.print(f"[red]No acceptable idea after {outcome.attempts} attempts.[/red]")
                for reason in outcome.reasons:
                    console.print(f"  - {reason}")
                raise typer.Exit(code=1)

            if as_json:
                console.print_json(idea_to_json(outcome.idea))
            else:
                print_idea(outcome.idea)
            console.print(
                f"[dim]Generated via {outcome.result.provider_used}"
                f"{' (fallback)' if outcome.result.fallback_used else ''}, "
                f"closest prior similarity {outcome.score:.2f}[/dim]"
            )

            action = typer.prompt(
                "Next: [k]eep, [r]egenerate, [h]arder, [e]asier",
                default="k",
                type=click.Choice(NEXT_ACTIONS, case_sensitive=False),
                show_choices=False,
            ).lower()
            if action == "k":
                try:
                    project_id = orchestrator.persist(outcome)
                except DuplicateFingerprintError:
                    console.print("[yellow]Duplicate project DNA detected. Regenerating...[/yellow]")
                    retry = RetryContext.for_reason(RetryReason.DUPLICATE_DNA)
                    continue
                console.print(f"Saved as project {project_id}.")
                break
            reference = Snapshot.from_idea(outcome.idea, constraints)
            retry = RetryContext.for_reason(RetryReason.USER_REJECTED)
            if action == "h":
                constraints = constraints.with_higher_complexity()
            elif action == "e":
                constraints = constraints.with_lower_complexity()


@app.command()
def history(
    limit: int = typer.Option(10, help="Number of projects to show"),
    store: Optional[str] = typer.Option(None, help="sqlite or mongo"),
):
    """List the most recently accepted projects."""
    with create_repository(store) as repository:
        records = repository.list_recent(limit)

    if not records:
        console.print("No projects yet.")
        return

    table = Table(title="Recent projects")
    table.add_column("ID")
    table.add_column("Title", style="bold")
    table.add_column("Stack")
    table.add_column("Complexity")
    table.add_column("Provider")
    table.add_column("Similarity", justify="right")
    for record in records:
        table.add_row(
            str(record["id"]),
            record["title"],
            ", ".join(record.get("tech_stack") or []),
            record.get("complexity") or "",
            (record.get("provider_used") or "") + (" (fallback)" if record.get("fallback_used") else ""),
            f"{record.get('similarity_score') or 0:.2f}",
        )
    console.print(table)
    console.print("[dim]Run `show <ID>` to see a project with its saved evolutions.[/dim]")


@app.command()
def evolve(
    project_id: str = typer.Argument(..., help="ID shown by the history command"),
    store: Optional[str] = typer.Option(None, help="sqlite or mongo"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Propose the next development phase for a stored project."""
    if verbose:
        configure_logging("DEBUG")

    token = CancellationToken()
    _install_sigint(token)

    with create_repository(store) as repository:
        record = repository.get(project_id)
        if record is None:
            console.print(f"[red]Project {project_id} not found.[/red]")
            raise typer.Exit(code=1)

        evolution_input = EvolutionInput(
            project_overview=record.get("overview") or record["title"],
            mvp_scope=record.get("mvp_scope") or [],
            tech_stack=record.get("tech_stack") or [],
            complexity=record.get("complexity") or "",
            estimated_duration=record.get("estimated_duration") or "",
            app_type=record.get("app_type") or "",
            goal=record.get("goal") or "",
        )
        orchestrator = create_orchestrator(repository)
        while True:
            try:
                with console.status("Evolving..."):
                    evolution, raw_json, result = orchestrator.evolve(evolution_input, token)
            except GenerationCancelledError:
                console.print("[yellow]Cancelled.[/yellow]")
                raise typer.Exit(code=130)
            except (AllProvidersFailedError, ContractError) as e:
                console.print(f"[red]{e}[/red]")
                raise typer.Exit(code=1)

            print_evolution(evolution)
            action = typer.prompt(
                "Next: [a]ccept, [r]egenerate, [b]ack",
                default="a",
                type=click.Choice(EVOLUTION_ACTIONS, case_sensitive=False),
                show_choices=False,
            ).lower()
            if action == "r":
                continue
            if action == "a":
                evolution_id = repository.save_evolution(
                    str(record["id"]), raw_json, Provenance.from_result(result)
                )
                console.print(f"Saved as evolution {evolution_id} of project {record['id']}.")
            break


@app.command()
def show(
    project_id: str = typer.Argument(..., help="ID shown by the history command"),
    store: Optional[str] = typer.Option(None, help="sqlite or mongo"),
):
    """Show a stored project and the evolutions saved for it."""
    with create_repository(store) as repository:
        record = repository.get(project_id)
        if record is None:
            console.print(f"[red]Project {project_id} not found.[/red]")
            raise typer.Exit(code=1)
        evolutions = repository.list_evolutions(str(record["id"]))

    try:
        print_idea(decode_stored_idea(record["raw_json"]))
        if not evolutions:
            console.print("[dim]No saved evolutions.[/dim]")
        for number, row in enumerate(evolutions, start=1):
            console.print(f"\n[bold]Evolution #{number}[/bold] [dim]via {row['provider_used']}[/dim]")
            print_evolution(decode_project_evolution(row["raw_json"]))
    except ContractError as e:
        console.print(f"[red]Stored record is unreadable: {e}[/red]")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
