"""Command-line interface for CardLens - analyze, inspect and maintain cards."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .app import build_orchestrator
from .core.constants import CONFIDENCE_ACCEPT, CONFIDENCE_REVIEW
from .core.types import Card, CardHints, ImageRefs, RunOutcome, RunRequest
from .store.cache import TTLCache
from .store.cards import CardStore
from .utils.config import ensure_data_dirs, settings
from .utils.error_handler import CardLensError, ConcurrencyConflict
from .utils.log import configure_logging, get_logger
from .utils.validation import validate_identifier

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Rich console
console = Console()

app = typer.Typer(
    name="cardlens",
    help="CardLens - identify, price and authenticate trading cards",
    add_completion=False
)


def _confidence_text(value: Optional[float]) -> str:
    if value is None:
        return "[dim]n/a[/dim]"
    if value >= CONFIDENCE_ACCEPT:
        color = "green"
    elif value >= CONFIDENCE_REVIEW:
        color = "yellow"
    else:
        color = "red"
    return f"[{color}]{value:.0%}[/{color}]"


def _money(value: Optional[float]) -> str:
    return f"${value:,.2f}" if value is not None else "[dim]n/a[/dim]"


def card_table(card: Card) -> Table:
    table = Table(title=f"Card {card.card_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Name", card.name or "[red]Not identified[/red]")
    table.add_row("Set", card.set_name or "[dim]unknown[/dim]")
    table.add_row("Number", card.number or "[dim]unknown[/dim]")
    table.add_row("Rarity", card.rarity or "[dim]unknown[/dim]")
    table.add_row("ID Confidence", _confidence_text(card.id_confidence))
    table.add_row("Value (low / median / high)",
                  f"{_money(card.value_low)} / {_money(card.value_median)} / {_money(card.value_high)}")
    table.add_row("Comps", str(card.comps_count or 0))
    table.add_row("Price Sources", ", ".join(card.sources) or "[dim]none[/dim]")
    table.add_row("Pricing Confidence", _confidence_text(card.pricing_confidence))
    if card.pricing_message:
        table.add_row("Pricing Note", card.pricing_message)
    if card.valuation is not None:
        table.add_row("Trend", card.valuation.trend)
        table.add_row("Recommendation", card.valuation.recommendation)
    table.add_row("Authenticity", _confidence_text(card.authenticity_score))
    if card.fake_detected is not None:
        table.add_row("Fake Detected", "[red]YES[/red]" if card.fake_detected else "[green]no[/green]")
    return table


def _print_outcome(outcome: RunOutcome) -> None:
    path = " → ".join(state.value for state in outcome.transitions)
    console.print(f"[dim]Run {outcome.run_id}: {path}[/dim]")

    if outcome.succeeded and outcome.card is not None:
        console.print(f"\n[green]✓ Analysis complete for {outcome.card_id}[/green]")
        console.print(card_table(outcome.card))
    elif outcome.rejected:
        console.print(f"\n[yellow]⚠ Image rejected, card removed: {outcome.error}[/yellow]")
    else:
        console.print(f"\n[red]❌ Analysis failed ({outcome.error_type}): {outcome.error}[/red]")


@app.command()
def analyze(
    front: str = typer.Argument(..., help="Front image ref (relative to the features directory)"),
    back: Optional[str] = typer.Option(None, "--back", "-b", help="Back image ref"),
    owner: str = typer.Option("local", "--owner", "-u", help="Owner id"),
    card_id: Optional[str] = typer.Option(None, "--card-id", "-i", help="Card id (defaults to the front ref stem)"),
    set_hint: Optional[str] = typer.Option(None, "--set", help="Expected set name"),
    rarity_hint: Optional[str] = typer.Option(None, "--rarity", help="Expected rarity"),
    reanalysis: bool = typer.Option(False, "--reanalysis", "-r", help="Re-analyze an existing card"),
    features_dir: Optional[Path] = typer.Option(None, "--features", "-f", help="Directory of feature files"),
    prices: Optional[Path] = typer.Option(None, "--prices", "-p", help="JSON fixture of price observations"),
    offline: bool = typer.Option(False, "--offline", help="Do not contact any network service"),
):
    """Run the analysis pipeline for one card and show the result."""

    console.print(Panel.fit(
        "[bold blue]CardLens - Analyze[/bold blue]\n"
        "[dim]extract → reason → price ∥ authenticate → aggregate[/dim]",
        border_style="blue"
    ))

    card_id = card_id or Path(front).stem.split(".")[0]
    hints = CardHints(expected_set=set_hint, expected_rarity=rarity_hint) if (set_hint or rarity_hint) else None
    request = RunRequest(
        owner_id=owner,
        card_id=card_id,
        image_refs=ImageRefs(front=front, back=back),
        known_hints=hints,
        reanalysis=reanalysis,
    )

    try:
        validate_identifier(owner, "owner_id")
        validate_identifier(card_id, "card_id")
        orchestrator = build_orchestrator(settings, features_root=features_dir, prices_path=prices, offline=offline)
        if not reanalysis:
            try:
                orchestrator.store.create_card(owner, card_id, front, back)
            except ConcurrencyConflict:
                console.print(f"[red]❌ Card {card_id} already exists; use --reanalysis to re-run it[/red]")
                raise typer.Exit(1)

        with console.status("[bold green]Analyzing card...", spinner="dots"):
            outcome = asyncio.run(orchestrator.start(request))
    except CardLensError as e:
        console.print(f"[red]❌ {e}[/red]")
        logger.error("Analysis could not start", error=str(e), card_id=card_id)
        raise typer.Exit(1)

    _print_outcome(outcome)
    if not outcome.succeeded:
        raise typer.Exit(1)


@app.command()
def show(
    card_id: str = typer.Argument(..., help="Card id"),
    owner: str = typer.Option("local", "--owner", "-u", help="Owner id"),
):
    """Show one stored card."""
    try:
        card = CardStore(settings.CARD_DB_PATH).get_card(owner, card_id)
    except CardLensError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        raise typer.Exit(1)

    console.print(card_table(card))
    if card.authenticity_signals:
        signals = Table(title="Authenticity Signals")
        signals.add_column("Signal", style="cyan")
        signals.add_column("Confidence", style="white")
        for name, value in card.authenticity_signals.to_dict().items():
            signals.add_row(name, _confidence_text(value))
        console.print(signals)


@app.command(name="list")
def list_cards(
    owner: str = typer.Option("local", "--owner", "-u", help="Owner id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of cards"),
):
    """List an owner's cards, newest first."""
    cards = CardStore(settings.CARD_DB_PATH).list_cards(owner, limit=limit)
    if not cards:
        console.print("[yellow]No cards found[/yellow]")
        return

    table = Table(title=f"Cards for {owner}")
    table.add_column("Card ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Set", style="white")
    table.add_column("Median", style="green", justify="right")
    table.add_column("Authenticity", justify="right")
    for card in cards:
        table.add_row(
            card.card_id,
            card.name or "-",
            card.set_name or "-",
            _money(card.value_median),
            _confidence_text(card.authenticity_score),
        )
    console.print(table)


@app.command(name="cache-clear")
def cache_clear():
    """Purge expired price cache entries."""
    ensure_data_dirs(settings)
    removed = TTLCache(settings.CACHE_DB_PATH).purge_expired()
    console.print(f"[green]✓ Removed {removed} expired cache entries[/green]")


if __name__ == "__main__":
    app()
