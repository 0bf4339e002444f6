"""
Command Line Interface for Action Board.
"""

from typing import List, Optional

import typer
import uvicorn
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..access import Actor
from ..board.ledger import PositionLedger
from ..board.services import BoardService
from ..config import get_settings
from ..db.base import get_session_local, init_database
from ..db.models import BoardCardModel, BoardColumnModel, BoardModel
from ..errors import ActionBoardError
from ..routing.conditions import WorkItem
from ..routing.services import RoutingRuleService

app = typer.Typer(help="Action Board - route action plans to team boards")
console = Console()


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, help="Port to run the API server on"),
    host: Optional[str] = typer.Option(None, help="Host to bind the server to"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the HTTP API."""
    settings = get_settings()
    rprint(Panel.fit("Starting Action Board", style="bold blue"))
    uvicorn.run(
        "action_board.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


@app.command("init-db")
def init_db():
    """Create all tables in the configured database."""
    init_database()
    console.print("✅ Database initialized")


@app.command()
def boards():
    """List boards."""
    with get_session_local()() as db:
        rows = BoardService(db).list_boards(Actor.system())

    if not rows:
        console.print("No boards yet")
        return

    table = Table(title="Boards", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Visibility")
    table.add_column("Card type")
    table.add_column("Default team")
    for row in rows:
        table.add_row(
            row["id"],
            row["name"],
            row["visibility"],
            row["card_type"],
            row["default_team_id"] or "-",
        )
    console.print(table)


@app.command()
def board(board_id: str = typer.Argument(..., help="Board ID")):
    """Show a board's columns and cards in order."""
    try:
        with get_session_local()() as db:
            detail = BoardService(db).get_board_detail(board_id, Actor.system())
    except ActionBoardError as e:
        console.print(f"❌ {e.message}")
        raise typer.Exit(code=1)

    rprint(Panel.fit(detail["board"]["name"], style="bold green"))
    for column in detail["columns"]:
        cards = [c for c in detail["cards"] if c["column_id"] == column["id"]]
        limit = column["wip_limit"]
        heading = f"{column['name']} ({len(cards)}" + (f"/{limit})" if limit is not None else ")")
        if limit is not None and len(cards) > limit:
            heading += " - over WIP limit"

        table = Table(title=heading, show_header=True, header_style="bold magenta")
        table.add_column("#", justify="right")
        table.add_column("Card", style="cyan")
        table.add_column("Title")
        table.add_column("Status")
        table.add_column("Team")
        for card in cards:
            table.add_row(
                str(card["position"]),
                card["id"],
                card["title"],
                card["status"],
                card["assignee_team_id"] or "-",
            )
        console.print(table)


@app.command()
def rules():
    """List routing rules in evaluation order."""
    with get_session_local()() as db:
        rows = [rule.to_dict() for rule in RoutingRuleService(db).list()]

    table = Table(title="Routing Rules", show_header=True, header_style="bold magenta")
    table.add_column("Priority", justify="right")
    table.add_column("Seq", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Channel")
    table.add_column("Condition")
    table.add_column("Team")
    table.add_column("Board / Column")
    table.add_column("Enabled")
    for row in rows:
        table.add_row(
            str(row["priority"]),
            str(row["sequence"]),
            row["name"],
            row["channel"] or "*",
            f"{row['condition_type']} = {row['condition_value'] or '*'}",
            row["target_team_id"],
            f"{row['target_board_id'] or 'default'} / {row['target_column_id'] or 'first'}",
            "🟢" if row["enabled"] else "🔴",
        )
    console.print(table)


@app.command()
def route(
    badge: Optional[str] = typer.Option(None, help="Action plan badge"),
    intent: Optional[str] = typer.Option(None, help="Detected intent"),
    urgency: Optional[str] = typer.Option(None, help="Urgency"),
    segment: Optional[str] = typer.Option(None, help="Customer segment"),
    channel: Optional[str] = typer.Option(None, help="Channel"),
    custom: List[str] = typer.Option([], help="Custom predicate that holds (repeatable)"),
):
    """Dry-run routing for a work item."""
    item = WorkItem(
        badge=badge,
        intent=intent,
        urgency=urgency,
        customer_segment=segment,
        channel=channel,
        custom={name: True for name in custom},
    )
    with get_session_local()() as db:
        decision = RoutingRuleService(db).evaluate(item)

    if decision is None:
        console.print("No routing rule matched")
        raise typer.Exit(code=2)

    console.print(f"✅ Matched rule {decision.rule_name} ({decision.rule_id})")
    console.print(f"Team: {decision.target_team_id}")
    console.print(f"Board: {decision.target_board_id or 'team default'}")
    console.print(f"Column: {decision.target_column_id or 'first column'}")


@app.command("check-positions")
def check_positions():
    """Verify that column and card positions are contiguous everywhere."""
    problems = 0
    with get_session_local()() as db:
        column_ledger = PositionLedger(db, BoardColumnModel, "board_id", entity_kind="column")
        card_ledger = PositionLedger(db, BoardCardModel, "column_id", entity_kind="card")
        scopes = [(column_ledger, board.id) for board in db.query(BoardModel).all()]
        scopes += [(card_ledger, column.id) for column in db.query(BoardColumnModel).all()]
        for ledger, scope_id in scopes:
            try:
                ledger.verify(scope_id)
            except ActionBoardError as e:
                problems += 1
                console.print(f"❌ {e.message}: {e.details.get('positions')}")

    if problems:
        raise typer.Exit(code=1)
    console.print(f"✅ {len(scopes)} scopes contiguous")


@app.command()
def version():
    """Show version information."""
    from .. import __version__
    rprint(Panel.fit(f"Action Board v{__version__}", style="bold green"))


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
