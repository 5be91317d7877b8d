# ZenSync Console Output
# Rich-based console output for user-friendly display

from collections.abc import Iterable
from datetime import date, datetime, timezone
from typing import Optional

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.table import Table

from zensync.models.diff import SuggestResponse
from zensync.models.entities import ENTITY_TYPES, Account, EntityRecord, Tag, Transaction
from zensync.sync.changes import ChangeKind, PendingChange
from zensync.sync.engine import SyncMode, SyncResult
from zensync.sync.store import Snapshot


def format_checkpoint(checkpoint: int) -> str:
    """Human readable server timestamp."""
    if checkpoint <= 0:
        return "never"
    return datetime.fromtimestamp(checkpoint, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_amount(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:,.2f}"


class Console:
    """
    Console output manager using Rich.

    Provides formatted output for sync operations and cached data.
    """

    def __init__(self, *, verbose: bool = False, colored: bool = True):
        """
        Initialize console.

        Args:
            verbose: Enable verbose output.
            colored: Enable colored output.
        """
        self.verbose = verbose
        self._console = RichConsole(force_terminal=colored, no_color=not colored)

    def print(self, *args, **kwargs) -> None:
        """Print to console."""
        self._console.print(*args, **kwargs)

    def print_error(self, message: str) -> None:
        """Print error message."""
        self._console.print(f"[red]Error:[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print warning message."""
        self._console.print(f"[yellow]Warning:[/yellow] {message}")

    def print_success(self, message: str) -> None:
        """Print success message."""
        self._console.print(f"[green]{message}[/green]")

    def print_info(self, message: str) -> None:
        """Print info message."""
        self._console.print(f"[blue]{message}[/blue]")

    def print_sync_result(self, result: SyncResult) -> None:
        """
        Print sync result summary.

        Args:
            result: Sync result to display.
        """
        title = "Full sync" if result.mode == SyncMode.FULL else "Sync"
        lines = [
            f"[green]{title} completed[/green]",
            f"Checkpoint: {format_checkpoint(result.checkpoint_before)} → {format_checkpoint(result.checkpoint_after)}",
            f"Records: {result.upserted} updated, {result.deleted} deleted"
            + (f", {result.evicted} evicted" if result.mode == SyncMode.FULL else ""),
        ]
        if result.sent:
            lines.append(f"Changes: {result.sent} sent, {result.confirmed} confirmed, {result.pending} pending")
        if result.skipped_deletions:
            lines.append(f"[yellow]{result.skipped_deletions} deletion(s) of unknown type skipped[/yellow]")

        border = "yellow" if result.has_pending or result.ambiguous else "green"
        self._console.print(Panel("\n".join(lines), title="Summary", border_style=border))

        if self.verbose and result.resolved:
            for temp_id, server_id in result.resolved.items():
                self._console.print(f"    [green]✓[/green] {temp_id} → {server_id}")

    def print_status(self, snapshot: Snapshot, pending: list[PendingChange]) -> None:
        """Print cached record counts and the pending queue."""
        table = Table(title="Cached Data", show_header=True, header_style="bold")
        table.add_column("Type", style="cyan")
        table.add_column("Records", justify="right")
        table.add_column("Tombstones", justify="right", style="dim")

        for entity_type in sorted(set(snapshot.types()) | set(_tombstone_types(snapshot))):
            table.add_row(entity_type, str(snapshot.count(entity_type)), str(len(snapshot.tombstones(entity_type))))

        self._console.print(f"Last sync: [bold]{format_checkpoint(snapshot.checkpoint)}[/bold]")
        if snapshot.count() == 0:
            self._console.print("[dim]No cached records[/dim]")
        else:
            self._console.print(table)

        if not pending:
            self._console.print("[dim]No pending changes[/dim]")
            return

        self._console.print(f"\n[yellow]{len(pending)} pending change(s)[/yellow]")
        icons = {
            ChangeKind.CREATE: "[green]+[/green]",
            ChangeKind.UPDATE: "[yellow]~[/yellow]",
            ChangeKind.DELETE: "[red]×[/red]",
        }
        for change in pending:
            self._console.print(f"    {icons[change.kind]} {change.entity_type} {change.key}")

    def print_accounts(self, accounts: Iterable[Account]) -> None:
        rows = sorted(accounts, key=lambda a: (a.archive, (a.title or "").lower()))
        if not rows:
            self._console.print("[dim]No accounts[/dim]")
            return

        table = Table(title="Accounts", show_header=True, header_style="bold")
        table.add_column("Title", style="cyan")
        table.add_column("Type")
        table.add_column("Balance", justify="right")
        table.add_column("Status")
        if self.verbose:
            table.add_column("ID", style="dim")

        for account in rows:
            status = "[dim]archived[/dim]" if account.archive else "[green]active[/green]"
            kind = account.kind.value if account.kind else "-"
            row = [account.title or "-", kind, format_amount(account.balance), status]
            if self.verbose:
                row.append(account.id)
            table.add_row(*row)

        self._console.print(table)

    def print_transactions(self, transactions: Iterable[Transaction], tags: Optional[dict[str, Tag]] = None) -> None:
        rows = sorted(transactions, key=lambda t: t.date or date.min, reverse=True)
        if not rows:
            self._console.print("[dim]No transactions found[/dim]")
            return

        tags = tags or {}
        table = Table(title=f"Transactions ({len(rows)})", show_header=True, header_style="bold")
        table.add_column("Date")
        table.add_column("Payee", style="cyan")
        table.add_column("Income", justify="right", style="green")
        table.add_column("Outcome", justify="right", style="red")
        table.add_column("Tags")
        table.add_column("Comment", style="dim")

        for tx in rows:
            tag_titles = ", ".join(tags[t].title or t if t in tags else t for t in tx.tag_ids)
            table.add_row(
                tx.date.isoformat() if tx.date else "-",
                tx.payee or "",
                format_amount(tx.income) if tx.income else "",
                format_amount(tx.outcome) if tx.outcome else "",
                tag_titles,
                tx.comment or "",
            )

        self._console.print(table)

    def print_tags(self, tags: Iterable[Tag]) -> None:
        tags = list(tags)
        if not tags:
            self._console.print("[dim]No tags[/dim]")
            return

        titles = {t.id: t.title or t.id for t in tags}
        table = Table(title="Tags", show_header=True, header_style="bold")
        table.add_column("Title", style="cyan")
        table.add_column("Parent", style="dim")

        for tag in sorted(tags, key=lambda t: (t.title or "").lower()):
            table.add_row(tag.title or tag.id, titles.get(tag.parent, "") if tag.parent else "")

        self._console.print(table)

    def print_suggestion(self, suggestion: SuggestResponse, tags: Optional[dict[str, EntityRecord]] = None) -> None:
        tags = tags or {}
        tag_names = [tags[t].title_text or t if t in tags else t for t in suggestion.tag or []]
        self._console.print(
            Panel(
                f"Payee: {suggestion.payee or '-'}\n"
                f"Merchant: {suggestion.merchant or '-'}\n"
                f"Tags: {', '.join(tag_names) or '-'}",
                title="Suggestion",
                border_style="blue",
            )
        )

    def print_config_summary(self, config_path: str, data_dir: str, token_set: bool) -> None:
        """Print configuration summary."""
        token = "[green]set[/green]" if token_set else "[red]missing[/red]"
        self._console.print(
            Panel(
                f"Config: {config_path}\n" f"Data: {data_dir}\n" f"Token: {token}",
                title="ZenSync Configuration",
                border_style="blue",
            )
        )


def _tombstone_types(snapshot: Snapshot) -> list[str]:
    return [t for t in ENTITY_TYPES if snapshot.tombstones(t)]


def create_console(*, verbose: bool = False, colored: bool = True) -> Console:
    """
    Create a console instance.

    Args:
        verbose: Enable verbose output.
        colored: Enable colored output.

    Returns:
        Console instance.
    """
    return Console(verbose=verbose, colored=colored)
