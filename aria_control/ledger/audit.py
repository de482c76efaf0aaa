"""
Control-Plane Audit — journal chain and record history cross-check.

Two questions are answered from the database alone:

1. Is the event journal intact? Every hash is recomputed from the stored
   content (``EventJournal.verify_chain``).
2. Does every stored record have a journaled history? Each event names the
   record addresses it touched; a record no event ever touched was written
   outside an instruction and fails the audit.

Usage:
    aria-audit
    aria-audit --database-url sqlite:///aria_control.db
    aria-audit --verbose
"""

from __future__ import annotations

import argparse
import sys
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from rich.console import Console
from rich.table import Table
from sqlalchemy import Engine, select

from aria_control.config import settings
from aria_control.ledger.database import make_engine
from aria_control.ledger.journal import GENESIS_KIND, EventJournal
from aria_control.ledger.models import JournalEntryDB, RecordDB

console = Console()

# Event fields that hold the address of a stored record
RECORD_ADDRESS_FIELDS = (
    "ledger",
    "lock_account",
    "version_account",
    "config_account",
    "metadata_account",
)


def touched_records(content: dict[str, Any]) -> list[str]:
    """Record addresses named by one journaled event."""
    return [content[name] for name in RECORD_ADDRESS_FIELDS if content.get(name)]


@dataclass
class AuditReport:
    chain_valid: bool
    entries_verified: int
    chain_message: str
    instructions: Counter[str] = field(default_factory=Counter)
    events: Counter[str] = field(default_factory=Counter)
    records_by_kind: Counter[str] = field(default_factory=Counter)
    unjournaled_records: list[str] = field(default_factory=list)
    entries: list[JournalEntryDB] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.chain_valid and not self.unjournaled_records


def audit_database(engine: Engine) -> AuditReport:
    """Verify the journal chain and match stored records against it."""
    journal = EventJournal(engine)
    count = journal.get_entry_count()
    if count:
        chain_valid, entries_verified, chain_message = journal.verify_chain()
        entries = list(reversed(journal.get_latest_entries(limit=count)))
    else:
        chain_valid, entries_verified, chain_message, entries = True, 0, "empty journal", []
    report = AuditReport(
        chain_valid=chain_valid,
        entries_verified=entries_verified,
        chain_message=chain_message,
        entries=entries,
    )

    journaled: set[str] = set()
    for entry in entries:
        if entry.event_kind == GENESIS_KIND:
            continue
        report.instructions[entry.instruction] += 1
        report.events[entry.event_kind] += 1
        journaled.update(touched_records(entry.content))

    with journal.SessionLocal() as session:
        rows = session.execute(
            select(RecordDB.address, RecordDB.record_kind).order_by(RecordDB.address)
        ).all()
    for address, record_kind in rows:
        report.records_by_kind[record_kind] += 1
        if address not in journaled:
            report.unjournaled_records.append(address)

    return report


def _counts_table(title: str, label: str, counts: Counter[str]) -> Table:
    table = Table(title=title, title_justify="left")
    table.add_column(label, style="green")
    table.add_column("Count", justify="right")
    for name, total in sorted(counts.items()):
        table.add_row(name, str(total))
    return table


def print_report(report: AuditReport, verbose: bool = False) -> None:
    if not report.entries:
        console.print("[yellow]Journal is empty; no chain to verify[/yellow]")
    elif report.chain_valid:
        console.print(
            f"Hash chain: [bold green]intact[/bold green] "
            f"({report.entries_verified} entries)"
        )
    else:
        console.print(
            f"Hash chain: [bold red]broken[/bold red] at entry "
            f"{report.entries_verified}: {report.chain_message}"
        )

    console.print(_counts_table("Instructions", "Instruction", report.instructions))
    console.print(_counts_table("Stored records", "Record kind", report.records_by_kind))

    if report.unjournaled_records:
        console.print("[bold red]Records without journal history:[/bold red]")
        for address in report.unjournaled_records:
            console.print(f"  {address}")

    if verbose:
        table = Table(title="Journal entries", title_justify="left", show_lines=True)
        table.add_column("Seq", style="cyan", justify="right")
        table.add_column("Instruction")
        table.add_column("Event", style="green")
        table.add_column("Signer", style="yellow")
        table.add_column("Records touched")
        for entry in report.entries:
            table.add_row(
                str(entry.sequence_number),
                entry.instruction,
                entry.event_kind,
                entry.signer or "-",
                ", ".join(touched_records(entry.content)) or "-",
            )
        console.print(table)


def run_audit(database_url: str, verbose: bool = False) -> bool:
    """
    Audit the control-plane database at ``database_url``.

    Returns:
        True if the chain is intact and every record has journal history.
    """
    console.rule(f"Control-plane audit: {database_url}")
    report = audit_database(make_engine(database_url))
    print_report(report, verbose=verbose)
    console.rule("[green]passed[/green]" if report.ok else "[red]failed[/red]")
    return report.ok


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Audit the ARIA control-plane journal and records"
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy connection string (defaults to .env settings)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="List every journal entry with the records it touched",
    )
    args = parser.parse_args(argv)

    ok = run_audit(args.database_url or settings.database_url, verbose=args.verbose)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
