"""
Invoice numbering.

Numbers look like ``<PREFIX>-<YEAR>-<NNNN>`` and come from the single counter
on the settings row. The counter only moves through this module:

- ``allocate_next`` bumps it with an atomic SQL increment inside the caller's
  transaction, so the number and the invoice that consumes it commit together.
- ``reclaim`` steps it back by one when the most recently issued number is
  deleted. Older numbers stay retired; gaps are fine, duplicates are not.
- ``reseed`` realigns it when the numbering scope (prefix / year / start) changes.
"""

import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from backoffice.models.invoice import Invoice
from backoffice.models.settings import SETTINGS_ID, Settings

logger = logging.getLogger(__name__)


def format_invoice_number(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:04d}"


def preview_next_number(settings: Settings) -> str:
    """Number the next invoice would get. Read-only."""
    return format_invoice_number(settings.invoice_prefix, settings.invoice_year, settings.invoice_current_number + 1)


def allocate_next(db: Session) -> str:
    """Consume the next number. Does not commit."""
    from backoffice.services.settings_service import get_settings

    row = get_settings(db)
    db.execute(
        update(Settings)
        .where(Settings.id == SETTINGS_ID)
        .values(invoice_current_number=Settings.invoice_current_number + 1)
        .execution_options(synchronize_session=False)
    )
    db.refresh(row)
    number = format_invoice_number(row.invoice_prefix, row.invoice_year, row.invoice_current_number)
    logger.info("Allocated invoice number %s", number)
    return number


def reclaim(db: Session, invoice_number: str) -> bool:
    """Hand back ``invoice_number`` if it is the last one issued. Does not commit."""
    row = db.query(Settings).populate_existing().filter(Settings.id == SETTINGS_ID).first()
    if row is None:
        return False

    current = row.invoice_current_number
    if invoice_number != format_invoice_number(row.invoice_prefix, row.invoice_year, current):
        return False

    result = db.execute(
        update(Settings)
        .where(
            Settings.id == SETTINGS_ID,
            Settings.invoice_current_number == current,
            Settings.invoice_current_number > 0,
        )
        .values(invoice_current_number=Settings.invoice_current_number - 1)
        .execution_options(synchronize_session=False)
    )
    db.refresh(row)
    if result.rowcount:
        logger.info("Reclaimed invoice number %s", invoice_number)
    return bool(result.rowcount)


def highest_issued(db: Session, prefix: str, year: int) -> int:
    scope = f"{prefix}-{year}-"
    rows = db.query(Invoice.invoice_number).filter(Invoice.invoice_number.startswith(scope, autoescape=True)).all()
    highest = 0
    for (number,) in rows:
        tail = number[len(scope):]
        if tail.isdigit():
            highest = max(highest, int(tail))
    return highest


def reseed(db: Session, row: Settings, scope_changed: bool = True) -> int:
    """Point the counter at the current scope without ever re-issuing an existing number.

    Within an unchanged scope the counter never moves backwards, so numbers
    retired by deletion stay retired.
    """
    floor = max((row.invoice_start_number or 1) - 1, 0)
    value = max(floor, highest_issued(db, row.invoice_prefix, row.invoice_year))
    if not scope_changed:
        value = max(value, row.invoice_current_number)
    if value != row.invoice_current_number:
        logger.info(
            "Re-seeded invoice counter for %s-%s: %d -> %d",
            row.invoice_prefix, row.invoice_year, row.invoice_current_number, value,
        )
        row.invoice_current_number = value
    return value
