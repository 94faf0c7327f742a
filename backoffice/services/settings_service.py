import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.config import settings as app_settings
from backoffice.database import atomic, lock_for_update, reject_nulls
from backoffice.models.settings import SETTINGS_ID, Settings
from backoffice.schemas.settings import SettingsUpdate
from backoffice.services import numbering_service

logger = logging.getLogger(__name__)

NUMBERING_FIELDS = {"invoice_prefix", "invoice_year", "invoice_start_number"}


def _default_settings() -> Settings:
    return Settings(
        id=SETTINGS_ID,
        company_name=app_settings.COMPANY_NAME,
        country=app_settings.COMPANY_COUNTRY,
        invoice_prefix=app_settings.INVOICE_PREFIX,
        default_due_days=app_settings.DEFAULT_DUE_DAYS,
        default_vat_rate=app_settings.DEFAULT_VAT_RATE,
    )


def get_settings(db: Session, for_update: bool = False) -> Settings:
    """Return the singleton settings row, creating it with defaults on first use.

    Never commits; a freshly created row is flushed into the caller's transaction.
    """
    query = db.query(Settings).populate_existing().filter(Settings.id == SETTINGS_ID)
    if for_update:
        query = lock_for_update(query)
    row = query.first()
    if row is not None:
        return row

    try:
        with db.begin_nested():
            row = _default_settings()
            db.add(row)
        logger.info("Created default settings row")
    except IntegrityError:
        # Another request created it first
        row = db.query(Settings).populate_existing().filter(Settings.id == SETTINGS_ID).one()
    return row


def update_settings(db: Session, data: SettingsUpdate) -> Settings:
    changes = data.model_dump(exclude_unset=True)
    reject_nulls(Settings, changes)
    with atomic(db):
        row = get_settings(db, for_update=True)
        old_scope = (row.invoice_prefix, row.invoice_year)
        for field, value in changes.items():
            setattr(row, field, value)
        if NUMBERING_FIELDS & changes.keys():
            db.flush()
            numbering_service.reseed(db, row, scope_changed=(row.invoice_prefix, row.invoice_year) != old_scope)
    db.refresh(row)
    return row
