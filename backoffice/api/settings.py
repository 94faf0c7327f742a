from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backoffice.api.auth import get_current_user
from backoffice.database import get_db
from backoffice.models.settings import Settings
from backoffice.schemas.settings import SettingsOut, SettingsUpdate
from backoffice.services import numbering_service, settings_service

router = APIRouter(prefix="/settings", tags=["Settings"], dependencies=[Depends(get_current_user)])


def _settings_out(row: Settings) -> SettingsOut:
    out = SettingsOut.model_validate(row)
    out.next_invoice_number = numbering_service.preview_next_number(row)
    return out


@router.get("", response_model=SettingsOut)
def get_settings(db: Session = Depends(get_db)):
    return _settings_out(settings_service.get_settings(db))


@router.patch("", response_model=SettingsOut)
def update_settings(data: SettingsUpdate, db: Session = Depends(get_db)):
    return _settings_out(settings_service.update_settings(db, data))
