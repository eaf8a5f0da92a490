"""Store open/closed status. One row, created on first write."""

import logging

from sqlalchemy.orm import Session

from shared.database import transaction

from .models import StoreSettings
from .repository import StorefrontRepository
from .schemas import StoreSettingsView, UpdateStoreSettingsRequest

logger = logging.getLogger(__name__)


def to_store_settings_view(row: StoreSettings) -> StoreSettingsView:
    return StoreSettingsView(is_open=row.is_open, next_open_at=row.next_open_at, message=row.message)


def get_store_settings(db: Session) -> StoreSettingsView:
    """Current settings; an open store with no notice until an admin saves something."""
    row = StorefrontRepository(db).get_store_settings()
    if row is None:
        return StoreSettingsView()
    return to_store_settings_view(row)


def update_store_settings(db: Session, req: UpdateStoreSettingsRequest) -> StoreSettingsView:
    """Replace all three settings at once."""
    repo = StorefrontRepository(db)
    with transaction(db):
        row = repo.get_store_settings(for_update=True)
        if row is None:
            row = repo.add_store_settings(StoreSettings(id=StoreSettings.SINGLETON_ID))
        row.is_open = req.is_open
        row.next_open_at = req.next_open_at
        row.message = req.message or None
        db.flush()
        view = to_store_settings_view(row)

    logger.info(f"Store marked {'open' if view.is_open else 'closed'}")
    return view
