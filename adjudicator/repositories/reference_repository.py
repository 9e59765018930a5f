"""Repositories for medicine and disease reference data."""

from sqlalchemy.ext.asyncio import AsyncSession

from adjudicator.database.models import DiseaseMedicineMapping, MedicineCatalogEntry
from adjudicator.repositories.base_repository import BaseRepository


class MedicineCatalogRepository(BaseRepository[MedicineCatalogEntry]):
    """Repository for MedicineCatalogEntry model."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, MedicineCatalogEntry)


class DiseaseMappingRepository(BaseRepository[DiseaseMedicineMapping]):
    """Repository for DiseaseMedicineMapping model."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DiseaseMedicineMapping)
