# api/subjects/subjects_service.py

from typing import List, Optional, Sequence, Union
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.subjects.subjects_model import Subject

# largest value a BIGINT key column can hold
MAX_PRIMARY_KEY = 2 ** 63 - 1


class SubjectService:
    """SQL-backed directory lookups used by scanning, the sweep and notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_active_subjects(self) -> List[Subject]:
        result = await self.db.execute(
            select(Subject).where(Subject.is_active.is_(True)).order_by(Subject.id)
        )
        return list(result.scalars().all())

    async def find_subject_by_id(self, subject_id: Union[int, str]) -> Optional[Subject]:
        """
        Resolve the id printed on a QR code. Codes carry the human-facing
        subject code; older ones carry the numeric primary key instead.
        """
        code = str(subject_id).strip()
        if not code:
            return None
        result = await self.db.execute(select(Subject).where(Subject.subject_code == code))
        subject = result.scalar_one_or_none()
        if subject is None and code.isdigit() and int(code) <= MAX_PRIMARY_KEY:
            subject = await self.db.get(Subject, int(code))
        return subject

    async def find_subjects_by_ids(self, ids: Sequence[int], active_only: bool = True) -> List[Subject]:
        if not ids:
            return []
        query = select(Subject).where(Subject.id.in_(list(ids)))
        if active_only:
            query = query.where(Subject.is_active.is_(True))
        result = await self.db.execute(query.order_by(Subject.id))
        return list(result.scalars().all())
