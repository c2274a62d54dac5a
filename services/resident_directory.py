# services/resident_directory.py
import logging
from typing import Dict, List, Optional

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.database import get_legacy_session, get_session
from models.models import Profile, ProfileResidence, ProfileRole

logger = logging.getLogger(__name__)


class ResidentDirectory:
    """
    Resident lookups for a residence.

    Reads the canonical store and, when configured, the legacy store that
    still holds migrated rows. Results are merged by profile id with the
    canonical row winning.
    """

    def __init__(self, primary: Session, legacy: Optional[Session] = None):
        self.primary = primary
        self.legacy = legacy

    @staticmethod
    def _residents_in(session: Session, residence_id: int) -> List[Profile]:
        direct = session.exec(select(Profile).where(Profile.residence_id == residence_id)).all()
        linked = session.exec(
            select(Profile)
            .join(ProfileResidence, ProfileResidence.profile_id == Profile.id)
            .where(ProfileResidence.residence_id == residence_id)
        ).all()
        return list(direct) + list(linked)

    def residents_of(self, residence_id: int) -> List[Profile]:
        merged: Dict[str, Profile] = {}
        for profile in self._residents_in(self.primary, residence_id):
            merged.setdefault(profile.id, profile)

        if self.legacy is not None:
            try:
                legacy_rows = self._residents_in(self.legacy, residence_id)
            except SQLAlchemyError as e:
                logger.error("[Residents] Legacy store lookup failed for residence %s: %s", residence_id, e)
                legacy_rows = []
            for profile in legacy_rows:
                merged.setdefault(profile.id, profile)

        return sorted(merged.values(), key=lambda p: (p.full_name or "").lower())

    def eligible_successors(self, residence_id: int, departing_id: str) -> List[Profile]:
        """Residents who may take over: never the departing syndic, never another syndic."""
        return [
            profile
            for profile in self.residents_of(residence_id)
            if profile.id != departing_id and profile.role != ProfileRole.SYNDIC.value
        ]

    def is_resident(self, residence_id: int, profile_id: str) -> bool:
        return any(profile.id == profile_id for profile in self.residents_of(residence_id))

    def find_profile(self, profile_id: str) -> Optional[Profile]:
        profile = self.primary.get(Profile, profile_id)
        if profile is None and self.legacy is not None:
            try:
                profile = self.legacy.get(Profile, profile_id)
            except SQLAlchemyError as e:
                logger.error("[Residents] Legacy store lookup failed for profile %s: %s", profile_id, e)
        return profile


def get_resident_directory(
    session: Session = Depends(get_session),
    legacy_session: Optional[Session] = Depends(get_legacy_session),
) -> ResidentDirectory:
    """FastAPI dependency: directory over the request's sessions."""
    return ResidentDirectory(session, legacy_session)
