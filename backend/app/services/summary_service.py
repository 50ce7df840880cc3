"""Per-user summary recalculation, run from the job queue after every import."""

from datetime import datetime
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.media import Collection, Metadata, Review, Seen, UserSummary


class SummaryService:
    def __init__(self, db: Session):
        self.db = db

    def recalculate(self, user_id: int) -> UserSummary:
        """Recompute and store the summary for one user."""
        seen_by_lot = (
            self.db.query(Metadata.lot, func.count(func.distinct(Seen.metadata_id)))
            .join(Seen, Seen.metadata_id == Metadata.id)
            .filter(Seen.user_id == user_id)
            .group_by(Metadata.lot)
            .all()
        )
        reviewed_by_lot = (
            self.db.query(Metadata.lot, func.count(Review.id))
            .join(Review, Review.metadata_id == Metadata.id)
            .filter(Review.user_id == user_id)
            .group_by(Metadata.lot)
            .all()
        )

        media: dict[str, dict[str, int]] = {}
        for lot, count in seen_by_lot:
            media.setdefault(lot, {"seen": 0, "reviewed": 0})["seen"] = count
        for lot, count in reviewed_by_lot:
            media.setdefault(lot, {"seen": 0, "reviewed": 0})["reviewed"] = count

        data: dict[str, Any] = {
            "media": media,
            "total_seen": self.db.query(func.count(Seen.id)).filter(Seen.user_id == user_id).scalar(),
            "total_reviews": (
                self.db.query(func.count(Review.id)).filter(Review.user_id == user_id).scalar()
            ),
            "collections": (
                self.db.query(func.count(Collection.id))
                .filter(Collection.user_id == user_id)
                .scalar()
            ),
        }

        summary = self.db.get(UserSummary, user_id)
        if summary is None:
            summary = UserSummary(user_id=user_id)
            self.db.add(summary)
        summary.data = data
        summary.calculated_on = datetime.utcnow()
        self.db.commit()
        return summary
