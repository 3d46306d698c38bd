"""Meeting change request repository"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Meeting, MeetingChangeRequest


class MeetingRequestRepository:
    @staticmethod
    def get_request(db: Session, request_id: str) -> Optional[MeetingChangeRequest]:
        return (
            db.query(MeetingChangeRequest)
            .options(
                joinedload(MeetingChangeRequest.meeting).joinedload(Meeting.cycle),
                joinedload(MeetingChangeRequest.instructor),
            )
            .filter(MeetingChangeRequest.id == request_id)
            .first()
        )

    @staticmethod
    def list_requests(
        db: Session,
        status: Optional[str] = None,
        instructor_id: Optional[str] = None,
        meeting_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[MeetingChangeRequest], int]:
        query = db.query(MeetingChangeRequest)
        if status:
            query = query.filter(MeetingChangeRequest.status == status)
        if instructor_id:
            query = query.filter(MeetingChangeRequest.instructor_id == instructor_id)
        if meeting_id:
            query = query.filter(MeetingChangeRequest.meeting_id == meeting_id)

        total = query.count()
        requests = (
            query.options(
                joinedload(MeetingChangeRequest.meeting).joinedload(Meeting.cycle),
                joinedload(MeetingChangeRequest.instructor),
            )
            .order_by(MeetingChangeRequest.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return requests, total

    @staticmethod
    def find_pending(db: Session, meeting_id: str, request_type: str) -> Optional[MeetingChangeRequest]:
        return (
            db.query(MeetingChangeRequest)
            .filter(
                MeetingChangeRequest.meeting_id == meeting_id,
                MeetingChangeRequest.request_type == request_type,
                MeetingChangeRequest.status == "pending",
            )
            .first()
        )

    @staticmethod
    def claim_review(
        db: Session, request_id: str, new_status: str, reviewer_id: str, review_notes: Optional[str]
    ) -> bool:
        """Move a pending request to approved/rejected; False if it was already reviewed"""
        updated = (
            db.query(MeetingChangeRequest)
            .filter(MeetingChangeRequest.id == request_id, MeetingChangeRequest.status == "pending")
            .update(
                {
                    MeetingChangeRequest.status: new_status,
                    MeetingChangeRequest.reviewed_by: reviewer_id,
                    MeetingChangeRequest.reviewed_at: datetime.utcnow(),
                    MeetingChangeRequest.review_notes: review_notes,
                },
                synchronize_session=False,
            )
        )
        return updated == 1
