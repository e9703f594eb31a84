from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from fuel_dispatch.core.utils import utcnow
from fuel_dispatch.db.models import RequestEvent
from fuel_dispatch.schemas import Actor, RequestEventData, RequestStatus


class RequestEventRepository:
    def __init__(self, session: Session):
        self.session = session

    def record(
        self,
        request_id: str,
        from_status: Optional[RequestStatus],
        to_status: RequestStatus,
        actor: Actor,
        note: Optional[str] = None,
    ) -> RequestEvent:
        event = RequestEvent(
            request_id=request_id,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
            note=note,
            created_at=utcnow(),
        )
        self.session.add(event)
        self.session.flush()
        return event

    def list_for_request(self, request_id: str) -> List[RequestEventData]:
        rows = (
            self.session.execute(
                select(RequestEvent)
                .where(RequestEvent.request_id == request_id)
                .order_by(RequestEvent.id)
            )
            .scalars()
            .all()
        )
        return [
            RequestEventData(
                request_id=e.request_id,
                from_status=e.from_status,
                to_status=e.to_status,
                actor_id=e.actor_id,
                actor_role=e.actor_role,
                created_at=e.created_at,
            )
            for e in rows
        ]


__all__ = ["RequestEventRepository"]
