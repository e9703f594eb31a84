from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from fuel_dispatch.db.models import Bunk
from fuel_dispatch.schemas import BunkData


class BunkRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, bunk_id: str) -> Optional[Bunk]:
        return self.session.get(Bunk, bunk_id)

    def get_bunk(self, bunk_id: str) -> Optional[BunkData]:
        bunk = self.get_by_id(bunk_id)
        if not bunk:
            return None
        return to_bunk_data(bunk)

    def get_many(self, bunk_ids: List[str]) -> List[BunkData]:
        if not bunk_ids:
            return []
        rows = self.session.execute(select(Bunk).where(Bunk.id.in_(bunk_ids))).scalars()
        return [to_bunk_data(b) for b in rows]

    def upsert_bunk(
        self,
        bunk_id: str,
        name: str,
        lat: float,
        lng: float,
        service_radius_km: float,
    ) -> None:
        bunk = self.get_by_id(bunk_id)
        if bunk:
            bunk.name = name
            bunk.lat = lat
            bunk.lng = lng
            bunk.service_radius_km = service_radius_km
        else:
            self.session.add(
                Bunk(
                    id=bunk_id,
                    name=name,
                    lat=lat,
                    lng=lng,
                    service_radius_km=service_radius_km,
                )
            )
        self.session.flush()


def to_bunk_data(bunk: Bunk) -> BunkData:
    return BunkData(
        id=bunk.id,
        name=bunk.name,
        lat=bunk.lat,
        lng=bunk.lng,
        service_radius_km=bunk.service_radius_km,
    )


__all__ = ["BunkRepository", "to_bunk_data"]
