"""メンバー API ルート

GET /api/members/me  → 200 { id, full_name, role, house_id, points, house }
GET /api/members     → 200 [{ id, full_name, role, points }...]
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from chorequest.domain.models import ActorContext, Member
from chorequest.entrypoints.api.deps import (
    get_actor,
    get_current_member,
    get_house_service,
)
from chorequest.services.house_service import HouseService

router = APIRouter(prefix="/members", tags=["members"])


class HouseSummary(BaseModel):
    id: str
    name: str
    owner_id: str


class MemberResponse(BaseModel):
    id: str
    full_name: str
    role: str
    house_id: str | None
    points: int


class MeResponse(MemberResponse):
    house: HouseSummary | None = None


def to_member_response(member: Member) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        full_name=member.full_name,
        role=member.role.value,
        house_id=member.house_id,
        points=member.points,
    )


@router.get("/me", response_model=MeResponse)
def get_me(
    member: Member = Depends(get_current_member),
    house_service: HouseService = Depends(get_house_service),
) -> MeResponse:
    """
    自分のプロファイルと所属ハウスを返す。

    house が null の場合、フロントエンドはハウス作成・参加画面へ誘導する。
    """
    house = None
    if member.is_assigned:
        h = house_service.get_house(member.house_id)
        house = HouseSummary(id=h.id, name=h.name, owner_id=h.owner_id)
    return MeResponse(**to_member_response(member).model_dump(), house=house)


@router.get("", response_model=list[MemberResponse])
def list_members(
    actor: ActorContext = Depends(get_actor),
    house_service: HouseService = Depends(get_house_service),
) -> list[MemberResponse]:
    """ハウスのメンバー一覧（担当者ピッカー・子供ごとのフィルター用）"""
    return [to_member_response(m) for m in house_service.list_members(actor.house_id)]
