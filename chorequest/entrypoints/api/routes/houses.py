"""ハウス管理 API ルート

POST  /api/houses                  → 201 { id, name, owner_id }
PATCH /api/houses/me               → 200 { id, name, owner_id }   （parent のみ）
GET   /api/houses/me/invite?role=  → 200 { invite_url, role }
GET   /api/houses/{house_id}       → 200 { id, name }             （招待ページのプレビュー）
POST  /api/houses/{house_id}/join  → 200 { id, role, house_id, ... }
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from chorequest.domain.models import ActorContext, House, Member, Role
from chorequest.entrypoints.api.deps import (
    get_actor,
    get_current_member,
    get_house_service,
)
from chorequest.entrypoints.api.routes.members import MemberResponse, to_member_response
from chorequest.services.house_service import HouseService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/houses", tags=["houses"])


class HouseCreateRequest(BaseModel):
    name: str


class HouseRenameRequest(BaseModel):
    name: str


class HouseResponse(BaseModel):
    id: str
    name: str
    owner_id: str


class HousePreviewResponse(BaseModel):
    id: str
    name: str


class InviteResponse(BaseModel):
    invite_url: str
    role: str


class JoinRequest(BaseModel):
    role: Role | None = None  # 招待リンクに role がなければ child


def _to_response(house: House) -> HouseResponse:
    return HouseResponse(id=house.id, name=house.name, owner_id=house.owner_id)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=HouseResponse)
def create_house(
    body: HouseCreateRequest,
    member: Member = Depends(get_current_member),
    house_service: HouseService = Depends(get_house_service),
) -> HouseResponse:
    """ハウスを作成し、作成者を parent として所属させる"""
    house = house_service.create_house(body.name, member.id)
    return _to_response(house)


@router.patch("/me", response_model=HouseResponse)
def rename_house(
    body: HouseRenameRequest,
    actor: ActorContext = Depends(get_actor),
    house_service: HouseService = Depends(get_house_service),
) -> HouseResponse:
    """ハウス名を変更する（parent のみ）"""
    house = house_service.rename_house(actor, body.name)
    logger.info("House renamed: house_id=%s, by=%s", house.id, actor.member_id)
    return _to_response(house)


@router.get("/me/invite", response_model=InviteResponse)
def get_invite_link(
    role: Role = Role.CHILD,
    actor: ActorContext = Depends(get_actor),
    house_service: HouseService = Depends(get_house_service),
) -> InviteResponse:
    """招待リンクを返す（フロントエンドが QR コードに変換する）"""
    return InviteResponse(
        invite_url=house_service.build_invite_url(actor.house_id, role),
        role=role.value,
    )


@router.get("/{house_id}", response_model=HousePreviewResponse)
def get_house_preview(
    house_id: str,
    member: Member = Depends(get_current_member),
    house_service: HouseService = Depends(get_house_service),
) -> HousePreviewResponse:
    """招待ページ用: ハウス名のみを返す（未所属ユーザーも参照可能）"""
    house = house_service.get_house(house_id)
    return HousePreviewResponse(id=house.id, name=house.name)


@router.post("/{house_id}/join", response_model=MemberResponse)
def join_house(
    house_id: str,
    body: JoinRequest | None = None,
    member: Member = Depends(get_current_member),
    house_service: HouseService = Depends(get_house_service),
) -> MemberResponse:
    """
    招待意図（house_id, role）を解決してハウスに参加する。

    登録・メール確認のリダイレクト後にフロントエンドが保持していた
    招待意図を送ってくるケースも同じエンドポイントで扱う。
    """
    role = body.role if body else None
    updated = house_service.resolve_pending_invite(member.id, house_id, role)
    return to_member_response(updated)
