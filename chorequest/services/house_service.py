"""House & Membership Manager

ハウスの作成、メンバーへのロール付与、招待意図の解決を担当する。
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from chorequest.domain.errors import (
    NotFoundError,
    OrphanedHouseError,
    PermissionDeniedError,
    ValidationError,
)
from chorequest.domain.models import ActorContext, House, InviteIntent, Member, Role
from chorequest.domain.ports import HouseRepository, MemberRepository

logger = logging.getLogger(__name__)

_MAX_HOUSE_NAME = 80


def parse_role(value: Role | str | None) -> Role:
    """文字列を Role に変換する。未指定は child（招待リンクの既定値）"""
    if value is None or value == "":
        return Role.CHILD
    if isinstance(value, Role):
        return value
    try:
        return Role(value.strip().lower())
    except ValueError as e:
        raise ValidationError(f"Unknown role: {value!r}") from e


def _clean_house_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("House name must not be empty")
    if len(cleaned) > _MAX_HOUSE_NAME:
        raise ValidationError(f"House name must be at most {_MAX_HOUSE_NAME} characters")
    return cleaned


class HouseService:
    """
    ハウスとメンバーシップの操作。

    ロール判定は常に house_id の一致でスコープする。
    """

    def __init__(
        self,
        houses: HouseRepository,
        members: MemberRepository,
        frontend_base_url: str = "",
    ) -> None:
        self._houses = houses
        self._members = members
        self._frontend_base_url = frontend_base_url.rstrip("/")

    # ── メンバー ──────────────────────────────────────────────────────────────

    def ensure_member(self, user_id: str, full_name: str = "", email: str = "") -> Member:
        """
        プロファイルを取得し、無ければ未所属の child として作成する。

        初回サインイン後のアクセスで呼ばれる。
        """
        member = self._members.get(user_id)
        if member is not None:
            return member
        member = self._members.create(
            Member(id=user_id, full_name=full_name or email or user_id, email=email)
        )
        logger.info("Profile created on first access: member_id=%s", user_id)
        return member

    def get_member(self, member_id: str) -> Member:
        member = self._members.get(member_id)
        if member is None:
            raise NotFoundError(f"Member not found: {member_id}")
        return member

    def list_members(self, house_id: str) -> list[Member]:
        """ハウスのメンバー一覧（担当者ピッカー・子供ごとのフィルター用）"""
        return self._members.list_by_house(house_id)

    # ── ハウス ────────────────────────────────────────────────────────────────

    def get_house(self, house_id: str) -> House:
        house = self._houses.get(house_id)
        if house is None:
            raise NotFoundError(f"House not found: {house_id}")
        return house

    def create_house(self, name: str, founder_id: str) -> House:
        """
        ハウスを作成し、創設者を parent として所属させる。

        2 回目の書き込み（プロファイル更新）が失敗してもハウスは削除しない。
        孤立したハウスとして OrphanedHouseError で呼び出し元に報告する。

        Raises:
            ValidationError: name が空
            OrphanedHouseError: ハウス作成後のプロファイル更新に失敗
        """
        cleaned = _clean_house_name(name)
        house = self._houses.create(cleaned, founder_id)
        try:
            self._members.assign(founder_id, house.id, Role.PARENT)
        except Exception as e:
            logger.error(
                "Founder profile update failed, house orphaned: house_id=%s, founder_id=%s",
                house.id,
                founder_id,
                exc_info=True,
            )
            raise OrphanedHouseError(
                "ハウスは作成されましたが、プロファイルの更新に失敗しました。",
                house_id=house.id,
            ) from e
        logger.info("House created: house_id=%s, founder_id=%s", house.id, founder_id)
        return house

    def rename_house(self, actor: ActorContext, name: str) -> House:
        """ハウス名を変更する（parent のみ）"""
        if not actor.is_parent:
            raise PermissionDeniedError("Only parents can rename the house")
        return self._houses.rename(actor.house_id, _clean_house_name(name))

    # ── 招待 ──────────────────────────────────────────────────────────────────

    def resolve_pending_invite(
        self, user_id: str, house_id: str, role: Role | str | None = None
    ) -> Member:
        """
        招待意図（house_id, role）をメンバーに適用する。

        ログイン済みで招待リンクを開いた場合と、登録・メール確認後の
        遅延解決の両方で使う。同じ引数での再適用は結果を変えない。
        """
        resolved_role = parse_role(role)
        self.get_house(house_id)

        current = self.get_member(user_id)
        if current.house_id == house_id and current.role is resolved_role:
            return current

        member = self._members.assign(user_id, house_id, resolved_role)
        logger.info(
            "Invite resolved: member_id=%s, house_id=%s, role=%s",
            user_id,
            house_id,
            resolved_role.value,
        )
        return member

    def build_invite_url(self, house_id: str, role: Role | str | None = None) -> str:
        """招待リンク（QR コード化される URL）を生成する"""
        intent = InviteIntent(house_id=house_id, role=parse_role(role))
        query = urlencode({"role": intent.role.value})
        return f"{self._frontend_base_url}/join/{intent.house_id}?{query}"
