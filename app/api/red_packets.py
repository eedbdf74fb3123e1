"""
拼手气红包与代金券路由
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_current_user_id, get_red_packet_service
from app.models.red_packet import Voucher, RedPacketClaimResult
from app.services.red_packet_service import RedPacketService

router = APIRouter(prefix="/red-packets", tags=["拼手气红包"])
voucher_router = APIRouter(prefix="/vouchers", tags=["代金券"])


@router.post("/{promotion_id}/claim", response_model=RedPacketClaimResult, status_code=201)
async def claim_red_packet(
    promotion_id: str,
    user_id: str = Depends(get_current_user_id),
    service: RedPacketService = Depends(get_red_packet_service)
):
    """领取拼手气红包，成功后获得一张代金券"""
    result = await service.claim(promotion_id, user_id)
    await service.commit()
    return result


@voucher_router.get("", response_model=List[Voucher])
async def list_my_vouchers(
    only_usable: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    service: RedPacketService = Depends(get_red_packet_service)
):
    """我的代金券"""
    return await service.list_user_vouchers(user_id, only_usable=only_usable)
