"""Echo the caller's resolved IP and location. Used by the frontend to pick a country flow."""

from fastapi import APIRouter, Depends

from modloot.api.deps import Caller, get_caller

router = APIRouter(prefix="/api/userip", tags=["geo"])


@router.get("")
async def user_ip(caller: Caller = Depends(get_caller)):
    return {"ip": caller.ip, **caller.geo.as_dict()}
