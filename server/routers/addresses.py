"""Delivery address routes. All require a signed-in user."""

from fastapi import APIRouter, Depends, Query, Request

from core.container import container
from middleware.rate_limit import RateLimit, user_or_ip
from models.address import AddressCreate, AddressFromPlace, AddressRead, AddressUpdate
from services.addresses import AddressService

router = APIRouter(
    prefix="/api/addresses",
    tags=["addresses"],
    dependencies=[Depends(RateLimit("address", lambda s: s.rate_limit_addresses, key_func=user_or_ip))]
)


def get_address_service() -> AddressService:
    return container.address_service()


@router.post("", response_model=AddressRead, status_code=201)
async def add_address(
    body: AddressCreate,
    request: Request,
    addresses: AddressService = Depends(get_address_service)
):
    return await addresses.add(request.state.user_id, body)


@router.post("/from-places", response_model=AddressRead, status_code=201)
async def add_address_from_place(
    body: AddressFromPlace,
    request: Request,
    addresses: AddressService = Depends(get_address_service)
):
    """Create an address from a Places id."""
    return await addresses.add_from_place(request.state.user_id, body)


@router.get("")
async def list_addresses(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    addresses: AddressService = Depends(get_address_service)
):
    return await addresses.list(request.state.user_id, page, limit)


@router.get("/{address_id}", response_model=AddressRead)
async def get_address(
    address_id: str,
    request: Request,
    addresses: AddressService = Depends(get_address_service)
):
    return await addresses.get(request.state.user_id, address_id)


@router.put("/{address_id}", response_model=AddressRead)
async def update_address(
    address_id: str,
    body: AddressUpdate,
    request: Request,
    addresses: AddressService = Depends(get_address_service)
):
    return await addresses.update(request.state.user_id, address_id, body)


@router.delete("/{address_id}", status_code=204)
async def delete_address(
    address_id: str,
    request: Request,
    addresses: AddressService = Depends(get_address_service)
):
    await addresses.delete(request.state.user_id, address_id)


@router.post("/{address_id}/default", response_model=AddressRead)
async def set_default_address(
    address_id: str,
    request: Request,
    addresses: AddressService = Depends(get_address_service)
):
    return await addresses.set_default(request.state.user_id, address_id)
