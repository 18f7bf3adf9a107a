from fastapi import APIRouter, Depends

from identity.dependencies import PaginationParams, get_current_user_id, get_identity_service
from identity.schemas import BaseResponse, UserCreate, UserUpdate
from identity.services.identity_service import IdentityService

# Every user endpoint requires a valid bearer token, reads included.
# Self-registration without a token goes through /api/v1/auth/register.
router = APIRouter(
    prefix="/api/v1/users",
    tags=["users"],
    dependencies=[Depends(get_current_user_id)],
)

@router.post("", status_code=201, response_model=BaseResponse)
async def create_user(data: UserCreate, service: IdentityService = Depends(get_identity_service)):
    user = await service.create_user(data.name, str(data.email), data.password)
    return BaseResponse(success=True, message="User created successfully", data=user)

@router.get("", response_model=BaseResponse)
async def list_users(
    pagination: PaginationParams = Depends(),
    service: IdentityService = Depends(get_identity_service),
):
    page = await service.list_users(pagination.page, pagination.per_page)
    return BaseResponse(success=True, message="Users retrieved successfully", data=page)

@router.get("/{user_id}", response_model=BaseResponse)
async def get_user(user_id: int, service: IdentityService = Depends(get_identity_service)):
    user = await service.get_user(user_id)
    return BaseResponse(success=True, message="User retrieved successfully", data=user)

@router.put("/{user_id}", response_model=BaseResponse)
async def update_user(
    user_id: int,
    data: UserUpdate,
    service: IdentityService = Depends(get_identity_service),
):
    user = await service.update_user(user_id, data)
    return BaseResponse(success=True, message="User updated successfully", data=user)

@router.delete("/{user_id}", response_model=BaseResponse)
async def delete_user(user_id: int, service: IdentityService = Depends(get_identity_service)):
    await service.delete_user(user_id)
    return BaseResponse(success=True, message="User deleted successfully")
