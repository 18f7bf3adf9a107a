from fastapi import APIRouter, Depends

from identity.dependencies import get_current_user_id, get_identity_service
from identity.schemas import BaseResponse, LoginRequest, UserCreate
from identity.services.identity_service import IdentityService

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

@router.post("/register", status_code=201, response_model=BaseResponse)
async def register(data: UserCreate, service: IdentityService = Depends(get_identity_service)):
    user = await service.create_user(data.name, str(data.email), data.password)
    return BaseResponse(success=True, message="User registered successfully", data=user)

@router.post("/login", response_model=BaseResponse)
async def login(data: LoginRequest, service: IdentityService = Depends(get_identity_service)):
    result = await service.login(str(data.email), data.password)
    return BaseResponse(success=True, message="Login successful", data=result)

@router.post("/logout", response_model=BaseResponse)
async def logout(
    user_id: int = Depends(get_current_user_id),
    service: IdentityService = Depends(get_identity_service),
):
    await service.logout(user_id)
    return BaseResponse(success=True, message="Logout successful")

@router.get("/me", response_model=BaseResponse)
async def me(
    user_id: int = Depends(get_current_user_id),
    service: IdentityService = Depends(get_identity_service),
):
    user = await service.get_user(user_id)
    return BaseResponse(success=True, message="User profile retrieved successfully", data=user)
