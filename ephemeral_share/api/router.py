from fastapi import APIRouter

from ephemeral_share.api.auth import router as auth_router
from ephemeral_share.api.files import public_router as public_files_router
from ephemeral_share.api.files import share_router as share_files_router
from ephemeral_share.api.files import user_router as user_files_router
from ephemeral_share.api.users import router as users_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(public_files_router)
router.include_router(user_files_router)
router.include_router(share_files_router)
