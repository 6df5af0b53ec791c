# =============================================================================
# app/auth/__init__.py - Authentication Module
# =============================================================================
# Provides JWT-based authentication using Supabase Auth.
#
# Usage:
#   from app.auth import get_current_user, AuthUser
#
#   @router.post("/studio/generate")
#   async def generate(user: AuthUser = Depends(get_current_user)):
#       await orchestrator.run(request, credential=user.token)
# =============================================================================

from app.auth.dependencies import authenticate_token, get_current_user
from app.auth.models import AuthUser

__all__ = [
    "authenticate_token",
    "get_current_user",
    "AuthUser",
]
