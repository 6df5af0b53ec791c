# =============================================================================
# app/auth/models.py - Authentication Models
# =============================================================================
# Pydantic models for authentication data.
# =============================================================================

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AuthUser(BaseModel):
    """
    Authenticated user extracted from Supabase JWT.

    This is the minimal user info available from the token itself,
    without querying the database. The raw bearer token is kept so it can
    be forwarded into the pipeline as the caller's credential.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    email: str | None = None
    token: str = Field(..., repr=False)

    @property
    def user_id(self) -> str:
        return str(self.id)
