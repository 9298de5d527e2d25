"""Upload signing routes."""

from typing import Annotated

from fastapi import APIRouter, Depends

from notemate.routes.dependencies import get_authenticated_principal, get_upload_service
from notemate.schemas.auth import AuthPrincipal
from notemate.schemas.error import ErrorResponse, NoLeakNotFoundError, UpstreamProviderError
from notemate.schemas.upload import SignedUrlRequest, SignedUrlResponse
from notemate.services.uploads import UploadService

router = APIRouter(prefix="/uploads", tags=["Uploads"])


@router.post(
    "/sign-url",
    response_model=SignedUrlResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        502: {"model": UpstreamProviderError},
    },
)
def sign_upload_url(
    payload: SignedUrlRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[UploadService, Depends(get_upload_service)],
) -> SignedUrlResponse:
    return service.sign_upload(
        owner_id=principal.user_id,
        file_type=payload.type,
        conversation_id=payload.conversation_id,
    )
