from fastapi import APIRouter, Depends, status

from app.features.preview.schemas.preview import PreviewRequest, PreviewResponse, SecurityConfig
from app.features.preview.services.preview_service import PreviewService, error_to_status
from app.platform.config import settings
from app.platform.exceptions import FailureKind, error_payload
from app.platform.logger import get_logger
from app.platform.response import api_response
from app.platform.schemas import APIResponse, ErrorDetail

logger = get_logger("preview_routes")

router = APIRouter(tags=["preview"])

# Config is immutable, so one service instance is shared by every request
preview_service = PreviewService(SecurityConfig.from_settings(settings))


def get_preview_service() -> PreviewService:
    return preview_service


@router.post(
    "/preview",
    response_model=APIResponse[PreviewResponse],
    responses={
        code: {"model": APIResponse[ErrorDetail]} for code in (400, 403, 404, 408, 413, 429, 500, 503)
    },
    status_code=status.HTTP_200_OK,
    summary="Build a link preview",
    description="Fetch a URL (or use supplied raw HTML) and extract title, image, price and site name",
)
async def create_preview(
    request: PreviewRequest,
    service: PreviewService = Depends(get_preview_service),
):
    """
    Build a preview card for a link.

    **Example Request:**
```json
    {
        "url": "https://example.com/product"
    }
```

    **Example Response:**
```json
    {
        "status_code": 200,
        "status": "success",
        "message": "Preview generated successfully",
        "data": {
            "title": "Example Product",
            "image": "https://example.com/product.jpg",
            "price": "$99.99",
            "currency": "",
            "siteName": "Example Store",
            "sourceUrl": "https://example.com/product"
        }
    }
```
    """
    try:
        preview = await service.get_preview(request)
    except Exception as e:
        status_code, message, field, kind = error_to_status(e)
        if kind == FailureKind.INTERNAL_ERROR:
            logger.exception(f"Unexpected error building preview: {e}")
            data = error_payload(kind, field, exc=e)
        else:
            logger.warning(f"Preview failed with {kind.value} ({status_code}): {message}")
            data = error_payload(kind, field)
        return api_response(status_code=status_code, message=message, data=data)

    return api_response(
        data=preview,
        message="Preview generated successfully",
        status_code=status.HTTP_200_OK,
    )
