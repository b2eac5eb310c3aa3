from typing import Optional, Tuple

from app.features.preview.schemas.preview import (
    ExtractedData,
    PreviewRequest,
    PreviewResponse,
    SecurityConfig,
)
from app.features.preview.services.extractor_service import ContentExtractor
from app.features.preview.services.fetcher_service import ContentFetcher
from app.platform.config import settings
from app.platform.exceptions import (
    FAILURE_STATUS,
    FailureKind,
    PreviewError,
    ValidationFailure,
)
from app.platform.logger import get_logger
from app.platform.utils.url_validator import validate_html_size, validate_url

logger = get_logger("preview_service")

UNTITLED = "Untitled"
UNKNOWN_SOURCE = "unknown"


def error_to_status(exc: BaseException) -> Tuple[int, str, Optional[str], FailureKind]:
    """
    The only place a failure becomes an HTTP status.

    Returns (status code, message, field, kind). Anything that is not a
    PreviewError is reported as a generic 500 without internal details.
    """
    if isinstance(exc, PreviewError):
        status_code, _ = FAILURE_STATUS[exc.kind]
        return status_code, exc.message, exc.field, exc.kind
    status_code, message = FAILURE_STATUS[FailureKind.INTERNAL_ERROR]
    return status_code, message, None, FailureKind.INTERNAL_ERROR


class PreviewService:
    """Validate -> fetch -> extract, or extract only when raw HTML is supplied."""

    def __init__(
        self,
        config: SecurityConfig,
        fetcher: Optional[ContentFetcher] = None,
        extractor: Optional[ContentExtractor] = None,
        max_raw_html_size_kb: Optional[int] = None,
    ):
        self.config = config
        self.fetcher = fetcher or ContentFetcher(config)
        self.extractor = extractor or ContentExtractor()
        self.max_raw_html_size_kb = max_raw_html_size_kb or settings.MAX_RAW_HTML_SIZE_KB

    async def get_preview(self, request: PreviewRequest) -> PreviewResponse:
        if not request.has_input():
            raise ValidationFailure(FailureKind.MISSING_INPUT, field="body")

        if request.raw_html:
            # No outbound request happens here, so the SSRF guard is not needed
            validate_html_size(request.raw_html, self.max_raw_html_size_kb, field="raw_html")
            html = request.raw_html
            source_url = request.url or UNKNOWN_SOURCE
        else:
            source_url = validate_url(request.url)
            html = await self.fetcher.fetch(source_url)

        extracted = self.extractor.extract(html)
        missing = self.extractor.missing_fields(extracted)
        if missing:
            logger.info(f"Preview for {source_url} is missing: {', '.join(missing)}")

        return self.build_response(extracted, source_url)

    @staticmethod
    def build_response(extracted: ExtractedData, source_url: str) -> PreviewResponse:
        return PreviewResponse(
            title=extracted.title or UNTITLED,
            image=extracted.image,
            price=extracted.price,
            currency=extracted.currency,
            site_name=extracted.site_name,
            source_url=source_url,
        )
