from typing import FrozenSet, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.platform.config import Settings


class PreviewRequest(BaseModel):
    """Body of POST /preview. Accepts both rawHtml and the older raw_html key."""

    url: Optional[str] = None
    raw_html: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("rawHtml", "raw_html"),
    )

    def has_input(self) -> bool:
        return bool(self.url) or bool(self.raw_html)


class SecurityConfig(BaseModel):
    """Outbound fetch policy. Built once at startup, never mutated."""

    model_config = ConfigDict(frozen=True)

    max_redirects: int = Field(default=3, ge=0)
    timeout_ms: int = Field(default=10000, gt=0)
    max_html_size_kb: int = Field(default=1024, gt=0)
    user_agent: str
    allowed_content_types: FrozenSet[str] = frozenset({"text/html"})

    @field_validator("allowed_content_types")
    @classmethod
    def check_content_types(cls, value: FrozenSet[str]) -> FrozenSet[str]:
        if not value:
            raise ValueError("at least one content type must be allowed")
        return value

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @property
    def max_html_size_bytes(self) -> int:
        return self.max_html_size_kb * 1024

    @classmethod
    def from_settings(cls, settings: Settings) -> "SecurityConfig":
        return cls(
            max_redirects=settings.FETCH_MAX_REDIRECTS,
            timeout_ms=settings.FETCH_TIMEOUT_MS,
            max_html_size_kb=settings.FETCH_MAX_HTML_SIZE_KB,
            user_agent=settings.FETCH_USER_AGENT,
            allowed_content_types=frozenset(settings.FETCH_ALLOWED_CONTENT_TYPES),
        )


class ExtractedData(BaseModel):
    """Metadata pulled out of one HTML document. Missing fields are empty strings."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    image: str = ""
    price: str = ""
    currency: str = ""
    site_name: str = Field(default="", serialization_alias="siteName")


class PreviewResponse(ExtractedData):
    source_url: str = Field(serialization_alias="sourceUrl")
