"""
Job kinds for the generation pipeline.

Every generation type is a variant in JOB_KINDS: it carries its own payload
schema, result schema, queue family and provider. Submission, workers and the
status endpoint all dispatch through this table, so a type that is not listed
here is rejected instead of falling through to a default branch.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from backend.jobs.errors import ValidationError


class JobType(str, Enum):
    """Closed set of generation kinds."""
    TEXT_BLOG_OUTLINE = "text-blog-outline"
    TEXT_SOCIAL_CAPTION = "text-social-caption"
    TEXT_SEO_METADATA = "text-seo-metadata"
    IMAGE_GENERATE = "image-generate"


class QueueFamily(str, Enum):
    """Each family has its own queue, retry policy and worker pool."""
    TEXT = "text"
    IMAGE = "image"


# =============================================================================
# Payload Schemas
# =============================================================================

class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TextGenerationPayload(_WireModel):
    """Inputs for blog outlines and social captions."""
    brand_voice: str = Field(alias="brandVoice", min_length=1)
    topic: str = Field(min_length=1)
    content: Optional[str] = Field(default=None, min_length=1)


class SeoMetadataPayload(TextGenerationPayload):
    """SEO metadata is derived from existing content, so content is mandatory."""
    content: str = Field(min_length=1)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Content is required for SEO metadata generation")
        return v


class ImageGenerationPayload(_WireModel):
    prompt: str = Field(min_length=1)
    aspect_ratio: str = Field(default="16:9", alias="aspectRatio")
    stylize: int = Field(default=100, ge=0, le=1000)
    chaos: int = Field(default=0, ge=0, le=100)
    count: int = Field(default=4, ge=1, le=4)


# =============================================================================
# Result Schemas
# =============================================================================

class TextResult(_WireModel):
    text: str = Field(min_length=1)


class SeoMetadataResult(_WireModel):
    slug: str = Field(min_length=1)
    meta_title: str = Field(alias="metaTitle", min_length=1, max_length=60)
    meta_description: str = Field(alias="metaDescription", min_length=1, max_length=160)


class ImageAsset(_WireModel):
    mime_type: str = Field(default="image/png", alias="mimeType")
    data: str = Field(min_length=1, description="Base64-encoded image bytes")
    source_url: Optional[str] = Field(default=None, alias="sourceUrl")


class ImageResult(_WireModel):
    images: List[ImageAsset] = Field(min_length=1)
    model: Optional[str] = None


# =============================================================================
# Kind Table
# =============================================================================

def _text_snippet(result: Dict[str, Any]) -> str:
    return result.get("text", "")


def _seo_snippet(result: Dict[str, Any]) -> str:
    return f"{result.get('metaTitle', '')} | {result.get('metaDescription', '')}"


def _image_snippet(result: Dict[str, Any]) -> str:
    images = result.get("images") or []
    return f"{len(images)} image(s) from {result.get('model') or 'image model'}"


@dataclass(frozen=True)
class JobKind:
    """One variant of the job-type union."""
    type: JobType
    family: QueueFamily
    payload_model: Type[_WireModel]
    result_model: Type[_WireModel]
    provider: str
    snippet_fn: Callable[[Dict[str, Any]], str]

    def parse_payload(self, raw: Any) -> _WireModel:
        """Validate raw request data, raising ValidationError with field details."""
        if not isinstance(raw, dict):
            raise ValidationError("payload must be a JSON object")
        try:
            return self.payload_model.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid payload for {self.type.value}",
                details=_error_details(e),
            ) from e

    def parse_result(self, raw: Any) -> Dict[str, Any]:
        """Validate a provider result and return its wire form."""
        return self.result_model.model_validate(raw).to_wire()

    def snippet(self, result: Dict[str, Any], limit: int = 280) -> str:
        return self.snippet_fn(result)[:limit]


JOB_KINDS: Dict[JobType, JobKind] = {
    JobType.TEXT_BLOG_OUTLINE: JobKind(
        type=JobType.TEXT_BLOG_OUTLINE,
        family=QueueFamily.TEXT,
        payload_model=TextGenerationPayload,
        result_model=TextResult,
        provider="anthropic",
        snippet_fn=_text_snippet,
    ),
    JobType.TEXT_SOCIAL_CAPTION: JobKind(
        type=JobType.TEXT_SOCIAL_CAPTION,
        family=QueueFamily.TEXT,
        payload_model=TextGenerationPayload,
        result_model=TextResult,
        provider="anthropic",
        snippet_fn=_text_snippet,
    ),
    JobType.TEXT_SEO_METADATA: JobKind(
        type=JobType.TEXT_SEO_METADATA,
        family=QueueFamily.TEXT,
        payload_model=SeoMetadataPayload,
        result_model=SeoMetadataResult,
        provider="anthropic",
        snippet_fn=_seo_snippet,
    ),
    JobType.IMAGE_GENERATE: JobKind(
        type=JobType.IMAGE_GENERATE,
        family=QueueFamily.IMAGE,
        payload_model=ImageGenerationPayload,
        result_model=ImageResult,
        provider="replicate",
        snippet_fn=_image_snippet,
    ),
}


def get_job_kind(job_type: str | JobType) -> JobKind:
    """Look up a job kind, raising ValidationError for unknown types."""
    try:
        return JOB_KINDS[JobType(job_type)]
    except ValueError:
        allowed = ", ".join(t.value for t in JobType)
        raise ValidationError(
            f"Unknown job type '{job_type}'. Expected one of: {allowed}",
            details=[{"loc": ["type"], "msg": "unknown job type"}],
        ) from None


def validate_submission(job_type: Any, payload: Any) -> Tuple[JobKind, _WireModel]:
    """Resolve the kind and validate the payload in one step."""
    if not isinstance(job_type, str) or not job_type:
        raise ValidationError(
            "type is required",
            details=[{"loc": ["type"], "msg": "field required"}],
        )
    kind = get_job_kind(job_type)
    return kind, kind.parse_payload(payload)


def _error_details(error: PydanticValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": ["payload", *err["loc"]], "msg": err["msg"]}
        for err in error.errors()
    ]
