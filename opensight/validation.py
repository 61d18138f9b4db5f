"""
Input Validation

Pydantic models for everything that enters the system from outside, plus
``validate_*`` helpers that turn pydantic's errors into
``opensight.errors.ValidationError`` so callers only ever see one error type.
"""

from typing import Any, Dict, List, Optional, Type, TypeVar
from urllib.parse import urlparse

from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import Industry
from .utils.domains import is_valid_hostname, normalize_domain

MAX_TAGS = 10
MAX_TAG_LENGTH = 50

M = TypeVar("M", bound=BaseModel)


def _check_http_url(value: str) -> str:
    value = value.strip()
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL")
    if not is_valid_hostname(normalize_domain(value)):
        raise ValueError("must contain a valid host name")
    return value


def _check_host(value: str) -> str:
    host = normalize_domain(value)
    if not is_valid_hostname(host):
        raise ValueError("must be a valid domain name")
    return host


def _clean_tags(value: List[str]) -> List[str]:
    tags = []
    for tag in value:
        tag = tag.strip()
        if not tag or len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"tags must be 1-{MAX_TAG_LENGTH} characters")
        if tag not in tags:
            tags.append(tag)
    return tags


class AnalysisSubmission(BaseModel):
    """Domain analysis request from the intake surface."""
    domain: str = Field(min_length=1, max_length=255)
    email: EmailStr

    @field_validator("domain")
    @classmethod
    def domain_must_be_host(cls, value: str) -> str:
        return _check_host(value)


class ContentScoreSubmission(BaseModel):
    url: str = Field(min_length=1, max_length=2048)

    @field_validator("url")
    @classmethod
    def url_must_be_http(cls, value: str) -> str:
        return _check_http_url(value)


class PromptInput(BaseModel):
    text: str = Field(min_length=1, max_length=1000)
    tags: List[str] = Field(default_factory=list, max_length=MAX_TAGS)

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("tags")
    @classmethod
    def tags_bounded(cls, value: List[str]) -> List[str]:
        return _clean_tags(value)


class PromptUpdate(BaseModel):
    text: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    tags: Optional[List[str]] = Field(default=None, max_length=MAX_TAGS)
    is_active: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def tags_bounded(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        return _clean_tags(value)


class CompetitorInput(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1, max_length=2048)
    industry: Industry = Industry.OTHER

    @field_validator("url")
    @classmethod
    def url_must_be_http(cls, value: str) -> str:
        return _check_http_url(value)


class BrandInput(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    domain: str = Field(min_length=1, max_length=255)
    industry: Industry = Industry.OTHER
    aliases: List[str] = Field(default_factory=list, max_length=MAX_TAGS)

    @field_validator("domain")
    @classmethod
    def domain_must_be_host(cls, value: str) -> str:
        return _check_host(value)


# =============================================================================
# HELPERS
# =============================================================================

def _field_errors(error: PydanticValidationError) -> List[Dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in error.errors()
    ]


def validate(model: Type[M], payload: Any) -> M:
    """
    Validate a payload against one of the input models.

    Raises:
        ValidationError: The payload is malformed; ``errors`` lists the fields
    """
    if isinstance(payload, model):
        return payload
    if not isinstance(payload, dict):
        raise ValidationError(
            f"Invalid {model.__name__}: expected an object",
            [{"field": "", "message": "expected an object", "type": "type_error"}],
        )
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        errors = _field_errors(e)
        fields = ", ".join(err["field"] for err in errors)
        raise ValidationError(f"Invalid {model.__name__}: {fields}", errors) from None


def validate_analysis_submission(payload: Any) -> AnalysisSubmission:
    return validate(AnalysisSubmission, payload)


def validate_content_submission(payload: Any) -> ContentScoreSubmission:
    return validate(ContentScoreSubmission, payload)
