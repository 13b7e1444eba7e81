"""
Text generation with Claude (via LangChain).

Handles blog outlines, social captions and SEO metadata. Each job type maps
to a prompt builder and a response parser in TEXT_TASKS.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage

from backend.config import config
from backend.generation.base import GenerationCapability, invoke_with_backoff
from backend.jobs.errors import GenerationJobError, TransientProviderError
from backend.jobs.types import JobType, SeoMetadataPayload, TextGenerationPayload


META_TITLE_MAX = 60
META_DESCRIPTION_MAX = 160
META_DESCRIPTION_MIN = 120


# =============================================================================
# SEO Normalization
# =============================================================================

def sanitize_slug(value: str) -> str:
    """Lowercase kebab-case with only word characters and hyphens."""
    value = value.lower().strip()
    value = re.sub(r"[^\w\s-]", "", value, flags=re.ASCII)
    value = re.sub(r"[\s_-]+", "-", value)
    return value.strip("-")


def extract_json(text: str) -> str:
    """Pull the outermost {...} block out of a model reply."""
    match = re.search(r"\{[\s\S]*\}", text)
    return match.group(0) if match else text


def normalize_whitespace(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def strip_markup(value: Optional[str]) -> str:
    if not value:
        return ""
    value = re.sub(r"<[^>]+>", " ", value)
    value = re.sub(r"[#*`>\[\]\\_-]", " ", value)
    return re.sub(r"\s+", " ", value).strip()


def smart_truncate(value: str, limit: int) -> str:
    """Cut to limit including a trailing ellipsis, preferring a word boundary."""
    if not value:
        return ""
    if len(value) <= limit:
        return value
    ellipsis = "..."
    allowable = max(limit - len(ellipsis), 1)
    chunk = value[:allowable]
    last_space = chunk.rfind(" ")
    safe_cut = chunk[:last_space] if last_space > allowable - 15 else chunk
    return f"{safe_cut.strip()}{ellipsis}"


def enforce_description_range(description: str, fallback_source: str) -> str:
    """Pad or trim a meta description into the 120-160 character window."""
    normalized = normalize_whitespace(description)
    if not normalized:
        normalized = fallback_source

    if len(normalized) < META_DESCRIPTION_MIN:
        supplemental = fallback_source[:META_DESCRIPTION_MAX]
        normalized = f"{normalized} {supplemental}".strip()

    if len(normalized) > META_DESCRIPTION_MAX:
        normalized = smart_truncate(normalized, META_DESCRIPTION_MAX)

    if len(normalized) < META_DESCRIPTION_MIN:
        normalized = normalized.ljust(META_DESCRIPTION_MIN, ".")

    return normalized


def build_seo_metadata(text: str, payload: SeoMetadataPayload) -> Dict[str, Any]:
    try:
        data = json.loads(extract_json(text))
    except json.JSONDecodeError as e:
        raise TransientProviderError(f"Model returned invalid SEO JSON: {e}", provider="anthropic") from e
    if not isinstance(data, dict):
        raise TransientProviderError("Model returned invalid SEO JSON", provider="anthropic")

    slug = sanitize_slug(data.get("slug") or payload.topic) or sanitize_slug(payload.topic)
    fallback_source = normalize_whitespace(strip_markup(payload.content) or payload.topic)

    meta_title = normalize_whitespace(data.get("metaTitle") or payload.topic)
    if not meta_title:
        raise TransientProviderError("Missing meta title", provider="anthropic")
    if len(meta_title) > META_TITLE_MAX:
        meta_title = smart_truncate(meta_title, META_TITLE_MAX)

    meta_description = enforce_description_range(data.get("metaDescription") or "", fallback_source)

    return {"slug": slug, "metaTitle": meta_title, "metaDescription": meta_description}


# =============================================================================
# Prompts
# =============================================================================

def _outline_prompt(payload: TextGenerationPayload) -> str:
    return f"""You are an expert content strategist.
Brand Voice: {payload.brand_voice}

Task: Generate a detailed blog post outline about "{payload.topic}".
{_reference_block(payload.content)}"""


def _caption_prompt(payload: TextGenerationPayload) -> str:
    return f"""You are an expert content strategist.
Brand Voice: {payload.brand_voice}

Task: Generate a set of 5 social media captions about "{payload.topic}".
{_reference_block(payload.content)}"""


def _seo_prompt(payload: SeoMetadataPayload) -> str:
    return f"""You are an elite SEO strategist.
Brand Voice: {payload.brand_voice}

Analyze the following content and produce JSON with optimized slug, metaTitle (<60 chars) and metaDescription (120-160 chars, action oriented).
CONTENT:
\"\"\"
{payload.content}
\"\"\"

Respond with JSON only in this format:
{{
  "slug": "kebab-case-slug",
  "metaTitle": "Compelling title",
  "metaDescription": "Compelling description"
}}"""


def _reference_block(content: Optional[str]) -> str:
    if not content:
        return ""
    return f"\nReference material:\n\"\"\"\n{content}\n\"\"\"\n"


@dataclass(frozen=True)
class TextTask:
    build_prompt: Callable[[Any], str]
    parse: Callable[[str, Any], Dict[str, Any]]


def _plain_text(text: str, payload: TextGenerationPayload) -> Dict[str, Any]:
    return {"text": text}


TEXT_TASKS: Dict[JobType, TextTask] = {
    JobType.TEXT_BLOG_OUTLINE: TextTask(_outline_prompt, _plain_text),
    JobType.TEXT_SOCIAL_CAPTION: TextTask(_caption_prompt, _plain_text),
    JobType.TEXT_SEO_METADATA: TextTask(_seo_prompt, build_seo_metadata),
}


# =============================================================================
# Capability
# =============================================================================

def _response_text(content: Any) -> str:
    """Flatten a LangChain message content (str or content blocks) to text."""
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "\n".join(parts).strip()
    return ""


class AnthropicTextGenerator(GenerationCapability):
    """Text generation backed by ChatAnthropic."""

    provider = "anthropic"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = config.TEXT_MODEL_NAME,
        temperature: float = config.TEXT_TEMPERATURE,
        max_tokens: int = config.TEXT_MAX_TOKENS,
        timeout: float = config.TEXT_TIMEOUT_SECONDS,
        llm: Optional[Any] = None,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            if not self.api_key:
                raise GenerationJobError("ANTHROPIC_API_KEY is not configured")
            self._llm = ChatAnthropic(
                model=self.model_name,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                anthropic_api_key=self.api_key,
                timeout=self.timeout,
            )
        return self._llm

    async def generate(self, job_type: JobType, payload: TextGenerationPayload) -> Dict[str, Any]:
        task = TEXT_TASKS.get(JobType(job_type))
        if task is None:
            raise GenerationJobError(f"{self.model_name} cannot handle job type {job_type}")

        prompt = task.build_prompt(payload)
        llm = self.llm

        try:
            response = await invoke_with_backoff(
                "text-generation",
                lambda: llm.ainvoke([HumanMessage(content=prompt)]),
            )
        except Exception as e:
            raise TransientProviderError(f"Text generation failed: {e}", provider=self.provider) from e

        text = _response_text(response.content)
        if not text:
            raise TransientProviderError("Model returned an empty response", provider=self.provider)

        return task.parse(text, payload)
