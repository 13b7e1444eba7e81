"""Tests for the text and image generation capabilities."""

import base64
from types import SimpleNamespace

import httpx
import pytest

from backend.generation.base import invoke_with_backoff, is_transient_error
from backend.generation.image import ReplicateImageGenerator
from backend.generation.text import (
    AnthropicTextGenerator,
    build_seo_metadata,
    enforce_description_range,
    sanitize_slug,
    smart_truncate,
)
from backend.jobs.errors import GenerationJobError, TransientProviderError
from backend.jobs.types import JobType, validate_submission


class FakeLLM:
    def __init__(self, replies):
        self.replies = list(replies)
        self.prompts = []

    async def ainvoke(self, messages):
        self.prompts.append(messages[0].content)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(content=reply)


async def no_sleep(_):
    return None


# =============================================================================
# SEO helpers
# =============================================================================

class TestSeoHelpers:
    def test_sanitize_slug(self):
        assert sanitize_slug("  Pricing: The Complete Guide!  ") == "pricing-the-complete-guide"
        assert sanitize_slug("a__b  c--d") == "a-b-c-d"

    def test_smart_truncate_prefers_word_boundary(self):
        text = "one two three four five six seven eight nine ten"
        cut = smart_truncate(text, 20)
        assert len(cut) <= 20
        assert cut.endswith("...")
        assert not cut[:-3].endswith(" ")

    def test_smart_truncate_short_value_unchanged(self):
        assert smart_truncate("short", 60) == "short"

    def test_description_is_padded_into_range(self):
        result = enforce_description_range("Too short.", "Fallback sentence about pricing.")
        assert 120 <= len(result) <= 160

    def test_description_is_trimmed_into_range(self):
        result = enforce_description_range("word " * 60, "fallback")
        assert 120 <= len(result) <= 160
        assert result.endswith("...")

    def test_build_seo_metadata_from_prose_wrapped_json(self):
        _, payload = validate_submission(
            "text-seo-metadata",
            {"brandVoice": "calm", "topic": "Pricing Guide", "content": "# Pricing\nAll about plans."},
        )
        reply = (
            'Here you go:\n{"slug": "Pricing Guide 2026", "metaTitle": "Pricing Guide", '
            '"metaDescription": "Compare plans."}'
        )

        meta = build_seo_metadata(reply, payload)

        assert meta["slug"] == "pricing-guide-2026"
        assert meta["metaTitle"] == "Pricing Guide"
        assert 120 <= len(meta["metaDescription"]) <= 160

    def test_build_seo_metadata_rejects_invalid_json(self):
        _, payload = validate_submission(
            "text-seo-metadata",
            {"brandVoice": "calm", "topic": "Pricing", "content": "body"},
        )
        with pytest.raises(TransientProviderError):
            build_seo_metadata("not json at all", payload)


# =============================================================================
# Backoff
# =============================================================================

class TestInvokeWithBackoff:
    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        calls = []
        delays = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise RuntimeError("429 rate limit")
            return "ok"

        async def record_sleep(delay):
            delays.append(delay)

        result = await invoke_with_backoff("test", flaky, base_delay=1.0, sleep=record_sleep)

        assert result == "ok"
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_permanent_errors_are_not_retried(self):
        calls = []

        async def broken():
            calls.append(1)
            raise KeyError("bad request")

        with pytest.raises(KeyError):
            await invoke_with_backoff("test", broken, sleep=no_sleep)
        assert len(calls) == 1

    def test_transient_markers(self):
        assert is_transient_error(RuntimeError("Anthropic overloaded"))
        assert is_transient_error(TimeoutError())
        assert not is_transient_error(ValueError("invalid model"))


# =============================================================================
# Text capability
# =============================================================================

class TestAnthropicTextGenerator:
    @pytest.mark.asyncio
    async def test_blog_outline(self):
        llm = FakeLLM(["1. Intro\n2. Tiers"])
        generator = AnthropicTextGenerator(api_key="test", model_name="claude-test", llm=llm)
        _, payload = validate_submission(
            "text-blog-outline", {"brandVoice": "bold", "topic": "pricing"}
        )

        result = await generator.generate(JobType.TEXT_BLOG_OUTLINE, payload)

        assert result == {"text": "1. Intro\n2. Tiers"}
        assert "Brand Voice: bold" in llm.prompts[0]
        assert '"pricing"' in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_content_blocks_are_flattened(self):
        llm = FakeLLM([[{"type": "text", "text": "Caption one"}, {"type": "text", "text": "Caption two"}]])
        generator = AnthropicTextGenerator(api_key="test", llm=llm)
        _, payload = validate_submission(
            "text-social-caption", {"brandVoice": "playful", "topic": "launch"}
        )

        result = await generator.generate(JobType.TEXT_SOCIAL_CAPTION, payload)
        assert result["text"] == "Caption one\nCaption two"

    @pytest.mark.asyncio
    async def test_empty_reply_is_transient(self):
        generator = AnthropicTextGenerator(api_key="test", llm=FakeLLM(["   "]))
        _, payload = validate_submission(
            "text-blog-outline", {"brandVoice": "bold", "topic": "pricing"}
        )
        with pytest.raises(TransientProviderError):
            await generator.generate(JobType.TEXT_BLOG_OUTLINE, payload)

    @pytest.mark.asyncio
    async def test_provider_error_is_transient(self):
        generator = AnthropicTextGenerator(api_key="test", llm=FakeLLM([ValueError("invalid api key")]))
        _, payload = validate_submission(
            "text-blog-outline", {"brandVoice": "bold", "topic": "pricing"}
        )
        with pytest.raises(TransientProviderError, match="invalid api key"):
            await generator.generate(JobType.TEXT_BLOG_OUTLINE, payload)

    def test_missing_key(self):
        generator = AnthropicTextGenerator(api_key=None)
        with pytest.raises(GenerationJobError):
            generator.llm


# =============================================================================
# Image capability
# =============================================================================

class FakeReplicate:
    def __init__(self):
        self.runs = []

    async def async_run(self, model, input):
        self.runs.append((model, input))
        return f"https://replicate.test/output/{len(self.runs)}.png"


class TestReplicateImageGenerator:
    @pytest.mark.asyncio
    async def test_generates_requested_count(self):
        def handler(request):
            return httpx.Response(200, content=b"PNGDATA", headers={"content-type": "image/png"})

        replicate_client = FakeReplicate()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            generator = ReplicateImageGenerator(
                api_token="test",
                model_name="google/imagen-3-fast",
                client=replicate_client,
                http_client=http_client,
            )
            _, payload = validate_submission(
                "image-generate", {"prompt": "a lighthouse", "count": 2, "aspectRatio": "1:1"}
            )

            result = await generator.generate(JobType.IMAGE_GENERATE, payload)

        assert result["model"] == "google/imagen-3-fast"
        assert len(result["images"]) == 2
        assert base64.b64decode(result["images"][0]["data"]) == b"PNGDATA"
        assert result["images"][0]["mimeType"] == "image/png"
        assert replicate_client.runs[0][1]["aspect_ratio"] == "1:1"

    @pytest.mark.asyncio
    async def test_download_failure_is_transient(self):
        def handler(request):
            return httpx.Response(500)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            generator = ReplicateImageGenerator(
                api_token="test", client=FakeReplicate(), http_client=http_client
            )
            _, payload = validate_submission("image-generate", {"prompt": "x", "count": 1})

            with pytest.raises(TransientProviderError):
                await generator.generate(JobType.IMAGE_GENERATE, payload)

    @pytest.mark.asyncio
    async def test_rejects_text_jobs(self):
        generator = ReplicateImageGenerator(api_token="test", client=FakeReplicate())
        _, payload = validate_submission(
            "text-blog-outline", {"brandVoice": "bold", "topic": "pricing"}
        )
        with pytest.raises(GenerationJobError):
            await generator.generate(JobType.TEXT_BLOG_OUTLINE, payload)
