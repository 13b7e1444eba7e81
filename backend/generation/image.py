"""
Image generation with Replicate.

Runs one prediction per requested image in parallel, downloads each output
and returns the bytes base64-encoded. Uploading to object storage is the
caller's concern.
"""

import asyncio
import base64
from typing import Any, Dict, Optional

import httpx
import replicate
from replicate.exceptions import ReplicateError

from backend.config import config
from backend.generation.base import GenerationCapability, invoke_with_backoff
from backend.jobs.errors import GenerationJobError, TransientProviderError
from backend.jobs.types import ImageGenerationPayload, JobType
from backend.utils.logging import worker_logger as logger


class ReplicateImageGenerator(GenerationCapability):
    """Image generation backed by a Replicate model (Imagen 3 Fast by default)."""

    provider = "replicate"

    def __init__(
        self,
        api_token: Optional[str] = None,
        model_name: str = config.IMAGE_MODEL,
        client: Optional[Any] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_token = api_token
        self.model_name = model_name
        self._client = client
        self._http_client = http_client

    @property
    def client(self):
        if self._client is None:
            if not self.api_token:
                raise GenerationJobError("REPLICATE_API_TOKEN is not configured")
            self._client = replicate.Client(api_token=self.api_token)
        return self._client

    def _input_params(self, payload: ImageGenerationPayload) -> Dict[str, Any]:
        # stylize/chaos are accepted on the wire but Imagen has no equivalent
        return {
            "prompt": payload.prompt,
            "aspect_ratio": payload.aspect_ratio,
            "output_format": "png",
            "safety_filter_level": "block_only_high",
        }

    async def _run_prediction(self, input_params: Dict[str, Any]) -> str:
        client = self.client
        output = await invoke_with_backoff(
            "image-generation",
            lambda: client.async_run(self.model_name, input=input_params),
        )

        # Imagen-3-Fast returns a single FileOutput object, other models a list
        if isinstance(output, list):
            replicate_output = output[0] if output else None
        else:
            replicate_output = output

        if not replicate_output:
            raise TransientProviderError("No image URL returned from Replicate", provider=self.provider)
        return str(replicate_output)

    async def _download(self, http_client: httpx.AsyncClient, url: str) -> Dict[str, Any]:
        response = await http_client.get(url)
        response.raise_for_status()
        mime_type = response.headers.get("content-type", "image/png").split(";")[0]
        return {
            "mimeType": mime_type,
            "data": base64.b64encode(response.content).decode("ascii"),
            "sourceUrl": url,
        }

    async def generate(self, job_type: JobType, payload: ImageGenerationPayload) -> Dict[str, Any]:
        if JobType(job_type) != JobType.IMAGE_GENERATE:
            raise GenerationJobError(f"{self.model_name} cannot handle job type {job_type}")

        input_params = self._input_params(payload)
        logger.info(
            "Generating images",
            model=self.model_name,
            count=payload.count,
            prompt=payload.prompt[:100],
        )

        try:
            urls = await asyncio.gather(
                *(self._run_prediction(input_params) for _ in range(payload.count))
            )

            if self._http_client is not None:
                images = [await self._download(self._http_client, url) for url in urls]
            else:
                async with httpx.AsyncClient(timeout=60.0) as http_client:
                    images = [await self._download(http_client, url) for url in urls]
        except TransientProviderError:
            raise
        except (ReplicateError, httpx.HTTPError) as e:
            raise TransientProviderError(f"Image generation failed: {e}", provider=self.provider) from e

        return {"images": images, "model": self.model_name}
