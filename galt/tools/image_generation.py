"""
Image Generation Tool
=====================

Generates an image with OpenAI's image API and hands it back as an
Attachment, which the transport uploads alongside the reply.

Constraints:
- Always 1024x1024 at low quality, whatever size the model asks for
- At most one image per turn (the executor ignores repeats)
- Each generated image is recorded in the metrics with its cost
"""

import base64
import time
from typing import Literal

import httpx
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from galt.tools import Attachment, Tool
from galt.utils.logger import Logger
from galt.utils.metrics import MetricsRecorder

logger = Logger("ImageTool")

ENFORCED_SIZE = "1024x1024"
ENFORCED_QUALITY = "low"
DOWNLOAD_TIMEOUT = httpx.Timeout(30.0, connect=5.0)


class ImageArgs(BaseModel):
    prompt: str = Field(min_length=1, description="The detailed description of the image to generate")
    style: Literal["natural", "vivid"] = Field(
        default="natural",
        description="natural for more natural looking images, vivid for more dramatic/artistic images"
    )
    size: Literal["1024x1024", "1024x1792", "1792x1024"] = Field(
        default="1024x1024",
        description="The size of the image to generate"
    )


def create_image_tool(
    api_key: str,
    model: str = "gpt-image-1",
    metrics: MetricsRecorder | None = None,
    image_cost_usd: float = 0.04,
    client: AsyncOpenAI | None = None
) -> Tool:
    """
    Build the generate_image tool.

    Args:
        api_key: OpenAI API key
        model: Image model to request
        metrics: Receives one record per generated image
        image_cost_usd: Cost recorded per image
        client: Pre-built client (tests inject a mock here)
    """
    openai_client = client or AsyncOpenAI(api_key=api_key)

    async def generate_image(args: ImageArgs) -> dict:
        logger.info(f"Generating image: {args.prompt[:50]}...")

        result = await openai_client.images.generate(
            model=model,
            prompt=args.prompt,
            size=ENFORCED_SIZE,
            quality=ENFORCED_QUALITY,
            n=1,
        )

        if not result.data:
            raise RuntimeError("No image data received from OpenAI")

        first = result.data[0]
        if first.b64_json:
            image = base64.b64decode(first.b64_json)
        elif first.url:
            image = await _download(first.url)
        else:
            raise RuntimeError("OpenAI returned no b64_json or url for image")

        logger.info(f"Image generated ({len(image)} bytes)")

        if metrics is not None:
            try:
                await metrics.record_image_generation(image_cost_usd)
            except Exception as e:
                logger.warning(f"Failed to record image metrics: {e}")

        return {
            "message": f'Generated image: "{args.prompt}"',
            "image": Attachment(
                filename=f"generated_image_{int(time.time() * 1000)}.png",
                data=image,
                content_type="image/png",
            ),
            "prompt": args.prompt,
            "style": args.style,
            "size": ENFORCED_SIZE,
        }

    return Tool(
        name="generate_image",
        description="Generate an image from a text prompt. Only one image can be generated per message.",
        args_model=ImageArgs,
        execute=generate_image,
        single_use_per_turn=True,
    )


async def _download(url: str) -> bytes:
    async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT, follow_redirects=True) as client:
        response = await client.get(url)
        if response.status_code != 200:
            raise RuntimeError(f"Failed to download image ({response.status_code})")
        return response.content
