"""Replicate tools exposed over MCP.

Each tool is a thin wrapper around the Replicate client that turns
upstream outcomes into markdown text for the calling agent. Failures the
agent can act on (missing configuration, bad input, upstream errors, rate
limits, cancellation) are returned as ``isError`` results, never raised.
"""

import json
import logging

from mcp.types import CallToolResult, ToolAnnotations

from mcp_server.registry import ToolContext, ToolDefinition
from mcp_server.schemas import (
    GenerateImageInput,
    SearchModelsInput,
    error_result,
    text_result,
)
from replicate_mcp.replicate import (
    ModelSearchResult,
    PredictionResult,
    ReplicateAPIError,
)
from replicate_mcp.types import PredictionStatus

logger = logging.getLogger(__name__)

# Parameters listed per model in search results
MAX_LISTED_PARAMS = 10

# Enum values previewed per parameter
MAX_ENUM_PREVIEW = 5

SERVER_INSTRUCTIONS = """Lightweight Replicate MCP for AI image generation and editing using official models.

WHEN USER ASKS TO GENERATE AN IMAGE:
If no model is specified, ASK the user which model they prefer before proceeding.
Suggest options like:
- flux-schnell (fast, ~2s)
- flux-dev (higher quality, ~10s)
- seedream-4 (versatile)

Also ask about preferences: quality vs speed, aspect ratio, any style preferences.

WORKFLOW:
1. If model not specified -> ask user for model preference
2. If model parameters unknown -> call search_models to get input schema
3. Call generate_image with correct parameters

RULES:
- Use the user's prompt exactly as provided - do not rewrite prompts
- Choose aspect_ratio based on scene content (landscape for wide scenes, portrait for tall subjects)
- Image URLs expire after 1 hour - display them immediately using markdown: ![description](url)"""

SEARCH_MODELS_DESCRIPTION = """Search for ML models on Replicate and get their input schemas.

Returns up to 5 models with full input parameters, so you can immediately use generate_image.

WHEN TO USE:
- User mentions a model name but you need the exact "{owner}/{name}" identifier and its parameters
- User describes a task and you need to find suitable models
- User asks "what models can do X?"

SEARCH TIPS:
- Search by model name: "flux", "sdxl", "seedream"
- Search by task: "image generation", "upscale", "remove background"
- Search by style: "anime", "realistic", "artistic"

RESULTS INCLUDE FOR EACH MODEL:
- owner/name: Full model identifier for use with generate_image
- description: What the model does
- run_count: Popularity indicator (higher = more tested/reliable)
- input_schema: Required and optional parameters with types, defaults, and valid values

POPULAR IMAGE MODELS:
- "flux" -> black-forest-labs/flux-schnell, flux-dev, flux-kontext-pro
- "sdxl" -> stability-ai/sdxl
- "seedream" -> bytedance/seedream-4

After search, you have all the information needed to call generate_image."""

GENERATE_IMAGE_DESCRIPTION = """Run an image generation model on Replicate and wait for the result.

BEFORE CALLING - CHECK THESE:
1. Model specified? If user didn't specify a model, ASK which they prefer:
   - flux-schnell (fast ~2s), flux-dev (quality ~10s), seedream-4 (versatile)
2. Parameters known? If unsure, call search_models first to get input schema

WHEN TO USE:
- User wants to generate an image from text
- User wants to edit/transform an existing image
- You know the model name and its required parameters

PROMPT HANDLING:
- Use the user's prompt EXACTLY as provided - do not rewrite or "improve" it
- Only add detail if user explicitly asks you to write/craft/improve the prompt
- Some models have "enhance_prompt" option - prefer setting that to true instead of rewriting

ASPECT RATIO:
- "1:1" portraits, icons, centered subjects
- "16:9" landscapes, panoramas, cinematic shots
- "9:16" mobile wallpapers, full-body portraits, stories format
- "4:3" / "3:2" general photography
- "21:9" ultra-wide cinematic
If the model takes width/height instead: 1024x1024 standard, 1280x720 or 1920x1080 landscape, 720x1280 or 1080x1920 portrait.

IMAGE INPUTS (for img2img / editing):
- Images must be publicly accessible HTTPS URLs
- Multi-image models (e.g., seedream-4 "image_input"): pass an array, first image is the primary reference
- Single-image models (e.g., flux-kontext "image"): pass a string

COMMON MODELS (use search_models if you need exact parameters):
- black-forest-labs/flux-schnell: Fast (~2s). Input: prompt, aspect_ratio
- black-forest-labs/flux-dev: Higher quality (~10s). Input: prompt, aspect_ratio, guidance_scale
- bytedance/seedream-4: Versatile. Input: prompt, size, aspect_ratio, enhance_prompt
- black-forest-labs/flux-kontext-pro: Edit with text instructions. Input: prompt, image

OUTPUT HANDLING:
- Returns image URLs that expire in 1 hour
- IMMEDIATELY display images to user using markdown: ![description](url)
- For multiple images, display each one"""

RATE_LIMIT_MARKERS = ("rate limit", "too many requests")


def is_rate_limit(message: str) -> bool:
    """Whether an upstream error message describes rate limiting."""
    lowered = message.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS) or "429" in message


def _config_error() -> CallToolResult:
    return error_result(
        "Server Configuration Error",
        "REPLICATE_API_TOKEN is not configured on the server.\n\n"
        "Contact the server administrator.",
    )


def _rate_limit_error(model: str | None = None) -> CallToolResult:
    prefix = f"Model: {model}\n\n" if model else ""
    return error_result(
        "Rate Limit Exceeded",
        f"{prefix}The Replicate API rate limit has been reached. "
        "Please wait a moment before trying again.",
    )


def format_parameter(name: str, schema: dict[str, object], required: bool) -> str:
    """Render one input parameter as a markdown list item."""
    enum = schema.get("enum")
    if isinstance(enum, list):
        preview = ", ".join(f'"{value}"' for value in enum[:MAX_ENUM_PREVIEW])
        more = "..." if len(enum) > MAX_ENUM_PREVIEW else ""
        type_info = f"enum: [{preview}{more}]"
    else:
        type_info = str(schema.get("type") or "any")
    default = ""
    if "default" in schema:
        default = f" = {json.dumps(schema['default'])}"
    marker = " [REQUIRED]" if required else ""
    return f"  - {name}{marker}: {type_info}{default}"


def format_model(model: ModelSearchResult) -> str:
    """Render a search result with its key parameters."""
    text = (
        f"### {model.model_id}\n"
        f"{model.description or 'No description'}\n"
        f"Runs: {model.run_count:,}"
    )
    schema = model.input_schema
    if schema is None or not schema.properties:
        return text

    entries = list(schema.properties.items())
    params = "\n".join(
        format_parameter(name, prop, name in schema.required)
        for name, prop in entries[:MAX_LISTED_PARAMS]
    )
    text += f"\n\nInput parameters:\n{params}"
    if len(entries) > MAX_LISTED_PARAMS:
        text += f"\n  ... and {len(entries) - MAX_LISTED_PARAMS} more parameters"
    return text


async def search_models(args: SearchModelsInput, ctx: ToolContext) -> CallToolResult:
    """Search Replicate models and describe their inputs."""
    if not ctx.replicate_token:
        return _config_error()

    query = args.query
    logger.info("Searching models for %r", query)
    try:
        async with ctx.replicate_client() as client:
            models = await client.search_models(query, limit=ctx.settings.search_limit)
    except ReplicateAPIError as e:
        logger.error("Search failed: %s", e)
        if e.is_rate_limit or is_rate_limit(str(e)):
            return _rate_limit_error()
        return error_result(
            "Search Failed", f"Error: {e}\n\nPlease check the query and try again."
        )

    if not models:
        return text_result(
            f'## No Models Found\n\nNo models matched the query "{query}".\n\n'
            "Try:\n- Using different keywords\n"
            '- Searching for model names like "flux", "sdxl", "stable-diffusion"'
        )

    listing = "\n\n---\n\n".join(format_model(model) for model in models)
    return text_result(
        f'## Found {len(models)} Models for "{query}"\n\n{listing}\n\n---\n\n'
        "You can now call generate_image with any of these models "
        "using the parameters shown above."
    )


def format_images(urls: list[str]) -> str:
    """Render output URLs as markdown images."""
    if len(urls) == 1:
        return f"![Generated image]({urls[0]})"
    return "\n\n".join(
        f"Image {i}: ![Generated image {i}]({url})" for i, url in enumerate(urls, 1)
    )


def _prediction_failed(model: str, prediction: PredictionResult) -> CallToolResult:
    message = prediction.error or "Unknown error"
    if is_rate_limit(message):
        return _rate_limit_error(model)
    return error_result(
        "Generation Failed",
        f"Model: {model}\nError: {message}\n\n"
        "Suggestions:\n"
        "- Check that all required parameters are provided\n"
        "- Verify image URLs are publicly accessible\n"
        "- Try a simpler prompt\n"
        "- Use search_models to verify input schema",
    )


async def generate_image(args: GenerateImageInput, ctx: ToolContext) -> CallToolResult:
    """Run a model and wait for its images."""
    if not ctx.replicate_token:
        return _config_error()

    model, model_input = args.model, args.input
    if not model_input.get("prompt") and not model_input.get("image"):
        return error_result(
            "Missing Required Input",
            "Most image models require at least a prompt or image in the input.\n\n"
            "Example:\n"
            "{\n"
            f'  "model": "{model}",\n'
            '  "input": {\n'
            '    "prompt": "a beautiful sunset over mountains"\n'
            "  }\n"
            "}\n\n"
            f'Use search_models to see the exact requirements for "{model}".',
        )

    logger.info(
        "Starting generation on %s (prompt=%s, image=%s)",
        model,
        "prompt" in model_input,
        "image" in model_input or "image_input" in model_input,
    )
    polls = 0

    async def on_poll(prediction: PredictionResult) -> None:
        nonlocal polls
        polls += 1
        ctx.report_progress(
            polls, message=f"Prediction {prediction.id} is {prediction.status.value}"
        )

    try:
        async with ctx.replicate_client() as client:
            prediction = await client.run_prediction(
                model,
                model_input,
                cancellation_token=ctx.cancellation_token,
                on_poll=on_poll,
            )
    except ReplicateAPIError as e:
        logger.error("Generation on %s failed: %s", model, e)
        if e.is_rate_limit or is_rate_limit(str(e)):
            return _rate_limit_error(model)
        return error_result(
            "Generation Failed",
            f"Model: {model}\nError: {e}\n\n"
            "Common issues:\n"
            "- Model name is incorrect (use search_models to find it)\n"
            "- Missing required parameters (use search_models to check schema)\n"
            "- Image URLs not publicly accessible\n"
            "- Rate limit exceeded",
        )

    if prediction.status == PredictionStatus.FAILED:
        logger.warning("Prediction %s failed: %s", prediction.id, prediction.error)
        return _prediction_failed(model, prediction)

    if prediction.status == PredictionStatus.CANCELED:
        logger.info("Prediction %s canceled", prediction.id)
        return error_result(
            "Generation Cancelled", "The prediction was cancelled before completion."
        )

    urls = prediction.output or []
    time_info = f" in {prediction.predict_time:.1f}s" if prediction.predict_time else ""
    logger.info(
        "Generation complete on %s: %d outputs, predict_time=%s",
        model,
        len(urls),
        prediction.predict_time,
    )
    return text_result(
        f"## Image Generated{time_info}\n\n"
        f"Model: {model}\n\n"
        "Display the image to the user using markdown syntax:\n\n"
        f"{format_images(urls)}\n\n"
        "Note: URLs expire in 1 hour."
    )


TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="search_models",
        title="Search Models",
        description=SEARCH_MODELS_DESCRIPTION,
        input_model=SearchModelsInput,
        handler=search_models,
        annotations=ToolAnnotations(
            title="Search Models",
            readOnlyHint=True,
            idempotentHint=True,
            openWorldHint=True,
        ),
    ),
    ToolDefinition(
        name="generate_image",
        title="Generate Image",
        description=GENERATE_IMAGE_DESCRIPTION,
        input_model=GenerateImageInput,
        handler=generate_image,
        annotations=ToolAnnotations(
            title="Generate Image",
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
    ),
)


__all__ = [
    "GENERATE_IMAGE_DESCRIPTION",
    "SEARCH_MODELS_DESCRIPTION",
    "SERVER_INSTRUCTIONS",
    "TOOLS",
    "format_images",
    "format_model",
    "format_parameter",
    "generate_image",
    "is_rate_limit",
    "search_models",
]
