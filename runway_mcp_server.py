"""
runway_mcp_server.py

This file implements a RunwayML MCP server that can be reached over stdio or over
HTTP, using either the SSE (Server-Sent Events) transport or streamable HTTP at `/mcp`.
It uses the FastMCP framework to expose tools that clients can call. All transports
share the same FastMCP instance, so the tool set is identical.

The server uses:
- `FastMCP` from `mcp.server.fastmcp` to define and validate the tools
- `Starlette` for the web server
- `uvicorn` as the ASGI server
- `SseServerTransport` to handle long-lived SSE connections
- `FastMCP.streamable_http_app()` for the streamable HTTP endpoint
"""


#   [ MCP Client ]            [ MCP Client / Agent in Browser ]
#         |                                  |
#      (stdio)                     (SSE or streamable HTTP)
#         |                                  |
#         |                        [ Uvicorn + Starlette ]
#         |                                  |
#         +-----------> [ FastMCP Server ] <-+
#                               |
#     @mcp.tool() like `runway_text_to_video`, `runway_poll_task`, `divide`, etc.
#                               |
#                        [ RunwayML API ]

import argparse
import asyncio
import contextlib
import logging
import os
import sys
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple

from dotenv import load_dotenv
from mcp.server import Server  # Underlying server abstraction used by FastMCP
from mcp.server.fastmcp import FastMCP
from mcp.server.sse import SseServerTransport  # The SSE transport layer
from pydantic import BaseModel, Field
from starlette.applications import Starlette  # Web framework to define routes
from starlette.requests import Request  # HTTP request objects
from starlette.routing import Mount, Route  # Routing for HTTP and message endpoints

import uvicorn  # ASGI server to run the Starlette app

from utils.formatUtils import (
    formatNumber,
    formatOrganization,
    formatPollOutcome,
    formatTaskCreated,
    formatTaskStatus,
)
from utils.runwayUtils import (
    DEFAULT_MAX_WAIT_SECONDS,
    MAX_SEED,
    MAX_VIDEO_DURATION,
    MIN_VIDEO_DURATION,
    MissingApiKeyError,
    RunwayClient,
    RunwayConfig,
    RunwayError,
    buildImageToVideoRequest,
    buildTextToImageRequest,
    buildTextToVideoRequest,
    maskApiKey,
    pollTask,
    resolveApiKey,
)

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,  # stdout carries the stdio transport
)
logger = logging.getLogger("runway-mcp-server")

config = RunwayConfig.fromEnv()
logger.info("RUNWAYML_API_KEY found: %s", "YES " + maskApiKey(config.apiKey) if config.apiKey else "NO")

mcp = FastMCP("Runway")

VideoModel = Literal["gen4_turbo", "gen3a_turbo"]
ImageModel = Literal["gen4_image"]
VideoRatio = Literal["1280:720", "1920:1080", "720:1280", "1080:1920"]
ImageRatio = Literal["720:720", "1920:1080", "1080:1920", "1280:720", "720:1280", "1024:1024"]

ApiKey = Annotated[
    Optional[str],
    Field(description="RunwayML API key. Falls back to the RUNWAYML_API_KEY configured on the server."),
]
TaskId = Annotated[str, Field(min_length=1, description="Task ID returned from a generation request")]
Duration = Annotated[
    int,
    Field(ge=MIN_VIDEO_DURATION, le=MAX_VIDEO_DURATION, description="Video duration in seconds (5-10)"),
]
Seed = Annotated[Optional[int], Field(ge=0, le=MAX_SEED, description="Seed for reproducible results")]
AutoPoll = Annotated[bool, Field(description="Automatically poll until completion (default: true)")]
MaxWait = Annotated[
    float,
    Field(ge=0, description="Maximum time to wait for completion in seconds (default: 300)"),
]
Number = Annotated[float, Field(description="A number")]


class ReferenceImage(BaseModel):
    uri: str = Field(min_length=1, description="URL or base64 data URI of reference image")
    tag: Optional[str] = Field(
        default=None, description="Tag to reference this image in the prompt using @tag syntax"
    )


def getClient(apiKey: Optional[str] = None) -> RunwayClient:
    """
    Build a client for one tool call.

    Raises:
        MissingApiKeyError: If no API key is provided or configured
    """
    key = resolveApiKey(apiKey, config.apiKey)
    source = "provided" if apiKey and apiKey.strip() else "configured"
    logger.info("Using %s API key %s", source, maskApiKey(key))
    return RunwayClient(config, key)


async def runGeneration(
    label: str,
    noun: str,
    request: Tuple[str, Dict[str, Any]],
    model: str,
    prompt: str,
    autoPoll: bool,
    maxWaitSeconds: float,
    apiKey: Optional[str],
) -> str:
    """Create a generation task and optionally wait for it to finish."""
    try:
        client = getClient(apiKey)
    except MissingApiKeyError as e:
        return f"Error: {e}"

    path, body = request
    try:
        task = await asyncio.to_thread(client.createTask, path, body)
    except RunwayError as e:
        return f"Error creating {label.lower()} task: {e}"

    logger.info("%s task %s created", label, task.id)
    if not autoPoll:
        return formatTaskCreated(label, task, model, prompt)

    outcome = await pollTask(client, task.id, maxWaitSeconds)
    return formatPollOutcome(outcome, label, model, prompt, noun)


# ============================================================================
# RUNWAYML TOOLS
# ============================================================================

@mcp.tool()
async def runway_text_to_video(
    prompt: Annotated[str, Field(min_length=1, description="Text prompt for video generation")],
    model: Annotated[VideoModel, Field(description="Model to use for generation")] = "gen4_turbo",
    duration: Duration = 5,
    ratio: Annotated[VideoRatio, Field(description="Video aspect ratio")] = "1280:720",
    seed: Seed = None,
    auto_poll: AutoPoll = True,
    max_wait_seconds: MaxWait = DEFAULT_MAX_WAIT_SECONDS,
    api_key: ApiKey = None,
) -> str:
    """
    Generate a video from a text prompt using RunwayML.

    When auto_poll is true the tool waits for the task to finish (up to max_wait_seconds)
    and returns the video URLs. Otherwise it returns the task ID right away; use
    runway_get_task or runway_poll_task to follow up.

    Args:
        prompt (str): Text description of the video to generate
        model (str): "gen4_turbo" (default) or "gen3a_turbo"
        duration (int): Video length in seconds (5-10, default: 5)
        ratio (str): "1280:720", "1920:1080", "720:1280" or "1080:1920" (default: "1280:720")
        seed (int, optional): Seed for reproducible results
        auto_poll (bool): Wait for completion (default: true)
        max_wait_seconds (float): Polling budget in seconds (default: 300)
        api_key (str, optional): RunwayML API key, overrides the server configuration
    """
    request = buildTextToVideoRequest(prompt, model, duration, ratio, seed)
    return await runGeneration(
        "Text-to-video", "video", request, model, prompt, auto_poll, max_wait_seconds, api_key
    )


@mcp.tool()
async def runway_image_to_video(
    prompt_image: Annotated[str, Field(min_length=1, description="URL or base64 data URI of the input image")],
    prompt_text: Annotated[str, Field(min_length=1, description="Text prompt for video generation")],
    model: Annotated[VideoModel, Field(description="Model to use for generation")] = "gen4_turbo",
    duration: Duration = 5,
    ratio: Annotated[VideoRatio, Field(description="Video aspect ratio")] = "1280:720",
    seed: Seed = None,
    auto_poll: AutoPoll = True,
    max_wait_seconds: MaxWait = DEFAULT_MAX_WAIT_SECONDS,
    api_key: ApiKey = None,
) -> str:
    """
    Animate an image into a video using RunwayML.

    Args:
        prompt_image (str): Public URL or data URI (data:image/png;base64,...) of the first frame
        prompt_text (str): Description of the motion to generate
        model (str): "gen4_turbo" (default) or "gen3a_turbo"
        duration (int): Video length in seconds (5-10, default: 5)
        ratio (str): "1280:720", "1920:1080", "720:1280" or "1080:1920" (default: "1280:720")
        seed (int, optional): Seed for reproducible results
        auto_poll (bool): Wait for completion (default: true)
        max_wait_seconds (float): Polling budget in seconds (default: 300)
        api_key (str, optional): RunwayML API key, overrides the server configuration
    """
    request = buildImageToVideoRequest(prompt_image, prompt_text, model, duration, ratio, seed)
    return await runGeneration(
        "Image-to-video", "video", request, model, prompt_text, auto_poll, max_wait_seconds, api_key
    )


@mcp.tool()
async def runway_text_to_image(
    prompt_text: Annotated[str, Field(min_length=1, description="Text prompt for image generation")],
    model: Annotated[ImageModel, Field(description="Model to use for generation")] = "gen4_image",
    ratio: Annotated[ImageRatio, Field(description="Image aspect ratio")] = "1024:1024",
    reference_images: Annotated[
        Optional[List[ReferenceImage]],
        Field(description="Reference images for style or content guidance"),
    ] = None,
    seed: Seed = None,
    auto_poll: AutoPoll = True,
    max_wait_seconds: MaxWait = DEFAULT_MAX_WAIT_SECONDS,
    api_key: ApiKey = None,
) -> str:
    """
    Generate an image from a text prompt using RunwayML.

    Reference images can be mentioned in the prompt with @tag when a tag is given,
    e.g. prompt_text="@subject standing on a beach" with reference_images=[{"uri": "...", "tag": "subject"}].
    """
    references = [image.model_dump() for image in reference_images] if reference_images else None
    request = buildTextToImageRequest(prompt_text, model, ratio, references, seed)
    return await runGeneration(
        "Text-to-image", "image", request, model, prompt_text, auto_poll, max_wait_seconds, api_key
    )


@mcp.tool()
async def runway_get_task(task_id: TaskId, api_key: ApiKey = None) -> str:
    """Get the status, progress and results of a RunwayML task."""
    try:
        client = getClient(api_key)
    except MissingApiKeyError as e:
        return f"Error: {e}"

    try:
        task = await asyncio.to_thread(client.getTask, task_id)
    except RunwayError as e:
        return f"Error retrieving task: {e}"
    return formatTaskStatus(task)


@mcp.tool()
async def runway_poll_task(
    task_id: TaskId,
    max_wait_seconds: MaxWait = DEFAULT_MAX_WAIT_SECONDS,
    api_key: ApiKey = None,
) -> str:
    """
    Wait for an existing RunwayML task to finish, checking every 3 seconds.

    Returns the outputs on success, the failure reason on failure, or a timeout
    notice if the task is still running after max_wait_seconds.
    """
    try:
        client = getClient(api_key)
    except MissingApiKeyError as e:
        return f"Error: {e}"

    outcome = await pollTask(client, task_id, max_wait_seconds)
    return formatPollOutcome(outcome, "Task", noun="output")


@mcp.tool()
async def runway_cancel_task(task_id: TaskId, api_key: ApiKey = None) -> str:
    """Cancel a pending or running RunwayML task. Finished tasks are deleted."""
    try:
        client = getClient(api_key)
    except MissingApiKeyError as e:
        return f"Error: {e}"

    try:
        await asyncio.to_thread(client.cancelTask, task_id)
    except RunwayError as e:
        return f"Error cancelling task: {e}"
    return f"Task {task_id} has been cancelled successfully."


@mcp.tool()
async def runway_get_organization(api_key: ApiKey = None) -> str:
    """Get organization information and the remaining credit balance."""
    try:
        client = getClient(api_key)
    except MissingApiKeyError as e:
        return f"Error: {e}"

    try:
        data = await asyncio.to_thread(client.getOrganization)
    except RunwayError as e:
        return f"Error retrieving organization info: {e}"
    return formatOrganization(data)


# ============================================================================
# CALCULATOR TOOLS
# ============================================================================

def calculateResult(operation: str, a: float, b: float) -> float:
    """
    Raises:
        ZeroDivisionError: If operation is "divide" and b is 0
    """
    if operation == "add":
        return a + b
    if operation == "subtract":
        return a - b
    if operation == "multiply":
        return a * b
    if b == 0:
        raise ZeroDivisionError("Cannot divide by zero")
    return a / b


@mcp.tool()
def add(a: Number, b: Number) -> str:
    """Add two numbers."""
    return f"{formatNumber(a)} + {formatNumber(b)} = {formatNumber(a + b)}"


@mcp.tool()
def subtract(a: Number, b: Number) -> str:
    """Subtract b from a."""
    return f"{formatNumber(a)} - {formatNumber(b)} = {formatNumber(a - b)}"


@mcp.tool()
def multiply(a: Number, b: Number) -> str:
    """Multiply two numbers."""
    return f"{formatNumber(a)} × {formatNumber(b)} = {formatNumber(a * b)}"


@mcp.tool()
def divide(a: Number, b: Number) -> str:
    """Divide a by b."""
    try:
        result = calculateResult("divide", a, b)
    except ZeroDivisionError as e:
        return f"Error: {e}"
    return f"{formatNumber(a)} ÷ {formatNumber(b)} = {formatNumber(result)}"


@mcp.tool()
def calculate(
    operation: Annotated[
        Literal["add", "subtract", "multiply", "divide"],
        Field(description="Operation to apply to a and b"),
    ],
    a: Number,
    b: Number,
) -> str:
    """Calculator with multiple operations. Returns only the result."""
    try:
        return formatNumber(calculateResult(operation, a, b))
    except ZeroDivisionError as e:
        return f"Error: {e}"


# ============================================================================
# HTTP TRANSPORT
# ============================================================================

def create_starlette_app(
    mcp_server: Server,
    *,
    debug: bool = False,
    streamable: Optional[FastMCP] = None,
) -> Starlette:
    """
    Constructs a Starlette app with SSE and message endpoints.

    Args:
        mcp_server (Server): The core MCP server instance.
        debug (bool): Enable debug mode for verbose logs.
        streamable (FastMCP): When given, its streamable HTTP app is also served at `/mcp`.

    Returns:
        Starlette: The full Starlette app with routes.
    """
    # Create SSE transport handler to manage long-lived SSE connections
    sse = SseServerTransport("/messages/")

    # This function is triggered when a client connects to `/sse`
    async def handle_sse(request: Request) -> None:
        async with sse.connect_sse(
            request.scope,
            request.receive,
            request._send,  # Low-level send function provided by Starlette
        ) as (read_stream, write_stream):
            await mcp_server.run(
                read_stream,
                write_stream,
                mcp_server.create_initialization_options(),
            )

    routes = [
        Route("/sse", endpoint=handle_sse),  # For initiating SSE connection
        Mount("/messages/", app=sse.handle_post_message),  # For POST-based communication
    ]
    lifespan = None

    if streamable is not None:
        # Mounted last so `/sse` and `/messages/` match first; the sub-app owns `/mcp`
        routes.append(Mount("/", app=streamable.streamable_http_app()))

        # Starlette does not run a mounted app's lifespan, so start the session manager here
        @contextlib.asynccontextmanager
        async def lifespan(app: Starlette):
            async with streamable.session_manager.run():
                yield

    return Starlette(debug=debug, routes=routes, lifespan=lifespan)


# The underlying MCP server instance from FastMCP
app = create_starlette_app(mcp._mcp_server, streamable=mcp)


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run the RunwayML MCP server")
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default="stdio",
        help="Transport to serve on; sse also serves streamable HTTP at /mcp",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (sse only)")
    parser.add_argument("--port", type=int, default=8081, help="Port to listen on (sse only)")
    parser.add_argument("--debug", action="store_true", help="Enable Starlette debug mode (sse only)")
    args = parser.parse_args(argv)

    if args.transport == "stdio":
        logger.info("MCP server running on stdio")
        mcp.run(transport="stdio")
        return

    starlette_app = create_starlette_app(mcp._mcp_server, debug=args.debug, streamable=mcp)
    uvicorn.run(starlette_app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
