#!/usr/bin/env python3
"""
RunwayML API utilities and helper functions.
Provides configuration, credential resolution, request builders, the REST client
and the task polling loop used by the MCP tools.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import requests

logger = logging.getLogger("runway-mcp-server")

# ============================================================================
# CONSTANTS AND CONFIGURATION
# ============================================================================

DEFAULT_API_BASE_URL = "https://api.dev.runwayml.com/v1"
RUNWAY_API_VERSION = "2024-11-06"
API_KEY_ENV_VAR = "RUNWAYML_API_KEY"
API_KEY_URL = "https://dev.runwayml.com"

DEFAULT_POLL_INTERVAL = 3
DEFAULT_MAX_WAIT_SECONDS = 300
DEFAULT_REQUEST_TIMEOUT = 60

VIDEO_MODELS = ("gen4_turbo", "gen3a_turbo")
IMAGE_MODELS = ("gen4_image",)
VIDEO_RATIOS = ("1280:720", "1920:1080", "720:1280", "1080:1920")
IMAGE_RATIOS = ("720:720", "1920:1080", "1080:1920", "1280:720", "720:1280", "1024:1024")
MIN_VIDEO_DURATION = 5
MAX_VIDEO_DURATION = 10
MAX_SEED = 4294967295


@dataclass(frozen=True)
class RunwayConfig:
    """Process-wide settings, built once at startup and read-only afterwards."""

    apiKey: Optional[str] = None
    baseUrl: str = DEFAULT_API_BASE_URL
    apiVersion: str = RUNWAY_API_VERSION
    requestTimeout: float = DEFAULT_REQUEST_TIMEOUT

    @classmethod
    def fromEnv(cls) -> "RunwayConfig":
        """
        Build the configuration from environment variables.

        Example:
            >>> os.environ["RUNWAYML_API_KEY"] = "key_123"
            >>> RunwayConfig.fromEnv().apiKey
            'key_123'
        """
        apiKey = os.getenv(API_KEY_ENV_VAR) or None
        return cls(
            apiKey=apiKey.strip() if apiKey else None,
            baseUrl=os.getenv("RUNWAYML_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
            requestTimeout=float(os.getenv("RUNWAYML_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)),
        )


# ============================================================================
# ERRORS
# ============================================================================

class RunwayError(Exception):
    """Base class for every failure talking to RunwayML."""


class MissingApiKeyError(RunwayError):
    def __init__(self):
        super().__init__(
            f"RunwayML API key not found. Please set the {API_KEY_ENV_VAR} environment "
            f"variable or pass api_key.\n\nGet your API key from: {API_KEY_URL}"
        )


class RunwayAPIError(RunwayError):
    """Non-2xx answer from the API. Carries the status code and raw body."""

    def __init__(self, statusCode: int, body: str):
        self.statusCode = statusCode
        self.body = body
        super().__init__(f"{statusCode} - {body}")


class RunwayTransportError(RunwayError):
    """Network failure or unreadable response."""


# ============================================================================
# CREDENTIALS
# ============================================================================

def resolveApiKey(providedKey: Optional[str], configuredKey: Optional[str]) -> str:
    """
    Pick the credential for one call: an explicit non-empty argument wins,
    then the configured key, otherwise fail.

    Raises:
        MissingApiKeyError: If neither key is usable

    Example:
        >>> resolveApiKey("  ", "key_cfg")
        'key_cfg'
    """
    if providedKey and providedKey.strip():
        return providedKey.strip()
    if configuredKey and configuredKey.strip():
        return configuredKey.strip()
    raise MissingApiKeyError()


def maskApiKey(apiKey: Optional[str]) -> str:
    if not apiKey:
        return "<none>"
    if len(apiKey) <= 4:
        return "****"
    return f"****{apiKey[-4:]}"


# ============================================================================
# TASK MODEL
# ============================================================================

class TaskStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset(
    {TaskStatus.SUCCEEDED.value, TaskStatus.FAILED.value, TaskStatus.CANCELLED.value}
)

TaskOutput = Union[str, List[str], None]


@dataclass(frozen=True)
class Task:
    """A remote task as observed at one point in time."""

    id: str
    status: str
    progress: Optional[float] = None
    output: TaskOutput = None
    failure: Optional[str] = None
    failureCode: Optional[str] = None

    @property
    def isTerminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def fromResponse(cls, data: Dict[str, Any]) -> "Task":
        """
        Parse the fields needed for status interpretation out of a task response.

        Raises:
            RunwayTransportError: If the payload has no task id or an unreadable progress

        Example:
            >>> Task.fromResponse({"id": "t1", "status": "RUNNING", "progress": 0.4}).progress
            0.4
        """
        if not isinstance(data, dict) or not data.get("id"):
            raise RunwayTransportError(f"Unexpected task payload: {data!r}")

        progress = data.get("progress")
        if progress is not None:
            try:
                progress = float(progress)
            except (TypeError, ValueError) as e:
                raise RunwayTransportError(f"Invalid task progress: {progress!r}") from e
        output = data.get("output")
        if isinstance(output, list):
            output = [str(item) for item in output]
        elif output is not None:
            output = str(output)

        return cls(
            id=str(data["id"]),
            status=str(data.get("status") or TaskStatus.PENDING.value).upper(),
            progress=progress,
            output=output,
            failure=data.get("failure"),
            failureCode=data.get("failureCode"),
        )


# ============================================================================
# REQUEST BUILDERS
# ============================================================================

def buildTextToVideoRequest(
    prompt: str,
    model: str,
    duration: int,
    ratio: str,
    seed: Optional[int] = None,
) -> Tuple[str, Dict[str, Any]]:
    """
    Build the text-to-video request.

    Example:
        >>> buildTextToVideoRequest("a fox", "gen4_turbo", 5, "1280:720")
        ('/text_to_video', {'promptText': 'a fox', 'model': 'gen4_turbo', 'duration': 5, 'ratio': '1280:720'})
    """
    body = {
        "promptText": prompt,
        "model": model,
        "duration": duration,
        "ratio": ratio,
    }
    if seed is not None:
        body["seed"] = seed
    return "/text_to_video", body


def buildImageToVideoRequest(
    promptImage: str,
    promptText: str,
    model: str,
    duration: int,
    ratio: str,
    seed: Optional[int] = None,
) -> Tuple[str, Dict[str, Any]]:
    body = {
        "promptImage": promptImage,
        "promptText": promptText,
        "model": model,
        "duration": duration,
        "ratio": ratio,
    }
    if seed is not None:
        body["seed"] = seed
    return "/image_to_video", body


def buildTextToImageRequest(
    promptText: str,
    model: str,
    ratio: str,
    referenceImages: Optional[List[Dict[str, Any]]] = None,
    seed: Optional[int] = None,
) -> Tuple[str, Dict[str, Any]]:
    """
    Build the text-to-image request. Reference images keep their order;
    an image without a tag is sent with `uri` only.
    """
    body: Dict[str, Any] = {
        "promptText": promptText,
        "model": model,
        "ratio": ratio,
    }
    if referenceImages:
        images = []
        for image in referenceImages:
            entry = {"uri": image["uri"]}
            if image.get("tag"):
                entry["tag"] = image["tag"]
            images.append(entry)
        body["referenceImages"] = images
    if seed is not None:
        body["seed"] = seed
    return "/text_to_image", body


# ============================================================================
# CORE API FUNCTIONS
# ============================================================================

def runwayRequest(
    method: str,
    path: str,
    apiKey: str,
    config: RunwayConfig,
    body: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Make a request to the RunwayML API.

    Args:
        method: HTTP method
        path: Endpoint path relative to the API base URL (e.g. "/tasks/abc")
        apiKey: Bearer token
        config: Process configuration (base URL, version header, timeout)
        body: JSON body, if any

    Returns:
        The decoded JSON response, or None for an empty body

    Raises:
        RunwayAPIError: If the API answers with a non-2xx status
        RunwayTransportError: If the request cannot be made or the body is not JSON
    """
    headers = {
        "Authorization": f"Bearer {apiKey}",
        "X-Runway-Version": config.apiVersion,
    }
    if body is not None:
        headers["Content-Type"] = "application/json"

    logger.debug("%s %s", method, path)
    try:
        response = requests.request(
            method,
            f"{config.baseUrl}{path}",
            headers=headers,
            json=body,
            timeout=config.requestTimeout,
        )
    except requests.RequestException as e:
        raise RunwayTransportError(str(e)) from e

    if not 200 <= response.status_code < 300:
        logger.warning("%s %s failed with HTTP %s", method, path, response.status_code)
        raise RunwayAPIError(response.status_code, response.text)

    if response.status_code == 204 or not response.content:
        return None

    try:
        return response.json()
    except ValueError as e:
        raise RunwayTransportError(f"Invalid JSON in response: {e}") from e


class RunwayClient:
    """Task operations against the RunwayML API for a single credential."""

    def __init__(self, config: RunwayConfig, apiKey: str):
        self.config = config
        self.apiKey = apiKey

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None):
        return runwayRequest(method, path, self.apiKey, self.config, body)

    def createTask(self, path: str, payload: Dict[str, Any]) -> Task:
        data = self._request("POST", path, payload)
        return Task.fromResponse(data or {})

    def getTask(self, taskId: str) -> Task:
        data = self._request("GET", f"/tasks/{taskId}")
        return Task.fromResponse(data or {})

    def cancelTask(self, taskId: str) -> None:
        self._request("DELETE", f"/tasks/{taskId}")

    def getOrganization(self) -> Dict[str, Any]:
        data = self._request("GET", "/organization")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise RunwayTransportError(f"Unexpected organization payload: {data!r}")
        return data


# ============================================================================
# TASK POLLING FUNCTIONS
# ============================================================================

class PollResult(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    ERROR = "error"


_TERMINAL_RESULTS = {
    TaskStatus.SUCCEEDED.value: PollResult.SUCCEEDED,
    TaskStatus.FAILED.value: PollResult.FAILED,
    TaskStatus.CANCELLED.value: PollResult.CANCELLED,
}


@dataclass(frozen=True)
class PollOutcome:
    kind: PollResult
    taskId: str
    attempts: int
    maxWaitSeconds: float
    task: Optional[Task] = None
    error: Optional[str] = None


async def pollTask(
    client: RunwayClient,
    taskId: str,
    maxWaitSeconds: float = DEFAULT_MAX_WAIT_SECONDS,
    *,
    interval: float = DEFAULT_POLL_INTERVAL,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.time,
) -> PollOutcome:
    """
    Poll a task until it reaches a terminal state or the wait budget runs out.

    The first query always happens, so a budget of 0 still makes one attempt.
    No new query starts once the budget is spent; a query already in flight
    when the deadline passes is allowed to finish. Query failures end the loop at once.

    Args:
        client: Client used for the status queries
        taskId: The task to poll
        maxWaitSeconds: Wall-clock budget in seconds
        interval: Delay between queries
        sleep: Awaitable delay function
        clock: Wall-clock source

    Returns:
        PollOutcome describing how polling ended

    Raises:
        ValueError: If taskId is empty or maxWaitSeconds is negative

    Example:
        >>> outcome = await pollTask(client, "a1b2c3", maxWaitSeconds=60)
        >>> outcome.kind
        <PollResult.SUCCEEDED: 'succeeded'>
    """
    if not taskId:
        raise ValueError("taskId cannot be empty")
    if maxWaitSeconds < 0:
        raise ValueError("maxWaitSeconds must be non-negative")

    startTime = clock()
    attempts = 0

    while True:
        attempts += 1
        try:
            task = await asyncio.to_thread(client.getTask, taskId)
        except RunwayError as e:
            logger.warning("Polling task %s failed on attempt %d: %s", taskId, attempts, e)
            return PollOutcome(PollResult.ERROR, taskId, attempts, maxWaitSeconds, error=str(e))

        kind = _TERMINAL_RESULTS.get(task.status)
        if kind is not None:
            return PollOutcome(kind, taskId, attempts, maxWaitSeconds, task=task)

        if clock() - startTime >= maxWaitSeconds:
            return PollOutcome(PollResult.TIMEOUT, taskId, attempts, maxWaitSeconds, task=task)

        progress = f" ({round(task.progress * 100)}% complete)" if task.progress else ""
        logger.info(
            "Attempt %d: task %s %s%s, waiting %s seconds...",
            attempts, taskId, task.status, progress, interval,
        )
        await sleep(interval)

        if clock() - startTime >= maxWaitSeconds:
            return PollOutcome(PollResult.TIMEOUT, taskId, attempts, maxWaitSeconds, task=task)
