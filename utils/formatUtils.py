"""
Text rendering for tool responses.
"""

from typing import Any, Dict, Optional

from utils.runwayUtils import PollOutcome, PollResult, Task, TaskOutput, TaskStatus


def formatNumber(value: float) -> str:
    """
    Render a number the way a person would write it.

    Example:
        >>> formatNumber(8.0)
        '8'
        >>> formatNumber(2.5)
        '2.5'
    """
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def formatOutputs(output: TaskOutput, noun: str = "output") -> str:
    """
    Describe a task's output. Lists are enumerated in order, starting at 1.

    Example:
        >>> print(formatOutputs(["https://a", "https://b"], "video"))
        Generated videos:
        1. https://a
        2. https://b
    """
    if not output:
        return ""
    if isinstance(output, list):
        lines = [f"Generated {noun}s:"]
        lines.extend(f"{index}. {url}" for index, url in enumerate(output, start=1))
        return "\n".join(lines)
    return f"Generated {noun}: {output}"


def _details(taskId: str, model: Optional[str], prompt: Optional[str]) -> str:
    text = f"Task ID: {taskId}"
    if model:
        text += f"\nModel: {model}"
    if prompt:
        text += f'\nPrompt: "{prompt}"'
    return text


def formatTaskCreated(label: str, task: Task, model: str, prompt: str) -> str:
    return (
        f"{label} task created successfully!\n"
        f"Task ID: {task.id}\n"
        f"Status: {task.status}\n"
        f"Model: {model}\n"
        f'Prompt: "{prompt}"\n\n'
        f"Use runway_get_task to check the status and get the result."
    )


def formatPollOutcome(
    outcome: PollOutcome,
    label: str = "Task",
    model: Optional[str] = None,
    prompt: Optional[str] = None,
    noun: str = "output",
) -> str:
    """
    Turn a poll outcome into the text returned to the caller.

    Args:
        outcome: Result of pollTask
        label: Human name of the operation (e.g. "Text-to-video")
        model: Model used for generation, if known
        prompt: Prompt used for generation, if known
        noun: What the outputs are called ("video", "image", ...)
    """
    taskId = outcome.task.id if outcome.task else outcome.taskId
    attempts = outcome.attempts
    plural = "attempt" if attempts == 1 else "attempts"

    if outcome.kind is PollResult.SUCCEEDED:
        text = f"{label} completed successfully after {attempts} {plural}!\n\n"
        text += _details(taskId, model, prompt)
        outputs = formatOutputs(outcome.task.output, noun)
        if outputs:
            text += f"\n\n{outputs}"
        return text

    if outcome.kind is PollResult.FAILED:
        reason = outcome.task.failure or "Unknown error"
        text = (
            f"{label} failed after {attempts} {plural}.\n"
            f"Task ID: {taskId}\n"
            f"Failure reason: {reason}"
        )
        if outcome.task.failureCode:
            text += f" (Code: {outcome.task.failureCode})"
        return text

    if outcome.kind is PollResult.CANCELLED:
        return f"{label} was cancelled.\nTask ID: {taskId}"

    if outcome.kind is PollResult.TIMEOUT:
        return (
            f"{label} timeout reached after {formatNumber(float(outcome.maxWaitSeconds))} seconds "
            f"and {attempts} {plural}. Task may still be processing.\n"
            f"Task ID: {taskId}\n"
            f"Use runway_get_task to check manually."
        )

    return f"Error checking task status: {outcome.error}\nTask ID: {taskId}"


def formatTaskStatus(task: Task) -> str:
    text = f"Task ID: {task.id}\nStatus: {task.status}"
    if task.progress is not None:
        text += f"\nProgress: {round(task.progress * 100)}%"

    if task.status == TaskStatus.SUCCEEDED.value:
        text += "\n\nTask completed successfully!"
        outputs = formatOutputs(task.output)
        if outputs:
            text += f"\n{outputs}"
    elif task.status == TaskStatus.FAILED.value:
        text += f"\n\nTask failed.\nFailure reason: {task.failure or 'Unknown error'}"
        if task.failureCode:
            text += f" (Code: {task.failureCode})"
    elif task.status == TaskStatus.CANCELLED.value:
        text += "\n\nTask was cancelled."
    else:
        text += "\n\nTask is still processing. Please check again in a few moments."
    return text


def formatOrganization(data: Dict[str, Any]) -> str:
    lines = ["Organization Information:"]
    if data.get("id"):
        lines.append(f"ID: {data['id']}")
    if data.get("name"):
        lines.append(f"Name: {data['name']}")

    credits = data.get("creditBalance", data.get("credits"))
    if credits is not None:
        lines.append(f"Credits: {credits}")

    tier = data.get("tier")
    if isinstance(tier, dict) and tier.get("maxMonthlyCreditSpend") is not None:
        lines.append(f"Max monthly credit spend: {tier['maxMonthlyCreditSpend']}")
    if data.get("subscription"):
        lines.append(f"Subscription: {data['subscription']}")
    return "\n".join(lines)
