from unittest.mock import patch

import pytest
import requests

from utils.runwayUtils import (
    RUNWAY_API_VERSION,
    MissingApiKeyError,
    RunwayAPIError,
    RunwayClient,
    RunwayConfig,
    RunwayTransportError,
    Task,
    buildImageToVideoRequest,
    buildTextToImageRequest,
    buildTextToVideoRequest,
    maskApiKey,
    resolveApiKey,
)


# ----------------------------------------------------------------------------
# credentials
# ----------------------------------------------------------------------------

def test_provided_key_wins_over_configured():
    assert resolveApiKey("key_arg", "key_cfg") == "key_arg"


@pytest.mark.parametrize("provided", [None, "", "   "])
def test_blank_provided_key_falls_back_to_configured(provided):
    assert resolveApiKey(provided, "key_cfg") == "key_cfg"


def test_missing_key_names_environment_variable():
    with pytest.raises(MissingApiKeyError) as exc:
        resolveApiKey(None, None)
    assert "RUNWAYML_API_KEY" in str(exc.value)


def test_mask_api_key_keeps_only_last_four():
    assert maskApiKey("key_abcdef1234") == "****1234"
    assert maskApiKey(None) == "<none>"


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("RUNWAYML_API_KEY", " key_env ")
    monkeypatch.setenv("RUNWAYML_API_BASE_URL", "https://proxy.test/v1/")
    monkeypatch.setenv("RUNWAYML_REQUEST_TIMEOUT", "15")

    config = RunwayConfig.fromEnv()

    assert config.apiKey == "key_env"
    assert config.baseUrl == "https://proxy.test/v1"
    assert config.requestTimeout == 15.0
    assert config.apiVersion == RUNWAY_API_VERSION


def test_config_from_env_without_key(monkeypatch):
    monkeypatch.delenv("RUNWAYML_API_KEY", raising=False)
    assert RunwayConfig.fromEnv().apiKey is None


# ----------------------------------------------------------------------------
# task parsing
# ----------------------------------------------------------------------------

def test_task_from_response_with_output_list():
    task = Task.fromResponse({
        "id": "task-1",
        "status": "SUCCEEDED",
        "createdAt": "2024-11-06T00:00:00Z",
        "output": ["https://cdn/a.mp4", "https://cdn/b.mp4"],
    })
    assert task.id == "task-1"
    assert task.isTerminal
    assert task.output == ["https://cdn/a.mp4", "https://cdn/b.mp4"]


def test_task_from_response_unknown_status_is_not_terminal():
    task = Task.fromResponse({"id": "task-1", "status": "THROTTLED"})
    assert task.status == "THROTTLED"
    assert not task.isTerminal


def test_task_from_response_without_id():
    with pytest.raises(RunwayTransportError):
        Task.fromResponse({"status": "RUNNING"})


# ----------------------------------------------------------------------------
# request builders
# ----------------------------------------------------------------------------

def test_text_to_video_request_shape():
    path, body = buildTextToVideoRequest("a fox in snow", "gen4_turbo", 10, "1920:1080", seed=42)
    assert path == "/text_to_video"
    assert body == {
        "promptText": "a fox in snow",
        "model": "gen4_turbo",
        "duration": 10,
        "ratio": "1920:1080",
        "seed": 42,
    }


def test_image_to_video_request_shape():
    path, body = buildImageToVideoRequest("https://img/x.png", "pan left", "gen3a_turbo", 5, "1280:720")
    assert path == "/image_to_video"
    assert body == {
        "promptImage": "https://img/x.png",
        "promptText": "pan left",
        "model": "gen3a_turbo",
        "duration": 5,
        "ratio": "1280:720",
    }


def test_text_to_image_request_keeps_reference_order_and_drops_empty_tags():
    path, body = buildTextToImageRequest(
        "@hero on a beach",
        "gen4_image",
        "1024:1024",
        [{"uri": "https://img/1.png", "tag": "hero"}, {"uri": "https://img/2.png", "tag": None}],
    )
    assert path == "/text_to_image"
    assert body["referenceImages"] == [
        {"uri": "https://img/1.png", "tag": "hero"},
        {"uri": "https://img/2.png"},
    ]


def test_text_to_image_request_without_references():
    _, body = buildTextToImageRequest("a cat", "gen4_image", "720:720", [])
    assert "referenceImages" not in body


# ----------------------------------------------------------------------------
# client
# ----------------------------------------------------------------------------

def test_get_task_sends_auth_and_version_headers(runway_config, make_response):
    client = RunwayClient(runway_config, "key_abc")
    with patch("utils.runwayUtils.requests.request") as request:
        request.return_value = make_response(200, {"id": "task-1", "status": "RUNNING", "progress": 0.5})
        task = client.getTask("task-1")

    method, url = request.call_args.args
    headers = request.call_args.kwargs["headers"]
    assert method == "GET"
    assert url == "https://api.example.test/v1/tasks/task-1"
    assert headers["Authorization"] == "Bearer key_abc"
    assert headers["X-Runway-Version"] == RUNWAY_API_VERSION
    assert "Content-Type" not in headers
    assert task.progress == 0.5


def test_repeated_get_task_leaves_client_unchanged(runway_config, make_response):
    client = RunwayClient(runway_config, "key_abc")
    before = dict(vars(client))
    with patch("utils.runwayUtils.requests.request") as request:
        request.side_effect = [
            make_response(200, {"id": "task-1", "status": "RUNNING", "progress": 0.2}),
            make_response(200, {"id": "task-1", "status": "RUNNING", "progress": 0.2}),
        ]
        first = client.getTask("task-1")
        second = client.getTask("task-1")

    assert first == second
    assert vars(client) == before


def test_create_task_posts_json_body(runway_config, make_response):
    client = RunwayClient(runway_config, "key_abc")
    path, body = buildTextToVideoRequest("waves", "gen4_turbo", 5, "1280:720")
    with patch("utils.runwayUtils.requests.request") as request:
        request.return_value = make_response(200, {"id": "task-9"})
        task = client.createTask(path, body)

    assert request.call_args.args[0] == "POST"
    assert request.call_args.kwargs["json"] == body
    assert request.call_args.kwargs["headers"]["Content-Type"] == "application/json"
    assert task.id == "task-9"


def test_cancel_task_accepts_empty_204(runway_config, make_response):
    client = RunwayClient(runway_config, "key_abc")
    with patch("utils.runwayUtils.requests.request") as request:
        request.return_value = make_response(204, text="")
        assert client.cancelTask("task-1") is None
    assert request.call_args.args == ("DELETE", "https://api.example.test/v1/tasks/task-1")


def test_non_2xx_raises_api_error_with_status_and_body(runway_config, make_response):
    client = RunwayClient(runway_config, "key_abc")
    with patch("utils.runwayUtils.requests.request") as request:
        request.return_value = make_response(401, text='{"error":"Invalid API key"}')
        with pytest.raises(RunwayAPIError) as exc:
            client.getOrganization()

    assert exc.value.statusCode == 401
    assert str(exc.value) == '401 - {"error":"Invalid API key"}'


def test_network_failure_raises_transport_error(runway_config):
    client = RunwayClient(runway_config, "key_abc")
    with patch("utils.runwayUtils.requests.request") as request:
        request.side_effect = requests.ConnectionError("connection refused")
        with pytest.raises(RunwayTransportError, match="connection refused"):
            client.getTask("task-1")
    assert request.call_count == 1


def test_invalid_json_raises_transport_error(runway_config, make_response):
    client = RunwayClient(runway_config, "key_abc")
    with patch("utils.runwayUtils.requests.request") as request:
        request.return_value = make_response(200, text="<html>oops</html>")
        with pytest.raises(RunwayTransportError):
            client.getTask("task-1")


@pytest.mark.parametrize("progress", ["n/a", {"done": 1}, [0.5]])
def test_unreadable_progress_raises_transport_error(progress):
    with pytest.raises(RunwayTransportError, match="Invalid task progress"):
        Task.fromResponse({"id": "task-1", "status": "RUNNING", "progress": progress})


def test_numeric_string_progress_is_accepted():
    assert Task.fromResponse({"id": "task-1", "status": "RUNNING", "progress": "0.25"}).progress == 0.25


@pytest.mark.parametrize("payload", [[{"creditBalance": 5}], "Studio", 42])
def test_non_object_organization_raises_transport_error(runway_config, make_response, payload):
    client = RunwayClient(runway_config, "key_abc")
    with patch("utils.runwayUtils.requests.request") as request:
        request.return_value = make_response(200, payload)
        with pytest.raises(RunwayTransportError, match="Unexpected organization payload"):
            client.getOrganization()
