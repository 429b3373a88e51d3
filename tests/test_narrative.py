"""Tests for the LLM client and narrative generation."""

import json

import httpx
import pytest

from proposal_service.errors import CollaboratorError, CollaboratorTimeoutError
from proposal_service.services.image_client import ImageClient
from proposal_service.services.llm_client import LLMClient
from proposal_service.services.narrative import NarrativeGenerator

MODEL = "meta-llama/llama-3.3-70b-instruct:free"

NARRATIVE = {
    "headline": "Keep More of Every Slice",
    "executive_summary": "You can save $350 per month.",
    "recommendation": "Dual Pricing.",
    "talking_points": ["No card fees"],
    "call_to_action": "Sign today.",
}


def completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


def llm(handler) -> LLMClient:
    return LLMClient(api_key="test-key", base_url="https://llm.local/v1", timeout=1, transport=httpx.MockTransport(handler))


def test_security_warnings_prepended():
    """Test the system prompt is prefixed with the security warnings."""
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return completion("ok")

    llm(handler).chat_completion(MODEL, [{"role": "system", "content": "Be brief."}], json_mode=True)

    messages = sent[0]["messages"]
    assert messages[0]["content"].startswith("SECURITY WARNINGS:")
    assert messages[0]["content"].endswith("Be brief.")
    assert sent[0]["response_format"] == {"type": "json_object"}


def test_model_whitelist():
    with pytest.raises(ValueError):
        llm(lambda request: completion("ok")).chat_completion("some/other-model", [])


def test_missing_key():
    client = LLMClient(api_key="", transport=httpx.MockTransport(lambda request: completion("ok")))
    with pytest.raises(CollaboratorError):
        client.chat_completion(MODEL, [{"role": "user", "content": "hi"}])


def test_retryable_status_exhausts_retries():
    """Test a persistent 503 surfaces as a collaborator error after retrying."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    client = llm(handler)
    client._post.retry.wait = lambda retry_state: 0
    with pytest.raises(CollaboratorError):
        client.chat_completion(MODEL, [{"role": "user", "content": "hi"}])
    assert len(calls) == 2


@pytest.mark.parametrize("status", [400, 401, 403])
def test_client_error_not_retried(status):
    """Test a request the provider rejects is reported without retrying."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status)

    client = llm(handler)
    client._post.retry.wait = lambda retry_state: 0
    with pytest.raises(CollaboratorError):
        client.chat_completion(MODEL, [{"role": "user", "content": "hi"}])
    assert len(calls) == 1


def test_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client = llm(handler)
    client._post.retry.wait = lambda retry_state: 0
    with pytest.raises(CollaboratorTimeoutError):
        client.chat_completion(MODEL, [{"role": "user", "content": "hi"}])


def test_generate_narrative():
    fenced = "```json\n" + json.dumps(NARRATIVE) + "\n```"
    narrative = NarrativeGenerator(llm(lambda request: completion(fenced)), model=MODEL).generate(
        {"merchant": {"business_name": "Joe's Pizza"}, "pricing": {}, "salesperson": {}}
    )
    assert narrative.headline == "Keep More of Every Slice"
    assert narrative.talking_points == ["No card fees"]


def test_malformed_narrative():
    """Test output missing required keys is rejected."""
    generator = NarrativeGenerator(llm(lambda request: completion('{"headline": "x"}')), model=MODEL)
    with pytest.raises(CollaboratorError):
        generator.generate({})


def test_image_client_returns_data_url():
    def handler(request):
        return httpx.Response(200, json={"data": [{"b64_json": "aW1hZ2U="}]})

    client = ImageClient(api_key="k", base_url="https://img.local/v1", transport=httpx.MockTransport(handler))
    assert client.generate("a handshake") == "data:image/png;base64,aW1hZ2U="


def test_image_client_not_configured():
    with pytest.raises(CollaboratorError):
        ImageClient(api_key="", base_url="").generate("a handshake")
