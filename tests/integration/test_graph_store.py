# /tests/integration/test_graph_store.py
import base64
import io
import json
import zipfile

import httpx
import pytest
import tenacity

from cx_connector.config.options import ImportOptions, ImportSource
from cx_connector.config.settings import Settings
from cx_connector.errors import GraphFetchError
from cx_connector.services.graph_store import GraphStore
from cx_connector.services.intents_service import import_intents

BASE_URL = "https://dialogflow.googleapis.com/v3"
AGENT = "projects/test-project/locations/global/agents/test-agent"


def make_store(handler):
    settings_obj = Settings(
        dialogflowcx_project_id="test-project",
        dialogflowcx_agent_id="test-agent",
        dialogflowcx_access_token="secret-token",
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    store = GraphStore(settings_obj, http_client=client)
    store.operation_poll_interval = 0
    return store


def agent_package(intents):
    """Zip archive laid out like a JSON_PACKAGE agent export."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("agent.json", json.dumps({"displayName": "Test Agent"}))
        for folder, (intent_id, phrases) in intents.items():
            archive.writestr(f"intents/{folder}/{folder}.json", json.dumps({"name": intent_id, "displayName": folder}))
            archive.writestr(
                f"intents/{folder}/trainingPhrases/en.json",
                json.dumps({"trainingPhrases": [{"parts": [{"text": p}]} for p in phrases]}),
            )
    return buffer.getvalue()


@pytest.mark.asyncio
async def test_list_intents_follows_page_tokens():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.url.params["intentView"] == "INTENT_VIEW_FULL"
        assert request.url.params["languageCode"] == "en"
        if "pageToken" not in request.url.params:
            return httpx.Response(200, json={
                "intents": [{"name": f"{AGENT}/intents/1", "displayName": "One"}],
                "nextPageToken": "page-2",
            })
        return httpx.Response(200, json={"intents": [{"name": f"{AGENT}/intents/2", "displayName": "Two"}]})

    store = make_store(handler)
    intents = await store.list_intents()
    await store.aclose()

    assert [intent.display_name for intent in intents] == ["One", "Two"]
    assert len(requests) == 2
    assert requests[1].url.params["pageToken"] == "page-2"
    assert str(requests[0].url).startswith(f"{BASE_URL}/{AGENT}/intents")


@pytest.mark.asyncio
async def test_http_error_becomes_graph_fetch_error():
    page = f"{AGENT}/flows/f/pages/missing"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"code": 404, "message": "Page not found"}})

    store = make_store(handler)
    with pytest.raises(GraphFetchError) as exc_info:
        await store.get_page(page)

    assert exc_info.value.status_code == 404
    assert exc_info.value.kind == "page"
    assert str(exc_info.value) == f"Failed to get page {page}: Page not found"


@pytest.mark.asyncio
async def test_transport_errors_are_retried(mocker):
    mocker.patch.object(GraphStore.resilient_api_call.retry, "wait", tenacity.wait_none())
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    store = make_store(handler)
    with pytest.raises(GraphFetchError) as exc_info:
        await store.get_flow(f"{AGENT}/flows/f")

    assert len(attempts) == 3
    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_get_flow_parses_routes():
    flow = f"{AGENT}/flows/f"

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == f"/v3/{flow}"
        return httpx.Response(200, json={
            "name": flow,
            "displayName": "Default Start Flow",
            "transitionRoutes": [
                {"name": "r1", "intent": f"{AGENT}/intents/i", "targetPage": f"{flow}/pages/p"},
                {"condition": "true", "triggerFulfillment": {"messages": [{"text": {"text": ["Hi"]}}]}},
            ],
        })

    store = make_store(handler)
    node = await store.get_flow(flow)

    assert node.display_name == "Default Start Flow"
    assert node.transition_routes[0].target_page == f"{flow}/pages/p"
    assert node.transition_routes[1].name == f"{flow}/transitionRoutes/1"
    assert node.transition_routes[1].has_messages
    assert store.rate_limiter.max_in_flight == 1
    assert store.rate_limiter.in_flight == 0


@pytest.mark.asyncio
async def test_bulk_import_polls_the_export_operation():
    operation = "projects/test-project/locations/global/operations/export-1"
    package = agent_package({
        "Greet": ("11111111-aaaa", ["hello", "hi"]),
        "Bye": ("22222222-bbbb", ["bye"]),
    })
    polls = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            assert request.url.path == f"/v3/{AGENT}:export"
            assert json.loads(request.content) == {"dataFormat": "JSON_PACKAGE"}
            return httpx.Response(200, json={"name": operation, "done": False})
        polls.append(request)
        if len(polls) < 2:
            return httpx.Response(200, json={"name": operation, "done": False})
        return httpx.Response(200, json={
            "name": operation,
            "done": True,
            "response": {"agentContent": base64.b64encode(package).decode("ascii")},
        })

    store = make_store(handler)
    result = await import_intents(ImportOptions(source=ImportSource.TRAINING_SET_BULK), store=store)

    assert len(polls) == 2
    assert result.convos == []
    assert {record.name: record.utterances for record in result.utterances} == {"Bye": ["bye"], "Greet": ["hello", "hi"]}
    assert {record.external_id for record in result.utterances} == {"11111111aaaa", "22222222bbbb"}


@pytest.mark.asyncio
async def test_failed_export_operation():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"name": "op", "done": True, "error": {"code": 7, "message": "Permission denied"}})

    store = make_store(handler)
    with pytest.raises(GraphFetchError, match="Permission denied"):
        await store.export_agent()


@pytest.mark.asyncio
async def test_agent_pages_and_test_cases():
    flow = f"{AGENT}/flows/f"

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == f"/v3/{AGENT}":
            return httpx.Response(200, json={"name": AGENT, "displayName": "Pizza", "startFlow": flow})
        if path == f"/v3/{flow}/pages":
            return httpx.Response(200, json={"pages": [{"name": f"{flow}/pages/p", "displayName": "Size"}]})
        if path == f"/v3/{AGENT}/testCases":
            assert request.url.params["view"] == "FULL"
            assert request.url.params["pageSize"] == "20"
            return httpx.Response(200, json={"testCases": [{"name": f"{AGENT}/testCases/t", "displayName": "Happy path"}]})
        return httpx.Response(404, json={"error": {"message": "unexpected"}})

    store = make_store(handler)

    assert (await store.get_agent()).start_flow == flow
    assert [page.display_name for page in await store.list_pages(flow)] == ["Size"]
    assert [tc.display_name for tc in await store.list_test_cases()] == ["Happy path"]
