# /cx_connector/services/graph_store.py

import asyncio
import base64
import httpx
import logging
import tenacity
from typing import Any, Dict, List, Optional

from cx_connector.config.settings import Settings
from cx_connector.errors import CircuitOpenError, GraphFetchError
from cx_connector.models.graph import Agent, FlowNode, Intent, PageNode, TestCase
from cx_connector.utils.circuit_breaker import CircuitBreaker
from cx_connector.utils.metrics import graph_fetch_counter
from cx_connector.utils.rate_limiter import ApiRateLimiter

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000


class GraphStore:
    """
    Client of the Dialogflow CX v3 REST API. Every call is throttled by the
    shared rate limiter, retried on transport errors and guarded by a
    circuit breaker. Failures surface as GraphFetchError.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[ApiRateLimiter] = None,
    ):
        self.settings = settings
        self.agent_path = settings.agent_path
        self.base_url = settings.api_base_url
        self.language_code = settings.dialogflowcx_language_code
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.dialogflowcx_timeout, connect=5.0)
        )
        self.rate_limiter = rate_limiter or ApiRateLimiter(
            rate=settings.api_rate_limit,
            interval=settings.api_rate_interval_seconds,
            concurrency=settings.api_max_concurrency,
        )
        self.circuit_breaker = CircuitBreaker("dialogflowcx")
        self.operation_poll_interval = 2.0

    async def aclose(self):
        logger.debug(f"Closing Dialogflow CX client, peak of {self.rate_limiter.max_in_flight} concurrent API calls")
        await self.http_client.aclose()

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=2, min=1, max=10),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def resilient_api_call(self, func, *args, **kwargs):
        return await self.rate_limiter.run(self.circuit_breaker.call, func, *args, **kwargs)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json; charset=utf-8"}
        if self.settings.dialogflowcx_access_token:
            headers["Authorization"] = f"Bearer {self.settings.dialogflowcx_access_token}"
        if self.settings.dialogflowcx_project_id:
            headers["x-goog-user-project"] = self.settings.dialogflowcx_project_id
        return headers

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return (response.json().get("error") or {}).get("message") or response.reason_phrase
        except ValueError:
            return response.text or response.reason_phrase

    async def _request(self, kind: str, method: str, path: str, params: Optional[Dict[str, Any]] = None, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}/{path}"
        try:
            response = await self.resilient_api_call(
                self.http_client.request, method, url, params=params, json=json, headers=self._headers()
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            graph_fetch_counter.labels(kind=kind, status="error").inc()
            raise GraphFetchError(kind, path, self._error_message(e.response), status_code=e.response.status_code) from e
        except (httpx.RequestError, CircuitOpenError) as e:
            graph_fetch_counter.labels(kind=kind, status="error").inc()
            raise GraphFetchError(kind, path, str(e) or type(e).__name__) from e
        graph_fetch_counter.labels(kind=kind, status="success").inc()
        return response.json() if response.content else {}

    async def _list(self, kind: str, path: str, items_key: str, params: Optional[Dict[str, Any]] = None, page_size: int = DEFAULT_PAGE_SIZE) -> List[Dict[str, Any]]:
        """Follows nextPageToken until the listing is exhausted."""
        items: List[Dict[str, Any]] = []
        page_token = None
        while True:
            page_params = {**(params or {}), "pageSize": page_size}
            if page_token:
                page_params["pageToken"] = page_token
            data = await self._request(kind, "GET", path, params=page_params)
            items.extend(data.get(items_key, []))
            page_token = data.get("nextPageToken")
            if not page_token:
                return items

    # --- Agent ---

    async def get_agent(self) -> Agent:
        data = await self._request("agent", "GET", self.agent_path)
        return Agent.from_api(data)

    async def export_agent(self, data_format: str = "JSON_PACKAGE", max_polls: int = 150) -> bytes:
        """Exports the agent through a long running operation and returns the package bytes."""
        body: Dict[str, Any] = {"dataFormat": data_format}
        if self.settings.environment_path:
            body["environment"] = self.settings.environment_path
        operation = await self._request("agent export", "POST", f"{self.agent_path}:export", json=body)
        for _ in range(max_polls):
            if operation.get("done"):
                break
            await asyncio.sleep(self.operation_poll_interval)
            operation = await self._request("operation", "GET", operation["name"])
        else:
            raise GraphFetchError("agent export", self.agent_path, "export operation did not finish in time")

        if operation.get("error"):
            raise GraphFetchError("agent export", self.agent_path, operation["error"].get("message", "export failed"))
        content = (operation.get("response") or {}).get("agentContent")
        if not content:
            raise GraphFetchError("agent export", self.agent_path, "export returned no agent content")
        return base64.b64decode(content)

    # --- Intents ---

    async def list_intents(self) -> List[Intent]:
        items = await self._list(
            "intents", f"{self.agent_path}/intents", "intents",
            params={"languageCode": self.language_code, "intentView": "INTENT_VIEW_FULL"},
        )
        return [Intent.from_api(item) for item in items]

    async def create_intent(self, intent: Intent) -> Intent:
        body = intent.to_api()
        body.pop("name", None)
        data = await self._request(
            "intent", "POST", f"{self.agent_path}/intents", params={"languageCode": self.language_code}, json=body
        )
        return Intent.from_api(data)

    async def update_intent(self, intent: Intent, update_mask: str = "trainingPhrases") -> Intent:
        data = await self._request(
            "intent", "PATCH", intent.name,
            params={"languageCode": self.language_code, "updateMask": update_mask},
            json=intent.to_api(),
        )
        return Intent.from_api(data)

    # --- Flows and pages ---

    async def list_flows(self) -> List[FlowNode]:
        items = await self._list("flows", f"{self.agent_path}/flows", "flows", params={"languageCode": self.language_code})
        return [FlowNode.from_api(item) for item in items]

    async def get_flow(self, flow_path: str) -> FlowNode:
        data = await self._request("flow", "GET", flow_path, params={"languageCode": self.language_code})
        return FlowNode.from_api(data)

    async def list_pages(self, flow_path: str) -> List[PageNode]:
        items = await self._list("pages", f"{flow_path}/pages", "pages", params={"languageCode": self.language_code})
        return [PageNode.from_api(item) for item in items]

    async def get_page(self, page_path: str) -> PageNode:
        data = await self._request("page", "GET", page_path, params={"languageCode": self.language_code})
        return PageNode.from_api(data)

    # --- Test cases ---

    async def list_test_cases(self) -> List[TestCase]:
        items = await self._list("test cases", f"{self.agent_path}/testCases", "testCases", params={"view": "FULL"}, page_size=20)
        return [TestCase.from_api(item) for item in items]

    # --- Sessions ---

    async def detect_intent(self, session_path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("detect intent", "POST", f"{session_path}:detectIntent", json=body)
