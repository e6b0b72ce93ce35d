# /tests/conftest.py
import pytest
from dotenv import load_dotenv

# Load test settings before anything reads the environment
load_dotenv(dotenv_path=".env.test")

from cx_connector.crawler.definitions import DEFAULT_WELCOME_INTENT_ID  # noqa: E402
from cx_connector.errors import GraphFetchError  # noqa: E402
from cx_connector.models.graph import Agent, FlowNode, Intent, PageNode, TestCase  # noqa: E402

AGENT_PATH = "projects/test-project/locations/global/agents/test-agent"


class FakeGraphStore:
    """
    In-memory stand-in for GraphStore. Nodes are kept as raw REST payloads
    and parsed on every fetch, like the real client does.
    """

    def __init__(self, graph: "GraphBuilder"):
        self.agent_path = AGENT_PATH
        self.language_code = "en"
        self.graph = graph
        self.fetches = []
        self.created = []
        self.updated = []
        self.closed = False

    async def get_agent(self) -> Agent:
        return Agent.from_api({"name": AGENT_PATH, "displayName": "Test Agent", "startFlow": self.graph.start_flow})

    async def get_flow(self, flow_path: str) -> FlowNode:
        self.fetches.append(flow_path)
        if flow_path not in self.graph.flows:
            raise GraphFetchError("flow", flow_path, "Not Found", status_code=404)
        return FlowNode.from_api(self.graph.flows[flow_path])

    async def get_page(self, page_path: str) -> PageNode:
        self.fetches.append(page_path)
        if page_path not in self.graph.pages:
            raise GraphFetchError("page", page_path, "Not Found", status_code=404)
        return PageNode.from_api(self.graph.pages[page_path])

    async def list_intents(self):
        return [Intent.from_api(data) for data in self.graph.intents.values()]

    async def list_flows(self):
        return [FlowNode.from_api(data) for data in self.graph.flows.values()]

    async def list_pages(self, flow_path: str):
        prefix = f"{flow_path}/pages/"
        return [PageNode.from_api(data) for path, data in self.graph.pages.items() if path.startswith(prefix)]

    async def list_test_cases(self):
        return [TestCase.from_api(data) for data in self.graph.test_cases]

    async def export_agent(self) -> bytes:
        return self.graph.package

    async def create_intent(self, intent: Intent) -> Intent:
        self.created.append(intent)
        return intent

    async def update_intent(self, intent: Intent) -> Intent:
        self.updated.append(intent)
        return intent

    async def aclose(self):
        self.closed = True


class GraphBuilder:
    """Builds agent graphs as REST payloads. Helpers return the full resource names."""

    agent_path = AGENT_PATH

    def __init__(self):
        self.flows = {}
        self.pages = {}
        self.intents = {}
        self.test_cases = []
        self.package = b""
        self.start_flow = None

    def intent_path(self, intent_id: str) -> str:
        return f"{AGENT_PATH}/intents/{intent_id}"

    def flow_path(self, flow_id: str) -> str:
        return f"{AGENT_PATH}/flows/{flow_id}"

    def page_path(self, flow_id: str, page_id: str) -> str:
        return f"{self.flow_path(flow_id)}/pages/{page_id}"

    def intent(self, intent_id: str, display_name: str, phrases=()) -> str:
        path = self.intent_path(intent_id)
        self.intents[path] = {
            "name": path,
            "displayName": display_name,
            "trainingPhrases": [{"id": f"tp-{i}", "parts": [{"text": p}], "repeatCount": 1} for i, p in enumerate(phrases)],
        }
        return path

    def welcome_intent(self, phrases=("hi",)) -> str:
        return self.intent(DEFAULT_WELCOME_INTENT_ID, "Default Welcome Intent", phrases)

    @staticmethod
    def route(intent=None, condition=None, page=None, flow=None, texts=None, name=None) -> dict:
        data = {}
        if name:
            data["name"] = name
        if intent:
            data["intent"] = intent
        if condition:
            data["condition"] = condition
        if page:
            data["targetPage"] = page
        if flow:
            data["targetFlow"] = flow
        if texts:
            data["triggerFulfillment"] = {"messages": [{"text": {"text": list(texts)}}]}
        return data

    def flow(self, flow_id: str, display_name: str, routes=(), start: bool = False) -> str:
        path = self.flow_path(flow_id)
        self.flows[path] = {"name": path, "displayName": display_name, "transitionRoutes": list(routes)}
        if start or self.start_flow is None:
            self.start_flow = path
        return path

    def page(self, flow_id: str, page_id: str, display_name: str, routes=()) -> str:
        path = self.page_path(flow_id, page_id)
        self.pages[path] = {"name": path, "displayName": display_name, "transitionRoutes": list(routes)}
        return path

    def store(self) -> FakeGraphStore:
        return FakeGraphStore(self)


@pytest.fixture
def graph():
    """An empty agent graph to build test scenarios on."""
    return GraphBuilder()


@pytest.fixture
def welcome_graph(graph):
    """
    Start flow whose welcome route leads to a page with one unconditional
    route carrying the fulfillment "Done".
    """
    welcome = graph.welcome_intent()
    done_page = graph.page("start", "done", "Done Page", [graph.route(condition="true", texts=["Done"])])
    graph.flow("start", "Default Start Flow", [graph.route(intent=welcome, page=done_page)], start=True)
    return graph
