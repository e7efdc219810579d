"""
Tests for the model tools: web search, weather, documents and tool policies.
"""
import httpx

from conftest import FakeProvider, TestSessionLocal
from app.db.models.document import Document
from app.llm.tools.base import ToolContext
from app.llm.tools.documents import CreateDocumentTool, UpdateDocumentTool
from app.llm.tools.toolsets import ToolPolicy, policy_for, resolve_toolset
from app.llm.tools.weather import WeatherTool
from app.llm.tools.web_search import (
    DeepWebSearchTool,
    SearxngClient,
    WebSearchTool,
    process_image_results,
    process_video_results,
)

TEXT_RESULTS = [
    {"title": "Berlin weather", "content": "Sunny", "url": "https://weather.example/berlin", "engine": "google"},
    {"title": "No url"},
]
IMAGE_RESULTS = [
    {"title": "Skyline", "url": "https://images.example/skyline", "img_src": "https://images.example/skyline.jpg"},
    {"title": "Painting", "url": "https://www.artic.edu/artworks/1"},
]
VIDEO_RESULTS = [
    {"title": "Tour", "url": "https://www.youtube.com/watch?v=abc", "thumbnail": "https://i.ytimg.com/abc.jpg"},
    {"title": "Elsewhere", "url": "https://vimeo.com/1"},
]


def searxng_transport(requests=None):
    by_category = {"general": TEXT_RESULTS, "images": IMAGE_RESULTS, "videos": VIDEO_RESULTS}

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(200, json={"results": by_category[request.url.params["categories"]]})

    return httpx.MockTransport(handler)


def test_image_results_exclude_blocked_domains():
    processed = process_image_results(IMAGE_RESULTS)
    assert [r["title"] for r in processed] == ["Skyline"]
    assert processed[0]["imageUrl"] == "https://images.example/skyline.jpg"


def test_video_results_only_youtube():
    processed = process_video_results(VIDEO_RESULTS)
    assert [r["title"] for r in processed] == ["Tour"]
    assert processed[0]["thumbnailUrl"] == "https://i.ytimg.com/abc.jpg"


async def test_web_search_combines_categories():
    requests = []
    tool = WebSearchTool(SearxngClient(base_url="http://searx.test", transport=searxng_transport(requests)))

    output = await tool.invoke('{"query": "weather berlin"}')

    assert [r["type"] for r in output["results"]] == ["text", "image", "video"]
    assert output["query"] == "weather berlin"
    assert output["message"] == 'Found 3 results for "weather berlin"'
    assert {request.url.params["categories"] for request in requests} == {"general", "images", "videos"}
    assert all(request.url.params["format"] == "json" for request in requests)


async def test_web_search_failure_is_degraded_result():
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(502)

    client = SearxngClient(base_url="http://searx.test", retry_count=2, retry_delay=0, transport=httpx.MockTransport(handler))
    output = await WebSearchTool(client).invoke('{"query": "anything"}')

    assert output["results"] == []
    assert output["error"]
    assert "SearXNG" in output["message"]
    # Retried after the first failed attempt
    assert len(attempts) >= 2


async def test_web_search_empty_query():
    output = await WebSearchTool(SearxngClient(transport=searxng_transport())).invoke('{"query": "   "}')
    assert output["error"] == "Search query cannot be empty"


async def test_deep_search_requests_more_results():
    requests = []
    tool = DeepWebSearchTool(SearxngClient(base_url="http://searx.test", transport=searxng_transport(requests)))
    await tool.invoke('{"query": "history of berlin"}')

    general = next(r for r in requests if r.url.params["categories"] == "general")
    assert general.url.params["results"] == str(tool.text_count)
    assert tool.name == "deepWebSearch"


async def test_weather_tool():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"current": {"temperature_2m": 21.5}})

    tool = WeatherTool(base_url="http://weather.test/v1/forecast", transport=httpx.MockTransport(handler))
    output = await tool.invoke('{"latitude": 52.52, "longitude": 13.41}')

    assert output == {"current": {"temperature_2m": 21.5}}
    assert seen[0].url.params["timezone"] == "auto"


async def test_weather_tool_rejects_out_of_range_coordinates():
    output = await WeatherTool(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={}))).invoke(
        '{"latitude": 123, "longitude": 0}'
    )
    assert output["results"] == []
    assert "Invalid arguments" in output["error"]


async def test_create_and_update_document(db):
    provider = FakeProvider(title="# Draft\nFirst version")
    context = ToolContext(user_id="user-1", chat_id="chat-1", session_factory=TestSessionLocal, provider=provider, model="gpt-4o-mini")

    created = await CreateDocumentTool(context).invoke('{"title": "Trip plan", "kind": "text"}')
    assert created["title"] == "Trip plan"
    assert created["content"] == "A document was created and is now visible to the user."

    provider.title = "# Draft\nSecond version"
    updated = await UpdateDocumentTool(context).invoke(f'{{"id": {created["id"]}, "description": "Make it longer"}}')
    assert updated["content"] == "The document has been updated successfully."

    db.expire_all()
    document = db.query(Document).filter(Document.id == created["id"]).first()
    assert document.content == "# Draft\nSecond version"
    assert document.user_id == "user-1"


async def test_update_document_of_other_user_not_found(db):
    db.add(Document(user_id="owner", title="Private", kind="text", content="secret"))
    db.commit()
    document_id = db.query(Document).first().id

    context = ToolContext(user_id="intruder", chat_id="chat-1", session_factory=TestSessionLocal, provider=FakeProvider())
    output = await UpdateDocumentTool(context).invoke(f'{{"id": {document_id}, "description": "leak it"}}')
    assert output == {"error": "Document not found"}


def test_policy_for():
    assert policy_for("search", reasoning_model=False) == ToolPolicy.SEARCH
    assert policy_for("deep-search", reasoning_model=False) == ToolPolicy.DEEP_SEARCH
    assert policy_for("deep-search", reasoning_model=True) == ToolPolicy.REASONING


def test_resolve_toolset_per_policy():
    context = ToolContext(user_id="u", chat_id="c")
    search = resolve_toolset(ToolPolicy.SEARCH, context)
    deep = resolve_toolset(ToolPolicy.DEEP_SEARCH, context)
    reasoning = resolve_toolset(ToolPolicy.REASONING, context)

    assert set(search.names) == {"getWeather", "createDocument", "updateDocument", "webSearch"}
    assert "deepWebSearch" in deep and "webSearch" not in deep
    assert len(reasoning) == 0
    assert reasoning.schemas() is None
    assert search.schemas()[0]["type"] == "function"
