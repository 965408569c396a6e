"""
Tests for the graph service, search scoring, subprompt selection, the LLM
client and the assistant.
"""

import json
from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest

from mindtree.exceptions import LLMError
from mindtree.models import NodeRecord, ObsidianLink, ObsidianNode
from mindtree.services import (
    KEYWORD_WEIGHTS,
    SEARCH_WEIGHTS,
    LLMClient,
    ObsidianService,
    RagService,
    SubpromptService,
    score_nodes,
)
from mindtree.services.obsidian_service import NO_DATA_MESSAGE
from mindtree.services.rag import NO_RESULTS_MESSAGE, friendly_error
from mindtree.services.scoring import tokenize_query
from mindtree.services.subprompts import cosine_similarity, generate_embedding


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeLLM:
    """Records prompts and returns a canned answer or raises."""

    def __init__(self, answer="An answer.", error=None):
        self.answer = answer
        self.error = error
        self.prompts = []

    def generate(self, prompt, system_prompt="", purpose="rag"):
        self.prompts.append((prompt, system_prompt, purpose))
        if self.error:
            raise self.error
        return self.answer


@pytest.fixture
def service(db):
    return ObsidianService(db)


def add_node(db, title, path, content="", tags=None, metadata=None):
    return db.create_node(NodeRecord(title=title, path=path, content=content, tags=tags or [], metadata=metadata or {}))


# Graph queries

def test_network_data_shows_explicit_links_once_per_pair(db, service):
    a = add_node(db, "A", "/A.md", tags=["foo", "idea"])
    b = add_node(db, "B", "/B.md", metadata={"inferred_category": "project", "domains": ["finance"]})
    c = add_node(db, "C", "/C.md", content="School lessons")
    db.bulk_create_links([
        ObsidianLink(source_id=a.id, target_id=b.id, type="wiki"),
        ObsidianLink(source_id=b.id, target_id=a.id, type="canvas-edge"),
        ObsidianLink(source_id=a.id, target_id=c.id, type="tag", strength=0.3),
        ObsidianLink(source_id=b.id, target_id=c.id, type="title-similarity", strength=0.3),
        ObsidianLink(source_id=b.id, target_id=c.id, type="canvas-edge"),
    ])

    data = service.get_network_data()

    groups = {n["id"]: n["group"] for n in data["nodes"]}
    assert groups == {a.id: "idea", b.id: "project", c.id: "uncategorized"}
    domains = {n["id"]: n["domains"] for n in data["nodes"]}
    assert domains[b.id] == ["finance"]
    assert domains[c.id] == ["education"]

    assert data["links"] == [
        {"source": a.id, "target": b.id, "type": "wiki", "value": 1.0},
        {"source": b.id, "target": c.id, "type": "canvas-edge", "value": 1.0},
    ]


def test_node_queries(db, service):
    a = add_node(db, "A", "/A.md")
    b = add_node(db, "B", "/B.md")
    db.create_link(ObsidianLink(source_id=a.id, target_id=b.id, type="wiki"))

    assert service.get_node_by_id(a.id).path == "/A.md"
    assert service.get_node_by_path("/B.md").id == b.id
    assert [link.target_id for link in service.get_node_links(b.id)] == [b.id]
    assert len(service.get_all_nodes()) == 2


# Search

def test_tokenize_query():
    assert tokenize_query("How do we fund the school? School!") == ["how", "fund", "the", "school"]


def test_score_nodes_orders_by_weighted_matches():
    nodes = [
        ObsidianNode(id=1, title="Garden", path="/garden.md", content="school school"),
        ObsidianNode(id=2, title="School Plan", path="/plan.md", content=""),
        ObsidianNode(id=3, title="Unrelated", path="/x.md", content="nothing"),
        ObsidianNode(id=4, title="Tagged", path="/t.md", tags=["school-life"]),
    ]

    scored = score_nodes(nodes, ["school"], KEYWORD_WEIGHTS)

    assert [(n.id, score) for n, score in scored] == [(2, 3.0), (1, 2.0), (4, 2.0)]


def test_search_caps_content_matches_and_rewards_phrase():
    nodes = [
        ObsidianNode(id=1, title="Notes", path="/a.md", content="water " * 50),
        ObsidianNode(id=2, title="Rain", path="/b.md", content="how we collect rain water"),
    ]

    scored = dict((n.id, s) for n, s in score_nodes(nodes, ["water"], SEARCH_WEIGHTS, phrase="rain water"))

    assert scored[1] == 10
    assert scored[2] == 1 + 20


def test_search_obsidian_nodes(db, service):
    add_node(db, "Community Governance", "/gov.md", content="Voting rules for the community")
    add_node(db, "Garden", "/garden.md", content="Tomatoes")
    add_node(db, "Meeting", "/meeting.md", content="We discussed governance", tags=["community"])

    results = service.search_obsidian_nodes("community governance")

    assert [n.path for n in results] == ["/gov.md", "/meeting.md"]
    assert service.search_obsidian_nodes("a") == []
    assert len(service.search_obsidian_nodes("community governance", limit=1)) == 1


def test_find_relevant_nodes(db, service):
    add_node(db, "Budget", "/budget.md", content="funding funding", tags=["finance"])
    add_node(db, "Finance Sphere", "/fin.md")

    results = service.find_relevant_nodes(["finance", "funding"])

    assert [n.path for n in results] == ["/budget.md", "/fin.md"]
    assert service.find_relevant_nodes(["  "]) == []


# Context digest

def test_context_digest_groups_and_truncates(db, service):
    for i in range(7):
        add_node(db, f"Project {i}", f"/p{i}.md", content="x" * 700, tags=["project"])
    add_node(db, "Thought", "/t.md", content="short", tags=["idea"])

    context = service.get_obsidian_context()

    assert context.startswith("=== OBSIDIAN CONTEXT (8 documents) ===")
    assert "## project (7 documents)" in context
    assert "## idea (1 documents)" in context
    assert context.index("## project") < context.index("## idea")
    assert "Project 4" in context
    assert "Project 5" not in context
    assert "... and 2 more documents in this category" in context
    assert "  Content: " + "x" * 600 + "..." in context
    assert "  Tags: idea" in context


def test_context_without_nodes(service):
    assert service.get_obsidian_context() == NO_DATA_MESSAGE


# Subprompts

def test_embedding_is_normalized():
    vector = generate_embedding("governance policy governance")

    assert len(vector) == 100
    assert sum(v * v for v in vector) == pytest.approx(1.0)
    assert generate_embedding("a an") == [0.0] * 100
    assert cosine_similarity(vector, vector) == pytest.approx(1.0)
    assert cosine_similarity(vector, [0.0] * 100) == 0.0
    assert cosine_similarity(vector, [1.0]) == 0.0


def test_subprompt_seeding_is_idempotent(db):
    subprompts = SubpromptService(db)

    assert subprompts.initialize() == 9
    assert subprompts.initialize() == 0
    names = [s.name for s in subprompts.list_subprompts()]
    assert "Governance Sphere" in names
    governance = db.get_subprompt_by_name("Governance Sphere")
    assert governance.sphere == "Governance"
    assert len(governance.embedding) == 100


def test_subprompt_selection(db):
    subprompts = SubpromptService(db)
    subprompts.initialize()

    selected = subprompts.select_subprompt_record("How should governance policy and voting rules work?")
    assert selected.name == "Governance Sphere"


def test_subprompt_selection_without_match(db):
    subprompts = SubpromptService(db)
    assert subprompts.select_subprompt("How does it work?") == ""

    subprompts.create_subprompt("Alpha", "", ["garden"], "Garden help")
    subprompts.create_subprompt("Beta", "", ["kitchen"], "Kitchen help")

    # Words of two letters or fewer leave the query embedding empty
    assert generate_embedding("Is it ok?") == [0.0] * 100
    assert subprompts.select_subprompt("Is it ok?") == ""


def test_subprompt_keyword_fallback(db):
    subprompts = SubpromptService(db)
    subprompts.create_subprompt("Alpha", "", ["garden"], "Garden help", sphere="Gardening")
    subprompts.create_subprompt("Beta", "", ["kitchen"], "Kitchen help")

    # Long question so no embedding is similar enough
    question = "Tell me many different things about the garden around our shared house today please"
    assert subprompts.select_subprompt(question) == "Garden help"


def test_subprompt_cache_expires(db):
    clock = FakeClock()
    subprompts = SubpromptService(db, clock=clock)
    subprompts.create_subprompt("Alpha", "", ["garden"], "Garden help")
    assert len(subprompts.get_active_subprompts()) == 1

    subprompts.db.add_subprompt(subprompts.db.get_subprompt_by_name("Alpha").model_copy(update={"name": "Beta"}))
    assert len(subprompts.get_active_subprompts()) == 1

    clock.now += 3601
    assert len(subprompts.get_active_subprompts()) == 2


def test_subprompt_update_and_delete(db):
    subprompts = SubpromptService(db)
    created = subprompts.create_subprompt("Alpha", "garden", ["garden"], "Garden help")

    updated = subprompts.update_subprompt(created.id, keywords=["kitchen", "cooking"])
    assert updated.keywords == ["kitchen", "cooking"]
    assert updated.embedding != created.embedding

    deactivated = subprompts.update_subprompt(created.id, active=False)
    assert deactivated.embedding == updated.embedding
    assert subprompts.get_active_subprompts() == []

    assert subprompts.update_subprompt(999, active=True) is None
    assert subprompts.delete_subprompt(created.id)
    assert subprompts.list_subprompts() == []


# LLM client

def test_llm_client_posts_and_logs(db):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"response": "Hello there"})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    with LLMClient(host="http://llm.test", model="tiny", db=db, client=client) as llm:
        answer = llm.generate("Hi", system_prompt="Be brief", purpose="test")

    assert answer == "Hello there"
    (request,) = requests
    assert str(request.url) == "http://llm.test/api/generate"
    payload = json.loads(request.content)
    assert payload["model"] == "tiny"
    assert payload["system"] == "Be brief"
    assert payload["stream"] is False

    (call,) = db.get_llm_calls(purpose="test")
    assert call["success"]
    assert call["raw_response"] == "Hello there"
    assert call["model_name"] == "tiny"


def test_llm_client_errors(db):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(429, text="slow down")))
    llm = LLMClient(host="http://llm.test", db=db, client=client)

    with pytest.raises(LLMError) as excinfo:
        llm.generate("Hi")
    assert excinfo.value.status_code == 429

    def refuse(request):
        raise httpx.ConnectError("connection refused")

    llm.client = httpx.Client(transport=httpx.MockTransport(refuse))
    with pytest.raises(LLMError) as excinfo:
        llm.generate("Hi")
    assert excinfo.value.status_code is None

    calls = db.get_llm_calls()
    assert len(calls) == 2
    assert not any(call["success"] for call in calls)


# Assistant

@pytest.fixture
def rag_parts(db):
    clock = FakeClock()
    subprompts = SubpromptService(db)
    subprompts.initialize()
    return ObsidianService(db), subprompts, clock


def test_rag_query_builds_prompt(db, rag_parts):
    service, subprompts, clock = rag_parts
    add_node(db, "School Funding", "/school.md", content="We need money for the school", tags=["finance"])
    llm = FakeLLM()
    rag = RagService(service, subprompts, llm, clock=clock)

    answer = rag.query("How do we fund the school?", chat_history="user: hi")

    assert answer == "An answer."
    prompt, system_prompt, purpose = llm.prompts[0]
    assert purpose == "rag"
    assert "Ipê Mind Tree assistant" in system_prompt
    assert "### DOCUMENT-1: School Funding" in prompt
    assert "=== OBSIDIAN CONTEXT (1 documents) ===" in prompt
    assert "## Previous conversation history:\nuser: hi" in prompt
    assert prompt.endswith("User question: How do we fund the school?")


def test_rag_search_without_matches(rag_parts):
    service, subprompts, clock = rag_parts
    rag = RagService(service, subprompts, FakeLLM(), clock=clock)

    assert rag.semantic_search_obsidian("nothing here") == NO_RESULTS_MESSAGE


def test_rag_search_truncates_to_budget(db, rag_parts, monkeypatch):
    service, subprompts, clock = rag_parts
    add_node(db, "Long", "/long.md", content="water " * 100)
    rag = RagService(service, subprompts, FakeLLM(), clock=clock)

    from mindtree.config import config
    real_get = config.get
    monkeypatch.setattr(config, "get", lambda key, default=None: 300 if key == "rag.search_char_budget" else real_get(key, default))

    result = rag.semantic_search_obsidian("water")
    assert "[...Document continues but was truncated to save space...]" in result
    assert "water " * 40 not in result


def test_rag_context_is_cached(db, rag_parts):
    service, subprompts, clock = rag_parts
    rag = RagService(service, subprompts, FakeLLM(), clock=clock)

    assert rag.get_obsidian_context() == NO_DATA_MESSAGE
    add_node(db, "New", "/new.md")
    assert rag.get_obsidian_context() == NO_DATA_MESSAGE

    clock.now += 3601
    assert "(1 documents)" in rag.get_obsidian_context()


def test_rag_turns_llm_errors_into_messages(rag_parts):
    service, subprompts, clock = rag_parts
    rag = RagService(service, subprompts, FakeLLM(error=LLMError("busy", status_code=429)), clock=clock)

    answer = rag.query("Anything?")

    assert "temporarily overloaded" in answer
    assert "In the meantime, you can ask about" in answer


def test_rag_empty_answer(rag_parts):
    service, subprompts, clock = rag_parts
    rag = RagService(service, subprompts, FakeLLM(answer="   "), clock=clock)

    assert rag.query("Anything?").startswith("I couldn't generate a proper response")


@pytest.mark.parametrize("status,fragment", [
    (404, "not available"),
    (400, "too complex"),
    (None, "Could not connect"),
    (500, "could not process"),
])
def test_friendly_error(status, fragment):
    assert fragment in friendly_error(LLMError("failed", status_code=status))


@patch("mindtree.services.llm.httpx.Client")
def test_llm_client_default_client_logs_through_database(mock_client):
    mock_response = Mock()
    mock_response.json.return_value = {"response": "Mocked answer"}
    mock_client.return_value.post.return_value = mock_response
    mock_db = MagicMock()

    llm = LLMClient(db=mock_db)
    answer = llm.generate("Question", purpose="rag")

    assert answer == "Mocked answer"
    url = mock_client.return_value.post.call_args[0][0]
    assert url.endswith("/api/generate")
    mock_db.log_llm_call.assert_called_once()
    assert mock_db.log_llm_call.call_args.kwargs["success"] is True


def test_llm_client_leaves_injected_client_open():
    client = Mock()
    with LLMClient(host="http://llm.test", client=client):
        pass
    client.close.assert_not_called()


@patch("mindtree.services.llm.httpx.Client")
def test_llm_client_closes_its_own_client(mock_client):
    with LLMClient(host="http://llm.test"):
        pass
    mock_client.return_value.close.assert_called_once()
