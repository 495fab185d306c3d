"""
Tests for the knowledge base REST API.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from rdf_kb.api import create_app
from rdf_kb.config import KBConfig
from rdf_kb.kb import KnowledgeBase
from rdf_kb.models import RDF_TYPE


@pytest.fixture
def kb():
    config = KBConfig()
    config.embedding.dimension = 32
    knowledge_base = KnowledgeBase.open(config)
    yield knowledge_base
    knowledge_base.close()


@pytest.fixture
def client(kb):
    return TestClient(create_app(kb))


def add(client, subject, predicate, obj, **extra):
    response = client.post("/kb/statements", json={
        "subject": subject, "predicate": predicate, "object": obj, **extra,
    })
    assert response.status_code == 200
    return response.json()["id"]


class TestStatementEndpoints:
    """Test statement CRUD over HTTP."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_insert_and_get(self, client):
        sid = add(client, "ex:alice", "a", "ex:Person")
        response = client.get(f"/kb/statements/{sid}")
        assert response.status_code == 200
        data = response.json()
        assert data["predicate"] == RDF_TYPE
        assert data["term_type"] == "NamedNode"

    def test_insert_is_idempotent(self, client):
        first = add(client, "ex:s", "ex:p", "ex:o")
        second = add(client, "ex:s", "ex:p", "ex:o")
        assert first == second

    def test_literal_fields(self, client):
        sid = add(client, "ex:bob", "ex:name", "Bob", term_type="Literal", object_language="en")
        data = client.get(f"/kb/statements/{sid}").json()
        assert data["term_type"] == "Literal"
        assert data["object_language"] == "en"

    def test_invalid_term_type(self, client):
        response = client.post("/kb/statements", json={
            "subject": "ex:s", "predicate": "ex:p", "object": "x", "term_type": "Number",
        })
        assert response.status_code == 422

    def test_get_missing(self, client):
        assert client.get("/kb/statements/9999").status_code == 404

    def test_select(self, client):
        alice = add(client, "ex:alice", "ex:knows", "ex:bob")
        add(client, "ex:bob", "ex:knows", "ex:carol")
        response = client.get("/kb/statements", params={"subject": "ex:alice"})
        data = response.json()
        assert data["count"] == 1
        assert data["statements"][0]["id"] == alice

    def test_select_alias_does_not_match(self, client):
        add(client, "ex:alice", "a", "ex:Person")
        assert client.get("/kb/statements", params={"predicate": "a"}).json()["count"] == 0

    def test_batch(self, client):
        response = client.post("/kb/statements/batch", json={"statements": [
            {"subject": "ex:a", "predicate": "ex:p", "object": "ex:o"},
            {"subject": "ex:b", "predicate": "ex:p", "object": "ex:o"},
        ]})
        assert response.status_code == 200
        assert response.json()["count"] == 2

    def test_delete(self, client):
        sid = add(client, "ex:s", "ex:p", "ex:o")
        assert client.delete(f"/kb/statements/{sid}").status_code == 200
        assert client.get(f"/kb/statements/{sid}").status_code == 404
        assert client.delete(f"/kb/statements/{sid}").status_code == 404

    def test_chunks(self, client):
        sid = add(client, "ex:AI", "rdfs:label", "Artificial Intelligence", term_type="Literal")
        data = client.get(f"/kb/statements/{sid}/chunks").json()
        assert data["count"] == 2
        assert data["chunks"][0]["content"] == "Artificial Intelligence"
        assert data["chunks"][0]["embedded"] is True

    def test_without_chunks(self, client):
        sid = add(client, "ex:s", "ex:p", "ex:o", with_chunks=False)
        assert client.get(f"/kb/statements/{sid}/chunks").json()["count"] == 0

    def test_chunks_missing_statement(self, client):
        assert client.get("/kb/statements/9999/chunks").status_code == 404

    def test_lookups_run_off_the_event_loop(self, client, kb, monkeypatch):
        """Statement and chunk lookups are handed to a worker thread."""
        offloaded = []
        original = asyncio.to_thread

        async def recording_to_thread(func, *args, **kwargs):
            offloaded.append(func)
            return await original(func, *args, **kwargs)

        monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)
        sid = add(client, "ex:s", "ex:p", "ex:o")
        offloaded.clear()

        assert client.get(f"/kb/statements/{sid}").status_code == 200
        assert client.get(f"/kb/statements/{sid}/chunks").status_code == 200
        assert offloaded == [kb.get_statement, kb.get_statement, kb.chunks_for_statement]

    def test_rechunk(self, client):
        sid = add(client, "ex:s", "ex:p", "ex:o", with_chunks=False)
        response = client.post(f"/kb/statements/{sid}/rechunk")
        assert response.status_code == 200
        assert response.json()["count"] > 0
        assert client.post("/kb/statements/9999/rechunk").status_code == 404


class TestSearchEndpoints:
    """Test search over HTTP."""

    @pytest.fixture
    def seeded(self, client):
        ai = add(client, "ex:AI", "rdfs:label", "Artificial Intelligence", term_type="Literal")
        add(client, "ex:Banana", "rdfs:label", "Banana", term_type="Literal")
        return client, ai

    def test_search(self, seeded):
        client, ai = seeded
        response = client.post("/kb/search", json={"query": "intelligence", "limit": 5})
        assert response.status_code == 200
        data = response.json()
        assert data["results"][0]["id"] == ai
        assert data["results"][0]["score"] > 0
        assert data["stats"]["lexical_candidates"] > 0

    def test_search_with_vector(self, seeded):
        client, ai = seeded
        response = client.post("/kb/search", json={"query": "intelligence", "vector": [0.0] * 32})
        assert response.status_code == 200
        assert [r["id"] for r in response.json()["results"]] == [ai]

    def test_dimension_mismatch_is_400(self, seeded):
        client, _ = seeded
        response = client.post("/kb/search", json={"query": "intelligence", "vector": [1.0, 0.0]})
        assert response.status_code == 400

    def test_empty_query_is_400(self, seeded):
        client, _ = seeded
        assert client.post("/kb/search", json={"query": ""}).status_code == 400

    def test_invalid_k_is_422(self, seeded):
        client, _ = seeded
        assert client.post("/kb/search", json={"query": "x", "k": 0}).status_code == 422

    def test_documents(self, client):
        doc_id = client.post("/kb/documents", json={"content": "DuckDB embedded database"}).json()["id"]
        response = client.post("/kb/documents/search", json={"query": "database"})
        assert response.status_code == 200
        assert response.json()["results"][0]["id"] == doc_id

        assert client.delete(f"/kb/documents/{doc_id}").status_code == 200
        assert client.delete(f"/kb/documents/{doc_id}").status_code == 404

    def test_stats(self, seeded):
        client, _ = seeded
        data = client.get("/kb/stats").json()
        assert data["statements"] == 2
        assert data["chunks"] == 4
