"""Tests for search index backends and the OpenSearch query builder."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from opensearchpy.exceptions import ConnectionError as OpenSearchConnectionError
from opensearchpy.exceptions import NotFoundError, RequestError

from memosync.errors import IndexUnavailable
from memosync.index.base import SearchIndex, TITLE_BOOST, tokenize
from memosync.index.memory import InMemorySearchIndex, score
from memosync.index.opensearch import INDEX_BODY, OpenSearchIndex, build_query
from memosync.memo import Memo

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def memo(memo_id: str, title: str, content: str = "", tags=(), owner: str = "u1", minutes: int = 0) -> Memo:
    return Memo.create(title, content, list(tags), owner, id=memo_id, now=T0 + timedelta(minutes=minutes))


class TestTokenize:
    def test_lowercases_and_splits_on_punctuation(self):
        assert tokenize("Buy MILK, eggs!") == ["buy", "milk", "eggs"]

    def test_unicode_words(self):
        assert tokenize("Café 牛乳") == ["café", "牛乳"]

    def test_title_weighs_more(self):
        in_title = memo("a", "milk", "")
        in_content = memo("b", "", "milk")
        assert score(in_title, ["milk"]) == TITLE_BOOST * score(in_content, ["milk"])


class TestInMemorySearchIndex:
    def test_implements_protocol(self):
        assert isinstance(InMemorySearchIndex(), SearchIndex)

    @pytest.mark.asyncio
    async def test_title_match_ranks_first(self):
        index = InMemorySearchIndex()
        await index.index(memo("content", "Shopping", "buy milk", minutes=10))
        await index.index(memo("title", "Milk run", "corner store"))

        results = await index.search("milk", None, "u1")

        assert [m.id for m in results] == ["title", "content"]

    @pytest.mark.asyncio
    async def test_ties_broken_by_recency(self):
        index = InMemorySearchIndex()
        await index.index(memo("old", "milk", minutes=0))
        await index.index(memo("new", "milk", minutes=5))

        results = await index.search("milk", None, "u1")

        assert [m.id for m in results] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_non_matching_excluded(self):
        index = InMemorySearchIndex()
        await index.index(memo("a", "Groceries", "milk"))
        await index.index(memo("b", "Taxes", "receipts"))

        assert [m.id for m in await index.search("milk", None, "u1")] == ["a"]

    @pytest.mark.asyncio
    async def test_empty_query_returns_all_owned_newest_first(self):
        index = InMemorySearchIndex()
        await index.index(memo("a", "first", minutes=1))
        await index.index(memo("b", "second", minutes=3))
        await index.index(memo("c", "third", minutes=2))
        await index.index(memo("x", "other", owner="u2", minutes=9))

        for query in ("", "   ", "?!"):
            results = await index.search(query, None, "u1")
            assert [m.id for m in results] == ["b", "c", "a"]

    @pytest.mark.asyncio
    async def test_owner_isolation(self):
        index = InMemorySearchIndex()
        await index.index(memo("mine", "milk", owner="u1"))
        await index.index(memo("theirs", "milk", owner="u2"))

        assert [m.id for m in await index.search("milk", None, "u1")] == ["mine"]
        assert [m.id for m in await index.search("milk", None, "u2")] == ["theirs"]

    @pytest.mark.asyncio
    async def test_tag_filter_is_exact(self):
        index = InMemorySearchIndex()
        await index.index(memo("a", "milk", tags=["home"]))
        await index.index(memo("b", "milk", tags=["homework"]))

        results = await index.search("milk", "home", "u1")

        assert [m.id for m in results] == ["a"]

    @pytest.mark.asyncio
    async def test_reindex_replaces_document(self):
        index = InMemorySearchIndex()
        original = memo("a", "milk")
        await index.index(original)
        await index.index(original.edit(title="bread"))

        assert await index.search("milk", None, "u1") == []
        assert [m.version for m in await index.search("bread", None, "u1")] == [2]

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self):
        index = InMemorySearchIndex()
        await index.delete("nope")

    @pytest.mark.asyncio
    async def test_max_results(self):
        index = InMemorySearchIndex(max_results=2)
        for i in range(5):
            await index.index(memo(f"m{i}", "milk", minutes=i))

        assert len(await index.search("milk", None, "u1")) == 2


class TestBuildQuery:
    def test_text_query(self):
        body = build_query("milk", None, "u1", size=20)
        bool_query = body["query"]["bool"]

        assert bool_query["filter"] == [{"term": {"owner_id": "u1"}}]
        assert {"match": {"title": {"query": "milk", "boost": TITLE_BOOST}}} in bool_query["should"]
        assert {"match": {"content": {"query": "milk"}}} in bool_query["should"]
        assert bool_query["minimum_should_match"] == 1
        assert body["sort"][0] == "_score"
        assert body["sort"][1] == {"updated_at": {"order": "desc"}}
        assert body["size"] == 20

    def test_tag_filter(self):
        body = build_query("milk", "home", "u1")
        assert {"term": {"tags": "home"}} in body["query"]["bool"]["filter"]

    def test_empty_query_sorts_by_recency_only(self):
        body = build_query("  ", None, "u1")
        assert body["query"]["bool"]["should"] == []
        assert body["query"]["bool"]["minimum_should_match"] == 0
        assert body["sort"] == [{"updated_at": {"order": "desc"}}]

    @pytest.mark.parametrize("query", ["!!!", "  ", "?! ..."])
    def test_query_without_words_is_empty(self, query):
        body = build_query(query, None, "u1")
        assert body["query"]["bool"]["should"] == []
        assert body["query"]["bool"]["minimum_should_match"] == 0
        assert body["sort"] == [{"updated_at": {"order": "desc"}}]

    @pytest.mark.asyncio
    async def test_agrees_with_in_memory_index_on_wordless_query(self):
        index = InMemorySearchIndex()
        await index.index(memo("a", "Groceries", "milk"))

        body = build_query("!!!", None, "u1")

        assert len(await index.search("!!!", None, "u1")) == 1
        assert body["query"]["bool"]["minimum_should_match"] == 0

    def test_owner_always_filtered(self):
        body = build_query("", "work", "u9")
        assert {"term": {"owner_id": "u9"}} in body["query"]["bool"]["filter"]


def _opensearch_index(**kwargs) -> tuple[OpenSearchIndex, AsyncMock]:
    client = AsyncMock()
    return OpenSearchIndex(client=client, **kwargs), client


def _hit(m: Memo) -> dict:
    return {"_id": m.id, "_source": m.to_dict()}


class TestOpenSearchIndex:
    def test_implements_protocol(self):
        index, _ = _opensearch_index()
        assert isinstance(index, SearchIndex)
        assert index.name == "opensearch"

    @pytest.mark.asyncio
    async def test_ensure_index_creates_when_missing(self):
        index, client = _opensearch_index(index_name="test-memos")
        client.indices.exists.return_value = False

        await index.ensure_index()

        client.indices.create.assert_awaited_once_with(index="test-memos", body=INDEX_BODY)

    @pytest.mark.asyncio
    async def test_ensure_index_skips_existing(self):
        index, client = _opensearch_index()
        client.indices.exists.return_value = True

        await index.ensure_index()

        client.indices.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ensure_index_tolerates_creation_race(self):
        index, client = _opensearch_index()
        client.indices.exists.return_value = False
        client.indices.create.side_effect = RequestError(400, "resource_already_exists_exception", {})

        await index.ensure_index()

    @pytest.mark.asyncio
    async def test_ensure_index_unreachable(self):
        index, client = _opensearch_index()
        client.indices.exists.side_effect = OpenSearchConnectionError("N/A", "refused", Exception())

        with pytest.raises(IndexUnavailable):
            await index.ensure_index()

    @pytest.mark.asyncio
    async def test_index_upserts_by_id(self):
        index, client = _opensearch_index(index_name="test-memos")
        m = memo("m1", "Groceries", "milk", tags=["home"])

        await index.index(m)

        client.index.assert_awaited_once_with(
            index="test-memos", id="m1", body=m.to_dict(), refresh=True
        )

    @pytest.mark.asyncio
    async def test_index_failure(self):
        index, client = _opensearch_index()
        client.index.side_effect = OpenSearchConnectionError("N/A", "refused", Exception())

        with pytest.raises(IndexUnavailable):
            await index.index(memo("m1", "x"))

    @pytest.mark.asyncio
    async def test_delete_missing_document_is_noop(self):
        index, client = _opensearch_index()
        client.delete.side_effect = NotFoundError(404, "not_found", {})

        await index.delete("m1")

    @pytest.mark.asyncio
    async def test_search_parses_hits(self):
        index, client = _opensearch_index(max_results=7)
        a, b = memo("a", "milk"), memo("b", "bread", "milk")
        client.search.return_value = {"hits": {"hits": [_hit(a), _hit(b)]}}

        results = await index.search("milk", "home", "u1")

        assert results == [a, b]
        kwargs = client.search.await_args.kwargs
        assert kwargs["body"] == build_query("milk", "home", "u1", 7)

    @pytest.mark.asyncio
    async def test_search_skips_malformed_documents(self):
        index, client = _opensearch_index()
        good = memo("a", "milk")
        client.search.return_value = {
            "hits": {"hits": [{"_id": "broken", "_source": {"title": "x"}}, _hit(good)]}
        }

        assert await index.search("milk", None, "u1") == [good]

    @pytest.mark.asyncio
    async def test_search_missing_index_is_empty(self):
        index, client = _opensearch_index()
        client.search.side_effect = NotFoundError(404, "index_not_found_exception", {})

        assert await index.search("milk", None, "u1") == []

    @pytest.mark.asyncio
    async def test_search_unreachable(self):
        index, client = _opensearch_index()
        client.search.side_effect = OpenSearchConnectionError("N/A", "refused", Exception())

        with pytest.raises(IndexUnavailable):
            await index.search("milk", None, "u1")

    @pytest.mark.asyncio
    async def test_search_bad_response(self):
        index, client = _opensearch_index()
        client.search.return_value = {"unexpected": True}

        with pytest.raises(IndexUnavailable):
            await index.search("milk", None, "u1")

    @pytest.mark.asyncio
    async def test_ping_failure_is_false(self):
        index, client = _opensearch_index()
        client.ping.side_effect = OpenSearchConnectionError("N/A", "refused", Exception())

        assert await index.ping() is False
