import logging

from crudkit.errors import ErrorCode


def test_health_and_version(client):
    assert client.get("/ping").json() == {"message": "pong"}
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("status") == "ok"

    v = client.get("/version")
    assert v.status_code == 200
    assert v.json().get("app") == "crudkit-api"


def test_create_and_get(client):
    res = client.post("/authors", json={"name": "Carol", "bio": "critic"})
    assert res.status_code == 201
    body = res.json()
    assert body["code"] == 0 and body["message"] == "ok"
    assert set(body) == {"code", "code_desc", "message", "data", "timestamp"}
    new_id = body["data"]["id"]

    got = client.get(f"/authors/{new_id}").json()["data"]
    assert got == {"id": new_id, "name": "Carol", "bio": "critic"}


def test_create_request_validation(client):
    res = client.post("/authors", json={"bio": "no name"})
    assert res.status_code == 400
    assert res.json()["code"] == ErrorCode.INVALID_PARAMS


def test_get_missing(client):
    res = client.get("/authors/99")
    assert res.status_code == 404
    assert res.json()["code"] == ErrorCode.NOT_FOUND


def test_list_with_filters(client, seed):
    res = client.get("/books", params={"title_like": "%Verses", "sort_field": "id", "sort_order": "desc"})
    assert res.status_code == 200
    assert [b["id"] for b in res.json()["data"]] == [2, 1]

    res = client.get("/books", params={"author_id": "2"})
    assert [b["title"] for b in res.json()["data"]] == ["Manual"]

    res = client.get("/books", params={"sort_field": "id", "page": "2", "page_size": "2"})
    assert [b["id"] for b in res.json()["data"]] == [3]


def test_list_projection(client, seed):
    res = client.get("/authors", params={"atts_require": "name", "sort_field": "id"})
    assert res.json()["data"] == [{"name": "Alice"}, {"name": "Bob"}]


def test_rejected_filters(client, seed):
    # bio is a column but not filterable
    res = client.get("/authors", params={"bio": "poet"})
    assert res.status_code == 400
    assert res.json()["code"] == ErrorCode.INVALID_PARAMS
    assert "field not allowed" in res.json()["message"]

    assert client.get("/authors", params={"name_like": "a_b"}).status_code == 400
    assert client.get("/authors", params={"name_like": "%a%b%"}).status_code == 400
    assert client.get("/authors", params={"id_between": "1"}).status_code == 400
    assert client.get("/authors", params={"page": "0"}).status_code == 400
    assert client.get("/authors", params={"sort_field": "id", "sort_order": "up"}).status_code == 400


def test_one_and_count(client, seed):
    assert client.get("/books/one", params={"author_id": "1"}).json()["data"]["id"] == 1
    assert client.get("/books/one", params={"author_id": "7"}).status_code == 404
    assert client.get("/books/count").json()["data"] == {"total": 3}
    assert client.get("/books/count", params={"author_id": "1", "page": "1", "page_size": "1"}).json()["data"] == {"total": 2}


def test_update_partial(client, seed):
    res = client.put("/authors/1", json={"name": "Alicia"})
    assert res.status_code == 200
    assert res.json()["data"] == {"id": 1, "affected": 1}
    got = client.get("/authors/1").json()["data"]
    assert got == {"id": 1, "name": "Alicia", "bio": "poet"}

    client.put("/authors/1", json={"bio": None})
    assert client.get("/authors/1").json()["data"]["bio"] is None


def test_update_errors(client, seed):
    assert client.put("/authors/99", json={"name": "x"}).status_code == 404
    res = client.put("/authors/1", json={})
    assert res.status_code == 400
    assert "no updatable columns" in res.json()["message"]


def test_update_by_filter(client, seed):
    res = client.put("/books", params={"author_id": "1"}, json={"title": "Renamed"})
    assert res.json()["data"] == {"affected": 2}
    # a filter is mandatory over HTTP
    assert client.put("/books", json={"title": "All"}).status_code == 400


def test_batch_endpoints(client, seed):
    res = client.post("/books/batch-get", json={"ids": [1, 3]})
    assert sorted(b["id"] for b in res.json()["data"]) == [1, 3]

    res = client.post("/books/batch-update", json={"ids": [1, 3], "data": {"title": "Same"}})
    assert res.json()["data"] == {"affected": 2}
    assert client.get("/books/3").json()["data"]["title"] == "Same"

    res = client.post("/books/batch-delete", json={"ids": []})
    assert res.status_code == 400
    res = client.post("/books/batch-delete", json={"ids": [1, 2]})
    assert res.json()["data"] == {"affected": 2}


def test_delete(client, seed):
    assert client.delete("/books/3").json()["data"] == {"affected": 1}
    assert client.delete("/books").status_code == 400
    assert client.delete("/books", params={"title": "Verses"}).json()["data"] == {"affected": 1}
    assert client.get("/books/count").json()["data"] == {"total": 1}


def test_author_books(client, seed):
    res = client.get("/authors/1/books")
    data = res.json()["data"]
    assert data["author"]["name"] == "Alice"
    assert [b["id"] for b in data["books"]] == [1, 2]
    assert client.get("/authors/99/books").status_code == 404


def test_store_error_hides_statement(client, seed):
    res = client.post("/books", json={"title": "Orphan", "author_id": 999})
    assert res.status_code == 500
    body = res.json()
    assert body["code"] == ErrorCode.DATABASE
    assert body["message"] == "failed to create row"
    assert "INSERT" not in body["message"]


def test_operation_log(client):
    client.post("/authors", json={"name": "Dan"})
    client.post("/books", json={"title": "Orphan", "author_id": 999})
    res = client.get("/api/logs/search", params={"action": "CREATE_AUTHORS"})
    body = res.json()
    assert body["total"] == 1
    assert body["items"][0]["result"] == "OK"
    assert client.get("/api/logs/search").json()["total"] == 2


def test_operation_log_hides_store_details(client):
    client.post("/books", json={"title": "Orphan", "author_id": 999})
    failed = client.get("/api/logs/search", params={"action": "CREATE_BOOKS"}).json()
    item = failed["items"][0]
    assert item["result"] == "ERROR"
    # driver message (FOREIGN KEY ...) stays in the server log
    assert item["err_msg"] == "failed to create row"


class TestLogSearch:
    """审计日志全文搜索：任意子串，不走过滤参数校验"""

    def test_action_name_with_underscore(self, client):
        client.post("/authors", json={"name": "Dan"})
        client.put("/authors", params={"name": "Dan"}, json={"bio": "x"})
        res = client.get("/api/logs/search", params={"query": "FILTER_UPDATE"})
        assert res.status_code == 200
        body = res.json()
        assert body["total"] == 1
        assert body["items"][0]["action"] == "FILTER_UPDATE_AUTHORS"

    def test_quoted_json_fragment(self, client):
        client.post("/authors", json={"name": "Dan"})
        client.post("/authors", json={"name": "Danielle"})
        res = client.get("/api/logs/search", params={"query": '"name": "Dan"'})
        assert res.status_code == 200
        assert res.json()["total"] == 1

    def test_wildcards_are_literal(self, client):
        client.post("/authors", json={"name": "Dan"})
        assert client.get("/api/logs/search", params={"query": "D%n"}).json()["total"] == 0
        assert client.get("/api/logs/search", params={"query": "D_n"}).json()["total"] == 0
        client.post("/authors", json={"name": "100% D_n"})
        assert client.get("/api/logs/search", params={"query": "100% D_n"}).json()["total"] == 1


def test_request_logging(client, caplog):
    caplog.set_level(logging.INFO, logger="crudkit.api")
    client.get("/health")
    client.get("/authors/99")
    messages = [r.getMessage() for r in caplog.records if r.name == "crudkit.api"]
    assert any(m.startswith("GET /health -> 200 in ") for m in messages)
    assert any(m.startswith("GET /authors/99 -> 404 in ") for m in messages)
