import pytest

from regexmux.route import FrozenDict, Method, Route, RouteTable


def test_route_compile_group_names() -> None:
    route = Route.compile(r"^/(?P<org>[a-z]+)/(\d+)/(?P<repo>[a-z]+)(/.*)?$")
    assert route.pattern == r"^/(?P<org>[a-z]+)/(\d+)/(?P<repo>[a-z]+)(/.*)?$"
    assert route.group_names == ("org", None, "repo", None)
    assert route.handlers == {}


def test_route_compile_invalid_pattern_raises() -> None:
    with pytest.raises(ValueError, match="invalid route pattern"):
        Route.compile(r"^/(unclosed$")


def test_route_with_handler_does_not_mutate() -> None:
    get_handler = lambda: "get"  # noqa: E731
    route = Route.compile("^/$")
    updated = route.with_handler(Method.GET, get_handler)
    assert route.handlers == {}
    assert updated.handlers == {Method.GET: get_handler}
    assert updated.regex is route.regex


def test_frozen_dict_is_immutable() -> None:
    d = FrozenDict({"a": "1"})
    with pytest.raises(TypeError, match="FrozenDict is immutable"):
        d["b"] = "2"
    with pytest.raises(TypeError, match="FrozenDict is immutable"):
        d.update({"b": "2"})
    assert d == {"a": "1"}


def test_table_add_appends_in_order() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.GET, "^/a$", "a")
    table.add(Method.GET, "^/b$", "b")
    table.add(Method.GET, "^/c$", "c")
    assert [r.pattern for r in table] == ["^/a$", "^/b$", "^/c$"]


def test_table_add_merges_same_pattern_in_place() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.GET, "^/path$", "get path")
    table.add(Method.GET, "^/other$", "other")
    table.add(Method.POST, "^/path$", "post path")
    assert len(table) == 2
    assert [r.pattern for r in table] == ["^/path$", "^/other$"]
    assert table.routes[0].handlers == {
        Method.GET: "get path",
        Method.POST: "post path",
    }


def test_table_add_overwrites_method() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.GET, "^/path$", "first")
    table.add(Method.GET, "^/path$", "second")
    assert len(table) == 1
    assert table.routes[0].handlers == {Method.GET: "second"}


def test_table_add_keeps_previous_snapshot() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.GET, "^/a$", "a")
    snapshot = table.routes
    table.add(Method.POST, "^/a$", "post a")
    table.add(Method.GET, "^/b$", "b")
    assert len(snapshot) == 1
    assert snapshot[0].handlers == {Method.GET: "a"}


def test_table_add_invalid_pattern_leaves_table_unchanged() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.GET, "^/a$", "a")
    with pytest.raises(ValueError, match="invalid route pattern"):
        table.add(Method.GET, "^/[a-", "broken")
    assert [r.pattern for r in table] == ["^/a$"]


def test_match_no_route() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.GET, "^/a$", "a")
    assert table.match("/b", "GET") is None


def test_match_first_wins() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.GET, "^/user/(?P<id>.+)$", "by id")
    table.add(Method.GET, "^/user/me$", "me")
    found = table.match("/user/me", "GET")
    assert found is not None
    assert found.handler == "by id"
    assert found.params == {"id": "me"}


def test_match_first_wins_even_without_method() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.GET, "^/path$", "get path")
    table.add(Method.POST, "^/pa.h$", "post path")
    found = table.match("/path", "POST")
    assert found is not None
    assert found.route.pattern == "^/path$"
    assert found.handler is None


def test_match_method_falls_back_to_all() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.ALL, "^/any$", "any")
    table.add(Method.DELETE, "^/any$", "delete")
    found = table.match("/any", "OPTIONS")
    assert found is not None
    assert found.handler == "any"
    found = table.match("/any", "DELETE")
    assert found is not None
    assert found.handler == "delete"


def test_match_unknown_method_uses_all() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.ALL, "^/dav$", "dav")
    found = table.match("/dav", "PROPFIND")
    assert found is not None
    assert found.handler == "dav"


def test_match_extension_method_entry() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.ALL, "^/dav$", "dav")
    table.add("PROPFIND", "^/dav$", "propfind")
    found = table.match("/dav", "PROPFIND")
    assert found is not None
    assert found.handler == "propfind"
    found = table.match("/dav", "MKCOL")
    assert found is not None
    assert found.handler == "dav"


def test_match_is_unanchored_search() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.GET, "/(?P<var1>.*)/(?P<var2>.*)/path$", "vars")
    found = table.match("/foo/bar/path", "GET")
    assert found is not None
    assert found.params == {"var1": "foo", "var2": "bar"}


def test_match_named_and_unnamed_captures() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.GET, r"^/(?P<org>[a-z]+)/(\d+)/(?P<repo>[a-z]+)/(.*)$", "h")
    found = table.match("/acme/42/widgets/readme.md", "GET")
    assert found is not None
    assert found.params == {"org": "acme", "repo": "widgets"}
    assert found.unnamed == ("42", "readme.md")


def test_match_unmatched_optional_group_is_empty() -> None:
    table: RouteTable[str] = RouteTable()
    table.add(Method.GET, r"^/files(?P<sub>/[a-z]+)?(/.*)?$", "files")
    found = table.match("/files", "GET")
    assert found is not None
    assert found.params == {"sub": ""}
    assert found.unnamed == ("",)


def test_method_enum_compares_with_strings() -> None:
    assert Method("GET") is Method.GET
    assert Method.GET == "GET"
    assert {Method.PATCH: 1}.get("PATCH") == 1
    assert repr(Method.ALL) == "ALL"
    with pytest.raises(ValueError):
        Method("WEBSOCKET")
