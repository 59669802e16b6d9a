import pytest

from wasm2openapi.core.handles import ResourceHandleTable
from wasm2openapi.errors import UnknownResourceHandle
from wasm2openapi.models import Resource

COUNTER = Resource("r0", "counter")
FILE = Resource("r1", "file")


class TestResourceHandleTable:
    def test_mint_and_lookup(self) -> None:
        table = ResourceHandleTable()
        handle = object()
        token = table.mint(handle, COUNTER)
        assert token.startswith("counter-")
        assert token in table
        assert table.lookup(token, COUNTER) is handle

    def test_same_handle_same_token(self) -> None:
        table = ResourceHandleTable()
        handle = object()
        assert table.mint(handle, COUNTER) == table.mint(handle, COUNTER)
        assert len(table) == 1

    def test_distinct_handles_get_distinct_tokens(self) -> None:
        table = ResourceHandleTable()
        assert table.mint(object(), COUNTER) != table.mint(object(), COUNTER)

    def test_unknown_token(self) -> None:
        with pytest.raises(UnknownResourceHandle) as excinfo:
            ResourceHandleTable().lookup("counter-nope", COUNTER, ("c",))
        assert excinfo.value.to_dict()["path"] == "/c"

    def test_wrong_resource_type(self) -> None:
        table = ResourceHandleTable()
        token = table.mint(object(), COUNTER)
        with pytest.raises(UnknownResourceHandle):
            table.lookup(token, FILE)

    def test_tokens_do_not_cross_tables(self) -> None:
        token = ResourceHandleTable().mint(object(), COUNTER)
        with pytest.raises(UnknownResourceHandle):
            ResourceHandleTable().lookup(token, COUNTER)

    def test_close_invalidates_tokens(self) -> None:
        table = ResourceHandleTable()
        handle = object()
        token = table.mint(handle, COUNTER)
        assert table.close() == [handle]
        assert table.closed
        with pytest.raises(UnknownResourceHandle):
            table.lookup(token, COUNTER)
        with pytest.raises(RuntimeError):
            table.mint(object(), COUNTER)

    def test_forget(self) -> None:
        table = ResourceHandleTable()
        handle = object()
        token = table.mint(handle, COUNTER)
        table.forget(token)
        assert token not in table
        with pytest.raises(UnknownResourceHandle):
            table.lookup(token, COUNTER)
        # the same handle coming back is a new resource to the client
        assert table.mint(handle, COUNTER) != token

    def test_forget_unknown_token_is_a_no_op(self) -> None:
        table = ResourceHandleTable()
        table.mint(object(), COUNTER)
        table.forget("counter-nope")
        assert len(table) == 1
