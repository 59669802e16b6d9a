import json

from wasm2openapi import models
from wasm2openapi.core.extractor import load
from wasm2openapi.core.schema import OPENAPI_VERSION, build_document, function_paths, slugify, split_docs
from wasm2openapi.models import ComponentInterface, FunctionDescriptor, Param, TypeDefinition, TypeDefinitions


class TestBuildDocument:
    def test_add(self, add_binary: bytes) -> None:
        document = build_document(load(add_binary))
        assert document["openapi"] == OPENAPI_VERSION
        assert document["info"]["title"] == "WASM Component API"
        operation = document["paths"]["/add"]["post"]
        assert operation["operationId"] == "add"
        request = operation["requestBody"]["content"]["application/json"]["schema"]
        assert request["required"] == ["a", "b"]
        assert request["properties"]["a"]["format"] == "int32"
        response = operation["responses"]["200"]["content"]["application/json"]["schema"]
        assert list(response["properties"]) == ["result0"]
        assert set(operation["responses"]) == {"200", "400", "500", "504"}

    def test_is_deterministic(self, add_binary: bytes) -> None:
        first = json.dumps(build_document(load(add_binary)))
        second = json.dumps(build_document(load(add_binary)))
        assert first == second

    def test_error_schema_is_last(self) -> None:
        point = models.Record((models.Field("x", models.S32()),))
        iface = ComponentInterface(
            functions=(FunctionDescriptor("origin", results=(Param(None, models.Named("p", "point")),)),),
            definitions=TypeDefinitions({"p": TypeDefinition("p", "point", point)}),
        )
        schemas = build_document(iface)["components"]["schemas"]
        assert list(schemas) == ["point", "Error"]
        assert schemas["Error"]["required"] == ["kind", "message"]

    def test_servers_and_info(self) -> None:
        iface = ComponentInterface(functions=(), docs="A calculator.")
        document = build_document(iface, servers=["http://127.0.0.1:8080"], info={"version": "2.0"})
        assert document["servers"] == [{"url": "http://127.0.0.1:8080"}]
        assert document["info"]["description"] == "A calculator."
        assert document["info"]["version"] == "2.0"
        assert document["paths"] == {}

    def test_function_docs_split_into_summary_and_description(self) -> None:
        fn = FunctionDescriptor("add", docs="Adds two numbers.\n\nWraps on overflow.")
        operation = build_document(ComponentInterface(functions=(fn,)))["paths"]["/add"]["post"]
        assert operation["summary"] == "Adds two numbers."
        assert operation["description"] == "Wraps on overflow."

    def test_interface_functions_are_tagged(self) -> None:
        fn = FunctionDescriptor("add", interface="example:calc/math@1.0.0")
        document = build_document(ComponentInterface(functions=(fn,)))
        operation = document["paths"]["/example-calc-math-1-0-0/add"]["post"]
        assert operation["tags"] == ["example:calc/math@1.0.0"]
        assert operation["operationId"] == "example-calc-math-1-0-0-add"


class TestPaths:
    def test_slugify(self) -> None:
        assert slugify("[method]counter.get") == "method-counter-get"
        assert slugify("Get_Value") == "get-value"
        assert slugify("!!") == "fn"

    def test_colliding_slugs_are_suffixed(self) -> None:
        iface = ComponentInterface(functions=(FunctionDescriptor("get-value"), FunctionDescriptor("get_value")))
        paths = function_paths(iface)
        assert list(paths) == ["/get-value", "/get-value-2"]
        assert paths["/get-value-2"].name == "get_value"

    def test_split_docs(self) -> None:
        assert split_docs(None) == (None, None)
        assert split_docs("  One line. ") == ("One line.", None)
