import pytest

from wasm2openapi.settings import InstancePolicy, Settings, get_settings


class TestGetSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("HOST", "PORT", "POLICY", "TIMEOUT", "EPOCH_TICK_MS", "WASI"):
            monkeypatch.delenv(f"WASM2OPENAPI_{name}", raising=False)
        assert get_settings() == Settings()
        assert Settings().policy is InstancePolicy.SHARED

    def test_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WASM2OPENAPI_HOST", "0.0.0.0")
        monkeypatch.setenv("WASM2OPENAPI_PORT", "3000")
        monkeypatch.setenv("WASM2OPENAPI_POLICY", "per-request")
        monkeypatch.setenv("WASM2OPENAPI_TIMEOUT", "0.25")
        monkeypatch.setenv("WASM2OPENAPI_WASI", "off")
        settings = get_settings()
        assert settings.base_url == "http://0.0.0.0:3000"
        assert settings.policy is InstancePolicy.PER_REQUEST
        assert settings.timeout == 0.25
        assert settings.wasi is False

    @pytest.mark.parametrize(
        ("name", "value"),
        [("PORT", "http"), ("TIMEOUT", "0"), ("TIMEOUT", "-1"), ("POLICY", "pooled"), ("WASI", "maybe")],
    )
    def test_invalid_values_name_the_variable(self, monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
        monkeypatch.setenv(f"WASM2OPENAPI_{name}", value)
        with pytest.raises(ValueError, match=f"WASM2OPENAPI_{name}"):
            get_settings()


class TestOverrides:
    def test_none_keeps_value(self) -> None:
        settings = Settings(port=1234).with_overrides(port=None, timeout=1.0)
        assert settings.port == 1234
        assert settings.timeout == 1.0

    @pytest.mark.parametrize("overrides", [{"timeout": 0}, {"timeout": -2.5}, {"epoch_tick_ms": 0}, {"port": 70000}])
    def test_overrides_are_validated(self, overrides: dict[str, object]) -> None:
        with pytest.raises(ValueError):
            Settings().with_overrides(**overrides)
