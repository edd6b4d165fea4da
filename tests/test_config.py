from pathlib import Path

import pytest
from pydantic import ValidationError

from docscan_ai.config import (
    ApiKeyConfig,
    ModelsConfig,
    Settings,
    create_default_config,
    load_config,
)
from docscan_ai.llm.factory import LLMProviderType


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("API_KEYS", "DOCSCAN_API_KEY_1", "DOCSCAN_API_KEY_2"):
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_default_values(self) -> None:
        settings = Settings()

        assert settings.provider.type == LLMProviderType.OPENROUTER
        assert settings.processing.max_retries == 3
        assert settings.cache.ttl.days == 30
        assert settings.cache.max_entries == 10_000
        assert settings.credentials.cooldown.total_seconds() == 300
        assert settings.models.default_ocr_model in settings.models.valid_models
        assert settings.credentials.api_keys == []

    def test_paths_are_absolute(self) -> None:
        paths = Settings().paths

        assert paths.database_path.is_absolute()
        assert paths.input_dir.is_absolute()

    def test_default_database_follows_working_directory_at_load(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)

        assert Settings().paths.database_path == tmp_path.resolve() / "docscan.db"

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        settings = Settings.from_yaml(tmp_path / "nope.yaml")
        assert settings.processing.target_language == "ar"


class TestYaml:
    def test_sections_are_loaded(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            """
provider:
  type: deepinfra
processing:
  max_retries: 1
  translate: false
cache:
  max_entries: 50
""",
        )

        settings = Settings.from_yaml(path)

        assert settings.provider.type == LLMProviderType.DEEPINFRA
        assert settings.processing.max_retries == 1
        assert settings.processing.translate is False
        assert settings.cache.max_entries == 50

    def test_env_vars_are_substituted_in_lists(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("DOCSCAN_API_KEY_1", "sk-from-env")
        path = _write(
            tmp_path,
            """
credentials:
  api_keys:
    - key: ${DOCSCAN_API_KEY_1}
      label: primary
""",
        )

        settings = Settings.from_yaml(path)

        assert settings.credentials.api_keys == [ApiKeyConfig(key="sk-from-env", label="primary")]

    def test_default_config_file_loads(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("DOCSCAN_API_KEY_1", "sk-one")
        path = tmp_path / "nested" / "config.yaml"

        create_default_config(path)
        settings = load_config(path)

        assert [k.label for k in settings.credentials.api_keys] == ["primary"]
        assert settings.logging.level == "INFO"

    def test_invalid_value_is_rejected(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "processing:\n  max_retries: -1\n")

        with pytest.raises(ValidationError):
            Settings.from_yaml(path)


class TestApiKeysFallback:
    def test_comma_separated_env_keys(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("API_KEYS", "sk-a, sk-b,,")

        keys = Settings().credentials.api_keys

        assert [(k.key, k.label) for k in keys] == [("sk-a", "env-1"), ("sk-b", "env-2")]

    def test_unset_substitution_falls_back_to_env(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("API_KEYS", "sk-a")
        path = _write(tmp_path, "credentials:\n  api_keys:\n    - key: ${DOCSCAN_API_KEY_1}\n")

        keys = Settings.from_yaml(path).credentials.api_keys

        assert [k.key for k in keys] == ["sk-a"]

    def test_configured_keys_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("API_KEYS", "sk-env")

        settings = Settings(credentials={"api_keys": [{"key": "sk-config"}]})

        assert [k.key for k in settings.credentials.api_keys] == ["sk-config"]

    def test_repr_hides_keys(self) -> None:
        assert "sk-secret" not in repr(ApiKeyConfig(key="sk-secret", label="x"))


class TestModels:
    def test_default_must_be_listed(self) -> None:
        with pytest.raises(ValidationError, match="default_ocr_model"):
            ModelsConfig(valid_models=["a"], default_ocr_model="b", default_translation_model="a")

    def test_resolve(self) -> None:
        models = ModelsConfig(
            valid_models=["a", "b"], default_ocr_model="a", default_translation_model="a"
        )

        assert models.resolve(None, "a") == "a"
        assert models.resolve("", "a") == "a"
        assert models.resolve("b", "a") == "b"
        with pytest.raises(ValueError, match="Unknown model"):
            models.resolve("c", "a")


class TestLogging:
    def test_level_is_normalized(self) -> None:
        assert Settings(logging={"level": "warning"}).logging.level == "WARNING"

    def test_invalid_level(self) -> None:
        with pytest.raises(ValidationError):
            Settings(logging={"level": "LOUD"})
