"""
Unit tests for configuration loading.

Tests cover:
- ConfigService YAML loading, merging and validation
- config_access helpers
- read_secret
"""
import pytest

from fluxion.utils import config_access
from fluxion.utils.config_service import ConfigService, ConfigValidationError, DEFAULT_CONFIG_PATH
from fluxion.utils.env import read_secret, require_secrets


@pytest.fixture
def restore_config_service():
    yield
    config_access.set_config_service(None)


# =============================================================================
# ConfigService Tests
# =============================================================================

class TestConfigService:

    def test_packaged_config_loads(self):
        static = ConfigService(DEFAULT_CONFIG_PATH).get_static_config()

        assert static.deployment_name == "fluxion"
        assert static.services_config["chat_app"]["default_model"] == "gemini-2.0-flash"
        assert static.data_manager_config["chunk_size"] == 256
        assert static.data_manager_config["chunk_overlap"] == 20

    def test_yaml_overrides_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "name: staging\n"
            "services:\n"
            "  postgres:\n"
            "    host: db.internal\n"
        )

        static = ConfigService(path).get_static_config()

        assert static.deployment_name == "staging"
        assert static.services_config["postgres"]["host"] == "db.internal"
        # untouched defaults survive the merge
        assert static.services_config["postgres"]["port"] == 5432
        assert static.services_config["web_search"]["gl"] == "us"

    def test_missing_file_uses_defaults(self, tmp_path):
        static = ConfigService(tmp_path / "absent.yaml").get_static_config()
        assert static.services_config["chat_app"]["default_provider"] == "gemini"

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("name: from-env\n")
        monkeypatch.setenv("FLUXION_CONFIG", str(path))

        assert ConfigService().get_static_config().deployment_name == "from-env"

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigValidationError):
            ConfigService(path).get_static_config()

    @pytest.mark.parametrize("override,field", [
        ({"global": {"verbosity": 7}}, "global.verbosity"),
        ({"data_manager": {"chunk_overlap": 300}}, "data_manager.chunk_overlap"),
        ({"data_manager": {"chunk_size": 0}}, "data_manager.chunk_size"),
        ({"data_manager": {"embedding_name": "Nope"}}, "data_manager.embedding_name"),
        ({"data_manager": {"num_documents_to_retrieve": 0}}, "data_manager.num_documents_to_retrieve"),
        ({"services": {"chat_app": {"default_model": ""}}}, "services.chat_app.default_model"),
    ])
    def test_validation(self, override, field):
        with pytest.raises(ConfigValidationError) as exc_info:
            ConfigService(config=override).get_static_config()
        assert exc_info.value.field == field

    def test_static_config_is_cached(self):
        service = ConfigService(config={"name": "cached"})
        assert service.get_static_config() is service.get_static_config()

    def test_embedding_class_map_unresolved(self):
        class_map = ConfigService(config={}).get_embedding_class_map()
        assert class_map["HuggingFaceEndpointEmbeddings"]["class"] == "HuggingFaceEndpointEmbeddings"


class TestConfigAccess:

    def test_full_config_shape(self, restore_config_service):
        config_access.set_config_service(ConfigService(config={"name": "access"}))

        config = config_access.get_full_config()

        assert set(config) == {"name", "global", "services", "data_manager"}
        assert config["name"] == "access"
        assert config_access.get_services_config()["postgres"]["database"] == "postgres"


# =============================================================================
# Secrets
# =============================================================================

class TestReadSecret:

    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("SERPAPI_API_KEY", " serp \n")
        assert read_secret("SERPAPI_API_KEY") == "serp"

    def test_reads_file(self, monkeypatch, tmp_path):
        secret_file = tmp_path / "pg_password"
        secret_file.write_text("from-file\n")
        monkeypatch.delenv("PG_PASSWORD", raising=False)
        monkeypatch.setenv("PG_PASSWORD_FILE", str(secret_file))

        assert read_secret("PG_PASSWORD") == "from-file"

    def test_missing_returns_default(self, monkeypatch):
        monkeypatch.delenv("FLASK_SECRET_KEY", raising=False)
        monkeypatch.delenv("FLASK_SECRET_KEY_FILE", raising=False)
        assert read_secret("FLASK_SECRET_KEY") == ""

    def test_require_secrets(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://x.supabase.co")
        monkeypatch.delenv("SUPABASE_PRIVATE_KEY", raising=False)
        monkeypatch.delenv("SUPABASE_PRIVATE_KEY_FILE", raising=False)
        assert require_secrets("SUPABASE_URL", "SUPABASE_PRIVATE_KEY") == ["SUPABASE_PRIVATE_KEY"]
