from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from fluxion.cli.cli_main import DEFAULT_STAKEHOLDERS, cli, ingest, init_db, serve
from fluxion.utils import config_access

cli.add_command(serve)
cli.add_command(init_db)
cli.add_command(ingest)


def teardown_function(function):
    config_access.set_config_service(None)


@patch("fluxion.utils.postgres_service_factory.PostgresServiceFactory.from_yaml_config")
def test_init_db_seeds_stakeholders(mock_from_yaml):
    factory = MagicMock()
    factory.__enter__.return_value = factory
    factory.project_service.seed_stakeholders.return_value = len(DEFAULT_STAKEHOLDERS)
    mock_from_yaml.return_value = factory

    result = CliRunner().invoke(cli, ["init-db", "--seed-stakeholders"])

    assert result.exit_code == 0, result.output
    factory.initialize_schema.assert_called_once()
    factory.project_service.seed_stakeholders.assert_called_once_with(DEFAULT_STAKEHOLDERS)


@patch("fluxion.utils.postgres_service_factory.PostgresServiceFactory.from_yaml_config")
def test_init_db_failure(mock_from_yaml):
    mock_from_yaml.side_effect = Exception("connection refused")

    result = CliRunner().invoke(cli, ["init-db"])

    assert result.exit_code != 0
    assert "connection refused" in result.output


@patch("fluxion.data_manager.vectorstore.manager.VectorStoreManager.ingest_pdf", return_value=7)
def test_ingest_pdfs(mock_ingest, tmp_path):
    pdf = tmp_path / "playbook.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    notes = tmp_path / "notes.txt"
    notes.write_text("skip me")

    result = CliRunner().invoke(cli, ["ingest", str(pdf), str(notes)])

    assert result.exit_code == 0, result.output
    mock_ingest.assert_called_once_with(str(pdf), source_name="playbook.pdf")
    assert "playbook.pdf: 7 chunks" in result.output


@patch("fluxion.interfaces.chat_app.app.create_app")
def test_serve_uses_config_host_and_port(mock_create_app, tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("services:\n  chat_app:\n    port: 9000\n")

    result = CliRunner().invoke(cli, ["serve", "--config", str(config_file)])

    assert result.exit_code == 0, result.output
    mock_create_app.return_value.run.assert_called_once_with(host="0.0.0.0", port=9000, debug=False)
