import traceback
from pathlib import Path
from typing import Optional, Tuple

import click

from fluxion.utils.config_access import get_full_config, set_config_service
from fluxion.utils.config_service import ConfigService
from fluxion.utils.logging import get_logger, setup_cli_logging, setup_logging

DEFAULT_STAKEHOLDERS = (
    "Executive Sponsors",
    "Senior Leadership",
    "Middle Management",
    "Frontline Employees",
    "HR",
    "IT",
    "Customers",
    "Vendors",
)


def _load_config(config_path: Optional[str]) -> dict:
    if config_path:
        set_config_service(ConfigService(config_path))
    return get_full_config(resolve_embeddings=True)


@click.group()
def cli():
    pass


@click.command()
@click.option('--config', '-c', 'config_path', type=str, help="Path to .yaml fluxion configuration")
@click.option('--host', type=str, default=None, help="Host to bind (defaults to services.chat_app.host)")
@click.option('--port', type=int, default=None, help="Port to bind (defaults to services.chat_app.port)")
@click.option('--debug', is_flag=True, help="Run Flask in debug mode")
@click.option('--verbosity', '-v', type=int, default=None, help="Logging verbosity level (0-4)")
def serve(config_path: Optional[str], host: Optional[str], port: Optional[int], debug: bool, verbosity: Optional[int]):
    """Run the Fluxion API server."""
    config = _load_config(config_path)
    setup_logging(verbosity if verbosity is not None else config["global"].get("verbosity", 3))
    logger = get_logger(__name__)

    # imported here so `fluxion init-db` does not pull in the agent stack
    from fluxion.interfaces.chat_app.app import create_app

    chat_config = config["services"]["chat_app"]
    host = host or chat_config.get("host", "0.0.0.0")
    port = port or chat_config.get("port", 7861)
    logger.info(f"Starting Fluxion on {host}:{port}")
    app = create_app(config)
    app.run(host=host, port=port, debug=debug)


@click.command(name="init-db")
@click.option('--config', '-c', 'config_path', type=str, help="Path to .yaml fluxion configuration")
@click.option('--seed-stakeholders', is_flag=True, help="Insert the default stakeholder list")
@click.option('--verbosity', '-v', type=int, default=3, help="Logging verbosity level (0-4)")
def init_db(config_path: Optional[str], seed_stakeholders: bool, verbosity: int):
    """Create the Fluxion tables, the documents table and match_documents."""
    setup_cli_logging(verbosity=verbosity)
    logger = get_logger(__name__)

    from fluxion.utils.postgres_service_factory import PostgresServiceFactory

    try:
        config = _load_config(config_path)
        with PostgresServiceFactory.from_yaml_config(config) as factory:
            factory.initialize_schema()
            logger.info("Schema initialized")
            if seed_stakeholders:
                inserted = factory.project_service.seed_stakeholders(DEFAULT_STAKEHOLDERS)
                logger.info(f"Seeded {inserted} stakeholder(s)")
    except Exception as e:
        if verbosity >= 4:
            traceback.print_exc()
        raise click.ClickException(f"Failed due to the following exception: {e}")


@click.command()
@click.argument('paths', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--config', '-c', 'config_path', type=str, help="Path to .yaml fluxion configuration")
@click.option('--verbosity', '-v', type=int, default=3, help="Logging verbosity level (0-4)")
def ingest(paths: Tuple[str, ...], config_path: Optional[str], verbosity: int):
    """Split, embed and store local PDF files in the vector store."""
    setup_cli_logging(verbosity=verbosity)
    logger = get_logger(__name__)

    from fluxion.data_manager.vectorstore.manager import VectorStoreManager

    try:
        config = _load_config(config_path)
        manager = VectorStoreManager(config=config)
        total = 0
        for path in paths:
            if Path(path).suffix.lower() != ".pdf":
                logger.warning(f"Skipping {path}: not a PDF file")
                continue
            chunks = manager.ingest_pdf(path, source_name=Path(path).name)
            click.echo(f"{path}: {chunks} chunks")
            total += chunks
        logger.info(f"Stored {total} chunks from {len(paths)} file(s)")
    except Exception as e:
        if verbosity >= 4:
            traceback.print_exc()
        raise click.ClickException(f"Failed due to the following exception: {e}")


def main():
    """
    Entrypoint for the fluxion cli tool implemented using Click.
    """
    cli.add_command(serve)
    cli.add_command(init_db)
    cli.add_command(ingest)
    cli()
