import click

from .schemas import FlagStatus
from .shared.logs import logger, set_verbose


def show_banner():
    print(
        """\033[32;1m
  ___ ___ _   _ ___
 | __/ __| | | | _ )
 | _|\\__ \\ |_| | _ \\
 |_| |___/\\___/|___/
\033[0m"""
    )


config_option = click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Path to the YAML config file. Defaults to submitter.yaml in the current directory.",
)


def database_options(func):
    func = click.option("-P", "--postgres", help="PostgreSQL connection URL.")(func)
    func = click.option("-S", "--sqlite-path", help="Path to the SQLite database.")(func)
    return func


@click.group()
def cli():
    pass


@cli.command()
@config_option
@database_options
@click.option("-u", "--url", "server_url", help="URL of the flag submission endpoint.")
@click.option("-t", "--token", "team_token", help="Team token to score points.")
@click.option(
    "-i",
    "--interval",
    "check_interval",
    type=click.IntRange(min=1),
    help="Interval in seconds for checking new flags in the database.",
)
@click.option(
    "-f",
    "--flags-quota",
    type=click.IntRange(min=1),
    help="Max number of flags to send to the server per second.",
)
@click.option("-s", "--single-run", is_flag=True, help="Run a single cycle and exit.")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
def run(
    config_path,
    sqlite_path,
    postgres,
    server_url,
    team_token,
    check_interval,
    flags_quota,
    single_run,
    verbose,
):
    """Submits unsent flags from the database to the flag submission endpoint."""
    if sqlite_path and postgres:
        raise click.UsageError("Only one of --sqlite-path or --postgres can be set.")

    show_banner()
    if verbose:
        set_verbose()

    from .config import load_config
    from .workers.submitter import main as submitter_main

    database = None
    if sqlite_path:
        database = {"sqlite": sqlite_path, "postgres": None}
    elif postgres:
        database = {"sqlite": None, "postgres": postgres}

    config = load_config(
        config_path,
        server_url=server_url,
        team_token=team_token,
        check_interval=check_interval,
        flags_quota=flags_quota,
        single_run=True if single_run else None,
        database=database,
    )

    submitter_main(config)


@cli.command()
@config_option
@database_options
@click.argument("values", nargs=-1, required=True)
@click.option("-g", "--group", default=0, type=int, help="Group tag stored with the flags.")
def add(config_path, sqlite_path, postgres, values, group):
    """Adds flags to the database manually."""
    store = _open_store(config_path, sqlite_path, postgres)

    added = store.add_flags(values, group=group)
    logger.info(
        "Added <b>{added}</> flags, <b>{skipped}</> already stored.",
        added=added,
        skipped=len(set(values)) - added,
    )


@cli.command()
@config_option
@database_options
def stats(config_path, sqlite_path, postgres):
    """Shows the number of flags per status."""
    store = _open_store(config_path, sqlite_path, postgres)

    counts = store.count_by_status()
    logger.info(
        "<cyan>{unsent} unsent</cyan>, <green>{sent} sent</green>, <red>{invalid} invalid</red>",
        unsent=counts[FlagStatus.UNSENT],
        sent=counts[FlagStatus.SENT],
        invalid=counts[FlagStatus.INVALID],
    )


@cli.command()
def init():
    """Creates starter configuration files in the current directory."""
    from .initialization import initialize_workspace

    initialize_workspace()


def _open_store(config_path, sqlite_path=None, postgres=None):
    from .config import DatabaseConfig, load_config
    from .store import create_store

    if sqlite_path and postgres:
        raise click.UsageError("Only one of --sqlite-path or --postgres can be set.")

    if sqlite_path or postgres:
        database = DatabaseConfig(sqlite=sqlite_path, postgres=postgres)
    else:
        database = load_config(config_path).database

    store = create_store(database)
    try:
        store.setup()
    except Exception as e:
        logger.error(
            "An error occurred when setting up the database:\n<red>{error}</red>",
            error=e,
        )
        raise SystemExit(1)
    return store


if __name__ == "__main__":
    cli()
