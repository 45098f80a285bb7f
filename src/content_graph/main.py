"""CLI entrypoint for content-graph."""

from collections.abc import Callable

import rich_click as click

from content_graph import __version__
from content_graph.config import Settings
from content_graph.controllers import (
    CacheKeyCommand,
    ContentGraphCliController,
    CountCommand,
    ListCommand,
    PostLookupCommand,
    configure_logging,
)
from content_graph.errors import ContentGraphError
from content_graph.repository import ROOT_KINDS

click.rich_click.USE_MARKDOWN = True
CONTROLLER = ContentGraphCliController()

database_url_option = click.option(
    "--database-url",
    default=None,
    help="Database URL. Defaults to CONTENT_GRAPH_DATABASE_URL or DATABASE_URL.",
)
where_option = click.option("--where", default=None, help="Filter as a JSON object.")
order_by_option = click.option(
    "--order-by",
    default=None,
    help='Sort rules as JSON, for example `[{"publishedDate": "desc"}]`.',
)
take_option = click.option("--take", type=int, default=None, help="Max number of results.")
skip_option = click.option("--skip", type=int, default=None, help="Number of results to skip.")
kind_argument = click.argument("kind", type=click.Choice(sorted(ROOT_KINDS)))


@click.group()
@click.version_option(version=__version__, prog_name="content-graph")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging.")
def content_graph(verbose: bool) -> None:
    """Content graph CLI."""

    try:
        settings = Settings.from_env()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    configure_logging(settings, verbose=verbose)


def _list_command(kind: str) -> None:
    @content_graph.command(kind, help=f"List published {kind} as JSON.")
    @database_url_option
    @where_option
    @order_by_option
    @take_option
    @skip_option
    def list_entities(  # noqa: PLR0913
        database_url: str | None,
        where: str | None,
        order_by: str | None,
        take: int | None,
        skip: int | None,
    ) -> None:
        _emit_lines(
            lambda: CONTROLLER.list_entities(
                ListCommand(
                    kind=kind,
                    database_url=database_url,
                    where=where,
                    order_by=order_by,
                    take=take,
                    skip=skip,
                ),
            ),
        )


for _kind in sorted(ROOT_KINDS):
    _list_command(_kind)


@content_graph.command("post")
@database_url_option
@click.option("--id", "post_id", default=None, help="Post id.")
@click.option("--slug", default=None, help="Post slug.")
def post(database_url: str | None, post_id: str | None, slug: str | None) -> None:
    """Show one post by id or slug, in any state."""

    _emit_lines(
        lambda: CONTROLLER.get_post(
            PostLookupCommand(database_url=database_url, post_id=post_id, slug=slug),
        ),
    )


@content_graph.command("count")
@kind_argument
@database_url_option
@where_option
def count(kind: str, database_url: str | None, where: str | None) -> None:
    """Count published entities of KIND matching the filter."""

    _emit_lines(
        lambda: CONTROLLER.count(CountCommand(kind=kind, database_url=database_url, where=where)),
    )


@content_graph.command("cache-key")
@kind_argument
@database_url_option
@where_option
@order_by_option
@take_option
@skip_option
@click.option(
    "--evict/--no-evict",
    default=False,
    show_default=True,
    help="Delete the cached entry for this request.",
)
def cache_key(  # noqa: PLR0913
    kind: str,
    database_url: str | None,
    where: str | None,
    order_by: str | None,
    take: int | None,
    skip: int | None,
    evict: bool,
) -> None:
    """Print the cache key of a list request, optionally evicting it."""

    _emit_lines(
        lambda: CONTROLLER.cache_key(
            CacheKeyCommand(
                kind=kind,
                database_url=database_url,
                where=where,
                order_by=order_by,
                take=take,
                skip=skip,
                evict=evict,
            ),
        ),
    )


def _emit_lines(run: Callable[[], list[str]]) -> None:
    try:
        lines = run()
    except (ContentGraphError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    content_graph()
