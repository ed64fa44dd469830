import importlib
import sys
import typer
from typing import Optional
from rich import box
from rich.console import Console
from rich.table import Table
from typing_extensions import Annotated

from .config import connect, load_config
from .gateway import index_name
from .naming import collection_name
from .record import Record
from .repository import Repository

app = typer.Typer()


def _load_record(dotted_path: str) -> type[Record]:
    sys.path.append(".")
    path, name = dotted_path.rsplit(".", 1)
    mod = importlib.import_module(path)
    record_cls = getattr(mod, name)
    if not (isinstance(record_cls, type) and issubclass(record_cls, Record)):
        typer.secho(f"{dotted_path} is not a Record type", fg=typer.colors.RED)
        raise typer.Exit(1)
    return record_cls


@app.callback()
def main(
    ctx: typer.Context,
    record: str = typer.Option(None, envvar="DOCRECORD_RECORD"),
    database_url: Optional[str] = typer.Option(None),
    database_name: Optional[str] = typer.Option(None),
    log_level: str = typer.Option("warning"),
) -> None:
    overrides = {"log_level": log_level}
    if database_url:
        overrides["database_url"] = database_url
    if database_name:
        overrides["database_name"] = database_name
    config = load_config(**overrides)
    if not record:
        typer.secho(
            "Missing record; pass --record or set env[DOCRECORD_RECORD]",
            fg=typer.colors.RED,
        )
        raise typer.Exit(1)
    record_cls = _load_record(record)
    ctx.obj = record_cls.repository(connect(config))


@app.command()
def schema(ctx: typer.Context) -> None:
    repo: Repository = ctx.obj
    typer.secho(collection_name(repo.record_cls), fg=typer.colors.GREEN)
    for name in repo.record_cls.schema_attributes():
        typer.secho(f"  {name}")


@app.command()
def count(ctx: typer.Context) -> None:
    typer.secho(str(ctx.obj.count()))


@app.command()
def show(
    ctx: typer.Context,
    limit: int = typer.Option(20),
    sort: Annotated[Optional[str], typer.Option()] = None,
    descending: bool = typer.Option(False),
) -> None:
    repo: Repository = ctx.obj
    names = repo.record_cls.schema_attributes(include_id=True)
    table = Table(title=collection_name(repo.record_cls), box=box.HEAVY_HEAD)
    for name in names:
        table.add_column(name)
    order = [(sort, -1 if descending else 1)] if sort else None
    for record in repo.find(sort=order, limit=limit):
        table.add_row(*(_cell(record.get(name)) for name in names))
    Console().print(table)


def _cell(value) -> str:
    return "" if value is None else str(value)


@app.command()
def reset(ctx: typer.Context) -> None:
    repo: Repository = ctx.obj
    if num := repo.gateway.reset():
        typer.secho(f"Reset {repo.gateway.name} ({num})", fg=typer.colors.RED)
    else:
        typer.secho("Nothing to reset!", fg=typer.colors.YELLOW)
        raise typer.Exit(1)


@app.command()
def ensure_index(
    ctx: typer.Context,
    field: str,
    unique: bool = typer.Option(False),
    descending: bool = typer.Option(False),
) -> None:
    name = ctx.obj.ensure_index([(field, -1 if descending else 1)], unique=unique)
    typer.secho(f"Index {name} ensured", fg=typer.colors.GREEN)


@app.command()
def drop_index(
    ctx: typer.Context,
    field: str,
    descending: bool = typer.Option(False),
) -> None:
    keys = [(field, -1 if descending else 1)]
    ctx.obj.drop_index(keys)
    typer.secho(f"Index {index_name(keys)} dropped", fg=typer.colors.GREEN)


if __name__ == "__main__":  # pragma: no cover
    app()
