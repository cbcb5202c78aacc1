from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer

from appvault.collection import AppCollection, CollectionState
from appvault.config import get_settings
from appvault.domain.models import AppDraft, Category, LocalAsset
from appvault.errors import CatalogError
from appvault.probe import probe_screenshot
from appvault.reporter import print_catalog
from appvault.stores import PostgresStore, available_backends, build_store
from appvault.utils.logging import configure_logging

app = typer.Typer(help="AppVault: a synchronized catalog of bookmarked web apps.")

T = TypeVar("T")

BackendOption = typer.Option(
    None,
    "--backend",
    "-b",
    help="Store backend (postgres, memory). Defaults to STORE_BACKEND.",
)


def _setup_logging() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


def _run(coro: Awaitable[T]) -> T:
    try:
        return asyncio.run(coro)
    except CatalogError as exc:
        _fail(str(exc))
    except asyncio.TimeoutError:
        _fail("Timed out waiting for the catalog to load.")
    except ValueError as exc:
        _fail(str(exc))


async def _with_collection(
    backend: Optional[str], action: Callable[[AppCollection], Awaitable[T]]
) -> T:
    settings = get_settings()
    store = build_store(backend)
    async with store:
        async with AppCollection(store) as collection:
            state = await collection.wait_until_ready(timeout=settings.ready_timeout_seconds)
            if state is CollectionState.ERROR and collection.last_error is not None:
                raise collection.last_error
            return await action(collection)


def _upload(path: Optional[Path]) -> Optional[LocalAsset]:
    return LocalAsset.from_path(path) if path is not None else None


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"backend={settings.store_backend} (available: {', '.join(available_backends())}) | "
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"collection={settings.collection_name} assets={settings.asset_base_url}/{settings.asset_namespace}"
    )


@app.command("init-db")
def init_db() -> None:
    """
    Create the PostgreSQL tables, index and change trigger.
    """
    _setup_logging()

    async def _init() -> None:
        async with PostgresStore() as store:
            await store.ensure_schema()

    _run(_init())
    typer.echo("Schema ready.")


@app.command("list")
def list_apps(
    category: Optional[Category] = typer.Option(None, "--category", "-c", help="Only this category."),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of a table."),
    backend: Optional[str] = BackendOption,
) -> None:
    """
    Load the catalog (seeding it on first use) and print it.
    """
    _setup_logging()

    async def _list(collection: AppCollection):
        return collection.by_category(category)

    records = _run(_with_collection(backend, _list))
    if as_json:
        typer.echo(json.dumps([r.model_dump(mode="json", by_alias=True) for r in records], indent=2))
    else:
        print_catalog(records)


@app.command()
def add(
    name: str = typer.Option(..., "--name", "-n"),
    url: str = typer.Option(..., "--url", "-u"),
    description: str = typer.Option("", "--description", "-d"),
    category: Category = typer.Option(Category.default(), "--category", "-c"),
    image: str = typer.Option("", "--image", help="Persistent image URL."),
    upload: Optional[Path] = typer.Option(None, "--upload", exists=True, dir_okay=False, help="Image file to upload."),
    backend: Optional[str] = BackendOption,
) -> None:
    """
    Add an app to the catalog.
    """
    _setup_logging()

    async def _add(collection: AppCollection) -> str:
        draft = AppDraft(
            name=name,
            url=url,
            description=description,
            category=category,
            image=image,
            upload=_upload(upload),
        )
        record_id = await collection.create(draft)
        await collection.wait_for(lambda c: c.get(record_id) is not None, timeout=get_settings().ready_timeout_seconds)
        return record_id

    record_id = _run(_with_collection(backend, _add))
    typer.echo(f"Added {record_id}.")


@app.command()
def edit(
    record_id: str = typer.Argument(..., help="Record id."),
    name: Optional[str] = typer.Option(None, "--name", "-n"),
    url: Optional[str] = typer.Option(None, "--url", "-u"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    category: Optional[Category] = typer.Option(None, "--category", "-c"),
    image: Optional[str] = typer.Option(None, "--image"),
    upload: Optional[Path] = typer.Option(None, "--upload", exists=True, dir_okay=False),
    backend: Optional[str] = BackendOption,
) -> None:
    """
    Change fields of an existing app; omitted fields keep their values.
    """
    _setup_logging()
    changes = {
        key: value
        for key, value in {
            "name": name,
            "url": url,
            "description": description,
            "category": category,
            "image": image,
            "upload": _upload(upload),
        }.items()
        if value is not None
    }
    if not changes:
        _fail("Nothing to change.")

    async def _edit(collection: AppCollection) -> None:
        if collection.get(record_id) is None:
            raise ValueError(f"No app with id {record_id}.")
        await collection.update(record_id, changes)

    _run(_with_collection(backend, _edit))
    typer.echo(f"Updated {record_id}.")


@app.command()
def remove(
    record_id: str = typer.Argument(..., help="Record id."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
    backend: Optional[str] = BackendOption,
) -> None:
    """
    Remove an app from the catalog.
    """
    _setup_logging()
    if not yes:
        typer.confirm(f"Remove {record_id} from the vault?", abort=True)

    async def _remove(collection: AppCollection) -> None:
        await collection.delete(record_id)

    _run(_with_collection(backend, _remove))
    typer.echo(f"Removed {record_id}.")


@app.command()
def probe(url: str = typer.Argument(..., help="Site to screenshot.")) -> None:
    """
    Check that a screenshot of URL can be generated.
    """
    _setup_logging()
    result = asyncio.run(probe_screenshot(url))
    if result["status"] == "success":
        typer.echo(result["image"])
        return
    typer.echo(f"Couldn't fetch screenshot: {result['error']} Upload one instead.", err=True)
    raise typer.Exit(code=1)


@app.command()
def watch(backend: Optional[str] = BackendOption) -> None:
    """
    Print the catalog every time it changes, until interrupted.
    """
    _setup_logging()

    def _render(collection: AppCollection) -> None:
        if collection.state is CollectionState.READY:
            print_catalog(collection.records)
        elif collection.state is CollectionState.ERROR:
            typer.echo(f"Subscription lost: {collection.last_error}", err=True)

    async def _watch() -> None:
        async with build_store(backend) as store:
            async with AppCollection(store, on_change=_render) as collection:
                await collection.wait_for(lambda c: c.state is CollectionState.ERROR)

    _run(_watch())
    raise typer.Exit(code=1)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
