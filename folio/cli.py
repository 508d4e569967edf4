"""CLI entry point for the folio document store.

Commands:
    folio init: create the database
    folio upload: store PDF files (and optionally a document per file)
    folio process: split unprocessed files into pages
    folio create: compose a document from pages
    folio show: print a document with its pages and tags
    folio list: list documents, optionally filtered by a search
    folio export: write a document as a single PDF
    folio inbox: list pages not yet filed into a document
    folio tags: list tags with document counts
    folio rotate: rotate a page
    folio tag: change a document's title and tags
    folio mail: ingest PDF attachments from an .eml file
"""

import logging
import sys
from pathlib import Path

import click

from folio.config import DB_PATH, TMP_DIR, load_tagging_config
from folio.errors import FolioError

logger = logging.getLogger("folio")


def _open_store(ctx: click.Context):
    from folio.db.store import Store

    return Store(ctx.obj["db_path"])


def _fail(exc: FolioError) -> None:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option("--db", "db_path", default=DB_PATH, show_default=True, help="SQLite database path.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, db_path: str) -> None:
    """Folio: compose documents from the pages of uploaded PDFs."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create the database if it does not exist."""
    with _open_store(ctx) as store:
        click.echo(f"Database ready at {store.path}")


# ------------------------------------------------------------------
# Files
# ------------------------------------------------------------------


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--origin", default="scanner", show_default=True, help="Provenance label.")
@click.option(
    "--document/--no-document",
    default=True,
    show_default=True,
    help="Create one document per uploaded file.",
)
@click.pass_context
def upload(ctx: click.Context, paths: tuple[str, ...], origin: str, document: bool) -> None:
    """Store PDF files, process them and file each into a document."""
    from folio.documents import create_document
    from folio.processor import process_file
    from folio.registry import store_files
    from folio.schemas.tags import TaggingContext
    from folio.tags import auto_tag

    files = [
        {"name": Path(p).name, "data": Path(p).read_bytes(), "content_type": "application/pdf"}
        for p in paths
    ]
    tagging = load_tagging_config()

    with _open_store(ctx) as store:
        try:
            with store.transaction() as tx:
                file_ids = store_files(tx, files, {"origin": origin})
                document_ids = []
                if document:
                    for file_id, file in zip(file_ids, files):
                        document_id = create_document(tx, title=file["name"], file=file_id)
                        auto_tag(tx, document_id, tagging, TaggingContext(origin=origin))
                        document_ids.append(document_id)
        except FolioError as exc:
            _fail(exc)

        for file_id, file in zip(file_ids, files):
            try:
                pages = process_file(store, file_id)
                click.echo(f"  {file['name']}: file {file_id}, {len(pages)} page(s)")
            except Exception:
                logger.exception("Error processing file %d", file_id)
                click.echo(f"  {file['name']}: ERROR: processing failed (see log)", err=True)

    if document_ids:
        click.echo(f"Created document(s): {', '.join(map(str, document_ids))}")


@cli.command()
@click.option(
    "--force",
    is_flag=True,
    help="Also retry files left in the processing state by an interrupted run.",
)
@click.pass_context
def process(ctx: click.Context, force: bool) -> None:
    """Split every unprocessed file into pages."""
    from folio.processor import process_pending

    with _open_store(ctx) as store:
        results = process_pending(store, force=force)
    if not results:
        click.echo("No files to process.")
        return
    for file_id, status in results.items():
        click.echo(f"  file {file_id}: {status.value}")


# ------------------------------------------------------------------
# Documents
# ------------------------------------------------------------------


@cli.command()
@click.option(
    "--page", "page_ids", type=int, multiple=True, required=True, help="Page id, in order."
)
@click.option("--title", default="", help="Document title.")
@click.option("--notes", default=None, help="Free-form notes.")
@click.option("--tag", "tags", multiple=True, help="Tag to add (repeatable).")
@click.option("--keep-in-inbox", is_flag=True, help="Do not remove the pages from the inbox.")
@click.pass_context
def create(
    ctx: click.Context,
    page_ids: tuple[int, ...],
    title: str,
    notes: str | None,
    tags: tuple[str, ...],
    keep_in_inbox: bool,
) -> None:
    """Compose a document from existing pages."""
    from folio.documents import create_document
    from folio.inbox import remove_from_inbox

    with _open_store(ctx) as store:
        try:
            with store.transaction() as tx:
                document_id = create_document(
                    tx, title=title, notes=notes, tags=list(tags), page_ids=list(page_ids)
                )
                if not keep_in_inbox:
                    remove_from_inbox(tx, page_ids)
        except FolioError as exc:
            _fail(exc)
    click.echo(f"Created document {document_id}")


@cli.command()
@click.argument("document_id", type=int)
@click.pass_context
def show(ctx: click.Context, document_id: int) -> None:
    """Print a document with its pages and tags."""
    from folio.documents import get_document

    with _open_store(ctx) as store:
        document = get_document(store, document_id)
    if document is None:
        click.echo(f"Error: document {document_id} not found", err=True)
        sys.exit(1)

    click.echo(f"Document {document.id}: {document.title or '(untitled)'}")
    click.echo(f"  Created:  {document.created:%Y-%m-%d %H:%M}")
    click.echo(f"  Modified: {document.modified:%Y-%m-%d %H:%M}")
    if document.notes:
        click.echo(f"  Notes:    {document.notes}")
    click.echo(f"  Tags:     {', '.join(document.tags) or '-'}")
    click.echo(f"  Pages:    {len(document.pages)}")
    for i, page in enumerate(document.pages):
        click.echo(
            f"    [{i}] page {page.id} rotation={page.rotation}"
            f" render={page.render_status.value}"
        )


@cli.command(name="list")
@click.argument("query", required=False, default=None)
@click.pass_context
def list_(ctx: click.Context, query: str | None) -> None:
    """List documents. QUERY terms: tag:x, -tag:x, or title words."""
    from folio.documents import query_documents

    with _open_store(ctx) as store:
        try:
            rows = query_documents(store, query)
        except FolioError as exc:
            _fail(exc)
    if not rows:
        click.echo("No documents.")
        return
    for row in rows:
        click.echo(f"  {row.id:>5}  {row.title or '(untitled)'}  (first page {row.page})")


@cli.command()
@click.argument("document_id", type=int)
@click.argument("output", type=click.Path(dir_okay=False, writable=True))
@click.pass_context
def export(ctx: click.Context, document_id: int, output: str) -> None:
    """Write a document as a single PDF to OUTPUT."""
    from folio.assembler import render_document_pdf

    with _open_store(ctx) as store:
        try:
            data = render_document_pdf(store, document_id, tmp_dir=TMP_DIR)
        except FolioError as exc:
            _fail(exc)
    Path(output).write_bytes(data)
    click.echo(f"Wrote {len(data)} bytes to {output}")


@cli.command()
@click.argument("document_id", type=int)
@click.option("--title", default=None, help="New title.")
@click.option("--add", "added", multiple=True, help="Tag to add (repeatable).")
@click.option("--remove", "removed", multiple=True, help="Tag to remove (repeatable).")
@click.pass_context
def tag(
    ctx: click.Context,
    document_id: int,
    title: str | None,
    added: tuple[str, ...],
    removed: tuple[str, ...],
) -> None:
    """Change a document's title and tags. Removal wins over addition."""
    from folio.documents import update_document

    props = {"title": title} if title is not None else {}
    with _open_store(ctx) as store:
        try:
            document = update_document(store, document_id, props, list(added), list(removed))
        except FolioError as exc:
            _fail(exc)
    click.echo(f"Document {document.id}: tags={document.tags}")


# ------------------------------------------------------------------
# Pages, inbox, tags
# ------------------------------------------------------------------


@cli.command()
@click.argument("page_id", type=int)
@click.argument("degrees", type=int)
@click.pass_context
def rotate(ctx: click.Context, page_id: int, degrees: int) -> None:
    """Rotate a page to DEGREES (a multiple of 90)."""
    from folio.registry import rotate_page

    with _open_store(ctx) as store:
        try:
            rotation = rotate_page(store, page_id, degrees)
        except FolioError as exc:
            _fail(exc)
    click.echo(f"Page {page_id}: rotation={rotation}")


@cli.command()
@click.pass_context
def inbox(ctx: click.Context) -> None:
    """List pages waiting to be filed."""
    from folio.inbox import list_inbox

    with _open_store(ctx) as store:
        pages = list_inbox(store)
    if not pages:
        click.echo("Inbox is empty.")
        return
    for page in pages:
        click.echo(f"  page {page.id}  (file {page.file}, #{page.number})")


@cli.command()
@click.pass_context
def tags(ctx: click.Context) -> None:
    """List tags with the number of documents carrying each."""
    from folio.tags import list_tags

    with _open_store(ctx) as store:
        counts = list_tags(store)
    if not counts:
        click.echo("No tags.")
        return
    for entry in counts:
        click.echo(f"  {entry.count:>5}  {entry.name}")


@cli.command()
@click.argument("eml", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def mail(ctx: click.Context, eml: str) -> None:
    """Ingest the PDF attachments of a saved email message."""
    from folio.mail import ingest_message
    from folio.processor import process_pending

    with _open_store(ctx) as store:
        try:
            document_ids = ingest_message(store, Path(eml).read_bytes(), load_tagging_config())
        except FolioError as exc:
            _fail(exc)
        if not document_ids:
            click.echo("No PDF attachments found.")
            return
        process_pending(store)
    click.echo(f"Created document(s): {', '.join(map(str, document_ids))}")
