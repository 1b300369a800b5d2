"""Command-line interface for Bookshelf page narration."""

import sys
import time
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from .config import get_settings
from .errors import BookshelfAudioError
from .models.audio import JobStatus
from .services.audio_cache import AudioCache
from .services.batch_generation import BatchAudioGenerator
from .services.library import Library
from .services.page_audio import PageAudioService
from .services.pdf_text import PdfTextExtractor
from .services.word_timing import estimate_word_timings
from .speech.factory import get_speech_synthesizer


load_dotenv()
console = Console()

POLL_SECONDS = 0.5


def _build_services() -> tuple[Library, AudioCache, PageAudioService]:
    settings = get_settings()
    library = Library(settings.books_dir)
    cache = AudioCache(settings.audio_dir)
    page_audio = PageAudioService(
        library,
        PdfTextExtractor(),
        cache,
        get_speech_synthesizer,
        synthesis_timeout=settings.synthesis_timeout_seconds,
        max_chars=settings.tts_max_chars,
    )
    return library, cache, page_audio


@click.group()
@click.version_option(version="0.1.0")
def main():
    """Bookshelf Audio - narrate PDF pages and manage the page audio cache."""
    pass


@main.command()
@click.argument("book_id")
@click.option("--start-page", type=int, default=None, help="First page (default: 1)")
@click.option("--end-page", type=int, default=None, help="Last page (default: last page of the book)")
def generate(book_id: str, start_page: Optional[int], end_page: Optional[int]):
    """Narrate a page range of a book into the audio cache."""
    library, _, page_audio = _build_services()
    generator = BatchAudioGenerator(library, page_audio, max_workers=1)

    try:
        book = library.get_book(book_id)
        job = generator.start(book_id, start_page, end_page)
    except BookshelfAudioError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"\n[bold blue]{book.title}[/bold blue] {book.author}")
    console.print(f"Pages {job.start_page}-{job.end_page} of {book.page_count}\n")

    try:
        with Progress(
            SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
            BarColumn(), TaskProgressColumn(), console=console,
        ) as progress:
            task = progress.add_task("Narrating...", total=job.pages_in_range)
            while job.status is JobStatus.RUNNING:
                progress.update(
                    task,
                    completed=job.pages_processed,
                    description=f"Page {job.current_page}/{job.end_page}",
                )
                time.sleep(POLL_SECONDS)
            progress.update(task, completed=job.pages_processed)
    except KeyboardInterrupt:
        console.print("[yellow]Cancelling after the current page...[/yellow]")
        generator.cancel(book_id)
        job = generator.wait(book_id)
    finally:
        generator.shutdown(wait=True)

    if job.truncated_pages:
        pages = ", ".join(str(p) for p in job.truncated_pages)
        console.print(f"[yellow]Truncated to {page_audio.max_chars} chars:[/yellow] pages {pages}")

    if job.status is JobStatus.COMPLETED:
        console.print(
            f"\n[bold green]Done![/bold green] {job.pages_synthesized} narrated, "
            f"{job.pages_processed - job.pages_synthesized} already cached"
        )
    elif job.status is JobStatus.CANCELLED:
        console.print(f"\n[yellow]Cancelled[/yellow] after page {job.current_page}")
    else:
        console.print(f"\n[red]Failed[/red] ({job.error_code}): {job.error_message}")
        sys.exit(1)


@main.command()
@click.argument("book_id")
def status(book_id: str):
    """Show which pages of a book are cached."""
    library, cache, _ = _build_services()
    try:
        book = library.get_book(book_id)
        pages = cache.cached_pages(book_id)
    except BookshelfAudioError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"\n[bold blue]{book.title}[/bold blue]")
    console.print(f"Cached pages: {len(pages)}/{book.page_count}")
    if pages:
        console.print(f"[dim]{', '.join(str(p) for p in pages)}[/dim]")


@main.command()
@click.argument("book_id")
@click.confirmation_option(prompt="Delete all cached audio for this book?")
def purge(book_id: str):
    """Delete all cached audio for a book."""
    _, cache, _ = _build_services()
    try:
        removed = cache.delete_all(book_id)
    except BookshelfAudioError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    console.print(f"[green]Removed {removed} cached pages[/green]")


@main.command()
@click.argument("book_id")
@click.argument("page", type=int)
def timings(book_id: str, page: int):
    """Print estimated word timings for a page (no audio is generated)."""
    library, _, page_audio = _build_services()
    try:
        book = library.get_book(book_id)
        text = page_audio.extractor.extract_page_text(book.pdf_path, page)
    except BookshelfAudioError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    table = Table(title=f"Estimated word timings - page {page}")
    table.add_column("Word", style="cyan")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    for timing in estimate_word_timings(text):
        table.add_row(timing.word, f"{timing.start_time:.2f}", f"{timing.end_time:.2f}")
    console.print(table)


@main.command()
def serve():
    """Run the HTTP API."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "bookshelf_audio.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
