"""
Document scanner for docscan-ai.

Scans directories for document images and catalogs them in DuckDB.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from docscan_ai.database import Database, Document
from docscan_ai.ocr.base import SUPPORTED_IMAGE_EXTENSIONS
from docscan_ai.processing.status import ProcessingStatus


class DocumentScanner:
    """Scans directories for document images and catalogs them."""

    def __init__(
        self,
        db: Database,
        console: Console | None = None,
        *,
        source_language: str = "en",
        target_language: str = "ar",
        translate: bool = True,
    ):
        """
        Initialize scanner.

        Args:
            db: Database instance for storing document catalog.
            console: Rich console for output. If None, creates a new one.
            source_language: Source language recorded for new documents.
            target_language: Target language recorded for new documents.
            translate: Whether new documents are translated after OCR.
        """
        self.db = db
        self.console = console or Console()
        self.source_language = source_language
        self.target_language = target_language
        self.translate = translate

    def scan_directory(
        self,
        input_dir: Path,
        recursive: bool = True,
    ) -> list[Document]:
        """
        Scan a directory for images and add them to the catalog.

        Images already in the catalog are returned as they are.

        Args:
            input_dir: Directory to scan.
            recursive: Whether to scan subdirectories.

        Returns:
            List of Document objects found.
        """
        input_dir = Path(input_dir).resolve()
        if not input_dir.exists():
            raise FileNotFoundError(f"Input directory not found: {input_dir}")

        if not input_dir.is_dir():
            raise ValueError(f"Not a directory: {input_dir}")

        documents: list[Document] = []
        files = sorted(self._find_images(input_dir, recursive))

        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            console=self.console,
        ) as progress:
            task = progress.add_task(f"Scanning {input_dir.name}...", total=len(files))

            for file_path in files:
                progress.update(task, description=f"Processing {file_path.name}")

                existing = self.db.get_document_by_path(str(file_path))
                if existing:
                    documents.append(existing)
                    progress.advance(task)
                    continue

                doc = Document(
                    file_name=file_path.name,
                    image_path=str(file_path),
                    source_language=self.source_language,
                    target_language=self.target_language,
                    translate=self.translate,
                    status=ProcessingStatus.PENDING,
                )
                doc.id = self.db.add_document(doc)
                documents.append(doc)

                self.db.log(
                    level="INFO",
                    stage="scan",
                    message=f"Added document: {doc.file_name}",
                    document_id=doc.id,
                    context={"path": str(file_path)},
                )

                progress.advance(task)

        return documents

    def _find_images(self, directory: Path, recursive: bool = True) -> Iterator[Path]:
        """Find all supported images in a directory."""
        pattern = "**/*" if recursive else "*"

        for path in directory.glob(pattern):
            if path.is_file() and is_supported_file(path):
                yield path


def is_supported_file(file_path: Path) -> bool:
    """Check if a file is a supported image."""
    return file_path.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS
