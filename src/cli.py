"""Command-line interface for donation form processing.

Provides subcommands for extracting donation records from a single document,
processing a folder of scanned batches, and checking that the OCR backends
are installed. All results are written as JSON.
"""

import argparse
import json
import sys
import time
from dataclasses import asdict
from pathlib import Path

from src.pipeline.exceptions import PipelineError
from src.pipeline.models import ExtractedFormData, RawDocument
from src.pipeline.ocr_pipeline import OCRPipeline
from src.utils.config import load_config
from src.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all supported document files in a directory.

    Args:
        input_dir: Directory to scan for documents.

    Returns:
        Sorted list of document file paths.
    """
    return sorted(
        path
        for path in input_dir.iterdir()
        if path.is_file() and path.suffix.lower() in _MIME_TYPES
    )


def load_document(file_path: Path) -> RawDocument:
    """Read a file into a ``RawDocument``, typed by its extension.

    Args:
        file_path: Document on disk.

    Returns:
        The document. Unknown extensions get a generic binary MIME type,
        which the pipeline rejects.
    """
    mime_type = _MIME_TYPES.get(file_path.suffix.lower(), "application/octet-stream")
    return RawDocument(
        file_name=file_path.name, content=file_path.read_bytes(), mime_type=mime_type
    )


def _records_to_json(records: list[ExtractedFormData]) -> list[dict]:
    return [record.to_dict() for record in records]


def extract_single(
    file_path: Path, whole_page: bool = False, pipeline: OCRPipeline | None = None
) -> dict[str, object]:
    """Process a single document and return its records.

    Args:
        file_path: Path to the document file.
        whole_page: Parse each page as one form instead of detecting forms.
        pipeline: Pipeline to use; built from the configuration when omitted.

    Returns:
        Dictionary with the file name and its form records.
    """
    own_pipeline = pipeline is None
    pipeline = pipeline or OCRPipeline(load_config())
    try:
        document = load_document(file_path)
        if whole_page:
            records = pipeline.extract_whole_pages(document)
        else:
            records = pipeline.process_document(document)
    finally:
        if own_pipeline:
            pipeline.close()

    return {"filename": file_path.name, "forms": _records_to_json(records)}


def process_folder(
    input_dir: Path,
    output_json: Path,
    verbose: bool = False,
    pipeline: OCRPipeline | None = None,
) -> dict[str, int]:
    """Process all documents in a folder and write one JSON summary.

    Args:
        input_dir: Directory containing document files.
        output_json: Path for the output JSON file.
        verbose: Whether to print per-file progress.
        pipeline: Pipeline to use; built from the configuration when omitted.

    Returns:
        Summary dict with total, successful, failed, and forms counts.
    """
    files = _find_documents(input_dir)
    if not files:
        logger.warning("No documents found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0, "forms": 0}

    logger.info("Found %d documents to process", len(files))

    own_pipeline = pipeline is None
    pipeline = pipeline or OCRPipeline(load_config())

    results: list[dict[str, object]] = []
    successful = 0
    failed = 0
    forms = 0

    try:
        for i, file_path in enumerate(files, 1):
            if verbose:
                print(f"Processing [{i}/{len(files)}]: {file_path.name}")

            start_time = time.time()
            try:
                records = pipeline.process_document(load_document(file_path))
            except (PipelineError, OSError) as exc:
                logger.error("Failed to process %s: %s", file_path.name, exc)
                results.append(
                    {"filename": file_path.name, "status": "failed", "error": str(exc)}
                )
                failed += 1
                continue

            results.append(
                {
                    "filename": file_path.name,
                    "status": "success",
                    "processing_time_s": round(time.time() - start_time, 2),
                    "forms": _records_to_json(records),
                }
            )
            successful += 1
            forms += len(records)
    finally:
        if own_pipeline:
            pipeline.close()

    summary = {
        "total": len(files),
        "successful": successful,
        "failed": failed,
        "forms": forms,
    }
    output_json.parent.mkdir(parents=True, exist_ok=True)
    output_json.write_text(json.dumps({"summary": summary, "results": results}, indent=2))
    logger.info("Results written to %s", output_json)

    _print_summary(summary, output_json)
    return summary


def _print_summary(summary: dict[str, int], output_json: Path) -> None:
    """Print batch processing summary to stdout.

    Args:
        summary: Counts of total, successful, and failed documents.
        output_json: Path to the output JSON.
    """
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Forms:      {summary['forms']}")
    print(f"Output:     {output_json}")


def check_health(pipeline: OCRPipeline | None = None) -> bool:
    """Validate every pipeline stage and print the outcome with metrics.

    Args:
        pipeline: Pipeline to check; built from the configuration when omitted.

    Returns:
        True when every stage is ready.
    """
    own_pipeline = pipeline is None
    pipeline = pipeline or OCRPipeline(load_config())
    try:
        healthy = pipeline.validate()
        metrics = {
            name: asdict(snapshot)
            for name, snapshot in pipeline.get_performance_metrics().items()
        }
    finally:
        if own_pipeline:
            pipeline.close()

    print(json.dumps({"healthy": healthy, "metrics": metrics}, indent=2))
    return healthy


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Donation Form OCR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    batch_parser = subparsers.add_parser("batch", help="Process a folder of documents")
    batch_parser.add_argument(
        "input_dir", type=Path, help="Input directory with documents"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.json"),
        help="Output JSON file (default: results.json)",
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    single_parser = subparsers.add_parser("extract", help="Process a single document")
    single_parser.add_argument("file", type=Path, help="Document file to process")
    single_parser.add_argument(
        "--whole-page",
        action="store_true",
        help="Parse each page as one form without form detection",
    )
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    subparsers.add_parser("health", help="Check that OCR backends are available")

    args = parser.parse_args(argv)

    setup_logging(load_config().log_level)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(args.input_dir, args.output, args.verbose)
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            result = extract_single(args.file, args.whole_page)
        except PipelineError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        output_str = json.dumps(result, indent=2)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    elif args.command == "health":
        sys.exit(0 if check_health() else 1)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
