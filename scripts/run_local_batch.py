#!/usr/bin/env python3
"""
Run a Local Payslip Batch

Processes a directory of payslip text files as one batch using the
in-memory repository, then prints the extracted fields and eligibility
of every document.

Usage:
    # Parallel batch with the default chunk size
    python scripts/run_local_batch.py path/to/payslips

    # Sequential batch
    python scripts/run_local_batch.py path/to/payslips --sequential

    # Custom cooperative rule (legacy key=value form)
    python scripts/run_local_batch.py path/to/payslips --rule "Koperasi A:max_peratus_gaji_bersih=60"
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from payslips.batching import BatchCoordinator
from payslips.processing import DocumentProcessor
from payslips.shared.config import get_settings
from payslips.shared.models.batches import BatchSettings
from payslips.shared.models.documents import PayslipDocument
from payslips.shared.models.rules import CooperativeRule
from payslips.shared.tools import InMemoryPayslipRepository
from payslips.shared.tools.local import LocalDocumentStore, PlainTextExtractor

DEFAULT_RULES = {
    "Koperasi Contoh": {"max_peratus_gaji_bersih": 60},
}


def _parse_rule(value: str) -> tuple[str, dict[str, float]]:
    """Parse 'Name:key=value[,key=value]' into a legacy rule mapping."""
    name, _, body = value.partition(":")
    rules = {}
    for pair in body.split(","):
        key, _, threshold = pair.partition("=")
        if key and threshold:
            rules[key.strip()] = float(threshold)
    return name.strip(), rules


class PrintingNotifier:
    """Prints events instead of publishing them."""

    def publish(self, event) -> str:
        print(f"  [EVENT] {event.detail_type()}: {json.dumps(event.to_eventbridge_detail())}")
        return "local"


def run(directory: Path, *, parallel: bool, max_concurrent: int, rules: dict) -> int:
    settings = get_settings()
    repository = InMemoryPayslipRepository()

    for index, (name, legacy) in enumerate(rules.items(), start=1):
        repository.save_rule(CooperativeRule.from_legacy_rules(f"koperasi-{index}", name, legacy))

    files = sorted(directory.glob("*.txt"))
    if not files:
        print(f"No .txt payslips found in {directory}")
        return 1

    for path in files:
        repository.create_document(
            PayslipDocument(
                document_id=path.stem,
                storage_path=path.name,
                mime_type="text/plain",
                created_at=path.stat().st_mtime,
            )
        )

    processor = DocumentProcessor(
        repository,
        LocalDocumentStore(directory),
        PlainTextExtractor(),
        extraction_config=settings.extraction_config,
    )
    coordinator = BatchCoordinator(
        repository,
        processor,
        notifier=PrintingNotifier(),
        config=settings.coordinator_config,
    )
    batch = coordinator.create_batch(
        owner_id="local",
        name=directory.name,
        document_ids=[path.stem for path in files],
        settings=BatchSettings(parallel=parallel, max_concurrent=max_concurrent),
    )
    batch = coordinator.run(batch.batch_id)

    print(f"\nBatch {batch.batch_id}: {batch.status.value}")
    print(f"  successful={batch.successful_files} failed={batch.failed_files} total={batch.total_files}")
    for document in repository.list_batch_documents(batch.batch_id):
        print(f"\n{document.document_id} [{document.status.value}]")
        if document.error_message:
            print(f"  error: {document.error_message}")
        if document.extracted_fields:
            fields = document.extracted_fields.model_dump(exclude={"debug_trace", "eligibility_details"})
            print(json.dumps(fields, indent=2))
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Run a payslip batch over local text files")
    parser.add_argument("directory", type=Path, help="Directory of .txt payslips")
    parser.add_argument("--sequential", action="store_true", help="Process one document at a time")
    parser.add_argument("--max-concurrent", type=int, default=get_settings().max_concurrent_default)
    parser.add_argument(
        "--rule",
        action="append",
        default=[],
        help="Cooperative rule as 'Name:key=value[,key=value]' (repeatable)",
    )
    args = parser.parse_args()

    rules = dict(_parse_rule(value) for value in args.rule) if args.rule else DEFAULT_RULES
    sys.exit(
        run(
            args.directory,
            parallel=not args.sequential,
            max_concurrent=args.max_concurrent,
            rules=rules,
        )
    )


if __name__ == "__main__":
    main()
