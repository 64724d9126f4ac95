"""
Command-Line Interface for snipr.

Runs conversions without the HTTP server, previews segmentation, renders
feeds and issues bearer tokens.

Usage Examples:
    # Preview extraction and segmentation (no synthesis, no storage)
    snipr --url https://example.com/post --dry-run --json
    snipr --text "First sentence. Second one." --dry-run
    snipr --file article.txt --dry-run
    snipr --epub book.epub --dry-run

    # Full conversion in-process, printing the final job
    snipr --url https://example.com/post --owner alice

    # Print an owner's rendered RSS feed
    snipr --render-feed alice

    # Issue a signed bearer token (auth.mode = signed)
    snipr --issue-token alice

Environment Variables:
    SNIPR_SETTINGS: Settings file (default config/settings.yaml)
    SNIPR_SPEECH_KEY: Speech service subscription key
    SNIPR_AUTH_SECRET: Secret for signed bearer tokens
    OPENAI_API_KEY: Key for the openai summarizer
"""
from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from snipr.core.config import PipelineConfig, Settings, load_settings
from snipr.core.errors import SniprError
from snipr.core.logging import configure_logging, get_logger, info, set_trace_id
from snipr.pipeline.extractor import ContentExtractor, ExtractedArticle, parse_epub
from snipr.pipeline.feed import feed_path
from snipr.pipeline.segmenter import segment_text
from snipr.utils.text import estimate_duration_seconds, preview


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="snipr CLI (serverless conversion)")

    # Input options
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--url", help="Web article to convert")
    source.add_argument("--text", help="Inline text to convert")
    source.add_argument("--file", help="Read inline text from a file")
    source.add_argument("--epub", help="Convert the chapters of an EPUB book")
    parser.add_argument("--title", help="Title for inline text or a book")

    # Conversion
    parser.add_argument("--owner", help="Owner id for a full conversion")
    parser.add_argument("--wait", type=float, default=900.0,
                        help="Seconds to wait for the job to finish")

    # Execution modes
    parser.add_argument("--dry-run", action="store_true",
                        help="Extract and segment without synthesis")
    parser.add_argument("--json", action="store_true",
                        help="Print JSON summary")

    # Feeds and tokens
    parser.add_argument("--render-feed", metavar="OWNER",
                        help="Print the owner's rendered RSS feed")
    parser.add_argument("--issue-token", metavar="OWNER",
                        help="Print a signed bearer token for OWNER")

    parser.add_argument("--settings", help="Settings file (default $SNIPR_SETTINGS or config/settings.yaml)")

    return parser.parse_args(argv)


def _load_text(args: argparse.Namespace) -> Optional[str]:
    if args.file:
        text = Path(args.file).read_text(encoding="utf-8")
        if not text.strip():
            raise SystemExit("Input file is empty.")
        return text
    return args.text


def _summary_for_article(article: ExtractedArticle, config: PipelineConfig) -> dict:
    """Chunk counts and sizes for a prepared article."""
    seg = segment_text(article.clean_text, config.segmenter.max_chars)
    return {
        "title": article.title,
        "text_len": len(article.clean_text),
        "preview": preview(article.clean_text, config.logging.text_preview_chars),
        "chunks": len(seg.chunks),
        "chunk_sizes": [len(c) for c in seg.chunks],
        "max_chars": config.segmenter.max_chars,
        "estimated_seconds": estimate_duration_seconds(article.clean_text, config.jobs.seconds_per_word),
    }


def _dry_run(args: argparse.Namespace, config: PipelineConfig, text: Optional[str], log) -> int:
    extractor = ContentExtractor(config.extractor)
    try:
        if args.url:
            article = extractor.extract(args.url)
        elif args.epub:
            book = parse_epub(Path(args.epub).read_bytes())
            article = extractor.extract_text(book.text, title=args.title or book.title or Path(args.epub).stem)
        else:
            article = extractor.extract_text(text, title=args.title)
    finally:
        extractor.close()

    summary = _summary_for_article(article, config)
    payload = {"ok": True, "dry_run": True, "item": summary}
    if args.json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        info(log, "dry_run", chunks=summary["chunks"], chars=summary["text_len"])
        print(payload)
    print("DRY_RUN_OK")
    return 0


def _convert(args: argparse.Namespace, settings: Settings, text: Optional[str], log) -> int:
    from snipr.services import build_job_service

    service = build_job_service(settings)
    try:
        if args.epub:
            path = Path(args.epub)
            job = service.submit_document(
                args.owner, args.owner, path.read_bytes(), filename=path.name, title=args.title,
            )
        else:
            job = service.submit(args.owner, args.owner, url=args.url, text=text, title=args.title)
        info(log, "cli_job_submitted", job_id=job.id)
        if not service.runner.wait_idle(timeout=args.wait):
            print(json.dumps({"ok": False, "job_id": job.id, "message": "Timed out waiting for job"}))
            return 1
        job = service.get_job(job.id, args.owner)
    finally:
        service.runner.shutdown()

    print(json.dumps({"ok": job.status.value == "completed", "job": job.to_dict()}, ensure_ascii=False))
    return 0 if job.status.value == "completed" else 1


def _render_feed(owner_id: str, settings: Settings) -> int:
    from snipr.pipeline.feed import FeedPublisher
    from snipr.store.documents import get_document_store

    config = settings.get_pipeline_config()
    publisher = FeedPublisher(get_document_store(config.documents), config.feed)
    feed = publisher.get_feed(owner_id)
    if feed is None:
        print(f"No feed for owner: {owner_id}")
        return 1
    print(publisher.render(feed, settings.public_base_url + feed_path(feed)), end="")
    return 0


def _issue_token(owner_id: str, config: PipelineConfig) -> int:
    from snipr.services.auth import SignedTokenVerifier, get_verifier

    verifier = get_verifier(config.auth)
    if not isinstance(verifier, SignedTokenVerifier):
        print("Token issuing requires auth.mode = signed")
        return 1
    print(verifier.issue(owner_id))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("snipr.cli")
    set_trace_id(str(uuid4())[:12])

    settings = load_settings(args.settings, missing_ok=args.settings is None)
    config = settings.get_pipeline_config()

    try:
        if args.issue_token:
            return _issue_token(args.issue_token, config)
        if args.render_feed:
            return _render_feed(args.render_feed, settings)

        text = _load_text(args)
        if not args.url and not args.epub and text is None:
            raise SystemExit("Provide --url, --text, --file or --epub.")

        if args.dry_run:
            return _dry_run(args, config, text, log)
        if not args.owner:
            raise SystemExit("--owner is required for a conversion (or use --dry-run).")
        return _convert(args, settings, text, log)

    except SniprError as e:
        print(json.dumps(e.to_dict(), ensure_ascii=False))
        return 1
    except ValueError as e:
        print(json.dumps({"ok": False, "error": "INVALID_INPUT", "message": str(e)}))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
