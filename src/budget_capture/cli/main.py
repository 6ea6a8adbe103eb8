from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Sequence

from ..app import BudgetWorkspace
from ..capture import load_page
from ..config import Settings, load_settings
from ..extraction import (
    BudgetExtractionService,
    DocumentNormalizer,
    EntitlementError,
    ExtractionError,
    LineOrder,
    QuotaExceededError,
    build_client,
)
from ..history import HistoryStore
from ..logging import get_logger
from ..paths import expand_abs

LOG = get_logger("cli-main")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_CREDENTIALS = 3


def _workspace(settings: Settings, *, order: str | None = None, api_key: str | None = None) -> BudgetWorkspace:
    service = BudgetExtractionService(
        build_client(settings, api_key=api_key),
        normalizer=DocumentNormalizer(LineOrder.parse(order or settings.line_order)),
        max_retries=settings.max_retries,
    )
    return BudgetWorkspace(service, HistoryStore(settings.history_path), settings.branding)


def _write_export(ws: BudgetWorkspace, document, fmt: str, output_dir: str) -> str:
    content, _, filename = ws.export(document, fmt)
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, filename)
    with open(path, "wb") as f:
        f.write(content)
    LOG.info(f"Wrote: {path}")
    return path


def _add_extract_cli(subparsers, settings: Settings) -> None:
    p = subparsers.add_parser("extract", help="Extract a budget from one or more page photos.")
    p.add_argument("images", nargs="+", help="Page photos of the same budget, in reading order")
    p.add_argument("--pdf", action="store_true", help="Also write the PDF export")
    p.add_argument("--docx", action="store_true", help="Also write the Word export")
    p.add_argument("--output-dir", default=None, help="Export directory (default: var/exports at repo root)")
    p.add_argument("--no-history", action="store_true", help="Do not record the result in the history")
    p.add_argument("--order", choices=[o.value for o in LineOrder], help="Line ordering policy")
    p.add_argument("--api-key", help="API key for the model backend (overrides env/.env)")

    def _extract(ns: argparse.Namespace) -> int:
        missing = [img for img in ns.images if not os.path.isfile(expand_abs(img))]
        if missing:
            LOG.error(f"Image(s) not found: {', '.join(missing)}")
            return EXIT_USAGE
        try:
            pages = [load_page(expand_abs(img)) for img in ns.images]
        except ValueError as exc:
            LOG.error(f"Could not read image: {exc}")
            return EXIT_USAGE

        ws = _workspace(settings, order=ns.order, api_key=ns.api_key)
        try:
            if ns.no_history:
                document = ws.run_extraction(pages)
            else:
                document = ws.extract_pages(pages)
        except (EntitlementError, QuotaExceededError) as exc:
            LOG.error(f"{exc.user_message} ({exc})")
            return EXIT_CREDENTIALS
        except ExtractionError as exc:
            LOG.error(f"{exc.user_message} ({exc})")
            return EXIT_FAILED

        out_dir = expand_abs(ns.output_dir) if ns.output_dir else settings.output_dir
        exports = {}
        for fmt, wanted in (("pdf", ns.pdf), ("docx", ns.docx)):
            if wanted:
                exports[fmt] = _write_export(ws, document, fmt, out_dir)
        print(json.dumps({"document": document.to_dict(), "exports": exports}, ensure_ascii=False, indent=2))
        return EXIT_OK

    p.set_defaults(handler=_extract)


def _add_history_cli(subparsers, settings: Settings) -> None:
    p = subparsers.add_parser("history", help="List, show or remove past budgets.")
    sub = p.add_subparsers(dest="history_command", required=True)

    def _list(_: argparse.Namespace) -> int:
        for entry in HistoryStore(settings.history_path).list():
            print(f"{entry.id}\t{entry.captured_at}\t{entry.client}\t{entry.total:.2f}€")
        return EXIT_OK

    sub.add_parser("list", help="List history entries, newest first").set_defaults(handler=_list)

    show = sub.add_parser("show", help="Print one history entry as JSON")
    show.add_argument("id")

    def _show(ns: argparse.Namespace) -> int:
        entry = HistoryStore(settings.history_path).get(ns.id)
        if entry is None:
            LOG.error(f"No history entry {ns.id}")
            return EXIT_FAILED
        print(json.dumps(entry.to_dict(), ensure_ascii=False, indent=2))
        return EXIT_OK

    show.set_defaults(handler=_show)

    remove = sub.add_parser("remove", help="Delete one history entry")
    remove.add_argument("id")

    def _remove(ns: argparse.Namespace) -> int:
        if not HistoryStore(settings.history_path).remove(ns.id):
            LOG.error(f"No history entry {ns.id}")
            return EXIT_FAILED
        return EXIT_OK

    remove.set_defaults(handler=_remove)


def _add_export_cli(subparsers, settings: Settings) -> None:
    p = subparsers.add_parser("export", help="Re-export a budget from the history.")
    p.add_argument("id")
    p.add_argument("--format", choices=["pdf", "docx", "html"], default="pdf")
    p.add_argument("--output-dir", default=None)

    def _export(ns: argparse.Namespace) -> int:
        ws = _workspace(settings)
        document = ws.find_document(ns.id)
        if document is None:
            LOG.error(f"No history entry {ns.id}")
            return EXIT_FAILED
        out_dir = expand_abs(ns.output_dir) if ns.output_dir else settings.output_dir
        print(_write_export(ws, document, ns.format, out_dir))
        return EXIT_OK

    p.set_defaults(handler=_export)


def _add_serve_cli(subparsers, settings: Settings) -> None:
    p = subparsers.add_parser("serve", help="Run the local capture/extraction web API.")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8001)
    p.add_argument("--log-level", default="info")
    p.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    p.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )

    def _serve(ns: argparse.Namespace) -> int:
        from ..web import create_app
        import uvicorn

        if ns.reload:
            # Reload needs an import string; settings are re-read by the factory.
            uvicorn.run(
                "budget_capture.web.app:create_app_from_env",
                factory=True,
                reload=True,
                host=ns.host,
                port=ns.port,
                log_level=ns.log_level,
            )
            return EXIT_OK
        app = create_app(settings, allow_origins=ns.allow_origins)
        uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)
        return EXIT_OK

    p.set_defaults(handler=_serve)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="budget-capture",
        description="Digitize handwritten budgets with a vision model and export them as PDF/Word.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_extract_cli(subparsers, settings)
    _add_history_cli(subparsers, settings)
    _add_export_cli(subparsers, settings)
    _add_serve_cli(subparsers, settings)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")

    settings = load_settings(os.getcwd())
    args = build_parser(settings).parse_args(provided)
    code = args.handler(args)
    LOG.debug(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
