import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from siteaudit.core.config import settings
from siteaudit.core.logging_config import configure_logging
from siteaudit.core.sentry import init_sentry
from siteaudit.services import redirect_chains
from siteaudit.services.suggestion_packer import filter_issues_to_fit_into_space


logger = logging.getLogger("siteaudit.cli")


def _read_json_list(raw_path: str) -> list[Any]:
    path = Path((raw_path or "").strip())
    if not path.is_file():
        raise SystemExit(f"Input file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, list):
        raise SystemExit(f"Expected a JSON list of issues in {path}")
    return data


def _emit(text: str, output: str | None) -> None:
    if not output:
        sys.stdout.write(text + "\n")
        return
    path = Path(output)
    if path.exists() and path.is_dir():
        raise SystemExit(f"Output path points to a directory: {path}")
    path.write_text(text + "\n", encoding="utf-8")
    logger.info("cli_output_written", extra={"path": str(path), "bytes": len(text.encode("utf-8"))})


def run_redirect_chains(base_url: str, *, output: str | None = None) -> bool:
    """Run the audit pipeline and emit it as JSON; returns the audit's success flag."""
    result = asyncio.run(redirect_chains.run_redirect_chains_pipeline(base_url))
    _emit(result.model_dump_json(by_alias=True, indent=2), output)
    return result.audit.audit_result.success


def pack_issues(input_path: str, *, budget_bytes: int | None = None, output: str | None = None) -> None:
    issues = _read_json_list(input_path)
    packed = filter_issues_to_fit_into_space(issues, budget_bytes=budget_bytes)
    _emit(packed.model_dump_json(by_alias=True, indent=2), output)


def _add_audit_commands(subparsers) -> None:
    chains = subparsers.add_parser("redirect-chains", help="Audit the redirects file of a site")
    chains.add_argument("base_url", help="Site URL, optionally with a subpath")
    chains.add_argument("--output", help="Write the JSON result to this file instead of stdout")
    chains.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")

    pack = subparsers.add_parser("pack-issues", help="Fit a JSON list of issues under the storage budget")
    pack.add_argument("input", help="Input JSON path")
    pack.add_argument("--budget-bytes", type=int, default=None, help="Override the configured budget")
    pack.add_argument("--output", help="Write the packed set to this file instead of stdout")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Site audit utilities")
    subparsers = parser.add_subparsers(dest="command")
    _add_audit_commands(subparsers)
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "redirect-chains":
        configure_logging(bool(args.json_logs) or settings.log_json)
        init_sentry()
        if not run_redirect_chains(args.base_url, output=args.output):
            raise SystemExit(1)
        return True

    if args.command == "pack-issues":
        configure_logging(settings.log_json)
        pack_issues(args.input, budget_bytes=args.budget_bytes, output=args.output)
        return True

    return False


def main(argv: list[str] | None = None):
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not _run_cli_command(args):
        parser.print_help()


if __name__ == "__main__":
    main()
