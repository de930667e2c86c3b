from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from hiddenapi_audit.errors import HiddenApiError
from hiddenapi_audit.orchestrator import AuditOrchestrator
from hiddenapi_audit.telemetry import init_telemetry
from hiddenapi_audit.utils.config import load_settings, validate_settings

DEFAULT_SETTINGS_PATH = "config/settings.yaml"


def _split_paths(values: List[str]) -> List[str]:
    paths: List[str] = []
    for value in values:
        paths.extend(part for part in value.split(":") if part)
    return paths


def _apply_overrides(settings: Dict[str, Any], args: argparse.Namespace) -> None:
    analysis = settings.setdefault("analysis", {})
    if args.api_flags:
        analysis["api_flags"] = args.api_flags
    if args.app_class_filter is not None:
        analysis["app_class_filter"] = [p for p in args.app_class_filter.split(",") if p]
    if args.exclude_api_lists is not None:
        analysis["exclude_api_lists"] = [p for p in args.exclude_api_lists.split(",") if p]
    if args.no_reflection:
        analysis["dump_reflection"] = False
    if args.max_reflection_candidates is not None:
        analysis["max_reflection_candidates"] = args.max_reflection_candidates
    if args.artifacts_dir:
        analysis["artifacts_dir"] = args.artifacts_dir


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Report hidden API uses in DEX/APK files")
    parser.add_argument(
        "--dex-file",
        action="append",
        default=[],
        help="DEX or APK file to scan; repeatable, or colon separated",
    )
    parser.add_argument("--api-flags", help="Path to hiddenapi-flags.csv")
    parser.add_argument(
        "--app-class-filter",
        help="Comma separated class prefixes whose methods are scanned (default: all)",
    )
    parser.add_argument(
        "--exclude-api-lists",
        help="Comma separated API lists never reported (default: sdk)",
    )
    parser.add_argument("--no-reflection", action="store_true", help="Skip reflection findings")
    parser.add_argument("--max-reflection-candidates", type=int, help="Abort above this many pairs")
    parser.add_argument("--artifacts-dir", help="Directory for report and run artifacts")
    parser.add_argument("--settings", help=f"Settings YAML path (default: {DEFAULT_SETTINGS_PATH} if present)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    inputs = _split_paths(args.dex_file)
    if not inputs:
        parser.error("--dex-file is required.")

    settings_path = args.settings
    if settings_path is None and Path(DEFAULT_SETTINGS_PATH).is_file():
        settings_path = DEFAULT_SETTINGS_PATH
    try:
        settings = load_settings(settings_path)
        _apply_overrides(settings, args)
        validate_settings(settings)
    except HiddenApiError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    level = "DEBUG" if args.verbose else settings["observability"].get("log_level", "INFO")
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    init_telemetry(settings)

    try:
        result = AuditOrchestrator(settings).run(inputs, sys.stdout)
    except HiddenApiError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(f"Report written to {result['report_path']}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
