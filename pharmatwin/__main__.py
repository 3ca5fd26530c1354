from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from pharmatwin.core import logging as _logging  # noqa: F401  Initialize logging
from pharmatwin.exceptions import VcfParseError
from pharmatwin.schemas.pharma_schema import PKSimulation
from pharmatwin.services.pipeline.analysis_pipeline import run_analysis
from pharmatwin.services.pk.simulator import PKSimulator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pharmatwin", description="Pharmacogenomic risk and PK twin")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyze a VCF file")
    analyze.add_argument("path", type=Path, help="Path to a .vcf or .vcf.gz file")
    analyze.add_argument("--drugs", default="", help="Comma-separated drug names (default: all supported)")
    analyze.add_argument("--explain", action="store_true", help="Request LLM explanations (needs GROQ_API_KEY)")

    simulate = sub.add_parser("simulate", help="Run the PK simulation for one drug")
    simulate.add_argument("drug")
    simulate.add_argument("--phenotype", default="NM", help="Phenotype label or code (default: NM)")
    simulate.add_argument("--window", type=float, default=None, help="Time window in hours")
    simulate.add_argument("--summary", action="store_true", help="Print Cmax/Tmax/AUC only")
    return parser


def _analyze(args: argparse.Namespace) -> int:
    if not args.path.exists():
        print(f"File not found: {args.path}", file=sys.stderr)
        return 2

    drugs = [d for d in args.drugs.split(",") if d.strip()]
    try:
        results = asyncio.run(run_analysis(args.path, drugs, explain=args.explain))
    except VcfParseError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    payload = {"results": [r.model_dump() for r in results]}
    print(json.dumps(payload, indent=2))
    return 0


def _simulate(args: argparse.Namespace) -> int:
    try:
        series = PKSimulator().simulate(args.drug, args.phenotype, args.window)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.summary:
        payload = asdict(series.summary())
        payload["clearance_label"] = series.clearance_label
    else:
        payload = PKSimulation.from_series(series).model_dump()
    print(json.dumps(payload, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "analyze":
        return _analyze(args)
    return _simulate(args)


if __name__ == "__main__":
    raise SystemExit(main())
