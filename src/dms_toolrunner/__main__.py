#!/usr/bin/env python3
"""Command-line entry point: python -m dms_toolrunner <command> ..."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dms_toolrunner.config import (
    FOURTEEN_DAYS_S,
    IDPickerConfig,
    InspectAssemblyConfig,
    ModPlusConfig,
    PoolConfig,
)
from dms_toolrunner.pipeline.logger import setup_logger
from dms_toolrunner.plugins.idpicker import determine_decoy_prefix, run_idpicker
from dms_toolrunner.plugins.inspect import run_inspect_assembly
from dms_toolrunner.plugins.modplus import run_modplus_search
from dms_toolrunner.plugins.result import ToolRunResult
from dms_toolrunner.utils.threads import core_count

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="dms-toolrunner",
        description="Run peptide search tools as a pool of external processes and merge their results",
    )
    p.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    p.add_argument("--no-log-file", action="store_true", help="Log to the console only")
    sub = p.add_subparsers(dest="command", required=True)

    m = sub.add_parser("modplus", help="Run a parallel MODPlus search")
    m.add_argument("dataset", help="Dataset name")
    m.add_argument("work_dir", type=Path, help="Working directory")
    m.add_argument("--java", type=Path, default=Path("java"), help="Java executable (default: java)")
    m.add_argument("--jar", type=Path, required=True, help="Path to modp_pnnl.jar")
    m.add_argument("--params", type=Path, required=True, help="Master MODPlus XML parameter file")
    m.add_argument("--fasta", type=Path, required=True, help="Protein FASTA file")
    m.add_argument("--threads", default="90%", help='"all", a percentage, or a count (default: 90%%)')
    m.add_argument("--java-memory", type=int, default=3000, help="Java heap per thread in MB (default: 3000)")
    m.add_argument("--dataset-type", default="", help='Dataset type; ending in "HMSn" means high-res MS/MS')
    m.add_argument("--spectrum-file", type=Path, default=None, help="Spectrum file to convert when <dataset>.mgf is missing")
    m.add_argument("--msconvert", type=Path, default=None, help="MSConvert executable")
    m.add_argument("--max-workers", type=int, default=None, help="Concurrent processes (default: one per core)")
    m.add_argument("--poll-interval", type=float, default=15.0, help="Coordinator poll interval in seconds (default: 15)")
    m.add_argument("--timeout", type=float, default=FOURTEEN_DAYS_S, help="Pool timeout in seconds (default: 14 days)")
    m.add_argument("--retries", type=int, default=0, help="Re-run the whole pool this many times on failure")
    m.add_argument("--keep-intermediate-files", action="store_true", help="Keep split and per-thread files")
    m.add_argument("--no-progress", action="store_true", help="Disable the progress bar")

    i = sub.add_parser("inspect-assembly", help="Reassemble parallelized Inspect results")
    i.add_argument("dataset", help="Dataset name")
    i.add_argument("work_dir", type=Path, help="Working directory")
    i.add_argument("--segments", type=int, default=0, help="Number of cloned Inspect steps (0 = not parallelized)")
    i.add_argument("--keep-intermediate-files", action="store_true", help="Keep per-segment files")

    q = sub.add_parser("idpicker", help="Run idpQonvert, idpAssemble and idpReport on a pepXML file")
    q.add_argument("dataset", help="Dataset name")
    q.add_argument("work_dir", type=Path, help="Working directory")
    q.add_argument("--program-dir", type=Path, required=True, help="Folder with idpQonvert.exe, idpAssemble.exe and idpReport.exe")
    q.add_argument("--fasta", type=Path, required=True, help="Protein FASTA file (with decoy proteins)")
    q.add_argument("--pepxml", type=Path, default=None, help="pepXML file (default: <work_dir>/<dataset>.pepXML)")
    q.add_argument("--params", type=Path, default=None, help="key=value IDPicker option file")
    q.add_argument("--result-type", default="", help="Search tool that produced the pepXML (e.g. MSGFPlus, MODa)")
    q.add_argument("--keep-intermediate-files", action="store_true", help="Keep Assemble.txt and the assembled XML")

    d = sub.add_parser("decoy-prefix", help="Print the most common decoy protein prefix in a FASTA file")
    d.add_argument("fasta", type=Path, help="Protein FASTA file")

    return p.parse_args(argv)


def _report(result: ToolRunResult) -> int:
    if result.success:
        print(f"{result.tool} completed: {', '.join(str(p) for p in result.output_files)}")
        return 0
    print(f"{result.tool} failed: {result.message}", file=sys.stderr)
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    level = getattr(logging, str(args.log_level).upper(), logging.INFO)

    if args.command == "decoy-prefix":
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        if not args.fasta.exists():
            print(f"FASTA file not found: {args.fasta}", file=sys.stderr)
            return 1
        print(determine_decoy_prefix(args.fasta))
        return 0

    if args.no_log_file:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    else:
        setup_logger(args.work_dir, args.command, args.dataset, level=level)

    if args.command == "modplus":
        try:
            config = ModPlusConfig(
                dataset=args.dataset,
                work_dir=args.work_dir,
                java_path=args.java,
                modplus_jar=args.jar,
                param_file=args.params,
                fasta_path=args.fasta,
                thread_count=args.threads,
                java_memory_mb=args.java_memory,
                dataset_type=args.dataset_type,
                spectrum_file=args.spectrum_file,
                msconvert_path=args.msconvert,
                pool_retries=args.retries,
                keep_intermediate_files=args.keep_intermediate_files,
            )
            # The pool never runs more workers than there are MGF parts
            pool_config = PoolConfig(
                max_workers=args.max_workers or core_count(),
                poll_interval_s=args.poll_interval,
                timeout_s=args.timeout,
                show_progress=not args.no_progress,
            )
        except ValueError as exc:
            print(f"Invalid arguments: {exc}", file=sys.stderr)
            return 1
        return _report(run_modplus_search(config, pool_config))

    if args.command == "idpicker":
        config = IDPickerConfig(
            dataset=args.dataset,
            work_dir=args.work_dir,
            program_dir=args.program_dir,
            fasta_path=args.fasta,
            pepxml_path=args.pepxml or args.work_dir / f"{args.dataset}.pepXML",
            param_file=args.params,
            result_type=args.result_type,
            keep_intermediate_files=args.keep_intermediate_files,
        )
        return _report(run_idpicker(config))

    try:
        config = InspectAssemblyConfig(
            dataset=args.dataset,
            work_dir=args.work_dir,
            num_cloned_steps=args.segments,
            keep_intermediate_files=args.keep_intermediate_files,
        )
    except ValueError as exc:
        print(f"Invalid arguments: {exc}", file=sys.stderr)
        return 1
    return _report(run_inspect_assembly(config))


if __name__ == "__main__":
    sys.exit(main())
