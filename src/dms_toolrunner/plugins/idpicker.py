# dms_toolrunner/plugins/idpicker.py
"""
IDPicker: decoy prefix detection and the sequential Qonvert/Assemble/Report pipeline.

Steps and the overall progress reported when each starts:
    20  idpQonvert   search scores in the pepXML file -> q-values (.idpXML)
    60  idpAssemble  organise the results into a hierarchy
    70  idpReport    protein parsimony, HTML and TSV reports
    95  reports moved and zipped
"""
from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from Bio import SeqIO
from setproctitle import setproctitle

from dms_toolrunner.config import IDPickerConfig
from dms_toolrunner.pipeline.steps import run_tool_step
from dms_toolrunner.plugins.result import ToolRunResult
from dms_toolrunner.utils.archive import zip_directory
from dms_toolrunner.utils.cleanup import safe_remove_files

logger = logging.getLogger(__name__)

__all__ = [
    "DECOY_PREFIXES",
    "IDPickerError",
    "IDPickerStep",
    "determine_decoy_prefix",
    "load_idpicker_options",
    "build_idpicker_steps",
    "run_idpicker_pipeline",
    "run_idpicker",
]

# X!Tandem marks decoys with a ":reversed" suffix; IDPicker only supports prefixes
DECOY_PREFIXES = (
    "reversed_",   # MTS reversed proteins
    "scrambled_",  # MTS scrambled proteins
    "xxx.",        # Inspect reversed/scrambled proteins
    "rev_",        # MSGFDB reversed proteins
    "xxx_",        # MSGF+ reversed proteins
)

QONVERT_EXE = "idpQonvert.exe"
ASSEMBLE_EXE = "idpAssemble.exe"
REPORT_EXE = "idpReport.exe"

QONVERT_CONSOLE = "IDPicker_Qonvert_ConsoleOutput.txt"
ASSEMBLE_CONSOLE = "IDPicker_Assemble_ConsoleOutput.txt"
REPORT_CONSOLE = "IDPicker_Report_ConsoleOutput.txt"

ASSEMBLE_GROUPING_FILENAME = "Assemble.txt"
ASSEMBLE_OUTPUT_FILENAME = "IDPicker_AssembledResults.xml"
REPORT_DIR_NAME = "IDPicker"
REPORT_ZIP_NAME = "IDPicker_HTML_Results.zip"

PROGRESS_QONVERT = 20.0
PROGRESS_ASSEMBLE = 60.0
PROGRESS_REPORT = 70.0
PROGRESS_COMPLETE = 95.0

_CONFIG_FILE_WARNING = "could not find the default configuration file"


class IDPickerError(RuntimeError):
    """An IDPicker input is missing or unusable."""


@dataclass(frozen=True)
class IDPickerStep:
    """One external program in the sequential pipeline."""

    name: str
    args: Tuple[str, ...]
    console_name: str
    errors_to_ignore: Tuple[str, ...] = ()

    # File or folder the step must create; checked only when the step succeeds
    expected_output: Optional[Path] = None
    progress: float = 0.0
    timeout_s: float = 90 * 60.0

    # Console errors containing any of these end the step without failing the job
    tolerated_errors: Tuple[str, ...] = ()


def determine_decoy_prefix(fasta_path: Union[str, Path]) -> str:
    """
    Return the most common decoy protein prefix in a FASTA file, or "".

    Prefixes are matched case-insensitively but counted with the case found
    in the file, so "XXX_" and "xxx_" are tallied separately. On a tie the
    prefix seen first wins.
    """
    logger.debug("Looking for decoy proteins in %s", fasta_path)
    counts: Dict[str, int] = {}

    for record in SeqIO.parse(str(fasta_path), "fasta"):
        protein = record.id
        lowered = protein.lower()
        for prefix in DECOY_PREFIXES:
            if lowered.startswith(prefix):
                found = protein[: len(prefix)]
                counts[found] = counts.get(found, 0) + 1

    if not counts:
        logger.info("No decoy proteins found in %s", Path(fasta_path).name)
        return ""

    best = max(counts, key=counts.__getitem__)
    logger.info(
        "Decoy protein prefix %r (%d of %d prefixed proteins)",
        best, counts[best], sum(counts.values()),
    )
    return best


def load_idpicker_options(param_file: Union[str, Path]) -> Dict[str, str]:
    """
    Read ``key=value`` options; keys are returned lower-cased.

    Blank lines, ``#`` comment lines and lines without ``=`` are skipped, and
    a trailing ``# comment`` is removed from the value. The first occurrence
    of a duplicate key wins.
    """
    options: Dict[str, str] = {}
    path = Path(param_file)

    with open(path, "r", encoding="utf-8", errors="replace") as fh:
        for line in fh:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.split("#", 1)[0].strip()
            if not key:
                continue
            if key.lower() in options:
                logger.warning("Ignoring duplicate option %r in %s", key, path.name)
                continue
            options[key.lower()] = value

    return options


def _option(
        args: List[str],
        options: Mapping[str, str],
        option_name: str,
        default: str,
        argument_name: Optional[str] = None,
) -> None:
    args += [f"-{argument_name or option_name}", options.get(option_name.lower(), default)]


def build_idpicker_steps(
        config: IDPickerConfig,
        decoy_prefix: str,
        options: Optional[Mapping[str, str]] = None,
) -> List[IDPickerStep]:
    """
    Command lines for idpQonvert, idpAssemble and idpReport.

    Values in ``options`` (keys lower-cased) replace the default argument
    values; MaxFDR is read from QonvertMaxFDR, AssemblyMaxFDR and
    ReportMaxFDR respectively.
    """
    options = dict(options or {})
    if config.probability_scores:
        # Higher MODa / MODPlus probability scores are better
        options["searchscoreweights"] = "Probability 1"
        options["normalizedsearchscores"] = "Probability"

    work_dir = config.work_dir
    program_dir = config.program_dir
    assembled = work_dir / ASSEMBLE_OUTPUT_FILENAME

    qonvert = [str(program_dir / QONVERT_EXE)]
    _option(qonvert, options, "QonvertMaxFDR", "0.1", "MaxFDR")
    qonvert += ["-ProteinDatabase", str(config.fasta_path)]
    _option(qonvert, options, "SearchScoreWeights", "msgfspecprob -1")
    _option(qonvert, options, "OptimizeScoreWeights", "1")
    _option(qonvert, options, "NormalizedSearchScores", "msgfspecprob")
    qonvert += ["-DecoyPrefix", decoy_prefix, "-dump", str(config.pepxml_path)]

    assemble = [str(program_dir / ASSEMBLE_EXE), ASSEMBLE_OUTPUT_FILENAME]
    _option(assemble, options, "AssemblyMaxFDR", "0.1", "MaxFDR")
    assemble += ["-b", ASSEMBLE_GROUPING_FILENAME, "-dump"]

    report = [str(program_dir / REPORT_EXE), REPORT_DIR_NAME, str(assembled)]
    _option(report, options, "ReportMaxFDR", "0.05", "MaxFDR")
    _option(report, options, "MinDistinctPeptides", "2")
    _option(report, options, "MinAdditionalPeptides", "2")
    _option(report, options, "ModsAreDistinctByDefault", "true")
    _option(report, options, "MaxAmbiguousIds", "2")
    _option(report, options, "MinSpectraPerProtein", "2")
    report += ["-OutputTextReport", "true", "-dump"]

    shared_db_warning = "protein database filename should be the same in all input files"

    return [
        IDPickerStep(
            name="IDPQonvert",
            args=tuple(qonvert),
            console_name=QONVERT_CONSOLE,
            errors_to_ignore=(_CONFIG_FILE_WARNING, "could not find the default residue masses file"),
            expected_output=work_dir / f"{config.dataset}.idpXML",
            progress=PROGRESS_QONVERT,
        ),
        IDPickerStep(
            name="IDPAssemble",
            args=tuple(assemble),
            console_name=ASSEMBLE_CONSOLE,
            errors_to_ignore=(shared_db_warning, "Could not find the default configuration file"),
            expected_output=assembled,
            progress=PROGRESS_ASSEMBLE,
        ),
        IDPickerStep(
            name="IDPReport",
            args=tuple(report),
            console_name=REPORT_CONSOLE,
            errors_to_ignore=(shared_db_warning, "Could not find the default configuration file"),
            expected_output=work_dir / REPORT_DIR_NAME,
            progress=PROGRESS_REPORT,
            timeout_s=60 * 60.0,
            # Every protein filtered out; not enough filter-passing peptides
            tolerated_errors=("no spectra in workspace",),
        ),
    ]


def run_idpicker_pipeline(
        steps: Sequence[IDPickerStep],
        work_dir: Union[str, Path],
        *,
        result: Optional[ToolRunResult] = None,
) -> ToolRunResult:
    """
    Run ``steps`` one after another, stopping at the first failure.

    Each step writes its console output to ``work_dir / step.console_name``,
    which is scanned for ``Error:`` and ``Unhandled Exception`` lines once
    the program exits. A failed step sets ``result.message`` to
    "Error running <step>: <first error>". A step whose errors match its
    ``tolerated_errors`` ends the pipeline successfully with a warning in
    ``result.message``.
    """
    work_dir = Path(work_dir)
    result = result or ToolRunResult(tool="IDPicker")

    for step in steps:
        result.progress = step.progress
        outcome = run_tool_step(
            step.name,
            step.args,
            console_path=work_dir / step.console_name,
            cwd=work_dir,
            errors_to_ignore=step.errors_to_ignore,
            timeout_s=step.timeout_s,
            scan_console=True,
        )
        result.steps.append(outcome)

        if not outcome.success:
            tolerated = next(
                (e for e in outcome.errors
                 if any(text in e for text in step.tolerated_errors)),
                None,
            )
            if tolerated is not None:
                result.message = f"{step.name} reported '{tolerated}'; remaining steps skipped"
                logger.warning(result.message)
                result.success = True
                return result

            detail = outcome.errors[0] if outcome.errors else outcome.error
            result.message = f"Error running {step.name}: {detail}"
            logger.error(result.message)
            return result

        if step.expected_output is not None and not step.expected_output.exists():
            result.message = f"{step.name} results not found: {step.expected_output.name}"
            logger.error("%s at %s", result.message, step.expected_output)
            return result

    result.success = True
    return result


def _write_assemble_file(config: IDPickerConfig) -> Path:
    """Assemble.txt lists one dataset: PNNL/<dataset> <dataset>.idpXML."""
    path = config.work_dir / ASSEMBLE_GROUPING_FILENAME
    label = "PNNL/" + config.dataset.replace(" ", "_")
    path.write_text(f"{label} {config.dataset}.idpXML\n", encoding="utf-8")
    return path


def _package_report(config: IDPickerConfig, result: ToolRunResult) -> None:
    """Move report TSVs into the work directory and zip the report folder."""
    work_dir = config.work_dir
    report_dir = work_dir / REPORT_DIR_NAME

    tsv_files = []
    for tsv in sorted(report_dir.glob("*.tsv")):
        target = work_dir / tsv.name
        shutil.move(str(tsv), str(target))
        tsv_files.append(target)
    if not tsv_files:
        raise IDPickerError(f"IDPicker report folder does not contain any TSV files: {report_dir}")

    for name in (QONVERT_CONSOLE, ASSEMBLE_CONSOLE, REPORT_CONSOLE):
        console = work_dir / name
        if console.exists():
            shutil.copy2(console, report_dir / name)

    zip_path = zip_directory(work_dir / REPORT_ZIP_NAME, report_dir)
    result.output_files = [*tsv_files, zip_path]


def run_idpicker(config: IDPickerConfig) -> ToolRunResult:
    """
    Run idpQonvert, idpAssemble and idpReport over ``config.pepxml_path``.

    IDPicker is skipped (successfully) when the FASTA file has no decoy
    proteins. On success the report TSV files are moved into the work
    directory and the report folder is zipped into IDPicker_HTML_Results.zip.
    """
    try:
        setproctitle("dms:idpicker")
    except Exception:
        pass

    start = time.perf_counter()
    result = ToolRunResult(tool="IDPicker")
    intermediates: List[Path] = []

    try:
        if not config.pepxml_path.exists():
            raise IDPickerError(f"pepXML file not found: {config.pepxml_path}")

        decoy_prefix = determine_decoy_prefix(config.fasta_path)
        if not decoy_prefix:
            result.message = "No decoy proteins; skipping IDPicker"
            logger.warning(result.message)
            result.progress = PROGRESS_COMPLETE
            result.success = True
            return result

        options = load_idpicker_options(config.param_file) if config.param_file else {}
        intermediates += [
            _write_assemble_file(config),
            config.work_dir / ASSEMBLE_OUTPUT_FILENAME,
        ]

        steps = build_idpicker_steps(config, decoy_prefix, options)
        run_idpicker_pipeline(steps, config.work_dir, result=result)
        if not result.success:
            return result

        if (config.work_dir / REPORT_DIR_NAME).is_dir():
            _package_report(config, result)

        result.progress = PROGRESS_COMPLETE
        return result

    except (IDPickerError, OSError, ValueError) as exc:
        logger.exception("IDPicker job failed")
        result.success = False
        result.message = str(exc)
        return result

    finally:
        result.elapsed_s = time.perf_counter() - start
        if not config.keep_intermediate_files:
            safe_remove_files(p for p in intermediates if p.exists())
        logger.info(
            "IDPicker %s in %.1f s%s",
            "succeeded" if result.success else "failed",
            result.elapsed_s,
            f": {result.message}" if result.message else "",
        )
