"""
Parallel external-tool runner for peptide search post-processing.

Runs one external process per input partition through a bounded worker
pool, then merges the per-partition results in key order.

Main entry points:
    run_modplus_search() - Split spectra, run MODPlus per part, merge results
    run_inspect_assembly() - Reassemble parallelized Inspect output
    run_idpicker() - idpQonvert, idpAssemble and idpReport in sequence
    determine_decoy_prefix() - Most common decoy protein prefix in a FASTA file

Key components:
    - pipeline.runner: WorkerPool coordinator
    - pipeline.worker: Per-partition process monitoring
    - merge.stream: Ordered K-way merge of sorted block streams
"""

from dms_toolrunner.plugins.idpicker import determine_decoy_prefix, run_idpicker
from dms_toolrunner.plugins.inspect import run_inspect_assembly
from dms_toolrunner.plugins.modplus import run_modplus_search

__all__ = [
    "run_modplus_search",
    "run_inspect_assembly",
    "run_idpicker",
    "determine_decoy_prefix",
]

__version__ = "0.1.0"
