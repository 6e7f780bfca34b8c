# dms_toolrunner/config.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

FOURTEEN_DAYS_S = 14 * 24 * 60 * 60.0


# Worker pool options used by WorkerPool
@dataclass(frozen=True)
class PoolConfig:
    """Bounded worker pool configuration.

    Timing:
        - poll_interval_s: how long the coordinator waits on the workers
          before re-aggregating progress
        - status_interval_s: how often each worker re-parses its console
          output and samples CPU usage
        - timeout_s: wall-clock ceiling for the whole pool
    """
    max_workers: int = 4
    poll_interval_s: float = 15.0
    status_interval_s: float = 30.0
    timeout_s: float = FOURTEEN_DAYS_S

    # Console error text containing any of these strings is not a failure
    errors_to_ignore: Tuple[str, ...] = ()

    show_progress: bool = True

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.poll_interval_s <= 0:
            raise ValueError("poll_interval_s must be positive")
        if self.status_interval_s <= 0:
            raise ValueError("status_interval_s must be positive")
        if self.timeout_s <= 0:
            raise ValueError("timeout_s must be positive")


# MODPlus search job
@dataclass(frozen=True)
class ModPlusConfig:
    dataset: str
    work_dir: Path
    java_path: Path
    modplus_jar: Path
    param_file: Path
    fasta_path: Path

    # "all", "90%", or an explicit count; capped by free memory per thread
    thread_count: str = "90%"
    java_memory_mb: int = 3000

    # Dataset type ending in "HMSn" means high resolution MS/MS spectra
    dataset_type: str = ""

    # Spectrum conversion (skipped when <dataset>.mgf already exists)
    spectrum_file: Optional[Path] = None
    msconvert_path: Optional[Path] = None

    pool_retries: int = 0
    keep_intermediate_files: bool = False

    @property
    def effective_java_memory_mb(self) -> int:
        return max(500, self.java_memory_mb)

    @property
    def high_res_msms(self) -> bool:
        return self.dataset_type.lower().endswith("hmsn")


# Inspect parallel results reassembly
@dataclass(frozen=True)
class InspectAssemblyConfig:
    dataset: str
    work_dir: Path

    # 0 means the search was not parallelized; nothing to assemble
    num_cloned_steps: int = 0
    keep_intermediate_files: bool = False

    def __post_init__(self) -> None:
        if self.num_cloned_steps < 0:
            raise ValueError("num_cloned_steps cannot be negative")


# IDPicker sequential pipeline (idpQonvert -> idpAssemble -> idpReport)
@dataclass(frozen=True)
class IDPickerConfig:
    dataset: str
    work_dir: Path

    # Folder holding idpQonvert.exe, idpAssemble.exe and idpReport.exe
    program_dir: Path
    fasta_path: Path
    pepxml_path: Path

    # key=value option file; options override the default arguments
    param_file: Optional[Path] = None

    # Search tool that produced the pepXML; MODa and MODPlus scores are probabilities
    result_type: str = ""
    keep_intermediate_files: bool = False

    @property
    def probability_scores(self) -> bool:
        return self.result_type.lower() in ("moda", "modplus")
