# dms_toolrunner/io/params.py
"""Per-thread MODPlus XML parameter files."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Mapping, Union

from lxml import etree

logger = logging.getLogger(__name__)

__all__ = ["ParamFileError", "create_thread_param_files"]

LOW_RES = "low"
HIGH_RES = "high"

MIN_FRAG_TOL_LOW_RES_DA = 0.3
DEFAULT_FRAG_TOL_LOW_RES = "0.5"
DEFAULT_FRAG_TOL_HIGH_RES = "0.05"

_THREAD_RX = re.compile(r"_Part(\d+)\.mgf", re.IGNORECASE)


class ParamFileError(RuntimeError):
    """The MODPlus parameter file could not be prepared."""


def _ensure_element(root: etree._Element, path: str, attrib: Mapping[str, str]) -> etree._Element:
    """Return the element at ``path`` below root, creating it (and parents) with ``attrib``."""
    node = root
    parts = path.split("/")
    for i, tag in enumerate(parts):
        child = node.find(tag)
        if child is None:
            child = etree.SubElement(node, tag)
            if i == len(parts) - 1:
                for key, value in attrib.items():
                    child.set(key, value)
        node = child
    return node


def _define_dataset_and_fasta(root: etree._Element, fasta_path: Path) -> None:
    dataset = _ensure_element(root, "dataset", {})
    dataset.set("local_path", "Dataset_PartX.mgf")
    dataset.set("format", "mgf")

    database = _ensure_element(root, "database", {})
    database.set("local_path", str(fasta_path))


def _define_mass_resolution(root: etree._Element, high_res_msms: bool) -> None:
    msms_res = HIGH_RES if high_res_msms else LOW_RES

    resolution = root.find("instrument_resolution")
    if resolution is None:
        _ensure_element(root, "instrument_resolution", {"ms": HIGH_RES, "msms": msms_res})
    elif resolution.get("msms") == HIGH_RES and msms_res == LOW_RES:
        resolution.set("msms", msms_res)
        logger.warning("Auto-switched to low resolution mode for MS/MS data")

    frag_tol = root.find("parameters/fragment_ion_tol")
    if frag_tol is None:
        value = DEFAULT_FRAG_TOL_HIGH_RES if high_res_msms else DEFAULT_FRAG_TOL_LOW_RES
        _ensure_element(root, "parameters/fragment_ion_tol", {"value": value, "unit": "da"})
        return

    if high_res_msms:
        return

    value, unit = frag_tol.get("value"), frag_tol.get("unit")
    if value is None or unit is None:
        logger.warning("The fragment_ion_tol node is missing attributes value and/or unit")
        return

    try:
        tol_da = float(value)
    except ValueError:
        return

    if unit.lower() == "ppm":
        tol_da = tol_da * 1000 / 1e6

    if tol_da < MIN_FRAG_TOL_LOW_RES_DA:
        logger.warning(
            "Auto-changed fragment_ion_tol to %s Da since low resolution MS/MS",
            DEFAULT_FRAG_TOL_LOW_RES,
        )
        frag_tol.set("value", DEFAULT_FRAG_TOL_LOW_RES)
        frag_tol.set("unit", "da")


def create_thread_param_files(
        master_param: Union[str, Path],
        fasta_path: Union[str, Path],
        mgf_files: Iterable[Union[str, Path]],
        high_res_msms: bool,
) -> Dict[int, Path]:
    """
    Write one MODPlus parameter file per split MGF file.

    The master file is normalised once (FASTA path, instrument resolution,
    fragment tolerance) and then written as ``<stem>_PartN.xml`` beside it
    for each ``*_PartN.mgf``, pointing ``/search/dataset`` at that part.

    Returns:
        Mapping of thread number to parameter file path

    Raises:
        ParamFileError: Unreadable master file, an MGF name without a part
            number, or two MGF files with the same part number
    """
    master = Path(master_param)
    try:
        tree = etree.parse(str(master), etree.XMLParser(remove_blank_text=True))
    except (OSError, etree.XMLSyntaxError) as exc:
        raise ParamFileError(f"Cannot read MODPlus parameter file {master}: {exc}") from exc

    root = tree.getroot()
    if root.tag != "search":
        raise ParamFileError(f"Root element of {master.name} is <{root.tag}>, expected <search>")

    _define_dataset_and_fasta(root, Path(fasta_path))
    _define_mass_resolution(root, high_res_msms)

    param_files: Dict[int, Path] = {}
    for mgf in map(Path, mgf_files):
        match = _THREAD_RX.search(mgf.name)
        if not match:
            raise ParamFileError(f"Cannot extract the thread number from MGF file name: {mgf.name}")

        thread = int(match.group(1))
        if thread in param_files:
            raise ParamFileError(f"Duplicate thread number {thread} for {mgf.name}")

        dataset = root.find("dataset")
        dataset.set("local_path", str(mgf.resolve()))
        dataset.set("format", "mgf")

        out_path = master.with_name(f"{master.stem}_Part{thread}.xml")
        etree.indent(tree, space="    ")
        tree.write(str(out_path), encoding="utf-8", xml_declaration=True, pretty_print=True)
        param_files[thread] = out_path
        logger.debug("Thread %d parameter file: %s", thread, out_path.name)

    return param_files
