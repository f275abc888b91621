from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet

from dotenv import load_dotenv

_env_path = Path(__file__).resolve().parents[1] / ".env"
if _env_path.is_file():
    load_dotenv(_env_path, override=False)

DEFAULT_IGNORED_ELEMENTS = frozenset({"H"})
DEFAULT_IGNORED_LIGANDS = frozenset({"HOH", "DOD", "WAT", "H2O", "GOL", "EDO"})


@dataclass(frozen=True)
class ParserSettings:
    """Parse-time toggles loaded from CIFGRAPH_* environment variables.

    Coordinates:
      CIFGRAPH_ROUND_COORDINATES=true     float32 x10, rounded (false: float64 x10, truncated)

    Content selection:
      CIFGRAPH_INCLUDE_RNA=false
      CIFGRAPH_HANDLE_HYDROGENS=false     keep H atoms in a per-monomer hydrogen bucket
      CIFGRAPH_ONLY_CHAIN=                parse a single chain only
      CIFGRAPH_IGNORED_ELEMENTS=H
      CIFGRAPH_IGNORED_LIGANDS=HOH,DOD,WAT,H2O,GOL,EDO

    Diagnostics:
      CIFGRAPH_DEBUG_LEVEL=0
      CIFGRAPH_SILENT=false
      CIFGRAPH_NO_PARSE_WARN=false
      CIFGRAPH_NO_WARN=false
    """

    round_coordinates: bool = True
    include_rna: bool = False
    handle_hydrogens: bool = False
    only_chain: str = ""
    ignored_elements: FrozenSet[str] = field(default=DEFAULT_IGNORED_ELEMENTS)
    ignored_ligands: FrozenSet[str] = field(default=DEFAULT_IGNORED_LIGANDS)

    # SSE codes given to monomers that have no DSSP assignment
    ligand_sse_code: str = "L"
    rna_sse_code: str = "R"

    debug_level: int = 0
    silent: bool = False
    no_parse_warn: bool = False
    no_warn: bool = False

    def is_ignored_element(self, element: str) -> bool:
        return element.strip().upper() in self.ignored_elements

    def is_ignored_ligand(self, name3: str) -> bool:
        return name3.strip().upper() in self.ignored_ligands


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


def _env_set(name: str, default: FrozenSet[str]) -> FrozenSet[str]:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return frozenset(v.strip().upper() for v in raw.split(",") if v.strip())


def load_settings() -> ParserSettings:
    """Load settings from environment variables."""
    return ParserSettings(
        round_coordinates=_env_bool("CIFGRAPH_ROUND_COORDINATES", True),
        include_rna=_env_bool("CIFGRAPH_INCLUDE_RNA", False),
        handle_hydrogens=_env_bool("CIFGRAPH_HANDLE_HYDROGENS", False),
        only_chain=os.environ.get("CIFGRAPH_ONLY_CHAIN", "").strip(),
        ignored_elements=_env_set("CIFGRAPH_IGNORED_ELEMENTS", DEFAULT_IGNORED_ELEMENTS),
        ignored_ligands=_env_set("CIFGRAPH_IGNORED_LIGANDS", DEFAULT_IGNORED_LIGANDS),
        ligand_sse_code=os.environ.get("CIFGRAPH_LIGAND_SSE_CODE", "L"),
        rna_sse_code=os.environ.get("CIFGRAPH_RNA_SSE_CODE", "R"),
        debug_level=int(os.environ.get("CIFGRAPH_DEBUG_LEVEL", "0")),
        silent=_env_bool("CIFGRAPH_SILENT", False),
        no_parse_warn=_env_bool("CIFGRAPH_NO_PARSE_WARN", False),
        no_warn=_env_bool("CIFGRAPH_NO_WARN", False),
    )
