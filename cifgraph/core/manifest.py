from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

CHAIN_COLUMNS = [
    "pdb_id", "model_id", "chain_id", "alt_chain_id", "molecule_type",
    "macromol_id", "mol_name", "ec_number", "org_common", "org_scientific",
    "all_mol_chains", "sequence", "num_amino_acids", "num_nucleotides", "num_ligands",
    "resolution", "experiment", "is_large",
]

ATOM_COLUMNS = [
    "pdb_id", "model_id", "chain_id", "serial", "name", "element", "alt_loc",
    "x", "y", "z", "occupancy", "pdb_res_num", "i_code", "res_name", "dssp_num",
    "atom_type", "monomer_kind",
]


@dataclass(frozen=True)
class Manifest:
    """A parse manifest.

    Convention:
      - chain manifests hold one row per chain (joined with its ProteinMetaInfo)
      - atom manifests hold one row per retained atom, coordinates in tenths of an Angstrom
    """

    df: pd.DataFrame

    def save_parquet(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.df.to_parquet(path, index=False)

    @staticmethod
    def load_parquet(path: Path) -> "Manifest":
        return Manifest(pd.read_parquet(path))

    @staticmethod
    def concat(manifests: Iterable["Manifest"], columns: Optional[list[str]] = None) -> "Manifest":
        frames = [m.df for m in manifests]
        if not frames:
            return Manifest(pd.DataFrame(columns=columns or []))
        return Manifest(pd.concat(frames, ignore_index=True))

    def count(self) -> int:
        return int(len(self.df))


def chain_manifest(structure) -> Manifest:
    """One row per chain of a parsed structure."""
    meta = structure.metadata
    infos = {pmi.chain_id: pmi for pmi in structure.protein_meta_infos}
    rows = []
    for chain in structure.chains:
        pmi = infos.get(chain.chain_id)
        kinds = [m.kind.value for m in chain.monomers]
        rows.append({
            "pdb_id": structure.pdb_id,
            "model_id": chain.model_id,
            "chain_id": chain.chain_id,
            "alt_chain_id": chain.alt_chain_id,
            "molecule_type": chain.molecule_type,
            "macromol_id": pmi.macromol_id if pmi else "",
            "mol_name": pmi.mol_name if pmi else "",
            "ec_number": pmi.ec_number if pmi else "",
            "org_common": pmi.org_common if pmi else "",
            "org_scientific": pmi.org_scientific if pmi else "",
            "all_mol_chains": pmi.all_mol_chains if pmi else "",
            "sequence": chain.sequence,
            "num_amino_acids": kinds.count("amino_acid"),
            "num_nucleotides": kinds.count("nucleotide"),
            "num_ligands": kinds.count("ligand"),
            "resolution": meta.get("resolution", ""),
            "experiment": meta.get("experiment", ""),
            "is_large": meta.get("isLarge", "false") == "true",
        })
    return Manifest(pd.DataFrame(rows, columns=CHAIN_COLUMNS))


def atom_manifest(structure) -> Manifest:
    """One row per atom in the structure's global atom list."""
    rows = []
    for a in structure.atoms:
        mol = a.monomer
        rows.append({
            "pdb_id": structure.pdb_id,
            "model_id": mol.model_id if mol else "",
            "chain_id": a.chain_id,
            "serial": a.serial,
            "name": a.name,
            "element": a.element,
            "alt_loc": a.alt_loc,
            "x": a.x,
            "y": a.y,
            "z": a.z,
            "occupancy": a.occupancy,
            "pdb_res_num": a.pdb_res_num,
            "i_code": a.i_code,
            "res_name": mol.name3 if mol else "",
            "dssp_num": a.dssp_num,
            "atom_type": a.atom_type.value,
            "monomer_kind": mol.kind.value if mol else "",
        })
    return Manifest(pd.DataFrame(rows, columns=ATOM_COLUMNS))
