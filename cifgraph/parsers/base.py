"""Molecular graph types produced by the mmCIF parser.

Hierarchy:
    CIFStructure (parse result)
    ├── metadata: dict[str, str]
    ├── entities / chem_comps / protein_meta_infos
    ├── models: list[Model]
    │   └── chains: list[Chain]
    │       └── monomers: list[Monomer]   (amino acid | nucleotide | ligand)
    │           └── atoms: list[Atom]
    ├── molecules (flat view, creation order)
    └── atoms (flat view)

Graph nodes are mutable and compare by identity: the parser grows them
in a single pass and the alt-loc resolver removes atoms by identity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

PLACEHOLDERS = (".", "?")

THREE_TO_ONE = {
    "ALA": "A", "ARG": "R", "ASN": "N", "ASP": "D", "CYS": "C",
    "GLN": "Q", "GLU": "E", "GLY": "G", "HIS": "H", "ILE": "I",
    "LEU": "L", "LYS": "K", "MET": "M", "PHE": "F", "PRO": "P",
    "SER": "S", "THR": "T", "TRP": "W", "TYR": "Y", "VAL": "V",
    "SEC": "U", "PYL": "O",
    "ASX": "B", "GLX": "Z", "XLE": "J", "UNK": "X",
}
ONE_TO_THREE = {v: k for k, v in THREE_TO_ONE.items()}

DNA_RESIDUE_NAMES = frozenset({"DA", "DC", "DG", "DT", "DI", "DU"})


def is_assigned(value: Optional[str]) -> bool:
    """False for None, the empty string and the mmCIF placeholders '.' and '?'."""
    return bool(value) and value not in PLACEHOLDERS


def aa_name1(name3: str) -> str:
    return THREE_TO_ONE.get(name3.upper(), "X")


class FatalParseError(RuntimeError):
    """Structural problem that makes the whole parse invalid.

    Callers at process level are expected to exit with ``exit_code``.
    """

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


@dataclass(frozen=True)
class CategoryRow:
    """One assembled row of a category plus the active column schema."""

    category: str
    values: list[str]
    columns: dict[str, int]
    line_no: int = 0
    in_loop: bool = True

    def has(self, column: str) -> bool:
        return column in self.columns

    def raw(self, column: str) -> Optional[str]:
        """Value as written, or None if the column or the field is missing."""
        pos = self.columns.get(column)
        if pos is None or pos < 0 or pos >= len(self.values):
            return None
        return self.values[pos]

    def get(self, column: str, default: str = "") -> str:
        """Value with placeholders mapped to ``default``."""
        v = self.raw(column)
        return v if is_assigned(v) else default


# ======================================================================
# Tags
# ======================================================================

class MonomerKind(str, Enum):
    AMINO_ACID = "amino_acid"
    NUCLEOTIDE = "nucleotide"
    LIGAND = "ligand"


class AtomType(str, Enum):
    AMINO_ACID = "amino_acid"
    RNA = "rna"
    LIGAND = "ligand"
    IGNORED_LIGAND = "ignored_ligand"
    HYDROGEN = "hydrogen"


# ======================================================================
# Dictionaries built from metadata categories
# ======================================================================

@dataclass
class EntityRecord:
    """One ``_entity`` row: id plus every other column, placeholders as ''."""

    entity_id: str
    attributes: dict[str, str] = field(default_factory=dict)

    @property
    def entity_type(self) -> str:
        return self.attributes.get("type", "")

    @property
    def description(self) -> str:
        return self.attributes.get("pdbx_description", "")

    @property
    def ec_number(self) -> str:
        return self.attributes.get("pdbx_ec", "")

    @property
    def is_polymer(self) -> bool:
        return self.entity_type == "polymer"

    @property
    def is_nonpolymer(self) -> bool:
        return self.entity_type == "non-polymer"


@dataclass
class ChemComp:
    """Chemical component dictionary entry (``_chem_comp``)."""

    comp_id: str
    type: str = ""
    name: str = ""
    formula: str = ""
    synonyms: str = ""
    raw: dict[str, str] = field(default_factory=dict)

    def classify(self) -> MonomerKind:
        # "peptide" alone is not enough, free peptide-like ligands say "non-polymer"
        t = self.type.lower()
        if "rna" in t:
            return MonomerKind.NUCLEOTIDE
        if "peptide linking" in t:
            return MonomerKind.AMINO_ACID
        return MonomerKind.LIGAND


@dataclass
class ProteinMetaInfo:
    """Per-chain descriptive record handed to persistence."""

    pdb_id: str
    chain_id: str
    macromol_id: str = ""
    mol_name: str = ""
    ec_number: str = ""
    org_common: str = ""
    org_scientific: str = ""
    all_mol_chains: str = ""


# ======================================================================
# Graph nodes
# ======================================================================

@dataclass(eq=False)
class Atom:
    """Single atom; coordinates are tenths of an Angstrom."""

    serial: int
    name: str
    element: str
    x: int
    y: int
    z: int
    alt_loc: str = ""
    occupancy: Optional[float] = None
    pdb_res_num: int = 0
    chain_id: str = ""
    i_code: str = " "
    atom_type: AtomType = AtomType.AMINO_ACID
    dssp_num: Optional[int] = None
    monomer: Optional["Monomer"] = field(default=None, repr=False)
    chain: Optional["Chain"] = field(default=None, repr=False)

    @property
    def coords(self) -> tuple[int, int, int]:
        return (self.x, self.y, self.z)


@dataclass(eq=False)
class Monomer:
    """Residue-equivalent unit; ``kind`` is fixed at creation.

    ``dssp_num`` is the DSSP ordinal, or a synthetic one (``synthetic``)
    for monomers that DSSP does not list.
    """

    kind: MonomerKind
    pdb_num: int
    chain_id: str
    name3: str
    dssp_num: int
    i_code: str = " "
    aa_name1: str = "X"
    synthetic: bool = False
    model_id: str = ""
    entity_id: Optional[str] = None
    sse_string: str = "C"
    chain: Optional["Chain"] = field(default=None, repr=False)
    atoms: list[Atom] = field(default_factory=list, repr=False)
    hydrogen_atoms: list[Atom] = field(default_factory=list, repr=False)

    # ligand payload from the chemical component dictionary
    lig_name: str = ""
    lig_formula: str = ""
    lig_synonyms: str = ""

    @property
    def key(self) -> tuple[int, str, str]:
        return (self.pdb_num, self.chain_id, self.i_code)

    @property
    def is_ligand(self) -> bool:
        return self.kind is MonomerKind.LIGAND

    @property
    def ca(self) -> Optional[Atom]:
        """Alpha-carbon atom, or None."""
        for a in self.atoms:
            if a.name.strip() == "CA":
                return a
        return None

    @property
    def num_atoms(self) -> int:
        return len(self.atoms)


@dataclass(eq=False)
class Chain:
    """Physical chain, identified by the author chain ID."""

    chain_id: str
    model_id: str = ""
    alt_chain_id: str = ""
    molecule_type: str = "non-polymer"
    homologues: list[str] = field(default_factory=list)
    monomers: list[Monomer] = field(default_factory=list, repr=False)
    model: Optional["Model"] = field(default=None, repr=False)

    def add_monomer(self, monomer: Monomer) -> None:
        if not any(m is monomer for m in self.monomers):
            self.monomers.append(monomer)

    @property
    def sequence(self) -> str:
        return "".join(m.aa_name1 for m in self.monomers if m.kind is MonomerKind.AMINO_ACID)

    def __len__(self) -> int:
        return len(self.monomers)


@dataclass(eq=False)
class Model:
    model_id: str
    chains: list[Chain] = field(default_factory=list, repr=False)

    def add_chain(self, chain: Chain) -> None:
        self.chains.append(chain)
        chain.model = self
        chain.model_id = self.model_id


@dataclass
class ParseStats:
    """Counters reported at the end of a parse."""

    atom_rows: int = 0
    atoms_kept: int = 0
    ligands_assigned: int = 0
    rna_assigned: int = 0
    free_residues_assigned: int = 0
    ignored_monomers: int = 0
    skipped_rows: dict[str, int] = field(default_factory=dict)
    altloc_monomers_affected: int = 0
    altloc_atoms_deleted: int = 0
    model_ids: list[str] = field(default_factory=list)

    def skip(self, reason: str) -> None:
        self.skipped_rows[reason] = self.skipped_rows.get(reason, 0) + 1
