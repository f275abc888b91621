"""Shared builders for small in-memory mmCIF documents."""

from __future__ import annotations

from pathlib import Path

import pytest

from cifgraph.config import ParserSettings
from cifgraph.parsers.residues import ResidueList

FIXTURES = Path(__file__).resolve().parent / "fixtures"

ENTITY_LOOP = """loop_
_entity.id
_entity.type
_entity.pdbx_description
1 polymer     'Test protein'
2 non-polymer 'Ligand'
3 water       water
4 polymer     'Test RNA'
#"""

ENTITY_POLY_LOOP = """loop_
_entity_poly.entity_id
_entity_poly.type
_entity_poly.pdbx_strand_id
1 'polypeptide(L)'  A,B
4 polyribonucleotide R
#"""

CHEM_COMP_LOOP = """loop_
_chem_comp.id
_chem_comp.type
_chem_comp.name
_chem_comp.formula
A   'RNA linking'       "ADENOSINE-5'-MONOPHOSPHATE"         'C10 H14 N5 O7 P'
ALA 'L-peptide linking' ALANINE                              'C3 H7 N O2'
ATP non-polymer         "ADENOSINE-5'-TRIPHOSPHATE"          'C10 H16 N5 O13 P3'
DA  'DNA linking'       "2'-DEOXYADENOSINE-5'-MONOPHOSPHATE" 'C10 H14 N5 O6 P'
GLY 'peptide linking'   GLYCINE                              'C2 H5 N O2'
HEM non-polymer         'PROTOPORPHYRIN IX CONTAINING FE'    'C34 H32 Fe N4 O4'
HOH non-polymer         WATER                                'H2 O'
LYS 'L-peptide linking' LYSINE                               'C6 H15 N2 O2 1'
MET 'L-peptide linking' METHIONINE                           'C5 H11 N O2 S'
#"""

ATOM_SITE_HEADER = """loop_
_atom_site.group_PDB
_atom_site.id
_atom_site.type_symbol
_atom_site.label_atom_id
_atom_site.label_alt_id
_atom_site.label_comp_id
_atom_site.label_asym_id
_atom_site.label_entity_id
_atom_site.label_seq_id
_atom_site.pdbx_PDB_ins_code
_atom_site.Cartn_x
_atom_site.Cartn_y
_atom_site.Cartn_z
_atom_site.occupancy
_atom_site.auth_seq_id
_atom_site.auth_comp_id
_atom_site.auth_asym_id
_atom_site.auth_atom_id
_atom_site.pdbx_PDB_model_num"""


def atom_row(
    serial: int,
    name: str,
    comp: str,
    seq: int | str,
    chain: str = "A",
    entity: str = "1",
    element: str | None = None,
    x: str = "1.000",
    y: str = "2.000",
    z: str = "3.000",
    alt: str = ".",
    occ: str = "1.00",
    model: str = "1",
    icode: str = "?",
    group: str = "ATOM",
) -> str:
    element = element or name[0]
    return (
        f"{group} {serial} {element} {name} {alt} {comp} {chain} {entity} {seq} {icode} "
        f"{x} {y} {z} {occ} {seq} {comp} {chain} {name} {model}"
    )


def build_cif(
    rows: list[str],
    experiment: str = "X-RAY DIFFRACTION",
    pdb_id: str = "1TST",
    extra: str = "",
) -> str:
    parts = [
        f"data_{pdb_id}",
        "#",
        f"_exptl.entry_id {pdb_id}",
        f"_exptl.method '{experiment}'",
        "#",
        ENTITY_LOOP,
        ENTITY_POLY_LOOP,
        CHEM_COMP_LOOP,
    ]
    if extra:
        parts.append(extra.strip("\n"))
    parts.append(ATOM_SITE_HEADER)
    parts.extend(rows)
    parts.append("#")
    return "\n".join(parts) + "\n"


@pytest.fixture
def make_cif():
    return build_cif


@pytest.fixture
def atom():
    return atom_row


@pytest.fixture
def residues() -> ResidueList:
    """Chain A: MET 1, LYS 2, ALA 3; chain break; chain B: GLY 1. Last DSSP# is 5."""
    return ResidueList.from_tuples([
        (1, 1, "A", " ", "MET"),
        (2, 2, "A", " ", "LYS"),
        (3, 3, "A", " ", "ALA"),
        (5, 1, "B", " ", "GLY"),
    ])


@pytest.fixture
def settings() -> ParserSettings:
    return ParserSettings()
