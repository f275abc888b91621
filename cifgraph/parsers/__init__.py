"""cifgraph.parsers — mmCIF to molecular graph, reconciled with DSSP.

Architecture:
    - base.py: graph types (Model, Chain, Monomer, Atom) and FatalParseError
    - tokenizer.py: mmCIF line tokenizer
    - residues.py: DSSP residue source (ResidueList, read_dssp)
    - metadata.py: metadata categories, entities, chemical components
    - atom_site.py: ``_atom_site`` rows -> models, chains, monomers, atoms
    - altloc.py: alternate-location resolution
    - mmcif.py: block tracker, dispatcher, CIFParser + CIFStructure
    - dataset.py: StructureDataset (lazy parsing of many files)

Usage::

    from cifgraph.parsers import CIFParser, ResidueList

    residues = ResidueList.from_dssp("1abc.dssp")
    s = CIFParser(residues).parse("1abc.cif.gz")
    for chain in s.chains:
        print(chain.chain_id, chain.sequence)

    # Many files
    from cifgraph.parsers import StructureDataset
    ds = StructureDataset.from_directory("/data/mmCIF", dssp_dir="/data/dssp")
    print(ds.summary())
"""

from cifgraph.parsers.base import (
    Atom,
    AtomType,
    CategoryRow,
    Chain,
    ChemComp,
    EntityRecord,
    FatalParseError,
    Model,
    Monomer,
    MonomerKind,
    ParseStats,
    ProteinMetaInfo,
)
from cifgraph.parsers.tokenizer import strip_delimiters, tokenize_line
from cifgraph.parsers.residues import ResidueList, ResidueSource, read_dssp
from cifgraph.parsers.mmcif import BlockTracker, CategoryDispatcher, CIFParser, CIFStructure, parse_mmcif
from cifgraph.parsers.dataset import StructureDataset

__all__ = [
    # Graph types
    "Atom",
    "AtomType",
    "Chain",
    "Model",
    "Monomer",
    "MonomerKind",
    "ProteinMetaInfo",
    "EntityRecord",
    "ChemComp",
    "ParseStats",
    "CategoryRow",
    "FatalParseError",
    # Tokenizer
    "tokenize_line",
    "strip_delimiters",
    # Residue source
    "ResidueSource",
    "ResidueList",
    "read_dssp",
    # Parser
    "BlockTracker",
    "CategoryDispatcher",
    "CIFParser",
    "CIFStructure",
    "parse_mmcif",
    # Dataset
    "StructureDataset",
]
