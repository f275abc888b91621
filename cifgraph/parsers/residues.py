"""Secondary-structure residue source.

The mmCIF parser does not assign secondary structure itself. It consumes
the residue list of a DSSP run, keyed by (PDB number, chain, insertion
code), and extends its numbering with synthetic ordinals for every
monomer DSSP does not list.
"""

from __future__ import annotations

import gzip
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable, Optional, Protocol, runtime_checkable

from cifgraph.core.logging_utils import get_logger
from cifgraph.parsers.base import ONE_TO_THREE, Monomer, MonomerKind, aa_name1

logger = get_logger(__name__)

DSSP_HEADER = "  #  RESIDUE"

ResidueKey = tuple[int, str, str]


@runtime_checkable
class ResidueSource(Protocol):
    """What the parser needs from a secondary-structure assignment."""

    @property
    def molecules(self) -> list[Monomer]: ...

    @property
    def last_dssp_num(self) -> int: ...

    def get_residue(self, pdb_num: int, chain_id: str, i_code: str) -> Optional[Monomer]: ...


@dataclass
class ResidueList:
    """In-memory residue source indexed by (PDB number, chain, iCode)."""

    residues: list[Monomer] = field(default_factory=list)
    last_used_dssp_num: Optional[int] = None

    def __post_init__(self) -> None:
        self._index: dict[ResidueKey, Monomer] = {}
        for r in self.residues:
            self._index.setdefault(r.key, r)

    @classmethod
    def from_dssp(cls, path: str | Path) -> "ResidueList":
        residues = read_dssp(path)
        logger.info("DSSP: read %d residues from %s", len(residues), path)
        return cls(residues)

    @classmethod
    def from_tuples(cls, rows: Iterable[tuple[int, int, str, str, str]]) -> "ResidueList":
        """Build from (dssp_num, pdb_num, chain_id, i_code, name3) tuples."""
        residues = [
            Monomer(
                kind=MonomerKind.AMINO_ACID,
                pdb_num=pdb_num,
                chain_id=chain_id,
                name3=name3,
                dssp_num=dssp_num,
                i_code=i_code or " ",
                aa_name1=aa_name1(name3),
            )
            for dssp_num, pdb_num, chain_id, i_code, name3 in rows
        ]
        return cls(residues)

    @property
    def molecules(self) -> list[Monomer]:
        return self.residues

    @property
    def last_dssp_num(self) -> int:
        if self.last_used_dssp_num is not None:
            return self.last_used_dssp_num
        return max((r.dssp_num for r in self.residues), default=0)

    def get_residue(self, pdb_num: int, chain_id: str, i_code: str) -> Optional[Monomer]:
        return self._index.get((pdb_num, chain_id, i_code))

    def fresh_copy(self) -> "ResidueList":
        """Copy whose residues carry no chain, model or atoms yet."""
        copies = [
            replace(r, chain=None, model_id="", atoms=[], hydrogen_atoms=[])
            for r in self.residues
        ]
        return ResidueList(copies, last_used_dssp_num=self.last_dssp_num)

    def __len__(self) -> int:
        return len(self.residues)


# ----------------------------------------------------------------------
# DSSP reader
# ----------------------------------------------------------------------
#
#  #  RESIDUE AA STRUCTURE BP1 BP2  ACC ...
#    1    1 A M              0   0  210 ...
#    2    2AA K  E     -a   34   0B  79 ...       (insertion code 'A')
#  0123456789012345678
#
# Newer DSSP versions append the author chain ID at columns 159-162 when
# the one-character field cannot hold it.

def _open_text(path: Path):
    if path.suffix == ".gz":
        return gzip.open(path, "rt", encoding="utf-8", errors="ignore")
    return open(path, "r", encoding="utf-8", errors="ignore")


def parse_dssp_line(line: str) -> Optional[Monomer]:
    """Parse one DSSP residue record; None for chain-break ('!') records."""
    if len(line) < 17 or line[13] == "!":
        return None
    dssp_num = int(line[0:5])
    pdb_num = int(line[5:10])
    i_code = line[10] if line[10].strip() else " "
    chain_id = line[11]
    if len(line) >= 163 and line[159:163].strip():
        chain_id = line[159:163].strip()
    aa = line[13]
    if aa.islower():
        # SS-bridge partners are written as lower-case letters
        aa = "C"
    name3 = ONE_TO_THREE.get(aa, "UNK")
    sse = line[16].strip() or "C"
    return Monomer(
        kind=MonomerKind.AMINO_ACID,
        pdb_num=pdb_num,
        chain_id=chain_id,
        name3=name3,
        dssp_num=dssp_num,
        i_code=i_code,
        aa_name1=aa,
        sse_string=sse,
    )


def read_dssp(path: str | Path) -> list[Monomer]:
    """Read all residue records of a DSSP output file."""
    path = Path(path)
    residues: list[Monomer] = []
    in_data = False
    with _open_text(path) as f:
        for line_no, line in enumerate(f, 1):
            line = line.rstrip("\n")
            if not in_data:
                in_data = line.startswith(DSSP_HEADER)
                continue
            if not line.strip():
                continue
            try:
                res = parse_dssp_line(line)
            except ValueError:
                logger.warning("DSSP: could not parse line %d of %s, skipping it.", line_no, path)
                continue
            if res is not None:
                residues.append(res)
    if not in_data:
        logger.warning("DSSP: no '%s' header found in %s.", DSSP_HEADER.strip(), path)
    return residues
