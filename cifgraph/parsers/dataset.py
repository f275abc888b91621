"""StructureDataset: parse many (mmCIF, DSSP) pairs into CIFStructure objects.

Each entry is parsed lazily on first access and cached afterwards. The
DSSP file of a pair provides the residue source for its mmCIF file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional, overload

from cifgraph.config import ParserSettings
from cifgraph.parsers.mmcif import CIFParser, CIFStructure
from cifgraph.parsers.residues import ResidueList

logger = logging.getLogger(__name__)

DSSP_SUFFIXES = (".dssp", ".dssp.gz")


def pdb_id_from_path(path: str | Path) -> str:
    """'/x/1ABC.cif.gz' -> '1abc'."""
    return Path(path).name.split(".")[0].lower()


def match_dssp_files(
    cif_paths: Iterable[Path],
    dssp_dir: str | Path,
) -> list[tuple[Path, Path]]:
    """Pair each mmCIF file with ``<pdb_id>.dssp[.gz]`` from ``dssp_dir``.

    mmCIF files without a DSSP partner are skipped with a warning.
    """
    d = Path(dssp_dir)
    pairs: list[tuple[Path, Path]] = []
    for cif in cif_paths:
        pdb_id = pdb_id_from_path(cif)
        dssp = next((d / f"{pdb_id}{s}" for s in DSSP_SUFFIXES if (d / f"{pdb_id}{s}").is_file()), None)
        if dssp is None:
            logger.warning("StructureDataset: no DSSP file for %s in %s, skipping it.", cif.name, d)
            continue
        pairs.append((cif, dssp))
    return pairs


class StructureDataset:
    """A dataset of parsed mmCIF structures.

    Usage::

        from cifgraph.parsers import StructureDataset

        ds = StructureDataset.from_pairs([("1abc.cif.gz", "1abc.dssp")])
        for structure in ds:
            print(structure.pdb_id, structure.metadata["resolution"])
            for chain in structure.chains:
                print(f"  Chain {chain.chain_id}: {chain.sequence[:50]}")

        ds = StructureDataset.from_directory("/data/mmCIF", dssp_dir="/data/dssp")
        xray = ds.filter(lambda s: "X-RAY" in s.metadata["experiment"])
    """

    def __init__(self, pairs: list[tuple[Path, Path]], settings: Optional[ParserSettings] = None):
        self._pairs = pairs
        self._settings = settings
        self._cache: dict[int, CIFStructure] = {}

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[tuple[str | Path, str | Path]],
        settings: Optional[ParserSettings] = None,
    ) -> "StructureDataset":
        """Create from (mmCIF path, DSSP path) pairs."""
        return cls([(Path(c), Path(d)) for c, d in pairs], settings=settings)

    @classmethod
    def from_directory(
        cls,
        directory: str | Path,
        dssp_dir: str | Path,
        pattern: str = "*.cif*",
        settings: Optional[ParserSettings] = None,
    ) -> "StructureDataset":
        """Create from all matching mmCIF files that have a DSSP partner."""
        d = Path(directory)
        paths = sorted(d.rglob(pattern))
        pairs = match_dssp_files(paths, dssp_dir)
        logger.info("StructureDataset: found %d files matching '%s' in %s (%d with DSSP)",
                    len(paths), pattern, d, len(pairs))
        return cls(pairs, settings=settings)

    def __len__(self) -> int:
        return len(self._pairs)

    @overload
    def __getitem__(self, idx: int) -> CIFStructure: ...
    @overload
    def __getitem__(self, idx: slice) -> list[CIFStructure]: ...

    def __getitem__(self, idx):
        if isinstance(idx, slice):
            return [self._load(i) for i in range(*idx.indices(len(self)))]
        if idx < 0:
            idx = len(self) + idx
        return self._load(idx)

    def __iter__(self) -> Iterator[CIFStructure]:
        for i in range(len(self)):
            yield self._load(i)

    def _load(self, idx: int) -> CIFStructure:
        if idx in self._cache:
            return self._cache[idx]
        cif, dssp = self._pairs[idx]
        try:
            residues = ResidueList.from_dssp(dssp)
            structure = CIFParser(residues, settings=self._settings).parse(cif)
        except Exception as e:
            logger.error("Failed to parse %s: %s", cif, e)
            raise
        self._cache[idx] = structure
        return structure

    @property
    def pairs(self) -> list[tuple[Path, Path]]:
        return list(self._pairs)

    @property
    def pdb_ids(self) -> list[str]:
        """PDB IDs taken from the file names (no parsing)."""
        return [pdb_id_from_path(c) for c, _ in self._pairs]

    def filter(self, predicate) -> "StructureDataset":
        """Return a new dataset with only structures matching the predicate.

        Note: this triggers parsing of all structures.
        """
        indices = [i for i in range(len(self)) if predicate(self._load(i))]
        ds = StructureDataset([self._pairs[i] for i in indices], settings=self._settings)
        for new_idx, old_idx in enumerate(indices):
            ds._cache[new_idx] = self._cache[old_idx]
        return ds

    def to_list(self) -> list[CIFStructure]:
        return [self._load(i) for i in range(len(self))]

    def summary(self) -> dict:
        """Parse all and return summary statistics."""
        structures = self.to_list()
        resolutions = []
        for s in structures:
            try:
                resolutions.append(float(s.metadata.get("resolution", "")))
            except ValueError:
                pass
        methods: dict[str, int] = {}
        for s in structures:
            m = s.metadata.get("experiment") or "unknown"
            methods[m] = methods.get(m, 0) + 1
        return {
            "total": len(structures),
            "resolution_mean": sum(resolutions) / len(resolutions) if resolutions else None,
            "resolution_min": min(resolutions) if resolutions else None,
            "resolution_max": max(resolutions) if resolutions else None,
            "methods": methods,
            "total_atoms": sum(s.num_atoms for s in structures),
            "total_chains": sum(s.num_chains for s in structures),
            "total_ligands": sum(len(s.ligands) for s in structures),
        }

    def __repr__(self) -> str:
        return f"<StructureDataset n={len(self)} pairs={self._pairs[:3]}...>"
