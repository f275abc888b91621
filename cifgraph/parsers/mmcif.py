"""mmCIF parser: one forward pass from text lines to a molecular graph.

Parses .cif and .cif.gz files into a CIFStructure. The block tracker
classifies each physical line, reassembles wrapped rows and text fields,
and hands complete rows to the category dispatcher. ``_atom_site`` rows
go to the molecular graph builder, a fixed set of metadata categories to
the metadata accumulator; all other categories are ignored.

Only the first data block is read.
"""

from __future__ import annotations

import gzip
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterable, Optional

import numpy as np

from cifgraph.config import ParserSettings, load_settings
from cifgraph.core.logging_utils import get_logger
from cifgraph.parsers.altloc import resolve_alt_locs
from cifgraph.parsers.atom_site import MolecularGraph, MolecularGraphBuilder
from cifgraph.parsers.base import (
    Atom,
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
from cifgraph.parsers.metadata import MetadataAccumulator
from cifgraph.parsers.residues import ResidueList, ResidueSource
from cifgraph.parsers.tokenizer import strip_delimiters, tokenize_line

logger = get_logger(__name__)

RowHandler = Callable[[CategoryRow], None]


# ======================================================================
# Category dispatcher
# ======================================================================

class CategoryDispatcher:
    """Route rows to per-category handlers; unknown categories are dropped."""

    def __init__(self, handlers: Optional[dict[str, RowHandler]] = None):
        self._handlers: dict[str, RowHandler] = dict(handlers or {})

    def register(self, category: str, handler: RowHandler) -> None:
        self._handlers[category] = handler

    def handles(self, category: str) -> bool:
        return category in self._handlers

    def __call__(self, row: CategoryRow) -> None:
        handler = self._handlers.get(row.category)
        if handler is not None:
            handler(row)


# ======================================================================
# Block / loop state tracker
# ======================================================================

class BlockTracker:
    """Line classifier and row assembler for one mmCIF data block.

    Lines are data-block markers, comments (which close the current
    category), ``loop_`` markers, ``_category.column`` declarations, text
    field delimiters or data. Loop rows are dispatched as soon as they hold
    one field per column; single-row categories are collected as a
    one-row "fake loop" and dispatched when the category ends.
    """

    def __init__(
        self,
        dispatch: RowHandler,
        settings: Optional[ParserSettings] = None,
        on_data_block: Optional[Callable[[str], None]] = None,
    ):
        self.dispatch = dispatch
        self.settings = settings or ParserSettings()
        self.on_data_block = on_data_block
        self.data_block: Optional[str] = None
        self.line_no = 0
        self.stopped = False
        self._reset()

    def _reset(self) -> None:
        self.in_loop = False
        self.in_text = False
        self.category: Optional[str] = None
        # a fresh dict per category; rows keep a reference to it
        self.columns: dict[str, int] = {}
        self.single_values: list[str] = []
        self.pending_value = False
        self.loop_rows = 0
        self.buffer = ""

    def _warn(self, msg: str, *args) -> None:
        if not self.settings.no_parse_warn:
            logger.warning(msg, *args)

    # --- public ----------------------------------------------------------

    def feed(self, line: str) -> bool:
        """Consume one physical line. Returns False once parsing must stop."""
        if self.stopped:
            return False
        self.line_no += 1
        line = line.rstrip("\r\n")

        if self.in_text:
            if not line.startswith(";"):
                self.buffer += line
                return True
            self.in_text = False
            self.buffer += "\n;"
            line = line[1:]
        elif line.startswith(";"):
            self.in_text = True
            self.buffer = f"{self.buffer} {line}" if self.buffer else line
            return True
        else:
            head = line.lstrip()
            if head.startswith("#"):
                self.close_category()
                return True
            if not head:
                return True
            if head.startswith("data_"):
                return self._open_data_block(head)
            if head.startswith("loop_"):
                self._open_loop()
                return True
            if head.startswith("_"):
                self._declare(head)
                return True

        self._assemble(line)
        return True

    def finish(self) -> None:
        if self.in_text:
            self._warn("Text field opened before line %d is never closed.", self.line_no)
        self.close_category()

    def close_category(self) -> None:
        """End the current category: flush a single-row category, clear the schema."""
        if not self.in_loop and self.category is not None and self.columns:
            self.dispatch(CategoryRow(
                category=self.category,
                values=list(self.single_values),
                columns=self.columns,
                line_no=self.line_no,
                in_loop=False,
            ))
        if self.buffer.strip() and not self.in_text:
            self._warn("Incomplete row before line %d of category '%s' discarded.", self.line_no, self.category)
        self._reset()

    # --- line kinds --------------------------------------------------------

    def _open_data_block(self, head: str) -> bool:
        if self.data_block is not None:
            self.close_category()
            if not self.settings.no_warn:
                logger.warning(
                    "Parsing of first data block ended at line %d as only the first data block is parsed.",
                    self.line_no,
                )
            self.stopped = True
            return False
        self.close_category()
        self.data_block = head[5:].strip().lower()
        if self.data_block:
            if not self.settings.silent:
                logger.info("Found the first data block named: %s", self.data_block)
        else:
            self._warn("Expected the first data block to be named after the PDB ID, but found no name.")
        if self.on_data_block is not None:
            self.on_data_block(self.data_block)
        return True

    def _open_loop(self) -> None:
        if self.in_loop:
            raise FatalParseError(
                f"Found a nested loop starting in line {self.line_no}, which mmCIF forbids."
            )
        self.close_category()
        self.in_loop = True

    def _declare(self, head: str) -> None:
        parts = head.split(None, 1)
        tag = parts[0]
        rest = parts[1] if len(parts) > 1 else ""
        category, dot, column = tag[1:].partition(".")
        if not dot or not column:
            self._warn("Expected a table definition in line %d but could not parse it. Skipping it.", self.line_no)
            return

        if self.in_loop:
            if self.category is None or (category == self.category and self.loop_rows == 0):
                self.category = category
                self.columns[column] = len(self.columns)
                return
            # a declaration after loop rows (or of another category) ends the loop
            self.close_category()

        if category != self.category:
            self.close_category()
            self.category = category
        self.columns[column] = len(self.columns)
        rest = rest.strip()
        if rest:
            self.single_values.append(strip_delimiters(rest))
            self.pending_value = False
        else:
            self.single_values.append("")
            self.pending_value = True

    def _assemble(self, line: str) -> None:
        if self.category is None or not self.columns:
            if line.strip():
                logger.debug("Line %d holds data outside any category, ignoring it.", self.line_no)
            self.buffer = ""
            return

        combined = f"{self.buffer} {line}" if self.buffer else line
        fields = tokenize_line(combined, self.line_no, warn=not self.settings.no_parse_warn)

        if self.in_loop:
            if len(fields) < len(self.columns):
                self.buffer = combined
                return
            self.buffer = ""
            if len(fields) > len(self.columns):
                self._warn("Line %d (together with previous if combined) seems to be too long. "
                           "Ignoring surplus fields.", self.line_no)
            self.loop_rows += 1
            self.dispatch(CategoryRow(
                category=self.category,
                values=fields,
                columns=self.columns,
                line_no=self.line_no,
                in_loop=True,
            ))
            return

        if not self.pending_value:
            self._warn("Unexpected data in line %d for single-row category '%s', ignoring it.",
                       self.line_no, self.category)
            self.buffer = ""
            return
        if len(fields) < 1:
            self.buffer = combined
            return
        self.buffer = ""
        if len(fields) > 1:
            self._warn("Line %d holds %d values for one item. Keeping the first.", self.line_no, len(fields))
        self.single_values[-1] = fields[0]
        self.pending_value = False


# ======================================================================
# CIFStructure: parse result
# ======================================================================

class CIFStructure:
    """Molecular graph plus metadata from one mmCIF file."""

    def __init__(
        self,
        pdb_id: str,
        graph: MolecularGraph,
        metadata: dict[str, str],
        entities: dict[str, EntityRecord],
        chem_comps: dict[str, ChemComp],
        source_path: Optional[Path] = None,
    ):
        self.pdb_id = pdb_id
        self._graph = graph
        self.metadata = metadata
        self.entities = entities
        self.chem_comps = chem_comps
        self.source_path = source_path

    @property
    def models(self) -> list[Model]:
        return self._graph.models

    @property
    def chains(self) -> list[Chain]:
        return self._graph.chains

    @property
    def molecules(self) -> list[Monomer]:
        return self._graph.molecules

    @property
    def atoms(self) -> list[Atom]:
        return self._graph.atoms

    @property
    def protein_meta_infos(self) -> list[ProteinMetaInfo]:
        return self._graph.protein_meta_infos

    @property
    def stats(self) -> ParseStats:
        return self._graph.stats

    @property
    def num_chains(self) -> int:
        return len(self.chains)

    @property
    def num_atoms(self) -> int:
        return len(self.atoms)

    @property
    def chain_ids(self) -> list[str]:
        return [c.chain_id for c in self.chains]

    def get_chain(self, chain_id: str) -> Optional[Chain]:
        return self._graph.get_chain(chain_id)

    def monomers(self, kind: Optional[MonomerKind] = None) -> list[Monomer]:
        """Monomers placed in a chain, optionally of one kind."""
        placed = [m for c in self.chains for m in c.monomers]
        if kind is None:
            return placed
        return [m for m in placed if m.kind is kind]

    @property
    def ligands(self) -> list[Monomer]:
        return self.monomers(MonomerKind.LIGAND)

    def count_by_kind(self) -> dict[str, int]:
        counts = {k.value: 0 for k in MonomerKind}
        for m in self.monomers():
            counts[m.kind.value] += 1
        return counts

    def coordinates(self) -> np.ndarray:
        """Fixed-point coordinates of the global atom list, shape (n, 3)."""
        if not self.atoms:
            return np.zeros((0, 3), dtype=np.int64)
        return np.array([a.coords for a in self.atoms], dtype=np.int64)

    def to_dict(self) -> dict:
        """Flat dict for manifest / DataFrame usage."""
        m = self.metadata
        counts = self.count_by_kind()
        return {
            "pdb_id": self.pdb_id,
            "title": m.get("title", ""),
            "experiment": m.get("experiment", ""),
            "resolution": m.get("resolution", ""),
            "date": m.get("date", ""),
            "model_count": len(self.models),
            "chain_count": self.num_chains,
            "amino_acid_count": counts[MonomerKind.AMINO_ACID.value],
            "nucleotide_count": counts[MonomerKind.NUCLEOTIDE.value],
            "ligand_count": counts[MonomerKind.LIGAND.value],
            "atom_count": self.num_atoms,
            "is_large": m.get("isLarge", "false") == "true",
        }

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.pdb_id} "
            f"models={len(self.models)} chains={self.num_chains} "
            f"atoms={self.num_atoms}>"
        )


# ======================================================================
# CIFParser
# ======================================================================

def _fresh_residues(source: ResidueSource) -> ResidueList:
    if isinstance(source, ResidueList):
        return source.fresh_copy()
    copies = [
        replace(r, chain=None, model_id="", atoms=[], hydrogen_atoms=[])
        for r in source.molecules
    ]
    return ResidueList(copies, last_used_dssp_num=source.last_dssp_num)


class CIFParser:
    """Parse mmCIF files (.cif, .cif.gz) into CIFStructure.

    Each call to :meth:`parse` starts from a fresh state; one parser may be
    reused for many files but not from several threads at once.
    """

    def __init__(self, residues: ResidueSource, settings: Optional[ParserSettings] = None):
        self.residues = residues
        self.settings = settings or load_settings()

    def parse(self, path: str | Path) -> CIFStructure:
        path = Path(path)
        opener = gzip.open if path.suffix == ".gz" else open
        mode = "rt" if path.suffix == ".gz" else "r"
        with opener(path, mode, encoding="utf-8", errors="ignore") as f:
            return self.parse_lines(f, source_path=path)

    def parse_text(self, text: str) -> CIFStructure:
        return self.parse_lines(text.splitlines())

    def parse_lines(self, lines: Iterable[str], source_path: Optional[Path] = None) -> CIFStructure:
        settings = self.settings
        residues = _fresh_residues(self.residues)
        if len(residues) < 1:
            raise FatalParseError(
                "DSSP data contains no residues (maybe the file only holds DNA/RNA data).",
                exit_code=2,
            )

        meta = MetadataAccumulator()
        builder = MolecularGraphBuilder(residues, meta, settings)
        dispatcher = CategoryDispatcher(meta.handlers())
        dispatcher.register("atom_site", builder.handle_row)

        def set_pdb_id(block: str) -> None:
            builder.pdb_id = block

        tracker = BlockTracker(dispatcher, settings, on_data_block=set_pdb_id)
        for line in lines:
            if not tracker.feed(line):
                break
        tracker.finish()

        graph = builder.graph
        if not settings.silent:
            logger.info("Hit end of data at line %d. Found in total %d chains.", tracker.line_no, len(graph.chains))

        affected, deleted = resolve_alt_locs(graph.molecules, graph.atoms)
        graph.stats.altloc_monomers_affected = affected
        graph.stats.altloc_atoms_deleted = deleted
        if deleted and not settings.silent:
            logger.info("Alternative locations: removed %d atoms from %d monomers.", deleted, affected)

        meta.fill_protein_meta_infos(graph.protein_meta_infos)
        metadata = meta.finalize(len(graph.chains), graph.stats.atom_rows)

        return CIFStructure(
            pdb_id=builder.pdb_id,
            graph=graph,
            metadata=metadata,
            entities=meta.entities,
            chem_comps=meta.chem_comps,
            source_path=source_path,
        )

    @staticmethod
    def extensions() -> list[str]:
        return [".cif", ".cif.gz", ".mmcif"]


def parse_mmcif(
    path: str | Path,
    residues: ResidueSource,
    settings: Optional[ParserSettings] = None,
) -> CIFStructure:
    """Parse one mmCIF file against a DSSP residue source.

    Convenience wrapper around CIFParser::

        residues = ResidueList.from_dssp("1abc.dssp")
        structure = parse_mmcif("1abc.cif.gz", residues)
        structure.chains     # list[Chain]
        structure.metadata   # dict[str, str]
    """
    return CIFParser(residues, settings=settings).parse(path)
