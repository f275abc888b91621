"""Metadata categories: experiment, resolution, entities, chemical components.

Each handler receives one assembled :class:`CategoryRow`. Everything here
is an accumulator scoped to one parse; the atom-site builder reads the
entity, entity-poly and chemical-component maps while the file is still
being consumed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from cifgraph.parsers.base import (
    CategoryRow,
    ChemComp,
    EntityRecord,
    MonomerKind,
    ProteinMetaInfo,
    is_assigned,
)

logger = logging.getLogger(__name__)

METADATA_FIELDS = ("title", "keywords", "experiment", "resolution", "date", "header")

# organism-name sources, higher wins
SOURCE_PRIORITY = {
    "entity_src_gen": 3,
    "entity_src_nat": 2,
    "pdbx_entity_src_syn": 1,
}

LARGE_CHAIN_COUNT = 62
LARGE_ATOM_COUNT = 99999


@dataclass
class SourcedValue:
    value: str = ""
    source: str = ""

    def offer(self, value: Optional[str], source: str) -> bool:
        """Take ``value`` unless a higher-priority source already set one."""
        if not is_assigned(value):
            return False
        if self.source and SOURCE_PRIORITY[source] < SOURCE_PRIORITY[self.source]:
            return False
        self.value = value
        self.source = source
        return True


@dataclass
class MetadataAccumulator:
    """Collects everything outside ``_atom_site`` during one parse."""

    metadata: dict[str, str] = field(default_factory=dict)
    entities: dict[str, EntityRecord] = field(default_factory=dict)
    chem_comps: dict[str, ChemComp] = field(default_factory=dict)
    chain_types: dict[str, str] = field(default_factory=dict)
    homologues: dict[str, list[str]] = field(default_factory=dict)
    org_common: SourcedValue = field(default_factory=SourcedValue)
    org_scientific: SourcedValue = field(default_factory=SourcedValue)

    def handlers(self) -> dict[str, Callable[[CategoryRow], None]]:
        return {
            "exptl": self.handle_exptl,
            "reflns": self.handle_reflns,
            "refine": self.handle_refine,
            "entity": self.handle_entity,
            "entity_poly": self.handle_entity_poly,
            "chem_comp": self.handle_chem_comp,
            "entity_src_gen": self.handle_entity_src_gen,
            "entity_src_nat": self.handle_entity_src_nat,
            "pdbx_entity_src_syn": self.handle_pdbx_entity_src_syn,
            "struct": self.handle_struct,
            "struct_keywords": self.handle_struct_keywords,
            "pdbx_database_status": self.handle_pdbx_database_status,
        }

    # --- simple key/value categories -----------------------------------

    def _put(self, row: CategoryRow, column: str, key: str) -> None:
        """Store ``column`` under ``key``; a missing column records ''."""
        if not row.has(column):
            self.metadata.setdefault(key, "")
            return
        value = row.raw(column)
        if is_assigned(value):
            self.metadata[key] = value

    def _put_sticky(self, row: CategoryRow, column: str, key: str) -> None:
        """Like _put, but a value once resolved is never replaced."""
        if self.metadata.get(key):
            return
        value = row.raw(column)
        if is_assigned(value):
            self.metadata[key] = value

    def handle_exptl(self, row: CategoryRow) -> None:
        self._put(row, "method", "experiment")

    def handle_struct(self, row: CategoryRow) -> None:
        self._put(row, "title", "title")

    def handle_struct_keywords(self, row: CategoryRow) -> None:
        self._put(row, "text", "keywords")
        self._put(row, "pdbx_keywords", "header")

    def handle_pdbx_database_status(self, row: CategoryRow) -> None:
        self._put(row, "recvd_initial_deposition_date", "date")

    def handle_refine(self, row: CategoryRow) -> None:
        self._put_sticky(row, "ls_d_res_high", "resolution")

    def handle_reflns(self, row: CategoryRow) -> None:
        self._put_sticky(row, "d_resolution_high", "resolution")

    @property
    def experiment(self) -> str:
        return self.metadata.get("experiment", "")

    @property
    def is_nmr(self) -> bool:
        return "NMR" in self.experiment.upper()

    # --- entities --------------------------------------------------------

    def handle_entity(self, row: CategoryRow) -> None:
        entity_id = row.raw("id") if row.has("id") else (row.values[0] if row.values else None)
        if entity_id is None:
            return
        record = EntityRecord(entity_id)
        for column in row.columns:
            if column != "id":
                record.attributes[column] = row.get(column)
        self.entities[entity_id] = record

    def handle_entity_poly(self, row: CategoryRow) -> None:
        strands = row.get("pdbx_strand_id")
        if not strands:
            return
        chain_ids = [c.strip() for c in strands.split(",") if c.strip()]
        poly_type = row.get("type")
        for cid in chain_ids:
            self.chain_types[cid] = poly_type
            self.homologues[cid] = [c for c in chain_ids if c != cid]

    def entity_type(self, entity_id: Optional[str]) -> str:
        record = self.entities.get(entity_id) if entity_id is not None else None
        return record.entity_type if record else ""

    # --- chemical components ----------------------------------------------

    def handle_chem_comp(self, row: CategoryRow) -> None:
        comp_id = row.raw("id")
        if not is_assigned(comp_id):
            return
        raw = {column: row.get(column) for column in row.columns}
        self.chem_comps[comp_id] = ChemComp(
            comp_id=comp_id,
            type=raw.get("type", ""),
            name=raw.get("name", ""),
            formula=raw.get("formula", ""),
            synonyms=raw.get("pdbx_synonyms", ""),
            raw=raw,
        )

    def classify(self, name3: str) -> MonomerKind:
        """Kind implied by the chemical component type; unknown codes are ligands."""
        comp = self.chem_comps.get(name3)
        if comp is None:
            return MonomerKind.LIGAND
        return comp.classify()

    # --- organism names ------------------------------------------------------

    def handle_entity_src_gen(self, row: CategoryRow) -> None:
        self.org_common.offer(row.raw("gene_src_common_name"), "entity_src_gen")
        self.org_scientific.offer(row.raw("pdbx_gene_src_scientific_name"), "entity_src_gen")

    def handle_entity_src_nat(self, row: CategoryRow) -> None:
        self.org_common.offer(row.raw("common_name"), "entity_src_nat")
        self.org_scientific.offer(row.raw("pdbx_organism_scientific"), "entity_src_nat")

    def handle_pdbx_entity_src_syn(self, row: CategoryRow) -> None:
        self.org_common.offer(row.raw("organism_common_name"), "pdbx_entity_src_syn")
        self.org_scientific.offer(row.raw("organism_scientific"), "pdbx_entity_src_syn")

    # --- final passes ----------------------------------------------------

    def fill_protein_meta_infos(self, infos: list[ProteinMetaInfo]) -> None:
        """Join entity records and organism names onto the per-chain records."""
        for pmi in infos:
            record = self.entities.get(pmi.macromol_id)
            if record is not None:
                pmi.mol_name = record.description
                pmi.ec_number = record.ec_number
            else:
                logger.debug("No entity record '%s' for chain %s.", pmi.macromol_id, pmi.chain_id)
            pmi.org_common = self.org_common.value
            pmi.org_scientific = self.org_scientific.value

            others = self.homologues.get(pmi.chain_id)
            if others is not None:
                pmi.all_mol_chains = ", ".join(others + [pmi.chain_id])

    def finalize(self, num_chains: int, num_atom_rows: int) -> dict[str, str]:
        for key in METADATA_FIELDS:
            self.metadata.setdefault(key, "")
        large = num_chains > LARGE_CHAIN_COUNT or num_atom_rows > LARGE_ATOM_COUNT
        self.metadata["isLarge"] = "true" if large else "false"
        return self.metadata
