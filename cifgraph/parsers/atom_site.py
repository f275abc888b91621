"""``_atom_site`` handler: builds models, chains, monomers and atoms.

Rows arrive in file order. A cursor remembers the current model, chain and
monomer; a new monomer is resolved only when the (PDB number, chain ID,
insertion code) triple changes. Polymer residues come from the DSSP
residue source. Everything DSSP does not list (ligands, RNA, free or
chain-break amino acids) gets a synthetic DSSP number:

    last real DSSP number + #RNA + #ligands + #free residues assigned so far
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional

import numpy as np

from cifgraph.config import ParserSettings
from cifgraph.core.logging_utils import get_logger
from cifgraph.parsers.base import (
    DNA_RESIDUE_NAMES,
    Atom,
    AtomType,
    CategoryRow,
    Chain,
    FatalParseError,
    Model,
    Monomer,
    MonomerKind,
    ParseStats,
    ProteinMetaInfo,
    aa_name1,
    is_assigned,
)
from cifgraph.parsers.metadata import MetadataAccumulator
from cifgraph.parsers.residues import ResidueList

logger = get_logger(__name__)

REQUIRED_COLUMNS = (
    "id", "type_symbol", "label_atom_id", "label_comp_id",
    "label_asym_id", "Cartn_x", "Cartn_y", "Cartn_z",
)

# author column -> computed column used when the author one is missing
AUTHOR_ALIASES = (
    ("auth_atom_id", "label_atom_id"),
    ("auth_asym_id", "label_asym_id"),
    ("auth_comp_id", "label_comp_id"),
    ("auth_seq_id", "label_seq_id"),
)

DEFAULT_MODEL_ID = "1"

MonomerKey = tuple[int, str, str]


def to_fixed_point(value: str, round_coordinates: bool) -> int:
    """Angstrom string -> tenths of an Angstrom.

    Rounded mode works in single precision and rounds half up; truncated
    mode works in double precision and cuts toward zero.
    """
    if round_coordinates:
        scaled = np.float32(float(value)) * np.float32(10)
        return int(np.floor(scaled + np.float32(0.5)))
    return int(float(value) * 10.0)


def atom_display_name(name: str) -> str:
    # mmCIF drops the PDB column padding; keep " CA " apart from calcium "CA"
    if name == "CA":
        return " CA "
    return name


@dataclass
class ParseCursor:
    """Current model/chain/monomer while walking the atom rows.

    ``monomer`` is None both before the first row and while the current
    triple belongs to a discarded (ignored) monomer; ``monomer_key`` tells
    the two apart.
    """

    model: Optional[Model] = None
    chain: Optional[Chain] = None
    monomer_key: Optional[MonomerKey] = None
    monomer: Optional[Monomer] = None

    def is_new_monomer(self, key: MonomerKey) -> bool:
        return self.monomer_key != key


@dataclass
class MolecularGraph:
    """Output containers filled by the builder."""

    models: list[Model] = field(default_factory=list)
    chains: list[Chain] = field(default_factory=list)
    molecules: list[Monomer] = field(default_factory=list)
    atoms: list[Atom] = field(default_factory=list)
    protein_meta_infos: list[ProteinMetaInfo] = field(default_factory=list)
    stats: ParseStats = field(default_factory=ParseStats)

    def get_chain(self, chain_id: str) -> Optional[Chain]:
        for c in self.chains:
            if c.chain_id == chain_id:
                return c
        return None


class MolecularGraphBuilder:
    """Consumes ``_atom_site`` rows and grows a :class:`MolecularGraph`."""

    def __init__(
        self,
        residues: ResidueList,
        meta: MetadataAccumulator,
        settings: ParserSettings,
        pdb_id: str = "",
    ) -> None:
        self.residues = residues
        self.meta = meta
        self.settings = settings
        self.pdb_id = pdb_id
        self.graph = MolecularGraph(molecules=list(residues.molecules))
        self.cursor = ParseCursor()
        self._checked_columns: Optional[dict[str, int]] = None
        self._aliased_columns: dict[str, int] = {}
        self._aliases_logged: set[str] = set()
        self._further_models_noted = False
        self._group_pdb_warned = False

    # ------------------------------------------------------------------
    # diagnostics
    # ------------------------------------------------------------------

    def _info(self, msg: str, *args) -> None:
        if not self.settings.silent:
            logger.info(msg, *args)

    def _warn(self, msg: str, *args) -> None:
        if not self.settings.no_parse_warn:
            logger.warning(msg, *args)

    def _debug(self, level: int, msg: str, *args) -> None:
        if self.settings.debug_level >= level:
            logger.debug(msg, *args)

    # ------------------------------------------------------------------
    # synthetic numbering
    # ------------------------------------------------------------------

    def next_synthetic_dssp_num(self) -> int:
        s = self.graph.stats
        return (
            self.residues.last_dssp_num
            + s.rna_assigned
            + s.ligands_assigned
            + s.free_residues_assigned
        )

    # ------------------------------------------------------------------
    # columns
    # ------------------------------------------------------------------

    def check_columns(self, row: CategoryRow) -> CategoryRow:
        """Verify required columns and alias author columns, once per schema.

        Returns the row keyed by the aliased schema; the tracker's own
        schema is left alone since it sizes the rows.
        """
        if self._checked_columns is not row.columns:
            missing = [c for c in REQUIRED_COLUMNS if c not in row.columns]
            if missing:
                raise FatalParseError(f"Missing required columns in _atom_site: {missing}")
            aliased = dict(row.columns)
            for auth, label in AUTHOR_ALIASES:
                if auth in aliased or label not in aliased:
                    continue
                aliased[auth] = aliased[label]
                if auth not in self._aliases_logged:
                    self._aliases_logged.add(auth)
                    self._info("Using %s instead of missing column %s", label, auth)
            if "group_PDB" not in row.columns and not self._group_pdb_warned:
                self._group_pdb_warned = True
                self._warn("Column _atom_site.group_PDB is missing. Ignoring it.")
            self._checked_columns = row.columns
            self._aliased_columns = aliased
        return replace(row, columns=self._aliased_columns)

    # ------------------------------------------------------------------
    # model / chain
    # ------------------------------------------------------------------

    def _resolve_model(self, row: CategoryRow) -> Optional[Model]:
        """Current model, or None if the row belongs to a skipped NMR model."""
        stats = self.graph.stats
        if not row.has("pdbx_PDB_model_num"):
            if self.cursor.model is None:
                self.cursor.model = self._new_model(DEFAULT_MODEL_ID)
                self._info("No model column. Creating default model '%s'.", DEFAULT_MODEL_ID)
            return self.cursor.model

        model_id = row.get("pdbx_PDB_model_num", DEFAULT_MODEL_ID)
        if model_id not in stats.model_ids:
            stats.model_ids.append(model_id)

        if self.cursor.model is None:
            self.cursor.model = self._new_model(model_id)
            self._info("New model '%s' found.", model_id)
        elif self.cursor.model.model_id != model_id and self.meta.is_nmr:
            if not self._further_models_noted:
                self._further_models_noted = True
                self._info("Found further models. Ignoring them.")
            return None
        return self.cursor.model

    def _new_model(self, model_id: str) -> Model:
        model = Model(model_id)
        self.graph.models.append(model)
        return model

    def get_or_create_chain(self, chain_id: str, model: Model, entity_id: str, alt_chain_id: str) -> Chain:
        existing = self.graph.get_chain(chain_id)
        if existing is not None:
            return existing

        chain = Chain(
            chain_id=chain_id,
            alt_chain_id=alt_chain_id,
            molecule_type=self.meta.chain_types.get(chain_id) or "non-polymer",
            homologues=list(self.meta.homologues.get(chain_id, [])),
        )
        model.add_chain(chain)
        self.graph.chains.append(chain)
        self.graph.protein_meta_infos.append(
            ProteinMetaInfo(pdb_id=self.pdb_id, chain_id=chain_id, macromol_id=entity_id)
        )
        self._info("New chain named %s found.", chain_id)
        return chain

    # ------------------------------------------------------------------
    # monomers
    # ------------------------------------------------------------------

    def classify(self, name3: str, entity_type: str) -> MonomerKind:
        comp_kind = self.meta.classify(name3)
        # a nucleotide sitting alone as a ligand is not RNA
        if comp_kind is MonomerKind.NUCLEOTIDE and entity_type == "polymer":
            return MonomerKind.NUCLEOTIDE
        if comp_kind is not MonomerKind.AMINO_ACID or entity_type == "non-polymer":
            return MonomerKind.LIGAND
        return MonomerKind.AMINO_ACID

    def _polymer_residue(self, key: MonomerKey, name3: str, model: Model, chain: Chain,
                         entity_id: Optional[str]) -> Monomer:
        pdb_num, chain_id, i_code = key
        mol = self.residues.get_residue(pdb_num, chain_id, i_code)
        if mol is None:
            # incomplete residues at chain breaks are often missing from DSSP
            self._debug(2, "Amino acid at PDB# %d chain %s not listed by DSSP, parsing it as part of the chain.",
                        pdb_num, chain_id)
            self.graph.stats.free_residues_assigned += 1
            mol = Monomer(
                kind=MonomerKind.AMINO_ACID,
                pdb_num=pdb_num,
                chain_id=chain_id,
                name3=name3,
                dssp_num=self.next_synthetic_dssp_num(),
                i_code=i_code,
                aa_name1=aa_name1(name3),
                synthetic=True,
                sse_string="C",
            )
            self.graph.molecules.append(mol)
        mol.model_id = model.model_id
        mol.chain = chain
        # modified residues carry their own 3-letter code in the file
        mol.name3 = name3
        mol.entity_id = entity_id
        chain.add_monomer(mol)
        return mol

    def _synthetic_monomer(self, kind: MonomerKind, key: MonomerKey, name3: str, model: Model,
                           chain: Chain, entity_id: Optional[str]) -> Optional[Monomer]:
        """Create an RNA or ligand monomer; None if its name is on the ignore list."""
        stats = self.graph.stats
        pdb_num, chain_id, i_code = key
        is_rna = kind is MonomerKind.NUCLEOTIDE

        if is_rna:
            stats.rna_assigned += 1
        else:
            stats.ligands_assigned += 1
        dssp_num = self.next_synthetic_dssp_num()

        if self.settings.is_ignored_ligand(name3):
            if is_rna:
                stats.rna_assigned -= 1
            else:
                stats.ligands_assigned -= 1
            stats.ignored_monomers += 1
            self._debug(1, "Ignored %s '%s-%d' in chain %s.", "RNA ligand" if is_rna else "ligand",
                        name3, pdb_num, chain_id)
            return None

        mol = Monomer(
            kind=kind,
            pdb_num=pdb_num,
            chain_id=chain_id,
            name3=name3,
            dssp_num=dssp_num,
            i_code=i_code,
            aa_name1=name3 if is_rna else "J",
            synthetic=True,
            model_id=model.model_id,
            entity_id=entity_id,
            sse_string=self.settings.rna_sse_code if is_rna else self.settings.ligand_sse_code,
            chain=chain,
        )
        if not is_rna:
            comp = self.meta.chem_comps.get(name3)
            if comp is not None:
                mol.lig_name = comp.name
                mol.lig_formula = comp.formula
                mol.lig_synonyms = comp.synonyms
        self.graph.molecules.append(mol)
        chain.add_monomer(mol)

        if is_rna:
            self._debug(1, "New RNA molecule %s, DSSP# %d, PDB# %d, chain %s.", name3, dssp_num, pdb_num, chain_id)
        else:
            self._info("Added ligand monomer '%s-%d', chain %s (ligand #%d, fake DSSP #%d).",
                       name3, pdb_num, chain_id, stats.ligands_assigned, dssp_num)
        return mol

    def _enter_monomer(self, key: MonomerKey, name3: str, kind: MonomerKind, model: Model,
                       chain: Chain, entity_id: Optional[str]) -> None:
        if kind is MonomerKind.AMINO_ACID:
            mol: Optional[Monomer] = self._polymer_residue(key, name3, model, chain, entity_id)
        else:
            self._debug(1, "Found a ligand, RNA or free (modified) amino acid at PDB# %d. "
                           "Free amino acids are treated as ligands.", key[0])
            mol = self._synthetic_monomer(kind, key, name3, model, chain, entity_id)
        self.cursor.monomer_key = key
        self.cursor.monomer = mol

    # ------------------------------------------------------------------
    # rows
    # ------------------------------------------------------------------

    def handle_row(self, row: CategoryRow) -> None:
        if not row.in_loop:
            raise FatalParseError(
                f"Atom coordinates at line {row.line_no} are not within a loop. Is the file broken?",
                exit_code=2,
            )
        stats = self.graph.stats
        stats.atom_rows += 1
        row = self.check_columns(row)

        model = self._resolve_model(row)
        if model is None:
            stats.skip("further_model")
            return

        chain_id = row.raw("auth_asym_id") or ""
        if self.settings.only_chain and chain_id != self.settings.only_chain:
            stats.skip("other_chain")
            return
        entity_id = row.get("label_entity_id") or None

        name3 = row.raw("auth_comp_id") or ""
        seq_raw = row.raw("auth_seq_id")
        try:
            # no sequence column at all, or a placeholder: residue number 0
            pdb_num = int(seq_raw) if is_assigned(seq_raw) else 0
        except ValueError:
            stats.skip("bad_seq_num")
            self._warn("Line %d: residue number '%s' is not an integer, skipping atom.",
                       row.line_no, row.raw("auth_seq_id"))
            return
        i_code = row.get("pdbx_PDB_ins_code", " ")

        if self.cursor.chain is None or self.cursor.chain.chain_id != chain_id:
            self.cursor.chain = self.get_or_create_chain(
                chain_id, model, entity_id or "", row.raw("label_asym_id") or ""
            )
        chain = self.cursor.chain

        if name3.strip().upper() in DNA_RESIDUE_NAMES:
            stats.skip("dna")
            self._debug(1, "Atom #%s belongs to DNA residue '%s', skipping.", row.raw("id"), name3)
            return

        entity_type = self.meta.entity_type(entity_id)
        kind_of_row = self.classify(name3, entity_type)
        if kind_of_row is MonomerKind.NUCLEOTIDE and not self.settings.include_rna:
            stats.skip("rna")
            self._debug(1, "Atom #%s belongs to RNA residue '%s', skipping.", row.raw("id"), name3)
            return

        key = (pdb_num, chain_id, i_code)
        if self.cursor.is_new_monomer(key):
            self._enter_monomer(key, name3, kind_of_row, model, chain, entity_id)
        mol = self.cursor.monomer

        try:
            atom = self._build_atom(row, pdb_num, chain_id, i_code, chain)
        except (TypeError, ValueError):
            stats.skip("bad_number")
            self._warn("Line %d: unreadable serial number or coordinates, skipping atom.", row.line_no)
            return
        self._place_atom(atom, mol, row)

    def _build_atom(self, row: CategoryRow, pdb_num: int, chain_id: str, i_code: str, chain: Chain) -> Atom:
        rnd = self.settings.round_coordinates
        occupancy: Optional[float] = None
        occ_raw = row.raw("occupancy")
        if is_assigned(occ_raw):
            try:
                occupancy = float(occ_raw)
            except ValueError:
                occupancy = None
        return Atom(
            serial=int(row.raw("id")),
            name=atom_display_name(row.raw("auth_atom_id") or ""),
            element=row.raw("type_symbol") or "",
            x=to_fixed_point(row.raw("Cartn_x"), rnd),
            y=to_fixed_point(row.raw("Cartn_y"), rnd),
            z=to_fixed_point(row.raw("Cartn_z"), rnd),
            alt_loc=row.get("label_alt_id"),
            occupancy=occupancy,
            pdb_res_num=pdb_num,
            chain_id=chain_id,
            i_code=i_code,
            chain=chain,
        )

    def _place_atom(self, atom: Atom, mol: Optional[Monomer], row: CategoryRow) -> None:
        stats = self.graph.stats
        is_hydrogen = atom.element.strip().upper() == "H"
        keep_hydrogen = self.settings.handle_hydrogens and is_hydrogen

        if self.settings.is_ignored_element(atom.element) and not keep_hydrogen:
            stats.skip("ignored_element")
            self._debug(1, "Ignored atom at line %d (element %s).", row.line_no, atom.element)
            return

        if mol is None:
            # the current monomer was discarded as an ignored ligand
            atom.atom_type = AtomType.IGNORED_LIGAND
            stats.skip("ignored_ligand")
            return

        atom.monomer = mol
        if mol.kind is MonomerKind.LIGAND:
            atom.atom_type = AtomType.LIGAND
            atom.dssp_num = None if keep_hydrogen else mol.dssp_num
            mol.atoms.append(atom)
            self.graph.atoms.append(atom)
        elif keep_hydrogen:
            atom.atom_type = AtomType.HYDROGEN
            mol.hydrogen_atoms.append(atom)
        else:
            atom.atom_type = AtomType.RNA if mol.kind is MonomerKind.NUCLEOTIDE else AtomType.AMINO_ACID
            atom.dssp_num = mol.dssp_num
            mol.atoms.append(atom)
            self.graph.atoms.append(atom)
        stats.atoms_kept += 1
        self._debug(2, "New %s atom added: %r", atom.atom_type.value, atom)
