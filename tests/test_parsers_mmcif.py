"""Tests for mmCIF parsing: sample file and block/loop tracking."""

import gzip
import logging
from pathlib import Path

import pytest

from cifgraph.config import ParserSettings
from cifgraph.parsers.base import FatalParseError, MonomerKind
from cifgraph.parsers.mmcif import CIFParser, CIFStructure, parse_mmcif
from cifgraph.parsers.residues import ResidueList

FIXTURES = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def sample() -> CIFStructure:
    residues = ResidueList.from_dssp(FIXTURES / "sample.dssp")
    return parse_mmcif(FIXTURES / "sample.cif", residues, settings=ParserSettings())


class TestSampleFile:
    def test_metadata(self, sample: CIFStructure) -> None:
        m = sample.metadata
        assert sample.pdb_id == "1abc"
        assert m["experiment"] == "X-RAY DIFFRACTION"
        assert m["title"] == "Test kinase in complex with ATP"
        assert m["resolution"] == "1.80"
        assert m["keywords"] == "TRANSFERASE, KINASE, ATP-BINDING"
        assert m["header"] == "TRANSFERASE"
        assert m["date"] == "2001-05-17"
        assert m["isLarge"] == "false"

    def test_entities_and_chem_comps(self, sample: CIFStructure) -> None:
        assert sample.entities["1"].is_polymer
        assert sample.entities["2"].description == "ADENOSINE-5'-TRIPHOSPHATE"
        assert sample.chem_comps["ATP"].formula == "C10 H16 N5 O13 P3"
        assert sample.chem_comps["ALA"].classify() is MonomerKind.AMINO_ACID

    def test_chain(self, sample: CIFStructure) -> None:
        assert len(sample.models) == 1
        assert sample.chain_ids == ["A"]
        chain = sample.get_chain("A")
        assert chain.alt_chain_id == "A"
        assert chain.molecule_type == "polypeptide(L)"
        assert chain.homologues == ["B"]
        assert chain.sequence == "MKAG"
        assert [m.name3 for m in chain.monomers] == ["MET", "LYS", "ALA", "GLY", "ATP"]

    def test_first_atom_coordinates(self, sample: CIFStructure) -> None:
        first = sample.atoms[0]
        assert first.serial == 1
        assert first.coords == (12, 57, 90)
        assert sample.atoms[1].name == " CA "

    def test_dssp_residues_take_atoms(self, sample: CIFStructure) -> None:
        met = sample.get_chain("A").monomers[0]
        assert met.dssp_num == 1
        assert not met.synthetic
        assert [a.serial for a in met.atoms] == [1, 2]
        assert sample.get_chain("A").monomers[1].sse_string == "H"

    def test_free_residue_and_ligand_numbering(self, sample: CIFStructure) -> None:
        gly, atp = sample.get_chain("A").monomers[3:]
        assert gly.synthetic and gly.kind is MonomerKind.AMINO_ACID
        assert gly.dssp_num == 4
        assert atp.kind is MonomerKind.LIGAND
        assert atp.dssp_num == 5
        assert atp.sse_string == "L"
        assert atp.lig_name == "ADENOSINE-5'-TRIPHOSPHATE"
        assert all(a.dssp_num == 5 for a in atp.atoms)

    def test_filtered_atoms(self, sample: CIFStructure) -> None:
        serials = [a.serial for a in sample.atoms]
        # hydrogen 3, the second conformer 7 and water 14 are gone
        assert serials == [1, 2, 4, 5, 6, 8, 9, 10, 11, 12, 13]
        assert sample.stats.skipped_rows == {"ignored_element": 1, "ignored_ligand": 1}
        assert sample.stats.ignored_monomers == 1
        assert sample.stats.altloc_atoms_deleted == 1

    def test_protein_meta_info(self, sample: CIFStructure) -> None:
        (pmi,) = sample.protein_meta_infos
        assert pmi.pdb_id == "1abc"
        assert pmi.macromol_id == "1"
        assert pmi.mol_name == "Protein kinase"
        assert pmi.ec_number == "2.7.11.1"
        assert pmi.org_common == "human"
        assert pmi.org_scientific == "Homo sapiens"
        assert pmi.all_mol_chains == "B, A"

    def test_gzip_input(self, tmp_path: Path) -> None:
        gz = tmp_path / "1abc.cif.gz"
        with gzip.open(gz, "wt") as f:
            f.write((FIXTURES / "sample.cif").read_text())
        s = CIFParser(ResidueList.from_dssp(FIXTURES / "sample.dssp"), ParserSettings()).parse(gz)
        assert s.num_atoms == 11

    def test_missing_file(self) -> None:
        with pytest.raises(FileNotFoundError):
            parse_mmcif("/nonexistent/path.cif", ResidueList.from_tuples([(1, 1, "A", " ", "ALA")]))


class TestParseTwice:
    def test_same_parser_same_result(self, residues, settings) -> None:
        parser = CIFParser(residues, settings=settings)
        first = parser.parse(FIXTURES / "sample.cif")
        second = parser.parse(FIXTURES / "sample.cif")
        assert first.to_dict() == second.to_dict()
        assert [a.coords for a in first.atoms] == [a.coords for a in second.atoms]
        assert [m.dssp_num for m in first.monomers()] == [m.dssp_num for m in second.monomers()]
        assert first.molecules[0] is not second.molecules[0]

    def test_residue_source_untouched(self, residues, settings) -> None:
        CIFParser(residues, settings=settings).parse(FIXTURES / "sample.cif")
        assert all(r.atoms == [] and r.chain is None for r in residues.molecules)


class TestBlockTracker:
    def _parse(self, text: str, residues, settings=None) -> CIFStructure:
        return CIFParser(residues, settings=settings or ParserSettings()).parse_text(text)

    def test_single_row_literal_value(self, residues, make_cif) -> None:
        s = self._parse(make_cif([], experiment="SOLUTION NMR"), residues)
        assert s.metadata["experiment"] == "SOLUTION NMR"

    def test_single_row_value_on_next_line(self, residues, make_cif) -> None:
        extra = "_struct.entry_id 1TST\n_struct.title\n'Title on its own line'\n#"
        s = self._parse(make_cif([], extra=extra), residues)
        assert s.metadata["title"] == "Title on its own line"

    def test_text_field_ignores_comment_marker(self, residues, make_cif) -> None:
        extra = "_struct.title\n;First line\n# not a comment\n;\n#"
        s = self._parse(make_cif([], extra=extra), residues)
        assert s.metadata["title"] == "First line# not a comment"

    def test_wrapped_loop_row(self, residues, make_cif, atom) -> None:
        row = atom(1, "N", "MET", 1, x="1.234", y="5.678", z="9.012")
        fields = row.split()
        wrapped = " ".join(fields[:12]) + "\n" + " ".join(fields[12:])
        s = self._parse(make_cif([wrapped]), residues)
        assert s.num_atoms == 1
        assert s.atoms[0].coords == (12, 57, 90)

    def test_too_long_row_warns(self, residues, make_cif, atom, caplog) -> None:
        with caplog.at_level(logging.WARNING):
            s = self._parse(make_cif([atom(1, "N", "MET", 1) + " surplus"]), residues)
        assert s.num_atoms == 1
        assert "seems to be too long" in caplog.text

    def test_second_data_block_stops(self, residues, make_cif, atom, caplog) -> None:
        text = make_cif([atom(1, "N", "MET", 1)])
        text += "data_2XYZ\n" + make_cif([atom(1, "N", "GLY", 1, chain="B")]).split("\n", 1)[1]
        with caplog.at_level(logging.WARNING):
            s = self._parse(text, residues)
        assert s.pdb_id == "1tst"
        assert s.chain_ids == ["A"]
        assert s.num_atoms == 1
        assert "only the first data block is parsed" in caplog.text

    def test_nested_loop_is_fatal(self, residues) -> None:
        text = "data_1TST\nloop_\n_entity.id\n_entity.type\nloop_\n_chem_comp.id\n"
        with pytest.raises(FatalParseError):
            self._parse(text, residues)

    def test_atom_site_outside_loop_is_fatal(self, residues) -> None:
        text = "\n".join([
            "data_1TST",
            "_atom_site.id 1",
            "_atom_site.type_symbol N",
            "_atom_site.label_atom_id N",
            "_atom_site.label_comp_id MET",
            "_atom_site.label_asym_id A",
            "_atom_site.Cartn_x 1.0",
            "_atom_site.Cartn_y 1.0",
            "_atom_site.Cartn_z 1.0",
            "#",
        ])
        with pytest.raises(FatalParseError) as exc:
            self._parse(text, residues)
        assert exc.value.exit_code == 2

    def test_missing_required_column_is_fatal(self, residues) -> None:
        text = "\n".join([
            "data_1TST",
            "loop_",
            "_atom_site.id",
            "_atom_site.type_symbol",
            "_atom_site.label_atom_id",
            "_atom_site.label_comp_id",
            "_atom_site.label_asym_id",
            "_atom_site.Cartn_x",
            "_atom_site.Cartn_y",
            "1 N N MET A 1.0 1.0",
            "#",
        ])
        with pytest.raises(FatalParseError, match="Cartn_z"):
            self._parse(text, residues)

    def test_unknown_categories_are_ignored(self, residues, make_cif, atom) -> None:
        extra = "loop_\n_made_up.a\n_made_up.b\n1 2\n3 4\n#\n_other.thing 'x'\n#"
        s = self._parse(make_cif([atom(1, "N", "MET", 1)], extra=extra), residues)
        assert s.num_atoms == 1

    def test_empty_residue_source_is_fatal(self, make_cif) -> None:
        with pytest.raises(FatalParseError) as exc:
            CIFParser(ResidueList([]), settings=ParserSettings()).parse_text(make_cif([]))
        assert exc.value.exit_code == 2

    def test_unnamed_data_block_warns(self, residues, caplog) -> None:
        with caplog.at_level(logging.WARNING):
            s = self._parse("data_\n#\n", residues)
        assert s.pdb_id == ""
        assert "found no name" in caplog.text


class TestMinimalAtomSite:
    HEADER = [
        "data_1TST",
        "loop_",
        "_atom_site.id",
        "_atom_site.type_symbol",
        "_atom_site.label_atom_id",
        "_atom_site.label_comp_id",
        "_atom_site.label_asym_id",
        "_atom_site.Cartn_x",
        "_atom_site.Cartn_y",
        "_atom_site.Cartn_z",
    ]

    def test_required_columns_only(self, residues) -> None:
        text = "\n".join(self.HEADER + ["1 C CA ALA A 1.234 5.678 9.012", "#"])
        s = CIFParser(residues, settings=ParserSettings()).parse_text(text)
        (a,) = s.atoms
        assert a.element == "C"
        assert a.name == " CA "
        assert a.monomer.name3 == "ALA"
        assert a.coords == (12, 57, 90)

    def test_required_columns_only_truncated(self, residues) -> None:
        text = "\n".join(self.HEADER + ["1 C CA ALA A 1.234 5.678 9.012", "#"])
        settings = ParserSettings(round_coordinates=False)
        (a,) = CIFParser(residues, settings=settings).parse_text(text).atoms
        # 5.678 * 10 is cut toward zero, not rounded up
        assert a.coords == (12, 56, 90)
        assert a.monomer.name3 == "ALA"

    def test_consecutive_rows_same_residue(self, residues, make_cif, atom) -> None:
        rows = [atom(1, "N", "ALA", 5), atom(2, "CA", "ALA", 5)]
        s = CIFParser(residues, settings=ParserSettings()).parse_text(make_cif(rows))
        assert len(s.monomers()) == 1
        assert s.atoms[0].monomer is s.atoms[1].monomer


class TestColumnAliases:
    TEXT = "\n".join([
        "data_1TST",
        "loop_",
        "_chem_comp.id",
        "_chem_comp.type",
        "LYS 'L-peptide linking'",
        "MET 'L-peptide linking'",
        "#",
        "loop_",
        "_atom_site.id",
        "_atom_site.type_symbol",
        "_atom_site.label_atom_id",
        "_atom_site.label_comp_id",
        "_atom_site.label_asym_id",
        "_atom_site.label_entity_id",
        "_atom_site.label_seq_id",
        "_atom_site.Cartn_x",
        "_atom_site.Cartn_y",
        "_atom_site.Cartn_z",
        "1 N N  MET A 1 1 1.0 1.0 1.0",
        "2 C CA MET A 1 1 2.0 1.0 1.0",
        "3 N N  LYS A 1 2 3.0 1.0 1.0",
        "#",
    ])

    def test_label_columns_stand_in(self, residues) -> None:
        s = CIFParser(residues, settings=ParserSettings()).parse_text(self.TEXT)
        chain = s.get_chain("A")
        assert [m.name3 for m in chain.monomers] == ["MET", "LYS"]
        assert [m.dssp_num for m in chain.monomers] == [1, 2]
        assert chain.monomers[0].atoms[1].name == " CA "
        assert s.models[0].model_id == "1"

    def test_alias_logged_once(self, residues, caplog) -> None:
        caplog.set_level(logging.INFO, logger="cifgraph")
        CIFParser(residues, settings=ParserSettings()).parse_text(self.TEXT)
        notes = [r for r in caplog.records if "instead of missing column auth_atom_id" in r.getMessage()]
        assert len(notes) == 1
        assert caplog.text.count("group_PDB is missing") == 1

    def test_silent_suppresses_notes(self, residues, caplog) -> None:
        caplog.set_level(logging.INFO, logger="cifgraph")
        CIFParser(residues, settings=ParserSettings(silent=True)).parse_text(self.TEXT)
        assert "instead of missing column" not in caplog.text
