from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer

from cifgraph.config import ParserSettings, load_settings
from cifgraph.core.logging_utils import configure_verbosity, get_logger
from cifgraph.core.manifest import CHAIN_COLUMNS, Manifest, atom_manifest, chain_manifest
from cifgraph.parsers.base import FatalParseError
from cifgraph.parsers.dataset import StructureDataset
from cifgraph.parsers.mmcif import CIFParser
from cifgraph.parsers.residues import ResidueList

logger = get_logger(__name__)
app = typer.Typer(no_args_is_help=True)


def _settings(
    debug_level: Optional[int],
    silent: bool,
    include_rna: bool,
    only_chain: Optional[str],
    truncate: bool,
) -> ParserSettings:
    s = load_settings()
    overrides = {}
    if debug_level is not None:
        overrides["debug_level"] = debug_level
    if silent:
        overrides["silent"] = True
    if include_rna:
        overrides["include_rna"] = True
    if only_chain:
        overrides["only_chain"] = only_chain
    if truncate:
        overrides["round_coordinates"] = False
    s = replace(s, **overrides)
    configure_verbosity(debug_level=s.debug_level, silent=s.silent)
    return s


@app.command("parse")
def parse_cmd(
    cif: Path = typer.Argument(..., help="mmCIF file (.cif or .cif.gz)."),
    dssp: Path = typer.Option(..., help="DSSP output for the same structure."),
    manifest: Optional[Path] = typer.Option(None, help="Write the chain manifest here (parquet)."),
    atoms: Optional[Path] = typer.Option(None, help="Write the atom table here (parquet)."),
    debug_level: Optional[int] = typer.Option(None, help="Debug verbosity (0 = off, 2 = per atom)."),
    silent: bool = typer.Option(False, help="Only log warnings and errors."),
    include_rna: bool = typer.Option(False, help="Keep RNA residues as nucleotide monomers."),
    only_chain: Optional[str] = typer.Option(None, help="Parse a single chain only."),
    truncate: bool = typer.Option(False, help="Truncate coordinates instead of rounding them."),
):
    settings = _settings(debug_level, silent, include_rna, only_chain, truncate)
    try:
        residues = ResidueList.from_dssp(dssp)
        structure = CIFParser(residues, settings=settings).parse(cif)
    except FatalParseError as e:
        logger.error("Parsing %s failed: %s", cif, e)
        raise typer.Exit(code=e.exit_code)
    except OSError as e:
        logger.error("Could not read input: %s", e)
        raise typer.Exit(code=1)

    counts = structure.count_by_kind()
    logger.info(
        "Parsed %s: models=%d chains=%d amino_acids=%d nucleotides=%d ligands=%d atoms=%d",
        structure.pdb_id or cif.name, len(structure.models), structure.num_chains,
        counts["amino_acid"], counts["nucleotide"], counts["ligand"], structure.num_atoms,
    )
    if manifest is not None:
        m = chain_manifest(structure)
        m.save_parquet(manifest)
        logger.info("Wrote chain manifest to %s (count=%d)", manifest, m.count())
    if atoms is not None:
        a = atom_manifest(structure)
        a.save_parquet(atoms)
        logger.info("Wrote atom table to %s (count=%d)", atoms, a.count())


@app.command("batch")
def batch_cmd(
    directory: Path = typer.Argument(..., help="Directory searched recursively for mmCIF files."),
    dssp_dir: Path = typer.Option(..., help="Directory holding <pdb_id>.dssp[.gz] files."),
    manifest: Path = typer.Option(..., help="Output chain manifest path (parquet)."),
    pattern: str = typer.Option("*.cif*", help="Glob pattern for mmCIF files."),
    keep_going: bool = typer.Option(True, help="Skip files that fail to parse instead of stopping."),
    debug_level: Optional[int] = typer.Option(None, help="Debug verbosity (0 = off, 2 = per atom)."),
    silent: bool = typer.Option(False, help="Only log warnings and errors."),
    include_rna: bool = typer.Option(False, help="Keep RNA residues as nucleotide monomers."),
):
    settings = _settings(debug_level, silent, include_rna, None, False)
    ds = StructureDataset.from_directory(directory, dssp_dir=dssp_dir, pattern=pattern, settings=settings)
    manifests: list[Manifest] = []
    failed = 0
    for i in range(len(ds)):
        try:
            manifests.append(chain_manifest(ds[i]))
        except (FatalParseError, OSError) as e:
            failed += 1
            if not keep_going:
                code = e.exit_code if isinstance(e, FatalParseError) else 1
                raise typer.Exit(code=code)
    out = Manifest.concat(manifests, columns=CHAIN_COLUMNS)
    out.save_parquet(manifest)
    logger.info("Wrote %s (files=%d failed=%d chains=%d)", manifest, len(ds), failed, out.count())
