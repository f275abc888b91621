"""Alternate-location resolution.

Runs once after the whole file is read. Within each monomer, atoms that
share a name but carry different alt-loc codes are conformers of the same
atom; exactly one survives: the first record in file order. Occupancy
is kept on each atom for the manifests but plays no part in the choice.
"""

from __future__ import annotations

from typing import Iterable

from cifgraph.core.logging_utils import get_logger
from cifgraph.parsers.base import Atom, Monomer

logger = get_logger(__name__)


def choose_alt_loc(monomer: Monomer) -> list[Atom]:
    """Drop surplus conformers from ``monomer.atoms``; return the dropped atoms."""
    by_name: dict[str, list[Atom]] = {}
    for a in monomer.atoms:
        by_name.setdefault(a.name, []).append(a)

    deleted: list[Atom] = []
    for group in by_name.values():
        if len(group) < 2 or len({a.alt_loc for a in group}) < 2:
            continue
        deleted.extend(group[1:])

    if deleted:
        dropped = {id(a) for a in deleted}
        monomer.atoms = [a for a in monomer.atoms if id(a) not in dropped]
    return deleted


def resolve_alt_locs(molecules: Iterable[Monomer], atoms: list[Atom]) -> tuple[int, int]:
    """Resolve every monomer and prune the global atom list in place.

    Returns (monomers affected, atoms deleted from the global list).
    """
    affected = 0
    dropped: set[int] = set()
    for mol in molecules:
        deleted = choose_alt_loc(mol)
        if deleted:
            affected += 1
            dropped.update(id(a) for a in deleted)

    if not dropped:
        return (0, 0)

    before = len(atoms)
    atoms[:] = [a for a in atoms if id(a) not in dropped]
    removed = before - len(atoms)
    if removed != len(dropped):
        logger.warning(
            "%d atoms requested to be removed from the global list were not in there.",
            len(dropped) - removed,
        )
    return (affected, removed)
