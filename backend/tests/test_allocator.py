from concurrent.futures import ThreadPoolExecutor

import pytest

from chem_inventory import allocator, crud, models, schemas
from chem_inventory.errors import InvalidArgument, NotFound, PersistenceFailure


def _global_counter(db) -> int:
    db.expire_all()
    return db.get(models.IdCounter, allocator.PARENT_PREFIX).current_number


def test_parent_prefix_is_padded_and_child_suffix_is_not() -> None:
    assert allocator.format_parent_id(1) == "CHEM0001"
    assert allocator.format_parent_id(42) == "CHEM0042"
    assert allocator.format_parent_id(12345) == "CHEM12345"
    assert allocator.format_bottle_id("CHEM0001", 3) == "CHEM0001-3"
    assert allocator.format_bottle_id("CHEM0001", 10) == "CHEM0001-10"


def test_first_batch_mints_parent_and_starts_at_one(db, make_chemical) -> None:
    ethanol = make_chemical("Ethanol")

    allocation = allocator.allocate(db, ethanol.id, 3)
    db.commit()

    assert allocation.parent_id == "CHEM0001"
    assert [a.child_number for a in allocation.assignments] == [1, 2, 3]
    assert [a.bottle_id for a in allocation.assignments] == ["CHEM0001-1", "CHEM0001-2", "CHEM0001-3"]
    assert _global_counter(db) == 1


def test_each_new_chemical_gets_a_fresh_parent(db, make_chemical) -> None:
    ethanol = make_chemical("Ethanol")
    acetone = make_chemical("Acetone")

    first = allocator.allocate(db, ethanol.id, 1)
    second = allocator.allocate(db, acetone.id, 1)
    again = allocator.allocate(db, ethanol.id, 1)
    db.commit()

    assert first.parent_id == "CHEM0001"
    assert second.parent_id == "CHEM0002"
    assert again.parent_id == "CHEM0001"
    assert again.assignments[0].bottle_id == "CHEM0001-2"
    assert _global_counter(db) == 2


def test_batches_continue_without_gaps(db, make_chemical) -> None:
    ethanol = make_chemical("Ethanol")

    first = allocator.allocate(db, ethanol.id, 2)
    second = allocator.allocate(db, ethanol.id, 3)
    db.commit()

    ids = [a.bottle_id for a in first.assignments + second.assignments]
    assert ids == ["CHEM0001-1", "CHEM0001-2", "CHEM0001-3", "CHEM0001-4", "CHEM0001-5"]
    counter = db.get(models.ParentCounter, ethanol.id)
    assert counter.next_child_number == 6


def test_sequence_resumes_from_persisted_state(session_factory, make_chemical) -> None:
    ethanol = make_chemical("Ethanol")

    session = session_factory()
    allocator.allocate(session, ethanol.id, 2)
    session.commit()
    session.close()

    # A fresh session stands in for a restarted process
    session = session_factory()
    allocation = allocator.allocate(session, ethanol.id, 2)
    session.commit()
    session.close()

    assert [a.child_number for a in allocation.assignments] == [3, 4]


@pytest.mark.parametrize("quantity", [0, -1, -10])
def test_non_positive_quantity_has_no_side_effects(db, make_chemical, quantity) -> None:
    ethanol = make_chemical("Ethanol")

    with pytest.raises(InvalidArgument) as exc_info:
        allocator.allocate(db, ethanol.id, quantity)

    assert exc_info.value.code == "bottle.invalid_quantity"
    db.rollback()
    assert _global_counter(db) == 0
    assert db.get(models.ParentCounter, ethanol.id) is None


def test_unknown_chemical_is_not_found(db) -> None:
    with pytest.raises(NotFound):
        allocator.allocate(db, 999, 1)


def test_recovers_from_existing_bottles_when_counter_is_missing(db, make_chemical) -> None:
    ethanol = make_chemical("Ethanol")
    for n in (1, 2, 4):
        db.add(
            models.Bottle(
                bottle_id=f"CHEM0007-{n}", parent_id="CHEM0007", child_number=n, chemical_id=ethanol.id
            )
        )
    db.commit()

    allocation = allocator.allocate(db, ethanol.id, 2)
    db.commit()

    assert allocation.parent_id == "CHEM0007"
    assert [a.bottle_id for a in allocation.assignments] == ["CHEM0007-5", "CHEM0007-6"]
    assert db.get(models.ParentCounter, ethanol.id).next_child_number == 7
    assert _global_counter(db) == 0


def test_stored_counter_wins_over_bottle_rows(db, make_chemical) -> None:
    ethanol = make_chemical("Ethanol")
    crud.create_bottles(db, schemas.BottleCreate(chemical_id=ethanol.id, number_of_bottles=5))
    # Bottles deleted, counter kept: numbers must not be reused
    db.query(models.Bottle).delete()
    db.commit()

    allocation = allocator.allocate(db, ethanol.id, 1)
    db.commit()

    assert allocation.assignments[0].bottle_id == "CHEM0001-6"


def test_failed_batch_rolls_back_counters(db, make_chemical) -> None:
    ethanol = make_chemical("Ethanol")
    legacy = make_chemical("Legacy stock")
    # Occupies the id the new batch will want for its second bottle
    db.add(models.Bottle(bottle_id="CHEM0001-2", parent_id="LEGACY", child_number=2, chemical_id=legacy.id))
    db.commit()

    with pytest.raises(PersistenceFailure):
        crud.create_bottles(db, schemas.BottleCreate(chemical_id=ethanol.id, number_of_bottles=3))

    assert _global_counter(db) == 0
    assert db.get(models.ParentCounter, ethanol.id) is None
    assert db.query(models.Bottle).filter(models.Bottle.chemical_id == ethanol.id).count() == 0


def test_parallel_batches_never_overlap(session_factory, make_chemical) -> None:
    chemical_id = make_chemical("Ethanol").id

    def create_one(_):
        session = session_factory()
        try:
            _, bottles = crud.create_bottles(
                session, schemas.BottleCreate(chemical_id=chemical_id, number_of_bottles=1)
            )
            return bottles[0].child_number
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=6) as pool:
        numbers = list(pool.map(create_one, range(12)))

    assert sorted(numbers) == list(range(1, 13))
