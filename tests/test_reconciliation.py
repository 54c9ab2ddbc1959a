import pytest
from sqlalchemy import select

from invtrack.core.errors import InvalidInput, MissingVarianceNotes
from invtrack.models import MonthlyInventory
from invtrack.services import reconciliation


@pytest.fixture()
def scenario(factory):
    """One area; X counted at 5, Y missing from the count; April saved X=3, Y=3."""

    dept = factory.department()
    area = factory.area(dept)
    linen = factory.category(dept, "Linen")
    x = factory.item(linen, "Bath towel", areas=[area])
    y = factory.item(linen, "Hand towel", areas=[area])
    factory.record(area, {x: 5}, day="2024-05-30")
    factory.snapshot(dept, x, 4, 2024, 3)
    factory.snapshot(dept, y, 4, 2024, 3)
    return dept, area, x, y


def _stored(db, dept, month, year):
    rows = db.execute(
        select(MonthlyInventory.item_id, MonthlyInventory.qty_total, MonthlyInventory.notes).where(
            MonthlyInventory.department_id == dept.id,
            MonthlyInventory.month == month,
            MonthlyInventory.year == year,
        )
    ).all()
    return {item_id: (qty, notes) for item_id, qty, notes in rows}


def test_reconcile_reports_increase_and_dropped_item(db_session, scenario):
    dept, _, x, y = scenario

    result = reconciliation.reconcile(db_session, dept.id, 5, 2024)

    by_item = {row.item_id: row for row in result.rows}
    assert set(by_item) == {x.id, y.id}
    assert (by_item[x.id].qty_current_total, by_item[x.id].qty_prev_total, by_item[x.id].diff) == (5, 3, 2)
    assert (by_item[y.id].qty_current_total, by_item[y.id].qty_prev_total, by_item[y.id].diff) == (0, 3, -3)
    assert by_item[x.id].status == "surplus"
    assert by_item[y.id].status == "shortage"
    assert (result.previous_month, result.previous_year) == (4, 2024)
    assert result.saved is False
    assert [group.delta for group in result.groups] == [-1]


def test_save_rejected_when_a_changed_item_has_no_note(db_session, scenario):
    dept, _, x, y = scenario

    with pytest.raises(MissingVarianceNotes) as excinfo:
        reconciliation.save_snapshot(db_session, dept.id, 5, 2024, {x.id: "Delivery received"})

    assert excinfo.value.item_ids == [y.id]
    assert _stored(db_session, dept, 5, 2024) == {}


def test_whitespace_note_does_not_satisfy_the_gate(db_session, scenario):
    dept, _, x, y = scenario

    with pytest.raises(MissingVarianceNotes):
        reconciliation.save_snapshot(db_session, dept.id, 5, 2024, {x.id: "Delivery", y.id: "   "})


def test_save_with_notes_writes_target_period_only(db_session, scenario):
    dept, _, x, y = scenario

    result = reconciliation.save_snapshot(
        db_session, dept.id, 5, 2024, {x.id: "Delivery received", str(y.id): "Sent to laundry"}
    )

    assert result.saved_rows == 2
    assert _stored(db_session, dept, 5, 2024) == {
        x.id: (5, "Delivery received"),
        y.id: (0, "Sent to laundry"),
    }
    assert _stored(db_session, dept, 4, 2024) == {x.id: (3, ""), y.id: (3, "")}
    assert reconciliation.reconcile(db_session, dept.id, 5, 2024).saved is True


def test_saving_twice_overwrites_instead_of_duplicating(db_session, scenario):
    dept, _, x, y = scenario
    notes = {x.id: "Delivery", y.id: "Laundry"}

    reconciliation.save_snapshot(db_session, dept.id, 5, 2024, notes)
    reconciliation.save_snapshot(db_session, dept.id, 5, 2024, {x.id: "Delivery (checked)", y.id: "Laundry"})

    rows = db_session.execute(
        select(MonthlyInventory).where(MonthlyInventory.month == 5, MonthlyInventory.year == 2024)
    ).scalars().all()
    assert len(rows) == 2
    assert _stored(db_session, dept, 5, 2024)[x.id] == (5, "Delivery (checked)")


def test_unchanged_rows_need_no_note(db_session, factory):
    dept = factory.department()
    area = factory.area(dept)
    cat = factory.category(dept)
    sheet = factory.item(cat, "Sheet", areas=[area])
    empty = factory.item(cat, "Pillow case", areas=[area])
    factory.record(area, {sheet: 4, empty: 0})
    factory.snapshot(dept, sheet, 4, 2024, 4)

    result = reconciliation.save_snapshot(db_session, dept.id, 5, 2024, {})

    assert result.saved_rows == 2
    assert _stored(db_session, dept, 5, 2024) == {sheet.id: (4, ""), empty.id: (0, "")}


def test_only_latest_record_per_area_counts(db_session, factory):
    dept = factory.department()
    first = factory.area(dept, "Floor 1")
    second = factory.area(dept, "Floor 2")
    cat = factory.category(dept)
    towel = factory.item(cat, "Towel", areas=[first, second])
    factory.record(first, {towel: 10}, day="2024-05-01")
    factory.record(first, {towel: 7}, day="2024-05-20", created_at="2024-05-20T08:00:00Z")
    factory.record(first, {towel: 4}, day="2024-05-20", created_at="2024-05-20T17:00:00Z")
    # A late entry for an earlier day does not replace the newer count.
    factory.record(first, {towel: 99}, day="2024-05-10", created_at="2024-05-25T09:00:00Z")
    factory.record(second, {towel: 6}, day="2024-05-02")

    assert reconciliation.current_totals(db_session, dept.id) == {towel.id: 10}


def test_other_departments_do_not_leak_in(db_session, factory):
    dept = factory.department("Housekeeping")
    other = factory.department("Kitchen")
    cat = factory.category(dept)
    towel = factory.item(cat, "Towel", areas=[factory.area(dept)])
    factory.record(factory.area(other, "Pantry"), {towel: 8})
    factory.snapshot(other, towel, 4, 2024, 2)

    assert reconciliation.reconcile(db_session, dept.id, 5, 2024).rows == []


def test_header_rows_without_item_are_ignored(db_session, scenario, factory):
    dept, _, x, y = scenario
    factory.snapshot(dept, None, 4, 2024, 99, notes="April import")

    previous = reconciliation.previous_totals(db_session, dept.id, 5, 2024)

    assert previous == {x.id: 3, y.id: 3}


def test_january_compares_with_december_of_previous_year(db_session, factory):
    dept = factory.department()
    area = factory.area(dept)
    cat = factory.category(dept)
    towel = factory.item(cat, "Towel", areas=[area])
    factory.record(area, {towel: 2}, day="2025-01-05")
    factory.snapshot(dept, towel, 12, 2024, 5)
    factory.snapshot(dept, towel, 1, 2024, 50)

    result = reconciliation.reconcile(db_session, dept.id, 1, 2025)

    assert (result.previous_month, result.previous_year) == (12, 2024)
    assert result.rows[0].diff == -3


def test_empty_period_cannot_be_saved(db_session, factory):
    dept = factory.department()

    with pytest.raises(InvalidInput):
        reconciliation.save_snapshot(db_session, dept.id, 5, 2024, {})


def test_invalid_month_is_rejected(db_session, factory):
    dept = factory.department()

    with pytest.raises(InvalidInput):
        reconciliation.reconcile(db_session, dept.id, 13, 2024)


def test_build_rows_covers_union_with_exact_diffs():
    current = {1: 5, 2: 0, 4: 2}
    previous = {2: 3, 3: 1, 4: 2}

    rows = reconciliation.build_rows(current, previous)

    assert {row.item_id for row in rows} == {1, 2, 3, 4}
    for row in rows:
        assert row.diff == current.get(row.item_id, 0) - previous.get(row.item_id, 0)
    statuses = {row.item_id: row.status for row in rows}
    assert statuses == {1: "new", 2: "shortage", 3: "shortage", 4: "unchanged"}
    assert rows[0].item_name == "Item 1"
    assert rows[0].category_name == "Uncategorized"


def test_classify_distinguishes_new_from_surplus():
    assert reconciliation.classify(3, 3) == "new"
    assert reconciliation.classify(2, 5) == "surplus"
    assert reconciliation.classify(0, 0) == "unchanged"
    assert reconciliation.classify(-1, 0) == "shortage"


def test_missing_notes_lists_every_offender():
    rows = reconciliation.build_rows({1: 1, 2: 2, 3: 3}, {1: 0, 2: 2, 3: 0}, notes={3: "ok"})

    assert reconciliation.missing_notes(rows) == [1]


def test_history_lists_periods_oldest_first_with_notes(db_session, scenario, factory):
    dept, _, x, y = scenario
    factory.snapshot(dept, x, 3, 2024, 2, notes="Opening count")
    db_session.execute(
        MonthlyInventory.__table__.update()
        .where(MonthlyInventory.item_id == x.id, MonthlyInventory.month == 4)
        .values(notes="Delivery")
    )
    db_session.commit()

    history = reconciliation.compare_history(db_session, dept.id, 5, 2024, periods=2)

    assert [period.label for period in history.periods] == ["MAR 2024", "APR 2024"]
    rows = {row.item_id: row for row in history.rows}
    assert rows[x.id].by_period == {"MAR 2024": 2, "APR 2024": 3}
    assert rows[x.id].qty_current_total == 5
    assert rows[x.id].notes == "MAR 2024: Opening count | APR 2024: Delivery"
    assert rows[y.id].by_period == {"MAR 2024": 0, "APR 2024": 3}
    assert rows[y.id].notes == ""


def test_history_period_count_is_bounded(db_session, factory):
    dept = factory.department()

    with pytest.raises(InvalidInput):
        reconciliation.compare_history(db_session, dept.id, 5, 2024, periods=12)
    with pytest.raises(InvalidInput):
        reconciliation.compare_history(db_session, dept.id, 5, 2024, periods=0)


def test_failed_save_leaves_period_untouched(db_session, scenario, factory, monkeypatch):
    dept, area, x, y = scenario
    notes = {x.id: "Delivery", y.id: "Laundry"}
    reconciliation.save_snapshot(db_session, dept.id, 5, 2024, notes)
    factory.record(area, {x: 9, y: 1}, day="2024-05-31")

    def _broken_commit():
        raise RuntimeError("disk full")

    monkeypatch.setattr(db_session, "commit", _broken_commit)
    with pytest.raises(RuntimeError, match="disk full"):
        reconciliation.save_snapshot(db_session, dept.id, 5, 2024, {x.id: "Recount", y.id: "Found one"})
    monkeypatch.undo()

    assert _stored(db_session, dept, 5, 2024) == {x.id: (5, "Delivery"), y.id: (0, "Laundry")}


def test_resave_drops_items_no_longer_reconciled(db_session, factory):
    dept = factory.department()
    area = factory.area(dept)
    cat = factory.category(dept)
    towel = factory.item(cat, "Towel", areas=[area])
    robe = factory.item(cat, "Robe", areas=[area])
    factory.record(area, {towel: 2, robe: 1}, day="2024-05-10")
    reconciliation.save_snapshot(db_session, dept.id, 5, 2024, {towel.id: "Opening", robe.id: "Opening"})
    factory.record(area, {towel: 2}, day="2024-05-20")

    reconciliation.save_snapshot(db_session, dept.id, 5, 2024, {towel.id: "Opening"})

    assert _stored(db_session, dept, 5, 2024) == {towel.id: (2, "Opening")}
