import pytest
from sqlalchemy import select

from invtrack.core.dates import parse_date_only
from invtrack.core.errors import AccessDenied, InvalidInput, QuantityError
from invtrack.crud import records as records_crud
from invtrack.crud import spot as spot_crud
from invtrack.crud import thresholds as thresholds_crud
from invtrack.models import RecordItem, SpotInventory, Threshold
from invtrack.services import matrix
from invtrack.services.quantities import parse_quantity


@pytest.fixture()
def linen_room(factory):
    dept = factory.department()
    area = factory.area(dept)
    linen = factory.category(dept, "Linen")
    tagged = factory.category(dept, "Equipment", tagged=True)
    towel = factory.item(linen, "Towel", areas=[area], vendor="Acme")
    sheet = factory.item(linen, "Sheet", areas=[area])
    dryer = factory.item(tagged, "Dryer", areas=[area], article_number="EQ-1")
    lead = factory.user("lead", department=dept)
    return {"dept": dept, "area": area, "towel": towel, "sheet": sheet, "dryer": dryer, "lead": lead, "factory": factory}


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, None), ("", None), ("  ", None), ("3", 3), (4, 4), ("1,200", 1200), (2.0, 2), ("0", 0)],
)
def test_parse_quantity_accepts_whole_numbers(raw, expected):
    assert parse_quantity(raw, item_name="Towel", valuable=False) == expected


@pytest.mark.parametrize("raw", ["-1", "2.5", "abc", "nan", True, "1e30", "99999999999999999999"])
def test_parse_quantity_rejects_bad_input(raw):
    with pytest.raises(QuantityError):
        parse_quantity(raw, item_name="Towel", valuable=False)


def test_valuable_quantity_limited_to_one():
    assert parse_quantity("1", item_name="Dryer", valuable=True) == 1
    with pytest.raises(QuantityError, match="valuable"):
        parse_quantity("2", item_name="Dryer", valuable=True)


def test_count_sheet_lists_linked_items_with_expected(db_session, linen_room):
    area = linen_room["area"]
    db_session.add(Threshold(area_id=area.id, item_id=linen_room["towel"].id, expected_qty=12))
    db_session.commit()

    sheet = records_crud.count_sheet(db_session, area)

    assert [line["name"] for line in sheet] == ["Dryer", "Sheet", "Towel"]
    by_name = {line["name"]: line for line in sheet}
    assert by_name["Towel"]["expected_qty"] == 12
    assert by_name["Dryer"]["is_valuable"] is True
    assert by_name["Sheet"]["expected_qty"] is None


def test_record_stores_blank_as_zero(db_session, linen_room):
    record = records_crud.create_record(
        db_session,
        area=linen_room["area"],
        user=linen_room["lead"],
        inventory_date="2024-05-31",
        quantities={linen_room["towel"].id: "7", str(linen_room["dryer"].id): "1"},
    )

    lines = dict(
        db_session.execute(select(RecordItem.item_id, RecordItem.qty).where(RecordItem.record_id == record.id)).all()
    )
    assert lines == {linen_room["towel"].id: 7, linen_room["sheet"].id: 0, linen_room["dryer"].id: 1}
    assert record.inventory_date == "2024-05-31"


def test_record_with_valuable_above_one_is_not_saved(db_session, linen_room):
    with pytest.raises(QuantityError) as excinfo:
        records_crud.create_record(
            db_session,
            area=linen_room["area"],
            user=linen_room["lead"],
            inventory_date="2024-05-31",
            quantities={linen_room["dryer"].id: 2, linen_room["towel"].id: -1},
        )

    assert {problem["item_id"] for problem in excinfo.value.details["items"]} == {
        linen_room["dryer"].id,
        linen_room["towel"].id,
    }
    assert db_session.execute(select(RecordItem)).first() is None


def test_oversized_count_is_rejected_before_saving(db_session, linen_room):
    with pytest.raises(QuantityError, match="too large"):
        records_crud.create_record(
            db_session,
            area=linen_room["area"],
            user=linen_room["lead"],
            inventory_date="2024-05-31",
            quantities={linen_room["towel"].id: "1e30"},
        )

    assert db_session.execute(select(RecordItem)).first() is None


def test_record_rejects_items_not_on_the_sheet(db_session, linen_room):
    with pytest.raises(QuantityError, match="not assigned"):
        records_crud.create_record(
            db_session,
            area=linen_room["area"],
            user=linen_room["lead"],
            inventory_date="2024-05-31",
            quantities={9999: 1},
        )


def test_record_requires_valid_date(db_session, linen_room):
    with pytest.raises(InvalidInput):
        records_crud.create_record(
            db_session, area=linen_room["area"], user=linen_room["lead"], inventory_date="31/05/2024", quantities={}
        )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("2024-05-31", "2024-05-31"), (" 2024-05-31 ", "2024-05-31"), ("2024-05-31T23:30:00", "2024-05-31")],
)
def test_parse_date_only_accepts_calendar_days(raw, expected):
    assert parse_date_only(raw) == expected


@pytest.mark.parametrize("raw", ["2024-05-019", "2024-05-01junk", "2024-13-01", ""])
def test_parse_date_only_rejects_trailing_garbage(raw):
    with pytest.raises(ValueError):
        parse_date_only(raw)


def test_record_category_filter_counts_only_that_category(db_session, linen_room):
    record = records_crud.create_record(
        db_session,
        area=linen_room["area"],
        user=linen_room["lead"],
        inventory_date="2024-05-31",
        quantities={},
        category_id=linen_room["dryer"].category_id,
    )

    assert [line.item_id for line in record.items] == [linen_room["dryer"].id]


def test_user_from_another_department_cannot_count(db_session, linen_room):
    factory = linen_room["factory"]
    outsider = factory.user("cook", department=factory.department("Kitchen"))

    with pytest.raises(AccessDenied):
        records_crud.create_record(
            db_session, area=linen_room["area"], user=outsider, inventory_date="2024-05-31", quantities={}
        )


def test_record_visibility_follows_role(db_session, linen_room):
    factory = linen_room["factory"]
    other = factory.user("night", department=linen_room["dept"])
    admin = factory.user("boss", role="admin", department=linen_room["dept"])
    mine = factory.record(linen_room["area"], {linen_room["towel"]: 1}, user=linen_room["lead"])
    factory.record(linen_room["area"], {linen_room["towel"]: 2}, user=other, day="2024-06-01")

    assert [row["id"] for row in records_crud.list_records(db_session, linen_room["lead"])] == [mine.id]
    assert len(records_crud.list_records(db_session, admin)) == 2
    with pytest.raises(AccessDenied):
        records_crud.record_detail(db_session, other, mine.id)

    detail = records_crud.record_detail(db_session, admin, mine.id)
    assert detail["lines"] == [
        {"item_id": linen_room["towel"].id, "item_name": "Towel", "category_name": "Linen", "qty": 1}
    ]


def test_only_admins_delete_records(db_session, linen_room):
    factory = linen_room["factory"]
    admin = factory.user("boss", role="admin", department=linen_room["dept"])
    record = factory.record(linen_room["area"], {linen_room["towel"]: 1}, user=linen_room["lead"])

    with pytest.raises(AccessDenied):
        records_crud.delete_record(db_session, linen_room["lead"], record)

    records_crud.delete_record(db_session, admin, record)
    assert db_session.execute(select(RecordItem)).first() is None


def test_spot_keeps_only_entered_items(db_session, linen_room):
    spot = spot_crud.create_spot(
        db_session,
        area=linen_room["area"],
        user=linen_room["lead"],
        inventory_date="2024-06-02",
        quantities={linen_room["towel"].id: "0", linen_room["sheet"].id: ""},
        note="  after inspection ",
    )

    assert [(line.item_id, line.qty) for line in spot.items] == [(linen_room["towel"].id, 0)]
    assert spot.note == "after inspection"
    listed = spot_crud.list_spots(db_session, linen_room["dept"].id)
    assert listed[0]["line_count"] == 1


def test_spot_needs_at_least_one_value(db_session, linen_room):
    with pytest.raises(InvalidInput):
        spot_crud.create_spot(
            db_session,
            area=linen_room["area"],
            user=linen_room["lead"],
            inventory_date="2024-06-02",
            quantities={linen_room["towel"].id: ""},
        )
    assert db_session.execute(select(SpotInventory)).first() is None


def test_spot_rejects_valuable_above_one(db_session, linen_room):
    with pytest.raises(QuantityError):
        spot_crud.create_spot(
            db_session,
            area=linen_room["area"],
            user=linen_room["lead"],
            inventory_date="2024-06-02",
            quantities={linen_room["dryer"].id: "3"},
        )


def test_area_summary_prefers_newer_spot_counts(db_session, linen_room):
    factory = linen_room["factory"]
    factory.record(linen_room["area"], {linen_room["towel"]: 5, linen_room["sheet"]: 8}, day="2024-05-01")
    spot_crud.create_spot(
        db_session,
        area=linen_room["area"],
        user=linen_room["lead"],
        inventory_date="2024-05-03",
        quantities={linen_room["towel"].id: 2},
        note="moved to floor 2",
    )

    summary = {line.item: line for line in matrix.area_summary(db_session, linen_room["area"])}

    assert (summary["Towel"].qty, summary["Towel"].source, summary["Towel"].note) == (2, "spot", "moved to floor 2")
    assert (summary["Sheet"].qty, summary["Sheet"].source) == (8, "record")
    assert (summary["Dryer"].qty, summary["Dryer"].source) == (0, "none")


def test_thresholds_upsert_and_skip_blanks(db_session, linen_room):
    factory = linen_room["factory"]
    admin = factory.user("boss", role="admin", department=linen_room["dept"])
    area = linen_room["area"]
    towel, sheet = linen_room["towel"], linen_room["sheet"]

    thresholds_crud.save_thresholds(db_session, admin, area, {towel.id: "10", sheet.id: "4"})
    rows = thresholds_crud.save_thresholds(db_session, admin, area, {towel.id: "12", sheet.id: ""})

    assert {row.item_id: row.expected_qty for row in rows} == {towel.id: 12, sheet.id: 4}
    assert len(db_session.execute(select(Threshold)).all()) == 2


def test_thresholds_reject_standard_users_and_bad_values(db_session, linen_room):
    factory = linen_room["factory"]
    admin = factory.user("boss", role="admin", department=linen_room["dept"])
    area = linen_room["area"]

    with pytest.raises(AccessDenied):
        thresholds_crud.save_thresholds(db_session, linen_room["lead"], area, {linen_room["towel"].id: 1})
    with pytest.raises(QuantityError):
        thresholds_crud.save_thresholds(db_session, admin, area, {linen_room["dryer"].id: 2})
    with pytest.raises(InvalidInput):
        thresholds_crud.save_thresholds(db_session, admin, area, {linen_room["towel"].id: ""})
