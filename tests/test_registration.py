"""Tests for attendee registration, capacity and CPF rules."""
import pytest

from guestlist.errors import (
    CapacityExceeded,
    DuplicateCpf,
    SectorNotFound,
    SupplierInactive,
    SupplierNotFound,
    ValidationError,
)
from guestlist.models.attendee import AttendeeStatus
from guestlist.models.status_change import LifecycleAction, StatusChange
from guestlist.services import attendee_service, photo_storage, supplier_service
from guestlist.services.attendee_service import normalize_cpf
from tests.conftest import (
    PHOTO,
    create_test_event,
    create_test_sector,
    create_test_supplier,
    register_test_attendee,
)


@pytest.fixture
def venue(db):
    event = create_test_event(db)
    vip = create_test_sector(db, event.event_id, "VIP")
    staff = create_test_sector(db, event.event_id, "Staff")
    return event, vip, staff


class TestRegister:
    """Field validation and the stored result."""

    def test_register_pending_with_stored_photo(self, db, ctx, venue, photo_dir):
        """A raw image payload is stored and replaced by its URL."""
        event, vip, _ = venue
        attendee = register_test_attendee(db, event.event_id, ctx, [vip.sector_id])

        assert attendee.status == AttendeeStatus.pending
        assert attendee.photo.startswith("/photos/11111111111-")
        assert attendee.photo.endswith(".jpg")
        assert (photo_dir / attendee.photo.rsplit("/", 1)[1]).exists()
        assert attendee.sector_ids == [vip.sector_id]

    def test_register_keeps_existing_url(self, db, ctx, venue):
        event, vip, _ = venue
        attendee = register_test_attendee(
            db, event.event_id, ctx, [vip.sector_id], photo="https://cdn.example.com/ana.jpg"
        )
        assert attendee.photo == "https://cdn.example.com/ana.jpg"

    def test_public_clients_may_not_hand_in_external_urls(self):
        with pytest.raises(ValidationError) as exc:
            photo_storage.require_upload("https://cdn.example.com/ana.jpg")
        assert exc.value.field == "photo"
        photo_storage.require_upload("/photos/11111111111-1.jpg")
        photo_storage.require_upload(PHOTO)
        photo_storage.require_upload(None)

    def test_register_writes_ledger_row(self, db, ctx, venue):
        event, vip, _ = venue
        attendee = register_test_attendee(db, event.event_id, ctx, [vip.sector_id])
        row = db.query(StatusChange).filter(StatusChange.attendee_id == attendee.attendee_id).one()
        assert row.action == LifecycleAction.register
        assert row.actor == "organizer:tester"
        assert row.to_status == AttendeeStatus.pending

    def test_cpf_with_punctuation_is_normalized(self, db, ctx, venue):
        event, vip, _ = venue
        attendee = register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="123.456.789-01")
        assert attendee.cpf == "12345678901"

    @pytest.mark.parametrize("cpf", ["", "1234567890", "123456789012", "1234567890a", None])
    def test_bad_cpf_is_validation_error(self, db, ctx, venue, cpf):
        """A CPF that is not exactly 11 digits fails regardless of other fields."""
        event, _, _ = venue
        with pytest.raises(ValidationError) as exc:
            attendee_service.register(db, event.event_id, {"name": "", "cpf": cpf}, ctx)
        assert exc.value.field == "cpf"

    def test_missing_fields(self, db, ctx, venue):
        event, vip, _ = venue
        with pytest.raises(ValidationError) as exc:
            register_test_attendee(db, event.event_id, ctx, [vip.sector_id], name="   ")
        assert exc.value.field == "name"

        with pytest.raises(ValidationError) as exc:
            register_test_attendee(db, event.event_id, ctx, [vip.sector_id], photo=None)
        assert exc.value.field == "photo"

        with pytest.raises(ValidationError) as exc:
            register_test_attendee(db, event.event_id, ctx, [])
        assert exc.value.field == "sector_ids"

    def test_unknown_sector(self, db, ctx, venue):
        event, _, _ = venue
        with pytest.raises(SectorNotFound):
            register_test_attendee(db, event.event_id, ctx, ["no-such-sector"])

    def test_unreadable_photo(self, db, ctx, venue):
        event, vip, _ = venue
        with pytest.raises(ValidationError) as exc:
            register_test_attendee(db, event.event_id, ctx, [vip.sector_id], photo="bm90IGFuIGltYWdl")
        assert exc.value.field == "photo"


class TestDuplicateCpf:
    def test_second_registration_same_event_fails(self, db, ctx, venue):
        """Register(cpf=X) twice for the same event → DuplicateCpf."""
        event, vip, _ = venue
        register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="11111111111")
        with pytest.raises(DuplicateCpf) as exc:
            register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="111.111.111-11", name="Other")
        assert exc.value.details["cpf"] == "11111111111"

    def test_same_cpf_in_another_event_is_allowed(self, db, ctx, venue):
        event, vip, _ = venue
        other = create_test_event(db, "Winter Gala")
        other_vip = create_test_sector(db, other.event_id, "VIP")
        register_test_attendee(db, event.event_id, ctx, [vip.sector_id])
        attendee = register_test_attendee(db, other.event_id, ctx, [other_vip.sector_id])
        assert attendee.event_id == other.event_id

    def test_search_by_cpf_spans_events(self, db, ctx, venue):
        event, vip, _ = venue
        other = create_test_event(db, "Winter Gala")
        other_vip = create_test_sector(db, other.event_id, "VIP")
        register_test_attendee(db, event.event_id, ctx, [vip.sector_id])
        register_test_attendee(db, other.event_id, ctx, [other_vip.sector_id])

        found = attendee_service.search_by_cpf(db, "111.111.111-11")
        assert {a.event_id for a in found} == {event.event_id, other.event_id}


class TestSupplierCapacity:
    def test_acme_scenario(self, db, ctx, venue):
        """Limit 2: A and B succeed, C fails with CapacityExceeded."""
        event, vip, _ = venue
        acme = create_test_supplier(db, event.event_id, [vip.sector_id], name="Acme", limit=2)

        a = register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="11111111111",
                                   supplier_id=acme.supplier_id)
        assert a.status == AttendeeStatus.pending
        register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="22222222222",
                               name="Bruno", supplier_id=acme.supplier_id)
        assert supplier_service.count_registrations(db, acme.supplier_id) == 2

        with pytest.raises(CapacityExceeded) as exc:
            register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="33333333333",
                                   name="Carla", supplier_id=acme.supplier_id)
        assert exc.value.limit == 2
        assert supplier_service.count_registrations(db, acme.supplier_id) == 2

    def test_lowered_limit_blocks_further_registrations(self, db, ctx, venue):
        event, vip, _ = venue
        acme = create_test_supplier(db, event.event_id, [vip.sector_id], limit=3)
        register_test_attendee(db, event.event_id, ctx, [vip.sector_id], supplier_id=acme.supplier_id)
        register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="22222222222",
                               supplier_id=acme.supplier_id)

        supplier_service.update_supplier(db, event.event_id, acme.supplier_id, {"registration_limit": 1})
        with pytest.raises(CapacityExceeded):
            register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="33333333333",
                                   supplier_id=acme.supplier_id)

    def test_inactive_supplier(self, db, ctx, venue):
        event, vip, _ = venue
        acme = create_test_supplier(db, event.event_id, [vip.sector_id])
        supplier_service.set_supplier_active(db, event.event_id, acme.supplier_id, False)
        with pytest.raises(SupplierInactive):
            register_test_attendee(db, event.event_id, ctx, [vip.sector_id], supplier_id=acme.supplier_id)

    def test_unknown_supplier(self, db, ctx, venue):
        event, vip, _ = venue
        with pytest.raises(SupplierNotFound):
            register_test_attendee(db, event.event_id, ctx, [vip.sector_id], supplier_id="missing")

    def test_sector_outside_supplier_permission(self, db, ctx, venue):
        event, vip, staff = venue
        acme = create_test_supplier(db, event.event_id, [vip.sector_id])
        with pytest.raises(ValidationError) as exc:
            register_test_attendee(db, event.event_id, ctx, [staff.sector_id], supplier_id=acme.supplier_id)
        assert exc.value.field == "sector_ids"

    def test_sub_company_pins_sector(self, db, ctx, venue):
        """With sub-companies the attendee gets the sub-company's sector."""
        event, vip, staff = venue
        acme = create_test_supplier(
            db, event.event_id, [vip.sector_id, staff.sector_id],
            sub_companies=[{"name": "Acme Bar", "sector_id": staff.sector_id}],
        )
        attendee = register_test_attendee(
            db, event.event_id, ctx, [vip.sector_id], supplier_id=acme.supplier_id, sub_company="Acme Bar"
        )
        assert attendee.sector_ids == [staff.sector_id]
        assert attendee.sub_company == "Acme Bar"

        with pytest.raises(ValidationError) as exc:
            register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="22222222222",
                                   supplier_id=acme.supplier_id, sub_company="Unknown")
        assert exc.value.field == "sub_company"


class TestImportRows:
    def test_rows_by_id_and_label_with_errors(self, db, ctx, venue):
        event, vip, staff = venue
        register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="99999999999")

        result = attendee_service.import_rows(db, event.event_id, [
            {"name": "Ana", "cpf": "11111111111", "sector": vip.sector_id},
            {"name": "Bruno", "cpf": "222.222.222-22", "sector": "staff"},
            {"name": "Carla", "cpf": "123", "sector": "VIP"},
            {"name": "Davi", "cpf": "44444444444", "sector": "Backstage"},
            {"name": "Eva", "cpf": "99999999999", "sector": "VIP"},
        ], ctx)

        assert result["success_count"] == 2
        assert [e["row"] for e in result["errors"]] == [3, 4, 5]
        assert "Backstage" in result["errors"][1]["message"]
        imported = attendee_service.list_attendees(db, event.event_id, search="Bruno")
        assert imported[0].sector_ids == [staff.sector_id]
        assert imported[0].photo is None


class TestListAndSearch:
    def test_accent_insensitive_name_search(self, db, ctx, venue):
        event, vip, _ = venue
        register_test_attendee(db, event.event_id, ctx, [vip.sector_id], name="João Conceição")
        register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="22222222222", name="Maria")

        found = attendee_service.list_attendees(db, event.event_id, search="joao conceicao")
        assert [a.name for a in found] == ["João Conceição"]

    def test_search_by_cpf_fragment_and_status_filter(self, db, ctx, venue):
        event, vip, _ = venue
        register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="12345678901")
        register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf="22222222222", name="Maria")

        assert len(attendee_service.list_attendees(db, event.event_id, search="345.678")) == 1
        assert len(attendee_service.list_attendees(db, event.event_id, status=AttendeeStatus.pending)) == 2
        assert attendee_service.list_attendees(db, event.event_id, status=AttendeeStatus.blocked) == []

    def test_normalize_cpf(self):
        assert normalize_cpf(" 111.222.333-44 ") == "11122233344"
        with pytest.raises(ValidationError):
            normalize_cpf("111.222.333-4")
