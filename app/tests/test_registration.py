from datetime import datetime, timedelta

import pytest

from app.core.exceptions import AlreadyRegisteredError, NotFoundError, RegistrationClosedError, ValidationError
from app.models import Participant, ProgramStructure, ProgramType
from app.schemas.participant import RegistrationRequest
from app.schemas.program import FormField, ProgramCreate, ProgramEdit
from app.services import registration
from app.services.notifications import REGISTRATION_TICKET, render_ticket
from app.services.programs import create_program, update_program


def _open_program(db, department, **extra):
    return create_program(db, ProgramCreate(
        name="AI Bootcamp", type=ProgramType.TRAINING, department_id=department.id,
        date=datetime(2030, 6, 1, 9, 0), venue="Innovation Hub", **extra
    ))


def _request(**overrides):
    values = {"full_name": "Ada Lovelace", "email": "ada@example.com", "consent": True}
    values.update(overrides)
    return RegistrationRequest(**values)


# Test the happy path end to end
def test_register_links_participant_and_notifies(test_db, department, notifier):
    program = _open_program(test_db, department)

    participant = registration.register(test_db, program.link_slug, _request(), notifier=notifier)

    test_db.refresh(program)
    assert [p.id for p in program.participants] == [participant.id]
    assert participant.consent is True
    recipient, kind, data = notifier.sent[0]
    assert recipient == "ada@example.com"
    assert kind == REGISTRATION_TICKET
    assert data["program_name"] == "AI Bootcamp"
    assert data["venue"] == "Innovation Hub"
    assert data["date"] == "Saturday, 01 Jun 2030"


def test_second_registration_is_rejected(test_db, department):
    program = _open_program(test_db, department)
    registration.register(test_db, program.link_slug, _request())

    with pytest.raises(AlreadyRegisteredError) as exc:
        registration.register(test_db, program.link_slug, _request(full_name="Mallory", phone="0999"))
    assert exc.value.message == "You are already registered for this program!"

    # A rejected attempt leaves the stored record as it was
    test_db.expire_all()
    stored = test_db.query(Participant).one()
    assert stored.full_name == "Ada Lovelace"
    assert stored.phone is None


def test_same_person_across_programs_is_one_participant(test_db, department):
    first = _open_program(test_db, department)
    second = _open_program(test_db, department)

    a = registration.register(test_db, first.link_slug, _request())
    b = registration.register(test_db, second.link_slug, _request(email="ADA@example.com"))

    assert a.id == b.id
    assert sorted(p.id for p in b.programs) == sorted([first.id, second.id])


def test_unknown_reference_is_not_found(test_db, department):
    with pytest.raises(NotFoundError):
        registration.register(test_db, "no-such-program", _request())


# Slug first, numeric id as a fallback
def test_program_ref_falls_back_to_id(test_db, department):
    program = _open_program(test_db, department)
    assert registration.resolve_program_ref(test_db, program.link_slug).id == program.id
    assert registration.resolve_program_ref(test_db, str(program.id)).id == program.id

    public = registration.get_public_program(test_db, str(program.id))
    assert public.department_name == "Innovation"
    assert public.link_slug == program.link_slug


def test_closed_program_rejects_registration(test_db, department):
    program = _open_program(test_db, department)
    update_program(test_db, program.id, ProgramEdit(registration_open=False))

    with pytest.raises(RegistrationClosedError) as exc:
        registration.register(test_db, program.link_slug, _request())
    assert exc.value.reason == "closed"
    assert test_db.query(Participant).count() == 0


def test_deadline_passed_rejects_registration(test_db, department):
    deadline = datetime(2030, 5, 1, 12, 0)
    program = _open_program(test_db, department, registration_deadline=deadline)

    with pytest.raises(RegistrationClosedError) as exc:
        registration.register(test_db, program.link_slug, _request(), now=deadline)
    assert exc.value.reason == "deadline"
    assert exc.value.deadline == deadline
    assert "01 May 2030" in exc.value.message

    participant = registration.register(
        test_db, program.link_slug, _request(), now=deadline - timedelta(minutes=1)
    )
    assert participant.id is not None


def test_consent_is_required(test_db, department):
    program = _open_program(test_db, department)
    with pytest.raises(ValidationError):
        registration.register(test_db, program.link_slug, _request(consent=False))


def test_contact_method_is_required(test_db, department):
    program = _open_program(test_db, department)
    with pytest.raises(ValidationError) as exc:
        registration.register(test_db, program.link_slug, _request(email=None))
    assert exc.value.message == "contact method required"


# Form answers follow the program's field definitions
def test_form_answers_are_validated_and_stored(test_db, department):
    program = _open_program(test_db, department, form_fields=[
        FormField(label="Track", field_type="select", required=True, options=["AI", "Web"]),
        FormField(label="Years of experience", field_type="number"),
        FormField(label="Code of conduct", field_type="checkbox", required=True),
    ])

    with pytest.raises(ValidationError) as exc:
        registration.register(test_db, program.link_slug, _request(answers={"Track": "Mobile"}))
    assert "Track must be one of: AI, Web" in exc.value.message
    assert "Code of conduct is required" in exc.value.message

    participant = registration.register(test_db, program.link_slug, _request(answers={
        "Track": "AI", "Years of experience": "3", "Code of conduct": True, "Unrelated": "x"
    }))
    assert participant.data == {"Track": "AI", "Years of experience": "3", "Code of conduct": True}


def test_validate_form_answers_types():
    fields = [
        {"label": "Age", "field_type": "number", "required": False},
        {"label": "Start", "field_type": "date", "required": False},
        {"label": "Bio", "field_type": "textarea", "required": False},
        {"label": "Newsletter", "field_type": "checkbox", "required": False},
    ]
    assert registration.validate_form_answers(fields, {"Age": 30, "Start": "2025-01-31", "Newsletter": False}) == {
        "Age": 30, "Start": "2025-01-31", "Newsletter": False
    }
    with pytest.raises(ValidationError) as exc:
        registration.validate_form_answers(fields, {"Age": "thirty", "Start": "31/01/2025", "Bio": 5})
    assert "Age must be a number" in exc.value.message
    assert "Start must be a date (YYYY-MM-DD)" in exc.value.message
    assert "Bio must be text" in exc.value.message


# A failing notification sink never fails the registration
def test_notification_failure_is_swallowed(test_db, department, failing_notifier):
    program = _open_program(test_db, department)
    participant = registration.register(
        test_db, program.link_slug, _request(), notifier=failing_notifier
    )
    test_db.refresh(program)
    assert [p.id for p in program.participants] == [participant.id]


def test_phone_only_registrant_gets_no_notification(test_db, department, notifier):
    program = _open_program(test_db, department)
    registration.register(test_db, program.link_slug, _request(email=None, phone="0801"), notifier=notifier)
    assert notifier.sent == []


def test_render_ticket_defaults():
    subject, text, html = render_ticket({"program_name": "AI Bootcamp", "full_name": "Ada", "participant_id": 7})
    assert subject == "Your Ticket: AI Bootcamp"
    assert "Date To Be Announced" in text
    assert "Venue TBD" in text
    assert "Ada (Individual)" in html


# Blueprints are templates and never take registrations
def test_blueprint_rejects_registration_by_id(test_db, department):
    blueprint = create_program(test_db, ProgramCreate(
        name="Startup Bootcamp", type=ProgramType.TRAINING, department_id=department.id,
        structure=ProgramStructure.NUMERICAL
    ))
    assert blueprint.registration_open is False

    with pytest.raises(RegistrationClosedError) as exc:
        registration.register(test_db, str(blueprint.id), _request())
    assert exc.value.reason == "closed"

    update_program(test_db, blueprint.id, ProgramEdit(registration_open=True))
    with pytest.raises(RegistrationClosedError):
        registration.register(test_db, str(blueprint.id), _request())
    assert test_db.query(Participant).count() == 0
