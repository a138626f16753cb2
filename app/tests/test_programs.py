import gc
import re
import threading
from datetime import datetime

import pytest
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.database import build_engine
from app.models import ActivityLog, Base, Department, Program, ProgramStatus, ProgramStructure, ProgramType
from app.schemas.program import FormField, ProgramCreate, ProgramEdit
from app.services import programs
from app.services.slugs import SLUG_TOKEN_LENGTH, create_slug, slugify


def _blueprint(db, department, structure=ProgramStructure.NUMERICAL, **extra):
    return programs.create_program(db, ProgramCreate(
        name="Startup Bootcamp", type=ProgramType.TRAINING, structure=structure,
        department_id=department.id, **extra
    ))


# Slug helpers
def test_slugify_collapses_and_strips():
    assert slugify("  Hackathon 2025!! ") == "hackathon-2025"
    assert slugify("C++ / Rust -- Intro") == "c-rust-intro"
    assert slugify("***") == ""


def test_create_slug_shape():
    slug = create_slug("Hackathon 2025", "Batch 3")
    assert re.fullmatch(rf"hackathon-2025-batch-3-[a-z0-9]{{{SLUG_TOKEN_LENGTH}}}", slug)
    assert re.fullmatch(rf"hackathon-[a-z0-9]{{{SLUG_TOKEN_LENGTH}}}", create_slug("Hackathon"))


# Same name twice still gives two distinct, stored slugs
def test_same_name_programs_get_distinct_slugs(test_db, department):
    payload = ProgramCreate(name="Hackathon 2025", type=ProgramType.EVENT, department_id=department.id)
    first = programs.create_program(test_db, payload)
    second = programs.create_program(test_db, payload)

    assert first.link_slug and second.link_slug
    assert first.link_slug != second.link_slug
    assert first.link_slug.startswith("hackathon-2025-")
    assert first.date is not None


def test_slug_collision_is_regenerated(test_db, department, monkeypatch):
    taken = programs.create_program(test_db, ProgramCreate(
        name="Hackathon", type=ProgramType.EVENT, department_id=department.id
    ))
    slugs = iter([taken.link_slug, "hackathon-fresh00000"])
    monkeypatch.setattr(programs, "create_slug", lambda name, suffix=None: next(slugs))

    program = programs.create_program(test_db, ProgramCreate(
        name="Hackathon", type=ProgramType.EVENT, department_id=department.id
    ))
    assert program.link_slug == "hackathon-fresh00000"


# Blueprints carry neither a date nor a slug
def test_blueprint_has_no_slug_or_date(test_db, department):
    blueprint = _blueprint(test_db, department, date=datetime(2025, 5, 1))
    assert blueprint.link_slug is None
    assert blueprint.date is None
    assert blueprint.is_blueprint
    assert blueprint.registration_open is False


def test_initial_status_depends_on_creator(test_db, department, super_admin, staff_user):
    payload = ProgramCreate(name="Demo Day", type=ProgramType.PITCH_IT, department_id=department.id)

    approved = programs.create_program(test_db, payload, super_admin)
    pending = programs.create_program(test_db, payload, staff_user)

    assert approved.status == ProgramStatus.APPROVED
    assert approved.approved_at is not None
    assert pending.status == ProgramStatus.PENDING
    assert pending.approved_at is None
    assert test_db.query(ActivityLog).filter(ActivityLog.action == "CREATE_PROGRAM").count() == 2


def test_create_program_unknown_department(test_db):
    with pytest.raises(NotFoundError):
        programs.create_program(test_db, ProgramCreate(name="Orphan", type=ProgramType.EVENT, department_id=999))


# Numerical instances are numbered 1, 2, 3 whatever their suffix
def test_numerical_instances_are_batch_numbered(test_db, department):
    blueprint = _blueprint(test_db, department, venue="Hub A", cost=5000)

    first = programs.create_instance(test_db, blueprint.id, ProgramCreate())
    second = programs.create_instance(test_db, blueprint.id, ProgramCreate(custom_suffix="Lagos Edition"))
    third = programs.create_instance(test_db, blueprint.id, ProgramCreate(venue="Hub B"))

    assert [first.batch_number, second.batch_number, third.batch_number] == [1, 2, 3]
    assert first.name == "Startup Bootcamp - Batch 1"
    assert second.name == "Startup Bootcamp - Lagos Edition"
    assert second.custom_suffix == "Lagos Edition"
    assert third.name == "Startup Bootcamp - Batch 3"
    assert first.venue == "Hub A" and first.cost == 5000
    assert third.venue == "Hub B"
    assert all(p.structure == ProgramStructure.NUMERICAL for p in (first, second, third))
    assert all(p.link_slug and p.date for p in (first, second, third))
    assert first.link_slug.startswith("startup-bootcamp-batch-1-")


def test_create_program_with_parent_id_derives_instance(test_db, department):
    blueprint = _blueprint(test_db, department)
    instance = programs.create_program(test_db, ProgramCreate(parent_id=blueprint.id))
    assert instance.parent_program_id == blueprint.id
    assert instance.batch_number == 1


def test_recurring_instance_uses_date_label(test_db, department):
    blueprint = _blueprint(test_db, department, structure=ProgramStructure.RECURRING)

    dated = programs.create_instance(test_db, blueprint.id, ProgramCreate(date=datetime(2025, 3, 7, 10, 0)))
    custom = programs.create_instance(test_db, blueprint.id, ProgramCreate(custom_suffix="Spring"))

    assert dated.batch_number is None
    assert dated.version_label == "07 Mar 2025"
    assert dated.name == "Startup Bootcamp - 07 Mar 2025"
    assert custom.version_label == "Spring"
    assert custom.link_slug.startswith("startup-bootcamp-spring-")


def test_instance_inherits_form_fields_when_none_given(test_db, department):
    fields = [FormField(label="Track", field_type="select", required=True, options=["AI", "Web"])]
    blueprint = _blueprint(test_db, department, form_fields=fields)
    instance = programs.create_instance(test_db, blueprint.id, ProgramCreate())
    assert instance.form_fields == [{"label": "Track", "field_type": "select", "required": True, "options": ["AI", "Web"]}]


def test_instance_requires_existing_blueprint(test_db, department):
    with pytest.raises(NotFoundError):
        programs.create_instance(test_db, 12345, ProgramCreate())

    one_time = programs.create_program(test_db, ProgramCreate(
        name="Town Hall", type=ProgramType.EVENT, department_id=department.id
    ))
    with pytest.raises(ValidationError):
        programs.create_instance(test_db, one_time.id, ProgramCreate())


def test_no_instance_of_an_instance(test_db, department):
    blueprint = _blueprint(test_db, department)
    instance = programs.create_instance(test_db, blueprint.id, ProgramCreate())
    with pytest.raises(ValidationError):
        programs.create_instance(test_db, instance.id, ProgramCreate())


# Concurrent instance creation never reuses a batch number
def test_concurrent_instances_get_unique_batch_numbers(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'batches.db'}")
    Base.metadata.create_all(bind=engine)
    with Session(engine) as db:
        department = Department(name="Training")
        db.add(department)
        db.commit()
        blueprint = _blueprint(db, department)
        blueprint_id = blueprint.id

    results, errors = [], []

    def worker():
        with Session(engine) as db:
            try:
                results.append(programs.create_instance(db, blueprint_id, ProgramCreate()).batch_number)
            except Exception as e:
                errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    engine.dispose()

    assert errors == []
    assert sorted(results) == [1, 2, 3, 4, 5, 6]


def test_update_program_registration_settings(test_db, department):
    program = programs.create_program(test_db, ProgramCreate(
        name="Data Clinic", type=ProgramType.TRAINING, department_id=department.id,
        registration_deadline=datetime(2030, 1, 1)
    ))

    updated = programs.update_program(test_db, program.id, ProgramEdit(
        registration_open=False, registration_deadline=None, participants_count=40
    ))

    assert updated.registration_open is False
    assert updated.registration_deadline is None
    assert updated.participants_count == 40
    assert updated.name == "Data Clinic"


# Required columns cannot be nulled through an edit
def test_update_program_rejects_clearing_required_fields(test_db, department):
    program = programs.create_program(test_db, ProgramCreate(
        name="Data Clinic", type=ProgramType.TRAINING, department_id=department.id, cost=500
    ))

    with pytest.raises(ValidationError) as exc:
        programs.update_program(test_db, program.id, ProgramEdit(registration_open=None, name=None, cost=None))
    assert exc.value.message == "Cannot clear required fields: cost, name, registration_open"

    test_db.expire_all()
    stored = test_db.get(Program, program.id)
    assert stored.name == "Data Clinic"
    assert stored.cost == 500
    assert stored.registration_open is True

    cleared = programs.update_program(test_db, program.id, ProgramEdit(form_fields=None, venue=None))
    assert cleared.form_fields == []
    assert cleared.venue is None


def test_parent_locks_are_released_with_their_holders(test_db, department):
    lock = programs._parent_lock(4242)
    assert programs._parent_lock(4242) is lock
    del lock
    gc.collect()
    assert 4242 not in programs._parent_locks

    blueprint = _blueprint(test_db, department)
    programs.create_instance(test_db, blueprint.id, ProgramCreate())
    gc.collect()
    assert blueprint.id not in programs._parent_locks


def test_program_detail_lists_children_for_blueprints(test_db, department):
    blueprint = _blueprint(test_db, department)
    programs.create_instance(test_db, blueprint.id, ProgramCreate())
    latest = programs.create_instance(test_db, blueprint.id, ProgramCreate())

    program, children = programs.get_program_detail(test_db, blueprint.id)
    assert program.id == blueprint.id
    assert [c.id for c in children][0] == latest.id
    assert len(children) == 2

    assert [p.id for p in programs.list_programs(test_db, department.id, parent_only=True)] == [blueprint.id]
    assert len(programs.list_programs(test_db, department.id)) == 3
    assert test_db.get(Program, latest.id).parent.id == blueprint.id
