"""
Project mutation tests.

Guards against:
1. Changes committed without their audit event (or the reverse)
2. No-op updates filling the feed
3. Member replacement rewriting rows that did not change
4. Deletion wiping its own audit trail
"""
import json

import pytest

from notscared import projects
from notscared.config_values import PROJECT_STAGE, create_config_value, seed_default_config_values
from notscared.events import list_events
from notscared.exceptions import EventValidationError, ProjectConflict, ProjectError
from notscared.models import Event, Project, ProjectMember


@pytest.fixture
def actor(make_user):
    return make_user("ada")


@pytest.fixture
def project(db, actor):
    return projects.create_project(db, actor, "Apollo")


def events_of(db, project_id=None):
    query = db.query(Event).order_by(Event.created_at)
    if project_id is not None:
        query = query.filter(Event.project_id == project_id)
    return [(e.type, json.loads(e.metadata_json)) for e in query.all()]


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def test_create_project_logs_created_event(db, actor, project):
    assert project.stage == "idea"
    assert project.priority is None
    assert project.created_by == actor.id
    assert events_of(db, project.id) == [("project.created", {})]
    assert list_events(db, project_id=project.id)[0].description == "created this project"


def test_create_project_with_members(db, actor, make_user):
    bob = make_user("bob")
    created = projects.create_project(db, actor, "Gemini", member_ids=[bob.id, bob.id, actor.id])

    members = projects.get_project_members(db, created)
    assert [u.username for u in members] == ["ada", "bob"]


@pytest.mark.parametrize("name", ["", "   ", None])
def test_create_project_requires_name(db, actor, name):
    with pytest.raises(ProjectError) as exc:
        projects.create_project(db, actor, name)
    assert exc.value.message == "Name is required"
    assert db.query(Event).count() == 0


def test_create_project_rejects_duplicate_name(db, actor, project):
    with pytest.raises(ProjectConflict):
        projects.create_project(db, actor, " Apollo ")
    assert db.query(Project).count() == 1


def test_create_project_rejects_unknown_member(db, actor):
    with pytest.raises(ProjectError):
        projects.create_project(db, actor, "Gemini", member_ids=["ghost"])
    assert projects.get_project_by_name(db, "Gemini") is None


# ---------------------------------------------------------------------------
# Field changes
# ---------------------------------------------------------------------------

def test_rename_logs_from_and_to(db, actor, project):
    projects.rename_project(db, actor, project, "Artemis")

    assert projects.get_project_by_name(db, "Artemis").id == project.id
    assert events_of(db, project.id)[-1] == ("project.name_changed", {"from": "Apollo", "to": "Artemis"})


def test_rename_to_taken_name_conflicts(db, actor, project):
    projects.create_project(db, actor, "Gemini")
    with pytest.raises(ProjectConflict):
        projects.rename_project(db, actor, project, "Gemini")


def test_setting_current_values_logs_nothing(db, actor, project):
    before = events_of(db)

    projects.rename_project(db, actor, project, "Apollo")
    projects.change_stage(db, actor, project, "idea")
    projects.change_priority(db, actor, project, "")
    projects.update_status(db, actor, project, None)
    projects.update_description(db, actor, project, "")
    assert projects.set_members(db, actor, project, []) == ([], [])

    assert events_of(db) == before


def test_stage_change_logs_event(db, actor, project):
    projects.change_stage(db, actor, project, "active")

    assert project.stage == "active"
    entry = list_events(db, project_id=project.id)[0]
    assert entry.description == "changed stage from idea to active"


def test_stage_must_be_configured_value(db, actor, project):
    seed_default_config_values(db)

    with pytest.raises(ProjectError) as exc:
        projects.change_stage(db, actor, project, "shipping")
    assert exc.value.message == "Unknown stage: shipping"

    create_config_value(db, PROJECT_STAGE, "shipping", "Shipping")
    projects.change_stage(db, actor, project, "shipping")
    assert project.stage == "shipping"


def test_priority_set_change_and_clear(db, actor, project):
    projects.change_priority(db, actor, project, "high")
    projects.change_priority(db, actor, project, "low")
    projects.change_priority(db, actor, project, None)

    descriptions = [e.description for e in list_events(db, project_id=project.id)]
    assert set(descriptions) == {
        "set priority to high",
        "changed priority from high to low",
        "removed priority",
        "created this project",
    }
    assert events_of(db, project.id)[-1] == ("project.priority_changed", {"from": "low", "to": None})


def test_status_and_description_do_not_log_text(db, actor, project):
    projects.update_status(db, actor, project, "Blocked on review")
    projects.update_description(db, actor, project, "Moon mission")

    assert project.state == "Blocked on review"
    assert project.description == "Moon mission"
    assert events_of(db, project.id)[1:] == [
        ("project.status_updated", {}),
        ("project.description_updated", {}),
    ]


def test_failed_event_rolls_back_change(db, actor, project, monkeypatch):
    def broken_log_event(*args, **kwargs):
        raise EventValidationError("project.name_changed", [{"msg": "broken"}])

    monkeypatch.setattr("notscared.projects.log_event", broken_log_event)

    with pytest.raises(EventValidationError):
        projects.rename_project(db, actor, project, "Artemis")

    assert project.name == "Apollo"
    assert projects.get_project_by_name(db, "Artemis") is None
    assert len(events_of(db, project.id)) == 1


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

def test_set_members_applies_difference(db, actor, project, make_user):
    bob = make_user("bob")
    cy = make_user("cy")

    assert projects.set_members(db, actor, project, [actor.id, bob.id]) == ([actor.id, bob.id], [])
    kept_row = (
        db.query(ProjectMember)
        .filter(ProjectMember.project_id == project.id, ProjectMember.user_id == actor.id)
        .one()
    )
    kept_row_id = kept_row.id

    added, removed = projects.set_members(db, actor, project, [actor.id, cy.id])
    assert (added, removed) == ([cy.id], [bob.id])

    # Unchanged memberships keep their row
    assert db.query(ProjectMember).filter(ProjectMember.user_id == actor.id).one().id == kept_row_id
    assert [u.username for u in projects.get_project_members(db, project)] == ["ada", "cy"]

    entry = list_events(db, project_id=project.id)[0]
    assert entry.type == "project.members_changed"
    assert entry.description == "added 1 member(s) and removed 1 member(s)"


def test_set_members_rejects_unknown_user(db, actor, project):
    with pytest.raises(ProjectError):
        projects.set_members(db, actor, project, ["ghost"])
    assert projects.get_project_members(db, project) == []


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------

def test_delete_project_keeps_deletion_event(db, actor, project, make_user):
    bob = make_user("bob")
    projects.set_members(db, actor, project, [bob.id])
    project_id = project.id

    projects.delete_project(db, actor, project)

    assert projects.get_project(db, project_id) is None
    assert db.query(ProjectMember).filter(ProjectMember.project_id == project_id).count() == 0
    assert events_of(db, project_id) == []

    feed = list_events(db)
    assert [(e.type, e.description) for e in feed] == [("project.deleted", 'deleted project "Apollo"')]
    assert feed[0].actor_username == "ada"


# ---------------------------------------------------------------------------
# Multi-field updates
# ---------------------------------------------------------------------------

def test_update_project_applies_fields_in_order(db, actor, project):
    changed = projects.update_project(db, actor, project, {
        "description": "Moon mission", "name": "Artemis", "stage": "active", "priority": None,
    })

    assert changed == ["name", "stage", "description"]
    assert {t for t, _ in events_of(db, project.id)} == {
        "project.created",
        "project.name_changed",
        "project.stage_changed",
        "project.description_updated",
    }


def test_update_project_rejected_field_keeps_nothing(db, actor, project):
    seed_default_config_values(db)

    with pytest.raises(ProjectError) as exc:
        projects.update_project(db, actor, project, {"name": "Artemis", "stage": "bogus"})
    assert exc.value.message == "Unknown stage: bogus"

    assert project.name == "Apollo"
    assert projects.get_project_by_name(db, "Artemis") is None
    assert events_of(db, project.id) == [("project.created", {})]


def test_update_project_rejects_unknown_field(db, actor, project):
    with pytest.raises(ProjectError):
        projects.update_project(db, actor, project, {"owner": "bob"})
