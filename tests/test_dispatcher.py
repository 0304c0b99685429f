import pytest
from sqlalchemy.exc import SQLAlchemyError

from database import crud
from database.models import FulfillmentRecord, Project, Template, User
from synthesis.artifact_store import ArtifactStore
from synthesis.dispatcher import (
    FulfillmentDispatcher,
    OutcomeStatus,
    ToolKind,
    classify_outcome,
)
from synthesis.errors import InsufficientCreditsError, StoreError
from synthesis.ledger import CreditLedger
from synthesis.schemas import ChatTurn, ToolOutcome
from synthesis.templates import DEFAULT_TEMPLATE_ID, TemplateCatalog


def turn(text="", *outcomes):
    return ChatTurn(response_text=text, tool_outcomes=list(outcomes))


def outcome(tool_name, args=None, success=True, tool_call_id=None):
    return ToolOutcome(tool_name=tool_name, args=args or {}, success=success, tool_call_id=tool_call_id)


def credits(db, user_id):
    db.expire_all()
    return db.query(User).filter(User.id == user_id).one().credits


def usage(db, template_id):
    db.expire_all()
    return db.query(Template).filter(Template.id == template_id).one().usage_count


class FailingStore(ArtifactStore):
    def store(self, data, file_name):
        raise StoreError("disk full")


class RacedLedger(CreditLedger):
    """Balance looks fine up front, but the debit loses a race."""

    def debit(self, user_id, amount=1):
        raise InsufficientCreditsError(f"User '{user_id}' has fewer than {amount} credit(s)")


class BrokenUsageCatalog(TemplateCatalog):
    def increment_usage(self, template_id):
        raise SQLAlchemyError("usage_count update failed")


@pytest.fixture
def dispatcher(db, store, seeded_templates):
    return FulfillmentDispatcher(db, store)


@pytest.fixture
def generated(db, dispatcher, user, generate_args):
    """Scenario A already run: one project for the user."""
    result = dispatcher.dispatch(turn("Done!", outcome("generateProject", generate_args)), user.id)
    assert result.events[0].fulfilled, result.events[0].error
    return db.query(Project).one()


@pytest.mark.parametrize("name, kind", [
    ("generateProject", ToolKind.GENERATE_PROJECT),
    ("generate-project", ToolKind.GENERATE_PROJECT),
    ("edit_project", ToolKind.EDIT_PROJECT),
    ("regenerateProject", ToolKind.REGENERATE_PROJECT),
    ("showTemplates", ToolKind.SHOW_TEMPLATES),
    ("generate-pdf", ToolKind.GENERATE_PDF),
    ("generatePDF", ToolKind.GENERATE_PDF),
    ("pickProject", ToolKind.UNKNOWN),
    ("", ToolKind.UNKNOWN),
])
def test_classify_outcome(name, kind):
    assert classify_outcome(name) == kind


class TestGenerate:
    def test_scenario_generate_with_default_template(self, db, dispatcher, store, user, generate_args):
        result = dispatcher.dispatch(
            turn("Your project is ready.", outcome("generateProject", generate_args)), user.id
        )
        event = result.events[0]
        assert event.status == OutcomeStatus.FULFILLED
        assert event.debited
        assert result.credits_debited == 1
        assert result.template_ids == [DEFAULT_TEMPLATE_ID]

        project = db.query(Project).one()
        assert project.title == "Bilharzia Prevention"
        assert project.user_id == user.id
        assert project.template_id == DEFAULT_TEMPLATE_ID
        assert project.file_name.startswith("Bilharzia_Prevention_")
        assert project.download_url == f"/api/files/{project.file_name}"
        assert store.exists(project.file_name)
        assert project.file_size == store.size(project.file_name)
        assert project.content["stage2"]["relatedIdeas"][0]["title"] == "Mass drug administration"

        assert credits(db, user.id) == 4
        assert usage(db, DEFAULT_TEMPLATE_ID) == 1

        response = result.response
        assert response.message_type == "normal-with-project"
        assert response.project.id == project.id
        assert response.project.name == project.file_name
        assert response.project.title == "Bilharzia Prevention"
        assert response.project.size.endswith("KB")

    def test_without_text(self, dispatcher, user, generate_args):
        result = dispatcher.dispatch(turn("", outcome("generate-project", generate_args)), user.id)
        assert result.response.message_type == "project"

    def test_chosen_template_is_used_and_counted(self, db, dispatcher, user, generate_args):
        generate_args["templateId"] = "tpl_bold_academic"
        dispatcher.dispatch(turn("ok", outcome("generateProject", generate_args)), user.id)
        assert db.query(Project).one().template_id == "tpl_bold_academic"
        assert usage(db, "tpl_bold_academic") == 1
        assert usage(db, DEFAULT_TEMPLATE_ID) == 0

    def test_invalid_rubric_has_no_effect(self, db, dispatcher, store, user, generate_args):
        generate_args["stage2"]["relatedIdeas"].pop()
        result = dispatcher.dispatch(turn("", outcome("generateProject", generate_args)), user.id)
        assert result.events[0].failed
        assert "stage2" in result.events[0].error
        assert db.query(Project).count() == 0
        assert credits(db, user.id) == 5
        assert not store.base_dir.exists() or not any(store.base_dir.iterdir())
        assert result.response.message_type == "normal"

    def test_missing_title_is_invalid_arguments(self, db, dispatcher, user, generate_args):
        del generate_args["title"]
        result = dispatcher.dispatch(turn("", outcome("generateProject", generate_args)), user.id)
        assert result.events[0].failed
        assert credits(db, user.id) == 5

    def test_store_failure_leaves_balance_unchanged(self, db, seeded_templates, tmp_path, user, generate_args):
        dispatcher = FulfillmentDispatcher(db, FailingStore(tmp_path))
        result = dispatcher.dispatch(turn("Here you go", outcome("generateProject", generate_args)), user.id)
        assert result.events[0].failed
        assert "disk full" in result.events[0].error
        assert credits(db, user.id) == 5
        assert db.query(Project).count() == 0
        assert usage(db, DEFAULT_TEMPLATE_ID) == 0
        assert result.response.message_type == "normal"
        assert result.response.text == "Here you go"

    def test_debit_failure_after_store_rolls_back(self, db, seeded_templates, store, user, generate_args):
        dispatcher = FulfillmentDispatcher(db, store, ledger=RacedLedger(db))
        call = outcome("generateProject", generate_args, tool_call_id="call_raced")
        result = dispatcher.dispatch(turn("Here you go", call), user.id)
        assert result.events[0].failed
        assert not result.events[0].debited
        assert db.query(Project).count() == 0
        assert db.query(FulfillmentRecord).count() == 0
        assert credits(db, user.id) == 5
        assert usage(db, DEFAULT_TEMPLATE_ID) == 0
        assert result.response.message_type == "normal"

    def test_usage_failure_after_store_rolls_back(self, db, seeded_templates, store, user, generate_args):
        dispatcher = FulfillmentDispatcher(db, store, catalog=BrokenUsageCatalog(db))
        result = dispatcher.dispatch(turn("", outcome("generateProject", generate_args)), user.id)
        assert result.events[0].failed
        assert "usage_count update failed" in result.events[0].error
        assert db.query(Project).count() == 0
        assert credits(db, user.id) == 5
        assert usage(db, DEFAULT_TEMPLATE_ID) == 0

    def test_insufficient_credits(self, db, dispatcher, store, broke_user, generate_args):
        result = dispatcher.dispatch(turn("", outcome("generateProject", generate_args)), broke_user.id)
        assert result.events[0].failed
        assert credits(db, broke_user.id) == 0
        assert db.query(Project).count() == 0
        assert not store.base_dir.exists() or not any(store.base_dir.iterdir())

    def test_failed_tool_call_is_skipped(self, db, dispatcher, user, generate_args):
        result = dispatcher.dispatch(
            turn("Sorry", outcome("generateProject", generate_args, success=False)), user.id
        )
        assert result.events[0].status == OutcomeStatus.SKIPPED
        assert credits(db, user.id) == 5

    def test_one_failure_does_not_stop_the_turn(self, db, dispatcher, user, generate_args):
        bad = dict(generate_args, stage3={"possibleSolutions": []})
        result = dispatcher.dispatch(
            turn("", outcome("generateProject", bad), outcome("generateProject", generate_args)), user.id
        )
        assert [e.status for e in result.events] == [OutcomeStatus.FAILED, OutcomeStatus.FULFILLED]
        assert credits(db, user.id) == 4
        assert result.response.message_type == "project"

    def test_last_project_is_attached(self, db, dispatcher, user, generate_args):
        second = dict(generate_args, title="Clean Water Access")
        result = dispatcher.dispatch(
            turn("Two!", outcome("generateProject", generate_args), outcome("generateProject", second)),
            user.id,
        )
        assert result.response.project.title == "Clean Water Access"
        assert credits(db, user.id) == 3


class TestIdempotency:
    def test_replayed_tool_call_is_charged_once(self, db, dispatcher, user, generate_args):
        call = outcome("generateProject", generate_args, tool_call_id="call_abc")
        first = dispatcher.dispatch(turn("Ready", call), user.id)
        second = dispatcher.dispatch(turn("Ready", call), user.id)

        assert first.events[0].fulfilled
        assert second.events[0].status == OutcomeStatus.SKIPPED
        assert second.events[0].replayed
        assert credits(db, user.id) == 4
        assert db.query(Project).count() == 1
        assert db.query(FulfillmentRecord).one().tool_call_id == "call_abc"
        assert second.response.message_type == "normal-with-project"
        assert second.response.project.id == first.response.project.id

    def test_other_users_replay_gets_nothing(self, db, dispatcher, user, broke_user, generate_args):
        call = outcome("generateProject", generate_args, tool_call_id="call_abc")
        dispatcher.dispatch(turn("", call), user.id)
        replay = dispatcher.dispatch(turn("", call), broke_user.id)
        assert replay.events[0].replayed
        assert replay.response.project is None


class TestEdit:
    def test_scenario_edit_single_stage(self, db, dispatcher, store, user, generated):
        before = dict(generated.content)
        old_file = generated.file_name
        patch = {
            "projectId": generated.id,
            "stage4": {"chosenSolution": "Solar water disinfection with awareness posters."},
            "editReason": "Learner changed their mind",
        }
        result = dispatcher.dispatch(turn("Updated!", outcome("editProject", patch)), user.id)
        assert result.events[0].fulfilled, result.events[0].error

        db.expire_all()
        project = db.query(Project).one()
        assert project.content["stage4"]["chosenSolution"].startswith("Solar water disinfection")
        assert project.content["stage4"]["refinements"] == before["stage4"]["refinements"]
        for key in ("stage1", "stage2", "stage3", "stage5", "stage6"):
            assert project.content[key] == before[key]
        assert project.file_name != old_file
        assert store.exists(old_file)
        assert store.exists(project.file_name)
        assert credits(db, user.id) == 3
        assert usage(db, DEFAULT_TEMPLATE_ID) == 1
        assert result.response.project.name == project.file_name

    def test_metadata_override(self, db, dispatcher, user, generated):
        patch = {"projectId": generated.id, "title": "Preventing Bilharzia", "school": "Mutare Boys High"}
        dispatcher.dispatch(turn("", outcome("editProject", patch)), user.id)
        db.expire_all()
        project = db.query(Project).one()
        assert project.title == "Preventing Bilharzia"
        assert project.school == "Mutare Boys High"
        assert project.author == "Tariro Moyo"
        assert project.file_name.startswith("Preventing_Bilharzia_")

    def test_edit_with_new_template_counts_usage(self, db, dispatcher, user, generated):
        patch = {"projectId": generated.id, "templateId": "tpl_elegant_rust"}
        dispatcher.dispatch(turn("", outcome("editProject", patch)), user.id)
        assert db.query(Project).one().template_id == "tpl_elegant_rust"
        assert usage(db, "tpl_elegant_rust") == 1
        assert usage(db, DEFAULT_TEMPLATE_ID) == 1

    def test_invalid_patch_rolls_back(self, db, dispatcher, user, generated):
        old_file = generated.file_name
        patch = {"projectId": generated.id, "title": "Should not stick", "stage2": {"relatedIdeas": []}}
        result = dispatcher.dispatch(turn("", outcome("editProject", patch)), user.id)
        assert result.events[0].failed
        db.expire_all()
        project = db.query(Project).one()
        assert project.title == "Bilharzia Prevention"
        assert project.file_name == old_file
        assert credits(db, user.id) == 4

    def test_debit_failure_keeps_old_pointer(self, db, store, user, generated):
        old_file = generated.file_name
        patch = {"projectId": generated.id, "title": "Should not stick",
                 "stage4": {"chosenSolution": "Solar water disinfection."}}
        dispatcher = FulfillmentDispatcher(db, store, ledger=RacedLedger(db))
        result = dispatcher.dispatch(turn("", outcome("editProject", patch)), user.id)
        assert result.events[0].failed
        db.expire_all()
        project = db.query(Project).one()
        assert project.file_name == old_file
        assert project.title == "Bilharzia Prevention"
        assert project.content["stage4"]["chosenSolution"].startswith("A sand and charcoal filter")
        assert credits(db, user.id) == 4
        assert usage(db, DEFAULT_TEMPLATE_ID) == 1

    def test_usage_failure_keeps_old_pointer(self, db, store, user, generated):
        old_file = generated.file_name
        patch = {"projectId": generated.id, "templateId": "tpl_elegant_rust"}
        dispatcher = FulfillmentDispatcher(db, store, catalog=BrokenUsageCatalog(db))
        result = dispatcher.dispatch(turn("", outcome("editProject", patch)), user.id)
        assert result.events[0].failed
        db.expire_all()
        project = db.query(Project).one()
        assert project.file_name == old_file
        assert project.template_id == DEFAULT_TEMPLATE_ID
        assert credits(db, user.id) == 4
        assert usage(db, "tpl_elegant_rust") == 0

    def test_cannot_edit_someone_elses_project(self, db, dispatcher, generated):
        db.add(User(id="usr_other", credits=5))
        db.commit()
        result = dispatcher.dispatch(
            turn("", outcome("editProject", {"projectId": generated.id, "title": "Mine now"})), "usr_other"
        )
        assert result.events[0].failed
        assert "not found" in result.events[0].error
        assert credits(db, "usr_other") == 5


class TestRegenerate:
    def test_scenario_regenerate_with_new_template(self, db, dispatcher, store, user, generated):
        before_content = dict(generated.content)
        old_file = generated.file_name
        args = {"projectId": generated.id, "templateId": "tpl_modern_minimal"}
        result = dispatcher.dispatch(turn("New look!", outcome("regenerateProject", args)), user.id)
        assert result.events[0].fulfilled, result.events[0].error

        db.expire_all()
        project = db.query(Project).one()
        assert project.content == before_content
        assert project.template_id == "tpl_modern_minimal"
        assert project.file_name != old_file
        assert store.retrieve(project.file_name) != store.retrieve(old_file)
        assert usage(db, "tpl_modern_minimal") == 1
        assert usage(db, DEFAULT_TEMPLATE_ID) == 1
        assert credits(db, user.id) == 3
        assert result.events[0].template_id == "tpl_modern_minimal"

    def test_private_template_of_another_user_is_not_used(self, db, dispatcher, user, generated):
        db.add(User(id="usr_other", credits=5))
        crud.create_template(
            db, template_id="tpl_theirs", name="Theirs", user_id="usr_other", is_public=False,
            color_scheme={
                "primary": "#1E3A8A", "secondary": "#1D4ED8", "heading": "#111111",
                "text": "#222222", "muted": "#777777", "background": "#EEF2FF", "divider": "#CCCCCC",
            },
            structure={"fontFamily": "mono"},
        )
        db.commit()
        args = {"projectId": generated.id, "templateId": "tpl_theirs"}
        result = dispatcher.dispatch(turn("", outcome("regenerateProject", args)), user.id)
        assert result.events[0].template_id == DEFAULT_TEMPLATE_ID
        assert db.query(Project).one().template_id == DEFAULT_TEMPLATE_ID
        assert usage(db, "tpl_theirs") == 0

    def test_template_id_is_required(self, db, dispatcher, user, generated):
        result = dispatcher.dispatch(turn("", outcome("regenerateProject", {"projectId": generated.id})), user.id)
        assert result.events[0].failed
        assert credits(db, user.id) == 4


class TestNonCreditTools:
    def test_show_templates(self, db, dispatcher, user):
        result = dispatcher.dispatch(turn("Here are the styles:", outcome("showTemplates")), user.id)
        assert result.response.message_type == "normal-with-templates"
        assert len(result.response.templates) == 5
        assert result.response.templates[0].is_default
        assert credits(db, user.id) == 5

    def test_keyword_sets_templates_flag(self, dispatcher, user):
        result = dispatcher.dispatch(turn("Please choose a template before I start."), user.id)
        assert result.response.message_type == "normal-with-templates"

    def test_generate_pdf(self, db, dispatcher, store, user):
        args = {
            "title": "Water Report",
            "content": "Intro.\n\nMore intro.",
            "sections": [{"heading": "Findings", "content": "Rivers carry snails."}],
        }
        result = dispatcher.dispatch(turn("", outcome("generatePDF", args)), user.id)
        response = result.response
        assert response.message_type == "pdf"
        assert response.pdf.name.startswith("Water_Report_")
        assert response.pdf.id is None
        assert store.exists(response.pdf.name)
        assert credits(db, user.id) == 5
        assert db.query(Project).count() == 0

    def test_project_beats_pdf_and_templates(self, dispatcher, user, generate_args):
        result = dispatcher.dispatch(
            turn(
                "All done",
                outcome("generatePDF", {"title": "Notes", "content": "text"}),
                outcome("generateProject", generate_args),
                outcome("showTemplates"),
            ),
            user.id,
        )
        assert result.response.message_type == "normal-with-project"
        assert result.response.pdf is None
        assert result.response.templates is None

    def test_unknown_tool_is_a_no_op(self, db, dispatcher, user):
        result = dispatcher.dispatch(turn("Let me look that up.", outcome("webSearch", {"q": "x"})), user.id)
        assert result.events[0].status == OutcomeStatus.SKIPPED
        assert result.response.message_type == "normal"
        assert result.response.text == "Let me look that up."

    def test_empty_turn(self, dispatcher, user):
        result = dispatcher.dispatch(turn(""), user.id)
        assert result.response.message_type == "normal"
        assert "couldn't process" in result.response.text
