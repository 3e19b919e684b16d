"""Tests for SurveyDefinition: element walk and template interpolation."""

import pytest

from survey_fields.survey import SurveyDefinition


@pytest.fixture
def survey(example_survey_path):
    return SurveyDefinition.from_file(example_survey_path)


class TestElements:

    def test_question_names_in_document_order(self, survey):
        assert survey.question_names() == [
            "welcome", "source", "package", "version",
            "issue_title", "issue_title_result", "platform",
        ]

    def test_other_fields(self, survey):
        assert survey.other_fields() == ["platform"]

    def test_nested_panels_are_walked(self):
        survey = SurveyDefinition({
            "pages": [{
                "name": "p1",
                "elements": [{
                    "type": "panel",
                    "name": "panel1",
                    "elements": [
                        {"type": "checkbox", "name": "langs", "hasOther": True},
                    ],
                }],
            }],
        })
        assert survey.question_names() == ["langs"]
        assert survey.other_fields() == ["langs"]

    def test_rejects_non_object(self):
        with pytest.raises(ValueError):
            SurveyDefinition.from_json("[1, 2]")


class TestRender:

    def test_interpolates_display_text(self, survey):
        rendered = survey.render({"source": "GitHub"})
        assert rendered["title"] == "Package feedback (via GitHub)"
        welcome = rendered["pages"][0]["elements"][0]
        assert welcome["html"] == "<p>Thanks for visiting from GitHub!</p>"

    def test_missing_context_renders_empty(self, survey):
        rendered = survey.render({})
        assert rendered["title"] == "Package feedback"

    def test_original_is_untouched(self, survey):
        survey.render({"source": "GitHub"})
        assert "{{ source }}" in survey.data["title"]

    def test_surveyjs_placeholders_pass_through(self):
        survey = SurveyDefinition({"title": "Hello {name}", "visibleIf": "{a} = 1"})
        assert survey.render({"name": "x"}) == survey.data

    def test_sandbox_blocks_attribute_escape(self):
        survey = SurveyDefinition({"title": "{{ ''.__class__.__mro__ }}"})
        rendered = survey.render({})
        assert "object" not in rendered["title"]
