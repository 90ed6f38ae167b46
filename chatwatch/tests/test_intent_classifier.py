"""Tests for the rule-based intent classifier."""

import pytest

from chatwatch.common.schemas import Priority, QuestionType
from chatwatch.monitor.intent_classifier import (
    ChatContext,
    IntentClassifier,
    MessageAnalysis,
    TrackedIdentity,
)
from chatwatch.monitor.patterns import RuleGroup


@pytest.fixture
def classifier():
    return IntentClassifier()


@pytest.fixture
def alex():
    return IntentClassifier(TrackedIdentity(display_name="Alex Morgan", ids=("15550001111@c.us",)))


class TestNonQuestions:
    @pytest.mark.parametrize("text", ["lol", "thanks", "??", "ok?", "what?", "Thank you!", "haha", "", "   "])
    def test_rejected(self, classifier, text):
        assert classifier.classify(text) is None

    def test_plain_statement_is_not_a_question(self, classifier):
        assert classifier.classify("The deploy finished at noon") is None


class TestQuestionTypes:
    def test_yes_no(self, classifier):
        result = classifier.classify("Is the report done?")
        assert result is not None
        assert result.question_type == QuestionType.YES_NO

    def test_polite_request_is_action_request(self, classifier):
        result = classifier.classify("Can you send me the invoice ASAP?")
        assert result.question_type == QuestionType.ACTION_REQUEST
        assert result.priority == Priority.URGENT

    def test_scheduling(self, classifier):
        result = classifier.classify("When is the meeting?")
        assert result.question_type == QuestionType.SCHEDULING
        assert result.priority == Priority.NORMAL

    def test_approval(self, classifier):
        result = classifier.classify("Approval for the new vendor?")
        assert result.question_type == QuestionType.APPROVAL

    def test_status_check(self, classifier):
        result = classifier.classify("What's the status of the migration?")
        assert result.question_type == QuestionType.STATUS_CHECK

    def test_opinion(self, classifier):
        result = classifier.classify("What do you think about the new logo?")
        assert result.question_type == QuestionType.OPINION

    def test_info_seeking(self, classifier):
        result = classifier.classify("Where is the shared drive link?")
        assert result.question_type == QuestionType.INFO_SEEKING

    def test_trailing_question_mark_is_general(self, classifier):
        result = classifier.classify("The vendor contract is signed?")
        assert result.question_type == QuestionType.GENERAL

    def test_implicit_question_without_mark(self, classifier):
        result = classifier.classify("Anyone know the wifi password")
        assert result.question_type == QuestionType.GENERAL

    def test_first_matching_rule_wins(self):
        custom = IntentClassifier(rules=[
            RuleGroup(QuestionType.OPINION, lambda text: True),
            RuleGroup(QuestionType.YES_NO, lambda text: True),
        ])
        assert custom.classify("Is the report done?").question_type == QuestionType.OPINION

    def test_keywords_extracted(self, classifier):
        result = classifier.classify("Is the report done?")
        assert result.keywords == ["report", "done"]


class TestPriority:
    def test_low_urgency_hedge(self, classifier):
        result = classifier.classify("No rush, but where is the style guide?")
        assert result.priority == Priority.LOW

    def test_importance_vocabulary(self, classifier):
        result = classifier.classify("Where is the client deck?")
        assert result.priority == Priority.HIGH

    def test_direct_message_adds_point(self, classifier):
        result = classifier.classify("Where is the client deck?", ChatContext(is_group=False))
        assert result.directed_at_me is True
        assert result.priority == Priority.URGENT

    def test_score_mapping(self, classifier):
        assert classifier.score_priority("escalate this", QuestionType.GENERAL, False) == (Priority.HIGH, 2)
        assert classifier.score_priority("fyi", QuestionType.GENERAL, False) == (Priority.LOW, -2)
        assert classifier.score_priority("hello", QuestionType.ACTION_REQUEST, False) == (Priority.NORMAL, 0.5)


class TestMentions:
    def test_full_name_in_group(self, alex):
        result = alex.classify("Alex Morgan, where is the deck?")
        assert result.directed_at_me is True

    def test_name_part(self, alex):
        assert alex.mentions_me("Morgan can you check the logs?")

    def test_name_is_word_bounded(self, alex):
        assert not alex.mentions_me("Alexander, where is it?")

    def test_mention_id(self, alex):
        assert alex.mentions_me("@15550001111 where is it?", mentioned_ids=["15550001111@c.us"])

    def test_mention_id_matches_number_part(self, alex):
        assert alex.mentions_me("where is it?", mentioned_ids=["15550001111@lid"])

    def test_other_mention_id(self, alex):
        assert not alex.mentions_me("where is it?", mentioned_ids=["19998887777@c.us"])

    def test_quoted_body(self, alex):
        assert alex.mentions_me("Where is it?", quoted_body="Alex posted the deck earlier")

    def test_group_question_not_directed(self, alex):
        assert alex.classify("Where is the deck?").directed_at_me is False

    def test_no_identity_never_matches(self, classifier):
        assert not classifier.mentions_me("Alex where is it?", mentioned_ids=["15550001111@c.us"])

    def test_with_display_name_returns_new_instance(self, alex):
        renamed = alex.with_display_name("Sam Lee")
        assert renamed is not alex
        assert renamed.mentions_me("Sam, where is it?")
        assert not renamed.mentions_me("Alex, where is it?")
        assert alex.mentions_me("Alex, where is it?")
        assert renamed.identity.ids == alex.identity.ids


class TestAnalyze:
    def test_from_me_is_never_a_question(self, alex, make_message):
        analysis = alex.analyze(make_message("Is the report done?", sender="Me", from_me=True))
        assert analysis == MessageAnalysis()

    def test_direct_message(self, alex, make_message):
        analysis = alex.analyze(make_message("Where is the deck?", chat_id="dana@c.us", is_group=False))
        assert analysis.is_direct_message
        assert analysis.is_question
        assert analysis.is_directed_question

    def test_mention_without_question(self, alex, make_message):
        analysis = alex.analyze(make_message("Alex the deck is in the drive"))
        assert analysis.is_mention
        assert not analysis.is_question
        assert analysis.question is None


class TestExplain:
    def test_not_a_question(self, classifier):
        assert classifier.explain(None) == "Not a question"

    def test_question(self, classifier):
        text = classifier.explain(classifier.classify("Can you send me the invoice ASAP?"))
        assert "action_request" in text
        assert "urgent" in text
        assert "invoice" in text
