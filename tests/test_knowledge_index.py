"""
Knowledge Index Tests — loading, ranking, confidence
====================================================
Tests for knowledge-base validation, the three scoring tiers, ranking
order, and the confidence heuristic.

Run:
  pytest tests/test_knowledge_index.py -v
"""

from __future__ import annotations

import json

import pytest

from chatbot.exceptions import ValidationError
from chatbot.knowledge_index import KnowledgeIndex, extract_semantic_terms, tokenize_query
from chatbot.loader import DEFAULT_KNOWLEDGE_BASE_PATH, load_knowledge_base, parse_knowledge_base
from chatbot.models import MatchType, Topic, TopicMatch, topic_category


# ═══════════════════════════════════════════════════════════════════════
# Loading / Validation
# ═══════════════════════════════════════════════════════════════════════


class TestLoading:

    def test_topic_ids_come_from_keys(self, index):
        """knowledge_base keys → Topic.id"""
        assert [t.id for t in index.topics] == ["exp_react", "exp_node", "skills_testing", "education.degree"]
        assert index.get_topic("exp_react").keywords == ("react", "hooks")

    def test_missing_style_response_is_named(self, kb_data):
        """topic without a friend response → violation naming topic + field."""
        del kb_data["knowledge_base"]["exp_react"]["responses"]["friend"]

        with pytest.raises(ValidationError) as exc_info:
            KnowledgeIndex(kb_data)

        assert any("exp_react.responses.friend" in v for v in exc_info.value.violations)

    def test_all_violations_collected(self, kb_data):
        """several broken topics → every violation reported, not just the first."""
        kb_data["knowledge_base"]["exp_react"]["keywords"] = []
        kb_data["knowledge_base"]["exp_node"]["content"] = "short"
        kb_data["knowledge_base"]["skills_testing"]["responses"]["hr"] = "too short"

        with pytest.raises(ValidationError) as exc_info:
            parse_knowledge_base(kb_data)

        violations = exc_info.value.violations
        assert len(violations) >= 3
        assert any("exp_react.keywords" in v for v in violations)
        assert any("exp_node.content" in v for v in violations)
        assert any("skills_testing.responses.hr" in v for v in violations)

    def test_blank_keywords_rejected(self, kb_data):
        kb_data["knowledge_base"]["exp_node"]["keywords"] = ["  ", ""]
        with pytest.raises(ValidationError) as exc_info:
            parse_knowledge_base(kb_data)
        assert any("exp_node.keywords" in v for v in exc_info.value.violations)

    def test_missing_style_template_rejected(self, kb_data):
        del kb_data["communication_styles"]["friend"]
        with pytest.raises(ValidationError) as exc_info:
            parse_knowledge_base(kb_data)
        assert any("communication_styles.friend" in v for v in exc_info.value.violations)

    def test_mismatched_explicit_id_rejected(self, kb_data):
        kb_data["knowledge_base"]["exp_node"]["id"] = "something_else"
        with pytest.raises(ValidationError):
            parse_knowledge_base(kb_data)

    def test_non_mapping_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_knowledge_base(["not", "a", "dict"])
        assert exc_info.value.violations == ["<root>: expected an object, got list"]

    def test_failed_reload_keeps_previous_index(self, index, kb_data):
        """bad reload → ValidationError, old topics still searchable."""
        kb_data["knowledge_base"]["exp_react"]["content"] = "tiny"
        with pytest.raises(ValidationError):
            index.load(kb_data)
        assert index.find_relevant_topics("react")[0].topic_id == "exp_react"

    def test_topics_are_immutable(self, index):
        topic = index.get_topic("exp_react")
        with pytest.raises(Exception):
            topic.content = "changed content here"

    def test_topic_details_are_read_only(self, index):
        """details (and anything nested in them) cannot be changed after load"""
        details = index.get_topic("exp_react").details
        with pytest.raises(TypeError):
            details["years"] = 10
        with pytest.raises(TypeError):
            details["follow_up"]["hr"] = "changed"
        assert details["key_skills"] == ("Hooks", "Context")
        assert index.get_topic("exp_react").details["years"] == 5

    def test_missing_details_default_to_empty(self, index):
        assert dict(index.get_topic("skills_testing").details) == {}

    def test_invalid_json_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{ not json", encoding="utf-8")
        with pytest.raises(ValidationError) as exc_info:
            load_knowledge_base(path)
        assert "invalid JSON" in exc_info.value.violations[0]

    def test_from_file(self, tmp_path, kb_data):
        path = tmp_path / "kb.json"
        path.write_text(json.dumps(kb_data), encoding="utf-8")
        index = KnowledgeIndex.from_file(path)
        assert index.metadata.name == "Alex"
        assert len(index.topics) == 4

    def test_bundled_knowledge_base_is_valid(self):
        """shipped sample data → loads and answers a React question."""
        document = load_knowledge_base(DEFAULT_KNOWLEDGE_BASE_PATH)
        index = KnowledgeIndex(document)
        assert index.find_relevant_topics("Tell me about React hooks")[0].topic_id == "experience.react"


# ═══════════════════════════════════════════════════════════════════════
# Tokenization / Helpers
# ═══════════════════════════════════════════════════════════════════════


class TestHelpers:

    def test_tokenize_drops_short_words_and_edge_punctuation(self):
        """'Tell me about React hooks?' → tell, about, react, hooks"""
        assert tokenize_query("Tell me about React hooks?") == ["tell", "about", "react", "hooks"]

    def test_tokenize_keeps_inner_punctuation(self):
        assert tokenize_query("Do you know node.js?") == ["you", "know", "node.js"]

    def test_semantic_terms(self):
        terms = extract_semantic_terms("Built a scalable API and a Dashboard with years of experience.")
        assert {"built", "scalable", "api", "dashboard", "years", "experience"} <= terms

    def test_topic_category(self):
        assert topic_category("experience.react") == "experience"
        assert topic_category("exp_react") == "exp"
        assert topic_category("education.degree_masters") == "education"
        assert topic_category("summary") == "summary"


# ═══════════════════════════════════════════════════════════════════════
# Retrieval
# ═══════════════════════════════════════════════════════════════════════


class TestFindRelevantTopics:

    def test_every_keyword_finds_its_topic(self, index):
        """each keyword alone → its topic, exact, nonzero score"""
        for topic in index.topics:
            for keyword in topic.keywords:
                matches = index.find_relevant_topics(keyword)
                hit = next(m for m in matches if m.topic_id == topic.id)
                assert hit.match_type == MatchType.EXACT
                assert hit.score > 0

    def test_exact_scores_accumulate(self, index):
        """'Tell me about React hooks' → only exp_react, score 6"""
        matches = index.find_relevant_topics("Tell me about React hooks")
        assert len(matches) == 1
        assert matches[0].topic_id == "exp_react"
        assert matches[0].score == 6
        assert matches[0].matched_terms == ["react", "hooks"]

    def test_semantic_match(self, index):
        """'backend' appears in exp_node content → semantic +1"""
        matches = index.find_relevant_topics("Which backend work have you done?")
        assert [m.topic_id for m in matches] == ["exp_node"]
        assert matches[0].match_type == MatchType.SEMANTIC
        assert matches[0].score == 1

    def test_substring_fallback(self, index):
        """'computer science' only appears in content → substring 0.5 each"""
        matches = index.find_relevant_topics("computer science")
        assert matches[0].topic_id == "education.degree"
        assert matches[0].match_type == MatchType.SUBSTRING
        assert matches[0].score == pytest.approx(1.0)
        assert matches[0].matched_terms == ["computer", "science"]

    def test_ties_keep_knowledge_base_order(self, index):
        """'years' is a semantic term in two topics → knowledge-base order"""
        matches = index.find_relevant_topics("years")
        assert [m.topic_id for m in matches] == ["exp_react", "exp_node"]

    def test_truncates_to_max_results(self, index):
        matches = index.find_relevant_topics("react node testing degree")
        assert [m.topic_id for m in matches] == ["exp_react", "exp_node", "skills_testing"]
        assert len(index.find_relevant_topics("react node testing degree", max_results=2)) == 2

    def test_higher_score_ranks_first(self, index):
        matches = index.find_relevant_topics("node express react")
        assert matches[0].topic_id == "exp_node"
        assert matches[0].score == 6

    @pytest.mark.parametrize("keyword,query", [
        (".net", ".net"),
        (".net", "Do you know .NET?"),
        ("ai", "ai"),
        ("ai", "any AI work?"),
        ("c#", "c#"),
        ("c#", "C#?"),
        ("go", "go"),
    ])
    def test_short_and_punctuated_keywords(self, kb_data, keyword, query):
        """keywords the tokenizer drops or trims → still an exact hit"""
        kb_data["knowledge_base"]["exp_react"]["keywords"] += [".net", "ai", "c#", "go"]
        index = KnowledgeIndex(kb_data)
        matches = index.find_relevant_topics(query)
        assert matches[0].topic_id == "exp_react"
        assert matches[0].match_type == MatchType.EXACT
        assert keyword in matches[0].matched_terms

    def test_trailing_punctuation_on_keyword(self, index):
        matches = index.find_relevant_topics("Express?")
        assert matches[0].topic_id == "exp_node"
        assert matches[0].match_type == MatchType.EXACT
        assert "express" in matches[0].matched_terms

    def test_multi_word_keyword(self, kb_data):
        kb_data["knowledge_base"]["exp_react"]["keywords"].append("React Native")
        index = KnowledgeIndex(kb_data)
        matches = index.find_relevant_topics("anything in react native?")
        assert matches[0].topic_id == "exp_react"
        assert "react native" in matches[0].matched_terms

    @pytest.mark.parametrize("query", ["", "   ", "a b", None, 42])
    def test_invalid_or_empty_query_returns_nothing(self, index, query):
        assert index.find_relevant_topics(query) == []

    def test_no_hits_returns_empty(self, index):
        assert index.find_relevant_topics("qwerty asdfgh zxcvbn") == []

    def test_unloaded_index_returns_nothing(self):
        assert KnowledgeIndex().find_relevant_topics("react") == []


# ═══════════════════════════════════════════════════════════════════════
# Confidence
# ═══════════════════════════════════════════════════════════════════════


def _match(index, match_type, score, terms):
    topic: Topic = index.get_topic("exp_react")
    return TopicMatch("exp_react", topic, match_type, score=score, matched_terms=terms)


class TestConfidence:

    def test_no_matches(self, index):
        """[] → 0.1"""
        assert index.calculate_confidence([]) == pytest.approx(0.1)

    def test_exact_single_term(self, index):
        """exact, score 3, 1 term → 1.0 clamped to 0.95"""
        assert index.calculate_confidence([_match(index, MatchType.EXACT, 3, ["react"])]) == pytest.approx(0.95)

    def test_semantic_single_term(self, index):
        """semantic, score 1, 1 term → 0.5 + 0.2 + 0.2/3"""
        confidence = index.calculate_confidence([_match(index, MatchType.SEMANTIC, 1, ["years"])])
        assert confidence == pytest.approx(0.5 + 0.2 + 0.2 / 3)

    def test_substring_two_terms(self, index):
        """substring, score 1.0, 2 terms → 0.5 + 0.1 + 0.2/3 + 0.1"""
        confidence = index.calculate_confidence([_match(index, MatchType.SUBSTRING, 1.0, ["a", "b"])])
        assert confidence == pytest.approx(0.5 + 0.1 + 0.2 / 3 + 0.1)

    def test_clamped_to_ceiling(self, index):
        confidence = index.calculate_confidence([_match(index, MatchType.EXACT, 12, ["react", "hooks"])])
        assert confidence == pytest.approx(0.95)

    @pytest.mark.parametrize("match_type", list(MatchType))
    def test_monotonic_in_score(self, index, match_type):
        scores = [0.5, 1, 1.5, 2, 3, 4.5, 9]
        values = [index.calculate_confidence([_match(index, match_type, s, ["x"])]) for s in scores]
        assert values == sorted(values)

    def test_uses_first_match(self, index):
        strong = _match(index, MatchType.EXACT, 6, ["react", "hooks"])
        weak = _match(index, MatchType.SUBSTRING, 0.5, ["x"])
        assert index.calculate_confidence([strong, weak]) > index.calculate_confidence([weak, strong])


# ═══════════════════════════════════════════════════════════════════════
# Fallback copy / context digest
# ═══════════════════════════════════════════════════════════════════════


class TestKnowledgeBaseCopy:

    def test_fallback_response_buckets(self, index):
        assert index.get_fallback_response("developer", 0.1) == "No idea about that one."
        assert index.get_fallback_response("developer", 0.4) == "Could you rephrase that?"
        assert index.get_fallback_response("hr", 0.0) == "No information on that topic."

    def test_fallback_response_unknown_style(self, index):
        assert index.get_fallback_response("pirate", 0.1) == "No idea about that one."

    def test_build_context_uses_primary_topic(self, index):
        matches = index.find_relevant_topics("react hooks")
        context = index.build_context(matches)
        assert context.startswith("About Alex:")
        assert "Experience: 5 years" in context
        assert "Skill level: expert" in context
        assert "Key skills: Hooks, Context" in context

    def test_build_context_without_matches(self, index):
        assert index.build_context([]) is None
