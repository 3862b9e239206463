from tuna_adventure import load_scorer
from tuna_adventure.services.game.scoring import (
    KeywordOverlapScorer, extract_keywords, overlap_ratio, ratio_to_score,
)

REFERENCE_ANSWER = 'Stop and send scouts to explore each direction before choosing a path.'
REFERENCE_RATIONALE = 'Gather information to reduce ambiguity before a big decision.'


def test_extract_keywords_strips_punctuation_stop_words_and_short_tokens():
    words = extract_keywords('The scouts, and THE scouts; go explore!!')
    assert words == ['scouts', 'explore']


def test_ratio_thresholds():
    assert ratio_to_score(1.0) == 15
    assert ratio_to_score(0.8) == 15
    assert ratio_to_score(0.6) == 12
    assert ratio_to_score(0.4) == 10
    assert ratio_to_score(0.2) == 7
    assert ratio_to_score(0.1) == 5
    assert ratio_to_score(0.09) == 0


def test_overlap_matches_substrings_in_either_direction():
    assert overlap_ratio(['exploration'], ['explore']) == 0.0
    assert overlap_ratio(['explore'], ['explored']) == 1.0
    assert overlap_ratio(['scouting'], ['scout']) == 1.0
    assert overlap_ratio([], ['anything']) == 0.0


def test_empty_submission_scores_zero():
    scorer = KeywordOverlapScorer()
    assert scorer.score('', '', REFERENCE_ANSWER, REFERENCE_RATIONALE) == 0
    assert scorer.score(None, None, REFERENCE_ANSWER, REFERENCE_RATIONALE) == 0
    assert scorer.score('   ', '', REFERENCE_ANSWER, REFERENCE_RATIONALE) == 0


def test_scoring_is_deterministic_and_rewards_overlap():
    scorer = KeywordOverlapScorer()
    good = scorer.score(REFERENCE_ANSWER, REFERENCE_RATIONALE, REFERENCE_ANSWER, REFERENCE_RATIONALE)
    assert good == 15
    partial = scorer.score('send scouts', 'reduce ambiguity', REFERENCE_ANSWER, REFERENCE_RATIONALE)
    assert 0 < partial < good
    repeated = {scorer.score('send scouts', 'reduce ambiguity', REFERENCE_ANSWER, REFERENCE_RATIONALE)
                for _ in range(5)}
    assert repeated == {partial}


def test_load_scorer_from_config_string():
    scorer = load_scorer('tuna_adventure.services.game.scoring:KeywordOverlapScorer')
    assert isinstance(scorer, KeywordOverlapScorer)
