from services.entity_matcher import best_match, ranked_matches, tied_top_matches

CARDS = ["Chase Freedom", "Chase Sapphire", "Amex Gold"]


# ------------------------------------------------------------
# Substring pass
# ------------------------------------------------------------
def test_substring_match_beats_token_overlap():
    """
    A candidate contained in the prompt wins outright, even when another
    candidate shares tokens with the prompt.
    """
    candidates = ["Card Bill Pay", "Chase"]
    assert ranked_matches("my chase card bill", candidates) == ["Chase"]
    assert best_match("my chase card bill", candidates) == "Chase"


def test_substring_match_returns_single_result():
    assert ranked_matches("spend on chase sapphire last month", CARDS) == ["Chase Sapphire"]


# ------------------------------------------------------------
# Token overlap pass
# ------------------------------------------------------------
def test_equal_scores_keep_candidate_order():
    assert ranked_matches("chase spending", CARDS) == ["Chase Freedom", "Chase Sapphire"]


def test_higher_overlap_ranks_first():
    candidates = ["Gold Coast Trip", "Amex Gold Rewards"]
    assert ranked_matches("amex rewards gold", candidates)[0] == "Amex Gold Rewards"


def test_stop_tokens_do_not_count_as_overlap():
    assert ranked_matches("card spend", ["Chase Card", "Amex Card"]) == []


def test_limit_is_respected():
    assert ranked_matches("chase", CARDS, limit=1) == ["Chase Freedom"]
    assert ranked_matches("chase", CARDS, limit=0) == []


def test_no_match_cases():
    assert ranked_matches("", CARDS) == []
    assert ranked_matches("groceries", CARDS) == []
    assert ranked_matches("chase", []) == []
    assert best_match("groceries", CARDS) is None


def test_ranking_is_deterministic():
    first = ranked_matches("chase gold", CARDS)
    second = ranked_matches("chase gold", CARDS)
    assert first == second
    assert first == ["Chase Freedom", "Chase Sapphire", "Amex Gold"]


def test_tied_top_matches():
    assert tied_top_matches("chase card spend", CARDS) == ["Chase Freedom", "Chase Sapphire"]
    assert tied_top_matches("chase sapphire spend", CARDS) == []
    assert tied_top_matches("amex", CARDS) == []
    assert tied_top_matches("groceries", CARDS) == []
