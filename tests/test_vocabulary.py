from __future__ import annotations

from vocabulary import MAX_CANDIDATES, MIN_WORD_LENGTH, extract_candidates, is_stopword


def test_example_sentence_orders_by_length() -> None:
    text = "The sophisticated algorithm demonstrates remarkable efficiency improvements daily"

    assert extract_candidates(text) == [
        "sophisticated",
        "demonstrates",
        "improvements",
        "remarkable",
        "efficiency",
        "algorithm",
    ]


def test_short_words_are_dropped() -> None:
    assert extract_candidates("quickly jumping foxes daily") == ["jumping"]
    assert all(len(word) >= MIN_WORD_LENGTH for word in extract_candidates("a bb cccccc ddddddd"))


def test_stopwords_are_dropped() -> None:
    assert is_stopword("Because")
    assert extract_candidates("because something happened between meetings") == ["meetings"]


def test_duplicates_removed_case_insensitively_keeping_first_spelling() -> None:
    text = "Kubernetes orchestrates containers; kubernetes KUBERNETES orchestrates"

    assert extract_candidates(text) == ["orchestrates", "Kubernetes", "containers"]


def test_ties_keep_order_of_appearance() -> None:
    assert extract_candidates("bravoxx alphaxx charlie") == ["bravoxx", "alphaxx", "charlie"]


def test_hyphenated_and_apostrophe_words_stay_whole() -> None:
    candidates = extract_candidates("a state-of-the-art pipeline")

    assert candidates == ["state-of-the-art", "pipeline"]


def test_numbers_are_not_words() -> None:
    assert extract_candidates("12345678 version2025") == ["version"]


def test_result_is_capped() -> None:
    words = [f"word{chr(ord('a') + i)}longer" for i in range(26)]
    words += [f"extra{chr(ord('a') + i)}longer" for i in range(10)]

    candidates = extract_candidates(" ".join(words))

    assert len(candidates) == MAX_CANDIDATES


def test_empty_input() -> None:
    assert extract_candidates("") == []
    assert extract_candidates("   \n ") == []
