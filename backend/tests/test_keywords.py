from chapter_studio.utils.keywords import exact_overlap, extract_keywords, keywords_overlap


def test_extract_keywords_drops_stop_words_and_short_words():
    keywords = extract_keywords("The ancient pyramids of Egypt, and the Nile!")
    assert keywords == ["ancient", "pyramids", "egypt", "nile"]


def test_extract_keywords_dedupes_and_caps():
    keywords = extract_keywords("river river delta delta ocean lake", max_keywords=3)
    assert keywords == ["river", "delta", "ocean"]


def test_extract_keywords_keeps_accented_words():
    assert "pirâmides" in extract_keywords("As pirâmides do Egito")


def test_extract_keywords_empty_text():
    assert extract_keywords("") == []


def test_keywords_overlap_matches_substrings():
    assert keywords_overlap(["dog", "cat"], ["dogs", "birds"]) == 1
    assert keywords_overlap(["egyptian"], ["egypt"]) == 1
    assert keywords_overlap(["tomb"], ["river"]) == 0


def test_exact_overlap():
    assert exact_overlap(["a1", "b2"], ["b2", "c3"]) == 1
