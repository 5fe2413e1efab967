"""
Duplicate suppression is a heuristic; these tests pin the intended policy,
not an exact contract.
"""
from relay_core.protocol.orchestration.dedup import ContentDeduplicator, is_content_duplicate


class TestIsContentDuplicate:
    def test_exact_and_contained(self):
        sent = ["Paragraph A.\n\nParagraph B."]
        assert is_content_duplicate("Paragraph A.\n\nParagraph B.", sent)
        assert is_content_duplicate("Paragraph B.", sent)

    def test_all_paragraphs_covered(self):
        assert is_content_duplicate("Alpha.\n\nBeta.", ["Alpha.", "Beta."])

    def test_new_paragraph_is_not_duplicate(self):
        assert not is_content_duplicate("Alpha.\n\nGamma.", ["Alpha.", "Beta."])

    def test_empty(self):
        assert not is_content_duplicate("", ["x"])


class TestContentDeduplicator:
    def test_echo_is_cut_and_remainder_emitted(self):
        d = ContentDeduplicator()
        assert d.filter("Paragraph A.\n\nParagraph B.") == "Paragraph A.\n\nParagraph B."
        out = d.filter("Paragraph A.\n\nParagraph B.\n\nParagraph C.")
        assert out.strip() == "Paragraph C."

    def test_repeat_suppressed(self):
        d = ContentDeduplicator()
        d.filter("Hello there, friend.")
        assert d.filter("Hello there, friend.") is None
        assert d.filter("there, friend") is None

    def test_covered_paragraphs_dropped(self):
        d = ContentDeduplicator()
        d.filter("One.")
        d.filter("Two.")
        assert d.filter("One.\n\nThree.\n\nTwo.") == "\n\nThree."
        assert d.filter("One.\n\nTwo.\n\nThree.") is None

    def test_leading_separator_kept_when_first_paragraph_dropped(self):
        d = ContentDeduplicator()
        d.filter("Intro.")
        assert d.filter("Intro.\n\nNext.") == "\n\nNext."

    def test_short_earlier_output_not_cut(self):
        d = ContentDeduplicator(min_echo_chars=16)
        d.filter("Hi.")
        assert d.filter("Hi. How are you?") == "Hi. How are you?"

    def test_fragments_split_across_chunks(self):
        d = ContentDeduplicator()
        d.filter("Paragraph A.\n\nParagr")
        d.filter("aph B.")
        assert d.filter("Paragraph A.\n\nParagr") is None
        assert d.filter("aph B.\n\nParagraph C.") == "\n\nParagraph C."

    def test_whitespace_only(self):
        assert ContentDeduplicator().filter("\n\n ") is None
