"""Tests for structured answer extraction."""
import pytest

from marketlens.chat.answers import extract_answer


class TestExtractAnswer:
    def test_bold_marker_up_to_next_section(self):
        message = "... **3. Agent Answer:** The value is 42 **4. Next:** ..."

        assert extract_answer(message) == "The value is 42"

    def test_message_without_marker_is_returned_unchanged(self):
        assert extract_answer("plain text, no markers") == "plain text, no markers"

    def test_whitespace_of_unmarked_message_is_preserved(self):
        assert extract_answer("  spaced  \n") == "  spaced  \n"

    def test_marker_is_case_insensitive(self):
        message = "**1. Context:** x\n**3. AGENT ANSWER:** Buy the dip.\n**4. Sources:** none"

        assert extract_answer(message) == "Buy the dip."

    def test_answer_runs_to_end_when_no_later_section(self):
        message = "**3. Agent Answer:**\nLine one.\nLine two with 3.5% growth."

        assert extract_answer(message) == "Line one.\nLine two with 3.5% growth."

    @pytest.mark.parametrize(
        "message",
        [
            "3. Agent Answer: Revenue doubled",
            "**3. Agent Answer**: Revenue doubled",
            "### 3. Agent Answer\nRevenue doubled\n### 4. Sources\n- 10-K",
        ],
    )
    def test_tolerates_marker_markup_variants(self, message):
        assert extract_answer(message) == "Revenue doubled"

    def test_numbered_list_inside_answer_is_kept(self):
        message = "**3. Agent Answer:** Two drivers:\n1. Pricing\n2. Volume\n**4. Sources:** x"

        assert extract_answer(message) == "Two drivers:\n1. Pricing\n2. Volume"
