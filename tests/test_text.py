import pytest

from llm_gateway.utils.text import clean_generated_text


def test_prompt_echo_and_stop_sequence_are_removed() -> None:
    assert clean_generated_text("Hello continuation STOP", "Hello", ["STOP"]) == "continuation"


def test_markers_and_separator_are_removed() -> None:
    raw = "<|startoftext|>Question? The answer is 4.</s>"

    assert clean_generated_text(raw, "Question?", []) == "The answer is 4."


def test_end_of_text_marker_is_always_trimmed() -> None:
    assert clean_generated_text("Paris.  <|endoftext|>\n", "", None) == "Paris."


def test_stop_sequence_only_trimmed_at_the_end() -> None:
    raw = "Say STOP to end, then continue"

    assert clean_generated_text(raw, "", ["STOP"]) == raw


def test_prompt_is_stripped_before_stop_sequences() -> None:
    # The prompt itself ends with the stop sequence; only the echo must go.
    assert clean_generated_text("User: hi\nAssistant:", "User: hi\nAssistant:", ["Assistant:"]) == ""


def test_stacked_stop_sequences_are_all_removed() -> None:
    assert clean_generated_text("answer<|im_end|></s>", "", ["</s>", "<|im_end|>"]) == "answer"


def test_empty_stop_sequence_is_ignored() -> None:
    assert clean_generated_text("text", "", [""]) == "text"


@pytest.mark.parametrize(
    ("raw", "prompt", "stops"),
    [
        ("Hello continuation STOP", "Hello", ["STOP"]),
        ("HelloHello twice", "Hello", []),
        ("xab", "", ["a", "b"]),
        ("<|startoftext|><|startoftext|>x</s></s>", "", []),
        ("  padded  ", "", ["padded"]),
        ("no changes", "unrelated", ["zzz"]),
    ],
)
def test_clean_is_idempotent(raw: str, prompt: str, stops: list[str]) -> None:
    once = clean_generated_text(raw, prompt, stops)

    assert clean_generated_text(once, prompt, stops) == once
