import pytest

from candid.engine.noise_filter import NoiseFilter
from candid.models.session import Role, Turn


@pytest.fixture
def noise():
    return NoiseFilter()


@pytest.mark.parametrize("text", [None, "", "a", "?", "thank you", "Thank You", "hello", "HI", "okay", "um", "ummm", "ah", "Ahhh"])
def test_short_text_and_fillers_are_noise(noise, text):
    assert noise.is_noise(text)


@pytest.mark.parametrize("text", ["ok", "hi there", "thank you, that helps", "I would use a hash map", "umbrella"])
def test_real_content_is_not_noise(noise, text):
    assert not noise.is_noise(text)


def test_exact_repeat_of_assistant_line_is_echo(noise):
    last_turn = Turn(role=Role.ASSISTANT, content="Go on.")
    assert noise.is_echo(last_turn, "Go on.")


@pytest.mark.parametrize("last_turn, text", [
    (Turn(role=Role.ASSISTANT, content="Go on."), "go on."),
    (Turn(role=Role.ASSISTANT, content="Go on and explain."), "Go on"),
    (Turn(role=Role.USER, content="Go on."), "Go on."),
    (None, "Go on."),
])
def test_anything_else_is_not_echo(noise, last_turn, text):
    assert not noise.is_echo(last_turn, text)


def test_accepts_combines_both_checks(noise):
    last_turn = Turn(role=Role.ASSISTANT, content="What is the complexity?")

    assert noise.accepts(last_turn, "Linear time with a hash map")
    assert not noise.accepts(last_turn, "What is the complexity?")
    assert not noise.accepts(last_turn, "um")


def test_custom_fillers():
    noise = NoiseFilter(fillers=("yeah",), min_length=3)

    assert noise.is_noise("Yeah")
    assert noise.is_noise("ok")
    assert not noise.is_noise("hello")
