"""
Prompts for interactive story turns.

The generator is a writing companion that continues the human's story:
- Stays in character as a writer, never a chatbot
- Adopts the genre tone and the session's two style personas without naming them
- Mirrors the length of the human's latest line (soft guidance, not enforced)
- Opens the story with a short hook when there is no history yet

Duration reaches the prompt in minutes; everywhere else it is seconds.
"""

from typing import Optional, Sequence

from src.core.config import MirroringConfig, story_config
from src.domain.models.genre import GenreProfile
from src.domain.models.turn import GenerationRequest, Turn, count_words


def word_count_guidance(
    latest_input: str,
    is_opening: bool = False,
    mirroring: Optional[MirroringConfig] = None,
) -> str:
    """
    Length instruction for the next line.

    Args:
        latest_input: Most recent line the generator is answering
        is_opening: Opening turns target a fixed short range instead
        mirroring: Tolerance and opening range (defaults to story_config)

    Returns:
        One-sentence instruction
    """
    mirroring = mirroring or story_config.mirroring
    if is_opening:
        return (
            f"Write between {mirroring.opening_min_words} and "
            f"{mirroring.opening_max_words} words."
        )

    words = count_words(latest_input)
    if words == 0:
        return "Write two or three short lines."

    low = max(1, round(words * (1 - mirroring.tolerance)))
    high = max(low, round(words * (1 + mirroring.tolerance)))
    return (
        f"The previous line was {words} words long. Match its energy: "
        f"write between {low} and {high} words."
    )


def format_history(history: Sequence[Turn]) -> str:
    """Render turns as "LABEL: line" rows, one per line."""
    return "\n".join(f"{turn.label}: {turn.text}" for turn in history)


def get_story_system_prompt(request: GenerationRequest, profile: GenreProfile) -> str:
    """
    System prompt for interactive turns and openings.

    Args:
        request: Generation context
        profile: Genre profile for tone

    Returns:
        System prompt string
    """
    minutes = request.duration_minutes
    minutes_text = f"{minutes:g} minute" + ("" if minutes == 1 else "s")
    return f"""You are a creative writing companion in a collaborative story game. Together with the human you co-create a compelling, short narrative, one line at a time.

## Rules:
1. Never break character. You are a writer, not a chatbot.
2. Never answer meta-questions, questions about yourself, or requests for help. Treat every human input as the next line of the story.
3. Build directly on the latest line, matching its intent and tone.
4. Output only the story line itself: no speaker labels, quotes or commentary.

## Genre: {profile.genre.value}
{profile.description}

## Style
Blend the voices of these two writers without ever naming them:
- {request.persona_a.name}: {request.persona_a.description}
- {request.persona_b.name}: {request.persona_b.description}

The session lasts {minutes_text}; keep the story moving."""


def get_story_user_prompt(request: GenerationRequest, profile: GenreProfile) -> str:
    """
    User prompt for one turn.

    Openings carry their narrative hook seed in request.latest_input and
    fall back to the genre's opening instruction when it is empty.

    Args:
        request: Generation context
        profile: Genre profile

    Returns:
        User prompt string
    """
    parts = []

    if request.is_opening:
        parts.append("## Opening")
        if request.latest_input:
            parts.append(f"Begin the story from this hook: {request.latest_input}")
        else:
            parts.append(profile.opening_prompt)
        parts.append("")
        parts.append(word_count_guidance("", is_opening=True))
        parts.append("")
        parts.append("Write the opening line:")
        return "\n".join(parts)

    if request.history:
        parts.append("## Story so far:")
        parts.append(format_history(request.history))
        parts.append("")

    parts.append("## Latest line:")
    parts.append(request.latest_input)
    parts.append("")
    parts.append(word_count_guidance(request.latest_input))
    parts.append("")
    parts.append("Continue the story:")
    return "\n".join(parts)


def parse_story_line(response_text: str) -> str:
    """
    Clean LLM artifacts from a generated line.

    Removes wrapping quotes, speaker prefixes and extra whitespace.

    Args:
        response_text: Raw LLM response

    Returns:
        Cleaned line (may be empty)
    """
    text = response_text.strip()

    # Speaker label the model sometimes copies from the history format
    for prefix in ("GENERATOR:", "AI:", "Continuation:"):
        if text.upper().startswith(prefix.upper()):
            text = text[len(prefix):].strip()

    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        text = text[1:-1].strip()

    return " ".join(text.split())
