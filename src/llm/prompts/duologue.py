"""
Prompts for automated duologue turns.

Two personas write one story between them. Each call embodies one persona,
which continues the narrative in its own voice rather than talking to the
other persona.
"""

from src.core.config import story_config
from src.domain.models.genre import GenreProfile
from src.domain.models.turn import GenerationRequest


def get_duologue_system_prompt(request: GenerationRequest, profile: GenreProfile) -> str:
    """
    System prompt for one duologue turn.

    Args:
        request: Generation context; request.embodied is the writing persona

    Returns:
        System prompt string

    Raises:
        ValueError: If the request has no embodied persona
    """
    if request.embodied is None:
        raise ValueError("duologue prompt requires an embodied persona")

    return f"""You are a creative writing AI. You embody one literary persona and write the next segment of a story. This is a collaborative story, not a conversation.

## Persona to Embody
- Name: {request.embodied.name}
- Style: {request.embodied.description}

## Story Genre
- {profile.genre.value}: {profile.description}

## Output
Return only the generated line of text. Do not include the persona's name, headings, or any conversational text."""


def get_duologue_user_prompt(request: GenerationRequest) -> str:
    """
    User prompt for one duologue turn.

    Args:
        request: Generation context (the opening seed is request.latest_input)

    Returns:
        User prompt string
    """
    mirroring = story_config.mirroring
    parts = ["## Story So Far"]

    if not request.history:
        parts.append("The story has not yet begun.")
        parts.append("")
        parts.append("## Directive: Start Story")
        parts.append("- Write the opening line of the story.")
        if request.latest_input:
            parts.append(
                f"- Use the conceptual seed '{request.latest_input}' as the direct catalyst."
            )
        parts.append(
            f"- Be immediate and immersive. Keep it between "
            f"{mirroring.opening_min_words} and {mirroring.opening_max_words} words."
        )
        return "\n".join(parts)

    for turn in request.history:
        parts.append(f"- {turn.text}")
    parts.append("")
    parts.append("## Directive: Continue Narrative")
    parts.append(
        f"1. Write in the unique literary voice of {request.embodied.name}."
    )
    parts.append(
        "2. Continue, don't converse: do not address the previous writer. "
        "Your output is a paragraph in a novel."
    )
    parts.append(
        f"3. The previous line was {request.target_word_count} words long; "
        f"keep yours within about {round(mirroring.tolerance * 100)}% of that."
    )
    return "\n".join(parts)
