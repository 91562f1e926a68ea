"""
Prompts and parsers for post-session analysis.

Six independent generators each derive one property of a finished story:
- title: from the full story
- quote banner: from the full story
- mood: from the human's own lines
- style match: from the human's own lines plus the persona catalog
- keywords: from the human's own lines
- final script: polished prose from the full transcript

Parsers validate the model output and raise LLMResponseParseError or
LLMContentError so the pipeline can substitute a fallback value.
"""

import json
from typing import Any, Dict, List, Sequence

from src.core.exceptions import LLMContentError, LLMResponseParseError
from src.domain.models.analysis import Emotion, Mood, StyleMatch
from src.domain.models.turn import Turn

ANALYSIS_SYSTEM_PROMPT = (
    "You are a literary editor analysing a short collaborative story. "
    "Follow the output format exactly and add no commentary."
)

TITLE_MAX_WORDS = 7
KEYWORDS_MIN = 5
KEYWORDS_MAX = 7


# =============================================================================
# Prompt builders
# =============================================================================


def get_title_prompt(full_story: str) -> str:
    return f"""You are a skilled book editor. Read the following story and create a short, evocative and compelling title for it. The title must be under 8 words and must not use quotes.

Return only the title.

Story:
{full_story}"""


def get_quote_prompt(full_story: str) -> str:
    return f"""Read the following collaborative story. Write a single, insightful and memorable quote of 10-20 words that captures the story's core theme, a pivotal moment, or its emotional essence. It should sound like a line from a novel. Do not explain the quote.

Return only the quote itself.

Story:
{full_story}"""


def get_mood_prompt(user_content: str) -> str:
    emotions = ", ".join(emotion.value for emotion in Emotion)
    return f"""Analyse the emotional sentiment of the following text. Identify a primary emotion from this list: [{emotions}]. Then give a confidence score for it as a decimal between 0.0 and 1.0.

Respond with a JSON object with two keys: "primaryEmotion" (string) and "confidenceScore" (float).

User Text:
{user_content}"""


def get_style_match_prompt(user_content: str, personas_json: str) -> str:
    return f"""You are a literary analyst. Below is a block of text written by a user and a JSON object of influential writers with descriptions of their styles. Compare the user's writing style (sentence structure, vocabulary, tone, pacing, thematic focus) against every writer in the JSON object and identify the two closest matches.

Respond with a JSON object with a single key, "styleMatches": an array of exactly two names, winner first, runner-up second. Use names exactly as they appear in the JSON.

User Text:
{user_content}

Influential Writers JSON:
{personas_json}"""


def get_keywords_prompt(user_content: str) -> str:
    return f"""From the following text, extract the {KEYWORDS_MIN} to {KEYWORDS_MAX} most significant and evocative keywords. They must be single words (nouns, verbs, adjectives) that represent the story's core subjects and themes.

Respond with a JSON object with a single key, "keywords", which is an array of strings.

User Text:
{user_content}"""


def format_transcript_for_script(transcript: Sequence[Turn]) -> str:
    """
    Render a transcript for the script polisher.

    Pasted blocks are wrapped in ```paste fences so they are kept verbatim;
    every other turn is "LABEL: line".
    """
    rows = []
    for turn in transcript:
        if turn.is_paste:
            rows.append(f"\n```paste\n{turn.text}\n```\n")
        else:
            rows.append(f"{turn.label}: {turn.text}")
    return "\n".join(rows)


def get_final_script_prompt(transcript: Sequence[Turn]) -> str:
    return f"""You are a proofreader and text formatter. The raw transcript below consists of alternating lines from two authors. Perform the following:

1. Correct spelling and grammar, except inside ```paste blocks, whose content must be preserved exactly.
2. Combine the lines into a single cohesive narrative with logical paragraphs. Do not add new content, ideas, descriptions or dialogue.
3. Include every ```paste block verbatim, separated from the surrounding text by newlines.
4. Preserve the authors' voice and style. Rephrase only for grammatical correctness.
5. Remove the speaker labels. Output one block of prose with standard paragraph breaks.

Do not interpret the story, add scene headings, or change the meaning.

Raw Story Transcript:
{format_transcript_for_script(transcript)}"""


# =============================================================================
# Parsers
# =============================================================================


def extract_json_object(raw_response: str) -> Dict[str, Any]:
    """
    Parse a JSON object from an LLM response.

    Handles markdown code fences around the JSON.

    Raises:
        LLMResponseParseError: If the response is not a JSON object
    """
    text = raw_response.strip()

    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    text = text.strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise LLMResponseParseError(
            f"Invalid JSON from analysis LLM: {e}\nRaw response: {raw_response[:300]}"
        ) from e

    if not isinstance(data, dict):
        raise LLMResponseParseError(
            f"Expected a JSON object, got {type(data).__name__}"
        )
    return data


def _strip_quotes(text: str) -> str:
    text = text.strip()
    for pair in ('""', "''", "“”"):
        if len(text) >= 2 and text[0] == pair[0] and text[-1] == pair[1]:
            text = text[1:-1].strip()
    return text


def parse_title(raw_response: str) -> str:
    """Single-line title without quotes, under 8 words.

    Raises:
        LLMContentError: If the title is empty
    """
    lines = [line for line in raw_response.strip().splitlines() if line.strip()]
    if not lines:
        raise LLMContentError("Empty title from analysis LLM")

    title = _strip_quotes(lines[0]).replace('"', "")
    if title.lower().startswith("title:"):
        title = title[6:].strip()

    words = title.split()
    if not words:
        raise LLMContentError("Empty title from analysis LLM")
    return " ".join(words[:TITLE_MAX_WORDS])


def parse_quote(raw_response: str) -> str:
    """Quote text without wrapping quotes.

    Raises:
        LLMContentError: If the quote is empty
    """
    quote = " ".join(_strip_quotes(raw_response).split())
    if not quote:
        raise LLMContentError("Empty quote from analysis LLM")
    return quote


def parse_mood(raw_response: str) -> Mood:
    """Mood with confidence clamped into [0, 1].

    Raises:
        LLMResponseParseError: If the JSON is malformed
        LLMContentError: If the emotion is not one of the nine allowed values
    """
    data = extract_json_object(raw_response)
    emotion_name = str(data.get("primaryEmotion", "")).strip().capitalize()
    try:
        emotion = Emotion(emotion_name)
    except ValueError as e:
        raise LLMContentError(f"Unknown emotion from analysis LLM: {emotion_name!r}") from e

    try:
        confidence = float(data.get("confidenceScore", 0.0))
    except (TypeError, ValueError) as e:
        raise LLMResponseParseError(
            f"confidenceScore is not a number: {data.get('confidenceScore')!r}"
        ) from e

    return Mood(primary_emotion=emotion, confidence_score=min(max(confidence, 0.0), 1.0))


def parse_style_match(raw_response: str) -> StyleMatch:
    """Winner and runner-up names.

    Raises:
        LLMResponseParseError: If the JSON is malformed
        LLMContentError: Unless exactly two distinct names are returned
    """
    data = extract_json_object(raw_response)
    matches = data.get("styleMatches")
    if not isinstance(matches, list) or len(matches) != 2:
        raise LLMContentError(f"styleMatches must hold exactly two names, got {matches!r}")

    first, second = (str(name).strip() for name in matches)
    if not first or not second or first == second:
        raise LLMContentError(f"styleMatches must be two distinct names, got {matches!r}")
    return StyleMatch(primary_match=first, secondary_match=second)


def parse_keywords(raw_response: str) -> List[str]:
    """Deduplicated Title-Case single words, at most seven.

    Multi-word entries keep their first word.

    Raises:
        LLMResponseParseError: If the JSON is malformed
        LLMContentError: If fewer than five usable keywords remain
    """
    data = extract_json_object(raw_response)
    raw_keywords = data.get("keywords")
    if not isinstance(raw_keywords, list):
        raise LLMContentError(f"keywords must be a list, got {raw_keywords!r}")

    keywords: List[str] = []
    for entry in raw_keywords:
        words = "".join(c if c.isalnum() or c in "-'" else " " for c in str(entry)).split()
        if not words:
            continue
        word = words[0][:1].upper() + words[0][1:]
        if word not in keywords:
            keywords.append(word)

    if len(keywords) < KEYWORDS_MIN:
        raise LLMContentError(
            f"Expected at least {KEYWORDS_MIN} keywords, got {len(keywords)}"
        )
    return keywords[:KEYWORDS_MAX]


def parse_final_script(raw_response: str) -> str:
    """Polished script with surrounding whitespace removed.

    Raises:
        LLMContentError: If the script is empty
    """
    script = raw_response.strip()
    if not script:
        raise LLMContentError("Empty final script from analysis LLM")
    return script
