# noqa
from src.llm.prompts.story import (
    get_story_system_prompt,
    get_story_user_prompt,
    parse_story_line,
    word_count_guidance,
)
from src.llm.prompts.duologue import (
    get_duologue_system_prompt,
    get_duologue_user_prompt,
)
from src.llm.prompts.analysis import (
    ANALYSIS_SYSTEM_PROMPT,
    format_transcript_for_script,
    get_final_script_prompt,
    get_keywords_prompt,
    get_mood_prompt,
    get_quote_prompt,
    get_style_match_prompt,
    get_title_prompt,
    parse_final_script,
    parse_keywords,
    parse_mood,
    parse_quote,
    parse_style_match,
    parse_title,
)

__all__ = [
    "get_story_system_prompt",
    "get_story_user_prompt",
    "parse_story_line",
    "word_count_guidance",
    "get_duologue_system_prompt",
    "get_duologue_user_prompt",
    "ANALYSIS_SYSTEM_PROMPT",
    "format_transcript_for_script",
    "get_final_script_prompt",
    "get_keywords_prompt",
    "get_mood_prompt",
    "get_quote_prompt",
    "get_style_match_prompt",
    "get_title_prompt",
    "parse_final_script",
    "parse_keywords",
    "parse_mood",
    "parse_quote",
    "parse_style_match",
    "parse_title",
]
