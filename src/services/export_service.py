"""
Export service for converting finished stories to various formats.

Supports export to:
- JSON: Full analysis record with transcript
- Markdown: Human-readable story card
- CSV: One row per transcript turn
- Share text: Short blurb for social sharing
"""

import csv
import json
from datetime import datetime, timezone
from io import StringIO
from typing import Any, Dict, Optional

import structlog

from src.domain.models.analysis import AnalysisRecord
from src.domain.models.story import StoredStory

log = structlog.get_logger(__name__)

SUPPORTED_FORMATS = ("json", "markdown", "md", "csv")
SHARE_PREFIX = "My Storyloom Story"


class ExportService:
    """
    Service for exporting stories to various formats.

    Usage:
        service = ExportService()
        json_str = service.export_analysis(record, "json")
        md_str = service.export_story(stored_story, "markdown")
    """

    def export_analysis(self, record: AnalysisRecord, format: str = "json") -> str:
        """
        Export a session's analysis record.

        Args:
            record: Completed analysis record
            format: One of "json", "markdown", "csv"

        Returns:
            Exported data as string

        Raises:
            ValueError: If format is not supported
        """
        return self._export(self._collect_analysis_data(record), format)

    def export_story(self, story: StoredStory, format: str = "json") -> str:
        """Export a saved story (no transcript is stored, so CSV has no rows)."""
        return self._export(self._collect_story_data(story), format)

    def share_text(self, title: str, quote_banner: Optional[str] = None) -> str:
        """Short share blurb: title, then the quote banner when there is one."""
        text = f'{SHARE_PREFIX}: "{title}"'
        if quote_banner:
            text += f"\n\n{quote_banner}"
        return text

    def _export(self, data: Dict[str, Any], format: str) -> str:
        fmt = format.lower()
        bound_log = log.bind(story_id=data["metadata"]["story_id"], format=fmt)

        if fmt not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported export format: {format}")

        if fmt == "json":
            result = self._export_json(data)
        elif fmt in ("markdown", "md"):
            result = self._export_markdown(data)
        else:
            result = self._export_csv(data)

        bound_log.info("export_complete", output_length=len(result))
        return result

    def _collect_analysis_data(self, record: AnalysisRecord) -> Dict[str, Any]:
        return {
            "metadata": {
                "story_id": record.persisted_id,
                "genre": record.genre.value,
                "game_mode": record.game_mode.value,
                "exported_at": datetime.now(timezone.utc).isoformat(),
            },
            "analysis": {
                "title": record.title,
                "quote_banner": record.quote_banner,
                "mood": record.mood.primary_emotion.value,
                "mood_confidence": record.mood.confidence_score,
                "style_primary": record.style.primary_match,
                "style_secondary": record.style.secondary_match,
                "famous_quote": (
                    record.famous_quote.model_dump() if record.famous_quote else None
                ),
                "keywords": list(record.keywords),
            },
            "final_script": record.final_script,
            "transcript": [
                {
                    "turn_number": i,
                    "speaker": turn.label,
                    "text": turn.text,
                    "is_paste": turn.is_paste,
                }
                for i, turn in enumerate(record.transcript)
            ],
        }

    def _collect_story_data(self, story: StoredStory) -> Dict[str, Any]:
        return {
            "metadata": {
                "story_id": story.id,
                "genre": story.genre.value,
                "game_mode": story.game_mode.value,
                "created_at": story.created_at.isoformat(),
                "expire_at": story.expire_at.isoformat(),
                "exported_at": datetime.now(timezone.utc).isoformat(),
            },
            "analysis": {
                "title": story.title,
                "quote_banner": story.quote_banner,
                "mood": story.mood,
                "mood_confidence": None,
                "style_primary": story.style_match,
                "style_secondary": None,
                "famous_quote": None,
                "keywords": list(story.keywords),
            },
            "final_script": story.content,
            "transcript": [],
        }

    def _export_json(self, data: Dict[str, Any]) -> str:
        """Export to JSON format."""
        return json.dumps(data, indent=2, default=str)

    def _export_markdown(self, data: Dict[str, Any]) -> str:
        """Export to human-readable Markdown format."""
        meta = data["metadata"]
        analysis = data["analysis"]
        lines = [f"# {analysis['title']}", ""]

        if analysis.get("quote_banner"):
            lines.append(f"> {analysis['quote_banner']}")
            lines.append("")

        lines.append(f"**Genre:** {meta['genre']}")
        lines.append(f"**Mode:** {meta['game_mode']}")
        if analysis.get("mood"):
            mood = analysis["mood"]
            if analysis.get("mood_confidence") is not None:
                mood += f" ({analysis['mood_confidence']:.0%})"
            lines.append(f"**Mood:** {mood}")
        if analysis.get("style_primary"):
            style = analysis["style_primary"]
            if analysis.get("style_secondary"):
                style += f", then {analysis['style_secondary']}"
            lines.append(f"**Writes like:** {style}")
        if analysis["keywords"]:
            lines.append(f"**Keywords:** {', '.join(analysis['keywords'])}")
        lines.append("")

        famous = analysis.get("famous_quote")
        if famous:
            lines.append(f"*\"{famous['quote']}\"* ({famous['author']})")
            lines.append("")

        lines.append("## Story")
        lines.append("")
        lines.append(data["final_script"])
        lines.append("")

        if data["transcript"]:
            lines.append("## Transcript")
            lines.append("")
            for turn in data["transcript"]:
                lines.append(f"- **{turn['speaker']}:** {turn['text']}")
            lines.append("")

        lines.append("---")
        lines.append(f"*Exported on {meta['exported_at']}*")
        lines.append("")
        return "\n".join(lines)

    def _export_csv(self, data: Dict[str, Any]) -> str:
        """Export transcript turns as CSV rows."""
        output = StringIO()
        writer = csv.writer(output)
        writer.writerow(["turn_number", "speaker", "text", "is_paste"])
        for turn in data["transcript"]:
            writer.writerow(
                [turn["turn_number"], turn["speaker"], turn["text"], turn["is_paste"]]
            )
        return output.getvalue()
