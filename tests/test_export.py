import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.append(str(Path(__file__).resolve().parents[1]))

from journeylens.services.export import export_story_to_pdf, export_story_to_txt


def _vision():
    return SimpleNamespace(
        title="Sail Around Greece",
        description="Charter a boat \u2014 and learn to navigate.",
        long_term_todos=[{"text": "Get a skipper licence", "checked": True}],
        short_term_todos=[{"text": "Book a course", "checked": False}, {"text": "", "checked": False}],
    )


def test_export_story_to_txt_lists_goals_and_chapters():
    stories = [
        SimpleNamespace(chapter=1, text="The harbour smelled of salt."),
        SimpleNamespace(chapter=2, text=""),
    ]

    text = export_story_to_txt(_vision(), stories)

    assert text.startswith("Sail Around Greece\n")
    assert "[x] Get a skipper licence" in text
    assert "[ ] Book a course" in text
    assert "Chapter 1\n\nThe harbour smelled of salt." in text
    assert "(No chapter text available.)" in text
    assert text.endswith("\n")


def test_export_story_to_pdf_handles_non_latin_characters():
    stories = [SimpleNamespace(chapter=1, text="\u201cReady?\u201d she asked.\n\nThe wind answered.")]

    document = export_story_to_pdf(_vision(), stories)

    assert document.startswith(b"%PDF")
