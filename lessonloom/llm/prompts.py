"""Prompt template library for generation stages.

Responsibilities:
- Centralize prompt construction for outline, theory, flashcard, quiz, and podcast steps.
- Describe the JSON shape each structured stage expects back.
"""

from __future__ import annotations

from collections.abc import Sequence


HOST_SPEAKER = "Host"
EXPERT_SPEAKER = "Expert"

_MARKDOWN_RULES = (
    "Formatting rules:\n"
    "- Use valid standard Markdown.\n"
    "- Use backticks for inline code and fenced blocks with a language tag for multi-line code.\n"
    "- Use LaTeX for math: $...$ inline and $$...$$ for blocks.\n"
)


def _bullet_list(items: Sequence[str]) -> str:
    return "\n".join(f'- "{item}"' for item in items)


class PromptLibrary:
    """Build prompt strings for supported generation stages."""

    def outline_prompt(self, topic: str, language: str) -> str:
        return (
            "You are an expert curriculum designer. Create a logical, well-ordered outline "
            f'of chapters for learning the topic "{topic}". Write the chapter titles in '
            f"{language}. Order chapters from fundamentals to advanced material.\n\n"
            'Respond with a JSON object of the form {"outline": ["Chapter title", ...]}. '
            "Do not number the titles."
        )

    def chapter_prompt(self, topic: str, chapter_title: str, language: str) -> str:
        return (
            "You are a professional educator writing one chapter of a larger document.\n\n"
            f'Overall topic: "{topic}"\n'
            f'Chapter to write: "{chapter_title}"\n'
            f"Language: {language}\n\n"
            "Explain the concepts thoroughly. Use headings starting at level 2, bullet points, "
            "tables, and examples where they help.\n\n"
            f"{_MARKDOWN_RULES}"
            "Return raw Markdown only. Do not wrap the response in a code block."
        )

    def flashcards_prompt(
        self,
        topic: str,
        chapter_title: str,
        chapter_content: str,
        language: str,
        count: int,
        existing_fronts: Sequence[str] = (),
    ) -> str:
        existing = ""
        if existing_fronts:
            existing = (
                "These cards already exist. Do not repeat them or ask near-duplicates:\n"
                f"{_bullet_list(existing_fronts)}\n\n"
            )
        return (
            f'Create {count} flashcards in {language} for the topic "{topic}", based only on '
            "the chapter below. Each card has a short prompt on the front and a precise "
            "answer on the back.\n\n"
            f"Chapter: {chapter_title}\n\n{chapter_content}\n\n"
            f"{existing}"
            f"{_MARKDOWN_RULES}"
            'Respond with a JSON object of the form {"cards": [{"front": "...", "back": "..."}]}.'
        )

    def quiz_prompt(
        self,
        topic: str,
        chapter_title: str,
        chapter_content: str,
        language: str,
        count: int,
        existing_questions: Sequence[str] = (),
    ) -> str:
        existing = ""
        if existing_questions:
            existing = (
                "These questions already exist. Do not repeat them:\n"
                f"{_bullet_list(existing_questions)}\n\n"
            )
        return (
            f"Write a {count}-question multiple-choice quiz in {language} for the topic "
            f'"{topic}", based only on the chapter below. Each question has exactly 4 '
            "options, one correct answer copied verbatim from the options, and an "
            "explanation. Options carry no leading labels such as 'A)' or 'B.'.\n\n"
            f"Chapter: {chapter_title}\n\n{chapter_content}\n\n"
            f"{existing}"
            f"{_MARKDOWN_RULES}"
            "Respond with a JSON object of the form "
            '{"questions": [{"question": "...", "options": ["...", "...", "...", "..."], '
            '"answer": "...", "explanation": "..."}]}.'
        )

    def podcast_script_prompt(
        self,
        topic: str,
        chapter_title: str,
        chapter_content: str,
        language: str,
    ) -> str:
        return (
            "You are a professional podcast writer. Turn the theory below into an engaging "
            f'conversation between "{HOST_SPEAKER}" and "{EXPERT_SPEAKER}".\n\n'
            f'Main topic: "{topic}"\n'
            f'Current chapter: "{chapter_title}"\n'
            f"Language: {language}\n\n"
            f"Theory:\n---\n{chapter_content}\n---\n\n"
            "Script rules:\n"
            f"1. Start with a greeting from {HOST_SPEAKER}.\n"
            f"2. {HOST_SPEAKER} asks questions and leads the conversation.\n"
            f"3. {EXPERT_SPEAKER} answers using the theory above.\n"
            "4. Put every line on its own row in the exact form `Speaker: line`.\n"
            f"5. End with a goodbye from {HOST_SPEAKER}.\n"
            "Return only the script text."
        )

    def audio_prompt(self, script: str) -> str:
        return f"Read this conversation aloud, keeping each speaker's voice:\n\n{script}"
