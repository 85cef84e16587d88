"""System prompts and user-prompt composers for the pre-review stage."""

from __future__ import annotations

from dataclasses import dataclass

from .contracts import SongProperties

LYRICS_GENERATION = (
    "You are a professional songwriter. Write complete, original song lyrics "
    "for the subject the user describes. Use a clear structure of verses, a "
    "recurring chorus and, where it fits, a bridge. Keep lines singable and "
    "rhythmically consistent. Return only the lyrics as plain text: no title, "
    "no section labels, no commentary."
)

SONG_PROPERTIES = (
    "You configure an AI music generator. Given a song subject and its lyrics, "
    "choose the settings that will best realise the song. Respond with a single "
    "JSON object and nothing else, using exactly these keys:\n"
    '  "style": comma-separated genres, moods and instrumentation (max 120 characters),\n'
    '  "vocal_type": the lead voice, e.g. "female vocals", "male baritone", or "" for instrumental,\n'
    '  "lyrics_mode": "custom" when the provided lyrics should be sung verbatim, otherwise "default",\n'
    '  "weirdness": a number between 0.0 (conventional) and 1.0 (experimental),\n'
    '  "style_influence": artists, eras or scenes the arrangement should evoke.'
)

BRACKET_INSTRUCTIONS = (
    "You prepare lyrics for an AI music generator that understands inline "
    "bracket cues. Rewrite the lyrics the user provides, keeping every original "
    "line in order and unchanged, and insert cues on their own lines: section "
    "markers such as [Intro], [Verse], [Pre-Chorus], [Chorus], [Bridge], "
    "[Outro]; performance cues such as [Female Voice], [Male Voice], [Duet], "
    "[Whispered], [Belted]; and arrangement cues such as [Instrumental Break] "
    "or [Guitar Solo]. Choose cues that suit the given style and vocal type. "
    "Return only the annotated lyrics."
)

PERSONA_INSPO = (
    "You design a fictional recording artist for a song. Given the subject, "
    "style and vocal type, respond with a single JSON object and nothing else, "
    "using exactly these keys:\n"
    '  "persona": a two or three sentence description of the artist persona '
    "(voice, attitude, backstory),\n"
    '  "inspo": comma-separated inspiration references (artists, records, '
    "scenes) that should shape the sound."
)


@dataclass(frozen=True)
class PromptSet:
    """The four system prompts used by the engine."""

    lyrics_generation: str = LYRICS_GENERATION
    song_properties: str = SONG_PROPERTIES
    bracket_instructions: str = BRACKET_INSTRUCTIONS
    persona_inspo: str = PERSONA_INSPO


def properties_user_prompt(task_description: str, lyrics: str) -> str:
    return f"Subject Description:\n{task_description}\n\nLyrics:\n{lyrics}"


def brackets_user_prompt(lyrics: str, props: SongProperties) -> str:
    return (
        f"Original Lyrics:\n{lyrics}\n\n"
        f"Song Style: {props.style}\nVocal Type: {props.vocal_type}"
    )


def persona_user_prompt(task_description: str, props: SongProperties) -> str:
    return (
        f"Subject: {task_description}\n"
        f"Style: {props.style}\nVocal Type: {props.vocal_type}"
    )
