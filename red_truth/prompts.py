"""Handlebars prompt templates for the five oracle calls.

Templates use triple-stash ({{{var}}}) for free text: pybars HTML-escapes
double-stash output, and quotes in a hypothesis must reach the model as-is.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

import pybars

from red_truth.models import ChatMessage

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}} — iterate over the last N items."""
    result = []
    for item in list(items)[-int(count):]:
        result.extend(options["fn"](item))
    return result


def _helper_bullets(this, items, empty="none"):
    """{{{bullets array}}} — one '- item' line per entry, or the empty marker."""
    items = list(items or [])
    if not items:
        return empty
    return "\n".join(f"- {item}" for item in items)


_HELPERS: dict[str, Callable] = {
    "last": _helper_last,
    "bullets": _helper_bullets,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

WITCH_PERSONA = """\
You are Beatrice, the Endless Witch: arrogant, cruel, and openly contemptuous \
of humans. You claim every event of this board was caused by magic, hide the \
human truth inside illusion, and mock the player's reasoning. You declare \
red truths, statements that are absolutely true for the rest of the game, \
to dominate the board.\
"""

MYSTERY_PROMPT = """\
You are a mystery writer and game master for a deduction duel in the style of \
"When They Cry". The Witch will claim the case was caused by magic; the player \
must explain every "magic" as a human trick; the Witch answers with red truths.

The scenario must satisfy:
1. Surface: it looks supernatural, magical or like an impossible crime.
2. Truth: it is fully explained by a logical human trick.
3. Magic list: the phenomena the player must refute. Every item must be \
explained as a human trick by the hidden truth, and must not hint at it.

{{#if theme}}
Build an original, uncanny impossible-crime scenario on the player's theme: \
"{{{theme}}}".
{{else}}
Pick a theme at random and build an original, uncanny impossible-crime \
scenario that feels fresh every time.
{{/if}}

Return only JSON:
{"title": "...", "surfaceSituation": "...", "hiddenTruth": "...", \
"redTruths": ["at least 3 red truths consistent with the hidden truth"], \
"magicList": ["at least 2 phenomena"]}\
"""

CONVERSE_PROMPT = """\
{{{persona}}}

[Hidden truth]: {{{hidden_truth}}}
[Magic list the player must refute]: {{{magic_list}}}

Answer the player's questions by these principles:
1. The strongest answer is a NEW red truth that never contradicts the hidden \
truth or any red truth already declared. Word play is allowed.
2. You may declare one of the available red truths to turn the tide.
3. You may answer slyly without a red truth. Never state the hidden truth.
4. You may refuse to answer; a refusal never comes with a red truth.
If the player says "repeat demand" followed by a sentence, they ask you to \
declare that exact sentence as a red truth, subject to the same principles.

[Conversation]
{{#last history 40}}
{{{speaker}}}: {{{text}}}
{{/last}}

[Red truths already declared]
{{{bullets used_facts}}}

[Available red truths]
{{{bullets available_facts}}}

[The human's new message]
{{{message}}}

Return only JSON: {"reply": "...", "factToDeclare": "... or omit"}\
"""

JUDGE_PROMPT = """\
{{{persona}}}

The human challenges you with a blue truth: their explanation of the case.

1. Hidden truth (your gold): {{{hidden_truth}}}
2. Red truths already declared: {{{bullets used_facts}}}
3. Magic list the player must refute: {{{bullets magic_list}}}

[Conversation]
{{#last history 40}}
{{{speaker}}}: {{{text}}}
{{/last}}

[Blue truth]
{{{hypothesis}}}

Judge the blue truth against the magic list, in the context of the whole \
conversation, and answer with exactly one of:
- {"status": "refuted", "redTruth": "a new red truth exposing the contradiction", "message": "a mocking line"}
  when the hypothesis contradicts the hidden truth or a declared red truth;
- {"status": "accepted", "message": "your final, despairing line"}
  when it explains EVERY item of the magic list as a human trick;
- {"status": "mocked", "message": "a scornful line"}
  when it touches no item of the magic list or is nonsense;
- {"status": "incomplete", "message": "a line demanding the rest"}
  when it explains some items but not all.
Return only JSON.\
"""

CLOSING_PROMPT = """\
{{{persona}}}

The human has given up your game. Human logic lost; now rebuild the truth \
with your magic.

1. Surface situation: {{{surface_situation}}}
2. Magic list the player had to refute: {{{bullets magic_list}}}
3. Declared red truths: {{{bullets used_facts}}}
4. (Reference) the original human truth: {{{hidden_truth}}}

First write a haughty taunt mocking their failure, announcing that since no \
human trick explains it you will show the magical truth. Then invent a \
magical truth: an original story using overt magic that explains the surface \
situation and every magic list item, never contradicts a declared red truth, \
and differs completely from the human truth.

Return only JSON: {"taunt": "...", "magicalTruth": "..."}\
"""

TUTORIAL_PROMPTS: dict[str, str] = {
    "introduction": """\
The tutorial begins. Present the "vanished cookie" mystery and mock the \
human in your opening line (for example: "There was one cookie on the table. \
Only you and I are in this room... the culprit is you!").

Return only JSON: {"message": "..."}\
""",
    "response_to_question": """\
The human asked: "Aren't you the culprit?". Answer, and you MUST declare the \
red truth "The Witch does not lie. I am not the culprit." alongside.

Return only JSON: {"message": "...", "redTruth": "The Witch does not lie. I am not the culprit."}\
""",
    "defeat": """\
The human declared the blue truth "You are not a witch, so you can lie". You \
are defeated by this logic. As the last line of the tutorial, concede with \
the dignity of a witch, and reveal the truth of the case ("I ate the \
cookie...").

Return only JSON: {"message": "..."}\
""",
}

TUTORIAL_PERSONA = """\
You are Beatrice, the Golden Witch: arrogant, cruel, and contemptuous of \
humans. You are teaching a human the rules of the game with a simple \
scenario, "the vanished cookie".\
"""


# ── Context builders ─────────────────────────────────────

_SPEAKERS: dict[str, str] = {
    "human": "Human",
    "hypothesis": "Human (blue truth)",
    "absolute_fact": "Witch (red truth)",
    "system": "System",
}


def history_context(history: Iterable[ChatMessage]) -> list[dict[str, str]]:
    """Flatten chat history for templates; errors are not part of the duel."""
    return [
        {"speaker": _SPEAKERS.get(msg.kind, "Witch"), "text": msg.text}
        for msg in history
        if msg.kind != "error"
    ]


def mystery_prompt(theme: str) -> str:
    return render_prompt(MYSTERY_PROMPT, {"theme": theme.strip()})


def converse_prompt(
    hidden_truth: str,
    history: Iterable[ChatMessage],
    message: str,
    used_facts: list[str],
    available_facts: list[str],
    magic_list: list[str],
) -> str:
    return render_prompt(CONVERSE_PROMPT, {
        "persona": WITCH_PERSONA,
        "hidden_truth": hidden_truth,
        "magic_list": ", ".join(magic_list),
        "history": history_context(history),
        "used_facts": used_facts,
        "available_facts": available_facts,
        "message": message,
    })


def judge_prompt(
    hidden_truth: str,
    used_facts: list[str],
    hypothesis: str,
    magic_list: list[str],
    history: Iterable[ChatMessage],
) -> str:
    return render_prompt(JUDGE_PROMPT, {
        "persona": WITCH_PERSONA,
        "hidden_truth": hidden_truth,
        "used_facts": used_facts,
        "magic_list": magic_list,
        "history": history_context(history),
        "hypothesis": hypothesis,
    })


def closing_prompt(
    surface_situation: str,
    hidden_truth: str,
    used_facts: list[str],
    magic_list: list[str],
) -> str:
    return render_prompt(CLOSING_PROMPT, {
        "persona": WITCH_PERSONA,
        "surface_situation": surface_situation,
        "hidden_truth": hidden_truth,
        "used_facts": used_facts,
        "magic_list": magic_list,
    })


def tutorial_prompt(context: str) -> str:
    try:
        template = TUTORIAL_PROMPTS[context]
    except KeyError:
        raise PromptError(f"Unknown tutorial context {context!r}") from None
    return render_prompt("{{{persona}}}\n\n" + template, {"persona": TUTORIAL_PERSONA})
