"""Rule-based routing of a query to the retrieval path or the agent path."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

QueryMode = Literal["informational", "actionable"]

OUT_OF_SCOPE_ANSWER = (
    "I'm sorry, but I can only help with questions related to your projects, tasks, "
    "team, and organization data. Is there anything about your work I can help you with?"
)

ACTION_VERBS: tuple[str, ...] = (
    "create", "add", "make",
    "update", "change", "modify", "edit",
    "delete", "remove", "cancel",
    "send", "notify", "message",
    "assign", "reassign", "move", "transfer",
    "set", "configure",
    "schedule", "book",
    "invite", "join",
    "mark", "publish", "post",
)

# Verbs that name their own target ("notify Sarah").
_VERB_TARGETS: dict[str, str] = {
    "notify": "notification",
    "message": "communication",
    "invite": "workforceManagement",
}

_VERB_SET = frozenset(ACTION_VERBS)

# Polite or modal openers that may precede an imperative ("could you add ...").
_LEADS: tuple[tuple[str, ...], ...] = (
    ("please",),
    ("kindly",),
    ("can", "you"),
    ("could", "you"),
    ("would", "you"),
    ("will", "you"),
    ("i", "want", "to"),
    ("i", "need", "to"),
    ("i", "d", "like", "to"),
    ("i", "would", "like", "to"),
    ("let", "s"),
    ("go", "ahead", "and"),
)
_CLAUSE_JOINERS = frozenset({"and", "then", "also"})

CATEGORY_NOUNS: dict[str, tuple[str, ...]] = {
    "projectManagement": ("project", "task", "milestone", "todo", "deadline", "sprint"),
    "clientManagement": ("client", "customer", "proposal", "quote"),
    "workforceManagement": ("team", "member", "teammate", "skill", "employee", "staff"),
    "communication": ("message", "channel", "announcement", "chat", "dm"),
    "notification": ("notification", "reminder", "alert"),
    "knowledgeHub": ("document", "doc", "wiki", "page", "article", "note"),
}

_BLOCKED_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"politic",
        r"religio",
        r"medical advice",
        r"legal advice",
        r"investment advice",
        r"\bstocks?\b",
        r"crypto",
    )
)

_AGGREGATE_PATTERN = re.compile(
    r"how many|count|total|number of|statistics|stats|overview", re.IGNORECASE
)
_PERSONAL_PATTERN = re.compile(
    r"\b(my|me|i|myself|who am i|do you know me)\b", re.IGNORECASE
)
_WORD_PATTERN = re.compile(r"[a-z]+")


@dataclass(frozen=True, slots=True)
class Classification:
    mode: QueryMode
    categories: tuple[str, ...] = ()
    matched_verbs: tuple[str, ...] = ()

    @property
    def is_actionable(self) -> bool:
        return self.mode == "actionable"


def classify(query: str, available_categories: Iterable[str]) -> Classification:
    """Classify a query as actionable or informational.

    A query is actionable only when it opens with an imperative action verb
    (optionally after a polite lead such as "please" or "can you") and names a
    target that maps to one of `available_categories`. Questions, nouns that
    look like verbs ("any updates", "recent changes") and names ("Mark") fall
    through to informational.
    """

    words = _WORD_PATTERN.findall(query.lower())
    available = list(dict.fromkeys(available_categories))

    verbs = _imperative_verbs(words)
    if not verbs:
        return Classification(mode="informational")

    targeted = {_VERB_TARGETS[verb] for verb in verbs if verb in _VERB_TARGETS}
    for category, nouns in CATEGORY_NOUNS.items():
        if any(_has_noun(words, noun) for noun in nouns):
            targeted.add(category)

    categories = tuple(category for category in available if category in targeted)
    if not categories:
        return Classification(mode="informational", matched_verbs=verbs)
    return Classification(mode="actionable", categories=categories, matched_verbs=verbs)


def is_in_scope(query: str) -> bool:
    return not any(pattern.search(query) for pattern in _BLOCKED_PATTERNS)


def wants_overview(query: str) -> bool:
    """Aggregate or personal questions need the organization overview."""
    return bool(_AGGREGATE_PATTERN.search(query) or _PERSONAL_PATTERN.search(query))


def _imperative_verbs(words: list[str]) -> tuple[str, ...]:
    clause = _strip_leads(words)
    if not clause or clause[0] not in _VERB_SET:
        return ()
    found = {clause[0]}
    # Later clauses count too: "create a task and notify the team".
    for i, word in enumerate(words):
        if word in _CLAUSE_JOINERS:
            rest = _strip_leads(words[i + 1 :])
            if rest and rest[0] in _VERB_SET:
                found.add(rest[0])
    return tuple(verb for verb in ACTION_VERBS if verb in found)


def _strip_leads(words: list[str]) -> list[str]:
    stripped = True
    while stripped:
        stripped = False
        for lead in _LEADS:
            if tuple(words[: len(lead)]) == lead:
                words = words[len(lead) :]
                stripped = True
    return words


def _has_noun(words: list[str], noun: str) -> bool:
    forms = {noun, f"{noun}s", f"{noun}es"}
    return any(word in forms for word in words)
