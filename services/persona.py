# FILE: services/persona.py
"""
Persona wording

Wraps factual answers in the assistant persona's voice. Which variant line
is used is chosen with a seeded FNV-1a hash, so a session always picks the
same line for the same answer, and different sessions vary.
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from core.metric import QueryIntent
from models.query import Answer, AnswerKind, Query, Suggestion

FNV_OFFSET_BASIS = 0xCBF29CE484222325
FNV_PRIME = 0x100000001B3
_UINT64_MASK = 0xFFFFFFFFFFFFFFFF


def fnv1a64(text: str) -> int:
    """64-bit FNV-1a over the UTF-8 bytes of `text`."""
    value = FNV_OFFSET_BASIS
    for byte in text.encode("utf-8"):
        value ^= byte
        value = (value * FNV_PRIME) & _UINT64_MASK
    return value


def stable_index(upper_bound: int, key: str, session_seed: int) -> int:
    if upper_bound <= 0:
        return 0
    index = fnv1a64(f"{session_seed}|{key}") % upper_bound
    return min(max(0, index), upper_bound - 1)


def new_session_seed() -> int:
    return random.getrandbits(64)


# -----------------------------
# Catalog
# -----------------------------
class PersonaID(str, Enum):
    MARINA = "marina"


DEFAULT_PERSONA = PersonaID.MARINA


@dataclass(frozen=True)
class PersonaProfile:
    id: PersonaID
    display_name: str
    summary: str
    greeting_title: str
    greeting_subtitle: str
    no_data_title: str
    no_data_subtitle: str
    unresolved_title: str
    unresolved_subtitle: str
    preview_lines: Tuple[str, ...] = ()


PROFILES: Dict[PersonaID, PersonaProfile] = {
    PersonaID.MARINA: PersonaProfile(
        id=PersonaID.MARINA,
        display_name="Marina",
        summary="Grounded, quick, practical, and bestie energy.",
        greeting_title="Hi, I’m Marina.",
        greeting_subtitle="Ask me for quick answers from your budget data.",
        no_data_title="No activity in this range yet.",
        no_data_subtitle="Try a different date range or add more transactions.",
        unresolved_title="I can help with that once I have a clearer budgeting prompt.",
        unresolved_subtitle="Try asking about spend totals, top categories, month-over-month change, or largest transactions.",
        preview_lines=(
            "Bestie check: You spent $1,350 this month. We can work with that.",
            "Top category is Dining at $420. Let's keep it cute and grounded.",
        ),
    ),
}


def profile_for(persona: PersonaID) -> PersonaProfile:
    return PROFILES[persona]


@dataclass(frozen=True)
class PersonaLines:
    response: Dict[AnswerKind, Tuple[str, ...]]
    no_data: Tuple[str, ...]
    unresolved: Tuple[str, ...]
    greeting: Tuple[str, ...]
    follow_up_leads: Tuple[str, ...] = field(default=("Next:",))

    @classmethod
    def fallback(cls, profile: PersonaProfile) -> "PersonaLines":
        return cls(
            response={kind: (profile.summary,) for kind in AnswerKind},
            no_data=(profile.no_data_subtitle,),
            unresolved=(profile.unresolved_subtitle,),
            greeting=(profile.greeting_subtitle,),
            follow_up_leads=("Next:",),
        )


PERSONA_COPY: Dict[PersonaID, PersonaLines] = {
    PersonaID.MARINA: PersonaLines(
        response={
            AnswerKind.METRIC: (
                "Here's the number, no fluff.",
                "Quick read on that one.",
                "Okay, bestie, here's where it landed.",
            ),
            AnswerKind.LIST: (
                "Here's the lineup.",
                "Ranked and ready for you.",
                "These are the ones doing the most.",
            ),
            AnswerKind.COMPARISON: (
                "Side by side, here's the shift.",
                "Here's how it moved.",
                "Let's see what changed.",
            ),
            AnswerKind.MESSAGE: (
                "Here's what I've got.",
                "Quick heads-up.",
            ),
        },
        no_data=(
            "Try a different date range or add more transactions.",
            "Nothing logged here yet. Try another range.",
        ),
        unresolved=(
            "Try asking about spend totals, top categories, month-over-month change, or largest transactions.",
            "Ask me something like \"top 3 categories this month\" or \"compare with last month\".",
        ),
        greeting=(
            "Ask me for quick answers from your budget data.",
            "What are we checking today?",
        ),
        follow_up_leads=("Next:", "Try:", "Also:"),
    ),
}


def lines_for(persona: PersonaID) -> PersonaLines:
    return PERSONA_COPY.get(persona) or PersonaLines.fallback(profile_for(persona))


# -----------------------------
# Formatter
# -----------------------------
def _confidence_cue(answer: Answer) -> str:
    subtitle = (answer.subtitle or "").lower()
    if "best-effort" in subtitle:
        return "low"
    if "likely match" in subtitle:
        return "medium"
    return "high"


def _composed_subtitle(persona_line: Optional[str], facts: Optional[str]) -> Optional[str]:
    if persona_line and facts:
        return f"{persona_line}\n\nSources: {facts}"
    if persona_line:
        return persona_line
    if facts:
        return f"Sources: {facts}"
    return None


class PersonaFormatter:
    def __init__(self, persona: PersonaID = DEFAULT_PERSONA, session_seed: Optional[int] = None):
        self.persona = persona
        self.session_seed = new_session_seed() if session_seed is None else session_seed

    @property
    def profile(self) -> PersonaProfile:
        return profile_for(self.persona)

    def pick(self, options: Sequence[str], key: str) -> Optional[str]:
        if not options:
            return None
        return options[stable_index(len(options), key, self.session_seed)]

    # -----------------------------
    # Answers
    # -----------------------------
    def greeting(self) -> Answer:
        line = self.pick(lines_for(self.persona).greeting, f"greeting.{self.persona.value}")
        return Answer(
            kind=AnswerKind.MESSAGE,
            title=self.profile.display_name,
            subtitle=f"{self.profile.summary} {line or self.profile.greeting_subtitle}",
        )

    def unresolved(self, prompt: str) -> Answer:
        key = f"unresolved.{self.persona.value}.{prompt.strip().lower()}"
        line = self.pick(lines_for(self.persona).unresolved, key)
        return Answer(
            kind=AnswerKind.MESSAGE,
            user_prompt=prompt,
            title=self.profile.unresolved_title,
            subtitle=line or self.profile.unresolved_subtitle,
        )

    def styled_answer(self, answer: Answer, user_prompt: Optional[str] = None) -> Answer:
        lines = lines_for(self.persona)
        persona = self.persona.value

        if answer.is_empty_message:
            title = self.profile.no_data_title
            facts = self.pick(lines.no_data, f"nodata.{persona}.{answer.id}") or self.profile.no_data_subtitle
        else:
            title = answer.title
            facts = answer.subtitle

        persona_line = self.pick(
            lines.response.get(answer.kind, ()), f"response.{persona}.{answer.kind.value}.{answer.id}"
        )
        return answer.model_copy(
            update={
                "user_prompt": user_prompt,
                "title": title,
                "subtitle": _composed_subtitle(persona_line, facts),
            }
        )

    # -----------------------------
    # Follow-ups
    # -----------------------------
    def follow_up_suggestions(self, answer: Answer) -> List[Suggestion]:
        actions = self._follow_up_actions(answer)
        return [
            Suggestion(title=self._follow_up_title(action, answer.id, slot), query=query)
            for slot, (action, query) in enumerate(actions)
        ]

    def _follow_up_title(self, action: str, answer_id: str, slot: int) -> str:
        key = f"followup.{self.persona.value}.{answer_id}.{slot}.{action}"
        lead = self.pick(lines_for(self.persona).follow_up_leads, key)
        return f"{lead} {action}" if lead else action

    @staticmethod
    def _follow_up_actions(answer: Answer) -> List[Tuple[str, Query]]:
        def q(intent: QueryIntent, limit: Optional[int] = None) -> Query:
            return Query(intent=intent, result_limit=limit)

        cue = _confidence_cue(answer)
        if cue == "low":
            return [
                ("Spend this month", q(QueryIntent.SPEND_THIS_MONTH)),
                ("Top categories this month", q(QueryIntent.TOP_CATEGORIES_THIS_MONTH, 3)),
            ]
        if cue == "medium":
            return [
                ("Top 3 categories this month", q(QueryIntent.TOP_CATEGORIES_THIS_MONTH, 3)),
                ("Compare with last month", q(QueryIntent.COMPARE_THIS_MONTH_TO_PREVIOUS_MONTH)),
            ]

        title = answer.title.lower()
        if "savings" in title:
            return [
                ("Compare with last month", q(QueryIntent.COMPARE_THIS_MONTH_TO_PREVIOUS_MONTH)),
                ("Average savings for last 6 months", q(QueryIntent.SAVINGS_AVERAGE_RECENT_PERIODS, 6)),
            ]
        if "income share" in title:
            return [
                ("Income share this month", q(QueryIntent.INCOME_SOURCE_SHARE)),
                ("Average actual income this year", q(QueryIntent.INCOME_AVERAGE_ACTUAL)),
            ]
        if "category spend share" in title:
            return [
                ("Top categories this month", q(QueryIntent.TOP_CATEGORIES_THIS_MONTH, 5)),
                ("Largest transactions this month", q(QueryIntent.LARGEST_RECENT_TRANSACTIONS, 5)),
            ]
        if "budget overview" in title:
            return [
                ("Variable spending habits by card", q(QueryIntent.CARD_VARIABLE_SPENDING_HABITS)),
                ("Top categories this month", q(QueryIntent.TOP_CATEGORIES_THIS_MONTH, 5)),
            ]

        by_kind = {
            AnswerKind.METRIC: [
                ("Top 3 categories this month", q(QueryIntent.TOP_CATEGORIES_THIS_MONTH, 3)),
                ("Compare with last month", q(QueryIntent.COMPARE_THIS_MONTH_TO_PREVIOUS_MONTH)),
            ],
            AnswerKind.LIST: [
                ("Spend this month", q(QueryIntent.SPEND_THIS_MONTH)),
                ("Largest 5 transactions", q(QueryIntent.LARGEST_RECENT_TRANSACTIONS, 5)),
            ],
            AnswerKind.COMPARISON: [
                ("Top 5 categories this month", q(QueryIntent.TOP_CATEGORIES_THIS_MONTH, 5)),
                ("Largest transactions this month", q(QueryIntent.LARGEST_RECENT_TRANSACTIONS)),
            ],
            AnswerKind.MESSAGE: [
                ("Spend this month", q(QueryIntent.SPEND_THIS_MONTH)),
                ("Top categories this month", q(QueryIntent.TOP_CATEGORIES_THIS_MONTH)),
            ],
        }
        return by_kind[answer.kind]
