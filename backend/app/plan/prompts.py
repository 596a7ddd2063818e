from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..schemas import MentorMessage, PlanInputs
from .sections import SECTION_KEYS

Message = Dict[str, str]

# language code -> (language name, currency)
LANGUAGES: Dict[str, Tuple[str, str]] = {
    "en": ("English", "USD"),
    "id": ("Indonesian", "IDR"),
}


def join_prompt_parts(parts: Iterable[Optional[str]]) -> str:
    cleaned: List[str] = []
    for part in parts:
        if not part:
            continue
        value = part.strip().strip(",")
        if not value:
            continue
        cleaned.append(value)
    return ", ".join(cleaned)


def language_and_currency(language: str) -> Tuple[str, str]:
    return LANGUAGES.get(language, LANGUAGES["en"])


def _business_brief(inputs: PlanInputs) -> str:
    vision = f"founder vision: {inputs.vision}" if inputs.vision else None
    return join_prompt_parts([f"a {inputs.industry} business in {inputs.location}", vision])


def _user_prompt(inputs: PlanInputs) -> str:
    return f"Generate the business plan for Industry: {inputs.industry}, Location: {inputs.location}."


def build_structured_messages(inputs: PlanInputs) -> List[Message]:
    lang_name, currency = language_and_currency(inputs.language)
    system = (
        f"You are a professional business plan generator. "
        f"Generate a realistic, data-driven business plan for {_business_brief(inputs)}, written in {lang_name}. "
        f"Report every money figure in {currency} and set 'currency' to '{currency}'. "
        f"'tam', 'sam' and 'som' are numeric market sizes. "
        f"'financialProjections' has exactly 5 entries labelled 'Year 1' to 'Year 5'. "
        f"'roadmap' has exactly 5 entries, one per year. "
        f"Your output must be a JSON object that strictly adheres to the provided schema."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": _user_prompt(inputs)},
    ]


def build_sectioned_messages(inputs: PlanInputs) -> List[Message]:
    lang_name, currency = language_and_currency(inputs.language)
    markers = "\n".join(f"---SECTION: {key}---" for key in SECTION_KEYS)
    system = (
        f"You are a professional business plan writer. "
        f"Write a realistic, data-driven business plan for {_business_brief(inputs)}, in {lang_name}, "
        f"with money figures in {currency}.\n"
        f"Do not answer in JSON. Structure the answer as markdown sections, each introduced by a marker line "
        f"exactly as shown, in this order:\n{markers}\n"
        f"Inside the market section include three lines of the form 'TAM: <value>', 'SAM: <value>' and 'SOM: <value>'."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": _user_prompt(inputs)},
    ]


def build_messages(inputs: PlanInputs, plan_format: str) -> List[Message]:
    if plan_format == "sectioned":
        return build_sectioned_messages(inputs)
    if plan_format == "structured":
        return build_structured_messages(inputs)
    raise ValueError(f"Unknown plan format: {plan_format}")


def build_mentor_messages(
    plan_context: Dict[str, Any],
    history: Sequence[MentorMessage],
    message: str,
) -> List[Message]:
    system = (
        "You are an expert business consultant mentor. "
        f"You are reviewing a business plan with this context: {json.dumps(plan_context, default=str)}. "
        "Answer the user's questions specifically about their business plan. "
        "Keep answers concise, encouraging, and strategic."
    )
    messages: List[Message] = [{"role": "system", "content": system}]
    for item in history:
        messages.append({"role": "assistant" if item.role == "model" else "user", "content": item.text})
    messages.append({"role": "user", "content": message})
    return messages
