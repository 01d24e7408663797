"""
scriptswift/schemas.py — Data contracts between form, resolver, generator and session
=====================================================================================
Dataclasses for script turns and the inputs they are generated from.
`to_dict()` produces the camelCase JSON exchanged with the model and the UI.
"""

from __future__ import annotations

from dataclasses import dataclass

from .config import ScriptConfig
from .errors import NoOutputError, GenerationError


POSITIVE = "positive"
NEUTRAL = "neutral"
NEGATIVE_OBJECTION = "negative_objection"
RESPONSE_TYPES = (POSITIVE, NEUTRAL, NEGATIVE_OBJECTION)


@dataclass(frozen=True)
class ProspectResponseOption:
    """One thing the prospect might say back. Shown as a button in the UI."""
    response_text: str
    response_type: str                         # one of RESPONSE_TYPES

    def to_dict(self) -> dict:
        return {"responseText": self.response_text, "responseType": self.response_type}

    @classmethod
    def from_dict(cls, d: dict) -> "ProspectResponseOption":
        return cls(
            response_text=str(d.get("responseText") or "").strip(),
            response_type=str(d.get("responseType") or "").strip(),
        )


@dataclass(frozen=True)
class ScriptTurn:
    """The open turn: what the salesperson says plus 2-4 candidate replies."""
    salesperson_utterance: str
    prospect_response_options: tuple[ProspectResponseOption, ...] = ()

    def to_dict(self) -> dict:
        return {
            "salespersonUtterance": self.salesperson_utterance,
            "prospectResponseOptions": [o.to_dict() for o in self.prospect_response_options],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ScriptTurn":
        return cls(
            salesperson_utterance=str(d.get("salespersonUtterance") or "").strip(),
            prospect_response_options=tuple(
                ProspectResponseOption.from_dict(o)
                for o in d.get("prospectResponseOptions") or []
                if isinstance(o, dict)
            ),
        )


@dataclass(frozen=True)
class CompletedScriptTurn:
    """A turn fixed in history: options cleared, chosen response recorded."""
    salesperson_utterance: str
    chosen_prospect_response: ProspectResponseOption
    prospect_response_options: tuple[ProspectResponseOption, ...] = ()

    def __post_init__(self):
        if self.prospect_response_options:
            raise ValueError("completed turns carry no response options")

    @classmethod
    def from_turn(cls, turn: ScriptTurn, chosen: ProspectResponseOption) -> "CompletedScriptTurn":
        return cls(
            salesperson_utterance=turn.salesperson_utterance,
            chosen_prospect_response=chosen,
        )

    def to_dict(self) -> dict:
        return {
            "salespersonUtterance": self.salesperson_utterance,
            "prospectResponseOptions": [],
            "chosenProspectResponse": self.chosen_prospect_response.to_dict(),
        }


@dataclass(frozen=True)
class BusinessInfo:
    """Who is calling and what they sell."""
    user_name: str
    business_name: str
    product_service: str
    sales_goals: str

    def to_dict(self) -> dict:
        return {
            "userName": self.user_name,
            "businessName": self.business_name,
            "productService": self.product_service,
            "salesGoals": self.sales_goals,
        }


@dataclass
class CustomerInfo:
    """Either a website URL or a free-text summary, tagged by `type`."""
    type: str                                  # "url" or "text"
    url: str | None = None
    text: str | None = None

    def to_dict(self) -> dict:
        d = {"type": self.type}
        if self.type == "url":
            d["url"] = self.url
        else:
            d["text"] = self.text
        return d


@dataclass
class GenerateScriptInput:
    """Validated form submission."""
    business_info: BusinessInfo
    customer_info: CustomerInfo

    def to_dict(self) -> dict:
        return {
            "businessInfo": self.business_info.to_dict(),
            "customerInfo": self.customer_info.to_dict(),
        }


@dataclass
class CustomerContext:
    """Normalized customer summary from the resolver."""
    summary: str
    company_name: str | None = None

    def to_dict(self) -> dict:
        d = {"summary": self.summary}
        if self.company_name:
            d["companyName"] = self.company_name
        return d


@dataclass(frozen=True)
class SessionContext:
    """Everything the generator needs; computed once per conversation."""
    business_info: BusinessInfo
    customer_context: str
    customer_company_name: str | None = None

    def to_dict(self) -> dict:
        return {
            "businessInfo": self.business_info.to_dict(),
            "customerContext": self.customer_context,
            "customerCompanyName": self.customer_company_name,
        }


def parse_script_turn(data, error_cls: type[NoOutputError] = GenerationError) -> ScriptTurn:
    """Validate raw model JSON into a ScriptTurn.

    Raises error_cls when the utterance is empty, the option count is
    outside 2-4, or any option has blank text or an unknown type.
    """
    if not isinstance(data, dict):
        raise error_cls("The AI model did not return a script turn object.")

    turn = ScriptTurn.from_dict(data)
    if not turn.salesperson_utterance:
        raise error_cls("The AI model returned an empty salesperson utterance.")

    n = len(turn.prospect_response_options)
    if not ScriptConfig.MIN_RESPONSE_OPTIONS <= n <= ScriptConfig.MAX_RESPONSE_OPTIONS:
        raise error_cls(
            f"Expected {ScriptConfig.MIN_RESPONSE_OPTIONS}-{ScriptConfig.MAX_RESPONSE_OPTIONS} "
            f"prospect responses, got {n}."
        )

    for option in turn.prospect_response_options:
        if not option.response_text:
            raise error_cls("A prospect response option has no text.")
        if option.response_type not in RESPONSE_TYPES:
            raise error_cls(f"Unknown response type: {option.response_type!r}")

    return turn
