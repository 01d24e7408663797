"""Shared fixtures and configuration for the test suite."""

import os
import sys
import pytest

# Dummy key so the Anthropic client can be constructed without .env.local
os.environ.setdefault("ANTHROPIC_API_KEY", "test-dummy-key")
os.environ.setdefault("FETCH_SIMULATED_DELAY", "0")

# Ensure project root is on sys.path
sys.path.insert(0, str(os.path.dirname(os.path.dirname(__file__))))

from scriptswift.errors import GenerationError
from scriptswift.schemas import (
    BusinessInfo,
    CustomerContext,
    ProspectResponseOption,
    ScriptTurn,
    SessionContext,
)


# ---------------------------------------------------------------------------
# CLI option: --live
# ---------------------------------------------------------------------------
def pytest_addoption(parser):
    parser.addoption("--live", action="store_true", default=False, help="Run live API tests")


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--live"):
        skip_live = pytest.mark.skip(reason="need --live option to run")
        for item in items:
            if "live" in item.keywords:
                item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
def make_business(**overrides) -> BusinessInfo:
    defaults = dict(
        user_name="Dana",
        business_name="Brightline Analytics",
        product_service="Sales forecasting dashboards for mid-size retailers",
        sales_goals="Book a 20 minute demo",
    )
    defaults.update(overrides)
    return BusinessInfo(**defaults)


def make_form(customer_info=None, **business_overrides) -> dict:
    business = make_business(**business_overrides)
    return {
        "businessInfo": business.to_dict(),
        "customerInfo": customer_info or {
            "type": "text",
            "text": "Company Name: Acme Corp\nWe sell widgets.",
        },
    }


def make_turn(utterance="Hi, this is Dana from Brightline.", n_options=3) -> ScriptTurn:
    pool = [
        ProspectResponseOption("Okay, what is it?", "positive"),
        ProspectResponseOption("I'm busy right now.", "neutral"),
        ProspectResponseOption("Not interested.", "negative_objection"),
        ProspectResponseOption("Who gave you my number?", "neutral"),
    ]
    return ScriptTurn(utterance, tuple(pool[:n_options]))


def make_context(**overrides) -> SessionContext:
    defaults = dict(
        business_info=make_business(),
        customer_context="Company Name: Acme Corp\nWe sell widgets.",
        customer_company_name="Acme Corp",
    )
    defaults.update(overrides)
    return SessionContext(**defaults)


class FakeGenerator:
    """Scripted stand-in for the opening / next-turn generators.

    Records every call; raises queued errors before returning turns.
    """

    def __init__(self):
        self.calls = []
        self.errors = []
        self.count = 0

    async def opening(self, ctx):
        self.calls.append(("opening", ctx, None, None))
        return self._next()

    async def next_turn(self, ctx, history, last_response):
        self.calls.append(("next", ctx, list(history), last_response))
        return self._next()

    def _next(self):
        if self.errors:
            raise self.errors.pop(0)
        self.count += 1
        return make_turn(utterance=f"Utterance {self.count}")

    def fail_next(self, error=None):
        self.errors.append(error or GenerationError("The AI model did not return a valid next script turn."))


class FakeResolver:
    def __init__(self):
        self.calls = []

    async def __call__(self, customer_info):
        self.calls.append(customer_info)
        if customer_info.type == "url":
            return CustomerContext(summary="Acme builds widgets for hospitals.", company_name="Acme")
        from scriptswift.customer_context import extract_company_name
        return CustomerContext(summary=customer_info.text, company_name=extract_company_name(customer_info.text))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def session(generator, resolver):
    from scriptswift.session import ConversationSession
    return ConversationSession(
        resolve=resolver,
        generate_opening=generator.opening,
        generate_next=generator.next_turn,
    )


@pytest.fixture
def form():
    return make_form()
