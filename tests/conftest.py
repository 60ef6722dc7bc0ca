# FILE: tests/conftest.py
"""
Shared fixtures: a fresh SQLite database per test, seeded users and teams,
and scripted providers that stand in for the AI backends.
"""
import asyncio
from typing import List, Optional, Union

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from webforge.core.database import build_engine, init_models
from webforge.models import Team, TeamMember, TeamPricing, User
from webforge.services import ledger_service
from webforge.services.model_routing import ModelRoute
from webforge.services.provider_service import Completion, Provider, ProviderGateway, TokenUsage

USER_ID = "user-1"
TEAM_ID = "team-1"

HTML_FILES = {
    "index.html": '<html><head><link rel="stylesheet" href="styles.css"></head>'
                  '<body><button class="cta">Book now</button><script src="script.js"></script></body></html>',
    "about.html": '<link href="styles.css"><h1>About</h1><script src="script.js"></script>',
    "services.html": '<link href="styles.css"><h1>Services</h1><script src="script.js"></script>',
    "contact.html": '<link href="styles.css"><form></form><script src="script.js"></script>',
    "privacy.html": '<link href="styles.css"><h1>Privacy</h1><script src="script.js"></script>',
    "terms.html": '<link href="styles.css"><h1>Terms</h1><script src="script.js"></script>',
    "404.html": '<link href="styles.css"><h1>Not found</h1><script src="script.js"></script>',
    "styles.css": "\n".join(["body { color: #222; }"] * 200),
    "script.js": "document.querySelector('.cta');",
    "robots.txt": "User-agent: *\nAllow: /",
    "sitemap.xml": "<urlset></urlset>",
}


def protocol_text(files) -> str:
    return "\n".join(f"<!-- FILE: {path} -->\n{content}" for path, content in files.items())


Script = Union[str, BaseException]


class ScriptedProvider(Provider):
    """Answers from a list; the last entry repeats. Exceptions in the list are raised."""

    provider_id = "openai"

    def __init__(self, responses: List[Script], delay: float = 0.0):
        self.responses = list(responses)
        self.delay = delay
        self.calls: List[dict] = []

    async def complete(self, system_prompt, user_prompt, model, max_tokens=None, timeout=None) -> Completion:
        self.calls.append({"system": system_prompt, "user": user_prompt, "model": model})
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return Completion(
            text=item,
            model=model,
            provider_id=self.provider_id,
            usage=TokenUsage(prompt_tokens=1000, completion_tokens=2000),
        )


def make_gateway(provider: Provider, timeout: Optional[float] = 5.0) -> ProviderGateway:
    return ProviderGateway(
        providers={"openai": provider},
        router=lambda tier: ModelRoute("openai", "gpt-4o-mini" if tier == "junior" else "gpt-4o"),
        timeout_seconds=timeout,
    )


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_models(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def seed_team(
        session_factory,
        balance_cents: int = 1000,
        credit_limit_cents: int = 0,
        html_price_cents: int = 700,
        user_id: str = USER_ID,
        team_id: str = TEAM_ID,
) -> None:
    async with session_factory() as s:
        s.add(User(id=user_id, email=f"{user_id}@example.com", name=user_id))
        s.add(Team(id=team_id, name="Team", balance_cents=0, credit_limit_cents=credit_limit_cents))
        await s.flush()
        s.add(TeamMember(team_id=team_id, user_id=user_id, status="approved"))
        s.add(TeamPricing(team_id=team_id, html_price_cents=html_price_cents, php_price_cents=900, react_price_cents=900))
        if balance_cents > 0:
            await ledger_service.top_up(s, team_id, balance_cents, note="Opening balance")
        await s.commit()


@pytest.fixture
async def team(session_factory):
    await seed_team(session_factory)
    return TEAM_ID
