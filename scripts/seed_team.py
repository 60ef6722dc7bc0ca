#!/usr/bin/env python3
"""
Create a user, a team with pricing and an opening balance, and print a JWT
for the user. Local development only.
"""
import argparse
import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import jwt

from webforge.core.config import JWT_ALGORITHM, JWT_SECRET
from webforge.core.database import SessionLocal, engine, init_models
from webforge.models import Team, TeamMember, TeamPricing, User
from webforge.services import ledger_service


def create_token(user_id: str, hours: int = 24) -> str:
    payload = {
        "user_id": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(hours=hours),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


async def main(args) -> None:
    await init_models()
    user_id = str(uuid.uuid4())
    team_id = str(uuid.uuid4())

    async with SessionLocal() as db:
        db.add(User(id=user_id, email=args.email, name=args.name))
        db.add(Team(id=team_id, name=args.team, balance_cents=0, credit_limit_cents=args.credit_limit_cents))
        await db.flush()
        db.add(TeamMember(team_id=team_id, user_id=user_id, status="approved"))
        db.add(TeamPricing(
            team_id=team_id,
            html_price_cents=args.html_price_cents,
            php_price_cents=args.php_price_cents,
            react_price_cents=args.react_price_cents,
        ))
        if args.balance_cents > 0:
            await ledger_service.top_up(db, team_id, args.balance_cents, note="Opening balance", actor_id=user_id)
        await db.commit()

    await engine.dispose()
    print(f"user_id={user_id}")
    print(f"team_id={team_id}")
    print(f"token={create_token(user_id)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--email", default="dev@example.com")
    parser.add_argument("--name", default="Dev")
    parser.add_argument("--team", default="Dev team")
    parser.add_argument("--balance-cents", type=int, default=1000)
    parser.add_argument("--credit-limit-cents", type=int, default=0)
    parser.add_argument("--html-price-cents", type=int, default=700)
    parser.add_argument("--php-price-cents", type=int, default=900)
    parser.add_argument("--react-price-cents", type=int, default=900)
    asyncio.run(main(parser.parse_args()))
