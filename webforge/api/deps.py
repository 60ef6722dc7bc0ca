# FILE: webforge/api/deps.py

import hmac
import jwt
from datetime import timezone

from fastapi import BackgroundTasks, Depends, Header, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from webforge.core.config import JWT_SECRET, JWT_ALGORITHM, TASK_SECRET
from webforge.core.database import SessionLocal, get_db
from webforge.models.user import User
from webforge.services.generation_service import get_gateway
from webforge.services.provider_service import ProviderGateway
from webforge.services.task_queue import BackgroundTaskEnqueuer, TaskEnqueuer

security = HTTPBearer(auto_error=False)

async def get_current_user(
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: AsyncSession = Depends(get_db),
):
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = jwt.decode(
            credentials.credentials.strip(),
            JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("user_id") or payload.get("sub") or payload.get("id")
    if not user_id or not isinstance(user_id, str):
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "created_at": user.created_at.replace(tzinfo=timezone.utc).isoformat(),
    }


def get_provider_gateway() -> ProviderGateway:
    return get_gateway()


def get_enqueuer(background_tasks: BackgroundTasks) -> TaskEnqueuer:
    return BackgroundTaskEnqueuer(background_tasks)


def require_task_secret(authorization: str = Header(default="")) -> None:
    # Deny by default when no secret is configured
    if not TASK_SECRET:
        raise HTTPException(status_code=503, detail="Task secret not configured")
    token = authorization[7:] if authorization.lower().startswith("bearer ") else authorization
    if not hmac.compare_digest(token.strip(), TASK_SECRET):
        raise HTTPException(status_code=401, detail="Invalid task secret")


def get_session_factory():
    return SessionLocal
