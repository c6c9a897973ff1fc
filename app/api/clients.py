"""Client API — the caller's own clients, sortable by health score."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import get_current_user
from app.database import get_db
from app.models import Client, User
from app.schemas import ClientCreate, ClientOut
from app.services.health_signals import get_client_for_user

router = APIRouter(prefix="/clients", tags=["clients"])


@router.get("/", response_model=list[ClientOut])
async def list_clients(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    sort: Literal["created_at", "health_score", "name"] = "created_at",
    order: Literal["asc", "desc"] = "desc",
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    column = getattr(Client, sort)
    stmt = select(Client).where(Client.user_id == user.id)
    stmt = stmt.order_by(column.asc() if order == "asc" else column.desc())
    result = await db.execute(stmt.offset(skip).limit(limit))
    return list(result.scalars().all())


@router.post("/", response_model=ClientOut, status_code=201)
async def create_client(
    data: ClientCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    client = Client(user_id=user.id, **data.model_dump())
    db.add(client)
    await db.commit()
    await db.refresh(client)
    return client


@router.get("/{client_id}", response_model=ClientOut)
async def get_client(
    client_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await get_client_for_user(db, client_id, user.id)
    except ValueError as e:
        raise HTTPException(404, str(e))
