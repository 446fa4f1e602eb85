import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.responses import dump, success
from app.db.session import get_db
from app.dependencies.auth import get_current_user, get_optional_user
from app.models.user import User
from app.schemas.chain import ChainCreate, ChainResponse, ChainUpdate, ReorderRequest
from app.services.chain_engine import DEFAULT_SORT, ChainEngine

logger = logging.getLogger(__name__)

router = APIRouter()


def get_chain_engine(db: Session = Depends(get_db)) -> ChainEngine:
    return ChainEngine(db)


def _chain(chain, engine: ChainEngine, public: bool = False):
    exclude = {"user_id"} if public else None
    return dump(ChainResponse.from_chain(chain, engine.clock()), exclude=exclude)


# Public routes

@router.get("/public/{username}")
def get_public_chains(
    username: str,
    viewer: Optional[User] = Depends(get_optional_user),
    engine: ChainEngine = Depends(get_chain_engine)
):
    """Active, public chains of a user, in their display order"""
    owner, chains = engine.list_public(username)
    return success({
        "user": dump(owner),
        "isOwner": viewer is not None and viewer.username == username,
        "chains": [_chain(c, engine, public=True) for c in chains],
    })


@router.post("/{chain_id}/view")
def track_view(
    chain_id: int,
    viewer: Optional[User] = Depends(get_optional_user),
    engine: ChainEngine = Depends(get_chain_engine)
):
    engine.record_view(chain_id)
    logger.debug("View on chain %s by %s", chain_id, viewer.id if viewer else "anonymous")
    return success(message="View recorded")


@router.post("/{chain_id}/click")
def track_click(
    chain_id: int,
    viewer: Optional[User] = Depends(get_optional_user),
    engine: ChainEngine = Depends(get_chain_engine)
):
    url = engine.record_click(chain_id)
    logger.debug("Click on chain %s by %s", chain_id, viewer.id if viewer else "anonymous")
    return success({"url": url}, message="Click recorded")


@router.post("/{chain_id}/participants")
def join_chain(chain_id: int, engine: ChainEngine = Depends(get_chain_engine)):
    chain = engine.add_participant(chain_id)
    return success({
        "currentParticipants": chain.current_participants,
        "maxParticipants": chain.max_participants,
    }, message="Participant added")


# Owner routes

@router.get("")
def list_chains(
    status_filter: Optional[str] = Query(None, alias="status"),
    sort: str = DEFAULT_SORT,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    engine: ChainEngine = Depends(get_chain_engine)
):
    chains, total = engine.list_owned(user, status=status_filter, sort=sort, page=page, limit=limit)
    return success({
        "chains": [_chain(c, engine) for c in chains],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    })


@router.post("", status_code=status.HTTP_201_CREATED)
def create_chain(
    data: ChainCreate,
    user: User = Depends(get_current_user),
    engine: ChainEngine = Depends(get_chain_engine)
):
    chain = engine.create(user, data)
    return success({"chain": _chain(chain, engine)}, message="Chain created")


# Must be declared before /{chain_id} routes
@router.put("/reorder")
def reorder_chains(
    data: ReorderRequest,
    user: User = Depends(get_current_user),
    engine: ChainEngine = Depends(get_chain_engine)
):
    engine.reorder(user, data.chain_ids)
    return success(message="Order updated")


@router.get("/{chain_id}")
def get_chain(
    chain_id: int,
    user: User = Depends(get_current_user),
    engine: ChainEngine = Depends(get_chain_engine)
):
    chain = engine.get_owned(user, chain_id)
    return success({"chain": _chain(chain, engine)})


@router.put("/{chain_id}")
def update_chain(
    chain_id: int,
    data: ChainUpdate,
    user: User = Depends(get_current_user),
    engine: ChainEngine = Depends(get_chain_engine)
):
    chain = engine.update(user, chain_id, data)
    return success({"chain": _chain(chain, engine)}, message="Chain updated")


@router.delete("/{chain_id}")
def delete_chain(
    chain_id: int,
    user: User = Depends(get_current_user),
    engine: ChainEngine = Depends(get_chain_engine)
):
    engine.delete(user, chain_id)
    return success(message="Chain deleted")


@router.post("/{chain_id}/duplicate", status_code=status.HTTP_201_CREATED)
def duplicate_chain(
    chain_id: int,
    user: User = Depends(get_current_user),
    engine: ChainEngine = Depends(get_chain_engine)
):
    chain = engine.duplicate(user, chain_id)
    return success({"chain": _chain(chain, engine)}, message="Chain duplicated")


@router.get("/{chain_id}/stats")
def get_chain_stats(
    chain_id: int,
    user: User = Depends(get_current_user),
    engine: ChainEngine = Depends(get_chain_engine)
):
    stats = engine.chain_stats(user, chain_id)
    return success({"stats": dump(stats)})
