"""
FastAPI dependencies for Club Community Service
"""
from fastapi import Cookie, Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing import Optional

from .application.access import require_admin_user, require_club_member, require_enabled_host
from .application.services import CommentCountUpdater, CommunityService, JourneyService
from .database import MongoDB, get_mongodb
from .domain.models import AdminUser, ClubContext
from .domain.repositories import IAccountRepository, ITransactionRunner
from .infrastructure.repositories import (
    AccountRepository,
    AuditLogRepository,
    CommentRepository,
    JourneyRepository,
    MongoTransactionRunner,
    PostRepository,
)
from .kafka_producer import KafkaProducerManager, get_kafka_producer

security = HTTPBearer(auto_error=False)


async def get_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_club_auth: Optional[str] = Header(None)
) -> Optional[str]:
    """Bearer token, falling back to the X-Club-Auth header"""
    if credentials and credentials.credentials:
        return credentials.credentials.strip()
    return x_club_auth.strip() if x_club_auth else None


async def get_admin_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: Optional[str] = Cookie(None),
    x_club_auth: Optional[str] = Header(None)
) -> Optional[str]:
    """Admin pages also accept the long-lived session cookie"""
    if credentials and credentials.credentials:
        return credentials.credentials.strip()
    return session or x_club_auth or None


async def get_account_repository(mongodb: MongoDB = Depends(get_mongodb)) -> IAccountRepository:
    return AccountRepository(mongodb.db)


async def get_transaction_runner(mongodb: MongoDB = Depends(get_mongodb)) -> ITransactionRunner:
    return MongoTransactionRunner(mongodb)


async def get_community_service(
    mongodb: MongoDB = Depends(get_mongodb),
    runner: ITransactionRunner = Depends(get_transaction_runner),
    kafka_producer: KafkaProducerManager = Depends(get_kafka_producer)
) -> CommunityService:
    """Get CommunityService instance with dependencies"""
    return CommunityService(
        PostRepository(mongodb.db),
        CommentRepository(mongodb.db),
        AuditLogRepository(mongodb.db),
        CommentCountUpdater(runner),
        kafka_producer,
    )


async def get_journey_service(
    mongodb: MongoDB = Depends(get_mongodb),
    runner: ITransactionRunner = Depends(get_transaction_runner)
) -> JourneyService:
    return JourneyService(runner, JourneyRepository(mongodb.db))


async def get_club_member(
    club_id: str,
    token: Optional[str] = Depends(get_token),
    accounts: IAccountRepository = Depends(get_account_repository)
) -> ClubContext:
    """Current user, required to host or have joined the club in the path"""
    return await require_club_member(accounts, token, club_id)


async def get_enabled_host(
    club_id: str,
    token: Optional[str] = Depends(get_token),
    accounts: IAccountRepository = Depends(get_account_repository)
) -> ClubContext:
    """Current user, required to be the enabled host of the club in the path"""
    return await require_enabled_host(accounts, token, club_id)


async def get_admin_user(
    token: Optional[str] = Depends(get_admin_token),
    accounts: IAccountRepository = Depends(get_account_repository)
) -> AdminUser:
    return await require_admin_user(accounts, token)
