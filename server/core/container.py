"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from constants import (
    AUTH_NAMESPACE,
    DEFAULT_NAMESPACE,
    LOCATION_NAMESPACE,
    PHONE_VERIFICATION_NAMESPACE,
    RATE_LIMITER_NAMESPACE,
)
from core.cache import CacheAside
from core.config import Settings
from core.database import Database
from core.locks import DistributedLock
from core.rate_limit import RateLimiter
from core.store import StoreRegistry
from services.addresses import AddressService
from services.auth import AuthService
from services.location import LocationService
from services.messaging import EmailSender, SmsSender
from services.phone_verification import PhoneVerificationService
from services.users import UserService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    settings = providers.Singleton(
        Settings,
    )

    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Owns every Redis connection pool; one adapter per logical namespace
    store_registry = providers.Singleton(
        StoreRegistry,
        settings=settings
    )

    default_store = store_registry.provided.get.call(DEFAULT_NAMESPACE)
    rate_limit_store = store_registry.provided.get.call(RATE_LIMITER_NAMESPACE)
    location_store = store_registry.provided.get.call(LOCATION_NAMESPACE)
    phone_store = store_registry.provided.get.call(PHONE_VERIFICATION_NAMESPACE)
    auth_store = store_registry.provided.get.call(AUTH_NAMESPACE)

    # Coordination engines
    rate_limiter = providers.Singleton(
        RateLimiter,
        store=rate_limit_store
    )

    location_cache = providers.Singleton(
        CacheAside,
        store=location_store,
        default_ttl=settings.provided.cache_ttl,
        lock_ttl=settings.provided.cache_lock_ttl,
        backoff_seconds=settings.provided.cache_lock_backoff
    )

    address_cache = providers.Singleton(
        CacheAside,
        store=default_store,
        default_ttl=settings.provided.address_cache_ttl,
        lock_ttl=settings.provided.cache_lock_ttl,
        backoff_seconds=settings.provided.cache_lock_backoff
    )

    phone_rate_limiter = providers.Singleton(
        RateLimiter,
        store=phone_store
    )

    phone_lock = providers.Singleton(
        DistributedLock,
        store=phone_store
    )

    auth_lock = providers.Singleton(
        DistributedLock,
        store=auth_store
    )

    # Delivery
    sms_sender = providers.Singleton(
        SmsSender,
        settings=settings
    )

    email_sender = providers.Singleton(
        EmailSender,
        settings=settings
    )

    # Services
    user_service = providers.Factory(
        UserService,
        database=database,
        settings=settings
    )

    location_service = providers.Singleton(
        LocationService,
        cache=location_cache,
        settings=settings
    )

    address_service = providers.Factory(
        AddressService,
        database=database,
        cache=address_cache,
        location=location_service,
        settings=settings
    )

    phone_verification_service = providers.Factory(
        PhoneVerificationService,
        store=phone_store,
        rate_limiter=phone_rate_limiter,
        lock=phone_lock,
        sms=sms_sender,
        settings=settings
    )

    auth_service = providers.Factory(
        AuthService,
        database=database,
        store=auth_store,
        lock=auth_lock,
        users=user_service,
        email=email_sender,
        settings=settings
    )


# Global container instance
container = Container()
