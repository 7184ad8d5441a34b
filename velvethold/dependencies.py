"""Service wiring for the API layer."""

from functools import lru_cache

from velvethold.config import get_settings
from velvethold.database import get_supabase_admin
from velvethold.services.lifecycle import LifecycleEngine
from velvethold.services.notifications import LoggingNotifier, SupabaseChatOpener
from velvethold.services.payments import StripeConfig, StripeGateway
from velvethold.services.supabase_repository import SupabaseRequestRepository
from velvethold.services.sweeper import Sweeper


@lru_cache
def get_gateway() -> StripeGateway:
    settings = get_settings()
    return StripeGateway(StripeConfig(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        api_version=settings.stripe_api_version,
        max_retries=settings.stripe_max_retries,
    ))


@lru_cache
def get_engine() -> LifecycleEngine:
    """Engine bound to the production repository and gateway."""
    settings = get_settings()
    client = get_supabase_admin()
    return LifecycleEngine(
        repository=SupabaseRequestRepository(client),
        gateway=get_gateway(),
        notifier=LoggingNotifier(),
        chats=SupabaseChatOpener(client),
        currency=settings.deposit_currency,
        expiry_hours=settings.request_expiry_hours,
    )


@lru_cache
def get_sweeper() -> Sweeper:
    engine = get_engine()
    return Sweeper(engine, engine.repository)
