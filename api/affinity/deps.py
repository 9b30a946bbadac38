from dataclasses import dataclass
from datetime import timedelta

from fastapi import Request

from .config import COMPATIBILITY_TTL_DAYS
from .services.compatibility_cache import CompatibilityCache
from .services.discovery import DiscoveryService
from .services.match_actions import MatchTransitionManager
from .services.notifications import Notifier
from .services.personality import PersonalityService
from .services.rate_limit import InMemoryRateLimiter


@dataclass
class Services:
    repo: object
    cache: CompatibilityCache
    personality: PersonalityService
    discovery: DiscoveryService
    matches: MatchTransitionManager
    limiter: InMemoryRateLimiter


def build_services(repo, clock=None) -> Services:
    overrides = {"clock": clock} if clock else {}
    cache = CompatibilityCache(repo, ttl=timedelta(days=COMPATIBILITY_TTL_DAYS), **overrides)
    personality = PersonalityService(repo, cache, **overrides)
    return Services(
        repo=repo,
        cache=cache,
        personality=personality,
        discovery=DiscoveryService(repo, personality, **overrides),
        matches=MatchTransitionManager(repo, Notifier(repo)),
        limiter=InMemoryRateLimiter(),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_personality_service(request: Request) -> PersonalityService:
    return get_services(request).personality


def get_discovery_service(request: Request) -> DiscoveryService:
    return get_services(request).discovery


def get_match_manager(request: Request) -> MatchTransitionManager:
    return get_services(request).matches
